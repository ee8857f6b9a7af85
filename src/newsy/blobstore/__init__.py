"""On-disk JSON documents backing the article and subscriber stores."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Union

_PACKAGE_DIR = Path(__file__).resolve().parent

#: Default location where stored documents live.
DEFAULT_BLOB_ROOT = _PACKAGE_DIR / "data"


_Pathish = Union[str, Path]


def resolve_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Return a :class:`Path` pointing at the blob root.

    When ``None`` is provided, :data:`DEFAULT_BLOB_ROOT` is returned.  The
    directory is not created; :func:`write_document` creates it on first write.
    """

    if blob_root is None:
        return DEFAULT_BLOB_ROOT
    return Path(blob_root)


def read_document(path: Path, default: Any) -> Any:
    """Return the decoded JSON stored at ``path`` or ``default`` when absent.

    A corrupt document raises :class:`ValueError`.
    """

    if not path.exists():
        return default

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Stored document is not valid JSON: {path}") from exc


def write_document(path: Path, payload: Any) -> None:
    """Write ``payload`` as JSON, swapping the file in place once fully written."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp_path, path)


__all__ = [
    "DEFAULT_BLOB_ROOT",
    "read_document",
    "resolve_blob_root",
    "write_document",
]
