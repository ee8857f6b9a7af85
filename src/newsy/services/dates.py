"""Timestamp parsing for the heterogeneous ``pubDate`` values sent upstream."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Tuple

__all__ = ["Clock", "DateNormalizer", "NATIVE_FORMAT", "parse_datetime", "utc_now"]

logger = logging.getLogger(__name__)

#: NewsData.io's own format, e.g. ``2025-11-02 14:30:00``.
NATIVE_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive values as UTC and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(raw: str) -> datetime:
    return datetime.fromisoformat(raw)


def _native(raw: str) -> datetime:
    return datetime.strptime(raw, NATIVE_FORMAT)


def _iso_with_t_separator(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace(" ", "T"))


_PARSERS = (_iso, _native, _iso_with_t_separator)


class DateNormalizer:
    """Parse upstream timestamps, falling back to ``clock()`` when nothing matches."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def try_parse(self, raw: str | None) -> datetime | None:
        """Return the parsed UTC timestamp, or ``None`` if every format fails."""

        if raw is None:
            return None
        candidate = raw.strip()
        if not candidate:
            return None

        for parser in _PARSERS:
            try:
                return _as_utc(parser(candidate))
            except ValueError:
                continue
        return None

    def resolve(self, raw: str | None) -> Tuple[datetime, bool]:
        """Return the timestamp for ``raw`` and whether it had to be estimated."""

        parsed = self.try_parse(raw)
        if parsed is not None:
            return parsed, False

        logger.warning("Could not parse date %r, using current time", raw)
        return self._clock(), True

    def parse(self, raw: str | None) -> datetime:
        return self.resolve(raw)[0]


def parse_datetime(raw: str | None, clock: Clock = utc_now) -> datetime:
    """Convenience wrapper around :meth:`DateNormalizer.parse`."""

    return DateNormalizer(clock).parse(raw)
