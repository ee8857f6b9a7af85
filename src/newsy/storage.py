"""Document stores for articles and newsletter subscribers.

Both stores keep a single JSON document under the blob root.  The article
store offers the small query surface the services rely on: insert many,
delete by category, and category/all queries sorted by ``fetched_at`` then
``published_at`` (both descending).  Category comparisons are
case-insensitive.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from pydantic import ValidationError

from newsy.blobstore import read_document, resolve_blob_root, write_document
from newsy.models import Article, Subscriber

__all__ = [
    "ARTICLES_DOCUMENT",
    "SUBSCRIBERS_DOCUMENT",
    "ArticleStore",
    "JsonArticleStore",
    "JsonSubscriberStore",
    "SubscriberSource",
    "sort_newest_first",
]

logger = logging.getLogger(__name__)

ARTICLES_DOCUMENT = "articles.json"
SUBSCRIBERS_DOCUMENT = "subscribers.json"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ArticleStore(Protocol):
    def insert_many(self, articles: Sequence[Article]) -> List[Article]: ...

    def delete_by_category(self, category: str) -> int: ...

    def find_by_category(self, category: str, limit: int | None = None) -> List[Article]: ...

    def find_all(self) -> List[Article]: ...


class SubscriberSource(Protocol):
    def verified_active(self) -> List[Optional[Subscriber]]: ...


def sort_newest_first(articles: Sequence[Article]) -> List[Article]:
    """Order by ``fetched_at`` descending, then ``published_at`` descending."""

    return sorted(
        articles,
        key=lambda article: (article.fetched_at or _EPOCH, article.published_at),
        reverse=True,
    )


class JsonArticleStore:
    """Article store persisted as one JSON document."""

    def __init__(self, blob_root: Path | str | None = None) -> None:
        self._path = resolve_blob_root(blob_root) / ARTICLES_DOCUMENT
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> List[Article]:
        payload = read_document(self._path, default=[])
        return [Article.model_validate(item) for item in payload]

    def _save(self, articles: Sequence[Article]) -> None:
        write_document(self._path, [article.model_dump(mode="json") for article in articles])

    def insert_many(self, articles: Sequence[Article]) -> List[Article]:
        """Append ``articles``, assigning each a fresh id, and return the stored copies."""

        stored = [article.model_copy(update={"id": uuid.uuid4().hex}) for article in articles]
        with self._lock:
            existing = self._load()
            self._save(existing + stored)
        logger.debug("Inserted %d articles into %s", len(stored), self._path)
        return stored

    def delete_by_category(self, category: str) -> int:
        target = category.strip().lower()
        with self._lock:
            existing = self._load()
            kept = [article for article in existing if article.category.lower() != target]
            removed = len(existing) - len(kept)
            if removed:
                self._save(kept)
        logger.debug("Deleted %d articles for category %s", removed, category)
        return removed

    def find_by_category(self, category: str, limit: int | None = None) -> List[Article]:
        target = category.strip().lower()
        with self._lock:
            matches = [article for article in self._load() if article.category.lower() == target]
        ordered = sort_newest_first(matches)
        return ordered if limit is None else ordered[:limit]

    def find_all(self) -> List[Article]:
        with self._lock:
            articles = self._load()
        return sort_newest_first(articles)


class JsonSubscriberStore:
    """Subscriber list persisted as one JSON document."""

    def __init__(self, blob_root: Path | str | None = None) -> None:
        self._path = resolve_blob_root(blob_root) / SUBSCRIBERS_DOCUMENT
        self._lock = threading.Lock()

    def all(self) -> List[Optional[Subscriber]]:
        """Return every stored entry; ``null`` entries come back as ``None``.

        Entries that do not describe a subscriber are logged and left out so
        one bad record never hides the rest of the list.
        """

        with self._lock:
            payload = read_document(self._path, default=[])
        if not isinstance(payload, list):
            logger.warning("Subscriber document %s is not a list, ignoring it", self._path)
            return []

        subscribers: List[Optional[Subscriber]] = []
        for position, item in enumerate(payload):
            if item is None:
                subscribers.append(None)
                continue
            try:
                subscribers.append(Subscriber.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "Ignoring invalid subscriber entry #%d (%d validation errors)",
                    position,
                    exc.error_count(),
                )
        return subscribers

    def verified_active(self) -> List[Optional[Subscriber]]:
        """Verified, active subscribers; ``None`` entries are passed through for the caller to skip."""

        return [
            subscriber
            for subscriber in self.all()
            if subscriber is None or (subscriber.verified and subscriber.active)
        ]

    def find_by_token(self, token: str) -> Optional[Subscriber]:
        if not token:
            return None
        for subscriber in self.all():
            if subscriber is not None and subscriber.verification_token == token:
                return subscriber
        return None

    def save(self, subscriber: Subscriber) -> None:
        """Insert ``subscriber`` or replace the entry with the same email address."""

        email = _email_key(subscriber.email)
        with self._lock:
            payload = read_document(self._path, default=[])
            entries = [
                item
                for item in payload
                if not isinstance(item, dict) or _email_key(item.get("email")) != email
            ]
            entries.append(subscriber.model_dump(mode="json"))
            write_document(self._path, entries)


def _email_key(email: object) -> str:
    return str(email or "").strip().lower()
