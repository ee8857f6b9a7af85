"""Freshness window checks applied before articles are stored."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from newsy.models import Article
from newsy.services.dates import Clock, utc_now

__all__ = ["RecencyFilter", "is_recent"]

logger = logging.getLogger(__name__)


def is_recent(article: Article, now: datetime, max_age_days: int) -> bool:
    """Return ``True`` when ``article`` was published strictly after ``now - max_age_days``.

    Articles whose publish date could not be resolved upstream are never
    considered recent, even though the mapper stamped them with the
    ingestion time.
    """

    if article.published_at is None or article.published_at_estimated:
        logger.warning("Article has no publication date: %s", article.title)
        return False

    cutoff = now - timedelta(days=max_age_days)
    recent = article.published_at > cutoff
    if not recent:
        logger.debug(
            "Filtering out old article '%s' published at %s (older than %d days)",
            article.title,
            article.published_at.isoformat(),
            max_age_days,
        )
    return recent


class RecencyFilter:
    def __init__(self, max_age_days: int = 2, clock: Clock = utc_now) -> None:
        self.max_age_days = max_age_days
        self._clock = clock

    def is_recent(self, article: Article, now: datetime | None = None) -> bool:
        return is_recent(article, now if now is not None else self._clock(), self.max_age_days)
