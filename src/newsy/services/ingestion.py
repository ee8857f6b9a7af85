"""Per-category fetch, normalise, filter and replace cycle."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Sequence

from pydantic import BaseModel, Field

from newsy.models import Article, canonical_category
from newsy.services.dates import Clock, utc_now
from newsy.services.mapper import ArticleMapper
from newsy.services.newsdata import NewsDataClient
from newsy.services.recency import RecencyFilter
from newsy.storage import ArticleStore

__all__ = ["CategoryOutcome", "CategoryStatus", "CycleReport", "IngestionPipeline"]

logger = logging.getLogger(__name__)


class CategoryStatus(str, Enum):
    REPLACED = "replaced"
    SKIPPED = "skipped"
    FAILED = "failed"


class CategoryOutcome(BaseModel):
    category: str
    status: CategoryStatus
    fetched: int = 0
    stored: int = 0
    detail: str | None = None


class CycleReport(BaseModel):
    """What happened to every category during one ingestion cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    already_running: bool = False
    outcomes: List[CategoryOutcome] = Field(default_factory=list)

    def by_status(self, status: CategoryStatus) -> List[str]:
        return [outcome.category for outcome in self.outcomes if outcome.status == status]


class IngestionPipeline:
    """Replace each category's stored articles with the latest recent ones.

    Categories are processed one after another and independently: a failure
    fetching or storing one category is logged and recorded, and the cycle
    moves on.  A category that yields nothing keeps its previous articles.

    Replacement deletes the category's documents and then inserts the new
    ones.  A reader that queries the category between the two calls sees an
    empty list for that instant.
    """

    def __init__(
        self,
        client: NewsDataClient,
        store: ArticleStore,
        categories: Sequence[str],
        *,
        mapper: ArticleMapper | None = None,
        recency: RecencyFilter | None = None,
        fetch_size: int = 10,
        articles_per_category: int = 4,
        clock: Clock = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._categories = [category.strip().lower() for category in categories]
        self._mapper = mapper or ArticleMapper()
        self._recency = recency or RecencyFilter(clock=clock)
        self._fetch_size = fetch_size
        self._articles_per_category = articles_per_category
        self._clock = clock
        self._run_lock = threading.Lock()
        self._last_fetched_at: datetime | None = None

    @property
    def categories(self) -> List[str]:
        return list(self._categories)

    def run_cycle(self) -> CycleReport:
        """Attempt every configured category and report the per-category outcome."""

        report = CycleReport(started_at=self._clock())
        if not self._run_lock.acquire(blocking=False):
            logger.warning("News fetch already in progress, skipping overlapping run")
            report.already_running = True
            return report

        try:
            logger.info("Starting news fetch at %s", report.started_at.isoformat())
            for category in self._categories:
                report.outcomes.append(self._run_category(category))
        finally:
            self._run_lock.release()

        report.finished_at = self._clock()
        logger.info(
            "Completed news fetch: replaced=%s skipped=%s failed=%s",
            report.by_status(CategoryStatus.REPLACED),
            report.by_status(CategoryStatus.SKIPPED),
            report.by_status(CategoryStatus.FAILED),
        )
        return report

    def _run_category(self, category: str) -> CategoryOutcome:
        try:
            return self.ingest_category(category)
        except Exception as exc:  # noqa: BLE001 - one category must not abort the cycle
            logger.exception("Error fetching news for category %s", category)
            return CategoryOutcome(
                category=canonical_category(category),
                status=CategoryStatus.FAILED,
                detail=type(exc).__name__,
            )

    def ingest_category(self, category: str) -> CategoryOutcome:
        display = canonical_category(category)
        logger.info(
            "Fetching latest %d articles for category: %s (keeping %d within %d days)",
            self._fetch_size,
            category,
            self._articles_per_category,
            self._recency.max_age_days,
        )

        response = self._client.fetch_latest(category, self._fetch_size)
        results = response.results or []
        if response.status != "success" or not results:
            logger.warning("No articles found for category: %s. Status: %s", category, response.status)
            return CategoryOutcome(
                category=display,
                status=CategoryStatus.SKIPPED,
                detail=f"status={response.status}",
            )

        now = self._clock()
        articles = [self._mapper.map(record, category) for record in results]
        recent = [article for article in articles if self._recency.is_recent(article, now)]
        selected = recent[: self._articles_per_category]

        if not selected:
            logger.warning(
                "No recent articles (within %d days) found for category: %s after filtering %d results",
                self._recency.max_age_days,
                category,
                len(results),
            )
            return CategoryOutcome(
                category=display,
                status=CategoryStatus.SKIPPED,
                fetched=len(results),
                detail="no recent articles",
            )

        self._replace(display, selected)
        logger.info(
            "Saved %d recent articles for category: %s (filtered from %d fetched)",
            len(selected),
            display,
            len(results),
        )
        return CategoryOutcome(
            category=display,
            status=CategoryStatus.REPLACED,
            fetched=len(results),
            stored=len(selected),
        )

    def _next_fetched_at(self) -> datetime:
        stamp = self._clock()
        if self._last_fetched_at is not None and stamp <= self._last_fetched_at:
            stamp = self._last_fetched_at + timedelta(microseconds=1)
        self._last_fetched_at = stamp
        return stamp

    def _replace(self, category: str, articles: Sequence[Article]) -> None:
        fetched_at = self._next_fetched_at()
        stamped = [article.model_copy(update={"fetched_at": fetched_at}) for article in articles]
        self._store.delete_by_category(category)
        self._store.insert_many(stamped)
