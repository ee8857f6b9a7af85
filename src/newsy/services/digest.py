"""Newsletter digest compilation and the batch job that mails it out."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from newsy.models import DigestEntry, Subscriber
from newsy.services.dates import Clock, utc_now
from newsy.services.mailer import MailDeliveryError
from newsy.services.retrieval import RetrievalService
from newsy.storage import SubscriberSource

__all__ = [
    "DigestCompiler",
    "NewsletterJob",
    "NewsletterReport",
    "RecipientOutcome",
    "RecipientStatus",
]

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send_newsletter(
        self, to: str, subject: str, articles: Sequence[DigestEntry], unsubscribe_token: str
    ) -> None: ...


class DigestCompiler:
    """Select a capped, cross-category article list for one subscriber."""

    def __init__(
        self,
        retrieval: RetrievalService,
        *,
        max_articles_per_mail: int = 8,
        articles_per_category: int = 2,
    ) -> None:
        self._retrieval = retrieval
        self.max_articles_per_mail = max_articles_per_mail
        self.articles_per_category = articles_per_category

    @staticmethod
    def subscribed_categories(subscriber: Optional[Subscriber]) -> List[str]:
        if subscriber is None or subscriber.categories is None:
            return []
        return [
            category.strip().lower()
            for category in subscriber.categories
            if category is not None and category.strip()
        ]

    def compile(self, subscriber: Optional[Subscriber]) -> List[DigestEntry]:
        """Return at most ``max_articles_per_mail`` entries, in subscription order.

        An empty list means there is nothing to send.
        """

        entries: List[DigestEntry] = []
        for category in self.subscribed_categories(subscriber):
            if len(entries) >= self.max_articles_per_mail:
                break
            articles = self._retrieval.top_articles(category, self.articles_per_category)
            logger.debug("Fetched %d articles for category: %s", len(articles), category)
            entries.extend(
                DigestEntry(title=article.title, url=article.url, summary=article.description)
                for article in articles
            )
        return entries[: self.max_articles_per_mail]


class RecipientStatus(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class RecipientOutcome(BaseModel):
    email: str
    status: RecipientStatus
    articles: int = 0
    detail: str | None = None


class NewsletterReport(BaseModel):
    started_at: datetime
    finished_at: datetime | None = None
    already_running: bool = False
    outcomes: List[RecipientOutcome] = Field(default_factory=list)

    def count(self, status: RecipientStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)


class NewsletterJob:
    """Compile and send the digest to every verified, active subscriber.

    One recipient's failure (compilation or delivery) is logged and recorded
    and the remaining recipients are still processed.
    """

    def __init__(
        self,
        subscribers: SubscriberSource,
        compiler: DigestCompiler,
        mailer: Mailer,
        *,
        subject: str = "Your Newsy Daily",
        clock: Clock = utc_now,
    ) -> None:
        self._subscribers = subscribers
        self._compiler = compiler
        self._mailer = mailer
        self._subject = subject
        self._clock = clock
        self._run_lock = threading.Lock()

    def run(self) -> NewsletterReport:
        report = NewsletterReport(started_at=self._clock())
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Newsletter job already in progress, skipping overlapping run")
            report.already_running = True
            return report

        try:
            logger.info("Executing daily newsletter job")
            try:
                recipients = self._subscribers.verified_active() or []
            except ValueError:
                logger.exception("Could not load subscribers, no newsletters sent")
                recipients = []
            logger.info("Found %d verified active subscribers", len(recipients))
            for subscriber in recipients:
                report.outcomes.append(self._deliver(subscriber))
        finally:
            self._run_lock.release()

        report.finished_at = self._clock()
        logger.info(
            "Newsletter job finished: sent=%d skipped=%d failed=%d",
            report.count(RecipientStatus.SENT),
            report.count(RecipientStatus.SKIPPED),
            report.count(RecipientStatus.FAILED),
        )
        return report

    def _deliver(self, subscriber: Optional[Subscriber]) -> RecipientOutcome:
        email = subscriber.email if subscriber is not None else "<null-subscriber>"
        logger.info("Compiling newsletter for: %s", email)
        try:
            entries = self._compiler.compile(subscriber)
            if not entries:
                logger.info("No articles found for %s, skipping email send", email)
                return RecipientOutcome(email=email, status=RecipientStatus.SKIPPED)

            logger.info("Sending newsletter to %s with %d articles", email, len(entries))
            self._mailer.send_newsletter(email, self._subject, entries, subscriber.verification_token)
        except MailDeliveryError as exc:
            logger.error("Failed to send newsletter to %s: %s", email, exc, exc_info=True)
            return RecipientOutcome(email=email, status=RecipientStatus.FAILED, detail="mail delivery failed")
        except Exception as exc:  # noqa: BLE001 - one recipient must not abort the batch
            logger.exception("Unexpected error compiling/sending newsletter for %s", email)
            return RecipientOutcome(email=email, status=RecipientStatus.FAILED, detail=type(exc).__name__)

        logger.info("Newsletter sent to %s", email)
        return RecipientOutcome(email=email, status=RecipientStatus.SENT, articles=len(entries))
