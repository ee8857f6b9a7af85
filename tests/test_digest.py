from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from newsy.models import Article, Subscriber
from newsy.services.digest import DigestCompiler, NewsletterJob, RecipientStatus
from newsy.services.mailer import MailDeliveryError
from newsy.services.retrieval import RetrievalService
from newsy.storage import SUBSCRIBERS_DOCUMENT, JsonArticleStore, JsonSubscriberStore

BASE = datetime(2025, 11, 2, 12, 0, tzinfo=timezone.utc)
CATEGORIES = ("Technology", "Sports", "Business", "Education", "Entertainment")


def article(title: str, category: str, minute: int) -> Article:
    return Article(
        title=title,
        author="Unknown Author",
        source_name="Unknown Source",
        url=f"https://example.com/{title}",
        published_at=BASE + timedelta(minutes=minute),
        fetched_at=BASE + timedelta(minutes=minute),
        category=category,
        description=f"About {title}",
        image_url="https://example.com/img.png",
        source_icon="https://example.com/icon.png",
    )


@pytest.fixture
def retrieval(tmp_path: Path) -> RetrievalService:
    store = JsonArticleStore(tmp_path)
    store.insert_many(
        [
            article(f"{category.lower()}-{i}", category, minute=i)
            for category in CATEGORIES
            for i in range(3)
        ]
    )
    return RetrievalService(store)


def test_digest_takes_two_per_category_in_subscription_order(retrieval: RetrievalService) -> None:
    subscriber = Subscriber(email="a@example.com", categories=["technology", "sports"])

    entries = DigestCompiler(retrieval).compile(subscriber)

    assert [entry.title for entry in entries] == ["technology-2", "technology-1", "sports-2", "sports-1"]
    assert entries[0].url == "https://example.com/technology-2"
    assert entries[0].summary == "About technology-2"


def test_digest_is_capped(retrieval: RetrievalService) -> None:
    subscriber = Subscriber(email="a@example.com", categories=[c.lower() for c in CATEGORIES])

    assert len(DigestCompiler(retrieval).compile(subscriber)) == 8
    assert len(DigestCompiler(retrieval, max_articles_per_mail=3).compile(subscriber)) == 3


@pytest.mark.parametrize("categories", [None, [], ["", "   ", None]])
def test_digest_without_categories_is_empty(retrieval: RetrievalService, categories) -> None:
    subscriber = Subscriber(email="a@example.com", categories=categories)

    assert DigestCompiler(retrieval).compile(subscriber) == []


def test_digest_for_missing_subscriber_is_empty(retrieval: RetrievalService) -> None:
    assert DigestCompiler(retrieval).compile(None) == []


def test_category_names_are_trimmed_and_case_folded(retrieval: RetrievalService) -> None:
    subscriber = Subscriber(email="a@example.com", categories=["  SPORTS ", "weather"])

    entries = DigestCompiler(retrieval).compile(subscriber)

    assert [entry.title for entry in entries] == ["sports-2", "sports-1"]


class FakeSubscribers:
    def __init__(self, subscribers: List[Subscriber]) -> None:
        self.subscribers = subscribers

    def verified_active(self) -> List[Subscriber]:
        return self.subscribers


class FakeMailer:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[tuple[str, str, int, str]] = []

    def send_newsletter(self, to, subject, articles, unsubscribe_token) -> None:
        if to in self.failing:
            raise MailDeliveryError(f"Could not deliver mail to {to}")
        self.sent.append((to, subject, len(articles), unsubscribe_token))


def test_newsletter_job_continues_after_failures(retrieval: RetrievalService) -> None:
    subscribers = [
        Subscriber(email="fails@example.com", categories=["technology"], verification_token="t1"),
        Subscriber(email="empty@example.com", categories=[], verification_token="t2"),
        Subscriber(email="ok@example.com", categories=["business"], verification_token="t3"),
    ]
    mailer = FakeMailer(failing={"fails@example.com"})
    job = NewsletterJob(FakeSubscribers(subscribers), DigestCompiler(retrieval), mailer, subject="Daily")

    report = job.run()

    assert mailer.sent == [("ok@example.com", "Daily", 2, "t3")]
    statuses = [(outcome.email, outcome.status) for outcome in report.outcomes]
    assert statuses == [
        ("fails@example.com", RecipientStatus.FAILED),
        ("empty@example.com", RecipientStatus.SKIPPED),
        ("ok@example.com", RecipientStatus.SENT),
    ]
    assert report.count(RecipientStatus.SENT) == 1


def test_unexpected_compile_error_is_isolated(retrieval: RetrievalService) -> None:
    class BrokenCompiler(DigestCompiler):
        def compile(self, subscriber):
            if subscriber.email == "boom@example.com":
                raise RuntimeError("boom")
            return super().compile(subscriber)

    subscribers = [
        Subscriber(email="boom@example.com", categories=["technology"]),
        Subscriber(email="ok@example.com", categories=["sports"]),
    ]
    mailer = FakeMailer()

    report = NewsletterJob(FakeSubscribers(subscribers), BrokenCompiler(retrieval), mailer).run()

    assert [entry[0] for entry in mailer.sent] == ["ok@example.com"]
    assert report.outcomes[0].status == RecipientStatus.FAILED
    assert report.outcomes[0].detail == "RuntimeError"


def test_null_subscriber_entry_is_skipped(retrieval: RetrievalService) -> None:
    mailer = FakeMailer()

    report = NewsletterJob(FakeSubscribers([None]), DigestCompiler(retrieval), mailer).run()

    assert mailer.sent == []
    assert report.outcomes[0].status == RecipientStatus.SKIPPED


def test_overlapping_newsletter_run_is_refused(retrieval: RetrievalService) -> None:
    mailer = FakeMailer()
    job = NewsletterJob(
        FakeSubscribers([Subscriber(email="a@example.com", categories=["sports"])]),
        DigestCompiler(retrieval),
        mailer,
    )

    lock: threading.Lock = job._run_lock
    lock.acquire()
    try:
        report = job.run()
    finally:
        lock.release()

    assert report.already_running is True
    assert mailer.sent == []


def test_malformed_subscriber_records_do_not_abort_the_batch(
    retrieval: RetrievalService, tmp_path: Path
) -> None:
    subscriber_root = tmp_path / "subscribers"
    subscriber_root.mkdir()
    (subscriber_root / SUBSCRIBERS_DOCUMENT).write_text(
        json.dumps(
            [
                None,
                {"email": "bad@example.com", "categories": "technology", "verified": True},
                {"email": "ok@example.com", "categories": ["technology"], "verified": True},
            ]
        ),
        encoding="utf-8",
    )
    mailer = FakeMailer()

    report = NewsletterJob(JsonSubscriberStore(subscriber_root), DigestCompiler(retrieval), mailer).run()

    assert [entry[0] for entry in mailer.sent] == ["ok@example.com"]
    statuses = [(outcome.email, outcome.status) for outcome in report.outcomes]
    assert statuses == [
        ("<null-subscriber>", RecipientStatus.SKIPPED),
        ("ok@example.com", RecipientStatus.SENT),
    ]


def test_corrupt_subscriber_document_ends_the_run_cleanly(retrieval: RetrievalService, tmp_path: Path) -> None:
    subscriber_root = tmp_path / "subscribers"
    subscriber_root.mkdir()
    (subscriber_root / SUBSCRIBERS_DOCUMENT).write_text("{not json", encoding="utf-8")

    report = NewsletterJob(JsonSubscriberStore(subscriber_root), DigestCompiler(retrieval), FakeMailer()).run()

    assert report.outcomes == []
    assert report.finished_at is not None
