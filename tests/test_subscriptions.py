from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from newsy.models import Article
from newsy.services.digest import DigestCompiler, NewsletterJob, RecipientStatus
from newsy.services.mailer import MailDeliveryError
from newsy.services.retrieval import RetrievalService
from newsy.services.subscriptions import (
    InvalidSubscriptionError,
    SubscriptionService,
    UnknownTokenError,
)
from newsy.storage import JsonArticleStore, JsonSubscriberStore

CATEGORIES = ("technology", "sports", "business", "education", "entertainment")


class FakeMailer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.verifications: list[tuple[str, str]] = []
        self.newsletters: list[tuple[str, str]] = []

    def send_verification_email(self, to: str, token: str) -> None:
        if self.fail:
            raise MailDeliveryError(f"Could not deliver mail to {to}")
        self.verifications.append((to, token))

    def send_newsletter(self, to, subject, articles, unsubscribe_token) -> None:
        self.newsletters.append((to, unsubscribe_token))


@pytest.fixture
def store(tmp_path: Path) -> JsonSubscriberStore:
    return JsonSubscriberStore(tmp_path)


def make_service(store, mailer, tokens=("tok-1", "tok-2", "tok-3")) -> SubscriptionService:
    pending = iter(tokens)
    return SubscriptionService(
        store, mailer, allowed_categories=CATEGORIES, token_factory=lambda: next(pending)
    )


def test_subscribe_stores_unverified_and_sends_verification(store: JsonSubscriberStore) -> None:
    mailer = FakeMailer()
    service = make_service(store, mailer)

    subscriber = service.subscribe(" reader@example.com ", ["Sports", " technology", "sports", ""])

    assert subscriber.email == "reader@example.com"
    assert subscriber.categories == ["sports", "technology"]
    assert subscriber.verified is False
    assert mailer.verifications == [("reader@example.com", "tok-1")]
    assert store.verified_active() == []
    assert store.find_by_token("tok-1").email == "reader@example.com"


def test_verify_then_unsubscribe(store: JsonSubscriberStore) -> None:
    service = make_service(store, FakeMailer())
    service.subscribe("reader@example.com", ["sports"])

    verified = service.verify("tok-1")

    assert verified.verified is True
    assert [s.email for s in store.verified_active()] == ["reader@example.com"]

    cancelled = service.unsubscribe("tok-1")

    assert cancelled.active is False
    assert store.verified_active() == []
    assert len(store.all()) == 1


def test_resubscribe_replaces_categories_and_restarts_verification(store: JsonSubscriberStore) -> None:
    mailer = FakeMailer()
    service = make_service(store, mailer)
    service.subscribe("reader@example.com", ["sports"])
    service.verify("tok-1")

    service.subscribe("Reader@example.com", ["business"])

    subscribers = store.all()
    assert len(subscribers) == 1
    assert subscribers[0].categories == ["business"]
    assert subscribers[0].verified is False
    assert [token for _, token in mailer.verifications] == ["tok-1", "tok-2"]
    with pytest.raises(UnknownTokenError):
        service.verify("tok-1")


@pytest.mark.parametrize(
    "email, categories",
    [
        ("not-an-address", ["sports"]),
        ("", ["sports"]),
        ("reader@example.com", []),
        ("reader@example.com", ["", None]),
        ("reader@example.com", ["weather"]),
    ],
)
def test_invalid_requests_are_rejected(store: JsonSubscriberStore, email, categories) -> None:
    mailer = FakeMailer()

    with pytest.raises(InvalidSubscriptionError):
        make_service(store, mailer).subscribe(email, categories)

    assert store.all() == []
    assert mailer.verifications == []


@pytest.mark.parametrize("token", ["missing", ""])
def test_unknown_tokens_raise(store: JsonSubscriberStore, token: str) -> None:
    service = make_service(store, FakeMailer())

    with pytest.raises(UnknownTokenError):
        service.verify(token)
    with pytest.raises(UnknownTokenError):
        service.unsubscribe(token)


def test_mail_failure_propagates_after_storing(store: JsonSubscriberStore) -> None:
    service = make_service(store, FakeMailer(fail=True))

    with pytest.raises(MailDeliveryError):
        service.subscribe("reader@example.com", ["sports"])

    assert store.find_by_token("tok-1") is not None


def test_verified_subscriber_receives_newsletter_with_unsubscribe_token(
    store: JsonSubscriberStore, tmp_path: Path
) -> None:
    published = datetime(2025, 11, 2, 12, 0, tzinfo=timezone.utc)
    articles = JsonArticleStore(tmp_path / "articles")
    articles.insert_many(
        [
            Article(
                title="Match report",
                author="Jane Doe",
                source_name="Example",
                url="https://example.com/match",
                published_at=published,
                fetched_at=published,
                category="Sports",
                description="Summary",
                image_url="https://example.com/img.png",
                source_icon="https://example.com/icon.png",
            )
        ]
    )
    mailer = FakeMailer()
    service = make_service(store, mailer)
    service.subscribe("reader@example.com", ["sports"])
    service.subscribe("pending@example.com", ["sports"])
    service.verify("tok-1")
    job = NewsletterJob(store, DigestCompiler(RetrievalService(articles)), mailer)

    report = job.run()

    assert mailer.newsletters == [("reader@example.com", "tok-1")]
    assert report.count(RecipientStatus.SENT) == 1

    service.unsubscribe("tok-1")
    mailer.newsletters.clear()

    assert job.run().outcomes == []
    assert mailer.newsletters == []
