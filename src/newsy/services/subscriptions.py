"""Newsletter subscription lifecycle: subscribe, verify, unsubscribe."""

from __future__ import annotations

import logging
import re
import secrets
import threading
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from newsy.models import Subscriber

__all__ = [
    "InvalidSubscriptionError",
    "SubscriptionService",
    "UnknownTokenError",
]

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InvalidSubscriptionError(ValueError):
    """Raised when a subscription request carries an unusable email or category list."""


class UnknownTokenError(LookupError):
    """Raised when no subscriber holds the given token."""


class SubscriberRepository(Protocol):
    def find_by_token(self, token: str) -> Optional[Subscriber]: ...

    def save(self, subscriber: Subscriber) -> None: ...


class VerificationMailer(Protocol):
    def send_verification_email(self, to: str, token: str) -> None: ...


def _new_token() -> str:
    return secrets.token_urlsafe(32)


class SubscriptionService:
    """Manage subscribers on behalf of the public subscription endpoints.

    A new subscription is stored unverified and a verification mail carrying
    its token is sent.  The same token confirms the address and, later,
    identifies the subscriber in the newsletter's unsubscribe link.
    """

    def __init__(
        self,
        store: SubscriberRepository,
        mailer: VerificationMailer,
        *,
        allowed_categories: Sequence[str],
        token_factory: Callable[[], str] = _new_token,
    ) -> None:
        self._store = store
        self._mailer = mailer
        self._allowed = {category.strip().lower() for category in allowed_categories}
        self._token_factory = token_factory
        self._lock = threading.Lock()

    def _categories(self, categories: Iterable[Optional[str]]) -> List[str]:
        cleaned: List[str] = []
        for category in categories:
            name = (category or "").strip().lower()
            if name and name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            raise InvalidSubscriptionError("At least one category is required")
        unknown = [name for name in cleaned if name not in self._allowed]
        if unknown:
            raise InvalidSubscriptionError(f"Unknown categories: {', '.join(unknown)}")
        return cleaned

    def subscribe(self, email: str, categories: Iterable[Optional[str]]) -> Subscriber:
        """Store ``email`` unverified with ``categories`` and mail it a verification link.

        Subscribing an address again replaces its categories and restarts
        verification with a fresh token.
        """

        address = (email or "").strip()
        if not _EMAIL_PATTERN.match(address):
            raise InvalidSubscriptionError("A valid email address is required")

        subscriber = Subscriber(
            email=address,
            categories=self._categories(categories),
            verified=False,
            active=True,
            verification_token=self._token_factory(),
        )
        with self._lock:
            self._store.save(subscriber)
        logger.info("Stored unverified subscription for %s", address)

        self._mailer.send_verification_email(address, subscriber.verification_token)
        logger.info("Verification email sent to %s", address)
        return subscriber

    def _update(self, token: str, **changes) -> Subscriber:
        with self._lock:
            subscriber = self._store.find_by_token(token)
            if subscriber is None:
                raise UnknownTokenError("Unknown subscription token")
            updated = subscriber.model_copy(update=changes)
            self._store.save(updated)
        return updated

    def verify(self, token: str) -> Subscriber:
        subscriber = self._update(token, verified=True, active=True)
        logger.info("Subscription verified for %s", subscriber.email)
        return subscriber

    def unsubscribe(self, token: str) -> Subscriber:
        subscriber = self._update(token, active=False)
        logger.info("Subscription cancelled for %s", subscriber.email)
        return subscriber
