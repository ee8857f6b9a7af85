"""Service layer entry points for Newsy."""

from __future__ import annotations

from .digest import DigestCompiler, NewsletterJob  # noqa: F401
from .ingestion import IngestionPipeline  # noqa: F401
from .retrieval import RetrievalService  # noqa: F401
from .subscriptions import SubscriptionService  # noqa: F401

__all__ = [
    "DigestCompiler",
    "IngestionPipeline",
    "NewsletterJob",
    "RetrievalService",
    "SubscriptionService",
]
