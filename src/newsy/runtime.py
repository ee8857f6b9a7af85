"""Assembly of the service graph from a :class:`~newsy.config.NewsyConfig`."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from newsy.config import NewsyConfig, load_config
from newsy.services.dates import Clock, DateNormalizer, utc_now
from newsy.services.digest import DigestCompiler, NewsletterJob
from newsy.services.ingestion import IngestionPipeline
from newsy.services.mailer import EmailService
from newsy.services.mapper import ArticleMapper
from newsy.services.newsdata import NewsDataClient
from newsy.services.recency import RecencyFilter
from newsy.services.retrieval import RetrievalService
from newsy.services.subscriptions import SubscriptionService
from newsy.storage import JsonArticleStore, JsonSubscriberStore

__all__ = ["Services", "build_services", "get_services"]


@dataclass
class Services:
    config: NewsyConfig
    ingestion: IngestionPipeline
    retrieval: RetrievalService
    newsletter: NewsletterJob
    subscriptions: SubscriptionService


def build_services(config: NewsyConfig, *, clock: Clock = utc_now) -> Services:
    blob_root = config.storage.blob_root
    articles = JsonArticleStore(blob_root)
    retrieval = RetrievalService(articles)

    ingestion = IngestionPipeline(
        NewsDataClient(config.newsdata),
        articles,
        config.ingestion.categories,
        mapper=ArticleMapper(DateNormalizer(clock)),
        recency=RecencyFilter(config.ingestion.max_article_age_days, clock),
        fetch_size=config.ingestion.fetch_size,
        articles_per_category=config.ingestion.articles_per_category,
        clock=clock,
    )
    compiler = DigestCompiler(
        retrieval,
        max_articles_per_mail=config.digest.max_articles_per_mail,
        articles_per_category=config.digest.articles_per_category,
    )
    subscribers = JsonSubscriberStore(blob_root)
    mailer = EmailService(config.mail)
    newsletter = NewsletterJob(
        subscribers,
        compiler,
        mailer,
        subject=config.digest.subject,
        clock=clock,
    )
    subscriptions = SubscriptionService(
        subscribers, mailer, allowed_categories=config.ingestion.categories
    )
    return Services(
        config=config,
        ingestion=ingestion,
        retrieval=retrieval,
        newsletter=newsletter,
        subscriptions=subscriptions,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Return the process-wide services built from the default configuration."""

    return build_services(load_config())
