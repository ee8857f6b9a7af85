"""API routes exposing stored news, the manual ingestion trigger and subscriptions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from newsy.models import Article, canonical_category
from newsy.runtime import Services, get_services
from newsy.services.ingestion import CycleReport
from newsy.services.mailer import MailDeliveryError
from newsy.services.subscriptions import InvalidSubscriptionError, UnknownTokenError

logger = logging.getLogger(__name__)

router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArticleOut(_CamelModel):
    id: str | None = None
    title: str
    author: str
    source_name: str
    url: str
    published_at: datetime
    fetched_at: datetime | None = None
    category: str
    description: str
    image_url: str
    source_icon: str

    @classmethod
    def from_article(cls, article: Article) -> "ArticleOut":
        return cls.model_validate(article.model_dump(exclude={"published_at_estimated"}))


class CategoryNewsResponse(_CamelModel):
    category: str
    count: int | None = None
    message: str | None = None
    articles: List[ArticleOut] = Field(default_factory=list)


class AllNewsResponse(_CamelModel):
    total_categories: int
    total_articles: int
    news: Dict[str, List[ArticleOut]] = Field(default_factory=dict)


class FetchResponse(_CamelModel):
    message: str
    timestamp: datetime
    report: CycleReport


class SubscriptionRequest(_CamelModel):
    email: str
    categories: List[Optional[str]] = Field(default_factory=list)


class SubscriptionResponse(_CamelModel):
    message: str
    email: str


@router.get("/news", response_model=AllNewsResponse)
async def get_all_news(services: Services = Depends(get_services)) -> AllNewsResponse:
    """Return the latest articles grouped by category."""

    logger.info("REST API: Getting all news")
    try:
        grouped = await run_in_threadpool(services.retrieval.get_all)
    except Exception as exc:  # noqa: BLE001 - never leak internal detail to clients
        logger.exception("Error fetching all news")
        raise HTTPException(status_code=500, detail="Failed to fetch news") from exc

    return AllNewsResponse(
        total_categories=grouped.total_categories,
        total_articles=grouped.total_articles,
        news={
            category: [ArticleOut.from_article(article) for article in articles]
            for category, articles in grouped.news.items()
        },
    )


@router.get(
    "/news/{category}",
    response_model=CategoryNewsResponse,
    response_model_exclude_none=True,
)
async def get_news_by_category(
    category: str, services: Services = Depends(get_services)
) -> CategoryNewsResponse:
    """Return the latest five articles for ``category``."""

    logger.info("REST API: Getting news for category: %s", category)
    formatted = canonical_category(category)
    try:
        articles = await run_in_threadpool(services.retrieval.get_by_category, formatted)
    except Exception as exc:  # noqa: BLE001 - never leak internal detail to clients
        logger.exception("Error fetching news for category %s", category)
        raise HTTPException(
            status_code=500, detail=f"Failed to fetch news for category: {category}"
        ) from exc

    if not articles:
        return CategoryNewsResponse(
            category=formatted, message=f"No news found for category: {formatted}", articles=[]
        )

    return CategoryNewsResponse(
        category=formatted,
        count=len(articles),
        articles=[ArticleOut.from_article(article) for article in articles],
    )


@router.post("/news/fetch", response_model=FetchResponse)
async def trigger_ingestion(services: Services = Depends(get_services)) -> FetchResponse:
    """Run one ingestion cycle immediately."""

    logger.info("REST API: Manual news fetch triggered")
    try:
        report = await run_in_threadpool(services.ingestion.run_cycle)
    except Exception as exc:  # noqa: BLE001 - never leak internal detail to clients
        logger.exception("Error in manual news fetch")
        raise HTTPException(status_code=500, detail="Failed to run news ingestion") from exc

    message = (
        "News fetch already in progress"
        if report.already_running
        else "News fetch completed successfully"
    )
    return FetchResponse(message=message, timestamp=report.finished_at or report.started_at, report=report)


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=201)
async def subscribe(
    request: SubscriptionRequest, services: Services = Depends(get_services)
) -> SubscriptionResponse:
    """Register an unverified subscription and send the verification email."""

    logger.info("REST API: Subscription requested for %s", request.email)
    try:
        subscriber = await run_in_threadpool(
            services.subscriptions.subscribe, request.email, request.categories
        )
    except InvalidSubscriptionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except MailDeliveryError as exc:
        logger.error("Verification email could not be sent to %s: %s", request.email, exc)
        raise HTTPException(status_code=502, detail="Failed to send verification email") from exc
    except Exception as exc:  # noqa: BLE001 - never leak internal detail to clients
        logger.exception("Error subscribing %s", request.email)
        raise HTTPException(status_code=500, detail="Failed to subscribe") from exc

    return SubscriptionResponse(
        message="Verification email sent. Check your inbox.", email=subscriber.email
    )


async def _apply_token(action, token: str, failure: str):
    try:
        return await run_in_threadpool(action, token)
    except UnknownTokenError as exc:
        raise HTTPException(status_code=404, detail="Unknown or expired link") from exc
    except Exception as exc:  # noqa: BLE001 - never leak internal detail to clients
        logger.exception(failure)
        raise HTTPException(status_code=500, detail=failure) from exc


@router.get("/subscriptions/verify", response_model=SubscriptionResponse)
async def verify_subscription(
    token: str = Query(..., min_length=1), services: Services = Depends(get_services)
) -> SubscriptionResponse:
    """Confirm the address behind ``token``; the daily newsletter starts from the next run."""

    logger.info("REST API: Verifying subscription")
    subscriber = await _apply_token(
        services.subscriptions.verify, token, "Failed to verify subscription"
    )
    return SubscriptionResponse(message="Subscription confirmed", email=subscriber.email)


@router.get("/subscriptions/unsubscribe", response_model=SubscriptionResponse)
async def unsubscribe(
    token: str = Query(..., min_length=1), services: Services = Depends(get_services)
) -> SubscriptionResponse:
    logger.info("REST API: Unsubscribe requested")
    subscriber = await _apply_token(
        services.subscriptions.unsubscribe, token, "Failed to unsubscribe"
    )
    return SubscriptionResponse(message="You have been unsubscribed", email=subscriber.email)
