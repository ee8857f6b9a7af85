"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from newsy.api.routes import router
from newsy.runtime import get_services
from newsy.scheduler import build_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = app.dependency_overrides.get(get_services, get_services)
    services = provider()

    scheduler = None
    if services.config.schedule.enabled:
        scheduler = build_scheduler(services)
        scheduler.start()
        logger.info(
            "Scheduler started: news fetch '%s', newsletter '%s' (%s)",
            services.config.schedule.news_fetch_cron,
            services.config.schedule.newsletter_cron,
            services.config.schedule.timezone,
        )
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Newsy", description="Category news feed and daily digest API", lifespan=lifespan)
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
