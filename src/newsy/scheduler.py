"""Cron scheduling of the ingestion cycle and the newsletter batch."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from newsy.runtime import Services

__all__ = ["INGESTION_JOB_ID", "NEWSLETTER_JOB_ID", "build_scheduler"]

logger = logging.getLogger(__name__)

INGESTION_JOB_ID = "news_fetch"
NEWSLETTER_JOB_ID = "newsletter"


def _run_ingestion(services: Services) -> None:
    logger.info("=== Starting daily news fetch job ===")
    try:
        services.ingestion.run_cycle()
    except Exception:  # noqa: BLE001 - keep the scheduler thread alive
        logger.exception("=== Daily news fetch job failed ===")


def _run_newsletter(services: Services) -> None:
    try:
        services.newsletter.run()
    except Exception:  # noqa: BLE001 - keep the scheduler thread alive
        logger.exception("Daily newsletter job failed")


def build_scheduler(services: Services) -> BackgroundScheduler:
    """Return an unstarted scheduler with both jobs registered."""

    schedule = services.config.schedule
    scheduler = BackgroundScheduler(timezone=schedule.timezone)
    scheduler.add_job(
        _run_ingestion,
        CronTrigger.from_crontab(schedule.news_fetch_cron, timezone=schedule.timezone),
        args=[services],
        id=INGESTION_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _run_newsletter,
        CronTrigger.from_crontab(schedule.newsletter_cron, timezone=schedule.timezone),
        args=[services],
        id=NEWSLETTER_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
