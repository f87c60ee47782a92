"""Scheduler orchestration for recurring jobs."""
from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from movierating.core.config import TOKEN_CLEANUP_INTERVAL, get_settings
from movierating.core.health import TOKEN_CLEANUP_JOB
from movierating.tasks import jobs

_scheduler = AsyncIOScheduler(timezone="UTC")
_configured = False


def configure_scheduler() -> None:
    global _configured
    settings = get_settings()
    if not settings.scheduler_enabled or _configured:
        return

    logger.info(
        "scheduler_configure",
        cleanup_interval_seconds=int(TOKEN_CLEANUP_INTERVAL.total_seconds()),
        retention_seconds=int(settings.token_retention_period.total_seconds()),
    )

    _scheduler.add_job(
        jobs.cleanup_expired_tokens_job,
        IntervalTrigger(seconds=int(TOKEN_CLEANUP_INTERVAL.total_seconds())),
        id=TOKEN_CLEANUP_JOB,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
        replace_existing=True,
    )

    _configured = True


def start_scheduler() -> None:
    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled")
        return

    configure_scheduler()
    if not _scheduler.running:
        _scheduler.start()
        logger.info("scheduler_started")


async def shutdown_scheduler() -> None:
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def get_scheduler() -> AsyncIOScheduler:
    return _scheduler


__all__ = ["start_scheduler", "shutdown_scheduler", "configure_scheduler", "get_scheduler"]
