"""Background job implementations for APScheduler."""
from __future__ import annotations

import datetime as dt

from loguru import logger

from movierating.core.config import get_settings
from movierating.core.dependencies import get_token_store
from movierating.core.health import TOKEN_CLEANUP_JOB, record_scheduler_tick
from movierating.core.metrics import record_token_cleanup
from movierating.services.token_store import TokenStore


async def cleanup_expired_tokens_job(
    store: TokenStore | None = None,
    *,
    now: dt.datetime | None = None,
) -> int:
    """Delete token records that expired more than the retention period ago.

    Failures are logged and swallowed so the next scheduled run still happens.
    """

    store = store or get_token_store()
    retention = get_settings().token_retention_period
    cutoff = (now or dt.datetime.now(dt.timezone.utc)) - retention
    try:
        deleted = await store.delete_expired_before(cutoff)
    except Exception:
        logger.bind(job=TOKEN_CLEANUP_JOB, cutoff=cutoff.isoformat()).exception("token_cleanup_failed")
        return 0

    record_token_cleanup(deleted)
    await record_scheduler_tick(TOKEN_CLEANUP_JOB, result=deleted)
    logger.bind(job=TOKEN_CLEANUP_JOB, deleted=deleted, cutoff=cutoff.isoformat()).info("token_cleanup_completed")
    return deleted
