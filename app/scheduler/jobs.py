"""Staylytics - Scheduler Jobs.

APScheduler jobs that keep stored access tokens warm ahead of expiry and
drop expired report cache entries.
"""

from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.errors import PersistenceFailed
from app.core.logging import get_logger
from app.dependencies import get_report_cache, get_token_manager

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def refresh_expiring_tokens_job():
    """Refresh every connection whose token expires within the configured window."""
    window = timedelta(minutes=settings.token_refresh_window_minutes)
    try:
        result = await get_token_manager().refresh_expiring(window)
        logger.info(
            f"Proactive token refresh: {result['refreshed']} refreshed, "
            f"{result['failed']} failed"
        )
    except PersistenceFailed as e:
        logger.error(f"Proactive token refresh could not read connections: {e}")


async def purge_report_cache_job():
    try:
        removed = get_report_cache().purge_expired()
        logger.info(f"Purged {removed} expired report cache entries")
    except SQLAlchemyError as e:
        logger.error(f"Report cache purge failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        refresh_expiring_tokens_job,
        "interval",
        minutes=settings.token_refresh_interval_minutes,
        id="refresh_expiring_tokens",
        replace_existing=True,
        misfire_grace_time=300,
    )
    scheduler.add_job(
        purge_report_cache_job,
        "interval",
        hours=1,
        id="purge_report_cache",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Token refresh every {settings.token_refresh_interval_minutes} min"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
