"""METRICSNAP — Scheduler Jobs.

APScheduler daily job that refreshes every scheduled sheet at the configured
hour.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from metricsnap.config import settings
from metricsnap.core.errors import RefreshError
from metricsnap.core.logging import get_logger
from metricsnap.database import engine
from metricsnap.pipeline.refresh import refresh_sheet
from metricsnap.roster import scheduled_sheets

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def daily_refresh_job(bind=None) -> dict:
    """Refresh every sheet whose date preset is not "none".

    One sheet failing never stops the others. Returns per-sheet outcomes.
    """
    logger.info("Scheduled daily refresh starting...")
    results: dict = {}
    with Session(bind or engine) as session:
        for sheet in scheduled_sheets(session):
            try:
                outcome = await refresh_sheet(session, sheet)
                results[sheet.id] = "completed"
                logger.info(
                    f"Sheet {sheet.name or sheet.id} refreshed: "
                    f"{outcome.total_accounts} accounts, {outcome.error_count} with errors",
                    extra={"snapshot_id": outcome.snapshot_id, "refresh_type": sheet.refresh_type},
                )
            except RefreshError as e:
                results[sheet.id] = "failed"
                logger.error(f"Scheduled refresh of sheet {sheet.id} failed: {e}")
            except Exception as e:
                results[sheet.id] = "failed"
                logger.error(
                    f"Scheduled refresh of sheet {sheet.id} crashed: {type(e).__name__}: {e}"
                )
    logger.info(f"Scheduled daily refresh finished: {results}")
    return results


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_refresh_job,
        "cron",
        hour=settings.refresh_hour,
        minute=0,
        id="daily_refresh",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily refresh at {settings.refresh_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
