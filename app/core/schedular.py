import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.progress import ProgressTracker

logger = logging.getLogger(__name__)


def sweep_stale_progress():
    """
    Scheduled task marking abandoned attempts as exited.
    Progress rows untouched for ``progress_stale_minutes`` stop showing as live.
    """
    db = SessionLocal()
    try:
        exited = ProgressTracker(db).sweep_stale(settings.progress_stale_minutes)
        logger.info(
            f"[{datetime.now(timezone.utc)}] Progress sweep completed. "
            f"Marked {exited} stale attempts as exited."
        )
        return exited
    except Exception as e:
        logger.error(f"Error during progress sweep: {e}")
        db.rollback()
        return 0
    finally:
        db.close()


def start_scheduler():
    """
    Initialize and start the APScheduler for the progress sweep.
    """
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        sweep_stale_progress,
        trigger=IntervalTrigger(minutes=settings.progress_sweep_interval_minutes),
        id="progress_sweep",
        name="Mark stale test progress as exited",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Progress scheduler started. Sweep every "
        f"{settings.progress_sweep_interval_minutes} minutes."
    )

    return scheduler


def shutdown_scheduler(scheduler: AsyncIOScheduler):
    """
    Gracefully shutdown the scheduler.
    """
    if scheduler:
        scheduler.shutdown()
        logger.info("Progress scheduler shut down.")
