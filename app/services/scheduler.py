"""Background scheduler for month archiving."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.db.base import SessionLocal
from app.services.archive import archive_old_months

logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None

ARCHIVE_JOB_ID = "archive_old_months"


def run_archive_job() -> dict:
    """Archive months beyond the retention window in a fresh session."""
    db = SessionLocal()
    try:
        result = archive_old_months(db)
        if result["archived_months"]:
            logger.info("Scheduler archived months: %s", ", ".join(result["archived_months"]))
        return result
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error in archive job")
        return {"archived_months": [], "deleted_transactions": 0}
    finally:
        db.close()


def start_scheduler() -> None:
    """Create and start the background scheduler."""
    global scheduler
    interval = settings.ARCHIVE_INTERVAL_MINUTES

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_archive_job,
        trigger=IntervalTrigger(minutes=interval),
        id=ARCHIVE_JOB_ID,
        name="Archive transaction months beyond retention",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Background scheduler started with interval=%d minutes", interval)


def stop_scheduler() -> None:
    """Shut down the background scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
        scheduler = None


def get_scheduler_status() -> dict:
    """Return current scheduler state for the status API."""
    if not scheduler or not scheduler.running:
        return {"running": False, "interval_minutes": None, "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        })
    return {
        "running": True,
        "interval_minutes": settings.ARCHIVE_INTERVAL_MINUTES,
        "jobs": jobs,
    }
