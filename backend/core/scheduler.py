"""
Background scheduler for the nightly retroactive clustering scan.

Uses APScheduler so the scan runs inside the API process without a
separate cron container.
"""

import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from core.correlation import correlation_scope
from models.config import settings
from repositories.database import session_scope

scheduler: BackgroundScheduler | None = None

# Set on shutdown; the running scan polls it between pairs
_stop_event = threading.Event()


def retro_cluster_job() -> None:
    """
    Scheduled job that merges nearby canonical issues missed at creation.

    Creates its own database session for isolation.
    """
    from services.retro_cluster_service import RetroClusterService

    with correlation_scope("retro"):
        logger.info("Running scheduled retroactive clustering job")
        try:
            with session_scope() as db:
                result = RetroClusterService.retro_cluster(
                    db, should_stop=_stop_event.is_set
                )
            logger.info(
                f"Retroactive clustering completed: merged {result.merged_pairs} "
                f"pair(s) out of {result.scanned} issue(s)"
            )
        except Exception as e:
            logger.error(f"Retroactive clustering failed: {e}")
            raise


def setup_scheduler() -> None:
    """
    Configure and start the background scheduler.

    The retroactive clustering job is only registered when
    RETRO_CLUSTER_SCHEDULE_ENABLED is set.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return

    if not settings.RETRO_CLUSTER_SCHEDULE_ENABLED:
        logger.info("Retroactive clustering schedule disabled; scheduler not started")
        return

    _stop_event.clear()
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        retro_cluster_job,
        CronTrigger(hour=settings.RETRO_CLUSTER_HOUR, minute=0),
        id="retro_cluster",
        name="Retroactive Issue Clustering",
        replace_existing=True,
        max_instances=1,
        misfire_grace_time=3600,
    )

    scheduler.start()
    logger.info(
        f"Background scheduler started with retroactive clustering at "
        f"{settings.RETRO_CLUSTER_HOUR:02d}:00"
    )


def shutdown_scheduler() -> None:
    """Stop a running scan at the next pair, then shut the scheduler down."""
    global scheduler

    if scheduler is not None and scheduler.running:
        _stop_event.set()
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")
    scheduler = None


def get_scheduler_status() -> dict:
    """Get current scheduler status for monitoring."""
    if scheduler is None:
        return {"running": False, "jobs": []}

    jobs = [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": (
                job.next_run_time.isoformat() if job.next_run_time else None
            ),
        }
        for job in scheduler.get_jobs()
    ]
    return {"running": scheduler.running, "jobs": jobs}
