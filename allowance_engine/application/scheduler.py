"""
Background scheduler - runs the weekly allowance batch inside the FastAPI process.

Jobs:
  - Weekly allowances (daily, 00:00 in settings.TIMEZONE by default)

The batch itself decides which accounts are due today, so the job fires every day.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from allowance_engine.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)

ALLOWANCE_JOB_ID = "weekly_allowances"


def _run_weekly_allowances():
    from allowance_engine.infrastructure.db.session import get_session_factory
    from allowance_engine.application.allowance_batch import AllowanceBatchCoordinator

    try:
        summary = AllowanceBatchCoordinator(get_session_factory()).run()
        logger.info("Weekly allowances job finished: %s", summary.to_dict())
    except Exception:
        logger.exception("Weekly allowances job failed")


def start_scheduler():
    """Start the background scheduler with the daily allowance job."""
    settings = get_settings()

    scheduler.add_job(
        _run_weekly_allowances,
        CronTrigger(
            hour=settings.ALLOWANCE_RUN_HOUR,
            minute=settings.ALLOWANCE_RUN_MINUTE,
            timezone=settings.TIMEZONE,
        ),
        id=ALLOWANCE_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started: weekly_allowances (%02d:%02d %s)",
        settings.ALLOWANCE_RUN_HOUR, settings.ALLOWANCE_RUN_MINUTE, settings.TIMEZONE,
    )


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
