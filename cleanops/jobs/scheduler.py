"""
APScheduler Configuration

Background job scheduler started with the application. Jobs open their own
database session; a failure in one run is logged and does not stop the
scheduler.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from cleanops.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(
    jobstores={'default': MemoryJobStore()},
    executors={'default': AsyncIOExecutor()},
    job_defaults={
        'coalesce': True,  # a missed day runs once, not once per miss
        'max_instances': 1,  # sweeps never overlap
        'misfire_grace_time': 60,
    },
    timezone=settings.SCHEDULER_TIMEZONE,
)


def start_scheduler():
    """Register jobs and start the scheduler unless disabled in settings."""
    if not settings.SCHEDULER_ENABLED:
        logger.info("Background job scheduler disabled")
        return
    if scheduler.running:
        return

    from cleanops.jobs.reminder_jobs import register_reminder_job

    register_reminder_job(scheduler)
    scheduler.start()
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Scheduler jobs as plain dicts for the jobs endpoint."""
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
