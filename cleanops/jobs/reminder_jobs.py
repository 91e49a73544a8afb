"""
Uncollected Order Reminder Job.

Sends the due escalation reminders for orders waiting for collection:
- 7 days, 14 days, 30 days after the order became ready
- monthly after that
- disposal eligible at 90 days

Triggers:
- Daily scheduled job (via APScheduler)
- POST /api/v1/reminders/process
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.config import settings
from cleanops.core.time_utils import utc_now
from cleanops.services.notification_service import NotificationService
from cleanops.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

# Extra time given to the sweep to wind down after its own deadline
DEADLINE_GRACE_SECONDS = 30


async def run_uncollected_reminders_job(
    db: AsyncSession,
    notifier: Optional[NotificationService] = None,
    deadline_seconds: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run one reminder sweep under an overall deadline.

    The sweep stops picking up new reminders at the deadline; if it is still
    running DEADLINE_GRACE_SECONDS later it is cancelled.

    Returns:
        Sweep summary (see ReminderService.process_due_reminders)
    """
    deadline = settings.REMINDER_SWEEP_DEADLINE_SECONDS if deadline_seconds is None else deadline_seconds
    service = ReminderService(db, notifier or NotificationService())
    started_at = utc_now().isoformat()

    try:
        return await asyncio.wait_for(
            service.process_due_reminders(deadline_seconds=deadline),
            timeout=deadline + DEADLINE_GRACE_SECONDS,
        )
    except asyncio.TimeoutError:
        error_msg = f"Reminder sweep exceeded {deadline + DEADLINE_GRACE_SECONDS}s and was cancelled"
        logger.error(error_msg)
        await db.rollback()
        return {
            "started_at": started_at,
            "processed": 0,
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "cancelled": 0,
            "deadline_reached": True,
            "errors": [{"reminder_id": None, "error": error_msg}],
            "completed_at": utc_now().isoformat(),
        }


def register_reminder_job(scheduler):
    """
    Register the uncollected order reminder job with APScheduler.

    Runs daily at REMINDER_JOB_HOUR:REMINDER_JOB_MINUTE in the scheduler timezone.
    """
    from cleanops.database import get_db_session

    async def job_wrapper():
        async with get_db_session() as db:
            results = await run_uncollected_reminders_job(db)
        if results["errors"]:
            logger.warning(f"Reminder sweep finished with {len(results['errors'])} errors")

    scheduler.add_job(
        job_wrapper,
        'cron',
        hour=settings.REMINDER_JOB_HOUR,
        minute=settings.REMINDER_JOB_MINUTE,
        id='uncollected_order_reminders',
        name='Daily uncollected order reminders',
        replace_existing=True,
    )

    logger.info(
        f"Reminder job registered to run daily at "
        f"{settings.REMINDER_JOB_HOUR:02d}:{settings.REMINDER_JOB_MINUTE:02d} ({settings.SCHEDULER_TIMEZONE})"
    )
