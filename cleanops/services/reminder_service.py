"""
Uncollected Order Reminders

Escalation tiers, measured from the day an order became ready:

    7_days -> 14_days -> 30_days -> monthly -> disposal_eligible

monthly does not end the sequence: it repeats every
REMINDER_MONTHLY_REPEAT_DAYS while that still falls before the disposal
reminder, and disposal_eligible is the terminal tier.

The sweep (process_due_reminders) treats every reminder independently:
a failure is recorded in the summary and the sweep moves on. Sends are
spaced by REMINDER_SEND_DELAY_MS for the messaging provider's rate limit
and the whole sweep stops at REMINDER_SWEEP_DEADLINE_SECONDS.
"""
import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.config import settings
from cleanops.core.time_utils import ensure_utc, utc_now
from cleanops.models.order import Order, OrderStatus, ReturnMethod
from cleanops.models.reminder import Reminder, ReminderStatus, ReminderType
from cleanops.services.lookups import get_order
from cleanops.services.notification_service import (
    NotificationChannel,
    NotificationRequest,
    NotificationService,
    NotificationTemplate,
)

logger = logging.getLogger(__name__)

T = ReminderType

REMINDER_SEQUENCE: List[str] = [
    T.SEVEN_DAYS.value,
    T.FOURTEEN_DAYS.value,
    T.THIRTY_DAYS.value,
    T.MONTHLY.value,
    T.DISPOSAL_ELIGIBLE.value,
]

# Days after the order became ready
REMINDER_INTERVAL_DAYS: Dict[str, int] = {
    T.SEVEN_DAYS.value: 7,
    T.FOURTEEN_DAYS.value: 14,
    T.THIRTY_DAYS.value: 30,
    T.MONTHLY.value: 60,
    T.DISPOSAL_ELIGIBLE.value: 90,
}

REMINDER_TEMPLATES: Dict[str, NotificationTemplate] = {
    T.SEVEN_DAYS.value: NotificationTemplate.UNCOLLECTED_7_DAY,
    T.FOURTEEN_DAYS.value: NotificationTemplate.UNCOLLECTED_14_DAY,
    T.THIRTY_DAYS.value: NotificationTemplate.UNCOLLECTED_30_DAY,
    T.MONTHLY.value: NotificationTemplate.UNCOLLECTED_MONTHLY,
    T.DISPOSAL_ELIGIBLE.value: NotificationTemplate.UNCOLLECTED_DISPOSAL,
}

REMINDER_MESSAGES: Dict[str, str] = {
    T.SEVEN_DAYS.value: (
        "Dear {customer_name}, your order {order_id} has been ready for pickup for "
        "{days_uncollected} days. Please collect it at your earliest convenience."
    ),
    T.FOURTEEN_DAYS.value: (
        "Reminder: Dear {customer_name}, your order {order_id} has been waiting for "
        "{days_uncollected} days. Please collect it soon to avoid storage charges. "
        "Contact us if you need assistance."
    ),
    T.THIRTY_DAYS.value: (
        "Final Notice: Dear {customer_name}, your order {order_id} has been uncollected for "
        "{days_uncollected} days. Please arrange collection within 7 days. Storage fees may apply."
    ),
    T.MONTHLY.value: (
        "Monthly Reminder: Dear {customer_name}, your order {order_id} remains uncollected for "
        "{days_uncollected} days. Please contact us to arrange collection or discuss options."
    ),
    T.DISPOSAL_ELIGIBLE.value: (
        "Important: Dear {customer_name}, your order {order_id} has been uncollected for "
        "{days_uncollected} days and is now eligible for disposal per our terms. "
        "Please contact us immediately."
    ),
}

URGENCY_TEXT: Dict[str, str] = {
    "urgent": "URGENT: Your items are eligible for disposal",
    "high": "Final Notice: Please collect your items",
    "normal": "Reminder: Your items are ready for collection",
}

# Reproduced verbatim in the notification payload
POLICY_WARNINGS: Dict[str, str] = {
    T.DISPOSAL_ELIGIBLE.value: (
        "Important Notice: Per our terms and conditions, uncollected items after 90 days "
        "may be disposed of. Please contact us immediately to arrange collection or "
        "discuss alternative options."
    ),
    T.THIRTY_DAYS.value: (
        "Storage Notice: Items uncollected beyond 30 days may incur additional storage "
        "charges. Please collect your items at your earliest convenience."
    ),
}

CLOSED_ORDER_STATUSES = frozenset({
    OrderStatus.COLLECTED.value,
    OrderStatus.DISPOSED.value,
    OrderStatus.CANCELLED.value,
})

# Statuses in which an order is waiting to be collected
AWAITING_COLLECTION_STATUSES = frozenset({
    OrderStatus.READY.value,
    OrderStatus.QUEUED_FOR_DELIVERY.value,
})

DEFAULT_CUSTOMER_NAME = "Valued Customer"


# =============================================================================
# PURE RULES
# =============================================================================

def get_next_reminder_type(reminder_type: str) -> Optional[str]:
    """Next tier, or None after disposal_eligible."""
    try:
        index = REMINDER_SEQUENCE.index(reminder_type)
    except ValueError:
        return None
    if index + 1 >= len(REMINDER_SEQUENCE):
        return None
    return REMINDER_SEQUENCE[index + 1]


def get_reminder_type_for_days(days: int) -> Optional[str]:
    """Highest tier whose threshold has elapsed, or None before 7 days."""
    due = None
    for reminder_type in REMINDER_SEQUENCE:
        if days >= REMINDER_INTERVAL_DAYS[reminder_type]:
            due = reminder_type
    return due


def get_ready_timestamp(order: Order) -> Optional[datetime]:
    return ensure_utc(
        order.actual_completion_at
        or order.sorting_completed_at
        or order.estimated_completion_at
    )


def days_uncollected(order: Order, now: Optional[datetime] = None) -> int:
    """Whole days since the order became ready. Never negative."""
    ready_at = get_ready_timestamp(order)
    if ready_at is None:
        return 0
    elapsed = ensure_utc(now or utc_now()) - ready_at
    return max(0, elapsed.days)


def skip_reason(order: Order, reminder: Reminder) -> Optional[str]:
    """Why a reminder must not be sent, or None when it should be."""
    if order.status in CLOSED_ORDER_STATUSES:
        return "Order already collected/disposed/cancelled"
    if order.return_method == ReturnMethod.DELIVERY_REQUIRED.value:
        return "Delivery order - no collection reminder needed"
    if reminder.status != ReminderStatus.PENDING.value:
        return f"Reminder status is {reminder.status}"
    if not (reminder.customer_phone or order.customer_phone):
        return "No customer phone number"
    return None


def should_send(order: Order, reminder: Reminder) -> bool:
    return skip_reason(order, reminder) is None


def get_urgency(reminder_type: str) -> str:
    if reminder_type == T.DISPOSAL_ELIGIBLE.value:
        return "urgent"
    if reminder_type == T.THIRTY_DAYS.value:
        return "high"
    return "normal"


def build_reminder_notification(
    order: Order,
    reminder: Reminder,
    now: Optional[datetime] = None,
) -> NotificationRequest:
    """Structured request for the messaging collaborator."""
    days = days_uncollected(order, now)
    params = {
        "customer_name": reminder.customer_name or order.customer_name or DEFAULT_CUSTOMER_NAME,
        "order_id": order.order_number,
        "days_uncollected": days,
    }
    urgency = get_urgency(reminder.reminder_type)
    warning = POLICY_WARNINGS.get(reminder.reminder_type)

    message = REMINDER_MESSAGES[reminder.reminder_type].format(**params)
    if warning:
        message = f"{message}\n\n{warning}"

    return NotificationRequest(
        order_id=order.order_number,
        recipient_phone=reminder.customer_phone or order.customer_phone,
        recipient_email=reminder.customer_email or order.customer_email,
        template=REMINDER_TEMPLATES[reminder.reminder_type],
        params=params,
        channel=NotificationChannel.WHATSAPP,
        message=message,
        metadata={
            "reminder_id": str(reminder.id),
            "reminder_type": reminder.reminder_type,
            # differs from reminder_type when a late sweep catches up
            "due_tier": get_reminder_type_for_days(days),
            "urgency": urgency,
            "urgency_text": URGENCY_TEXT[urgency],
            "warning": warning,
        },
    )


# =============================================================================
# SERVICE
# =============================================================================

class ReminderService:
    """Schedules, sends and tracks uncollected-order reminders."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService()

    async def schedule_order_reminders(
        self,
        order: Order,
        now: Optional[datetime] = None,
    ) -> List[Reminder]:
        """
        Create pending reminders for every tier the order does not have yet.

        Only for orders waiting to be collected. Does not commit.
        """
        if order.status not in AWAITING_COLLECTION_STATUSES:
            logger.debug(f"Order {order.order_number} not awaiting collection, no reminders")
            return []
        if order.return_method == ReturnMethod.DELIVERY_REQUIRED.value:
            logger.debug(f"Order {order.order_number} is a delivery order, no reminders")
            return []

        existing_result = await self.db.execute(
            select(Reminder.reminder_type).where(Reminder.order_id == order.id)
        )
        existing_types = set(existing_result.scalars().all())

        ready_at = get_ready_timestamp(order) or ensure_utc(now or utc_now())
        created = []
        for reminder_type in REMINDER_SEQUENCE:
            if reminder_type in existing_types:
                continue
            reminder = Reminder(
                order_id=order.id,
                reminder_type=reminder_type,
                status=ReminderStatus.PENDING.value,
                scheduled_for=ready_at + timedelta(days=REMINDER_INTERVAL_DAYS[reminder_type]),
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                customer_email=order.customer_email,
                retry_count=0,
            )
            self.db.add(reminder)
            created.append(reminder)

        if created:
            logger.info(f"Scheduled {len(created)} reminders for order {order.order_number}")
        return created

    async def schedule_for_order(self, order_id) -> List[Reminder]:
        order = await get_order(self.db, order_id)
        created = await self.schedule_order_reminders(order)
        await self.db.commit()
        return created

    async def _schedule_monthly_repeat(self, reminder: Reminder) -> Optional[Reminder]:
        next_at = ensure_utc(reminder.scheduled_for) + timedelta(days=settings.REMINDER_MONTHLY_REPEAT_DAYS)

        disposal_result = await self.db.execute(
            select(Reminder.scheduled_for).where(
                and_(
                    Reminder.order_id == reminder.order_id,
                    Reminder.reminder_type == T.DISPOSAL_ELIGIBLE.value,
                )
            )
        )
        disposal_at = disposal_result.scalars().first()
        if disposal_at is None or next_at >= ensure_utc(disposal_at):
            return None

        repeat = Reminder(
            order_id=reminder.order_id,
            reminder_type=T.MONTHLY.value,
            status=ReminderStatus.PENDING.value,
            scheduled_for=next_at,
            customer_name=reminder.customer_name,
            customer_phone=reminder.customer_phone,
            customer_email=reminder.customer_email,
            retry_count=0,
        )
        self.db.add(repeat)
        return repeat

    async def mark_sent(
        self,
        reminder: Reminder,
        notification_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        reminder.status = ReminderStatus.SENT.value
        reminder.sent_at = now or utc_now()
        reminder.notification_id = notification_id
        reminder.next_retry_at = None
        reminder.last_error = None
        if reminder.reminder_type == T.MONTHLY.value:
            await self._schedule_monthly_repeat(reminder)

    def mark_failed(self, reminder: Reminder, error: str, now: Optional[datetime] = None) -> None:
        """Schedule a retry, or fail permanently after REMINDER_MAX_RETRIES."""
        now = now or utc_now()
        reminder.retry_count = (reminder.retry_count or 0) + 1
        if reminder.retry_count >= settings.REMINDER_MAX_RETRIES:
            reminder.status = ReminderStatus.FAILED.value
            reminder.last_error = f"Max retries reached. Last error: {error}"
            reminder.next_retry_at = None
        else:
            reminder.last_error = error
            reminder.next_retry_at = now + timedelta(hours=settings.REMINDER_RETRY_DELAY_HOURS)

    async def cancel_order_reminders(self, order_id) -> int:
        """Cancel pending reminders of an order. Does not commit."""
        result = await self.db.execute(
            select(Reminder).where(
                and_(
                    Reminder.order_id == order_id,
                    Reminder.status == ReminderStatus.PENDING.value,
                )
            )
        )
        pending = result.scalars().all()
        for reminder in pending:
            reminder.status = ReminderStatus.CANCELLED.value
        return len(pending)

    async def cancel_for_order(self, order_id) -> int:
        order = await get_order(self.db, order_id)
        count = await self.cancel_order_reminders(order.id)
        await self.db.commit()
        logger.info(f"Cancelled {count} reminders for order {order.order_number}")
        return count

    async def get_order_reminders(self, order_id) -> List[Reminder]:
        order = await get_order(self.db, order_id)
        result = await self.db.execute(
            select(Reminder).where(Reminder.order_id == order.id).order_by(Reminder.scheduled_for)
        )
        return list(result.scalars().all())

    async def get_due_reminders(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[Reminder]:
        now = now or utc_now()
        result = await self.db.execute(
            select(Reminder)
            .where(
                and_(
                    Reminder.status == ReminderStatus.PENDING.value,
                    Reminder.scheduled_for <= now,
                    or_(Reminder.next_retry_at.is_(None), Reminder.next_retry_at <= now),
                )
            )
            .order_by(Reminder.scheduled_for)
            .limit(limit or settings.REMINDER_BATCH_SIZE)
        )
        return list(result.scalars().all())

    async def get_disposal_eligible_orders(self, now: Optional[datetime] = None) -> List[Order]:
        """Self-collect orders uncollected for the disposal threshold or longer."""
        result = await self.db.execute(
            select(Order).where(
                and_(
                    Order.status.in_(AWAITING_COLLECTION_STATUSES),
                    Order.return_method == ReturnMethod.CUSTOMER_COLLECTS.value,
                )
            )
        )
        threshold = REMINDER_INTERVAL_DAYS[T.DISPOSAL_ELIGIBLE.value]
        return [
            order for order in result.scalars().all()
            if days_uncollected(order, now) >= threshold
        ]

    async def get_reminder_stats(self) -> Dict[str, Any]:
        status_result = await self.db.execute(
            select(Reminder.status, func.count(Reminder.id)).group_by(Reminder.status)
        )
        by_status = {status: count for status, count in status_result.all()}

        type_result = await self.db.execute(
            select(Reminder.reminder_type, func.count(Reminder.id)).group_by(Reminder.reminder_type)
        )
        by_type = {reminder_type: 0 for reminder_type in REMINDER_SEQUENCE}
        by_type.update({reminder_type: count for reminder_type, count in type_result.all()})

        return {
            "total": sum(by_status.values()),
            "pending": by_status.get(ReminderStatus.PENDING.value, 0),
            "sent": by_status.get(ReminderStatus.SENT.value, 0),
            "failed": by_status.get(ReminderStatus.FAILED.value, 0),
            "cancelled": by_status.get(ReminderStatus.CANCELLED.value, 0),
            "by_type": by_type,
        }

    async def _process_one(self, reminder_id, now: datetime) -> str:
        reminder = await self.db.get(Reminder, reminder_id)
        if reminder is None or reminder.status != ReminderStatus.PENDING.value:
            return "skipped"

        order = await self.db.get(Order, reminder.order_id)
        if order is None:
            reminder.status = ReminderStatus.CANCELLED.value
            reminder.last_error = "Order not found"
            await self.db.commit()
            return "cancelled"

        reason = skip_reason(order, reminder)
        if reason:
            if reason == "No customer phone number":
                reminder.status = ReminderStatus.FAILED.value
                reminder.last_error = reason
                await self.db.commit()
                return "skipped"
            reminder.status = ReminderStatus.CANCELLED.value
            reminder.last_error = reason
            await self.db.commit()
            return "cancelled"

        request = build_reminder_notification(order, reminder, now)
        result = await self.notifier.send_notification(request)

        if result.get("success"):
            await self.mark_sent(reminder, result.get("notification_id"), now)
            outcome = "sent"
        else:
            self.mark_failed(reminder, result.get("error") or "Unknown messaging error", now)
            outcome = "failed"
        await self.db.commit()
        return outcome

    async def process_due_reminders(
        self,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
        send_delay_ms: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Send every due reminder, one at a time.

        Returns:
            Summary with counts per outcome and the collected errors
        """
        now = now or utc_now()
        delay = (settings.REMINDER_SEND_DELAY_MS if send_delay_ms is None else send_delay_ms) / 1000
        deadline = settings.REMINDER_SWEEP_DEADLINE_SECONDS if deadline_seconds is None else deadline_seconds
        started = time.monotonic()

        logger.info("Starting uncollected order reminder sweep...")
        results = {
            "started_at": utc_now().isoformat(),
            "processed": 0,
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "cancelled": 0,
            "deadline_reached": False,
            "errors": [],
        }

        due = await self.get_due_reminders(now, batch_size)
        reminder_ids = [reminder.id for reminder in due]

        for index, reminder_id in enumerate(reminder_ids):
            if time.monotonic() - started >= deadline:
                results["deadline_reached"] = True
                logger.warning(
                    f"Reminder sweep deadline reached after {index} of {len(reminder_ids)} reminders"
                )
                break

            try:
                outcome = await self._process_one(reminder_id, now)
                results[outcome] += 1
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Error processing reminder {reminder_id}: {e}")
                results["errors"].append({"reminder_id": str(reminder_id), "error": str(e)})
                outcome = "error"
            results["processed"] += 1

            if outcome in ("sent", "failed") and delay > 0 and index + 1 < len(reminder_ids):
                await asyncio.sleep(delay)

        results["completed_at"] = utc_now().isoformat()
        logger.info(
            f"Reminder sweep completed: {results['sent']} sent, {results['failed']} failed, "
            f"{results['cancelled']} cancelled, {len(results['errors'])} errors"
        )
        return results
