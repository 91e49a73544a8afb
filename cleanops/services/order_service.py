"""Order intake, status updates and delivery scheduling checks."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.core.enum_utils import get_enum_value
from cleanops.core.exceptions import ValidationError
from cleanops.core.time_utils import ensure_utc, utc_now
from cleanops.models.document_sequence import DocumentType
from cleanops.models.order import Order, OrderStatus, OrderStatusHistory
from cleanops.schemas.order import OrderCreate
from cleanops.services.classification_service import ClassificationService
from cleanops.services.document_sequence_service import DocumentSequenceService
from cleanops.services.lookups import as_uuid, get_branch, get_order
from cleanops.services.notification_service import NotificationService, build_status_notification
from cleanops.services.order_state import OrderState, apply_order_state, routing_for_status
from cleanops.services.reminder_service import AWAITING_COLLECTION_STATUSES, ReminderService
from cleanops.services.status_rules import requires_notification

logger = logging.getLogger(__name__)

# Entering these ends the collection wait
REMINDER_CANCEL_STATUSES = frozenset({
    OrderStatus.COLLECTED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.DISPOSED.value,
})

SCHEDULABLE_STATUSES = frozenset({
    OrderStatus.READY.value,
    OrderStatus.QUEUED_FOR_DELIVERY.value,
})


class OrderService:
    """Service for order intake and lifecycle updates."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService()

    async def create_order(self, data: OrderCreate, created_by: Optional[str] = None) -> Order:
        """Register a new order at a branch and auto-classify it."""
        branch = await get_branch(self.db, data.branch_id)
        if not branch.is_active:
            raise ValidationError(f"Branch {branch.code} is not active")

        sequence = DocumentSequenceService(self.db)
        order_number = await sequence.get_next_number(DocumentType.ORDER, branch.code)

        order = Order(
            order_number=order_number,
            branch_id=branch.id,
            status=OrderStatus.RECEIVED.value,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            garments=[g.model_dump() for g in data.garments],
            total_weight_kg=data.total_weight_kg,
            total_amount=data.total_amount,
            paid_amount=Decimal("0"),
            estimated_completion_at=data.estimated_completion_at,
        )
        ClassificationService(self.db).apply_auto_classification(order)
        self.db.add(order)
        await self.db.flush()

        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            to_status=order.status,
            changed_by=created_by,
            note="Order created",
        ))
        await self.db.commit()
        await self.db.refresh(order)

        logger.info(f"Created order {order.order_number} at branch {branch.code} ({order.return_method})")
        return order

    async def get_order(self, order_id) -> Order:
        return await get_order(self.db, order_id)

    async def list_orders(
        self,
        branch_id=None,
        status: Optional[str] = None,
        routing_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Order], int]:
        query = select(Order)
        count_query = select(func.count(Order.id))

        conditions = []
        if branch_id:
            conditions.append(Order.branch_id == as_uuid(branch_id, "branch_id"))
        if status:
            conditions.append(Order.status == get_enum_value(status))
        if routing_status:
            conditions.append(Order.routing_status == get_enum_value(routing_status))

        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def update_status(
        self,
        order_id,
        new_status,
        changed_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move an order to a new garment status.

        Routing status follows where the new status implies it. Entering a
        notification status sends the customer message after the commit.

        Raises:
            ConflictError: illegal transition
            NotFoundError: order does not exist
        """
        new_status = get_enum_value(new_status)
        if new_status not in {s.value for s in OrderStatus}:
            raise ValidationError(f"Invalid status '{new_status}'")

        order = await get_order(self.db, order_id, for_update=True)
        previous_status = order.status

        target = OrderState(
            status=new_status,
            routing_status=routing_for_status(new_status, order.routing_status),
        )
        history = apply_order_state(
            order, target, changed_by=changed_by, note=note, require_status_change=True,
        )
        self.db.add(history)

        now = utc_now()
        if new_status in SCHEDULABLE_STATUSES and order.actual_completion_at is None:
            order.actual_completion_at = now
        if new_status == OrderStatus.COLLECTED.value:
            order.collected_at = now
        elif new_status == OrderStatus.DELIVERED.value:
            order.delivered_at = now

        reminders = ReminderService(self.db, self.notifier)
        if new_status in AWAITING_COLLECTION_STATUSES:
            await reminders.schedule_order_reminders(order, now)
        elif new_status in REMINDER_CANCEL_STATUSES:
            await reminders.cancel_order_reminders(order.id)

        await self.db.commit()
        logger.info(f"Order {order.order_number}: {previous_status} -> {new_status}")

        notification = None
        if requires_notification(new_status):
            notification = await self.notify_status(order, new_status)

        return {
            "order": order,
            "previous_status": previous_status,
            "notification": notification,
        }

    async def notify_status(self, order: Order, status: str) -> Optional[Dict[str, Any]]:
        """Send the customer message for a notification status. Never raises on gateway failure."""
        request = build_status_notification(order, status)
        if request is None:
            return None
        result = await self.notifier.send_notification(request)
        if not result.get("success"):
            logger.warning(
                f"Status notification for order {order.order_number} failed: {result.get('error')}"
            )
        return result

    async def get_history(self, order_id) -> List[OrderStatusHistory]:
        order = await get_order(self.db, order_id)
        result = await self.db.execute(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order.id)
            .order_by(OrderStatusHistory.created_at)
        )
        return list(result.scalars().all())

    async def validate_delivery_schedule(self, order_id, scheduled_time: datetime) -> Dict[str, Any]:
        """
        Check a proposed delivery time against the sorting window.

        Returns:
            {"valid": bool, "error": str | None, "earliest_time": datetime | None}
        """
        order = await get_order(self.db, order_id)
        earliest = ensure_utc(order.earliest_delivery_at)

        if order.status not in SCHEDULABLE_STATUSES:
            return {
                "valid": False,
                "error": f"Order is not ready for delivery (status: {order.status})",
                "earliest_time": earliest,
            }

        if earliest and ensure_utc(scheduled_time) < earliest:
            return {
                "valid": False,
                "error": (
                    f"Delivery cannot be scheduled before {earliest.isoformat()} "
                    f"(sorting window not complete)"
                ),
                "earliest_time": earliest,
            }

        return {"valid": True, "error": None, "earliest_time": earliest}
