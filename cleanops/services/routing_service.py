"""
Order Routing Engine

Decides where an order is processed and moves it between workstations.

Satellite branches with a main store send their orders there: routing
starts as pending (transfer required) and the garment status waits at
received until the order arrives. Everything else is processed in place
and goes straight to inspection.

Every mutation goes through apply_order_state so the garment status and
routing status change in one row update, and stage assignments are
checked against the status transition table.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.config import settings
from cleanops.core.enum_utils import get_enum_value
from cleanops.core.exceptions import ConflictError, ValidationError
from cleanops.core.time_utils import utc_now
from cleanops.models.branch import Staff, StaffRole
from cleanops.models.order import (
    Order,
    OrderStatus,
    RoutingStatus,
    WorkstationStage,
)
from cleanops.schemas.routing import RoutingAction
from cleanops.services.lookups import as_uuid, find_branch, get_branch, get_order, get_staff
from cleanops.services.notification_service import NotificationService, build_status_notification
from cleanops.services.order_state import OrderState, apply_order_state
from cleanops.services.reminder_service import ReminderService
from cleanops.services.status_rules import (
    RETURN_STATUSES,
    can_transition_to,
    get_valid_next_statuses,
    requires_notification,
)

logger = logging.getLogger(__name__)

WORKSTATION_STAGES = [stage.value for stage in WorkstationStage]

# Routing statuses of orders sitting in a workstation queue
IN_PROCESS_ROUTING = (RoutingStatus.ASSIGNED.value, RoutingStatus.PROCESSING.value)


class RoutingService:
    """Routes orders to processing branches and workstation stages."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService()

    # =========================================================================
    # ACTIONS
    # =========================================================================

    async def route_order(
        self,
        order_id,
        action: str,
        stage: Optional[str] = None,
        staff_id=None,
        changed_by: Optional[str] = None,
    ) -> Order:
        """Dispatch one of the routing actions by name."""
        valid_actions = [a.value for a in RoutingAction]
        action = get_enum_value(action)
        if action not in valid_actions:
            raise ValidationError(f"Invalid action. Use: {', '.join(valid_actions)}")

        if action == RoutingAction.ROUTE_TO_WORKSTATION.value:
            return await self.route_to_workstation(order_id, changed_by=changed_by)
        if action == RoutingAction.MARK_RECEIVED.value:
            return await self.mark_received(order_id, changed_by=changed_by)
        if action == RoutingAction.ASSIGN_TO_STAGE.value:
            if not stage:
                raise ValidationError("Stage is required for assign_to_stage action")
            return await self.assign_to_stage(order_id, stage, staff_id=staff_id, changed_by=changed_by)
        if action == RoutingAction.MARK_PROCESSING.value:
            return await self.mark_processing(order_id, staff_id=staff_id, changed_by=changed_by)
        return await self.complete_processing(order_id, changed_by=changed_by)

    async def route_to_workstation(self, order_id, changed_by: Optional[str] = None) -> Order:
        """
        Pick the processing branch for a new order.

        Raises:
            ConflictError: order already routed
        """
        order = await get_order(self.db, order_id)
        if order.routing_status is not None:
            raise ConflictError(
                f"Order {order.order_number} is already routed (routing status: {order.routing_status})"
            )

        branch = await get_branch(self.db, order.branch_id)
        needs_transfer = branch.is_satellite and branch.main_store_id is not None
        if branch.is_satellite and branch.main_store_id is None:
            logger.warning(f"Satellite branch {branch.code} has no main store, processing in place")

        now = utc_now()
        if needs_transfer:
            target = OrderState(order.status, RoutingStatus.PENDING.value)
            processing_branch_id = branch.main_store_id
        else:
            status = order.status
            if status == OrderStatus.RECEIVED.value:
                status = OrderStatus.INSPECTION.value
                order.assigned_workstation_stage = WorkstationStage.INSPECTION.value
            target = OrderState(status, RoutingStatus.ASSIGNED.value)
            processing_branch_id = branch.id
            order.arrived_at_branch_at = now

        history = apply_order_state(order, target, changed_by=changed_by, note="Routed")
        if history is not None:
            self.db.add(history)
        order.processing_branch_id = processing_branch_id
        order.routed_at = now

        await self.db.commit()
        logger.info(
            f"Order {order.order_number} routed to branch {processing_branch_id} "
            f"({'transfer required' if needs_transfer else 'in place'})"
        )
        return order

    async def mark_received(self, order_id, changed_by: Optional[str] = None) -> Order:
        """Order arrived at its processing branch; it goes to inspection."""
        order = await get_order(self.db, order_id)
        if order.routing_status not in (RoutingStatus.PENDING.value, RoutingStatus.IN_TRANSIT.value):
            raise ConflictError(
                f"Order {order.order_number} is not awaiting transfer "
                f"(routing status: {order.routing_status})"
            )

        history = apply_order_state(
            order,
            OrderState(OrderStatus.INSPECTION.value, RoutingStatus.RECEIVED.value),
            changed_by=changed_by,
            note="Received at processing branch",
        )
        if history is not None:
            self.db.add(history)

        now = utc_now()
        order.arrived_at_branch_at = now
        if order.processing_branch_id and order.processing_branch_id != order.branch_id:
            order.received_at_main_store_at = now
        order.assigned_workstation_stage = WorkstationStage.INSPECTION.value

        await self.db.commit()
        logger.info(f"Order {order.order_number} received at processing branch")
        return order

    def _validate_stage(self, order: Order, stage: str) -> str:
        stage = get_enum_value(stage)
        if stage not in WORKSTATION_STAGES:
            raise ValidationError(
                f"Invalid stage '{stage}'. Valid stages: {', '.join(WORKSTATION_STAGES)}"
            )
        if stage != order.status and not can_transition_to(order.status, stage):
            allowed = [s for s in get_valid_next_statuses(order.status) if s in WORKSTATION_STAGES]
            if order.status in WORKSTATION_STAGES:
                allowed.insert(0, order.status)
            raise ConflictError(
                f"Cannot assign order in '{order.status}' to stage '{stage}'. "
                f"Allowed stages: {', '.join(allowed) or 'none'}",
                {"current_status": order.status, "requested_stage": stage, "allowed": allowed},
            )
        return stage

    async def _validate_staff(self, order: Order, staff_id) -> Staff:
        staff = await get_staff(self.db, staff_id)
        if not staff.is_active:
            raise ValidationError(f"Staff member {staff.name} is not active")
        if staff.branch_id not in (order.processing_branch_id, order.branch_id):
            raise ValidationError(f"Staff member {staff.name} does not work at the order's processing branch")
        return staff

    async def assign_to_stage(
        self,
        order_id,
        stage: str,
        staff_id=None,
        changed_by: Optional[str] = None,
    ) -> Order:
        """
        Queue an order at a workstation.

        The stage must be the order's current status or a legal next status.

        Raises:
            ValidationError: unknown stage or staff
            ConflictError: stage is not reachable from the current status
        """
        order = await get_order(self.db, order_id)
        stage = self._validate_stage(order, stage)
        staff = await self._validate_staff(order, staff_id) if staff_id else None

        history = apply_order_state(
            order,
            OrderState(order.status, RoutingStatus.ASSIGNED.value),
            changed_by=changed_by,
            note=f"Assigned to {stage}",
        )
        if history is not None:
            self.db.add(history)
        order.assigned_workstation_stage = stage
        if staff:
            order.assigned_staff_id = staff.id

        await self.db.commit()
        logger.info(f"Order {order.order_number} assigned to stage {stage}")
        return order

    async def mark_processing(self, order_id, staff_id=None, changed_by: Optional[str] = None) -> Order:
        """Work started at the assigned stage; the garment status moves to that stage."""
        order = await get_order(self.db, order_id)
        if order.routing_status != RoutingStatus.ASSIGNED.value:
            raise ConflictError(
                f"Order {order.order_number} must be assigned to a stage before processing "
                f"(routing status: {order.routing_status})"
            )
        staff = await self._validate_staff(order, staff_id) if staff_id else None

        status = order.status
        stage = order.assigned_workstation_stage
        if stage and stage != status:
            status = stage

        history = apply_order_state(
            order,
            OrderState(status, RoutingStatus.PROCESSING.value),
            changed_by=changed_by,
            note=f"Processing at {stage or status}",
        )
        if history is not None:
            self.db.add(history)
        order.processing_started_at = utc_now()
        if staff:
            order.assigned_staff_id = staff.id

        await self.db.commit()
        logger.info(f"Order {order.order_number} processing at {status}")
        return order

    async def _sorting_window_hours(self, order: Order) -> int:
        branch = await find_branch(self.db, order.processing_branch_id or order.branch_id)
        if branch is None or branch.sorting_window_hours is None:
            return settings.DEFAULT_SORTING_WINDOW_HOURS
        return branch.sorting_window_hours

    async def complete_processing(
        self,
        order_id,
        changed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Processing finished: queue the order for return and compute the
        earliest delivery time from the branch sorting window.
        """
        order = await get_order(self.db, order_id, for_update=True)
        now = now or utc_now()

        history = apply_order_state(
            order,
            OrderState(OrderStatus.QUEUED_FOR_DELIVERY.value, RoutingStatus.READY_FOR_RETURN.value),
            changed_by=changed_by,
            note="Processing complete",
            require_status_change=True,
        )
        self.db.add(history)

        hours = await self._sorting_window_hours(order)
        order.sorting_completed_at = now
        order.earliest_delivery_at = now + timedelta(hours=hours)
        if order.actual_completion_at is None:
            order.actual_completion_at = now
        order.assigned_workstation_stage = None
        order.assigned_staff_id = None

        await ReminderService(self.db, self.notifier).schedule_order_reminders(order, now)
        await self.db.commit()
        logger.info(
            f"Order {order.order_number} ready for return, earliest delivery "
            f"{order.earliest_delivery_at.isoformat()}"
        )

        if requires_notification(order.status):
            request = build_status_notification(order, order.status)
            if request is not None:
                result = await self.notifier.send_notification(request)
                if not result.get("success"):
                    logger.warning(f"Ready notification for order {order.order_number} failed: {result.get('error')}")
        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_pending_routing(self, branch_id) -> List[Order]:
        branch_uuid = as_uuid(branch_id, "branch_id")
        result = await self.db.execute(
            select(Order).where(
                and_(
                    Order.branch_id == branch_uuid,
                    Order.routing_status == RoutingStatus.PENDING.value,
                )
            ).order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def get_in_transit_to(self, branch_id) -> List[Order]:
        branch_uuid = as_uuid(branch_id, "branch_id")
        result = await self.db.execute(
            select(Order).where(
                and_(
                    Order.processing_branch_id == branch_uuid,
                    Order.routing_status == RoutingStatus.IN_TRANSIT.value,
                )
            ).order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def get_orders_at_stage(self, branch_id, stage: str) -> List[Order]:
        branch_uuid = as_uuid(branch_id, "branch_id")
        result = await self.db.execute(
            select(Order).where(
                and_(
                    Order.processing_branch_id == branch_uuid,
                    Order.assigned_workstation_stage == get_enum_value(stage),
                    Order.routing_status.in_(IN_PROCESS_ROUTING),
                )
            ).order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def get_orders_for_staff(self, staff_id) -> List[Order]:
        staff_uuid = as_uuid(staff_id, "staff_id")
        result = await self.db.execute(
            select(Order).where(
                and_(
                    Order.assigned_staff_id == staff_uuid,
                    Order.routing_status.in_(IN_PROCESS_ROUTING),
                )
            ).order_by(Order.created_at)
        )
        return list(result.scalars().all())

    async def get_ready_for_return(self, branch_id) -> List[Order]:
        branch_uuid = as_uuid(branch_id, "branch_id")
        result = await self.db.execute(
            select(Order).where(
                and_(
                    Order.processing_branch_id == branch_uuid,
                    Order.routing_status == RoutingStatus.READY_FOR_RETURN.value,
                    Order.status.in_(RETURN_STATUSES),
                )
            ).order_by(Order.earliest_delivery_at)
        )
        return list(result.scalars().all())

    async def get_workstation_queue_depth(self, branch_id) -> Dict[str, int]:
        branch_uuid = as_uuid(branch_id, "branch_id")
        result = await self.db.execute(
            select(Order.assigned_workstation_stage, func.count(Order.id))
            .where(
                and_(
                    Order.processing_branch_id == branch_uuid,
                    Order.routing_status.in_(IN_PROCESS_ROUTING),
                    Order.assigned_workstation_stage.is_not(None),
                )
            )
            .group_by(Order.assigned_workstation_stage)
        )
        depth = {stage: 0 for stage in WORKSTATION_STAGES}
        for stage, count in result.all():
            if stage in depth:
                depth[stage] = count
        return depth

    async def _count(self, *conditions) -> int:
        result = await self.db.execute(select(func.count(Order.id)).where(and_(*conditions)))
        return result.scalar() or 0

    async def get_routing_metrics(self, branch_id) -> Dict[str, Any]:
        """Read-only routing snapshot for a branch."""
        branch_uuid = as_uuid(branch_id, "branch_id")
        touches_branch = or_(Order.branch_id == branch_uuid, Order.processing_branch_id == branch_uuid)

        queue_by_stage = await self.get_workstation_queue_depth(branch_uuid)
        pending = await self._count(touches_branch, Order.routing_status == RoutingStatus.PENDING.value)
        in_transit = await self._count(touches_branch, Order.routing_status == RoutingStatus.IN_TRANSIT.value)
        ready = await self._count(
            Order.processing_branch_id == branch_uuid,
            Order.routing_status == RoutingStatus.READY_FOR_RETURN.value,
            Order.status.in_(RETURN_STATUSES),
        )

        return {
            "branch_id": str(branch_uuid),
            "pending_routing": pending,
            "in_transit": in_transit,
            "queue_by_stage": queue_by_stage,
            "ready_for_return": ready,
            "total_in_process": sum(queue_by_stage.values()),
        }

    # =========================================================================
    # STAFF
    # =========================================================================

    async def find_available_staff_for_stage(self, branch_id) -> Optional[Staff]:
        """Active workstation staff member with the fewest in-process orders."""
        branch_uuid = as_uuid(branch_id, "branch_id")
        staff_result = await self.db.execute(
            select(Staff).where(
                and_(
                    Staff.branch_id == branch_uuid,
                    Staff.role == StaffRole.WORKSTATION.value,
                    Staff.is_active == True,  # noqa: E712
                )
            ).order_by(Staff.created_at, Staff.name)
        )
        candidates = list(staff_result.scalars().all())
        if not candidates:
            return None

        load_result = await self.db.execute(
            select(Order.assigned_staff_id, func.count(Order.id))
            .where(
                and_(
                    Order.assigned_staff_id.in_([s.id for s in candidates]),
                    Order.routing_status.in_(IN_PROCESS_ROUTING),
                )
            )
            .group_by(Order.assigned_staff_id)
        )
        load = {staff_id: count for staff_id, count in load_result.all()}

        best = candidates[0]
        for candidate in candidates[1:]:
            if load.get(candidate.id, 0) < load.get(best.id, 0):
                best = candidate
        return best

    async def auto_assign_to_stage(self, order_id, stage: str, changed_by: Optional[str] = None) -> Order:
        """assign_to_stage with the least loaded workstation staff member, if any."""
        order = await get_order(self.db, order_id)
        staff = await self.find_available_staff_for_stage(order.processing_branch_id or order.branch_id)
        if staff is None:
            logger.info(f"No workstation staff available for order {order.order_number}, assigning stage only")
        return await self.assign_to_stage(
            order.id,
            stage,
            staff_id=staff.id if staff else None,
            changed_by=changed_by,
        )
