"""Tests for the routing engine."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from cleanops.core.exceptions import ConflictError, ValidationError
from cleanops.core.time_utils import ensure_utc
from cleanops.models.reminder import Reminder
from cleanops.services.order_service import OrderService
from cleanops.services.routing_service import RoutingService


async def _walk_to(service, order_service, order, stage):
    """Route an in-place order and move it through stages up to the given one."""
    await service.route_to_workstation(order.id)
    await order_service.update_status(order.id, "queued")
    path = ["washing", "drying", "ironing", "quality_check", "packaging"]
    for step in path[:path.index(stage) + 1]:
        await service.assign_to_stage(order.id, step)
        await service.mark_processing(order.id)
    return order


class TestRouteToWorkstation:

    async def test_satellite_order_needs_transfer(self, db, satellite, main_store, make_order):
        order = await make_order(satellite)

        await RoutingService(db).route_to_workstation(order.id)

        assert order.processing_branch_id == main_store.id
        assert order.routing_status == "pending"
        assert order.status == "received"
        assert order.routed_at is not None

    async def test_main_store_order_goes_to_inspection(self, db, main_store, make_order):
        order = await make_order(main_store)

        await RoutingService(db).route_to_workstation(order.id)

        assert order.processing_branch_id == main_store.id
        assert order.routing_status == "assigned"
        assert order.status == "inspection"
        assert order.assigned_workstation_stage == "inspection"

    async def test_routing_twice_is_a_conflict(self, db, main_store, make_order):
        order = await make_order(main_store)
        service = RoutingService(db)
        await service.route_to_workstation(order.id)
        with pytest.raises(ConflictError, match="already routed"):
            await service.route_to_workstation(order.id)


class TestMarkReceived:

    async def test_arrival_moves_to_inspection(self, db, satellite, main_store, make_order):
        order = await make_order(satellite)
        service = RoutingService(db)
        await service.route_to_workstation(order.id)

        await service.mark_received(order.id)

        assert order.routing_status == "received"
        assert order.status == "inspection"
        assert order.arrived_at_branch_at is not None
        assert order.received_at_main_store_at is not None

    async def test_not_awaiting_transfer(self, db, main_store, make_order):
        order = await make_order(main_store)
        service = RoutingService(db)
        await service.route_to_workstation(order.id)
        with pytest.raises(ConflictError, match="not awaiting transfer"):
            await service.mark_received(order.id)


class TestStageAssignment:

    async def test_assign_and_process_advances_status(self, db, main_store, make_order, workstation_staff, notifier):
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        await service.route_to_workstation(order.id)
        await OrderService(db, notifier).update_status(order.id, "queued")

        await service.assign_to_stage(order.id, "washing", staff_id=workstation_staff[0].id)
        assert order.routing_status == "assigned"
        assert order.assigned_workstation_stage == "washing"
        assert order.assigned_staff_id == workstation_staff[0].id
        assert order.status == "queued"

        await service.mark_processing(order.id)
        assert order.routing_status == "processing"
        assert order.status == "washing"
        assert order.processing_started_at is not None

    async def test_unreachable_stage_rejected(self, db, main_store, make_order):
        order = await make_order(main_store)
        service = RoutingService(db)
        await service.route_to_workstation(order.id)

        with pytest.raises(ConflictError, match="Cannot assign order in 'inspection' to stage 'ironing'"):
            await service.assign_to_stage(order.id, "ironing")
        assert order.assigned_workstation_stage == "inspection"

    async def test_unknown_stage_rejected(self, db, main_store, make_order):
        order = await make_order(main_store)
        with pytest.raises(ValidationError, match="Invalid stage"):
            await RoutingService(db).assign_to_stage(order.id, "folding")

    async def test_processing_requires_assignment(self, db, satellite, make_order):
        order = await make_order(satellite)
        service = RoutingService(db)
        await service.route_to_workstation(order.id)
        with pytest.raises(ConflictError, match="must be assigned"):
            await service.mark_processing(order.id)

    async def test_auto_assign_picks_least_loaded_staff(self, db, main_store, make_order, workstation_staff, notifier):
        busy = await make_order(main_store)
        service = RoutingService(db, notifier)
        await service.route_to_workstation(busy.id)
        await service.assign_to_stage(busy.id, "inspection", staff_id=workstation_staff[0].id)

        order = await make_order(main_store)
        await service.route_to_workstation(order.id)
        await service.auto_assign_to_stage(order.id, "inspection")

        assert order.assigned_staff_id == workstation_staff[1].id


class TestCompleteProcessing:

    async def test_sorting_window_from_branch(self, db, main_store, make_order, notifier):
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        order_service = OrderService(db, notifier)
        await _walk_to(service, order_service, order, "packaging")

        now = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)
        await service.complete_processing(order.id, now=now)

        assert order.status == "queued_for_delivery"
        assert order.routing_status == "ready_for_return"
        assert ensure_utc(order.earliest_delivery_at) == now + timedelta(hours=4)
        assert order.assigned_workstation_stage is None

    async def test_default_sorting_window_is_six_hours(self, db, main_store, make_order, notifier):
        main_store.sorting_window_hours = None
        await db.commit()
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        await _walk_to(service, OrderService(db, notifier), order, "packaging")

        now = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)
        await service.complete_processing(order.id, now=now)

        assert ensure_utc(order.earliest_delivery_at) == now + timedelta(hours=6)

    async def test_completion_notifies_and_schedules_reminders(self, db, main_store, make_order, notifier):
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        await _walk_to(service, OrderService(db, notifier), order, "packaging")

        await service.complete_processing(order.id)

        assert [r.template.value for r in notifier.sent] == ["order_ready"]
        reminders = (await db.execute(select(Reminder).where(Reminder.order_id == order.id))).scalars().all()
        assert sorted(r.reminder_type for r in reminders) == sorted(
            ["7_days", "14_days", "30_days", "monthly", "disposal_eligible"]
        )

    async def test_cannot_complete_from_washing(self, db, main_store, make_order, notifier):
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        await _walk_to(service, OrderService(db, notifier), order, "washing")

        with pytest.raises(ConflictError):
            await service.complete_processing(order.id)
        assert order.status == "washing"
        assert order.routing_status == "processing"


class TestRouteOrderDispatch:

    async def test_unknown_action(self, db, main_store, make_order):
        order = await make_order(main_store)
        with pytest.raises(ValidationError, match="Invalid action. Use: route_to_workstation"):
            await RoutingService(db).route_order(order.id, "teleport")

    async def test_assign_without_stage(self, db, main_store, make_order):
        order = await make_order(main_store)
        with pytest.raises(ValidationError, match="Stage is required"):
            await RoutingService(db).route_order(order.id, "assign_to_stage")

    async def test_dispatches_by_name(self, db, main_store, make_order):
        order = await make_order(main_store)
        await RoutingService(db).route_order(order.id, "route_to_workstation")
        assert order.routing_status == "assigned"


class TestRoutingMetrics:

    async def test_metrics_snapshot(self, db, main_store, satellite, make_order, notifier):
        service = RoutingService(db, notifier)

        transfer = await make_order(satellite)
        await service.route_to_workstation(transfer.id)

        in_place = await make_order(main_store)
        await service.route_to_workstation(in_place.id)

        done = await make_order(main_store)
        await _walk_to(service, OrderService(db, notifier), done, "packaging")
        await service.complete_processing(done.id)

        metrics = await service.get_routing_metrics(main_store.id)

        assert metrics["pending_routing"] == 1
        assert metrics["in_transit"] == 0
        assert metrics["queue_by_stage"]["inspection"] == 1
        assert metrics["queue_by_stage"]["washing"] == 0
        assert metrics["ready_for_return"] == 1
        assert metrics["total_in_process"] == 1


class TestRepeatedStateChanges:

    async def test_completing_twice_is_rejected(self, db, main_store, make_order, notifier):
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        await _walk_to(service, OrderService(db, notifier), order, "packaging")

        first = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)
        await service.complete_processing(order.id, now=first)

        with pytest.raises(ConflictError, match="already in 'queued_for_delivery'"):
            await service.complete_processing(order.id, now=first + timedelta(days=3))

        assert ensure_utc(order.earliest_delivery_at) == first + timedelta(hours=4)
        assert ensure_utc(order.sorting_completed_at) == first
        assert [r.template.value for r in notifier.sent] == ["order_ready"]

    async def test_same_status_update_is_rejected(self, db, main_store, make_order, notifier):
        order = await make_order(main_store)
        service = RoutingService(db, notifier)
        order_service = OrderService(db, notifier)
        await _walk_to(service, order_service, order, "packaging")
        await service.complete_processing(order.id)
        await order_service.update_status(order.id, "out_for_delivery")
        await order_service.update_status(order.id, "delivered")
        delivered_at = order.delivered_at
        sent = len(notifier.sent)

        with pytest.raises(ConflictError, match="already in 'delivered'"):
            await order_service.update_status(order.id, "delivered")

        assert order.delivered_at == delivered_at
        assert len(notifier.sent) == sent
        history = await order_service.get_history(order.id)
        assert [h.to_status for h in history].count("delivered") == 1
