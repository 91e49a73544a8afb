"""Tests for processing batches and their all-or-nothing member updates."""

import pytest
from sqlalchemy import select

from cleanops.config import settings
from cleanops.core.exceptions import AtomicityError, ConflictError, ValidationError
from cleanops.core.time_utils import day_key, utc_now
from cleanops.models.order import Order, OrderStatusHistory
from cleanops.models.processing_batch import ProcessingBatch
from cleanops.services.order_service import OrderService
from cleanops.services.processing_batch_service import ProcessingBatchService
from cleanops.services.routing_service import RoutingService


@pytest.fixture
def queued_orders(db, main_store, make_order, notifier):
    """Factory: n main-store orders routed and queued for washing."""
    async def _make(n=3):
        orders = []
        for _ in range(n):
            order = await make_order(main_store)
            await RoutingService(db, notifier).route_to_workstation(order.id)
            await OrderService(db, notifier).update_status(order.id, "queued")
            orders.append(order)
        return orders

    return _make


async def _reload(db, order_ids):
    result = await db.execute(
        select(Order)
        .where(Order.id.in_(order_ids))
        .execution_options(populate_existing=True)
    )
    return {o.id: o for o in result.scalars().all()}


class TestCreateBatch:

    async def test_create(self, db, main_store, workstation_staff, queued_orders):
        orders = await queued_orders(2)
        order_ids = [o.id for o in orders]
        batch = await ProcessingBatchService(db).create_batch(
            "washing", main_store.id, order_ids, [workstation_staff[0].id], created_by="sup-1",
        )

        assert batch.status == "pending"
        assert batch.batch_number == f"PROC-WASHING-{day_key(utc_now())}-0001"
        assert batch.order_ids == [str(o.id) for o in orders]
        assert all(o.processing_batch_id == batch.id for o in orders)

    async def test_order_in_open_batch_rejected(self, db, main_store, workstation_staff, queued_orders):
        orders = await queued_orders(1)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        await service.create_batch("washing", main_store.id, order_ids, [workstation_staff[0].id])

        with pytest.raises(ConflictError, match="already belongs to batch"):
            await service.create_batch("washing", main_store.id, order_ids, [workstation_staff[1].id])

    async def test_staff_required(self, db, main_store, queued_orders):
        orders = await queued_orders(1)
        order_ids = [o.id for o in orders]
        with pytest.raises(ValidationError, match="at least one staff"):
            await ProcessingBatchService(db).create_batch("washing", main_store.id, order_ids, [])

    async def test_order_that_cannot_enter_stage(self, db, main_store, workstation_staff, queued_orders):
        orders = await queued_orders(1)
        order_ids = [o.id for o in orders]
        with pytest.raises(ConflictError):
            await ProcessingBatchService(db).create_batch(
                "drying", main_store.id, order_ids, [workstation_staff[0].id],
            )


class TestStartAndComplete:

    async def test_full_cycle(self, db, main_store, workstation_staff, queued_orders):
        orders = await queued_orders(3)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        batch = await service.create_batch(
            "washing", main_store.id, order_ids, [workstation_staff[0].id],
        )

        batch = await service.start_batch(batch.id, changed_by="sup-1")
        assert batch.status == "in_progress"
        assert batch.started_at is not None
        for order in (await _reload(db, order_ids)).values():
            assert (order.status, order.routing_status) == ("washing", "processing")
            assert order.assigned_workstation_stage == "washing"

        batch = await service.complete_batch(batch.id)
        assert batch.status == "completed"
        for order in (await _reload(db, order_ids)).values():
            assert (order.status, order.routing_status) == ("drying", "assigned")
            assert order.processing_batch_id is None

        history = (await db.execute(
            select(OrderStatusHistory).where(OrderStatusHistory.order_id == orders[0].id)
        )).scalars().all()
        assert [h.to_status for h in history][-2:] == ["washing", "drying"]

    async def test_complete_requires_start(self, db, main_store, workstation_staff, queued_orders):
        orders = await queued_orders(1)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        batch = await service.create_batch("washing", main_store.id, order_ids, [workstation_staff[0].id])
        with pytest.raises(ConflictError, match="cannot be completed"):
            await service.complete_batch(batch.id)

    async def test_illegal_member_blocks_whole_batch(self, db, main_store, workstation_staff, queued_orders, notifier):
        orders = await queued_orders(3)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        batch = await service.create_batch(
            "washing", main_store.id, order_ids, [workstation_staff[0].id],
        )
        await OrderService(db, notifier).update_status(orders[1].id, "cancelled")

        with pytest.raises(ConflictError):
            await service.start_batch(batch.id)

        reloaded = await _reload(db, order_ids)
        assert reloaded[order_ids[0]].status == "queued"
        assert reloaded[order_ids[2]].status == "queued"
        batch = await db.get(ProcessingBatch, batch.id, populate_existing=True)
        assert batch.status == "pending"

    async def test_short_chunk_write_rolls_everything_back(
        self, db, main_store, workstation_staff, queued_orders, monkeypatch,
    ):
        orders = await queued_orders(3)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        batch = await service.create_batch(
            "washing", main_store.id, order_ids, [workstation_staff[0].id],
        )
        batch_id = batch.id

        monkeypatch.setattr(settings, "BATCH_MAX_WRITE_SIZE", 1)
        original = ProcessingBatchService._update_members
        calls = []

        async def flaky_update(self, batch_id, chunk, expected_statuses, values):
            calls.append(chunk)
            if len(calls) == 2:
                return 0
            return await original(self, batch_id, chunk, expected_statuses, values)

        monkeypatch.setattr(ProcessingBatchService, "_update_members", flaky_update)

        with pytest.raises(AtomicityError, match="rolled back"):
            await service.start_batch(batch_id)

        assert len(calls) == 2
        for order in (await _reload(db, order_ids)).values():
            assert (order.status, order.routing_status) == ("queued", "assigned")
        batch = await db.get(ProcessingBatch, batch_id, populate_existing=True)
        assert batch.status == "pending"
        assert batch.started_at is None

    async def test_database_error_surfaces_as_atomicity_error(
        self, db, main_store, workstation_staff, queued_orders, monkeypatch,
    ):
        orders = await queued_orders(2)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        batch = await service.create_batch(
            "washing", main_store.id, order_ids, [workstation_staff[0].id],
        )

        async def broken_update(self, *args, **kwargs):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(ProcessingBatchService, "_update_members", broken_update)

        with pytest.raises(AtomicityError, match="connection reset"):
            await service.start_batch(batch.id)


class TestBatchStaff:

    async def test_add_and_remove(self, db, main_store, workstation_staff, queued_orders):
        orders = await queued_orders(1)
        order_ids = [o.id for o in orders]
        service = ProcessingBatchService(db)
        batch = await service.create_batch("washing", main_store.id, order_ids, [workstation_staff[0].id])

        batch = await service.add_staff(batch.id, workstation_staff[1].id)
        assert batch.staff_ids == [str(workstation_staff[0].id), str(workstation_staff[1].id)]

        active = await service.list_active_batches(staff_id=workstation_staff[1].id)
        assert [b.id for b in active] == [batch.id]

        batch = await service.remove_staff(batch.id, workstation_staff[0].id)
        assert batch.staff_ids == [str(workstation_staff[1].id)]

        with pytest.raises(ValidationError, match="at least one staff"):
            await service.remove_staff(batch.id, workstation_staff[1].id)
