"""Tests for driver scoring, transfer batches and the driver claim."""

import uuid

import pytest
from sqlalchemy import select

from cleanops.core.exceptions import ConflictError, ValidationError
from cleanops.models.branch import Branch, BranchType, Staff, StaffRole
from cleanops.models.order import Order
from cleanops.models.transfer_batch import TransferBatch
from cleanops.services.driver_assignment import (
    DriverAssignmentService,
    DriverCandidate,
    select_driver,
)
from cleanops.services.routing_service import RoutingService
from cleanops.services.transfer_service import TransferService


class TestSelectDriver:

    def test_empty_candidates(self):
        assert select_driver([]) is None

    def test_lowest_load_wins(self):
        busy, idle = uuid.uuid4(), uuid.uuid4()
        assert select_driver([DriverCandidate(busy, 2), DriverCandidate(idle, 0)]) == idle

    def test_tie_goes_to_first_candidate(self):
        first, second = uuid.uuid4(), uuid.uuid4()
        assert select_driver([DriverCandidate(first, 1), DriverCandidate(second, 1)]) == first

    def test_weight_scales_uniformly(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert select_driver([DriverCandidate(a, 3), DriverCandidate(b, 1)], load_weight=2.5) == b


class TestAssignDriver:

    async def test_no_drivers_returns_none(self, db, satellite, main_store):
        assert await DriverAssignmentService(db).assign_driver(satellite.id, main_store.id) is None

    async def test_drivers_from_other_branches_ignored(self, db, satellite, main_store):
        db.add(Staff(name="Main Driver", role=StaffRole.DRIVER.value, branch_id=main_store.id))
        await db.commit()
        assert await DriverAssignmentService(db).assign_driver(satellite.id, main_store.id) is None

    async def test_idle_driver_selected(self, db, satellite, main_store, drivers):
        for _ in range(2):
            db.add(TransferBatch(
                batch_number=f"TRF-TEST-{uuid.uuid4().hex[:8]}",
                satellite_branch_id=satellite.id,
                main_store_id=main_store.id,
                order_ids=[],
                status="in_transit",
                assigned_driver_id=drivers[0].id,
            ))
        db.add(TransferBatch(
            batch_number="TRF-TEST-DONE",
            satellite_branch_id=satellite.id,
            main_store_id=main_store.id,
            order_ids=[],
            status="received",
            assigned_driver_id=drivers[1].id,
        ))
        await db.commit()

        assert await DriverAssignmentService(db).assign_driver(satellite.id, main_store.id) == drivers[1].id


@pytest.fixture
def pending_orders(db, satellite, make_order):
    async def _make(n=2):
        orders = []
        for _ in range(n):
            order = await make_order(satellite)
            await RoutingService(db).route_to_workstation(order.id)
            orders.append(order)
        return orders

    return _make


async def _reload(db, orders):
    result = await db.execute(
        select(Order)
        .where(Order.id.in_([o.id for o in orders]))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestTransferBatches:

    async def test_create_requires_pending_orders(self, db, satellite, main_store, make_order):
        order = await make_order(satellite)
        with pytest.raises(ConflictError, match="not awaiting transfer"):
            await TransferService(db).create_transfer_batch(satellite.id, [order.id])

    async def test_main_store_cannot_send_transfers(self, db, main_store, pending_orders):
        orders = await pending_orders(1)
        with pytest.raises(ValidationError, match="not a satellite"):
            await TransferService(db).create_transfer_batch(main_store.id, [orders[0].id])

    async def test_claim_is_exclusive(self, db, satellite, drivers, pending_orders):
        orders = await pending_orders(2)
        service = TransferService(db)
        batch = await service.create_transfer_batch(satellite.id, [o.id for o in orders])
        assert batch.batch_number.startswith("TRF-WST01-")

        batch_id, first_driver, second_driver = batch.id, drivers[0].id, drivers[1].id
        batch = await service.claim_driver(batch_id, first_driver)
        assert batch.assigned_driver_id == first_driver

        with pytest.raises(ConflictError, match="already has a driver"):
            await service.claim_driver(batch_id, second_driver)

        batch = await db.get(TransferBatch, batch_id, populate_existing=True)
        assert batch.assigned_driver_id == first_driver

    async def test_claim_requires_driver_at_satellite(self, db, satellite, main_store, pending_orders):
        orders = await pending_orders(1)
        outsider = Staff(name="Main Driver", role=StaffRole.DRIVER.value, branch_id=main_store.id)
        db.add(outsider)
        await db.commit()
        batch = await TransferService(db).create_transfer_batch(satellite.id, [orders[0].id])

        with pytest.raises(ValidationError):
            await TransferService(db).claim_driver(batch.id, outsider.id)

    async def test_auto_assign_without_drivers_leaves_batch_open(self, db, satellite, pending_orders):
        orders = await pending_orders(1)
        service = TransferService(db)
        batch = await service.create_transfer_batch(satellite.id, [orders[0].id])

        batch = await service.auto_assign_driver(batch.id)

        assert batch.assigned_driver_id is None
        assert batch.status == "pending"

    async def test_dispatch_and_receive(self, db, satellite, drivers, pending_orders):
        orders = await pending_orders(2)
        service = TransferService(db)
        batch = await service.create_transfer_batch(satellite.id, [o.id for o in orders])

        with pytest.raises(ValidationError, match="no driver"):
            await service.dispatch(batch.id)

        await service.auto_assign_driver(batch.id)
        batch = await service.dispatch(batch.id)
        assert batch.status == "in_transit"
        for order in await _reload(db, orders):
            assert (order.status, order.routing_status) == ("received", "in_transit")

        metrics = await RoutingService(db).get_routing_metrics(satellite.main_store_id)
        assert metrics["in_transit"] == 2

        batch = await service.receive(batch.id)
        assert batch.status == "received"
        for order in await _reload(db, orders):
            assert (order.status, order.routing_status) == ("inspection", "received")
            assert order.received_at_main_store_at is not None


class TestSatelliteWithoutMainStore:

    async def test_processed_in_place(self, db, make_order):
        lone = Branch(code="LON01", name="Lone Satellite", branch_type=BranchType.SATELLITE.value)
        db.add(lone)
        await db.commit()
        order = await make_order(lone)

        await RoutingService(db).route_to_workstation(order.id)

        assert order.processing_branch_id == lone.id
        assert order.routing_status == "assigned"
