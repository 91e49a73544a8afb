"""Transfer batches carrying satellite orders to the main store."""
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.config import settings
from cleanops.core.enum_utils import get_enum_value
from cleanops.core.exceptions import (
    AtomicityError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from cleanops.core.time_utils import utc_now
from cleanops.models.branch import StaffRole
from cleanops.models.document_sequence import DocumentType
from cleanops.models.order import Order, OrderStatus, OrderStatusHistory, RoutingStatus, WorkstationStage
from cleanops.models.transfer_batch import TransferBatch, TransferBatchStatus
from cleanops.services.document_sequence_service import DocumentSequenceService
from cleanops.services.driver_assignment import DriverAssignmentService
from cleanops.services.lookups import as_uuid, get_branch, get_staff
from cleanops.services.order_state import OrderState, check_state_change
from cleanops.services.processing_batch_service import chunked

logger = logging.getLogger(__name__)


class TransferService:
    """Service for satellite to main store transfers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.drivers = DriverAssignmentService(db)

    async def get_transfer_batch(self, batch_id) -> TransferBatch:
        batch = await self.db.get(TransferBatch, as_uuid(batch_id, "batch_id"))
        if not batch:
            raise NotFoundError(f"Transfer batch {batch_id} not found")
        return batch

    async def list_transfer_batches(
        self,
        satellite_id=None,
        driver_id=None,
        status: Optional[str] = None,
    ) -> List[TransferBatch]:
        conditions = []
        if satellite_id:
            conditions.append(TransferBatch.satellite_branch_id == as_uuid(satellite_id, "satellite_id"))
        if driver_id:
            conditions.append(TransferBatch.assigned_driver_id == as_uuid(driver_id, "driver_id"))
        if status:
            conditions.append(TransferBatch.status == get_enum_value(status))

        query = select(TransferBatch)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.db.execute(query.order_by(TransferBatch.created_at.desc()))
        return list(result.scalars().all())

    async def _load_members(self, order_ids: Sequence[uuid.UUID], refresh: bool = False) -> List[Order]:
        members: List[Order] = []
        for chunk in chunked(list(order_ids), settings.BATCH_MAX_WRITE_SIZE):
            query = select(Order).where(Order.id.in_(chunk))
            if refresh:
                query = query.execution_options(populate_existing=True)
            members.extend((await self.db.execute(query)).scalars().all())
        found = {o.id for o in members}
        missing = [str(i) for i in order_ids if i not in found]
        if missing:
            raise NotFoundError(f"Orders not found: {', '.join(missing)}", {"order_ids": missing})
        return members

    async def create_transfer_batch(self, satellite_id, order_ids: Iterable) -> TransferBatch:
        """Group pending-routing orders of a satellite into one trip."""
        satellite = await get_branch(self.db, satellite_id)
        if not satellite.is_satellite or satellite.main_store_id is None:
            raise ValidationError(f"Branch {satellite.code} is not a satellite with a main store")

        order_uuids = []
        for value in order_ids:
            value = as_uuid(value, "order_id")
            if value not in order_uuids:
                order_uuids.append(value)
        if not order_uuids:
            raise ValidationError("A transfer batch needs at least one order")

        members = await self._load_members(order_uuids)
        for order in members:
            if order.branch_id != satellite.id:
                raise ValidationError(f"Order {order.order_number} does not belong to branch {satellite.code}")
            if order.routing_status != RoutingStatus.PENDING.value:
                raise ConflictError(
                    f"Order {order.order_number} is not awaiting transfer "
                    f"(routing status: {order.routing_status})"
                )
            if order.transfer_batch_id is not None:
                raise ConflictError(f"Order {order.order_number} is already on a transfer batch")

        batch_number = await DocumentSequenceService(self.db).get_next_number(
            DocumentType.TRANSFER_BATCH, satellite.code
        )
        batch = TransferBatch(
            id=uuid.uuid4(),
            batch_number=batch_number,
            satellite_branch_id=satellite.id,
            main_store_id=satellite.main_store_id,
            order_ids=[str(i) for i in order_uuids],
            status=TransferBatchStatus.PENDING.value,
        )
        self.db.add(batch)
        for order in members:
            order.transfer_batch_id = batch.id

        await self.db.commit()
        await self.db.refresh(batch)
        logger.info(f"Created transfer batch {batch_number} with {len(order_uuids)} orders")
        return batch

    async def suggest_driver(self, batch_id) -> Optional[uuid.UUID]:
        batch = await self.get_transfer_batch(batch_id)
        return await self.drivers.assign_driver(batch.satellite_branch_id, batch.main_store_id)

    async def claim_driver(self, batch_id, driver_id) -> TransferBatch:
        """
        Attach a driver to a pending batch.

        Compare-and-swap on assigned_driver_id IS NULL: of two concurrent
        claims only one matches the row.

        Raises:
            ValidationError: not an active driver at the satellite
            ConflictError: batch already has a driver or is not pending
        """
        batch = await self.get_transfer_batch(batch_id)
        batch_uuid = batch.id
        driver = await get_staff(self.db, driver_id)
        if (
            driver.role != StaffRole.DRIVER.value
            or not driver.is_active
            or driver.branch_id != batch.satellite_branch_id
        ):
            raise ValidationError(f"{driver.name} is not an active driver at the batch's satellite branch")

        result = await self.db.execute(
            update(TransferBatch)
            .where(
                and_(
                    TransferBatch.id == batch_uuid,
                    TransferBatch.assigned_driver_id.is_(None),
                    TransferBatch.status == TransferBatchStatus.PENDING.value,
                )
            )
            .values(assigned_driver_id=driver.id, driver_assigned_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            batch = await self.db.get(TransferBatch, batch_uuid, populate_existing=True)
            raise ConflictError(
                f"Transfer batch {batch.batch_number} already has a driver or is not pending",
                {
                    "status": batch.status,
                    "assigned_driver_id": str(batch.assigned_driver_id) if batch.assigned_driver_id else None,
                },
            )

        await self.db.commit()
        await self.db.refresh(batch)
        logger.info(f"Driver {driver.name} claimed transfer batch {batch.batch_number}")
        return batch

    async def auto_assign_driver(self, batch_id) -> TransferBatch:
        """Suggest then claim. The batch is returned without a driver when none is available."""
        batch = await self.get_transfer_batch(batch_id)
        driver_id = await self.drivers.assign_driver(batch.satellite_branch_id, batch.main_store_id)
        if driver_id is None:
            return batch
        return await self.claim_driver(batch.id, driver_id)

    async def _move_members(
        self,
        batch: TransferBatch,
        expected_routing: str,
        target: OrderState,
        values: Dict[str, Any],
        batch_values: Dict[str, Any],
        note: str,
    ) -> TransferBatch:
        batch_id = batch.id
        batch_number = batch.batch_number
        order_uuids = [as_uuid(i) for i in batch.order_ids]

        members = await self._load_members(order_uuids)
        for order in members:
            if order.routing_status != expected_routing:
                raise ConflictError(
                    f"Order {order.order_number} routing is '{order.routing_status}', "
                    f"expected '{expected_routing}'"
                )
            check_state_change(OrderState.of(order), target)
        previous = {order.id: order.status for order in members}

        values = {
            **values,
            "status": target.status,
            "routing_status": target.routing_status,
            "updated_at": utc_now(),
        }
        try:
            for chunk in chunked(order_uuids, settings.BATCH_MAX_WRITE_SIZE):
                result = await self.db.execute(
                    update(Order)
                    .where(
                        and_(
                            Order.id.in_(chunk),
                            Order.transfer_batch_id == batch_id,
                            Order.routing_status == expected_routing,
                        )
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != len(chunk):
                    raise AtomicityError(
                        f"Transfer batch {batch_number}: wrote {result.rowcount} of {len(chunk)} "
                        f"orders in chunk, batch rolled back",
                        {"batch_id": str(batch_id)},
                    )
            for order_id in order_uuids:
                self.db.add(OrderStatusHistory(
                    order_id=order_id,
                    from_status=previous[order_id],
                    to_status=target.status,
                    routing_status=target.routing_status,
                    note=note,
                ))
            for key, value in batch_values.items():
                setattr(batch, key, value)
            await self.db.commit()
        except AtomicityError:
            await self.db.rollback()
            raise
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Transfer batch {batch_number} failed, rolled back: {e}")
            raise AtomicityError(
                f"Transfer batch {batch_number} update failed and was rolled back: {e}",
                {"batch_id": str(batch_id)},
            ) from e

        await self.db.refresh(batch)
        await self._load_members(order_uuids, refresh=True)
        return batch

    async def dispatch(self, batch_id) -> TransferBatch:
        """Driver leaves the satellite: pending -> in_transit."""
        batch = await self.get_transfer_batch(batch_id)
        if batch.status != TransferBatchStatus.PENDING.value:
            raise ConflictError(f"Transfer batch {batch.batch_number} is {batch.status}")
        if batch.assigned_driver_id is None:
            raise ValidationError(f"Transfer batch {batch.batch_number} has no driver assigned")

        batch = await self._move_members(
            batch,
            expected_routing=RoutingStatus.PENDING.value,
            target=OrderState(OrderStatus.RECEIVED.value, RoutingStatus.IN_TRANSIT.value),
            values={},
            batch_values={"status": TransferBatchStatus.IN_TRANSIT.value, "dispatched_at": utc_now()},
            note=f"Dispatched on {batch.batch_number}",
        )
        logger.info(f"Dispatched transfer batch {batch.batch_number}")
        return batch

    async def receive(self, batch_id) -> TransferBatch:
        """Batch arrives at the main store: members go to inspection."""
        batch = await self.get_transfer_batch(batch_id)
        if batch.status != TransferBatchStatus.IN_TRANSIT.value:
            raise ConflictError(f"Transfer batch {batch.batch_number} is {batch.status}")

        now = utc_now()
        batch = await self._move_members(
            batch,
            expected_routing=RoutingStatus.IN_TRANSIT.value,
            target=OrderState(OrderStatus.INSPECTION.value, RoutingStatus.RECEIVED.value),
            values={
                "arrived_at_branch_at": now,
                "received_at_main_store_at": now,
                "assigned_workstation_stage": WorkstationStage.INSPECTION.value,
            },
            batch_values={"status": TransferBatchStatus.RECEIVED.value, "received_at": now},
            note=f"Received from {batch.batch_number}",
        )
        logger.info(f"Received transfer batch {batch.batch_number} at main store")
        return batch
