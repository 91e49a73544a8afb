"""
Processing Batch Service

A processing batch moves a group of orders through one workstation stage
(washing, drying, ironing) together. Starting a batch puts every member
into the stage; completing it moves every member to the next stage.

Start and complete are all-or-nothing. Member rows are written with bulk
UPDATE statements in chunks of BATCH_MAX_WRITE_SIZE, all inside one
transaction. Each chunk's WHERE clause repeats the member's expected
current status and batch id, so a row changed by someone else since
validation is not matched. If any chunk matches fewer rows than it should,
or raises, the whole transaction is rolled back and AtomicityError is
raised; the caller never sees a partially advanced batch.
"""
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
from cleanops.models.document_sequence import DocumentType
from cleanops.models.order import Order, OrderStatus, OrderStatusHistory, RoutingStatus
from cleanops.models.processing_batch import BatchStatus, ProcessingBatch, ProcessingStage
from cleanops.services.document_sequence_service import DocumentSequenceService
from cleanops.services.lookups import as_uuid, get_branch, get_staff
from cleanops.services.order_state import OrderState, check_state_change

logger = logging.getLogger(__name__)

# Stage a member moves to when its batch completes
NEXT_STAGE: Dict[str, str] = {
    ProcessingStage.WASHING.value: OrderStatus.DRYING.value,
    ProcessingStage.DRYING.value: OrderStatus.IRONING.value,
    ProcessingStage.IRONING.value: OrderStatus.QUALITY_CHECK.value,
}

OPEN_BATCH_STATUSES = (BatchStatus.PENDING.value, BatchStatus.IN_PROGRESS.value)


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    size = max(int(size), 1)
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _unique(ids: Iterable) -> List[uuid.UUID]:
    seen = []
    for value in ids:
        value = as_uuid(value)
        if value not in seen:
            seen.append(value)
    return seen


class ProcessingBatchService:
    """Creates processing batches and advances their member orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_batch(self, batch_id) -> ProcessingBatch:
        batch = await self.db.get(ProcessingBatch, as_uuid(batch_id, "batch_id"))
        if not batch:
            raise NotFoundError(f"Processing batch {batch_id} not found")
        return batch

    async def _load_members(self, order_ids: Sequence[uuid.UUID], refresh: bool = False) -> List[Order]:
        members: List[Order] = []
        for chunk in chunked(list(order_ids), settings.BATCH_MAX_WRITE_SIZE):
            query = select(Order).where(Order.id.in_(chunk))
            if refresh:
                query = query.execution_options(populate_existing=True)
            result = await self.db.execute(query)
            members.extend(result.scalars().all())

        found = {o.id for o in members}
        missing = [str(i) for i in order_ids if i not in found]
        if missing:
            raise NotFoundError(f"Orders not found: {', '.join(missing)}", {"order_ids": missing})
        return members

    async def create_batch(
        self,
        stage: str,
        branch_id,
        order_ids: Iterable,
        staff_ids: Iterable,
        created_by: Optional[str] = None,
    ) -> ProcessingBatch:
        """
        Create a pending batch for a stage at a branch.

        Raises:
            ValidationError: unknown stage, empty order or staff list, order or
                staff not at the branch
            ConflictError: an order is already in an open batch or cannot
                enter the stage
        """
        stage = get_enum_value(stage)
        if stage not in NEXT_STAGE:
            raise ValidationError(
                f"Invalid stage '{stage}'. Valid stages: {', '.join(NEXT_STAGE)}"
            )
        order_uuids = _unique(order_ids)
        staff_uuids = _unique(staff_ids)
        if not order_uuids:
            raise ValidationError("A processing batch needs at least one order")
        if not staff_uuids:
            raise ValidationError("A processing batch needs at least one staff member")

        branch = await get_branch(self.db, branch_id)

        for staff_id in staff_uuids:
            staff = await get_staff(self.db, staff_id)
            if not staff.is_active or staff.branch_id != branch.id:
                raise ValidationError(f"Staff member {staff.name} is not active at branch {branch.code}")

        members = await self._load_members(order_uuids)
        target = OrderState(stage, RoutingStatus.PROCESSING.value)
        for order in members:
            if (order.processing_branch_id or order.branch_id) != branch.id:
                raise ValidationError(f"Order {order.order_number} is not processed at branch {branch.code}")
            if order.processing_batch_id is not None:
                current = await self.db.get(ProcessingBatch, order.processing_batch_id)
                if current is not None and current.status in OPEN_BATCH_STATUSES:
                    raise ConflictError(
                        f"Order {order.order_number} already belongs to batch {current.batch_number}"
                    )
            check_state_change(OrderState.of(order), target)

        batch_number = await DocumentSequenceService(self.db).get_next_number(
            DocumentType.PROCESSING_BATCH, stage
        )
        batch = ProcessingBatch(
            id=uuid.uuid4(),
            batch_number=batch_number,
            stage=stage,
            branch_id=branch.id,
            order_ids=[str(i) for i in order_uuids],
            staff_ids=[str(i) for i in staff_uuids],
            status=BatchStatus.PENDING.value,
            created_by=created_by,
        )
        self.db.add(batch)
        for order in members:
            order.processing_batch_id = batch.id

        await self.db.commit()
        await self.db.refresh(batch)
        logger.info(f"Created processing batch {batch_number} with {len(order_uuids)} orders")
        return batch

    async def _update_members(
        self,
        batch_id: uuid.UUID,
        chunk: Sequence[uuid.UUID],
        expected_statuses: Iterable[str],
        values: Dict[str, Any],
    ) -> int:
        """Bulk update one chunk; returns the number of rows matched."""
        result = await self.db.execute(
            update(Order)
            .where(
                and_(
                    Order.id.in_(chunk),
                    Order.processing_batch_id == batch_id,
                    Order.status.in_(list(expected_statuses)),
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _advance_members(
        self,
        batch: ProcessingBatch,
        target: OrderState,
        values: Dict[str, Any],
        batch_values: Dict[str, Any],
        changed_by: Optional[str],
        note: str,
    ) -> ProcessingBatch:
        batch_id = batch.id
        batch_number = batch.batch_number
        order_uuids = [as_uuid(i) for i in batch.order_ids]

        members = await self._load_members(order_uuids)
        for order in members:
            check_state_change(OrderState.of(order), target)
        previous = {order.id: order.status for order in members}
        expected_statuses = set(previous.values())

        values = {
            **values,
            "status": target.status,
            "routing_status": target.routing_status,
            "updated_at": utc_now(),
        }

        written = 0
        try:
            for chunk in chunked(order_uuids, settings.BATCH_MAX_WRITE_SIZE):
                matched = await self._update_members(batch_id, chunk, expected_statuses, values)
                if matched != len(chunk):
                    raise AtomicityError(
                        f"Batch {batch_number}: wrote {matched} of {len(chunk)} orders in chunk, "
                        f"batch rolled back",
                        {"batch_id": str(batch_id), "written_before_failure": written},
                    )
                written += matched

            for order_id in order_uuids:
                if previous[order_id] != target.status:
                    self.db.add(OrderStatusHistory(
                        order_id=order_id,
                        from_status=previous[order_id],
                        to_status=target.status,
                        routing_status=target.routing_status,
                        changed_by=changed_by,
                        note=note,
                    ))
            for key, value in batch_values.items():
                setattr(batch, key, value)
            await self.db.commit()
        except AtomicityError:
            await self.db.rollback()
            logger.error(f"Processing batch {batch_number} rolled back after {written} member writes")
            raise
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Processing batch {batch_number} failed, rolled back: {e}")
            raise AtomicityError(
                f"Batch {batch_number} update failed and was rolled back: {e}",
                {"batch_id": str(batch_id), "written_before_failure": written},
            ) from e

        await self.db.refresh(batch)
        await self._load_members(order_uuids, refresh=True)
        return batch

    async def start_batch(self, batch_id, changed_by: Optional[str] = None) -> ProcessingBatch:
        """pending -> in_progress; every member enters the batch stage."""
        batch = await self.get_batch(batch_id)
        if batch.status != BatchStatus.PENDING.value:
            raise ConflictError(
                f"Batch {batch.batch_number} cannot be started from status '{batch.status}'"
            )
        now = utc_now()
        batch = await self._advance_members(
            batch,
            target=OrderState(batch.stage, RoutingStatus.PROCESSING.value),
            values={
                "assigned_workstation_stage": batch.stage,
                "processing_started_at": now,
            },
            batch_values={"status": BatchStatus.IN_PROGRESS.value, "started_at": now},
            changed_by=changed_by,
            note=f"Batch started at {batch.stage}",
        )
        logger.info(f"Started processing batch {batch.batch_number} ({len(batch.order_ids)} orders)")
        return batch

    async def complete_batch(self, batch_id, changed_by: Optional[str] = None) -> ProcessingBatch:
        """in_progress -> completed; every member moves to the next stage."""
        batch = await self.get_batch(batch_id)
        if batch.status != BatchStatus.IN_PROGRESS.value:
            raise ConflictError(
                f"Batch {batch.batch_number} cannot be completed from status '{batch.status}'"
            )
        next_stage = NEXT_STAGE[batch.stage]
        batch = await self._advance_members(
            batch,
            target=OrderState(next_stage, RoutingStatus.ASSIGNED.value),
            values={
                "assigned_workstation_stage": next_stage,
                "processing_batch_id": None,
            },
            batch_values={"status": BatchStatus.COMPLETED.value, "completed_at": utc_now()},
            changed_by=changed_by,
            note=f"Batch completed, moved to {next_stage}",
        )
        logger.info(f"Completed processing batch {batch.batch_number}")
        return batch

    async def add_staff(self, batch_id, staff_id) -> ProcessingBatch:
        batch = await self.get_batch(batch_id)
        if batch.status not in OPEN_BATCH_STATUSES:
            raise ConflictError(f"Batch {batch.batch_number} is {batch.status}")
        staff = await get_staff(self.db, staff_id)
        if not staff.is_active or staff.branch_id != batch.branch_id:
            raise ValidationError(f"Staff member {staff.name} is not active at the batch branch")
        if str(staff.id) not in batch.staff_ids:
            batch.staff_ids = [*batch.staff_ids, str(staff.id)]
            await self.db.commit()
            await self.db.refresh(batch)
        return batch

    async def remove_staff(self, batch_id, staff_id) -> ProcessingBatch:
        batch = await self.get_batch(batch_id)
        if batch.status not in OPEN_BATCH_STATUSES:
            raise ConflictError(f"Batch {batch.batch_number} is {batch.status}")
        staff_key = str(as_uuid(staff_id, "staff_id"))
        if staff_key not in batch.staff_ids:
            raise ValidationError(f"Staff member {staff_key} is not on batch {batch.batch_number}")
        if len(batch.staff_ids) == 1:
            raise ValidationError("A processing batch must keep at least one staff member")
        batch.staff_ids = [s for s in batch.staff_ids if s != staff_key]
        await self.db.commit()
        await self.db.refresh(batch)
        return batch

    async def list_active_batches(self, branch_id=None, staff_id=None) -> List[ProcessingBatch]:
        """Pending and in-progress batches, optionally for a branch or staff member."""
        query = select(ProcessingBatch).where(ProcessingBatch.status.in_(OPEN_BATCH_STATUSES))
        if branch_id:
            query = query.where(ProcessingBatch.branch_id == as_uuid(branch_id, "branch_id"))
        result = await self.db.execute(query.order_by(ProcessingBatch.created_at))
        batches = list(result.scalars().all())
        if staff_id:
            staff_key = str(as_uuid(staff_id, "staff_id"))
            batches = [b for b in batches if staff_key in (b.staff_ids or [])]
        return batches
