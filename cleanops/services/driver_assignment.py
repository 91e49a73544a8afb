"""
Driver assignment for satellite -> main store transfers.

Candidates are the active drivers based at the satellite. Each is scored
by its active (pending + in_transit) transfer batches times a fixed
weight; the lowest score wins and ties go to the first candidate.

The suggestion is advisory. Two concurrent calls can pick the same driver;
TransferService.claim_driver is where that race is settled.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence
import uuid

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.config import settings
from cleanops.models.branch import Staff, StaffRole
from cleanops.models.transfer_batch import TransferBatch, TransferBatchStatus
from cleanops.services.lookups import as_uuid

logger = logging.getLogger(__name__)

ACTIVE_TRANSFER_STATUSES = (
    TransferBatchStatus.PENDING.value,
    TransferBatchStatus.IN_TRANSIT.value,
)


@dataclass(frozen=True)
class DriverCandidate:
    driver_id: uuid.UUID
    active_batches: int = 0


def score_driver(candidate: DriverCandidate, load_weight: Optional[float] = None) -> float:
    weight = settings.DRIVER_LOAD_WEIGHT if load_weight is None else load_weight
    return candidate.active_batches * weight


def select_driver(
    candidates: Sequence[DriverCandidate],
    load_weight: Optional[float] = None,
) -> Optional[uuid.UUID]:
    """Lowest score wins; the earlier candidate wins a tie. None when empty."""
    best: Optional[DriverCandidate] = None
    best_score = 0.0
    for candidate in candidates:
        score = score_driver(candidate, load_weight)
        if best is None or score < best_score:
            best = candidate
            best_score = score
    return best.driver_id if best else None


class DriverAssignmentService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_candidates(self, satellite_id) -> List[DriverCandidate]:
        satellite_uuid = as_uuid(satellite_id, "satellite_id")
        drivers = await self.db.execute(
            select(Staff.id).where(
                and_(
                    Staff.branch_id == satellite_uuid,
                    Staff.role == StaffRole.DRIVER.value,
                    Staff.is_active == True,  # noqa: E712
                )
            ).order_by(Staff.created_at, Staff.name)
        )
        driver_ids = list(drivers.scalars().all())
        if not driver_ids:
            return []

        counts = await self.db.execute(
            select(TransferBatch.assigned_driver_id, func.count(TransferBatch.id))
            .where(
                and_(
                    TransferBatch.assigned_driver_id.in_(driver_ids),
                    TransferBatch.status.in_(ACTIVE_TRANSFER_STATUSES),
                )
            )
            .group_by(TransferBatch.assigned_driver_id)
        )
        load = {driver_id: count for driver_id, count in counts.all()}
        return [DriverCandidate(driver_id=d, active_batches=load.get(d, 0)) for d in driver_ids]

    async def assign_driver(self, satellite_id, main_store_id=None) -> Optional[uuid.UUID]:
        """
        Suggest the least loaded driver at the satellite.

        Returns None when there are no drivers or the lookup fails; no
        fallback to drivers from other branches.
        """
        try:
            candidates = await self.get_candidates(satellite_id)
        except SQLAlchemyError as e:
            logger.error(f"Driver lookup for satellite {satellite_id} failed: {e}")
            return None

        driver_id = select_driver(candidates)
        if driver_id is None:
            logger.warning(f"No drivers available at satellite {satellite_id} for transfer to {main_store_id}")
        else:
            logger.info(f"Suggested driver {driver_id} for transfer {satellite_id} -> {main_store_id}")
        return driver_id
