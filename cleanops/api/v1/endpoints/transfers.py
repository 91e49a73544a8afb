"""Satellite to main store transfer endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status

from cleanops.api.deps import DB
from cleanops.models.transfer_batch import TransferBatchStatus
from cleanops.schemas.transfer import (
    DriverClaim,
    DriverSuggestion,
    TransferBatchCreate,
    TransferBatchResponse,
)
from cleanops.services.transfer_service import TransferService

router = APIRouter()


@router.post(
    "",
    response_model=TransferBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Transfer Batch"
)
async def create_transfer_batch(data: TransferBatchCreate, db: DB):
    return await TransferService(db).create_transfer_batch(data.satellite_branch_id, data.order_ids)


@router.get("", response_model=List[TransferBatchResponse], summary="List Transfer Batches")
async def list_transfer_batches(
    db: DB,
    satellite_id: Optional[UUID] = None,
    driver_id: Optional[UUID] = None,
    batch_status: Optional[TransferBatchStatus] = None,
):
    return await TransferService(db).list_transfer_batches(
        satellite_id=satellite_id,
        driver_id=driver_id,
        status=batch_status,
    )


@router.get("/{batch_id}", response_model=TransferBatchResponse, summary="Get Transfer Batch")
async def get_transfer_batch(batch_id: UUID, db: DB):
    return await TransferService(db).get_transfer_batch(batch_id)


@router.get("/{batch_id}/suggested-driver", response_model=DriverSuggestion, summary="Suggest Driver")
async def suggest_driver(batch_id: UUID, db: DB):
    """Least loaded driver at the satellite. driver_id is null when none is available."""
    driver_id = await TransferService(db).suggest_driver(batch_id)
    return {"driver_id": str(driver_id) if driver_id else None}


@router.post("/{batch_id}/claim", response_model=TransferBatchResponse, summary="Claim Batch")
async def claim_driver(batch_id: UUID, data: DriverClaim, db: DB):
    """A driver takes the batch. 409 if another driver already has it."""
    return await TransferService(db).claim_driver(batch_id, data.driver_id)


@router.post("/{batch_id}/auto-assign", response_model=TransferBatchResponse, summary="Auto Assign Driver")
async def auto_assign_driver(batch_id: UUID, db: DB):
    return await TransferService(db).auto_assign_driver(batch_id)


@router.post("/{batch_id}/dispatch", response_model=TransferBatchResponse, summary="Dispatch Batch")
async def dispatch(batch_id: UUID, db: DB):
    return await TransferService(db).dispatch(batch_id)


@router.post("/{batch_id}/receive", response_model=TransferBatchResponse, summary="Receive Batch")
async def receive(batch_id: UUID, db: DB):
    return await TransferService(db).receive(batch_id)
