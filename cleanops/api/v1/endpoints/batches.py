"""Processing batch endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status

from cleanops.api.deps import DB
from cleanops.schemas.batch import (
    BatchActionRequest,
    BatchStaffChange,
    ProcessingBatchCreate,
    ProcessingBatchResponse,
)
from cleanops.services.processing_batch_service import ProcessingBatchService

router = APIRouter()


@router.post(
    "",
    response_model=ProcessingBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Processing Batch"
)
async def create_batch(data: ProcessingBatchCreate, db: DB):
    service = ProcessingBatchService(db)
    return await service.create_batch(
        stage=data.stage,
        branch_id=data.branch_id,
        order_ids=data.order_ids,
        staff_ids=data.staff_ids,
        created_by=data.created_by,
    )


@router.get("", response_model=List[ProcessingBatchResponse], summary="Active Batches")
async def list_active_batches(db: DB, branch_id: Optional[UUID] = None, staff_id: Optional[UUID] = None):
    return await ProcessingBatchService(db).list_active_batches(branch_id=branch_id, staff_id=staff_id)


@router.get("/{batch_id}", response_model=ProcessingBatchResponse, summary="Get Processing Batch")
async def get_batch(batch_id: UUID, db: DB):
    return await ProcessingBatchService(db).get_batch(batch_id)


@router.post("/{batch_id}/start", response_model=ProcessingBatchResponse, summary="Start Batch")
async def start_batch(batch_id: UUID, db: DB, data: BatchActionRequest = BatchActionRequest()):
    """All member orders enter the batch stage, or none do."""
    return await ProcessingBatchService(db).start_batch(batch_id, changed_by=data.changed_by)


@router.post("/{batch_id}/complete", response_model=ProcessingBatchResponse, summary="Complete Batch")
async def complete_batch(batch_id: UUID, db: DB, data: BatchActionRequest = BatchActionRequest()):
    """All member orders move to the next stage, or none do."""
    return await ProcessingBatchService(db).complete_batch(batch_id, changed_by=data.changed_by)


@router.post("/{batch_id}/staff", response_model=ProcessingBatchResponse, summary="Add Staff To Batch")
async def add_staff(batch_id: UUID, data: BatchStaffChange, db: DB):
    return await ProcessingBatchService(db).add_staff(batch_id, data.staff_id)


@router.delete(
    "/{batch_id}/staff/{staff_id}",
    response_model=ProcessingBatchResponse,
    summary="Remove Staff From Batch"
)
async def remove_staff(batch_id: UUID, staff_id: UUID, db: DB):
    return await ProcessingBatchService(db).remove_staff(batch_id, staff_id)
