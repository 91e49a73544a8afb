"""Processing batch schemas."""
from datetime import datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field

from cleanops.models.processing_batch import ProcessingStage
from cleanops.schemas.base import BaseCreateSchema, BaseResponseSchema


class ProcessingBatchCreate(BaseCreateSchema):
    stage: ProcessingStage
    branch_id: uuid.UUID
    order_ids: List[uuid.UUID] = Field(..., min_length=1)
    staff_ids: List[uuid.UUID] = Field(..., min_length=1)
    created_by: Optional[str] = None


class ProcessingBatchResponse(BaseResponseSchema):
    id: uuid.UUID
    batch_number: str
    stage: str
    branch_id: uuid.UUID
    order_ids: List[str]
    staff_ids: List[str]
    status: str
    created_by: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class BatchStaffChange(BaseModel):
    staff_id: uuid.UUID


class BatchActionRequest(BaseModel):
    changed_by: Optional[str] = None
