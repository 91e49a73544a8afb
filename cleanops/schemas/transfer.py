"""Transfer batch schemas."""
from datetime import datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field

from cleanops.schemas.base import BaseCreateSchema, BaseResponseSchema


class TransferBatchCreate(BaseCreateSchema):
    satellite_branch_id: uuid.UUID
    order_ids: List[uuid.UUID] = Field(..., min_length=1)


class TransferBatchResponse(BaseResponseSchema):
    id: uuid.UUID
    batch_number: str
    satellite_branch_id: uuid.UUID
    main_store_id: uuid.UUID
    order_ids: List[str]
    status: str
    assigned_driver_id: Optional[uuid.UUID] = None
    created_at: datetime
    driver_assigned_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    received_at: Optional[datetime] = None


class DriverClaim(BaseModel):
    driver_id: uuid.UUID


class DriverSuggestion(BaseModel):
    driver_id: Optional[str] = None
