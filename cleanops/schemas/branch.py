"""Branch and staff schemas."""
from datetime import datetime
from typing import Optional, List
import uuid

from pydantic import Field

from cleanops.models.branch import BranchType, StaffRole
from cleanops.schemas.base import BaseCreateSchema, BaseResponseSchema


class BranchCreate(BaseCreateSchema):
    code: str = Field(..., min_length=2, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    branch_type: BranchType = BranchType.MAIN
    main_store_id: Optional[uuid.UUID] = None
    sorting_window_hours: Optional[int] = Field(None, ge=0, le=168)


class BranchResponse(BaseResponseSchema):
    id: uuid.UUID
    code: str
    name: str
    branch_type: str
    main_store_id: Optional[uuid.UUID] = None
    sorting_window_hours: Optional[int] = None
    is_active: bool
    created_at: datetime


class StaffCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    role: StaffRole
    branch_id: uuid.UUID


class StaffResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    phone: Optional[str] = None
    role: str
    branch_id: uuid.UUID
    is_active: bool


class StaffListResponse(BaseResponseSchema):
    items: List[StaffResponse]
