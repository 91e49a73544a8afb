"""Delivery classification schemas."""
from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from pydantic import BaseModel, Field

from cleanops.models.order import ReturnMethod
from cleanops.schemas.base import BaseResponseSchema


class ClassificationOverrideRequest(BaseModel):
    """All four fields are required for an override."""
    user_id: str = Field(..., min_length=1)
    user_role: str = Field(..., min_length=1)
    user_name: Optional[str] = None
    new_classification: ReturnMethod
    reason: str = Field(..., min_length=1)


class ClassifyOrderRequest(BaseModel):
    override: Optional[ClassificationOverrideRequest] = None


class ClassificationResult(BaseModel):
    order_id: str
    classification: str
    basis: str
    criterion: Optional[str] = None
    reason: Optional[str] = None
    details: Dict[str, Any] = {}
    override_id: Optional[str] = None
    original_classification: Optional[str] = None


class ClassificationOverrideResponse(BaseResponseSchema):
    id: uuid.UUID
    order_id: uuid.UUID
    original_classification: str
    new_classification: str
    override_by: str
    override_by_name: Optional[str] = None
    override_by_role: str
    reason: str
    override_at: datetime
