"""Reminder schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel

from cleanops.schemas.base import BaseResponseSchema


class ReminderResponse(BaseResponseSchema):
    id: uuid.UUID
    order_id: uuid.UUID
    reminder_type: str
    status: str
    scheduled_for: datetime
    retry_count: int
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None


class ReminderStats(BaseModel):
    total: int
    pending: int
    sent: int
    failed: int
    cancelled: int
    by_type: Dict[str, int]


class ReminderSweepResult(BaseModel):
    started_at: str
    completed_at: Optional[str] = None
    processed: int
    sent: int
    failed: int
    skipped: int
    cancelled: int
    deadline_reached: bool
    errors: List[Dict[str, Any]]


class CancelRemindersResult(BaseModel):
    order_id: str
    cancelled: int
