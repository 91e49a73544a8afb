"""Order schemas for API requests/responses."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import uuid

from pydantic import BaseModel, Field

from cleanops.models.order import OrderStatus
from cleanops.models.payment import PaymentMethod
from cleanops.schemas.base import BaseCreateSchema, BaseResponseSchema, ListResponse


class GarmentItem(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    quantity: int = Field(1, ge=1)


class OrderCreate(BaseCreateSchema):
    branch_id: uuid.UUID
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_email: Optional[str] = Field(None, max_length=255)
    garments: List[GarmentItem] = Field(..., min_length=1)
    total_weight_kg: Optional[Decimal] = Field(None, ge=0)
    total_amount: Decimal = Field(Decimal("0"), ge=0)
    estimated_completion_at: Optional[datetime] = None


class OrderResponse(BaseResponseSchema):
    id: uuid.UUID
    order_number: str
    branch_id: uuid.UUID
    processing_branch_id: Optional[uuid.UUID] = None
    status: str
    routing_status: Optional[str] = None
    assigned_workstation_stage: Optional[str] = None
    assigned_staff_id: Optional[uuid.UUID] = None
    processing_batch_id: Optional[uuid.UUID] = None
    transfer_batch_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    garments: List[GarmentItem] = []
    total_amount: Decimal
    paid_amount: Decimal
    payment_status: str
    return_method: str
    classification_basis: str
    classification_criterion: Optional[str] = None
    created_at: datetime
    routed_at: Optional[datetime] = None
    arrived_at_branch_at: Optional[datetime] = None
    actual_completion_at: Optional[datetime] = None
    sorting_completed_at: Optional[datetime] = None
    earliest_delivery_at: Optional[datetime] = None


class OrderListResponse(ListResponse):
    items: List[OrderResponse]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    changed_by: Optional[str] = None
    note: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdateResponse(BaseModel):
    order: OrderResponse
    previous_status: str
    notification_sent: bool


class StatusHistoryResponse(BaseResponseSchema):
    id: uuid.UUID
    from_status: Optional[str] = None
    to_status: str
    routing_status: Optional[str] = None
    changed_by: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


class DeliveryScheduleCheck(BaseModel):
    scheduled_time: datetime


class DeliveryScheduleResult(BaseModel):
    valid: bool
    error: Optional[str] = None
    earliest_time: Optional[datetime] = None


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    recorded_by: Optional[str] = None


class PaymentResult(BaseModel):
    payment_id: str
    order_id: str
    amount: Decimal
    paid_amount: Decimal
    total_amount: Decimal
    payment_status: str


class PaymentResponse(BaseResponseSchema):
    id: uuid.UUID
    amount: Decimal
    method: str
    reference: Optional[str] = None
    recorded_by: Optional[str] = None
    created_at: datetime
