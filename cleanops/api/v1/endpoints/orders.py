"""
Order API Endpoints.

- Order intake and listing
- Status updates (validated against the status state machine)
- Delivery scheduling checks against the sorting window
- Payments
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from cleanops.api.deps import DB, Notifier
from cleanops.models.order import OrderStatus, RoutingStatus
from cleanops.schemas.order import (
    DeliveryScheduleCheck,
    DeliveryScheduleResult,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderStatusUpdateResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentResult,
    StatusHistoryResponse,
)
from cleanops.services.ledger_service import LedgerService
from cleanops.services.order_service import OrderService
from cleanops.services.status_rules import get_status_label, get_valid_next_statuses

router = APIRouter()


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Order"
)
async def create_order(data: OrderCreate, db: DB, notifier: Notifier):
    """Register an order at a branch. Delivery classification runs automatically."""
    service = OrderService(db, notifier)
    return await service.create_order(data)


@router.get("", response_model=OrderListResponse, summary="List Orders")
async def list_orders(
    db: DB,
    branch_id: Optional[UUID] = None,
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    routing_status: Optional[RoutingStatus] = None,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
):
    service = OrderService(db)
    items, total = await service.list_orders(
        branch_id=branch_id,
        status=order_status,
        routing_status=routing_status,
        skip=(page - 1) * size,
        limit=size,
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "size": size,
        "pages": (total + size - 1) // size,
    }


@router.get("/{order_id}", response_model=OrderResponse, summary="Get Order")
async def get_order(order_id: UUID, db: DB):
    return await OrderService(db).get_order(order_id)


@router.put(
    "/{order_id}/status",
    response_model=OrderStatusUpdateResponse,
    summary="Update Order Status"
)
async def update_order_status(order_id: UUID, data: OrderStatusUpdate, db: DB, notifier: Notifier):
    """
    Move an order to a new status.

    Illegal transitions are rejected with 409 and the list of allowed
    next statuses; nothing is changed.
    """
    service = OrderService(db, notifier)
    result = await service.update_status(order_id, data.status, changed_by=data.changed_by, note=data.note)
    notification = result["notification"]
    return {
        "order": result["order"],
        "previous_status": result["previous_status"],
        "notification_sent": bool(notification and notification.get("success")),
    }


@router.get("/{order_id}/valid-transitions", summary="Allowed Next Statuses")
async def get_valid_transitions(order_id: UUID, db: DB):
    order = await OrderService(db).get_order(order_id)
    return {
        "order_id": str(order.id),
        "current_status": order.status,
        "current_label": get_status_label(order.status),
        "valid_next_statuses": get_valid_next_statuses(order.status),
    }


@router.get(
    "/{order_id}/history",
    response_model=List[StatusHistoryResponse],
    summary="Order Status History"
)
async def get_order_history(order_id: UUID, db: DB):
    return await OrderService(db).get_history(order_id)


@router.post(
    "/{order_id}/delivery-schedule/validate",
    response_model=DeliveryScheduleResult,
    summary="Validate Delivery Time"
)
async def validate_delivery_schedule(order_id: UUID, data: DeliveryScheduleCheck, db: DB):
    """A delivery may not be scheduled before the sorting window has elapsed."""
    return await OrderService(db).validate_delivery_schedule(order_id, data.scheduled_time)


@router.post(
    "/{order_id}/payments",
    response_model=PaymentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record Payment"
)
async def record_payment(order_id: UUID, data: PaymentCreate, db: DB):
    service = LedgerService(db)
    return await service.record_payment(
        order_id,
        data.amount,
        method=data.method,
        reference=data.reference,
        recorded_by=data.recorded_by,
    )


@router.get(
    "/{order_id}/payments",
    response_model=List[PaymentResponse],
    summary="List Payments"
)
async def list_payments(order_id: UUID, db: DB):
    return await LedgerService(db).get_payments(order_id)
