"""
Combined order state: garment status plus routing status.

The two fields are only meaningful together, so they are validated and
written as one value. apply_order_state() is the only code path that sets
Order.status / Order.routing_status on an instance; bulk writers (processing
and transfer batches) validate every member with check_state_change() first.
"""
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Optional

from cleanops.core.exceptions import ConflictError
from cleanops.models.order import Order, OrderStatus, OrderStatusHistory, RoutingStatus
from cleanops.services.status_rules import (
    PROCESSING_STATUSES,
    RETURN_STATUSES,
    validate_transition,
)

S = OrderStatus
R = RoutingStatus

_RETURNED = frozenset({S.DELIVERED.value, S.COLLECTED.value, S.DISPOSED.value})

# routing status -> garment statuses it may be paired with
ROUTING_COMPATIBILITY: Dict[str, FrozenSet[str]] = {
    R.PENDING.value: frozenset({S.RECEIVED.value, S.CANCELLED.value}),
    R.IN_TRANSIT.value: frozenset({S.RECEIVED.value}),
    R.RECEIVED.value: frozenset({S.INSPECTION.value, S.CANCELLED.value}),
    R.ASSIGNED.value: PROCESSING_STATUSES | {S.CANCELLED.value},
    R.PROCESSING.value: PROCESSING_STATUSES,
    R.READY_FOR_RETURN.value: RETURN_STATUSES | _RETURNED,
}


@dataclass(frozen=True)
class OrderState:
    status: str
    routing_status: Optional[str] = None

    @classmethod
    def of(cls, order: Order) -> "OrderState":
        return cls(status=order.status, routing_status=order.routing_status)

    def with_status(self, status: str) -> "OrderState":
        return replace(self, status=status)

    def with_routing(self, routing_status: Optional[str]) -> "OrderState":
        return replace(self, routing_status=routing_status)

    @property
    def is_consistent(self) -> bool:
        if self.routing_status is None:
            return True
        allowed = ROUTING_COMPATIBILITY.get(self.routing_status)
        return allowed is not None and self.status in allowed


def routing_for_status(status: str, current_routing: Optional[str]) -> Optional[str]:
    """
    Routing status implied by moving the garment status on its own.

    Used for plain status updates so that, for example, packaging -> ready
    also moves routing to ready_for_return.
    """
    if current_routing is None:
        return None
    if status in RETURN_STATUSES or status in _RETURNED:
        return R.READY_FOR_RETURN.value
    if (
        current_routing == R.RECEIVED.value
        and status in PROCESSING_STATUSES
        and status != S.INSPECTION.value
    ):
        return R.ASSIGNED.value
    return current_routing


def check_state_change(current: OrderState, target: OrderState) -> None:
    """Raise ConflictError unless current -> target is legal."""
    if target.status != current.status:
        validate_transition(current.status, target.status)
    if not target.is_consistent:
        raise ConflictError(
            f"Order status '{target.status}' is not valid while routing is "
            f"'{target.routing_status}'",
            {
                "status": target.status,
                "routing_status": target.routing_status,
                "allowed_statuses": sorted(ROUTING_COMPATIBILITY.get(target.routing_status, [])),
            },
        )


def apply_order_state(
    order: Order,
    target: OrderState,
    changed_by: Optional[str] = None,
    note: Optional[str] = None,
    require_status_change: bool = False,
) -> Optional[OrderStatusHistory]:
    """
    Validate and set status and routing status together.

    Returns a history row for the caller to add to the session, or None
    when nothing changed. With require_status_change, an unchanged garment
    status raises ConflictError instead.
    """
    current = OrderState.of(order)
    if require_status_change and target.status == current.status:
        validate_transition(current.status, target.status)
    if target == current:
        return None

    check_state_change(current, target)

    order.status = target.status
    order.routing_status = target.routing_status

    return OrderStatusHistory(
        order_id=order.id,
        from_status=current.status,
        to_status=target.status,
        routing_status=target.routing_status,
        changed_by=changed_by,
        note=note,
    )
