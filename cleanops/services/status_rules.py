"""
Order Status State Machine

This module is the single source of truth for garment status transitions.
All status changes go through it, directly or via
cleanops.services.order_state.apply_order_state.

Two tables are kept:

    GARMENT_TRANSITIONS    the fixed processing pipeline
                           received -> queued -> washing -> drying -> ironing
                           -> quality_check -> packaging -> ready
                           -> out_for_delivery -> delivered | collected
    LIFECYCLE_TRANSITIONS  edges driven by routing and order lifecycle
                           (inspection on arrival, queued_for_delivery after
                           sorting, cancellation before processing, disposal)

can_transition_to() checks the union.
"""

from typing import Dict, List, Optional

from cleanops.core.exceptions import ConflictError
from cleanops.models.order import OrderStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

S = OrderStatus

# Format: current_status -> [allowed next statuses]
GARMENT_TRANSITIONS: Dict[str, List[str]] = {
    S.RECEIVED.value: [S.QUEUED.value],
    S.QUEUED.value: [S.WASHING.value],
    S.WASHING.value: [S.DRYING.value],
    S.DRYING.value: [S.IRONING.value],
    S.IRONING.value: [S.QUALITY_CHECK.value],
    S.QUALITY_CHECK.value: [
        S.PACKAGING.value,      # Passed QA
        S.WASHING.value,        # Failed QA, rewash
    ],
    S.PACKAGING.value: [S.READY.value],
    S.READY.value: [
        S.OUT_FOR_DELIVERY.value,
        S.COLLECTED.value,
    ],
    S.OUT_FOR_DELIVERY.value: [S.DELIVERED.value],
    S.DELIVERED.value: [],      # Terminal
    S.COLLECTED.value: [],      # Terminal
}

LIFECYCLE_TRANSITIONS: Dict[str, List[str]] = {
    S.RECEIVED.value: [
        S.INSPECTION.value,     # Arrived at processing branch
        S.CANCELLED.value,
    ],
    S.INSPECTION.value: [
        S.QUEUED.value,
        S.CANCELLED.value,
    ],
    S.QUEUED.value: [S.CANCELLED.value],
    S.PACKAGING.value: [S.QUEUED_FOR_DELIVERY.value],   # Processing complete, sorted
    S.READY.value: [
        S.QUEUED_FOR_DELIVERY.value,
        S.DISPOSED.value,
    ],
    S.QUEUED_FOR_DELIVERY.value: [
        S.OUT_FOR_DELIVERY.value,
        S.COLLECTED.value,
        S.DISPOSED.value,       # Uncollected past disposal threshold
    ],
    S.CANCELLED.value: [],      # Terminal
    S.DISPOSED.value: [],       # Terminal
}


def _merge(*tables: Dict[str, List[str]]) -> Dict[str, List[str]]:
    merged: Dict[str, List[str]] = {status.value: [] for status in OrderStatus}
    for table in tables:
        for current, targets in table.items():
            for target in targets:
                if target not in merged[current]:
                    merged[current].append(target)
    return merged


ORDER_TRANSITIONS: Dict[str, List[str]] = _merge(GARMENT_TRANSITIONS, LIFECYCLE_TRANSITIONS)

TERMINAL_STATUSES = frozenset(
    status for status, targets in ORDER_TRANSITIONS.items() if not targets
)

PROCESSING_STATUSES = frozenset({
    S.INSPECTION.value,
    S.QUEUED.value,
    S.WASHING.value,
    S.DRYING.value,
    S.IRONING.value,
    S.QUALITY_CHECK.value,
    S.PACKAGING.value,
})

RETURN_STATUSES = frozenset({
    S.READY.value,
    S.QUEUED_FOR_DELIVERY.value,
    S.OUT_FOR_DELIVERY.value,
})


# =============================================================================
# STATUS METADATA (display only, never used for transition logic)
# =============================================================================

STATUS_CONFIG: Dict[str, Dict] = {
    S.RECEIVED.value: {"label": "Received", "color": "gray", "group": "Pending", "requires_notification": False},
    S.INSPECTION.value: {"label": "Inspection", "color": "slate", "group": "Pending", "requires_notification": False},
    S.QUEUED.value: {"label": "Queued", "color": "gray", "group": "Pending", "requires_notification": False},
    S.WASHING.value: {"label": "Washing", "color": "blue", "group": "Processing", "requires_notification": False},
    S.DRYING.value: {"label": "Drying", "color": "blue", "group": "Processing", "requires_notification": False},
    S.IRONING.value: {"label": "Ironing", "color": "blue", "group": "Processing", "requires_notification": False},
    S.QUALITY_CHECK.value: {"label": "Quality Check", "color": "purple", "group": "Processing", "requires_notification": False},
    S.PACKAGING.value: {"label": "Packaging", "color": "indigo", "group": "Processing", "requires_notification": False},
    S.READY.value: {"label": "Ready", "color": "green", "group": "Ready", "requires_notification": True},
    S.QUEUED_FOR_DELIVERY.value: {"label": "Queued for Delivery", "color": "green", "group": "Ready", "requires_notification": True},
    S.OUT_FOR_DELIVERY.value: {"label": "Out for Delivery", "color": "amber", "group": "Ready", "requires_notification": True},
    S.DELIVERED.value: {"label": "Delivered", "color": "emerald", "group": "Completed", "requires_notification": True},
    S.COLLECTED.value: {"label": "Collected", "color": "emerald", "group": "Completed", "requires_notification": False},
    S.CANCELLED.value: {"label": "Cancelled", "color": "red", "group": "Completed", "requires_notification": False},
    S.DISPOSED.value: {"label": "Disposed", "color": "red", "group": "Completed", "requires_notification": False},
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition_to(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed. There are no self-loops."""
    return new_status in ORDER_TRANSITIONS.get(current_status, [])


def get_valid_next_statuses(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return list(ORDER_TRANSITIONS.get(current_status, []))


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a status transition. Raises ConflictError if invalid.

    Invalid targets are rejected, never clamped to the nearest legal status.
    """
    if can_transition_to(current_status, new_status):
        return

    allowed = get_valid_next_statuses(current_status)
    details = {"current_status": current_status, "requested_status": new_status, "allowed": allowed}
    if current_status == new_status:
        raise ConflictError(f"Order is already in '{current_status}' status", details)
    if not allowed:
        raise ConflictError(
            f"Order in '{current_status}' status cannot be changed. This is a terminal state.",
            details,
        )
    raise ConflictError(
        f"Cannot change order from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        details,
    )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def requires_notification(status: str) -> bool:
    """Does entering this status trigger a customer notification?"""
    config = STATUS_CONFIG.get(status)
    return bool(config and config["requires_notification"])


def get_status_group(status: str) -> Optional[str]:
    config = STATUS_CONFIG.get(status)
    return config["group"] if config else None


def get_status_label(status: str) -> str:
    config = STATUS_CONFIG.get(status)
    return config["label"] if config else status


def get_all_statuses() -> List[str]:
    return [status.value for status in OrderStatus]
