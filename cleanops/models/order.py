import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import JSONType, UUIDType


class OrderStatus(str, Enum):
    """Garment processing status."""
    # Intake
    RECEIVED = "received"
    INSPECTION = "inspection"
    QUEUED = "queued"

    # Workstations
    WASHING = "washing"
    DRYING = "drying"
    IRONING = "ironing"
    QUALITY_CHECK = "quality_check"
    PACKAGING = "packaging"

    # Return to customer
    READY = "ready"
    QUEUED_FOR_DELIVERY = "queued_for_delivery"
    OUT_FOR_DELIVERY = "out_for_delivery"

    # Final states
    DELIVERED = "delivered"
    COLLECTED = "collected"
    CANCELLED = "cancelled"
    DISPOSED = "disposed"


class RoutingStatus(str, Enum):
    """Physical routing status, tracked alongside OrderStatus."""
    PENDING = "pending"                    # Transfer to main store required
    IN_TRANSIT = "in_transit"              # On a transfer batch
    RECEIVED = "received"                  # Arrived at processing branch
    ASSIGNED = "assigned"                  # Queued at a workstation
    PROCESSING = "processing"              # Being worked on
    READY_FOR_RETURN = "ready_for_return"  # Processed and sorted


class WorkstationStage(str, Enum):
    INSPECTION = "inspection"
    WASHING = "washing"
    DRYING = "drying"
    IRONING = "ironing"
    QUALITY_CHECK = "quality_check"
    PACKAGING = "packaging"


class ReturnMethod(str, Enum):
    CUSTOMER_COLLECTS = "customer_collects"
    DELIVERY_REQUIRED = "delivery_required"


class ClassificationBasis(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"


class Order(Base):
    """
    Dry-cleaning order.

    status and routing_status are written together through
    cleanops.services.order_state.apply_order_state.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_branch_status', 'branch_id', 'status'),
        Index('ix_order_processing_routing', 'processing_branch_id', 'routing_status'),
        Index('ix_order_stage', 'assigned_workstation_stage'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="ORD-{BRANCH}-{YYYYMMDD}-{####}"
    )

    # Branches
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("branches.id"),
        nullable=False,
        index=True
    )
    processing_branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("branches.id"),
        nullable=True
    )

    # State
    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.RECEIVED.value,
        nullable=False,
        comment="received, inspection, queued, washing, drying, ironing, quality_check, "
                "packaging, ready, queued_for_delivery, out_for_delivery, delivered, "
                "collected, cancelled, disposed"
    )
    routing_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="pending, in_transit, received, assigned, processing, ready_for_return"
    )
    assigned_workstation_stage: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    assigned_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True
    )
    processing_batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    transfer_batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Customer
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Garments: [{"type": "Shirt", "quantity": 2}, ...]
    garments: Mapped[List[dict]] = mapped_column(JSONType, default=list)
    total_weight_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)

    # Money
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.PENDING.value,
        nullable=False
    )

    # Delivery classification
    return_method: Mapped[str] = mapped_column(
        String(50),
        default=ReturnMethod.CUSTOMER_COLLECTS.value,
        nullable=False
    )
    classification_basis: Mapped[str] = mapped_column(
        String(50),
        default=ClassificationBasis.AUTO.value,
        nullable=False
    )
    classification_criterion: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="value, weight, garment_count"
    )
    classification_override_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    classification_override_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    classification_override_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
    routed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    arrived_at_branch_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at_main_store_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_completion_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_completion_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sorting_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    earliest_delivery_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    collected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def garment_count(self) -> int:
        return sum(int(g.get("quantity", 1) or 1) for g in (self.garments or []))

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderStatusHistory(Base):
    """Append-only audit of status/routing changes."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    routing_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    changed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
