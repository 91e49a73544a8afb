import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import JSONType, UUIDType


class TransferBatchStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"


class TransferBatch(Base):
    """Orders carried from a satellite to its main store by one driver."""
    __tablename__ = "transfer_batches"
    __table_args__ = (
        Index('ix_transfer_batch_driver_status', 'assigned_driver_id', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    batch_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        comment="TRF-{SATELLITE}-{YYYYMMDD}-{####}"
    )
    satellite_branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("branches.id"),
        nullable=False
    )
    main_store_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("branches.id"),
        nullable=False
    )
    order_ids: Mapped[List[str]] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(
        String(50),
        default=TransferBatchStatus.PENDING.value,
        nullable=False,
        comment="pending, in_transit, received"
    )
    assigned_driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    driver_assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TransferBatch(number='{self.batch_number}', status='{self.status}')>"
