import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import JSONType, UUIDType


class ProcessingStage(str, Enum):
    """Workstation stages that run in batches."""
    WASHING = "washing"
    DRYING = "drying"
    IRONING = "ironing"


class BatchStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProcessingBatch(Base):
    """
    Group of orders moved through one workstation stage together.

    Orders are referenced by id; start/complete advance every member or none.
    """
    __tablename__ = "processing_batches"
    __table_args__ = (
        Index('ix_processing_batch_branch_status', 'branch_id', 'status'),
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
        comment="PROC-{STAGE}-{YYYYMMDD}-{####}"
    )
    stage: Mapped[str] = mapped_column(String(50), nullable=False, comment="washing, drying, ironing")
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("branches.id"),
        nullable=False
    )
    order_ids: Mapped[List[str]] = mapped_column(JSONType, default=list)
    staff_ids: Mapped[List[str]] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(
        String(50),
        default=BatchStatus.PENDING.value,
        nullable=False,
        comment="pending, in_progress, completed"
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ProcessingBatch(number='{self.batch_number}', status='{self.status}')>"
