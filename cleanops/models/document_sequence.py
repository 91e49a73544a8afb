"""
Document Sequence Model for Atomic Number Generation

Human readable numbers are allocated from a counter row per
(document type, partition) where the partition is a branch or stage
code plus the calendar day:

    ORD:NRB01:20261017  ->  ORD-NRB01-20261017-0001
    PROC:WASHING:20261017 -> PROC-WASHING-20261017-0001
    TRF:WLK02:20261017  ->  TRF-WLK02-20261017-0001

The counter is incremented by the database in a single upsert statement.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import UUIDType


class DocumentType(str, Enum):
    """Document types that use sequence numbering."""
    ORDER = "ORD"
    PROCESSING_BATCH = "PROC"
    TRANSFER_BATCH = "TRF"


class DocumentSequence(Base):
    """
    Counter row for one partition.

    Example:
        partition_key = "ORD:NRB01:20261017"
        current_number = 42
        → Next number: ORD-NRB01-20261017-0043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("partition_key", name="uq_document_sequence_partition"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="ORD, PROC, TRF"
    )
    partition_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="{TYPE}:{SCOPE}:{YYYYMMDD}"
    )
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=4,
        comment="Zero padding for sequence (4 = 0001)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.partition_key}: {self.current_number})>"
