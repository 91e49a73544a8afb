import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import UUIDType


class ClassificationOverride(Base):
    """Manual delivery classification change. Rows are never updated."""
    __tablename__ = "classification_overrides"

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
    original_classification: Mapped[str] = mapped_column(String(50), nullable=False)
    new_classification: Mapped[str] = mapped_column(String(50), nullable=False)
    override_by: Mapped[str] = mapped_column(String(100), nullable=False)
    override_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    override_by_role: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    override_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
