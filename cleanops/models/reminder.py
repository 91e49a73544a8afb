import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import UUIDType


class ReminderType(str, Enum):
    """Escalation tiers, in order."""
    SEVEN_DAYS = "7_days"
    FOURTEEN_DAYS = "14_days"
    THIRTY_DAYS = "30_days"
    MONTHLY = "monthly"
    DISPOSAL_ELIGIBLE = "disposal_eligible"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Reminder(Base):
    """Uncollected-order reminder. Customer contact is copied from the order."""
    __tablename__ = "reminders"
    __table_args__ = (
        Index('ix_reminder_status_scheduled', 'status', 'scheduled_for'),
    )

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
    reminder_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="7_days, 14_days, 30_days, monthly, disposal_eligible"
    )
    status: Mapped[str] = mapped_column(
        String(50),
        default=ReminderStatus.PENDING.value,
        nullable=False
    )
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notification_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Reminder(type='{self.reminder_type}', status='{self.status}')>"
