import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from cleanops.database import Base
from cleanops.db_types import UUIDType


class BranchType(str, Enum):
    """Main stores process garments; satellites only take them in."""
    MAIN = "main"
    SATELLITE = "satellite"


class StaffRole(str, Enum):
    """Staff roles relevant to routing."""
    DRIVER = "driver"
    WORKSTATION = "workstation"
    FRONT_DESK = "front_desk"
    STORE_MANAGER = "store_manager"
    LOGISTICS_MANAGER = "logistics_manager"
    GENERAL_MANAGER = "general_manager"
    DIRECTOR = "director"
    ADMIN = "admin"


class Branch(Base):
    """
    Store location.

    A satellite references the main store that processes its orders.
    """
    __tablename__ = "branches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    branch_type: Mapped[str] = mapped_column(
        String(50),
        default=BranchType.MAIN.value,
        nullable=False,
        comment="main, satellite"
    )
    main_store_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True
    )
    sorting_window_hours: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Hours between processing completion and earliest delivery"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_satellite(self) -> bool:
        return self.branch_type == BranchType.SATELLITE.value

    def __repr__(self) -> str:
        return f"<Branch(code='{self.code}', type='{self.branch_type}')>"


class Staff(Base):
    """Staff member attached to a branch. Drivers are staff with the driver role."""
    __tablename__ = "staff"
    __table_args__ = (
        Index('ix_staff_branch_role', 'branch_id', 'role'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Staff(name='{self.name}', role='{self.role}')>"
