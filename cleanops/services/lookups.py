"""Fetch-or-raise helpers shared by the services."""
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.core.exceptions import NotFoundError, ValidationError
from cleanops.models.branch import Branch, Staff
from cleanops.models.order import Order


def as_uuid(value, field: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid {field}: {value}")


async def get_order(db: AsyncSession, order_id, for_update: bool = False) -> Order:
    query = select(Order).where(Order.id == as_uuid(order_id, "order_id"))
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


async def get_branch(db: AsyncSession, branch_id) -> Branch:
    branch = await db.get(Branch, as_uuid(branch_id, "branch_id"))
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


async def find_branch(db: AsyncSession, branch_id) -> Optional[Branch]:
    if branch_id is None:
        return None
    return await db.get(Branch, as_uuid(branch_id, "branch_id"))


async def get_staff(db: AsyncSession, staff_id) -> Staff:
    staff = await db.get(Staff, as_uuid(staff_id, "staff_id"))
    if not staff:
        raise NotFoundError(f"Staff member {staff_id} not found")
    return staff
