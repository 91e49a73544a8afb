"""Branch and staff endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status
from sqlalchemy import and_, select

from cleanops.api.deps import DB
from cleanops.core.exceptions import ConflictError, ValidationError
from cleanops.models.branch import Branch, BranchType, Staff, StaffRole
from cleanops.schemas.branch import (
    BranchCreate,
    BranchResponse,
    StaffCreate,
    StaffListResponse,
    StaffResponse,
)
from cleanops.schemas.routing import RoutingMetrics
from cleanops.services.lookups import get_branch
from cleanops.services.routing_service import RoutingService

router = APIRouter()


@router.post(
    "",
    response_model=BranchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Branch"
)
async def create_branch(data: BranchCreate, db: DB):
    """Create a main store or a satellite attached to a main store."""
    existing = await db.execute(select(Branch.id).where(Branch.code == data.code.upper()))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Branch code {data.code.upper()} already exists")

    if data.branch_type == BranchType.SATELLITE and data.main_store_id:
        main_store = await get_branch(db, data.main_store_id)
        if main_store.branch_type != BranchType.MAIN.value:
            raise ValidationError(f"Branch {main_store.code} is not a main store")
    elif data.branch_type == BranchType.MAIN and data.main_store_id:
        raise ValidationError("A main store cannot reference another main store")

    branch = Branch(
        code=data.code.upper(),
        name=data.name,
        branch_type=data.branch_type.value,
        main_store_id=data.main_store_id,
        sorting_window_hours=data.sorting_window_hours,
    )
    db.add(branch)
    await db.commit()
    await db.refresh(branch)
    return branch


@router.get("", response_model=List[BranchResponse], summary="List Branches")
async def list_branches(db: DB, branch_type: Optional[BranchType] = None):
    query = select(Branch).where(Branch.is_active == True)  # noqa: E712
    if branch_type:
        query = query.where(Branch.branch_type == branch_type.value)
    result = await db.execute(query.order_by(Branch.code))
    return result.scalars().all()


@router.get("/{branch_id}", response_model=BranchResponse, summary="Get Branch")
async def get_branch_detail(branch_id: UUID, db: DB):
    return await get_branch(db, branch_id)


@router.get(
    "/{branch_id}/routing-metrics",
    response_model=RoutingMetrics,
    summary="Branch Routing Metrics"
)
async def branch_routing_metrics(branch_id: UUID, db: DB):
    """Queue depth per stage and pending / in-transit / ready-for-return counts."""
    await get_branch(db, branch_id)
    return await RoutingService(db).get_routing_metrics(branch_id)


@router.post(
    "/{branch_id}/staff",
    response_model=StaffResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Staff Member"
)
async def create_staff(branch_id: UUID, data: StaffCreate, db: DB):
    if data.branch_id != branch_id:
        raise ValidationError("branch_id in body does not match the URL")
    await get_branch(db, branch_id)

    staff = Staff(
        name=data.name,
        phone=data.phone,
        role=data.role.value,
        branch_id=branch_id,
    )
    db.add(staff)
    await db.commit()
    await db.refresh(staff)
    return staff


@router.get("/{branch_id}/staff", response_model=StaffListResponse, summary="List Staff")
async def list_staff(branch_id: UUID, db: DB, role: Optional[StaffRole] = None):
    await get_branch(db, branch_id)
    conditions = [Staff.branch_id == branch_id, Staff.is_active == True]  # noqa: E712
    if role:
        conditions.append(Staff.role == role.value)
    result = await db.execute(select(Staff).where(and_(*conditions)).order_by(Staff.name))
    return {"items": result.scalars().all()}
