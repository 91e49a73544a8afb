"""
Routing API Endpoints.

Staff actions that move an order between branches and workstations:
- route_to_workstation: choose the processing branch
- mark_received: order arrived at the processing branch
- assign_to_stage: queue the order at a workstation
- mark_processing: work started at the assigned stage
- complete_processing: processing done, sorting window starts
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from cleanops.api.deps import DB, Notifier
from cleanops.models.order import WorkstationStage
from cleanops.schemas.branch import StaffResponse
from cleanops.schemas.order import OrderResponse
from cleanops.schemas.routing import RoutingActionRequest, RoutingMetrics
from cleanops.services.routing_service import RoutingService

router = APIRouter()


@router.post("/orders/{order_id}", response_model=OrderResponse, summary="Routing Action")
async def route_order(order_id: UUID, data: RoutingActionRequest, db: DB, notifier: Notifier):
    """Apply one routing action. Unknown actions are rejected with 400."""
    service = RoutingService(db, notifier)
    return await service.route_order(
        order_id,
        data.action,
        stage=data.stage,
        staff_id=data.staff_id,
        changed_by=data.changed_by,
    )


@router.post(
    "/orders/{order_id}/auto-assign",
    response_model=OrderResponse,
    summary="Assign To Least Loaded Staff"
)
async def auto_assign(
    order_id: UUID,
    db: DB,
    stage: WorkstationStage = Query(...),
    changed_by: Optional[str] = None,
):
    return await RoutingService(db).auto_assign_to_stage(order_id, stage, changed_by=changed_by)


@router.get("/branches/{branch_id}/metrics", response_model=RoutingMetrics, summary="Routing Metrics")
async def routing_metrics(branch_id: UUID, db: DB):
    return await RoutingService(db).get_routing_metrics(branch_id)


@router.get("/branches/{branch_id}/pending", response_model=List[OrderResponse], summary="Awaiting Transfer")
async def pending_routing(branch_id: UUID, db: DB):
    return await RoutingService(db).get_pending_routing(branch_id)


@router.get("/branches/{branch_id}/in-transit", response_model=List[OrderResponse], summary="In Transit")
async def in_transit(branch_id: UUID, db: DB):
    return await RoutingService(db).get_in_transit_to(branch_id)


@router.get(
    "/branches/{branch_id}/stages/{stage}",
    response_model=List[OrderResponse],
    summary="Workstation Queue"
)
async def stage_queue(branch_id: UUID, stage: WorkstationStage, db: DB):
    return await RoutingService(db).get_orders_at_stage(branch_id, stage)


@router.get(
    "/branches/{branch_id}/ready-for-return",
    response_model=List[OrderResponse],
    summary="Ready For Return"
)
async def ready_for_return(branch_id: UUID, db: DB):
    return await RoutingService(db).get_ready_for_return(branch_id)


@router.get(
    "/branches/{branch_id}/available-staff",
    response_model=Optional[StaffResponse],
    summary="Least Loaded Workstation Staff"
)
async def available_staff(branch_id: UUID, db: DB):
    return await RoutingService(db).find_available_staff_for_stage(branch_id)


@router.get("/staff/{staff_id}/orders", response_model=List[OrderResponse], summary="Staff Work Queue")
async def staff_orders(staff_id: UUID, db: DB):
    return await RoutingService(db).get_orders_for_staff(staff_id)
