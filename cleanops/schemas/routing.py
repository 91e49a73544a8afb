"""Routing action and metrics schemas."""
from enum import Enum
from typing import Dict, Optional
import uuid

from pydantic import BaseModel


class RoutingAction(str, Enum):
    ROUTE_TO_WORKSTATION = "route_to_workstation"
    MARK_RECEIVED = "mark_received"
    ASSIGN_TO_STAGE = "assign_to_stage"
    MARK_PROCESSING = "mark_processing"
    COMPLETE_PROCESSING = "complete_processing"


class RoutingActionRequest(BaseModel):
    """action is validated by the routing service so unknown names get a specific message."""
    action: str
    stage: Optional[str] = None
    staff_id: Optional[uuid.UUID] = None
    changed_by: Optional[str] = None


class RoutingMetrics(BaseModel):
    branch_id: str
    pending_routing: int
    in_transit: int
    queue_by_stage: Dict[str, int]
    ready_for_return: int
    total_in_process: int
