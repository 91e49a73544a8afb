from fastapi import APIRouter

from cleanops.api.v1.endpoints import (
    branches,
    orders,
    routing,
    classification,
    batches,
    transfers,
    reminders,
    jobs,
)

api_router = APIRouter(prefix="/api/v1")

# ==================== Branches & Staff ====================
api_router.include_router(
    branches.router,
    prefix="/branches",
    tags=["Branches"]
)

# ==================== Orders ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

# ==================== Routing ====================
api_router.include_router(
    routing.router,
    prefix="/routing",
    tags=["Routing"]
)

# ==================== Delivery Classification ====================
api_router.include_router(
    classification.router,
    prefix="/orders",
    tags=["Delivery Classification"]
)

# ==================== Processing Batches ====================
api_router.include_router(
    batches.router,
    prefix="/processing-batches",
    tags=["Processing Batches"]
)

# ==================== Transfers & Drivers ====================
api_router.include_router(
    transfers.router,
    prefix="/transfers",
    tags=["Transfers"]
)

# ==================== Uncollected Order Reminders ====================
api_router.include_router(
    reminders.router,
    prefix="/reminders",
    tags=["Reminders"]
)

# ==================== Background Jobs ====================
api_router.include_router(
    jobs.router,
    prefix="/jobs",
    tags=["Jobs"]
)
