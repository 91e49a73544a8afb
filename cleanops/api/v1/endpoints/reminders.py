"""Uncollected order reminder endpoints."""
from typing import List
from uuid import UUID

from fastapi import APIRouter

from cleanops.api.deps import DB, Notifier
from cleanops.jobs.reminder_jobs import run_uncollected_reminders_job
from cleanops.schemas.order import OrderResponse
from cleanops.schemas.reminder import (
    CancelRemindersResult,
    ReminderResponse,
    ReminderStats,
    ReminderSweepResult,
)
from cleanops.services.reminder_service import ReminderService

router = APIRouter()


@router.post("/process", response_model=ReminderSweepResult, summary="Run Reminder Sweep")
async def process_reminders(db: DB, notifier: Notifier):
    """Send all due reminders now. Failures are reported per reminder, not raised."""
    return await run_uncollected_reminders_job(db, notifier)


@router.get("/stats", response_model=ReminderStats, summary="Reminder Statistics")
async def reminder_stats(db: DB):
    return await ReminderService(db).get_reminder_stats()


@router.get("/due", response_model=List[ReminderResponse], summary="Due Reminders")
async def due_reminders(db: DB):
    return await ReminderService(db).get_due_reminders()


@router.get(
    "/disposal-eligible",
    response_model=List[OrderResponse],
    summary="Orders Eligible For Disposal"
)
async def disposal_eligible(db: DB):
    return await ReminderService(db).get_disposal_eligible_orders()


@router.get("/orders/{order_id}", response_model=List[ReminderResponse], summary="Order Reminders")
async def order_reminders(order_id: UUID, db: DB):
    return await ReminderService(db).get_order_reminders(order_id)


@router.post(
    "/orders/{order_id}/schedule",
    response_model=List[ReminderResponse],
    summary="Schedule Order Reminders"
)
async def schedule_reminders(order_id: UUID, db: DB):
    service = ReminderService(db)
    await service.schedule_for_order(order_id)
    return await service.get_order_reminders(order_id)


@router.post(
    "/orders/{order_id}/cancel",
    response_model=CancelRemindersResult,
    summary="Cancel Order Reminders"
)
async def cancel_reminders(order_id: UUID, db: DB):
    cancelled = await ReminderService(db).cancel_for_order(order_id)
    return {"order_id": str(order_id), "cancelled": cancelled}
