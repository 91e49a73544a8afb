"""Delivery classification endpoints."""
from typing import List
from uuid import UUID

from fastapi import APIRouter

from cleanops.api.deps import DB
from cleanops.schemas.classification import (
    ClassificationOverrideRequest,
    ClassificationOverrideResponse,
    ClassificationResult,
    ClassifyOrderRequest,
)
from cleanops.services.classification_service import ClassificationService

router = APIRouter()


@router.post(
    "/{order_id}/classification",
    response_model=ClassificationResult,
    summary="Classify Order"
)
async def classify_order(order_id: UUID, db: DB, data: ClassifyOrderRequest = ClassifyOrderRequest()):
    """
    Re-run auto classification, or apply a manager override when one is given.

    An order with a manual override keeps it until another override.
    """
    service = ClassificationService(db)
    if data.override:
        return await _override(service, order_id, data.override)
    return await service.classify_order(order_id)


@router.post(
    "/{order_id}/classification/override",
    response_model=ClassificationResult,
    summary="Override Classification"
)
async def override_classification(order_id: UUID, data: ClassificationOverrideRequest, db: DB):
    return await _override(ClassificationService(db), order_id, data)


@router.get(
    "/{order_id}/classification/overrides",
    response_model=List[ClassificationOverrideResponse],
    summary="Override Audit Trail"
)
async def list_overrides(order_id: UUID, db: DB):
    return await ClassificationService(db).get_overrides(order_id)


async def _override(service: ClassificationService, order_id: UUID, data: ClassificationOverrideRequest):
    return await service.override_classification(
        order_id,
        user_id=data.user_id,
        user_role=data.user_role,
        new_classification=data.new_classification,
        reason=data.reason,
        user_name=data.user_name,
    )
