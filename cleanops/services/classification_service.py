"""
Delivery Classification

Decides whether an order goes back to the customer by self-collection or
needs delivery, from its value, estimated weight and garment count.

Priority of criteria: value, then weight, then garment count. An order
within every threshold is customer_collects.

Managers may override the result. An override writes an audit row and
updates the order in the same commit, and marks the order's basis manual.
A manual basis is sticky: re-running auto classification leaves it alone
until another explicit override.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cleanops.config import settings
from cleanops.core.enum_utils import get_enum_value
from cleanops.core.exceptions import PermissionDeniedError, ValidationError
from cleanops.core.time_utils import utc_now
from cleanops.models.classification import ClassificationOverride
from cleanops.models.order import ClassificationBasis, Order, ReturnMethod
from cleanops.services.lookups import get_order

logger = logging.getLogger(__name__)


# Estimated weight per garment type, kg
GARMENT_WEIGHTS_KG: Dict[str, float] = {
    "Shirt": 0.2,
    "Blouse": 0.15,
    "T-Shirt": 0.15,
    "Tie": 0.05,
    "Scarf": 0.1,
    "Handkerchief": 0.02,
    "Pants": 0.4,
    "Trousers": 0.4,
    "Skirt": 0.3,
    "Dress": 0.4,
    "Shorts": 0.25,
    "Jacket": 0.8,
    "Coat": 1.2,
    "Suit": 1.0,
    "Blazer": 0.7,
    "Sweater": 0.5,
    "Bedding": 2.0,
    "Curtains": 1.5,
    "Blanket": 2.5,
    "Duvet": 3.0,
    "Pillow": 0.5,
}
DEFAULT_GARMENT_WEIGHT_KG = 0.3

OVERRIDE_ROLES = frozenset({
    "admin",
    "director",
    "general_manager",
    "store_manager",
    "logistics_manager",
})


def estimate_garment_weight(garments: Iterable[Dict[str, Any]]) -> float:
    """Estimated total weight in kg, rounded to 2 decimals."""
    total = 0.0
    for garment in garments or []:
        quantity = int(garment.get("quantity", 1) or 1)
        total += GARMENT_WEIGHTS_KG.get(garment.get("type", ""), DEFAULT_GARMENT_WEIGHT_KG) * quantity
    return round(total, 2)


def classify(
    garment_count: int,
    weight_kg: float,
    order_value: float,
    max_garments: Optional[int] = None,
    max_weight_kg: Optional[float] = None,
    max_value: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Pure classification.

    Returns:
        classification: customer_collects | delivery_required
        basis: always auto here
        criterion: value | weight | garment_count (None when within all thresholds)
        reason: human readable explanation
    """
    max_garments = settings.SMALL_ORDER_MAX_GARMENTS if max_garments is None else max_garments
    max_weight_kg = settings.SMALL_ORDER_MAX_WEIGHT_KG if max_weight_kg is None else max_weight_kg
    max_value = settings.SMALL_ORDER_MAX_VALUE if max_value is None else max_value

    details = {
        "garment_count": garment_count,
        "estimated_weight_kg": weight_kg,
        "order_value": order_value,
    }
    result = {
        "classification": ReturnMethod.DELIVERY_REQUIRED.value,
        "basis": ClassificationBasis.AUTO.value,
        "details": details,
    }

    if order_value > max_value:
        result["criterion"] = "value"
        result["reason"] = f"Order value ({order_value:,.2f}) exceeds threshold of {max_value:,.2f}"
        return result

    if weight_kg > max_weight_kg:
        result["criterion"] = "weight"
        result["reason"] = f"Estimated weight ({weight_kg}kg) exceeds threshold of {max_weight_kg}kg"
        return result

    if garment_count > max_garments:
        result["criterion"] = "garment_count"
        result["reason"] = f"Garment count ({garment_count}) exceeds threshold of {max_garments}"
        return result

    result["classification"] = ReturnMethod.CUSTOMER_COLLECTS.value
    result["criterion"] = None
    result["reason"] = (
        f"Order within self-collection limits: {garment_count} garments, "
        f"{weight_kg}kg estimated, value {order_value:,.2f}"
    )
    return result


def classify_order_attributes(order: Order) -> Dict[str, Any]:
    """classify() fed from an Order row. Uses the recorded weight when present."""
    if order.total_weight_kg is not None:
        weight = round(float(order.total_weight_kg), 2)
    else:
        weight = estimate_garment_weight(order.garments)
    return classify(
        garment_count=order.garment_count,
        weight_kg=weight,
        order_value=float(order.total_amount or 0),
    )


def can_override(role: Optional[str]) -> bool:
    return (role or "").lower() in OVERRIDE_ROLES


def validate_override(current: str, proposed: str, reason: Optional[str]) -> Optional[str]:
    """Return an error message, or None when the override is acceptable."""
    if get_enum_value(current) == get_enum_value(proposed):
        return "New classification must be different from current classification"
    min_length = settings.CLASSIFICATION_OVERRIDE_MIN_REASON_LENGTH
    if not reason or len(reason.strip()) < max(min_length, 1):
        return f"Override reason must be at least {max(min_length, 1)} characters"
    return None


class ClassificationService:
    """Applies classification and overrides to stored orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def apply_auto_classification(self, order: Order) -> Dict[str, Any]:
        """
        Set the order's return method from its attributes, unless a manual
        override is in force. Does not commit.
        """
        if order.classification_basis == ClassificationBasis.MANUAL.value:
            return {
                "classification": order.return_method,
                "basis": ClassificationBasis.MANUAL.value,
                "criterion": None,
                "reason": "Manual override in force",
                "details": {},
            }

        result = classify_order_attributes(order)
        order.return_method = result["classification"]
        order.classification_basis = ClassificationBasis.AUTO.value
        order.classification_criterion = result["criterion"]
        return result

    async def classify_order(self, order_id) -> Dict[str, Any]:
        order = await get_order(self.db, order_id)
        result = self.apply_auto_classification(order)
        await self.db.commit()
        logger.info(
            f"Order {order.order_number} classified {result['classification']} ({result['basis']})"
        )
        return {"order_id": str(order.id), **result}

    async def override_classification(
        self,
        order_id,
        user_id: str,
        user_role: str,
        new_classification: str,
        reason: str,
        user_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Manually set the classification.

        Raises:
            ValidationError: missing fields, no-op override, short reason
            PermissionDeniedError: role is not manager tier
            NotFoundError: order does not exist
        """
        if not user_id or not user_role or not new_classification:
            raise ValidationError("user_id, user_role and new_classification are required for an override")

        new_value = get_enum_value(new_classification)
        if new_value not in {m.value for m in ReturnMethod}:
            raise ValidationError(f"Invalid classification '{new_value}'")

        if not can_override(user_role):
            raise PermissionDeniedError(
                f"Role '{user_role}' cannot override delivery classification",
                {"allowed_roles": sorted(OVERRIDE_ROLES)},
            )

        order = await get_order(self.db, order_id)

        error = validate_override(order.return_method, new_value, reason)
        if error:
            raise ValidationError(error)

        now = utc_now()
        record = ClassificationOverride(
            order_id=order.id,
            original_classification=order.return_method,
            new_classification=new_value,
            override_by=user_id,
            override_by_name=user_name,
            override_by_role=user_role,
            reason=reason.strip(),
            override_at=now,
        )
        self.db.add(record)

        order.return_method = new_value
        order.classification_basis = ClassificationBasis.MANUAL.value
        order.classification_criterion = None
        order.classification_override_by = user_id
        order.classification_override_at = now
        order.classification_override_reason = reason.strip()

        await self.db.commit()
        await self.db.refresh(record)

        logger.info(
            f"Order {order.order_number} classification overridden "
            f"{record.original_classification} -> {new_value} by {user_id}"
        )
        return {
            "order_id": str(order.id),
            "classification": new_value,
            "basis": ClassificationBasis.MANUAL.value,
            "override_id": str(record.id),
            "original_classification": record.original_classification,
        }

    async def get_overrides(self, order_id) -> List[ClassificationOverride]:
        order = await get_order(self.db, order_id)
        result = await self.db.execute(
            select(ClassificationOverride)
            .where(ClassificationOverride.order_id == order.id)
            .order_by(ClassificationOverride.override_at)
        )
        return list(result.scalars().all())
