"""Tests for delivery classification and manager overrides."""

import pytest
from sqlalchemy import select

from cleanops.core.exceptions import PermissionDeniedError, ValidationError
from cleanops.models.classification import ClassificationOverride
from cleanops.services.classification_service import (
    ClassificationService,
    can_override,
    classify,
    estimate_garment_weight,
    validate_override,
)


class TestClassify:

    def test_small_order_collects(self):
        result = classify(garment_count=3, weight_kg=1.0, order_value=800)
        assert result["classification"] == "customer_collects"
        assert result["basis"] == "auto"
        assert result["criterion"] is None

    def test_value_wins_over_other_criteria(self):
        result = classify(garment_count=20, weight_kg=30.0, order_value=9000)
        assert result["classification"] == "delivery_required"
        assert result["criterion"] == "value"

    def test_weight_before_garment_count(self):
        result = classify(garment_count=20, weight_kg=12.0, order_value=100)
        assert result["criterion"] == "weight"

    def test_garment_count(self):
        result = classify(garment_count=6, weight_kg=1.0, order_value=100)
        assert result["criterion"] == "garment_count"

    def test_thresholds_are_exclusive(self):
        result = classify(garment_count=5, weight_kg=10.0, order_value=5000)
        assert result["classification"] == "customer_collects"

    def test_explicit_thresholds(self):
        result = classify(garment_count=2, weight_kg=1.0, order_value=100, max_garments=1)
        assert result["criterion"] == "garment_count"

    def test_garment_weight_estimate(self):
        weight = estimate_garment_weight([
            {"type": "Duvet", "quantity": 2},
            {"type": "Shirt", "quantity": 1},
            {"type": "Mystery", "quantity": 1},
        ])
        assert weight == 6.5


class TestOverrideRules:

    @pytest.mark.parametrize("role", ["admin", "director", "general_manager", "store_manager", "logistics_manager"])
    def test_manager_roles_can_override(self, role):
        assert can_override(role)

    @pytest.mark.parametrize("role", ["driver", "workstation", "front_desk", "", None])
    def test_other_roles_cannot(self, role):
        assert not can_override(role)

    @pytest.mark.parametrize("reason", ["", "short", "a perfectly good reason for it"])
    def test_no_op_override_always_rejected(self, reason):
        error = validate_override("customer_collects", "customer_collects", reason)
        assert error == "New classification must be different from current classification"

    def test_reason_required(self):
        assert validate_override("customer_collects", "delivery_required", "   ") is not None
        assert validate_override("customer_collects", "delivery_required", None) is not None

    def test_valid_override(self):
        assert validate_override("customer_collects", "delivery_required", "Customer is elderly") is None


class TestClassificationService:

    async def test_new_order_is_auto_classified(self, main_store, make_order):
        order = await make_order(main_store, garments=[{"type": "Shirt", "quantity": 8}])
        assert order.return_method == "delivery_required"
        assert order.classification_basis == "auto"
        assert order.classification_criterion == "garment_count"

    async def test_override_writes_audit_and_order_together(self, db, main_store, make_order):
        order = await make_order(main_store)
        service = ClassificationService(db)

        result = await service.override_classification(
            order.id,
            user_id="mgr-1",
            user_role="store_manager",
            new_classification="delivery_required",
            reason="Customer cannot travel this week",
            user_name="Mary Manager",
        )

        assert result["basis"] == "manual"
        assert result["original_classification"] == "customer_collects"
        assert order.return_method == "delivery_required"
        assert order.classification_basis == "manual"
        assert order.classification_override_by == "mgr-1"

        audit = (await db.execute(select(ClassificationOverride))).scalars().all()
        assert len(audit) == 1
        assert audit[0].new_classification == "delivery_required"
        assert audit[0].override_by_role == "store_manager"

    async def test_manual_basis_is_sticky(self, db, main_store, make_order):
        order = await make_order(main_store)
        service = ClassificationService(db)
        await service.override_classification(
            order.id, "mgr-1", "director", "delivery_required", "Bulky wedding dress inside",
        )

        result = await service.classify_order(order.id)

        assert result["basis"] == "manual"
        assert order.return_method == "delivery_required"
        assert order.classification_basis == "manual"

    async def test_non_manager_is_forbidden(self, db, main_store, make_order):
        order = await make_order(main_store)
        with pytest.raises(PermissionDeniedError):
            await ClassificationService(db).override_classification(
                order.id, "u-9", "front_desk", "delivery_required", "Customer asked nicely",
            )
        assert order.classification_basis == "auto"

    async def test_no_op_override_rejected(self, db, main_store, make_order):
        order = await make_order(main_store)
        with pytest.raises(ValidationError, match="must be different"):
            await ClassificationService(db).override_classification(
                order.id, "mgr-1", "admin", "customer_collects", "No change intended here",
            )
        assert (await ClassificationService(db).get_overrides(order.id)) == []

    async def test_missing_fields_rejected(self, db, main_store, make_order):
        order = await make_order(main_store)
        with pytest.raises(ValidationError, match="required"):
            await ClassificationService(db).override_classification(
                order.id, "", "admin", "delivery_required", "Some valid reason",
            )
