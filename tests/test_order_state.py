"""Tests for the combined garment status / routing status value."""

import uuid

import pytest

from cleanops.core.exceptions import ConflictError
from cleanops.models.order import Order
from cleanops.services.order_state import (
    OrderState,
    apply_order_state,
    check_state_change,
    routing_for_status,
)


def _order(status, routing_status=None):
    return Order(id=uuid.uuid4(), order_number="ORD-T-1", status=status, routing_status=routing_status)


class TestConsistency:

    def test_unrouted_order_is_always_consistent(self):
        assert OrderState("washing").is_consistent

    @pytest.mark.parametrize("status,routing", [
        ("received", "pending"),
        ("received", "in_transit"),
        ("inspection", "received"),
        ("washing", "assigned"),
        ("drying", "processing"),
        ("queued_for_delivery", "ready_for_return"),
        ("collected", "ready_for_return"),
    ])
    def test_consistent_pairs(self, status, routing):
        assert OrderState(status, routing).is_consistent

    @pytest.mark.parametrize("status,routing", [
        ("washing", "pending"),
        ("received", "processing"),
        ("ready", "assigned"),
        ("inspection", "in_transit"),
    ])
    def test_inconsistent_pairs(self, status, routing):
        assert not OrderState(status, routing).is_consistent


class TestRoutingForStatus:

    def test_unrouted_stays_unrouted(self):
        assert routing_for_status("queued", None) is None

    def test_ready_moves_routing_to_return(self):
        assert routing_for_status("ready", "processing") == "ready_for_return"

    def test_leaving_inspection_assigns(self):
        assert routing_for_status("queued", "received") == "assigned"

    def test_other_changes_keep_routing(self):
        assert routing_for_status("drying", "processing") == "processing"


class TestApplyOrderState:

    def test_sets_both_fields_and_returns_history(self):
        order = _order("received")
        history = apply_order_state(order, OrderState("inspection", "assigned"), changed_by="u1", note="n")
        assert (order.status, order.routing_status) == ("inspection", "assigned")
        assert history.from_status == "received"
        assert history.to_status == "inspection"
        assert history.routing_status == "assigned"
        assert history.changed_by == "u1"

    def test_no_change_returns_none(self):
        order = _order("washing", "assigned")
        assert apply_order_state(order, OrderState("washing", "assigned")) is None

    def test_unchanged_status_rejected_when_change_required(self):
        order = _order("washing", "assigned")
        with pytest.raises(ConflictError, match="already in 'washing'"):
            apply_order_state(order, OrderState("washing", "processing"), require_status_change=True)
        assert order.routing_status == "assigned"

    def test_illegal_status_leaves_order_untouched(self):
        order = _order("washing", "processing")
        with pytest.raises(ConflictError):
            apply_order_state(order, OrderState("packaging", "processing"))
        assert (order.status, order.routing_status) == ("washing", "processing")

    def test_inconsistent_pair_leaves_order_untouched(self):
        order = _order("received")
        with pytest.raises(ConflictError, match="not valid while routing"):
            apply_order_state(order, OrderState("received", "processing"))
        assert order.routing_status is None

    def test_routing_only_change_skips_transition_check(self):
        check_state_change(OrderState("washing", "assigned"), OrderState("washing", "processing"))
