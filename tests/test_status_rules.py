"""Tests for the order status state machine."""

import pytest

from cleanops.core.exceptions import ConflictError
from cleanops.models.order import OrderStatus
from cleanops.services.status_rules import (
    GARMENT_TRANSITIONS,
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition_to,
    get_all_statuses,
    get_status_group,
    get_valid_next_statuses,
    is_terminal,
    requires_notification,
    validate_transition,
)

PIPELINE = [
    "received", "queued", "washing", "drying", "ironing",
    "quality_check", "packaging", "ready", "out_for_delivery", "delivered",
]


class TestTransitionTable:

    @pytest.mark.parametrize("status", get_all_statuses())
    def test_no_self_loops(self, status):
        assert can_transition_to(status, status) is False

    def test_garment_pipeline_is_walkable(self):
        for current, following in zip(PIPELINE, PIPELINE[1:]):
            assert can_transition_to(current, following), f"{current} -> {following}"

    @pytest.mark.parametrize("status", ["delivered", "collected"])
    def test_garment_terminal_states_have_no_successors(self, status):
        assert get_valid_next_statuses(status) == []
        assert is_terminal(status)

    def test_cancelled_and_disposed_are_terminal(self):
        assert TERMINAL_STATUSES == {"delivered", "collected", "cancelled", "disposed"}

    def test_quality_check_is_the_only_backward_edge(self):
        order = {status: index for index, status in enumerate(PIPELINE + ["collected"])}
        backward = [
            (current, target)
            for current, targets in GARMENT_TRANSITIONS.items()
            for target in targets
            if order[target] < order[current]
        ]
        assert backward == [("quality_check", "washing")]

    def test_branch_points_of_garment_table(self):
        branching = sorted(s for s, targets in GARMENT_TRANSITIONS.items() if len(targets) > 1)
        assert branching == ["quality_check", "ready"]
        assert set(GARMENT_TRANSITIONS["quality_check"]) == {"packaging", "washing"}
        assert all(len(t) <= 1 for s, t in GARMENT_TRANSITIONS.items() if s not in branching)

    def test_lifecycle_edges_are_included(self):
        assert can_transition_to("received", "inspection")
        assert can_transition_to("inspection", "queued")
        assert can_transition_to("packaging", "queued_for_delivery")
        assert can_transition_to("queued_for_delivery", "collected")

    def test_every_status_has_an_entry(self):
        assert set(ORDER_TRANSITIONS) == {s.value for s in OrderStatus}

    def test_skipping_a_stage_is_not_allowed(self):
        assert not can_transition_to("washing", "ironing")
        assert not can_transition_to("received", "washing")


class TestValidateTransition:

    def test_valid_transition_passes(self):
        validate_transition("washing", "drying")

    def test_invalid_transition_raises_with_allowed_list(self):
        with pytest.raises(ConflictError) as exc_info:
            validate_transition("washing", "packaging")
        assert "Allowed transitions: drying" in exc_info.value.message
        assert exc_info.value.details["allowed"] == ["drying"]

    def test_same_status_message(self):
        with pytest.raises(ConflictError, match="already in 'drying'"):
            validate_transition("drying", "drying")

    def test_terminal_status_message(self):
        with pytest.raises(ConflictError, match="terminal state"):
            validate_transition("delivered", "ready")


class TestStatusMetadata:

    @pytest.mark.parametrize("status", ["ready", "out_for_delivery", "delivered"])
    def test_notification_statuses(self, status):
        assert requires_notification(status)

    @pytest.mark.parametrize("status", ["received", "washing", "packaging", "collected"])
    def test_silent_statuses(self, status):
        assert not requires_notification(status)

    def test_groups(self):
        assert get_status_group("received") == "Pending"
        assert get_status_group("ironing") == "Processing"
        assert get_status_group("ready") == "Ready"
        assert get_status_group("collected") == "Completed"
        assert get_status_group("unknown") is None
