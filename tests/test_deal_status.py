"""
Unit Tests for Deal Status Transitions
"""

import pytest

from deal_engine.errors import InvalidStateTransition
from deal_engine.models import DEAL_STATUSES
from deal_engine.status import (
    STATUS_TRANSITIONS,
    available_transitions,
    can_transition_status,
    ensure_transition,
    is_terminal_status,
)


class TestStatusGraph:
    """Test the transition graph."""

    def test_every_status_has_an_entry(self):
        assert set(STATUS_TRANSITIONS) == set(DEAL_STATUSES)

    @pytest.mark.parametrize("status", ["signed", "lost", "canceled"])
    def test_terminal_statuses(self, status):
        assert is_terminal_status(status)
        assert available_transitions(status) == ()

    def test_workflow_path_is_allowed(self):
        path = ["draft", "submitted", "under_review", "approved", "signed"]
        for current, new in zip(path, path[1:]):
            assert can_transition_status(current, new) == (True, None)

    def test_resubmission_path_is_allowed(self):
        assert can_transition_status("under_review", "revision_requested")[0]
        assert can_transition_status("revision_requested", "submitted")[0]

    def test_skipping_review_is_refused(self):
        allowed, reason = can_transition_status("draft", "approved")

        assert not allowed
        assert "draft" in reason

    def test_unknown_status(self):
        allowed, reason = can_transition_status("draft", "archived")

        assert not allowed
        assert "archived" in reason


class TestRolePermissions:
    """Test role-restricted transitions."""

    def test_seller_submits(self):
        assert can_transition_status("draft", "submitted", "seller")[0]

    def test_seller_cannot_approve(self):
        assert not can_transition_status("under_review", "approved", "seller")[0]

    def test_approver_approves(self):
        assert can_transition_status("under_review", "approved", "approver")[0]

    def test_legal_signs(self):
        assert available_transitions("approved", "legal") == ("negotiating", "signed", "lost")

    def test_admin_follows_graph(self):
        for status, targets in STATUS_TRANSITIONS.items():
            assert available_transitions(status, "admin") == targets

    def test_unknown_role_has_no_transitions(self):
        assert available_transitions("draft", "intern") == ()


class TestEnsureTransition:
    def test_allowed(self):
        ensure_transition("submitted", "under_review")

    def test_refused(self):
        with pytest.raises(InvalidStateTransition):
            ensure_transition("lost", "submitted")
