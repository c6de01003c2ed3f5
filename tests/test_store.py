"""
Unit Tests for the In-Memory Repositories
"""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from deal_engine.errors import ApprovalNotFound, DealNotFound
from deal_engine.models import Approval, Deal
from deal_engine.store import InMemoryApprovalRepository, InMemoryDealRepository

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestDealRepository:
    @pytest.fixture
    def deals(self):
        return InMemoryDealRepository([Deal(id=1, status="submitted")])

    def test_compare_and_set_status(self, deals):
        assert deals.compare_and_set_status(1, "submitted", "under_review", NOW)

        deal = deals.get(1)
        assert deal.status == "under_review"
        assert deal.last_status_change == NOW

    def test_compare_and_set_status_refuses_stale_expectation(self, deals):
        deals.update_status(1, "lost", NOW)

        assert not deals.compare_and_set_status(1, "submitted", "under_review", NOW)
        assert deals.get(1).status == "lost"

    def test_unknown_deal(self, deals):
        with pytest.raises(DealNotFound):
            deals.compare_and_set_status(9, "draft", "submitted", NOW)

    def test_returned_deals_are_copies(self, deals):
        deal = deals.get(1)
        deal.status = "signed"
        assert deals.get(1).status == "submitted"


class TestApprovalRepository:
    @pytest.fixture
    def approvals(self):
        repo = InMemoryApprovalRepository()
        repo.add_many([
            Approval(deal_id=1, approval_stage=2, department_name="trading", required_role="department_reviewer"),
            Approval(deal_id=1, approval_stage=1, department_name="finance", required_role="department_reviewer"),
        ])
        return repo

    def test_list_is_ordered_by_stage(self, approvals):
        assert [a.department_name for a in approvals.list_for_deal(1)] == ["finance", "trading"]

    def test_compare_and_set(self, approvals):
        row = approvals.get(1)

        assert approvals.compare_and_set(1, "pending", replace(row, status="approved"))
        assert not approvals.compare_and_set(1, "pending", replace(row, status="rejected"))
        assert approvals.get(1).status == "approved"

    def test_compare_and_set_unknown_row(self, approvals):
        with pytest.raises(ApprovalNotFound):
            approvals.compare_and_set(99, "pending", approvals.get(1))

    def test_supersede_moves_rows_to_history(self, approvals):
        assert approvals.supersede_for_deal(1) == 2
        assert approvals.list_for_deal(1) == []
        assert len(approvals.history_for_deal(1)) == 2
