"""
Unit Tests for the Approval Workflow Engine

Tests verify initiation, stage-ordered reviews, halting on rejection or
revision, resubmission rounds and the deal status updates that follow.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from deal_engine.errors import (
    DealNotFound,
    InvalidStateTransition,
    NotAuthorized,
    WorkflowAlreadyInitiated,
)
from deal_engine.models import Approval, ApprovalChain, ChainStage, Deal, DealAttributes, Reviewer
from deal_engine.routing import ApprovalRuleMatcher
from deal_engine.store import InMemoryApprovalRepository, InMemoryDealRepository
from deal_engine.workflow import (
    ApprovalWorkflowEngine,
    can_user_review,
    current_stage,
    workflow_state,
)

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
ADMIN = Reviewer(id=1, role="admin")


def standard_chain(incentive_types=()):
    attrs = DealAttributes(total_value=Decimal("300000"), deal_type="grow", sales_channel="client_direct")
    return ApprovalRuleMatcher().match(attrs, incentive_types)


@pytest.fixture
def deals():
    return InMemoryDealRepository([Deal(id=1, status="draft"), Deal(id=2, status="draft")])


@pytest.fixture
def approvals():
    return InMemoryApprovalRepository()


@pytest.fixture
def engine(deals, approvals):
    return ApprovalWorkflowEngine(deals, approvals, clock=lambda: NOW)


class TestInitiation:
    """Test creating the approval rows."""

    def test_creates_one_pending_row_per_chain_entry(self, engine):
        rows = engine.initiate_workflow(1, standard_chain(), initiated_by=7)

        assert [(r.approval_stage, r.department_name) for r in rows] == [
            (1, "finance"),
            (2, "trading"),
            (3, "business"),
        ]
        assert all(r.status == "pending" for r in rows)
        assert all(r.workflow_round == 1 for r in rows)
        assert [r.id for r in rows] == [1, 2, 3]

    def test_moves_deal_to_submitted(self, engine, deals):
        engine.initiate_workflow(1, standard_chain())

        deal = deals.get(1)
        assert deal.status == "submitted"
        assert deal.last_status_change == NOW

    def test_due_dates_accumulate_per_stage(self, engine):
        """Stage estimates 2, 2, 2 days give due dates at +2, +4, +6 days."""
        rows = engine.initiate_workflow(1, standard_chain())
        assert [r.due_date for r in rows] == [
            NOW + timedelta(days=2),
            NOW + timedelta(days=4),
            NOW + timedelta(days=6),
        ]

    def test_parallel_entries_share_a_due_date(self, engine):
        rows = engine.initiate_workflow(1, standard_chain(["product_incentive"]))

        stage_one = [r for r in rows if r.approval_stage == 1]
        assert len(stage_one) == 2
        assert stage_one[0].due_date == stage_one[1].due_date

    def test_second_initiation_fails_without_changes(self, engine, approvals):
        engine.initiate_workflow(1, standard_chain())
        before = approvals.list_for_deal(1)

        with pytest.raises(WorkflowAlreadyInitiated):
            engine.initiate_workflow(1, standard_chain())

        assert approvals.list_for_deal(1) == before

    def test_empty_chain_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.initiate_workflow(1, ApprovalChain("none", (), 0))

    def test_unknown_deal(self, engine):
        with pytest.raises(DealNotFound):
            engine.initiate_workflow(99, standard_chain())

    def test_terminal_deal_cannot_be_submitted(self, deals, approvals, engine):
        deals.save(Deal(id=3, status="lost"))

        with pytest.raises(InvalidStateTransition):
            engine.initiate_workflow(3, standard_chain())

        assert approvals.list_for_deal(3) == []

    def test_deals_are_independent(self, engine):
        engine.initiate_workflow(1, standard_chain())
        rows = engine.initiate_workflow(2, standard_chain())

        assert all(r.deal_id == 2 for r in rows)
        assert engine.get_workflow_state(2) == "initiated"


class TestReviewSequence:
    """Test approving a chain stage by stage."""

    @pytest.fixture
    def rows(self, engine):
        return engine.initiate_workflow(1, standard_chain())

    def test_completes_only_at_last_approval(self, engine, deals, rows):
        """Progress after each of 3 approvals: 33%, 67%, 100%."""
        expected = [(33, False), (67, False), (100, True)]
        for row, (percentage, complete) in zip(rows, expected):
            engine.review_approval(row.id, "approved", None, ADMIN)
            progress = engine.get_workflow_progress(1)
            assert (progress.percentage, progress.is_complete) == (percentage, complete)

        assert engine.get_workflow_state(1) == "approved_complete"
        assert deals.get(1).status == "approved"

    def test_first_review_moves_deal_under_review(self, engine, deals, rows):
        engine.review_approval(rows[0].id, "approved", "Looks fine", ADMIN)
        assert deals.get(1).status == "under_review"

    def test_review_records_reviewer(self, engine, rows):
        updated = engine.review_approval(rows[0].id, "approved", "Margins OK", ADMIN)

        assert updated.status == "approved"
        assert updated.comments == "Margins OK"
        assert updated.reviewed_by == ADMIN.id
        assert updated.reviewed_at == NOW

    def test_later_stage_not_actionable(self, engine, approvals, rows):
        with pytest.raises(InvalidStateTransition):
            engine.review_approval(rows[1].id, "approved", None, ADMIN)
        assert approvals.get(rows[1].id).status == "pending"

    def test_reviewed_row_cannot_be_reviewed_again(self, engine, rows):
        engine.review_approval(rows[0].id, "approved", None, ADMIN)
        with pytest.raises(InvalidStateTransition):
            engine.review_approval(rows[0].id, "rejected", None, ADMIN)

    def test_invalid_decision(self, engine, rows):
        with pytest.raises(InvalidStateTransition):
            engine.review_approval(rows[0].id, "pending", None, ADMIN)

    def test_progress_tracks_current_stage(self, engine, rows):
        assert engine.get_workflow_progress(1).current_stage == 1
        engine.review_approval(rows[0].id, "approved", None, ADMIN)

        progress = engine.get_workflow_progress(1)
        assert progress.current_stage == 2
        assert progress.total_stages == 3
        assert progress.approved_count == 1
        assert progress.state == "stage_pending"


class TestParallelStage:
    """Test stages with more than one department."""

    def test_next_stage_waits_for_every_entry(self, engine):
        rows = engine.initiate_workflow(1, standard_chain(["product_incentive"]))
        finance, product = rows[0], rows[1]
        trading = rows[2]

        engine.review_approval(finance.id, "approved", None, ADMIN)

        assert [a.id for a in engine.actionable_approvals(1)] == [product.id]
        with pytest.raises(InvalidStateTransition):
            engine.review_approval(trading.id, "approved", None, ADMIN)

        engine.review_approval(product.id, "approved", None, ADMIN)
        assert [a.id for a in engine.actionable_approvals(1)] == [trading.id]


class TestHalting:
    """Test rejection and revision requests."""

    @pytest.fixture
    def rows(self, engine):
        return engine.initiate_workflow(1, standard_chain())

    def test_rejection_halts_and_loses_deal(self, engine, deals, rows):
        engine.review_approval(rows[0].id, "rejected", "Too expensive", ADMIN)

        assert engine.get_workflow_state(1) == "rejected"
        assert deals.get(1).status == "lost"
        assert engine.actionable_approvals(1) == []

    def test_rejected_workflow_takes_no_more_reviews(self, engine, rows):
        engine.review_approval(rows[0].id, "approved", None, ADMIN)
        engine.review_approval(rows[1].id, "rejected", None, ADMIN)

        with pytest.raises(InvalidStateTransition):
            engine.review_approval(rows[2].id, "approved", None, ADMIN)

    def test_rejected_workflow_cannot_be_reinitiated(self, engine, rows):
        engine.review_approval(rows[0].id, "rejected", None, ADMIN)
        with pytest.raises(WorkflowAlreadyInitiated):
            engine.initiate_workflow(1, standard_chain())

    def test_revision_request_moves_deal(self, engine, deals, rows):
        engine.review_approval(rows[0].id, "revision_requested", "Lower the rebate", ADMIN)

        assert engine.get_workflow_state(1) == "revision_requested"
        assert deals.get(1).status == "revision_requested"

    def test_resubmission_starts_a_new_round(self, engine, approvals, deals, rows):
        engine.review_approval(rows[0].id, "approved", None, ADMIN)
        engine.review_approval(rows[1].id, "revision_requested", None, ADMIN)

        new_rows = engine.initiate_workflow(1, standard_chain(["product_incentive"]))

        assert all(r.status == "pending" for r in new_rows)
        assert all(r.workflow_round == 2 for r in new_rows)
        assert {r.id for r in new_rows}.isdisjoint({r.id for r in rows})
        assert approvals.list_for_deal(1) == new_rows
        assert len(approvals.history_for_deal(1)) == 3
        assert deals.get(1).status == "submitted"

        progress = engine.get_workflow_progress(1)
        assert progress.percentage == 0
        assert progress.state == "initiated"


class TestAuthorization:
    """Test who may review which approval."""

    @pytest.fixture
    def rows(self, engine):
        return engine.initiate_workflow(1, standard_chain())

    def test_seller_cannot_review(self, engine, approvals, rows):
        with pytest.raises(NotAuthorized):
            engine.review_approval(rows[0].id, "approved", None, Reviewer(id=5, role="seller"))
        assert approvals.get(rows[0].id).status == "pending"

    def test_department_reviewer_of_own_department(self, engine, rows):
        reviewer = Reviewer(id=6, role="department_reviewer", department="finance")
        assert engine.review_approval(rows[0].id, "approved", None, reviewer).status == "approved"

    def test_department_reviewer_of_other_department_holds_required_role(self, engine, rows):
        """The finance row requires department_reviewer, which a marketing reviewer holds."""
        reviewer = Reviewer(id=6, role="department_reviewer", department="marketing")

        assert can_user_review(rows[0], reviewer)
        assert engine.review_approval(rows[0].id, "approved", None, reviewer).status == "approved"

    def test_department_match_overrides_required_role(self, rows):
        """The business row requires approver; a business department reviewer may still act."""
        assert can_user_review(rows[2], Reviewer(id=6, role="department_reviewer", department="business"))
        assert not can_user_review(rows[2], Reviewer(id=6, role="department_reviewer", department="creative"))

    def test_role_match(self, rows):
        approver = Reviewer(id=8, role="approver")
        legal = Reviewer(id=9, role="legal")

        assert can_user_review(rows[2], approver)
        assert not can_user_review(rows[2], legal)
        assert can_user_review(rows[2], ADMIN)

    def test_unauthorized_checked_before_stage_order(self, engine, rows):
        with pytest.raises(NotAuthorized):
            engine.review_approval(rows[2].id, "approved", None, Reviewer(id=9, role="legal"))

    def test_review_queue(self, engine, rows):
        engine.initiate_workflow(2, standard_chain())
        finance = Reviewer(id=6, role="department_reviewer", department="finance")
        approver = Reviewer(id=8, role="approver")

        assert [(a.deal_id, a.department_name) for a in engine.review_queue(finance, [1, 2])] == [
            (1, "finance"),
            (2, "finance"),
        ]
        assert engine.review_queue(approver, [1, 2]) == []


class TestConcurrentReview:
    """Test that a lost compare-and-swap fails instead of overwriting."""

    class RacingApprovalRepository(InMemoryApprovalRepository):
        """Lets another reviewer reject the row just before our write lands."""

        def compare_and_set(self, approval_id, expected_status, approval):
            rival = self.get(approval_id)
            rival.status = "rejected"
            super().compare_and_set(approval_id, expected_status, rival)
            return super().compare_and_set(approval_id, expected_status, approval)

    def test_lost_race_raises(self, deals):
        approvals = self.RacingApprovalRepository()
        engine = ApprovalWorkflowEngine(deals, approvals, clock=lambda: NOW)
        rows = engine.initiate_workflow(1, standard_chain())

        with pytest.raises(InvalidStateTransition):
            engine.review_approval(rows[0].id, "approved", None, ADMIN)

        assert approvals.get(rows[0].id).status == "rejected"
        assert deals.get(1).status == "submitted"


class TestInterleavedReviews:
    """Test deal status when a second review lands around our compare-and-swap."""

    class InterleavingApprovalRepository(InMemoryApprovalRepository):
        """Runs one other review right before, or right after, the next compare-and-set."""

        def __init__(self, after):
            super().__init__()
            self.after = after
            self.interleaved = None

        def compare_and_set(self, approval_id, expected_status, approval):
            review, self.interleaved = self.interleaved, None
            if review is not None and not self.after:
                review()
            result = super().compare_and_set(approval_id, expected_status, approval)
            if review is not None and self.after:
                review()
            return result

    @pytest.fixture
    def parallel_chain(self):
        """One stage reviewed by finance and product in parallel."""
        return ApprovalChain(
            "parallel",
            (
                ChainStage(1, "finance", "department_reviewer", 2),
                ChainStage(1, "product", "department_reviewer", 2),
            ),
            2,
        )

    def make_engine(self, deals, after):
        approvals = self.InterleavingApprovalRepository(after)
        return ApprovalWorkflowEngine(deals, approvals, clock=lambda: NOW), approvals

    @pytest.mark.parametrize("after", [False, True])
    def test_parallel_final_approvals_approve_deal(self, deals, parallel_chain, after):
        engine, approvals = self.make_engine(deals, after)
        finance, product = engine.initiate_workflow(1, parallel_chain)

        approvals.interleaved = lambda: engine.review_approval(product.id, "approved", None, ADMIN)
        engine.review_approval(finance.id, "approved", None, ADMIN)

        assert engine.get_workflow_state(1) == "approved_complete"
        assert deals.get(1).status == "approved"

    @pytest.mark.parametrize("after", [False, True])
    def test_approval_racing_rejection_keeps_deal_lost(self, deals, parallel_chain, after):
        engine, approvals = self.make_engine(deals, after)
        finance, product = engine.initiate_workflow(1, parallel_chain)

        approvals.interleaved = lambda: engine.review_approval(product.id, "rejected", None, ADMIN)
        engine.review_approval(finance.id, "approved", None, ADMIN)

        assert engine.get_workflow_state(1) == "rejected"
        assert deals.get(1).status == "lost"


class TestDerivedState:
    """Test state and stage derivation from rows."""

    def make_rows(self, *statuses):
        return [
            Approval(deal_id=1, approval_stage=n, department_name="finance", required_role="approver", status=s, id=n)
            for n, s in enumerate(statuses, start=1)
        ]

    @pytest.mark.parametrize(
        "statuses,state",
        [
            ((), "no_workflow"),
            (("pending", "pending"), "initiated"),
            (("approved", "pending"), "stage_pending"),
            (("approved", "approved"), "approved_complete"),
            (("approved", "rejected"), "rejected"),
            (("revision_requested", "pending"), "revision_requested"),
            (("rejected", "revision_requested"), "rejected"),
        ],
    )
    def test_workflow_state(self, statuses, state):
        assert workflow_state(self.make_rows(*statuses)) == state

    def test_current_stage(self):
        assert current_stage([]) == 0
        assert current_stage(self.make_rows("approved", "pending", "pending")) == 2
        assert current_stage(self.make_rows("approved", "approved")) == 2

    def test_progress_without_workflow(self, engine):
        progress = engine.get_workflow_progress(1)

        assert progress.percentage == 0
        assert progress.current_stage == 0
        assert progress.is_complete is False
        assert progress.total_stages == 0
        assert progress.state == "no_workflow"
