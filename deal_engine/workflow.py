"""
Approval Workflow Engine

Realizes an approval chain for one deal as Approval rows and governs
their transitions:

    no_workflow -> initiated -> stage_pending -> approved_complete
                                      |-> rejected            (terminal)
                                      |-> revision_requested  (resubmit)

Workflow state and progress are always derived from the current rows,
never stored. Every review goes through compare-and-swap on the row's
status so a lost race fails instead of overwriting another decision.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from .errors import InvalidStateTransition, NotAuthorized, WorkflowAlreadyInitiated
from .models import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    APPROVAL_REVISION_REQUESTED,
    REVIEW_DECISIONS,
    ROLE_ADMIN,
    ROLE_DEPARTMENT_REVIEWER,
    Approval,
    ApprovalChain,
    Reviewer,
    WorkflowProgress,
)
from .status import can_transition_status, ensure_transition
from .store import ApprovalRepository, DealRepository

logger = logging.getLogger(__name__)

WORKFLOW_NONE = "no_workflow"
WORKFLOW_INITIATED = "initiated"
WORKFLOW_STAGE_PENDING = "stage_pending"
WORKFLOW_APPROVED = "approved_complete"
WORKFLOW_REJECTED = "rejected"
WORKFLOW_REVISION_REQUESTED = "revision_requested"

HALTED_STATES = (WORKFLOW_REJECTED, WORKFLOW_REVISION_REQUESTED)

# Deal status a reviewed workflow calls for
DEAL_STATUS_FOR_STATE = {
    WORKFLOW_STAGE_PENDING: "under_review",
    WORKFLOW_APPROVED: "approved",
    WORKFLOW_REJECTED: "lost",
    WORKFLOW_REVISION_REQUESTED: "revision_requested",
}


def can_user_review(approval: Approval, reviewer: Reviewer) -> bool:
    """
    Whether a reviewer may act on an approval.

    Admins review anything, department reviewers review their own
    department, and anyone holding the required role may review.
    """
    if reviewer.role == ROLE_ADMIN:
        return True
    if reviewer.role == ROLE_DEPARTMENT_REVIEWER and reviewer.department == approval.department_name:
        return True
    return reviewer.role == approval.required_role


def workflow_state(approvals: list[Approval]) -> str:
    if not approvals:
        return WORKFLOW_NONE
    statuses = [approval.status for approval in approvals]
    if APPROVAL_REJECTED in statuses:
        return WORKFLOW_REJECTED
    if APPROVAL_REVISION_REQUESTED in statuses:
        return WORKFLOW_REVISION_REQUESTED
    if all(status == APPROVAL_APPROVED for status in statuses):
        return WORKFLOW_APPROVED
    if all(status == APPROVAL_PENDING for status in statuses):
        return WORKFLOW_INITIATED
    return WORKFLOW_STAGE_PENDING


def current_stage(approvals: list[Approval]) -> int:
    """Lowest stage not yet fully approved; the last stage once all are approved."""
    open_stages = [a.approval_stage for a in approvals if a.status != APPROVAL_APPROVED]
    if open_stages:
        return min(open_stages)
    return max((a.approval_stage for a in approvals), default=0)


class ApprovalWorkflowEngine:
    """Creates and advances the approval rows of deals."""

    def __init__(self, deals: DealRepository, approvals: ApprovalRepository, clock=None):
        self.deals = deals
        self.approvals = approvals
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Initiation
    # -------------------------------------------------------------------------

    def initiate_workflow(self, deal_id: int, chain: ApprovalChain, initiated_by: int | None = None) -> list[Approval]:
        """
        Create one pending Approval per chain entry.

        A deal may only be initiated once, except after a revision
        request: resubmission retires the halted round and starts a new
        one from the freshly computed chain.
        """
        if not chain.stages:
            raise ValueError("Cannot initiate a workflow from an empty approval chain")

        deal = self.deals.get(deal_id)
        existing = self.approvals.list_for_deal(deal_id)
        state = workflow_state(existing)
        if state not in (WORKFLOW_NONE, WORKFLOW_REVISION_REQUESTED):
            raise WorkflowAlreadyInitiated(f"Deal {deal_id} already has an approval workflow ({state})")

        if deal.status != "submitted":
            ensure_transition(deal.status, "submitted")

        workflow_round = 1
        if existing:
            workflow_round = max(a.workflow_round for a in existing) + 1
            retired = self.approvals.supersede_for_deal(deal_id)
            logger.info(f"Deal {deal_id}: superseded {retired} approval(s) from round {workflow_round - 1}")

        now = self.clock()
        due_dates = self._due_dates(chain, now)
        rows = self.approvals.add_many([
            Approval(
                deal_id=deal_id,
                approval_stage=entry.stage,
                department_name=entry.department,
                required_role=entry.role,
                due_date=due_dates[entry.stage],
                workflow_round=workflow_round,
            )
            for entry in chain.stages
        ])

        if deal.status != "submitted":
            self.deals.update_status(deal_id, "submitted", now)

        logger.info(
            f"Deal {deal_id}: approval workflow initiated by {initiated_by} "
            f"(rule={chain.rule_name}, approvals={len(rows)}, stages={chain.total_stages}, round={workflow_round})"
        )
        return rows

    def _due_dates(self, chain: ApprovalChain, start: datetime) -> dict[int, datetime]:
        """Informational due date per stage: start plus the cumulative estimate."""
        per_stage: dict[int, int] = {}
        for entry in chain.stages:
            per_stage[entry.stage] = max(per_stage.get(entry.stage, 0), entry.estimated_days)

        due, elapsed = {}, 0
        for stage in sorted(per_stage):
            elapsed += per_stage[stage]
            due[stage] = start + timedelta(days=elapsed)
        return due

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    def review_approval(self, approval_id: int, decision: str, comments: str | None, reviewer: Reviewer) -> Approval:
        """
        Apply a reviewer's decision to one approval row.

        Raises:
            NotAuthorized: reviewer may not act on this approval
            InvalidStateTransition: approval not pending, workflow halted,
                stage not yet actionable, or a concurrent review won
        """
        if decision not in REVIEW_DECISIONS:
            raise InvalidStateTransition(
                f"Invalid decision: {decision!r}. Must be one of {', '.join(REVIEW_DECISIONS)}"
            )

        approval = self.approvals.get(approval_id)
        if not can_user_review(approval, reviewer):
            raise NotAuthorized(
                f"User {reviewer.id} ({reviewer.role}) cannot review {approval.department_name} approval {approval_id}"
            )

        if approval.status != APPROVAL_PENDING:
            raise InvalidStateTransition(f"Approval {approval_id} is already {approval.status}")

        rows = self.approvals.list_for_deal(approval.deal_id)
        state = workflow_state(rows)
        if state in HALTED_STATES:
            raise InvalidStateTransition(f"Workflow for deal {approval.deal_id} is halted ({state})")

        stage = current_stage(rows)
        if approval.approval_stage > stage:
            raise InvalidStateTransition(
                f"Stage {approval.approval_stage} is not actionable until stage {stage} is approved"
            )

        completes = decision == APPROVAL_APPROVED and all(
            row.status == APPROVAL_APPROVED for row in rows if row.id != approval_id
        )
        deal = self.deals.get(approval.deal_id)
        self._check_status_path(deal.status, decision, completes)

        now = self.clock()
        updated = replace(
            approval,
            status=decision,
            comments=comments,
            reviewed_by=reviewer.id,
            reviewed_at=now,
        )
        if not self.approvals.compare_and_set(approval_id, APPROVAL_PENDING, updated):
            logger.warning(f"Approval {approval_id}: lost concurrent review, decision {decision} discarded")
            raise InvalidStateTransition(f"Approval {approval_id} was reviewed concurrently")

        logger.info(f"Approval {approval_id} (deal {approval.deal_id}, stage {approval.approval_stage}): {decision} by {reviewer.id}")

        self._sync_deal_status(approval.deal_id, now)
        return self.approvals.get(approval_id)

    def _check_status_path(self, deal_status: str, decision: str, completes: bool) -> None:
        """Refuse a review whose deal status change the graph does not allow, before any write."""
        path = []
        if deal_status == "submitted":
            path.append("under_review")

        if decision == APPROVAL_REJECTED:
            path.append("lost")
        elif decision == APPROVAL_REVISION_REQUESTED:
            path.append("revision_requested")
        elif completes:
            path.append("approved")

        current = deal_status
        for status in path:
            ensure_transition(current, status)
            current = status

    def _sync_deal_status(self, deal_id: int, changed_at: datetime) -> None:
        """
        Move the deal to the status its workflow state calls for.

        Rows and deal are re-read on every step, so a review that ran
        concurrently is accounted for. A status the graph cannot leave
        towards the target (e.g. lost) is kept.
        """
        while True:
            deal = self.deals.get(deal_id)
            target = DEAL_STATUS_FOR_STATE.get(self.get_workflow_state(deal_id))
            step = self._next_status(deal.status, target)
            if step is None:
                return
            if self.deals.compare_and_set_status(deal_id, deal.status, step, changed_at):
                logger.info(f"Deal {deal_id} moved to {step}")
            else:
                logger.info(f"Deal {deal_id}: status changed concurrently, re-reading")

    def _next_status(self, current: str, target: str | None) -> str | None:
        if target is None or current == target:
            return None
        # Reviews always pass through under_review
        if current == "submitted" and target != "under_review":
            return "under_review"
        allowed, _ = can_transition_status(current, target)
        return target if allowed else None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_workflow_state(self, deal_id: int) -> str:
        return workflow_state(self.approvals.list_for_deal(deal_id))

    def get_workflow_progress(self, deal_id: int) -> WorkflowProgress:
        """Progress of the current round, recomputed from the rows on every call."""
        rows = self.approvals.list_for_deal(deal_id)
        if not rows:
            return WorkflowProgress(percentage=0, current_stage=0, is_complete=False, total_stages=0)

        approved = sum(1 for row in rows if row.status == APPROVAL_APPROVED)
        percentage = (Decimal(approved) * 100 / Decimal(len(rows))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        state = workflow_state(rows)
        return WorkflowProgress(
            percentage=int(percentage),
            current_stage=current_stage(rows),
            is_complete=state == WORKFLOW_APPROVED,
            total_stages=max(row.approval_stage for row in rows),
            approved_count=approved,
            total_count=len(rows),
            state=state,
        )

    def actionable_approvals(self, deal_id: int) -> list[Approval]:
        """Pending rows of the current stage, or nothing when the workflow is halted or done."""
        rows = self.approvals.list_for_deal(deal_id)
        if workflow_state(rows) in HALTED_STATES + (WORKFLOW_NONE, WORKFLOW_APPROVED):
            return []
        stage = current_stage(rows)
        return [row for row in rows if row.approval_stage == stage and row.status == APPROVAL_PENDING]

    def review_queue(self, reviewer: Reviewer, deal_ids) -> list[Approval]:
        """Actionable approvals across deals that this reviewer may review."""
        queue = []
        for deal_id in deal_ids:
            queue.extend(a for a in self.actionable_approvals(deal_id) if can_user_review(a, reviewer))
        return queue
