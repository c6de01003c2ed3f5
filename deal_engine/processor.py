"""
Deal Processor - Main Orchestrator

Coordinates the financial model, approval routing and approval workflow
for deal intake through discrete, testable steps.
"""

from decimal import Decimal
from typing import Any, Dict

from .calculators import FinancialAggregator, GrowthCalculator, select_baseline
from .departments import incentive_types_for_tiers, list_departments
from .errors import ApprovalNotFound, DealNotFound, ValidationError
from .models import (
    ApprovalChain,
    Approval,
    ClientHistory,
    Deal,
    DealAttributes,
    DealFinancialSummary,
    DealInput,
    Reviewer,
    WorkflowProgress,
    to_decimal,
)
from .output import OutputBuilder
from .routing import ApprovalRuleMatcher, RoutingConfig
from .store import ApprovalRepository, DealRepository, InMemoryApprovalRepository, InMemoryDealRepository
from .tiers import DEFAULT_MAX_TIERS, DEFAULT_MIN_TIERS
from .validators import TierValidator
from .workflow import ApprovalWorkflowEngine


class DealProcessor:
    """
    Main orchestrator for deal review.

    Submission pipeline:
    1. Validate Tiers
    2. Summarize Financials
    3. Build Routing Attributes
    4. Match Approval Chain
    5. Initiate Workflow
    """

    def __init__(
        self,
        config: RoutingConfig | None = None,
        deals: DealRepository | None = None,
        approvals: ApprovalRepository | None = None,
        min_tiers: int = DEFAULT_MIN_TIERS,
        max_tiers: int = DEFAULT_MAX_TIERS,
        clock=None,
    ):
        self.deals = deals or InMemoryDealRepository()
        self.approvals = approvals or InMemoryApprovalRepository()
        self.tier_validator = TierValidator(min_tiers, max_tiers)
        self.aggregator = FinancialAggregator()
        self.growth_calculator = GrowthCalculator()
        self.matcher = ApprovalRuleMatcher(config)
        self.workflow = ApprovalWorkflowEngine(self.deals, self.approvals, clock=clock)
        self.output_builder = OutputBuilder()

    # -------------------------------------------------------------------------
    # Financials
    # -------------------------------------------------------------------------

    def baseline(self, deal_input: DealInput) -> ClientHistory:
        return select_baseline(deal_input.sales_channel, deal_input.advertiser, deal_input.agency)

    def summarize(self, deal_input: DealInput) -> DealFinancialSummary:
        """
        Financial summary of the deal.

        Explicit previous-year figures win; otherwise they come from the
        client history matching the deal's sales channel.
        """
        baseline = self.baseline(deal_input)
        previous_revenue = deal_input.previous_year_revenue
        if previous_revenue is None:
            previous_revenue = baseline.revenue
        previous_margin = deal_input.previous_year_margin
        if previous_margin is None and baseline.margin > 0:
            previous_margin = baseline.margin

        return self.aggregator.summarize(
            deal_input.tiers,
            deal_input.contract_term_months,
            previous_year_revenue=previous_revenue,
            previous_year_margin=previous_margin,
        )

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def attributes(self, deal_input: DealInput, deal_value: Decimal | None = None) -> DealAttributes:
        """Routing attributes; the deal value defaults to total annual revenue."""
        summary = self.summarize(deal_input)
        if deal_value is None:
            deal_value = summary.total_annual_revenue
        return DealAttributes(
            total_value=deal_value,
            deal_type=deal_input.deal_type,
            sales_channel=deal_input.sales_channel,
            has_non_standard_terms=deal_input.has_non_standard_terms,
            contract_term_months=deal_input.contract_term_months,
            discount_rate=summary.effective_discount_rate,
        )

    def preview_chain(self, deal_input: DealInput, incentive_types=None, deal_value: Decimal | None = None) -> ApprovalChain:
        if incentive_types is None:
            incentive_types = incentive_types_for_tiers(deal_input.tiers)
        return self.matcher.match(self.attributes(deal_input, deal_value), incentive_types)

    # -------------------------------------------------------------------------
    # Workflow
    # -------------------------------------------------------------------------

    def submit(
        self,
        deal_id: int,
        deal_input: DealInput,
        initiated_by: int | None = None,
        incentive_types=None,
        deal_value: Decimal | None = None,
    ) -> tuple[ApprovalChain, list[Approval]]:
        """
        Submit a deal for approval. Submission is where tier validation
        is enforced; the chain is computed now and frozen into the rows.
        """
        issues = self.tier_validator.validate(deal_input.tiers)
        if issues:
            raise ValidationError(issues)

        chain = self.preview_chain(deal_input, incentive_types, deal_value)
        rows = self.workflow.initiate_workflow(deal_id, chain, initiated_by)
        return chain, rows

    def review(self, approval_id: int, decision: str, comments: str | None, reviewer: Reviewer) -> Approval:
        return self.workflow.review_approval(approval_id, decision, comments, reviewer)

    def progress(self, deal_id: int) -> WorkflowProgress:
        return self.workflow.get_workflow_progress(deal_id)

    def register_deal(self, deal_id: int, name: str = "", seller_id: int | None = None) -> Deal:
        """Return the deal, creating it as a draft if the backend has no record yet."""
        try:
            return self.deals.get(deal_id)
        except DealNotFound:
            return self.deals.save(Deal(id=deal_id, status="draft", name=name, seller_id=seller_id))

    # -------------------------------------------------------------------------
    # Dictionary API
    # -------------------------------------------------------------------------

    def summarize_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Financial summary, growth and validation feedback for a deal payload."""
        deal_input = DealInput.from_dict(data)
        baseline = self.baseline(deal_input)
        return {
            "summary": self.output_builder.build_summary(self.summarize(deal_input)),
            "tierGrowth": self.output_builder.build_tier_growth(
                self.growth_calculator.for_tiers(deal_input.tiers, baseline)
            ),
            "growthProfile": self.output_builder.build_growth_profile(
                self.growth_calculator.for_deal(deal_input.tiers, baseline)
            ),
            "validationErrors": self.output_builder.build_validation_errors(
                self.tier_validator.validate(deal_input.tiers)
            ),
        }

    def preview_chain_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        deal_input = DealInput.from_dict(data)
        chain = self.preview_chain(
            deal_input,
            incentive_types=data.get("incentiveTypes"),
            deal_value=self._deal_value(data),
        )
        return self.output_builder.build_chain(chain)

    def initiate_from_dict(self, deal_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Shape of POST initiate-approval: {approvals, workflow}."""
        deal_input = DealInput.from_dict(data.get("deal") or {})
        self.register_deal(deal_id, deal_input.deal_name, data.get("initiatedBy"))
        chain, rows = self.submit(
            deal_id,
            deal_input,
            initiated_by=data.get("initiatedBy"),
            incentive_types=data.get("incentiveTypes"),
            deal_value=self._deal_value(data),
        )
        return {
            "approvals": [self.output_builder.build_approval(row) for row in rows],
            "workflow": {
                "totalStages": chain.total_stages,
                "ruleName": chain.rule_name,
                "estimatedDays": chain.estimated_days,
            },
        }

    def review_from_dict(self, deal_id: int, approval_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Shape of PATCH approval: the updated approval."""
        approval = self.approvals.get(approval_id)
        if approval.deal_id != deal_id:
            raise ApprovalNotFound(f"Approval {approval_id} does not belong to deal {deal_id}")

        reviewer = Reviewer(
            id=data.get("reviewedBy"),
            role=data.get("reviewerRole", ""),
            department=data.get("reviewerDepartment"),
        )
        updated = self.review(approval_id, data.get("status", ""), data.get("comments"), reviewer)
        return self.output_builder.build_approval(updated)

    def approvals_to_dict(self, deal_id: int) -> list:
        return [self.output_builder.build_approval(row) for row in self.approvals.list_for_deal(deal_id)]

    def progress_to_dict(self, deal_id: int) -> Dict[str, Any]:
        return self.output_builder.build_progress(self.progress(deal_id))

    def departments_to_dict(self) -> list:
        return [self.output_builder.build_department(dept) for dept in list_departments()]

    def _deal_value(self, data: Dict[str, Any]) -> Decimal | None:
        value = data.get("dealValue")
        return to_decimal(value) if value is not None else None
