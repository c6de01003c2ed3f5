"""
Output Builder

Converts engine results into the JSON shapes of the deal intake API.
Rounding happens here and nowhere else.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .departments import ApprovalDepartment, display_name
from .models import (
    Approval,
    ApprovalChain,
    DealFinancialSummary,
    DealGrowthProfile,
    TierGrowth,
    ValidationIssue,
    WorkflowProgress,
)


def to_money(value: Decimal) -> float:
    """Convert Decimal to float with 2 decimal places."""
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_rate(value: Decimal | None) -> float | None:
    """Convert a decimal rate to float with 4 decimal places; None stays None."""
    if value is None:
        return None
    return float(value.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))


def _fmt(value) -> str:
    """Format a number as currency string for descriptions."""
    return f"${value:,.2f}"


def _pct(value: Decimal) -> str:
    return f"{float(value) * 100:.2f}%"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class OutputBuilder:
    """Builds API response payloads."""

    def build_summary(self, summary: DealFinancialSummary) -> dict:
        """Each metric with its value and a description of how it was derived."""
        revenue = to_money(summary.total_annual_revenue)
        incentives = to_money(summary.total_incentive_value)
        term = summary.contract_term_months

        if summary.year_over_year_growth is None:
            growth_desc = "No previous-year revenue for this client - growth not applicable"
        else:
            growth_desc = f"Revenue growth against the same client's previous year: {_pct(summary.year_over_year_growth)}"

        return {
            "totalAnnualRevenue": {
                "value": revenue,
                "description": f"Sum of annual revenue across {summary.tier_count} tier(s) = {_fmt(revenue)}",
            },
            "totalGrossMargin": {
                "value": to_money(summary.total_gross_margin),
                "description": "Sum of revenue x gross margin per tier",
            },
            "averageGrossMarginPercent": {
                "value": to_rate(summary.average_gross_margin_percent),
                "description": f"Revenue-weighted gross margin: {_pct(summary.average_gross_margin_percent)}",
            },
            "totalIncentiveValue": {
                "value": incentives,
                "description": f"Sum of all incentives across tiers = {_fmt(incentives)}",
            },
            "effectiveDiscountRate": {
                "value": to_rate(summary.effective_discount_rate),
                "description": f"incentives ({_fmt(incentives)}) / revenue ({_fmt(revenue)}) = {_pct(summary.effective_discount_rate)}",
            },
            "monthlyValue": {
                "value": to_money(summary.monthly_value),
                "description": f"{_fmt(revenue)} / {term} months",
            },
            "yearOverYearGrowth": {
                "value": to_rate(summary.year_over_year_growth),
                "description": growth_desc,
            },
            "projectedNetValue": {
                "value": to_money(summary.projected_net_value),
                "description": f"(revenue ({_fmt(revenue)}) - incentives ({_fmt(incentives)})) x {term}/12 years",
            },
            "grossMarginGrowth": {
                "value": to_rate(summary.gross_margin_growth),
                "description": (
                    "No previous-year margin for this client - growth not applicable"
                    if summary.gross_margin_growth is None
                    else f"Relative change of gross margin vs previous year: {_pct(summary.gross_margin_growth)}"
                ),
            },
        }

    def build_tier_growth(self, growth: list[TierGrowth]) -> list[dict]:
        return [
            {
                "tierNumber": item.tier_number,
                "revenueGrowthRate": to_rate(item.revenue_growth_rate),
                "grossProfitGrowthRate": to_rate(item.gross_profit_growth_rate),
                "adjustedMarginGrowthRate": to_rate(item.adjusted_margin_growth_rate),
                "incentiveCostGrowthRate": to_rate(item.incentive_cost_growth_rate),
            }
            for item in growth
        ]

    def build_growth_profile(self, profile: DealGrowthProfile) -> dict:
        return {
            "currentRevenue": to_money(profile.current_revenue),
            "currentGrossMargin": to_rate(profile.current_gross_margin),
            "currentIncentiveCost": to_money(profile.current_incentive_cost),
            "previousYearRevenue": to_money(profile.previous_revenue),
            "previousYearMargin": to_rate(profile.previous_margin),
            "yearlyRevenueGrowthRate": to_rate(profile.yearly_revenue_growth_rate),
            "yearlyMarginGrowthRate": to_rate(profile.yearly_margin_growth_rate),
            "forecastedMargin": to_rate(profile.forecasted_margin),
        }

    def build_validation_errors(self, issues: list[ValidationIssue]) -> list[dict]:
        return [{"tierNumber": i.tier_number, "field": i.field, "message": i.message} for i in issues]

    def build_chain(self, chain: ApprovalChain) -> dict:
        return {
            "ruleName": chain.rule_name,
            "totalStages": chain.total_stages,
            "estimatedDays": chain.estimated_days,
            "stages": [
                {
                    "stage": entry.stage,
                    "department": entry.department,
                    "displayName": display_name(entry.department),
                    "role": entry.role,
                    "estimatedDays": entry.estimated_days,
                }
                for entry in chain.stages
            ],
        }

    def build_approval(self, approval: Approval) -> dict:
        return {
            "id": approval.id,
            "dealId": approval.deal_id,
            "approvalStage": approval.approval_stage,
            "departmentName": approval.department_name,
            "requiredRole": approval.required_role,
            "status": approval.status,
            "comments": approval.comments,
            "reviewedBy": approval.reviewed_by,
            "reviewedAt": _iso(approval.reviewed_at),
            "dueDate": _iso(approval.due_date),
            "workflowRound": approval.workflow_round,
        }

    def build_progress(self, progress: WorkflowProgress) -> dict:
        return {
            "progressPercentage": progress.percentage,
            "currentStage": progress.current_stage,
            "isComplete": progress.is_complete,
            "totalStages": progress.total_stages,
            "approvedCount": progress.approved_count,
            "totalCount": progress.total_count,
            "state": progress.state,
        }

    def build_department(self, department: ApprovalDepartment) -> dict:
        return {
            "departmentName": department.department_name,
            "displayName": department.display_name,
            "description": department.description,
            "contactEmail": department.contact_email,
            "incentiveTypes": list(department.incentive_types),
            "isActive": department.is_active,
        }
