"""
Domain Models for the Deal Desk Engine

These dataclasses provide type-safe representations of all business entities.
All monetary values and rates use Decimal for precision.
Wire payloads use the camelCase keys of the deal intake API.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import uuid4

# =============================================================================
# VOCABULARY
# =============================================================================

DEAL_TYPES = ("grow", "protect", "custom")
SALES_CHANNELS = ("client_direct", "independent_agency", "holding_company")
AGENCY_CHANNELS = ("independent_agency", "holding_company")

DEAL_STATUSES = (
    "draft",
    "scoping",
    "submitted",
    "under_review",
    "approved",
    "negotiating",
    "revision_requested",
    "signed",
    "lost",
    "canceled",
)

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_REVISION_REQUESTED = "revision_requested"
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_REVISION_REQUESTED)
REVIEW_DECISIONS = (APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_REVISION_REQUESTED)

ROLE_SELLER = "seller"
ROLE_DEPARTMENT_REVIEWER = "department_reviewer"
ROLE_APPROVER = "approver"
ROLE_LEGAL = "legal"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_SELLER, ROLE_DEPARTMENT_REVIEWER, ROLE_APPROVER, ROLE_LEGAL, ROLE_ADMIN)


def to_decimal(value, default: str = "0") -> Decimal:
    """Coerce a wire value to Decimal; None falls back to the default."""
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Expected a numeric value, got: {value!r}")


# =============================================================================
# TIER MODEL
# =============================================================================


@dataclass
class Incentive:
    """A named discount, bonus or rebate attached to one tier."""

    category: str
    sub_category: str
    option: str
    value: Decimal
    notes: str | None = None
    id: str = field(default_factory=lambda: uuid4().hex)

    @classmethod
    def from_dict(cls, data: dict) -> "Incentive":
        incentive = cls(
            category=data.get("category") or "",
            sub_category=data.get("subCategory") or "",
            option=data.get("option") or "",
            value=to_decimal(data.get("value")),
            notes=data.get("notes"),
        )
        if data.get("id") is not None:
            incentive.id = str(data["id"])
        return incentive


@dataclass
class Tier:
    """One revenue/margin/incentive bracket within a deal."""

    tier_number: int
    annual_revenue: Decimal = Decimal("0")
    annual_gross_margin: Decimal = Decimal("0.35")
    incentives: list[Incentive] = field(default_factory=list)

    @property
    def gross_profit(self) -> Decimal:
        return self.annual_revenue * self.annual_gross_margin

    @property
    def incentive_value(self) -> Decimal:
        return sum((incentive.value for incentive in self.incentives), Decimal("0"))

    @classmethod
    def from_dict(cls, data: dict) -> "Tier":
        # Legacy records stored the margin as a 0-100 percentage
        if data.get("annualGrossMargin") is None and data.get("annualGrossMarginPercent") is not None:
            margin = to_decimal(data["annualGrossMarginPercent"]) / Decimal("100")
        else:
            margin = to_decimal(data.get("annualGrossMargin"), default="0.35")

        raw_incentives = data.get("incentives")
        if not isinstance(raw_incentives, list):
            raw_incentives = []
        incentives = [Incentive.from_dict(item) for item in raw_incentives if isinstance(item, dict)]

        # Legacy records carried a single flat incentive per tier
        if not incentives and data.get("incentiveOption"):
            incentives.append(
                Incentive(
                    category=data.get("categoryName") or "",
                    sub_category=data.get("subCategoryName") or "",
                    option=data["incentiveOption"],
                    value=to_decimal(data.get("incentiveValue")),
                    notes=data.get("incentiveNotes") or None,
                )
            )

        return cls(
            tier_number=int(data["tierNumber"]),
            annual_revenue=to_decimal(data.get("annualRevenue")),
            annual_gross_margin=margin,
            incentives=incentives,
        )


@dataclass
class ValidationIssue:
    """A single field violation reported by tier validation."""

    tier_number: int | None
    field: str
    message: str


# =============================================================================
# FINANCIAL MODELS
# =============================================================================


@dataclass
class ClientHistory:
    """Previous-year figures for one advertiser or agency."""

    name: str = ""
    revenue: Decimal = Decimal("0")
    margin: Decimal = Decimal("0")
    incentive_cost: Decimal = Decimal("0")
    client_value: Decimal = Decimal("0")

    @property
    def gross_profit(self) -> Decimal:
        return self.revenue * self.margin

    @property
    def adjusted_gross_profit(self) -> Decimal:
        return self.gross_profit - self.incentive_cost

    @classmethod
    def from_dict(cls, data: dict) -> "ClientHistory":
        return cls(
            name=data.get("name", ""),
            revenue=to_decimal(data.get("previousYearRevenue")),
            margin=to_decimal(data.get("previousYearMargin")),
            incentive_cost=to_decimal(data.get("previousYearIncentiveCost")),
            client_value=to_decimal(data.get("previousYearClientValue")),
        )


@dataclass
class DealFinancialSummary:
    """Derived financial view of a deal. Recomputed on every read."""

    total_annual_revenue: Decimal
    total_gross_margin: Decimal
    average_gross_margin_percent: Decimal
    total_incentive_value: Decimal
    effective_discount_rate: Decimal
    monthly_value: Decimal
    year_over_year_growth: Decimal | None  # None = not applicable
    projected_net_value: Decimal
    gross_margin_growth: Decimal | None = None
    contract_term_months: int = 12
    tier_count: int = 0


@dataclass
class TierGrowth:
    """Growth of one tier against the client's previous year. None = not applicable."""

    tier_number: int
    revenue_growth_rate: Decimal | None = None
    gross_profit_growth_rate: Decimal | None = None
    adjusted_margin_growth_rate: Decimal | None = None
    incentive_cost_growth_rate: Decimal | None = None


@dataclass
class DealGrowthProfile:
    """Deal-level current year figures combined with the historical baseline."""

    current_revenue: Decimal
    current_gross_margin: Decimal
    current_incentive_cost: Decimal
    previous_revenue: Decimal
    previous_margin: Decimal
    yearly_revenue_growth_rate: Decimal | None
    yearly_margin_growth_rate: Decimal | None
    forecasted_margin: Decimal


# =============================================================================
# ROUTING MODELS
# =============================================================================


@dataclass
class DealAttributes:
    """The deal attributes approval routing is decided on."""

    total_value: Decimal
    deal_type: str
    sales_channel: str
    has_non_standard_terms: bool = False
    contract_term_months: int = 12
    discount_rate: Decimal = Decimal("0")  # total incentives / total revenue

    @classmethod
    def from_dict(cls, data: dict) -> "DealAttributes":
        return cls(
            total_value=to_decimal(data.get("totalValue")),
            deal_type=data.get("dealType", ""),
            sales_channel=data.get("salesChannel", ""),
            has_non_standard_terms=bool(data.get("hasNonStandardTerms", False)),
            contract_term_months=int(data.get("contractTermMonths", 12)),
            discount_rate=to_decimal(data.get("discountRate")),
        )


@dataclass(frozen=True)
class ChainStage:
    """One department/role review within an approval chain."""

    stage: int
    department: str
    role: str
    estimated_days: int = 2


@dataclass(frozen=True)
class ApprovalChain:
    """The ordered approval stages a deal must pass."""

    rule_name: str
    stages: tuple[ChainStage, ...]
    estimated_days: int

    @property
    def total_stages(self) -> int:
        return max((entry.stage for entry in self.stages), default=0)


# =============================================================================
# WORKFLOW MODELS
# =============================================================================


@dataclass
class Approval:
    """One required review for a deal's stage and department."""

    deal_id: int
    approval_stage: int
    department_name: str
    required_role: str
    status: str = APPROVAL_PENDING
    comments: str | None = None
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    due_date: datetime | None = None
    workflow_round: int = 1
    id: int | None = None


@dataclass
class Deal:
    """The deal record owned by the backend. The engine reads and advances its status."""

    id: int
    status: str = "draft"
    last_status_change: datetime | None = None
    name: str = ""
    seller_id: int | None = None


@dataclass
class Reviewer:
    """The user acting on an approval."""

    id: int
    role: str
    department: str | None = None


@dataclass
class WorkflowProgress:
    """Progress of a deal's current approval round."""

    percentage: int
    current_stage: int
    is_complete: bool
    total_stages: int
    approved_count: int = 0
    total_count: int = 0
    state: str = "no_workflow"


# =============================================================================
# INPUT MODEL
# =============================================================================


@dataclass
class DealInput:
    """A deal proposal as submitted by the seller."""

    deal_type: str
    sales_channel: str
    tiers: list[Tier] = field(default_factory=list)
    contract_term_months: int = 12
    has_non_standard_terms: bool = False
    previous_year_revenue: Decimal | None = None  # None = derive from client history
    previous_year_margin: Decimal | None = None
    advertiser: ClientHistory | None = None
    agency: ClientHistory | None = None
    deal_name: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "DealInput":
        raw_tiers = data.get("tiers")
        if not isinstance(raw_tiers, list):
            raw_tiers = []
        previous_revenue = data.get("previousYearRevenue")
        previous_margin = data.get("previousYearMargin")
        advertiser = data.get("advertiserHistory")
        agency = data.get("agencyHistory")
        return cls(
            deal_name=data.get("dealName", ""),
            deal_type=data.get("dealType", ""),
            sales_channel=data.get("salesChannel", ""),
            # Given tier numbers are kept; submission validation reports gaps
            tiers=[
                Tier.from_dict({"tierNumber": index, **raw})
                for index, raw in enumerate(raw_tiers, start=1)
                if isinstance(raw, dict)
            ],
            contract_term_months=int(data.get("contractTermMonths", 12)),
            has_non_standard_terms=bool(data.get("hasNonStandardTerms", False)),
            previous_year_revenue=to_decimal(previous_revenue) if previous_revenue is not None else None,
            previous_year_margin=to_decimal(previous_margin) if previous_margin is not None else None,
            advertiser=ClientHistory.from_dict(advertiser) if isinstance(advertiser, dict) else None,
            agency=ClientHistory.from_dict(agency) if isinstance(agency, dict) else None,
        )
