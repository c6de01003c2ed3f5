"""
Approval Department Catalog

The departments that review deals and the incentive types each one owns.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ApprovalDepartment:
    department_name: str
    display_name: str
    description: str
    contact_email: str
    incentive_types: tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True


DEPARTMENTS: tuple[ApprovalDepartment, ...] = (
    ApprovalDepartment(
        "finance",
        "Finance Team",
        "Reviews financial incentives and overall deal viability",
        "finance-team@company.com",
        ("financial_incentive", "payment_terms", "credit_terms", "budget_allocation"),
    ),
    ApprovalDepartment(
        "trading",
        "Trading Team",
        "Reviews margin implications and trading viability",
        "trading-team@company.com",
        ("margin_optimization", "trading_terms", "volume_commitments"),
    ),
    ApprovalDepartment(
        "creative",
        "Creative Team",
        "Reviews creative and marketing incentives",
        "creative-team@company.com",
        ("creative_incentive", "marketing_support", "brand_exposure", "co_marketing"),
    ),
    ApprovalDepartment(
        "marketing",
        "Marketing Team",
        "Reviews marketing strategy and promotional incentives",
        "marketing-team@company.com",
        ("promotional_support", "campaign_incentives", "media_benefits", "marketing_tools"),
    ),
    ApprovalDepartment(
        "product",
        "Product Team",
        "Reviews product-related incentives and offerings",
        "product-team@company.com",
        ("product_incentive", "feature_access", "product_discount", "beta_access"),
    ),
    ApprovalDepartment(
        "solutions",
        "Solutions Team",
        "Reviews technical solutions and implementation incentives",
        "solutions-team@company.com",
        ("technical_support", "implementation_services", "consulting_hours", "training_programs"),
    ),
    # Review-only departments used by the approval chains
    ApprovalDepartment("legal", "Legal Team", "Reviews non-standard contract terms", "legal-team@company.com"),
    ApprovalDepartment("business", "Managing Director", "Final approval for standard deals", "deal-desk@company.com"),
    ApprovalDepartment("executive", "Executive Committee", "Final approval for non-standard or high-value deals", "exec-committee@company.com"),
)

# Incentive library categories mapped to the incentive type their department reviews
CATEGORY_INCENTIVE_TYPES = {
    "financial": "financial_incentive",
    "resources": "implementation_services",
    "product-innovation": "product_incentive",
    "technology": "technical_support",
    "analytics": "feature_access",
    "marketing": "promotional_support",
}


def list_departments(active_only: bool = False) -> list[ApprovalDepartment]:
    return [dept for dept in DEPARTMENTS if dept.is_active or not active_only]


def get_department(department_name: str) -> ApprovalDepartment | None:
    for dept in DEPARTMENTS:
        if dept.department_name == department_name:
            return dept
    return None


def display_name(department_name: str) -> str:
    dept = get_department(department_name)
    if dept is not None:
        return dept.display_name
    return department_name[:1].upper() + department_name[1:]


def departments_for_incentive_types(incentive_types) -> list[str]:
    """Active departments owning any of the incentive types, in catalog order."""
    wanted = set(incentive_types or ())
    return [
        dept.department_name
        for dept in DEPARTMENTS
        if dept.is_active and wanted.intersection(dept.incentive_types)
    ]


def incentive_types_for_tiers(tiers) -> list[str]:
    """Incentive types implied by the categories of the incentives on the tiers."""
    types = []
    for tier in tiers:
        for incentive in tier.incentives:
            incentive_type = CATEGORY_INCENTIVE_TYPES.get(incentive.category.strip().lower())
            if incentive_type and incentive_type not in types:
                types.append(incentive_type)
    return types
