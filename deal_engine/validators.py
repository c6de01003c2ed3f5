"""
Input Validation for the Deal Desk Engine

Tier validation is pull-based: it collects every violation instead of
stopping at the first, so the UI can show all inline errors at once.
Routing validation raises InvalidDealAttributes on the first problem.
"""

from decimal import Decimal

from .errors import InvalidDealAttributes
from .models import DEAL_TYPES, SALES_CHANNELS, DealAttributes, Incentive, Tier, ValidationIssue


class TierValidator:
    """Validates a tier collection against the deal invariants."""

    def __init__(self, min_tiers: int = 1, max_tiers: int = 5):
        self.min_tiers = min_tiers
        self.max_tiers = max_tiers

    def validate(self, tiers: list[Tier]) -> list[ValidationIssue]:
        """Return every violation. An empty list means the tiers are valid."""
        issues = []
        issues.extend(self._validate_count(tiers))
        issues.extend(self._validate_numbering(tiers))
        for tier in tiers:
            issues.extend(self._validate_tier(tier))
        return issues

    def _validate_count(self, tiers: list[Tier]) -> list[ValidationIssue]:
        if len(tiers) < self.min_tiers:
            return [ValidationIssue(None, "tiers", f"At least {self.min_tiers} tier(s) required, got {len(tiers)}")]
        if len(tiers) > self.max_tiers:
            return [ValidationIssue(None, "tiers", f"At most {self.max_tiers} tiers allowed, got {len(tiers)}")]
        return []

    def _validate_numbering(self, tiers: list[Tier]) -> list[ValidationIssue]:
        numbers = [tier.tier_number for tier in tiers]
        expected = list(range(1, len(tiers) + 1))
        if numbers != expected:
            return [
                ValidationIssue(
                    None,
                    "tierNumber",
                    f"Tier numbers must be contiguous from 1 in order, got {numbers}",
                )
            ]
        return []

    def _validate_tier(self, tier: Tier) -> list[ValidationIssue]:
        issues = []
        if tier.annual_revenue < 0:
            issues.append(
                ValidationIssue(tier.tier_number, "annualRevenue", f"Annual revenue cannot be negative, got: {tier.annual_revenue}")
            )

        if not (Decimal("0") <= tier.annual_gross_margin <= Decimal("1")):
            issues.append(
                ValidationIssue(
                    tier.tier_number,
                    "annualGrossMargin",
                    f"Gross margin must be between 0 and 1, got: {tier.annual_gross_margin}",
                )
            )

        for index, incentive in enumerate(tier.incentives):
            issues.extend(self._validate_incentive(tier.tier_number, index, incentive))
        return issues

    def _validate_incentive(self, tier_number: int, index: int, incentive: Incentive) -> list[ValidationIssue]:
        issues = []
        prefix = f"incentives[{index}]"
        for attr, wire_name in (("category", "category"), ("sub_category", "subCategory"), ("option", "option")):
            if not (getattr(incentive, attr) or "").strip():
                issues.append(ValidationIssue(tier_number, f"{prefix}.{wire_name}", f"Incentive {wire_name} is required"))

        if incentive.value < 0:
            issues.append(
                ValidationIssue(tier_number, f"{prefix}.value", f"Incentive value cannot be negative, got: {incentive.value}")
            )
        return issues


class DealAttributesValidator:
    """Validates the attributes the approval rule matcher routes on."""

    def validate(self, attrs: DealAttributes) -> None:
        """Raises InvalidDealAttributes if any check fails."""
        if attrs.total_value < 0:
            raise InvalidDealAttributes(f"total_value cannot be negative, got: {attrs.total_value}")

        if attrs.deal_type not in DEAL_TYPES:
            raise InvalidDealAttributes(
                f"Invalid deal_type: {attrs.deal_type!r}. Must be one of {', '.join(DEAL_TYPES)}"
            )

        if attrs.sales_channel not in SALES_CHANNELS:
            raise InvalidDealAttributes(
                f"Invalid sales_channel: {attrs.sales_channel!r}. Must be one of {', '.join(SALES_CHANNELS)}"
            )

        if attrs.contract_term_months < 1:
            raise InvalidDealAttributes(
                f"contract_term_months must be at least 1, got: {attrs.contract_term_months}"
            )

        if attrs.discount_rate < 0:
            raise InvalidDealAttributes(f"discount_rate cannot be negative, got: {attrs.discount_rate}")
