"""
Financial Aggregator

Turns a deal's tiers into a DealFinancialSummary.
Pure Decimal arithmetic: identical inputs always give identical output.
Division by a zero base yields 0 (ratios) or None (growth), never an error.
"""

from decimal import ROUND_HALF_UP, Decimal

from ..models import DealFinancialSummary, Tier

MONTHS_PER_YEAR = Decimal("12")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def safe_ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator, or 0 when the denominator is 0."""
    if denominator == 0:
        return Decimal("0")
    return numerator / denominator


def growth_rate(current: Decimal, previous: Decimal) -> Decimal | None:
    """current / previous - 1, or None when there is no positive baseline."""
    if previous is None or previous <= 0:
        return None
    return current / previous - 1


class FinancialAggregator:
    """Aggregates tier revenue, margin and incentives into deal totals."""

    def summarize(
        self,
        tiers: list[Tier],
        contract_term_months: int,
        previous_year_revenue: Decimal = Decimal("0"),
        previous_year_margin: Decimal | None = None,
    ) -> DealFinancialSummary:
        """
        Build the financial summary for a deal.

        Args:
            tiers: The deal's tiers (need not be valid)
            contract_term_months: Contract length, at least 1
            previous_year_revenue: Same client's prior-year revenue, 0 if unknown
            previous_year_margin: Same client's prior-year margin as a decimal

        Returns:
            DealFinancialSummary with unrounded Decimal values
        """
        if contract_term_months < 1:
            raise ValueError(f"contract_term_months must be at least 1, got: {contract_term_months}")
        if previous_year_revenue < 0:
            raise ValueError(f"previous_year_revenue cannot be negative, got: {previous_year_revenue}")

        term = Decimal(contract_term_months)
        total_revenue = self._total_revenue(tiers)
        total_margin = self._total_gross_margin(tiers)
        total_incentives = self._total_incentives(tiers)
        average_margin = safe_ratio(total_margin, total_revenue)

        return DealFinancialSummary(
            total_annual_revenue=total_revenue,
            total_gross_margin=total_margin,
            average_gross_margin_percent=average_margin,
            total_incentive_value=total_incentives,
            effective_discount_rate=safe_ratio(total_incentives, total_revenue),
            monthly_value=total_revenue / term,
            year_over_year_growth=growth_rate(total_revenue, previous_year_revenue),
            projected_net_value=(total_revenue - total_incentives) * (term / MONTHS_PER_YEAR),
            gross_margin_growth=self._margin_growth(average_margin, previous_year_margin),
            contract_term_months=contract_term_months,
            tier_count=len(tiers),
        )

    def _total_revenue(self, tiers: list[Tier]) -> Decimal:
        return sum((tier.annual_revenue for tier in tiers), Decimal("0"))

    def _total_gross_margin(self, tiers: list[Tier]) -> Decimal:
        """Sum of revenue x margin per tier, in currency."""
        return sum((tier.annual_revenue * tier.annual_gross_margin for tier in tiers), Decimal("0"))

    def _total_incentives(self, tiers: list[Tier]) -> Decimal:
        return sum((tier.incentive_value for tier in tiers), Decimal("0"))

    def _margin_growth(self, average_margin: Decimal, previous_margin: Decimal | None) -> Decimal | None:
        """Relative change of the weighted margin: (current - previous) / previous."""
        if previous_margin is None or previous_margin <= 0:
            return None
        return (average_margin - previous_margin) / previous_margin
