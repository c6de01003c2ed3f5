"""
Growth Calculator

Compares tiers against the same client's previous year.
The baseline is picked by sales channel: client_direct deals compare
against the advertiser, agency channels against the agency. A deal is
never measured against the other channel's history.
"""

from decimal import Decimal

from ..models import AGENCY_CHANNELS, ClientHistory, DealGrowthProfile, Tier, TierGrowth
from .financials import growth_rate, safe_ratio

EMPTY_HISTORY = ClientHistory()


def select_baseline(
    sales_channel: str,
    advertiser: ClientHistory | None = None,
    agency: ClientHistory | None = None,
) -> ClientHistory:
    """
    Pick the client history matching the deal's sales channel.

    Returns an empty history (all zeros) when the matching client is
    unknown, which makes every growth rate "not applicable".
    """
    if sales_channel == "client_direct":
        return advertiser or EMPTY_HISTORY
    if sales_channel in AGENCY_CHANNELS:
        return agency or EMPTY_HISTORY
    return EMPTY_HISTORY


class GrowthCalculator:
    """Per-tier and per-deal growth against a client baseline."""

    def for_tier(self, tier: Tier, baseline: ClientHistory) -> TierGrowth:
        return TierGrowth(
            tier_number=tier.tier_number,
            revenue_growth_rate=growth_rate(tier.annual_revenue, baseline.revenue),
            gross_profit_growth_rate=growth_rate(tier.gross_profit, baseline.gross_profit),
            adjusted_margin_growth_rate=self._adjusted_margin_growth(tier, baseline),
            incentive_cost_growth_rate=growth_rate(tier.incentive_value, baseline.incentive_cost),
        )

    def for_tiers(self, tiers: list[Tier], baseline: ClientHistory) -> list[TierGrowth]:
        return [self.for_tier(tier, baseline) for tier in tiers]

    def for_deal(self, tiers: list[Tier], baseline: ClientHistory) -> DealGrowthProfile:
        """
        Deal-level growth profile.

        Forecasted margin projects the current weighted margin forward by
        the margin growth trend, clamped to [0, 1].
        """
        revenue = sum((tier.annual_revenue for tier in tiers), Decimal("0"))
        gross_profit = sum((tier.gross_profit for tier in tiers), Decimal("0"))
        incentive_cost = sum((tier.incentive_value for tier in tiers), Decimal("0"))
        margin = safe_ratio(gross_profit, revenue)

        revenue_growth = growth_rate(revenue, baseline.revenue)
        margin_growth = None
        if baseline.margin > 0:
            margin_growth = (margin - baseline.margin) / baseline.margin

        forecast = margin * (1 + (margin_growth or Decimal("0")))
        forecast = max(Decimal("0"), min(Decimal("1"), forecast))

        return DealGrowthProfile(
            current_revenue=revenue,
            current_gross_margin=margin,
            current_incentive_cost=incentive_cost,
            previous_revenue=baseline.revenue,
            previous_margin=baseline.margin,
            yearly_revenue_growth_rate=revenue_growth,
            yearly_margin_growth_rate=margin_growth,
            forecasted_margin=forecast,
        )

    def _adjusted_margin_growth(self, tier: Tier, baseline: ClientHistory) -> Decimal | None:
        """
        Growth of the incentive-adjusted margin.

        Adjusted margin = (gross profit - incentive cost) / revenue, for
        both the tier and the previous year.
        """
        if baseline.revenue <= 0 or tier.annual_revenue <= 0:
            return None
        previous = baseline.adjusted_gross_profit / baseline.revenue
        if previous <= 0:
            return None
        current = (tier.gross_profit - tier.incentive_value) / tier.annual_revenue
        return (current - previous) / previous
