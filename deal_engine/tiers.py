"""
Tier Model

Holds the ordered tier collection of one deal and keeps tier numbers
contiguous from construction and across every mutation. Validation is pull-based: an invalid
model can be held and edited, submission is where it is enforced.
"""

from dataclasses import replace
from decimal import Decimal

from .errors import CapacityExceeded, MinimumTiersViolation, TierNotFound
from .models import Incentive, Tier, ValidationIssue, to_decimal
from .validators import TierValidator

DEFAULT_MIN_TIERS = 1
DEFAULT_MAX_TIERS = 5
DEFAULT_ANNUAL_REVENUE = Decimal("0")
DEFAULT_GROSS_MARGIN = Decimal("0.35")

UPDATABLE_FIELDS = ("annual_revenue", "annual_gross_margin", "incentives")


class TierModel:
    """The editable tier structure of a single deal."""

    def __init__(
        self,
        tiers: list[Tier] | None = None,
        min_tiers: int = DEFAULT_MIN_TIERS,
        max_tiers: int = DEFAULT_MAX_TIERS,
    ):
        if min_tiers < 0 or max_tiers < min_tiers:
            raise ValueError(f"Invalid tier bounds: min={min_tiers}, max={max_tiers}")
        self.min_tiers = min_tiers
        self.max_tiers = max_tiers
        self._validator = TierValidator(min_tiers, max_tiers)

        if tiers:
            # Ordered by the numbers given, then renumbered from 1
            ordered = sorted(tiers, key=lambda tier: tier.tier_number)
            self._tiers = [
                replace(tier, tier_number=index, incentives=list(tier.incentives))
                for index, tier in enumerate(ordered, start=1)
            ]
        else:
            self._tiers = [self._new_tier(n) for n in range(1, min_tiers + 1)]

    @classmethod
    def from_dicts(cls, data: list, **bounds) -> "TierModel":
        """
        Build a model from wire tier records, tolerating legacy shapes.
        Records without a tierNumber keep their position.
        """
        if not isinstance(data, list):
            data = []
        tiers = [
            Tier.from_dict({"tierNumber": index, **raw})
            for index, raw in enumerate(data, start=1)
            if isinstance(raw, dict)
        ]
        return cls(tiers, **bounds)

    @property
    def tiers(self) -> list[Tier]:
        return list(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add_tier(self) -> Tier:
        """Append a tier with default revenue and margin."""
        if len(self._tiers) >= self.max_tiers:
            raise CapacityExceeded(f"Maximum of {self.max_tiers} tiers allowed")
        tier = self._new_tier(len(self._tiers) + 1)
        self._tiers.append(tier)
        return tier

    def remove_tier(self, tier_number: int) -> None:
        """Remove a tier and renumber the remaining tiers from 1."""
        if len(self._tiers) <= self.min_tiers:
            raise MinimumTiersViolation(f"Minimum of {self.min_tiers} tier(s) required")
        target = self.get_tier(tier_number)
        self._tiers = [tier for tier in self._tiers if tier is not target]
        for index, tier in enumerate(self._tiers, start=1):
            tier.tier_number = index

    def update_tier(self, tier_number: int, partial_update: dict) -> Tier:
        """Merge fields into a tier. Values are not validated here."""
        tier = self.get_tier(tier_number)
        unknown = set(partial_update) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update tier field(s): {', '.join(sorted(unknown))}")

        if "annual_revenue" in partial_update:
            tier.annual_revenue = to_decimal(partial_update["annual_revenue"])
        if "annual_gross_margin" in partial_update:
            tier.annual_gross_margin = to_decimal(partial_update["annual_gross_margin"])
        if "incentives" in partial_update:
            incentives = partial_update["incentives"]
            tier.incentives = list(incentives) if isinstance(incentives, list) else []
        return tier

    def add_incentive(self, tier_number: int, incentive: Incentive) -> Incentive:
        self.get_tier(tier_number).incentives.append(incentive)
        return incentive

    def remove_incentive(self, tier_number: int, incentive_id: str) -> None:
        tier = self.get_tier(tier_number)
        remaining = [incentive for incentive in tier.incentives if incentive.id != incentive_id]
        if len(remaining) == len(tier.incentives):
            raise LookupError(f"Incentive {incentive_id} not found on tier {tier_number}")
        tier.incentives = remaining

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_tier(self, tier_number: int) -> Tier:
        for tier in self._tiers:
            if tier.tier_number == tier_number:
                return tier
        raise TierNotFound(f"Tier {tier_number} does not exist")

    def validate(self) -> list[ValidationIssue]:
        return self._validator.validate(self._tiers)

    @property
    def is_valid(self) -> bool:
        return not self.validate()

    @staticmethod
    def total_incentive_value(tier: Tier) -> Decimal:
        return tier.incentive_value

    def total_annual_revenue(self) -> Decimal:
        return sum((tier.annual_revenue for tier in self._tiers), Decimal("0"))

    def total_gross_profit(self) -> Decimal:
        return sum((tier.gross_profit for tier in self._tiers), Decimal("0"))

    def average_gross_margin(self) -> Decimal:
        """Revenue-weighted margin across tiers; 0 when there is no revenue."""
        revenue = self.total_annual_revenue()
        if revenue == 0:
            return Decimal("0")
        return self.total_gross_profit() / revenue

    def _new_tier(self, tier_number: int) -> Tier:
        return Tier(
            tier_number=tier_number,
            annual_revenue=DEFAULT_ANNUAL_REVENUE,
            annual_gross_margin=DEFAULT_GROSS_MARGIN,
            incentives=[],
        )
