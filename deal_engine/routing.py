"""
Approval Rule Matcher

Selects the approval chain for a deal from an ordered decision table.
The first rule whose predicate matches wins, so rules are listed from
most specific to most general. When nothing matches, a single generic
approval stage is used so routing never blocks submission.

Thresholds and stage estimates are configuration (RoutingConfig).
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Callable

from .departments import departments_for_incentive_types
from .models import (
    ROLE_APPROVER,
    ROLE_DEPARTMENT_REVIEWER,
    ROLE_LEGAL,
    ApprovalChain,
    ChainStage,
    DealAttributes,
    to_decimal,
)
from .validators import DealAttributesValidator

logger = logging.getLogger(__name__)


@dataclass
class RoutingConfig:
    """Thresholds and per-stage estimates for the default rule table."""

    md_value_limit: Decimal = Decimal("500000")
    executive_discount_threshold: Decimal = Decimal("0.30")
    long_term_months: int = 36
    standard_deal_type: str = "grow"
    escalation_channels: tuple[str, ...] = ("holding_company",)
    department_review_days: int = 2
    legal_review_days: int = 3
    managing_director_days: int = 2
    executive_days: int = 4
    default_review_days: int = 3

    @classmethod
    def from_dict(cls, data: dict) -> "RoutingConfig":
        defaults = cls()
        return cls(
            md_value_limit=to_decimal(data.get("md_value_limit"), default=str(defaults.md_value_limit)),
            executive_discount_threshold=to_decimal(
                data.get("executive_discount_threshold"),
                default=str(defaults.executive_discount_threshold),
            ),
            long_term_months=int(data.get("long_term_months", defaults.long_term_months)),
            standard_deal_type=data.get("standard_deal_type", defaults.standard_deal_type),
            escalation_channels=tuple(data.get("escalation_channels", defaults.escalation_channels)),
            department_review_days=int(data.get("department_review_days", defaults.department_review_days)),
            legal_review_days=int(data.get("legal_review_days", defaults.legal_review_days)),
            managing_director_days=int(data.get("managing_director_days", defaults.managing_director_days)),
            executive_days=int(data.get("executive_days", defaults.executive_days)),
            default_review_days=int(data.get("default_review_days", defaults.default_review_days)),
        )

    @classmethod
    def from_file(cls, path: str) -> "RoutingConfig":
        """Load thresholds from a JSON file."""
        return cls.from_dict(json.loads(Path(path).read_text()))


@dataclass(frozen=True)
class ApprovalRule:
    """One row of the decision table: predicate -> chain."""

    name: str
    description: str
    predicate: Callable[[DealAttributes], bool] = field(compare=False)
    chain: tuple[ChainStage, ...]

    def matches(self, attrs: DealAttributes) -> bool:
        return bool(self.predicate(attrs))


def build_default_rules(config: RoutingConfig) -> tuple[ApprovalRule, ...]:
    """
    The standard rule table, most specific first.

    Every chain starts with the finance incentive review and the trading
    margin review; rules differ in legal review and final approver.
    """
    finance = ChainStage(1, "finance", ROLE_DEPARTMENT_REVIEWER, config.department_review_days)
    trading = ChainStage(2, "trading", ROLE_DEPARTMENT_REVIEWER, config.department_review_days)

    def legal(stage):
        return ChainStage(stage, "legal", ROLE_LEGAL, config.legal_review_days)

    def executive(stage):
        return ChainStage(stage, "executive", ROLE_APPROVER, config.executive_days)

    def managing_director(stage):
        return ChainStage(stage, "business", ROLE_APPROVER, config.managing_director_days)

    return (
        ApprovalRule(
            name="non_standard_terms",
            description="Non-standard terms need legal review and Executive approval",
            predicate=lambda a: a.has_non_standard_terms,
            chain=(finance, trading, legal(3), executive(4)),
        ),
        ApprovalRule(
            name="high_value",
            description=f"Deals above ${config.md_value_limit:,} need Executive approval",
            predicate=lambda a: a.total_value > config.md_value_limit,
            chain=(finance, trading, executive(3)),
        ),
        ApprovalRule(
            name="high_discount",
            description=f"Discounts of {config.executive_discount_threshold:.0%} or more need Executive approval",
            predicate=lambda a: a.discount_rate >= config.executive_discount_threshold,
            chain=(finance, trading, executive(3)),
        ),
        ApprovalRule(
            name="non_standard_deal_profile",
            description="Non-standard deal types or escalation channels need Executive approval",
            predicate=lambda a: (
                a.deal_type != config.standard_deal_type or a.sales_channel in config.escalation_channels
            ),
            chain=(finance, trading, executive(3)),
        ),
        ApprovalRule(
            name="extended_contract_term",
            description=f"Contracts of {config.long_term_months}+ months need Executive approval",
            predicate=lambda a: a.contract_term_months >= config.long_term_months,
            chain=(finance, trading, executive(3)),
        ),
        ApprovalRule(
            name="standard",
            description="Standard deals need Managing Director approval",
            predicate=lambda a: a.total_value <= config.md_value_limit,
            chain=(finance, trading, managing_director(3)),
        ),
    )


def default_chain(config: RoutingConfig) -> tuple[ChainStage, ...]:
    return (ChainStage(1, "business", ROLE_APPROVER, config.default_review_days),)


def estimate_days(stages) -> int:
    """
    Total turnaround: stages run one after another, entries sharing a
    stage number run in parallel, so each stage costs its slowest entry.
    """
    per_stage: dict[int, int] = {}
    for entry in stages:
        per_stage[entry.stage] = max(per_stage.get(entry.stage, 0), entry.estimated_days)
    return sum(per_stage.values())


class ApprovalRuleMatcher:
    """Deterministic first-match-wins routing over an ordered rule table."""

    DEFAULT_RULE_NAME = "default"

    def __init__(self, config: RoutingConfig | None = None, rules=None):
        self.config = config or RoutingConfig()
        self.rules = tuple(rules) if rules is not None else build_default_rules(self.config)
        self.validator = DealAttributesValidator()

    def match(self, attrs: DealAttributes, incentive_types=()) -> ApprovalChain:
        """
        Compute the approval chain for a deal.

        Args:
            attrs: Final deal attributes
            incentive_types: Incentive types on the deal; each active
                department owning one adds a parallel stage-1 review

        Returns:
            ApprovalChain ordered by stage
        """
        try:
            self.validator.validate(attrs)
        except ValueError as e:
            logger.error(f"Cannot route deal: {e}")
            raise

        rule = self._first_match(attrs)
        if rule is None:
            logger.warning("No approval rule matched, using default chain")
            rule_name, stages = self.DEFAULT_RULE_NAME, default_chain(self.config)
        else:
            logger.info(f"Approval rule matched: {rule.name}")
            rule_name, stages = rule.name, rule.chain

        stages = self._with_incentive_departments(stages, incentive_types)
        ordered = tuple(sorted(stages, key=lambda entry: entry.stage))
        return ApprovalChain(rule_name=rule_name, stages=ordered, estimated_days=estimate_days(ordered))

    def _first_match(self, attrs: DealAttributes) -> ApprovalRule | None:
        for rule in self.rules:
            if rule.matches(attrs):
                return rule
        return None

    def _with_incentive_departments(self, stages, incentive_types) -> tuple[ChainStage, ...]:
        present = {entry.department for entry in stages}
        extra = [
            ChainStage(1, department, ROLE_DEPARTMENT_REVIEWER, self.config.department_review_days)
            for department in departments_for_incentive_types(incentive_types)
            if department not in present
        ]
        return tuple(stages) + tuple(extra)
