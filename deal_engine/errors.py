"""
Exceptions for the Deal Desk Engine

Validation-style errors subclass ValueError and lookup errors subclass
LookupError so callers can keep handling them the generic way.
"""


class DealEngineError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(DealEngineError, ValueError):
    """Tier or incentive fields violate the deal invariants."""

    def __init__(self, issues):
        self.issues = list(issues)
        summary = "; ".join(
            f"tier {issue.tier_number} {issue.field}: {issue.message}" for issue in self.issues
        )
        super().__init__(f"Deal has {len(self.issues)} validation issue(s): {summary}")


class CapacityExceeded(DealEngineError, ValueError):
    """A tier was added to a model already at max_tiers."""


class MinimumTiersViolation(DealEngineError, ValueError):
    """A tier was removed from a model already at min_tiers."""


class InvalidDealAttributes(DealEngineError, ValueError):
    """The rule matcher was given attributes it cannot route."""


class TierNotFound(DealEngineError, LookupError):
    pass


class ApprovalNotFound(DealEngineError, LookupError):
    pass


class DealNotFound(DealEngineError, LookupError):
    pass


class NotAuthorized(DealEngineError):
    """The reviewer may not act on this approval."""


class InvalidStateTransition(DealEngineError):
    """The requested transition is not valid from the current state."""


class WorkflowAlreadyInitiated(DealEngineError):
    """The deal already has an approval workflow that cannot be replaced."""
