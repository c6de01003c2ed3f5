"""
Deal Status Transitions

The valid Deal status graph and which roles may move a deal along it.
The approval workflow moves deals with system authority (role=None),
which is bound by the graph but not by role permissions.
"""

from .errors import InvalidStateTransition
from .models import DEAL_STATUSES, ROLE_ADMIN, ROLE_APPROVER, ROLE_LEGAL, ROLE_SELLER

STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("scoping", "submitted", "canceled"),
    "scoping": ("submitted", "canceled"),
    "submitted": ("under_review", "lost", "canceled"),
    "under_review": ("revision_requested", "negotiating", "approved", "lost", "canceled"),
    "revision_requested": ("submitted", "under_review", "lost", "canceled"),
    "negotiating": ("revision_requested", "approved", "lost"),
    "approved": ("negotiating", "signed", "lost"),
    "signed": (),
    "lost": (),
    "canceled": (),
}

ROLE_PERMISSIONS: dict[str, dict[str, tuple[str, ...]]] = {
    ROLE_SELLER: {
        "draft": ("scoping", "submitted", "canceled"),
        "scoping": ("submitted", "canceled"),
        "revision_requested": ("submitted", "lost", "canceled"),
    },
    ROLE_APPROVER: {
        "submitted": ("under_review", "lost"),
        "under_review": ("revision_requested", "negotiating", "approved", "lost"),
        "negotiating": ("revision_requested", "approved", "lost"),
    },
    ROLE_LEGAL: {
        "approved": ("negotiating", "signed", "lost"),
    },
    ROLE_ADMIN: STATUS_TRANSITIONS,
}

TERMINAL_STATUSES = ("signed", "lost", "canceled")


def is_terminal_status(status: str) -> bool:
    return status in TERMINAL_STATUSES


def available_transitions(current_status: str, role: str | None = None) -> tuple[str, ...]:
    """Statuses reachable from current_status, optionally limited to a role."""
    if role is None:
        return STATUS_TRANSITIONS.get(current_status, ())
    return ROLE_PERMISSIONS.get(role, {}).get(current_status, ())


def can_transition_status(current_status: str, new_status: str, role: str | None = None) -> tuple[bool, str | None]:
    """
    Check a status change.

    Returns:
        (allowed, reason) where reason explains a refusal
    """
    if current_status not in DEAL_STATUSES:
        return False, f"Unknown deal status: {current_status}"
    if new_status not in DEAL_STATUSES:
        return False, f"Unknown deal status: {new_status}"
    if new_status not in STATUS_TRANSITIONS[current_status]:
        return False, f"Cannot transition from {current_status} to {new_status}"
    if role is not None and new_status not in available_transitions(current_status, role):
        return False, f"Cannot transition from {current_status} to {new_status} as {role}"
    return True, None


def ensure_transition(current_status: str, new_status: str, role: str | None = None) -> None:
    """Raises InvalidStateTransition if the status change is not allowed."""
    allowed, reason = can_transition_status(current_status, new_status, role)
    if not allowed:
        raise InvalidStateTransition(reason)
