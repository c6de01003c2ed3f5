"""
DEAL DESK ENGINE
Tiered deal financial model and approval routing
"""

from .models import DealInput
from .processor import DealProcessor
from .routing import ApprovalRuleMatcher, RoutingConfig
from .tiers import TierModel
from .workflow import ApprovalWorkflowEngine

__all__ = [
    'DealProcessor',
    'DealInput',
    'TierModel',
    'ApprovalRuleMatcher',
    'RoutingConfig',
    'ApprovalWorkflowEngine',
]
