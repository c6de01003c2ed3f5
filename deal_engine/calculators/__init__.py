"""
Calculators Package

Provides the financial calculation components for deal review.
"""

from .financials import FinancialAggregator, quantize_money
from .growth import GrowthCalculator, select_baseline

__all__ = [
    "FinancialAggregator",
    "GrowthCalculator",
    "quantize_money",
    "select_baseline",
]
