"""
Fund availability modules for FondCAS.

Consumption pattern training, the statistical availability predictor and the
rule-based estimator.
"""

from .estimator import estimate_fund_availability
from .patterns import ConsumptionPatternBuilder, build_consumption_patterns
from .predictor import AvailabilityPredictor, predict_availability

__all__ = [
    "estimate_fund_availability",
    "ConsumptionPatternBuilder",
    "build_consumption_patterns",
    "AvailabilityPredictor",
    "predict_availability",
]
