"""Pure trade-list analytics.

Metrics aggregation, feature extraction, risk calculations and
per-strategy / time / symbol / setup breakdowns.
"""

from .features import FeatureExtractor
from .metrics import MetricsCalculator

__all__ = ["FeatureExtractor", "MetricsCalculator"]
