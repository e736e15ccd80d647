"""Behavioural pattern, market regime, anomaly and mistake detection."""

from .anomaly import AnomalyDetector
from .mistakes import MistakeDetector
from .patterns import DetectionResult, PatternDetector
from .regime import RegimeDetector

__all__ = [
    "AnomalyDetector",
    "DetectionResult",
    "MistakeDetector",
    "PatternDetector",
    "RegimeDetector",
]
