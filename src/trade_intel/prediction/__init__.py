"""Heuristic trade outcome prediction and position sizing."""

from .predictor import TradePredictor
from .sizing import PositionSizer

__all__ = ["PositionSizer", "TradePredictor"]
