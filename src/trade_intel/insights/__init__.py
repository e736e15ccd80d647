"""Insight generation and the rule-based coach."""

from .coach import RuleBasedCoach, quick_insights
from .generator import InsightGenerator

__all__ = ["InsightGenerator", "RuleBasedCoach", "quick_insights"]
