"""Protocol interfaces for the engine's external collaborators.

The analytics core never performs I/O.  Trade history, preferences and
the audit sink are supplied through these protocols so the engine can
run against a database, flat files or in-memory fixtures unchanged.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from .models import DetectedPattern, Insight, Trade, UserPreferences


# ---------------------------------------------------------------------------
# Trade source
# ---------------------------------------------------------------------------

@runtime_checkable
class ITradeSource(Protocol):
    """Supplies normalized trade history, newest first."""

    async def fetch_trades(
        self, user_id: str, profile_id: str, limit: int
    ) -> list[Trade]: ...


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

@runtime_checkable
class IPreferenceSource(Protocol):
    """Read-only trader preferences (risk tolerance, styles, coach)."""

    async def fetch_preferences(self, user_id: str) -> UserPreferences: ...


# ---------------------------------------------------------------------------
# Persistence sink
# ---------------------------------------------------------------------------

@runtime_checkable
class IInsightSink(Protocol):
    """Best-effort audit sink for detected patterns and insights."""

    async def save_patterns(
        self, user_id: str, profile_id: str, patterns: Sequence[DetectedPattern]
    ) -> None: ...

    async def save_insights(
        self, user_id: str, profile_id: str, insights: Sequence[Insight]
    ) -> None: ...
