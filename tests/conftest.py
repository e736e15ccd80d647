"""Shared fixtures for the trade-intel test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import pytest

from trade_intel.core.clock import SimClock
from trade_intel.core.models import Trade

# Monday
BASE_TIME = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Trade helpers
# ---------------------------------------------------------------------------

def build_trade(
    pnl: float = 0.0,
    *,
    entry_time: datetime | None = None,
    duration_minutes: float = 30.0,
    **overrides: Any,
) -> Trade:
    """A closed long trade; ``exit_price`` is derived from ``pnl``.

    Defaults: 10 units at 100 with a stop at 95 and no target.
    """
    entry = entry_time or BASE_TIME
    quantity = overrides.pop("quantity", 10.0)
    entry_price = overrides.pop("entry_price", 100.0)
    fields: dict[str, Any] = {
        "symbol": "NIFTY",
        "entry_price": entry_price,
        "exit_price": entry_price + pnl / quantity,
        "quantity": quantity,
        "entry_time": entry,
        "exit_time": entry + timedelta(minutes=duration_minutes),
        "duration_minutes": duration_minutes,
        "pnl": pnl,
        "stop_loss": 95.0,
    }
    fields.update(overrides)
    return Trade(**fields)


def build_series(
    pnls: Sequence[float],
    *,
    start: datetime | None = None,
    spacing: timedelta = timedelta(days=1),
    **overrides: Any,
) -> list[Trade]:
    """One trade per P&L, oldest first, ``spacing`` apart."""
    start = start or BASE_TIME
    return [
        build_trade(pnl, entry_time=start + spacing * i, **overrides)
        for i, pnl in enumerate(pnls)
    ]


@pytest.fixture
def make_trade():
    return build_trade


@pytest.fixture
def trade_series():
    return build_series


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Monday 2024-06-03 12:00 UTC."""
    return SimClock(datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc))
