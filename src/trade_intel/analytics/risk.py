"""Risk calculation helpers.

Pure functions over P&L series and trade lists: drawdown, Sharpe and
Sortino ratios, Kelly fractions, VaR/CVaR, streak lengths, risk of ruin
and fixed-fractional sizing.  Every denominator is guarded; none of
these functions return NaN or infinity.

Unless noted, ``win_rate`` arguments are fractions in [0, 1] and
``*_pct`` arguments are percentages (2.0 == 2%).
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

import numpy as np

from ..core.models import UNBOUNDED_RATIO, Trade, sort_chronological

logger = logging.getLogger(__name__)

TRADING_DAYS = 252


@dataclass(frozen=True)
class RatioResult:
    """A ratio that may be unbounded (e.g. no downside observed)."""

    value: float
    unbounded: bool = False

    @classmethod
    def unbounded_result(cls) -> "RatioResult":
        return cls(UNBOUNDED_RATIO, True)


# ---------------------------------------------------------------------------
# Basic statistics
# ---------------------------------------------------------------------------

def mean_std(values: Iterable[float]) -> tuple[float, float]:
    """Mean and population standard deviation.  ``(0, 0)`` when empty."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return 0.0, 0.0
    return float(arr.mean()), float(arr.std())


def z_score(value: float, mean: float, std: float) -> float:
    if std == 0:
        return 0.0
    return (value - mean) / std


# ---------------------------------------------------------------------------
# Daily aggregation
# ---------------------------------------------------------------------------

def daily_pnl(trades: Iterable[Trade]) -> dict[date, float]:
    """Sum P&L per calendar day of close.  Undated trades are skipped."""
    buckets: dict[date, float] = defaultdict(float)
    for t in trades:
        closed = t.closed_at
        if closed is None:
            continue
        buckets[closed.date()] += t.pnl
    return dict(sorted(buckets.items()))


def daily_returns(trades: Iterable[Trade]) -> list[float]:
    """Day-over-day relative change of daily P&L.

    Days whose predecessor had zero P&L are skipped.
    """
    values = list(daily_pnl(trades).values())
    returns: list[float] = []
    for prev, cur in zip(values, values[1:]):
        if prev != 0:
            returns.append((cur - prev) / abs(prev))
    return returns


# ---------------------------------------------------------------------------
# Drawdown
# ---------------------------------------------------------------------------

def equity_curve(pnls: Sequence[float]) -> np.ndarray:
    return np.cumsum(np.asarray(pnls, dtype=np.float64))


def max_drawdown(pnls: Sequence[float]) -> float:
    """Largest peak-to-trough decline of cumulative P&L (absolute).

    The curve starts at a zero peak.
    """
    if len(pnls) == 0:
        return 0.0
    curve = equity_curve(pnls)
    peaks = np.maximum.accumulate(np.maximum(curve, 0.0))
    return float((peaks - curve).max())


def max_drawdown_pct(pnls: Sequence[float]) -> float:
    """Largest drawdown as a percentage of the running positive peak."""
    if len(pnls) == 0:
        return 0.0
    curve = equity_curve(pnls)
    peak = curve[0]
    worst = 0.0
    for value in curve:
        peak = max(peak, value)
        dd = (peak - value) / abs(peak) * 100 if peak > 0 else 0.0
        worst = max(worst, dd)
    return float(worst)


def recovery_factor(trades: Sequence[Trade]) -> RatioResult:
    """Net P&L divided by the absolute max drawdown."""
    ordered = sort_chronological(trades)
    pnls = [t.pnl for t in ordered]
    net = float(sum(pnls))
    dd = max_drawdown(pnls)
    if dd == 0:
        return RatioResult.unbounded_result() if net > 0 else RatioResult(0.0)
    return RatioResult(net / dd)


def calmar_ratio(trades: Sequence[Trade]) -> RatioResult:
    """Annualized P&L over the absolute max drawdown."""
    ordered = sort_chronological(trades)
    if not ordered:
        return RatioResult(0.0)
    pnls = [t.pnl for t in ordered]
    net = float(sum(pnls))
    dd = max_drawdown(pnls)
    if dd == 0:
        return RatioResult.unbounded_result() if net > 0 else RatioResult(0.0)
    first, last = ordered[0].closed_at, ordered[-1].closed_at
    days = 1
    if first is not None and last is not None:
        days = max(1, math.ceil((last - first).total_seconds() / 86400))
    annualized = net / days * 365
    return RatioResult(annualized / dd)


# ---------------------------------------------------------------------------
# Risk-adjusted returns
# ---------------------------------------------------------------------------

def sharpe_ratio(returns: Sequence[float], risk_free: float = 0.06) -> float:
    """Annualized Sharpe ratio over daily returns (sqrt(252) scaling)."""
    if len(returns) == 0:
        return 0.0
    mean, std = mean_std(returns)
    if std == 0:
        return 0.0
    return (mean * TRADING_DAYS - risk_free) / (std * math.sqrt(TRADING_DAYS))


def sortino_ratio(returns: Sequence[float], risk_free: float = 0.06) -> RatioResult:
    """Annualized Sortino ratio.  Unbounded when there is no downside."""
    if len(returns) == 0:
        return RatioResult(0.0)
    mean, _ = mean_std(returns)
    downside = [r for r in returns if r < 0]
    if not downside:
        return RatioResult.unbounded_result()
    _, downside_std = mean_std(downside)
    if downside_std == 0:
        return RatioResult.unbounded_result()
    return RatioResult(
        (mean * TRADING_DAYS - risk_free) / (downside_std * math.sqrt(TRADING_DAYS))
    )


# ---------------------------------------------------------------------------
# Tail risk
# ---------------------------------------------------------------------------

def _tail_index(n: int, confidence: float) -> int:
    return min(n - 1, int(math.floor((1.0 - confidence) * n)))


def value_at_risk(values: Sequence[float], confidence: float = 0.95) -> float:
    """Empirical VaR by index position (no interpolation), as a magnitude."""
    if len(values) == 0:
        return 0.0
    ordered = sorted(values)
    return abs(ordered[_tail_index(len(ordered), confidence)])


def conditional_var(values: Sequence[float], confidence: float = 0.95) -> float:
    """Mean of all values at or below the VaR index, as a magnitude."""
    if len(values) == 0:
        return 0.0
    ordered = sorted(values)
    idx = _tail_index(len(ordered), confidence)
    return abs(float(np.mean(ordered[: idx + 1])))


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------

def max_consecutive_losses(trades: Sequence[Trade]) -> int:
    best = run = 0
    for t in sort_chronological(trades):
        run = run + 1 if t.pnl < 0 else 0
        best = max(best, run)
    return best


def max_consecutive_wins(trades: Sequence[Trade]) -> int:
    best = run = 0
    for t in sort_chronological(trades):
        run = run + 1 if t.pnl > 0 else 0
        best = max(best, run)
    return best


# ---------------------------------------------------------------------------
# Sizing
# ---------------------------------------------------------------------------

def kelly_fraction(win_rate: float, avg_win: float, avg_loss: float) -> float:
    """Full Kelly fraction clamped to [0, 1]."""
    if avg_loss == 0 or avg_win == 0:
        return 0.0
    payoff = abs(avg_win / avg_loss)
    kelly = (win_rate * payoff - (1 - win_rate)) / payoff
    return max(0.0, min(1.0, kelly))


def half_kelly(win_rate: float, avg_rr: float) -> float:
    """``max(0, W - (1 - W) / R) / 2``; zero when ``R`` is not positive."""
    if avg_rr <= 0:
        return 0.0
    return max(0.0, win_rate - (1 - win_rate) / avg_rr) / 2


def risk_of_ruin(
    win_rate: float,
    avg_win: float,
    avg_loss: float,
    account_size: float,
    risk_pct: float,
) -> float:
    """Heuristic probability of ruin, in percent [0, 100]."""
    if account_size <= 0 or risk_pct <= 0:
        return 0.0
    if win_rate <= 0.5:
        return min(100.0, 50 + (0.5 - win_rate) * 100)
    expected = win_rate * avg_win - (1 - win_rate) * abs(avg_loss)
    if expected <= 0:
        return 100.0
    trades_to_ruin = 100.0 / risk_pct
    ruin = (1 - win_rate) ** trades_to_ruin * 100
    return max(0.0, min(100.0, ruin))


def fixed_fractional_size(
    account_size: float,
    risk_pct: float,
    entry_price: float,
    stop_loss: float,
) -> int:
    """Whole units such that hitting the stop loses ``risk_pct`` of the account."""
    if account_size <= 0 or risk_pct <= 0 or entry_price <= 0 or stop_loss <= 0:
        return 0
    price_risk = abs(entry_price - stop_loss)
    if price_risk == 0:
        return 0
    return int(math.floor(account_size * risk_pct / 100 / price_risk))
