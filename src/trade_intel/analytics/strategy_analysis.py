"""Strategy, time, symbol and setup performance breakdowns.

Answers "which of my strategies actually pays?" style questions with
flat report rows.  Win rates are fractions in [0, 1].

Usage::

    rows = analyze_by_strategy(trades)
    best, worst = best_worst_strategies(rows)
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable, Sequence

from ..core.models import Trade
from .metrics import ratio_or_unbounded

UNCATEGORIZED = "Uncategorized"


@dataclass
class GroupPerformance:
    """Performance row for one grouping key."""

    key: str
    trades: int
    win_rate: float
    total_pnl: float
    avg_pnl: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StrategyPerformance(GroupPerformance):
    avg_win: float = 0.0
    avg_loss: float = 0.0  # magnitude
    profit_factor: float = 0.0
    risk_reward_ratio: float = 0.0
    expectancy: float = 0.0
    max_win: float = 0.0
    max_loss: float = 0.0


def _group(trades: Iterable[Trade], key: Callable[[Trade], Any]) -> dict[Any, list[Trade]]:
    groups: dict[Any, list[Trade]] = defaultdict(list)
    for t in trades:
        k = key(t)
        if k is not None:
            groups[k].append(t)
    return groups


def _row(key: str, group: Sequence[Trade]) -> GroupPerformance:
    total = sum(t.pnl for t in group)
    wins = sum(1 for t in group if t.pnl > 0)
    return GroupPerformance(
        key=key,
        trades=len(group),
        win_rate=wins / len(group),
        total_pnl=total,
        avg_pnl=total / len(group),
    )


def analyze_by_strategy(trades: Sequence[Trade]) -> list[StrategyPerformance]:
    """Per-strategy rows sorted by total P&L, best first."""
    rows: list[StrategyPerformance] = []
    for name, group in _group(trades, lambda t: t.strategy or UNCATEGORIZED).items():
        base = _row(name, group)
        wins = [t.pnl for t in group if t.pnl > 0]
        losses = [t.pnl for t in group if t.pnl < 0]
        avg_win = sum(wins) / len(wins) if wins else 0.0
        avg_loss = abs(sum(losses) / len(losses)) if losses else 0.0
        profit_factor, _ = ratio_or_unbounded(sum(wins), abs(sum(losses)))
        rows.append(StrategyPerformance(
            **asdict(base),
            avg_win=avg_win,
            avg_loss=avg_loss,
            profit_factor=profit_factor,
            risk_reward_ratio=avg_win / avg_loss if avg_loss > 0 else 0.0,
            expectancy=base.win_rate * avg_win - (1 - base.win_rate) * avg_loss,
            max_win=max(wins) if wins else 0.0,
            max_loss=min(losses) if losses else 0.0,
        ))
    return sorted(rows, key=lambda r: r.total_pnl, reverse=True)


def analyze_by_time(trades: Sequence[Trade]) -> list[GroupPerformance]:
    """Per entry-hour rows sorted by hour.  Undated trades are skipped."""
    groups = _group(trades, lambda t: t.opened_at.hour if t.opened_at else None)
    return [_row(str(hour), groups[hour]) for hour in sorted(groups)]


def analyze_by_symbol(
    trades: Sequence[Trade], *, min_trades: int = 3, limit: int = 20
) -> list[GroupPerformance]:
    """Symbols with at least ``min_trades`` trades, top ``limit`` by total P&L."""
    rows = [
        _row(symbol, group)
        for symbol, group in _group(trades, lambda t: t.symbol).items()
        if len(group) >= min_trades
    ]
    rows.sort(key=lambda r: r.total_pnl, reverse=True)
    return rows[:limit]


def analyze_by_setup(trades: Sequence[Trade], *, min_trades: int = 2) -> list[GroupPerformance]:
    """Setups with at least ``min_trades`` trades sorted by win rate."""
    rows = [
        _row(setup, group)
        for setup, group in _group(trades, lambda t: t.setup or UNCATEGORIZED).items()
        if len(group) >= min_trades
    ]
    return sorted(rows, key=lambda r: r.win_rate, reverse=True)


def best_worst_strategies(
    rows: Sequence[StrategyPerformance],
) -> tuple[StrategyPerformance | None, StrategyPerformance | None]:
    if not rows:
        return None, None
    ranked = sorted(rows, key=lambda r: r.total_pnl, reverse=True)
    return ranked[0], ranked[-1]
