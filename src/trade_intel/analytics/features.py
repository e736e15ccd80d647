"""Feature matrix extraction.

Builds the derived, non-authoritative :class:`FeatureMatrix` used by
insight generation and prediction: hour and weekday distributions,
per-hour win rates and per-strategy / per-setup / per-symbol rollups.

Usage::

    extractor = FeatureExtractor()
    features = extractor.extract("user-1", "profile-1", trades, metrics)
    print(features.hourly_win_rates["10:00"])
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..core.models import (
    FeatureLabels,
    FeatureMatrix,
    Metrics,
    PerformanceSummary,
    SetupStats,
    StrategyStats,
    SymbolStats,
    Trade,
    sort_chronological,
)
from .metrics import DAY_LABELS, MetricsCalculator, ratio_or_unbounded
from .risk import daily_pnl

logger = logging.getLogger(__name__)


def hour_label(hour: int) -> str:
    return f"{hour}:00"


@dataclass
class _Bucket:
    """Win/P&L accumulator for one grouping key."""

    trades: int = 0
    wins: int = 0
    total_pnl: float = 0.0
    gross_wins: float = 0.0
    gross_losses: float = 0.0

    def record(self, trade: Trade) -> None:
        self.trades += 1
        self.total_pnl += trade.pnl
        if trade.pnl > 0:
            self.wins += 1
            self.gross_wins += trade.pnl
        elif trade.pnl < 0:
            self.gross_losses += abs(trade.pnl)

    @property
    def win_rate(self) -> float:
        return self.wins / self.trades if self.trades else 0.0

    @property
    def avg_pnl(self) -> float:
        return self.total_pnl / self.trades if self.trades else 0.0


def _best_key(buckets: dict[str, _Bucket], limit: int = 1) -> list[str]:
    ranked = sorted(buckets.items(), key=lambda kv: (-kv[1].avg_pnl, kv[0]))
    return [k for k, b in ranked[:limit] if b.avg_pnl > 0]


class FeatureExtractor:
    """Derive a feature matrix from trades and (optionally) metrics."""

    def extract(
        self,
        user_id: str,
        profile_id: str,
        trades: Sequence[Trade],
        metrics: Metrics | None = None,
    ) -> FeatureMatrix:
        time_distribution: dict[str, int] = defaultdict(int)
        day_distribution: dict[str, int] = defaultdict(int)
        by_hour: dict[str, _Bucket] = defaultdict(_Bucket)
        by_strategy: dict[str, list[Trade]] = defaultdict(list)
        by_setup: dict[str, _Bucket] = defaultdict(_Bucket)
        setup_symbols: dict[str, dict[str, _Bucket]] = defaultdict(lambda: defaultdict(_Bucket))
        setup_hours: dict[str, dict[str, _Bucket]] = defaultdict(lambda: defaultdict(_Bucket))
        by_symbol: dict[str, _Bucket] = defaultdict(_Bucket)
        symbol_strategies: dict[str, dict[str, _Bucket]] = defaultdict(lambda: defaultdict(_Bucket))
        symbol_hours: dict[str, dict[str, _Bucket]] = defaultdict(lambda: defaultdict(_Bucket))
        symbol_moves: dict[str, list[float]] = defaultdict(list)
        notionals: list[float] = []

        for trade in trades:
            opened = trade.opened_at
            hour = hour_label(opened.hour) if opened else None
            if opened is not None:
                time_distribution[hour] += 1
                day_distribution[DAY_LABELS[opened.weekday()]] += 1
                by_hour[hour].record(trade)

            if trade.strategy:
                by_strategy[trade.strategy].append(trade)

            if trade.setup:
                by_setup[trade.setup].record(trade)
                setup_symbols[trade.setup][trade.symbol].record(trade)
                if hour:
                    setup_hours[trade.setup][hour].record(trade)

            by_symbol[trade.symbol].record(trade)
            if trade.strategy:
                symbol_strategies[trade.symbol][trade.strategy].record(trade)
            if hour:
                symbol_hours[trade.symbol][hour].record(trade)
            if trade.entry_price > 0:
                symbol_moves[trade.symbol].append(
                    abs(trade.exit_price - trade.entry_price) / trade.entry_price
                )
            if trade.notional > 0:
                notionals.append(trade.notional)

        strategy_performance = {
            name: self._strategy_stats(name, group) for name, group in by_strategy.items()
        }
        setup_performance = {
            name: SetupStats(
                name=name,
                trade_count=b.trades,
                wins=b.wins,
                win_rate=b.win_rate,
                avg_pnl=b.avg_pnl,
                total_pnl=b.total_pnl,
                best_symbols=_best_key(setup_symbols[name], 3),
                best_times=_best_key(setup_hours[name], 3),
            )
            for name, b in by_setup.items()
        }
        symbol_performance = {
            symbol: SymbolStats(
                symbol=symbol,
                trade_count=b.trades,
                wins=b.wins,
                win_rate=b.win_rate,
                avg_pnl=b.avg_pnl,
                total_pnl=b.total_pnl,
                avg_volatility=float(np.mean(symbol_moves[symbol])) if symbol_moves[symbol] else 0.0,
                best_strategy=next(iter(_best_key(symbol_strategies[symbol])), ""),
                best_time_of_day=next(iter(_best_key(symbol_hours[symbol])), ""),
            )
            for symbol, b in by_symbol.items()
        }

        position_size_variance = float(np.var(notionals)) if notionals else 0.0

        if metrics is None:
            performance = PerformanceSummary()
            labels = FeatureLabels()
            avg_risk = 0.0
            violation_rate = 0.0
        else:
            performance = PerformanceSummary(
                win_rate=metrics.win_rate,
                profit_factor=metrics.profit_factor,
                avg_rr=metrics.avg_risk_reward,
                max_drawdown=metrics.max_drawdown,
                sharpe_ratio=metrics.sharpe_ratio,
                consistency_score=metrics.consistency_score,
            )
            labels = FeatureLabels(
                total_profit=metrics.total_pnl,
                risk_adjusted_return=metrics.risk_adjusted_return,
                consistency_score=metrics.consistency_score,
            )
            avg_risk = metrics.avg_risk_per_trade
            violation_rate = 1 - metrics.rule_followed_rate if metrics.rule_tracked_trades else 0.0

        logger.debug(
            "Extracted features for %s/%s: %d strategies, %d symbols",
            user_id, profile_id, len(strategy_performance), len(symbol_performance),
        )
        return FeatureMatrix(
            user_id=user_id,
            profile_id=profile_id,
            time_distribution=dict(time_distribution),
            day_distribution=dict(day_distribution),
            hourly_win_rates={h: b.win_rate for h, b in by_hour.items()},
            strategy_performance=strategy_performance,
            setup_performance=setup_performance,
            symbol_performance=symbol_performance,
            performance=performance,
            avg_risk_per_trade=avg_risk,
            rule_violation_rate=violation_rate,
            position_size_variance=position_size_variance,
            labels=labels,
        )

    @staticmethod
    def _strategy_stats(name: str, group: list[Trade]) -> StrategyStats:
        ordered = sort_chronological(group)
        bucket = _Bucket()
        for t in ordered:
            bucket.record(t)
        profit_factor, _ = ratio_or_unbounded(bucket.gross_wins, bucket.gross_losses)
        wins = [t.pnl for t in ordered if t.pnl > 0]
        losses = [t.pnl for t in ordered if t.pnl < 0]
        avg_rr = 0.0
        if wins and losses:
            avg_rr = (sum(wins) / len(wins)) / abs(sum(losses) / len(losses))

        equity = peak = max_dd = 0.0
        for t in ordered:
            equity += t.pnl
            peak = max(peak, equity)
            max_dd = max(max_dd, peak - equity)

        pnls = np.asarray([t.pnl for t in ordered], dtype=np.float64)
        std = float(pnls.std()) if pnls.size else 0.0
        sharpe = float(pnls.mean()) / std if std > 0 else 0.0

        half = len(ordered) // 2
        is_decaying = False
        if half >= 5:
            older = sum(1 for t in ordered[:half] if t.pnl > 0) / half
            newer = sum(1 for t in ordered[half:] if t.pnl > 0) / (len(ordered) - half)
            is_decaying = older - newer > 0.15

        return StrategyStats(
            name=name,
            trade_count=bucket.trades,
            wins=bucket.wins,
            win_rate=bucket.win_rate,
            avg_pnl=bucket.avg_pnl,
            total_pnl=bucket.total_pnl,
            profit_factor=profit_factor,
            avg_rr=avg_rr,
            max_drawdown=max_dd,
            sharpe_ratio=sharpe,
            consistency=float(MetricsCalculator.consistency_score(list(daily_pnl(ordered).values()))),
            is_decaying=is_decaying,
        )

