"""Aggregate performance metrics over a trade collection.

Converts a list of trades into a flat :class:`Metrics` snapshot (counts,
P&L, drawdown, streaks, consistency, risk and discipline ratios) and an
:class:`AdvancedMetrics` snapshot with tail-risk estimates, rolling
windows, attribution and self-referenced z-scores.

Trades are sorted chronologically before any order-dependent
computation, so callers may pass history in any order.

Usage::

    calc = MetricsCalculator()
    metrics = calc.calculate(trades)
    metrics = calc.update_incremental(metrics, new_trade)
    print(metrics.win_rate, metrics.current_streak)
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Sequence

from ..core.clock import IClock, WallClock
from ..core.enums import MarketRegime
from ..core.models import (
    UNBOUNDED_RATIO,
    AdvancedMetrics,
    Attribution,
    Metrics,
    Trade,
    sort_chronological,
)
from . import risk

logger = logging.getLogger(__name__)

DAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def ratio_or_unbounded(numerator: float, denominator: float) -> tuple[float, bool]:
    """``numerator / denominator`` with the finite unbounded sentinel.

    Zero denominator: unbounded when the numerator is positive, else 0.
    """
    if denominator > 0:
        return numerator / denominator, False
    if numerator > 0:
        return UNBOUNDED_RATIO, True
    return 0.0, False


@dataclass
class _StreakState:
    """Signed streak walker that records closed segment lengths."""

    current: int = 0
    longest_win: int = 0
    longest_loss: int = 0
    win_segments: list[int] = field(default_factory=list)
    loss_segments: list[int] = field(default_factory=list)

    def _close(self) -> None:
        if self.current > 0:
            self.win_segments.append(self.current)
        elif self.current < 0:
            self.loss_segments.append(-self.current)
        self.current = 0

    def record(self, pnl: float) -> None:
        if pnl > 0:
            if self.current < 0:
                self._close()
            self.current += 1
        elif pnl < 0:
            if self.current > 0:
                self._close()
            self.current -= 1
        else:
            self._close()
        self.longest_win = max(self.longest_win, self.current)
        self.longest_loss = max(self.longest_loss, -self.current)

    def segments(self) -> tuple[list[int], list[int]]:
        """Closed segments plus the still-open run."""
        wins, losses = list(self.win_segments), list(self.loss_segments)
        if self.current > 0:
            wins.append(self.current)
        elif self.current < 0:
            losses.append(-self.current)
        return wins, losses


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class MetricsCalculator:
    """Stateless metrics calculator.

    Parameters
    ----------
    clock : IClock | None
        Source of ``calculated_at`` timestamps.  Defaults to wall time.
    """

    def __init__(self, *, clock: IClock | None = None) -> None:
        self._clock = clock or WallClock()

    # ------------------------------------------------------------------ #
    # Full calculation                                                     #
    # ------------------------------------------------------------------ #

    def calculate(self, trades: Sequence[Trade]) -> Metrics:
        """Compute a full metrics snapshot.  Empty input gives zeroed metrics."""
        now = self._clock.now()
        ordered = sort_chronological(trades)
        n = len(ordered)
        if n == 0:
            return Metrics(calculated_at=now)

        pnls = [t.pnl for t in ordered]
        wins = [p for p in pnls if p > 0]
        losses = [p for p in pnls if p < 0]
        winning, losing = len(wins), len(losses)
        break_even = n - winning - losing

        gross_profit = sum(wins)
        gross_loss = abs(sum(losses))
        total_pnl = sum(pnls)
        avg_win = gross_profit / winning if winning else 0.0
        avg_loss = -gross_loss / losing if losing else 0.0
        win_rate = winning / n
        loss_rate = losing / n
        profit_factor, pf_unbounded = ratio_or_unbounded(gross_profit, gross_loss)
        expectancy = win_rate * avg_win + loss_rate * avg_loss

        # Equity walk
        equity = peak = 0.0
        max_dd = max_dd_pct = 0.0
        dd_total = 0.0
        since_peak = 0
        for pnl in pnls:
            equity += pnl
            if equity >= peak:
                peak = equity
                since_peak = 0
            else:
                since_peak += 1
            dd = peak - equity
            dd_total += dd
            if dd > max_dd:
                max_dd = dd
                max_dd_pct = dd / max(abs(peak), 1.0)

        # Streaks
        streaks = _StreakState()
        for pnl in pnls:
            streaks.record(pnl)
        win_segments, loss_segments = streaks.segments()

        # Daily, weekly, monthly buckets
        days = risk.daily_pnl(ordered)
        daily_values = list(days.values())
        avg_daily, daily_std = risk.mean_std(daily_values)
        weeks: dict[tuple[int, int], float] = defaultdict(float)
        months: dict[tuple[int, int], float] = defaultdict(float)
        for day, value in days.items():
            iso = day.isocalendar()
            weeks[(iso[0], iso[1])] += value
            months[(day.year, day.month)] += value

        sharpe = avg_daily / daily_std if daily_std > 0 else 0.0
        sortino, sortino_unbounded = self._daily_sortino(daily_values, avg_daily)

        # Risk parameters
        risks = [t.initial_risk for t in ordered if t.initial_risk is not None]
        declared_rr = [
            t.risk_reward_ratio for t in ordered
            if t.risk_reward_ratio is not None and t.risk_reward_ratio > 0
        ]
        slippages = [t.slippage for t in ordered if t.slippage is not None]
        rule_tracked = [t for t in ordered if t.rule_followed is not None]
        rule_followed = sum(1 for t in rule_tracked if t.rule_followed)
        rule_rate = rule_followed / len(rule_tracked) if rule_tracked else 0.0

        durations = [t.duration_minutes for t in ordered]
        avg_duration = _mean(durations)

        half = n // 2
        edge_decay = 0.0
        if half > 0:
            older = _mean(pnls[:half])
            newer = _mean(pnls[half:])
            if older != 0:
                edge_decay = (older - newer) / abs(older)

        metrics = Metrics(
            total_trades=n,
            winning_trades=winning,
            losing_trades=losing,
            break_even_trades=break_even,
            win_rate=win_rate,
            loss_rate=loss_rate,
            total_pnl=total_pnl,
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            net_profit=total_pnl,
            avg_win=avg_win,
            avg_loss=avg_loss,
            largest_win=max(0.0, max(pnls)),
            largest_loss=min(0.0, min(pnls)),
            profit_factor=profit_factor,
            profit_factor_unbounded=pf_unbounded,
            expectancy=expectancy,
            sharpe_ratio=sharpe,
            sortino_ratio=sortino,
            sortino_unbounded=sortino_unbounded,
            calmar_ratio=total_pnl / max_dd if max_dd > 0 else 0.0,
            max_drawdown=max_dd,
            max_drawdown_percent=max_dd_pct,
            avg_drawdown=dd_total / n,
            drawdown_duration=since_peak,
            recovery_factor=total_pnl / max_dd if max_dd > 0 else 0.0,
            consistency_score=self.consistency_score(daily_values),
            profitable_days=sum(1 for v in daily_values if v > 0),
            profitable_weeks=sum(1 for v in weeks.values() if v > 0),
            profitable_months=sum(1 for v in months.values() if v > 0),
            avg_daily_pnl=avg_daily,
            daily_pnl_std_dev=daily_std,
            current_streak=streaks.current,
            longest_win_streak=streaks.longest_win,
            longest_loss_streak=streaks.longest_loss,
            avg_win_streak=_mean(win_segments),
            avg_loss_streak=_mean(loss_segments),
            avg_risk_reward=self._avg_risk_reward(declared_rr, avg_win, avg_loss),
            avg_risk_per_trade=_mean(risks),
            max_risk_per_trade=max(risks) if risks else 0.0,
            risk_adjusted_return=sharpe,
            avg_trade_duration=avg_duration,
            avg_holding_time=avg_duration,
            time_in_market=self._time_in_market(ordered),
            avg_slippage=_mean(slippages),
            fill_rate=1.0,
            rule_followed_rate=rule_rate,
            plan_deviation_rate=1 - rule_rate if rule_tracked else 0.0,
            edge=expectancy,
            edge_decay_rate=edge_decay,
            peak_equity=peak,
            rule_tracked_trades=len(rule_tracked),
            rule_followed_trades=rule_followed,
            risk_samples=len(risks),
            slippage_samples=len(slippages),
            rr_samples=len(declared_rr),
            win_streak_segments=len(win_segments),
            loss_streak_segments=len(loss_segments),
            period_start=ordered[0].closed_at,
            period_end=ordered[-1].closed_at,
            calculated_at=now,
        )
        logger.debug(
            "Metrics over %d trades: win_rate=%.3f pnl=%.2f",
            n, win_rate, total_pnl,
        )
        return metrics

    # ------------------------------------------------------------------ #
    # Incremental update                                                   #
    # ------------------------------------------------------------------ #

    def update_incremental(self, prior: Metrics, trade: Trade) -> Metrics:
        """Fold one new (latest) trade into a prior snapshot in O(1).

        Counts, P&L, drawdown, streaks and the risk/discipline averages
        are exact.  Day-bucketed fields (consistency, daily statistics,
        Sharpe/Sortino, profitable periods) are carried forward from the
        prior snapshot until the next full :meth:`calculate`.
        """
        pnl = trade.pnl
        n = prior.total_trades + 1

        winning = prior.winning_trades + (1 if pnl > 0 else 0)
        losing = prior.losing_trades + (1 if pnl < 0 else 0)
        break_even = prior.break_even_trades + (1 if pnl == 0 else 0)
        gross_profit = prior.gross_profit + max(pnl, 0.0)
        gross_loss = prior.gross_loss + abs(min(pnl, 0.0))
        total_pnl = prior.total_pnl + pnl
        avg_win = gross_profit / winning if winning else 0.0
        avg_loss = -gross_loss / losing if losing else 0.0
        win_rate = winning / n
        loss_rate = losing / n
        profit_factor, pf_unbounded = ratio_or_unbounded(gross_profit, gross_loss)
        expectancy = win_rate * avg_win + loss_rate * avg_loss

        # Drawdown
        peak = max(prior.peak_equity, total_pnl)
        dd = peak - total_pnl
        max_dd, max_dd_pct = prior.max_drawdown, prior.max_drawdown_percent
        if dd > max_dd:
            max_dd = dd
            max_dd_pct = dd / max(abs(peak), 1.0)
        since_peak = prior.drawdown_duration + 1 if dd > 0 else 0

        # Streaks: the open run is already counted in the segment averages
        current = prior.current_streak
        win_seg, loss_seg = prior.win_streak_segments, prior.loss_streak_segments
        avg_win_streak, avg_loss_streak = prior.avg_win_streak, prior.avg_loss_streak
        if pnl > 0:
            if current > 0:
                avg_win_streak = (avg_win_streak * win_seg + 1) / win_seg
                current += 1
            else:
                avg_win_streak = (avg_win_streak * win_seg + 1) / (win_seg + 1)
                win_seg += 1
                current = 1
        elif pnl < 0:
            if current < 0:
                avg_loss_streak = (avg_loss_streak * loss_seg + 1) / loss_seg
                current -= 1
            else:
                avg_loss_streak = (avg_loss_streak * loss_seg + 1) / (loss_seg + 1)
                loss_seg += 1
                current = -1
        else:
            current = 0

        # Risk parameters
        risk_samples = prior.risk_samples
        avg_risk, max_risk = prior.avg_risk_per_trade, prior.max_risk_per_trade
        if trade.initial_risk is not None:
            avg_risk = (avg_risk * risk_samples + trade.initial_risk) / (risk_samples + 1)
            max_risk = trade.initial_risk if risk_samples == 0 else max(max_risk, trade.initial_risk)
            risk_samples += 1

        rr_samples = prior.rr_samples
        declared_mean = prior.avg_risk_reward if rr_samples else 0.0
        if trade.risk_reward_ratio is not None and trade.risk_reward_ratio > 0:
            declared_mean = (declared_mean * rr_samples + trade.risk_reward_ratio) / (rr_samples + 1)
            rr_samples += 1
        if rr_samples:
            avg_rr = declared_mean
        else:
            avg_rr = self._avg_risk_reward([], avg_win, avg_loss)

        slippage_samples = prior.slippage_samples
        avg_slippage = prior.avg_slippage
        if trade.slippage is not None:
            avg_slippage = (avg_slippage * slippage_samples + trade.slippage) / (slippage_samples + 1)
            slippage_samples += 1

        rule_tracked = prior.rule_tracked_trades
        rule_followed = prior.rule_followed_trades
        if trade.rule_followed is not None:
            rule_tracked += 1
            rule_followed += 1 if trade.rule_followed else 0
        rule_rate = rule_followed / rule_tracked if rule_tracked else 0.0

        avg_duration = (prior.avg_trade_duration * prior.total_trades + trade.duration_minutes) / n

        closed = trade.closed_at
        period_start = prior.period_start or closed
        period_end = prior.period_end
        if closed is not None and (period_end is None or closed > period_end):
            period_end = closed

        return prior.model_copy(update={
            "total_trades": n,
            "winning_trades": winning,
            "losing_trades": losing,
            "break_even_trades": break_even,
            "win_rate": win_rate,
            "loss_rate": loss_rate,
            "total_pnl": total_pnl,
            "gross_profit": gross_profit,
            "gross_loss": gross_loss,
            "net_profit": total_pnl,
            "avg_win": avg_win,
            "avg_loss": avg_loss,
            "largest_win": max(prior.largest_win, pnl, 0.0),
            "largest_loss": min(prior.largest_loss, pnl, 0.0),
            "profit_factor": profit_factor,
            "profit_factor_unbounded": pf_unbounded,
            "expectancy": expectancy,
            "edge": expectancy,
            "max_drawdown": max_dd,
            "max_drawdown_percent": max_dd_pct,
            "avg_drawdown": (prior.avg_drawdown * prior.total_trades + dd) / n,
            "drawdown_duration": since_peak,
            "recovery_factor": total_pnl / max_dd if max_dd > 0 else 0.0,
            "calmar_ratio": total_pnl / max_dd if max_dd > 0 else 0.0,
            "current_streak": current,
            "longest_win_streak": max(prior.longest_win_streak, current),
            "longest_loss_streak": max(prior.longest_loss_streak, -current),
            "avg_win_streak": avg_win_streak,
            "avg_loss_streak": avg_loss_streak,
            "win_streak_segments": win_seg,
            "loss_streak_segments": loss_seg,
            "avg_risk_reward": avg_rr,
            "avg_risk_per_trade": avg_risk,
            "max_risk_per_trade": max_risk,
            "risk_samples": risk_samples,
            "rr_samples": rr_samples,
            "avg_slippage": avg_slippage,
            "slippage_samples": slippage_samples,
            "rule_tracked_trades": rule_tracked,
            "rule_followed_trades": rule_followed,
            "rule_followed_rate": rule_rate,
            "plan_deviation_rate": 1 - rule_rate if rule_tracked else 0.0,
            "avg_trade_duration": avg_duration,
            "avg_holding_time": avg_duration,
            "peak_equity": peak,
            "period_start": period_start,
            "period_end": period_end,
            "calculated_at": self._clock.now(),
        })

    # ------------------------------------------------------------------ #
    # Advanced metrics                                                     #
    # ------------------------------------------------------------------ #

    def calculate_advanced(
        self,
        trades: Sequence[Trade],
        *,
        market_regime: MarketRegime | None = None,
    ) -> AdvancedMetrics:
        """Metrics plus VaR/CVaR, rolling windows, attribution and z-scores.

        ``market_regime`` labels the window's P&L in the market-condition
        attribution; omitted, that bucket stays empty.
        """
        base = self.calculate(trades)
        ordered = sort_chronological(trades)
        if not ordered:
            return AdvancedMetrics(**base.model_dump())

        pnls = [t.pnl for t in ordered]

        # Rolling windows end at the latest close
        latest = max((t.closed_at for t in ordered if t.closed_at), default=None)
        rolling: dict[int, float] = {7: 0.0, 30: 0.0, 90: 0.0}
        if latest is not None:
            for window in rolling:
                start = latest - timedelta(days=window)
                rolling[window] = sum(
                    t.pnl for t in ordered if t.closed_at and t.closed_at > start
                )

        # Z-scores against the trader's own history
        mean, std = risk.mean_std(pnls)
        pnl_z = risk.z_score(pnls[-1], mean, std)

        recent = ordered[-20:]
        recent_rate = sum(1 for t in recent if t.pnl > 0) / len(recent)
        p = base.win_rate
        std_err = math.sqrt(p * (1 - p) / len(recent))
        win_rate_z = (recent_rate - p) / std_err if std_err > 0 else 0.0

        curve = risk.equity_curve(pnls)
        peaks = [max(0.0, float(v)) for v in curve]
        for i in range(1, len(peaks)):
            peaks[i] = max(peaks[i], peaks[i - 1])
        drawdowns = [pk - float(v) for pk, v in zip(peaks, curve)]
        dd_mean, dd_std = risk.mean_std(drawdowns)
        drawdown_z = risk.z_score(drawdowns[-1], dd_mean, dd_std)

        return AdvancedMetrics(
            **base.model_dump(),
            var95=risk.value_at_risk(pnls, 0.95),
            var99=risk.value_at_risk(pnls, 0.99),
            cvar95=risk.conditional_var(pnls, 0.95),
            rolling_7d_return=rolling[7],
            rolling_30d_return=rolling[30],
            rolling_90d_return=rolling[90],
            attribution=self._attribution(ordered, market_regime),
            pnl_z_score=pnl_z,
            win_rate_z_score=win_rate_z,
            drawdown_z_score=drawdown_z,
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    @staticmethod
    def consistency_score(daily_values: Sequence[float]) -> int:
        """0-100 score from the mean/stddev ratio of daily P&L."""
        if not daily_values:
            return 0
        mean, std = risk.mean_std(daily_values)
        ratio = 1.0 if std == 0 else min(1.0, max(0.0, mean / (2 * std)))
        return int(round(ratio * 100))

    @staticmethod
    def _daily_sortino(daily_values: Sequence[float], mean: float) -> tuple[float, bool]:
        if not daily_values:
            return 0.0, False
        downside = math.sqrt(sum(min(v, 0.0) ** 2 for v in daily_values) / len(daily_values))
        return ratio_or_unbounded(mean, downside) if downside == 0 else (mean / downside, False)

    @staticmethod
    def _avg_risk_reward(declared: Sequence[float], avg_win: float, avg_loss: float) -> float:
        if declared:
            return _mean(declared)
        if avg_loss < 0:
            return avg_win / abs(avg_loss)
        return 0.0

    @staticmethod
    def _time_in_market(ordered: Sequence[Trade]) -> float:
        opened = [t.opened_at for t in ordered if t.opened_at]
        closed = [t.closed_at for t in ordered if t.closed_at]
        if not opened or not closed:
            return 0.0
        span = (max(closed) - min(opened)).total_seconds() / 60
        if span <= 0:
            return 0.0
        held = sum(t.duration_minutes for t in ordered)
        return min(1.0, held / span)

    @staticmethod
    def _attribution(
        ordered: Sequence[Trade], market_regime: MarketRegime | None
    ) -> Attribution:
        by_strategy: dict[str, float] = defaultdict(float)
        by_symbol: dict[str, float] = defaultdict(float)
        by_hour: dict[str, float] = defaultdict(float)
        by_day: dict[str, float] = defaultdict(float)
        for t in ordered:
            by_strategy[t.strategy or "unassigned"] += t.pnl
            by_symbol[t.symbol] += t.pnl
            opened = t.opened_at
            if opened is not None:
                by_hour[f"{opened.hour}:00"] += t.pnl
                by_day[DAY_LABELS[opened.weekday()]] += t.pnl
        by_condition: dict[str, float] = {}
        if market_regime is not None:
            by_condition[market_regime.value] = sum(t.pnl for t in ordered)
        return Attribution(
            by_strategy=dict(by_strategy),
            by_symbol=dict(by_symbol),
            by_time_of_day=dict(by_hour),
            by_day_of_week=dict(by_day),
            by_market_condition=by_condition,
        )
