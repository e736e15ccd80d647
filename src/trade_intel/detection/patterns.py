"""Behavioural pattern detection.

A set of independent rule-based detectors, each a pure function of an
anchor trade and a chronologically sorted window of trades, dispatched
from a table keyed by :class:`PatternType`.  Emission is throttled per
pattern type by an explicit :class:`CooldownState` that callers pass in
and receive back updated, so the throttle survives process restarts
when the caller persists it.

The cooldown is presentation throttling only: a suppressed detector may
still be statistically true.

Usage::

    detector = PatternDetector(clock=SimClock())
    result = detector.detect_all(trades, preferences=prefs)
    for pattern in result.patterns:
        print(pattern.type, pattern.severity, pattern.cost)
    # persist result.cooldown and pass it to the next call
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Sequence

import numpy as np

from ..core.clock import IClock, WallClock
from ..core.config import DetectionConfig
from ..core.enums import PatternType, TradingStyle
from ..core.models import (
    CooldownState,
    DetectedPattern,
    PatternInteraction,
    Trade,
    UserPreferences,
    sort_by_entry,
)

logger = logging.getLogger(__name__)

MONDAY, FRIDAY = 0, 4
WEEKDAYS = (0, 1, 2, 3, 4)


@dataclass
class PatternResult:
    """Verdict of a single detector."""

    detected: bool = False
    severity: int = 5
    confidence: float = 0.6
    cost: float = 0.0
    frequency: int = 1
    trades_affected: list[str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    suggestions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DetectionResult:
    """Emitted patterns plus the updated cooldown state."""

    patterns: list[DetectedPattern]
    cooldown: CooldownState


@dataclass(frozen=True)
class _InteractionRule:
    pair: tuple[PatternType, PatternType]
    combined_severity: int
    risk_multiplier: float
    description: str


INTERACTION_RULES: tuple[_InteractionRule, ...] = (
    _InteractionRule(
        (PatternType.REVENGE_TRADING, PatternType.OVERTRADING),
        9, 2.0,
        "Revenge trading on top of overtrading sharply raises the risk of a blow-up day.",
    ),
    _InteractionRule(
        (PatternType.MONDAY_SYNDROME, PatternType.FRIDAY_CARELESSNESS),
        7, 1.6,
        "Performance slips at both the start and the end of the trading week.",
    ),
    _InteractionRule(
        (PatternType.NEWS_TRADING, PatternType.POSITION_SIZING_ERROR),
        8, 1.8,
        "Trading news volatility with inconsistent sizing can produce outsized losses.",
    ),
)


def _win_rate(trades: Sequence[Trade]) -> float:
    return sum(1 for t in trades if t.pnl > 0) / len(trades) if trades else 0.0


def _loss_cost(trades: Sequence[Trade]) -> float:
    return sum(abs(t.pnl) for t in trades if t.pnl < 0)


def _pct(value: float) -> int:
    return int(round(value * 100))


def infer_style(trade: Trade, config: DetectionConfig) -> TradingStyle:
    """Coarse trading style from holding time."""
    minutes = trade.duration_minutes
    if minutes < config.scalping_max_minutes:
        return TradingStyle.SCALPING
    if minutes < config.day_trading_max_minutes:
        return TradingStyle.DAY_TRADING
    if minutes < config.swing_trading_max_minutes:
        return TradingStyle.SWING_TRADING
    return TradingStyle.POSITION_TRADING


_Detector = Callable[[Trade, Sequence[Trade], "UserPreferences | None"], PatternResult]


class PatternDetector:
    """Rule-based pattern detector with cooldown-gated emission.

    Parameters
    ----------
    config : DetectionConfig | None
        Thresholds, severities and confidences.  Defaults reproduce the
        journal's production values.
    clock : IClock | None
        Time source for cooldown gating and ``detected_at``.
    """

    def __init__(
        self,
        *,
        config: DetectionConfig | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._config = config or DetectionConfig()
        self._clock = clock or WallClock()
        self._detectors: list[tuple[PatternType, _Detector]] = [
            (PatternType.MONDAY_SYNDROME, self.detect_monday_syndrome),
            (PatternType.FRIDAY_CARELESSNESS, self.detect_friday_carelessness),
            (PatternType.NEWS_TRADING, self.detect_news_trading),
            (PatternType.STRATEGY_DEGRADATION, self.detect_strategy_degradation),
            (PatternType.STYLE_DRIFT, self.detect_style_drift),
            (PatternType.REVENGE_TRADING, self.detect_revenge_trading),
            (PatternType.OVERTRADING, self.detect_overtrading),
            (PatternType.FOMO, self.detect_fomo),
            (PatternType.POSITION_SIZING_ERROR, self.detect_position_sizing_error),
            (PatternType.PLAN_DEVIATION, self.detect_plan_deviation),
        ]

    # ------------------------------------------------------------------ #
    # Public API                                                           #
    # ------------------------------------------------------------------ #

    def detect_all(
        self,
        trades: Sequence[Trade],
        *,
        cooldown: CooldownState | None = None,
        preferences: UserPreferences | None = None,
    ) -> DetectionResult:
        """Run every detector with the latest trade as anchor."""
        state = cooldown or CooldownState()
        if not trades:
            return DetectionResult([], state)
        window = sort_by_entry(trades)
        return self._run(window[-1], window, state, preferences)

    def detect_incremental(
        self,
        new_trade: Trade,
        recent_window: Sequence[Trade],
        *,
        cooldown: CooldownState | None = None,
        preferences: UserPreferences | None = None,
    ) -> DetectionResult:
        """Run every detector anchored on ``new_trade``.

        The window is the new trade plus recent history, capped at
        ``incremental_window`` trades.
        """
        state = cooldown or CooldownState()
        keep = self._config.incremental_window - 1
        others = [t for t in recent_window if t.id != new_trade.id]
        others = sort_by_entry(others)[-keep:] if keep > 0 else []
        window = sort_by_entry([*others, new_trade])
        return self._run(new_trade, window, state, preferences)

    def detect_interactions(
        self, patterns: Sequence[DetectedPattern]
    ) -> list[PatternInteraction]:
        """Combined-risk records for co-occurring pattern pairs."""
        present = {p.type for p in patterns}
        return [
            PatternInteraction(
                patterns=list(rule.pair),
                combined_severity=rule.combined_severity,
                risk_multiplier=rule.risk_multiplier,
                description=rule.description,
            )
            for rule in INTERACTION_RULES
            if set(rule.pair) <= present
        ]

    # ------------------------------------------------------------------ #
    # Dispatch                                                             #
    # ------------------------------------------------------------------ #

    def _run(
        self,
        anchor: Trade,
        window: Sequence[Trade],
        state: CooldownState,
        preferences: UserPreferences | None,
    ) -> DetectionResult:
        now = self._clock.now()
        cooldown_window = timedelta(hours=self._config.cooldown_hours)
        patterns: list[DetectedPattern] = []

        for pattern_type, detector in self._detectors:
            result = detector(anchor, window, preferences)
            if not result.detected:
                continue
            if state.is_cooling(pattern_type, now, cooldown_window):
                logger.debug("Suppressed %s: within cooldown", pattern_type.value)
                continue
            patterns.append(DetectedPattern(
                type=pattern_type,
                severity=result.severity,
                confidence=result.confidence,
                cost=result.cost,
                frequency=result.frequency,
                trades_affected=(
                    result.trades_affected
                    if result.trades_affected is not None else [anchor.id]
                ),
                metadata=result.metadata,
                suggestions=result.suggestions,
                detected_at=now,
            ))
            state = state.mark(pattern_type, now)
            logger.info(
                "Pattern detected: %s severity=%d cost=%.2f",
                pattern_type.value, result.severity, result.cost,
            )

        return DetectionResult(patterns, state)

    # ------------------------------------------------------------------ #
    # Time-of-week detectors                                               #
    # ------------------------------------------------------------------ #

    def detect_monday_syndrome(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        if len(window) < cfg.monday_min_window:
            return PatternResult()
        dated = [t for t in window if t.opened_at is not None]
        monday = [t for t in dated if t.opened_at.weekday() == MONDAY]
        others = [t for t in dated if t.opened_at.weekday() in WEEKDAYS[1:]]
        if len(monday) < cfg.monday_min_trades or len(others) < cfg.monday_min_other_trades:
            return PatternResult()

        monday_rate, other_rate = _win_rate(monday), _win_rate(others)
        gap = other_rate - monday_rate
        if gap < cfg.monday_win_rate_gap - 1e-9:
            return PatternResult()

        return PatternResult(
            detected=True,
            severity=cfg.monday_severity,
            confidence=cfg.monday_confidence,
            cost=_loss_cost(monday),
            frequency=len(monday),
            trades_affected=[t.id for t in monday],
            metadata={
                "monday_win_rate": _pct(monday_rate),
                "other_days_win_rate": _pct(other_rate),
                "monday_trades": len(monday),
                "other_days_trades": len(others),
                "difference": _pct(gap),
            },
            suggestions=[
                "Your Monday results trail the rest of the week by a wide margin",
                "Spend Monday mornings observing or paper trading",
                "Weekend gaps change Monday dynamics; size down if you trade",
                "Journal what specifically goes wrong on Mondays",
            ],
        )

    def detect_friday_carelessness(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        if len(window) < cfg.friday_min_window:
            return PatternResult()
        dated = [t for t in window if t.opened_at is not None]
        friday = [t for t in dated if t.opened_at.weekday() == FRIDAY]
        others = [t for t in dated if t.opened_at.weekday() in WEEKDAYS[:FRIDAY]]
        if len(friday) < cfg.friday_min_trades or len(others) < cfg.friday_min_other_trades:
            return PatternResult()
        afternoon = [t for t in friday if t.opened_at.hour >= cfg.friday_afternoon_hour]
        if len(afternoon) < cfg.friday_min_afternoon_trades:
            return PatternResult()

        afternoon_rate, other_rate = _win_rate(afternoon), _win_rate(others)
        gap = other_rate - afternoon_rate
        if gap < cfg.friday_win_rate_gap - 1e-9:
            return PatternResult()

        return PatternResult(
            detected=True,
            severity=cfg.friday_severity,
            confidence=cfg.friday_confidence,
            cost=_loss_cost(afternoon),
            frequency=len(afternoon),
            trades_affected=[t.id for t in afternoon],
            metadata={
                "friday_afternoon_win_rate": _pct(afternoon_rate),
                "other_win_rate": _pct(other_rate),
                "friday_afternoon_trades": len(afternoon),
                "difference": _pct(gap),
            },
            suggestions=[
                "Friday afternoon trades underperform the rest of your week",
                "Rushing to flatten before the weekend leads to sloppy exits",
                f"Consider a hard stop on new entries after {cfg.friday_afternoon_hour}:00 on Fridays",
                "Check whether your plan is still being followed late on Fridays",
            ],
        )

    def detect_news_trading(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        opened = anchor.opened_at
        if opened is None:
            return PatternResult()
        clock_hours = opened.hour + opened.minute / 60
        event = next(
            (label for start, end, label in cfg.news_windows if start <= clock_hours <= end),
            None,
        )
        if event is None:
            return PatternResult()

        quick = anchor.duration_minutes < cfg.news_quick_trade_minutes
        if not quick and anchor.has_stop_loss:
            return PatternResult()

        return PatternResult(
            detected=True,
            severity=cfg.news_severity,
            confidence=cfg.news_confidence,
            cost=abs(anchor.pnl) if anchor.pnl < 0 else 0.0,
            trades_affected=[anchor.id],
            metadata={
                "news_window": event,
                "trade_duration": anchor.duration_minutes,
                "has_stop_loss": anchor.has_stop_loss,
                "entry_time": opened.isoformat(),
            },
            suggestions=[
                f"This trade was opened during the {event} window",
                "News releases bring erratic volatility, wider spreads and slippage",
                "Waiting 15-30 minutes after a release usually gives cleaner entries",
                "If you do trade news, use a stop and a smaller size",
            ],
        )

    # ------------------------------------------------------------------ #
    # Strategy detectors                                                   #
    # ------------------------------------------------------------------ #

    def detect_strategy_degradation(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        if not anchor.strategy or len(window) < cfg.degradation_min_window:
            return PatternResult()
        same = [t for t in window if t.strategy == anchor.strategy]
        if len(same) < cfg.degradation_min_trades:
            return PatternResult()

        mid = len(same) // 2
        older, newer = same[:mid], same[mid:]
        older_rate, newer_rate = _win_rate(older), _win_rate(newer)
        older_avg = sum(t.pnl for t in older) / len(older)
        newer_avg = sum(t.pnl for t in newer) / len(newer)
        decline = older_rate - newer_rate
        if not (decline > cfg.degradation_win_rate_drop or (older_avg > 0 and newer_avg < 0)):
            return PatternResult()

        return PatternResult(
            detected=True,
            severity=cfg.degradation_severity,
            confidence=cfg.degradation_confidence,
            cost=_loss_cost(newer),
            frequency=len(newer),
            trades_affected=[t.id for t in newer],
            metadata={
                "strategy": anchor.strategy,
                "older_win_rate": _pct(older_rate),
                "newer_win_rate": _pct(newer_rate),
                "older_avg_pnl": round(older_avg),
                "newer_avg_pnl": round(newer_avg),
                "win_rate_decline": _pct(decline),
                "trades_analyzed": len(same),
            },
            suggestions=[
                f'The "{anchor.strategy}" strategy is losing its edge',
                f"Win rate fell from {_pct(older_rate)}% to {_pct(newer_rate)}%",
                "Market conditions may no longer suit this setup",
                "Pause it and backtest whether the edge still exists",
            ],
        )

    def detect_style_drift(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        if preferences is None or not preferences.trading_style:
            return PatternResult()
        preferred = set(preferences.trading_style)
        recent = list(window)[-cfg.style_lookback:]
        off_style = [t for t in recent if infer_style(t, cfg) not in preferred]
        if len(off_style) < cfg.style_min_off_style:
            return PatternResult()

        off_pnl = sum(t.pnl for t in off_style)
        return PatternResult(
            detected=True,
            severity=cfg.style_severity,
            confidence=cfg.style_confidence,
            cost=abs(off_pnl) if off_pnl < 0 else 0.0,
            frequency=len(off_style),
            trades_affected=[t.id for t in off_style],
            metadata={
                "preferred_styles": [s.value for s in preferences.trading_style],
                "detected_style": infer_style(anchor, cfg).value,
                "off_style_count": len(off_style),
                "off_style_pnl": off_pnl,
            },
            suggestions=[
                "Recent trades do not match your declared trading style",
                "Off-style trades tend to be impulsive and lower quality",
                "Recommit to your core style and skip unplanned holds",
            ],
        )

    def detect_plan_deviation(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        tracked = [t for t in window if t.rule_followed is not None]
        if len(tracked) < cfg.plan_min_trades:
            return PatternResult()
        followed_rate = sum(1 for t in tracked if t.rule_followed) / len(tracked)
        if followed_rate >= cfg.plan_min_followed_rate:
            return PatternResult()

        broken = [t for t in tracked if not t.rule_followed]
        return PatternResult(
            detected=True,
            severity=cfg.plan_severity,
            confidence=cfg.plan_confidence,
            cost=_loss_cost(broken),
            frequency=len(broken),
            trades_affected=[t.id for t in broken],
            metadata={
                "rule_followed_rate": _pct(followed_rate),
                "broken_trades": len(broken),
                "tracked_trades": len(tracked),
            },
            suggestions=[
                "You are breaking your own rules on a large share of trades",
                "Write the entry checklist down and tick it before every order",
                "Review the rule-breaking trades for a shared trigger",
            ],
        )

    # ------------------------------------------------------------------ #
    # Behavioural detectors                                                #
    # ------------------------------------------------------------------ #

    def detect_revenge_trading(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        revenge: list[Trade] = []
        for prev, cur in zip(window, window[1:]):
            if prev.pnl >= 0 or prev.closed_at is None or cur.opened_at is None:
                continue
            gap = (cur.opened_at - prev.closed_at).total_seconds() / 60
            if 0 <= gap < cfg.revenge_gap_minutes:
                revenge.append(cur)
        if len(revenge) < cfg.revenge_min_trades:
            return PatternResult()

        return PatternResult(
            detected=True,
            severity=cfg.revenge_severity,
            confidence=cfg.revenge_confidence,
            cost=_loss_cost(revenge),
            frequency=len(revenge),
            trades_affected=[t.id for t in revenge],
            metadata={
                "revenge_trades": len(revenge),
                "gap_minutes": cfg.revenge_gap_minutes,
                "net_pnl": sum(t.pnl for t in revenge),
            },
            suggestions=[
                f"{len(revenge)} trades were opened within {cfg.revenge_gap_minutes:g} minutes of a loss",
                "Take a mandatory break after every losing trade",
                "Losses chased immediately tend to compound",
            ],
        )

    def detect_overtrading(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        if anchor.opened_at is None:
            return PatternResult()
        day = anchor.opened_at.date()
        same_day = [t for t in window if t.opened_at is not None and t.opened_at.date() == day]
        if len(same_day) <= cfg.overtrading_daily_limit:
            return PatternResult()

        per_day: dict[Any, int] = {}
        for t in window:
            if t.opened_at is not None:
                key = t.opened_at.date()
                per_day[key] = per_day.get(key, 0) + 1
        heavy_days = sum(1 for count in per_day.values() if count > cfg.overtrading_daily_limit)
        extra = same_day[cfg.overtrading_daily_limit:]

        return PatternResult(
            detected=True,
            severity=cfg.overtrading_severity,
            confidence=cfg.overtrading_confidence,
            cost=_loss_cost(extra),
            frequency=heavy_days,
            trades_affected=[t.id for t in extra],
            metadata={
                "trades_today": len(same_day),
                "daily_limit": cfg.overtrading_daily_limit,
                "overtrading_days": heavy_days,
            },
            suggestions=[
                f"You have taken {len(same_day)} trades today, above your limit of {cfg.overtrading_daily_limit}",
                "Quality over quantity: wait for your A setups only",
                "Set a hard daily trade cap and stop when it is reached",
            ],
        )

    def detect_fomo(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        dated = [t for t in window if t.opened_at is not None]
        if len(dated) < cfg.fomo_min_trades:
            return PatternResult()
        fomo = [
            t for t in dated
            if any(start <= t.opened_at.hour < end for start, end in cfg.fomo_hours)
        ]
        share = len(fomo) / len(dated)
        if share <= cfg.fomo_share:
            return PatternResult()

        hours = ", ".join(f"{s}:00-{e}:00" for s, e in cfg.fomo_hours)
        return PatternResult(
            detected=True,
            severity=cfg.fomo_severity,
            confidence=cfg.fomo_confidence,
            cost=_loss_cost(fomo),
            frequency=len(fomo),
            trades_affected=[t.id for t in fomo],
            metadata={
                "fomo_share": _pct(share),
                "fomo_trades": len(fomo),
                "volatile_hours": hours,
            },
            suggestions=[
                f"{_pct(share)}% of your entries land in the volatile hours ({hours})",
                "Entries in fast markets often skip setup confirmation",
                "Wait for your planned trigger before committing",
            ],
        )

    def detect_position_sizing_error(
        self, anchor: Trade, window: Sequence[Trade], preferences: UserPreferences | None = None
    ) -> PatternResult:
        cfg = self._config
        sized = [t for t in window if t.notional > 0]
        if len(sized) < cfg.sizing_min_trades:
            return PatternResult()
        notionals = np.asarray([t.notional for t in sized], dtype=np.float64)
        mean = float(notionals.mean())
        std = float(notionals.std())
        cv = std / mean if mean > 0 else 0.0
        if cv < cfg.sizing_max_cv:
            return PatternResult()

        oversized = [t for t in sized if t.notional > mean + std]
        return PatternResult(
            detected=True,
            severity=cfg.sizing_severity,
            confidence=cfg.sizing_confidence,
            cost=_loss_cost(oversized),
            frequency=len(oversized),
            trades_affected=[t.id for t in oversized],
            metadata={
                "size_cv": round(cv, 2),
                "avg_notional": round(mean, 2),
                "oversized_trades": len(oversized),
            },
            suggestions=[
                "Your position sizes swing widely from trade to trade",
                "Size every trade from a fixed percentage of account risk",
                "Oversized trades magnify the damage of ordinary losses",
            ],
        )
