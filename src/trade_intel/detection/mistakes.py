"""Per-trade mistake detection and classification.

Checks a single trade against its own risk plan and the trades that
preceded it:

- No stop loss on the order
- Revenge trade (entered shortly after a losing exit)
- Overtrading (too many earlier trades the same day)
- Poor planned risk-reward (below 1:1)
- Cut a winner early (captured under half the target distance)
- Let a loser run (loss well beyond the planned stop distance)

Every mistake is classified and costed so the aggregate report can rank
behaviours by what they actually cost.

Usage::

    detector = MistakeDetector()
    mistakes = detector.analyse(trade, previous_trades)
    report = detector.report()
    print(report["costliest_type"])
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Sequence

from ..core.clock import IClock, WallClock
from ..core.models import Mistake, Trade, sort_chronological

logger = logging.getLogger(__name__)

_SEVERITY_SCORES = {"low": 1, "medium": 2, "high": 3}


class MistakeDetector:
    """Rule-based mistake detection on closed trades.

    Parameters
    ----------
    revenge_gap_minutes : float
        A trade opened less than this many minutes after a losing exit
        is a revenge trade.  Default 30.
    daily_trade_limit : int
        Earlier same-day trades at or above this count flag overtrading.
        Default 5.
    min_risk_reward : float
        Planned reward/risk below this flags "poor_risk_reward".  Default 1.0.
    early_exit_fraction : float
        Winners that captured less than this share of the target distance
        flag "cut_winner_early".  Default 0.5.
    loser_overrun : float
        Losses larger than this multiple of the planned stop distance
        flag "let_loser_run".  Default 1.5.
    clock : IClock | None
        Source of ``detected_at`` timestamps.
    """

    def __init__(
        self,
        *,
        revenge_gap_minutes: float = 30.0,
        daily_trade_limit: int = 5,
        min_risk_reward: float = 1.0,
        early_exit_fraction: float = 0.5,
        loser_overrun: float = 1.5,
        clock: IClock | None = None,
    ) -> None:
        self._revenge_gap = revenge_gap_minutes
        self._daily_limit = daily_trade_limit
        self._min_rr = min_risk_reward
        self._early_exit = early_exit_fraction
        self._overrun = loser_overrun
        self._clock = clock or WallClock()

        # Accumulate mistakes per strategy for reporting
        self._history: dict[str, list[Mistake]] = defaultdict(list)
        self._max_history: int = 5000

    # ------------------------------------------------------------------ #
    # Analysis                                                             #
    # ------------------------------------------------------------------ #

    def analyse(self, trade: Trade, previous: Sequence[Trade] = ()) -> list[Mistake]:
        """Analyse one trade against the trades that came before it."""
        now = self._clock.now()
        mistakes: list[Mistake] = []
        loss_impact = trade.pnl if trade.pnl < 0 else 0.0

        def add(mistake_type: str, category: str, severity: str, description: str,
                pnl_impact: float = 0.0, **details: Any) -> None:
            mistakes.append(Mistake(
                trade_id=trade.id,
                mistake_type=mistake_type,
                category=category,
                severity=severity,
                description=description,
                pnl_impact=pnl_impact,
                details=details,
                detected_at=now,
            ))

        # 1. No stop loss
        if not trade.has_stop_loss:
            add("no_stop_loss", "risk", "high", "Trade entered without a stop loss", loss_impact)

        earlier = sort_chronological(t for t in previous if t.id != trade.id)

        # 2. Revenge trade
        if earlier and earlier[-1].pnl < 0:
            last = earlier[-1]
            if trade.opened_at is not None and last.closed_at is not None:
                gap = (trade.opened_at - last.closed_at).total_seconds() / 60
                if gap < self._revenge_gap:
                    add(
                        "revenge_trading", "emotional", "high",
                        f"Trade entered {max(gap, 0):.0f} minutes after a loss",
                        loss_impact, gap_minutes=gap, previous_trade=last.id,
                    )

        # 3. Overtrading
        if trade.opened_at is not None:
            day = trade.opened_at.date()
            same_day = [t for t in earlier if t.opened_at and t.opened_at.date() == day]
            if len(same_day) >= self._daily_limit:
                add(
                    "overtrading", "emotional", "medium",
                    f"Exceeded daily trade limit ({len(same_day) + 1} trades that day)",
                    loss_impact, trades_that_day=len(same_day) + 1,
                )

        # 4. Poor planned risk-reward
        if trade.has_stop_loss and trade.target and trade.entry_price:
            planned_risk = abs(trade.entry_price - trade.stop_loss)
            planned_reward = abs(trade.target - trade.entry_price)
            if planned_risk > 0:
                rr = planned_reward / planned_risk
                if rr < self._min_rr:
                    add(
                        "poor_risk_reward", "risk", "medium",
                        f"Planned risk-reward {rr:.2f} is below 1:{self._min_rr:g}",
                        0.0, risk_reward=rr,
                    )

        # 5. Cut a winner early
        if trade.pnl > 0 and trade.target and trade.exit_price and trade.entry_price:
            potential = abs(trade.target - trade.entry_price)
            captured = abs(trade.exit_price - trade.entry_price)
            if potential > 0 and captured < potential * self._early_exit:
                missed = (potential - captured) * abs(trade.quantity)
                add(
                    "cut_winner_early", "discipline", "low",
                    f"Exited at {captured / potential:.0%} of the distance to target",
                    -missed, captured_fraction=captured / potential,
                )

        # 6. Let a loser run
        if trade.pnl < 0 and trade.has_stop_loss and trade.exit_price and trade.entry_price:
            planned = abs(trade.entry_price - trade.stop_loss)
            actual = abs(trade.exit_price - trade.entry_price)
            if planned > 0 and actual > planned * self._overrun:
                excess = (actual - planned) * abs(trade.quantity)
                add(
                    "let_loser_run", "discipline", "high",
                    f"Loss ran to {actual / planned:.1f}x the planned stop distance",
                    -excess, overrun=actual / planned,
                )

        key = trade.strategy or "uncategorized"
        self._history[key].extend(mistakes)
        while len(self._history[key]) > self._max_history:
            self._history[key].pop(0)

        if mistakes:
            logger.info(
                "Trade %s: %d mistakes (%s)",
                trade.id, len(mistakes), ", ".join(m.mistake_type for m in mistakes),
            )
        return mistakes

    # ------------------------------------------------------------------ #
    # Reporting                                                            #
    # ------------------------------------------------------------------ #

    def report(self, strategy: str | None = None) -> dict[str, Any]:
        """Aggregate mistakes for one strategy, or for all when omitted.

        Returns
        -------
        dict
            ``total_mistakes`` : int
            ``by_type`` : dict mapping mistake_type to {count, total_pnl_impact, avg_severity}
            ``costliest_type`` : str | None, the type with the worst total P&L impact
            ``total_pnl_impact`` : float
        """
        if strategy is None:
            mistakes = [m for group in self._history.values() for m in group]
        else:
            mistakes = self._history.get(strategy, [])
        if not mistakes:
            return {
                "strategy": strategy,
                "total_mistakes": 0,
                "by_type": {},
                "costliest_type": None,
                "total_pnl_impact": 0.0,
            }

        by_type: dict[str, dict[str, Any]] = {}
        severity_sums: dict[str, int] = defaultdict(int)
        for m in mistakes:
            entry = by_type.setdefault(m.mistake_type, {"count": 0, "total_pnl_impact": 0.0})
            entry["count"] += 1
            entry["total_pnl_impact"] += m.pnl_impact
            severity_sums[m.mistake_type] += _SEVERITY_SCORES.get(m.severity, 1)

        costliest = None
        worst_impact = 0.0
        for mtype, info in by_type.items():
            avg_score = severity_sums[mtype] / info["count"]
            info["avg_severity"] = (
                "high" if avg_score >= 2.5 else "medium" if avg_score >= 1.5 else "low"
            )
            info["total_pnl_impact"] = round(info["total_pnl_impact"], 2)
            if info["total_pnl_impact"] < worst_impact:
                worst_impact = info["total_pnl_impact"]
                costliest = mtype

        return {
            "strategy": strategy,
            "total_mistakes": len(mistakes),
            "by_type": by_type,
            "costliest_type": costliest,
            "total_pnl_impact": round(sum(i["total_pnl_impact"] for i in by_type.values()), 2),
        }
