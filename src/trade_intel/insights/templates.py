"""Static pattern -> insight template table.

One :class:`InsightTemplate` per :class:`PatternType`.  Messages carry
``{{field}}`` placeholders that :func:`interpolate` fills from the
pattern's metadata plus the derived ``cost``, ``historical_cost``,
``occurrences`` and ``currency`` values.

Usage::

    template = template_for(PatternType.REVENGE_TRADING)
    text = interpolate(template.message, {"cost": 1200, "currency": "₹"})
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from ..core.enums import InsightCategory, InsightSeverity, PatternType

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class InsightTemplate:
    title: str
    message: str
    severity: InsightSeverity
    category: InsightCategory
    actions: tuple[str, ...]


_C = InsightCategory
_S = InsightSeverity

TEMPLATES: dict[PatternType, InsightTemplate] = {
    PatternType.REVENGE_TRADING: InsightTemplate(
        title="Revenge Trading Detected",
        message=(
            "Trades taken right after a loss cost you about {{currency}}{{cost}} "
            "in this window ({{currency}}{{historical_cost}} in earlier alerts)."
        ),
        severity=_S.CRITICAL,
        category=_C.BEHAVIOR,
        actions=("Set a hard daily loss limit", "Step away after a large loss"),
    ),
    PatternType.FOMO: InsightTemplate(
        title="FOMO Entries",
        message=(
            "{{fomo_share}}% of your recent entries landed in the most volatile hours "
            "({{occurrences}} trades so far). Chasing moves is eating into your edge."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Write an A+ setup checklist", "Only take setups planned before the open"),
    ),
    PatternType.FEAR_OF_LOSS: InsightTemplate(
        title="Fear of Loss",
        message=(
            "Winners are being closed early while losers are given room. "
            "That asymmetry caps your upside."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Trail the stop to breakeven instead of exiting", "Use price alerts instead of watching P&L"),
    ),
    PatternType.OVERCONFIDENCE: InsightTemplate(
        title="Overconfidence After Streaks",
        message=(
            "Size and trade count climb after winning streaks, and the extra risk "
            "tends to hand profits back."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Cut size after a streak", "Cap trades per day"),
    ),
    PatternType.TILT: InsightTemplate(
        title="Tilt Detected",
        message="Recent decisions are drifting from your plan in an emotional way.",
        severity=_S.CRITICAL,
        category=_C.BEHAVIOR,
        actions=("Take a mandatory break", "Journal how you feel before the next trade"),
    ),
    PatternType.OVERTRADING: InsightTemplate(
        title="Overtrading",
        message=(
            "{{trades_today}} trades in one day is above your limit of {{daily_limit}}. "
            "Volume is replacing selectivity."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Set a daily trade cap", "Pick your setups before the session"),
    ),
    PatternType.REVENGE_SIZING: InsightTemplate(
        title="Revenge Sizing",
        message=(
            "Positions get bigger after losses. Past alerts put the cost at "
            "{{currency}}{{historical_cost}}."
        ),
        severity=_S.CRITICAL,
        category=_C.RISK,
        actions=("Fix risk per trade", "Run a checklist before any size increase"),
    ),
    PatternType.LOSS_AVERSION: InsightTemplate(
        title="Loss Aversion",
        message=(
            "Losing trades are held while winners are cut quickly, "
            "which skews your payoff ratio."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Predefine exits before entry", "Track average win against average loss"),
    ),
    PatternType.POSITION_SIZING_ERROR: InsightTemplate(
        title="Inconsistent Position Sizing",
        message=(
            "Position size varies widely (variation {{size_cv}}). "
            "{{oversized_trades}} trades were far above your usual size."
        ),
        severity=_S.WARNING,
        category=_C.RISK,
        actions=("Risk the same amount per trade", "Use a position size calculator"),
    ),
    PatternType.CORRELATION_EXPOSURE: InsightTemplate(
        title="Correlated Exposure",
        message="Several open positions move together, stacking the same risk.",
        severity=_S.WARNING,
        category=_C.RISK,
        actions=("Limit correlated positions", "Spread risk across instruments"),
    ),
    PatternType.TIME_DECAY: InsightTemplate(
        title="Holding Too Long",
        message="Results fade the longer trades stay open.",
        severity=_S.INFO,
        category=_C.STRATEGY,
        actions=("Set a maximum holding time", "Compare intraday and swing results"),
    ),
    PatternType.MONDAY_SYNDROME: InsightTemplate(
        title="Monday Syndrome",
        message=(
            "You win {{monday_win_rate}}% of Monday trades against "
            "{{other_days_win_rate}}% on other days, a {{difference}} point gap."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Trade smaller on Mondays", "Spend Monday morning observing"),
    ),
    PatternType.FRIDAY_CARELESSNESS: InsightTemplate(
        title="Friday Afternoon Slump",
        message=(
            "Friday afternoon trades win {{friday_afternoon_win_rate}}% of the time "
            "against {{other_win_rate}}% otherwise."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Stop early on Fridays", "Skip impulse trades before the weekend"),
    ),
    PatternType.NEWS_TRADING: InsightTemplate(
        title="Trading Into News",
        message=(
            "A trade was placed during {{news_window}} without the protection "
            "that volatile window needs."
        ),
        severity=_S.WARNING,
        category=_C.RISK,
        actions=("Stand aside during major releases", "Trade smaller with wider stops around news"),
    ),
    PatternType.STRATEGY_DEGRADATION: InsightTemplate(
        title="Strategy Losing Its Edge",
        message=(
            "{{strategy}} won {{older_win_rate}}% of earlier trades but only "
            "{{newer_win_rate}}% of recent ones."
        ),
        severity=_S.WARNING,
        category=_C.STRATEGY,
        actions=("Pause this strategy", "Re-test the edge before trading it again"),
    ),
    PatternType.STYLE_DRIFT: InsightTemplate(
        title="Style Drift",
        message=(
            "{{off_style_count}} recent trades look like {{detected_style}}, "
            "outside the style you set for yourself."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Recommit to your chosen style", "Review which trades fit your plan"),
    ),
    PatternType.PLAN_DEVIATION: InsightTemplate(
        title="Plan Deviation",
        message=(
            "Only {{rule_followed_rate}}% of your recent tagged trades followed "
            "your rules."
        ),
        severity=_S.WARNING,
        category=_C.BEHAVIOR,
        actions=("Run a pre-trade checklist", "Journal every broken rule"),
    ),
}


def template_for(pattern_type: PatternType) -> InsightTemplate:
    return TEMPLATES[pattern_type]


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        if value.is_integer():
            return f"{int(value):,}"
        return f"{value:,.2f}"
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, (list, tuple)):
        return ", ".join(_render(v) for v in value)
    return str(value)


def interpolate(message: str, values: Mapping[str, Any]) -> str:
    """Replace ``{{field}}`` placeholders.  Missing fields render empty."""
    return _PLACEHOLDER.sub(
        lambda m: _render(values[m.group(1)]) if values.get(m.group(1)) is not None else "",
        message,
    )
