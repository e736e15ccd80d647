"""Rule-based trading coach.

Answers chat messages from the trader's current context, picks one of
three coaching personalities, and renders the trader snapshot an
external language-model coach would be primed with.  No model client is
bundled; :meth:`RuleBasedCoach.respond` is fully deterministic.

Also hosts :func:`quick_insights`, the journal's compact top-three
summary of a recent trade list.

Usage::

    coach = RuleBasedCoach(personality_id="mentor")
    reply = coach.respond("How is my risk looking?", context)
    print(reply.message, reply.suggested_actions)
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from pydantic import BaseModel

from ..core.enums import EmotionLabel, InsightSeverity
from ..core.models import EmotionalState, Trade, UnifiedContext, sort_by_entry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Personalities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CoachPersonality:
    id: str
    name: str
    strictness: int
    encouragement: int
    empathy: int
    directness: int
    response_length: str  # "brief", "moderate", "detailed"
    focus_areas: tuple[str, ...]
    system_prompt: str


PERSONALITIES: dict[str, CoachPersonality] = {
    "balanced": CoachPersonality(
        id="balanced",
        name="Balanced Coach",
        strictness=6,
        encouragement=7,
        empathy=7,
        directness=6,
        response_length="moderate",
        focus_areas=("risk", "psychology", "discipline", "strategy"),
        system_prompt=(
            "You are a data-driven trading coach. Pair empathy with firm risk "
            "management and give clear, practical guidance."
        ),
    ),
    "drill_sergeant": CoachPersonality(
        id="drill_sergeant",
        name="Drill Sergeant",
        strictness=9,
        encouragement=5,
        empathy=4,
        directness=9,
        response_length="brief",
        focus_areas=("discipline", "risk"),
        system_prompt=(
            "You are a blunt trading coach. Demand discipline, rule-following "
            "and respect for risk. No sugarcoating."
        ),
    ),
    "mentor": CoachPersonality(
        id="mentor",
        name="Mentor",
        strictness=5,
        encouragement=9,
        empathy=9,
        directness=5,
        response_length="detailed",
        focus_areas=("psychology", "learning"),
        system_prompt=(
            "You are a patient trading mentor focused on mindset, learning and "
            "long-term growth over quick wins."
        ),
    ),
}

DEFAULT_PERSONALITY = "balanced"


def get_personality(personality_id: str | None) -> CoachPersonality:
    """Look up a personality, falling back to the balanced coach."""
    return PERSONALITIES.get(personality_id or "", PERSONALITIES[DEFAULT_PERSONALITY])


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass
class CoachResponse:
    message: str
    suggested_actions: list[str] = field(default_factory=list)
    follow_up_questions: list[str] = field(default_factory=list)


_DISTRESSED = {EmotionLabel.FRUSTRATED, EmotionLabel.ANXIOUS, EmotionLabel.FEARFUL}

_EMOTION_KEYWORDS: tuple[tuple[EmotionLabel, tuple[str, ...]], ...] = (
    (EmotionLabel.FRUSTRATED, ("frustrat", "angry", "annoyed", "furious", "hate")),
    (EmotionLabel.FEARFUL, ("scared", "afraid", "fear", "terrified")),
    (EmotionLabel.ANXIOUS, ("anxious", "nervous", "worried", "stress")),
    (EmotionLabel.EXCITED, ("excited", "pumped", "can't wait")),
    (EmotionLabel.CONFIDENT, ("confident", "crushing", "on fire")),
    (EmotionLabel.CALM, ("calm", "relaxed", "patient")),
)


class RuleBasedCoach:
    """Deterministic chat coach driven by the unified context."""

    def __init__(self, *, personality_id: str = DEFAULT_PERSONALITY, currency_symbol: str = "₹") -> None:
        self.personality = get_personality(personality_id)
        self._currency = currency_symbol

    def set_personality(self, personality_id: str) -> None:
        self.personality = get_personality(personality_id)

    def detect_emotion(self, message: str) -> EmotionalState | None:
        """Keyword read of the emotion a chat message expresses, if any."""
        lower = message.lower()
        for label, keywords in _EMOTION_KEYWORDS:
            hits = [k for k in keywords if k in lower]
            if hits:
                return EmotionalState(
                    primary=label,
                    intensity=min(0.5 + 0.1 * len(hits), 0.9),
                    triggers=[f"message mentions '{k}'" for k in hits],
                )
        return None

    def respond(self, message: str, context: UnifiedContext) -> CoachResponse:
        lower = message.lower()
        state = context.emotional_state
        if state.intensity > 0.7 and state.primary in _DISTRESSED:
            return self._emotional_support(context)
        if "win rate" in lower:
            return self._win_rate(context)
        if "risk" in lower or "danger" in lower:
            return self._risk(context)
        if any(word in lower for word in ("improve", "better", "help")):
            return self._improvement(context)
        return self._default()

    def build_prompt(self, context: UnifiedContext) -> str:
        """Render the system prompt for a language-model coach."""
        m = context.metrics
        c = self._currency
        today_pnl = sum(t.pnl for t in context.today_trades)
        state = context.emotional_state
        return (
            f"{self.personality.system_prompt}\n"
            "\n## TRADER SNAPSHOT\n"
            f"- Total Trades: {m.total_trades}\n"
            f"- Win Rate: {m.win_rate * 100:.1f}%\n"
            f"- Profit Factor: {m.profit_factor:.2f}\n"
            f"- Total P&L: {c}{m.total_pnl:.0f}\n"
            f"- Current Streak: {m.current_streak}\n"
            f"- Max Drawdown: {c}{m.max_drawdown:.0f} ({m.max_drawdown_percent * 100:.1f}%)\n"
            f"- Consistency Score: {m.consistency_score}/100\n"
            "\n## TODAY\n"
            f"- Trades Today: {len(context.today_trades)}\n"
            f"- Today P&L: {c}{today_pnl:.0f}\n"
            "\n## EMOTIONAL STATE\n"
            f"- Current: {state.primary.value} ({state.intensity * 100:.0f}% intensity)\n"
            "\n## COACHING RULES\n"
            "- Ground every point in the data above\n"
            "- Be specific, practical and concise\n"
            "- Finish with exactly one concrete action\n"
            f"- Quote money in {c}\n"
        )

    # ------------------------------------------------------------------ #
    # Canned replies                                                       #
    # ------------------------------------------------------------------ #

    def _emotional_support(self, context: UnifiedContext) -> CoachResponse:
        mood = context.emotional_state.primary.value
        return CoachResponse(
            message=(
                f"You sound {mood} right now. That is the moment to protect capital, "
                "not to push harder. Step away from the screen and come back to review, "
                "not to trade."
            ),
            suggested_actions=["Take a 30-minute break", "Review your journal instead of trading"],
        )

    def _win_rate(self, context: UnifiedContext) -> CoachResponse:
        return CoachResponse(
            message=(
                f"Your win rate is {context.metrics.win_rate * 100:.1f}%. Stick to your best "
                "setups and drop the marginal ones. Consistent execution matters more than "
                "a high hit rate."
            ),
            suggested_actions=["Review your top 3 setups", "Stop after 2 losses in a row"],
        )

    def _risk(self, context: UnifiedContext) -> CoachResponse:
        return CoachResponse(
            message=(
                f"Your max drawdown is {self._currency}{context.metrics.max_drawdown:.0f} and "
                f"your risk score is {context.current_risk_score:.0f}/100. Trade smaller until "
                "the drawdown recovers and set a hard daily loss limit."
            ),
            suggested_actions=["Cut position size by 50%", "Define a daily loss limit"],
        )

    def _improvement(self, context: UnifiedContext) -> CoachResponse:
        return CoachResponse(
            message=(
                "Work on one lever at a time: tighter risk, cleaner entries, fewer "
                f"emotional trades. A consistency score of {context.metrics.consistency_score}/100 "
                "leaves room to steady your results."
            ),
            suggested_actions=["Limit trades per day", "Journal before and after each session"],
        )

    def _default(self) -> CoachResponse:
        return CoachResponse(
            message=(
                "I can walk you through your performance, risk and behaviour. Ask about "
                "your win rate, drawdown, best strategies or how to handle how you feel today."
            ),
            suggested_actions=["Ask about your win rate", "Ask about your current risk"],
        )


# ---------------------------------------------------------------------------
# Quick insights
# ---------------------------------------------------------------------------

class QuickInsight(BaseModel):
    title: str
    message: str
    severity: InsightSeverity
    action: str = ""


def _is_fomo_hour(trade: Trade) -> bool:
    opened = trade.opened_at
    return opened is not None and opened.hour in (10, 14)


def quick_insights(
    trades: Sequence[Trade],
    *,
    lookback: int = 30,
    currency_symbol: str = "₹",
) -> list[QuickInsight]:
    """Top three quick insights over the latest ``lookback`` trades.

    Needs at least five trades; returns ``[]`` otherwise.
    """
    recent = sort_by_entry(trades)[-lookback:]
    n = len(recent)
    if n < 5:
        return []
    c = currency_symbol

    revenge: list[Trade] = []
    for prev, trade in zip(recent, recent[1:]):
        if prev.pnl >= 0 or trade.opened_at is None or prev.opened_at is None:
            continue
        if (trade.opened_at - prev.opened_at).total_seconds() < 30 * 60:
            revenge.append(trade)
    per_day = Counter(t.opened_at.date() for t in recent if t.opened_at is not None)
    heavy_days = sum(1 for count in per_day.values() if count > 5)
    fomo = sum(1 for t in recent if _is_fomo_hour(t))

    net = sum(t.pnl for t in recent)
    win_rate = 100.0 * sum(1 for t in recent if t.pnl > 0) / n
    avg_trade = net / n

    insights: list[QuickInsight] = []
    if len(revenge) >= 2:
        cost = abs(sum(t.pnl for t in revenge))
        insights.append(QuickInsight(
            title="Revenge Trading Detected",
            message=(
                f"{len(revenge)} trades came within 30 minutes of a loss and cost about "
                f"{c}{cost:.0f}. Reacting to losses usually makes them bigger."
            ),
            severity=InsightSeverity.WARNING,
            action="Wait 15 minutes after any loss before the next trade.",
        ))
    if heavy_days >= 2:
        insights.append(QuickInsight(
            title="Overtrading Alert",
            message=(
                f"You took more than 5 trades on {heavy_days} days. Pick fewer, better setups."
            ),
            severity=InsightSeverity.WARNING,
            action="Set a daily cap of 3-5 trades.",
        ))
    if fomo > n * 0.3:
        insights.append(QuickInsight(
            title="FOMO Pattern Detected",
            message=(
                f"{round(fomo / n * 100)}% of your trades were entered in the volatile "
                "10-11 AM and 2-3 PM windows, often without full confirmation."
            ),
            severity=InsightSeverity.INFO,
            action="Wait for your planned confirmation before entering.",
        ))
    if n >= 10 and win_rate < 40:
        insights.append(QuickInsight(
            title="Low Win Rate",
            message=f"Your win rate is {win_rate:.1f}%. Tighten entry criteria and follow the plan.",
            severity=InsightSeverity.WARNING,
            action="Go through your losing trades for repeated mistakes.",
        ))
    if n >= 10 and avg_trade < 0:
        insights.append(QuickInsight(
            title="Negative Average Trade",
            message=(
                f"The average trade loses {c}{abs(avg_trade):.0f}. Tighter stops or better "
                "timing would help."
            ),
            severity=InsightSeverity.CRITICAL,
            action="Make sure planned reward is at least twice the risk.",
        ))
    if n >= 10 and win_rate >= 60:
        insights.append(QuickInsight(
            title="Strong Win Rate",
            message=f"A {win_rate:.1f}% win rate. Keep following the plan.",
            severity=InsightSeverity.SUCCESS,
            action="Stay with the current approach and keep risk in check.",
        ))
    if not insights and win_rate >= 50 and net > 0:
        insights.append(QuickInsight(
            title="Keep Up the Good Work",
            message=f"{win_rate:.1f}% winners with positive P&L. Stay disciplined.",
            severity=InsightSeverity.SUCCESS,
            action="Keep journaling and reviewing every session.",
        ))

    logger.debug("Quick insights: %d candidates from %d trades", len(insights), n)
    return insights[:3]
