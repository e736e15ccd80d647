"""Intelligence engine: per-trader orchestration.

Owns one :class:`UnifiedContext` per ``(user_id, profile_id)`` and wires
the pure analytics (metrics, features, patterns, regime, anomalies,
insights, prediction, sizing, coach) around it.  Contexts live in a
TTL cache measured on the injected clock; population is single-flight
per key so concurrent callers share one build.

Pattern cooldowns are part of the context and are carried over when a
context expires and is rebuilt, so a rebuild does not re-announce
patterns still inside their cooldown window.

Usage::

    engine = IntelligenceEngine(trade_source=FileTradeSource("trades.json"))
    context = await engine.initialize("user-1", "main")
    response = await engine.on_new_trade("user-1", "main", trade)
    dashboard = await engine.get_dashboard("user-1", "main")
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cachetools import LRUCache, TTLCache

from .analytics.features import FeatureExtractor
from .analytics.metrics import MetricsCalculator
from .core.clock import IClock, WallClock
from .core.config import Settings
from .core.enums import EmotionLabel
from .core.errors import ContextNotInitialized, TradeSourceError
from .core.interfaces import IInsightSink, IPreferenceSource, ITradeSource
from .core.models import (
    ChatMessage,
    CooldownState,
    DashboardSnapshot,
    DetectedPattern,
    EmotionalState,
    Insight,
    IntelligenceResponse,
    Metrics,
    Notification,
    PositionSizeRecommendation,
    QuickStats,
    Trade,
    TradePrediction,
    UnifiedContext,
    UserPreferences,
)
from .detection.anomaly import AnomalyDetector
from .detection.mistakes import MistakeDetector
from .detection.patterns import PatternDetector
from .detection.regime import RegimeDetector
from .insights.coach import RuleBasedCoach
from .insights.generator import InsightGenerator
from .observability.logger import get_logger, operation_context
from .prediction.predictor import TradePredictor
from .prediction.sizing import PositionSizer

logger = get_logger(__name__)

ContextKey = tuple[str, str]

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}
MAX_PATTERN_HISTORY = 500
MAX_CHAT_HISTORY = 200


def currency_symbol(preferences: UserPreferences) -> str:
    return CURRENCY_SYMBOLS.get(preferences.currency.upper(), preferences.currency + " ")


@dataclass
class _TraderState:
    """Per-trader state that outlives a cached context."""

    mistakes: MistakeDetector
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    cooldown: CooldownState | None = None


# ---------------------------------------------------------------------------
# Context-level scores
# ---------------------------------------------------------------------------

def composite_risk_score(
    today_trades: Sequence[Trade],
    metrics: Metrics,
    active_patterns: Sequence[DetectedPattern],
) -> float:
    """0-100 blend of drawdown, today's loss, trade count, losing streak,
    pattern pressure and rule-breaking."""
    risk = min(metrics.max_drawdown_percent * 200, 40.0)

    today_pnl = sum(t.pnl for t in today_trades)
    if today_pnl < 0:
        risk += min(abs(today_pnl) / 1000 * 10, 20.0)

    if len(today_trades) > 5:
        risk += min((len(today_trades) - 5) * 3, 15.0)

    if metrics.current_streak < -2:
        risk += min(abs(metrics.current_streak) * 4, 15.0)

    risk += min(sum(p.severity for p in active_patterns) * 1.5, 20.0)

    if metrics.rule_tracked_trades > 0:
        risk += (1 - metrics.rule_followed_rate) * 20

    return max(0.0, min(risk, 100.0))


def portfolio_heat(today_trades: Sequence[Trade]) -> float:
    n = len(today_trades)
    if n > 3:
        return 0.7
    if n > 1:
        return 0.4
    return 0.2


def emotional_state(today_trades: Sequence[Trade], metrics: Metrics) -> EmotionalState:
    """Mood read from today's P&L, the current streak and trade count."""
    today_pnl = sum(t.pnl for t in today_trades)
    streak = metrics.current_streak

    if today_pnl > 0 and streak >= 3:
        return EmotionalState(
            primary=EmotionLabel.CONFIDENT,
            intensity=0.7,
            triggers=["positive P&L", "win streak"],
            suggestions=["Stay disciplined", "Avoid overconfidence"],
        )
    if today_pnl < 0 and streak <= -3:
        return EmotionalState(
            primary=EmotionLabel.FRUSTRATED,
            intensity=0.8,
            triggers=["negative P&L", "loss streak"],
            suggestions=["Take a break", "Review trading plan", "Reduce position size"],
        )
    if len(today_trades) > 5:
        return EmotionalState(
            primary=EmotionLabel.ANXIOUS,
            intensity=0.6,
            triggers=["high trade count"],
            suggestions=["Stop trading for today", "Focus on quality over quantity"],
        )
    return EmotionalState()


def _win_rate(trades: Sequence[Trade]) -> float:
    if not trades:
        return 0.0
    return sum(1 for t in trades if t.pnl > 0) / len(trades)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class IntelligenceEngine:
    """Async orchestrator over the pure analytics.

    Parameters
    ----------
    trade_source : ITradeSource
        Supplies trade history, newest first.
    preference_source : IPreferenceSource | None
        Trader preferences; defaults apply when omitted.
    insight_sink : IInsightSink | None
        Best-effort audit sink for patterns and insights.
    settings : Settings | None
        Thresholds, cache sizing and window lengths.
    clock : IClock | None
        Time source for cache expiry, cooldowns and "today".
    """

    def __init__(
        self,
        *,
        trade_source: ITradeSource,
        preference_source: IPreferenceSource | None = None,
        insight_sink: IInsightSink | None = None,
        settings: Settings | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._trades = trade_source
        self._preferences = preference_source
        self._sink = insight_sink
        self._settings = settings or Settings()
        self._clock = clock or WallClock()

        cache_cfg = self._settings.cache
        self._cache: TTLCache = TTLCache(
            maxsize=cache_cfg.max_contexts,
            ttl=cache_cfg.ttl_seconds,
            timer=self._clock.timestamp,
        )
        # Cooldowns survive context expiry; idle traders fall out LRU-first
        self._states: LRUCache = LRUCache(maxsize=cache_cfg.max_contexts)

        self._metrics = MetricsCalculator(clock=self._clock)
        self._features = FeatureExtractor()
        self._patterns = PatternDetector(config=self._settings.detection, clock=self._clock)
        self._regime = RegimeDetector(config=self._settings.regime)
        self._predictor = TradePredictor()
        self._sizer = PositionSizer(config=self._settings.sizing)

    # ------------------------------------------------------------------ #
    # Context lifecycle                                                    #
    # ------------------------------------------------------------------ #

    async def initialize(self, user_id: str, profile_id: str) -> UnifiedContext:
        """Return the cached context, building it on a miss.

        Raises
        ------
        TradeSourceError
            If the trade source fails while building.
        """
        with operation_context("initialize", user_id=user_id, profile_id=profile_id):
            return await self._get_context(user_id, profile_id)

    def invalidate(self, user_id: str, profile_id: str) -> None:
        """Drop the cached context; the next call rebuilds it."""
        self._cache.pop((user_id, profile_id), None)
        logger.info("context_invalidated", user_id=user_id, profile_id=profile_id)

    def cached_context(self, user_id: str, profile_id: str) -> UnifiedContext:
        """The live cached context without triggering a build."""
        ctx = self._cache.get((user_id, profile_id))
        if ctx is None:
            raise ContextNotInitialized(f"No context for {user_id}:{profile_id}")
        return ctx

    def _state_for(self, key: ContextKey) -> _TraderState:
        state = self._states.get(key)
        if state is None:
            state = _TraderState(mistakes=MistakeDetector(
                revenge_gap_minutes=self._settings.detection.revenge_gap_minutes,
                daily_trade_limit=self._settings.detection.overtrading_daily_limit,
                clock=self._clock,
            ))
            self._states[key] = state
        return state

    def mistake_report(
        self, user_id: str, profile_id: str, strategy: str | None = None
    ) -> dict[str, Any]:
        """Mistakes seen by ``on_new_trade`` for one trader, grouped by type."""
        return self._state_for((user_id, profile_id)).mistakes.report(strategy)

    async def _get_context(self, user_id: str, profile_id: str) -> UnifiedContext:
        key = (user_id, profile_id)
        ctx = self._cache.get(key)
        if ctx is not None:
            return ctx
        async with self._state_for(key).lock:
            ctx = self._cache.get(key)
            if ctx is None:
                ctx = await self._build_context(user_id, profile_id)
                self._cache[key] = ctx
            return ctx

    async def _build_context(self, user_id: str, profile_id: str) -> UnifiedContext:
        start = time.perf_counter()
        cfg = self._settings.cache
        try:
            trades, preferences = await asyncio.gather(
                self._trades.fetch_trades(user_id, profile_id, cfg.fetch_limit),
                self._fetch_preferences(user_id),
            )
        except TradeSourceError:
            raise
        except Exception as exc:
            raise TradeSourceError(user_id, profile_id, str(exc)) from exc

        state = self._state_for((user_id, profile_id))
        now = self._clock.now()
        recent = list(trades[: cfg.recent_window])
        today = self._filter_today(trades, preferences)

        metrics = self._metrics.calculate(trades)
        regime = self._regime.detect(trades, metrics)
        advanced = self._metrics.calculate_advanced(trades, market_regime=regime)
        features = self._features.extract(user_id, profile_id, trades, metrics)
        detection = self._patterns.detect_all(
            trades,
            cooldown=state.cooldown,
            preferences=preferences,
        )
        state.cooldown = detection.cooldown
        anomalies = AnomalyDetector(
            config=self._settings.anomaly, currency_symbol=currency_symbol(preferences)
        ).detect(trades, metrics)

        ctx = UnifiedContext(
            user_id=user_id,
            profile_id=profile_id,
            recent_trades=recent,
            today_trades=today,
            metrics=metrics,
            advanced_metrics=advanced,
            features=features,
            active_patterns=detection.patterns,
            pattern_history=list(detection.patterns),
            pattern_interactions=self._patterns.detect_interactions(detection.patterns),
            cooldown=detection.cooldown,
            current_risk_score=composite_risk_score(today, metrics, detection.patterns),
            portfolio_heat=portfolio_heat(today),
            market_regime=regime,
            delivered_insights=anomalies,
            emotional_state=emotional_state(today, metrics),
            preferences=preferences,
            session_start=now,
            last_interaction=now,
        )
        logger.info(
            "context_built",
            trades=len(trades),
            patterns=len(detection.patterns),
            anomalies=len(anomalies),
            regime=regime.value,
            elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return ctx

    async def _fetch_preferences(self, user_id: str) -> UserPreferences:
        if self._preferences is None:
            return UserPreferences()
        return await self._preferences.fetch_preferences(user_id)

    def _filter_today(self, trades: Sequence[Trade], preferences: UserPreferences) -> list[Trade]:
        try:
            tz = ZoneInfo(preferences.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown_timezone", timezone=preferences.timezone)
            tz = ZoneInfo("UTC")
        local_now = self._clock.now().astimezone(tz)
        start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        return [t for t in trades if t.closed_at is not None and t.closed_at >= start]

    # ------------------------------------------------------------------ #
    # Trade processing                                                     #
    # ------------------------------------------------------------------ #

    async def on_new_trade(
        self,
        user_id: str,
        profile_id: str,
        trade: Trade | Mapping[str, Any],
    ) -> IntelligenceResponse:
        """Fold a new trade into the context and surface what it triggers.

        Internal failures are reported as ``success=False`` rather than
        raised; only a failed context build propagates.
        """
        with operation_context("on_new_trade", user_id=user_id, profile_id=profile_id):
            ctx = await self._get_context(user_id, profile_id)
            start = time.perf_counter()
            async with self._state_for((user_id, profile_id)).lock:
                try:
                    response = await self._process_trade(ctx, trade)
                except Exception as exc:
                    logger.exception("trade_processing_failed")
                    return IntelligenceResponse(
                        success=False,
                        operation="on_new_trade",
                        processing_time_ms=(time.perf_counter() - start) * 1000,
                        error=str(exc) or type(exc).__name__,
                    )
            response.processing_time_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "trade_processed",
                patterns=len(response.patterns),
                mistakes=len(response.mistakes),
                elapsed_ms=round(response.processing_time_ms, 2),
            )
            return response

    async def _process_trade(
        self, ctx: UnifiedContext, raw: Trade | Mapping[str, Any]
    ) -> IntelligenceResponse:
        trade = raw if isinstance(raw, Trade) else Trade.from_row(dict(raw))
        now = self._clock.now()
        window = self._settings.cache.recent_window
        response = IntelligenceResponse(operation="on_new_trade")
        state = self._state_for((ctx.user_id, ctx.profile_id))

        # A rebuilt context may already hold the trade
        seen = any(t.id == trade.id for t in ctx.recent_trades)
        previous = [t for t in ctx.recent_trades if t.id != trade.id]
        ctx.recent_trades = [trade, *previous][:window]
        ctx.today_trades = [trade, *(t for t in ctx.today_trades if t.id != trade.id)]
        ctx.session_trades = [trade, *(t for t in ctx.session_trades if t.id != trade.id)]
        ctx.last_interaction = now

        if seen:
            logger.info("trade_already_in_context", trade_id=trade.id)
        else:
            ctx.metrics = self._metrics.update_incremental(ctx.metrics, trade)
        response.mistakes = state.mistakes.analyse(trade, previous)

        detection = self._patterns.detect_incremental(
            trade,
            ctx.recent_trades,
            cooldown=ctx.cooldown,
            preferences=ctx.preferences,
        )
        ctx.cooldown = detection.cooldown
        state.cooldown = detection.cooldown

        generator = InsightGenerator(
            config=self._settings.insights, currency_symbol=currency_symbol(ctx.preferences)
        )
        active_types = {p.type for p in ctx.active_patterns}
        for pattern in detection.patterns:
            if pattern.type in active_types:
                continue
            insight = generator.from_pattern(pattern, ctx)
            ctx.active_patterns.append(pattern)
            active_types.add(pattern.type)
            response.patterns.append(pattern)
            response.insights.append(insight)
            response.notifications.append(Notification(
                type="pattern",
                severity=insight.severity,
                title=insight.title,
                message=insight.message,
                created_at=now,
            ))
        ctx.pattern_history = [*ctx.pattern_history, *detection.patterns][-MAX_PATTERN_HISTORY:]
        ctx.delivered_insights = [*response.insights, *ctx.delivered_insights]

        if detection.patterns:
            ctx.pattern_interactions = self._patterns.detect_interactions(ctx.active_patterns)

        ctx.emotional_state = emotional_state(ctx.today_trades, ctx.metrics)
        ctx.current_risk_score = composite_risk_score(
            ctx.today_trades, ctx.metrics, ctx.active_patterns
        )
        ctx.portfolio_heat = portfolio_heat(ctx.today_trades)

        await self._persist(ctx, detection.patterns, response.insights)
        response.metrics = ctx.metrics
        return response

    async def _persist(
        self,
        ctx: UnifiedContext,
        patterns: Sequence[DetectedPattern],
        insights: Sequence[Insight],
    ) -> None:
        if self._sink is None:
            return
        try:
            if patterns:
                await self._sink.save_patterns(ctx.user_id, ctx.profile_id, patterns)
            if insights:
                await self._sink.save_insights(ctx.user_id, ctx.profile_id, insights)
        except Exception as exc:
            logger.warning("sink_write_failed", error=str(exc))

    # ------------------------------------------------------------------ #
    # Prediction and sizing                                                #
    # ------------------------------------------------------------------ #

    async def predict_trade(
        self, user_id: str, profile_id: str, setup: Trade | Mapping[str, Any]
    ) -> TradePrediction:
        ctx = await self._get_context(user_id, profile_id)
        return self._predictor.predict(setup, ctx.recent_trades, ctx.features, ctx.metrics)

    async def optimal_position_size(
        self,
        user_id: str,
        profile_id: str,
        *,
        stop_loss_percent: float,
        account_size: float,
    ) -> PositionSizeRecommendation:
        ctx = await self._get_context(user_id, profile_id)
        return self._sizer.recommend(
            stop_loss_percent=stop_loss_percent,
            account_size=account_size,
            metrics=ctx.metrics,
            risk_tolerance=ctx.preferences.risk_tolerance,
        )

    # ------------------------------------------------------------------ #
    # Insights and dashboard                                               #
    # ------------------------------------------------------------------ #

    async def generate_ml_insights(self, user_id: str, profile_id: str) -> list[Insight]:
        ctx = await self._get_context(user_id, profile_id)
        generator = InsightGenerator(
            config=self._settings.insights, currency_symbol=currency_symbol(ctx.preferences)
        )
        insights = generator.generate_ml(ctx.features, ctx.metrics, ctx.active_patterns)
        await self._persist(ctx, (), insights)
        return insights

    async def get_dashboard(self, user_id: str, profile_id: str) -> DashboardSnapshot:
        ctx = await self._get_context(user_id, profile_id)
        week_start = self._clock.now() - timedelta(days=7)
        return DashboardSnapshot(
            quick_stats=QuickStats(
                today_pnl=sum(t.pnl for t in ctx.today_trades),
                today_trades=len(ctx.today_trades),
                today_win_rate=_win_rate(ctx.today_trades),
                week_pnl=self._pnl_since(ctx.recent_trades, week_start),
                current_streak=ctx.metrics.current_streak,
                risk_score=ctx.current_risk_score,
            ),
            metrics=ctx.metrics,
            active_patterns=ctx.active_patterns,
            pattern_interactions=ctx.pattern_interactions,
            recent_insights=ctx.delivered_insights[:5],
            emotional_state=ctx.emotional_state,
            market_regime=ctx.market_regime,
        )

    @staticmethod
    def _pnl_since(trades: Sequence[Trade], since: datetime) -> float:
        return sum(t.pnl for t in trades if t.closed_at is not None and t.closed_at >= since)

    # ------------------------------------------------------------------ #
    # Coach                                                                #
    # ------------------------------------------------------------------ #

    async def chat(self, user_id: str, profile_id: str, message: str) -> ChatMessage:
        """Answer a chat message with the rule-based coach."""
        ctx = await self._get_context(user_id, profile_id)
        coach = RuleBasedCoach(
            personality_id=ctx.preferences.coach_personality_id,
            currency_symbol=currency_symbol(ctx.preferences),
        )
        now = self._clock.now()

        detected = coach.detect_emotion(message)
        ctx.chat_history.append(ChatMessage(
            role="user", content=message, timestamp=now, emotional_state=detected,
        ))
        if detected is not None:
            ctx.emotional_state = detected

        reply = coach.respond(message, ctx)
        answer = ChatMessage(
            role="assistant",
            content=reply.message,
            timestamp=now,
            emotional_state=ctx.emotional_state,
        )
        ctx.chat_history.append(answer)
        ctx.chat_history = ctx.chat_history[-MAX_CHAT_HISTORY:]
        ctx.last_interaction = now
        return answer
