"""Tests for the IntelligenceEngine orchestration layer."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from trade_intel.analytics.metrics import MetricsCalculator
from trade_intel.core.config import CacheConfig, Settings
from trade_intel.core.enums import EmotionLabel, PatternType, RiskTolerance
from trade_intel.core.errors import ContextNotInitialized, TradeSourceError
from trade_intel.core.models import DetectedPattern, Insight, Metrics, Trade, UserPreferences
from trade_intel.engine import (
    IntelligenceEngine,
    composite_risk_score,
    currency_symbol,
    emotional_state,
    portfolio_heat,
)
from trade_intel.sources import (
    InMemoryInsightSink,
    InMemoryTradeSource,
    StaticPreferenceSource,
)

USER, PROFILE = "u1", "p1"
KEY = (USER, PROFILE)
NOON = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


def build_trade(pnl, *, entry_time=NOON, duration_minutes=30, **overrides):
    fields = {
        "symbol": "NIFTY",
        "entry_price": 100.0,
        "exit_price": 100.0 + pnl / 10,
        "quantity": 10.0,
        "entry_time": entry_time,
        "exit_time": entry_time + timedelta(minutes=duration_minutes),
        "duration_minutes": duration_minutes,
        "pnl": pnl,
        "stop_loss": 95.0,
    }
    fields.update(overrides)
    return Trade(**fields)


def _history():
    """20 daily trades from 2024-05-01, alternating +100 / -50."""
    start = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    return [
        build_trade(pnl, entry_time=start + timedelta(days=i))
        for i, pnl in enumerate([100, -50] * 10)
    ]


def _news_trade(day: int = 3, minute: int = 15, **overrides):
    """A 5-minute winner opened inside the 14:00-14:30 news window."""
    return build_trade(
        40,
        entry_time=datetime(2024, 6, day, 14, minute, tzinfo=timezone.utc),
        duration_minutes=5,
        **overrides,
    )


class FailingTradeSource:
    async def fetch_trades(self, user_id, profile_id, limit):
        raise RuntimeError("db down")


class FailingSink:
    async def save_patterns(self, user_id, profile_id, patterns):
        raise RuntimeError("sink down")

    async def save_insights(self, user_id, profile_id, insights):
        raise RuntimeError("sink down")


@pytest.fixture
def source():
    return InMemoryTradeSource(_history())


@pytest.fixture
def sink():
    return InMemoryInsightSink()


@pytest.fixture
def engine(source, sink, sim_clock):
    return IntelligenceEngine(
        trade_source=source,
        preference_source=StaticPreferenceSource(UserPreferences(timezone="UTC")),
        insight_sink=sink,
        clock=sim_clock,
    )


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------

class TestContextLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_builds_context(self, engine):
        ctx = await engine.initialize(USER, PROFILE)
        assert ctx.metrics.total_trades == 20
        assert len(ctx.recent_trades) == 20
        assert ctx.today_trades == []
        assert ctx.active_patterns == []

    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self, engine, source):
        first = await engine.initialize(USER, PROFILE)
        second = await engine.initialize(USER, PROFILE)
        assert first is second
        assert source.fetch_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_initialize_builds_once(self, engine, source):
        contexts = await asyncio.gather(*(engine.initialize(USER, PROFILE) for _ in range(5)))
        assert source.fetch_count == 1
        assert all(ctx is contexts[0] for ctx in contexts)

    @pytest.mark.asyncio
    async def test_ttl_expiry_rebuilds(self, engine, source, sim_clock):
        await engine.initialize(USER, PROFILE)
        sim_clock.advance(seconds=301)
        await engine.initialize(USER, PROFILE)
        assert source.fetch_count == 2

    @pytest.mark.asyncio
    async def test_within_ttl_no_rebuild(self, engine, source, sim_clock):
        await engine.initialize(USER, PROFILE)
        sim_clock.advance(seconds=299)
        await engine.initialize(USER, PROFILE)
        assert source.fetch_count == 1

    @pytest.mark.asyncio
    async def test_invalidate(self, engine, source):
        await engine.initialize(USER, PROFILE)
        engine.invalidate(USER, PROFILE)
        with pytest.raises(ContextNotInitialized):
            engine.cached_context(USER, PROFILE)
        await engine.initialize(USER, PROFILE)
        assert source.fetch_count == 2

    def test_cached_context_requires_build(self, engine):
        with pytest.raises(ContextNotInitialized):
            engine.cached_context(USER, PROFILE)

    @pytest.mark.asyncio
    async def test_source_failure_raises(self, sim_clock):
        engine = IntelligenceEngine(trade_source=FailingTradeSource(), clock=sim_clock)
        with pytest.raises(TradeSourceError):
            await engine.initialize(USER, PROFILE)

    @pytest.mark.asyncio
    async def test_today_uses_preference_timezone(self, sim_clock):
        # 2024-06-02 19:00 UTC is already 2024-06-03 in Kolkata
        late = build_trade(50, entry_time=datetime(2024, 6, 2, 19, 0, tzinfo=timezone.utc))
        kolkata = IntelligenceEngine(trade_source=InMemoryTradeSource([late]), clock=sim_clock)
        utc = IntelligenceEngine(
            trade_source=InMemoryTradeSource([late]),
            preference_source=StaticPreferenceSource(UserPreferences(timezone="UTC")),
            clock=sim_clock,
        )
        assert len((await kolkata.initialize(USER, PROFILE)).today_trades) == 1
        assert (await utc.initialize(USER, PROFILE)).today_trades == []


# ---------------------------------------------------------------------------
# Trade processing
# ---------------------------------------------------------------------------

class TestOnNewTrade:
    @pytest.mark.asyncio
    async def test_updates_metrics(self, engine):
        response = await engine.on_new_trade(USER, PROFILE, build_trade(
            75, entry_time=datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc),
        ))
        assert response.success
        assert response.metrics.total_trades == 21
        ctx = engine.cached_context(USER, PROFILE)
        assert ctx.recent_trades[0].pnl == 75
        assert len(ctx.today_trades) == 1

    @pytest.mark.asyncio
    async def test_accepts_raw_row(self, engine):
        response = await engine.on_new_trade(USER, PROFILE, {
            "id": "raw-1",
            "symbol": "NIFTY",
            "entry_price": "100",
            "exit_price": "102",
            "quantity": "5",
            "pnl": "10",
            "entry_time": "2024-06-03T10:00:00+00:00",
            "exit_time": "2024-06-03T10:30:00+00:00",
        })
        assert response.success
        assert engine.cached_context(USER, PROFILE).recent_trades[0].id == "raw-1"

    @pytest.mark.asyncio
    async def test_news_trade_surfaces_pattern(self, engine, sink, sim_clock):
        sim_clock.advance(hours=3)
        response = await engine.on_new_trade(USER, PROFILE, _news_trade())
        assert [p.type for p in response.patterns] == [PatternType.NEWS_TRADING]
        assert len(response.insights) == 1
        assert len(response.notifications) == 1
        assert response.notifications[0].type == "pattern"
        assert [p.type for p in sink.patterns[KEY]] == [PatternType.NEWS_TRADING]
        assert len(sink.insights[KEY]) == 1
        ctx = engine.cached_context(USER, PROFILE)
        assert ctx.active_patterns[0].type == PatternType.NEWS_TRADING

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_repeat(self, engine, sim_clock):
        sim_clock.advance(hours=3)
        await engine.on_new_trade(USER, PROFILE, _news_trade())
        sim_clock.advance(minutes=10)
        repeat = await engine.on_new_trade(USER, PROFILE, _news_trade(minute=20))
        assert repeat.success
        assert repeat.patterns == []

    @pytest.mark.asyncio
    async def test_cooldown_survives_context_rebuild(self, engine, source, sim_clock):
        sim_clock.advance(hours=3)
        await engine.on_new_trade(USER, PROFILE, _news_trade())
        sim_clock.advance(seconds=301)
        repeat = await engine.on_new_trade(USER, PROFILE, _news_trade(minute=25))
        assert source.fetch_count == 2
        assert repeat.patterns == []

    @pytest.mark.asyncio
    async def test_pattern_reemitted_after_cooldown(self, engine, sim_clock):
        sim_clock.advance(hours=3)
        await engine.on_new_trade(USER, PROFILE, _news_trade())
        sim_clock.advance(hours=25)
        later = await engine.on_new_trade(USER, PROFILE, _news_trade(day=4))
        assert [p.type for p in later.patterns] == [PatternType.NEWS_TRADING]

    @pytest.mark.asyncio
    async def test_sink_failure_is_not_fatal(self, source, sim_clock):
        engine = IntelligenceEngine(
            trade_source=source,
            preference_source=StaticPreferenceSource(UserPreferences(timezone="UTC")),
            insight_sink=FailingSink(),
            clock=sim_clock,
        )
        sim_clock.advance(hours=3)
        response = await engine.on_new_trade(USER, PROFILE, _news_trade())
        assert response.success
        assert len(response.patterns) == 1

    @pytest.mark.asyncio
    async def test_internal_failure_reported(self, engine, monkeypatch):
        await engine.initialize(USER, PROFILE)

        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine._metrics, "update_incremental", boom)
        response = await engine.on_new_trade(USER, PROFILE, build_trade(10))
        assert response.success is False
        assert response.error == "boom"
        assert response.operation == "on_new_trade"

    @pytest.mark.asyncio
    async def test_mistakes_reported(self, engine):
        response = await engine.on_new_trade(USER, PROFILE, build_trade(
            -20, entry_time=datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc), stop_loss=None,
        ))
        assert "no_stop_loss" in {m.mistake_type for m in response.mistakes}

    @pytest.mark.asyncio
    async def test_trade_already_in_source_counted_once(self, sim_clock):
        new = build_trade(
            200, id="t-new", entry_time=datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc),
        )
        trades = [*_history(), new]
        engine = IntelligenceEngine(
            trade_source=InMemoryTradeSource(trades),
            preference_source=StaticPreferenceSource(UserPreferences(timezone="UTC")),
            clock=sim_clock,
        )
        response = await engine.on_new_trade(USER, PROFILE, new)
        expected = MetricsCalculator().calculate(trades)
        assert response.metrics.total_trades == expected.total_trades == 21
        assert response.metrics.total_pnl == pytest.approx(expected.total_pnl)
        assert len(engine.cached_context(USER, PROFILE).recent_trades) == 21

    @pytest.mark.asyncio
    async def test_replayed_trade_counted_once(self, engine):
        trade = build_trade(
            75, id="t-replay", entry_time=datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc),
        )
        await engine.on_new_trade(USER, PROFILE, trade)
        replay = await engine.on_new_trade(USER, PROFILE, trade)
        assert replay.success
        assert replay.metrics.total_trades == 21
        assert replay.metrics.total_pnl == pytest.approx(500 + 75)

    @pytest.mark.asyncio
    async def test_mistake_report_is_per_trader(self, engine):
        await engine.on_new_trade(USER, PROFILE, build_trade(
            -20, entry_time=datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc), stop_loss=None,
        ))
        assert "no_stop_loss" in engine.mistake_report(USER, PROFILE)["by_type"]
        assert engine.mistake_report("u2", PROFILE)["total_mistakes"] == 0


# ---------------------------------------------------------------------------
# Prediction, sizing, insights, dashboard, chat
# ---------------------------------------------------------------------------

class TestOperations:
    @pytest.mark.asyncio
    async def test_predict_trade(self, engine):
        prediction = await engine.predict_trade(USER, PROFILE, {"symbol": "NIFTY"})
        assert 0.0 <= prediction.win_probability <= 1.0
        assert prediction.win_probability + prediction.loss_probability == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_position_size_uses_tolerance(self, source, sim_clock):
        engine = IntelligenceEngine(
            trade_source=source,
            preference_source=StaticPreferenceSource(
                UserPreferences(risk_tolerance=RiskTolerance.CONSERVATIVE)
            ),
            clock=sim_clock,
        )
        rec = await engine.optimal_position_size(
            USER, PROFILE, stop_loss_percent=2.0, account_size=100_000,
        )
        assert rec.ceiling == pytest.approx(0.005)
        assert rec.risk_fraction <= rec.ceiling
        assert rec.size >= 0

    @pytest.mark.asyncio
    async def test_generate_ml_insights_persists(self, engine, sink):
        insights = await engine.generate_ml_insights(USER, PROFILE)
        assert all(isinstance(i, Insight) for i in insights)
        assert sink.insights.get(KEY, []) == insights

    @pytest.mark.asyncio
    async def test_dashboard(self, sim_clock):
        today = build_trade(200, entry_time=datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc))
        engine = IntelligenceEngine(
            trade_source=InMemoryTradeSource([*_history(), today]),
            preference_source=StaticPreferenceSource(UserPreferences(timezone="UTC")),
            clock=sim_clock,
        )
        snapshot = await engine.get_dashboard(USER, PROFILE)
        stats = snapshot.quick_stats
        assert stats.today_pnl == pytest.approx(200)
        assert stats.today_trades == 1
        assert stats.today_win_rate == pytest.approx(1.0)
        assert stats.week_pnl == pytest.approx(200)
        assert snapshot.metrics.total_trades == 21

    @pytest.mark.asyncio
    async def test_chat_tracks_emotion_and_history(self, engine):
        reply = await engine.chat(USER, PROFILE, "frustrated and angry, I hate this")
        assert reply.role == "assistant"
        assert reply.emotional_state.primary == EmotionLabel.FRUSTRATED
        ctx = engine.cached_context(USER, PROFILE)
        assert [m.role for m in ctx.chat_history] == ["user", "assistant"]
        assert ctx.emotional_state.primary == EmotionLabel.FRUSTRATED


# ---------------------------------------------------------------------------
# Context-level scores
# ---------------------------------------------------------------------------

class TestCompositeRiskScore:
    def test_empty(self):
        assert composite_risk_score([], Metrics(), []) == 0.0

    def test_drawdown_capped(self):
        assert composite_risk_score([], Metrics(max_drawdown_percent=0.5), []) == pytest.approx(40)

    def test_all_components(self):
        today = [build_trade(-100) for _ in range(7)]
        metrics = Metrics(
            max_drawdown_percent=0.1,
            current_streak=-3,
            rule_tracked_trades=10,
            rule_followed_rate=0.5,
        )
        patterns = [DetectedPattern(type=PatternType.OVERTRADING, severity=4)]
        # 20 drawdown + 7 loss + 6 count + 12 streak + 6 patterns + 10 rules
        assert composite_risk_score(today, metrics, patterns) == pytest.approx(61)

    def test_clamped(self):
        today = [build_trade(-5000) for _ in range(20)]
        metrics = Metrics(max_drawdown_percent=1.0, current_streak=-10)
        patterns = [DetectedPattern(type=PatternType.FOMO, severity=10) for _ in range(3)]
        assert composite_risk_score(today, metrics, patterns) == 100.0


class TestPortfolioHeat:
    @pytest.mark.parametrize("n,heat", [(0, 0.2), (1, 0.2), (2, 0.4), (3, 0.4), (4, 0.7)])
    def test_levels(self, n, heat):
        assert portfolio_heat([build_trade(10) for _ in range(n)]) == heat


class TestEmotionalState:
    def test_confident(self):
        state = emotional_state([build_trade(100)], Metrics(current_streak=3))
        assert state.primary == EmotionLabel.CONFIDENT
        assert state.intensity == pytest.approx(0.7)

    def test_frustrated(self):
        state = emotional_state([build_trade(-100)], Metrics(current_streak=-3))
        assert state.primary == EmotionLabel.FRUSTRATED

    def test_anxious_from_trade_count(self):
        state = emotional_state([build_trade(0) for _ in range(6)], Metrics())
        assert state.primary == EmotionLabel.ANXIOUS

    def test_neutral(self):
        assert emotional_state([], Metrics()).primary == EmotionLabel.NEUTRAL


class TestCurrencySymbol:
    def test_known(self):
        assert currency_symbol(UserPreferences(currency="usd")) == "$"
        assert currency_symbol(UserPreferences()) == "₹"

    def test_unknown_code(self):
        assert currency_symbol(UserPreferences(currency="CHF")) == "CHF "


def test_custom_settings_window(source, sim_clock):
    settings = Settings(cache=CacheConfig(recent_window=5))
    engine = IntelligenceEngine(trade_source=source, settings=settings, clock=sim_clock)
    ctx = asyncio.run(engine.initialize(USER, PROFILE))
    assert len(ctx.recent_trades) == 5
    assert ctx.metrics.total_trades == 20


def test_trader_state_is_bounded(source, sim_clock):
    settings = Settings(cache=CacheConfig(max_contexts=2))
    engine = IntelligenceEngine(trade_source=source, settings=settings, clock=sim_clock)
    for user in ("a", "b", "c"):
        asyncio.run(engine.initialize(user, PROFILE))
    assert len(engine._states) == 2
    assert ("a", PROFILE) not in engine._states
