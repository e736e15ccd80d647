"""Tests for InsightGenerator and the pattern template table."""

from datetime import timedelta

import pytest

from trade_intel.analytics.features import FeatureExtractor
from trade_intel.analytics.metrics import MetricsCalculator
from trade_intel.core.enums import InsightCategory, InsightSeverity, InsightType, PatternType
from trade_intel.core.models import (
    DetectedPattern,
    FeatureMatrix,
    Metrics,
    StrategyStats,
    SymbolStats,
    UnifiedContext,
)
from trade_intel.insights.generator import InsightGenerator
from trade_intel.insights.templates import TEMPLATES, interpolate, template_for


@pytest.fixture
def generator():
    return InsightGenerator()


def _context(history=()):
    return UnifiedContext(user_id="u1", profile_id="p1", pattern_history=list(history))


class TestTemplates:
    def test_every_pattern_type_has_a_template(self):
        assert set(TEMPLATES) == set(PatternType)

    def test_template_for(self):
        assert template_for(PatternType.FOMO).title == "FOMO Entries"

    def test_interpolate_money(self):
        assert interpolate("Lost {{currency}}{{cost}}", {"currency": "₹", "cost": 1200}) == "Lost ₹1,200"

    def test_missing_field_renders_empty(self):
        assert interpolate("a {{x}} b", {}) == "a  b"

    def test_none_renders_empty(self):
        assert interpolate("[{{x}}]", {"x": None}) == "[]"

    def test_whitespace_inside_braces(self):
        assert interpolate("{{ cost }}", {"cost": 5}) == "5"

    @pytest.mark.parametrize("value,text", [
        (3.0, "3"),
        (2.5, "2.50"),
        (True, "yes"),
        (["a", "b"], "a, b"),
        ("breakout", "breakout"),
    ])
    def test_value_rendering(self, value, text):
        assert interpolate("{{v}}", {"v": value}) == text


class TestFromPattern:
    def test_alert_fields(self, generator):
        pattern = DetectedPattern(
            type=PatternType.REVENGE_TRADING,
            severity=8,
            confidence=0.75,
            cost=1200.4,
            frequency=2,
            trades_affected=["t1", "t2"],
            metadata={"revenge_trades": 2},
            suggestions=["Walk away after a loss", "Cap daily losses"],
        )
        earlier = DetectedPattern(type=PatternType.REVENGE_TRADING, cost=800, frequency=3)
        insight = generator.from_pattern(pattern, _context([earlier, pattern]))

        assert insight.type == InsightType.PATTERN_ALERT
        assert insight.category == InsightCategory.BEHAVIOR
        assert insight.severity == InsightSeverity.CRITICAL
        assert insight.priority == 8
        assert insight.title == "Revenge Trading Detected"
        assert "₹1,200" in insight.message
        assert "₹800" in insight.message
        assert insight.impact_score == pytest.approx(2000.4)
        assert insight.confidence == pytest.approx(0.75)
        assert insight.related_patterns == [PatternType.REVENGE_TRADING]
        assert insight.related_trades == ["t1", "t2"]
        assert insight.explanation == "Walk away after a loss Cap daily losses"

    def test_actions_take_suggestions_as_descriptions(self, generator):
        pattern = DetectedPattern(
            type=PatternType.OVERTRADING, severity=6, suggestions=["Stop at five trades"],
        )
        insight = generator.from_pattern(pattern, _context())
        assert [a.id for a in insight.actions] == ["0", "1"]
        assert insight.actions[0].description == "Stop at five trades"
        assert insight.actions[1].description == insight.actions[1].label

    def test_other_types_ignored_in_history(self, generator):
        pattern = DetectedPattern(type=PatternType.FOMO, severity=4, cost=100)
        unrelated = DetectedPattern(type=PatternType.OVERTRADING, cost=999)
        insight = generator.from_pattern(pattern, _context([unrelated]))
        assert insight.impact_score == pytest.approx(100)

    def test_metadata_interpolated(self, generator):
        pattern = DetectedPattern(
            type=PatternType.PLAN_DEVIATION, severity=6, metadata={"rule_followed_rate": 45},
        )
        insight = generator.from_pattern(pattern, _context())
        assert "45%" in insight.message

    def test_currency_symbol(self):
        pattern = DetectedPattern(type=PatternType.REVENGE_TRADING, severity=8, cost=50)
        insight = InsightGenerator(currency_symbol="$").from_pattern(pattern, _context())
        assert "$50" in insight.message


class TestAdjustSeverity:
    @pytest.mark.parametrize("base,pattern_severity,expected", [
        (InsightSeverity.INFO, 5, InsightSeverity.WARNING),
        (InsightSeverity.INFO, 4, InsightSeverity.INFO),
        (InsightSeverity.WARNING, 9, InsightSeverity.CRITICAL),
        (InsightSeverity.SUCCESS, 6, InsightSeverity.SUCCESS),
        (InsightSeverity.CRITICAL, 2, InsightSeverity.CRITICAL),
    ])
    def test_escalation(self, generator, base, pattern_severity, expected):
        assert generator.adjust_severity(base, pattern_severity) == expected


class TestTimeInsight:
    def test_best_hour(self, generator):
        features = FeatureMatrix(hourly_win_rates={"9:00": 0.8, "10:00": 0.5, "11:00": 0.3})
        metrics = Metrics(total_trades=10, win_rate=0.5, total_pnl=1000)
        insight = generator.time_insight(features, metrics)
        assert insight.data["best_time"] == "9:00"
        assert insight.data["worst_time"] == "11:00"
        assert insight.impact_score == pytest.approx(300)
        assert insight.confidence == pytest.approx(0.76)

    def test_needs_three_hours(self, generator):
        features = FeatureMatrix(hourly_win_rates={"9:00": 0.8, "10:00": 0.5})
        assert generator.time_insight(features, Metrics(win_rate=0.5)) is None

    def test_needs_improvement(self, generator):
        features = FeatureMatrix(hourly_win_rates={"9:00": 0.52, "10:00": 0.5, "11:00": 0.3})
        assert generator.time_insight(features, Metrics(win_rate=0.5)) is None


class TestStrategyInsight:
    def test_losing_laggard_is_warning(self, generator):
        features = FeatureMatrix(strategy_performance={
            "breakout": StrategyStats(name="breakout", trade_count=50, avg_pnl=120, win_rate=0.6),
            "reversal": StrategyStats(name="reversal", trade_count=20, avg_pnl=-30),
        })
        insight = generator.strategy_insight(features)
        assert insight.severity == InsightSeverity.WARNING
        assert insight.data["best_strategy"] == "breakout"
        assert insight.data["worst_strategy"] == "reversal"
        assert insight.impact_score == pytest.approx(1500)
        assert insight.confidence == pytest.approx(0.7)

    def test_no_profitable_strategy(self, generator):
        features = FeatureMatrix(strategy_performance={
            "a": StrategyStats(name="a", avg_pnl=-5),
            "b": StrategyStats(name="b", avg_pnl=-10),
        })
        assert generator.strategy_insight(features) is None

    def test_single_strategy(self, generator):
        features = FeatureMatrix(strategy_performance={"a": StrategyStats(name="a", avg_pnl=5)})
        assert generator.strategy_insight(features) is None


class TestRiskInsights:
    def test_no_trades(self, generator):
        assert generator.risk_insights(Metrics()) == []

    def test_losing_profit_factor_is_critical(self, generator):
        metrics = Metrics(total_trades=10, profit_factor=0.8, gross_loss=1000)
        insight = generator.risk_insights(metrics)[0]
        assert insight.title == "Profit Factor Alert"
        assert insight.severity == InsightSeverity.CRITICAL
        assert insight.impact_score == pytest.approx(300)

    def test_thin_profit_factor_is_warning(self, generator):
        metrics = Metrics(total_trades=10, profit_factor=1.1)
        assert generator.risk_insights(metrics)[0].severity == InsightSeverity.WARNING

    def test_discipline_needs_tracked_trades(self, generator):
        untracked = Metrics(total_trades=10, profit_factor=2.0, rule_followed_rate=0.0)
        assert generator.risk_insights(untracked) == []
        tracked = untracked.model_copy(update={"rule_tracked_trades": 10, "rule_followed_rate": 0.5})
        titles = [i.title for i in generator.risk_insights(tracked)]
        assert titles == ["Discipline Alert"]

    def test_discipline_links_plan_deviation(self, generator):
        metrics = Metrics(
            total_trades=10, profit_factor=2.0, rule_tracked_trades=10, rule_followed_rate=0.5,
        )
        patterns = [DetectedPattern(type=PatternType.PLAN_DEVIATION)]
        insight = generator.risk_insights(metrics, patterns)[0]
        assert insight.related_patterns == [PatternType.PLAN_DEVIATION]

    def test_deep_drawdown_is_critical(self, generator):
        metrics = Metrics(
            total_trades=10, profit_factor=2.0, max_drawdown=3000, max_drawdown_percent=0.3,
        )
        insight = generator.risk_insights(metrics)[0]
        assert insight.title == "Drawdown Alert"
        assert insight.severity == InsightSeverity.CRITICAL
        assert insight.impact_score == pytest.approx(3000)

    def test_moderate_drawdown_is_warning(self, generator):
        metrics = Metrics(total_trades=10, profit_factor=2.0, max_drawdown_percent=0.18)
        assert generator.risk_insights(metrics)[0].severity == InsightSeverity.WARNING


class TestSymbolInsight:
    def _features(self, *avgs):
        return FeatureMatrix(symbol_performance={
            f"S{i}": SymbolStats(symbol=f"S{i}", avg_pnl=avg, total_pnl=avg * 5)
            for i, avg in enumerate(avgs)
        })

    def test_losers_named(self, generator):
        insight = generator.symbol_insight(self._features(50, 20, -10, -40))
        assert insight.data["worst_symbols"] == ["S2", "S3"]
        assert insight.data["best_symbols"] == ["S0", "S1", "S2"]
        assert insight.impact_score == pytest.approx(250)

    def test_no_losers(self, generator):
        assert generator.symbol_insight(self._features(50, 20, 10)) is None

    def test_too_few_symbols(self, generator):
        assert generator.symbol_insight(self._features(50, -20)) is None


class TestConsistencyAndEdge:
    def test_low_consistency_is_warning(self, generator):
        insight = generator.consistency_insight(Metrics(total_trades=5, consistency_score=40))
        assert insight.severity == InsightSeverity.WARNING

    def test_middling_consistency_is_info(self, generator):
        insight = generator.consistency_insight(Metrics(total_trades=5, consistency_score=60))
        assert insight.severity == InsightSeverity.INFO

    def test_good_consistency(self, generator):
        assert generator.consistency_insight(Metrics(total_trades=5, consistency_score=80)) is None

    def test_no_trades_no_consistency_insight(self, generator):
        assert generator.consistency_insight(Metrics()) is None

    def test_positive_edge(self, generator):
        insight = generator.edge_insight(Metrics(total_trades=10, expectancy=25))
        assert insight.severity == InsightSeverity.SUCCESS
        assert insight.impact_score == pytest.approx(250)

    def test_no_edge(self, generator):
        assert generator.edge_insight(Metrics(total_trades=10, expectancy=0)) is None


class TestGenerateMl:
    @pytest.fixture
    def inputs(self, make_trade, base_time):
        trades = []
        for day in range(12):
            at = base_time + timedelta(days=day)
            trades.append(make_trade(120, entry_time=at, strategy="breakout", symbol="NIFTY"))
            trades.append(make_trade(
                -60 if day % 2 else 40, entry_time=at.replace(hour=11),
                strategy="reversal", symbol="BANKNIFTY",
            ))
            trades.append(make_trade(
                -30, entry_time=at.replace(hour=13), strategy="reversal", symbol="RELIANCE",
            ))
        metrics = MetricsCalculator().calculate(trades)
        features = FeatureExtractor().extract("u1", "p1", trades, metrics)
        return features, metrics

    def test_ranked_by_confidence_times_impact(self, generator, inputs):
        insights = generator.generate_ml(*inputs)
        assert insights
        scores = [i.ranking_score for i in insights]
        assert scores == sorted(scores, reverse=True)

    def test_deterministic(self, generator, inputs):
        first = generator.generate_ml(*inputs)
        second = generator.generate_ml(*inputs)
        assert [(i.title, i.message, i.impact_score) for i in first] == [
            (i.title, i.message, i.impact_score) for i in second
        ]

    def test_expected_sections(self, generator, inputs):
        titles = {i.title for i in generator.generate_ml(*inputs)}
        assert {"Best Trading Hours", "Strategy Comparison", "Symbol Performance"} <= titles

    def test_empty_inputs(self, generator):
        assert generator.generate_ml(FeatureMatrix(), Metrics()) == []
