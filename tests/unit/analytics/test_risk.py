"""Tests for the pure risk helpers."""

from datetime import timedelta

import pytest

from trade_intel.analytics import risk
from trade_intel.core.models import UNBOUNDED_RATIO


class TestBasicStatistics:
    def test_mean_std_empty(self):
        assert risk.mean_std([]) == (0.0, 0.0)

    def test_mean_std_population(self):
        mean, std = risk.mean_std([2, 4, 4, 4, 5, 5, 7, 9])
        assert mean == pytest.approx(5.0)
        assert std == pytest.approx(2.0)

    def test_z_score_zero_std(self):
        assert risk.z_score(10, 5, 0) == 0.0


class TestDailyAggregation:
    def test_same_day_trades_are_summed(self, make_trade, base_time):
        trades = [
            make_trade(100, entry_time=base_time),
            make_trade(-30, entry_time=base_time + timedelta(hours=2)),
            make_trade(50, entry_time=base_time + timedelta(days=1)),
        ]
        days = risk.daily_pnl(trades)
        assert list(days.values()) == [pytest.approx(70), pytest.approx(50)]

    def test_daily_returns_skip_zero_days(self, trade_series):
        returns = risk.daily_returns(trade_series([0, 100, 50]))
        assert returns == [pytest.approx(-0.5)]


class TestDrawdown:
    def test_max_drawdown(self):
        assert risk.max_drawdown([100, -40, -20, 50]) == pytest.approx(60)

    def test_max_drawdown_empty(self):
        assert risk.max_drawdown([]) == 0.0

    def test_drawdown_from_zero_peak(self):
        assert risk.max_drawdown([-10, -20]) == pytest.approx(30)

    def test_max_drawdown_pct(self):
        assert risk.max_drawdown_pct([100, -25]) == pytest.approx(25.0)

    def test_recovery_factor_unbounded_without_drawdown(self, trade_series):
        result = risk.recovery_factor(trade_series([10, 20]))
        assert result.unbounded is True
        assert result.value == UNBOUNDED_RATIO

    def test_recovery_factor(self, trade_series):
        result = risk.recovery_factor(trade_series([100, -50, 100]))
        assert result.value == pytest.approx(3.0)
        assert result.unbounded is False

    def test_calmar_empty(self):
        assert risk.calmar_ratio([]).value == 0.0


class TestRiskAdjustedReturns:
    def test_sharpe_empty(self):
        assert risk.sharpe_ratio([]) == 0.0

    def test_sharpe_constant_returns(self):
        assert risk.sharpe_ratio([0.5, 0.5, 0.5]) == 0.0

    def test_sortino_without_downside_is_unbounded(self):
        result = risk.sortino_ratio([0.01, 0.02])
        assert result.unbounded is True

    def test_sortino_with_downside_is_finite(self):
        result = risk.sortino_ratio([0.02, -0.01, 0.03, -0.02])
        assert result.unbounded is False


class TestTailRisk:
    def test_var_by_index(self):
        values = list(range(-10, 10))
        assert risk.value_at_risk(values, 0.95) == pytest.approx(9)
        assert risk.value_at_risk(values, 0.99) == pytest.approx(10)

    def test_cvar_averages_tail(self):
        values = list(range(-10, 10))
        assert risk.conditional_var(values, 0.95) == pytest.approx(9.5)

    def test_empty(self):
        assert risk.value_at_risk([]) == 0.0
        assert risk.conditional_var([]) == 0.0


class TestStreaks:
    def test_max_consecutive(self, trade_series):
        trades = trade_series([-1, -1, 5, -1, 2, 3, 4])
        assert risk.max_consecutive_losses(trades) == 2
        assert risk.max_consecutive_wins(trades) == 3


class TestSizing:
    def test_half_kelly(self):
        assert risk.half_kelly(0.6, 2.0) == pytest.approx(0.2)

    def test_half_kelly_no_edge(self):
        assert risk.half_kelly(0.3, 1.0) == 0.0

    def test_half_kelly_non_positive_ratio(self):
        assert risk.half_kelly(0.6, 0.0) == 0.0

    def test_kelly_fraction(self):
        assert risk.kelly_fraction(0.5, 200, -100) == pytest.approx(0.25)

    def test_kelly_fraction_zero_loss(self):
        assert risk.kelly_fraction(0.5, 200, 0) == 0.0

    def test_fixed_fractional_size(self):
        assert risk.fixed_fractional_size(100_000, 1.0, 100, 95) == 200

    def test_fixed_fractional_zero_stop_distance(self):
        assert risk.fixed_fractional_size(100_000, 1.0, 100, 100) == 0

    def test_risk_of_ruin_low_win_rate(self):
        assert risk.risk_of_ruin(0.4, 100, -100, 10_000, 2.0) == pytest.approx(60.0)

    def test_risk_of_ruin_negative_expectancy(self):
        assert risk.risk_of_ruin(0.6, 10, -100, 10_000, 2.0) == 100.0
