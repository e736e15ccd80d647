"""Coarse market / performance regime classification.

Buckets the most recent trades by calendar day and scores the daily
P&L series for trend (mean) and volatility (stddev), both normalised by
the largest absolute daily P&L.

``CHOPPY`` is part of the enum but no rule currently emits it.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..analytics import risk
from ..core.config import RegimeConfig
from ..core.enums import MarketRegime
from ..core.models import Metrics, Trade, sort_chronological

logger = logging.getLogger(__name__)


class RegimeDetector:
    """Classify recent trading activity into a :class:`MarketRegime`.

    Parameters
    ----------
    config : RegimeConfig | None
        Window size and score thresholds.
    """

    def __init__(self, *, config: RegimeConfig | None = None) -> None:
        self._config = config or RegimeConfig()

    def scores(self, trades: Sequence[Trade]) -> tuple[float, float]:
        """``(trend_score, volatility_score)`` for the recent window."""
        recent = sort_chronological(trades)[-self._config.window_trades:]
        daily = list(risk.daily_pnl(recent).values())
        if not daily:
            return 0.0, 0.0
        mean, std = risk.mean_std(daily)
        scale = max(abs(max(daily)), abs(min(daily)), 1.0)
        return mean / scale, std / scale

    def detect(self, trades: Sequence[Trade], metrics: Metrics | None = None) -> MarketRegime:
        if not trades:
            return MarketRegime.RANGING
        cfg = self._config
        trend, volatility = self.scores(trades)
        total_pnl = metrics.total_pnl if metrics is not None else sum(t.pnl for t in trades)

        if volatility > cfg.high_volatility:
            regime = MarketRegime.HIGH_VOLATILITY
        elif volatility < cfg.low_volatility:
            regime = MarketRegime.LOW_VOLATILITY
        elif trend > cfg.trend_threshold:
            regime = MarketRegime.STRONG_UPTREND if total_pnl > 0 else MarketRegime.WEAK_UPTREND
        elif trend < -cfg.trend_threshold:
            regime = MarketRegime.STRONG_DOWNTREND if total_pnl < 0 else MarketRegime.WEAK_DOWNTREND
        else:
            regime = MarketRegime.RANGING

        logger.debug(
            "Regime %s (trend=%.3f volatility=%.3f)", regime.value, trend, volatility
        )
        return regime
