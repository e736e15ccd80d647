"""Heuristic outcome prediction for a candidate trade.

This is historical frequency blending, not a trained model.  The win
probability is the plain mean of three win rates: the account overall,
trades sharing the candidate's setup, and trades sharing its symbol.
A missing setup or symbol (or no history for it) falls back to the
overall rate.

Usage::

    predictor = TradePredictor()
    prediction = predictor.predict({"symbol": "NIFTY", "setup": "breakout"},
                                   recent_trades, features, metrics)
    print(prediction.win_probability, prediction.recommendation)
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from ..core.enums import Recommendation, RiskLevel
from ..core.models import (
    FeatureMatrix,
    Metrics,
    RiskFactor,
    SimilarTrade,
    Trade,
    TradePrediction,
)

logger = logging.getLogger(__name__)

TAKE_THRESHOLD = 0.6
SKIP_THRESHOLD = 0.4
RICH_HISTORY = 50
MAX_SIMILAR = 5


def _win_rate(trades: Sequence[Trade], fallback: float) -> float:
    if not trades:
        return fallback
    return sum(1 for t in trades if t.pnl > 0) / len(trades)


def recommend(win_probability: float, expected_pnl: float) -> Recommendation:
    """Threshold ladder.  STRONG_* are never emitted."""
    if win_probability > TAKE_THRESHOLD and expected_pnl > 0:
        return Recommendation.TAKE
    if win_probability < SKIP_THRESHOLD:
        return Recommendation.SKIP
    return Recommendation.NEUTRAL


class TradePredictor:
    """Blend historical win rates into a take/skip call."""

    def predict(
        self,
        setup: Trade | Mapping[str, Any],
        recent_trades: Sequence[Trade],
        features: FeatureMatrix | None,
        metrics: Metrics,
    ) -> TradePrediction:
        if isinstance(setup, Trade):
            candidate, trade_id = setup, setup.id
        else:
            candidate, trade_id = Trade(**setup), setup.get("id")
        setup_name = candidate.setup
        symbol = setup.get("symbol") if isinstance(setup, Mapping) else candidate.symbol

        base = metrics.win_rate or 0.5
        setup_trades = [t for t in recent_trades if setup_name and t.setup == setup_name]
        symbol_trades = [t for t in recent_trades if symbol and t.symbol == symbol]
        setup_rate = _win_rate(setup_trades, base)
        symbol_rate = _win_rate(symbol_trades, base)

        win_probability = min(1.0, max(0.0, (base + setup_rate + symbol_rate) / 3))
        loss_probability = 1 - win_probability

        expected_rr = metrics.avg_risk_reward or 1.0
        avg_risk = metrics.avg_risk_per_trade
        expected_pnl = win_probability * avg_risk * expected_rr - loss_probability * avg_risk
        risk_score = min(
            100.0,
            max(0.0, 50 + metrics.max_drawdown_percent * 100 - metrics.consistency_score * 0.2),
        )

        reasoning = [
            "Blend of historical win rates: "
            f"overall {base:.0%}, setup {setup_rate:.0%}, symbol {symbol_rate:.0%}.",
        ]
        if not setup_trades and setup_name:
            reasoning.append(f"No history for setup '{setup_name}'; overall rate used.")
        if not symbol_trades and symbol:
            reasoning.append(f"No history for {symbol}; overall rate used.")

        prediction = TradePrediction(
            trade_id=trade_id,
            win_probability=win_probability,
            loss_probability=loss_probability,
            break_even_probability=0.0,
            expected_pnl=expected_pnl,
            expected_rr=expected_rr,
            risk_score=risk_score,
            risk_factors=self.risk_factors(metrics, setup_trades, symbol_trades, features),
            confidence=0.6,
            data_quality=0.9 if len(recent_trades) > RICH_HISTORY else 0.6,
            similar_trades=self.similar_trades(candidate, symbol, recent_trades),
            recommendation=recommend(win_probability, expected_pnl),
            reasoning=reasoning,
        )
        logger.debug(
            "Prediction for %s/%s: p_win=%.3f expected=%.2f -> %s",
            symbol, setup_name, win_probability, expected_pnl, prediction.recommendation.value,
        )
        return prediction

    @staticmethod
    def risk_factors(
        metrics: Metrics,
        setup_trades: Sequence[Trade],
        symbol_trades: Sequence[Trade],
        features: FeatureMatrix | None = None,
    ) -> list[RiskFactor]:
        """Descriptive warnings.  They do not move the probability or score."""
        factors: list[RiskFactor] = []
        if metrics.max_drawdown_percent > 0.15:
            factors.append(RiskFactor(
                factor="drawdown",
                severity=RiskLevel.HIGH if metrics.max_drawdown_percent > 0.25 else RiskLevel.MEDIUM,
                description=f"Max drawdown is {metrics.max_drawdown_percent:.0%}.",
            ))
        if metrics.current_streak <= -3:
            factors.append(RiskFactor(
                factor="losing_streak",
                severity=RiskLevel.HIGH,
                description=f"{abs(metrics.current_streak)} losses in a row.",
            ))
        if 0 < len(setup_trades) < 10 or 0 < len(symbol_trades) < 10:
            factors.append(RiskFactor(
                factor="thin_history",
                severity=RiskLevel.LOW,
                description="Fewer than 10 comparable trades behind this estimate.",
            ))
        if features is not None and features.rule_violation_rate > 0.3:
            factors.append(RiskFactor(
                factor="discipline",
                severity=RiskLevel.MEDIUM,
                description=f"Rules broken on {features.rule_violation_rate:.0%} of tracked trades.",
            ))
        return factors

    @staticmethod
    def similar_trades(
        candidate: Trade, symbol: str | None, recent_trades: Sequence[Trade]
    ) -> list[SimilarTrade]:
        """Up to five past trades sharing setup, symbol or strategy."""
        scored: list[tuple[float, int, Trade]] = []
        for index, trade in enumerate(recent_trades):
            score = 0.0
            if candidate.setup and trade.setup == candidate.setup:
                score += 0.5
            if symbol and trade.symbol == symbol:
                score += 0.3
            if candidate.strategy and trade.strategy == candidate.strategy:
                score += 0.2
            if score > 0:
                scored.append((score, index, trade))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            SimilarTrade(trade_id=t.id, similarity=round(s, 2), outcome=t.outcome, pnl=t.pnl)
            for s, _, t in scored[:MAX_SIMILAR]
        ]
