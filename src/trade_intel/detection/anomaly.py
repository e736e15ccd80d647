"""Per-trade P&L outlier detection.

Flags trades whose P&L sits at least ``z_threshold`` population standard
deviations from the trader's own mean.  Order-independent and O(n).
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..analytics import risk
from ..core.config import AnomalyConfig
from ..core.enums import InsightCategory, InsightSeverity, InsightType
from ..core.models import Insight, Metrics, Trade

logger = logging.getLogger(__name__)


class AnomalyDetector:
    """Statistical outlier detector producing anomaly insights.

    Parameters
    ----------
    config : AnomalyConfig | None
        Z-score threshold.
    currency_symbol : str
        Prefix used in rendered messages.
    """

    def __init__(
        self,
        *,
        config: AnomalyConfig | None = None,
        currency_symbol: str = "₹",
    ) -> None:
        self._config = config or AnomalyConfig()
        self._currency = currency_symbol

    def detect(self, trades: Sequence[Trade], metrics: Metrics | None = None) -> list[Insight]:
        if not trades:
            return []
        mean, std = risk.mean_std(t.pnl for t in trades)
        std = std or 1.0

        insights: list[Insight] = []
        for trade in trades:
            z = (trade.pnl - mean) / std
            if abs(z) < self._config.z_threshold:
                continue
            loss = trade.pnl < 0
            kind = "loss" if loss else "gain"
            insights.append(Insight(
                type=InsightType.ANOMALY,
                category=InsightCategory.RISK,
                severity=InsightSeverity.CRITICAL if loss else InsightSeverity.INFO,
                priority=9 if loss else 5,
                title=f"Unusual Large {kind.capitalize()} Detected",
                message=(
                    f"Trade on {trade.symbol} shows an unusually large {kind} "
                    f"({self._currency}{round(trade.pnl)})."
                ),
                explanation=(
                    "This trade's P&L is a statistical outlier against your usual "
                    "outcomes. Check whether risk management and execution followed your plan."
                ),
                confidence=0.8,
                impact_score=abs(trade.pnl),
                data={"pnl": trade.pnl, "z_score": z, "mean": mean, "std": std},
                related_trades=[trade.id],
            ))
            logger.warning(
                "Anomalous trade %s on %s: pnl=%.2f z=%.2f", trade.id, trade.symbol, trade.pnl, z
            )
        return insights
