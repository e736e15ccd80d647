"""Half-Kelly position sizing capped by risk tolerance.

The fraction of the account put at risk is half the Kelly fraction for
the trader's win rate and average reward/risk, never above the ceiling
for their tolerance (conservative 0.5%, moderate 1%, aggressive 2%).
The position size is then ``account_size * risk_fraction / stop``,
where ``stop`` is the stop-loss distance as a fraction of entry.
"""

from __future__ import annotations

import logging

from ..analytics.risk import half_kelly
from ..core.config import SizingConfig
from ..core.enums import RiskTolerance
from ..core.models import Metrics, PositionSizeRecommendation

logger = logging.getLogger(__name__)


class PositionSizer:
    """Sizes positions from account metrics.

    Parameters
    ----------
    config : SizingConfig | None
        Per-tolerance risk ceilings.
    """

    def __init__(self, *, config: SizingConfig | None = None) -> None:
        self._config = config or SizingConfig()

    def ceiling(self, tolerance: RiskTolerance) -> float:
        return self._config.risk_ceilings.get(
            tolerance, self._config.risk_ceilings[RiskTolerance.MODERATE]
        )

    def recommend(
        self,
        *,
        stop_loss_percent: float,
        account_size: float,
        metrics: Metrics,
        risk_tolerance: RiskTolerance = RiskTolerance.MODERATE,
    ) -> PositionSizeRecommendation:
        """Recommend a position size.

        Parameters
        ----------
        stop_loss_percent : float
            Stop distance in percent of entry price (2.0 == 2%).
        account_size : float
            Account equity in currency units.
        """
        kelly = half_kelly(metrics.win_rate, metrics.avg_risk_reward or 1.0)
        cap = self.ceiling(risk_tolerance)
        risk_fraction = min(kelly, cap)

        if stop_loss_percent <= 0 or account_size <= 0:
            size = 0.0
        else:
            size = account_size * risk_fraction / (stop_loss_percent / 100)

        if kelly <= 0:
            basis = "No positive edge in the history, so nothing is put at risk."
        elif kelly > cap:
            basis = (
                f"Half-Kelly suggests {kelly:.2%} but your {risk_tolerance.value} "
                f"tolerance caps risk at {cap:.2%}."
            )
        else:
            basis = f"Half-Kelly of {kelly:.2%} is within your {cap:.2%} ceiling."
        reasoning = f"{basis} Effective risk per trade: {risk_fraction:.2%} of account."

        logger.debug(
            "Position size %.2f (kelly=%.4f cap=%.4f stop=%.2f%%)",
            size, kelly, cap, stop_loss_percent,
        )
        return PositionSizeRecommendation(
            size=size,
            risk_fraction=risk_fraction,
            kelly_fraction=kelly,
            ceiling=cap,
            reasoning=reasoning,
        )
