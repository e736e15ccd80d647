"""Insight generation from patterns and statistics.

Two entry points:

- :meth:`InsightGenerator.from_pattern` turns a detected pattern into a
  pattern alert using the static template table.
- :meth:`InsightGenerator.generate_ml` runs the statistical
  sub-generators (time of day, strategy, risk, symbol, consistency,
  edge) over a feature matrix and metrics, and ranks the results by
  ``confidence * impact_score``.

Everything here is deterministic: identical inputs give identical
content and ordering, apart from generated ids and timestamps.

Usage::

    generator = InsightGenerator()
    alert = generator.from_pattern(pattern, context)
    ranked = generator.generate_ml(features, metrics, patterns)
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..core.config import InsightConfig
from ..core.enums import ActionType, InsightCategory, InsightSeverity, InsightType, PatternType
from ..core.models import (
    DetectedPattern,
    FeatureMatrix,
    Insight,
    InsightAction,
    Metrics,
    UnifiedContext,
)
from .templates import interpolate, template_for

logger = logging.getLogger(__name__)


def _action(index: int, label: str, description: str,
            action_type: ActionType = ActionType.EXECUTE) -> InsightAction:
    return InsightAction(id=str(index), label=label, description=description, type=action_type)


class InsightGenerator:
    """Builds ranked, human-readable insights.

    Parameters
    ----------
    config : InsightConfig | None
        Gating thresholds for the statistical sub-generators.
    currency_symbol : str
        Prefix for money amounts in rendered text.
    """

    def __init__(
        self,
        *,
        config: InsightConfig | None = None,
        currency_symbol: str = "₹",
    ) -> None:
        self._config = config or InsightConfig()
        self._currency = currency_symbol

    # ------------------------------------------------------------------ #
    # Pattern alerts                                                       #
    # ------------------------------------------------------------------ #

    def from_pattern(self, pattern: DetectedPattern, context: UnifiedContext) -> Insight:
        template = template_for(pattern.type)
        history = [
            p for p in context.pattern_history
            if p.type == pattern.type and p.id != pattern.id
        ]
        historical_cost = sum(p.cost for p in history)
        occurrences = pattern.frequency + sum(p.frequency for p in history)

        message = interpolate(template.message, {
            **pattern.metadata,
            "cost": round(pattern.cost),
            "historical_cost": round(historical_cost),
            "occurrences": occurrences,
            "currency": self._currency,
        })

        return Insight(
            type=InsightType.PATTERN_ALERT,
            category=template.category,
            severity=self.adjust_severity(template.severity, pattern.severity),
            priority=pattern.severity,
            title=template.title,
            message=message,
            explanation=" ".join(pattern.suggestions),
            confidence=pattern.confidence,
            impact_score=pattern.cost + historical_cost,
            data=dict(pattern.metadata),
            actions=[
                _action(
                    i, label,
                    pattern.suggestions[i] if i < len(pattern.suggestions) else label,
                )
                for i, label in enumerate(template.actions)
            ],
            related_patterns=[pattern.type],
            related_trades=list(pattern.trades_affected),
        )

    def adjust_severity(self, base: InsightSeverity, pattern_severity: int) -> InsightSeverity:
        """Escalate to critical at the critical ordinal, to warning at the warning ordinal."""
        if pattern_severity >= self._config.critical_pattern_severity:
            return InsightSeverity.CRITICAL
        if pattern_severity >= self._config.warning_pattern_severity and base == InsightSeverity.INFO:
            return InsightSeverity.WARNING
        return base

    # ------------------------------------------------------------------ #
    # Statistical insights                                                 #
    # ------------------------------------------------------------------ #

    def generate_ml(
        self,
        features: FeatureMatrix,
        metrics: Metrics,
        patterns: Sequence[DetectedPattern] = (),
    ) -> list[Insight]:
        insights: list[Insight] = []
        for candidate in (
            self.time_insight(features, metrics),
            self.strategy_insight(features),
        ):
            if candidate is not None:
                insights.append(candidate)
        insights.extend(self.risk_insights(metrics, patterns))
        for candidate in (
            self.symbol_insight(features),
            self.consistency_insight(metrics),
            self.edge_insight(metrics),
        ):
            if candidate is not None:
                insights.append(candidate)

        # sorted() is stable, so ties keep generation order
        ranked = sorted(insights, key=lambda i: i.ranking_score, reverse=True)
        logger.debug("Generated %d statistical insights", len(ranked))
        return ranked

    def time_insight(self, features: FeatureMatrix, metrics: Metrics) -> Insight | None:
        rates = features.hourly_win_rates
        if len(rates) < self._config.min_hours_with_data:
            return None
        ordered = sorted(rates.items(), key=lambda kv: (-kv[1], kv[0]))
        best_hour, best_rate = ordered[0]
        worst_hour, worst_rate = ordered[-1]

        improvement = best_rate - metrics.win_rate
        if improvement < self._config.min_time_improvement:
            return None

        return Insight(
            type=InsightType.ML_INSIGHT,
            category=InsightCategory.OPPORTUNITY,
            severity=InsightSeverity.INFO,
            priority=6,
            title="Best Trading Hours",
            message=(
                f"You win {best_rate:.0%} of trades entered around {best_hour} against "
                f"{metrics.win_rate:.0%} overall. Concentrating on that hour could add "
                f"{improvement * 100:.0f} points to your win rate."
            ),
            explanation=(
                f"Win rate varies a lot by entry hour. {best_hour} is strongest "
                f"({best_rate:.0%}) and {worst_hour} is weakest ({worst_rate:.0%})."
            ),
            confidence=min(0.7 + len(rates) * 0.02, 0.9),
            impact_score=improvement * metrics.total_pnl,
            data={
                "best_time": best_hour,
                "worst_time": worst_hour,
                "best_win_rate": best_rate,
                "worst_win_rate": worst_rate,
            },
            actions=[
                _action(1, "Trade your best hours", f"Prioritize entries around {best_hour}"),
                _action(2, "Trim your worst hours", f"Skip or size down around {worst_hour}"),
            ],
        )

    def strategy_insight(self, features: FeatureMatrix) -> Insight | None:
        stats = features.strategy_performance
        if len(stats) < self._config.min_strategies:
            return None
        ordered = sorted(stats.values(), key=lambda s: (-s.avg_pnl, s.name))
        best, worst = ordered[0], ordered[-1]
        if best.avg_pnl <= 0:
            return None

        spread = best.avg_pnl - worst.avg_pnl
        losing = worst.avg_pnl < 0
        c = self._currency
        return Insight(
            type=InsightType.ML_INSIGHT,
            category=InsightCategory.STRATEGY,
            severity=InsightSeverity.WARNING if losing else InsightSeverity.INFO,
            priority=7,
            title="Strategy Comparison",
            message=(
                f'"{best.name}" is your strongest strategy (avg {c}{best.avg_pnl:.0f}, '
                f'{best.win_rate:.0%} win rate) while "{worst.name}" '
                f"{'loses money' if losing else 'lags behind'} (avg {c}{worst.avg_pnl:.0f})."
            ),
            explanation=(
                f'Across {best.trade_count} trades of "{best.name}" and '
                f'{worst.trade_count} of "{worst.name}" the average gap is '
                f"{c}{spread:.0f} per trade."
            ),
            confidence=min(0.6 + best.trade_count / 100 * 0.2, 0.9),
            impact_score=spread * 10,
            data={
                "best_strategy": best.name,
                "worst_strategy": worst.name,
                "best_stats": best.model_dump(),
                "worst_stats": worst.model_dump(),
            },
            actions=[
                _action(1, "Lean into the winner", f'Give "{best.name}" more of your risk budget'),
                _action(
                    2, "Review the laggard", f'Work out why "{worst.name}" underperforms',
                    ActionType.NAVIGATE,
                ),
            ],
        )

    def risk_insights(
        self, metrics: Metrics, patterns: Sequence[DetectedPattern] = ()
    ) -> list[Insight]:
        """Profit factor, discipline and drawdown checks."""
        cfg = self._config
        insights: list[Insight] = []
        if metrics.total_trades == 0:
            return insights

        pf = metrics.profit_factor
        if pf < cfg.profit_factor_alert:
            losing = pf < 1
            insights.append(Insight(
                type=InsightType.ML_INSIGHT,
                category=InsightCategory.RISK,
                severity=InsightSeverity.CRITICAL if losing else InsightSeverity.WARNING,
                priority=9,
                title="Profit Factor Alert",
                message=(
                    f"Your profit factor is {pf:.2f} "
                    f"{'(net losing)' if losing else '(only just profitable)'}. Aim for 1.5 or more."
                ),
                explanation=(
                    "Profit factor is gross profit over gross loss. Under 1 the account "
                    "shrinks; above 1.5 points to a healthy edge."
                ),
                confidence=0.95,
                impact_score=abs(metrics.gross_loss) * 0.3,
                data={
                    "profit_factor": pf,
                    "gross_profit": metrics.gross_profit,
                    "gross_loss": metrics.gross_loss,
                },
                actions=[
                    _action(1, "Shrink the average loss", "Tighten stop losses"),
                    _action(2, "Grow the average win", "Let winners run further"),
                ],
            ))

        if metrics.rule_tracked_trades > 0 and metrics.rule_followed_rate < cfg.rule_followed_alert:
            insights.append(Insight(
                type=InsightType.ML_INSIGHT,
                category=InsightCategory.BEHAVIOR,
                severity=InsightSeverity.WARNING,
                priority=8,
                title="Discipline Alert",
                message=(
                    f"You followed your rules on {metrics.rule_followed_rate:.0%} of tracked "
                    "trades. Broken rules tend to show up as losses."
                ),
                explanation=(
                    "Consistent rule-following separates profitable traders from the rest. "
                    "Violations cluster around emotional moments."
                ),
                confidence=0.85,
                impact_score=metrics.total_trades * 100,
                data={"rule_followed_rate": metrics.rule_followed_rate},
                related_patterns=[
                    p.type for p in patterns if p.type == PatternType.PLAN_DEVIATION
                ],
                actions=[
                    _action(
                        1, "Review rule breaks", "Find which rules you break most",
                        ActionType.NAVIGATE,
                    ),
                    _action(2, "Simplify your rules", "Make the rules easier to follow"),
                ],
            ))

        dd = metrics.max_drawdown_percent
        if dd > cfg.drawdown_warning:
            insights.append(Insight(
                type=InsightType.ML_INSIGHT,
                category=InsightCategory.RISK,
                severity=(
                    InsightSeverity.CRITICAL if dd > cfg.drawdown_critical
                    else InsightSeverity.WARNING
                ),
                priority=9,
                title="Drawdown Alert",
                message=(
                    f"Your max drawdown reached {dd * 100:.1f}%, which is "
                    f"{'dangerously high' if dd > 0.2 else 'above the recommended level'}."
                ),
                explanation=(
                    "Professionals usually keep drawdown under 15-20%. Deep drawdowns need "
                    "disproportionately large gains to recover."
                ),
                confidence=0.95,
                impact_score=metrics.max_drawdown,
                data={
                    "max_drawdown": metrics.max_drawdown,
                    "max_drawdown_percent": dd,
                },
                actions=[
                    _action(1, "Cut position size", "Halve size until the drawdown recovers"),
                    _action(2, "Set a daily loss limit", "Stop for the day after a fixed loss"),
                ],
            ))
        return insights

    def symbol_insight(self, features: FeatureMatrix) -> Insight | None:
        stats = features.symbol_performance
        if len(stats) < self._config.min_symbols:
            return None
        ordered = sorted(stats.values(), key=lambda s: (-s.avg_pnl, s.symbol))
        best = ordered[:3]
        worst = [s for s in ordered[-3:] if s.avg_pnl < 0]
        if not worst:
            return None

        c = self._currency
        best_names = ", ".join(s.symbol for s in best)
        worst_names = ", ".join(s.symbol for s in worst)
        return Insight(
            type=InsightType.ML_INSIGHT,
            category=InsightCategory.STRATEGY,
            severity=InsightSeverity.INFO,
            priority=5,
            title="Symbol Performance",
            message=f"Best symbols: {best_names}. Consider dropping: {worst_names}.",
            explanation=(
                "Top performers are "
                + ", ".join(f"{s.symbol} ({c}{s.avg_pnl:.0f}/trade)" for s in best)
                + f". {worst_names} lose money on average."
            ),
            confidence=0.7,
            impact_score=sum(abs(s.total_pnl) for s in worst),
            data={
                "best_symbols": [s.symbol for s in best],
                "worst_symbols": [s.symbol for s in worst],
            },
            actions=[
                _action(1, "Focus on winners", "Trade your best symbols more often"),
                _action(
                    2, "Review losers", "Find out why some symbols do not suit you",
                    ActionType.NAVIGATE,
                ),
            ],
        )

    def consistency_insight(self, metrics: Metrics) -> Insight | None:
        score = metrics.consistency_score
        if metrics.total_trades == 0 or score >= self._config.consistency_alert:
            return None
        return Insight(
            type=InsightType.ML_INSIGHT,
            category=InsightCategory.PERFORMANCE,
            severity=InsightSeverity.WARNING if score < 50 else InsightSeverity.INFO,
            priority=6,
            title="Consistency Can Improve",
            message=(
                f"Your consistency score is {score}/100. Steadier days will smooth "
                "your equity curve."
            ),
            explanation=(
                "Consistency reflects how much your daily results swing. Large swings "
                "point to unstable execution or risk control."
            ),
            confidence=0.8,
            impact_score=abs(metrics.total_pnl) * 0.2,
            data={"consistency_score": score},
            actions=[
                _action(1, "Size down after losing days", "Reduce risk after a red day"),
                _action(2, "Limit daily trades", "Cap trades per day to cut noise"),
            ],
        )

    def edge_insight(self, metrics: Metrics) -> Insight | None:
        if metrics.expectancy <= 0:
            return None
        return Insight(
            type=InsightType.ML_INSIGHT,
            category=InsightCategory.PERFORMANCE,
            severity=InsightSeverity.SUCCESS,
            priority=4,
            title="Positive Edge",
            message=(
                f"Your expectancy is {self._currency}{metrics.expectancy:.0f} per trade, "
                "so on average each trade makes money."
            ),
            explanation=(
                "Expectancy blends win rate with average win and loss. Keep it positive "
                "and scale it carefully while watching risk."
            ),
            confidence=0.9,
            impact_score=metrics.expectancy * metrics.total_trades,
            data={"expectancy": metrics.expectancy, "win_rate": metrics.win_rate},
            actions=[
                _action(1, "Scale gradually", "Raise size slowly while tracking drawdown"),
            ],
        )
