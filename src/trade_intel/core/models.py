"""Core domain models used across the trade intelligence engine.

These are the canonical "truth models" for the system.  Trades are
read-only inputs; every other model is derived from collections of
trades and can be rebuilt at any time.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import (
    ActionType,
    EmotionLabel,
    InsightCategory,
    InsightSeverity,
    InsightType,
    MarketRegime,
    PatternType,
    Recommendation,
    RiskLevel,
    RiskTolerance,
    TradeOutcome,
    TradeSide,
    TradingStyle,
)
from .ids import ensure_utc, new_id, utc_now

# Finite stand-in for "no losses, positive profit" style ratios.  Always
# paired with an explicit ``*_unbounded`` flag on the owning model.
UNBOUNDED_RATIO = 999.0


def parse_number(value: Any, default: float = 0.0) -> float:
    """Parse a numeric-looking value, falling back to ``default``.

    Strings are stripped and parsed with thousands separators removed;
    None, booleans, NaN/inf and garbage become ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip().replace(",", ""))
        except ValueError:
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string / datetime / date.  Unparseable -> None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return ensure_utc(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


_SIDE_ALIASES = {
    "long": TradeSide.LONG,
    "buy": TradeSide.LONG,
    "short": TradeSide.SHORT,
    "sell": TradeSide.SHORT,
}


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------

class Trade(BaseModel):
    """A normalized, immutable trade record."""

    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(default_factory=new_id)
    user_id: str = ""
    profile_id: str = ""

    # Instrument
    symbol: str = "UNKNOWN"
    side: TradeSide = TradeSide.LONG

    # Execution
    entry_price: float = 0.0
    exit_price: float = 0.0
    quantity: float = 0.0
    entry_time: datetime | None = None
    exit_time: datetime | None = None
    duration_minutes: float = 0.0

    # Outcome
    pnl: float = 0.0
    pnl_percentage: float = 0.0
    gross_pnl: float = 0.0
    commission: float = 0.0

    # Risk parameters
    stop_loss: float | None = None
    target: float | None = None
    initial_risk: float | None = None
    risk_reward_ratio: float | None = None

    # Execution quality
    slippage: float | None = None
    entry_type: str | None = None  # "market", "limit", "stop"
    exit_type: str | None = None   # "target", "stop", "manual", "time"

    # Psychology
    emotion_before: str | None = None
    emotion_after: str | None = None
    rule_followed: bool | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)

    # Classification
    strategy: str | None = None
    setup: str | None = None
    timeframe: str | None = None
    grade: str | None = None

    @field_validator(
        "entry_price", "exit_price", "quantity", "duration_minutes",
        "pnl", "pnl_percentage", "gross_pnl", "commission",
        mode="before",
    )
    @classmethod
    def _coerce_number(cls, v: Any) -> float:
        return parse_number(v)

    @field_validator(
        "stop_loss", "target", "initial_risk", "risk_reward_ratio", "slippage",
        mode="before",
    )
    @classmethod
    def _coerce_optional_number(cls, v: Any) -> float | None:
        if v is None or v == "":
            return None
        return parse_number(v)

    @field_validator("entry_time", "exit_time", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("id", "user_id", "profile_id", mode="before")
    @classmethod
    def _coerce_identity(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("side", mode="before")
    @classmethod
    def _coerce_side(cls, v: Any) -> TradeSide:
        if isinstance(v, TradeSide):
            return v
        return _SIDE_ALIASES.get(str(v or "").strip().lower(), TradeSide.LONG)

    @field_validator("symbol", mode="before")
    @classmethod
    def _coerce_symbol(cls, v: Any) -> str:
        return str(v) if v else "UNKNOWN"

    @field_validator("rule_followed", mode="before")
    @classmethod
    def _coerce_rule_followed(cls, v: Any) -> bool | None:
        if v is None or isinstance(v, bool):
            return v
        text = str(v).strip().lower()
        if text in ("true", "1", "yes", "y"):
            return True
        if text in ("false", "0", "no", "n"):
            return False
        return None

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return list(v)

    # ------------------------------------------------------------------ #
    # Derived properties                                                   #
    # ------------------------------------------------------------------ #

    @property
    def outcome(self) -> TradeOutcome:
        if self.pnl > 0:
            return TradeOutcome.WIN
        if self.pnl < 0:
            return TradeOutcome.LOSS
        return TradeOutcome.BREAKEVEN

    @property
    def closed_at(self) -> datetime | None:
        """Exit time, falling back to entry time."""
        return self.exit_time or self.entry_time

    @property
    def opened_at(self) -> datetime | None:
        """Entry time, falling back to exit time."""
        return self.entry_time or self.exit_time

    @property
    def has_stop_loss(self) -> bool:
        return bool(self.stop_loss)

    @property
    def notional(self) -> float:
        return abs(self.entry_price * self.quantity)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Trade":
        """Build a trade from a raw persistence row.

        Fills entry/exit times from ``trade_date``/``created_at``, the
        symbol from ``tradingsymbol`` and the side from ``transaction_type``
        when the normalized columns are missing.
        """
        data = {k: v for k, v in row.items() if k in cls.model_fields}
        fallback_time = row.get("trade_date") or row.get("created_at")
        data["entry_time"] = row.get("entry_time") or fallback_time
        data["exit_time"] = (
            row.get("exit_time") or row.get("trade_date") or row.get("updated_at")
            or data["entry_time"]
        )
        data["symbol"] = row.get("symbol") or row.get("tradingsymbol")
        if not row.get("side") and row.get("transaction_type"):
            txn = str(row["transaction_type"]).lower()
            data["side"] = "long" if "buy" in txn else "short"
        if row.get("id") is not None:
            data["id"] = str(row["id"])
        return cls(**data)


def coerce_trades(items: Iterable[Trade | dict[str, Any]]) -> list[Trade]:
    """Normalize a mix of Trade objects and raw rows into trades."""
    return [t if isinstance(t, Trade) else Trade.from_row(t) for t in items]


def sort_chronological(trades: Iterable[Trade]) -> list[Trade]:
    """Oldest first by close time; trades without timestamps sort first."""
    return sorted(
        trades,
        key=lambda t: (t.closed_at is not None, t.closed_at.timestamp() if t.closed_at else 0.0),
    )


def sort_by_entry(trades: Iterable[Trade]) -> list[Trade]:
    """Oldest first by entry time; trades without timestamps sort first."""
    return sorted(
        trades,
        key=lambda t: (t.opened_at is not None, t.opened_at.timestamp() if t.opened_at else 0.0),
    )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class Metrics(BaseModel):
    """Aggregate statistics over a trade collection."""

    # Counts
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    win_rate: float = 0.0
    loss_rate: float = 0.0

    # P&L
    total_pnl: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    net_profit: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0  # negative when losses exist
    largest_win: float = 0.0
    largest_loss: float = 0.0

    # Risk-adjusted
    profit_factor: float = 0.0
    profit_factor_unbounded: bool = False
    expectancy: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    sortino_unbounded: bool = False
    calmar_ratio: float = 0.0

    # Drawdown
    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0  # fraction, 0.15 == 15%
    avg_drawdown: float = 0.0
    drawdown_duration: int = 0  # trades spent below the prior peak
    recovery_factor: float = 0.0

    # Consistency
    consistency_score: int = 0
    profitable_days: int = 0
    profitable_weeks: int = 0
    profitable_months: int = 0
    avg_daily_pnl: float = 0.0
    daily_pnl_std_dev: float = 0.0

    # Streaks
    current_streak: int = 0  # >0 consecutive wins, <0 consecutive losses
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    avg_win_streak: float = 0.0
    avg_loss_streak: float = 0.0

    # Risk
    avg_risk_reward: float = 0.0
    avg_risk_per_trade: float = 0.0
    max_risk_per_trade: float = 0.0
    risk_adjusted_return: float = 0.0

    # Time
    avg_trade_duration: float = 0.0
    avg_holding_time: float = 0.0
    time_in_market: float = 0.0

    # Execution quality
    avg_slippage: float = 0.0
    fill_rate: float = 1.0

    # Discipline
    rule_followed_rate: float = 0.0
    plan_deviation_rate: float = 0.0

    # Edge
    edge: float = 0.0
    edge_decay_rate: float = 0.0

    # Running state for incremental updates
    peak_equity: float = 0.0
    rule_tracked_trades: int = 0
    rule_followed_trades: int = 0
    risk_samples: int = 0
    slippage_samples: int = 0
    rr_samples: int = 0
    win_streak_segments: int = 0
    loss_streak_segments: int = 0

    # Window
    period_start: datetime | None = None
    period_end: datetime | None = None
    calculated_at: datetime = Field(default_factory=utc_now)


class Attribution(BaseModel):
    by_strategy: dict[str, float] = Field(default_factory=dict)
    by_symbol: dict[str, float] = Field(default_factory=dict)
    by_time_of_day: dict[str, float] = Field(default_factory=dict)
    by_day_of_week: dict[str, float] = Field(default_factory=dict)
    by_market_condition: dict[str, float] = Field(default_factory=dict)


class AdvancedMetrics(Metrics):
    """Metrics plus tail-risk estimates and self-referenced z-scores."""

    var95: float = 0.0
    var99: float = 0.0
    cvar95: float = 0.0

    rolling_7d_return: float = 0.0
    rolling_30d_return: float = 0.0
    rolling_90d_return: float = 0.0

    attribution: Attribution = Field(default_factory=Attribution)

    pnl_z_score: float = 0.0
    win_rate_z_score: float = 0.0
    drawdown_z_score: float = 0.0


# ---------------------------------------------------------------------------
# Feature matrix
# ---------------------------------------------------------------------------

class StrategyStats(BaseModel):
    name: str
    trade_count: int = 0
    wins: int = 0
    win_rate: float = 0.0
    avg_pnl: float = 0.0
    total_pnl: float = 0.0
    profit_factor: float = 0.0
    avg_rr: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    consistency: float = 0.0
    is_decaying: bool = False


class SetupStats(BaseModel):
    name: str
    trade_count: int = 0
    wins: int = 0
    win_rate: float = 0.0
    avg_pnl: float = 0.0
    total_pnl: float = 0.0
    best_symbols: list[str] = Field(default_factory=list)
    best_times: list[str] = Field(default_factory=list)


class SymbolStats(BaseModel):
    symbol: str
    trade_count: int = 0
    wins: int = 0
    win_rate: float = 0.0
    avg_pnl: float = 0.0
    total_pnl: float = 0.0
    avg_volatility: float = 0.0
    best_strategy: str = ""
    best_time_of_day: str = ""


class PerformanceSummary(BaseModel):
    win_rate: float = 0.0
    profit_factor: float = 0.0
    avg_rr: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    consistency_score: float = 0.0


class FeatureLabels(BaseModel):
    total_profit: float = 0.0
    risk_adjusted_return: float = 0.0
    consistency_score: float = 0.0


class FeatureMatrix(BaseModel):
    """Derived, non-authoritative view used by insights and prediction."""

    user_id: str = ""
    profile_id: str = ""
    time_distribution: dict[str, int] = Field(default_factory=dict)
    day_distribution: dict[str, int] = Field(default_factory=dict)
    hourly_win_rates: dict[str, float] = Field(default_factory=dict)
    strategy_performance: dict[str, StrategyStats] = Field(default_factory=dict)
    setup_performance: dict[str, SetupStats] = Field(default_factory=dict)
    symbol_performance: dict[str, SymbolStats] = Field(default_factory=dict)
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    pattern_frequencies: dict[PatternType, int] = Field(default_factory=dict)
    pattern_costs: dict[PatternType, float] = Field(default_factory=dict)
    avg_risk_per_trade: float = 0.0
    rule_violation_rate: float = 0.0
    position_size_variance: float = 0.0
    labels: FeatureLabels = Field(default_factory=FeatureLabels)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class DetectedPattern(BaseModel):
    id: str = Field(default_factory=new_id)
    type: PatternType
    severity: int = Field(default=5, ge=1, le=10)
    confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    cost: float = 0.0
    frequency: int = 1
    trades_affected: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=utc_now)
    acknowledged_at: datetime | None = None


class PatternInteraction(BaseModel):
    patterns: list[PatternType]
    combined_severity: int
    risk_multiplier: float
    description: str


class CooldownState(BaseModel):
    """Last emission time per pattern type.

    Threaded explicitly through detection calls so the throttle survives
    across processes when the caller persists it.
    """

    last_detected: dict[PatternType, datetime] = Field(default_factory=dict)

    def is_cooling(self, pattern_type: PatternType, now: datetime, window: timedelta) -> bool:
        last = self.last_detected.get(pattern_type)
        if last is None:
            return False
        return now - last <= window

    def mark(self, pattern_type: PatternType, now: datetime) -> "CooldownState":
        updated = dict(self.last_detected)
        updated[pattern_type] = now
        return CooldownState(last_detected=updated)


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

class InsightAction(BaseModel):
    id: str
    label: str
    description: str
    type: ActionType = ActionType.EXECUTE


class Insight(BaseModel):
    id: str = Field(default_factory=new_id)
    type: InsightType
    category: InsightCategory
    severity: InsightSeverity
    priority: int = 5
    title: str
    message: str
    explanation: str = ""
    confidence: float = 0.0
    impact_score: float = 0.0
    data: dict[str, Any] = Field(default_factory=dict)
    actions: list[InsightAction] = Field(default_factory=list)
    related_patterns: list[PatternType] = Field(default_factory=list)
    related_trades: list[str] = Field(default_factory=list)
    acknowledged: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def ranking_score(self) -> float:
        return self.confidence * self.impact_score


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------

class RiskFactor(BaseModel):
    factor: str
    severity: RiskLevel
    description: str


class SimilarTrade(BaseModel):
    trade_id: str
    similarity: float
    outcome: TradeOutcome
    pnl: float


class TradePrediction(BaseModel):
    trade_id: str | None = None
    win_probability: float
    loss_probability: float
    break_even_probability: float = 0.0
    expected_pnl: float = 0.0
    expected_rr: float = 0.0
    risk_score: float = 0.0
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    confidence: float = 0.6
    data_quality: float = 0.6
    similar_trades: list[SimilarTrade] = Field(default_factory=list)
    recommendation: Recommendation = Recommendation.NEUTRAL
    reasoning: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class PositionSizeRecommendation(BaseModel):
    size: float
    risk_fraction: float
    kelly_fraction: float
    ceiling: float
    reasoning: str


# ---------------------------------------------------------------------------
# User state
# ---------------------------------------------------------------------------

_STYLE_ALIASES = {
    "scalp": TradingStyle.SCALPING,
    "scalping": TradingStyle.SCALPING,
    "day": TradingStyle.DAY_TRADING,
    "intraday": TradingStyle.DAY_TRADING,
    "day_trading": TradingStyle.DAY_TRADING,
    "swing": TradingStyle.SWING_TRADING,
    "swing_trading": TradingStyle.SWING_TRADING,
    "position": TradingStyle.POSITION_TRADING,
    "position_trading": TradingStyle.POSITION_TRADING,
}


class UserPreferences(BaseModel):
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE
    trading_style: list[TradingStyle] = Field(default_factory=list)
    preferred_symbols: list[str] = Field(default_factory=list)
    preferred_strategies: list[str] = Field(default_factory=list)
    coach_personality_id: str = "balanced"
    currency: str = "INR"
    timezone: str = "Asia/Kolkata"

    @field_validator("trading_style", mode="before")
    @classmethod
    def _coerce_styles(cls, v: Any) -> list[TradingStyle]:
        if v is None:
            return []
        if isinstance(v, (str, TradingStyle)):
            v = [v]
        styles: list[TradingStyle] = []
        for item in v:
            key = item.value if isinstance(item, TradingStyle) else str(item).strip().lower()
            style = _STYLE_ALIASES.get(key)
            if style is not None and style not in styles:
                styles.append(style)
        return styles


class EmotionalState(BaseModel):
    primary: EmotionLabel = EmotionLabel.NEUTRAL
    intensity: float = 0.3
    triggers: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    role: str  # "user", "assistant", "system"
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    emotional_state: EmotionalState | None = None


class Mistake(BaseModel):
    """A single rule-based mistake identified on a trade."""

    trade_id: str
    mistake_type: str
    category: str  # "risk", "emotional", "technical", "discipline"
    severity: str  # "low", "medium", "high"
    description: str
    pnl_impact: float = 0.0
    details: dict[str, Any] = Field(default_factory=dict)
    detected_at: datetime = Field(default_factory=utc_now)


class UnifiedContext(BaseModel):
    """Per-user working set owned by the engine.  The only mutable state."""

    user_id: str
    profile_id: str

    recent_trades: list[Trade] = Field(default_factory=list)  # newest first
    today_trades: list[Trade] = Field(default_factory=list)
    session_trades: list[Trade] = Field(default_factory=list)

    metrics: Metrics = Field(default_factory=Metrics)
    advanced_metrics: AdvancedMetrics = Field(default_factory=AdvancedMetrics)
    features: FeatureMatrix = Field(default_factory=FeatureMatrix)

    active_patterns: list[DetectedPattern] = Field(default_factory=list)
    pattern_history: list[DetectedPattern] = Field(default_factory=list)
    pattern_interactions: list[PatternInteraction] = Field(default_factory=list)
    cooldown: CooldownState = Field(default_factory=CooldownState)

    current_risk_score: float = 0.0
    portfolio_heat: float = 0.0
    market_regime: MarketRegime = MarketRegime.RANGING

    pending_insights: list[Insight] = Field(default_factory=list)
    delivered_insights: list[Insight] = Field(default_factory=list)

    chat_history: list[ChatMessage] = Field(default_factory=list)
    emotional_state: EmotionalState = Field(default_factory=EmotionalState)
    preferences: UserPreferences = Field(default_factory=UserPreferences)

    session_start: datetime = Field(default_factory=utc_now)
    last_interaction: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Engine responses
# ---------------------------------------------------------------------------

class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    type: str  # "pattern", "insight", "system"
    severity: InsightSeverity
    title: str
    message: str
    created_at: datetime = Field(default_factory=utc_now)


class IntelligenceResponse(BaseModel):
    success: bool = True
    operation: str
    processing_time_ms: float = 0.0
    patterns: list[DetectedPattern] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    mistakes: list[Mistake] = Field(default_factory=list)
    metrics: Metrics | None = None
    error: str | None = None


class QuickStats(BaseModel):
    today_pnl: float = 0.0
    today_trades: int = 0
    today_win_rate: float = 0.0
    week_pnl: float = 0.0
    current_streak: int = 0
    risk_score: float = 0.0


class DashboardSnapshot(BaseModel):
    quick_stats: QuickStats
    metrics: Metrics
    active_patterns: list[DetectedPattern] = Field(default_factory=list)
    pattern_interactions: list[PatternInteraction] = Field(default_factory=list)
    recent_insights: list[Insight] = Field(default_factory=list)
    emotional_state: EmotionalState = Field(default_factory=EmotionalState)
    market_regime: MarketRegime = MarketRegime.RANGING
