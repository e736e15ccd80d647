"""Enumerations used across the trade intelligence engine."""

from enum import Enum


class TradeSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeOutcome(str, Enum):
    """Win / loss / break-even classification."""

    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class PatternType(str, Enum):
    # Emotional
    REVENGE_TRADING = "revenge_trading"
    FOMO = "fomo"
    FEAR_OF_LOSS = "fear_of_loss"
    OVERCONFIDENCE = "overconfidence"
    TILT = "tilt"
    # Behavioral
    OVERTRADING = "overtrading"
    REVENGE_SIZING = "revenge_sizing"
    LOSS_AVERSION = "loss_aversion"
    POSITION_SIZING_ERROR = "position_sizing_error"
    CORRELATION_EXPOSURE = "correlation_exposure"
    # Time
    TIME_DECAY = "time_decay"
    MONDAY_SYNDROME = "monday_syndrome"
    FRIDAY_CARELESSNESS = "friday_carelessness"
    NEWS_TRADING = "news_trading"
    # Strategy
    STRATEGY_DEGRADATION = "strategy_degradation"
    STYLE_DRIFT = "style_drift"
    PLAN_DEVIATION = "plan_deviation"


class MarketRegime(str, Enum):
    STRONG_UPTREND = "strong_uptrend"
    WEAK_UPTREND = "weak_uptrend"
    STRONG_DOWNTREND = "strong_downtrend"
    WEAK_DOWNTREND = "weak_downtrend"
    RANGING = "ranging"
    HIGH_VOLATILITY = "high_volatility"
    LOW_VOLATILITY = "low_volatility"
    CHOPPY = "choppy"


class InsightType(str, Enum):
    PATTERN_ALERT = "pattern_alert"
    ML_INSIGHT = "ml_insight"
    MILESTONE = "milestone"
    PREDICTION = "prediction"
    COACHING = "coaching"
    ANOMALY = "anomaly"


class InsightCategory(str, Enum):
    RISK = "risk"
    PERFORMANCE = "performance"
    BEHAVIOR = "behavior"
    STRATEGY = "strategy"
    OPPORTUNITY = "opportunity"


class InsightSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class ActionType(str, Enum):
    NAVIGATE = "navigate"
    EXECUTE = "execute"
    DISMISS = "dismiss"
    LEARN = "learn"


class Recommendation(str, Enum):
    """Ordinal take/skip ladder.  STRONG_* are reserved for future thresholds."""

    STRONG_TAKE = "strong_take"
    TAKE = "take"
    NEUTRAL = "neutral"
    SKIP = "skip"
    STRONG_SKIP = "strong_skip"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class TradingStyle(str, Enum):
    SCALPING = "scalping"
    DAY_TRADING = "day_trading"
    SWING_TRADING = "swing_trading"
    POSITION_TRADING = "position_trading"


class EmotionLabel(str, Enum):
    CONFIDENT = "confident"
    ANXIOUS = "anxious"
    FRUSTRATED = "frustrated"
    EXCITED = "excited"
    FEARFUL = "fearful"
    CALM = "calm"
    NEUTRAL = "neutral"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
