"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.

Every detector threshold, severity and confidence constant is a knob
here.  Defaults reproduce the journal's production behaviour.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .enums import RiskTolerance
from .errors import ConfigError


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class DetectionConfig(BaseModel):
    cooldown_hours: float = 24.0
    incremental_window: int = 100

    # Monday syndrome
    monday_min_window: int = 50
    monday_min_trades: int = 10
    monday_min_other_trades: int = 30
    monday_win_rate_gap: float = 0.15
    monday_severity: int = 5
    monday_confidence: float = 0.75

    # Friday carelessness
    friday_min_window: int = 50
    friday_min_trades: int = 10
    friday_min_afternoon_trades: int = 5
    friday_min_other_trades: int = 30
    friday_afternoon_hour: int = 14
    friday_win_rate_gap: float = 0.20
    friday_severity: int = 5
    friday_confidence: float = 0.70

    # News trading (local wall-clock hours, inclusive bounds)
    news_windows: list[tuple[float, float, str]] = Field(
        default_factory=lambda: [
            (14.0, 14.5, "US Market Open / Economic Data"),
            (18.0, 19.0, "US Fed / Major Announcements"),
            (20.0, 21.0, "US Economic Data"),
        ]
    )
    news_quick_trade_minutes: float = 10.0
    news_severity: int = 6
    news_confidence: float = 0.65

    # Strategy degradation
    degradation_min_window: int = 30
    degradation_min_trades: int = 20
    degradation_win_rate_drop: float = 0.15
    degradation_severity: int = 8
    degradation_confidence: float = 0.80

    # Style drift
    style_lookback: int = 10
    style_min_off_style: int = 3
    style_severity: int = 6
    style_confidence: float = 0.70
    scalping_max_minutes: float = 15.0
    day_trading_max_minutes: float = 240.0
    swing_trading_max_minutes: float = 1440.0

    # Revenge trading
    revenge_gap_minutes: float = 30.0
    revenge_min_trades: int = 2
    revenge_severity: int = 8
    revenge_confidence: float = 0.75

    # Overtrading
    overtrading_daily_limit: int = 5
    overtrading_severity: int = 6
    overtrading_confidence: float = 0.70

    # FOMO (high-volatility entry hours)
    fomo_hours: list[tuple[int, int]] = Field(
        default_factory=lambda: [(10, 11), (14, 15)]
    )
    fomo_min_trades: int = 10
    fomo_share: float = 0.30
    fomo_severity: int = 4
    fomo_confidence: float = 0.60

    # Position sizing error
    sizing_min_trades: int = 10
    sizing_max_cv: float = 1.0
    sizing_severity: int = 6
    sizing_confidence: float = 0.65

    # Plan deviation
    plan_min_trades: int = 10
    plan_min_followed_rate: float = 0.60
    plan_severity: int = 6
    plan_confidence: float = 0.70


class InsightConfig(BaseModel):
    min_hours_with_data: int = 3
    min_time_improvement: float = 0.05
    min_strategies: int = 2
    min_symbols: int = 3
    profit_factor_alert: float = 1.2
    rule_followed_alert: float = 0.8
    drawdown_warning: float = 0.15
    drawdown_critical: float = 0.25
    consistency_alert: int = 70
    critical_pattern_severity: int = 8
    warning_pattern_severity: int = 5


class RegimeConfig(BaseModel):
    window_trades: int = 100
    high_volatility: float = 0.7
    low_volatility: float = 0.2
    trend_threshold: float = 0.3


class AnomalyConfig(BaseModel):
    z_threshold: float = 3.0


class SizingConfig(BaseModel):
    risk_ceilings: dict[RiskTolerance, float] = Field(
        default_factory=lambda: {
            RiskTolerance.CONSERVATIVE: 0.005,
            RiskTolerance.MODERATE: 0.01,
            RiskTolerance.AGGRESSIVE: 0.02,
        }
    )


class CacheConfig(BaseModel):
    ttl_seconds: float = 300.0
    max_contexts: int = 1024
    recent_window: int = 100
    fetch_limit: int = 1000


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level engine settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    insights: InsightConfig = Field(default_factory=InsightConfig)
    regime: RegimeConfig = Field(default_factory=RegimeConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "TRADE_INTEL_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                try:
                    data = tomli.load(f)
                except tomli.TOMLDecodeError as exc:
                    raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    if overrides:
        data.update(overrides)

    return Settings(**data)
