"""CLI entry point for the trade intelligence engine.

Every command reads a JSON or CSV trade file and prints JSON to stdout.
Logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import click
from pydantic import BaseModel

from .core.config import Settings, load_settings
from .core.enums import RiskTolerance, TradingStyle
from .core.errors import TradeIntelError
from .core.models import UserPreferences

USER_ID = "cli"
PROFILE_ID = "default"


def _common_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    fn = click.option("--log-level", default=None, help="Log level override (DEBUG, INFO, ...)")(fn)
    fn = click.option("--config", default=None, help="TOML config file path")(fn)
    fn = click.argument("trades_file", type=click.Path(exists=True, dir_okay=False))(fn)
    return fn


def _settings(config: str | None, log_level: str | None) -> Settings:
    from .observability.logger import setup_logging

    try:
        settings = load_settings(config)
    except TradeIntelError as exc:
        raise click.ClickException(str(exc)) from exc
    obs = settings.observability
    setup_logging(log_level or obs.log_level, obs.log_format)
    return settings


def _load(trades_file: str) -> list:
    from .sources import load_trades

    try:
        return load_trades(trades_file)
    except TradeIntelError as exc:
        raise click.ClickException(str(exc)) from exc


def _emit(payload: Any) -> None:
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    elif isinstance(payload, list):
        payload = [p.model_dump(mode="json") if isinstance(p, BaseModel) else p for p in payload]
    click.echo(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except TradeIntelError as exc:
        raise click.ClickException(str(exc)) from exc


def _engine(trades_file: str, settings: Settings, preferences: UserPreferences):
    from .engine import IntelligenceEngine
    from .sources import FileTradeSource, StaticPreferenceSource

    return IntelligenceEngine(
        trade_source=FileTradeSource(trades_file),
        preference_source=StaticPreferenceSource(preferences),
        settings=settings,
    )


@click.group()
def main() -> None:
    """Trade journal intelligence: metrics, patterns, insights and sizing."""


@main.command()
@_common_options
@click.option("--advanced", is_flag=True, help="Include VaR, rolling returns and z-scores")
def metrics(trades_file: str, config: str | None, log_level: str | None, advanced: bool) -> None:
    """Aggregate performance metrics."""
    from .analytics.metrics import MetricsCalculator
    from .detection.regime import RegimeDetector

    settings = _settings(config, log_level)
    trades = _load(trades_file)
    calculator = MetricsCalculator()
    if advanced:
        regime = RegimeDetector(config=settings.regime).detect(trades)
        _emit(calculator.calculate_advanced(trades, market_regime=regime))
    else:
        _emit(calculator.calculate(trades))


@main.command()
@_common_options
@click.option(
    "--style", "styles", multiple=True,
    type=click.Choice([s.value for s in TradingStyle]),
    help="Declared trading style (repeatable)",
)
def patterns(trades_file: str, config: str | None, log_level: str | None, styles: tuple[str, ...]) -> None:
    """Behavioural patterns and their interactions."""
    from .detection.patterns import PatternDetector

    settings = _settings(config, log_level)
    trades = _load(trades_file)
    detector = PatternDetector(config=settings.detection)
    result = detector.detect_all(trades, preferences=UserPreferences(trading_style=list(styles)))
    _emit({
        "patterns": [p.model_dump(mode="json") for p in result.patterns],
        "interactions": [
            i.model_dump(mode="json") for i in detector.detect_interactions(result.patterns)
        ],
    })


@main.command()
@_common_options
def insights(trades_file: str, config: str | None, log_level: str | None) -> None:
    """Ranked statistical insights."""
    settings = _settings(config, log_level)
    engine = _engine(trades_file, settings, UserPreferences())
    _emit(_run(engine.generate_ml_insights(USER_ID, PROFILE_ID)))


@main.command()
@_common_options
@click.option("--symbol", default=None, help="Candidate symbol")
@click.option("--setup", "setup_name", default=None, help="Candidate setup")
@click.option("--strategy", default=None, help="Candidate strategy")
def predict(
    trades_file: str,
    config: str | None,
    log_level: str | None,
    symbol: str | None,
    setup_name: str | None,
    strategy: str | None,
) -> None:
    """Win probability and take/skip call for a candidate trade."""
    settings = _settings(config, log_level)
    engine = _engine(trades_file, settings, UserPreferences())
    candidate = {
        k: v for k, v in {"symbol": symbol, "setup": setup_name, "strategy": strategy}.items()
        if v is not None
    }
    _emit(_run(engine.predict_trade(USER_ID, PROFILE_ID, candidate)))


@main.command()
@_common_options
@click.option("--stop-loss-percent", type=float, required=True, help="Stop distance in percent")
@click.option("--account-size", type=float, required=True, help="Account equity")
@click.option(
    "--tolerance", default=RiskTolerance.MODERATE.value,
    type=click.Choice([t.value for t in RiskTolerance]),
    help="Risk tolerance",
)
def size(
    trades_file: str,
    config: str | None,
    log_level: str | None,
    stop_loss_percent: float,
    account_size: float,
    tolerance: str,
) -> None:
    """Half-Kelly position size capped by risk tolerance."""
    settings = _settings(config, log_level)
    engine = _engine(
        trades_file, settings, UserPreferences(risk_tolerance=RiskTolerance(tolerance))
    )
    _emit(_run(engine.optimal_position_size(
        USER_ID, PROFILE_ID,
        stop_loss_percent=stop_loss_percent,
        account_size=account_size,
    )))


@main.command()
@_common_options
def dashboard(trades_file: str, config: str | None, log_level: str | None) -> None:
    """Quick stats, active patterns, recent insights and mood."""
    settings = _settings(config, log_level)
    engine = _engine(trades_file, settings, UserPreferences())
    _emit(_run(engine.get_dashboard(USER_ID, PROFILE_ID)))


if __name__ == "__main__":
    main()
