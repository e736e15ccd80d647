"""Test the click CLI end to end over trade files."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner

from trade_intel.cli import main


def _rows(n: int = 12):
    start = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    rows = []
    for i in range(n):
        entry = start + timedelta(days=i)
        pnl = 100 if i % 2 == 0 else -50
        rows.append({
            "id": f"t{i}",
            "symbol": "NIFTY" if i % 3 else "BANKNIFTY",
            "side": "buy",
            "entry_price": "100",
            "exit_price": str(100 + pnl / 10),
            "quantity": "10",
            "pnl": str(pnl),
            "stop_loss": "95",
            "entry_time": entry.isoformat(),
            "exit_time": (entry + timedelta(minutes=30)).isoformat(),
            "duration_minutes": "30",
            "setup": "flag" if i % 2 == 0 else "wedge",
        })
    return rows


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def trades_file(tmp_path):
    path = tmp_path / "trades.json"
    path.write_text(json.dumps(_rows()))
    return str(path)


def invoke(runner, *args):
    result = runner.invoke(main, [*args, "--log-level", "ERROR"])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestMetricsCommand:
    def test_basic(self, runner, trades_file):
        payload = invoke(runner, "metrics", trades_file)
        assert payload["total_trades"] == 12
        assert payload["winning_trades"] == 6
        assert payload["win_rate"] == pytest.approx(0.5)

    def test_advanced(self, runner, trades_file):
        payload = invoke(runner, "metrics", trades_file, "--advanced")
        assert {"var95", "cvar95", "rolling_30d_return"} <= set(payload)
        assert len(payload["attribution"]["by_market_condition"]) == 1

    def test_csv_input(self, runner, tmp_path):
        rows = _rows(4)
        header = list(rows[0])
        lines = [",".join(header)] + [",".join(str(r[k]) for k in header) for r in rows]
        path = tmp_path / "trades.csv"
        path.write_text("\n".join(lines) + "\n")
        assert invoke(runner, "metrics", str(path))["total_trades"] == 4


class TestPatternsCommand:
    def test_no_style_no_patterns(self, runner, trades_file):
        payload = invoke(runner, "patterns", trades_file)
        assert payload == {"patterns": [], "interactions": []}

    def test_style_drift(self, runner, trades_file):
        payload = invoke(runner, "patterns", trades_file, "--style", "scalping")
        assert [p["type"] for p in payload["patterns"]] == ["style_drift"]


class TestEngineCommands:
    def test_insights(self, runner, trades_file):
        payload = invoke(runner, "insights", trades_file)
        assert isinstance(payload, list)
        for insight in payload:
            assert {"title", "message", "severity", "confidence"} <= set(insight)

    def test_predict(self, runner, trades_file):
        payload = invoke(runner, "predict", trades_file, "--symbol", "NIFTY", "--setup", "flag")
        assert payload["win_probability"] + payload["loss_probability"] == pytest.approx(1.0)
        assert payload["recommendation"] in {"take", "neutral", "skip"}

    def test_size(self, runner, trades_file):
        payload = invoke(
            runner, "size", trades_file,
            "--stop-loss-percent", "2", "--account-size", "100000",
            "--tolerance", "conservative",
        )
        assert payload["ceiling"] == pytest.approx(0.005)
        assert payload["risk_fraction"] <= payload["ceiling"]
        assert payload["reasoning"].endswith("of account.")

    def test_dashboard(self, runner, trades_file):
        payload = invoke(runner, "dashboard", trades_file)
        assert payload["metrics"]["total_trades"] == 12
        assert payload["quick_stats"]["today_trades"] == 0


class TestErrors:
    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["metrics", str(tmp_path / "absent.json")])
        assert result.exit_code == 2

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("[{")
        result = runner.invoke(main, ["metrics", str(path), "--log-level", "ERROR"])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_invalid_config(self, runner, trades_file, tmp_path):
        config = tmp_path / "bad.toml"
        config.write_text("[cache\n")
        result = runner.invoke(main, ["metrics", trades_file, "--config", str(config)])
        assert result.exit_code == 1
        assert "Invalid config file" in result.output

    def test_size_requires_stop(self, runner, trades_file):
        result = runner.invoke(main, ["size", trades_file, "--account-size", "1000"])
        assert result.exit_code == 2
