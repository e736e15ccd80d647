"""File-backed and in-memory collaborators for the engine.

- :class:`FileTradeSource` reads a JSON or CSV trade export.
- :class:`StaticPreferenceSource` serves fixed preferences.
- :class:`InMemoryInsightSink` records what the engine persists.

Rows go through :meth:`Trade.from_row`, so raw journal exports with
string numerics, ``trade_date`` or ``tradingsymbol`` columns load as-is.

Usage::

    source = FileTradeSource("exports/trades.csv")
    trades = await source.fetch_trades("user-1", "main", limit=1000)
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from .core.errors import DataError
from .core.models import DetectedPattern, Insight, Trade, UserPreferences, coerce_trades

logger = logging.getLogger(__name__)


def _newest_first(trades: Sequence[Trade]) -> list[Trade]:
    return sorted(
        trades,
        key=lambda t: t.closed_at.timestamp() if t.closed_at else float("-inf"),
        reverse=True,
    )


def read_rows(path: str | Path) -> list[dict[str, Any]]:
    """Raw rows from a ``.json`` or ``.csv`` file.

    JSON may be a list of rows or an object with a ``trades`` list.
    Empty CSV cells are dropped so optional fields stay unset.

    Raises
    ------
    DataError
        On a missing file, unknown extension or malformed content.
    """
    p = Path(path)
    if not p.exists():
        raise DataError(f"Trade file not found: {p}")
    suffix = p.suffix.lower()
    try:
        if suffix == ".json":
            with open(p, encoding="utf-8") as f:
                payload = json.load(f)
            rows = payload.get("trades", []) if isinstance(payload, dict) else payload
            if not isinstance(rows, list):
                raise DataError(f"Expected a list of trades in {p}")
            return [dict(r) for r in rows]
        if suffix == ".csv":
            with open(p, newline="", encoding="utf-8") as f:
                return [
                    {k: v for k, v in row.items() if k and v not in ("", None)}
                    for row in csv.DictReader(f)
                ]
    except json.JSONDecodeError as exc:
        raise DataError(f"Invalid JSON in {p}: {exc}") from exc
    except csv.Error as exc:
        raise DataError(f"Invalid CSV in {p}: {exc}") from exc
    raise DataError(f"Unsupported trade file type: {p.suffix or p.name}")


def load_trades(path: str | Path) -> list[Trade]:
    """Trades from a file, newest first."""
    trades = _newest_first(coerce_trades(read_rows(path)))
    logger.debug("Loaded %d trades from %s", len(trades), path)
    return trades


class FileTradeSource:
    """Trade source over one export file.

    Rows tagged with a different ``user_id`` / ``profile_id`` are
    skipped; untagged rows belong to everyone.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    async def fetch_trades(self, user_id: str, profile_id: str, limit: int) -> list[Trade]:
        trades = [
            t for t in load_trades(self._path)
            if (not t.user_id or t.user_id == user_id)
            and (not t.profile_id or t.profile_id == profile_id)
        ]
        return trades[:limit]


class InMemoryTradeSource:
    """Trade source over a fixed list; counts fetches."""

    def __init__(self, trades: Sequence[Trade | Mapping[str, Any]] = ()) -> None:
        self.trades = _newest_first(coerce_trades(trades))
        self.fetch_count = 0

    async def fetch_trades(self, user_id: str, profile_id: str, limit: int) -> list[Trade]:
        self.fetch_count += 1
        return self.trades[:limit]


class StaticPreferenceSource:
    """Same preferences for every user unless overridden per user."""

    def __init__(
        self,
        default: UserPreferences | None = None,
        per_user: Mapping[str, UserPreferences] | None = None,
    ) -> None:
        self._default = default or UserPreferences()
        self._per_user = dict(per_user or {})

    async def fetch_preferences(self, user_id: str) -> UserPreferences:
        return self._per_user.get(user_id, self._default)


class InMemoryInsightSink:
    """Keeps everything the engine persists, keyed by (user, profile)."""

    def __init__(self) -> None:
        self.patterns: dict[tuple[str, str], list[DetectedPattern]] = {}
        self.insights: dict[tuple[str, str], list[Insight]] = {}

    async def save_patterns(
        self, user_id: str, profile_id: str, patterns: Sequence[DetectedPattern]
    ) -> None:
        self.patterns.setdefault((user_id, profile_id), []).extend(patterns)

    async def save_insights(
        self, user_id: str, profile_id: str, insights: Sequence[Insight]
    ) -> None:
        self.insights.setdefault((user_id, profile_id), []).extend(insights)
