"""Clock abstraction for deterministic time.

WallClock: real wall-clock time
SimClock: simulated time for tests and replays

Cooldown gates and cache expiry never call datetime.now() directly;
they go through an injected clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class IClock(Protocol):
    """Clock interface used by all time-dependent code."""

    def now(self) -> datetime:
        """Current time as timezone-aware UTC datetime."""
        ...

    def timestamp(self) -> float:
        """Current time as seconds since epoch."""
        ...


class WallClock:
    """Real wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return self.now().timestamp()


class SimClock:
    """Simulated clock.

    Time advances only when explicitly set or advanced.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._time = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def timestamp(self) -> float:
        return self._time.timestamp()

    def set_time(self, t: datetime) -> None:
        """Move the clock. Must be monotonically increasing."""
        if t < self._time:
            raise ValueError(
                f"SimClock cannot go backwards: {t} < {self._time}"
            )
        self._time = t

    def advance(self, **delta: float) -> None:
        """Advance by timedelta keywords, e.g. ``advance(hours=25)``."""
        self.set_time(self._time + timedelta(**delta))
