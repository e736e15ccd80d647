"""Test WallClock and SimClock."""

from datetime import datetime, timedelta, timezone

import pytest

from trade_intel.core.clock import SimClock, WallClock


class TestWallClock:
    def test_now_returns_utc(self):
        now = WallClock().now()
        assert now.tzinfo == timezone.utc

    def test_now_is_recent(self):
        diff = abs((datetime.now(timezone.utc) - WallClock().now()).total_seconds())
        assert diff < 1.0

    def test_timestamp_matches_now(self):
        clock = WallClock()
        assert abs(clock.timestamp() - clock.now().timestamp()) < 1.0


class TestSimClock:
    def test_default_start(self):
        assert SimClock().now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_custom_start(self, sim_clock):
        assert sim_clock.now() == datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)

    def test_timestamp(self, sim_clock):
        assert sim_clock.timestamp() == sim_clock.now().timestamp()

    def test_set_time_advances(self, sim_clock):
        new_time = datetime(2024, 6, 4, tzinfo=timezone.utc)
        sim_clock.set_time(new_time)
        assert sim_clock.now() == new_time

    def test_set_time_cannot_go_backwards(self, sim_clock):
        with pytest.raises(ValueError, match="cannot go backwards"):
            sim_clock.set_time(datetime(2024, 1, 1, tzinfo=timezone.utc))

    def test_advance(self, sim_clock):
        start = sim_clock.now()
        sim_clock.advance(hours=25, minutes=30)
        assert sim_clock.now() - start == timedelta(hours=25, minutes=30)
