"""Tests for vibecore.engine.scheduler — decision table and timer lifecycle."""

import asyncio
import logging

import pytest

from vibecore.engine.scheduler import AdaptiveScheduler, get_interval
from vibecore.models.signals import SignalSnapshot

VALID_INTERVALS = {30_000, 60_000, 120_000, 300_000}


class TestGetInterval:
    def test_idle_phone_backs_off(self, make_snapshot):
        assert get_interval(make_snapshot(speed_mps=0.0, screen_on_ratio=0.05)) == 300_000

    def test_gym_while_walking(self, make_snapshot):
        assert get_interval(make_snapshot(speed_mps=1.4, venue_type="gym")) == 30_000

    def test_nightclub(self, make_snapshot):
        assert get_interval(make_snapshot(venue_type="nightclub")) == 30_000

    def test_idle_wins_over_venue(self, make_snapshot):
        snap = make_snapshot(speed_mps=0.1, screen_on_ratio=0.05, venue_type="nightclub")
        assert get_interval(snap) == 300_000

    def test_walking(self, make_snapshot):
        assert get_interval(make_snapshot(speed_mps=1.0)) == 60_000

    def test_vehicle(self, make_snapshot):
        assert get_interval(make_snapshot(speed_mps=12.0)) == 120_000

    def test_vehicle_threshold_is_inclusive(self, make_snapshot):
        assert get_interval(make_snapshot(speed_mps=3.0)) == 120_000

    def test_empty_snapshot_uses_default(self):
        assert get_interval(SignalSnapshot()) == 60_000

    def test_missing_screen_is_not_idle(self, make_snapshot):
        assert get_interval(make_snapshot(speed_mps=0.1)) == 60_000

    def test_missing_speed_is_not_idle(self, make_snapshot):
        assert get_interval(make_snapshot(screen_on_ratio=0.0)) == 60_000

    @pytest.mark.parametrize("speed", [None, 0.0, 0.29, 0.3, 2.99, 3.0, 30.0])
    @pytest.mark.parametrize("screen", [None, 0.0, 0.09, 0.1, 1.0])
    @pytest.mark.parametrize("venue", [None, "gym", "bar"])
    def test_output_is_always_a_known_interval(self, make_snapshot, speed, screen, venue):
        snap = make_snapshot(speed_mps=speed, screen_on_ratio=screen, venue_type=venue)
        assert get_interval(snap) in VALID_INTERVALS


class TestAdaptiveScheduler:
    @pytest.mark.asyncio
    async def test_current_interval_matches_schedule(self, make_snapshot):
        scheduler = AdaptiveScheduler()
        interval = scheduler.schedule(lambda: None, make_snapshot(speed_mps=12.0))
        assert interval == 120_000
        assert scheduler.get_current_interval() == 120_000
        assert scheduler.pending
        scheduler.cancel()

    @pytest.mark.asyncio
    async def test_timer_fires_once(self, make_snapshot):
        fired = []
        scheduler = AdaptiveScheduler(interval_fn=lambda s: 10)
        scheduler.schedule(lambda: fired.append(1), make_snapshot())
        await asyncio.sleep(0.1)
        assert fired == [1]
        assert not scheduler.pending

    @pytest.mark.asyncio
    async def test_reschedule_replaces_pending_timer(self, make_snapshot):
        fired = []
        scheduler = AdaptiveScheduler(interval_fn=lambda s: 20)
        scheduler.schedule(lambda: fired.append("first"), make_snapshot())
        scheduler.schedule(lambda: fired.append("second"), make_snapshot())
        await asyncio.sleep(0.1)
        assert fired == ["second"]

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, make_snapshot):
        fired = []
        scheduler = AdaptiveScheduler(interval_fn=lambda s: 10)
        scheduler.schedule(lambda: fired.append(1), make_snapshot())
        scheduler.cancel()
        scheduler.cancel()
        await asyncio.sleep(0.05)
        assert fired == []
        assert not scheduler.pending

    def test_cancel_before_schedule(self):
        AdaptiveScheduler().cancel()

    @pytest.mark.asyncio
    async def test_async_callback_runs(self, make_snapshot):
        done = asyncio.Event()

        async def tick():
            done.set()

        scheduler = AdaptiveScheduler(interval_fn=lambda s: 5)
        scheduler.schedule(tick, make_snapshot())
        await asyncio.wait_for(done.wait(), timeout=1.0)
        assert done.is_set()

    @pytest.mark.asyncio
    async def test_failing_async_callback_is_logged(self, make_snapshot, caplog):
        async def tick():
            raise RuntimeError("collector exploded")

        scheduler = AdaptiveScheduler(interval_fn=lambda s: 5)
        with caplog.at_level(logging.ERROR, logger="vibecore.engine.scheduler"):
            scheduler.schedule(tick, make_snapshot())
            await asyncio.sleep(0.05)
        assert "Scheduled tick failed" in caplog.text
        assert "collector exploded" in caplog.text
