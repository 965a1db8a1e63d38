"""Tests for VibeSession and the gated group coordination flow."""

import asyncio
from datetime import datetime, timezone

import pytest

from vibecore.collectors.platform import StaticSensors
from vibecore.engine.coordination import bucket, build_suggestion, evaluate_group
from vibecore.engine.events import SIGNAL_INSUFFICIENT, VIBE_UPDATED
from vibecore.engine.privacy_gate import GateOptions, RankTimePrivacyGate
from vibecore.engine.scheduler import AdaptiveScheduler
from vibecore.engine.session import VibeSession, default_collectors
from vibecore.models.messages import VibeReport

FRIDAY_EVENING = datetime(2026, 2, 13, 19, 30, tzinfo=timezone.utc)


@pytest.fixture
def gym_sensors():
    return StaticSensors(
        motion={"speed_mps": 1.4, "accuracy_m": 5},
        venue={"categories": ["Gym"], "dwell_minutes": 30, "distance_m": 10},
        clock=FRIDAY_EVENING,
    )


# ═══════════════════════════════════════════════════════════════════════════
# VibeSession
# ═══════════════════════════════════════════════════════════════════════════


class TestVibeSession:
    @pytest.mark.asyncio
    async def test_start_runs_tick_and_arms_timer(self, gym_sensors, r):
        session = VibeSession(default_collectors(gym_sensors), r=r)
        sub = session.bus.subscribe(VIBE_UPDATED)
        try:
            reading = await session.start()
            assert reading is not None
            assert session.scheduler.pending
            assert session.scheduler.get_current_interval() == 30_000
            event = sub.queue.get_nowait()
            assert event.payload["interval_ms"] == 30_000
            assert event.payload["vibe"] == reading.vibe
        finally:
            session.stop()
        assert not session.scheduler.pending

    @pytest.mark.asyncio
    async def test_report_is_cached_in_redis(self, gym_sensors, r):
        session = VibeSession(default_collectors(gym_sensors), r=r)
        await session.tick()
        cached = VibeReport.parse_raw(r.get("vibe:current"))
        assert cached.vibe == session.latest.vibe
        assert set(cached.sources) == {"temporal", "movement", "venue"}

    @pytest.mark.asyncio
    async def test_cached_report_falls_back_to_redis(self, gym_sensors, r):
        await VibeSession(default_collectors(gym_sensors), r=r).tick()
        fresh = VibeSession(default_collectors(gym_sensors), r=r)
        assert fresh.cached_report() is not None

    @pytest.mark.asyncio
    async def test_insufficient_signal_still_reschedules(self):
        session = VibeSession([], scheduler=AdaptiveScheduler())
        sub = session.bus.subscribe(SIGNAL_INSUFFICIENT)
        try:
            assert await session.start() is None
            assert session.scheduler.pending
            assert sub.queue.qsize() == 1
            assert session.latest is None
        finally:
            session.stop()

    @pytest.mark.asyncio
    async def test_loop_keeps_ticking(self, gym_sensors):
        session = VibeSession(
            default_collectors(gym_sensors),
            scheduler=AdaptiveScheduler(interval_fn=lambda s: 10),
        )
        try:
            await session.start()
            await asyncio.sleep(0.2)
            assert session.ticks >= 3
        finally:
            session.stop()

    @pytest.mark.asyncio
    async def test_one_off_tick_does_not_arm_timer(self, gym_sensors):
        session = VibeSession(default_collectors(gym_sensors))
        assert await session.tick() is not None
        assert not session.scheduler.pending


# ═══════════════════════════════════════════════════════════════════════════
# Group coordination
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def gate(r, clock):
    return RankTimePrivacyGate(r, sinks=[], clock=clock)


class TestEvaluateGroup:
    @pytest.mark.asyncio
    async def test_approved_at_full_fidelity(self, gate, make_members, frozen_now):
        opts = GateOptions("balanced", (frozen_now,), cohort_size=20, epsilon_cost=0.5)
        outcome = await evaluate_group(
            "merge", make_members(0.8, 0.82, 0.79), [[0.0, 1.0], [0.1, 0.9]], opts, gate,
        )
        assert outcome.gated.ok
        assert outcome.suggestion["proceed"] is True
        assert outcome.suggestion["cohesion"] > 0.95
        assert "spread" in outcome.suggestion

    @pytest.mark.asyncio
    async def test_category_buckets_metrics(self, gate, make_members, frozen_now):
        opts = GateOptions("balanced", (frozen_now,), cohort_size=5)
        outcome = await evaluate_group(
            "rally", make_members(0.1, 0.9), [[0.0], [1.0]], opts, gate,
        )
        assert outcome.gated.degrade == "category"
        s = outcome.suggestion
        assert s["cohesion"] == "medium"
        assert s["fallback"] == "partition"
        assert "spread" not in s

    @pytest.mark.asyncio
    async def test_denied_discloses_nothing(self, gate, make_members, frozen_now):
        opts = GateOptions("strict", (frozen_now,), cohort_size=2)
        outcome = await evaluate_group(
            "convergence", make_members(0.5, 0.5), [[0.0], [0.0]], opts, gate,
        )
        assert outcome.suggestion is None
        d = outcome.to_dict()
        assert d["gate"]["ok"] is False
        assert "data" not in d["gate"]

    @pytest.mark.asyncio
    async def test_unknown_action(self, gate, make_members, frozen_now):
        with pytest.raises(ValueError):
            await evaluate_group("invade", make_members(0.5), [], GateOptions("strict"), gate)


class TestBuildSuggestion:
    def test_bucket_edges(self):
        assert bucket(0.0) == "low"
        assert bucket(0.5) == "medium"
        assert bucket(0.7) == "high"

    def test_full_suggestion_carries_exact_metrics(self, make_members):
        from vibecore.engine.cohesion import estimate_cohesion
        from vibecore.engine.predictability import predictability_gate

        cohesion = estimate_cohesion(make_members(0.4, 0.6))
        predictability = predictability_gate([[0.0, 1.0], [0.2, 1.0]])
        s = build_suggestion("merge", cohesion, predictability, "full")
        assert s["energy"] == pytest.approx(0.5)
        assert s["spread"] == pytest.approx(predictability.spread)
        assert s["proceed"] is predictability.ok
