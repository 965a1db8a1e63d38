"""Shared test fixtures for the vibecore test suite."""

import pytest
import fakeredis

from vibecore.models.signals import SignalSnapshot
from vibecore.models.vibe import MemberSignal


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


# ── Time Freezing ───────────────────────────────────────────────────────

@pytest.fixture
def frozen_now():
    """Fixed unix time for gate and engine tests: 2026-02-14T20:00:00Z (a Saturday)."""
    return 1771099200.0


@pytest.fixture
def clock(frozen_now):
    """Mutable clock: call it for the time, .advance(seconds) to move it."""
    class _Clock:
        def __init__(self_):
            self_.now = frozen_now

        def __call__(self_):
            return self_.now

        def advance(self_, seconds):
            self_.now += seconds

    return _Clock()


# ── Factories ───────────────────────────────────────────────────────────

@pytest.fixture
def make_snapshot(frozen_now):
    """Factory for SignalSnapshot from bare readings.

    Usage:
        snap = make_snapshot(speed_mps=1.4, venue_type="gym")
    """
    def _factory(**overrides):
        overrides.setdefault("timestamp", frozen_now)
        return SignalSnapshot.from_values(**overrides)

    return _factory


@pytest.fixture
def make_members():
    """Factory: make_members(0.8, 0.82, 0.79) -> list[MemberSignal]."""
    def _factory(*energies):
        return [MemberSignal(energy=e) for e in energies]

    return _factory
