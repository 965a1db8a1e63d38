"""Adaptive Scheduler — how often to re-run inference.

Single-state machine ("waiting"). Every schedule() call cancels the
pending timer, picks an interval from the snapshot and arms one new
one-shot timer, so ticks never overlap.

Decision table (top to bottom, first match wins):
  speed < 0.3 m/s AND screen-on < 0.1   → 300 000 ms  idle, back off hard
  venue ∈ {nightclub, gym}              →  30 000 ms  high-energy context
  0.3 ≤ speed < 3 m/s                   →  60 000 ms  walking
  speed ≥ 3 m/s                         → 120 000 ms  vehicle, GPS churn
  otherwise                             →  60 000 ms  default

A reading missing from the snapshot never satisfies a rule that tests it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from vibecore.config.settings import (
    IDLE_SCREEN_RATIO,
    IDLE_SPEED_MPS,
    INTERVAL_DEFAULT_MS,
    INTERVAL_HIGH_ENERGY_MS,
    INTERVAL_IDLE_MS,
    INTERVAL_VEHICLE_MS,
    INTERVAL_WALKING_MS,
    VEHICLE_SPEED_MPS,
)
from vibecore.models.signals import SignalSnapshot

logger = logging.getLogger(__name__)

HIGH_ENERGY_VENUES = frozenset({"nightclub", "gym"})


def get_interval(snapshot: SignalSnapshot) -> int:
    """Refresh interval in milliseconds for this snapshot."""
    speed = snapshot.speed_mps
    screen = snapshot.screen_on_ratio

    if speed is not None and screen is not None:
        if speed < IDLE_SPEED_MPS and screen < IDLE_SCREEN_RATIO:
            return INTERVAL_IDLE_MS
    if snapshot.venue_type in HIGH_ENERGY_VENUES:
        return INTERVAL_HIGH_ENERGY_MS
    if speed is not None:
        if IDLE_SPEED_MPS <= speed < VEHICLE_SPEED_MPS:
            return INTERVAL_WALKING_MS
        if speed >= VEHICLE_SPEED_MPS:
            return INTERVAL_VEHICLE_MS
    return INTERVAL_DEFAULT_MS


class AdaptiveScheduler:
    """Owns exactly one outstanding asyncio timer."""

    def __init__(
        self,
        interval_fn: Callable[[SignalSnapshot], int] = get_interval,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._interval_fn = interval_fn
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._current_interval: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    def schedule(self, next_fn: Callable[[], Any], snapshot: SignalSnapshot) -> int:
        """Cancel any pending tick and arm a new one. Returns the interval (ms)."""
        self.cancel()
        interval = self._interval_fn(snapshot)
        self._current_interval = interval
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(interval / 1000.0, self._fire, next_fn)
        logger.debug(f"Next vibe tick in {interval}ms (sources={snapshot.sources})")
        return interval

    def cancel(self) -> None:
        """Drop the pending timer, if any. Safe to call repeatedly."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def get_current_interval(self) -> Optional[int]:
        return self._current_interval

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def _fire(self, next_fn: Callable[[], Any]) -> None:
        self._handle = None
        result = next_fn()
        if inspect.isawaitable(result):
            loop = self._loop or asyncio.get_running_loop()
            self._task = loop.create_task(result)
            self._task.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Scheduled tick failed: {exc!r}", exc_info=exc)
