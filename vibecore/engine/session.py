"""VibeSession — one user's inference loop.

Each tick: collect a snapshot → fuse into a VibeReading → publish on the
bus → cache the latest report → re-arm the adaptive scheduler. A tick
with no usable signal still reschedules, so the loop recovers on its own
when a sensor comes back.

All mutable state (engine history, pending timer, latest reading) lives
on the session object; nothing is module-global.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import redis

from vibecore.collectors.base import SignalCollector, collect_snapshot
from vibecore.collectors.local import (
    DeviceUsageCollector,
    MovementCollector,
    TemporalCollector,
)
from vibecore.collectors.platform import PlatformSensors
from vibecore.collectors.venue import VenueCollector
from vibecore.engine.events import SIGNAL_INSUFFICIENT, VIBE_UPDATED, EventBus
from vibecore.engine.scheduler import AdaptiveScheduler
from vibecore.engine.vibe_engine import VibeReading, VibeVectorEngine
from vibecore.models.errors import InsufficientSignal
from vibecore.models.messages import VibeReport

logger = logging.getLogger(__name__)

CACHED_REPORT_KEY = "vibe:current"


def default_collectors(sensors: PlatformSensors) -> list[SignalCollector]:
    return [
        TemporalCollector(sensors),
        MovementCollector(sensors),
        DeviceUsageCollector(sensors),
        VenueCollector(sensors),
    ]


def reading_to_report(reading: VibeReading, interval_ms: int) -> VibeReport:
    return VibeReport(
        vibe=reading.vibe,
        vector=reading.vector.as_dict(),
        energy=round(reading.energy, 4),
        confidence=round(reading.confidence, 4),
        sources=list(reading.sources),
        interval_ms=interval_ms,
        timestamp=datetime.fromtimestamp(reading.timestamp, timezone.utc).isoformat(),
    )


class VibeSession:
    def __init__(
        self,
        collectors: list[SignalCollector],
        engine: VibeVectorEngine | None = None,
        scheduler: AdaptiveScheduler | None = None,
        bus: EventBus | None = None,
        r: redis.Redis | None = None,
        cache_key: str = CACHED_REPORT_KEY,
    ):
        self.collectors = collectors
        self.engine = engine or VibeVectorEngine()
        self.scheduler = scheduler or AdaptiveScheduler()
        self.bus = bus or EventBus()
        self._r = r
        self._cache_key = cache_key
        self._running = False
        self.latest: Optional[VibeReading] = None
        self.latest_report: Optional[VibeReport] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> Optional[VibeReading]:
        """Run the first tick immediately; later ticks follow the scheduler."""
        self._running = True
        logger.info(f"Vibe session started with {len(self.collectors)} collectors")
        return await self.tick()

    def stop(self) -> None:
        self._running = False
        self.scheduler.cancel()
        logger.info(f"Vibe session stopped after {self.ticks} ticks")

    async def tick(self) -> Optional[VibeReading]:
        """One inference cycle. Returns the reading, or None if signal was insufficient."""
        self.ticks += 1
        snapshot = await collect_snapshot(self.collectors)

        reading: Optional[VibeReading] = None
        try:
            reading = self.engine.read(snapshot)
        except InsufficientSignal as e:
            logger.info(f"Tick {self.ticks}: {e}")
            self.bus.publish(SIGNAL_INSUFFICIENT, {"reason": str(e), "sources": snapshot.sources})

        if not self._running:
            # One-off tick outside the loop: report without arming a timer
            interval = self.scheduler.get_current_interval() or 0
        else:
            interval = self.scheduler.schedule(self.tick, snapshot)

        if reading is not None:
            self.latest = reading
            self.latest_report = reading_to_report(reading, interval)
            self.bus.publish(VIBE_UPDATED, self.latest_report.dict())
            self._cache(self.latest_report)
        return reading

    def _cache(self, report: VibeReport) -> None:
        if self._r is None:
            return
        try:
            self._r.set(self._cache_key, report.json())
        except redis.RedisError as e:
            logger.warning(f"Could not cache vibe report: {e}")

    def cached_report(self) -> Optional[VibeReport]:
        """Latest report, preferring the in-memory copy over the Redis cache."""
        if self.latest_report is not None:
            return self.latest_report
        if self._r is None:
            return None
        raw = self._r.get(self._cache_key)
        if not raw:
            return None
        return VibeReport.parse_raw(raw)
