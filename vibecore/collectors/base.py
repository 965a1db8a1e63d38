"""SignalCollector contract and snapshot assembly.

A collector's collect() never raises: permission errors, platform errors
and malformed readings all come back as None, and the fusion step drops
that source. Snapshot assembly awaits every available collector
concurrently with a per-collector deadline; a collector that misses it
counts as unavailable for this tick.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from vibecore.collectors.platform import PlatformSensors
from vibecore.config.settings import COLLECTOR_TIMEOUT_SECONDS
from vibecore.models.signals import SignalSnapshot

logger = logging.getLogger(__name__)


class SignalCollector(ABC):
    """Base class for Temporal / Movement / DeviceUsage / Venue collectors."""

    name: str = ""
    permission: Optional[str] = None   # platform permission this source needs

    def __init__(self, sensors: PlatformSensors):
        self._sensors = sensors
        self._quality = 0.0

    def is_available(self) -> bool:
        if self.permission is None:
            return True
        try:
            return bool(self._sensors.has_permission(self.permission))
        except Exception as e:
            logger.warning(f"Permission check failed for {self.name}: {e}")
            return False

    async def collect(self) -> Optional[Any]:
        """Read one signal, or None if the source can't produce one."""
        if not self.is_available():
            self._quality = 0.0
            return None
        try:
            result = await self._read()
        except Exception as e:
            logger.warning(f"Signal collector {self.name} failed: {e}")
            result = None
        if result is None:
            self._quality = 0.0
            return None
        signal, quality = result
        self._quality = max(0.0, min(1.0, quality))
        return signal

    def get_quality(self) -> float:
        """Confidence in the most recent reading, 0.0-1.0."""
        return self._quality

    @abstractmethod
    async def _read(self) -> Optional[tuple[Any, float]]:
        """Return (signal, quality) or None."""


async def _collect_with_deadline(
    collector: SignalCollector,
    timeout_s: float,
) -> Optional[Any]:
    try:
        return await asyncio.wait_for(collector.collect(), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.info(f"Collector {collector.name} timed out after {timeout_s}s")
        return None


async def collect_snapshot(
    collectors: list[SignalCollector],
    timeout_s: float = COLLECTOR_TIMEOUT_SECONDS,
) -> SignalSnapshot:
    """Gather one reading per collector into a fresh SignalSnapshot."""
    results = await asyncio.gather(
        *(_collect_with_deadline(c, timeout_s) for c in collectors)
    )

    readings: dict[str, Any] = {}
    qualities: dict[str, float] = {}
    for collector, signal in zip(collectors, results):
        if signal is None:
            continue
        readings[collector.name] = signal
        qualities[collector.name] = collector.get_quality()

    return SignalSnapshot(
        temporal=readings.get("temporal"),
        movement=readings.get("movement"),
        device=readings.get("device"),
        venue=readings.get("venue"),
        qualities=qualities,
    )
