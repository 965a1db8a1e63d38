"""On-device collectors: temporal context, movement, screen usage."""

from __future__ import annotations

import math
from typing import Optional

from vibecore.collectors.base import SignalCollector
from vibecore.config.settings import MOVEMENT_MAX_ACCURACY_M
from vibecore.models.signals import (
    DeviceUsageSignal,
    MovementSignal,
    TemporalSignal,
    classify_activity,
)

# Screen samples needed before a usage ratio is fully trusted (~1 per second over a minute)
FULL_QUALITY_SCREEN_SAMPLES = 60


class TemporalCollector(SignalCollector):
    """Clock-derived context. Always available, always quality 1.0."""

    name = "temporal"

    def is_available(self) -> bool:
        return True

    def get_quality(self) -> float:
        return 1.0

    async def _read(self) -> Optional[tuple[TemporalSignal, float]]:
        now = self._sensors.now()
        dow = now.weekday()
        return TemporalSignal(
            hour_of_day=now.hour,
            day_of_week=dow,
            is_weekend=dow >= 5,
        ), 1.0


class MovementCollector(SignalCollector):
    """Speed over ground. Quality falls off linearly with GPS inaccuracy."""

    name = "movement"
    permission = "motion"

    async def _read(self) -> Optional[tuple[MovementSignal, float]]:
        raw = await self._sensors.read_motion()
        if not raw:
            return None
        speed = float(raw["speed_mps"])
        if not math.isfinite(speed) or speed < 0:
            return None
        accuracy = raw.get("accuracy_m")
        if accuracy is None:
            quality = 0.5
        else:
            quality = 1.0 - float(accuracy) / MOVEMENT_MAX_ACCURACY_M
        return MovementSignal(
            speed_mps=speed,
            activity=classify_activity(speed),
            accuracy_m=accuracy,
        ), quality


class DeviceUsageCollector(SignalCollector):
    """Screen-on ratio over the last sampling window."""

    name = "device"
    permission = "screen"

    async def _read(self) -> Optional[tuple[DeviceUsageSignal, float]]:
        raw = await self._sensors.read_screen_usage()
        if not raw:
            return None
        ratio = float(raw["screen_on_ratio"])
        if not 0.0 <= ratio <= 1.0:
            return None
        samples = int(raw.get("samples", 0))
        quality = min(1.0, samples / FULL_QUALITY_SCREEN_SAMPLES) if samples else 0.8
        return DeviceUsageSignal(screen_on_ratio01=ratio, sample_count=samples), quality
