"""Typed collector readings and the per-tick SignalSnapshot.

Each collector produces one of the *Signal dataclasses or None. A
SignalSnapshot bundles the latest reading of every collector for one
scheduler tick and is never mutated after construction.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class TemporalSignal:
    hour_of_day: int        # 0-23, local time
    day_of_week: int        # 0 = Monday
    is_weekend: bool


@dataclass(frozen=True)
class MovementSignal:
    speed_mps: float
    activity: str           # still | walking | vehicle
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class DeviceUsageSignal:
    screen_on_ratio01: float
    sample_count: int = 0


@dataclass(frozen=True)
class VenueSignal:
    venue_type: str         # nightclub | gym | bar | coffee | restaurant | office | park | general
    energy: float           # 0.0-1.0 typical energy of this venue type
    dwell_minutes: float = 0.0
    venue_id: Optional[str] = None
    distance_m: Optional[float] = None


def classify_activity(speed_mps: float) -> str:
    if speed_mps < 0.3:
        return "still"
    if speed_mps < 3.0:
        return "walking"
    return "vehicle"


@dataclass(frozen=True)
class SignalSnapshot:
    """Latest reading from each collector. None = source excluded."""

    temporal: Optional[TemporalSignal] = None
    movement: Optional[MovementSignal] = None
    device: Optional[DeviceUsageSignal] = None
    venue: Optional[VenueSignal] = None
    qualities: Mapping[str, float] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        # Freeze the quality map as well
        object.__setattr__(self, "qualities", MappingProxyType(dict(self.qualities)))

    @classmethod
    def from_values(
        cls,
        speed_mps: float | None = None,
        screen_on_ratio: float | None = None,
        venue_type: str | None = None,
        hour: int | None = None,
        is_weekend: bool = False,
        dwell_minutes: float = 0.0,
        timestamp: float | None = None,
    ) -> SignalSnapshot:
        """Build a snapshot from bare readings, quality 1.0 for each present source."""
        from vibecore.collectors.venue import venue_energy

        qualities: dict[str, float] = {}
        temporal = movement = device = venue = None
        if hour is not None:
            temporal = TemporalSignal(
                hour_of_day=hour,
                day_of_week=5 if is_weekend else 2,
                is_weekend=is_weekend,
            )
            qualities["temporal"] = 1.0
        if speed_mps is not None:
            movement = MovementSignal(speed_mps=speed_mps, activity=classify_activity(speed_mps))
            qualities["movement"] = 1.0
        if screen_on_ratio is not None:
            device = DeviceUsageSignal(screen_on_ratio01=screen_on_ratio)
            qualities["device"] = 1.0
        if venue_type is not None:
            venue = VenueSignal(
                venue_type=venue_type,
                energy=venue_energy(venue_type),
                dwell_minutes=dwell_minutes,
            )
            qualities["venue"] = 1.0
        return cls(
            temporal=temporal,
            movement=movement,
            device=device,
            venue=venue,
            qualities=qualities,
            timestamp=timestamp if timestamp is not None else time.time(),
        )

    # Flat accessors used by the scheduler decision table

    @property
    def speed_mps(self) -> Optional[float]:
        return self.movement.speed_mps if self.movement else None

    @property
    def screen_on_ratio(self) -> Optional[float]:
        return self.device.screen_on_ratio01 if self.device else None

    @property
    def venue_type(self) -> Optional[str]:
        return self.venue.venue_type if self.venue else None

    @property
    def sources(self) -> list[str]:
        return [
            name for name in ("temporal", "movement", "device", "venue")
            if getattr(self, name) is not None
        ]

    def quality(self, source: str) -> float:
        return self.qualities.get(source, 0.0)
