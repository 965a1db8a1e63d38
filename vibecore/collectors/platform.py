"""Platform boundary for signal collectors.

Collectors never reach for device APIs directly; the host app injects a
PlatformSensors implementation at the edge. Readings are plain dicts so
the boundary stays trivial to implement on any runtime.

    read_motion()        -> {"speed_mps": float, "accuracy_m": float} | None
    read_screen_usage()  -> {"screen_on_ratio": float, "samples": int} | None
    read_venue()         -> {"categories": [str], "dwell_minutes": float,
                             "venue_id": str | None, "distance_m": float} | None
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol


class PlatformSensors(Protocol):
    def has_permission(self, name: str) -> bool: ...

    def now(self) -> datetime: ...

    async def read_motion(self) -> Optional[dict[str, Any]]: ...

    async def read_screen_usage(self) -> Optional[dict[str, Any]]: ...

    async def read_venue(self) -> Optional[dict[str, Any]]: ...


class NullSensors:
    """A platform with no sensors and no permissions. Only time is known."""

    def has_permission(self, name: str) -> bool:
        return False

    def now(self) -> datetime:
        return datetime.now().astimezone()

    async def read_motion(self) -> Optional[dict[str, Any]]:
        return None

    async def read_screen_usage(self) -> Optional[dict[str, Any]]:
        return None

    async def read_venue(self) -> Optional[dict[str, Any]]:
        return None


@dataclass
class StaticSensors:
    """Fixed readings, e.g. replayed from a recorded session or a demo."""

    motion: Optional[dict[str, Any]] = None
    screen: Optional[dict[str, Any]] = None
    venue: Optional[dict[str, Any]] = None
    permissions: set[str] = field(default_factory=lambda: {"motion", "screen", "location"})
    clock: Optional[datetime] = None

    def has_permission(self, name: str) -> bool:
        return name in self.permissions

    def now(self) -> datetime:
        return self.clock or datetime.now(timezone.utc)

    async def read_motion(self) -> Optional[dict[str, Any]]:
        return self.motion

    async def read_screen_usage(self) -> Optional[dict[str, Any]]:
        return self.screen

    async def read_venue(self) -> Optional[dict[str, Any]]:
        return self.venue


class RedisSensors:
    """Latest readings pushed into Redis by the device bridge.

    Each source is a JSON blob under sensors:<source>; granted permissions
    live in the sensors:permissions set. A missing key reads as no signal.
    """

    PREFIX = "sensors:"

    def __init__(self, r, prefix: str = PREFIX):
        self._r = r
        self._prefix = prefix

    def has_permission(self, name: str) -> bool:
        return bool(self._r.sismember(f"{self._prefix}permissions", name))

    def now(self) -> datetime:
        return datetime.now().astimezone()

    def _load(self, source: str) -> Optional[dict[str, Any]]:
        raw = self._r.get(f"{self._prefix}{source}")
        return json.loads(raw) if raw else None

    async def read_motion(self) -> Optional[dict[str, Any]]:
        return self._load("motion")

    async def read_screen_usage(self) -> Optional[dict[str, Any]]:
        return self._load("screen")

    async def read_venue(self) -> Optional[dict[str, Any]]:
        return self._load("venue")

    def push(self, source: str, reading: dict[str, Any]) -> None:
        self._r.set(f"{self._prefix}{source}", json.dumps(reading))

    def grant(self, *names: str) -> None:
        if names:
            self._r.sadd(f"{self._prefix}permissions", *names)
