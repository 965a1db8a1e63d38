"""Venue collector and place-category classification.

Raw place categories from whatever places provider the host uses are
mapped onto a small set of venue types, each with a typical energy
level. The first matching rule wins, so more specific categories come
first ("nightclub" before "bar").
"""

from __future__ import annotations

from typing import Optional

from vibecore.collectors.base import SignalCollector
from vibecore.config.settings import VENUE_MAX_DISTANCE_M
from vibecore.models.signals import VenueSignal

# (keywords, venue_type, energy)
VENUE_RULES: list[tuple[tuple[str, ...], str, float]] = [
    (("nightclub", "dance club", "club"), "nightclub", 0.9),
    (("bar", "pub", "lounge"), "bar", 0.7),
    (("coffee", "cafe"), "coffee", 0.6),
    (("gym", "fitness"), "gym", 0.8),
    (("park", "outdoor", "recreation"), "park", 0.4),
    (("office", "cowork", "company"), "office", 0.5),
    (("restaurant",), "restaurant", 0.6),
]

GENERAL_VENUE = ("general", 0.5)

_ENERGY_BY_TYPE: dict[str, float] = {vtype: energy for _, vtype, energy in VENUE_RULES}


def classify_categories(categories: list[str]) -> tuple[str, float]:
    """Map provider categories to (venue_type, energy)."""
    lowered = [c.lower() for c in categories]
    for keywords, venue_type, energy in VENUE_RULES:
        if any(k in c for c in lowered for k in keywords):
            return venue_type, energy
    return GENERAL_VENUE


def venue_energy(venue_type: str) -> float:
    return _ENERGY_BY_TYPE.get(venue_type, GENERAL_VENUE[1])


class VenueCollector(SignalCollector):
    """Current venue from the platform's places lookup."""

    name = "venue"
    permission = "location"

    async def _read(self) -> Optional[tuple[VenueSignal, float]]:
        raw = await self._sensors.read_venue()
        if not raw:
            return None
        categories = raw.get("categories") or []
        if not categories:
            return None
        venue_type, energy = classify_categories(categories)
        distance = raw.get("distance_m")
        if distance is None:
            quality = 0.5
        else:
            quality = 1.0 - float(distance) / VENUE_MAX_DISTANCE_M
        return VenueSignal(
            venue_type=venue_type,
            energy=energy,
            dwell_minutes=float(raw.get("dwell_minutes", 0.0)),
            venue_id=raw.get("venue_id"),
            distance_m=distance,
        ), quality
