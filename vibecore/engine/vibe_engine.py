"""Vibe Vector Engine — multi-source signal fusion.

Starts from a prior distribution over VIBES (uniform, or the last known
vector when carry_prior is on) and applies independent additive nudges
for each available source:

1. Temporal context (time-of-day and weekend patterns)
2. Movement (still / walking / vehicle)
3. Device usage (screen-on ratio, night-time social use)
4. Venue type, scaled by dwell time

Every nudge is scaled by the source's quality and goes through
VibeVector.adjust, which clamps to [0, cap] and renormalizes. Sources
missing from the snapshot contribute nothing; they are never read as zero.

The scoring model is the WeightTable; swap it to change what each signal
means without touching the fusion loop.
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from vibecore.config.settings import (
    VIBE_HISTORY_SIZE,
    VIBE_MAX_CONFIDENCE,
    VIBE_WEIGHT_CAP,
)
from vibecore.models.errors import InsufficientSignal
from vibecore.models.signals import (
    DeviceUsageSignal,
    MovementSignal,
    SignalSnapshot,
    TemporalSignal,
    VenueSignal,
)
from vibecore.models.vibe import VibeVector, clamp01

logger = logging.getLogger(__name__)

# ── Default Weight Table ─────────────────────────────────────────────────

# period -> (relevance, boosts, expected energy)
TIME_OF_DAY: dict[str, tuple[float, dict[str, float], float]] = {
    "early_morning": (0.7, {"chill": 0.3, "solo": 0.2, "down": 0.1,
                            "open": -0.2, "social": -0.3, "hype": -0.4}, 0.2),
    "morning": (0.6, {"solo": 0.3, "curious": 0.2, "flowing": 0.1,
                      "open": 0.1, "social": -0.1, "down": -0.2}, 0.5),
    "afternoon": (0.5, {"curious": 0.2, "solo": 0.1, "social": 0.1,
                        "open": 0.1, "down": -0.1}, 0.7),
    "evening": (0.8, {"social": 0.4, "hype": 0.3, "open": 0.2, "flowing": 0.2,
                      "romantic": 0.1, "solo": -0.2, "down": -0.1}, 0.8),
    "night": (0.7, {"chill": 0.3, "romantic": 0.3, "social": 0.1,
                    "down": 0.1, "hype": -0.1, "curious": -0.2}, 0.4),
    "late_night": (0.9, {"down": 0.4, "romantic": 0.3, "weird": 0.2, "solo": 0.2,
                         "chill": 0.1, "social": -0.3, "hype": -0.4, "open": -0.3}, 0.2),
}

WEEKEND: dict[str, tuple[float, dict[str, float]]] = {
    "morning": (0.6, {"chill": 0.3, "flowing": 0.2, "open": 0.1, "solo": -0.1}),
    "afternoon": (0.5, {"open": 0.2, "flowing": 0.1, "social": 0.1}),
    "evening": (0.8, {"social": 0.4, "hype": 0.3, "open": 0.2,
                      "romantic": 0.1, "solo": -0.2}),
}

MOVEMENT_BOOSTS: dict[str, dict[str, float]] = {
    "still": {"chill": 0.06, "solo": 0.04},
    "walking": {"flowing": 0.10, "curious": 0.05},
    "vehicle": {"flowing": 0.15, "hype": 0.05},
}
MOVEMENT_ENERGY: dict[str, float] = {"still": 0.2, "walking": 0.6, "vehicle": 0.4}

VENUE_BOOSTS: dict[str, dict[str, float]] = {
    "nightclub": {"hype": 0.20, "social": 0.15},
    "gym": {"hype": 0.15, "flowing": 0.15},
    "bar": {"social": 0.20, "open": 0.05},
    "coffee": {"curious": 0.10, "chill": 0.10},
    "restaurant": {"social": 0.10, "romantic": 0.08},
    "office": {"solo": 0.10, "flowing": 0.05},
    "park": {"chill": 0.12, "open": 0.08},
}

# Dwell (minutes) at which a venue's boost reaches full strength
FULL_DWELL_MINUTES = 30.0


def time_period(hour: int) -> str:
    if 5 <= hour < 8:
        return "early_morning"
    if 8 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    if 21 <= hour < 24:
        return "night"
    return "late_night"


def _is_night(temporal: Optional[TemporalSignal]) -> bool:
    return temporal is not None and (temporal.hour_of_day >= 20 or temporal.hour_of_day < 5)


class WeightTable:
    """Maps each signal to per-vibe deltas and an energy estimate."""

    temporal_scale = 0.2

    def temporal(self, t: TemporalSignal) -> dict[str, float]:
        period = time_period(t.hour_of_day)
        relevance, boosts, _ = TIME_OF_DAY[period]
        deltas = {v: b * relevance * self.temporal_scale for v, b in boosts.items()}
        if t.is_weekend:
            bucket = "morning" if t.hour_of_day < 12 else "evening" if t.hour_of_day >= 17 else "afternoon"
            w_rel, w_boosts = WEEKEND[bucket]
            for v, b in w_boosts.items():
                deltas[v] = deltas.get(v, 0.0) + b * w_rel * self.temporal_scale
        return deltas

    def movement(self, m: MovementSignal) -> dict[str, float]:
        return dict(MOVEMENT_BOOSTS.get(m.activity, {}))

    def device(self, d: DeviceUsageSignal, temporal: Optional[TemporalSignal]) -> dict[str, float]:
        if d.screen_on_ratio01 >= 0.5:
            if _is_night(temporal):
                return {"social": 0.12}
            return {"curious": 0.04}
        if d.screen_on_ratio01 < 0.1:
            return {"chill": 0.04, "down": 0.02}
        return {}

    def venue(self, v: VenueSignal) -> dict[str, float]:
        strength = 0.25 + 0.75 * min(1.0, v.dwell_minutes / FULL_DWELL_MINUTES)
        return {vibe: b * strength for vibe, b in VENUE_BOOSTS.get(v.venue_type, {}).items()}

    def energy(self, snapshot: SignalSnapshot) -> dict[str, float]:
        """Per-source energy estimate, 0.0-1.0."""
        out: dict[str, float] = {}
        if snapshot.temporal:
            out["temporal"] = TIME_OF_DAY[time_period(snapshot.temporal.hour_of_day)][2]
        if snapshot.movement:
            out["movement"] = MOVEMENT_ENERGY.get(snapshot.movement.activity, 0.3)
        if snapshot.device:
            out["device"] = 0.2 + 0.6 * snapshot.device.screen_on_ratio01
        if snapshot.venue:
            out["venue"] = snapshot.venue.energy
        return out


# ── Engine ───────────────────────────────────────────────────────────────

@dataclass
class VibeReading:
    """One inference result: vector plus scalar summaries."""
    vector: VibeVector
    energy: float
    confidence: float
    sources: list[str]
    timestamp: float = field(default_factory=time.time)

    @property
    def vibe(self) -> str:
        return self.vector.top()

    def to_dict(self) -> dict:
        return {
            "vibe": self.vibe,
            "vector": self.vector.as_dict(),
            "energy": round(self.energy, 4),
            "confidence": round(self.confidence, 4),
            "sources": list(self.sources),
            "timestamp": self.timestamp,
        }


class VibeVectorEngine:
    """Fuses a SignalSnapshot into a normalized VibeVector."""

    def __init__(
        self,
        weights: WeightTable | None = None,
        cap: float = VIBE_WEIGHT_CAP,
        carry_prior: bool = False,
        history_size: int = VIBE_HISTORY_SIZE,
    ):
        self._weights = weights or WeightTable()
        self._cap = cap
        self._carry_prior = carry_prior
        self._last: Optional[VibeVector] = None
        self._history: deque[VibeReading] = deque(maxlen=history_size)

    def evaluate(self, snapshot: SignalSnapshot, prior: VibeVector | None = None) -> VibeVector:
        """Fuse available signals. Raises InsufficientSignal if none are usable."""
        if not snapshot.sources:
            raise InsufficientSignal("No signal sources available")

        if prior is not None:
            vec = prior.copy()
        elif self._carry_prior and self._last is not None:
            vec = self._last.copy()
        else:
            vec = VibeVector.uniform()

        for source, deltas in self._deltas(snapshot):
            quality = snapshot.quality(source)
            for vibe, delta in deltas.items():
                vec.adjust(vibe, delta * quality, cap=self._cap)

        if vec.is_degenerate:
            raise InsufficientSignal("All vibe weights collapsed to zero")

        self._last = vec.copy()
        return vec

    def read(self, snapshot: SignalSnapshot) -> VibeReading:
        """Evaluate and attach energy + confidence."""
        vector = self.evaluate(snapshot)
        energy = self._energy(snapshot)
        reading = VibeReading(
            vector=vector,
            energy=energy,
            confidence=0.0,
            sources=snapshot.sources,
            timestamp=snapshot.timestamp,
        )
        self._history.append(reading)
        reading.confidence = self._confidence(snapshot)
        logger.debug(
            f"Vibe reading: {reading.vibe} energy={energy:.2f} "
            f"confidence={reading.confidence:.2f} sources={reading.sources}"
        )
        return reading

    @property
    def last_vector(self) -> Optional[VibeVector]:
        return self._last.copy() if self._last else None

    def _deltas(self, snapshot: SignalSnapshot) -> list[tuple[str, dict[str, float]]]:
        out = []
        if snapshot.temporal:
            out.append(("temporal", self._weights.temporal(snapshot.temporal)))
        if snapshot.movement:
            out.append(("movement", self._weights.movement(snapshot.movement)))
        if snapshot.device:
            out.append(("device", self._weights.device(snapshot.device, snapshot.temporal)))
        if snapshot.venue:
            out.append(("venue", self._weights.venue(snapshot.venue)))
        return out

    def _energy(self, snapshot: SignalSnapshot) -> float:
        """Quality-weighted mean of per-source energy estimates."""
        per_source = self._weights.energy(snapshot)
        total_weight = math.fsum(snapshot.quality(s) for s in per_source)
        if total_weight == 0:
            return 0.3  # neutral baseline
        return clamp01(
            math.fsum(e * snapshot.quality(s) for s, e in per_source.items()) / total_weight
        )

    def _confidence(self, snapshot: SignalSnapshot) -> float:
        """avg quality x consistency x source diversity, capped."""
        qualities = [snapshot.quality(s) for s in snapshot.sources]
        avg_quality = math.fsum(qualities) / len(qualities) if qualities else 0.0

        # Consistency over readings from the last minute
        recent = [r.energy for r in self._history if snapshot.timestamp - r.timestamp < 60]
        if len(recent) < 2:
            consistency = 0.5
        else:
            mean = math.fsum(recent) / len(recent)
            std = math.sqrt(math.fsum((e - mean) ** 2 for e in recent) / len(recent))
            consistency = max(0.1, 1.0 - std)

        diversity = min(1.0, 0.2 + 0.2 * len(snapshot.sources))
        return min(VIBE_MAX_CONFIDENCE, avg_quality * consistency * diversity)
