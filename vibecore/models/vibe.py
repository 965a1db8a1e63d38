"""Core value types for vibe inference, group coordination and gating.

VibeVector is the only mutable type here: it is built per inference cycle
and renormalized on every mutation. Everything else is produced per
request and never cached.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Mapping, Optional

VIBES: tuple[str, ...] = (
    "chill",
    "hype",
    "curious",
    "social",
    "solo",
    "romantic",
    "weird",
    "down",
    "flowing",
    "open",
)

ENVELOPES: tuple[str, ...] = ("strict", "balanced", "permissive")


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


class DegradeLevel(IntEnum):
    FULL = 0       # publish as computed
    CATEGORY = 1   # bucketed / coarsened
    BINARY = 2     # present/absent only
    SUPPRESS = 3   # nothing leaves the device

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> DegradeLevel:
        return cls[label.upper()]


# ── VibeVector ───────────────────────────────────────────────────────────

class VibeVector:
    """Probability distribution over the closed VIBES set.

    Weights are clamped to [0, cap] on every adjustment and the whole
    vector is renormalized afterwards, so the sum is 1 whenever any weight
    is non-zero. An all-zero vector is the degenerate "no signal" case.
    """

    def __init__(self, weights: Mapping[str, float] | None = None):
        self._weights: dict[str, float] = {v: 0.0 for v in VIBES}
        if weights:
            for vibe, w in weights.items():
                if vibe not in self._weights:
                    raise KeyError(f"Unknown vibe: {vibe}")
                self._weights[vibe] = max(0.0, float(w))
        self.renormalize()

    @classmethod
    def uniform(cls) -> VibeVector:
        return cls({v: 1.0 for v in VIBES})

    def adjust(self, vibe: str, delta: float, cap: float = 1.0) -> None:
        """Add delta to one category, clamp to [0, cap], renormalize."""
        if vibe not in self._weights:
            raise KeyError(f"Unknown vibe: {vibe}")
        self._weights[vibe] = max(0.0, min(cap, self._weights[vibe] + delta))
        self.renormalize()

    def renormalize(self) -> None:
        total = math.fsum(self._weights.values())
        if total == 0:
            return  # degenerate; callers must check is_degenerate
        for vibe in self._weights:
            self._weights[vibe] = self._weights[vibe] / total

    @property
    def total(self) -> float:
        return math.fsum(self._weights.values())

    @property
    def is_degenerate(self) -> bool:
        return self.total == 0

    def top(self) -> str:
        """Highest-weighted vibe; ties resolve in VIBES order."""
        return max(VIBES, key=lambda v: self._weights[v])

    def copy(self) -> VibeVector:
        return VibeVector(self._weights)

    def as_dict(self) -> dict[str, float]:
        return dict(self._weights)

    def __getitem__(self, vibe: str) -> float:
        return self._weights[vibe]

    def __iter__(self) -> Iterator[str]:
        return iter(VIBES)

    def __repr__(self) -> str:
        top = self.top()
        return f"VibeVector(top={top}, weight={self._weights[top]:.3f})"


def adjust_vector(vec: VibeVector, vibe: str, delta: float, cap: float = 1.0) -> VibeVector:
    """Functional form of VibeVector.adjust; mutates and returns vec."""
    vec.adjust(vibe, delta, cap)
    return vec


def renormalize_vector(vec: VibeVector) -> VibeVector:
    vec.renormalize()
    return vec


# ── Group Signals ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MemberSignal:
    energy: float
    style: Optional[float] = None

    def __post_init__(self):
        if not 0.0 <= self.energy <= 1.0:
            raise ValueError(f"energy must be in [0, 1], got {self.energy}")
        if self.style is not None and not 0.0 <= self.style <= 1.0:
            raise ValueError(f"style must be in [0, 1], got {self.style}")


@dataclass(frozen=True)
class Cohesion:
    energy: float
    cohesion: float
    fragmentation_risk: float

    def to_dict(self) -> dict:
        return {
            "energy": self.energy,
            "cohesion": self.cohesion,
            "fragmentation_risk": self.fragmentation_risk,
        }


@dataclass(frozen=True)
class PredictabilityResult:
    ok: bool
    spread: float
    gain: float
    fallback: Optional[str]   # partition | relax_constraints | None
    confidence: str           # high | medium | low

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "spread": self.spread,
            "gain": self.gain,
            "fallback": self.fallback,
            "confidence": self.confidence,
        }


# ── Privacy Gate ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PrivacyEnvelope:
    """Named gate policy. Selected per request, never mutated."""
    envelope_id: str
    freshness_seconds: int
    cohort_floor: int
    epsilon_ceiling: float

    @classmethod
    def named(cls, envelope_id: str) -> PrivacyEnvelope:
        from vibecore.config.settings import ENVELOPE_POLICIES

        if envelope_id not in ENVELOPE_POLICIES:
            raise ValueError(
                f"Unknown envelope '{envelope_id}', expected one of {ENVELOPES}"
            )
        freshness, floor, ceiling = ENVELOPE_POLICIES[envelope_id]
        return cls(envelope_id, freshness, floor, ceiling)


@dataclass(frozen=True)
class GateDecision:
    ok: bool
    degrade: str              # full | category | binary | suppress
    receipt_id: str
    reason: Optional[str] = None

    def __post_init__(self):
        level = DegradeLevel.from_label(self.degrade)
        if self.ok and level > DegradeLevel.CATEGORY:
            raise ValueError(f"ok decision cannot degrade to {self.degrade}")
        if not self.ok and level < DegradeLevel.BINARY:
            raise ValueError(f"denied decision cannot degrade to {self.degrade}")

    def to_dict(self) -> dict:
        d = {"ok": self.ok, "degrade": self.degrade, "receipt_id": self.receipt_id}
        if self.reason:
            d["reason"] = self.reason
        return d
