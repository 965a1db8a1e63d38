"""Group coordination: cohesion + predictability, then the privacy gate.

evaluate_group() is the path a merge / rally / convergence suggestion
takes before anyone sees it. The group metrics are always computed, but
the suggestion itself is only built inside with_gate, at the fidelity
the gate allows:

  full      exact cohesion, spread and gain
  category  metrics bucketed to low | medium | high
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from vibecore.config.settings import PREDICTABILITY_OMEGA_STAR, PREDICTABILITY_TAU
from vibecore.engine.cohesion import estimate_cohesion
from vibecore.engine.predictability import predictability_gate
from vibecore.engine.privacy_gate import GatedResult, GateOptions, RankTimePrivacyGate, with_gate
from vibecore.models.vibe import Cohesion, DegradeLevel, MemberSignal, PredictabilityResult

logger = logging.getLogger(__name__)

ACTIONS = ("merge", "rally", "convergence")


def bucket(x: float) -> str:
    if x < 1 / 3:
        return "low"
    if x < 2 / 3:
        return "medium"
    return "high"


def build_suggestion(
    action: str,
    cohesion: Cohesion,
    predictability: PredictabilityResult,
    degrade: str,
) -> dict[str, Any]:
    """Suggestion payload at the given fidelity."""
    proceed = predictability.ok
    if DegradeLevel.from_label(degrade) == DegradeLevel.FULL:
        return {
            "action": action,
            "proceed": proceed,
            "fallback": predictability.fallback,
            "confidence": predictability.confidence,
            "energy": cohesion.energy,
            "cohesion": cohesion.cohesion,
            "fragmentation_risk": cohesion.fragmentation_risk,
            "spread": predictability.spread,
            "gain": predictability.gain,
        }
    return {
        "action": action,
        "proceed": proceed,
        "fallback": predictability.fallback,
        "confidence": predictability.confidence,
        "energy": bucket(cohesion.energy),
        "cohesion": bucket(cohesion.cohesion),
        "fragmentation_risk": bucket(cohesion.fragmentation_risk),
    }


@dataclass
class CoordinationOutcome:
    action: str
    cohesion: Cohesion
    predictability: PredictabilityResult
    gated: GatedResult

    @property
    def suggestion(self) -> Optional[dict[str, Any]]:
        return self.gated.data if self.gated.ok else None

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "gate": self.gated.to_dict(),
        }


async def evaluate_group(
    action: str,
    members: Sequence[MemberSignal],
    member_dists: Sequence[Sequence[float]],
    opts: GateOptions,
    gate: RankTimePrivacyGate,
    omega_star: float = PREDICTABILITY_OMEGA_STAR,
    tau: float = PREDICTABILITY_TAU,
    abandoned: asyncio.Event | None = None,
) -> CoordinationOutcome:
    if action not in ACTIONS:
        raise ValueError(f"Unknown action '{action}', expected one of {ACTIONS}")

    cohesion = estimate_cohesion(members)
    predictability = predictability_gate(member_dists, omega_star, tau)
    logger.info(
        f"Group {action}: cohesion={cohesion.cohesion:.2f} "
        f"spread={predictability.spread:.3f} gain={predictability.gain:.3f} "
        f"ok={predictability.ok}"
    )

    gated = await with_gate(
        lambda degrade: build_suggestion(action, cohesion, predictability, degrade),
        opts,
        gate,
        abandoned,
    )
    return CoordinationOutcome(
        action=action,
        cohesion=cohesion,
        predictability=predictability,
        gated=gated,
    )
