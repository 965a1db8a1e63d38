"""Group cohesion estimation — pure functions, no uagents dependency.

Used by the Group Coordinator agent and the FastAPI server.
"""

from __future__ import annotations

import math
from typing import Sequence

from vibecore.models.vibe import Cohesion, MemberSignal, clamp01

# Variance of energies spread across the whole unit interval
MAX_ENERGY_VARIANCE = 0.25
# Fragmentation risk rises faster than cohesion falls
FRAGMENTATION_SLOPE = 1.5


def estimate_cohesion(members: Sequence[MemberSignal]) -> Cohesion:
    """Score how aligned a group's energy signals are.

    cohesion and fragmentation_risk are not complementary: risk uses a
    steeper slope so it fires before cohesion collapses.
    """
    if not members:
        return Cohesion(energy=0.0, cohesion=0.0, fragmentation_risk=1.0)

    n = len(members)
    # fsum is exactly rounded, so the result doesn't depend on member order
    mean = math.fsum(m.energy for m in members) / n
    variance = math.fsum((m.energy - mean) ** 2 for m in members) / n

    return Cohesion(
        energy=mean,
        cohesion=clamp01(1.0 - variance / MAX_ENERGY_VARIANCE),
        fragmentation_risk=clamp01(variance * FRAGMENTATION_SLOPE),
    )
