"""Predictability gate — is a group stable enough to coordinate?

Each member contributes a list of observed offsets (arrival times or
positions, in whatever unit the caller normalizes to). Two numbers drive
the decision:

  spread  mean pairwise |mean_i - mean_j| across members. Grows
          monotonically as members diverge.
  gain    1 - spread / worst_spread, where worst_spread is the pooled
          range of every observation: the spread the group would show if
          members sat at opposite ends of the observed window. A pooled
          range of zero means everyone agrees exactly, gain 1.

ok = spread <= omega_star AND gain >= tau.

When not ok, "partition" means the members are too far apart and should
be split; "relax_constraints" means spread is fine but the group adds
little over its own window, so the window should widen.

Confidence reflects distance from both thresholds; callers use it to
decide whether to surface a suggestion at all.
"""

from __future__ import annotations

import itertools
import math
from typing import Sequence

from vibecore.config.settings import (
    PREDICTABILITY_HIGH_MARGIN,
    PREDICTABILITY_LOW_MARGIN,
    PREDICTABILITY_OMEGA_STAR,
    PREDICTABILITY_TAU,
)
from vibecore.models.vibe import PredictabilityResult, clamp01

PARTITION = "partition"
RELAX_CONSTRAINTS = "relax_constraints"


def member_spread(means: Sequence[float]) -> float:
    pairs = list(itertools.combinations(means, 2))
    if not pairs:
        return 0.0
    return math.fsum(abs(a - b) for a, b in pairs) / len(pairs)


def classify_confidence(
    spread: float,
    gain: float,
    omega_star: float,
    tau: float,
    high_margin: float = PREDICTABILITY_HIGH_MARGIN,
    low_margin: float = PREDICTABILITY_LOW_MARGIN,
) -> str:
    spread_margin = abs(spread - omega_star)
    gain_margin = abs(gain - tau)
    if spread_margin < low_margin or gain_margin < low_margin:
        return "low"
    if spread_margin >= high_margin and gain_margin >= high_margin:
        return "high"
    return "medium"


def predictability_gate(
    member_dists: Sequence[Sequence[float]],
    omega_star: float = PREDICTABILITY_OMEGA_STAR,
    tau: float = PREDICTABILITY_TAU,
) -> PredictabilityResult:
    """Decide whether a group's behavior is predictable enough to act on.

    Members with no observations are ignored. Fewer than two informative
    members is not a group: spread and gain are both 0, which fails tau.
    """
    dists = [[float(x) for x in d] for d in member_dists if len(d) > 0]

    if len(dists) < 2:
        spread, gain = 0.0, 0.0
    else:
        means = [math.fsum(d) / len(d) for d in dists]
        spread = member_spread(means)
        pooled = list(itertools.chain.from_iterable(dists))
        worst = max(pooled) - min(pooled)
        gain = 1.0 if worst == 0 else clamp01(1.0 - spread / worst)

    ok = spread <= omega_star and gain >= tau
    if ok:
        fallback = None
    elif spread > omega_star:
        fallback = PARTITION
    else:
        fallback = RELAX_CONSTRAINTS

    return PredictabilityResult(
        ok=ok,
        spread=spread,
        gain=gain,
        fallback=fallback,
        confidence=classify_confidence(spread, gain, omega_star, tau),
    )
