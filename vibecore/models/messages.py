"""Typed message models for inter-agent communication.

All messages are uAgents Model subclasses providing schema validation
and serialization across the Fetch.ai ecosystem.
"""

from uagents import Model


class VibeQuery(Model):
    """Request to Vibe Monitor for the latest inferred vibe."""
    user_id: str
    timestamp: str           # ISO 8601


class VibeReport(Model):
    """Returned by Vibe Monitor with the current reading."""
    vibe: str                # top category
    vector: dict             # {vibe: weight}, sums to 1
    energy: float            # 0.0-1.0
    confidence: float        # 0.0-0.95
    sources: list            # collectors that contributed
    interval_ms: int         # current refresh interval
    timestamp: str           # ISO 8601


class GroupSignals(Model):
    """Sent to Group Coordinator to evaluate a candidate merge/rally."""
    group_id: str
    action: str              # merge | rally | convergence
    energies: list           # one energy per member, 0.0-1.0
    member_dists: list       # one list of observed offsets per member
    envelope_id: str         # strict | balanced | permissive
    cohort_size: int         # 0 = unknown
    feature_timestamps: list # unix seconds of the inputs
    epsilon_cost: float


class CoordinationSuggestion(Model):
    """Returned by Group Coordinator after gating."""
    group_id: str
    action: str
    ok: bool
    degrade: str             # full | category | binary | suppress
    receipt_id: str
    cohesion: float          # exact metrics, full fidelity only (0.0 otherwise)
    fragmentation_risk: float
    spread: float
    gain: float
    fallback: str            # partition | relax_constraints | "" when ok
    confidence: str          # high | medium | low
    reason: str
    # low | medium | high at category fidelity, "" otherwise
    energy_level: str = ""
    cohesion_level: str = ""
    fragmentation_level: str = ""


class GateReceiptEvent(Model):
    """Audit record emitted for every gate decision."""
    event: str               # gate_decision
    envelope: str
    receipt_id: str
    degrade: str
    reason: str
