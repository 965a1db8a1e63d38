"""Group Coordinator Agent.

Receives GroupSignals for a candidate merge / rally / convergence, runs
cohesion and predictability over the members, and only then asks the
rank-time privacy gate whether the suggestion may leave. Replies with a
CoordinationSuggestion either way; a denied suggestion carries the
receipt and reason but no metrics.
"""

from __future__ import annotations

import logging

import redis
from uagents import Agent, Context

from vibecore.agents.protocols import create_chat_protocol
from vibecore.config.settings import (
    AGENT_DEPLOY_MODE,
    AGENT_ENDPOINT_BASE,
    DEFAULT_ENVELOPE,
    GROUP_COORDINATOR_PORT,
    GROUP_COORDINATOR_SEED,
    REDIS_URL,
)
from vibecore.engine.coordination import evaluate_group
from vibecore.engine.privacy_gate import GateOptions, RankTimePrivacyGate
from vibecore.models.messages import CoordinationSuggestion, GroupSignals
from vibecore.models.vibe import DegradeLevel, MemberSignal

logger = logging.getLogger(__name__)

# ── Agent Setup ──────────────────────────────────────────────────────────

agent = Agent(
    name="group_coordinator",
    seed=GROUP_COORDINATOR_SEED,
    port=GROUP_COORDINATOR_PORT,
    endpoint=[f"{AGENT_ENDPOINT_BASE}:{GROUP_COORDINATOR_PORT}/submit"] if AGENT_DEPLOY_MODE == "local" else [],
    mailbox=AGENT_DEPLOY_MODE == "agentverse",
)

_stats = {"evaluated": 0, "approved": 0}


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


async def coordinate(msg: GroupSignals, gate: RankTimePrivacyGate) -> CoordinationSuggestion:
    """Evaluate one GroupSignals message into a gated suggestion."""
    members = [MemberSignal(energy=e) for e in msg.energies]
    opts = GateOptions(
        envelope_id=msg.envelope_id or DEFAULT_ENVELOPE,
        feature_timestamps=tuple(msg.feature_timestamps),
        # 0 on the wire means the sender doesn't know the cohort
        cohort_size=msg.cohort_size or None,
        epsilon_cost=msg.epsilon_cost,
    )
    outcome = await evaluate_group(msg.action, members, msg.member_dists, opts, gate)
    gated = outcome.gated

    _stats["evaluated"] += 1
    if not gated.ok:
        return CoordinationSuggestion(
            group_id=msg.group_id,
            action=msg.action,
            ok=False,
            degrade=gated.degrade,
            receipt_id=gated.receipt_id,
            cohesion=0.0,
            fragmentation_risk=0.0,
            spread=0.0,
            gain=0.0,
            fallback="",
            confidence="",
            reason=gated.reason or "",
        )

    _stats["approved"] += 1
    # Only what with_gate built at the approved fidelity goes into the reply
    data = gated.data
    exact = gated.degrade == DegradeLevel.FULL.label
    return CoordinationSuggestion(
        group_id=msg.group_id,
        action=msg.action,
        ok=True,
        degrade=gated.degrade,
        receipt_id=gated.receipt_id,
        cohesion=data["cohesion"] if exact else 0.0,
        fragmentation_risk=data["fragmentation_risk"] if exact else 0.0,
        spread=data["spread"] if exact else 0.0,
        gain=data["gain"] if exact else 0.0,
        fallback=data["fallback"] or "",
        confidence=data["confidence"],
        reason=gated.reason or "",
        energy_level="" if exact else data["energy"],
        cohesion_level="" if exact else data["cohesion"],
        fragmentation_level="" if exact else data["fragmentation_risk"],
    )


# ── Message Handlers ─────────────────────────────────────────────────────

@agent.on_message(GroupSignals)
async def handle_group_signals(ctx: Context, sender: str, msg: GroupSignals):
    logger.info(f"GroupSignals from {sender}: {msg.action} for {msg.group_id}")
    try:
        suggestion = await coordinate(msg, RankTimePrivacyGate(_get_redis()))
    except ValueError as e:
        logger.warning(f"Rejected GroupSignals for {msg.group_id}: {e}")
        return
    await ctx.send(sender, suggestion)


@agent.on_event("startup")
async def on_startup(ctx: Context):
    logger.info(f"Group Coordinator started. Address: {agent.address}")
    logger.info(f"Default privacy envelope: {DEFAULT_ENVELOPE}")


# ── Chat Protocol for ASI:One ────────────────────────────────────────────

async def _chat_handler(ctx: Context, sender: str, text: str) -> str:
    return (
        "I'm the Group Coordinator. I check whether a group is cohesive and "
        "predictable enough to merge or rally, and every suggestion passes a "
        f"privacy gate first. Evaluated: {_stats['evaluated']}, approved: {_stats['approved']}."
    )


chat_proto = create_chat_protocol(
    "Group Coordinator",
    "I score group cohesion and predictability and gate every suggestion for privacy",
    _chat_handler,
)
agent.include(chat_proto, publish_manifest=True)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    agent.run()
