"""Vibe Monitor Agent.

Owns one VibeSession and keeps it running on the adaptive schedule:
short intervals at a club or gym, long ones when the phone is idle on a
table. Readings come from the device bridge through Redis (RedisSensors),
so the agent never talks to platform APIs itself.

The latest VibeReport is cached in Redis at vibe:current so the server
and other agents can read it without going through agent messaging.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import redis
from uagents import Agent, Context

from vibecore.agents.protocols import create_chat_protocol
from vibecore.collectors.platform import RedisSensors
from vibecore.config.settings import (
    AGENT_DEPLOY_MODE,
    AGENT_ENDPOINT_BASE,
    REDIS_URL,
    VIBE_MONITOR_PORT,
    VIBE_MONITOR_SEED,
)
from vibecore.engine.session import VibeSession, default_collectors
from vibecore.models.messages import VibeQuery, VibeReport

logger = logging.getLogger(__name__)

# ── Agent Setup ──────────────────────────────────────────────────────────

agent = Agent(
    name="vibe_monitor",
    seed=VIBE_MONITOR_SEED,
    port=VIBE_MONITOR_PORT,
    endpoint=[f"{AGENT_ENDPOINT_BASE}:{VIBE_MONITOR_PORT}/submit"] if AGENT_DEPLOY_MODE == "local" else [],
    mailbox=AGENT_DEPLOY_MODE == "agentverse",
)

_session: VibeSession | None = None


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def _get_session() -> VibeSession:
    global _session
    if _session is None:
        r = _get_redis()
        _session = VibeSession(default_collectors(RedisSensors(r)), r=r)
    return _session


def _no_signal_report() -> VibeReport:
    return VibeReport(
        vibe="",
        vector={},
        energy=0.0,
        confidence=0.0,
        sources=[],
        interval_ms=0,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ── Message Handlers ─────────────────────────────────────────────────────

@agent.on_message(VibeQuery)
async def handle_vibe_query(ctx: Context, sender: str, msg: VibeQuery):
    """Reply with the cached report; an empty report means no signal yet."""
    report = _get_session().cached_report() or _no_signal_report()
    logger.info(f"VibeQuery from {sender}: vibe={report.vibe or 'none'}")
    await ctx.send(sender, report)


# ── Lifecycle ────────────────────────────────────────────────────────────

@agent.on_event("startup")
async def on_startup(ctx: Context):
    logger.info(f"Vibe Monitor started. Address: {agent.address}")
    reading = await _get_session().start()
    if reading is not None:
        logger.info(f"Initial vibe: {reading.vibe} (confidence {reading.confidence:.2f})")


@agent.on_event("shutdown")
async def on_shutdown(ctx: Context):
    if _session is not None:
        _session.stop()


# ── Chat Protocol for ASI:One ────────────────────────────────────────────

async def _chat_handler(ctx: Context, sender: str, text: str) -> str:
    report = _get_session().cached_report()
    if report is None or not report.vibe:
        return "I don't have enough signal to read the vibe yet."
    return (
        f"Current vibe: {report.vibe} (energy {report.energy:.2f}, "
        f"confidence {report.confidence:.2f}, sources: {', '.join(report.sources)}). "
        f"Next refresh in {report.interval_ms // 1000}s."
    )


chat_proto = create_chat_protocol(
    "Vibe Monitor",
    "I infer your current vibe from time, movement, screen use and venue",
    _chat_handler,
)
agent.include(chat_proto, publish_manifest=True)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    agent.run()
