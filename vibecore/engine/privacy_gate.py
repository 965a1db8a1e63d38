"""Rank-Time Privacy Gate — the last checkpoint before anything leaves the device.

Given an envelope (strict | balanced | permissive), feature timestamps,
cohort size and the epsilon cost of the disclosure, decide whether the
result may be published and at what fidelity:

  full      publish as computed
  category  bucketed / coarsened
  binary    present/absent only; denied for normal publishing
  suppress  nothing leaves

Checks:
1. Cohort: unknown or below half the envelope floor → binary;
   below the floor → category.
2. Staleness: newest feature older than the envelope window (or no
   timestamps at all) → one level worse than the cohort check, capped at binary.
3. Budget: per-envelope epsilon spend for the current window. If this
   disclosure would push spend past the ceiling → suppress. Only approved
   decisions spend budget; the check-and-spend is a single optimistic
   Redis transaction.

Every call mints a fresh receipt and emits it to the receipt sinks,
denials included. Decisions are idempotent; receipts never are.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence

import redis

from vibecore.config.settings import (
    EPSILON_WINDOW_SECONDS,
    RECEIPT_STREAM,
    RECEIPT_STREAM_MAXLEN,
    REDIS_URL,
)
from vibecore.models.vibe import DegradeLevel, GateDecision, PrivacyEnvelope

logger = logging.getLogger(__name__)

BUDGET_PREFIX = "gate:epsilon:"
RECEIPT_EVENT = "gate_decision"
# Float slack so a spend landing exactly on the ceiling is allowed
BUDGET_TOLERANCE = 1e-9


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def mint_receipt_id() -> str:
    return f"rcpt_{uuid.uuid4().hex}"


# ── Receipt Sinks ────────────────────────────────────────────────────────

class ReceiptSink(Protocol):
    def emit(self, event: dict[str, Any]) -> None: ...


class RedisReceiptLog:
    """Audit trail of gate decisions in a capped Redis stream."""

    def __init__(
        self,
        r: redis.Redis,
        stream: str = RECEIPT_STREAM,
        maxlen: int = RECEIPT_STREAM_MAXLEN,
    ):
        self._r = r
        self._stream = stream
        self._maxlen = maxlen

    def emit(self, event: dict[str, Any]) -> None:
        fields = {k: str(v) for k, v in event.items() if v is not None}
        self._r.xadd(self._stream, fields, maxlen=self._maxlen, approximate=True)

    def recent(self, count: int = 50) -> list[dict[str, str]]:
        """Most recent receipts, newest first."""
        entries = self._r.xrevrange(self._stream, count=count)
        return [dict(fields) for _, fields in entries]


def receipt_event(envelope_id: str, decision: GateDecision) -> dict[str, Any]:
    event = {
        "event": RECEIPT_EVENT,
        "envelope": envelope_id,
        "receipt_id": decision.receipt_id,
        "degrade": decision.degrade,
    }
    if decision.reason:
        event["reason"] = decision.reason
    return event


# ── Gate ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GateOptions:
    envelope_id: str
    feature_timestamps: Sequence[float] = ()
    cohort_size: Optional[int] = None
    epsilon_cost: float = 0.0


class RankTimePrivacyGate:
    """Stateless apart from the per-envelope epsilon budget in Redis."""

    def __init__(
        self,
        r: redis.Redis | None = None,
        sinks: list[ReceiptSink] | None = None,
        clock: Callable[[], float] = time.time,
        window_seconds: int = EPSILON_WINDOW_SECONDS,
    ):
        self._r = r or _get_redis()
        self._sinks = sinks if sinks is not None else [RedisReceiptLog(self._r)]
        self._clock = clock
        self._window = window_seconds

    def decide(
        self,
        envelope_id: str,
        feature_timestamps: Sequence[float] = (),
        cohort_size: int | None = None,
        epsilon_cost: float = 0.0,
    ) -> GateDecision:
        envelope = PrivacyEnvelope.named(envelope_id)
        if not math.isfinite(epsilon_cost) or epsilon_cost < 0:
            raise ValueError(f"epsilon_cost must be a non-negative number, got {epsilon_cost}")

        now = self._clock()
        level = DegradeLevel.FULL
        reasons: list[str] = []

        # Cohort (k-anonymity proxy)
        if cohort_size is None:
            level = DegradeLevel.BINARY
            reasons.append("cohort_unknown")
        elif cohort_size < envelope.cohort_floor / 2:
            level = DegradeLevel.BINARY
            reasons.append("cohort_far_below_floor")
        elif cohort_size < envelope.cohort_floor:
            level = DegradeLevel.CATEGORY
            reasons.append("cohort_below_floor")

        # Staleness
        newest = max(feature_timestamps, default=None)
        if newest is None or now - newest > envelope.freshness_seconds:
            level = DegradeLevel(min(DegradeLevel.BINARY, level + 1))
            reasons.append("stale_features")

        # Budget
        key = self._budget_key(envelope.envelope_id, now)
        if level <= DegradeLevel.CATEGORY:
            if not self._try_spend(key, epsilon_cost, envelope.epsilon_ceiling):
                level = DegradeLevel.SUPPRESS
                reasons.append("epsilon_budget_exhausted")
        elif self._spent(key) + epsilon_cost > envelope.epsilon_ceiling + BUDGET_TOLERANCE:
            level = DegradeLevel.SUPPRESS
            reasons.append("epsilon_budget_exhausted")

        decision = GateDecision(
            ok=level <= DegradeLevel.CATEGORY,
            degrade=level.label,
            receipt_id=mint_receipt_id(),
            reason=",".join(reasons) or None,
        )
        self._emit(envelope.envelope_id, decision)
        return decision

    def spent(self, envelope_id: str) -> float:
        """Epsilon spent by this envelope in the current window."""
        PrivacyEnvelope.named(envelope_id)
        return self._spent(self._budget_key(envelope_id, self._clock()))

    def _budget_key(self, envelope_id: str, now: float) -> str:
        return f"{BUDGET_PREFIX}{envelope_id}:{int(now // self._window)}"

    def _spent(self, key: str) -> float:
        raw = self._r.get(key)
        return float(raw) if raw is not None else 0.0

    def _try_spend(self, key: str, cost: float, ceiling: float) -> bool:
        """Atomically add cost unless it would cross the ceiling."""
        with self._r.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    raw = pipe.get(key)
                    spent = float(raw) if raw is not None else 0.0
                    if spent + cost > ceiling + BUDGET_TOLERANCE:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.incrbyfloat(key, cost)
                    pipe.expire(key, self._window * 2)
                    pipe.execute()
                    return True
                except redis.WatchError:
                    # Another decision spent concurrently; re-read and retry
                    continue

    def _emit(self, envelope_id: str, decision: GateDecision) -> None:
        event = receipt_event(envelope_id, decision)
        logger.info(
            f"Gate {envelope_id}: ok={decision.ok} degrade={decision.degrade} "
            f"receipt={decision.receipt_id} reason={decision.reason}"
        )
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as e:
                # The decision stands; the audit failure must still be visible
                logger.error(f"Receipt sink failed for {decision.receipt_id}: {e}")


def rank_time_gate(
    envelope_id: str,
    feature_timestamps: Sequence[float] = (),
    cohort_size: int | None = None,
    epsilon_cost: float = 0.0,
    r: redis.Redis | None = None,
) -> GateDecision:
    """One-shot gate decision against the shared Redis budget."""
    return RankTimePrivacyGate(r).decide(envelope_id, feature_timestamps, cohort_size, epsilon_cost)


# ── Composition ──────────────────────────────────────────────────────────

@dataclass
class GatedResult:
    ok: bool
    degrade: str
    receipt_id: str
    data: Any = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"ok": self.ok, "degrade": self.degrade, "receipt_id": self.receipt_id}
        if self.ok:
            d["data"] = self.data
        else:
            d["reason"] = self.reason
        return d


async def with_gate(
    fn: Callable[[str], Any],
    opts: GateOptions,
    gate: RankTimePrivacyGate,
    abandoned: asyncio.Event | None = None,
) -> GatedResult:
    """Run the gate, then fn(degrade) only if it approved.

    fn may be sync or async. If the caller has abandoned the request by
    the time the gate resolves, fn is never called and CancelledError
    propagates; task cancellation during fn propagates the same way.
    """
    decision = gate.decide(
        opts.envelope_id,
        opts.feature_timestamps,
        opts.cohort_size,
        opts.epsilon_cost,
    )
    if not decision.ok:
        return GatedResult(
            ok=False,
            degrade=decision.degrade,
            receipt_id=decision.receipt_id,
            reason=decision.reason,
        )

    if abandoned is not None and abandoned.is_set():
        logger.info(f"Request abandoned after gate approval, receipt={decision.receipt_id}")
        raise asyncio.CancelledError()

    data = fn(decision.degrade)
    if inspect.isawaitable(data):
        data = await data

    return GatedResult(
        ok=True,
        degrade=decision.degrade,
        receipt_id=decision.receipt_id,
        data=data,
        reason=decision.reason,
    )
