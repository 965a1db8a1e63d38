"""FastAPI server exposing vibe inference, group coordination and the privacy gate.

REST endpoints for one-shot evaluation + a WebSocket that streams gate
receipts to connected clients. Vibe readings are returned to the caller
only and never broadcast.

Every endpoint that discloses something derived from user signals goes
through RankTimePrivacyGate first; the receipt for each decision is
relayed to /ws whether or not the disclosure was approved.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from vibecore.config.settings import DEFAULT_ENVELOPE, PREFERENCE_BATCH_SIZE, REDIS_URL
from vibecore.engine.cohesion import estimate_cohesion
from vibecore.engine.coordination import evaluate_group
from vibecore.engine.events import GATE_RECEIPT, EventBus, Subscription
from vibecore.engine.predictability import predictability_gate
from vibecore.engine.preference_queue import PreferenceQueue
from vibecore.engine.privacy_gate import (
    GateOptions,
    RankTimePrivacyGate,
    RedisReceiptLog,
    with_gate,
)
from vibecore.engine.scheduler import get_interval
from vibecore.engine.vibe_engine import VibeVectorEngine
from vibecore.models.errors import InsufficientSignal, NetworkFailure, PayloadValidationError
from vibecore.models.preference import Decision, PreferenceSignal
from vibecore.models.signals import SignalSnapshot
from vibecore.models.vibe import MemberSignal
from vibecore.services.presence_publisher import (
    PresencePayload,
    PresencePublisher,
    degrade_presence,
    validate_presence,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="vibecore", description="Vibe inference, group coordination and privacy gating")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Shared State ─────────────────────────────────────────────────────────

_bus = EventBus()
_publisher: Optional[PresencePublisher] = None


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def _get_publisher() -> PresencePublisher:
    global _publisher
    if _publisher is None:
        _publisher = PresencePublisher()
    return _publisher


def _get_gate(r: redis.Redis) -> RankTimePrivacyGate:
    return RankTimePrivacyGate(r, sinks=[RedisReceiptLog(r), _bus])


def _build_ws_message(msg_type: str, payload: dict) -> str:
    """Build a JSON WebSocket message: {type, payload, timestamp}."""
    return json.dumps({
        "type": msg_type,
        "payload": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


# ── WebSocket Manager ────────────────────────────────────────────────────

class ConnectionManager:
    """/ws clients plus the gate-receipt subscription they are fed from.

    Nothing reaches a client except through send(), and the only caller
    outside /ws itself is relay_receipts(): gate receipts are the one
    thing the server pushes.
    """

    def __init__(self, receipts: Subscription):
        self._connections: list[WebSocket] = []
        self._receipts = receipts

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self._connections.append(ws)
        logger.info(f"WebSocket connected. Total: {len(self._connections)}")

    def disconnect(self, ws: WebSocket):
        if ws in self._connections:
            self._connections.remove(ws)
        logger.info(f"WebSocket disconnected. Total: {len(self._connections)}")

    async def send(self, msg_type: str, payload: dict) -> None:
        """Send to every client; a client whose socket fails is dropped."""
        message = _build_ws_message(msg_type, payload)
        for ws in list(self._connections):
            try:
                await ws.send_text(message)
            except Exception as e:
                logger.warning(f"Dropping WebSocket client: {e}")
                self.disconnect(ws)

    async def relay_receipts(self) -> int:
        """Push every receipt the gate emitted since the last relay."""
        relayed = 0
        while not self._receipts.queue.empty():
            event = self._receipts.queue.get_nowait()
            await self.send("gate_receipt", event.payload)
            relayed += 1
        return relayed

    @property
    def count(self) -> int:
        return len(self._connections)


manager = ConnectionManager(_bus.subscribe(GATE_RECEIPT))


# ── WebSocket Endpoint ───────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await manager.connect(ws)
    try:
        await ws.send_text(_build_ws_message("connected", {
            "connections": manager.count,
            "default_envelope": DEFAULT_ENVELOPE,
        }))
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if msg.get("type") == "ping":
                await ws.send_text(_build_ws_message("pong", {}))
            else:
                logger.info("Client message: %s", msg)
    except WebSocketDisconnect:
        manager.disconnect(ws)


# ── Request Models ───────────────────────────────────────────────────────

class SnapshotRequest(BaseModel):
    speed_mps: Optional[float] = Field(default=None, ge=0)
    screen_on_ratio: Optional[float] = Field(default=None, ge=0, le=1)
    venue_type: Optional[str] = None
    hour: Optional[int] = Field(default=None, ge=0, le=23)
    is_weekend: bool = False
    dwell_minutes: float = Field(default=0.0, ge=0)

    def snapshot(self) -> SignalSnapshot:
        return SignalSnapshot.from_values(
            speed_mps=self.speed_mps,
            screen_on_ratio=self.screen_on_ratio,
            venue_type=self.venue_type,
            hour=self.hour,
            is_weekend=self.is_weekend,
            dwell_minutes=self.dwell_minutes,
        )


class GateRequest(BaseModel):
    envelope_id: str = DEFAULT_ENVELOPE
    feature_timestamps: list[float] = []
    cohort_size: Optional[int] = Field(default=None, ge=0)
    epsilon_cost: float = Field(default=0.0, ge=0)

    def options(self) -> GateOptions:
        return GateOptions(
            envelope_id=self.envelope_id,
            feature_timestamps=tuple(self.feature_timestamps),
            cohort_size=self.cohort_size,
            epsilon_cost=self.epsilon_cost,
        )


class CohesionRequest(BaseModel):
    energies: list[float]


class PredictabilityRequest(BaseModel):
    member_dists: list[list[float]]
    omega_star: Optional[float] = None
    tau: Optional[float] = None


class CoordinateRequest(GateRequest):
    action: str = "merge"
    energies: list[float]
    member_dists: list[list[float]]


class PresenceRequest(GateRequest):
    lat: float
    lng: float
    vibe: str
    visibility: str = "public"
    venue_id: Optional[str] = None


class PreferenceRequest(BaseModel):
    vibe: dict[str, Any]
    offer: dict[str, Any]
    context: dict[str, Any] = {}
    decision: str = Decision.IGNORED
    outcome: Optional[dict[str, Any]] = None


# ── REST Endpoints ───────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    r = _get_redis()
    try:
        r.ping()
        redis_ok = True
    except Exception:
        redis_ok = False

    return {
        "status": "ok",
        "redis": redis_ok,
        "ws_connections": manager.count,
        "bus_subscribers": _bus.subscriber_count,
    }


@app.post("/api/vibe/evaluate")
async def evaluate_vibe(req: SnapshotRequest):
    """One-shot inference over bare readings, returned to the caller only.

    Stateless: no history, no prior. Nothing is broadcast to /ws.
    """
    snapshot = req.snapshot()
    try:
        reading = VibeVectorEngine().read(snapshot)
    except InsufficientSignal as e:
        raise HTTPException(status_code=422, detail=str(e))

    result = reading.to_dict()
    result["interval_ms"] = get_interval(snapshot)
    return result


@app.post("/api/scheduler/interval")
async def scheduler_interval(req: SnapshotRequest):
    snapshot = req.snapshot()
    return {"interval_ms": get_interval(snapshot), "sources": snapshot.sources}


@app.post("/api/group/cohesion")
async def group_cohesion(req: CohesionRequest):
    try:
        members = [MemberSignal(energy=e) for e in req.energies]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return estimate_cohesion(members).to_dict()


@app.post("/api/group/predictability")
async def group_predictability(req: PredictabilityRequest):
    kwargs = {}
    if req.omega_star is not None:
        kwargs["omega_star"] = req.omega_star
    if req.tau is not None:
        kwargs["tau"] = req.tau
    return predictability_gate(req.member_dists, **kwargs).to_dict()


@app.post("/api/group/coordinate")
async def group_coordinate(req: CoordinateRequest):
    """Cohesion + predictability, disclosed only at the fidelity the gate allows."""
    try:
        members = [MemberSignal(energy=e) for e in req.energies]
        outcome = await evaluate_group(
            req.action, members, req.member_dists, req.options(), _get_gate(_get_redis()),
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await manager.relay_receipts()
    return outcome.to_dict()


@app.post("/api/gate")
async def gate_decision(req: GateRequest):
    try:
        decision = _get_gate(_get_redis()).decide(
            req.envelope_id, req.feature_timestamps, req.cohort_size, req.epsilon_cost,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await manager.relay_receipts()
    return decision.to_dict()


@app.get("/api/gate/receipts")
async def gate_receipts(count: int = Query(default=50, ge=1, le=1000)):
    """Most recent gate receipts from the audit stream, newest first."""
    return {"receipts": RedisReceiptLog(_get_redis()).recent(count)}


@app.post("/api/presence")
async def publish_presence(req: PresenceRequest):
    """Gated presence publish.

    The payload is validated before the gate runs, so malformed requests
    never spend epsilon budget. Rate limiting comes back as data, not an error.
    """
    payload = PresencePayload(
        lat=req.lat,
        lng=req.lng,
        vibe=req.vibe,
        visibility=req.visibility,
        venue_id=req.venue_id,
    )
    try:
        validate_presence(payload)
    except PayloadValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    publisher = _get_publisher()

    async def _publish(degrade: str) -> dict:
        result = await publisher.publish(degrade_presence(payload, degrade))
        return result.to_dict()

    try:
        gated = await with_gate(_publish, req.options(), _get_gate(_get_redis()))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NetworkFailure as e:
        logger.error(f"Presence publish failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        await manager.relay_receipts()
    return gated.to_dict()


@app.post("/api/preferences")
async def record_preference(req: PreferenceRequest):
    signal = PreferenceSignal(
        vibe=req.vibe,
        offer=req.offer,
        context=req.context,
        decision=req.decision,
        outcome=req.outcome,
    )
    size = PreferenceQueue(_get_redis()).append(signal)
    return {"signal_id": signal.signal_id, "size": size}


@app.get("/api/preferences")
async def list_preferences(limit: int = Query(default=PREFERENCE_BATCH_SIZE, ge=1, le=500)):
    queue = PreferenceQueue(_get_redis())
    return {
        "size": queue.size(),
        "items": [s.to_dict() for s in queue.peek(limit)],
    }


@app.post("/api/preferences/drain")
async def drain_preferences(batch_size: int = Query(default=PREFERENCE_BATCH_SIZE, ge=1, le=500)):
    """Pop the oldest batch for upload. The caller owns the records afterwards."""
    queue = PreferenceQueue(_get_redis())
    batch = queue.drain(batch_size)
    return {
        "items": [s.to_dict() for s in batch],
        "remaining": queue.size(),
    }
