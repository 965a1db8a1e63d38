"""Integration tests for FastAPI server endpoints.

Uses httpx.AsyncClient with ASGITransport to test the REST API without
starting a real server. Redis is patched to fakeredis and the presence
endpoint to httpx.MockTransport.
"""

import json
import time
import uuid

import fakeredis
import httpx
import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport

from vibecore.services.presence_publisher import PresencePublisher


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def presence_calls():
    return []


@pytest.fixture
def publisher(presence_calls):
    def handler(request: httpx.Request) -> httpx.Response:
        presence_calls.append(request)
        return httpx.Response(201)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PresencePublisher(url="http://presence.test/rpc", client=client)


@pytest.fixture
def patched_app(fake_redis, publisher):
    with (
        patch("vibecore.server._get_redis", return_value=fake_redis),
        patch("vibecore.server._get_publisher", return_value=publisher),
    ):
        from vibecore.server import app
        yield app


@pytest.fixture
async def client(patched_app):
    transport = ASGITransport(app=patched_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _fresh():
    return [time.time()]


# ═══════════════════════════════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════════════════════════════


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["redis"] is True


# ═══════════════════════════════════════════════════════════════════════════
# Vibe + Scheduler
# ═══════════════════════════════════════════════════════════════════════════


class TestVibeEndpoints:
    @pytest.mark.asyncio
    async def test_evaluate(self, client):
        resp = await client.post("/api/vibe/evaluate", json={"hour": 19, "venue_type": "bar"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["vibe"] == "social"
        assert sum(data["vector"].values()) == pytest.approx(1.0)
        assert data["interval_ms"] == 60_000

    @pytest.mark.asyncio
    async def test_evaluate_without_signal(self, client):
        resp = await client.post("/api/vibe/evaluate", json={})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_evaluate_rejects_bad_ratio(self, client):
        resp = await client.post("/api/vibe/evaluate", json={"screen_on_ratio": 1.5})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_scheduler_idle(self, client):
        resp = await client.post("/api/scheduler/interval", json={"speed_mps": 0, "screen_on_ratio": 0.05})
        assert resp.json()["interval_ms"] == 300_000

    @pytest.mark.asyncio
    async def test_scheduler_gym(self, client):
        resp = await client.post("/api/scheduler/interval", json={"speed_mps": 1.4, "venue_type": "gym"})
        assert resp.json()["interval_ms"] == 30_000


# ═══════════════════════════════════════════════════════════════════════════
# Group
# ═══════════════════════════════════════════════════════════════════════════


class TestGroupEndpoints:
    @pytest.mark.asyncio
    async def test_cohesion(self, client):
        resp = await client.post("/api/group/cohesion", json={"energies": [0.1, 0.9]})
        data = resp.json()
        assert data["cohesion"] == pytest.approx(0.36)
        assert data["fragmentation_risk"] == pytest.approx(0.24)

    @pytest.mark.asyncio
    async def test_cohesion_rejects_out_of_range(self, client):
        resp = await client.post("/api/group/cohesion", json={"energies": [0.5, 1.5]})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_predictability(self, client):
        resp = await client.post("/api/group/predictability", json={"member_dists": [[0, 0], [1, 1]]})
        data = resp.json()
        assert data["ok"] is False
        assert data["fallback"] == "partition"

    @pytest.mark.asyncio
    async def test_predictability_custom_threshold(self, client):
        body = {"member_dists": [[0, 0], [1, 1]], "omega_star": 2.0, "tau": 0.0}
        resp = await client.post("/api/group/predictability", json=body)
        assert resp.json()["ok"] is True

    @pytest.mark.asyncio
    async def test_coordinate_approved(self, client):
        resp = await client.post("/api/group/coordinate", json={
            "action": "merge",
            "energies": [0.8, 0.82, 0.79],
            "member_dists": [[0.0, 1.0], [0.1, 0.9]],
            "envelope_id": "balanced",
            "cohort_size": 30,
            "feature_timestamps": _fresh(),
            "epsilon_cost": 0.1,
        })
        assert resp.status_code == 200
        gate = resp.json()["gate"]
        assert gate["ok"] is True
        assert gate["data"]["proceed"] is True

    @pytest.mark.asyncio
    async def test_coordinate_denied(self, client):
        resp = await client.post("/api/group/coordinate", json={
            "energies": [0.5, 0.5],
            "member_dists": [[0.0], [0.0]],
            "envelope_id": "strict",
            "cohort_size": 1,
            "feature_timestamps": _fresh(),
        })
        gate = resp.json()["gate"]
        assert gate["ok"] is False
        assert "data" not in gate


# ═══════════════════════════════════════════════════════════════════════════
# Gate
# ═══════════════════════════════════════════════════════════════════════════


class TestGateEndpoints:
    @pytest.mark.asyncio
    async def test_strict_tiny_cohort(self, client):
        resp = await client.post("/api/gate", json={
            "envelope_id": "strict", "cohort_size": 1, "epsilon_cost": 0,
            "feature_timestamps": _fresh(),
        })
        data = resp.json()
        assert data["ok"] is False
        assert data["degrade"] in ("binary", "suppress")

    @pytest.mark.asyncio
    async def test_unknown_envelope(self, client):
        resp = await client.post("/api/gate", json={"envelope_id": "lax"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_negative_cost_rejected(self, client):
        resp = await client.post("/api/gate", json={"envelope_id": "strict", "epsilon_cost": -1})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_receipts_listed_newest_first(self, client):
        first = (await client.post("/api/gate", json={"envelope_id": "strict", "cohort_size": 1})).json()
        second = (await client.post("/api/gate", json={"envelope_id": "permissive", "cohort_size": 5})).json()
        resp = await client.get("/api/gate/receipts", params={"count": 10})
        ids = [e["receipt_id"] for e in resp.json()["receipts"]]
        assert ids == [second["receipt_id"], first["receipt_id"]]


# ═══════════════════════════════════════════════════════════════════════════
# Presence
# ═══════════════════════════════════════════════════════════════════════════


class TestPresenceEndpoint:
    @pytest.mark.asyncio
    async def test_full_fidelity_publish(self, client, presence_calls):
        venue = str(uuid.uuid4())
        resp = await client.post("/api/presence", json={
            "lat": 40.7128, "lng": -74.006, "vibe": "social", "venue_id": venue,
            "envelope_id": "permissive", "cohort_size": 10, "feature_timestamps": _fresh(),
        })
        data = resp.json()
        assert data["ok"] is True
        assert data["data"] == {"ok": True}
        assert len(presence_calls) == 1
        assert venue in presence_calls[0].content.decode()

    @pytest.mark.asyncio
    async def test_category_publish_drops_venue(self, client, presence_calls):
        resp = await client.post("/api/presence", json={
            "lat": 40.7128, "lng": -74.006, "vibe": "social", "venue_id": str(uuid.uuid4()),
            "envelope_id": "balanced", "cohort_size": 5, "feature_timestamps": _fresh(),
        })
        assert resp.json()["degrade"] == "category"
        body = json.loads(presence_calls[0].content)
        assert body["venue_id"] is None
        assert body["lat"] == pytest.approx(40.71)

    @pytest.mark.asyncio
    async def test_denied_never_publishes(self, client, presence_calls):
        resp = await client.post("/api/presence", json={
            "lat": 40.7, "lng": -74.0, "vibe": "chill",
            "envelope_id": "strict", "cohort_size": 1, "feature_timestamps": _fresh(),
        })
        assert resp.json()["ok"] is False
        assert presence_calls == []

    @pytest.mark.asyncio
    async def test_invalid_payload_does_not_reach_gate(self, client, fake_redis, presence_calls):
        resp = await client.post("/api/presence", json={
            "lat": 140.0, "lng": -74.0, "vibe": "chill",
            "envelope_id": "permissive", "cohort_size": 10, "feature_timestamps": _fresh(),
        })
        assert resp.status_code == 422
        assert presence_calls == []
        assert fake_redis.exists("gate:receipts") == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_is_502(self, client, patched_app):
        failing = PresencePublisher(
            url="http://presence.test/rpc",
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda req: httpx.Response(503))),
        )
        with patch("vibecore.server._get_publisher", return_value=failing):
            resp = await client.post("/api/presence", json={
                "lat": 40.7, "lng": -74.0, "vibe": "chill",
                "envelope_id": "permissive", "cohort_size": 10, "feature_timestamps": _fresh(),
            })
        assert resp.status_code == 502


# ═══════════════════════════════════════════════════════════════════════════
# Preferences
# ═══════════════════════════════════════════════════════════════════════════


class TestPreferenceEndpoints:
    @pytest.mark.asyncio
    async def test_record_list_drain(self, client):
        for i in range(3):
            resp = await client.post("/api/preferences", json={
                "vibe": {"top": "hype"}, "offer": {"kind": "rally", "n": i}, "decision": "accepted",
            })
            assert resp.json()["size"] == i + 1

        listed = (await client.get("/api/preferences")).json()
        assert listed["size"] == 3
        assert [item["offer"]["n"] for item in listed["items"]] == [0, 1, 2]

        drained = (await client.post("/api/preferences/drain", params={"batch_size": 2})).json()
        assert [item["offer"]["n"] for item in drained["items"]] == [0, 1]
        assert drained["remaining"] == 1
