"""Tests for the FastAPI server endpoints."""

from __future__ import annotations

import asyncio

import pytest
from asgi_lifespan import LifespanManager
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from adaptive_bls.api.server import app


@pytest.fixture
async def client():
    """Async test client with lifespan (startup / shutdown) fully executed."""
    async with LifespanManager(app) as manager:
        transport = ASGITransport(app=manager.app)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


async def _create(client: AsyncClient, session_id: str, **body) -> dict:
    resp = await client.post("/sessions", json={"session_id": session_id, **body})
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["ws_channels"] == {}
    assert isinstance(resp.json()["ws_messages_sent"], int)


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    resp = await client.get("/sessions", headers={"X-Request-ID": "req-42"})
    assert resp.headers["X-Request-ID"] == "req-42"
    assert (await client.get("/health")).headers["X-Request-ID"]


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_list_delete(self, client: AsyncClient):
        created = await _create(client, "S-api")
        assert created["session_id"] == "S-api"
        assert created["running"] is False
        assert created["config"]["adaptive_mode"] is True
        assert created["config"]["pattern"] == "horizontal"

        resp = await client.get("/sessions")
        assert [s["session_id"] for s in resp.json()] == ["S-api"]

        resp = await client.get("/sessions/S-api")
        assert resp.status_code == 200

        resp = await client.delete("/sessions/S-api")
        assert resp.json() == {"deleted": "S-api"}
        assert (await client.get("/sessions/S-api")).status_code == 404

    @pytest.mark.asyncio
    async def test_generated_id(self, client: AsyncClient):
        resp = await client.post("/sessions")
        assert resp.status_code == 201
        assert resp.json()["session_id"]

    @pytest.mark.asyncio
    async def test_duplicate_is_conflict(self, client: AsyncClient):
        await _create(client, "S-dup")
        resp = await client.post("/sessions", json={"session_id": "S-dup"})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_params_rejected(self, client: AsyncClient):
        resp = await client.post(
            "/sessions",
            json={"session_id": "S-bad", "params": {"min_speed": 9, "max_speed": 2}},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_session(self, client: AsyncClient):
        assert (await client.post("/sessions/nope/cycle")).status_code == 404
        assert (await client.get("/sessions/nope/metrics")).status_code == 404


class TestAdaptation:
    @pytest.mark.asyncio
    async def test_cycle_without_sample_is_skipped(self, client: AsyncClient):
        await _create(client, "S-skip")
        resp = await client.post("/sessions/S-skip/cycle")
        body = resp.json()
        assert body["skipped"] is True
        assert body["changed"] is False

    @pytest.mark.asyncio
    async def test_emotion_then_cycle(self, client: AsyncClient):
        await _create(client, "S-cycle")
        resp = await client.post("/sessions/S-cycle/emotion", json={"arousal": 0.9, "valence": 0.1})
        assert resp.status_code == 202

        body = (await client.post("/sessions/S-cycle/cycle")).json()
        assert body["changed"] is True
        assert body["config"]["speed"] == pytest.approx(4.0)
        assert body["config"]["color"] == "#10b981"

        events = (await client.get("/sessions/S-cycle/events")).json()
        assert events[0]["kind"] == "config_changed"

    @pytest.mark.asyncio
    async def test_signed_emotion(self, client: AsyncClient):
        await _create(client, "S-signed")
        resp = await client.post(
            "/sessions/S-signed/emotion",
            json={"arousal": 0.8, "valence": -0.8, "signed": True},
        )
        sample = resp.json()["sample"]
        assert sample["arousal"] == pytest.approx(0.9)
        assert sample["valence"] == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_persisted_events(self, client: AsyncClient):
        await _create(client, "S-persist")
        await client.post("/sessions/S-persist/emotion", json={"arousal": 0.95, "valence": 0.05})
        await client.post("/sessions/S-persist/cycle")

        resp = await client.get(
            "/sessions/S-persist/events",
            params={"persisted": True, "kind": "crisis_detected"},
        )
        events = resp.json()
        assert len(events) == 1
        assert events[0]["detail"]["severity"] == "severe"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, client: AsyncClient):
        await _create(client, "S-loop", interval_seconds=0.01)
        await client.post("/sessions/S-loop/emotion", json={"arousal": 0.9, "valence": 0.1})

        resp = await client.post("/sessions/S-loop/start")
        assert resp.json() == {"running": True}
        await asyncio.sleep(0.1)
        resp = await client.post("/sessions/S-loop/stop")
        assert resp.json() == {"running": False}

        summary = (await client.get("/sessions/S-loop")).json()
        assert summary["history_size"] >= 1
        assert summary["config"]["speed"] < 5.0

    @pytest.mark.asyncio
    async def test_reset(self, client: AsyncClient):
        await _create(client, "S-reset")
        await client.post("/sessions/S-reset/emotion", json={"arousal": 0.9, "valence": 0.1})
        await client.post("/sessions/S-reset/cycle")

        summary = (await client.post("/sessions/S-reset/reset")).json()
        assert summary["history_size"] == 0
        assert summary["config"]["speed"] == 5.0
        # The feed is cleared too, so the next cycle has nothing to work on.
        assert (await client.post("/sessions/S-reset/cycle")).json()["skipped"] is True


class TestParamsAndMetrics:
    @pytest.mark.asyncio
    async def test_patch_params(self, client: AsyncClient):
        await _create(client, "S-params")
        resp = await client.patch("/sessions/S-params/params", json={"max_speed": 8})
        assert resp.status_code == 200
        assert resp.json()["max_speed"] == 8.0

        resp = await client.patch("/sessions/S-params/params", json={"min_speed": 9})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_report_metrics(self, client: AsyncClient):
        await _create(client, "S-metrics")
        resp = await client.post("/sessions/S-metrics/metrics", json={"type": "cycle_complete"})
        assert resp.json()["completed_cycles"] == 1
        assert resp.json()["effectiveness"] == pytest.approx(0.51)

        resp = await client.post(
            "/sessions/S-metrics/metrics",
            json={"type": "attention_update", "value": 0.4},
        )
        assert resp.json()["attention_level"] == pytest.approx(0.4)

        resp = await client.get("/sessions/S-metrics/metrics")
        assert resp.json()["completed_cycles"] == 1


class TestWebSocket:
    def test_receives_current_and_new_configs(self):
        with TestClient(app) as tc:
            tc.post("/sessions", json={"session_id": "S-ws"})
            with tc.websocket_connect("/ws/sessions/S-ws") as ws:
                first = ws.receive_json()
                assert first["type"] == "config"
                assert first["data"]["speed"] == 5.0

                tc.post("/sessions/S-ws/emotion", json={"arousal": 0.9, "valence": 0.1})
                tc.post("/sessions/S-ws/cycle")
                update = ws.receive_json()
                assert update["type"] == "config"
                assert update["data"]["speed"] == pytest.approx(4.0)

    def test_unknown_session_is_closed(self):
        with TestClient(app) as tc:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with tc.websocket_connect("/ws/sessions/missing") as ws:
                    ws.receive_json()
            assert exc_info.value.code == 4404

    def test_deleting_session_closes_subscribers(self):
        with TestClient(app) as tc:
            tc.post("/sessions", json={"session_id": "S-ws-del"})
            with tc.websocket_connect("/ws/sessions/S-ws-del") as ws:
                ws.receive_json()
                assert tc.get("/health").json()["ws_channels"] == {"S-ws-del": 1}

                tc.delete("/sessions/S-ws-del")
                notice = ws.receive_json()
                assert notice["type"] == "system"
                assert notice["event"] == "session_closed"
                with pytest.raises(WebSocketDisconnect):
                    ws.receive_json()
            assert tc.get("/health").json()["ws_channels"] == {}
