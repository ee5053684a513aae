"""FastAPI application — session control REST endpoints and WebSocket feed.

This module wires together:
- CORS, request logging and error-handling middleware
- The session registry (one adaptive controller per therapy session)
- Event sinks (structured log, optional webhook, database)
- Real-time WebSocket broadcasting of configuration changes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState
from pydantic import ValidationError

from adaptive_bls import __version__
from adaptive_bls.api.middleware import setup_middleware
from adaptive_bls.api.schemas import EmotionRequest, ParametersUpdateRequest, SessionCreateRequest
from adaptive_bls.api.websocket import ws_manager
from adaptive_bls.config import get_settings
from adaptive_bls.models import BLSConfiguration, EventKind, MetricsEvent
from adaptive_bls.sessions import SessionRegistry, TherapySession
from adaptive_bls.sinks.handlers import create_dispatcher
from adaptive_bls.storage.database import dispose_engine, init_db
from adaptive_bls.storage.repository import AdaptationEventRepository

logger = structlog.get_logger(__name__)

# ── Shared state (initialised in lifespan) ────────────────────

_registry: SessionRegistry | None = None
_event_repo: AdaptationEventRepository | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hooks."""
    global _registry, _event_repo

    settings = get_settings()

    # 1. Database
    await init_db()
    logger.info("server.db_ready")

    # 2. Sinks
    _event_repo = AdaptationEventRepository()
    dispatcher = create_dispatcher(settings, _event_repo)

    # 3. Sessions
    _registry = SessionRegistry(settings, dispatcher)
    logger.info("server.started", port=settings.api_port, sinks=dispatcher.sink_names)

    yield  # ← application runs

    # Shutdown
    for session in _registry.list_sessions():
        await ws_manager.close_channel(session.session_id, "server_shutdown")
    await _registry.shutdown()
    await dispose_engine()
    logger.info("server.stopped")


app = FastAPI(
    title="Adaptive BLS API",
    description="Emotion-driven bilateral stimulation control for EMDR therapy sessions.",
    version=__version__,
    lifespan=lifespan,
)

setup_middleware(app)


# ── Helpers ───────────────────────────────────────────────────


def _get_session(session_id: str) -> TherapySession:
    if _registry is None:
        raise HTTPException(503, "Service not ready.")
    session = _registry.get(session_id)
    if session is None:
        raise HTTPException(404, f"Unknown session {session_id!r}.")
    return session


def _broadcaster(session_id: str):
    async def _on_config(config: BLSConfiguration) -> None:
        await ws_manager.broadcast_config(session_id, config.model_dump(mode="json"))

    return _on_config


# ── Health ────────────────────────────────────────────────────


@app.get("/health", tags=["system"])
async def health():
    return {
        "status": "ok",
        "sessions": len(_registry) if _registry else 0,
        "ws_clients": ws_manager.client_count,
        "ws_channels": ws_manager.channel_breakdown(),
        "ws_messages_sent": ws_manager.messages_sent,
    }


# ── Sessions ──────────────────────────────────────────────────


@app.post("/sessions", status_code=201, tags=["sessions"])
async def create_session(req: SessionCreateRequest | None = None):
    if _registry is None:
        raise HTTPException(503, "Service not ready.")
    req = req or SessionCreateRequest()
    try:
        session = _registry.create(
            req.session_id,
            params=req.params,
            interval_seconds=req.interval_seconds,
            adaptive_mode=req.adaptive_mode,
        )
    except KeyError:
        raise HTTPException(409, f"Session {req.session_id!r} already exists.")
    return session.summary()


@app.get("/sessions", tags=["sessions"])
async def list_sessions():
    if _registry is None:
        return []
    return [s.summary() for s in _registry.list_sessions()]


@app.get("/sessions/{session_id}", tags=["sessions"])
async def get_session(session_id: str):
    return _get_session(session_id).summary()


@app.delete("/sessions/{session_id}", tags=["sessions"])
async def delete_session(session_id: str):
    _get_session(session_id)
    await _registry.remove(session_id)  # type: ignore[union-attr]
    await ws_manager.close_channel(session_id)
    return {"deleted": session_id}


# ── Emotion input ─────────────────────────────────────────────


@app.post("/sessions/{session_id}/emotion", status_code=202, tags=["emotion"])
async def publish_emotion(session_id: str, req: EmotionRequest):
    """Publish the latest emotion sample for the session's controller to poll."""
    session = _get_session(session_id)
    try:
        sample = req.to_sample()
    except ValidationError as exc:
        raise HTTPException(422, str(exc))
    await session.feed.publish(sample)
    return {"accepted": True, "sample": sample.model_dump(mode="json")}


@app.post("/sessions/{session_id}/cycle", tags=["control"])
async def run_cycle(session_id: str):
    """Run one adaptation cycle immediately with the latest sample."""
    session = _get_session(session_id)
    sample = session.feed.latest()
    if sample is None:
        return {"changed": False, "skipped": True, "config": session.controller.current_config.model_dump(mode="json")}

    changed = session.controller.process_sample(sample)
    if changed is not None:
        await _broadcaster(session_id)(changed)
    await session.controller.flush_events()
    return {
        "changed": changed is not None,
        "skipped": False,
        "config": session.controller.current_config.model_dump(mode="json"),
        "trajectory": session.controller.trajectory().model_dump(mode="json"),
    }


# ── Lifecycle ─────────────────────────────────────────────────


@app.post("/sessions/{session_id}/start", tags=["control"])
async def start_session(session_id: str):
    session = _get_session(session_id)
    session.controller.start_adaptive_control(_broadcaster(session_id), session.feed.latest)
    await ws_manager.broadcast_system(session_id, "started")
    return {"running": session.controller.is_running}


@app.post("/sessions/{session_id}/stop", tags=["control"])
async def stop_session(session_id: str):
    session = _get_session(session_id)
    await session.controller.aclose()
    await ws_manager.broadcast_system(session_id, "stopped")
    return {"running": session.controller.is_running}


@app.post("/sessions/{session_id}/reset", tags=["control"])
async def reset_session(session_id: str):
    session = _get_session(session_id)
    session.controller.reset()
    session.feed.clear()
    await ws_manager.broadcast_system(session_id, "reset")
    return session.summary()


@app.patch("/sessions/{session_id}/params", tags=["control"])
async def update_params(session_id: str, req: ParametersUpdateRequest):
    session = _get_session(session_id)
    changes = req.model_dump(exclude_none=True)
    try:
        params = session.controller.update_parameters(**changes)
    except ValidationError as exc:
        raise HTTPException(422, str(exc))
    return params.model_dump(mode="json")


# ── Metrics & events ──────────────────────────────────────────


@app.post("/sessions/{session_id}/metrics", tags=["metrics"])
async def report_metrics(session_id: str, event: MetricsEvent):
    """Report cycle/set completions or an attention measurement."""
    session = _get_session(session_id)
    metrics = session.controller.update_metrics(event)
    await session.controller.flush_events()
    return metrics.model_dump(mode="json")


@app.get("/sessions/{session_id}/metrics", tags=["metrics"])
async def get_metrics(session_id: str):
    return _get_session(session_id).controller.get_metrics().model_dump(mode="json")


@app.get("/sessions/{session_id}/events", tags=["metrics"])
async def get_events(
    session_id: str,
    kind: EventKind | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    persisted: bool = Query(False),
):
    """Recent controller events, from memory or from the database."""
    if persisted:
        if _event_repo is None:
            raise HTTPException(503, "Service not ready.")
        rows = await _event_repo.get_latest(session_id, kind=kind, limit=limit)
        return [_event_repo.row_to_event(r).model_dump(mode="json") for r in rows]

    session = _get_session(session_id)
    events = session.controller.recent_events(limit=500)
    if kind is not None:
        events = [e for e in events if e.kind is kind]
    return [e.model_dump(mode="json") for e in events[:limit]]


# ── WebSocket ─────────────────────────────────────────────────


@app.websocket("/ws/sessions/{session_id}")
async def ws_session(ws: WebSocket, session_id: str):
    """Stream configuration updates for one session.

    Messages are ``{"type": "config", "data": {...}}`` on every emitted
    configuration and ``{"type": "system", "event": ...}`` on lifecycle
    changes.  The current configuration is sent right after connecting.
    """
    if _registry is None or _registry.get(session_id) is None:
        await ws.close(code=4404)
        return

    await ws_manager.connect(ws, session_id)
    current: dict[str, Any] = _registry.get(session_id).controller.current_config.model_dump(mode="json")  # type: ignore[union-attr]
    await ws.send_json({"type": "config", "session_id": session_id, "data": current})
    try:
        # Clients are read-only consumers; incoming text only keeps the socket alive.
        # The loop ends once the server closes the channel (session deleted).
        while ws.application_state == WebSocketState.CONNECTED:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await ws_manager.disconnect(ws)
