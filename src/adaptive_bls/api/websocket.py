"""WebSocket connection manager — broadcast configuration updates per session."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any

import structlog
from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class ConnectionManager:
    """Manage WebSocket subscribers keyed by therapy-session channel."""

    def __init__(self) -> None:
        self._channels: dict[str, list[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self.messages_sent = 0

    # ── Connection lifecycle ──────────────────────────────────

    async def connect(self, ws: WebSocket, channel: str) -> None:
        await ws.accept()
        async with self._lock:
            self._channels.setdefault(channel, []).append(ws)
        logger.info("ws.connected", channel=channel, total=self.client_count)

    async def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket from every channel."""
        async with self._lock:
            for channel, subs in list(self._channels.items()):
                if ws in subs:
                    subs.remove(ws)
                if not subs:
                    del self._channels[channel]
        logger.info("ws.disconnected", total=self.client_count)

    @property
    def client_count(self) -> int:
        return sum(len(subs) for subs in self._channels.values())

    def channel_breakdown(self) -> dict[str, int]:
        return {ch: len(subs) for ch, subs in self._channels.items() if subs}

    # ── Broadcasting ──────────────────────────────────────────

    async def broadcast(self, message: dict[str, Any], channel: str) -> None:
        """Send a JSON message to every subscriber of *channel*."""
        targets = list(self._channels.get(channel, []))
        if not targets:
            return

        payload = json.dumps(message, default=_json_default)
        dead: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_text(payload)
                self.messages_sent += 1
            except Exception:
                dead.append(ws)

        for ws in dead:
            await self.disconnect(ws)

    async def close_channel(self, channel: str, reason: str = "session_closed") -> int:
        """Notify and close every subscriber of *channel*, then forget it.

        Returns the number of sockets closed.
        """
        await self.broadcast_system(channel, reason)
        async with self._lock:
            subs = self._channels.pop(channel, [])
        for ws in subs:
            try:
                await ws.close(code=1000)
            except Exception as exc:
                logger.debug("ws.close_failed", channel=channel, error=str(exc))
        logger.info("ws.channel_closed", channel=channel, clients=len(subs))
        return len(subs)

    async def broadcast_config(self, session_id: str, config_data: dict[str, Any]) -> None:
        await self.broadcast({"type": "config", "session_id": session_id, "data": config_data}, session_id)

    async def broadcast_system(self, session_id: str, event: str, details: dict[str, Any] | None = None) -> None:
        """Lifecycle notices (started, stopped, reset)."""
        await self.broadcast(
            {"type": "system", "session_id": session_id, "event": event, "data": details or {}},
            session_id,
        )


# ── Shared instance ──────────────────────────────────────────

ws_manager = ConnectionManager()


def _json_default(obj: Any) -> Any:
    """Fallback JSON serialiser for datetime etc."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Not serialisable: {type(obj)}")
