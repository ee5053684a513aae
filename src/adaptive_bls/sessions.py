"""Session registry — one controller and emotion feed per therapy session."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from adaptive_bls.config import Settings, get_settings
from adaptive_bls.control.controller import AdaptiveBLSController
from adaptive_bls.models import AdaptiveParameters
from adaptive_bls.sinks.handlers import SinkDispatcher
from adaptive_bls.streaming.feed import EmotionFeed

logger = structlog.get_logger(__name__)


@dataclass
class TherapySession:
    """A live session: its controller plus the feed that supplies it."""

    session_id: str
    controller: AdaptiveBLSController
    feed: EmotionFeed
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def summary(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "running": self.controller.is_running,
            "interval_seconds": self.controller.interval_seconds,
            "history_size": len(self.controller.history),
            "config": self.controller.current_config.model_dump(mode="json"),
            "metrics": self.controller.get_metrics().model_dump(mode="json"),
            "trajectory": self.controller.trajectory().model_dump(mode="json"),
            "params": self.controller.params.model_dump(mode="json"),
        }


class SessionRegistry:
    """Create, look up and tear down therapy sessions."""

    def __init__(
        self,
        settings: Settings | None = None,
        dispatcher: SinkDispatcher | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._dispatcher = dispatcher
        self._sessions: dict[str, TherapySession] = {}

    def create(
        self,
        session_id: str | None = None,
        *,
        params: AdaptiveParameters | None = None,
        interval_seconds: float | None = None,
        adaptive_mode: bool = True,
    ) -> TherapySession:
        """Register a new session.  Raises ``KeyError`` if the id is taken."""
        sid = session_id or str(uuid.uuid4())
        if sid in self._sessions:
            raise KeyError(sid)

        s = self._settings
        controller = AdaptiveBLSController(
            params or s.adaptive_parameters(),
            session_id=sid,
            interval_seconds=interval_seconds or s.adaptation_interval_seconds,
            history_capacity=s.history_capacity,
            trajectory_window=s.trajectory_window,
            adaptive_mode=adaptive_mode,
            crisis_detection=s.crisis_detection_enabled,
            dispatcher=self._dispatcher,
        )
        session = TherapySession(
            session_id=sid,
            controller=controller,
            feed=EmotionFeed(s.emotion_stale_after_seconds),
        )
        self._sessions[sid] = session
        logger.info("sessions.created", session=sid)
        return session

    def get(self, session_id: str) -> TherapySession | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[TherapySession]:
        return list(self._sessions.values())

    async def remove(self, session_id: str) -> bool:
        """Stop and forget a session.  Return ``True`` if it existed."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.controller.aclose()
        logger.info("sessions.removed", session=session_id)
        return True

    async def shutdown(self) -> None:
        for sid in list(self._sessions):
            await self.remove(sid)

    def __len__(self) -> int:
        return len(self._sessions)
