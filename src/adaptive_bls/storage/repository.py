"""Data-access layer — thin async wrappers around SQLAlchemy queries."""

from __future__ import annotations

import json
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adaptive_bls.models import (
    AdaptationEvent,
    BLSConfiguration,
    BLSMetrics,
    EmotionSample,
    EventKind,
    Trajectory,
)
from adaptive_bls.storage.database import AdaptationEventRow, get_session_factory


def _dump(model: Any) -> str | None:
    return None if model is None else model.model_dump_json()


class BaseRepository:
    """Shared base with session management for all repositories."""

    def __init__(self, session: AsyncSession | None = None) -> None:
        self._external_session = session

    async def _session(self) -> AsyncSession:
        if self._external_session is not None:
            return self._external_session
        return get_session_factory()()


class AdaptationEventRepository(BaseRepository):
    """CRUD operations for :class:`AdaptationEvent` objects."""

    # ── Write ─────────────────────────────────────────────────

    async def save(self, event: AdaptationEvent) -> None:
        session = await self._session()
        row = AdaptationEventRow(
            id=event.id,
            session_id=event.session_id,
            kind=event.kind.value,
            timestamp=event.timestamp,
            config_json=_dump(event.config),
            emotion_json=_dump(event.emotion),
            trajectory_json=_dump(event.trajectory),
            metrics_json=_dump(event.metrics),
            detail_json=json.dumps(event.detail),
        )
        session.add(row)
        try:
            await session.commit()
        finally:
            if self._external_session is None:
                await session.close()

    # ── Read ──────────────────────────────────────────────────

    async def get_latest(
        self,
        session_id: str,
        *,
        kind: EventKind | None = None,
        limit: int = 50,
    ) -> Sequence[AdaptationEventRow]:
        """Most recent events for a therapy session, newest first."""
        session = await self._session()
        stmt = select(AdaptationEventRow).where(AdaptationEventRow.session_id == session_id)
        if kind is not None:
            stmt = stmt.where(AdaptationEventRow.kind == kind.value)
        stmt = stmt.order_by(AdaptationEventRow.timestamp.desc()).limit(limit)
        try:
            result = await session.execute(stmt)
            return result.scalars().all()
        finally:
            if self._external_session is None:
                await session.close()

    async def count_for_session(self, session_id: str, kind: EventKind | None = None) -> int:
        session = await self._session()
        stmt = select(func.count()).select_from(AdaptationEventRow).where(
            AdaptationEventRow.session_id == session_id
        )
        if kind is not None:
            stmt = stmt.where(AdaptationEventRow.kind == kind.value)
        try:
            result = await session.execute(stmt)
            return int(result.scalar_one())
        finally:
            if self._external_session is None:
                await session.close()

    # ── Conversion ────────────────────────────────────────────

    @staticmethod
    def row_to_event(row: AdaptationEventRow) -> AdaptationEvent:
        """Convert a DB row back into an :class:`AdaptationEvent`."""
        return AdaptationEvent(
            id=row.id,
            session_id=row.session_id,
            kind=EventKind(row.kind),
            timestamp=row.timestamp,
            config=BLSConfiguration.model_validate_json(row.config_json) if row.config_json else None,
            emotion=EmotionSample.model_validate_json(row.emotion_json) if row.emotion_json else None,
            trajectory=Trajectory.model_validate_json(row.trajectory_json) if row.trajectory_json else None,
            metrics=BLSMetrics.model_validate_json(row.metrics_json) if row.metrics_json else None,
            detail=json.loads(row.detail_json or "{}"),
        )
