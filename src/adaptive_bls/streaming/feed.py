"""Emotion feed — caches the latest sample for the controller's provider.

The controller polls a synchronous getter once per cycle.  Sensing
pipelines (camera, microphone, fusion) publish asynchronously into the
feed; the feed keeps the latest sample, drops it once stale, and forwards
every published sample to registered observers.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

import structlog

from adaptive_bls.models import EmotionSample

logger = structlog.get_logger(__name__)


class EmotionFeed:
    """Latest-value cache between an emotion source and a controller.

    Parameters
    ----------
    stale_after_seconds : float | None
        A sample older than this (by arrival time) is reported as missing.
        ``None`` disables the check.
    clock : Callable[[], float]
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        stale_after_seconds: float | None = 10.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stale_after = stale_after_seconds
        self._clock = clock
        self._latest: EmotionSample | None = None
        self._received_at: float | None = None
        self._consumers: list[Callable[[EmotionSample], Awaitable[None]]] = []
        self._published_total = 0
        self._stale_reported = False

    # ── Configuration ─────────────────────────────────────────

    def add_consumer(self, fn: Callable[[EmotionSample], Awaitable[None]]) -> None:
        """Register an async callback that receives every published sample."""
        self._consumers.append(fn)

    # ── Producer side ─────────────────────────────────────────

    async def publish(self, sample: EmotionSample) -> None:
        """Make *sample* the latest value and notify consumers."""
        self._latest = sample
        self._received_at = self._clock()
        self._published_total += 1
        self._stale_reported = False

        for consumer in self._consumers:
            try:
                await consumer(sample)
            except Exception as exc:
                logger.error(
                    "emotion_feed.consumer_error",
                    consumer=getattr(consumer, "__qualname__", repr(consumer)),
                    error=str(exc),
                )

    def clear(self) -> None:
        self._latest = None
        self._received_at = None

    # ── Consumer side ─────────────────────────────────────────

    def latest(self) -> EmotionSample | None:
        """Return the cached sample, or ``None`` when absent or stale."""
        if self._latest is None or self._received_at is None:
            return None
        if self._stale_after is not None and self._clock() - self._received_at > self._stale_after:
            if not self._stale_reported:
                logger.info(
                    "emotion_feed.stale_sample",
                    age_seconds=round(self._clock() - self._received_at, 1),
                )
                self._stale_reported = True
            return None
        return self._latest

    @property
    def published_total(self) -> int:
        return self._published_total
