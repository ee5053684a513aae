"""Adaptive BLS controller — periodic emotion-driven stimulation control.

Architecture
~~~~~~~~~~~~
One controller instance drives one therapy session.  While running, every
``interval_seconds`` it:

1. Polls the emotion provider (``None`` skips the tick).
2. Appends the sample to the :class:`EmotionHistory`.
3. Recomputes the :class:`Trajectory` over the recent window.
4. Runs the parameter selectors to build a candidate configuration.
5. Replaces the active configuration and invokes the update callback
   only when the candidate differs from it.
6. Hands recorded events to a background task that forwards them to
   the :class:`SinkDispatcher`, so slow sinks never stretch the cadence.

Integration::

    controller = AdaptiveBLSController(session_id="S-42")
    controller.start_adaptive_control(on_config, feed.latest)
    ...
    controller.stop_adaptive_control()

:meth:`process_sample` runs steps 2-5 synchronously and can be used
directly by event-push integrations.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from typing import Any, Awaitable, Callable

import structlog

from adaptive_bls.control.history import DEFAULT_CAPACITY, EmotionHistory
from adaptive_bls.control.safety import assess_distress
from adaptive_bls.control.selectors import build_candidate
from adaptive_bls.control.trajectory import DEFAULT_WINDOW, analyze_trajectory
from adaptive_bls.models import (
    AdaptationEvent,
    AdaptiveParameters,
    BLSConfiguration,
    BLSMetrics,
    EmotionSample,
    EventKind,
    MetricsEvent,
    MetricsEventType,
    Trajectory,
    default_configuration,
)
from adaptive_bls.sinks.handlers import SinkDispatcher

logger = structlog.get_logger(__name__)

UpdateCallback = Callable[[BLSConfiguration], Awaitable[None] | None]
EmotionProvider = Callable[[], EmotionSample | None]

DEFAULT_INTERVAL_SECONDS = 2.0
EVENT_LOG_SIZE = 200

# Effectiveness weights
_W_IMPROVEMENT = 0.4
_W_STABILITY = 0.2
_W_ATTENTION = 0.2
_W_COMPLETION = 0.2
_CYCLES_FOR_FULL_COMPLETION = 20


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:  # no running loop
        return None


class AdaptiveBLSController:
    """Computes BLS parameters from a stream of emotion samples.

    The active configuration, history and metrics are owned by the
    instance and are not safe for concurrent mutation from several
    callers; observers should consume what the update callback broadcasts.
    """

    def __init__(
        self,
        params: AdaptiveParameters | None = None,
        *,
        session_id: str = "default",
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        history_capacity: int = DEFAULT_CAPACITY,
        trajectory_window: int = DEFAULT_WINDOW,
        adaptive_mode: bool = False,
        crisis_detection: bool = True,
        dispatcher: SinkDispatcher | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_id = session_id
        self._params = params or AdaptiveParameters()
        self._interval = interval_seconds
        self._window = trajectory_window
        self._adaptive_mode = adaptive_mode
        self._crisis_detection = crisis_detection
        self._dispatcher = dispatcher

        self._history = EmotionHistory(history_capacity)
        self._config = default_configuration(adaptive_mode=adaptive_mode)
        self._metrics = BLSMetrics()
        self._speed_samples = 0

        self._event_log: deque[AdaptationEvent] = deque(maxlen=EVENT_LOG_SIZE)
        self._outbox: deque[AdaptationEvent] = deque(maxlen=EVENT_LOG_SIZE)

        self._running = False
        self._task: asyncio.Task | None = None
        self._delivery: asyncio.Task | None = None
        self._update_callback: UpdateCallback | None = None
        self._emotion_provider: EmotionProvider | None = None

    # ── Read-only views ───────────────────────────────────────

    @property
    def current_config(self) -> BLSConfiguration:
        return self._config

    @property
    def params(self) -> AdaptiveParameters:
        return self._params

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def history(self) -> list[EmotionSample]:
        return self._history.snapshot()

    def trajectory(self) -> Trajectory:
        """Analyse the current history window."""
        return analyze_trajectory(self._history.snapshot(), self._window)

    def get_metrics(self) -> BLSMetrics:
        """Return a snapshot copy; mutating it does not affect the controller."""
        return self._metrics.model_copy()

    def recent_events(self, limit: int = 50) -> list[AdaptationEvent]:
        """Most recent events first."""
        return list(reversed(self._event_log))[:limit]

    # ── Lifecycle ─────────────────────────────────────────────

    def start_adaptive_control(
        self,
        update_callback: UpdateCallback,
        emotion_provider: EmotionProvider,
    ) -> None:
        """Begin periodic adaptation.  No-op when already running.

        Must be called from inside a running event loop.
        """
        if self._running:
            return
        self._update_callback = update_callback
        self._emotion_provider = emotion_provider
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run_loop())
        logger.info(
            "bls_controller.started",
            session=self.session_id,
            interval_seconds=self._interval,
        )

    def stop_adaptive_control(self) -> None:
        """Cancel periodic adaptation.  Idempotent and safe from inside the callback.

        Called from the loop task itself (an async update callback), the
        task is not cancelled: the callback runs to completion and the loop
        exits on its next ``_running`` check.
        """
        if not self._running and self._task is None:
            return
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info("bls_controller.stopped", session=self.session_id)

    async def aclose(self) -> None:
        """Stop the loop, wait for it and for in-flight delivery, then flush events."""
        task = self._task
        self.stop_adaptive_control()
        current = _current_task()
        if task is not None and task is not current:
            try:
                await task
            except asyncio.CancelledError:
                pass
        delivery = self._delivery
        if delivery is not None and delivery is not current:
            await delivery
        await self.flush_events()

    def reset(self) -> None:
        """Restore history, metrics and configuration to their initial state.

        A running loop keeps running; call :meth:`stop_adaptive_control`
        first if that is not wanted.  The update callback is not invoked.
        """
        self._history.clear()
        self._metrics = BLSMetrics()
        self._config = default_configuration(adaptive_mode=self._adaptive_mode)
        self._speed_samples = 0
        self._event_log.clear()
        self._outbox.clear()
        logger.info("bls_controller.reset", session=self.session_id, running=self._running)

    def update_parameters(self, **changes: Any) -> AdaptiveParameters:
        """Replace the adaptive parameters with a validated copy."""
        merged = self._params.model_dump() | changes
        self._params = AdaptiveParameters.model_validate(merged)
        logger.info("bls_controller.parameters_updated", session=self.session_id, **changes)
        return self._params

    # ── Adaptation cycle ──────────────────────────────────────

    def process_sample(self, sample: EmotionSample) -> BLSConfiguration | None:
        """Run one adaptation cycle for *sample*.

        Returns the new configuration when it differs from the active one,
        otherwise ``None``.
        """
        self._history.push(sample)
        trajectory = self.trajectory()

        candidate, promoted = build_candidate(
            sample, trajectory, self._metrics, self._config, self._params
        )
        if promoted:
            self._metrics.pattern_changes += 1
        self._track_speed(candidate.speed)

        if self._crisis_detection:
            assessment = assess_distress(sample)
            if assessment.is_crisis:
                logger.warning(
                    "bls_controller.crisis_detected",
                    session=self.session_id,
                    severity=assessment.severity.value,
                    arousal=sample.arousal,
                    valence=sample.valence,
                )
                self._record(
                    EventKind.CRISIS_DETECTED,
                    emotion=sample,
                    trajectory=trajectory,
                    detail={
                        "severity": assessment.severity.value,
                        "interventions": list(assessment.interventions),
                    },
                )

        if candidate == self._config:
            return None

        self._config = candidate
        logger.debug(
            "bls_controller.config_changed",
            session=self.session_id,
            speed=candidate.speed,
            pattern=candidate.pattern.value,
            trend=trajectory.trend.value,
        )
        self._record(
            EventKind.CONFIG_CHANGED,
            config=candidate,
            emotion=sample,
            trajectory=trajectory,
        )
        return candidate

    def update_metrics(self, event: MetricsEvent) -> BLSMetrics:
        """Apply a manual instrumentation event and recompute effectiveness."""
        m = self._metrics
        if event.type is MetricsEventType.CYCLE_COMPLETE:
            m.completed_cycles += 1
        elif event.type is MetricsEventType.SET_COMPLETE:
            m.total_sets += 1
        elif event.type is MetricsEventType.PATTERN_CHANGE:
            m.pattern_changes += 1
        elif event.type is MetricsEventType.ATTENTION_UPDATE and event.value is not None:
            m.attention_level = _clamp01(event.value)

        self._update_effectiveness()
        self._record(
            EventKind.METRICS_UPDATED,
            metrics=self.get_metrics(),
            detail={"event_type": event.type.value},
        )
        return self.get_metrics()

    async def flush_events(self) -> int:
        """Forward pending events to the dispatcher.  Returns how many were sent.

        At most ``EVENT_LOG_SIZE`` events wait for delivery; older ones are
        dropped with a ``bls_controller.outbox_overflow`` warning.  Events
        recorded while a flush is in progress go out with the same flush.
        """
        if self._dispatcher is None:
            return 0
        sent = 0
        while self._outbox:
            await self._dispatcher.dispatch(self._outbox.popleft())
            sent += 1
        return sent

    # ── Main loop ─────────────────────────────────────────────

    async def _run_loop(self) -> None:
        # The task inherits a copy of the starter's context; drop its request ids.
        structlog.contextvars.clear_contextvars()
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            try:
                await self._tick()
            except Exception:
                logger.exception("bls_controller.tick_error", session=self.session_id)

    async def _tick(self) -> None:
        provider = self._emotion_provider
        if provider is None:
            return
        sample = provider()
        if sample is None:
            return

        changed = self.process_sample(sample)
        if changed is not None and self._update_callback is not None:
            result = self._update_callback(changed)
            if inspect.isawaitable(result):
                await result
        self._schedule_delivery()

    def _schedule_delivery(self) -> None:
        """Hand pending events to a background task so sink I/O never delays a tick."""
        if not self._outbox or self._dispatcher is None:
            return
        if self._delivery is None or self._delivery.done():
            self._delivery = asyncio.get_running_loop().create_task(self._deliver())

    async def _deliver(self) -> None:
        try:
            await self.flush_events()
        except Exception:
            logger.exception("bls_controller.delivery_error", session=self.session_id)

    # ── Internals ─────────────────────────────────────────────

    def _track_speed(self, speed: float) -> None:
        self._speed_samples += 1
        m = self._metrics
        m.average_speed += (speed - m.average_speed) / self._speed_samples

    def _update_effectiveness(self) -> None:
        trajectory = self.trajectory()
        completion = min(1.0, self._metrics.completed_cycles / _CYCLES_FOR_FULL_COMPLETION)
        self._metrics.effectiveness = _clamp01(
            trajectory.improvement * _W_IMPROVEMENT
            + trajectory.stability * _W_STABILITY
            + self._metrics.attention_level * _W_ATTENTION
            + completion * _W_COMPLETION
        )

    def _record(self, kind: EventKind, **fields: Any) -> None:
        event = AdaptationEvent(session_id=self.session_id, kind=kind, **fields)
        self._event_log.append(event)
        if self._dispatcher is None:
            return
        if len(self._outbox) == self._outbox.maxlen:
            logger.warning(
                "bls_controller.outbox_overflow",
                session=self.session_id,
                dropped_event=self._outbox[0].id,
                capacity=self._outbox.maxlen,
            )
        self._outbox.append(event)
