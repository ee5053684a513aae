"""Event sinks — log, webhook, and database delivery of adaptation events.

Architecture
~~~~~~~~~~~~
* **EventSink** — abstract base for delivery channels.
* **LogSink / WebhookSink / RepositorySink** — concrete channels.
* **SinkDispatcher** — fan-out with error-isolation and results.
* **create_dispatcher()** — factory that wires sinks from settings.

Adding a new channel
~~~~~~~~~~~~~~~~~~~~
1. Subclass ``EventSink``.
2. Implement ``async send(event) -> bool``.
3. Optionally set ``name`` and override ``should_handle``.
4. Register via ``dispatcher.add_sink(...)`` or add to the factory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

from adaptive_bls.models import AdaptationEvent, EventKind

if TYPE_CHECKING:
    from adaptive_bls.config import Settings
    from adaptive_bls.storage.repository import AdaptationEventRepository

logger = structlog.get_logger(__name__)


# ── Dispatch result ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome summary for a single ``dispatch()`` call."""

    event_id: str | None
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return len(self.failed) == 0


# ── Abstract sink ─────────────────────────────────────────────


class EventSink(ABC):
    """Contract for adaptation-event delivery channels."""

    name: str = "base"

    @abstractmethod
    async def send(self, event: AdaptationEvent) -> bool:
        """Deliver an event.  Return ``True`` on success."""

    def should_handle(self, event: AdaptationEvent) -> bool:  # noqa: ARG002
        """Return ``False`` to skip this event (default: handle all)."""
        return True


# ── Concrete sinks ────────────────────────────────────────────


class LogSink(EventSink):
    """Write events to the structured log (always enabled)."""

    name = "log"

    async def send(self, event: AdaptationEvent) -> bool:
        fields: dict[str, object] = {"session": event.session_id, "kind": event.kind.value}
        if event.config is not None:
            fields.update(
                speed=round(event.config.speed, 3),
                pattern=event.config.pattern.value,
                color=event.config.color,
            )
        if event.detail:
            fields.update(event.detail)
        if event.kind is EventKind.CRISIS_DETECTED:
            logger.warning("sink.log", **fields)
        else:
            logger.info("sink.log", **fields)
        return True


class WebhookSink(EventSink):
    """POST event JSON to an external webhook URL."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        kinds: set[EventKind] | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._kinds = kinds

    def should_handle(self, event: AdaptationEvent) -> bool:
        return self._kinds is None or event.kind in self._kinds

    async def send(self, event: AdaptationEvent) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=event.model_dump(mode="json"))
                resp.raise_for_status()
            logger.debug("sink.webhook_sent", url=self._url, event_id=event.id)
            return True
        except Exception as exc:
            logger.error("sink.webhook_failed", url=self._url, error=str(exc))
            return False


class RepositorySink(EventSink):
    """Persist events through :class:`AdaptationEventRepository`."""

    name = "repository"

    def __init__(self, repository: AdaptationEventRepository) -> None:
        self._repository = repository

    async def send(self, event: AdaptationEvent) -> bool:
        await self._repository.save(event)
        return True


# ── Dispatcher ────────────────────────────────────────────────


class SinkDispatcher:
    """Fan-out events to registered sinks with error isolation.

    Each sink is invoked independently; a failure in one channel never
    blocks delivery to the others.
    """

    def __init__(self, *, sinks: list[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = sinks if sinks is not None else [LogSink()]

    # ── Sink management ───────────────────────────────────────

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, name: str) -> bool:
        """Remove the first sink matching *name*. Return ``True`` if found."""
        for i, s in enumerate(self._sinks):
            if s.name == name:
                self._sinks.pop(i)
                return True
        return False

    @property
    def sink_names(self) -> list[str]:
        return [s.name for s in self._sinks]

    # ── Dispatch ──────────────────────────────────────────────

    async def dispatch(self, event: AdaptationEvent) -> DispatchResult:
        """Send *event* to every sink, collecting per-sink outcomes.

        A sink that raises is caught, logged, and marked as failed so
        remaining sinks still execute.
        """
        sent: list[str] = []
        failed: list[str] = []

        for sink in self._sinks:
            if not sink.should_handle(event):
                continue
            try:
                ok = await sink.send(event)
                (sent if ok else failed).append(sink.name)
            except Exception:
                logger.exception("sink.error", sink=sink.name, event_id=event.id)
                failed.append(sink.name)

        result = DispatchResult(event_id=event.id, sent=sent, failed=failed)
        if result.failed:
            logger.warning("sink.partial_failure", event_id=event.id, failed=result.failed)
        return result

    async def dispatch_many(self, events: list[AdaptationEvent]) -> list[DispatchResult]:
        return [await self.dispatch(e) for e in events]


# ── Factory ───────────────────────────────────────────────────


def create_dispatcher(
    settings: Settings,
    repository: AdaptationEventRepository | None = None,
) -> SinkDispatcher:
    """Build a :class:`SinkDispatcher` wired from application settings.

    * **LogSink** is always registered.
    * **RepositorySink** is added when a repository is given and
      ``settings.persist_adaptation_events`` is true.
    * **WebhookSink** is added when ``settings.webhook_url`` is non-empty.
    """
    dispatcher = SinkDispatcher()

    if repository is not None and settings.persist_adaptation_events:
        dispatcher.add_sink(RepositorySink(repository))

    if settings.webhook_url:
        dispatcher.add_sink(WebhookSink(settings.webhook_url))

    return dispatcher
