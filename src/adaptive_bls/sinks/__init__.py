"""Sink sub-package — delivery of controller events."""

from adaptive_bls.sinks.handlers import (
    EventSink,
    SinkDispatcher,
    create_dispatcher,
)

__all__ = ["EventSink", "SinkDispatcher", "create_dispatcher"]
