"""Shared pytest fixtures."""

from __future__ import annotations

import os
import tempfile

# Point the service at a throwaway database before any settings are cached.
_TMP_DIR = tempfile.mkdtemp(prefix="adaptive-bls-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/test.db")
os.environ.setdefault("WEBHOOK_URL", "")

import pytest  # noqa: E402

from adaptive_bls.control.controller import AdaptiveBLSController  # noqa: E402
from adaptive_bls.models import (  # noqa: E402
    AdaptationEvent,
    AdaptiveParameters,
    BLSConfiguration,
    BLSMetrics,
    EmotionSample,
)
from adaptive_bls.sinks.handlers import EventSink, SinkDispatcher  # noqa: E402


class RecordingSink(EventSink):
    """Collects every event it receives."""

    name = "recording"

    def __init__(self) -> None:
        self.events: list[AdaptationEvent] = []

    async def send(self, event: AdaptationEvent) -> bool:
        self.events.append(event)
        return True


def sample(arousal: float, valence: float) -> EmotionSample:
    return EmotionSample(arousal=arousal, valence=valence)


@pytest.fixture
def params() -> AdaptiveParameters:
    return AdaptiveParameters()


@pytest.fixture
def default_config() -> BLSConfiguration:
    return BLSConfiguration()


@pytest.fixture
def metrics() -> BLSMetrics:
    return BLSMetrics()


@pytest.fixture
def controller(params: AdaptiveParameters) -> AdaptiveBLSController:
    return AdaptiveBLSController(params, session_id="S-test")


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def dispatcher(recording_sink: RecordingSink) -> SinkDispatcher:
    return SinkDispatcher(sinks=[recording_sink])


@pytest.fixture
def distressed() -> EmotionSample:
    return sample(0.9, 0.1)


@pytest.fixture
def calm_positive() -> EmotionSample:
    return sample(0.2, 0.8)
