"""Shared Pydantic models used across the adaptive BLS service.

These models represent:
- Emotion samples consumed by the controller (arousal / valence in [0, 1])
- The BLS configuration it emits (speed, pattern, colour, size, sound)
- Tunable adaptive parameters and running session metrics
- Trajectory summaries, distress assessments and adaptation events
"""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ─────────────────────────────────────────────────────


class BLSPattern(str, Enum):
    """Movement pattern of the stimulation target, simplest first."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    DIAGONAL = "diagonal"
    CIRCLE = "circle"
    WAVE_3D = "3d-wave"


class Trend(str, Enum):
    """Direction of the emotional trajectory over the analysis window."""

    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"


class MetricsEventType(str, Enum):
    """Manual instrumentation events reported by the session orchestrator."""

    CYCLE_COMPLETE = "cycle_complete"
    SET_COMPLETE = "set_complete"
    PATTERN_CHANGE = "pattern_change"
    ATTENTION_UPDATE = "attention_update"


class EventKind(str, Enum):
    """Kinds of events the controller forwards to its sinks."""

    CONFIG_CHANGED = "config_changed"
    CRISIS_DETECTED = "crisis_detected"
    METRICS_UPDATED = "metrics_updated"


class DistressSeverity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


# ── Emotion input ─────────────────────────────────────────────


class EmotionSample(BaseModel):
    """A point-in-time emotion measurement.

    Both dimensions use the controller's ``[0, 1]`` convention.  Finite
    values outside the range are clamped on ingest; NaN / infinity are
    rejected.  Producers that report on a ``[-1, 1]`` scale must go
    through :meth:`from_signed`.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    arousal: float = Field(description="Activation level [0=calm, 1=highly aroused].")
    valence: float = Field(description="Positivity [0=negative, 1=positive].")

    @field_validator("arousal", "valence")
    @classmethod
    def _clamp_unit_interval(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be a finite number")
        return min(1.0, max(0.0, v))

    @classmethod
    def from_signed(
        cls,
        arousal: float,
        valence: float,
        *,
        timestamp: datetime | None = None,
    ) -> EmotionSample:
        """Build a sample from values on the ``[-1, 1]`` scale."""
        return cls(
            arousal=(arousal + 1.0) / 2.0,
            valence=(valence + 1.0) / 2.0,
            timestamp=timestamp or _utcnow(),
        )


# ── Control signal ────────────────────────────────────────────


class BLSConfiguration(BaseModel):
    """Stimulation parameters pushed to the rendering layer.

    Immutable: every adaptation cycle produces a new value and equality
    is field-by-field.
    """

    model_config = ConfigDict(frozen=True)

    speed: float = 5.0
    pattern: BLSPattern = BLSPattern.HORIZONTAL
    color: str = Field("#3b82f6", pattern=r"^#[0-9a-fA-F]{6}$")
    size: float = 20.0
    sound_enabled: bool = True
    adaptive_mode: bool = False


def default_configuration(*, adaptive_mode: bool = False) -> BLSConfiguration:
    """Return the configuration a controller starts from (and resets to)."""
    return BLSConfiguration(
        speed=5.0,
        pattern=BLSPattern.HORIZONTAL,
        color="#3b82f6",
        size=20.0,
        sound_enabled=True,
        adaptive_mode=adaptive_mode,
    )


class AdaptiveParameters(BaseModel):
    """Tunable constants of the adaptation algorithm."""

    model_config = ConfigDict(frozen=True)

    min_speed: float = Field(1.0, ge=0.0)
    max_speed: float = Field(10.0, ge=0.0)
    speed_change_rate: float = Field(0.5, gt=0.0, le=1.0)
    pattern_switch_threshold: float = 0.3
    color_adaptation: bool = True
    sound_adaptation: bool = True

    @model_validator(mode="after")
    def _check_speed_bounds(self) -> AdaptiveParameters:
        if self.min_speed > self.max_speed:
            raise ValueError("min_speed must not exceed max_speed")
        return self


# ── Metrics & analysis ────────────────────────────────────────


class BLSMetrics(BaseModel):
    """Running counters for one therapy session."""

    total_sets: int = 0
    completed_cycles: int = 0
    average_speed: float = 5.0
    pattern_changes: int = 0
    attention_level: float = Field(1.0, ge=0.0, le=1.0)
    effectiveness: float = Field(0.5, ge=0.0, le=1.0)


class MetricsEvent(BaseModel):
    """A manual instrumentation event for :meth:`update_metrics`."""

    type: MetricsEventType
    value: float | None = None  # only read for ``attention_update``


class Trajectory(BaseModel):
    """Summary of the recent emotion window."""

    model_config = ConfigDict(frozen=True)

    stability: float = Field(0.5, ge=0.0, le=1.0)
    improvement: float = Field(0.5, ge=0.0, le=1.0)
    trend: Trend = Trend.STABLE

    @classmethod
    def neutral(cls) -> Trajectory:
        """Value used while the history is too short to analyse."""
        return cls(stability=0.5, improvement=0.5, trend=Trend.STABLE)


class DistressAssessment(BaseModel):
    """Crisis screening result for a single emotion sample."""

    model_config = ConfigDict(frozen=True)

    is_crisis: bool = False
    severity: DistressSeverity = DistressSeverity.LOW
    interventions: tuple[str, ...] = ()


# ── Events ────────────────────────────────────────────────────


class AdaptationEvent(BaseModel):
    """Something the controller emitted, forwarded to sinks and the event log."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    kind: EventKind
    timestamp: datetime = Field(default_factory=_utcnow)
    config: BLSConfiguration | None = None
    emotion: EmotionSample | None = None
    trajectory: Trajectory | None = None
    metrics: BLSMetrics | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
