"""Request / response models for the session API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from adaptive_bls.models import AdaptiveParameters, EmotionSample


class SessionCreateRequest(BaseModel):
    session_id: str | None = None
    params: AdaptiveParameters | None = None
    interval_seconds: float | None = Field(None, gt=0)
    adaptive_mode: bool = True


class EmotionRequest(BaseModel):
    """Publish an emotion sample to a session's feed.

    With ``signed=true`` both values are read on the ``[-1, 1]`` scale.
    """

    arousal: float
    valence: float
    timestamp: datetime | None = None
    signed: bool = False

    def to_sample(self) -> EmotionSample:
        if self.signed:
            return EmotionSample.from_signed(self.arousal, self.valence, timestamp=self.timestamp)
        if self.timestamp is None:
            return EmotionSample(arousal=self.arousal, valence=self.valence)
        return EmotionSample(arousal=self.arousal, valence=self.valence, timestamp=self.timestamp)


class ParametersUpdateRequest(BaseModel):
    min_speed: float | None = None
    max_speed: float | None = None
    speed_change_rate: float | None = None
    pattern_switch_threshold: float | None = None
    color_adaptation: bool | None = None
    sound_adaptation: bool | None = None
