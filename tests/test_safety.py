"""Tests for distress screening."""

from __future__ import annotations

import pytest

from adaptive_bls.control.safety import (
    CRISIS_INTERVENTIONS,
    MODERATE_INTERVENTIONS,
    assess_distress,
    is_crisis,
)
from adaptive_bls.models import DistressSeverity, EmotionSample


def _s(arousal: float, valence: float) -> EmotionSample:
    return EmotionSample(arousal=arousal, valence=valence)


class TestIsCrisis:
    @pytest.mark.parametrize(
        ("arousal", "valence", "expected"),
        [
            (0.95, 0.15, True),   # extreme distress
            (0.85, 0.05, True),   # trauma response
            (0.9, 0.1, False),    # both boundaries are strict
            (0.85, 0.15, False),
            (0.95, 0.25, False),
            (0.2, 0.0, False),
        ],
    )
    def test_thresholds(self, arousal, valence, expected):
        assert is_crisis(_s(arousal, valence)) is expected


class TestAssessDistress:
    def test_severe(self):
        result = assess_distress(_s(0.95, 0.1))
        assert result.is_crisis is True
        assert result.severity is DistressSeverity.SEVERE
        assert result.interventions == CRISIS_INTERVENTIONS

    def test_high(self):
        result = assess_distress(_s(0.85, 0.05))
        assert result.is_crisis is True
        assert result.severity is DistressSeverity.HIGH

    def test_moderate(self):
        result = assess_distress(_s(0.8, 0.25))
        assert result.is_crisis is False
        assert result.severity is DistressSeverity.MODERATE
        assert result.interventions == MODERATE_INTERVENTIONS

    def test_calm_is_low(self):
        result = assess_distress(_s(0.3, 0.7))
        assert result.is_crisis is False
        assert result.severity is DistressSeverity.LOW
        assert result.interventions == ()
