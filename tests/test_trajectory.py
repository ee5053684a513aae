"""Tests for trajectory analysis."""

from __future__ import annotations

import pytest

from adaptive_bls.control.trajectory import analyze_trajectory, classify_trend
from adaptive_bls.models import EmotionSample, Trajectory, Trend


def _s(arousal: float, valence: float) -> EmotionSample:
    return EmotionSample(arousal=arousal, valence=valence)


class TestTrajectory:
    @pytest.mark.parametrize("n", [0, 1, 2])
    def test_short_history_is_neutral(self, n):
        samples = [_s(0.9, 0.1)] * n
        assert analyze_trajectory(samples) == Trajectory(
            stability=0.5, improvement=0.5, trend=Trend.STABLE
        )

    def test_constant_window_is_fully_stable(self):
        t = analyze_trajectory([_s(0.4, 0.6)] * 5)
        assert t.stability == pytest.approx(1.0)
        assert t.improvement == pytest.approx(0.5)
        assert t.trend is Trend.STABLE

    def test_improving_window(self):
        samples = [_s(0.8, 0.2)] * 5 + [_s(0.2, 0.8)] * 5
        t = analyze_trajectory(samples)
        # population variance of {0.8, 0.2} halves is 0.09 per dimension
        assert t.stability == pytest.approx(0.91)
        assert t.improvement == 1.0  # 1.1 before clamping
        assert t.trend is Trend.IMPROVING

    def test_worsening_window(self):
        samples = [_s(0.2, 0.8)] * 5 + [_s(0.8, 0.2)] * 5
        t = analyze_trajectory(samples)
        assert t.improvement == 0.0
        assert t.trend is Trend.WORSENING

    def test_only_the_last_ten_samples_are_analysed(self):
        samples = [_s(1.0, 0.0), _s(0.0, 1.0)] * 5 + [_s(0.5, 0.5)] * 10
        t = analyze_trajectory(samples)
        assert t.stability == pytest.approx(1.0)
        assert t.improvement == pytest.approx(0.5)

    def test_small_window_first_half_takes_the_floor(self):
        # 3 samples: first half = [s1], second half = [s2, s3]
        samples = [_s(0.5, 0.2), _s(0.5, 0.6), _s(0.5, 0.6)]
        t = analyze_trajectory(samples)
        assert t.improvement == pytest.approx(0.7)
        assert t.trend is Trend.IMPROVING

    def test_custom_window(self):
        samples = [_s(0.9, 0.1)] * 5 + [_s(0.5, 0.5)] * 3
        assert analyze_trajectory(samples, window=3).stability == pytest.approx(1.0)

    def test_values_stay_in_unit_interval(self):
        samples = [_s(1.0, 0.0), _s(0.0, 1.0)] * 5
        t = analyze_trajectory(samples)
        assert 0.0 <= t.stability <= 1.0
        assert 0.0 <= t.improvement <= 1.0


class TestClassifyTrend:
    @pytest.mark.parametrize(
        ("improvement", "trend"),
        [
            (0.61, Trend.IMPROVING),
            (0.6, Trend.STABLE),
            (0.5, Trend.STABLE),
            (0.4, Trend.STABLE),
            (0.39, Trend.WORSENING),
        ],
    )
    def test_thresholds(self, improvement, trend):
        assert classify_trend(improvement) is trend
