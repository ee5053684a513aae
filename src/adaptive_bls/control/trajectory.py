"""Trajectory analysis — stability, improvement and trend over recent emotions.

Stability is the inverse of the mean population variance of arousal and
valence across the analysis window.  Improvement compares the two halves
of the window: valence rising and arousal falling both count as progress,
recentred around the neutral midpoint ``0.5``.
"""

from __future__ import annotations

import statistics
from typing import Sequence

from adaptive_bls.models import EmotionSample, Trajectory, Trend

MIN_SAMPLES = 3
DEFAULT_WINDOW = 10

IMPROVING_ABOVE = 0.6
WORSENING_BELOW = 0.4


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _pvariance(values: Sequence[float]) -> float:
    return statistics.pvariance(values) if values else 0.0


def classify_trend(improvement: float) -> Trend:
    if improvement > IMPROVING_ABOVE:
        return Trend.IMPROVING
    if improvement < WORSENING_BELOW:
        return Trend.WORSENING
    return Trend.STABLE


def analyze_trajectory(
    samples: Sequence[EmotionSample],
    window: int = DEFAULT_WINDOW,
) -> Trajectory:
    """Summarise the most recent *window* samples.

    Fewer than three samples yield :meth:`Trajectory.neutral`.  The window
    is split with the first half taking ``n // 2`` samples.
    """
    if len(samples) < MIN_SAMPLES:
        return Trajectory.neutral()

    recent = list(samples)[-window:]
    arousal = [s.arousal for s in recent]
    valence = [s.valence for s in recent]

    stability = 1.0 - (_pvariance(arousal) + _pvariance(valence)) / 2.0

    split = len(recent) // 2
    first, second = recent[:split], recent[split:]
    valence_improvement = _mean([s.valence for s in second]) - _mean([s.valence for s in first])
    arousal_improvement = _mean([s.arousal for s in first]) - _mean([s.arousal for s in second])
    improvement = _clamp01((valence_improvement + arousal_improvement) / 2.0 + 0.5)

    return Trajectory(
        stability=_clamp01(stability),
        improvement=improvement,
        trend=classify_trend(improvement),
    )
