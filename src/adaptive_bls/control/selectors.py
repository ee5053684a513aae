"""Parameter selectors — map emotion + trajectory + metrics to BLS settings.

Every selector is a pure function of its inputs.  :func:`build_candidate`
assembles them into the configuration proposed for the next cycle.

Rules in brief
--------------
* **Speed** — first-order low-pass toward an arousal-dependent target
  (slow down when aroused, speed up when flat).
* **Pattern** — ordered rule cascade, first match wins; acute distress
  always forces ``horizontal``.
* **Colour** — lookup by (valence, arousal) band.
* **Sound** — only for moderate arousal.
* **Size** — larger for low attention or high arousal.
"""

from __future__ import annotations

from adaptive_bls.models import (
    AdaptiveParameters,
    BLSConfiguration,
    BLSMetrics,
    BLSPattern,
    EmotionSample,
    Trajectory,
)

# ── Thresholds ────────────────────────────────────────────────

HIGH_AROUSAL = 0.7
LOW_AROUSAL = 0.3
MIDPOINT_SPEED = 5.0

DISTRESS_VALENCE = 0.4
STABLE_ABOVE = 0.7
LOW_ATTENTION = 0.5
REWARD_IMPROVEMENT = 0.6
REWARD_MIN_CYCLES = 10

SOUND_AROUSAL_RANGE = (0.3, 0.8)

BASE_SIZE = 20.0
MIN_SIZE = 15.0
MAX_SIZE = 35.0

# Colours
CALMING_GREEN = "#10b981"
SOOTHING_BLUE = "#3b82f6"
ENERGIZING_PURPLE = "#8b5cf6"
CALMING_TEAL = "#14b8a6"
NEUTRAL_INDIGO = "#6366f1"

# One-step promotions while the emotional state is stable.
_PATTERN_LADDER: dict[BLSPattern, BLSPattern] = {
    BLSPattern.HORIZONTAL: BLSPattern.DIAGONAL,
    BLSPattern.DIAGONAL: BLSPattern.CIRCLE,
}


def target_speed(arousal: float, params: AdaptiveParameters) -> float:
    """Speed the controller is steering toward for the given arousal."""
    if arousal > HIGH_AROUSAL:
        return params.min_speed + 2
    if arousal < LOW_AROUSAL:
        return params.max_speed - 3
    return MIDPOINT_SPEED


def select_speed(
    emotion: EmotionSample,
    current: BLSConfiguration,
    params: AdaptiveParameters,
) -> float:
    """Move the current speed a fraction of the way toward the target."""
    target = target_speed(emotion.arousal, params)
    adjusted = current.speed + (target - current.speed) * params.speed_change_rate
    return max(params.min_speed, min(params.max_speed, adjusted))


def select_pattern(
    emotion: EmotionSample,
    trajectory: Trajectory,
    metrics: BLSMetrics,
    current: BLSConfiguration,
) -> tuple[BLSPattern, bool]:
    """Return ``(pattern, promoted)``.

    ``promoted`` is true when the stable-state ladder advanced the pattern;
    the caller counts those as pattern changes.
    """
    if emotion.arousal > HIGH_AROUSAL and emotion.valence < DISTRESS_VALENCE:
        return BLSPattern.HORIZONTAL, False

    if trajectory.stability > STABLE_ABOVE and current.pattern in _PATTERN_LADDER:
        return _PATTERN_LADDER[current.pattern], True

    if metrics.attention_level < LOW_ATTENTION:
        return BLSPattern.VERTICAL, False

    if (
        trajectory.improvement > REWARD_IMPROVEMENT
        and metrics.completed_cycles > REWARD_MIN_CYCLES
    ):
        return BLSPattern.WAVE_3D, False

    return current.pattern, False


def select_color(emotion: EmotionSample) -> str:
    valence, arousal = emotion.valence, emotion.arousal
    if valence < 0.3 and arousal > 0.6:
        return CALMING_GREEN
    if valence < 0.4:
        return SOOTHING_BLUE
    if valence > 0.6:
        return ENERGIZING_PURPLE
    if arousal > 0.7:
        return CALMING_TEAL
    return NEUTRAL_INDIGO


def select_sound(emotion: EmotionSample) -> bool:
    low, high = SOUND_AROUSAL_RANGE
    return low < emotion.arousal < high


def select_size(emotion: EmotionSample, metrics: BLSMetrics) -> float:
    size = BASE_SIZE + (1 - metrics.attention_level) * 10 + emotion.arousal * 5
    return max(MIN_SIZE, min(MAX_SIZE, size))


def build_candidate(
    emotion: EmotionSample,
    trajectory: Trajectory,
    metrics: BLSMetrics,
    current: BLSConfiguration,
    params: AdaptiveParameters,
) -> tuple[BLSConfiguration, bool]:
    """Compose the configuration proposed for this cycle.

    Colour and sound keep their current values unless the matching
    adaptation flag is enabled.  ``adaptive_mode`` is carried over as-is.
    Returns ``(candidate, pattern_promoted)``.
    """
    pattern, promoted = select_pattern(emotion, trajectory, metrics, current)
    candidate = BLSConfiguration(
        speed=select_speed(emotion, current, params),
        pattern=pattern,
        color=select_color(emotion) if params.color_adaptation else current.color,
        size=select_size(emotion, metrics),
        sound_enabled=select_sound(emotion) if params.sound_adaptation else current.sound_enabled,
        adaptive_mode=current.adaptive_mode,
    )
    return candidate, promoted
