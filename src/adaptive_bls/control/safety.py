"""Distress screening for incoming emotion samples.

The assessment never changes the stimulation rules; it is reported as a
``crisis_detected`` event so the therapist-facing layer can intervene.
"""

from __future__ import annotations

from adaptive_bls.models import DistressAssessment, DistressSeverity, EmotionSample

CRISIS_INTERVENTIONS: tuple[str, ...] = (
    "Stop bilateral stimulation immediately",
    "Implement grounding techniques",
    "Return to stabilization resources",
    "Consider session pause or termination",
    "Activate safety protocols",
)

MODERATE_INTERVENTIONS: tuple[str, ...] = (
    "Slow down stimulation speed",
    "Use calming colors and sounds",
    "Increase therapist support",
    "Consider brief resource break",
)


def is_crisis(sample: EmotionSample) -> bool:
    """Extreme distress, or a severe trauma response."""
    return (sample.arousal > 0.9 and sample.valence < 0.2) or (
        sample.arousal > 0.8 and sample.valence < 0.1
    )


def assess_distress(sample: EmotionSample) -> DistressAssessment:
    if is_crisis(sample):
        return DistressAssessment(
            is_crisis=True,
            severity=DistressSeverity.SEVERE if sample.arousal > 0.9 else DistressSeverity.HIGH,
            interventions=CRISIS_INTERVENTIONS,
        )

    if sample.arousal > 0.75 and sample.valence < 0.3:
        return DistressAssessment(
            is_crisis=False,
            severity=DistressSeverity.MODERATE,
            interventions=MODERATE_INTERVENTIONS,
        )

    return DistressAssessment()
