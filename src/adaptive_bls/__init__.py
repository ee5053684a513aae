"""Adaptive bilateral stimulation (BLS) control for EMDR therapy sessions.

The core is :class:`~adaptive_bls.control.controller.AdaptiveBLSController`:
it consumes emotion samples (arousal / valence) and emits the speed,
pattern, colour, size and sound settings of the stimulation.
"""

__version__ = "0.1.0"
