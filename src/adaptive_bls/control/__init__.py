"""Adaptive control core — history, trajectory analysis, selectors, controller."""

from adaptive_bls.control.controller import AdaptiveBLSController
from adaptive_bls.control.history import EmotionHistory
from adaptive_bls.control.safety import assess_distress
from adaptive_bls.control.selectors import build_candidate
from adaptive_bls.control.trajectory import analyze_trajectory

__all__ = [
    "AdaptiveBLSController",
    "EmotionHistory",
    "analyze_trajectory",
    "assess_distress",
    "build_candidate",
]
