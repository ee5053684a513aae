"""Emotion input feeds."""
