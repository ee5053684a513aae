"""Persistence of controller events."""
