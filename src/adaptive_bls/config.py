"""Centralised application settings loaded from environment / .env file."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from adaptive_bls.models import AdaptiveParameters

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _resolve_db_dir() -> Path:
    """Return (and create) the directory that holds the SQLite file."""
    d = _PROJECT_ROOT / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


_DB_DIR = _resolve_db_dir()
_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{_DB_DIR / 'adaptive_bls.db'}"


class Settings(BaseSettings):
    """All runtime configuration for the adaptive BLS service.

    Values are read from environment variables first, then from a *.env* file
    located at the project root.  Every variable lives in one flat namespace
    (``MIN_SPEED``, ``ADAPTATION_INTERVAL_SECONDS``, ...).
    """

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Adaptation loop ───────────────────────────────────────
    adaptation_interval_seconds: float = 2.0
    history_capacity: int = 30
    trajectory_window: int = 10

    # ── Adaptive parameters ───────────────────────────────────
    min_speed: float = 1.0
    max_speed: float = 10.0
    speed_change_rate: float = 0.5  # fraction of the remaining gap closed per cycle
    pattern_switch_threshold: float = 0.3
    color_adaptation: bool = True
    sound_adaptation: bool = True
    crisis_detection_enabled: bool = True

    # ── Emotion feed ──────────────────────────────────────────
    emotion_stale_after_seconds: float = 10.0

    # ── Database ──────────────────────────────────────────────
    database_url: str = _DEFAULT_DB_URL
    persist_adaptation_events: bool = True

    # ── API server ────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = int(os.getenv("PORT", "8000"))

    # ── CORS ──────────────────────────────────────────────────
    cors_origins: str = "*"  # comma-separated origins, or "*" for all

    # ── Sinks ─────────────────────────────────────────────────
    webhook_url: str = ""

    # ── Logging ───────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    def adaptive_parameters(self) -> AdaptiveParameters:
        """Build the controller's tunable constants from these settings."""
        return AdaptiveParameters(
            min_speed=self.min_speed,
            max_speed=self.max_speed,
            speed_change_rate=self.speed_change_rate,
            pattern_switch_threshold=self.pattern_switch_threshold,
            color_adaptation=self.color_adaptation,
            sound_adaptation=self.sound_adaptation,
        )


@lru_cache
def get_settings() -> Settings:
    """Return a cached :class:`Settings` singleton."""
    return Settings()
