"""Configuration helpers for the studio job service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Provider credentials set here act as fallbacks; keys saved through the
    settings endpoint live in the key-value store and take precedence.
    """

    wavespeed_api_key: Optional[str] = os.getenv("WAVESPEED_API_KEY")
    elevenlabs_api_key: Optional[str] = os.getenv("ELEVENLABS_API_KEY")
    kie_api_key: Optional[str] = os.getenv("KIE_API_KEY")
    wavespeed_base_url: str = os.getenv("WAVESPEED_BASE_URL", "https://api.wavespeed.ai")
    elevenlabs_base_url: str = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io")
    kie_base_url: str = os.getenv("KIE_BASE_URL", "https://api.kie.ai")

    # Video job polling (seconds between checks, bounded attempts)
    poll_interval_seconds: float = _env_float("POLL_INTERVAL_SECONDS", 5.0)
    poll_max_attempts: int = _env_int("POLL_MAX_ATTEMPTS", 60)
    # Voice training is slower; ElevenLabs fine-tuning gets its own budget
    training_poll_interval_seconds: float = _env_float("TRAINING_POLL_INTERVAL_SECONDS", 10.0)
    training_poll_max_attempts: int = _env_int("TRAINING_POLL_MAX_ATTEMPTS", 120)
    http_timeout_seconds: float = _env_float("HTTP_TIMEOUT_SECONDS", 120.0)

    history_limit: int = _env_int("HISTORY_LIMIT", 100)
    # Finished jobs and runs kept in memory for status lookups before eviction
    tracked_limit: int = _env_int("TRACKED_LIMIT", 100)
    settings_store_path: Optional[str] = os.getenv("SETTINGS_STORE_PATH")
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_service_role_key: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
