# config.py

"""Queueboard settings.

``config.json`` next to this file supplies the defaults for a deployment;
any field can be overridden by an environment variable of the same name in
upper case (``DATABASE_URL``, ``OPERATION_TIMEOUT_SECS`` ...).
"""

from __future__ import annotations

import json
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE = Path(__file__).with_name("config.json")


class AppEnv(str, Enum):
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: AppEnv = AppEnv.DEV
    database_url: str = "sqlite+aiosqlite:///./queueboard.db"
    redis_url: str | None = None
    log_level: str = "INFO"
    error_dsn: str | None = None
    slow_query_ms: int = 200

    # token ordering
    operation_timeout_secs: float = 10.0
    near_front_threshold: int = 3
    default_service_minutes: int = 15
    timezone: str = "UTC"
    auto_serve_poll_secs: int = 30

    # read side
    analytics_cache_secs: int = 300
    public_display_size: int = 10
    sse_keepalive_secs: int = 15
    change_queue_max: int = 100


def _env_overrides() -> dict[str, str]:
    return {
        key.lower(): value
        for key, value in os.environ.items()
        if key.lower() in Settings.model_fields
    }


@lru_cache
def get_settings() -> Settings:
    """Load ``config.json`` once and apply environment overrides on top."""
    data = json.loads(CONFIG_FILE.read_text()) if CONFIG_FILE.exists() else {}
    return Settings(**{**data, **_env_overrides()})
