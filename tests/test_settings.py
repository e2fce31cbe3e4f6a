# test_settings.py
import json
import pathlib
import sys
from pathlib import Path

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from config import AppEnv, get_settings  # noqa: E402

CONFIG_JSON = Path(__file__).resolve().parents[1] / "config.json"


def _settings():
    return get_settings()


def test_defaults_from_config(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = _settings()
    data = json.loads(CONFIG_JSON.read_text())
    assert settings.redis_url == data["redis_url"]
    assert settings.database_url == data["database_url"]
    assert settings.near_front_threshold == 3
    assert settings.default_service_minutes == 15


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://override")
    monkeypatch.setenv("OPERATION_TIMEOUT_SECS", "2.5")
    monkeypatch.setenv("APP_ENV", "prod")
    settings = _settings()
    assert settings.redis_url == "redis://override"
    assert settings.operation_timeout_secs == 2.5
    assert settings.app_env is AppEnv.PROD
