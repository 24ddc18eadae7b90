"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from social_chair.core.config import Settings


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("SOCIAL_CHAIR_DATABASE_URL", raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.database_url.startswith("postgresql+asyncpg://")
    assert cfg.fetch_timeout_seconds == 5.0
    assert cfg.resolve_timeout_seconds == 10.0
    assert cfg.default_role_name == "Social Chair"
    assert cfg.default_tier == "free"
    assert cfg.log_format == "json"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SOCIAL_CHAIR_AUTH_URL", "https://auth.example.com")
    monkeypatch.setenv("SOCIAL_CHAIR_FETCH_TIMEOUT_SECONDS", "1.5")
    monkeypatch.setenv("SOCIAL_CHAIR_SEED_ROLE_NAMES", '["Social Chair", "Treasurer"]')

    cfg = Settings(_env_file=None)
    assert cfg.auth_url == "https://auth.example.com"
    assert cfg.fetch_timeout_seconds == 1.5
    assert cfg.seed_role_names == ["Social Chair", "Treasurer"]


def test_settings_from_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("SOCIAL_CHAIR_LOG_LEVEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("SOCIAL_CHAIR_LOG_LEVEL=debug\n")

    cfg = Settings(_env_file=env_file)
    assert cfg.log_level == "debug"


def test_invalid_log_format(monkeypatch):
    monkeypatch.setenv("SOCIAL_CHAIR_LOG_FORMAT", "xml")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
