"""Unit tests for application settings."""

import pytest
from pydantic import ValidationError

from draft_engine.config import AppSettings, Environment, get_settings
from draft_engine.models import DraftSession


def test_test_defaults_are_safe():
    settings = get_settings()
    assert settings.is_test()
    assert settings.get_database_url().startswith("sqlite+aiosqlite")
    assert settings.PICK_TIME_LIMIT_S == 90
    assert settings.TICK_INTERVAL_S == 5.0
    assert settings.CIRCUIT_BREAKER_THRESHOLD == 3
    assert get_settings() is settings


def test_env_aliases_normalize(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    assert AppSettings().ENV == Environment.PROD
    monkeypatch.setenv("ENV", "local")
    assert AppSettings().ENV == Environment.DEV


def test_env_overrides_clock_settings(monkeypatch):
    monkeypatch.setenv("TICK_INTERVAL_S", "2.5")
    monkeypatch.setenv("AUTO_PICK_MAX_ATTEMPTS", "5")
    settings = AppSettings()
    assert settings.TICK_INTERVAL_S == 2.5
    assert settings.AUTO_PICK_MAX_ATTEMPTS == 5


@pytest.mark.parametrize("field, value", [
    ("LOG_LEVEL", "chatty"),
    ("LOG_FORMAT", "xml"),
    ("ENV", "staging"),
])
def test_invalid_values_are_rejected(monkeypatch, field, value):
    monkeypatch.setenv(field, value)
    with pytest.raises(ValidationError):
        AppSettings()


def test_log_level_is_uppercased(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert AppSettings().LOG_LEVEL == "DEBUG"


def test_session_pick_clock_defaults_from_settings(monkeypatch):
    monkeypatch.setenv("PICK_TIME_LIMIT_S", "45")
    get_settings.cache_clear()
    try:
        assert DraftSession(session_id=1, team_ids=[1]).pick_time_limit == 45
        assert DraftSession(session_id=2, team_ids=[1], pick_time_limit=10).pick_time_limit == 10
    finally:
        get_settings.cache_clear()
