"""Tests for configuration module."""

from __future__ import annotations

import pytest

from core.config import Settings, _ENV_PROFILES, get_database_url, get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_dataclass():
    s = Settings(database_url="sqlite:///x.db")
    assert s.database_url == "sqlite:///x.db"
    assert s.app_env == "dev"
    assert s.token_store_backend == "file"
    assert s.token_refresh_margin_sec == 60
    assert s.activity_lookback_days == 7
    assert s.wellness_lookback_days == 42
    assert s.calendar_marker == "📱 Cadence"


def test_settings_frozen():
    s = Settings(database_url="x")
    try:
        s.database_url = "y"
        assert False, "Should raise"
    except AttributeError:
        pass


def test_settings_is_production():
    s = Settings(database_url="x", app_env="production")
    assert s.is_production is True
    assert s.is_dev is False


def test_get_database_url_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://from-env/db")
    assert get_database_url() == "postgresql://from-env/db"


def test_get_database_url_default(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert get_database_url().startswith("sqlite:///")


def test_get_settings_uses_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///env.db")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("TOKEN_PROXY_URL", "https://functions.example.com/v1/")
    monkeypatch.setenv("TOKEN_STORE_BACKEND", "SQL")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
    s = get_settings()
    assert s.database_url == "sqlite:///env.db"
    assert s.app_env == "production"
    assert s.token_proxy_url == "https://functions.example.com/v1"
    assert s.token_store_backend == "sql"
    assert s.cors_origins == ("https://a.example", "https://b.example")


def test_env_profiles_exist():
    assert set(_ENV_PROFILES) == {"dev", "staging", "production"}


def test_settings_profile_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("HTTP_TIMEOUT_SEC", raising=False)
    s = get_settings()
    assert s.log_level == "WARNING"
    assert s.http_timeout_sec == 15.0


def test_unknown_env_falls_back_to_dev_profile(monkeypatch):
    monkeypatch.setenv("APP_ENV", "qa")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert get_settings().log_level == "DEBUG"


def test_blank_calendar_marker_uses_default(monkeypatch):
    monkeypatch.setenv("CALENDAR_MARKER", "   ")
    assert get_settings().calendar_marker == "📱 Cadence"
