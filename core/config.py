"""Application configuration with environment-specific profiles.

Supports dev, staging, and production environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_CALENDAR_MARKER = "📱 Cadence"


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"

    # Local mirrors (session cache, OAuth tokens)
    cache_path: str = ".cadence/cache.json"
    token_store_path: str = ".cadence/tokens.json"
    token_store_backend: str = "file"  # "file" or "sql"

    # Trusted intermediary performing OAuth exchanges with client secrets
    token_proxy_url: str = "http://127.0.0.1:8000/functions"
    redirect_uri: str = "http://127.0.0.1:8000/oauth/callback"

    strava_client_id: str = ""
    strava_client_secret: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    intervals_athlete_id: str = ""
    intervals_api_key: str = ""

    # Sync behaviour
    token_refresh_margin_sec: int = 60
    activity_lookback_days: int = 7
    wellness_lookback_days: int = 42
    http_timeout_sec: float = 30.0
    calendar_marker: str = DEFAULT_CALENDAR_MARKER

    cors_origins: tuple[str, ...] = ("http://localhost:5173",)
    request_id_header_name: str = "X-Request-ID"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "http_timeout_sec": 30.0,
    },
    "staging": {
        "log_level": "INFO",
        "http_timeout_sec": 20.0,
    },
    "production": {
        "log_level": "WARNING",
        "http_timeout_sec": 15.0,
    },
}


def get_database_url() -> str:
    """Resolve database URL from the environment or a local SQLite default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "sqlite:///.cadence/cadence.db"


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        cache_path=os.getenv("CADENCE_CACHE_PATH", ".cadence/cache.json"),
        token_store_path=os.getenv("CADENCE_TOKEN_STORE_PATH", ".cadence/tokens.json"),
        token_store_backend=os.getenv("TOKEN_STORE_BACKEND", "file").lower(),
        token_proxy_url=os.getenv("TOKEN_PROXY_URL", "http://127.0.0.1:8000/functions").rstrip("/"),
        redirect_uri=os.getenv("OAUTH_REDIRECT_URI", "http://127.0.0.1:8000/oauth/callback"),
        strava_client_id=os.getenv("STRAVA_CLIENT_ID", ""),
        strava_client_secret=os.getenv("STRAVA_CLIENT_SECRET", ""),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        intervals_athlete_id=os.getenv("INTERVALS_ATHLETE_ID", ""),
        intervals_api_key=os.getenv("INTERVALS_API_KEY", ""),
        token_refresh_margin_sec=int(os.getenv("TOKEN_REFRESH_MARGIN_SEC", "60")),
        activity_lookback_days=int(os.getenv("ACTIVITY_LOOKBACK_DAYS", "7")),
        wellness_lookback_days=int(os.getenv("WELLNESS_LOOKBACK_DAYS", "42")),
        http_timeout_sec=float(os.getenv("HTTP_TIMEOUT_SEC", str(profile.get("http_timeout_sec", 30.0)))),
        calendar_marker=os.getenv("CALENDAR_MARKER", "").strip() or DEFAULT_CALENDAR_MARKER,
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "http://localhost:5173")),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER", "X-Request-ID"),
    )
