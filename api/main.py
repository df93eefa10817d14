from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.observability import install_request_logging
from api.proxy import router as proxy_router
from api.routes import router
from core.config import Settings, get_settings
from core.db import init_db, make_engine, make_session_factory
from core.errors import (
    ActualSessionLockedError,
    AuthError,
    BulkImportError,
    NotConnectedError,
    PlannedSessionLockedError,
    PlannerError,
    ProviderError,
    SessionNotFoundError,
)
from core.logging_config import setup_logging
from core.repositories import SqlSessionRepository, SqlSettingsRepository
from core.services.dashboard import Dashboard
from core.services.integrations.google_calendar import GoogleCalendarAdapter
from core.services.integrations.intervals import WellnessAdapter
from core.services.integrations.strava import StravaAdapter
from core.services.integrations.tokens import FileTokenStore, SqlTokenStore, TokenStore
from core.services.session_store import SessionStore
from core.storage import JsonFileStore

logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[PlannerError], int]] = [
    (SessionNotFoundError, 404),
    (ActualSessionLockedError, 409),
    (PlannedSessionLockedError, 409),
    (BulkImportError, 422),
    (NotConnectedError, 409),
    (AuthError, 401),
    (ProviderError, 502),
]


def error_status(exc: PlannerError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def planner_error_handler(request: Request, exc: PlannerError) -> JSONResponse:
    status_code = error_status(exc)
    body: dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, BulkImportError) and exc.details:
        body["errors"] = exc.details
    provider = getattr(exc, "provider", None)
    if provider:
        body["provider"] = provider
    log = logger.warning if status_code >= 500 else logger.info
    log("planner_error", extra={"error_type": type(exc).__name__, "status_code": status_code, "path": request.url.path})
    return JSONResponse(body, status_code=status_code)


def build_token_store(settings: Settings, session_factory) -> TokenStore:
    if settings.token_store_backend == "sql":
        return SqlTokenStore(session_factory)
    return FileTokenStore(JsonFileStore(settings.token_store_path))


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = make_engine(settings.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)
        client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_sec)
        token_store = build_token_store(settings, session_factory)

        store = SessionStore(SqlSessionRepository(session_factory), JsonFileStore(settings.cache_path))
        dashboard = Dashboard(
            store,
            SqlSettingsRepository(session_factory),
            StravaAdapter(settings, token_store, client),
            GoogleCalendarAdapter(settings, token_store, client),
            WellnessAdapter(
                client,
                proxy_url=settings.token_proxy_url if settings.intervals_athlete_id and settings.intervals_api_key else None,
            ),
            activity_lookback_days=settings.activity_lookback_days,
            wellness_lookback_days=settings.wellness_lookback_days,
        )
        app.state.settings = settings
        app.state.http_client = client
        app.state.dashboard = dashboard

        await store.initialize()
        logger.info(
            "app_started",
            extra={"app_env": settings.app_env, "sessions": len(store.sessions), "synced": store.is_synced},
        )
        try:
            yield
        finally:
            await store.wait_pending()
            if http_client is None:
                await client.aclose()
            engine.dispose()

    app = FastAPI(title="Cadence Planner API", version="1.0.0", lifespan=lifespan)
    app.add_exception_handler(PlannerError, planner_error_handler)
    app.include_router(router)
    app.include_router(proxy_router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_request_logging(app, settings.request_id_header_name or "X-Request-ID")

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "ok", "env": settings.app_env}

    return app


app = create_app()
