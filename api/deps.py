from __future__ import annotations

from fastapi import Request

from core.services.dashboard import Dashboard
from core.services.session_store import SessionStore


def get_dashboard(request: Request) -> Dashboard:
    return request.app.state.dashboard


def get_store(request: Request) -> SessionStore:
    return request.app.state.dashboard.store
