"""Trusted intermediary holding the provider client secrets.

The adapters never see client secrets: code exchange and token refresh for
Strava and Google, and wellness reads for Intervals.icu, are performed here
server-side.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/functions", tags=["functions"])

STRAVA_TOKEN_URL = "https://www.strava.com/oauth/token"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
INTERVALS_API_BASE = "https://intervals.icu/api/v1"


class StravaAuthRequest(BaseModel):
    code: Optional[str] = None
    redirect_uri: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class GoogleAuthRequest(BaseModel):
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    refresh_token: Optional[str] = None
    grant_type: Optional[str] = None


class IntervalsProxyRequest(BaseModel):
    endpoint: Optional[str] = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


@router.post("/strava-auth")
async def strava_auth(
    payload: StravaAuthRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if not payload.code:
        return _error("Missing code", 400)
    if not settings.strava_client_id or not settings.strava_client_secret:
        return _error("Server configuration error", 500)
    body = {
        "client_id": settings.strava_client_id,
        "client_secret": settings.strava_client_secret,
        "code": payload.code,
        "grant_type": "authorization_code",
    }
    return await _strava_token(client, body, "Failed to authenticate with Strava")


@router.post("/strava-refresh")
async def strava_refresh(
    payload: RefreshRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if not payload.refresh_token:
        return _error("Missing refresh token", 400)
    if not settings.strava_client_id or not settings.strava_client_secret:
        return _error("Server configuration error", 500)
    body = {
        "client_id": settings.strava_client_id,
        "client_secret": settings.strava_client_secret,
        "refresh_token": payload.refresh_token,
        "grant_type": "refresh_token",
    }
    return await _strava_token(client, body, "Failed to refresh token")


async def _strava_token(client: httpx.AsyncClient, body: dict[str, Any], failure: str):
    try:
        resp = await client.post(STRAVA_TOKEN_URL, json=body)
    except httpx.HTTPError as exc:
        logger.error("Strava token endpoint unreachable: %s", exc)
        return _error("Internal server error", 500)
    if resp.status_code >= 400:
        logger.warning("strava_token_error", extra={"status_code": resp.status_code, "body": resp.text[:500]})
        return _error(failure, resp.status_code)
    data = resp.json()
    return {
        "access_token": data.get("access_token"),
        "refresh_token": data.get("refresh_token"),
        "expires_at": data.get("expires_at"),
    }


@router.post("/google-auth")
async def google_auth(
    payload: GoogleAuthRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if not settings.google_client_id or not settings.google_client_secret:
        return _error("Server configuration error", 500)
    form = {"client_id": settings.google_client_id, "client_secret": settings.google_client_secret}
    if payload.grant_type == "refresh_token":
        if not payload.refresh_token:
            return _error("Missing refresh token", 400)
        form.update(refresh_token=payload.refresh_token, grant_type="refresh_token")
    else:
        if not payload.code or not payload.redirect_uri:
            return _error("Missing code or redirect_uri", 400)
        form.update(code=payload.code, grant_type="authorization_code", redirect_uri=payload.redirect_uri)

    try:
        resp = await client.post(GOOGLE_TOKEN_URL, data=form)
    except httpx.HTTPError as exc:
        logger.error("Google token endpoint unreachable: %s", exc)
        return _error("Internal server error", 500)
    if resp.status_code >= 400:
        logger.warning("google_token_error", extra={"status_code": resp.status_code, "body": resp.text[:500]})
        return _error("Failed to authenticate with Google", resp.status_code)
    data = resp.json()
    return {
        "access_token": data.get("access_token"),
        # Google omits the refresh token on refresh grants
        "refresh_token": data.get("refresh_token") or payload.refresh_token,
        "expires_in": data.get("expires_in"),
    }


@router.post("/intervals-proxy")
async def intervals_proxy(
    payload: IntervalsProxyRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if not payload.endpoint:
        return _error("Missing endpoint", 400)
    if not payload.endpoint.startswith("/"):
        return _error("Endpoint must be an absolute API path", 400)
    if not settings.intervals_athlete_id or not settings.intervals_api_key:
        return _error("Server configuration error", 500)
    url = INTERVALS_API_BASE + payload.endpoint.replace("{athleteId}", settings.intervals_athlete_id)
    try:
        resp = await client.get(url, auth=("API_KEY", settings.intervals_api_key))
    except httpx.HTTPError as exc:
        logger.error("Intervals.icu unreachable: %s", exc)
        return _error("Internal server error", 500)
    if resp.status_code >= 400:
        logger.warning("intervals_proxy_error", extra={"status_code": resp.status_code, "body": resp.text[:500]})
        return _error("Failed to fetch from Intervals.icu", resp.status_code)
    return resp.json()
