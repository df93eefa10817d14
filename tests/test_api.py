"""HTTP surface tests: routes, error mapping and the token intermediary."""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import create_app, error_status
from api.observability import request_log_fields
from core.config import Settings
from core.errors import (
    ActualSessionLockedError,
    AuthError,
    BulkImportError,
    NotConnectedError,
    PlannerError,
    ProviderError,
    SessionNotFoundError,
)

FAR_FUTURE = 4_000_000_000


class ProviderDouble:
    """Routes outbound provider calls made through the shared HTTP client."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.activities: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith("https://www.strava.com/oauth/token"):
            body = json.loads(request.content)
            if body.get("code") == "bad":
                return httpx.Response(400, json={"message": "Bad Request"})
            return httpx.Response(200, json={"access_token": "sa", "refresh_token": "sr", "expires_at": FAR_FUTURE, "athlete": {}})
        if url.startswith("https://www.strava.com/api/v3/athlete/activities"):
            return httpx.Response(200, json=self.activities)
        if url.startswith("https://www.strava.com/api/v3/activities/"):
            activity_id = url.rsplit("/", 1)[-1]
            return httpx.Response(200, json=next(a for a in self.activities if str(a["id"]) == activity_id))
        if url.startswith("https://oauth2.googleapis.com/token"):
            return httpx.Response(200, json={"access_token": "ga", "expires_in": 3599})
        if url.startswith("http://127.0.0.1:8000/functions/intervals-proxy"):
            return httpx.Response(200, json=[])
        if url.startswith("http://127.0.0.1:8000/functions/strava-auth"):
            return httpx.Response(200, json={"access_token": "sa", "refresh_token": "sr", "expires_at": FAR_FUTURE})
        if url.startswith("https://intervals.icu/api/v1/athlete/i9/wellness"):
            return httpx.Response(200, json=[])
        if url.startswith("https://intervals.icu/api/v1/athlete/i9/activities"):
            return httpx.Response(200, json=[{"id": "i1"}])
        return httpx.Response(404, json={"error": "unexpected"})


@pytest.fixture
def provider():
    return ProviderDouble()


@pytest.fixture
def client(tmp_path, provider):
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        cache_path=str(tmp_path / "cache.json"),
        token_store_path=str(tmp_path / "tokens.json"),
        strava_client_id="123",
        strava_client_secret="strava-secret",
        google_client_id="g-123",
        google_client_secret="google-secret",
        intervals_athlete_id="i9",
        intervals_api_key="ikey",
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    app = create_app(settings, http_client=http_client)
    with TestClient(app) as test_client:
        yield test_client


def _create(client, **overrides):
    body = {"sport": "cycling", "title": "Endurance Z2", "duration_min": 90, "date": "2025-03-10"}
    body.update(overrides)
    resp = client.post("/api/v1/sessions", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _import_ride(client, provider, activity_id, name="Morning Ride"):
    provider.activities.append(
        {
            "id": activity_id,
            "name": name,
            "sport_type": "Ride",
            "start_date_local": "2025-03-10T07:00:00Z",
            "moving_time": 3600,
            "distance": 30000.0,
        }
    )
    client.post("/api/v1/strava/callback", json={"code": "abc"})
    resp = client.post("/api/v1/strava/import")
    assert resp.status_code == 200, resp.text
    return client.get(f"/api/v1/sessions/{resp.json()['spotlight_id']}").json()


# ── Error mapping ────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "exc,status",
    [
        (SessionNotFoundError("x"), 404),
        (ActualSessionLockedError("x", "deleted"), 409),
        (BulkImportError("bad"), 422),
        (NotConnectedError("strava"), 409),
        (AuthError("google", "expired"), 401),
        (ProviderError("strava", "down"), 502),
        (PlannerError("other"), 400),
    ],
)
def test_error_status(exc, status):
    assert error_status(exc) == status


def test_request_log_fields():
    fields = request_log_fields(method="GET", path="/health", status_code=200, duration_ms=1.2345, client_ip=None)
    assert fields == {"method": "GET", "path": "/health", "status_code": 200, "duration_ms": 1.23, "client_ip": ""}


# ── Sessions ─────────────────────────────────────────────────────────────

def test_health_echoes_request_id(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "abc"


def test_session_lifecycle(client):
    created = _create(client)
    session_id = created["id"]
    assert created["origin"] == "planned"

    resp = client.patch(f"/api/v1/sessions/{session_id}/date", json={"date": "2025-03-12"})
    assert resp.json()["date"] == "2025-03-12"

    resp = client.put(f"/api/v1/sessions/{session_id}/feedback", json={"text": "Felt easy"})
    assert resp.json()["coach_feedback"] == "Felt easy"

    listed = client.get("/api/v1/sessions", params={"start": "2025-03-11"}).json()
    assert [s["id"] for s in listed] == [session_id]

    assert client.delete(f"/api/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/v1/sessions/{session_id}").status_code == 404


def test_actual_session_is_locked(client, provider):
    actual = _import_ride(client, provider, 1)
    assert actual["origin"] == "actual"

    resp = client.delete(f"/api/v1/sessions/{actual['id']}")
    assert resp.status_code == 409
    assert "cannot be deleted" in resp.json()["detail"]

    planned = _create(client, title="Tempo")
    resp = client.patch(f"/api/v1/sessions/{planned['id']}", json={"title": "Renamed"})
    assert resp.status_code == 409


def test_manual_entry_cannot_claim_actual_origin(client):
    created = _create(client, origin="actual")
    assert created["origin"] == "planned"
    assert client.delete(f"/api/v1/sessions/{created['id']}").status_code == 204


def test_sessions_persist_to_database(client):
    _create(client)
    status = client.post("/api/v1/sync/resync").json()
    assert status["is_synced"] is True
    assert status["session_count"] == 1
    assert client.get("/api/v1/sync/errors").json() == []


def test_import_and_export(client, provider):
    document = json.dumps(
        [
            {"sport": "running", "title": "Tempo", "duration_min": 45, "date": "2025-03-11"},
            {"sport": "strength", "title": "Core", "duration_min": 30, "date": "2025-03-12"},
        ]
    )
    resp = client.post("/api/v1/sessions/import", json={"document": document})
    assert resp.status_code == 200
    assert resp.json()["added"] == 2

    _import_ride(client, provider, 7)
    exported = client.get("/api/v1/sessions/export")
    assert "attachment" in exported.headers["content-disposition"]
    assert {s["title"] for s in exported.json()} == {"Tempo", "Core"}


def test_malformed_import_returns_details(client):
    resp = client.post("/api/v1/sessions/import", json={"document": '[{"sport": "swimming"}]'})
    assert resp.status_code == 422
    body = resp.json()
    assert body["errors"]
    assert client.get("/api/v1/sessions").json() == []


def test_weekly_stats_and_prompts(client):
    session = _create(client)
    stats = client.get("/api/v1/weeks/2025-03-12/stats").json()
    assert stats["week_start"] == "2025-03-10"
    assert stats["cycling"]["planned"] == 1.5

    prompt = client.get(f"/api/v1/sessions/{session['id']}/analysis-prompt").json()["text"]
    assert prompt.startswith("## Training session to analyze")

    review = client.get("/api/v1/weeks/2025-03-12/review-prompt", params={"include_wellness": False}).json()["text"]
    assert "Endurance Z2" in review


def test_workout_export_rejects_unstructured_session(client):
    session = _create(client)
    resp = client.get(f"/api/v1/sessions/{session['id']}/workout.zwo")
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Session has no structure to export"


def test_reset(client):
    _create(client)
    _create(client, title="Second")
    assert client.post("/api/v1/sessions/reset").json() == {"removed": 2}
    assert client.get("/api/v1/sessions").json() == []


# ── Providers ────────────────────────────────────────────────────────────

def test_strava_import_requires_connection(client):
    resp = client.post("/api/v1/strava/import")
    assert resp.status_code == 409
    assert resp.json()["provider"] == "strava"


def test_strava_connect_flow(client):
    url = client.get("/api/v1/strava/connect", params={"state": "s1"}).json()["authorization_url"]
    assert url.startswith("https://www.strava.com/oauth/authorize?")
    assert "client_id=123" in url

    status = client.post("/api/v1/strava/callback", json={"code": "abc"}).json()
    assert status == {"provider": "strava", "connected": True, "error": None}

    status = client.post("/api/v1/strava/disconnect").json()
    assert status["connected"] is False


def test_google_status_defaults_disconnected(client):
    assert client.get("/api/v1/google/status").json()["connected"] is False
    assert client.post("/api/v1/google/sync").status_code == 409


def test_phases_and_settings(client):
    phase = {"name": "Base", "start_date": "2025-01-06", "end_date": "2025-02-02"}
    phases = client.put("/api/v1/phases", json=phase).json()
    assert [p["name"] for p in phases] == ["Base"]
    assert client.delete(f"/api/v1/phases/{phases[0]['id']}").json() == []

    settings = client.patch("/api/v1/settings", json={"theme": "light"}).json()
    assert settings["theme"] == "light"
    assert client.get("/api/v1/settings").json()["theme"] == "light"


def test_wellness_summary_without_record_for_today(client, provider):
    resp = client.get("/api/v1/wellness/summary")
    assert resp.status_code == 200
    assert resp.json() is None

    [sent] = [r for r in provider.requests if "intervals" in r.url.path or r.url.host == "intervals.icu"]
    assert str(sent.url) == "http://127.0.0.1:8000/functions/intervals-proxy"
    assert json.loads(sent.content)["endpoint"].startswith("/athlete/{athleteId}/wellness?oldest=")
    assert "Authorization" not in sent.headers


# ── Token intermediary ───────────────────────────────────────────────────

class TestFunctions:
    def test_strava_auth_requires_code(self, client):
        resp = client.post("/functions/strava-auth", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing code"}

    def test_strava_auth_exchanges_with_secret(self, client, provider):
        resp = client.post("/functions/strava-auth", json={"code": "abc"})
        assert resp.json() == {"access_token": "sa", "refresh_token": "sr", "expires_at": FAR_FUTURE}
        sent = json.loads(provider.requests[-1].content)
        assert sent["client_secret"] == "strava-secret"
        assert sent["grant_type"] == "authorization_code"

    def test_strava_auth_failure_is_forwarded(self, client):
        resp = client.post("/functions/strava-auth", json={"code": "bad"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Failed to authenticate with Strava"}

    def test_google_refresh_keeps_refresh_token(self, client, provider):
        resp = client.post("/functions/google-auth", json={"grant_type": "refresh_token", "refresh_token": "keep"})
        assert resp.json() == {"access_token": "ga", "refresh_token": "keep", "expires_in": 3599}
        assert b"client_secret=google-secret" in provider.requests[-1].content

    def test_google_code_exchange_needs_redirect(self, client):
        resp = client.post("/functions/google-auth", json={"code": "abc"})
        assert resp.status_code == 400

    def test_intervals_proxy_substitutes_athlete(self, client, provider):
        resp = client.post("/functions/intervals-proxy", json={"endpoint": "/athlete/{athleteId}/activities"})
        assert resp.json() == [{"id": "i1"}]
        assert provider.requests[-1].headers["Authorization"].startswith("Basic ")

    def test_intervals_proxy_rejects_relative_endpoint(self, client):
        resp = client.post("/functions/intervals-proxy", json={"endpoint": "athlete"})
        assert resp.status_code == 400
