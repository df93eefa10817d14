"""Tests for the Google Calendar export."""

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from conftest import make_session
from core.config import Settings
from core.domain import Sport
from core.errors import NotConnectedError
from core.services.integrations.google_calendar import (
    CALENDAR_EVENTS_URL,
    GoogleCalendarAdapter,
    build_event,
    event_id_for,
)
from core.services.integrations.tokens import FileTokenStore, TokenSet
from core.storage import JsonFileStore

NOW = 1_741_600_000
MARKER = "📱 Cadence"


@pytest.fixture
def calendar_factory(tmp_path):
    def build(handler, connected=True, marker=MARKER):
        tokens = FileTokenStore(JsonFileStore(tmp_path / "tokens.json"))
        if connected:
            tokens.save("google", TokenSet("token", "refresh", NOW + 3600))
        settings = Settings(database_url="sqlite://", calendar_marker=marker)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GoogleCalendarAdapter(settings, tokens, client, clock=lambda: NOW)

    return build


def test_event_id_is_stable_and_dashless():
    session = make_session(id="3F2A-11AA-bb")
    assert event_id_for(session) == "3f2a11aabb"


def test_all_day_event_shape():
    session = make_session("Tempo run", date(2025, 3, 16), sport=Sport.RUNNING, description="3x10 Z3", type="tempo", id="s-1")
    event = build_event(session, MARKER)

    assert event["summary"] == "🏃 Tempo run"
    assert event["start"] == {"date": "2025-03-16"}
    assert event["end"] == {"date": "2025-03-17"}
    assert event["colorId"] == "5"
    assert event["description"] == f"3x10 Z3\n\nDuration: 60 min\nType: tempo\n\n{MARKER}"


class TestSync:
    @pytest.mark.asyncio
    async def test_put_then_post_on_missing_event(self, calendar_factory):
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "PUT" and request.url.path.endswith("/s1"):
                return httpx.Response(404)
            return httpx.Response(200, json={})

        adapter = calendar_factory(handler)
        sessions = [make_session("A", date(2025, 3, 10), id="s1"), make_session("B", date(2025, 3, 11), id="s2")]

        result = await adapter.sync_to_calendar(sessions, date(2025, 3, 12))

        assert (result.created, result.updated, result.failed) == (1, 1, [])
        assert [(r.method, r.url.path.rsplit("/", 1)[-1]) for r in requests] == [
            ("PUT", "s1"),
            ("POST", "events"),
            ("PUT", "s2"),
        ]
        assert json.loads(requests[1].content)["id"] == "s1"
        assert result.message == "1 created, 1 updated"

    @pytest.mark.asyncio
    async def test_only_active_week_is_exported(self, calendar_factory):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        adapter = calendar_factory(handler)
        sessions = [make_session("In", date(2025, 3, 16), id="in"), make_session("Out", date(2025, 3, 17), id="out")]

        result = await adapter.sync_to_calendar(sessions, date(2025, 3, 10))

        assert result.updated == 1
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_failed_event_is_reported_and_sync_continues(self, calendar_factory):
        def handler(request):
            if request.url.path.endswith("/bad"):
                return httpx.Response(500)
            return httpx.Response(200, json={})

        adapter = calendar_factory(handler)
        sessions = [make_session("Bad", date(2025, 3, 10), id="bad"), make_session("Good", date(2025, 3, 11), id="good")]

        result = await adapter.sync_to_calendar(sessions, date(2025, 3, 10))

        assert result.failed == ["bad"]
        assert result.updated == 1
        assert result.message == "0 created, 1 updated, 1 failed"

    @pytest.mark.asyncio
    async def test_sync_requires_connection(self, calendar_factory):
        adapter = calendar_factory(lambda r: httpx.Response(200), connected=False)
        with pytest.raises(NotConnectedError):
            await adapter.sync_to_calendar([], date(2025, 3, 10))


@pytest.mark.asyncio
async def test_delete_all_managed_only_removes_marked_events(calendar_factory):
    deleted = []

    def handler(request):
        if request.method == "GET":
            assert request.url.params["q"] == "Cadence"
            assert request.url.params["maxResults"] == "500"
            return httpx.Response(
                200,
                json={
                    "items": [
                        {"id": "e1", "description": f"Ride\n\n{MARKER}"},
                        {"id": "e2", "description": "Dinner with Cadence team"},
                        {"id": "e3", "description": f"Run\n\n{MARKER}"},
                    ]
                },
            )
        deleted.append(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(204)

    adapter = calendar_factory(handler)

    assert await adapter.delete_all_managed() == 2
    assert deleted == ["e1", "e3"]
    assert CALENDAR_EVENTS_URL.startswith("https://www.googleapis.com/")


@pytest.mark.asyncio
async def test_blank_marker_falls_back_to_default(calendar_factory):
    queries = []

    def handler(request):
        if request.method == "GET":
            queries.append(request.url.params["q"])
            return httpx.Response(200, json={"items": [{"id": "e1", "description": f"Ride\n\n{MARKER}"}]})
        return httpx.Response(204)

    adapter = calendar_factory(handler, marker="  ")

    assert adapter.marker == MARKER
    assert await adapter.delete_all_managed() == 1
    assert queries == ["Cadence"]
