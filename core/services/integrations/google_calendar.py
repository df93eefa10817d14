"""Google Calendar export of scheduled sessions as all-day events.

Each session maps to one event whose id is derived from the session id, so a
re-sync updates the same event instead of creating a duplicate. Events carry a
marker line in their description so managed events can be found and removed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable
from urllib.parse import urlencode

from core.config import DEFAULT_CALENDAR_MARKER
from core.domain import SPORT_CONFIG, Session
from core.errors import ProviderError
from core.services.integrations.base import OAuthAdapter
from core.services.weekly_stats import sessions_in_week

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"
SEARCH_MAX_RESULTS = 500


@dataclass
class CalendarSyncResult:
    created: int = 0
    updated: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = f"{self.created} created, {self.updated} updated"
        if self.failed:
            text += f", {len(self.failed)} failed"
        return text


def event_id_for(session: Session) -> str:
    """Calendar event id: the session id without dashes, lower-cased."""
    return session.id.replace("-", "").lower()


def build_event(session: Session, marker: str) -> dict[str, Any]:
    config = SPORT_CONFIG[session.sport]
    description = f"{session.description or ''}\n\nDuration: {session.duration_min} min\nType: {session.type}\n\n{marker}"
    return {
        "id": event_id_for(session),
        "summary": f"{config['emoji']} {session.title}",
        "description": description,
        "start": {"date": session.date.isoformat()},
        # All-day event end dates are exclusive
        "end": {"date": (session.date + timedelta(days=1)).isoformat()},
        "colorId": config["color_id"],
    }


class GoogleCalendarAdapter(OAuthAdapter):
    PROVIDER = "google"
    LABEL = "Google"
    EXCHANGE_FUNCTION = "google-auth"
    REFRESH_FUNCTION = "google-auth"

    def authorization_url(self, state: str = "google") -> str:
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "scope": CALENDAR_SCOPE,
            "access_type": "offline",
            "prompt": "consent",
            "state": state or "google",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_body(self, code: str) -> dict[str, Any]:
        return {"code": code, "redirect_uri": self.settings.redirect_uri, "grant_type": "authorization_code"}

    def refresh_body(self, refresh_token: str) -> dict[str, Any]:
        return {"refresh_token": refresh_token, "grant_type": "refresh_token"}

    @property
    def marker(self) -> str:
        return self.settings.calendar_marker.strip() or DEFAULT_CALENDAR_MARKER

    async def _upsert_event(self, session: Session) -> str:
        """Write one event; returns "updated" or "created"."""
        event = build_event(session, self.marker)
        resp = await self.api_request("PUT", f"{CALENDAR_EVENTS_URL}/{event['id']}", json=event)
        if resp.is_success:
            return "updated"
        if resp.status_code != 404:
            raise ProviderError(self.PROVIDER, f"event update returned {resp.status_code}", resp.status_code)
        resp = await self.api_request("POST", CALENDAR_EVENTS_URL, json=event)
        if resp.is_success:
            return "created"
        raise ProviderError(self.PROVIDER, f"event create returned {resp.status_code}", resp.status_code)

    async def sync_to_calendar(self, sessions: Iterable[Session], week_of: date) -> CalendarSyncResult:
        """Export the sessions of the week containing ``week_of``, one event at a time."""
        await self.require_token()
        result = CalendarSyncResult()
        for session in sessions_in_week(sessions, week_of):
            try:
                outcome = await self._upsert_event(session)
            except ProviderError as exc:
                logger.warning("calendar_event_failed", extra={"session_id": session.id, "error": str(exc)})
                result.failed.append(session.id)
                continue
            if outcome == "created":
                result.created += 1
            else:
                result.updated += 1
        logger.info(
            "calendar_synced",
            extra={"created": result.created, "updated": result.updated, "failed": len(result.failed)},
        )
        return result

    async def delete_all_managed(self, marker: str | None = None) -> int:
        """Delete every event whose description contains the marker; returns the count deleted."""
        marker = (marker or "").strip() or self.marker
        query = marker.split()[-1]
        resp = await self.api_request(
            "GET", CALENDAR_EVENTS_URL, params={"q": query, "maxResults": SEARCH_MAX_RESULTS}
        )
        if not resp.is_success:
            raise ProviderError(self.PROVIDER, f"event search returned {resp.status_code}", resp.status_code)

        deleted = 0
        for event in resp.json().get("items", []):
            if marker not in (event.get("description") or ""):
                continue
            try:
                delete_resp = await self.api_request("DELETE", f"{CALENDAR_EVENTS_URL}/{event['id']}")
            except ProviderError as exc:
                logger.warning("Failed to delete calendar event %s: %s", event.get("id"), exc)
                continue
            if delete_resp.is_success:
                deleted += 1
            else:
                logger.warning("Calendar delete for %s returned %d", event.get("id"), delete_resp.status_code)
        logger.info("calendar_cleared", extra={"deleted": deleted})
        return deleted
