"""Strava API v3 adapter: recent activities, per-activity details, conversion.

Converted sessions carry ``origin=actual`` and the Strava activity id, so the
reconciliation engine can detect already-imported activities.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional
from urllib.parse import urlencode

from core.domain import Lap, Origin, Session, Sport
from core.errors import ProviderError
from core.services.integrations.base import OAuthAdapter

logger = logging.getLogger(__name__)

STRAVA_AUTH_URL = "https://www.strava.com/oauth/authorize"
STRAVA_API_BASE = "https://www.strava.com/api/v3"

PAGE_SIZE = 100
IMPORTED_TYPE = "strava"

SPORT_TYPES: dict[Sport, frozenset[str]] = {
    Sport.CYCLING: frozenset({"Ride", "VirtualRide", "MountainBikeRide", "GravelRide", "EBikeRide"}),
    Sport.RUNNING: frozenset({"Run", "TrailRun", "VirtualRun", "Treadmill", "Soccer", "Football"}),
    Sport.STRENGTH: frozenset({"WeightTraining", "Workout", "Crossfit", "Yoga", "HIIT"}),
}

_LAP_FIELDS = tuple(Lap.model_fields)


def map_to_sport(activity: dict[str, Any]) -> Optional[Sport]:
    """Planner sport for a Strava activity, or None for unsupported types."""
    activity_type = activity.get("sport_type") or activity.get("type") or ""
    for sport, types in SPORT_TYPES.items():
        if activity_type in types:
            return sport
    return None


def _activity_date(activity: dict[str, Any]) -> date:
    # Local start timestamp truncated to the day, no timezone conversion
    return date.fromisoformat(str(activity["start_date_local"]).split("T")[0])


def _convert_laps(raw_laps: Any) -> Optional[list[Lap]]:
    if not raw_laps:
        return None
    laps = [Lap(**{k: lap[k] for k in _LAP_FIELDS if lap.get(k) is not None}) for lap in raw_laps]
    return laps or None


def activity_to_session(activity: dict[str, Any]) -> Optional[Session]:
    sport = map_to_sport(activity)
    if sport is None:
        return None
    distance_km = round(float(activity.get("distance") or 0) / 1000, 1)
    elevation = round(activity["total_elevation_gain"]) if activity.get("total_elevation_gain") else 0
    description = f"{distance_km} km"
    if elevation:
        description += f" • {elevation}m D+"
    return Session(
        sport=sport,
        type=IMPORTED_TYPE,
        origin=Origin.ACTUAL,
        title=activity.get("name") or f"{sport.value.title()} activity",
        date=_activity_date(activity),
        duration_min=round(int(activity.get("moving_time") or 0) / 60),
        description=description,
        actual_km=distance_km,
        actual_elevation=elevation,
        strava_id=int(activity["id"]),
        laps=_convert_laps(activity.get("laps")),
        average_heartrate=activity.get("average_heartrate"),
        max_heartrate=activity.get("max_heartrate"),
        average_watts=activity.get("average_watts"),
        max_watts=activity.get("max_watts"),
        average_cadence=activity.get("average_cadence"),
    )


def to_sessions(activities: Iterable[dict[str, Any]]) -> list[Session]:
    """Convert activities to actual sessions, silently dropping unmapped sports."""
    sessions = []
    for activity in activities:
        session = activity_to_session(activity)
        if session is None:
            logger.debug("Skipping unsupported Strava activity type %s", activity.get("sport_type") or activity.get("type"))
            continue
        sessions.append(session)
    return sessions


class StravaAdapter(OAuthAdapter):
    """Strava REST API v3 adapter."""

    PROVIDER = "strava"
    LABEL = "Strava"
    EXCHANGE_FUNCTION = "strava-auth"
    REFRESH_FUNCTION = "strava-refresh"

    def authorization_url(self, state: str = "") -> str:
        params = {
            "client_id": self.settings.strava_client_id,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "scope": "activity:read_all",
        }
        if state:
            params["state"] = state
        return f"{STRAVA_AUTH_URL}?{urlencode(params)}"

    def exchange_body(self, code: str) -> dict[str, Any]:
        return {"code": code, "redirect_uri": self.settings.redirect_uri}

    def refresh_body(self, refresh_token: str) -> dict[str, Any]:
        return {"refresh_token": refresh_token}

    async def fetch_recent(self, days: int = 7) -> list[dict[str, Any]]:
        """Activities started within the last ``days`` days (coarse records)."""
        after = int(self._clock()) - days * 24 * 60 * 60
        resp = await self.api_request(
            "GET",
            f"{STRAVA_API_BASE}/athlete/activities",
            params={"after": after, "per_page": PAGE_SIZE},
        )
        if resp.status_code >= 400:
            raise ProviderError(self.PROVIDER, "Failed to fetch Strava activities", resp.status_code)
        activities = resp.json()
        logger.info("strava_activities_fetched", extra={"count": len(activities), "days": days})
        return activities

    async def fetch_detail(self, activity_id: int) -> Optional[dict[str, Any]]:
        try:
            resp = await self.api_request("GET", f"{STRAVA_API_BASE}/activities/{activity_id}")
        except ProviderError as exc:
            logger.warning("Strava detail fetch failed for %s: %s", activity_id, exc)
            return None
        if resp.status_code >= 400:
            logger.warning("Strava detail fetch for %s returned %d", activity_id, resp.status_code)
            return None
        return resp.json()

    async def fetch_details(self, activities: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        """Detailed records (with laps), one request at a time.

        An activity whose detail request fails falls back to its coarse record.
        """
        detailed = []
        for activity in activities:
            detail = await self.fetch_detail(activity["id"])
            detailed.append(detail if detail is not None else activity)
        return detailed

    @staticmethod
    def map_to_sport(activity: dict[str, Any]) -> Optional[Sport]:
        return map_to_sport(activity)

    @staticmethod
    def to_sessions(activities: Iterable[dict[str, Any]]) -> list[Session]:
        return to_sessions(activities)
