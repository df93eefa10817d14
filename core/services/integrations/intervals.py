"""Intervals.icu wellness data (read-only).

Fitness (CTL), fatigue (ATL) and readiness metrics. Credentials saved in the
user settings are sent directly as HTTP basic auth; otherwise requests go
through the intermediary, which holds the server-side athlete id and key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Optional

import httpx

from core.errors import AuthError, NotConnectedError, ProviderError

logger = logging.getLogger(__name__)

INTERVALS_API_BASE = "https://intervals.icu/api/v1"
PROVIDER = "intervals"

# Devices report HRV under different fields
_HRV_FIELDS = ("hrv", "hrvSDNN", "rmssd", "lastNightAvg")

# (exclusive lower bound, bucket), checked in order
_FORM_BUCKETS = (
    (15, "fresh"),
    (5, "in_form"),
    (-10, "optimal"),
    (-25, "tired"),
)


@dataclass(frozen=True)
class WellnessDay:
    day: date
    ctl: Optional[float] = None
    atl: Optional[float] = None
    hrv: Optional[float] = None
    resting_hr: Optional[int] = None
    sleep_score: Optional[float] = None
    readiness: Optional[float] = None

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> "WellnessDay":
        hrv = next((raw[name] for name in _HRV_FIELDS if raw.get(name) is not None), None)
        return cls(
            day=date.fromisoformat(str(raw["id"])[:10]),
            ctl=raw.get("ctl"),
            atl=raw.get("atl"),
            hrv=hrv,
            resting_hr=raw.get("restingHR"),
            sleep_score=raw.get("sleepScore"),
            readiness=raw.get("readiness"),
        )

    @property
    def load_balance(self) -> Optional[int]:
        """Training stress balance: round(CTL - ATL)."""
        if self.ctl is None or self.atl is None:
            return None
        return round(self.ctl - self.atl)


@dataclass(frozen=True)
class WellnessSummary:
    day: date
    ctl: Optional[float]
    atl: Optional[float]
    load_balance: Optional[int]
    form: Optional[str]
    hrv: Optional[float]
    resting_hr: Optional[int]
    sleep_score: Optional[float]
    readiness: Optional[float]


def form_bucket(load_balance: Optional[int]) -> Optional[str]:
    if load_balance is None:
        return None
    for lower_bound, bucket in _FORM_BUCKETS:
        if load_balance > lower_bound:
            return bucket
    return "exhausted"


def summarize(history: dict[date, WellnessDay], today: date) -> Optional[WellnessSummary]:
    """Today's readiness summary, or None when no record exists for today."""
    record = history.get(today)
    if record is None:
        return None
    balance = record.load_balance
    return WellnessSummary(
        day=today,
        ctl=record.ctl,
        atl=record.atl,
        load_balance=balance,
        form=form_bucket(balance),
        hrv=record.hrv,
        resting_hr=record.resting_hr,
        sleep_score=record.sleep_score,
        readiness=record.readiness,
    )


class WellnessAdapter:
    def __init__(
        self,
        client: httpx.AsyncClient,
        athlete_id: str = "",
        api_key: str = "",
        today: Callable[[], date] = date.today,
        base_url: str = INTERVALS_API_BASE,
        proxy_url: Optional[str] = None,
    ):
        self._client = client
        self.athlete_id = athlete_id
        self.api_key = api_key
        self._today = today
        self._base_url = base_url.rstrip("/")
        self._proxy_url = proxy_url.rstrip("/") if proxy_url else None

    @property
    def has_credentials(self) -> bool:
        return bool(self.athlete_id and self.api_key)

    @property
    def is_configured(self) -> bool:
        return self.has_credentials or self._proxy_url is not None

    def configure(self, athlete_id: Optional[str], api_key: Optional[str]) -> None:
        self.athlete_id = athlete_id or ""
        self.api_key = api_key or ""

    async def fetch_range(self, days: int = 42) -> dict[date, WellnessDay]:
        """Daily wellness records for the last ``days`` days, keyed by date."""
        if not self.is_configured:
            raise NotConnectedError(PROVIDER)
        newest = self._today()
        oldest = newest - timedelta(days=days)
        try:
            if self.has_credentials:
                resp = await self._client.get(
                    f"{self._base_url}/athlete/{self.athlete_id}/wellness",
                    params={"oldest": oldest.isoformat(), "newest": newest.isoformat()},
                    auth=("API_KEY", self.api_key),
                )
            else:
                # The intermediary substitutes its own athlete id and key
                endpoint = f"/athlete/{{athleteId}}/wellness?oldest={oldest.isoformat()}&newest={newest.isoformat()}"
                resp = await self._client.post(f"{self._proxy_url}/intervals-proxy", json={"endpoint": endpoint})
        except httpx.HTTPError as exc:
            raise ProviderError(PROVIDER, f"Intervals.icu unreachable: {exc}") from exc
        if resp.status_code in (401, 403):
            raise AuthError(PROVIDER, "Intervals.icu rejected the API key")
        if resp.status_code >= 400:
            raise ProviderError(PROVIDER, f"Intervals.icu API error: {resp.status_code}", resp.status_code)

        history: dict[date, WellnessDay] = {}
        for raw in resp.json():
            try:
                record = WellnessDay.from_record(raw)
            except (KeyError, ValueError):
                logger.debug("Skipping malformed wellness record: %r", raw)
                continue
            history[record.day] = record
        logger.info("wellness_fetched", extra={"days": days, "records": len(history)})
        return history

    async def today_summary(self, days: int = 42) -> Optional[WellnessSummary]:
        history = await self.fetch_range(days)
        return summarize(history, self._today())
