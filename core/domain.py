"""Domain types: sessions, structured plans, laps, phases and objectives.

Sessions are immutable values; the session store replaces list entries with
updated copies rather than mutating them in place.
"""

from __future__ import annotations

from datetime import date as dt_date
from enum import Enum
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sport(str, Enum):
    CYCLING = "cycling"
    RUNNING = "running"
    STRENGTH = "strength"


class Origin(str, Enum):
    """Provenance of a session: authored plan or imported completed activity."""

    PLANNED = "planned"
    ACTUAL = "actual"


SPORT_CONFIG: dict[Sport, dict[str, str]] = {
    Sport.CYCLING: {"emoji": "🚴", "label": "Cycling", "color_id": "7"},
    Sport.RUNNING: {"emoji": "🏃", "label": "Running", "color_id": "5"},
    Sport.STRENGTH: {"emoji": "💪", "label": "Strength", "color_id": "11"},
}

# Estimation constants for planned sessions without measured distance
ESTIMATES = {
    Sport.CYCLING: {"avg_speed_kmh": 28.0, "avg_elevation_per_hour": 500.0},
    Sport.RUNNING: {"avg_speed_kmh": 60 / 6.5},  # 6:30/km
}

# Legacy cache records tagged imported activities with this session type
LEGACY_ACTUAL_TYPE = "strava"


def new_session_id() -> str:
    return str(uuid4())


class StructurePhase(BaseModel):
    """One block of a structured workout."""

    model_config = ConfigDict(frozen=True)

    phase: Literal["warmup", "work", "rest", "cooldown"]
    min: float = Field(gt=0)
    reps: Optional[int] = Field(default=None, ge=1)
    ftp_pct: Optional[tuple[float, float]] = None
    hr_max_pct: Optional[tuple[float, float]] = None
    terrain: Optional[str] = None

    @field_validator("ftp_pct", "hr_max_pct")
    @classmethod
    def ordered_band(cls, v):
        if v is not None and v[0] > v[1]:
            raise ValueError("intensity band must be [low, high]")
        return v


class Lap(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    elapsed_time: int = 0  # seconds
    moving_time: int = 0  # seconds
    distance: float = 0.0  # meters
    average_speed: float = 0.0  # m/s
    max_speed: float = 0.0  # m/s
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    average_watts: Optional[float] = None
    average_cadence: Optional[float] = None
    total_elevation_gain: Optional[float] = None


class SessionTemplate(BaseModel):
    """A session as authored by a user or an AI, before it is scheduled."""

    model_config = ConfigDict(frozen=True)

    sport: Sport
    type: str = ""
    title: str = Field(min_length=1)
    duration_min: int = Field(ge=0)
    description: str = ""
    structure: list[StructurePhase] = Field(default_factory=list)
    origin: Origin = Origin.PLANNED

    # Measured outcome (actual sessions only)
    actual_km: Optional[float] = None
    actual_elevation: Optional[int] = None
    strava_id: Optional[int] = None
    laps: Optional[list[Lap]] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    average_watts: Optional[float] = None
    max_watts: Optional[float] = None
    average_cadence: Optional[float] = None

    # Annotations
    coach_feedback: Optional[str] = None
    replaced_planned_title: Optional[str] = None
    replaced_planned_description: Optional[str] = None

    @property
    def is_actual(self) -> bool:
        return self.origin == Origin.ACTUAL

    @property
    def is_planned(self) -> bool:
        return self.origin == Origin.PLANNED


class Session(SessionTemplate):
    """A scheduled session."""

    id: str = Field(default_factory=new_session_id)
    date: dt_date

    @property
    def key(self) -> tuple[str, dt_date]:
        """Natural dedup key used by imports."""
        return (self.title, self.date)

    @classmethod
    def from_template(cls, template: SessionTemplate, day: dt_date, session_id: str | None = None) -> "Session":
        """Schedule a template. The result is always planned, whatever origin the input carried."""
        data = template.model_dump()
        data.pop("id", None)
        data.pop("date", None)
        data["origin"] = Origin.PLANNED
        return cls(**data, id=session_id or new_session_id(), date=day)

    def to_document(self) -> dict[str, Any]:
        """JSON-safe dict without unset optional fields."""
        return self.model_dump(mode="json", exclude_none=True)


def migrate_cached_record(raw: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a cached session record written by older versions.

    Older records used ``name`` instead of ``title`` and carried no explicit
    origin; imported activities were tagged with the ``strava`` type.
    """
    record = dict(raw)
    if not record.get("title") and record.get("name"):
        record["title"] = record["name"]
    record.pop("name", None)
    if "origin" not in record:
        is_legacy_actual = record.get("type") == LEGACY_ACTUAL_TYPE
        record["origin"] = Origin.ACTUAL.value if is_legacy_actual else Origin.PLANNED.value
    return record


class TrainingPhase(BaseModel):
    """A named macro-cycle period (Base, Build, Peak...)."""

    id: str = Field(default_factory=new_session_id)
    name: str = Field(min_length=1)
    start_date: dt_date
    end_date: dt_date
    description: str = ""
    goals: str = ""

    @field_validator("end_date")
    @classmethod
    def end_after_start(cls, v, info):
        start = info.data.get("start_date")
        if start is not None and v < start:
            raise ValueError("end_date must be >= start_date")
        return v

    def contains(self, day: dt_date) -> bool:
        return self.start_date <= day <= self.end_date


class TrainingObjective(BaseModel):
    """A target race used to enrich coach prompts."""

    id: str = Field(default_factory=new_session_id)
    type: Literal["trail", "road_cycling"]
    priority: Literal["A", "B", "C"]
    name: str = Field(min_length=1)
    date: dt_date
    distance_km: float = Field(ge=0)
    elevation_gain: float = Field(default=0, ge=0)
    elevation_loss: Optional[float] = Field(default=None, ge=0)
