"""Remote persistence: the sessions table and the single-row settings record.

The session store only depends on the ``SessionRepository`` protocol. The SQL
implementation runs blocking SQLAlchemy work in a worker thread so callers on
the event loop are never blocked.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.orm import Session as DbSession
from sqlalchemy.orm import sessionmaker

from core.db import session_scope
from core.domain import Session, TrainingObjective, TrainingPhase
from core.models import SessionRecord, UserSettings

logger = logging.getLogger(__name__)

_AGGREGATE_FIELDS = ("average_heartrate", "max_heartrate", "average_watts", "max_watts", "average_cadence")


class SessionRepository(Protocol):
    async def fetch_all(self) -> list[Session]: ...

    async def create(self, session: Session) -> None: ...

    async def update(self, session: Session) -> None: ...

    async def delete(self, session_id: str) -> None: ...

    async def upsert_many(self, sessions: list[Session]) -> None: ...


def session_to_values(session: Session) -> dict[str, Any]:
    """Map a session to column values."""
    values: dict[str, Any] = {
        "id": session.id,
        "sport": session.sport.value,
        "origin": session.origin.value,
        "type": session.type,
        "title": session.title,
        "date": session.date,
        "duration_min": session.duration_min,
        "description": session.description or "",
        "structure": [p.model_dump(mode="json", exclude_none=True) for p in session.structure],
        "actual_km": session.actual_km,
        "actual_elevation": session.actual_elevation,
        "strava_id": session.strava_id,
        "laps": [lap.model_dump(mode="json", exclude_none=True) for lap in session.laps] if session.laps else None,
        "coach_feedback": session.coach_feedback,
        "replaced_planned_title": session.replaced_planned_title,
        "replaced_planned_description": session.replaced_planned_description,
    }
    for name in _AGGREGATE_FIELDS:
        value = getattr(session, name)
        values[name] = float(value) if value is not None else None
    return values


def record_to_session(row: SessionRecord) -> Session:
    data: dict[str, Any] = {
        "id": row.id,
        "sport": row.sport,
        "origin": row.origin,
        "type": row.type or "",
        "title": row.title,
        "date": row.date,
        "duration_min": row.duration_min,
        "description": row.description or "",
        "structure": row.structure or [],
        "actual_km": row.actual_km,
        "actual_elevation": row.actual_elevation,
        "strava_id": row.strava_id,
        "laps": row.laps or None,
        "coach_feedback": row.coach_feedback or None,
        "replaced_planned_title": row.replaced_planned_title,
        "replaced_planned_description": row.replaced_planned_description,
    }
    for name in _AGGREGATE_FIELDS:
        data[name] = getattr(row, name)
    return Session.model_validate(data)


class SqlSessionRepository:
    """SessionRepository backed by the ``sessions`` table."""

    def __init__(self, session_factory: sessionmaker[DbSession]):
        self._factory = session_factory

    # -- blocking implementations --

    def _fetch_all(self) -> list[Session]:
        with session_scope(self._factory) as db:
            rows = db.execute(select(SessionRecord).order_by(SessionRecord.date.asc())).scalars().all()
            return [record_to_session(row) for row in rows]

    def _create(self, session: Session) -> None:
        with session_scope(self._factory) as db:
            db.add(SessionRecord(**session_to_values(session)))

    def _update(self, session: Session) -> None:
        with session_scope(self._factory) as db:
            row = db.get(SessionRecord, session.id)
            if row is None:
                raise LookupError(f"session {session.id} does not exist remotely")
            for key, value in session_to_values(session).items():
                setattr(row, key, value)

    def _delete(self, session_id: str) -> None:
        with session_scope(self._factory) as db:
            db.execute(delete(SessionRecord).where(SessionRecord.id == session_id))

    def _upsert_many(self, sessions: list[Session]) -> None:
        # Last occurrence of an id wins
        unique = {s.id: s for s in sessions}
        with session_scope(self._factory) as db:
            for session in unique.values():
                db.merge(SessionRecord(**session_to_values(session)))
        logger.debug("Upserted %d sessions", len(unique))

    # -- async facade --

    async def fetch_all(self) -> list[Session]:
        return await asyncio.to_thread(self._fetch_all)

    async def create(self, session: Session) -> None:
        await asyncio.to_thread(self._create, session)

    async def update(self, session: Session) -> None:
        await asyncio.to_thread(self._update, session)

    async def delete(self, session_id: str) -> None:
        await asyncio.to_thread(self._delete, session_id)

    async def upsert_many(self, sessions: list[Session]) -> None:
        if not sessions:
            return
        await asyncio.to_thread(self._upsert_many, sessions)


class SettingsState(BaseModel):
    """Process-wide configuration persisted in the single settings row."""

    theme: str = "dracula"
    intervals_athlete_id: Optional[str] = None
    intervals_api_key: Optional[str] = None
    training_phases: list[TrainingPhase] = Field(default_factory=list)
    training_objectives: list[TrainingObjective] = Field(default_factory=list)


class SqlSettingsRepository:
    def __init__(self, session_factory: sessionmaker[DbSession]):
        self._factory = session_factory

    @staticmethod
    def _get_or_create(db: DbSession) -> UserSettings:
        row = db.get(UserSettings, 1)
        if row is None:
            row = UserSettings(id=1, theme="dracula", training_phases=[], training_objectives=[])
            db.add(row)
            db.flush()
        return row

    @staticmethod
    def _to_state(row: UserSettings) -> SettingsState:
        return SettingsState(
            theme=row.theme or "dracula",
            intervals_athlete_id=row.intervals_athlete_id,
            intervals_api_key=row.intervals_api_key,
            training_phases=row.training_phases or [],
            training_objectives=row.training_objectives or [],
        )

    def _load(self) -> SettingsState:
        with session_scope(self._factory) as db:
            return self._to_state(self._get_or_create(db))

    def _save(self, state: SettingsState) -> SettingsState:
        dumped = state.model_dump(mode="json")
        with session_scope(self._factory) as db:
            row = self._get_or_create(db)
            row.theme = dumped["theme"]
            row.intervals_athlete_id = dumped["intervals_athlete_id"]
            row.intervals_api_key = dumped["intervals_api_key"]
            row.training_phases = dumped["training_phases"]
            row.training_objectives = dumped["training_objectives"]
            db.flush()
            return self._to_state(row)

    async def load(self) -> SettingsState:
        return await asyncio.to_thread(self._load)

    async def save(self, state: SettingsState) -> SettingsState:
        return await asyncio.to_thread(self._save, state)
