from __future__ import annotations

from datetime import date
from itertools import count
from typing import Optional

import pytest

from core.domain import Origin, Session, SessionTemplate, Sport
from core.repositories import SettingsState
from core.services.session_store import SessionStore
from core.storage import JsonFileStore


class FakeRepository:
    """In-memory SessionRepository that records calls and can be told to fail."""

    def __init__(self, sessions: Optional[list[Session]] = None):
        self.rows: dict[str, Session] = {s.id: s for s in sessions or []}
        self.calls: list[tuple[str, object]] = []
        self.fail_on: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"remote {operation} failed")

    async def fetch_all(self) -> list[Session]:
        self.calls.append(("fetch_all", None))
        self._maybe_fail("fetch_all")
        return sorted(self.rows.values(), key=lambda s: s.date)

    async def create(self, session: Session) -> None:
        self.calls.append(("create", session.id))
        self._maybe_fail("create")
        self.rows[session.id] = session

    async def update(self, session: Session) -> None:
        self.calls.append(("update", session.id))
        self._maybe_fail("update")
        self.rows[session.id] = session

    async def delete(self, session_id: str) -> None:
        self.calls.append(("delete", session_id))
        self._maybe_fail("delete")
        self.rows.pop(session_id, None)

    async def upsert_many(self, sessions: list[Session]) -> None:
        self.calls.append(("upsert_many", [s.id for s in sessions]))
        self._maybe_fail("upsert_many")
        for s in sessions:
            self.rows[s.id] = s


class FakeSettingsRepository:
    def __init__(self, state: Optional[SettingsState] = None):
        self.state = state or SettingsState()
        self.saves = 0

    async def load(self) -> SettingsState:
        return self.state

    async def save(self, state: SettingsState) -> SettingsState:
        self.saves += 1
        self.state = state
        return state


def make_session(
    title: str = "Endurance ride",
    day: date = date(2025, 3, 10),
    sport: Sport = Sport.CYCLING,
    origin: Origin = Origin.PLANNED,
    duration_min: int = 60,
    **fields,
) -> Session:
    return Session(title=title, date=day, sport=sport, origin=origin, duration_min=duration_min, **fields)


def make_template(title: str = "Tempo run", sport: Sport = Sport.RUNNING, duration_min: int = 45, **fields) -> SessionTemplate:
    return SessionTemplate(title=title, sport=sport, duration_min=duration_min, **fields)


@pytest.fixture
def id_factory():
    counter = count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def cache(tmp_path):
    return JsonFileStore(tmp_path / "cache.json")


@pytest.fixture
def store(repository, cache, id_factory):
    return SessionStore(repository, cache, id_factory=id_factory, today=lambda: date(2025, 3, 12))


@pytest.fixture
def settings_repository():
    return FakeSettingsRepository()
