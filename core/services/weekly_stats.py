"""Per-sport weekly volume statistics derived from the session store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Iterable, Optional

from core.domain import ESTIMATES, Session, Sport

if TYPE_CHECKING:
    from core.services.session_store import SessionStore


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing ``day``."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def sessions_in_week(sessions: Iterable[Session], week_of: date) -> list[Session]:
    start, end = week_bounds(week_of)
    return [s for s in sessions if start <= s.date <= end]


@dataclass
class EnduranceStats:
    hours: float = 0.0
    km: float = 0.0
    elevation: float = 0.0
    planned: float = 0.0
    accomplished: float = 0.0


@dataclass
class StrengthStats:
    hours: float = 0.0
    planned: float = 0.0
    accomplished: float = 0.0


@dataclass
class VolumeTotal:
    hours: float = 0.0
    sessions: int = 0


@dataclass
class WeeklyStats:
    week_start: date
    week_end: date
    cycling: EnduranceStats = field(default_factory=EnduranceStats)
    running: EnduranceStats = field(default_factory=EnduranceStats)
    strength: StrengthStats = field(default_factory=StrengthStats)
    total: VolumeTotal = field(default_factory=VolumeTotal)
    planned: VolumeTotal = field(default_factory=VolumeTotal)
    accomplished: VolumeTotal = field(default_factory=VolumeTotal)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["week_start"] = self.week_start.isoformat()
        data["week_end"] = self.week_end.isoformat()
        return data


def _estimated_km(session: Session, hours: float) -> float:
    if session.actual_km is not None:
        return session.actual_km
    return hours * ESTIMATES[session.sport]["avg_speed_kmh"]


def compute_weekly_stats(sessions: Iterable[Session], week_of: date) -> WeeklyStats:
    """Aggregate the sessions of the week containing ``week_of``.

    Distance falls back to an estimate from duration when a session has no
    measured distance; elevation only counts measured values.
    """
    start, end = week_bounds(week_of)
    stats = WeeklyStats(week_start=start, week_end=end)

    for session in sessions_in_week(sessions, week_of):
        hours = session.duration_min / 60
        bucket = stats.accomplished if session.is_actual else stats.planned
        bucket.hours += hours
        bucket.sessions += 1
        stats.total.hours += hours
        stats.total.sessions += 1

        if session.sport == Sport.STRENGTH:
            sport_stats: EnduranceStats | StrengthStats = stats.strength
        else:
            endurance = stats.cycling if session.sport == Sport.CYCLING else stats.running
            endurance.km += _estimated_km(session, hours)
            endurance.elevation += session.actual_elevation or 0
            sport_stats = endurance

        sport_stats.hours += hours
        if session.is_actual:
            sport_stats.accomplished += hours
        else:
            sport_stats.planned += hours

    return stats


class WeeklyView:
    """Weekly statistics kept in step with a store and an active week.

    The view subscribes to store changes and recomputes lazily on the next read
    after the sessions or the active week change.
    """

    def __init__(self, store: "SessionStore", week_of: Optional[date] = None):
        self._store = store
        self._week_of = week_of or date.today()
        self._cached: Optional[WeeklyStats] = None
        self._unsubscribe = store.subscribe(self._invalidate)

    def _invalidate(self) -> None:
        self._cached = None

    @property
    def week_of(self) -> date:
        return self._week_of

    def set_week(self, day: date) -> None:
        if week_bounds(day) != week_bounds(self._week_of):
            self._cached = None
        self._week_of = day

    def shift_week(self, weeks: int) -> date:
        self.set_week(self._week_of + timedelta(weeks=weeks))
        return self._week_of

    @property
    def stats(self) -> WeeklyStats:
        if self._cached is None:
            self._cached = compute_weekly_stats(self._store.sessions, self._week_of)
        return self._cached

    def sessions(self) -> list[Session]:
        return sorted(sessions_in_week(self._store.sessions, self._week_of), key=lambda s: s.date)

    def close(self) -> None:
        self._unsubscribe()
