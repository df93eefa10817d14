"""Reconciliation of imported activities and bulk-imported templates.

Planning functions are pure: they look at a snapshot of the current sessions
and return a ``ChangeSet`` plus a summary. The session store applies the
change set (local mutation, cache write, best-effort remote persistence).

Activity import rules, applied per candidate in input order:
  1. an actual session with the same external activity id or the same
     (title, date) key is a duplicate: skipped, or refreshed in place when
     the caller asks for ``DuplicatePolicy.UPDATE``;
  2. otherwise the first planned session on the same date and sport is
     displaced: its title/description are kept as the replaced-planned
     snapshot, it is deleted and the actual session inserted;
  3. otherwise the actual session is inserted.

Only the first same-day same-sport planned session is displaced when there
are several; that is a known limitation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Sequence, Union

from core.domain import Origin, Session, SessionTemplate, Sport, new_session_id

if TYPE_CHECKING:
    from core.services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Fields an UPDATE refresh takes from the newly fetched activity
_OUTCOME_FIELDS = (
    "sport",
    "type",
    "duration_min",
    "actual_km",
    "actual_elevation",
    "strava_id",
    "laps",
    "average_heartrate",
    "max_heartrate",
    "average_watts",
    "max_watts",
    "average_cadence",
)


class DuplicatePolicy(str, Enum):
    SKIP = "skip"
    UPDATE = "update"


@dataclass
class ChangeSet:
    """Deletions and upserts to apply to the store, in order."""

    upserts: list[Session] = field(default_factory=list)
    deletions: list[str] = field(default_factory=list)

    def upsert(self, session: Session) -> None:
        self.upserts = [s for s in self.upserts if s.id != session.id]
        self.upserts.append(session)
        if session.id in self.deletions:
            self.deletions.remove(session.id)

    def delete(self, session_id: str) -> None:
        self.upserts = [s for s in self.upserts if s.id != session_id]
        if session_id not in self.deletions:
            self.deletions.append(session_id)

    @property
    def is_empty(self) -> bool:
        return not self.upserts and not self.deletions


@dataclass
class ActivityImportSummary:
    inserted: int = 0
    displaced: int = 0
    skipped: int = 0
    updated: int = 0
    spotlight_id: Optional[str] = None

    @property
    def duplicates(self) -> int:
        return self.skipped + self.updated

    @property
    def message(self) -> str:
        if not self.inserted and not self.duplicates:
            return "No new activity"
        parts = [f"{self.inserted} activit{'y' if self.inserted == 1 else 'ies'} imported"]
        if self.displaced:
            parts.append(f"{self.displaced} planned session{'s' if self.displaced > 1 else ''} replaced")
        if self.updated:
            parts.append(f"{self.updated} refreshed")
        if self.skipped:
            parts.append(f"{self.skipped} already imported")
        return ", ".join(parts)


@dataclass
class BulkImportSummary:
    added: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0

    @property
    def message(self) -> str:
        parts = [f"{self.added} added", f"{self.updated} updated"]
        if self.skipped:
            parts.append(f"{self.skipped} skipped (completed activity)")
        if self.removed:
            parts.append(f"{self.removed} replaced")
        return ", ".join(parts)


ImportItem = Union[Session, SessionTemplate]


def _index_where(sessions: Sequence[Session], predicate: Callable[[Session], bool]) -> Optional[int]:
    for i, s in enumerate(sessions):
        if predicate(s):
            return i
    return None


def find_existing_actual(sessions: Sequence[Session], candidate: Session) -> Optional[Session]:
    """Already-imported actual session matching the candidate, if any."""
    if candidate.strava_id is not None:
        idx = _index_where(sessions, lambda s: s.is_actual and s.strava_id == candidate.strava_id)
        if idx is not None:
            return sessions[idx]
    idx = _index_where(sessions, lambda s: s.is_actual and s.key == candidate.key)
    return sessions[idx] if idx is not None else None


def first_planned_match(sessions: Sequence[Session], day: date, sport: Sport) -> Optional[Session]:
    idx = _index_where(sessions, lambda s: s.is_planned and s.date == day and s.sport == sport)
    return sessions[idx] if idx is not None else None


def _refresh_actual(existing: Session, candidate: Session) -> Session:
    """Overwrite measured fields, keeping identity and user annotations."""
    return existing.model_copy(update={name: getattr(candidate, name) for name in _OUTCOME_FIELDS})


def plan_activity_import(
    current: Sequence[Session],
    candidates: Iterable[Session],
    policy: DuplicatePolicy = DuplicatePolicy.SKIP,
) -> tuple[ChangeSet, ActivityImportSummary]:
    working = list(current)
    changes = ChangeSet()
    summary = ActivityImportSummary()

    for candidate in candidates:
        if not candidate.is_actual:
            candidate = candidate.model_copy(update={"origin": Origin.ACTUAL})

        existing = find_existing_actual(working, candidate)
        if existing is not None:
            if policy is DuplicatePolicy.SKIP:
                summary.skipped += 1
                continue
            refreshed = _refresh_actual(existing, candidate)
            working[working.index(existing)] = refreshed
            changes.upsert(refreshed)
            summary.updated += 1
            continue

        planned = first_planned_match(working, candidate.date, candidate.sport)
        if planned is not None:
            candidate = candidate.model_copy(
                update={
                    "replaced_planned_title": planned.title,
                    "replaced_planned_description": planned.description,
                }
            )
            working.remove(planned)
            changes.delete(planned.id)
            summary.displaced += 1

        working.append(candidate)
        changes.upsert(candidate)
        summary.inserted += 1
        summary.spotlight_id = candidate.id

    return changes, summary


def _materialize(item: ImportItem, today: date, id_factory: Callable[[], str]) -> Session:
    """Turn an import item into a session; items with id and date are trusted as full records."""
    if isinstance(item, Session):
        return item
    item_id = getattr(item, "id", None)
    item_date = getattr(item, "date", None)
    if item_id and item_date:
        return Session.from_template(item, item_date, item_id)
    return Session.from_template(item, item_date or today, id_factory())


def plan_bulk_import(
    current: Sequence[Session],
    items: Iterable[ImportItem],
    *,
    replace_existing: bool = False,
    today: date,
    id_factory: Callable[[], str] = new_session_id,
) -> tuple[ChangeSet, BulkImportSummary]:
    incoming = [_materialize(item, today, id_factory) for item in items]
    working = list(current)
    changes = ChangeSet()
    summary = BulkImportSummary()

    if replace_existing:
        import_dates = {s.date for s in incoming}
        for existing in list(working):
            if existing.date in import_dates and not existing.is_actual:
                working.remove(existing)
                changes.delete(existing.id)
                summary.removed += 1

    for new in incoming:
        idx = _index_where(working, lambda s: s.key == new.key)
        if idx is None:
            idx = _index_where(working, lambda s: s.id == new.id)
        if idx is None:
            working.append(new)
            changes.upsert(new)
            summary.added += 1
            continue

        existing = working[idx]
        if existing.is_actual:
            summary.skipped += 1
            continue
        replacement = new.model_copy(update={"id": existing.id})
        working[idx] = replacement
        changes.upsert(replacement)
        summary.updated += 1

    return changes, summary


class ReconciliationEngine:
    """Applies activity reconciliation to a session store."""

    def __init__(self, store: "SessionStore", policy: DuplicatePolicy = DuplicatePolicy.SKIP):
        self.store = store
        self.policy = policy

    async def reconcile(
        self, candidates: Sequence[Session], policy: DuplicatePolicy | None = None
    ) -> ActivityImportSummary:
        effective = policy or self.policy
        changes, summary = plan_activity_import(self.store.sessions, candidates, effective)
        if not changes.is_empty:
            await self.store.apply_changes(changes)
        logger.info(
            "activities_reconciled",
            extra={
                "policy": effective.value,
                "inserted": summary.inserted,
                "displaced": summary.displaced,
                "skipped": summary.skipped,
                "updated": summary.updated,
            },
        )
        return summary
