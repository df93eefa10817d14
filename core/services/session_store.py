"""Authoritative in-memory session list with local-first persistence.

Every command mutates the in-memory list first, writes the local cache
synchronously, then schedules the remote write as an asyncio task and returns
without awaiting it. Remote writes run one after another in scheduling order.
A failed remote write is logged and published on the error channel; it never
rolls back local state. ``resync()`` is the repair mechanism.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from core.domain import Session, SessionTemplate, migrate_cached_record, new_session_id
from core.repositories import SessionRepository
from core.services.reconciliation import BulkImportSummary, ChangeSet, ImportItem, plan_bulk_import
from core.storage import JsonFileStore

logger = logging.getLogger(__name__)

CACHE_KEY = "training-planner-sessions"
MAX_REMOTE_ERRORS = 100


@dataclass(frozen=True)
class RemoteSyncError:
    operation: str
    session_ids: tuple[str, ...]
    message: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionStore:
    def __init__(
        self,
        repository: SessionRepository,
        cache: JsonFileStore,
        *,
        id_factory: Callable[[], str] = new_session_id,
        today: Callable[[], date] = date.today,
    ):
        self._repository = repository
        self._cache = cache
        self._id_factory = id_factory
        self._today = today
        self._sessions: list[Session] = []
        self._pending: set[asyncio.Task] = set()
        self._last_remote: Optional[asyncio.Task] = None
        self._resync_marks: list[set[str]] = []
        self._listeners: list[Callable[[], None]] = []
        self._error_listeners: list[Callable[[RemoteSyncError], None]] = []
        self.remote_errors: deque[RemoteSyncError] = deque(maxlen=MAX_REMOTE_ERRORS)
        self.is_loading = False
        self.is_synced = False
        self.sync_error: Optional[str] = None

    # -- read access --

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        for s in self._sessions:
            if s.id == session_id:
                return s
        return None

    def planned(self) -> list[Session]:
        return [s for s in self._sessions if s.is_planned]

    # -- observers --

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def subscribe_errors(self, listener: Callable[[RemoteSyncError], None]) -> Callable[[], None]:
        self._error_listeners.append(listener)
        return lambda: self._error_listeners.remove(listener) if listener in self._error_listeners else None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Session change listener failed")

    # -- local cache --

    def load_from_cache(self) -> int:
        """Hydrate from the local cache; returns the number of sessions loaded."""
        raw_records = self._cache.get(CACHE_KEY) or []
        loaded: list[Session] = []
        for raw in raw_records:
            if not isinstance(raw, dict):
                continue
            try:
                loaded.append(Session.model_validate(migrate_cached_record(raw)))
            except ValidationError as exc:
                logger.warning("Dropping unreadable cached session %s: %s", raw.get("id", "?"), exc.error_count())
        self._sessions = loaded
        self._notify()
        return len(loaded)

    def _save_cache(self) -> None:
        try:
            self._cache.set(CACHE_KEY, [s.model_dump(mode="json") for s in self._sessions])
        except OSError as exc:
            logger.error("Failed to write session cache: %s", exc)

    def _commit_local(self, touched: Iterable[str] = ()) -> None:
        touched = list(touched)
        for marks in self._resync_marks:
            marks.update(touched)
        self._save_cache()
        self._notify()

    # -- remote propagation --

    def _schedule(self, operation: str, session_ids: Iterable[str], call: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        previous = self._last_remote
        task = asyncio.get_running_loop().create_task(
            self._propagate(previous, operation, tuple(session_ids), call)
        )
        self._last_remote = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _propagate(
        self,
        previous: Optional[asyncio.Task],
        operation: str,
        session_ids: tuple[str, ...],
        call: Callable[[], Awaitable[Any]],
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await call()
        except Exception as exc:
            self._record_remote_error(operation, session_ids, exc)

    def _record_remote_error(self, operation: str, session_ids: tuple[str, ...], exc: Exception) -> None:
        error = RemoteSyncError(operation=operation, session_ids=session_ids, message=str(exc) or type(exc).__name__)
        self.remote_errors.append(error)
        logger.warning(
            "remote_sync_failed",
            extra={"operation": operation, "session_ids": list(session_ids), "error": error.message},
        )
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Remote error listener failed")

    async def wait_pending(self) -> None:
        """Wait until every scheduled remote write has settled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -- lifecycle --

    async def initialize(self) -> None:
        self.load_from_cache()
        await self.resync()

    async def resync(self) -> bool:
        """Replace local state with the remote list; keeps cached state on failure.

        Sessions changed locally while the fetch is in flight keep their local
        version, and sessions removed locally in that window stay removed.
        """
        self.is_loading = True
        self.sync_error = None
        touched: set[str] = set()
        self._resync_marks.append(touched)
        try:
            await self.wait_pending()
            remote = await self._repository.fetch_all()
        except Exception as exc:
            self.sync_error = str(exc) or type(exc).__name__
            logger.warning("Remote sync failed, keeping cached sessions: %s", self.sync_error)
            return False
        finally:
            self.is_loading = False
            self._resync_marks = [m for m in self._resync_marks if m is not touched]
        self._sessions = self._overlay_local(remote, touched)
        self.is_synced = True
        self._commit_local()
        logger.info("Synced %d sessions from remote store", len(self._sessions), extra={"kept_local": len(touched)})
        return True

    def _overlay_local(self, remote: Sequence[Session], touched: set[str]) -> list[Session]:
        if not touched:
            return list(remote)
        local = {s.id: s for s in self._sessions if s.id in touched}
        merged = [local.get(s.id, s) for s in remote if s.id not in touched or s.id in local]
        remote_ids = {s.id for s in remote}
        merged.extend(s for s in self._sessions if s.id in local and s.id not in remote_ids)
        return merged

    # -- commands --

    async def create(self, template: SessionTemplate, day: date) -> Session:
        session = Session.from_template(template, day, self._id_factory())
        self._sessions.append(session)
        self._commit_local([session.id])
        self._schedule("create", [session.id], lambda: self._repository.create(session))
        return session

    async def create_many(self, templates: Sequence[SessionTemplate], day: date) -> list[Session]:
        created = [Session.from_template(t, day, self._id_factory()) for t in templates]
        if not created:
            return []
        self._sessions.extend(created)
        self._commit_local([s.id for s in created])
        self._schedule("upsert", [s.id for s in created], lambda: self._repository.upsert_many(created))
        return created

    def _replace_local(self, updated: Session) -> None:
        for i, s in enumerate(self._sessions):
            if s.id == updated.id:
                self._sessions[i] = updated
                return
        self._sessions.append(updated)

    async def _update(self, session_id: str, changes: dict[str, Any]) -> Optional[Session]:
        current = self.get(session_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes)
        self._replace_local(updated)
        self._commit_local([session_id])
        self._schedule("update", [session_id], lambda: self._repository.update(updated))
        return updated

    async def update_date(self, session_id: str, new_date: date) -> Optional[Session]:
        return await self._update(session_id, {"date": new_date})

    async def update_feedback(self, session_id: str, text: Optional[str]) -> Optional[Session]:
        return await self._update(session_id, {"coach_feedback": (text or "").strip() or None})

    async def update_editable_fields(
        self, session_id: str, title: Optional[str] = None, description: Optional[str] = None
    ) -> Optional[Session]:
        changes: dict[str, Any] = {}
        if title is not None and title.strip():
            changes["title"] = title.strip()
        if description is not None:
            changes["description"] = description
        if not changes:
            return self.get(session_id)
        return await self._update(session_id, changes)

    async def remove(self, session_id: str) -> bool:
        """Remove a session; origin policy is the caller's responsibility."""
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if len(self._sessions) == before:
            return False
        self._commit_local([session_id])
        self._schedule("delete", [session_id], lambda: self._repository.delete(session_id))
        return True

    async def apply_changes(self, changes: ChangeSet) -> None:
        """Apply a reconciliation change set: deletions, then in-place or appended upserts."""
        if changes.is_empty:
            return
        doomed = set(changes.deletions)
        self._sessions = [s for s in self._sessions if s.id not in doomed]
        for session in changes.upserts:
            self._replace_local(session)
        self._commit_local([*doomed, *(s.id for s in changes.upserts)])

        for session_id in changes.deletions:
            self._schedule("delete", [session_id], lambda sid=session_id: self._repository.delete(sid))
        upserts = list(changes.upserts)
        if upserts:
            self._schedule("upsert", [s.id for s in upserts], lambda: self._repository.upsert_many(upserts))

    async def import_bulk(self, items: Sequence[ImportItem], replace_existing: bool = False) -> BulkImportSummary:
        changes, summary = plan_bulk_import(
            self._sessions,
            items,
            replace_existing=replace_existing,
            today=self._today(),
            id_factory=self._id_factory,
        )
        await self.apply_changes(changes)
        logger.info(
            "bulk_import_applied",
            extra={
                "added": summary.added,
                "updated": summary.updated,
                "skipped": summary.skipped,
                "removed": summary.removed,
                "replace_existing": replace_existing,
            },
        )
        return summary

    def export_planned_as_document(self) -> str:
        return json.dumps([s.to_document() for s in self.planned()], indent=2, ensure_ascii=False)

    async def reset(self) -> int:
        """Wipe every session locally and remotely; returns how many were removed."""
        doomed = [s.id for s in self._sessions]
        for marks in self._resync_marks:
            marks.update(doomed)
        self._sessions = []
        self._cache.delete(CACHE_KEY)
        self._notify()
        for session_id in doomed:
            self._schedule("delete", [session_id], lambda sid=session_id: self._repository.delete(sid))
        return len(doomed)
