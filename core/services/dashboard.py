"""UI-facing commands.

This layer enforces the origin policy the session store leaves to its callers:
completed (imported) sessions are never deleted or rescheduled, and the
title/description relabel only applies to them. It also orchestrates the
provider flows (activity import, calendar export, wellness) and the settings
record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Protocol

from core.domain import Session, SessionTemplate, TrainingObjective, TrainingPhase
from core.errors import (
    ActualSessionLockedError,
    IntegrationError,
    NotConnectedError,
    PlannedSessionLockedError,
    SessionNotFoundError,
)
from core.repositories import SettingsState
from core.services.bulk_import import parse_import_document
from core.services.coach import session_analysis_prompt, weekly_review_prompt
from core.services.integrations.google_calendar import CalendarSyncResult, GoogleCalendarAdapter
from core.services.integrations.intervals import WellnessAdapter, WellnessSummary
from core.services.integrations.strava import StravaAdapter, map_to_sport, to_sessions
from core.services.phases import current_phase, materialize_phase, upcoming_objectives, upsert_phase
from core.services.reconciliation import ActivityImportSummary, BulkImportSummary, DuplicatePolicy, ReconciliationEngine
from core.services.session_store import SessionStore
from core.services.weekly_stats import WeeklyStats, compute_weekly_stats, sessions_in_week
from core.services.workout_export import session_to_zwo, zwo_filename

logger = logging.getLogger(__name__)


class SettingsRepository(Protocol):
    async def load(self) -> SettingsState: ...

    async def save(self, state: SettingsState) -> SettingsState: ...


@dataclass
class DocumentImportResult:
    summary: BulkImportSummary
    phase: Optional[TrainingPhase] = None

    @property
    def message(self) -> str:
        if self.phase is None:
            return self.summary.message
        return f"{self.summary.message}; phase '{self.phase.name}' saved"


class Dashboard:
    def __init__(
        self,
        store: SessionStore,
        settings_repository: SettingsRepository,
        strava: StravaAdapter,
        calendar: GoogleCalendarAdapter,
        wellness: WellnessAdapter,
        *,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.SKIP,
        activity_lookback_days: int = 7,
        wellness_lookback_days: int = 42,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.settings_repository = settings_repository
        self.strava = strava
        self.calendar = calendar
        self.wellness = wellness
        self.engine = ReconciliationEngine(store, duplicate_policy)
        self.activity_lookback_days = activity_lookback_days
        self.wellness_lookback_days = wellness_lookback_days
        self._today = today
        self._settings: Optional[SettingsState] = None

    # -- lookups --

    def require_session(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # -- session commands --

    async def add_session(self, template: SessionTemplate, day: date) -> Session:
        return await self.store.create(template, day)

    async def reschedule(self, session_id: str, new_date: date) -> Session:
        session = self.require_session(session_id)
        if session.is_actual:
            raise ActualSessionLockedError(session_id, "rescheduled")
        return await self.store.update_date(session_id, new_date)

    async def delete(self, session_id: str) -> None:
        session = self.require_session(session_id)
        if session.is_actual:
            raise ActualSessionLockedError(session_id, "deleted")
        await self.store.remove(session_id)

    async def set_feedback(self, session_id: str, text: Optional[str]) -> Session:
        self.require_session(session_id)
        return await self.store.update_feedback(session_id, text)

    async def relabel(self, session_id: str, title: Optional[str] = None, description: Optional[str] = None) -> Session:
        session = self.require_session(session_id)
        if not session.is_actual:
            raise PlannedSessionLockedError(session_id, "relabelling")
        return await self.store.update_editable_fields(session_id, title=title, description=description)

    async def reapply_planned_intent(self, session_id: str) -> Session:
        """Copy the displaced planned session's title/description onto a completed session."""
        session = self.require_session(session_id)
        if not session.is_actual:
            raise PlannedSessionLockedError(session_id, "reapplying planned intent")
        if session.replaced_planned_title is None:
            return session
        return await self.store.update_editable_fields(
            session_id,
            title=session.replaced_planned_title,
            description=session.replaced_planned_description or "",
        )

    async def reset(self) -> int:
        return await self.store.reset()

    def export_planned(self) -> str:
        return self.store.export_planned_as_document()

    # -- imports --

    async def import_document(self, text: str, replace_existing: bool = False) -> DocumentImportResult:
        """Parse and apply a bulk-import document; malformed input never touches the store."""
        parsed = parse_import_document(text)
        summary = await self.store.import_bulk(parsed.sessions, replace_existing=replace_existing)
        phase = None
        if parsed.phase_meta is not None:
            today = self._today()
            phase = materialize_phase(parsed.phase_meta, [item.date or today for item in parsed.sessions])
            if phase is not None:
                state = await self.get_settings()
                phases = upsert_phase(state.training_phases, phase)
                await self._save_settings(state.model_copy(update={"training_phases": phases}))
        return DocumentImportResult(summary=summary, phase=phase)

    async def import_activities(
        self, days: Optional[int] = None, policy: Optional[DuplicatePolicy] = None
    ) -> ActivityImportSummary:
        """Fetch recent activities and reconcile them with the schedule."""
        if not self.strava.is_connected:
            raise NotConnectedError(self.strava.PROVIDER)
        effective = policy or self.engine.policy
        recent = await self.strava.fetch_recent(days or self.activity_lookback_days)
        supported = [a for a in recent if map_to_sport(a) is not None]
        already_imported = 0
        if effective is DuplicatePolicy.SKIP:
            # Details are only fetched for activities not imported yet
            known = {s.strava_id for s in self.store.sessions if s.is_actual and s.strava_id is not None}
            fresh = [a for a in supported if int(a["id"]) not in known]
            already_imported = len(supported) - len(fresh)
            supported = fresh
        if not supported:
            return ActivityImportSummary(skipped=already_imported)
        detailed = await self.strava.fetch_details(supported)
        summary = await self.engine.reconcile(to_sessions(detailed), effective)
        summary.skipped += already_imported
        return summary

    # -- calendar --

    async def sync_calendar(self, week_of: Optional[date] = None) -> CalendarSyncResult:
        return await self.calendar.sync_to_calendar(self.store.sessions, week_of or self._today())

    async def clear_calendar(self) -> int:
        return await self.calendar.delete_all_managed()

    # -- wellness --

    async def wellness_summary(self) -> Optional[WellnessSummary]:
        state = await self.get_settings()
        if state.intervals_athlete_id and state.intervals_api_key:
            self.wellness.configure(state.intervals_athlete_id, state.intervals_api_key)
        return await self.wellness.today_summary(self.wellness_lookback_days)

    # -- weekly view and coach prompts --

    def weekly_stats(self, week_of: Optional[date] = None) -> WeeklyStats:
        return compute_weekly_stats(self.store.sessions, week_of or self._today())

    def analysis_prompt(self, session_id: str) -> str:
        return session_analysis_prompt(self.require_session(session_id))

    async def weekly_review_prompt(self, week_of: Optional[date] = None, include_wellness: bool = True) -> str:
        week_of = week_of or self._today()
        state = await self.get_settings()
        wellness = None
        if include_wellness and (self.wellness.is_configured or state.intervals_api_key):
            try:
                wellness = await self.wellness_summary()
            except IntegrationError as exc:
                logger.warning("Wellness unavailable for weekly review: %s", exc)
        return weekly_review_prompt(
            sessions_in_week(self.store.sessions, week_of),
            self.weekly_stats(week_of),
            phase=current_phase(state.training_phases, week_of),
            objectives=upcoming_objectives(state.training_objectives, self._today()),
            wellness=wellness,
            today=self._today(),
        )

    def export_workout(self, session_id: str) -> tuple[str, str]:
        """(filename, .zwo document) for a structured cycling session."""
        session = self.require_session(session_id)
        return zwo_filename(session), session_to_zwo(session)

    # -- settings --

    async def get_settings(self) -> SettingsState:
        if self._settings is None:
            self._settings = await self.settings_repository.load()
        return self._settings

    async def _save_settings(self, state: SettingsState) -> SettingsState:
        self._settings = await self.settings_repository.save(state)
        return self._settings

    async def update_settings(
        self,
        theme: Optional[str] = None,
        intervals_athlete_id: Optional[str] = None,
        intervals_api_key: Optional[str] = None,
    ) -> SettingsState:
        state = await self.get_settings()
        changes = {
            name: value
            for name, value in (
                ("theme", theme),
                ("intervals_athlete_id", intervals_athlete_id),
                ("intervals_api_key", intervals_api_key),
            )
            if value is not None
        }
        saved = await self._save_settings(state.model_copy(update=changes))
        if saved.intervals_athlete_id and saved.intervals_api_key:
            self.wellness.configure(saved.intervals_athlete_id, saved.intervals_api_key)
        return saved

    async def save_phase(self, phase: TrainingPhase) -> list[TrainingPhase]:
        state = await self.get_settings()
        phases = [p for p in state.training_phases if p.id != phase.id]
        phases.append(phase)
        phases.sort(key=lambda p: p.start_date)
        saved = await self._save_settings(state.model_copy(update={"training_phases": phases}))
        return saved.training_phases

    async def delete_phase(self, phase_id: str) -> list[TrainingPhase]:
        state = await self.get_settings()
        phases = [p for p in state.training_phases if p.id != phase_id]
        saved = await self._save_settings(state.model_copy(update={"training_phases": phases}))
        return saved.training_phases

    async def save_objective(self, objective: TrainingObjective) -> list[TrainingObjective]:
        state = await self.get_settings()
        objectives = [o for o in state.training_objectives if o.id != objective.id]
        objectives.append(objective)
        objectives.sort(key=lambda o: o.date)
        saved = await self._save_settings(state.model_copy(update={"training_objectives": objectives}))
        return saved.training_objectives

    async def delete_objective(self, objective_id: str) -> list[TrainingObjective]:
        state = await self.get_settings()
        objectives = [o for o in state.training_objectives if o.id != objective_id]
        saved = await self._save_settings(state.model_copy(update={"training_objectives": objectives}))
        return saved.training_objectives
