from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from api.deps import get_dashboard
from api.schemas import (
    ActivityImportInput,
    ActivityImportOut,
    AuthorizationUrlOut,
    BulkImportOut,
    CalendarClearOut,
    CalendarSyncInput,
    CalendarSyncOut,
    ConnectionOut,
    FeedbackInput,
    ImportDocumentInput,
    OAuthCallbackInput,
    PromptOut,
    RelabelInput,
    RemoteErrorOut,
    RescheduleInput,
    ResetOut,
    SessionBatchCreate,
    SessionCreate,
    SettingsUpdate,
    SyncStatusOut,
    WellnessOut,
)
from core.domain import Session, SessionTemplate, TrainingObjective, TrainingPhase
from core.repositories import SettingsState
from core.services.dashboard import Dashboard
from core.services.integrations.base import OAuthAdapter
from core.services.reconciliation import ActivityImportSummary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

DashboardDep = Annotated[Dashboard, Depends(get_dashboard)]


def _activity_out(summary: ActivityImportSummary) -> ActivityImportOut:
    return ActivityImportOut(
        inserted=summary.inserted,
        displaced=summary.displaced,
        skipped=summary.skipped,
        updated=summary.updated,
        duplicates=summary.duplicates,
        spotlight_id=summary.spotlight_id,
        message=summary.message,
    )


def _connection_out(adapter: OAuthAdapter) -> ConnectionOut:
    return ConnectionOut(provider=adapter.PROVIDER, connected=adapter.is_connected, error=adapter.error)


# -- sessions --


@router.get("/sessions", response_model=list[Session], tags=["sessions"])
def list_sessions(
    dashboard: DashboardDep,
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    sessions = dashboard.store.sessions
    if start is not None:
        sessions = [s for s in sessions if s.date >= start]
    if end is not None:
        sessions = [s for s in sessions if s.date <= end]
    return sorted(sessions, key=lambda s: s.date)


@router.post("/sessions", response_model=Session, status_code=status.HTTP_201_CREATED, tags=["sessions"])
async def create_session(payload: SessionCreate, dashboard: DashboardDep):
    template = SessionTemplate.model_validate(payload.model_dump(exclude={"date"}))
    return await dashboard.add_session(template, payload.date)


@router.post("/sessions/batch", response_model=list[Session], status_code=status.HTTP_201_CREATED, tags=["sessions"])
async def create_sessions(payload: SessionBatchCreate, dashboard: DashboardDep):
    return await dashboard.store.create_many(payload.templates, payload.date)


@router.post("/sessions/import", response_model=BulkImportOut, tags=["sessions"])
async def import_document(payload: ImportDocumentInput, dashboard: DashboardDep):
    result = await dashboard.import_document(payload.document, replace_existing=payload.replace_existing)
    return BulkImportOut(
        added=result.summary.added,
        updated=result.summary.updated,
        skipped=result.summary.skipped,
        removed=result.summary.removed,
        message=result.message,
        phase=result.phase.model_dump(mode="json") if result.phase else None,
    )


@router.get("/sessions/export", tags=["sessions"])
def export_planned(dashboard: DashboardDep):
    return Response(
        content=dashboard.export_planned(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="cadence-plan-{date.today().isoformat()}.json"'},
    )


@router.post("/sessions/reset", response_model=ResetOut, tags=["sessions"])
async def reset_sessions(dashboard: DashboardDep):
    return ResetOut(removed=await dashboard.reset())


@router.get("/sessions/{session_id}", response_model=Session, tags=["sessions"])
def get_session(session_id: str, dashboard: DashboardDep):
    return dashboard.require_session(session_id)


@router.patch("/sessions/{session_id}/date", response_model=Session, tags=["sessions"])
async def reschedule_session(session_id: str, payload: RescheduleInput, dashboard: DashboardDep):
    return await dashboard.reschedule(session_id, payload.date)


@router.put("/sessions/{session_id}/feedback", response_model=Session, tags=["sessions"])
async def set_feedback(session_id: str, payload: FeedbackInput, dashboard: DashboardDep):
    return await dashboard.set_feedback(session_id, payload.text)


@router.patch("/sessions/{session_id}", response_model=Session, tags=["sessions"])
async def relabel_session(session_id: str, payload: RelabelInput, dashboard: DashboardDep):
    return await dashboard.relabel(session_id, title=payload.title, description=payload.description)


@router.post("/sessions/{session_id}/reapply-intent", response_model=Session, tags=["sessions"])
async def reapply_intent(session_id: str, dashboard: DashboardDep):
    return await dashboard.reapply_planned_intent(session_id)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["sessions"])
async def delete_session(session_id: str, dashboard: DashboardDep):
    await dashboard.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions/{session_id}/analysis-prompt", response_model=PromptOut, tags=["coach"])
def analysis_prompt(session_id: str, dashboard: DashboardDep):
    return PromptOut(text=dashboard.analysis_prompt(session_id))


@router.get("/sessions/{session_id}/workout.zwo", tags=["sessions"])
def export_workout(session_id: str, dashboard: DashboardDep):
    try:
        filename, document = dashboard.export_workout(session_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return Response(
        content=document,
        media_type="application/xml",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# -- weekly view --


@router.get("/weeks/{week_of}/stats", tags=["weeks"])
def weekly_stats(week_of: date, dashboard: DashboardDep):
    return dashboard.weekly_stats(week_of).to_dict()


@router.get("/weeks/{week_of}/review-prompt", response_model=PromptOut, tags=["coach"])
async def weekly_review_prompt(week_of: date, dashboard: DashboardDep, include_wellness: bool = True):
    return PromptOut(text=await dashboard.weekly_review_prompt(week_of, include_wellness=include_wellness))


# -- phases, objectives, settings --


@router.get("/phases", response_model=list[TrainingPhase], tags=["planning"])
async def list_phases(dashboard: DashboardDep):
    return (await dashboard.get_settings()).training_phases


@router.put("/phases", response_model=list[TrainingPhase], tags=["planning"])
async def save_phase(phase: TrainingPhase, dashboard: DashboardDep):
    return await dashboard.save_phase(phase)


@router.delete("/phases/{phase_id}", response_model=list[TrainingPhase], tags=["planning"])
async def delete_phase(phase_id: str, dashboard: DashboardDep):
    return await dashboard.delete_phase(phase_id)


@router.get("/objectives", response_model=list[TrainingObjective], tags=["planning"])
async def list_objectives(dashboard: DashboardDep):
    return (await dashboard.get_settings()).training_objectives


@router.put("/objectives", response_model=list[TrainingObjective], tags=["planning"])
async def save_objective(objective: TrainingObjective, dashboard: DashboardDep):
    return await dashboard.save_objective(objective)


@router.delete("/objectives/{objective_id}", response_model=list[TrainingObjective], tags=["planning"])
async def delete_objective(objective_id: str, dashboard: DashboardDep):
    return await dashboard.delete_objective(objective_id)


@router.get("/settings", response_model=SettingsState, tags=["settings"])
async def get_settings_state(dashboard: DashboardDep):
    return await dashboard.get_settings()


@router.patch("/settings", response_model=SettingsState, tags=["settings"])
async def update_settings(payload: SettingsUpdate, dashboard: DashboardDep):
    return await dashboard.update_settings(**payload.model_dump())


# -- Strava --


@router.get("/strava/status", response_model=ConnectionOut, tags=["strava"])
def strava_status(dashboard: DashboardDep):
    return _connection_out(dashboard.strava)


@router.get("/strava/connect", response_model=AuthorizationUrlOut, tags=["strava"])
def strava_connect(dashboard: DashboardDep, state: str = ""):
    return AuthorizationUrlOut(authorization_url=dashboard.strava.authorization_url(state))


@router.post("/strava/callback", response_model=ConnectionOut, tags=["strava"])
async def strava_callback(payload: OAuthCallbackInput, dashboard: DashboardDep):
    await dashboard.strava.handle_callback(payload.code)
    return _connection_out(dashboard.strava)


@router.post("/strava/disconnect", response_model=ConnectionOut, tags=["strava"])
def strava_disconnect(dashboard: DashboardDep):
    dashboard.strava.disconnect()
    return _connection_out(dashboard.strava)


@router.post("/strava/import", response_model=ActivityImportOut, tags=["strava"])
async def strava_import(dashboard: DashboardDep, payload: Optional[ActivityImportInput] = None):
    payload = payload or ActivityImportInput()
    summary = await dashboard.import_activities(days=payload.days, policy=payload.policy)
    return _activity_out(summary)


# -- Google Calendar --


@router.get("/google/status", response_model=ConnectionOut, tags=["google"])
def google_status(dashboard: DashboardDep):
    return _connection_out(dashboard.calendar)


@router.get("/google/connect", response_model=AuthorizationUrlOut, tags=["google"])
def google_connect(dashboard: DashboardDep, state: str = "google"):
    return AuthorizationUrlOut(authorization_url=dashboard.calendar.authorization_url(state))


@router.post("/google/callback", response_model=ConnectionOut, tags=["google"])
async def google_callback(payload: OAuthCallbackInput, dashboard: DashboardDep):
    await dashboard.calendar.handle_callback(payload.code)
    return _connection_out(dashboard.calendar)


@router.post("/google/disconnect", response_model=ConnectionOut, tags=["google"])
def google_disconnect(dashboard: DashboardDep):
    dashboard.calendar.disconnect()
    return _connection_out(dashboard.calendar)


@router.post("/google/sync", response_model=CalendarSyncOut, tags=["google"])
async def google_sync(dashboard: DashboardDep, payload: Optional[CalendarSyncInput] = None):
    week_of = payload.week_of if payload else None
    result = await dashboard.sync_calendar(week_of)
    return CalendarSyncOut(created=result.created, updated=result.updated, failed=result.failed, message=result.message)


@router.post("/google/clear", response_model=CalendarClearOut, tags=["google"])
async def google_clear(dashboard: DashboardDep):
    return CalendarClearOut(deleted=await dashboard.clear_calendar())


# -- wellness --


@router.get("/wellness/summary", response_model=Optional[WellnessOut], tags=["wellness"])
async def wellness_summary(dashboard: DashboardDep):
    summary = await dashboard.wellness_summary()
    if summary is None:
        return None
    return WellnessOut(**asdict(summary))


# -- sync state --


@router.get("/sync/status", response_model=SyncStatusOut, tags=["sync"])
def sync_status(dashboard: DashboardDep):
    store = dashboard.store
    return SyncStatusOut(
        is_loading=store.is_loading,
        is_synced=store.is_synced,
        sync_error=store.sync_error,
        session_count=len(store.sessions),
        pending_remote_errors=len(store.remote_errors),
    )


@router.get("/sync/errors", response_model=list[RemoteErrorOut], tags=["sync"])
def sync_errors(dashboard: DashboardDep):
    return [
        RemoteErrorOut(
            operation=e.operation,
            session_ids=list(e.session_ids),
            message=e.message,
            occurred_at=e.occurred_at,
        )
        for e in dashboard.store.remote_errors
    ]


@router.post("/sync/resync", response_model=SyncStatusOut, tags=["sync"])
async def resync(dashboard: DashboardDep):
    await dashboard.store.resync()
    return sync_status(dashboard)
