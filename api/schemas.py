from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from core.domain import SessionTemplate
from core.services.reconciliation import DuplicatePolicy


class SessionCreate(SessionTemplate):
    date: dt_date


class SessionBatchCreate(BaseModel):
    date: dt_date
    templates: list[SessionTemplate] = Field(min_length=1)


class RescheduleInput(BaseModel):
    date: dt_date


class FeedbackInput(BaseModel):
    text: Optional[str] = None


class RelabelInput(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class ImportDocumentInput(BaseModel):
    document: str = Field(min_length=1)
    replace_existing: bool = False


class ActivityImportInput(BaseModel):
    days: Optional[int] = Field(default=None, ge=1, le=365)
    policy: Optional[DuplicatePolicy] = None


class CalendarSyncInput(BaseModel):
    week_of: Optional[dt_date] = None


class OAuthCallbackInput(BaseModel):
    code: str = Field(min_length=1)


class SettingsUpdate(BaseModel):
    theme: Optional[str] = None
    intervals_athlete_id: Optional[str] = None
    intervals_api_key: Optional[str] = None


class MessageOut(BaseModel):
    message: str


class PromptOut(BaseModel):
    text: str


class BulkImportOut(BaseModel):
    added: int
    updated: int
    skipped: int
    removed: int
    message: str
    phase: Optional[dict[str, Any]] = None


class ActivityImportOut(BaseModel):
    inserted: int
    displaced: int
    skipped: int
    updated: int
    duplicates: int
    spotlight_id: Optional[str] = None
    message: str


class CalendarSyncOut(BaseModel):
    created: int
    updated: int
    failed: list[str]
    message: str


class CalendarClearOut(BaseModel):
    deleted: int


class ConnectionOut(BaseModel):
    provider: str
    connected: bool
    error: Optional[str] = None


class AuthorizationUrlOut(BaseModel):
    authorization_url: str


class RemoteErrorOut(BaseModel):
    operation: str
    session_ids: list[str]
    message: str
    occurred_at: dt_datetime


class SyncStatusOut(BaseModel):
    is_loading: bool
    is_synced: bool
    sync_error: Optional[str] = None
    session_count: int
    pending_remote_errors: int


class WellnessOut(BaseModel):
    day: dt_date
    ctl: Optional[float] = None
    atl: Optional[float] = None
    load_balance: Optional[int] = None
    form: Optional[str] = None
    hrv: Optional[float] = None
    resting_hr: Optional[int] = None
    sleep_score: Optional[float] = None
    readiness: Optional[float] = None


class ResetOut(BaseModel):
    removed: int
