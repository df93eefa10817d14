from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class SessionRecord(Base):
    __tablename__ = "sessions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sport: Mapped[str] = mapped_column(String(16), index=True)
    origin: Mapped[str] = mapped_column(String(16), default="planned")
    type: Mapped[str] = mapped_column(String(60), default="")
    title: Mapped[str] = mapped_column(String(255))
    date: Mapped[dt.date] = mapped_column(Date, index=True)
    duration_min: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text, default="")
    structure: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    actual_km: Mapped[float | None] = mapped_column(Float)
    actual_elevation: Mapped[int | None] = mapped_column(Integer)
    strava_id: Mapped[int | None] = mapped_column(BigInteger, unique=True)
    laps: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    average_heartrate: Mapped[float | None] = mapped_column(Float)
    max_heartrate: Mapped[float | None] = mapped_column(Float)
    average_watts: Mapped[float | None] = mapped_column(Float)
    max_watts: Mapped[float | None] = mapped_column(Float)
    average_cadence: Mapped[float | None] = mapped_column(Float)
    coach_feedback: Mapped[str | None] = mapped_column(Text)
    replaced_planned_title: Mapped[str | None] = mapped_column(String(255))
    replaced_planned_description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
    __table_args__ = (
        CheckConstraint("sport in ('cycling', 'running', 'strength')", name="ck_sessions_sport"),
        CheckConstraint("origin in ('planned', 'actual')", name="ck_sessions_origin"),
        CheckConstraint("duration_min >= 0", name="ck_sessions_duration"),
    )


class UserSettings(Base):
    __tablename__ = "user_settings"
    id: Mapped[int] = mapped_column(primary_key=True, default=1)
    theme: Mapped[str] = mapped_column(String(40), default="dracula")
    intervals_athlete_id: Mapped[str | None] = mapped_column(String(60))
    intervals_api_key: Mapped[str | None] = mapped_column(String(255))
    training_phases: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    training_objectives: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
    __table_args__ = (CheckConstraint("id = 1", name="ck_user_settings_single_row"),)


class OAuthToken(Base):
    __tablename__ = "oauth_tokens"
    id: Mapped[int] = mapped_column(primary_key=True)
    provider: Mapped[str] = mapped_column(String(20), unique=True)
    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[str] = mapped_column(Text)
    expires_at: Mapped[int] = mapped_column(BigInteger)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
    __table_args__ = (CheckConstraint("provider in ('strava', 'google')", name="ck_oauth_tokens_provider"),)
