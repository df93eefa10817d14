from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from core.domain import TrainingObjective, TrainingPhase

_PRIORITY_ORDER = {"A": 0, "B": 1, "C": 2}


def current_phase(phases: Iterable[TrainingPhase], day: date) -> Optional[TrainingPhase]:
    """First phase whose date range contains ``day``."""
    for phase in phases:
        if phase.contains(day):
            return phase
    return None


def upcoming_objectives(objectives: Iterable[TrainingObjective], today: date) -> list[TrainingObjective]:
    upcoming = [o for o in objectives if o.date >= today]
    return sorted(upcoming, key=lambda o: (o.date, _PRIORITY_ORDER[o.priority]))


def materialize_phase(meta, dates: Sequence[date]) -> Optional[TrainingPhase]:
    """Build a phase spanning ``dates`` from imported phase metadata."""
    if meta is None or not dates:
        return None
    name = meta.name
    if meta.week and meta.total_weeks:
        name = f"{meta.name} (week {meta.week}/{meta.total_weeks})"
    return TrainingPhase(
        name=name,
        start_date=min(dates),
        end_date=max(dates),
        description=meta.description,
        goals=meta.goals,
    )


def upsert_phase(phases: Sequence[TrainingPhase], phase: TrainingPhase) -> list[TrainingPhase]:
    """Replace a phase with the same name and range, else append; result sorted by start."""
    kept = [
        p
        for p in phases
        if not (p.name == phase.name and p.start_date == phase.start_date and p.end_date == phase.end_date)
    ]
    kept.append(phase)
    return sorted(kept, key=lambda p: p.start_date)


def days_until(objective: TrainingObjective, today: date) -> int:
    return (objective.date - today).days
