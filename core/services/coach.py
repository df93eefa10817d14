"""Copy-paste prompts for an external conversational AI coach.

The weekly review ends with a strict JSON output format whose answer can be
pasted back into the bulk-import parser.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from core.domain import SPORT_CONFIG, Session, Sport, TrainingObjective, TrainingPhase
from core.services.integrations.intervals import WellnessSummary
from core.services.weekly_stats import WeeklyStats

ANALYSIS_ANSWER_FORMAT = """---
**Requested answer format (to paste into my log):**
Answer concisely in 4-5 lines max:

⚡ **Load:** [Light/Moderate/Hard] - [short comment]
✅ **Positives:** [1-2 points]
⚠️ **To improve:** [1-2 points]
💡 **Tip:** [1 actionable tip for the next session]"""

WEEKLY_OUTPUT_FORMAT = """---
**Output format (strict):**
Answer ONLY with one JSON object, no text before or after, in this exact shape:

{
  "phase": {"name": "Build", "week": 2, "total_weeks": 4, "description": "...", "goals": "..."},
  "sessions": [
    {
      "sport": "cycling",
      "type": "endurance",
      "title": "Endurance ride",
      "date": "YYYY-MM-DD",
      "duration_min": 90,
      "description": "...",
      "structure": [
        {"phase": "warmup", "min": 15, "ftp_pct": [55, 65]},
        {"phase": "work", "min": 8, "reps": 3, "ftp_pct": [88, 94]},
        {"phase": "rest", "min": 4, "reps": 3, "ftp_pct": [50, 55]},
        {"phase": "cooldown", "min": 10, "ftp_pct": [50, 55]}
      ]
    }
  ]
}

Rules: "sport" is one of cycling, running, strength; "phase" entries are one of
warmup, work, rest, cooldown; use "ftp_pct" for cycling and "hr_max_pct" for
running; dates cover next week (Monday to Sunday)."""


def format_duration(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins} min"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h{mins:02d}"


def format_lap_duration(seconds: int) -> str:
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}'{secs:02d}\""


def format_pace(kmh: float) -> str:
    pace = 60 / kmh
    mins = int(pace)
    secs = round((pace - mins) * 60)
    if secs == 60:
        mins, secs = mins + 1, 0
    return f"{mins}'{secs:02d}\"/km"


def format_speed(meters_per_sec: float, sport: Sport) -> str:
    kmh = meters_per_sec * 3.6
    if sport == Sport.RUNNING and kmh > 0:
        return format_pace(kmh)
    return f"{kmh:.1f} km/h"


def _format_day(day: date) -> str:
    return day.strftime("%A %d %B").replace(" 0", " ")


def _structure_lines(session: Session) -> list[str]:
    lines = []
    for i, phase in enumerate(session.structure, start=1):
        line = f"{i}. {phase.phase} - {phase.min:g} min"
        if phase.reps and phase.reps > 1:
            line += f" (x{phase.reps})"
        if phase.ftp_pct:
            line += f" @ {phase.ftp_pct[0]:g}-{phase.ftp_pct[1]:g}% FTP"
        elif phase.hr_max_pct:
            line += f" @ {phase.hr_max_pct[0]:g}-{phase.hr_max_pct[1]:g}% HRmax"
        lines.append(line)
    return lines


def session_analysis_prompt(session: Session) -> str:
    """Analysis request for a single session."""
    lines = [
        "## Training session to analyze",
        "",
        f"**Sport:** {SPORT_CONFIG[session.sport]['label']}",
        f"**Title:** {session.title}",
        f"**Date:** {_format_day(session.date)}",
        f"**Duration:** {format_duration(session.duration_min)}",
    ]
    if session.actual_km:
        lines.append(f"**Distance:** {session.actual_km:g} km")
    if session.actual_elevation:
        lines.append(f"**Elevation:** {session.actual_elevation} m D+")
    if session.actual_km and session.duration_min > 0:
        kmh = session.actual_km / (session.duration_min / 60)
        if session.sport == Sport.CYCLING:
            lines.append(f"**Average speed:** {kmh:.1f} km/h")
        elif session.sport == Sport.RUNNING:
            lines.append(f"**Average pace:** {format_pace(kmh)}")

    if session.average_heartrate or session.max_heartrate:
        lines += ["", "**Heart rate:**"]
        if session.average_heartrate:
            lines.append(f"- Average: {round(session.average_heartrate)} bpm")
        if session.max_heartrate:
            lines.append(f"- Max: {round(session.max_heartrate)} bpm")

    if session.average_watts or session.max_watts:
        lines += ["", "**Power:**"]
        if session.average_watts:
            lines.append(f"- Average: {round(session.average_watts)} W")
        if session.max_watts:
            lines.append(f"- Max: {round(session.max_watts)} W")

    if session.average_cadence:
        unit = "spm" if session.sport == Sport.RUNNING else "rpm"
        lines.append(f"**Average cadence:** {round(session.average_cadence)} {unit}")

    if session.description:
        lines += ["", "**Description:**", session.description]

    if session.laps:
        lines += ["", f"**Laps ({len(session.laps)}):**"]
        for i, lap in enumerate(session.laps, start=1):
            text = f"{i}. {lap.name} - {format_lap_duration(lap.moving_time)}, {lap.distance / 1000:.2f} km"
            text += f", {format_speed(lap.average_speed, session.sport)}"
            if lap.average_heartrate:
                text += f", {round(lap.average_heartrate)} bpm"
            if lap.average_watts:
                text += f", {round(lap.average_watts)} W"
            if lap.total_elevation_gain:
                text += f", {round(lap.total_elevation_gain)}m D+"
            lines.append(text)

    if session.structure:
        lines += ["", "**Session structure:**"]
        lines += _structure_lines(session)

    lines += ["", ANALYSIS_ANSWER_FORMAT]
    return "\n".join(lines)


def _session_line(session: Session) -> str:
    emoji = SPORT_CONFIG[session.sport]["emoji"]
    text = f"- {session.date.isoformat()} {emoji} {session.title} ({format_duration(session.duration_min)}"
    if session.actual_km:
        text += f", {session.actual_km:g} km"
    if session.actual_elevation:
        text += f", {session.actual_elevation} m D+"
    if session.average_heartrate:
        text += f", {round(session.average_heartrate)} bpm"
    if session.average_watts:
        text += f", {round(session.average_watts)} W"
    text += ")"
    if session.replaced_planned_title:
        text += f" [planned: {session.replaced_planned_title}]"
    if session.coach_feedback:
        text += f"\n  Feedback: {session.coach_feedback}"
    return text


def weekly_review_prompt(
    week_sessions: Sequence[Session],
    stats: WeeklyStats,
    phase: Optional[TrainingPhase] = None,
    objectives: Iterable[TrainingObjective] = (),
    wellness: Optional[WellnessSummary] = None,
    today: Optional[date] = None,
) -> str:
    """Weekly review request ending with the strict next-week plan format."""
    today = today or date.today()
    ordered = sorted(week_sessions, key=lambda s: s.date)
    accomplished = [s for s in ordered if s.is_actual]
    planned = [s for s in ordered if s.is_planned]

    lines = [
        f"## Weekly review: {stats.week_start.isoformat()} to {stats.week_end.isoformat()}",
        "",
        f"**Completed sessions ({len(accomplished)}):**",
    ]
    lines += [_session_line(s) for s in accomplished] or ["- none"]
    lines += ["", f"**Planned but not completed ({len(planned)}):**"]
    lines += [_session_line(s) for s in planned] or ["- none"]

    lines += [
        "",
        "**Volume:**",
        f"- Cycling: {stats.cycling.hours:.1f}h, {stats.cycling.km:.0f} km, {stats.cycling.elevation:.0f} m D+",
        f"- Running: {stats.running.hours:.1f}h, {stats.running.km:.0f} km, {stats.running.elevation:.0f} m D+",
        f"- Strength: {stats.strength.hours:.1f}h",
        f"- Completed: {stats.accomplished.hours:.1f}h over {stats.accomplished.sessions} sessions"
        f" (planned: {stats.planned.hours:.1f}h over {stats.planned.sessions} sessions)",
    ]

    if phase is not None:
        lines += ["", f"**Current phase:** {phase.name} ({phase.start_date.isoformat()} to {phase.end_date.isoformat()})"]
        if phase.description:
            lines.append(phase.description)
        if phase.goals:
            lines.append(f"Goals: {phase.goals}")

    objectives = list(objectives)
    if objectives:
        lines += ["", "**Upcoming objectives:**"]
        for obj in objectives:
            weeks_left = (obj.date - today).days // 7
            text = f"- [{obj.priority}] {obj.name} on {obj.date.isoformat()} ({weeks_left} weeks): {obj.distance_km:g} km"
            if obj.elevation_gain:
                text += f", {obj.elevation_gain:g} m D+"
            if obj.elevation_loss:
                text += f", {obj.elevation_loss:g} m D-"
            lines.append(text)

    if wellness is not None:
        lines += ["", "**Wellness today:**"]
        if wellness.ctl is not None and wellness.atl is not None:
            lines.append(f"- Fitness (CTL) {wellness.ctl:.0f}, fatigue (ATL) {wellness.atl:.0f}, form {wellness.load_balance} ({wellness.form})")
        if wellness.hrv is not None:
            lines.append(f"- HRV: {wellness.hrv:g}")
        if wellness.resting_hr is not None:
            lines.append(f"- Resting HR: {wellness.resting_hr} bpm")
        if wellness.sleep_score is not None:
            lines.append(f"- Sleep score: {wellness.sleep_score:g}")

    lines += [
        "",
        "Review this week (load, consistency, fatigue) and plan next week accordingly.",
        "",
        WEEKLY_OUTPUT_FORMAT,
    ]
    return "\n".join(lines)
