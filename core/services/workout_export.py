"""Zwift structured workout (.zwo) export for planned cycling sessions."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Optional
from xml.dom import minidom

from core.domain import Session, Sport, StructurePhase

DEFAULT_WARMUP_BAND = (50.0, 75.0)
DEFAULT_STEADY_POWER = 0.65
AUTHOR = "Cadence"


def _power(band: Optional[tuple[float, float]], default: float = DEFAULT_STEADY_POWER) -> float:
    """Fraction of FTP at the band midpoint."""
    if band is None:
        return default
    return round((band[0] + band[1]) / 2 / 100, 3)


def _seconds(minutes: float) -> str:
    return str(int(round(minutes * 60)))


def _fmt(value: float) -> str:
    return f"{value:g}"


def _add_ramp(parent: ET.Element, tag: str, phase: StructurePhase, rising: bool) -> None:
    low, high = phase.ftp_pct or DEFAULT_WARMUP_BAND
    start, end = (low, high) if rising else (high, low)
    ET.SubElement(
        parent,
        tag,
        Duration=_seconds(phase.min),
        PowerLow=_fmt(round(start / 100, 3)),
        PowerHigh=_fmt(round(end / 100, 3)),
    )


def _add_steady(parent: ET.Element, phase: StructurePhase) -> None:
    for _ in range(phase.reps or 1):
        ET.SubElement(parent, "SteadyState", Duration=_seconds(phase.min), Power=_fmt(_power(phase.ftp_pct)))


def build_workout_element(session: Session) -> ET.Element:
    if session.sport != Sport.CYCLING:
        raise ValueError("Only cycling sessions can be exported as Zwift workouts")
    if not session.structure:
        raise ValueError("Session has no structure to export")

    root = ET.Element("workout_file")
    ET.SubElement(root, "author").text = AUTHOR
    ET.SubElement(root, "name").text = session.title
    ET.SubElement(root, "description").text = session.description or ""
    ET.SubElement(root, "sportType").text = "bike"
    workout = ET.SubElement(root, "workout")

    phases = list(session.structure)
    i = 0
    while i < len(phases):
        phase = phases[i]
        following = phases[i + 1] if i + 1 < len(phases) else None
        if phase.phase == "warmup":
            _add_ramp(workout, "Warmup", phase, rising=True)
        elif phase.phase == "cooldown":
            _add_ramp(workout, "Cooldown", phase, rising=False)
        elif phase.phase == "work" and following is not None and following.phase == "rest":
            ET.SubElement(
                workout,
                "IntervalsT",
                Repeat=str(phase.reps or 1),
                OnDuration=_seconds(phase.min),
                OffDuration=_seconds(following.min),
                OnPower=_fmt(_power(phase.ftp_pct)),
                OffPower=_fmt(_power(following.ftp_pct, default=0.5)),
            )
            i += 1
        else:
            _add_steady(workout, phase)
        i += 1
    return root


def session_to_zwo(session: Session) -> str:
    """Pretty-printed .zwo document for a structured cycling session."""
    raw = ET.tostring(build_workout_element(session), encoding="unicode")
    return minidom.parseString(raw).toprettyxml(indent="  ")


def zwo_filename(session: Session) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", session.title.lower()).strip("-") or "workout"
    return f"{session.date.isoformat()}-{slug}.zwo"
