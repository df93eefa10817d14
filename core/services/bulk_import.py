"""Parse bulk-import documents pasted from an AI conversation or an export.

Accepted shapes:
  * a flat array of session templates or full sessions;
  * an object ``{"phase": {...}, "sessions": [...]}``;
  * a single session object.

Normalization strips markdown code fences and decodes the sequence of
top-level JSON values in the text: when several objects follow each other the
first one wins, consecutive arrays are concatenated, arrays of arrays are
flattened. Shape matchers then run in order, each returning a typed result or
``None``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date as dt_date
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from core.domain import SessionTemplate
from core.errors import BulkImportError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n?|```")


class SessionImportItem(SessionTemplate):
    """A template that may also carry an id and a date."""

    id: Optional[str] = None
    date: Optional[dt_date] = None


class PhaseMeta(BaseModel):
    name: str = Field(min_length=1)
    week: Optional[int] = Field(default=None, ge=1)
    total_weeks: Optional[int] = Field(default=None, ge=1)
    description: str = ""
    goals: str = ""


@dataclass
class ParsedImport:
    sessions: list[SessionImportItem] = field(default_factory=list)
    phase_meta: Optional[PhaseMeta] = None


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def decode_json_values(text: str) -> Any:
    """Decode the top-level JSON values of ``text`` into a single value.

    Raises ``BulkImportError`` when no JSON value can be decoded at all.
    """
    decoder = json.JSONDecoder()
    values: list[Any] = []
    pos = 0
    length = len(text)
    while pos < length:
        while pos < length and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= length:
            break
        try:
            value, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as exc:
            if not values:
                raise BulkImportError("Invalid JSON", [f"line {exc.lineno} column {exc.colno}: {exc.msg}"]) from exc
            logger.debug("Ignoring trailing text after JSON at offset %d", pos)
            break
        values.append(value)

    if not values:
        raise BulkImportError("Empty document")

    first = values[0]
    if isinstance(first, dict):
        if len(values) > 1:
            logger.info("Discarding %d duplicated top-level value(s)", len(values) - 1)
        return first
    if isinstance(first, list):
        merged: list[Any] = []
        for value in values:
            if not isinstance(value, list):
                break
            merged.extend(value)
        return merged
    raise BulkImportError("Document must contain a JSON object or array")


def _flatten(items: list[Any]) -> list[Any]:
    flat: list[Any] = []
    for item in items:
        if isinstance(item, list):
            flat.extend(_flatten(item))
        else:
            flat.append(item)
    return flat


def _validate_items(raw_items: list[Any]) -> list[SessionImportItem]:
    items: list[SessionImportItem] = []
    errors: list[str] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            errors.append(f"item {index}: expected an object, got {type(raw).__name__}")
            continue
        try:
            items.append(SessionImportItem.model_validate(raw))
        except ValidationError as exc:
            for err in exc.errors():
                loc = ".".join(str(part) for part in err["loc"]) or "item"
                errors.append(f"item {index}: {loc}: {err['msg']}")
    if errors:
        raise BulkImportError(f"{len(errors)} invalid session field(s)", errors)
    return items


# -- shape matchers --


def _match_phase_document(value: Any) -> Optional[ParsedImport]:
    if not isinstance(value, dict) or "sessions" not in value:
        return None
    raw_sessions = value.get("sessions")
    if not isinstance(raw_sessions, list):
        raise BulkImportError("'sessions' must be an array")
    phase_meta = None
    if value.get("phase") is not None:
        try:
            phase_meta = PhaseMeta.model_validate(value["phase"])
        except ValidationError as exc:
            raise BulkImportError("Invalid phase metadata", [e["msg"] for e in exc.errors()]) from exc
    return ParsedImport(sessions=_validate_items(_flatten(raw_sessions)), phase_meta=phase_meta)


def _match_session_list(value: Any) -> Optional[ParsedImport]:
    if not isinstance(value, list):
        return None
    return ParsedImport(sessions=_validate_items(_flatten(value)))


def _match_single_session(value: Any) -> Optional[ParsedImport]:
    if not isinstance(value, dict) or "sport" not in value:
        return None
    return ParsedImport(sessions=_validate_items([value]))


SHAPE_MATCHERS: list[Callable[[Any], Optional[ParsedImport]]] = [
    _match_phase_document,
    _match_session_list,
    _match_single_session,
]


def parse_import_document(text: str) -> ParsedImport:
    """Parse a bulk-import document; raises ``BulkImportError`` on malformed input."""
    if not text or not text.strip():
        raise BulkImportError("Empty document")
    value = decode_json_values(strip_code_fences(text))
    for matcher in SHAPE_MATCHERS:
        parsed = matcher(value)
        if parsed is not None:
            if not parsed.sessions:
                raise BulkImportError("No session found in document")
            return parsed
    raise BulkImportError("Unrecognized document shape: expected a session, a list of sessions or {phase, sessions}")
