"""Tests for the bulk-import document parser."""

from __future__ import annotations

from datetime import date

import pytest

from core.errors import BulkImportError
from core.services.bulk_import import decode_json_values, parse_import_document, strip_code_fences

SESSION = '{"sport": "running", "title": "Tempo", "duration_min": 45}'


def test_strip_code_fences():
    text = "Here is your plan:\n```json\n[1, 2]\n```\n"
    assert strip_code_fences(text) == "Here is your plan:\n[1, 2]"


def test_fenced_array_is_parsed():
    parsed = parse_import_document(f"```json\n[{SESSION}]\n```")
    assert [s.title for s in parsed.sessions] == ["Tempo"]
    assert parsed.phase_meta is None


def test_single_session_object():
    parsed = parse_import_document(SESSION)
    assert len(parsed.sessions) == 1
    assert parsed.sessions[0].date is None


def test_duplicated_object_keeps_first():
    first = '{"sport": "running", "title": "First", "duration_min": 30}'
    parsed = parse_import_document(first + "\n" + SESSION)
    assert [s.title for s in parsed.sessions] == ["First"]


def test_consecutive_arrays_are_concatenated():
    other = '{"sport": "strength", "title": "Core", "duration_min": 20, "date": "2025-03-11"}'
    parsed = parse_import_document(f"[{SESSION}]\n[{other}]")
    assert [s.title for s in parsed.sessions] == ["Tempo", "Core"]
    assert parsed.sessions[1].date == date(2025, 3, 11)


def test_nested_arrays_are_flattened():
    parsed = parse_import_document(f"[[{SESSION}], [{SESSION}]]")
    assert len(parsed.sessions) == 2


def test_phase_document():
    doc = (
        '{"phase": {"name": "Build", "week": 2, "total_weeks": 4, "goals": "Threshold"},'
        f' "sessions": [{SESSION}]}}'
    )
    parsed = parse_import_document(doc)
    assert parsed.phase_meta.name == "Build"
    assert parsed.phase_meta.week == 2
    assert parsed.phase_meta.total_weeks == 4
    assert len(parsed.sessions) == 1


def test_structured_session_is_validated():
    doc = (
        '[{"sport": "cycling", "title": "VO2", "duration_min": 60, "structure": ['
        '{"phase": "warmup", "min": 15, "ftp_pct": [55, 75]},'
        '{"phase": "work", "min": 4, "reps": 5, "ftp_pct": [110, 120]},'
        '{"phase": "rest", "min": 4, "reps": 5, "ftp_pct": [50, 55]}]}]'
    )
    parsed = parse_import_document(doc)
    assert [p.phase for p in parsed.sessions[0].structure] == ["warmup", "work", "rest"]


class TestErrors:
    def test_empty_document(self):
        with pytest.raises(BulkImportError, match="Empty document"):
            parse_import_document("   ")

    def test_invalid_json(self):
        with pytest.raises(BulkImportError, match="Invalid JSON") as excinfo:
            parse_import_document("[{sport: running}]")
        assert excinfo.value.details

    def test_scalar_document(self):
        with pytest.raises(BulkImportError):
            decode_json_values("42")

    def test_empty_session_list(self):
        with pytest.raises(BulkImportError, match="No session found"):
            parse_import_document("[]")

    def test_unrecognized_object(self):
        with pytest.raises(BulkImportError, match="Unrecognized document shape"):
            parse_import_document('{"hello": "world"}')

    def test_invalid_items_are_reported_per_field(self):
        doc = '[{"sport": "swimming", "title": "Laps", "duration_min": 30}, "oops"]'
        with pytest.raises(BulkImportError) as excinfo:
            parse_import_document(doc)
        details = excinfo.value.details
        assert any(d.startswith("item 0: sport") for d in details)
        assert any(d.startswith("item 1: expected an object") for d in details)
