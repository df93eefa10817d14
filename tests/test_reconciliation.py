"""Tests for activity reconciliation and bulk import planning."""

from __future__ import annotations

from datetime import date

import pytest

from conftest import make_session, make_template
from core.domain import Origin, Sport
from core.services.bulk_import import SessionImportItem
from core.services.reconciliation import (
    DuplicatePolicy,
    ReconciliationEngine,
    plan_activity_import,
    plan_bulk_import,
)

MONDAY = date(2025, 3, 10)


def _activity(title="Morning Ride", day=MONDAY, sport=Sport.CYCLING, strava_id=111, **fields):
    return make_session(title, day, sport=sport, origin=Origin.ACTUAL, strava_id=strava_id, **fields)


# ── Activity import ───────────────────────────────────────────────────────

class TestActivityImport:
    def test_actual_displaces_same_day_same_sport_planned(self):
        planned = make_session("Endurance Z2", MONDAY, description="2h Z2 steady", id="p1")
        candidate = _activity(id="a1", actual_km=56.0)

        changes, summary = plan_activity_import([planned], [candidate])

        assert changes.deletions == ["p1"]
        assert [s.id for s in changes.upserts] == ["a1"]
        inserted = changes.upserts[0]
        assert inserted.replaced_planned_title == "Endurance Z2"
        assert inserted.replaced_planned_description == "2h Z2 steady"
        assert summary.inserted == 1
        assert summary.displaced == 1
        assert summary.spotlight_id == "a1"

    def test_other_sport_is_not_displaced(self):
        planned = make_session("Tempo run", MONDAY, sport=Sport.RUNNING, id="p1")
        changes, summary = plan_activity_import([planned], [_activity(id="a1")])

        assert changes.deletions == []
        assert summary.displaced == 0
        assert summary.inserted == 1

    def test_only_first_planned_match_is_displaced(self):
        first = make_session("AM ride", MONDAY, id="p1")
        second = make_session("PM ride", MONDAY, id="p2")
        changes, _ = plan_activity_import([first, second], [_activity(id="a1")])

        assert changes.deletions == ["p1"]

    def test_duplicate_by_strava_id_is_skipped(self):
        existing = _activity("Renamed ride", id="a1", strava_id=111)
        changes, summary = plan_activity_import([existing], [_activity(id="a2", strava_id=111)])

        assert changes.is_empty
        assert summary.skipped == 1
        assert summary.message == "0 activities imported, 1 already imported"

    def test_duplicate_by_title_and_date_is_skipped(self):
        existing = _activity(id="a1", strava_id=None)
        _, summary = plan_activity_import([existing], [_activity(id="a2", strava_id=999)])
        assert summary.skipped == 1
        assert summary.inserted == 0

    def test_update_policy_refreshes_outcome_only(self):
        existing = _activity(id="a1", duration_min=60, coach_feedback="Great effort")
        fresh = _activity(id="a2", duration_min=65, actual_km=58.3, average_watts=210.0)

        changes, summary = plan_activity_import([existing], [fresh], DuplicatePolicy.UPDATE)

        assert summary.updated == 1
        assert summary.inserted == 0
        refreshed = changes.upserts[0]
        assert refreshed.id == "a1"
        assert refreshed.duration_min == 65
        assert refreshed.actual_km == 58.3
        assert refreshed.average_watts == 210.0
        assert refreshed.coach_feedback == "Great effort"

    def test_planned_candidate_is_forced_actual(self):
        candidate = make_session("Ride", MONDAY, id="c1")
        changes, _ = plan_activity_import([], [candidate])
        assert changes.upserts[0].origin is Origin.ACTUAL

    def test_candidates_in_same_batch_deduplicate(self):
        _, summary = plan_activity_import([], [_activity(id="a1"), _activity(id="a2")])
        assert summary.inserted == 1
        assert summary.skipped == 1

    def test_empty_message(self):
        _, summary = plan_activity_import([], [])
        assert summary.message == "No new activity"


@pytest.mark.asyncio
async def test_engine_applies_changes_to_store(store, repository):
    planned = await store.create(make_template("Endurance Z2", sport=Sport.CYCLING), MONDAY)
    engine = ReconciliationEngine(store)

    summary = await engine.reconcile([_activity(id="a1", actual_km=56.0)])
    await store.wait_pending()

    assert summary.displaced == 1
    assert store.get(planned.id) is None
    actual = store.get("a1")
    assert actual.replaced_planned_title == "Endurance Z2"
    assert ("delete", planned.id) in repository.calls
    assert ("upsert_many", ["a1"]) in repository.calls


@pytest.mark.asyncio
async def test_engine_repeat_import_is_noop(store, repository):
    engine = ReconciliationEngine(store)
    await engine.reconcile([_activity(id="a1")])
    await store.wait_pending()
    calls_before = list(repository.calls)

    summary = await engine.reconcile([_activity(id="a9")])
    await store.wait_pending()

    assert summary.skipped == 1
    assert len(store.sessions) == 1
    assert repository.calls == calls_before


# ── Bulk import ───────────────────────────────────────────────────────────

class TestBulkImport:
    def test_new_items_are_added_with_generated_ids(self, id_factory):
        items = [SessionImportItem(sport="running", title="Tempo", duration_min=45, date=MONDAY)]
        changes, summary = plan_bulk_import([], items, today=date(2025, 3, 12), id_factory=id_factory)

        assert summary.added == 1
        assert changes.upserts[0].id == "id-1"
        assert changes.upserts[0].date == MONDAY

    def test_item_without_date_defaults_to_today(self, id_factory):
        changes, _ = plan_bulk_import([], [make_template()], today=date(2025, 3, 12), id_factory=id_factory)
        assert changes.upserts[0].date == date(2025, 3, 12)

    def test_item_with_id_and_date_keeps_its_id(self):
        items = [SessionImportItem(id="keep-me", sport="running", title="Tempo", duration_min=45, date=MONDAY)]
        changes, _ = plan_bulk_import([], items, today=MONDAY)
        assert changes.upserts[0].id == "keep-me"

    @pytest.mark.parametrize("item_id", [None, "restored-1"])
    def test_imported_items_are_always_planned(self, item_id, id_factory):
        items = [SessionImportItem(id=item_id, sport="cycling", title="Ride", duration_min=60, date=MONDAY, origin="actual")]
        changes, _ = plan_bulk_import([], items, today=MONDAY, id_factory=id_factory)
        assert changes.upserts[0].origin is Origin.PLANNED

    def test_same_key_planned_is_overwritten_keeping_id(self, id_factory):
        existing = make_session("Tempo", MONDAY, sport=Sport.RUNNING, duration_min=40, id="p1")
        items = [SessionImportItem(sport="running", title="Tempo", duration_min=50, date=MONDAY)]

        changes, summary = plan_bulk_import([existing], items, today=MONDAY, id_factory=id_factory)

        assert summary.updated == 1
        assert changes.upserts[0].id == "p1"
        assert changes.upserts[0].duration_min == 50

    def test_same_key_actual_is_skipped(self, id_factory):
        existing = _activity("Tempo", sport=Sport.RUNNING, id="a1")
        items = [SessionImportItem(sport="running", title="Tempo", duration_min=50, date=MONDAY)]

        changes, summary = plan_bulk_import([existing], items, today=MONDAY, id_factory=id_factory)

        assert summary.skipped == 1
        assert changes.is_empty

    def test_replace_existing_removes_planned_on_import_dates_only(self, id_factory):
        same_day_planned = make_session("Old plan", MONDAY, id="p1")
        same_day_actual = _activity(id="a1")
        other_day = make_session("Other", date(2025, 3, 11), id="p2")
        items = [SessionImportItem(sport="cycling", title="New plan", duration_min=90, date=MONDAY)]

        changes, summary = plan_bulk_import(
            [same_day_planned, same_day_actual, other_day],
            items,
            replace_existing=True,
            today=MONDAY,
            id_factory=id_factory,
        )

        assert changes.deletions == ["p1"]
        assert summary.removed == 1
        assert summary.added == 1
        assert summary.message == "1 added, 0 updated, 1 replaced"


@pytest.mark.asyncio
async def test_store_import_bulk_round(store, repository):
    items = [
        SessionImportItem(sport="running", title="Tempo", duration_min=45, date=MONDAY),
        SessionImportItem(sport="strength", title="Core", duration_min=30, date=MONDAY),
    ]
    summary = await store.import_bulk(items)
    await store.wait_pending()

    assert summary.added == 2
    assert {s.title for s in store.sessions} == {"Tempo", "Core"}
    assert repository.calls == [("upsert_many", ["id-1", "id-2"])]
