"""Tests for the regional store, sync runner and scheduler."""

import asyncio
import logging
import threading
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from artists_api.db.models import Regional
from artists_api.services.reconciler import (
    DataIntegrityViolation,
    ReconciliationPlan,
    RegionalRecord,
)
from artists_api.services.regional_source import SourceUnavailable
from artists_api.services.regional_store import RegionalStore
from artists_api.services.regional_sync import (
    RegionalSyncScheduler,
    RegionalSyncService,
    SyncAlreadyRunning,
    SyncSummary,
    single_flight,
)


def all_rows(engine):
    with Session(engine) as s:
        return [
            (r.id, r.external_id, r.name, r.is_active)
            for r in s.exec(select(Regional).order_by(Regional.id)).all()
        ]


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------


def test_apply_plan_deactivates_then_inserts(session):
    session.add(Regional(external_id="R1", name="North"))
    session.commit()

    store = RegionalStore(session)
    plan = ReconciliationPlan(
        to_insert=(RegionalRecord("R1", "North Region"),),
        to_deactivate=frozenset({1}),
    )
    assert store.apply_plan(plan) == (1, 1)
    session.commit()

    rows = store.load_active_and_history()
    assert [(r.id, r.name, r.is_active) for r in rows] == [
        (1, "North", False),
        (2, "North Region", True),
    ]
    assert rows[0].updated_at >= rows[0].created_at


def test_apply_plan_rejects_unknown_ids(session):
    store = RegionalStore(session)

    with pytest.raises(DataIntegrityViolation, match="unknown"):
        store.apply_plan(ReconciliationPlan(to_deactivate=frozenset({42})))


def test_partial_unique_index_blocks_second_active_row(session):
    session.add(Regional(external_id="R1", name="North"))
    session.add(Regional(external_id="R1", name="North again"))

    with pytest.raises(IntegrityError):
        session.commit()


def test_inactive_duplicates_are_allowed(session):
    session.add(Regional(external_id="R1", name="A", is_active=False))
    session.add(Regional(external_id="R1", name="B", is_active=False))
    session.add(Regional(external_id="R1", name="C"))
    session.commit()

    assert len(RegionalStore(session).history_for("R1")) == 3


def test_list_regionals_filters_inactive(session):
    session.add(Regional(external_id="R2", name="South"))
    session.add(Regional(external_id="R1", name="North", is_active=False))
    session.commit()
    store = RegionalStore(session)

    assert [r.name for r in store.list_regionals()] == ["South"]
    assert [r.name for r in store.list_regionals(include_inactive=True)] == [
        "North",
        "South",
    ]


# ---------------------------------------------------------------------
# Sync runner
# ---------------------------------------------------------------------


def test_run_mirrors_upstream(engine, upstream, sync_service):
    upstream.set((1, "North"), (2, "South"))

    assert sync_service.run() == SyncSummary(inserted=2, deactivated=0)
    assert all_rows(engine) == [(1, "1", "North", True), (2, "2", "South", True)]


def test_run_is_idempotent(engine, upstream, sync_service):
    upstream.set((1, "North"))
    sync_service.run()

    assert sync_service.run() == SyncSummary()
    assert len(all_rows(engine)) == 1


def test_run_replaces_changed_and_retires_removed(engine, upstream, sync_service):
    upstream.set((1, "North"), (2, "South"))
    sync_service.run()
    upstream.set((1, "North Region"))

    assert sync_service.run() == SyncSummary(inserted=1, deactivated=2)
    assert all_rows(engine) == [
        (1, "1", "North", False),
        (2, "2", "South", False),
        (3, "1", "North Region", True),
    ]


def test_whitespace_only_rename_replaces_row(engine, upstream, sync_service):
    upstream.set((1, "North"))
    sync_service.run()
    upstream.set((1, "North "))

    assert sync_service.run() == SyncSummary(inserted=1, deactivated=1)
    assert all_rows(engine) == [(1, "1", "North", False), (2, "1", "North ", True)]


def test_row_count_never_decreases(engine, upstream, sync_service):
    counts = []
    for feed in ([(1, "A"), (2, "B")], [(1, "A2")], [], [(2, "B")], [(2, "B")]):
        upstream.set(*feed)
        sync_service.run()
        counts.append(len(all_rows(engine)))

    assert counts == sorted(counts)


def test_source_failure_writes_nothing(engine, upstream, sync_service):
    upstream.set((1, "North"))
    sync_service.run()
    upstream.status_code = 503

    with pytest.raises(SourceUnavailable):
        sync_service.run()
    assert all_rows(engine) == [(1, "1", "North", True)]


def test_empty_fetch_trusted_by_default(engine, upstream, sync_service):
    upstream.set((1, "North"))
    sync_service.run()
    upstream.set()

    assert sync_service.run() == SyncSummary(deactivated=1)


def test_empty_fetch_skipped_when_configured(engine, upstream):
    service = RegionalSyncService(
        upstream.source(), engine, skip_empty_fetch=True, lock=threading.Lock()
    )
    upstream.set((1, "North"))
    service.run()
    upstream.set()

    assert service.run() == SyncSummary(skipped=True)
    assert all_rows(engine) == [(1, "1", "North", True)]


def test_failure_while_applying_rolls_back(engine, upstream, sync_service, mocker):
    upstream.set((1, "North"))
    sync_service.run()
    upstream.set((1, "North Region"), (2, "South"))

    original = RegionalStore.apply_plan

    def apply_then_fail(self, plan):
        original(self, plan)
        raise RuntimeError("disk full")

    mocker.patch.object(RegionalStore, "apply_plan", apply_then_fail)

    with pytest.raises(RuntimeError):
        sync_service.run()
    assert all_rows(engine) == [(1, "1", "North", True)]
    assert not sync_service.is_running


def test_integrity_violation_aborts_run(engine, upstream, sync_service, mocker):
    mocker.patch.object(
        RegionalStore,
        "load_active_and_history",
        return_value=[
            Regional(id=1, external_id="1", name="North", is_active=True),
            Regional(id=2, external_id="1", name="North", is_active=True),
        ],
    )
    upstream.set((1, "North"), (2, "South"))

    with pytest.raises(DataIntegrityViolation):
        sync_service.run()
    assert all_rows(engine) == []


# ---------------------------------------------------------------------
# Single-flight guard
# ---------------------------------------------------------------------


def test_single_flight_releases_on_error():
    lock = threading.Lock()

    with pytest.raises(ValueError):
        with single_flight(lock):
            raise ValueError("boom")

    assert not lock.locked()


def test_overlapping_run_is_rejected(engine, upstream):
    entered = threading.Event()
    release = threading.Event()
    inner = upstream.source()

    class SlowSource:
        def fetch_all(self):
            entered.set()
            release.wait(5)
            return inner.fetch_all()

    upstream.set((1, "North"))
    service = RegionalSyncService(SlowSource(), engine, lock=threading.Lock())
    results = []
    worker = threading.Thread(target=lambda: results.append(service.run()))
    worker.start()
    try:
        assert entered.wait(5)
        assert service.is_running

        with pytest.raises(SyncAlreadyRunning):
            service.run()
        assert service.run_scheduled() is None
    finally:
        release.set()
        worker.join(5)

    assert results == [SyncSummary(inserted=1)]
    assert service.run() == SyncSummary()
    assert all_rows(engine) == [(1, "1", "North", True)]


# ---------------------------------------------------------------------
# Scheduled path
# ---------------------------------------------------------------------


def test_run_scheduled_swallows_source_failure(upstream, sync_service, caplog):
    upstream.status_code = 500

    with caplog.at_level(logging.WARNING):
        assert sync_service.run_scheduled() is None
    assert "skipped" in caplog.text


def test_run_scheduled_reports_integrity_violation_as_critical(
    sync_service, mocker, caplog
):
    mocker.patch.object(
        RegionalStore,
        "load_active_and_history",
        side_effect=DataIntegrityViolation("two active rows"),
    )

    with caplog.at_level(logging.CRITICAL):
        assert sync_service.run_scheduled() is None
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_run_scheduled_returns_summary(upstream, sync_service):
    upstream.set((1, "North"))

    assert sync_service.run_scheduled() == SyncSummary(inserted=1)


def test_scheduler_runs_until_stopped():
    service = MagicMock()

    async def scenario():
        scheduler = RegionalSyncScheduler(service, interval=0.01)
        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()
        assert not scheduler.running

    asyncio.run(scenario())

    assert service.run_scheduled.call_count >= 2
