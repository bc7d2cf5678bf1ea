"""
Split races.

Two splits of the same sibling group can plan against the same state.  The
second to commit must fail with SplitConflictError and leave the database
exactly as the first left it.  Plans are computed in one transaction and
committed in a later one so the interleaving is deterministic on SQLite.
The threaded cases go through the orchestrator and only require that a
loser sees SplitConflictError, never a raw store failure.
"""

import sqlite3
import threading
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from bundle_kernel.db.engine import session_scope
from bundle_kernel.domain.dtos import BundleIdentifiers, NewBundleSpec, SplitResult
from bundle_kernel.exceptions import (
    OptimisticLockError,
    PersistenceError,
    SplitConflictError,
)
from bundle_kernel.services.bundle_store import BundleStore
from bundle_kernel.services.split_service import SplitService

IDS_A = BundleIdentifiers("SSCC-A1", "LUID-A1")
IDS_B = BundleIdentifiers("SSCC-B1", "LUID-B1")


def plan(factory, bundle_id, order_id, sheets, expected_version=None):
    with session_scope(factory) as session:
        return SplitService(session).plan(
            bundle_id, order_id, sheets, IDS_A, IDS_B, expected_version=expected_version
        )


def commit(factory, split_plan, clock):
    with session_scope(factory) as session:
        return SplitService(session).commit(split_plan, clock.tick())


@pytest.fixture
def order(orchestrator):
    return orchestrator.create_cut_order(
        "1001", date(2024, 3, 1), [NewBundleSpec(sheets=100), NewBundleSpec(sheets=50)], "C1"
    )


class TestStalePlans:

    def test_second_split_of_same_bundle_conflicts(self, session_factory, order, deterministic_clock):
        bundle_id = order.bundles[0].id
        first = plan(session_factory, bundle_id, order.id, 40)
        second = plan(session_factory, bundle_id, order.id, 30)

        commit(session_factory, first, deterministic_clock)
        with pytest.raises(SplitConflictError) as exc_info:
            commit(session_factory, second, deterministic_clock)

        assert exc_info.value.retryable
        with session_scope(session_factory) as session:
            group = BundleStore(session).load_sibling_group(order.id)
        assert sorted(b.sheets for b in group) == [40, 50, 60]

    def test_sibling_number_collision_conflicts(self, session_factory, orchestrator, order, deterministic_clock):
        first = orchestrator.split_bundle(order.bundles[0].id, order.id, 40, IDS_A, IDS_B)

        # Both plans pick variant 3 for base 1; the originals differ, so
        # only the unique number constraint can catch the race.
        from_original = plan(session_factory, first.original_bundle_id, order.id, 10)
        from_sibling = plan(session_factory, first.new_bundle_id, order.id, 10)
        assert from_original.new_number == from_sibling.new_number == 1003

        commit(session_factory, from_sibling, deterministic_clock)
        with pytest.raises(SplitConflictError):
            commit(session_factory, from_original, deterministic_clock)

        with session_scope(session_factory) as session:
            original = BundleStore(session).load_bundle(first.original_bundle_id)
        assert original.sheets == 60

    def test_stale_expected_version_rejected_before_planning(self, orchestrator, order):
        bundle = order.bundles[0]
        orchestrator.split_bundle(bundle.id, order.id, 10, IDS_A, IDS_B, expected_version=bundle.version)

        with pytest.raises(OptimisticLockError):
            orchestrator.split_bundle(
                bundle.id, order.id, 10, IDS_A, IDS_B, expected_version=bundle.version
            )

    def test_conflict_logged(self, session_factory, order, deterministic_clock, captured_logs):
        bundle_id = order.bundles[1].id
        first = plan(session_factory, bundle_id, order.id, 5)
        second = plan(session_factory, bundle_id, order.id, 5)
        commit(session_factory, first, deterministic_clock)
        with pytest.raises(SplitConflictError):
            commit(session_factory, second, deterministic_clock)
        assert any(r["message"] == "bundle_split_conflict" for r in captured_logs())


class _DeadlockDetected(Exception):
    pgcode = "40P01"


class TestConcurrentSplitsThroughOrchestrator:

    def test_racing_splits_succeed_or_conflict(self, session_factory, orchestrator, order):
        bundle_id = order.bundles[0].id
        barrier = threading.Barrier(2)
        outcomes = []

        def run(sheets, ids):
            barrier.wait()
            try:
                outcomes.append(orchestrator.split_bundle(bundle_id, order.id, sheets, IDS_A, ids))
            except Exception as exc:
                outcomes.append(exc)

        threads = [
            threading.Thread(target=run, args=(30, IDS_B)),
            threading.Thread(target=run, args=(20, BundleIdentifiers("SSCC-C1", "LUID-C1"))),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(outcomes) == 2
        assert not [o for o in outcomes if isinstance(o, PersistenceError)]
        assert all(isinstance(o, (SplitResult, SplitConflictError)) for o in outcomes)
        assert any(isinstance(o, SplitResult) for o in outcomes)

        with session_scope(session_factory) as session:
            group = [
                b
                for b in BundleStore(session).load_sibling_group(order.id)
                if b.id != order.bundles[1].id
            ]
        assert sum(b.sheets for b in group) == 100
        assert len({b.number for b in group}) == len(group)

    def test_sqlite_lock_timeout_maps_to_split_conflict(self, orchestrator, order, monkeypatch):
        def locked(self, *args, **kwargs):
            raise OperationalError("SELECT", {}, sqlite3.OperationalError("database is locked"))

        monkeypatch.setattr(SplitService, "split", locked)
        with pytest.raises(SplitConflictError) as exc_info:
            orchestrator.split_bundle(order.bundles[0].id, order.id, 10, IDS_A, IDS_B)
        assert exc_info.value.retryable
        assert exc_info.value.bundle_id == str(order.bundles[0].id)

    def test_postgres_deadlock_maps_to_split_conflict(self, orchestrator, order, monkeypatch):
        def deadlocked(self, *args, **kwargs):
            raise OperationalError("SELECT", {}, _DeadlockDetected("deadlock detected"))

        monkeypatch.setattr(SplitService, "split", deadlocked)
        with pytest.raises(SplitConflictError):
            orchestrator.split_bundle(order.bundles[0].id, order.id, 10, IDS_A, IDS_B)

    def test_other_operational_errors_stay_persistence_errors(self, orchestrator, order, monkeypatch):
        def disk_full(self, *args, **kwargs):
            raise OperationalError("INSERT", {}, sqlite3.OperationalError("disk I/O error"))

        monkeypatch.setattr(SplitService, "split", disk_full)
        with pytest.raises(PersistenceError) as exc_info:
            orchestrator.split_bundle(order.bundles[0].id, order.id, 10, IDS_A, IDS_B)
        assert exc_info.value.retryable

    def test_unrelated_integrity_error_is_not_retryable(self, orchestrator, order, monkeypatch):
        def reject(self, **kwargs):
            raise IntegrityError(
                "INSERT", {}, sqlite3.IntegrityError("CHECK constraint failed: ck_bundle_status")
            )

        monkeypatch.setattr(BundleStore, "insert_bundle", reject)
        with pytest.raises(PersistenceError) as exc_info:
            orchestrator.split_bundle(order.bundles[0].id, order.id, 10, IDS_A, IDS_B)
        assert not exc_info.value.retryable
