"""
BundleActionService: batch move / assign / use inside one transaction.

Every test flushes into the in-memory ``session`` and reads back through
CutOrderSelector, the same path the orchestrator uses.
"""

from uuid import uuid4

import pytest

from bundle_kernel.domain.lifecycle import BundleAction, BundleStatus, build_action_command
from bundle_kernel.exceptions import (
    BundleNotFoundError,
    BundlesNotAssignedError,
    InvalidBundleTransitionError,
    InvalidLocationCodeError,
    OptimisticLockError,
)
from bundle_kernel.selectors.cut_order_selector import CutOrderSelector
from bundle_kernel.services.bundle_action_service import BundleActionService
from bundle_kernel.services.bundle_store import BundleStore
from tests.conftest import LOCATION_CODES


@pytest.fixture
def service(session):
    return BundleActionService(session, LOCATION_CODES)


@pytest.fixture
def bundles(session, create_order):
    order_id = create_order(sheets=(100, 50, 25))
    return order_id, [b.id for b in CutOrderSelector(session).get_order(order_id).bundles]


def command(ids, action, destination=None, order_number=None):
    return build_action_command(
        ids,
        action,
        destination_code=destination,
        order_number=order_number,
        allowed_location_codes=LOCATION_CODES,
    )


def reload(session, order_id):
    return {b.id: b for b in CutOrderSelector(session).get_order(order_id).bundles}


class TestMove:

    def test_move_updates_location_and_keeps_status(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        deterministic_clock.advance(300)
        now = deterministic_clock.now()
        result = service.apply(command(ids[:2], "move", " c3 "), now)

        assert result.destination.code == "C3"
        after = reload(session, order_id)
        for bundle_id in ids[:2]:
            assert after[bundle_id].location.code == "C3"
            assert after[bundle_id].status is BundleStatus.AVAILABLE
            assert after[bundle_id].history[-1].action is BundleAction.MOVE
            assert after[bundle_id].history[-1].timestamp == now
        assert after[ids[2]].location.code == "C1"

    def test_move_of_used_bundle_keeps_used(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        service.apply(command(ids[:1], "assign", order_number="WO-1"), deterministic_clock.tick())
        service.apply(command(ids[:1], "use"), deterministic_clock.tick())
        service.apply(command(ids[:1], "move", "C2"), deterministic_clock.tick())

        bundle = reload(session, order_id)[ids[0]]
        assert bundle.status is BundleStatus.USED
        assert bundle.location.code == "C2"
        assert bundle.work_order == "WO-1"

    def test_unknown_location_rejected(self, service, bundles, deterministic_clock):
        _, ids = bundles
        bad = build_action_command(ids, "move", destination_code="Z9")
        with pytest.raises(InvalidLocationCodeError):
            service.apply(bad, deterministic_clock.now())


class TestAssign:

    def test_assign_sets_status_and_work_order(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        service.apply(command(ids, "assign", order_number=" WO-77 "), deterministic_clock.tick())

        for bundle in reload(session, order_id).values():
            assert bundle.status is BundleStatus.ASSIGNED
            assert bundle.work_order == "WO-77"
            assert bundle.history[-1].work_order_number == "WO-77"

    def test_reassign_replaces_work_order(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        service.apply(command(ids[:1], "assign", order_number="WO-1"), deterministic_clock.tick())
        service.apply(command(ids[:1], "assign", order_number="WO-2"), deterministic_clock.tick())
        assert reload(session, order_id)[ids[0]].work_order == "WO-2"

    def test_assign_used_bundle_rejected(self, service, bundles, deterministic_clock):
        _, ids = bundles
        service.apply(command(ids[:1], "assign", order_number="WO-1"), deterministic_clock.tick())
        service.apply(command(ids[:1], "use"), deterministic_clock.tick())
        with pytest.raises(InvalidBundleTransitionError) as exc_info:
            service.apply(command(ids, "assign", order_number="WO-2"), deterministic_clock.tick())
        assert exc_info.value.bundle_ids == (str(ids[0]),)


class TestUse:

    def test_use_requires_every_bundle_assigned(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        service.apply(command(ids[:2], "assign", order_number="WO-1"), deterministic_clock.tick())
        before = reload(session, order_id)

        with pytest.raises(BundlesNotAssignedError) as exc_info:
            service.apply(command(ids, "use"), deterministic_clock.tick())

        assert exc_info.value.bundle_ids == (str(ids[2]),)
        assert exc_info.value.current_statuses == ("available",)
        after = reload(session, order_id)
        for bundle_id in ids:
            assert after[bundle_id].status == before[bundle_id].status
            assert len(after[bundle_id].history) == len(before[bundle_id].history)

    def test_use_marks_all_used(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        service.apply(command(ids, "assign", order_number="WO-1"), deterministic_clock.tick())
        result = service.apply(command(ids, "use"), deterministic_clock.tick())

        assert result.order_ids == (order_id,)
        assert all(b.status is BundleStatus.USED for b in reload(session, order_id).values())


class TestBatchIntegrity:

    def test_missing_bundle_fails_whole_batch(self, session, service, bundles, deterministic_clock):
        order_id, ids = bundles
        ghost = uuid4()
        with pytest.raises(BundleNotFoundError) as exc_info:
            service.apply(command([ids[0], ghost], "move", "C4"), deterministic_clock.tick())
        assert exc_info.value.bundle_ids == (str(ghost),)
        assert reload(session, order_id)[ids[0]].location.code == "C1"

    def test_guarded_update_detects_concurrent_change(self, session, bundles, deterministic_clock):
        _, ids = bundles
        store = BundleStore(session)
        with pytest.raises(OptimisticLockError):
            store.update_batch(
                ids,
                {"status": BundleStatus.USED},
                [BundleStatus.ASSIGNED],
                now=deterministic_clock.now(),
            )

    def test_every_write_bumps_version(self, session, service, bundles, deterministic_clock):
        _, ids = bundles
        store = BundleStore(session)
        before = store.load_bundle(ids[0]).version
        service.apply(command(ids[:1], "move", "C2"), deterministic_clock.tick())
        assert store.load_bundle(ids[0]).version == before + 1
