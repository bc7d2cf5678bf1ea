"""SplitService: plan and commit splits against the store."""

from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from bundle_kernel.domain.dtos import BundleIdentifiers
from bundle_kernel.domain.lifecycle import BundleAction, BundleStatus, build_action_command
from bundle_kernel.exceptions import (
    BundleNotFoundError,
    BundleOrderMismatchError,
    SplitConflictError,
    SplitQuantityError,
)
from bundle_kernel.selectors.cut_order_selector import CutOrderSelector
from bundle_kernel.services.bundle_action_service import BundleActionService
from bundle_kernel.services.bundle_store import BundleStore
from bundle_kernel.services.split_service import SplitService
from tests.conftest import LOCATION_CODES

ORIGINAL = BundleIdentifiers("00012345600000000011", "LUID-0001")
SIBLING = BundleIdentifiers("00012345600000000028", "LUID-0002")


@pytest.fixture
def order(session, create_order):
    order_id = create_order(sheets=(100, 50))
    return CutOrderSelector(session).get_order(order_id)


def split(session, clock, bundle_id, order_id, sheets, original=ORIGINAL, new=SIBLING):
    return SplitService(session).split(
        bundle_id, order_id, sheets, original, new, now=clock.tick()
    )


class TestSplitCommit:

    def test_first_split_promotes_original(self, session, order, deterministic_clock):
        first = order.bundles[0]
        result = split(session, deterministic_clock, first.id, order.id, 40)

        assert (result.base_number, result.original_variant, result.new_variant) == (1, 1, 2)
        assert (result.original_sheets, result.new_sheets) == (60, 40)

        store = BundleStore(session)
        original = store.load_bundle(first.id)
        sibling = store.load_bundle(result.new_bundle_id)
        assert (original.number, original.sheets) == (1001, 60)
        assert (sibling.number, sibling.sheets) == (1002, 40)
        assert original.version == first.version + 1
        assert sibling.version == 1

    def test_identifiers_written_to_both(self, session, order, deterministic_clock):
        result = split(session, deterministic_clock, order.bundles[0].id, order.id, 10)
        after = {b.id: b for b in CutOrderSelector(session).get_order(order.id).bundles}
        assert (after[result.original_bundle_id].sscc, after[result.original_bundle_id].luid) == (
            ORIGINAL.sscc,
            ORIGINAL.luid,
        )
        assert (after[result.new_bundle_id].sscc, after[result.new_bundle_id].luid) == (
            SIBLING.sscc,
            SIBLING.luid,
        )

    def test_sibling_inherits_status_and_location(self, session, order, deterministic_clock):
        first = order.bundles[0]
        actions = BundleActionService(session, LOCATION_CODES)
        actions.apply(
            build_action_command([first.id], "move", destination_code="C7"),
            deterministic_clock.tick(),
        )
        actions.apply(
            build_action_command([first.id], "assign", order_number="WO-5"),
            deterministic_clock.tick(),
        )
        result = split(session, deterministic_clock, first.id, order.id, 30)

        sibling = {b.id: b for b in CutOrderSelector(session).get_order(order.id).bundles}[
            result.new_bundle_id
        ]
        assert sibling.status is BundleStatus.ASSIGNED
        assert sibling.location.code == "C7"

    def test_history_entries_share_timestamp(self, session, order, deterministic_clock):
        result = split(session, deterministic_clock, order.bundles[0].id, order.id, 25)
        after = {b.id: b for b in CutOrderSelector(session).get_order(order.id).bundles}

        original_last = after[result.original_bundle_id].history[-1]
        sibling_history = after[result.new_bundle_id].history
        assert len(sibling_history) == 1
        assert original_last.action is BundleAction.SPLIT
        assert sibling_history[0].action is BundleAction.SPLIT
        assert original_last.timestamp == sibling_history[0].timestamp == result.timestamp
        assert sibling_history[0].seq == original_last.seq + 1

    def test_successive_splits_number_siblings(self, session, order, deterministic_clock):
        first = order.bundles[0]
        second = split(session, deterministic_clock, first.id, order.id, 10)
        third = split(session, deterministic_clock, first.id, order.id, 10)
        fourth = split(session, deterministic_clock, second.new_bundle_id, order.id, 5)

        assert [second.new_variant, third.new_variant, fourth.new_variant] == [2, 3, 4]
        numbers = sorted(
            b.variant for b in CutOrderSelector(session).get_order(order.id).bundles
            if b.base_number == 1
        )
        assert numbers == [1, 2, 3, 4]

    def test_other_base_numbers_unaffected(self, session, order, deterministic_clock):
        split(session, deterministic_clock, order.bundles[0].id, order.id, 10)
        untouched = BundleStore(session).load_bundle(order.bundles[1].id)
        assert (untouched.number, untouched.sheets, untouched.version) == (2, 50, 1)


class TestSplitRejections:

    def test_quantity_equal_to_sheets(self, session, order, deterministic_clock):
        with pytest.raises(SplitQuantityError):
            split(session, deterministic_clock, order.bundles[1].id, order.id, 50)
        assert BundleStore(session).load_bundle(order.bundles[1].id).sheets == 50

    def test_wrong_order(self, session, order, deterministic_clock):
        with pytest.raises(BundleOrderMismatchError):
            split(session, deterministic_clock, order.bundles[0].id, uuid4(), 10)

    def test_unknown_bundle(self, session, order, deterministic_clock):
        with pytest.raises(BundleNotFoundError):
            split(session, deterministic_clock, uuid4(), order.id, 10)


class TestSplitStoreErrors:

    def test_plan_reads_order_row_before_sibling_group(self, session, order):
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(session.bind, "before_cursor_execute", record)
        try:
            SplitService(session).plan(order.bundles[0].id, order.id, 10, ORIGINAL, SIBLING)
        finally:
            event.remove(session.bind, "before_cursor_execute", record)

        tables = [
            "cut_orders" if "FROM cut_orders" in s else "bundles"
            for s in statements
            if "FROM cut_orders" in s or "FROM bundles" in s
        ]
        # Unlocked lookup of the owner, then the order row, then the group.
        assert tables == ["bundles", "cut_orders", "bundles"]

    def test_unrelated_integrity_error_propagates(self, session, order, deterministic_clock, monkeypatch):
        def reject(self, **kwargs):
            raise IntegrityError(
                "INSERT", {}, Exception("CHECK constraint failed: ck_bundle_sheets_non_negative")
            )

        monkeypatch.setattr(BundleStore, "insert_bundle", reject)
        with pytest.raises(IntegrityError):
            split(session, deterministic_clock, order.bundles[0].id, order.id, 10)

    def test_sibling_number_clash_becomes_conflict(self, session, order, deterministic_clock, monkeypatch):
        def clash(self, **kwargs):
            raise IntegrityError(
                "INSERT",
                {},
                Exception('duplicate key value violates unique constraint "uq_bundle_order_number"'),
            )

        monkeypatch.setattr(BundleStore, "insert_bundle", clash)
        with pytest.raises(SplitConflictError) as exc_info:
            split(session, deterministic_clock, order.bundles[0].id, order.id, 10)
        assert exc_info.value.reason == "sibling number already taken"
