"""Tests for raw-row projection and display-name disambiguation."""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from bundle_kernel.domain.lifecycle import BundleStatus
from bundle_kernel.domain.projection import (
    UNNUMBERED_NAME,
    project_bundle,
    project_cut_order,
)

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
ORDER_ID = uuid4()
C1 = {"id": uuid4(), "code": "C1"}
C2 = {"id": uuid4(), "code": "C2"}


def raw_bundle(number, created_at=T0, status="available", location=C1, history=(), sheets=10):
    return {
        "id": uuid4(),
        "cut_order_id": ORDER_ID,
        "number": number,
        "sheets": sheets,
        "status": status,
        "location": location,
        "sscc": None,
        "luid": None,
        "coil_number": None,
        "created_at": created_at,
        "version": 1,
        "history": list(history),
    }


def raw_history(bundle, action, seq, at=T0, location=None, work_order=None):
    return {
        "id": uuid4(),
        "bundle_id": bundle["id"],
        "seq": seq,
        "action": action,
        "destination_location": location,
        "work_order_number": work_order,
        "recorded_at": at,
    }


def raw_order(bundles, declared=None, active=True):
    return {
        "id": ORDER_ID,
        "code": "1001",
        "order_date": date(2024, 3, 1),
        "declared_bundle_count": len(bundles) if declared is None else declared,
        "active": active,
        "created_at": T0,
        "bundles": bundles,
    }


class TestDisplayNames:

    def test_singletons_keep_plain_name(self):
        order = project_cut_order(raw_order([raw_bundle(1), raw_bundle(2)]))
        assert [b.display_name for b in order.bundles] == ["Bundle #1", "Bundle #2"]

    def test_siblings_get_ordinals_by_creation(self):
        later = raw_bundle(7002, created_at=T0 + timedelta(minutes=3))
        earlier = raw_bundle(7001, created_at=T0)
        order = project_cut_order(raw_order([later, earlier]))
        names = {b.variant: b.display_name for b in order.bundles}
        assert names == {2: "Bundle #7 - 2", 1: "Bundle #7 - 1"}

    def test_ties_keep_input_order(self):
        a = raw_bundle(3001)
        b = raw_bundle(3002)
        c = raw_bundle(3003)
        order = project_cut_order(raw_order([b, a, c]))
        assert [x.display_name for x in order.bundles] == [
            "Bundle #3 - 1",
            "Bundle #3 - 2",
            "Bundle #3 - 3",
        ]

    def test_missing_timestamp_sorts_first(self):
        dated = raw_bundle(4001, created_at=T0)
        undated = raw_bundle(4002, created_at=None)
        order = project_cut_order(raw_order([dated, undated]))
        by_variant = {b.variant: b.display_name for b in order.bundles}
        assert by_variant[2] == "Bundle #4 - 1"
        assert by_variant[1] == "Bundle #4 - 2"

    def test_unnumbered_bundles_are_separate(self):
        order = project_cut_order(raw_order([raw_bundle(None), raw_bundle(None), raw_bundle(0)]))
        assert [b.display_name for b in order.bundles] == [UNNUMBERED_NAME] * 3


class TestBundleProjection:

    def test_decodes_number_and_derives_work_order(self):
        bundle = raw_bundle(12003, status="assigned")
        bundle["history"] = [
            raw_history(bundle, "move", 1, location=C1),
            raw_history(bundle, "assign", 2, at=T0 + timedelta(minutes=1), work_order="WO-9"),
            raw_history(bundle, "move", 3, at=T0 + timedelta(minutes=2), location=C2),
        ]
        projected = project_bundle(bundle)
        assert (projected.base_number, projected.variant) == (12, 3)
        assert projected.status is BundleStatus.ASSIGNED
        assert projected.work_order == "WO-9"
        assert [h.seq for h in projected.history] == [1, 2, 3]
        assert projected.history[-1].destination_location.code == "C2"


class TestOrderProjection:

    def test_counters(self):
        bundles = [
            raw_bundle(1, status="used"),
            raw_bundle(2, status="assigned", location=C2),
            raw_bundle(3, status="available", location=C2),
        ]
        order = project_cut_order(raw_order(bundles, declared=5))
        assert order.registered_bundles == 3
        assert order.pending_bundles == 4
        assert order.location_filter == "C1"

    def test_registered_capped_by_declared(self):
        order = project_cut_order(raw_order([raw_bundle(1), raw_bundle(2)], declared=1))
        assert order.registered_bundles == 1
        assert order.pending_bundles == 1

    def test_empty_order(self):
        order = project_cut_order(raw_order([], declared=0))
        assert order.bundles == ()
        assert order.location_filter is None
        assert order.pending_bundles == 0

    @pytest.mark.parametrize("missing", ["absent", "null"])
    def test_declared_count_defaults_to_bundle_count(self, missing):
        raw = raw_order([raw_bundle(1, status="used"), raw_bundle(2), raw_bundle(3)])
        if missing == "absent":
            del raw["declared_bundle_count"]
        else:
            raw["declared_bundle_count"] = None
        order = project_cut_order(raw)
        assert order.declared_bundle_count == 3
        assert order.registered_bundles == 3
        assert order.pending_bundles == 2
