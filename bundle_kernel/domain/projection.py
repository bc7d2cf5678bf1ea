"""
Projection -- raw persisted rows to the caller-facing read model.

Responsibility:
    Turns the raw mappings produced by the models' ``to_raw()`` into
    ``CutOrder`` / ``Bundle`` / ``HistoryEntry`` DTOs: decodes bundle
    numbers, orders history, derives the current work order, computes the
    per-order counters and assigns display names.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Selectors load the
    rows; this module never touches a session.

Raw shapes (keys read here):
    order:    id, code, order_date, declared_bundle_count (missing or None
              means one per bundle present), active,
              created_at, bundles
    bundle:   id, cut_order_id, number, sheets, status, location, sscc,
              luid, coil_number, created_at, version, history
    history:  id, bundle_id, action, destination_location,
              work_order_number, recorded_at, seq
    location: id, code  (or None)

Display names:
    Bundles are grouped by decoded base number; bundles without a
    resolvable base are their own group.  A singleton is ``Bundle #N``; a
    larger group gets ``Bundle #N - i`` with ``i`` following ``created_at``
    ascending (stable on ties, missing timestamps first).  Bundles with no
    base are ``Bundle (unnumbered)``.  Names are never persisted.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timezone

from bundle_kernel.domain.bundle_number import decode
from bundle_kernel.domain.dtos import Bundle, CutOrder, HistoryEntry, Location
from bundle_kernel.domain.history import current_work_order, ordered_history
from bundle_kernel.domain.lifecycle import BundleAction, BundleStatus

UNNUMBERED_NAME = "Bundle (unnumbered)"

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def project_location(raw: Mapping | None) -> Location | None:
    if raw is None:
        return None
    return Location(id=raw["id"], code=raw["code"])


def project_history_entry(raw: Mapping) -> HistoryEntry:
    return HistoryEntry(
        id=raw["id"],
        bundle_id=raw["bundle_id"],
        action=BundleAction(raw["action"]),
        destination_location=project_location(raw.get("destination_location")),
        work_order_number=raw.get("work_order_number"),
        timestamp=raw["recorded_at"],
        seq=raw["seq"],
    )


def project_bundle(raw: Mapping) -> Bundle:
    """Project one bundle.  ``display_name`` is filled by apply_display_names."""
    number = decode(raw.get("number"))
    status = BundleStatus(raw["status"])
    history = ordered_history(
        project_history_entry(entry) for entry in raw.get("history") or ()
    )
    return Bundle(
        id=raw["id"],
        cut_order_id=raw["cut_order_id"],
        base_number=number.base,
        variant=number.variant,
        sheets=raw["sheets"],
        status=status,
        location=project_location(raw.get("location")),
        work_order=current_work_order(history, status),
        sscc=raw.get("sscc"),
        luid=raw.get("luid"),
        coil_number=raw.get("coil_number"),
        created_at=raw.get("created_at"),
        version=raw.get("version", 1),
        history=history,
    )


def display_names(bundles: Sequence[Bundle]) -> dict:
    """Map bundle id to its display name."""
    groups: dict[object, list[Bundle]] = {}
    for bundle in bundles:
        resolvable = bundle.base_number is not None and bundle.base_number > 0
        key = ("base", bundle.base_number) if resolvable else ("id", bundle.id)
        groups.setdefault(key, []).append(bundle)

    names = {}
    for (kind, _), members in groups.items():
        if kind == "id":
            for bundle in members:
                names[bundle.id] = UNNUMBERED_NAME
            continue
        base = members[0].base_number
        if len(members) == 1:
            names[members[0].id] = f"Bundle #{base}"
            continue
        ordered = sorted(members, key=lambda b: b.created_at or _EARLIEST)
        for ordinal, bundle in enumerate(ordered, start=1):
            names[bundle.id] = f"Bundle #{base} - {ordinal}"
    return names


def apply_display_names(bundles: Iterable[Bundle]) -> tuple[Bundle, ...]:
    bundles = tuple(bundles)
    names = display_names(bundles)
    return tuple(replace(b, display_name=names[b.id]) for b in bundles)


def project_cut_order(raw: Mapping) -> CutOrder:
    """Project a raw order row (with its bundles) into a CutOrder."""
    bundles = apply_display_names(
        project_bundle(bundle) for bundle in raw.get("bundles") or ()
    )
    declared = raw.get("declared_bundle_count")
    if declared is None:
        declared = len(bundles)
    used = sum(1 for b in bundles if b.status is BundleStatus.USED)
    first_location = bundles[0].location if bundles else None
    return CutOrder(
        id=raw["id"],
        code=raw["code"],
        order_date=raw["order_date"],
        declared_bundle_count=declared,
        active=bool(raw["active"]),
        bundles=bundles,
        registered_bundles=min(declared, len(bundles)),
        pending_bundles=max(0, declared - used),
        location_filter=first_location.code if first_location else None,
        created_at=raw.get("created_at"),
    )
