"""
History -- pure derivations over a bundle's ledger entries.

Responsibility:
    Orders history entries, derives the bundle's current work order, checks
    the shape of entries before the ledger writes them, and renders a
    compact audit line per entry.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    HISTORY_APPEND_ONLY (shape half) -- a work-order number only appears on
    ``assign`` entries, and every ``assign`` entry carries one.

Edge cases:
    - Entries sharing a timestamp (a batch, or both halves of a split) are
      ordered by their insertion ``seq``.
    - A bundle that is ``available`` has no current work order, whatever
      its history says.
    - Moving an assigned bundle keeps its work order: the move entry has no
      work-order number, so the latest assign entry still wins.
"""

from collections.abc import Iterable

from bundle_kernel.domain.dtos import HistoryEntry, HistoryEntryDraft
from bundle_kernel.domain.lifecycle import BundleAction, BundleStatus
from bundle_kernel.exceptions import InvalidHistoryEntryError


def history_sort_key(entry: HistoryEntry):
    return (entry.timestamp, entry.seq)


def ordered_history(entries: Iterable[HistoryEntry]) -> tuple[HistoryEntry, ...]:
    """Oldest first by ``(timestamp, seq)``."""
    return tuple(sorted(entries, key=history_sort_key))


def current_work_order(
    entries: Iterable[HistoryEntry],
    status: BundleStatus,
) -> str | None:
    """Latest non-blank work order, or None when the bundle is available."""
    if status is BundleStatus.AVAILABLE:
        return None
    for entry in reversed(ordered_history(entries)):
        number = (entry.work_order_number or "").strip()
        if number:
            return number
    return None


def validate_draft(draft: HistoryEntryDraft) -> None:
    """Reject drafts the ledger must never contain."""
    work_order = (draft.work_order_number or "").strip()
    if draft.action is BundleAction.ASSIGN and not work_order:
        raise InvalidHistoryEntryError(
            draft.bundle_id, draft.action.value, "assign entries need a work order"
        )
    if draft.action is not BundleAction.ASSIGN and draft.work_order_number is not None:
        raise InvalidHistoryEntryError(
            draft.bundle_id,
            draft.action.value,
            "only assign entries carry a work order",
        )
    if draft.action is BundleAction.MOVE and draft.destination_location_id is None:
        raise InvalidHistoryEntryError(
            draft.bundle_id, draft.action.value, "move entries need a destination"
        )
    if draft.timestamp.tzinfo is None:
        raise InvalidHistoryEntryError(
            draft.bundle_id, draft.action.value, "timestamp must be timezone-aware"
        )


def render_audit_line(entry: HistoryEntry) -> str:
    """One developer-oriented line per entry, e.g. for CLI dumps."""
    parts = [f"#{entry.seq}", entry.timestamp.isoformat(), entry.action.value]
    if entry.destination_location is not None:
        parts.append(f"-> {entry.destination_location.code}")
    if entry.work_order_number:
        parts.append(f"wo={entry.work_order_number}")
    return " ".join(parts)
