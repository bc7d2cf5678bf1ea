"""
HistoryLedger -- append-only writer for bundle history.

Responsibility:
    Validates history drafts, allocates their ``seq`` values as one
    contiguous block, and inserts them.  There is no update or delete path;
    db/immutability.py and db/triggers.py reject those anyway.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the batch action,
    split and cut order services inside their transaction.

Invariants enforced:
    HISTORY_APPEND_ONLY -- insert only.
    Drafts of one call get consecutive ``seq`` values in the order given.

Failure modes:
    - InvalidHistoryEntryError for a draft that breaks the shape rules
      (work order on a non-assign entry, move without destination, naive
      timestamp).  Raised before anything is written.
"""

from collections.abc import Sequence

from bundle_kernel.domain.dtos import HistoryEntryDraft
from bundle_kernel.domain.history import validate_draft
from bundle_kernel.logging_config import get_logger
from bundle_kernel.models.bundle import BundleHistoryModel
from bundle_kernel.services.base import BaseService
from bundle_kernel.services.sequence_service import SequenceService

logger = get_logger("services.history_ledger")


class HistoryLedger(BaseService):
    """Append-only bundle history."""

    def append(self, entries: Sequence[HistoryEntryDraft]) -> list[BundleHistoryModel]:
        """
        Append ``entries`` in order.

        Returns:
            The flushed rows, with ``id`` and ``seq`` populated.
        """
        entries = list(entries)
        if not entries:
            return []

        for draft in entries:
            validate_draft(draft)

        seqs = SequenceService(self.session).next_block(
            SequenceService.BUNDLE_HISTORY, len(entries)
        )
        rows = [
            BundleHistoryModel(
                bundle_id=draft.bundle_id,
                seq=seq,
                action=draft.action.value,
                destination_location_id=draft.destination_location_id,
                work_order_number=(
                    draft.work_order_number.strip() if draft.work_order_number else None
                ),
                recorded_at=draft.timestamp,
            )
            for draft, seq in zip(entries, seqs)
        ]
        self.session.add_all(rows)
        self.session.flush()

        logger.debug(
            "history_appended",
            extra={
                "entry_count": len(rows),
                "first_seq": seqs[0],
                "actions": sorted({d.action.value for d in entries}),
            },
        )
        return rows
