"""
BundleActionService -- apply move / assign / use to a batch of bundles.

Responsibility:
    Executes a validated ``ActionCommand`` inside the caller's transaction:
    lock and load the batch, check every bundle's status, write the whole
    batch with one conditional UPDATE, and append one history entry per
    bundle.

Architecture position:
    Kernel > Services -- imperative shell.  Called by BundleOrchestrator.

Invariants enforced:
    BATCH_ATOMICITY -- the batch is validated as a whole before any write,
        and the single guarded UPDATE must hit every row.  A bundle that
        changed status between read and write fails the batch.
    TERMINAL_USED   -- ``use`` only from ``assigned``; nothing leaves ``used``
        except by ``move``.

Failure modes:
    - BundleNotFoundError, BundlesNotAssignedError,
      InvalidBundleTransitionError, InvalidLocationCodeError.
    - OptimisticLockError when the guarded UPDATE misses rows.
"""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.orm import Session

from bundle_kernel.domain.dtos import BundleActionResult, HistoryEntryDraft
from bundle_kernel.domain.lifecycle import (
    ALLOWED_SOURCE_STATUSES,
    ActionCommand,
    BundleAction,
    validate_batch,
)
from bundle_kernel.logging_config import get_logger
from bundle_kernel.services.base import BaseService
from bundle_kernel.services.bundle_store import BundleStore
from bundle_kernel.services.history_ledger import HistoryLedger
from bundle_kernel.services.location_service import LocationService

logger = get_logger("services.bundle_action")


class BundleActionService(BaseService):
    """Batch actions on bundles.  Flush-only; the caller commits."""

    def __init__(self, session: Session, allowed_location_codes: Iterable[str] = ()):
        super().__init__(session)
        self._store = BundleStore(session)
        self._ledger = HistoryLedger(session)
        self._locations = LocationService(session, allowed_location_codes)

    def apply(self, command: ActionCommand, now: datetime) -> BundleActionResult:
        destination = None
        if command.action is BundleAction.MOVE:
            destination = self._locations.ensure_locations([command.destination_code])[
                command.destination_code
            ]

        snapshots = self._store.load_bundles(command.bundle_ids, lock=True)
        validate_batch(command, {i: s.status for i, s in snapshots.items()})

        values: dict[str, object] = {}
        if destination is not None:
            values["location_id"] = destination.id
        if command.target_status is not None:
            values["status"] = command.target_status

        self._store.update_batch(
            command.bundle_ids,
            values,
            ALLOWED_SOURCE_STATUSES[command.action],
            now=now,
        )

        self._ledger.append(
            [
                HistoryEntryDraft(
                    bundle_id=bundle_id,
                    action=command.action,
                    timestamp=now,
                    destination_location_id=destination.id if destination else None,
                    work_order_number=command.work_order_number,
                )
                for bundle_id in command.bundle_ids
            ]
        )

        order_ids = tuple(
            sorted({s.cut_order_id for s in snapshots.values()}, key=str)
        )
        logger.info(
            "bundle_action_applied",
            extra={
                "action": command.action.value,
                "bundle_count": len(command.bundle_ids),
                "destination_code": command.destination_code,
                "work_order_number": command.work_order_number,
                "order_ids": [str(o) for o in order_ids],
            },
        )
        return BundleActionResult(
            action=command.action,
            bundle_ids=command.bundle_ids,
            timestamp=now,
            destination=destination,
            work_order_number=command.work_order_number,
            order_ids=order_ids,
        )
