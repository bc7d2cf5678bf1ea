"""
SplitService -- split one bundle into two, transactionally.

Responsibility:
    ``plan()`` locks the owning cut order row, then every bundle of that
    order in id order, and runs the pure planner on the locked snapshot.
    ``commit()`` applies a plan: a compare-and-swap update of the original
    (remaining sheets, caller's identifiers, promoted number), an insert of
    the new sibling, and one ``split`` history entry per bundle, all stamped
    with the same time.

Architecture position:
    Kernel > Services -- imperative shell.  Called by BundleOrchestrator.

Invariants enforced:
    SPLIT_CONSERVATION     -- original.sheets + new.sheets equals the
                              original's sheets at plan time; the CAS on
                              ``version`` guarantees nothing changed since.
    UNIQUE_SIBLING_VARIANT -- uq_bundle_order_number rejects a sibling
                              number another split already took.

Failure modes:
    - Everything plan_split raises (validation, not retryable).
    - SplitConflictError (retryable) when the plan is stale: the original's
      version moved, or the new number / promoted number collides.  The
      caller's transaction must be rolled back; no retry happens here.
    - Any other IntegrityError propagates unchanged.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from bundle_kernel.domain.dtos import BundleIdentifiers, HistoryEntryDraft, SplitResult
from bundle_kernel.domain.lifecycle import BundleAction
from bundle_kernel.domain.split import SplitPlan, plan_split
from bundle_kernel.exceptions import (
    BundleNotFoundError,
    OptimisticLockError,
    SplitConflictError,
)
from bundle_kernel.logging_config import get_logger
from bundle_kernel.services.base import BaseService
from bundle_kernel.services.bundle_store import BundleStore
from bundle_kernel.services.history_ledger import HistoryLedger

logger = get_logger("services.split")

# PostgreSQL names the constraint; SQLite names its columns.
_SIBLING_NUMBER_CLASH = (
    "uq_bundle_order_number",
    "UNIQUE constraint failed: bundles.cut_order_id, bundles.number",
)


def _is_sibling_number_clash(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in _SIBLING_NUMBER_CLASH)


class SplitService(BaseService):
    """Plan and commit splits.  Flush-only; the caller commits."""

    def plan(
        self,
        bundle_id: UUID,
        order_id: UUID,
        sheets: int,
        original_identifiers: BundleIdentifiers,
        new_identifiers: BundleIdentifiers,
        expected_version: int | None = None,
    ) -> SplitPlan:
        store = BundleStore(self.session)
        owner_id = store.load_bundle(bundle_id).cut_order_id
        # Order row first, then its bundles by id: the same order every split
        # of this group takes, and batch actions never lock order rows.
        store.load_order(owner_id, lock=True)
        siblings = store.load_sibling_group(owner_id, lock=True)
        bundle = next((s for s in siblings if s.id == bundle_id), None)
        if bundle is None:
            raise BundleNotFoundError([bundle_id])
        return plan_split(
            bundle,
            siblings,
            order_id,
            sheets,
            original_identifiers,
            new_identifiers,
            expected_version=expected_version,
        )

    def commit(self, plan: SplitPlan, now: datetime) -> SplitResult:
        store = BundleStore(self.session)
        try:
            store.update_bundle(
                plan.bundle_id,
                {
                    "sheets": plan.remaining_sheets,
                    "number": plan.original_number,
                    "sscc": plan.original_identifiers.sscc,
                    "luid": plan.original_identifiers.luid,
                },
                expected_version=plan.expected_version,
                now=now,
            )
            sibling = store.insert_bundle(
                cut_order_id=plan.order_id,
                number=plan.new_number,
                sheets=plan.split_sheets,
                status=plan.status,
                location_id=plan.location_id,
                created_at=now,
                sscc=plan.new_identifiers.sscc,
                luid=plan.new_identifiers.luid,
            )
        except OptimisticLockError:
            raise self._conflict(plan, "bundle changed since the split was planned") from None
        except IntegrityError as exc:
            if not _is_sibling_number_clash(exc):
                raise
            raise self._conflict(plan, "sibling number already taken") from exc

        HistoryLedger(self.session).append(
            [
                HistoryEntryDraft(
                    bundle_id=bundle_id,
                    action=BundleAction.SPLIT,
                    timestamp=now,
                    destination_location_id=plan.location_id,
                )
                for bundle_id in (plan.bundle_id, sibling.id)
            ]
        )

        logger.info(
            "bundle_split_committed",
            extra={
                "original_bundle_id": str(plan.bundle_id),
                "new_bundle_id": str(sibling.id),
                "base_number": plan.base_number,
                "new_variant": plan.new_variant,
                "promoted": plan.promote_original,
                "remaining_sheets": plan.remaining_sheets,
                "split_sheets": plan.split_sheets,
            },
        )
        return SplitResult(
            order_id=plan.order_id,
            original_bundle_id=plan.bundle_id,
            new_bundle_id=sibling.id,
            base_number=plan.base_number,
            original_variant=plan.original_variant,
            new_variant=plan.new_variant,
            original_sheets=plan.remaining_sheets,
            new_sheets=plan.split_sheets,
            timestamp=now,
        )

    def split(
        self,
        bundle_id: UUID,
        order_id: UUID,
        sheets: int,
        original_identifiers: BundleIdentifiers,
        new_identifiers: BundleIdentifiers,
        now: datetime,
        expected_version: int | None = None,
    ) -> SplitResult:
        plan = self.plan(
            bundle_id,
            order_id,
            sheets,
            original_identifiers,
            new_identifiers,
            expected_version=expected_version,
        )
        return self.commit(plan, now)

    @staticmethod
    def _conflict(plan: SplitPlan, reason: str) -> SplitConflictError:
        logger.warning(
            "bundle_split_conflict",
            extra={
                "original_bundle_id": str(plan.bundle_id),
                "base_number": plan.base_number,
                "new_variant": plan.new_variant,
                "reason": reason,
            },
        )
        return SplitConflictError(plan.bundle_id, plan.base_number, plan.new_variant, reason)
