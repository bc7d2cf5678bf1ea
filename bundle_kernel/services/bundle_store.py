"""
BundleStore -- persistence primitives for bundles and order activity.

Responsibility:
    The one place that reads and writes bundle rows.  Reads return
    ``BundleSnapshot`` DTOs; writes are conditional Core-style UPDATEs that
    bump ``version`` and check the affected row count.

Architecture position:
    Kernel > Services -- imperative shell.  Used by the batch action, split,
    cut order and order status services.

Invariants enforced:
    - Every bundle write increments ``version`` by exactly one.
    - ``update_bundle(..., expected_version=v)`` only succeeds when the row
      still has version ``v`` (compare-and-swap).
    - ``update_batch`` only touches rows whose status is in the allowed set
      and fails unless every targeted row was updated.
    - ORDER_NEVER_REACTIVATED -- update_order_active refuses True on an
      inactive order.

Concurrency:
    ``lock=True`` issues ``SELECT ... FOR UPDATE`` ordered by id, so callers
    that lock only bundles acquire them in one global order.  A caller that
    also locks an order row must take it before any bundle (SplitService
    does); mixing the two orders can deadlock on PostgreSQL.  SQLite ignores
    the clause; write transactions there hold the database lock from BEGIN.

Failure modes:
    - BundleNotFoundError, CutOrderNotFoundError.
    - OptimisticLockError when a conditional write hits fewer rows than
      expected because a concurrent transaction changed them.
"""

from collections.abc import Collection, Iterable, Mapping
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update

from bundle_kernel.domain.dtos import BundleSnapshot
from bundle_kernel.domain.lifecycle import BundleStatus
from bundle_kernel.exceptions import (
    BundleNotFoundError,
    CutOrderNotFoundError,
    InvalidCutOrderError,
    OptimisticLockError,
)
from bundle_kernel.logging_config import get_logger
from bundle_kernel.models.bundle import BundleModel
from bundle_kernel.models.cut_order import CutOrderModel
from bundle_kernel.services.base import BaseService

logger = get_logger("services.bundle_store")

UPDATABLE_FIELDS = frozenset(
    {"number", "sheets", "status", "location_id", "sscc", "luid", "coil_number"}
)


def _check_fields(values: Mapping[str, object]) -> dict:
    unknown = set(values) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable on bundles: {sorted(unknown)}")
    clean = dict(values)
    if isinstance(clean.get("status"), BundleStatus):
        clean["status"] = clean["status"].value
    return clean


class BundleStore(BaseService):
    """Bundle and order persistence used by the kernel services."""

    def _select_bundles(self, lock: bool):
        stmt = select(BundleModel).execution_options(populate_existing=True)
        if lock:
            stmt = stmt.with_for_update()
        return stmt

    def load_bundle(self, bundle_id: UUID, lock: bool = False) -> BundleSnapshot:
        row = self.session.execute(
            self._select_bundles(lock).where(BundleModel.id == bundle_id)
        ).scalar_one_or_none()
        if row is None:
            raise BundleNotFoundError([bundle_id])
        return row.to_snapshot()

    def load_bundles(
        self,
        bundle_ids: Collection[UUID],
        lock: bool = False,
    ) -> dict[UUID, BundleSnapshot]:
        """Load every id or raise BundleNotFoundError naming the missing ones."""
        rows = self.session.scalars(
            self._select_bundles(lock)
            .where(BundleModel.id.in_(list(bundle_ids)))
            .order_by(BundleModel.id)
        ).all()
        found = {row.id: row.to_snapshot() for row in rows}
        missing = [bundle_id for bundle_id in bundle_ids if bundle_id not in found]
        if missing:
            raise BundleNotFoundError(missing)
        return found

    def load_sibling_group(self, order_id: UUID, lock: bool = False) -> list[BundleSnapshot]:
        """All bundles of an order; callers filter by decoded base number."""
        rows = self.session.scalars(
            self._select_bundles(lock)
            .where(BundleModel.cut_order_id == order_id)
            .order_by(BundleModel.id)
        ).all()
        return [row.to_snapshot() for row in rows]

    def _exists(self, bundle_id: UUID) -> bool:
        return (
            self.session.execute(
                select(func.count()).select_from(BundleModel).where(BundleModel.id == bundle_id)
            ).scalar_one()
            > 0
        )

    def update_bundle(
        self,
        bundle_id: UUID,
        values: Mapping[str, object],
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> None:
        """
        Update one bundle, optionally as a compare-and-swap on ``version``.
        """
        stmt = (
            update(BundleModel)
            .where(BundleModel.id == bundle_id)
            .values(
                **_check_fields(values),
                version=BundleModel.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if expected_version is not None:
            stmt = stmt.where(BundleModel.version == expected_version)

        if self.session.execute(stmt).rowcount == 1:
            return
        if not self._exists(bundle_id):
            raise BundleNotFoundError([bundle_id])
        logger.warning(
            "bundle_version_conflict",
            extra={"bundle_id": str(bundle_id), "expected_version": expected_version},
        )
        raise OptimisticLockError("Bundle", bundle_id, expected_version)

    def update_batch(
        self,
        bundle_ids: Collection[UUID],
        values: Mapping[str, object],
        allowed_statuses: Iterable[BundleStatus],
        now: datetime | None = None,
    ) -> int:
        """
        Update every bundle in one statement, guarded by current status.

        The row count must match the batch size; otherwise a concurrent
        transaction changed a bundle between validation and write, and the
        whole batch fails.
        """
        statuses = [s.value for s in allowed_statuses]
        stmt = (
            update(BundleModel)
            .where(BundleModel.id.in_(list(bundle_ids)))
            .where(BundleModel.status.in_(statuses))
            .values(
                **_check_fields(values),
                version=BundleModel.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        updated = self.session.execute(stmt).rowcount
        if updated != len(bundle_ids):
            logger.warning(
                "bundle_batch_conflict",
                extra={"expected_rows": len(bundle_ids), "updated_rows": updated},
            )
            raise OptimisticLockError("BundleBatch", ",".join(str(i) for i in bundle_ids))
        return updated

    def insert_bundle(
        self,
        *,
        cut_order_id: UUID,
        number: int | None,
        sheets: int,
        status: BundleStatus,
        location_id: UUID | None,
        created_at: datetime,
        sscc: str | None = None,
        luid: str | None = None,
        coil_number: str | None = None,
    ) -> BundleSnapshot:
        row = BundleModel(
            cut_order_id=cut_order_id,
            number=number,
            sheets=sheets,
            status=status.value,
            location_id=location_id,
            sscc=sscc,
            luid=luid,
            coil_number=coil_number,
            version=1,
            created_at=created_at,
        )
        self.session.add(row)
        self.session.flush()
        return row.to_snapshot()

    def order_ids_for(self, bundle_ids: Collection[UUID]) -> list[UUID]:
        """Distinct owning orders of the given bundles, sorted."""
        return sorted(
            self.session.scalars(
                select(BundleModel.cut_order_id)
                .where(BundleModel.id.in_(list(bundle_ids)))
                .distinct()
            ).all(),
            key=str,
        )

    def load_order(self, order_id: UUID, lock: bool = False) -> CutOrderModel:
        stmt = (
            select(CutOrderModel)
            .where(CutOrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        order = self.session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise CutOrderNotFoundError(order_id)
        return order

    def update_order_active(
        self,
        order_id: UUID,
        active: bool,
        now: datetime | None = None,
    ) -> bool:
        """
        Set the order's ``active`` flag.

        Returns:
            True if the flag changed.
        """
        order = self.load_order(order_id, lock=True)
        if order.active == active:
            return False
        if active:
            raise InvalidCutOrderError("orders are never re-activated", order.code)
        order.active = False
        order.updated_at = now
        self.session.flush()
        return True
