"""
OrderStatusService -- re-derive cut order activity from bundle statuses.

Responsibility:
    For each affected order, read its bundle statuses, ask the pure
    aggregator for a decision, and deactivate the order when every bundle
    is used.

Architecture position:
    Kernel > Services -- imperative shell.  BundleOrchestrator runs it after
    the triggering transaction has committed, in a separate session, and
    treats any failure as non-fatal.

Invariants enforced:
    ORDER_NEVER_REACTIVATED -- only active -> inactive transitions.

Failure modes:
    - CutOrderNotFoundError if an order disappears between lookups.
    - Any SQLAlchemyError propagates; the orchestrator logs and drops it.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from bundle_kernel.domain.aggregation import decide_order_status
from bundle_kernel.domain.dtos import OrderStatusChange
from bundle_kernel.domain.lifecycle import BundleStatus
from bundle_kernel.logging_config import get_logger
from bundle_kernel.models.bundle import BundleModel
from bundle_kernel.services.base import BaseService
from bundle_kernel.services.bundle_store import BundleStore

logger = get_logger("services.order_status")


class OrderStatusService(BaseService):
    """Order activity recompute.  Flush-only; the caller commits."""

    def recompute_for_bundles(
        self,
        bundle_ids: Iterable[UUID],
        now: datetime,
    ) -> tuple[OrderStatusChange, ...]:
        bundle_ids = list(bundle_ids)
        if not bundle_ids:
            return ()
        order_ids = BundleStore(self.session).order_ids_for(bundle_ids)
        return self.recompute_orders(order_ids, now)

    def recompute_orders(
        self,
        order_ids: Iterable[UUID],
        now: datetime,
    ) -> tuple[OrderStatusChange, ...]:
        store = BundleStore(self.session)
        changes = []
        for order_id in sorted(set(order_ids), key=str):
            order = store.load_order(order_id, lock=True)
            statuses = self.session.scalars(
                select(BundleModel.status).where(BundleModel.cut_order_id == order_id)
            ).all()
            decision = decide_order_status(
                order_id, order.active, (BundleStatus(s) for s in statuses)
            )
            if decision.bundle_count == 0:
                logger.debug("order_status_skipped_empty", extra={"order_id": str(order_id)})
                continue
            if not decision.should_deactivate:
                continue

            store.update_order_active(order_id, False, now=now)
            changes.append(
                OrderStatusChange(order_id=order_id, previously_active=True, active=False)
            )
            logger.info(
                "order_deactivated",
                extra={
                    "order_id": str(order_id),
                    "order_code": order.code,
                    "bundle_count": decision.bundle_count,
                },
            )
        return tuple(changes)
