"""
Order status aggregation -- decide whether a cut order is finished.

Responsibility:
    From the statuses of an order's bundles, decide whether the order must
    be deactivated.  An order is finished when it has bundles, all of them
    are ``used`` and none is still open.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Persistence lives
    in services/order_status_service.py.

Invariants enforced:
    ORDER_NEVER_REACTIVATED -- the decision can only move an order from
    active to inactive, never back.

Edge cases:
    - An order with no bundles is left alone.
    - An order already inactive yields no change.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from bundle_kernel.domain.lifecycle import OPEN_STATUSES, BundleStatus


@dataclass(frozen=True)
class OrderStatusDecision:
    order_id: UUID
    currently_active: bool
    bundle_count: int
    all_used: bool
    has_open: bool

    @property
    def should_deactivate(self) -> bool:
        return (
            self.currently_active
            and self.bundle_count > 0
            and self.all_used
            and not self.has_open
        )


def decide_order_status(
    order_id: UUID,
    currently_active: bool,
    statuses: Iterable[BundleStatus],
) -> OrderStatusDecision:
    statuses = [BundleStatus(s) for s in statuses]
    return OrderStatusDecision(
        order_id=order_id,
        currently_active=currently_active,
        bundle_count=len(statuses),
        all_used=all(s is BundleStatus.USED for s in statuses),
        has_open=any(s in OPEN_STATUSES for s in statuses),
    )
