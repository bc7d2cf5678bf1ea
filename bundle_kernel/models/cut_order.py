"""
Module: bundle_kernel.models.cut_order
Responsibility: ORM persistence for cut orders, the unit of work that groups
    the bundles cut from one run.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    ORDER_NEVER_REACTIVATED -- ``active`` only ever goes True -> False, and
    only through OrderStatusService / BundleStore.update_order_active.

Failure modes:
    - IntegrityError if declared_bundle_count is negative
      (ck_cut_order_declared_non_negative).
"""

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bundle_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from bundle_kernel.models.bundle import BundleModel


class CutOrderModel(TrackedBase):
    """
    A cut order and its derived ``active`` flag.

    Guarantees:
        - ``bundles`` loads in creation order, ties broken by number, so
          projections see a stable first bundle.
    """

    __tablename__ = "cut_orders"

    __table_args__ = (
        CheckConstraint(
            "declared_bundle_count >= 0",
            name="ck_cut_order_declared_non_negative",
        ),
        Index("idx_cut_order_code", "code"),
        Index("idx_cut_order_created_at", "created_at"),
    )

    # Business identifier printed on the order (e.g. "1001")
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    order_date: Mapped[date] = mapped_column(Date, nullable=False)

    declared_bundle_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    bundles: Mapped[list["BundleModel"]] = relationship(
        back_populates="cut_order",
        order_by="[BundleModel.created_at, BundleModel.number, BundleModel.id]",
    )

    def to_raw(self) -> dict:
        """Raw mapping consumed by domain.projection.project_cut_order."""
        return {
            "id": self.id,
            "code": self.code,
            "order_date": self.order_date,
            "declared_bundle_count": self.declared_bundle_count,
            "active": self.active,
            "created_at": self.created_at,
            "bundles": [bundle.to_raw() for bundle in self.bundles],
        }

    def __repr__(self) -> str:
        return f"<CutOrderModel {self.code} active={self.active}>"
