"""
Module: bundle_kernel.selectors.cut_order_selector
Responsibility: Read-only loading of cut orders with their bundles, locations
    and history, returned either as raw mappings or as projected DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.  Relationships are eager-loaded with selectinload so a
      projection never triggers lazy loads after the session closes.
    - Orders are listed newest first.

Failure modes:
    - CutOrderNotFoundError / BundleNotFoundError for unknown ids.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from bundle_kernel.domain.dtos import CutOrder, HistoryEntry
from bundle_kernel.domain.projection import project_cut_order, project_history_entry
from bundle_kernel.exceptions import BundleNotFoundError, CutOrderNotFoundError
from bundle_kernel.models.bundle import BundleHistoryModel, BundleModel
from bundle_kernel.models.cut_order import CutOrderModel
from bundle_kernel.selectors.base import BaseSelector


def _order_query():
    return (
        select(CutOrderModel)
        .options(
            selectinload(CutOrderModel.bundles).selectinload(BundleModel.location),
            selectinload(CutOrderModel.bundles)
            .selectinload(BundleModel.history)
            .selectinload(BundleHistoryModel.destination_location),
        )
        .execution_options(populate_existing=True)
    )


class CutOrderSelector(BaseSelector):
    """Queries over cut orders and bundle history."""

    def raw_orders(self) -> list[dict]:
        orders = self.session.scalars(
            _order_query().order_by(
                CutOrderModel.created_at.desc(), CutOrderModel.code.desc()
            )
        ).all()
        return [order.to_raw() for order in orders]

    def get_raw_order(self, order_id: UUID) -> dict:
        order = self.session.execute(
            _order_query().where(CutOrderModel.id == order_id)
        ).scalar_one_or_none()
        if order is None:
            raise CutOrderNotFoundError(order_id)
        return order.to_raw()

    def list_orders(self) -> list[CutOrder]:
        return [project_cut_order(raw) for raw in self.raw_orders()]

    def get_order(self, order_id: UUID) -> CutOrder:
        return project_cut_order(self.get_raw_order(order_id))

    def bundle_history(self, bundle_id: UUID) -> tuple[HistoryEntry, ...]:
        """History of one bundle, oldest first."""
        exists = self.session.scalar(
            select(BundleModel.id).where(BundleModel.id == bundle_id)
        )
        if exists is None:
            raise BundleNotFoundError([bundle_id])
        rows = self.session.scalars(
            select(BundleHistoryModel)
            .options(selectinload(BundleHistoryModel.destination_location))
            .where(BundleHistoryModel.bundle_id == bundle_id)
            .order_by(BundleHistoryModel.recorded_at, BundleHistoryModel.seq)
        ).all()
        return tuple(project_history_entry(row.to_raw()) for row in rows)
