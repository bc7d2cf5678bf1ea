"""
Module: bundle_kernel.models.bundle
Responsibility: ORM persistence for bundles and their append-only history.
Architecture position: Kernel > Models.  May import from db/base.py only
    (domain types are imported lazily inside conversion methods).

Invariants enforced:
    NON_NEGATIVE_SHEETS    -- ck_bundle_sheets_non_negative.
    UNIQUE_SIBLING_VARIANT -- uq_bundle_order_number: two bundles of one
                              order can never hold the same packed number,
                              so a colliding concurrent split fails here.
    HISTORY_APPEND_ONLY    -- BundleHistoryModel rows are protected by ORM
                              listeners (db/immutability.py) and PostgreSQL
                              triggers (db/triggers.py).

Failure modes:
    - IntegrityError on any of the constraints above.
    - ImmutabilityViolationError on UPDATE/DELETE of a history row, or
      DELETE of a bundle.

Audit relevance:
    ``version`` increments on every bundle write and is the
    compare-and-swap key for batch actions and splits.  History ``seq``
    gives a total insertion order that breaks timestamp ties.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bundle_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from bundle_kernel.models.location import LocationModel

if TYPE_CHECKING:
    from bundle_kernel.domain.dtos import BundleSnapshot
    from bundle_kernel.models.cut_order import CutOrderModel

_STATUS_VALUES = "('available', 'assigned', 'used')"
_ACTION_VALUES = "('move', 'assign', 'use', 'split')"


class BundleModel(TrackedBase):
    """
    One physical bundle of cut sheets.

    Contract:
        Mutated only through BundleStore (conditional UPDATEs that bump
        ``version``).  Never deleted.

    Non-goals:
        The current work order is not stored; it is derived from history.
    """

    __tablename__ = "bundles"

    __table_args__ = (
        UniqueConstraint("cut_order_id", "number", name="uq_bundle_order_number"),
        CheckConstraint("sheets >= 0", name="ck_bundle_sheets_non_negative"),
        CheckConstraint(f"status IN {_STATUS_VALUES}", name="ck_bundle_status"),
        CheckConstraint("version >= 1", name="ck_bundle_version_positive"),
        Index("idx_bundle_cut_order", "cut_order_id"),
        Index("idx_bundle_status", "status"),
    )

    cut_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cut_orders.id"),
        nullable=False,
    )

    # Packed (base, variant); see domain/bundle_number.py
    number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    sheets: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="available",
    )

    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    sscc: Mapped[str | None] = mapped_column(String(64), nullable=True)
    luid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    coil_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    cut_order: Mapped["CutOrderModel"] = relationship(back_populates="bundles")
    location: Mapped[LocationModel | None] = relationship(
        foreign_keys=[location_id],
    )
    history: Mapped[list["BundleHistoryModel"]] = relationship(
        back_populates="bundle",
        order_by="BundleHistoryModel.seq",
    )

    def to_snapshot(self) -> "BundleSnapshot":
        from bundle_kernel.domain.dtos import BundleSnapshot
        from bundle_kernel.domain.lifecycle import BundleStatus

        return BundleSnapshot(
            id=self.id,
            cut_order_id=self.cut_order_id,
            number=self.number,
            sheets=self.sheets,
            status=BundleStatus(self.status),
            location_id=self.location_id,
            version=self.version,
        )

    def to_raw(self) -> dict:
        return {
            "id": self.id,
            "cut_order_id": self.cut_order_id,
            "number": self.number,
            "sheets": self.sheets,
            "status": self.status,
            "location": self.location.to_raw() if self.location else None,
            "sscc": self.sscc,
            "luid": self.luid,
            "coil_number": self.coil_number,
            "created_at": self.created_at,
            "version": self.version,
            "history": [entry.to_raw() for entry in self.history],
        }

    def __repr__(self) -> str:
        return f"<BundleModel {self.number} {self.status} sheets={self.sheets}>"


class BundleHistoryModel(Base):
    """
    Immutable record of one action on one bundle.

    Guarantees:
        - ``seq`` is unique and allocated from a locked counter row.
        - ``work_order_number`` is only set on assign entries.
    """

    __tablename__ = "bundle_history"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_bundle_history_seq"),
        CheckConstraint(f"action IN {_ACTION_VALUES}", name="ck_bundle_history_action"),
        CheckConstraint(
            "work_order_number IS NULL OR action = 'assign'",
            name="ck_bundle_history_work_order_assign_only",
        ),
        Index("idx_bundle_history_bundle", "bundle_id", "recorded_at", "seq"),
    )

    bundle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bundles.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    action: Mapped[str] = mapped_column(String(20), nullable=False)

    destination_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("locations.id"),
        nullable=True,
    )

    work_order_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    bundle: Mapped[BundleModel] = relationship(back_populates="history")
    destination_location: Mapped[LocationModel | None] = relationship()

    def to_raw(self) -> dict:
        return {
            "id": self.id,
            "bundle_id": self.bundle_id,
            "seq": self.seq,
            "action": self.action,
            "destination_location": (
                self.destination_location.to_raw()
                if self.destination_location
                else None
            ),
            "work_order_number": self.work_order_number,
            "recorded_at": self.recorded_at,
        }
