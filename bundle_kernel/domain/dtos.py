"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures that cross the kernel boundary: the projected
    read model (Location, HistoryEntry, Bundle, CutOrder), the loaded
    bundle snapshot the split planner works on, and the results returned
    by the orchestrator.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  Models convert themselves to these shapes at
    the service boundary.

Invariants enforced:
    NON_NEGATIVE_SHEETS -- NewBundleSpec and BundleSnapshot refuse negative
    sheet counts.

Data flow:
    raw rows -> projection -> Bundle / CutOrder
    BundleModel -> BundleSnapshot -> plan_split -> SplitPlan -> SplitResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from bundle_kernel.domain.lifecycle import BundleAction, BundleStatus


@dataclass(frozen=True)
class Location:
    """A physical site bundles can sit at."""

    id: UUID
    code: str


@dataclass(frozen=True)
class HistoryEntry:
    """One immutable ledger record for one action on one bundle."""

    id: UUID
    bundle_id: UUID
    action: BundleAction
    destination_location: Location | None
    work_order_number: str | None
    timestamp: datetime
    seq: int


@dataclass(frozen=True)
class HistoryEntryDraft:
    """
    A history entry that has not been written yet.

    The ledger assigns ``id`` and ``seq`` when it appends the draft.
    """

    bundle_id: UUID
    action: BundleAction
    timestamp: datetime
    destination_location_id: UUID | None = None
    work_order_number: str | None = None


@dataclass(frozen=True)
class Bundle:
    """Projected bundle with derived work order and display name."""

    id: UUID
    cut_order_id: UUID
    base_number: int | None
    variant: int | None
    sheets: int
    status: BundleStatus
    location: Location | None
    work_order: str | None
    sscc: str | None
    luid: str | None
    coil_number: str | None
    created_at: datetime | None
    version: int
    history: tuple[HistoryEntry, ...] = ()
    display_name: str = ""


@dataclass(frozen=True)
class CutOrder:
    """Projected cut order."""

    id: UUID
    code: str
    order_date: date
    declared_bundle_count: int
    active: bool
    bundles: tuple[Bundle, ...]
    registered_bundles: int
    pending_bundles: int
    location_filter: str | None
    created_at: datetime | None = None


@dataclass(frozen=True)
class BundleSnapshot:
    """The persisted state of one bundle as read inside a transaction."""

    id: UUID
    cut_order_id: UUID
    number: int | None
    sheets: int
    status: BundleStatus
    location_id: UUID | None
    version: int

    def __post_init__(self) -> None:
        if self.sheets < 0:
            raise ValueError(f"Bundle {self.id} has negative sheets: {self.sheets}")


@dataclass(frozen=True)
class BundleIdentifiers:
    """External identifiers (SSCC, LUID) written onto a bundle at split."""

    sscc: str | None
    luid: str | None

    def normalized(self) -> BundleIdentifiers:
        return BundleIdentifiers(
            sscc=(self.sscc or "").strip() or None,
            luid=(self.luid or "").strip() or None,
        )

    def missing(self, prefix: str) -> tuple[str, ...]:
        clean = self.normalized()
        names = []
        if clean.sscc is None:
            names.append(f"{prefix}_sscc")
        if clean.luid is None:
            names.append(f"{prefix}_luid")
        return tuple(names)


@dataclass(frozen=True)
class NewBundleSpec:
    """Input for one initial bundle of a new cut order."""

    sheets: int
    location_code: str | None = None
    sscc: str | None = None
    luid: str | None = None
    coil_number: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.sheets, bool) or not isinstance(self.sheets, int):
            raise TypeError(f"sheets must be int, got {type(self.sheets).__name__}")
        if self.sheets < 0:
            raise ValueError(f"sheets must be >= 0, got {self.sheets}")


@dataclass(frozen=True)
class OrderStatusChange:
    """An order that the aggregator deactivated."""

    order_id: UUID
    previously_active: bool
    active: bool


@dataclass(frozen=True)
class BundleActionResult:
    """Outcome of a committed move / assign / use batch."""

    action: BundleAction
    bundle_ids: tuple[UUID, ...]
    timestamp: datetime
    destination: Location | None = None
    work_order_number: str | None = None
    order_ids: tuple[UUID, ...] = ()
    status_changes: tuple[OrderStatusChange, ...] = field(default=())


@dataclass(frozen=True)
class SplitResult:
    """Outcome of a committed split."""

    order_id: UUID
    original_bundle_id: UUID
    new_bundle_id: UUID
    base_number: int
    original_variant: int
    new_variant: int
    original_sheets: int
    new_sheets: int
    timestamp: datetime
    status_changes: tuple[OrderStatusChange, ...] = field(default=())
