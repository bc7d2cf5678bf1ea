"""
Split planning -- the pure half of the split operation.

Responsibility:
    Given the bundle to split and its loaded sibling group, decide
    everything the store must write: the remaining sheets, the variant the
    new sibling gets, whether the original must be promoted to the packed
    number form, and which identifiers land on which bundle.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The transactional
    half lives in services/split_service.py, which applies a SplitPlan with
    compare-and-swap on the original's ``version``.

Invariants enforced:
    SPLIT_CONSERVATION     -- remaining + split == sheets at plan time.
    UNIQUE_SIBLING_VARIANT -- new variant = max(existing variants) + 1.

Failure modes (all raised before any write):
    - BundleOrderMismatchError      bundle is not in the given order.
    - OptimisticLockError           caller's expected_version is stale.
    - MissingBundleIdentifiersError any of the four identifiers is blank.
    - SplitQuantityError            quantity not in (0, sheets).
    - UnresolvableBundleNumberError base number missing or not positive.
    - SplitVariantExhaustedError    the group already uses variant 999.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from bundle_kernel.domain.bundle_number import (
    MAX_VARIANT,
    MIN_VARIANT,
    decode,
    encode,
    is_encoded,
)
from bundle_kernel.domain.dtos import BundleIdentifiers, BundleSnapshot
from bundle_kernel.domain.lifecycle import BundleStatus
from bundle_kernel.exceptions import (
    BundleOrderMismatchError,
    MissingBundleIdentifiersError,
    OptimisticLockError,
    SplitQuantityError,
    SplitVariantExhaustedError,
    UnresolvableBundleNumberError,
)


@dataclass(frozen=True)
class SplitPlan:
    """Everything needed to commit one split, computed from one snapshot."""

    bundle_id: UUID
    order_id: UUID
    expected_version: int
    base_number: int
    original_number: int
    original_variant: int
    promote_original: bool
    new_number: int
    new_variant: int
    original_sheets: int
    remaining_sheets: int
    split_sheets: int
    location_id: UUID | None
    status: BundleStatus
    original_identifiers: BundleIdentifiers
    new_identifiers: BundleIdentifiers


def next_variant(base_number: int, siblings: Iterable[BundleSnapshot]) -> int:
    """``max(variant of every bundle sharing base_number, default 1) + 1``."""
    variants = [
        decoded.variant
        for decoded in (decode(sibling.number) for sibling in siblings)
        if decoded.base == base_number and decoded.variant is not None
    ]
    return max(variants, default=MIN_VARIANT) + 1


def plan_split(
    bundle: BundleSnapshot,
    siblings: Iterable[BundleSnapshot],
    order_id: UUID,
    sheets: int,
    original_identifiers: BundleIdentifiers,
    new_identifiers: BundleIdentifiers,
    expected_version: int | None = None,
) -> SplitPlan:
    """
    Plan a split of ``sheets`` sheets off ``bundle``.

    ``siblings`` is every bundle of the order as read in the same
    transaction; bundles with a different base are ignored.
    """
    if bundle.cut_order_id != order_id:
        raise BundleOrderMismatchError(bundle.id, order_id, bundle.cut_order_id)

    if expected_version is not None and expected_version != bundle.version:
        raise OptimisticLockError("Bundle", bundle.id, expected_version)

    missing = original_identifiers.missing("original") + new_identifiers.missing("new")
    if missing:
        raise MissingBundleIdentifiersError(bundle.id, missing)

    if (
        isinstance(sheets, bool)
        or not isinstance(sheets, int)
        or not 0 < sheets < bundle.sheets
    ):
        raise SplitQuantityError(bundle.id, sheets, bundle.sheets)

    decoded = decode(bundle.number)
    if not decoded.is_resolvable:
        raise UnresolvableBundleNumberError(bundle.id, bundle.number)
    base = decoded.base

    variant = next_variant(base, [bundle, *siblings])
    if variant > MAX_VARIANT:
        raise SplitVariantExhaustedError(bundle.id, base, variant - 1)

    promote = not is_encoded(bundle.number)
    original_number = encode(base, MIN_VARIANT) if promote else bundle.number

    return SplitPlan(
        bundle_id=bundle.id,
        order_id=order_id,
        expected_version=bundle.version,
        base_number=base,
        original_number=original_number,
        original_variant=decode(original_number).variant,
        promote_original=promote,
        new_number=encode(base, variant),
        new_variant=variant,
        original_sheets=bundle.sheets,
        remaining_sheets=bundle.sheets - sheets,
        split_sheets=sheets,
        location_id=bundle.location_id,
        status=bundle.status,
        original_identifiers=original_identifiers.normalized(),
        new_identifiers=new_identifiers.normalized(),
    )
