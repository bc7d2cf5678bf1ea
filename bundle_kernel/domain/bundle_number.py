"""
Bundle Number Codec -- pack and unpack split-sibling identities.

Responsibility:
    A bundle's stored ``number`` packs two facts into one integer: the base
    number shared by every bundle split from the same original, and the
    1-based variant of this particular bundle within that sibling group.

        stored = base * SPLIT_NUMBER_FACTOR + variant       (variant 1..999)

    Bundles that were never split keep their small legacy number (< 1000),
    which decodes as ``(number, 1)``.  The first split promotes the original
    to the packed form.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    UNIQUE_SIBLING_VARIANT -- encode() refuses variants outside 1..999, so a
    packed value can never bleed into the next base.

Failure modes:
    - InvalidBundleNumberError from encode() for base < 1 or variant out of
      range.

Edge cases:
    - ``decode(5000)`` is ``(5, 1)``: a packed value whose low digits are
      zero is read as variant 1, the same way the legacy data was written.
    - ``decode(None)`` is ``(None, None)``.
    - A decoded base of zero or less is not resolvable.
"""

from dataclasses import dataclass

from bundle_kernel.exceptions import InvalidBundleNumberError

SPLIT_NUMBER_FACTOR = 1000
MIN_VARIANT = 1
MAX_VARIANT = SPLIT_NUMBER_FACTOR - 1


@dataclass(frozen=True)
class BundleNumber:
    """Decoded bundle number.  Both fields are None for unnumbered bundles."""

    base: int | None
    variant: int | None

    @property
    def is_resolvable(self) -> bool:
        return is_resolvable_base(self.base)


def encode(base: int, variant: int) -> int:
    """Pack ``(base, variant)`` into the stored integer."""
    if isinstance(base, bool) or not isinstance(base, int) or base < 1:
        raise InvalidBundleNumberError(base, variant, "base must be a positive integer")
    if (
        isinstance(variant, bool)
        or not isinstance(variant, int)
        or not MIN_VARIANT <= variant <= MAX_VARIANT
    ):
        raise InvalidBundleNumberError(
            base, variant, f"variant must be in [{MIN_VARIANT}, {MAX_VARIANT}]"
        )
    return base * SPLIT_NUMBER_FACTOR + variant


def decode(stored: int | None) -> BundleNumber:
    """Unpack a stored number.  Never raises."""
    if stored is None:
        return BundleNumber(None, None)
    if stored >= SPLIT_NUMBER_FACTOR:
        return BundleNumber(
            stored // SPLIT_NUMBER_FACTOR,
            stored % SPLIT_NUMBER_FACTOR or MIN_VARIANT,
        )
    return BundleNumber(stored, MIN_VARIANT)


def is_encoded(stored: int | None) -> bool:
    """True when the stored number is already in packed form."""
    return stored is not None and stored >= SPLIT_NUMBER_FACTOR


def is_resolvable_base(base: int | None) -> bool:
    return base is not None and base > 0
