"""
Typed Exception Hierarchy for the Bundle Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API handlers, UI adapters, batch jobs) must decide what to do with
a failure without parsing message strings:

  - Validation errors are caller-fixable.  Show them, do not retry.
  - Conflict errors mean another caller won a race.  Reload and retry.
  - Persistence errors come from the store.  Retry only when ``retryable``.

Every exception therefore carries:
  1. A ``code`` class attribute (machine-readable, API-safe).
  2. A ``retryable`` attribute (class default, overridden per instance for
     PersistenceError).
  3. Structured context (bundle ids, action, reason) as attributes.

Example:
    try:
        orchestrator.split_bundle(...)
    except SplitConflictError as e:
        reload_and_offer_retry(e.bundle_id)
    except BundleValidationError as e:
        api_response(code=e.code, detail=vars(e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BundleKernelError (base)
    |
    +-- BundleValidationError
    |   +-- EmptyBundleSelectionError
    |   +-- UnsupportedActionError
    |   +-- MissingDestinationError
    |   +-- InvalidLocationCodeError
    |   +-- MissingWorkOrderError
    |   +-- InvalidBundleTransitionError
    |   |   +-- BundlesNotAssignedError
    |   +-- SplitQuantityError
    |   +-- MissingBundleIdentifiersError
    |   +-- UnresolvableBundleNumberError
    |   +-- InvalidBundleNumberError
    |   +-- SplitVariantExhaustedError
    |   +-- BundleOrderMismatchError
    |   +-- InvalidHistoryEntryError
    |   +-- InvalidCutOrderError
    |
    +-- NotFoundError
    |   +-- BundleNotFoundError
    |   +-- CutOrderNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- SplitConflictError
    |
    +-- PersistenceError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|------------------------------------
Validation   | EMPTY_BUNDLE_SELECTION        | Action invoked with no bundle ids
             | UNSUPPORTED_ACTION            | Unknown action, or split via batch
             | MISSING_DESTINATION           | Move without destination code
             | INVALID_LOCATION_CODE         | Code outside configured allow-list
             | MISSING_WORK_ORDER            | Assign without work-order number
             | INVALID_BUNDLE_TRANSITION     | Action illegal from current status
             | BUNDLES_NOT_ASSIGNED          | Use on a batch with unassigned ids
             | SPLIT_QUANTITY_OUT_OF_RANGE   | Split quantity not in (0, sheets)
             | MISSING_BUNDLE_IDENTIFIERS    | Split without all SSCC/LUID values
             | UNRESOLVABLE_BUNDLE_NUMBER    | Split of a bundle with no base
             | INVALID_BUNDLE_NUMBER         | Encode with base/variant out of range
             | SPLIT_VARIANT_EXHAUSTED       | Sibling group already has 999 variants
             | BUNDLE_ORDER_MISMATCH         | Bundle is not part of the given order
             | INVALID_HISTORY_ENTRY         | Ledger entry breaks its own shape rules
             | INVALID_CUT_ORDER             | Order creation input is malformed
-------------|-------------------------------|------------------------------------
Not found    | BUNDLE_NOT_FOUND              | Bundle id(s) do not exist
             | CUT_ORDER_NOT_FOUND           | Order id does not exist
-------------|-------------------------------|------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT      | Version changed since it was read
             | SPLIT_CONFLICT                | Concurrent split won the variant
-------------|-------------------------------|------------------------------------
Persistence  | PERSISTENCE_ERROR             | Store call failed (see retryable)
-------------|-------------------------------|------------------------------------
Immutability | IMMUTABILITY_VIOLATION        | UPDATE/DELETE of a history entry

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain exceptions must be catchable as a group without mixing in
   programming errors raised by the standard library.

2. WHY code AND retryable AS CLASS ATTRIBUTES?
   They are static per type, so handlers and documentation can read them
   without instantiating.  PersistenceError is the one exception whose
   retryability depends on the underlying driver error, so it overrides
   the attribute per instance.

3. WHY NO USER-FACING TEXT?
   The kernel does not know the caller's language or rendering.  Messages
   are developer-oriented; callers render from ``code`` and attributes.

===============================================================================
"""

from collections.abc import Iterable


def _ids(values: Iterable[object]) -> tuple[str, ...]:
    return tuple(str(v) for v in values)


class BundleKernelError(Exception):
    """
    Base exception for all bundle kernel errors.

    All subclasses must define a ``code`` class attribute for
    machine-readable identification.
    """

    code: str = "BUNDLE_KERNEL_ERROR"
    retryable: bool = False


# Validation errors


class BundleValidationError(BundleKernelError):
    """Caller-fixable input or state error.  Nothing was mutated."""

    code: str = "VALIDATION_ERROR"


class EmptyBundleSelectionError(BundleValidationError):
    """An action was requested without any target bundle."""

    code: str = "EMPTY_BUNDLE_SELECTION"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Action '{action}' requires at least one bundle id")


class UnsupportedActionError(BundleValidationError):
    """Action is unknown or cannot be applied through this entry point."""

    code: str = "UNSUPPORTED_ACTION"

    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Unsupported action '{action}': {reason}")


class MissingDestinationError(BundleValidationError):
    """A move (or bundle creation) has no destination location."""

    code: str = "MISSING_DESTINATION"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Action '{action}' requires a destination location code")


class InvalidLocationCodeError(BundleValidationError):
    """Location code is not in the configured allow-list."""

    code: str = "INVALID_LOCATION_CODE"

    def __init__(self, location_code: str, allowed: Iterable[str] = ()):
        self.location_code = location_code
        self.allowed = tuple(allowed)
        super().__init__(f"Invalid location code: {location_code!r}")


class MissingWorkOrderError(BundleValidationError):
    """Assign requires a non-empty work-order number."""

    code: str = "MISSING_WORK_ORDER"

    def __init__(self, bundle_ids: Iterable[object] = ()):
        self.bundle_ids = _ids(bundle_ids)
        super().__init__("Assign requires a non-empty work-order number")


class InvalidBundleTransitionError(BundleValidationError):
    """Action is not legal from the current status of one or more bundles."""

    code: str = "INVALID_BUNDLE_TRANSITION"

    def __init__(
        self,
        action: str,
        bundle_ids: Iterable[object],
        current_statuses: Iterable[str],
        reason: str | None = None,
    ):
        self.action = action
        self.bundle_ids = _ids(bundle_ids)
        self.current_statuses = tuple(current_statuses)
        self.reason = reason or "transition not allowed"
        super().__init__(
            f"Cannot apply '{action}' to bundles {list(self.bundle_ids)} "
            f"in status {list(self.current_statuses)}: {self.reason}"
        )


class BundlesNotAssignedError(InvalidBundleTransitionError):
    """Use was requested for a batch containing bundles that are not assigned."""

    code: str = "BUNDLES_NOT_ASSIGNED"

    def __init__(self, bundle_ids: Iterable[object], current_statuses: Iterable[str]):
        super().__init__(
            action="use",
            bundle_ids=bundle_ids,
            current_statuses=current_statuses,
            reason="only assigned bundles can be used",
        )


class SplitQuantityError(BundleValidationError):
    """Requested split quantity is outside ``(0, current sheets)``."""

    code: str = "SPLIT_QUANTITY_OUT_OF_RANGE"

    def __init__(self, bundle_id: object, requested: int, available: int):
        self.bundle_id = str(bundle_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot split {requested} sheets from bundle {bundle_id} "
            f"holding {available}: quantity must be > 0 and < {available}"
        )


class MissingBundleIdentifiersError(BundleValidationError):
    """Split requires SSCC and LUID for both the original and the new bundle."""

    code: str = "MISSING_BUNDLE_IDENTIFIERS"

    def __init__(self, bundle_id: object, missing: Iterable[str]):
        self.bundle_id = str(bundle_id)
        self.missing = tuple(missing)
        super().__init__(
            f"Split of bundle {bundle_id} is missing identifiers: {list(self.missing)}"
        )


class UnresolvableBundleNumberError(BundleValidationError):
    """Bundle has no usable base number, so it cannot be split or grouped."""

    code: str = "UNRESOLVABLE_BUNDLE_NUMBER"

    def __init__(self, bundle_id: object, stored_number: int | None):
        self.bundle_id = str(bundle_id)
        self.stored_number = stored_number
        super().__init__(
            f"Bundle {bundle_id} has no resolvable base number (stored: {stored_number})"
        )


class InvalidBundleNumberError(BundleValidationError):
    """Base or variant is outside the range the codec can pack."""

    code: str = "INVALID_BUNDLE_NUMBER"

    def __init__(self, base: int | None, variant: int | None, reason: str):
        self.base = base
        self.variant = variant
        self.reason = reason
        super().__init__(f"Cannot encode bundle number ({base}, {variant}): {reason}")


class SplitVariantExhaustedError(BundleValidationError):
    """Sibling group has no free variant left."""

    code: str = "SPLIT_VARIANT_EXHAUSTED"

    def __init__(self, bundle_id: object, base_number: int, highest_variant: int):
        self.bundle_id = str(bundle_id)
        self.base_number = base_number
        self.highest_variant = highest_variant
        super().__init__(
            f"Sibling group {base_number} already uses variant {highest_variant}"
        )


class BundleOrderMismatchError(BundleValidationError):
    """Bundle does not belong to the order named by the caller."""

    code: str = "BUNDLE_ORDER_MISMATCH"

    def __init__(self, bundle_id: object, expected_order_id: object, actual_order_id: object):
        self.bundle_id = str(bundle_id)
        self.expected_order_id = str(expected_order_id)
        self.actual_order_id = str(actual_order_id)
        super().__init__(
            f"Bundle {bundle_id} belongs to order {actual_order_id}, "
            f"not {expected_order_id}"
        )


class InvalidHistoryEntryError(BundleValidationError):
    """History entry does not satisfy the ledger's shape rules."""

    code: str = "INVALID_HISTORY_ENTRY"

    def __init__(self, bundle_id: object, action: str, reason: str):
        self.bundle_id = str(bundle_id)
        self.action = action
        self.reason = reason
        super().__init__(f"Invalid '{action}' history entry for bundle {bundle_id}: {reason}")


class InvalidCutOrderError(BundleValidationError):
    """Cut order creation input is malformed."""

    code: str = "INVALID_CUT_ORDER"

    def __init__(self, reason: str, order_code: str | None = None):
        self.reason = reason
        self.order_code = order_code
        super().__init__(f"Invalid cut order {order_code!r}: {reason}")


# Not-found errors


class NotFoundError(BundleKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class BundleNotFoundError(NotFoundError):
    """One or more bundle ids do not exist."""

    code: str = "BUNDLE_NOT_FOUND"

    def __init__(self, bundle_ids: Iterable[object]):
        self.bundle_ids = _ids(bundle_ids)
        super().__init__(f"Bundle(s) not found: {list(self.bundle_ids)}")


class CutOrderNotFoundError(NotFoundError):
    """Cut order id does not exist."""

    code: str = "CUT_ORDER_NOT_FOUND"

    def __init__(self, order_id: object):
        self.order_id = str(order_id)
        super().__init__(f"Cut order not found: {order_id}")


# Concurrency errors


class ConcurrencyError(BundleKernelError):
    """Base exception for concurrency-related errors.  Safe to retry."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: object,
        expected_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class SplitConflictError(ConcurrencyError):
    """A concurrent split of the same sibling group committed first."""

    code: str = "SPLIT_CONFLICT"

    def __init__(
        self,
        bundle_id: object,
        base_number: int | None,
        variant: int | None,
        reason: str,
    ):
        self.bundle_id = str(bundle_id)
        self.base_number = base_number
        self.variant = variant
        self.reason = reason
        super().__init__(
            f"Split of bundle {bundle_id} (group {base_number}, variant {variant}) "
            f"conflicted: {reason}"
        )


# Persistence errors


class PersistenceError(BundleKernelError):
    """The store failed.  ``retryable`` reflects the driver error class."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str, retryable: bool):
        self.operation = operation
        self.reason = reason
        self.retryable = retryable
        super().__init__(f"Persistence failure during {operation}: {reason}")


# Immutability errors


class ImmutabilityError(BundleKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Bundle history entries are append-only from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
