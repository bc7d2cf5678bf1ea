"""
Kernel Invariants Contract.

These invariants are structural law for bundle state.  No configuration
value may switch them off.

This module exists solely to declare them explicitly.  Enforcement is
distributed across the domain state machine, SplitService, HistoryLedger,
the immutability listeners and triggers, and database constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_NEGATIVE_SHEETS = "non_negative_sheets"
    """A bundle never holds fewer than zero sheets.  Enforced by split
    planning and a CHECK constraint on bundles.sheets."""

    TERMINAL_USED = "terminal_used"
    """``used`` is reachable only from ``assigned`` and nothing leaves it.
    Enforced by domain.lifecycle and the conditional batch update."""

    BATCH_ATOMICITY = "batch_atomicity"
    """A batch action mutates every targeted bundle or none of them.
    Enforced by whole-batch validation plus a row-count-checked UPDATE."""

    SPLIT_CONSERVATION = "split_conservation"
    """Sheets of the original plus the new sibling equal the sheets before
    the split.  Enforced by SplitService inside one transaction."""

    UNIQUE_SIBLING_VARIANT = "unique_sibling_variant"
    """At most one split commits per sibling-group variant.  Enforced by the
    version compare-and-swap and UNIQUE(cut_order_id, number)."""

    HISTORY_APPEND_ONLY = "history_append_only"
    """History entries are never updated or deleted.  Enforced by ORM
    listeners (db.immutability) and PostgreSQL triggers (db.triggers)."""

    ORDER_NEVER_REACTIVATED = "order_never_reactivated"
    """Order recomputation only ever deactivates.  Enforced by
    domain.aggregation."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "bundle_config",
    "scripts",
)
