"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The bundle history is the audit trail of every move, assignment, use and
split.  Work orders are derived from it, so an edited or deleted entry
silently rewrites which job consumed which material.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through SQLAlchemy unit-of-work flushes
    - Catches ORM-enabled bulk UPDATE/DELETE statements on bundle_history
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL and direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable           | Why
---------------------|--------------------------|------------------------------
BundleHistoryModel   | ALWAYS (from creation)   | Append-only ledger

Bundles themselves are mutable (location, status, sheets) but are never
deleted; a delete attempt is rejected here as well.

===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from bundle_kernel.exceptions import ImmutabilityViolationError
from bundle_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_HISTORY_TABLE = "bundle_history"


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": "HISTORY_APPEND_ONLY",
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_history_update(mapper, connection, target):
    """Prevent any updates to BundleHistoryModel rows."""
    _blocked(
        "BundleHistory",
        str(target.id),
        "UPDATE",
        "History entries are immutable and cannot be modified",
    )


def _check_history_delete(mapper, connection, target):
    """Prevent deletion of BundleHistoryModel rows."""
    _blocked(
        "BundleHistory",
        str(target.id),
        "DELETE",
        "History entries cannot be deleted",
    )


def _check_bundle_delete(mapper, connection, target):
    """Bundles are never deleted; they end their life as ``used``."""
    _blocked(
        "Bundle",
        str(target.id),
        "DELETE",
        "Bundles cannot be deleted",
    )


def _check_bulk_history_statement(orm_execute_state):
    """Reject ORM bulk UPDATE/DELETE statements aimed at bundle_history."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    table = getattr(orm_execute_state.statement, "table", None)
    if table is None or getattr(table, "name", None) != _HISTORY_TABLE:
        return
    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    _blocked(
        "BundleHistory",
        "*",
        operation,
        f"Bulk {operation} of history entries is not allowed",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are imported and before any database operation.
    Idempotent: listeners already registered are left alone.
    """
    from bundle_kernel.models.bundle import BundleHistoryModel, BundleModel

    for target, name, fn in _listeners(BundleHistoryModel, BundleModel):
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def _listeners(history_model, bundle_model):
    return (
        (history_model, "before_update", _check_history_update),
        (history_model, "before_delete", _check_history_delete),
        (bundle_model, "before_delete", _check_bundle_delete),
        (Session, "do_orm_execute", _check_bulk_history_statement),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from bundle_kernel.models.bundle import BundleHistoryModel, BundleModel

    for target, name, fn in _listeners(BundleHistoryModel, BundleModel):
        _safe_remove_listener(target, name, fn)
