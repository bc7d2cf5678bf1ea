"""Database layer - engine, base classes, types, and immutability."""

from bundle_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from bundle_kernel.db.engine import (
    begin_write,
    create_kernel_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    is_lock_conflict,
    session_scope,
)

__all__ = [
    "begin_write",
    "is_lock_conflict",
    "create_kernel_engine",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
]
