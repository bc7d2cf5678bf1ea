"""
Pure domain layer.

This package contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (SystemClock excepted)

All domain objects are immutable and deterministic.
"""

from bundle_kernel.domain.aggregation import OrderStatusDecision, decide_order_status
from bundle_kernel.domain.bundle_number import BundleNumber, decode, encode
from bundle_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bundle_kernel.domain.dtos import (
    Bundle,
    BundleActionResult,
    BundleIdentifiers,
    BundleSnapshot,
    CutOrder,
    HistoryEntry,
    HistoryEntryDraft,
    Location,
    NewBundleSpec,
    OrderStatusChange,
    SplitResult,
)
from bundle_kernel.domain.lifecycle import ActionCommand, BundleAction, BundleStatus
from bundle_kernel.domain.projection import project_cut_order
from bundle_kernel.domain.split import SplitPlan, plan_split

__all__ = [
    "ActionCommand",
    "Bundle",
    "BundleAction",
    "BundleActionResult",
    "BundleIdentifiers",
    "BundleNumber",
    "BundleSnapshot",
    "BundleStatus",
    "Clock",
    "CutOrder",
    "DeterministicClock",
    "HistoryEntry",
    "HistoryEntryDraft",
    "Location",
    "NewBundleSpec",
    "OrderStatusChange",
    "OrderStatusDecision",
    "SplitPlan",
    "SplitResult",
    "SystemClock",
    "decide_order_status",
    "decode",
    "encode",
    "plan_split",
    "project_cut_order",
]
