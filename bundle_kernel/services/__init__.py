"""Write-side services (flush-only) and the caller-facing orchestrator."""

from bundle_kernel.services.base import BaseService
from bundle_kernel.services.bundle_action_service import BundleActionService
from bundle_kernel.services.bundle_orchestrator import BundleOrchestrator
from bundle_kernel.services.bundle_store import BundleStore
from bundle_kernel.services.cut_order_service import CutOrderService
from bundle_kernel.services.history_ledger import HistoryLedger
from bundle_kernel.services.location_service import LocationService
from bundle_kernel.services.order_status_service import OrderStatusService
from bundle_kernel.services.sequence_service import SequenceService
from bundle_kernel.services.split_service import SplitService

__all__ = [
    "BaseService",
    "BundleActionService",
    "BundleOrchestrator",
    "BundleStore",
    "CutOrderService",
    "HistoryLedger",
    "LocationService",
    "OrderStatusService",
    "SequenceService",
    "SplitService",
]
