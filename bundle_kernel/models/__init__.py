"""ORM models for the bundle kernel."""

from bundle_kernel.models.bundle import BundleHistoryModel, BundleModel
from bundle_kernel.models.cut_order import CutOrderModel
from bundle_kernel.models.location import LocationModel
from bundle_kernel.models.sequence import SequenceCounter

__all__ = [
    "BundleHistoryModel",
    "BundleModel",
    "CutOrderModel",
    "LocationModel",
    "SequenceCounter",
]
