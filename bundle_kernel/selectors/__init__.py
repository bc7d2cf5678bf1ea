"""Read-only query layer."""

from bundle_kernel.selectors.base import BaseSelector
from bundle_kernel.selectors.cut_order_selector import CutOrderSelector

__all__ = ["BaseSelector", "CutOrderSelector"]
