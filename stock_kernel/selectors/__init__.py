"""Read-only selectors."""

from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.stock_selector import (
    CustomerOrderLineView,
    CustomerOrderView,
    LotListing,
    LotView,
    PurchaseOrderLineView,
    PurchaseOrderView,
    StockChangeView,
    StockSelector,
    VariantStock,
)

__all__ = [
    "BaseSelector",
    "StockSelector",
    "LotView",
    "LotListing",
    "VariantStock",
    "StockChangeView",
    "CustomerOrderView",
    "CustomerOrderLineView",
    "PurchaseOrderView",
    "PurchaseOrderLineView",
]
