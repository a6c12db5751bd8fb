"""Domain models for the stock kernel."""

from stock_kernel.models.customer_order import (
    CustomerOrder,
    CustomerOrderItem,
    CustomerOrderStatus,
)
from stock_kernel.models.inventory_lot import InventoryLot
from stock_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from stock_kernel.models.stock_change import (
    StockChangeEntry,
    StockChangeOrderType,
    StockChangeReason,
)
from stock_kernel.models.variant import ProductVariant

__all__ = [
    "ProductVariant",
    "InventoryLot",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "CustomerOrder",
    "CustomerOrderItem",
    "CustomerOrderStatus",
    "StockChangeEntry",
    "StockChangeReason",
    "StockChangeOrderType",
]
