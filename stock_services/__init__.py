"""
Stock services: lot creation, FIFO fulfillment, and the order lifecycle.

OrderLifecycleController is the transaction owner; the other two services
flush within its transaction.
"""

from stock_services.fulfillment_service import FifoFulfillmentEngine, FulfillmentResult
from stock_services.inventory_lot_service import InventoryLotManager
from stock_services.order_lifecycle_service import (
    CustomerInfo,
    OrderLifecycleController,
    OrderLine,
    PaymentMeta,
    PurchaseLine,
)
from stock_services.bootstrap import build_controller, init_ledger

__all__ = [
    "InventoryLotManager",
    "FifoFulfillmentEngine",
    "FulfillmentResult",
    "OrderLifecycleController",
    "CustomerInfo",
    "PaymentMeta",
    "OrderLine",
    "PurchaseLine",
    "init_ledger",
    "build_controller",
]
