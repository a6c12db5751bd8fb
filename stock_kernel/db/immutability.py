"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity              | Rule                               | Consequence
--------------------|------------------------------------|---------------------------
StockChangeEntry    | ALWAYS immutable (from creation)   | No UPDATE, no DELETE
InventoryLot        | Never deleted                      | No DELETE (rows are
                    |                                    | depleted, not removed)
InventoryLot        | 0 <= remaining <= original         | Rejected on INSERT/UPDATE
PurchaseOrder       | has_arrived never returns to false | Rejected on UPDATE
CustomerOrder       | CANCELLED is terminal              | Rejected on UPDATE

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE reach the database:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A failed check aborts the flush; the caller's transaction is rolled back.
Bulk ``session.execute(update(...))`` statements bypass mapper events; the
inventory_lots CHECK constraint still applies to them.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must perform a forbidden operation:

    unregister_immutability_listeners()
    # ... forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# StockChangeEntry: append-only


def _check_stock_change_update(mapper, connection, target):
    """Prevent any update to a stock change entry."""
    _blocked(
        "StockChangeEntry",
        target,
        "UPDATE",
        "Stock change entries are append-only and cannot be modified",
    )


def _check_stock_change_delete(mapper, connection, target):
    """Prevent deletion of a stock change entry."""
    _blocked(
        "StockChangeEntry",
        target,
        "DELETE",
        "Stock change entries are append-only and cannot be deleted",
    )


# InventoryLot: never deleted, quantities bounded


def _check_inventory_lot_delete(mapper, connection, target):
    """Lots are depleted to zero, never removed."""
    _blocked(
        "InventoryLot",
        target,
        "DELETE",
        "Inventory lots cannot be deleted; they are depleted instead",
    )


def _check_inventory_lot_bounds(mapper, connection, target):
    """
    Reject a lot whose remaining quantity leaves [0, original_quantity].

    Mirrors the inventory_lots CHECK constraint so the violation surfaces
    as a typed error before the statement is sent.
    """
    remaining = target.remaining_quantity
    original = target.original_quantity
    if remaining is None or original is None:
        return
    if remaining < 0 or remaining > original:
        operation = "UPDATE" if inspect(target).persistent else "INSERT"
        _blocked(
            "InventoryLot",
            target,
            operation,
            f"remaining_quantity {remaining} outside [0, {original}]",
        )


# PurchaseOrder: arrival is one-way


def _check_purchase_order_update(mapper, connection, target):
    """has_arrived goes false -> true exactly once."""
    history = inspect(target).attrs.has_arrived.history
    if history.deleted and history.deleted[0] and not target.has_arrived:
        _blocked(
            "PurchaseOrder",
            target,
            "UPDATE",
            "A received purchase order cannot be marked as not arrived",
        )


# CustomerOrder: cancellation is terminal


def _check_customer_order_update(mapper, connection, target):
    """A CANCELLED order never becomes ACTIVE again."""
    from stock_kernel.models.customer_order import CustomerOrderStatus

    history = inspect(target).attrs.status.history
    if not history.deleted:
        return
    previous = history.deleted[0]
    if previous == CustomerOrderStatus.CANCELLED and (
        target.status != CustomerOrderStatus.CANCELLED
    ):
        _blocked(
            "CustomerOrder",
            target,
            "UPDATE",
            "A cancelled customer order cannot be reactivated",
        )


def _listeners():
    from stock_kernel.models.customer_order import CustomerOrder
    from stock_kernel.models.inventory_lot import InventoryLot
    from stock_kernel.models.purchase_order import PurchaseOrder
    from stock_kernel.models.stock_change import StockChangeEntry

    return [
        (StockChangeEntry, "before_update", _check_stock_change_update),
        (StockChangeEntry, "before_delete", _check_stock_change_delete),
        (InventoryLot, "before_delete", _check_inventory_lot_delete),
        (InventoryLot, "before_insert", _check_inventory_lot_bounds),
        (InventoryLot, "before_update", _check_inventory_lot_bounds),
        (PurchaseOrder, "before_update", _check_purchase_order_update),
        (CustomerOrder, "before_update", _check_customer_order_update),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring one that is not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
