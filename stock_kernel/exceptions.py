"""
Typed Exception Hierarchy for the Stock Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The HTTP layer that calls this library maps failures onto status codes.
It must be able to do that by TYPE and by CODE, never by parsing message
strings.  Every exception here:
  1. Is a subclass of StockLedgerError (catchable as a group)
  2. Carries a class-level ``code`` (machine-readable, API-safe)
  3. Stores its context as attributes (variant id, quantities, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- VariantNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- PurchaseOrderItemNotFoundError
    |   +-- CustomerOrderNotFoundError
    |   +-- CustomerOrderItemNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ConflictError
    |   +-- OrderAlreadyVoidedError
    |   +-- QuantityBelowConsumedError
    |   +-- DuplicateBatchNumberError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                      | When Raised                         | Typical HTTP
--------------------------|-------------------------------------|-------------
VALIDATION_ERROR          | Malformed input, before any write   | 400
NOT_FOUND (+ subtypes)    | Referenced row does not exist       | 404
INSUFFICIENT_STOCK        | Sale exceeds summed lot quantity    | 409
ALREADY_VOIDED            | Voiding a CANCELLED order           | 409
QUANTITY_BELOW_CONSUMED   | Resizing a lot below units sold     | 409
DUPLICATE_BATCH_NUMBER    | Purchase order batch number reused  | 409
IMMUTABILITY_VIOLATION    | UPDATE/DELETE on an append-only row | 500

A costing gap (a lot with no resolvable USD cost) is NOT an exception.
The sale completes at zero cost for that lot and the gap is reported on
the fulfillment result and logged as ``costing_gap_detected``.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        controller.create_customer_order(customer, items, payment)
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available, "requested": e.requested}
    except NotFoundError as e:
        return {"error": e.code, "entity": e.entity_type, "id": e.entity_id}

Re-receiving an already-arrived purchase order is NOT an error; the
controller returns the current state unchanged.
"""


class StockLedgerError(Exception):
    """
    Base exception for all stock ledger errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


# Validation


class ValidationError(StockLedgerError):
    """Malformed input. Always raised before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Lookup failures


class NotFoundError(StockLedgerError):
    """Base exception for missing referenced rows."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class VariantNotFoundError(NotFoundError):
    """Product variant does not exist."""

    code: str = "VARIANT_NOT_FOUND"
    entity_type: str = "ProductVariant"


class PurchaseOrderNotFoundError(NotFoundError):
    """Purchase order does not exist."""

    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_type: str = "PurchaseOrder"


class PurchaseOrderItemNotFoundError(NotFoundError):
    """Purchase order item does not exist."""

    code: str = "PURCHASE_ORDER_ITEM_NOT_FOUND"
    entity_type: str = "PurchaseOrderItem"


class CustomerOrderNotFoundError(NotFoundError):
    """Customer order does not exist."""

    code: str = "CUSTOMER_ORDER_NOT_FOUND"
    entity_type: str = "CustomerOrder"


class CustomerOrderItemNotFoundError(NotFoundError):
    """Customer order item does not exist."""

    code: str = "CUSTOMER_ORDER_ITEM_NOT_FOUND"
    entity_type: str = "CustomerOrderItem"


# Stock


class InsufficientStockError(StockLedgerError):
    """
    Requested sale quantity exceeds the summed remaining quantity of the
    variant's lots.

    Raised by the FIFO precheck, before any lot is decremented.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        variant_id: str,
        variant_label: str,
        available: int,
        requested: int,
    ):
        self.variant_id = variant_id
        self.variant_label = variant_label
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {variant_label}. "
            f"Available: {available}, Requested: {requested}"
        )


# Conflicts


class ConflictError(StockLedgerError):
    """Base exception for requests that contradict current state."""

    code: str = "CONFLICT"


class OrderAlreadyVoidedError(ConflictError):
    """Customer order is already CANCELLED. Cancellation is terminal."""

    code: str = "ALREADY_VOIDED"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Customer order {order_id} is already voided")


class QuantityBelowConsumedError(ConflictError):
    """A received lot cannot shrink below the units already sold from it."""

    code: str = "QUANTITY_BELOW_CONSUMED"

    def __init__(
        self,
        purchase_order_item_id: str,
        requested_quantity: int,
        consumed_quantity: int,
    ):
        self.purchase_order_item_id = purchase_order_item_id
        self.requested_quantity = requested_quantity
        self.consumed_quantity = consumed_quantity
        super().__init__(
            f"Cannot resize purchase order item {purchase_order_item_id} to "
            f"{requested_quantity}: {consumed_quantity} unit(s) already sold"
        )


class DuplicateBatchNumberError(ConflictError):
    """Purchase order batch numbers are unique."""

    code: str = "DUPLICATE_BATCH_NUMBER"

    def __init__(self, batch_number: str):
        self.batch_number = batch_number
        super().__init__(f"Purchase order batch number already exists: {batch_number}")


# Immutability


class ImmutabilityViolationError(StockLedgerError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
