"""
Order Lifecycle Controller (``stock_services.order_lifecycle_service``).

Responsibility
--------------
The state machine around stock: customer orders are created (and
fulfilled FIFO) or voided (and restocked); purchase orders are logged,
received (creating lots), and amended.  Every stock movement it causes is
written to the stock change log.

Architecture
------------
Layer: **Services** -- transaction owner.

1. ``InventoryLotManager`` creates and resizes lots.
2. ``FifoFulfillmentEngine`` consumes lots and prices the sale.
3. ``StockAuditLog`` appends the stock change entries.

Invariants
----------
- Each public method owns its transaction boundary: ``session.commit()``
  on success, ``session.rollback()`` and re-raise on any failure.  A
  failed customer order leaves no order row and no decremented lot.
- Validation errors are raised before anything is written.
- Receipt is idempotent: the purchase order row is locked and an already
  received order is returned unchanged.
- Void is terminal: a CANCELLED order cannot be voided again.

Failure Modes
-------------
- ``ValidationError``, ``NotFoundError`` subclasses,
  ``InsufficientStockError``, ``OrderAlreadyVoidedError``,
  ``QuantityBelowConsumedError``, ``DuplicateBatchNumberError``.
- Any unhandled exception triggers ``session.rollback()`` before re-raise.

Usage::

    controller = OrderLifecycleController(session, clock=clock)
    order = controller.create_customer_order(
        CustomerInfo(name="Ada"),
        [OrderLine(variant_id=variant.id, quantity=2)],
        PaymentMeta(payment_method="cash"),
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config import LedgerConfig
from stock_engines.costing import convert_source_to_usd, unit_cost_from_total
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.money import round_currency, to_decimal
from stock_kernel.exceptions import (
    CustomerOrderNotFoundError,
    DuplicateBatchNumberError,
    OrderAlreadyVoidedError,
    PurchaseOrderItemNotFoundError,
    PurchaseOrderNotFoundError,
    ValidationError,
    VariantNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.customer_order import (
    CustomerOrder,
    CustomerOrderItem,
    CustomerOrderStatus,
)
from stock_kernel.models.inventory_lot import InventoryLot
from stock_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from stock_kernel.models.stock_change import StockChangeEntry
from stock_kernel.models.variant import ProductVariant
from stock_kernel.services.stock_audit_log import StockAuditLog
from stock_services.fulfillment_service import FifoFulfillmentEngine
from stock_services.inventory_lot_service import InventoryLotManager

logger = get_logger("services.order_lifecycle")

GUEST_CUSTOMER = "Guest"


# Request values


@dataclass(frozen=True)
class CustomerInfo:
    name: str | None = None


@dataclass(frozen=True)
class PaymentMeta:
    money_holder: str | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    fulfillment_status: str | None = None


@dataclass(frozen=True)
class OrderLine:
    """One requested customer order line."""

    variant_id: UUID
    quantity: int
    sale_price: Decimal | None = None


@dataclass(frozen=True)
class PurchaseLine:
    """One requested purchase order line."""

    variant_id: UUID
    quantity_ordered: int
    cost_per_item_source: Decimal | None = None
    cost_per_item_usd: Decimal | None = None


def _coerce(value: Any, cls: type) -> Any:
    if value is None:
        return cls()
    if isinstance(value, cls):
        return value
    if isinstance(value, Mapping):
        try:
            return cls(**value)
        except TypeError as exc:
            raise ValidationError(cls.__name__, str(exc)) from exc
    raise ValidationError(cls.__name__, f"unsupported value {value!r}")


def _require_positive_int(field: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(field, f"must be a positive integer, got {value!r}")


def _require_non_negative(field: str, value: Decimal | None) -> None:
    if value is not None and value < 0:
        raise ValidationError(field, f"cannot be negative, got {value}")


class OrderLifecycleController:
    """
    Orchestrates order state changes and the stock movements they cause.

    Non-goals
    ---------
    - Does NOT implement FIFO or costing; those live in
      ``FifoFulfillmentEngine`` and ``stock_engines``.
    - Does NOT keep any stock counter; stock is derived from lots.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or LedgerConfig.with_defaults()

        self._audit = StockAuditLog(
            session, self._clock, default_actor=self._config.default_actor
        )
        self._lots = InventoryLotManager(
            session, self._clock, self._config, audit_log=self._audit
        )
        self._fifo = FifoFulfillmentEngine(session, self._clock, self._config)

    # Lookups and locks

    def _require_variant(self, variant_id: UUID) -> ProductVariant:
        variant = self._session.get(ProductVariant, variant_id)
        if variant is None:
            raise VariantNotFoundError(str(variant_id))
        return variant

    def _lock_variant(self, variant_id: UUID) -> None:
        self._session.execute(
            select(ProductVariant.id)
            .where(ProductVariant.id == variant_id)
            .with_for_update()
        )

    def _lock_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrder:
        order = self._session.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == purchase_order_id)
            .with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise PurchaseOrderNotFoundError(str(purchase_order_id))
        return order

    def _lock_customer_order(self, order_id: UUID) -> CustomerOrder:
        order = self._session.execute(
            select(CustomerOrder)
            .where(CustomerOrder.id == order_id)
            .with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise CustomerOrderNotFoundError(str(order_id))
        return order

    def _order_total_usd(self, order: PurchaseOrder) -> Decimal | None:
        """Sum of quantity x USD unit cost over the order's lines."""
        items = self._session.scalars(
            select(PurchaseOrderItem).where(PurchaseOrderItem.purchase_order_id == order.id)
        ).all()
        total = None
        for item in items:
            unit = item.cost_per_item_usd
            if unit is None:
                unit = convert_source_to_usd(item.cost_per_item_source, order.usd_to_source_rate)
            if unit is None:
                continue
            total = (total or Decimal("0")) + unit * item.quantity_ordered
        if total is None:
            return None
        return round_currency(total, self._config.cogs_decimal_places)

    def _validate_purchase_line(self, line: PurchaseLine) -> PurchaseLine:
        _require_positive_int("quantity_ordered", line.quantity_ordered)
        source = to_decimal(line.cost_per_item_source)
        usd = to_decimal(line.cost_per_item_usd)
        _require_non_negative("cost_per_item_source", source)
        _require_non_negative("cost_per_item_usd", usd)
        return PurchaseLine(
            variant_id=line.variant_id,
            quantity_ordered=line.quantity_ordered,
            cost_per_item_source=source,
            cost_per_item_usd=usd,
        )

    # Customer orders

    def create_customer_order(
        self,
        customer_info: CustomerInfo | Mapping | None,
        items: Iterable[OrderLine | Mapping],
        payment_meta: PaymentMeta | Mapping | None = None,
        actor: str | None = None,
    ) -> CustomerOrder:
        """
        Create a customer order and fulfill every line FIFO.

        Lines are fulfilled in submission order.  Each writes a Sale entry
        with change = -quantity.

        Raises:
            ValidationError: no lines, or a line with quantity <= 0.
            VariantNotFoundError: a line names an unknown variant.
            InsufficientStockError: a line cannot be covered.  Nothing is
                persisted.
        """
        try:
            info = _coerce(customer_info, CustomerInfo)
            payment = _coerce(payment_meta, PaymentMeta)
            lines = [_coerce(item, OrderLine) for item in (items or [])]
            if not lines:
                raise ValidationError("items", "order has no items")
            for line in lines:
                _require_positive_int("quantity", line.quantity)
                _require_non_negative("sale_price", to_decimal(line.sale_price))
            for line in lines:
                self._require_variant(line.variant_id)
            # Before any insert: item FKs take key-share locks on the variants.
            self._fifo.lock_variants(line.variant_id for line in lines)

            customer_name = info.name or GUEST_CUSTOMER
            sale_actor = actor or customer_name

            order = CustomerOrder(
                order_date=self._clock.now(),
                customer_name=customer_name,
                money_holder=payment.money_holder,
                payment_method=payment.payment_method,
                payment_status=payment.payment_status,
                fulfillment_status=payment.fulfillment_status,
                status=CustomerOrderStatus.ACTIVE,
            )
            self._session.add(order)
            self._session.flush()

            with LogContext.bind(actor=sale_actor, order_id=order.id):
                order_items = []
                for line in lines:
                    order_item = CustomerOrderItem(
                        variant_id=line.variant_id,
                        quantity=line.quantity,
                        sale_price=to_decimal(line.sale_price),
                    )
                    order.items.append(order_item)
                    order_items.append(order_item)
                self._session.flush()

                for order_item in order_items:
                    self._fifo.fulfill(
                        order_item.variant_id, order_item.quantity, order_item.id
                    )
                    self._audit.record_sale(
                        variant_id=order_item.variant_id,
                        quantity=order_item.quantity,
                        customer_order_id=order.id,
                        actor=sale_actor,
                    )

                self._session.commit()

                logger.info(
                    "customer_order_created",
                    extra={
                        "line_count": len(order_items),
                        "total_cogs": order.total_cogs,
                    },
                )
            return order

        except Exception:
            self._session.rollback()
            logger.warning("customer_order_rejected", exc_info=True)
            raise

    def void_customer_order(
        self,
        order_id: UUID,
        actor: str | None = None,
    ) -> CustomerOrder:
        """
        Void a sale: restock every costed line as a new lot and cancel.

        A line restocks at cogs / quantity per unit, so the returned units
        carry the cost they were sold at.  A line with zero cogs (sold from
        lots with no known cost) is not restocked.

        Raises:
            CustomerOrderNotFoundError: order does not exist.
            OrderAlreadyVoidedError: order is already CANCELLED.
        """
        try:
            order = self._lock_customer_order(order_id)
            if order.is_cancelled:
                raise OrderAlreadyVoidedError(str(order_id))

            void_actor = actor or order.customer_name or self._config.default_actor
            restocked = 0

            with LogContext.bind(actor=void_actor, order_id=order.id):
                for item in order.items:
                    if not item.cogs or item.cogs <= 0 or item.quantity <= 0:
                        continue
                    unit_cost = unit_cost_from_total(item.cogs, item.quantity)
                    self._lots.create_restock_lot(
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                        unit_cost_usd=unit_cost,
                        restocked_from_order_id=order.id,
                    )
                    self._audit.record_void(
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                        customer_order_id=order.id,
                        actor=void_actor,
                    )
                    restocked += item.quantity

                order.status = CustomerOrderStatus.CANCELLED
                order.cancelled_at = self._clock.now()
                self._session.commit()

                logger.info(
                    "customer_order_voided",
                    extra={"units_restocked": restocked},
                )
            return order

        except Exception:
            self._session.rollback()
            logger.warning("customer_order_void_failed", exc_info=True)
            raise

    def update_customer_order(
        self,
        order_id: UUID,
        customer_name: str | None = None,
        money_holder: str | None = None,
        fulfillment_status: str | None = None,
        payment_status: str | None = None,
    ) -> CustomerOrder:
        """Update display metadata.  Never touches stock."""
        changes = {
            "customer_name": customer_name,
            "money_holder": money_holder,
            "fulfillment_status": fulfillment_status,
            "payment_status": payment_status,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        try:
            if not changes:
                raise ValidationError("fields", "nothing to update")
            order = self._session.get(CustomerOrder, order_id)
            if order is None:
                raise CustomerOrderNotFoundError(str(order_id))
            for key, value in changes.items():
                setattr(order, key, value)
            self._session.commit()
            logger.info(
                "customer_order_updated",
                extra={"order_id": str(order_id), "fields": sorted(changes)},
            )
            return order
        except Exception:
            self._session.rollback()
            raise

    # Purchase orders

    def create_purchase_order(
        self,
        batch_number: str,
        items: Iterable[PurchaseLine | Mapping],
        usd_to_source_rate: Decimal | None = None,
        arrival_date: datetime | None = None,
    ) -> PurchaseOrder:
        """
        Log a supplier batch.  No stock moves until it is received.

        Raises:
            ValidationError: empty batch number or items, bad quantity/cost,
                non-positive rate.
            VariantNotFoundError: a line names an unknown variant.
            DuplicateBatchNumberError: batch number already used.
        """
        try:
            if not batch_number or not batch_number.strip():
                raise ValidationError("batch_number", "must not be empty")
            lines = [
                self._validate_purchase_line(_coerce(item, PurchaseLine))
                for item in (items or [])
            ]
            if not lines:
                raise ValidationError("items", "purchase order has no items")
            rate = to_decimal(usd_to_source_rate)
            if rate is not None and rate <= 0:
                raise ValidationError("usd_to_source_rate", f"must be positive, got {rate}")
            for line in lines:
                self._require_variant(line.variant_id)

            existing = self._session.scalar(
                select(PurchaseOrder.id).where(PurchaseOrder.batch_number == batch_number)
            )
            if existing is not None:
                raise DuplicateBatchNumberError(batch_number)

            now = self._clock.now()
            order = PurchaseOrder(
                batch_number=batch_number,
                arrival_date=arrival_date,
                has_arrived=False,
                usd_to_source_rate=rate,
                created_at=now,
            )
            for line in lines:
                order.items.append(
                    PurchaseOrderItem(
                        variant_id=line.variant_id,
                        quantity_ordered=line.quantity_ordered,
                        cost_per_item_source=line.cost_per_item_source,
                        cost_per_item_usd=line.cost_per_item_usd,
                        created_at=now,
                    )
                )
            self._session.add(order)
            self._session.flush()

            order.total_cost_usd = self._order_total_usd(order)
            self._session.commit()

            logger.info(
                "purchase_order_created",
                extra={
                    "purchase_order_id": str(order.id),
                    "batch_number": batch_number,
                    "line_count": len(lines),
                    "total_cost_usd": order.total_cost_usd,
                },
            )
            return order

        except Exception:
            self._session.rollback()
            raise

    def receive_purchase_order(
        self,
        purchase_order_id: UUID,
        actor: str | None = None,
    ) -> PurchaseOrder:
        """
        Mark a purchase order arrived and create one lot per line.

        Idempotent: an order already received is returned unchanged.

        Postconditions (first call):
            - One lot per line, arrival_date = order arrival date or now.
            - One Purchase Order Received entry per line, change_time = order
              arrival date or now.
            - has_arrived is true; arrival_date is set if it was unset.

        Raises:
            PurchaseOrderNotFoundError: order does not exist.
        """
        try:
            order = self._lock_purchase_order(purchase_order_id)

            if order.has_arrived:
                logger.info(
                    "purchase_order_already_received",
                    extra={"purchase_order_id": str(purchase_order_id)},
                )
                self._session.commit()
                return order

            now = self._clock.now()
            arrival = order.arrival_date or now
            receive_actor = actor or self._config.default_actor

            for item in order.items:
                self._lots.receive_stock(
                    variant_id=item.variant_id,
                    quantity=item.quantity_ordered,
                    cost_source=item.cost_per_item_source,
                    purchase_order_item_id=item.id,
                    arrival_date=arrival,
                )
                self._audit.record_purchase_receipt(
                    variant_id=item.variant_id,
                    quantity=item.quantity_ordered,
                    purchase_order_id=order.id,
                    change_time=arrival,
                    actor=receive_actor,
                )

            order.has_arrived = True
            if order.arrival_date is None:
                order.arrival_date = now
            self._session.commit()

            logger.info(
                "purchase_order_received",
                extra={
                    "purchase_order_id": str(order.id),
                    "batch_number": order.batch_number,
                    "line_count": len(order.items),
                },
            )
            return order

        except Exception:
            self._session.rollback()
            logger.warning("purchase_order_receipt_failed", exc_info=True)
            raise

    def add_purchase_order_item(
        self,
        purchase_order_id: UUID,
        variant_id: UUID,
        quantity_ordered: int,
        cost_per_item_source: Decimal | None = None,
        cost_per_item_usd: Decimal | None = None,
        actor: str | None = None,
    ) -> PurchaseOrderItem:
        """
        Add a line to a purchase order.

        If the order has already arrived, the line is received on the spot
        (lot plus Purchase Order Received entry).
        """
        try:
            line = self._validate_purchase_line(
                PurchaseLine(
                    variant_id=variant_id,
                    quantity_ordered=quantity_ordered,
                    cost_per_item_source=cost_per_item_source,
                    cost_per_item_usd=cost_per_item_usd,
                )
            )
            order = self._lock_purchase_order(purchase_order_id)
            self._require_variant(variant_id)

            item = PurchaseOrderItem(
                variant_id=line.variant_id,
                quantity_ordered=line.quantity_ordered,
                cost_per_item_source=line.cost_per_item_source,
                cost_per_item_usd=line.cost_per_item_usd,
                created_at=self._clock.now(),
            )
            order.items.append(item)
            self._session.flush()

            if order.has_arrived:
                arrival = order.arrival_date or self._clock.now()
                self._lots.receive_stock(
                    variant_id=variant_id,
                    quantity=line.quantity_ordered,
                    cost_source=line.cost_per_item_source,
                    purchase_order_item_id=item.id,
                    arrival_date=arrival,
                )
                self._audit.record_purchase_receipt(
                    variant_id=variant_id,
                    quantity=line.quantity_ordered,
                    purchase_order_id=order.id,
                    change_time=arrival,
                    actor=actor,
                )

            order.total_cost_usd = self._order_total_usd(order)
            self._session.commit()

            logger.info(
                "purchase_order_item_added",
                extra={
                    "purchase_order_id": str(order.id),
                    "purchase_order_item_id": str(item.id),
                    "received_immediately": order.has_arrived,
                },
            )
            return item

        except Exception:
            self._session.rollback()
            raise

    def update_purchase_order_item_quantity(
        self,
        item_id: UUID,
        new_quantity: int,
        actor: str | None = None,
    ) -> PurchaseOrderItem:
        """
        Change a purchase order line's quantity.

        If the order has arrived and the line has a lot, the lot is resized
        keeping its sold units, and a non-zero change is logged as Purchase
        Order Adjusted.

        Raises:
            ValidationError: new_quantity < 1.
            PurchaseOrderItemNotFoundError: line does not exist.
            QuantityBelowConsumedError: new_quantity below units already sold.
        """
        try:
            _require_positive_int("new_quantity", new_quantity)

            item = self._session.get(PurchaseOrderItem, item_id)
            if item is None:
                raise PurchaseOrderItemNotFoundError(str(item_id))
            order = self._lock_purchase_order(item.purchase_order_id)

            previous = item.quantity_ordered
            item.quantity_ordered = new_quantity

            delta = 0
            if order.has_arrived:
                # Same lock order as fulfillment: variant, then lot
                self._lock_variant(item.variant_id)
                lot = self._session.execute(
                    select(InventoryLot)
                    .where(InventoryLot.purchase_order_item_id == item.id)
                    .with_for_update()
                ).scalar_one_or_none()
                if lot is not None:
                    delta = self._lots.resize_lot(lot, new_quantity)
                    if delta != 0:
                        self._audit.record_adjustment(
                            variant_id=item.variant_id,
                            delta=delta,
                            purchase_order_id=order.id,
                            actor=actor,
                        )

            order.total_cost_usd = self._order_total_usd(order)
            self._session.commit()

            logger.info(
                "purchase_order_item_quantity_updated",
                extra={
                    "purchase_order_item_id": str(item_id),
                    "previous_quantity": previous,
                    "new_quantity": new_quantity,
                    "stock_delta": delta,
                },
            )
            return item

        except Exception:
            self._session.rollback()
            logger.warning("purchase_order_item_resize_failed", exc_info=True)
            raise

    def update_purchase_order_item_cost(
        self,
        item_id: UUID,
        cost_per_item_usd: Decimal | None = None,
        cost_per_item_source: Decimal | None = None,
    ) -> PurchaseOrderItem:
        """
        Change a purchase order line's unit cost and the order total.

        Lots already received keep the cost frozen at receipt.
        """
        try:
            usd = to_decimal(cost_per_item_usd)
            source = to_decimal(cost_per_item_source)
            if usd is None and source is None:
                raise ValidationError("cost", "cost_per_item_usd or cost_per_item_source is required")
            _require_non_negative("cost_per_item_usd", usd)
            _require_non_negative("cost_per_item_source", source)

            item = self._session.get(PurchaseOrderItem, item_id)
            if item is None:
                raise PurchaseOrderItemNotFoundError(str(item_id))
            order = self._lock_purchase_order(item.purchase_order_id)

            if usd is not None:
                item.cost_per_item_usd = usd
            if source is not None:
                item.cost_per_item_source = source

            order.total_cost_usd = self._order_total_usd(order)
            self._session.commit()

            logger.info(
                "purchase_order_item_cost_updated",
                extra={
                    "purchase_order_item_id": str(item_id),
                    "cost_per_item_usd": item.cost_per_item_usd,
                    "cost_per_item_source": item.cost_per_item_source,
                    "total_cost_usd": order.total_cost_usd,
                },
            )
            return item

        except Exception:
            self._session.rollback()
            raise

    # Manual stock

    def add_inventory_lot(
        self,
        variant_id: UUID,
        quantity: int,
        cost_usd: Decimal | None = None,
        cost_source: Decimal | None = None,
        actor: str | None = None,
    ) -> InventoryLot:
        """Add stock outside any purchase order (Manual entry)."""
        try:
            lot = self._lots.add_manual_lot(
                variant_id=variant_id,
                quantity=quantity,
                cost_usd=cost_usd,
                cost_source=cost_source,
                actor=actor,
            )
            self._session.commit()
            return lot
        except Exception:
            self._session.rollback()
            raise

    def record_manual_stock_change(
        self,
        variant_id: UUID,
        change: int,
        actor: str,
        note: str | None = None,
    ) -> StockChangeEntry:
        """
        Append a Manual entry to the stock change log.

        The log is history only; lots are not touched, so available stock
        is unchanged.
        """
        try:
            if isinstance(change, bool) or not isinstance(change, int):
                raise ValidationError("change", f"must be an integer, got {change!r}")
            self._require_variant(variant_id)
            entry = self._audit.record_manual(
                variant_id=variant_id,
                change=change,
                actor=actor,
                note=note,
            )
            self._session.commit()
            return entry
        except Exception:
            self._session.rollback()
            raise
