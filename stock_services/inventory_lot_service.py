"""
InventoryLotManager -- creation and resizing of inventory lots.

Responsibility:
    Every way a lot comes into existence goes through this class: purchase
    order receipt, void restock, and manual additions.  It also resizes a
    received lot when its purchase order line changes quantity.

Architecture position:
    Services -- stateful, flush-only.  Called by OrderLifecycleController
    inside its transaction.

Invariants enforced:
    - A new lot has remaining_quantity == original_quantity > 0.
    - cost_usd frozen at receipt is cost_source / rate rounded half-up; with
      no rate it stays NULL (unknown), never zero.
    - A resized lot keeps its consumed units:
      new remaining = new original - (old original - old remaining).
    - No stock counter is updated anywhere; stock is derived from lots.

Failure modes:
    - ValidationError on a non-positive quantity or a manual lot without
      any cost.
    - VariantNotFoundError / PurchaseOrderItemNotFoundError on missing rows.
    - QuantityBelowConsumedError when resizing below units already sold.
    - IntegrityError on a second lot for the same purchase order item.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_config import LedgerConfig
from stock_engines.costing import derive_usd_cost
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.money import to_decimal
from stock_kernel.exceptions import (
    PurchaseOrderItemNotFoundError,
    QuantityBelowConsumedError,
    ValidationError,
    VariantNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory_lot import InventoryLot
from stock_kernel.models.purchase_order import PurchaseOrderItem
from stock_kernel.models.variant import ProductVariant
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_audit_log import StockAuditLog

logger = get_logger("services.inventory_lot")


class InventoryLotManager(BaseService[InventoryLot]):
    """
    Creates and resizes inventory lots.

    Non-goals:
        - Idempotency of receipt.  The caller guarantees receive_stock() is
          called once per purchase order item (OrderLifecycleController locks
          the purchase order and checks has_arrived).
        - Consumption.  That is FifoFulfillmentEngine's job.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        audit_log: StockAuditLog | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or LedgerConfig.with_defaults()
        self._audit = audit_log or StockAuditLog(
            session, self._clock, default_actor=self._config.default_actor
        )

    def _require_variant(self, variant_id: UUID) -> ProductVariant:
        variant = self.session.get(ProductVariant, variant_id)
        if variant is None:
            raise VariantNotFoundError(str(variant_id))
        return variant

    @staticmethod
    def _require_positive(field: str, quantity: int) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(field, f"must be a positive integer, got {quantity!r}")

    def receive_stock(
        self,
        variant_id: UUID,
        quantity: int,
        cost_source: Decimal | None,
        purchase_order_item_id: UUID,
        arrival_date: datetime | None = None,
    ) -> InventoryLot:
        """
        Create the lot for one received purchase order item.

        The USD cost is derived from the parent order's exchange rate.  When
        the source cost cannot be converted (no source cost, or no rate on
        the order), the item's USD cost (if any) is used as is.

        Postconditions:
            - Exactly one new lot with remaining == original == quantity.
            - arrival_date is the supplied date or the clock's now().
        """
        self._require_positive("quantity", quantity)

        item = self.session.get(PurchaseOrderItem, purchase_order_item_id)
        if item is None:
            raise PurchaseOrderItemNotFoundError(str(purchase_order_item_id))
        if item.variant_id != variant_id:
            raise ValidationError(
                "variant_id",
                f"purchase order item {purchase_order_item_id} is for variant "
                f"{item.variant_id}, not {variant_id}",
            )
        self._require_variant(variant_id)

        cost_source = to_decimal(cost_source)
        rate = item.order.usd_to_source_rate

        cost_usd = derive_usd_cost(cost_source, rate, self._config.cost_decimal_places)
        if cost_usd is None:
            cost_usd = item.cost_per_item_usd

        now = self._clock.now()
        lot = InventoryLot(
            variant_id=variant_id,
            original_quantity=quantity,
            remaining_quantity=quantity,
            cost_source=cost_source,
            cost_usd=cost_usd,
            purchase_order_item_id=purchase_order_item_id,
            arrival_date=arrival_date or now,
            created_at=now,
        )
        self.session.add(lot)
        self.session.flush()

        logger.info(
            "inventory_lot_received",
            extra={
                "lot_id": str(lot.id),
                "variant_id": str(variant_id),
                "quantity": quantity,
                "cost_source": cost_source,
                "cost_usd": cost_usd,
                "purchase_order_item_id": str(purchase_order_item_id),
            },
        )
        if cost_usd is None:
            logger.warning(
                "inventory_lot_cost_unknown",
                extra={
                    "lot_id": str(lot.id),
                    "has_source_cost": cost_source is not None,
                    "has_rate": rate is not None,
                },
            )
        return lot

    def create_restock_lot(
        self,
        variant_id: UUID,
        quantity: int,
        unit_cost_usd: Decimal,
        restocked_from_order_id: UUID,
    ) -> InventoryLot:
        """New lot for units returned to stock by voiding a sale."""
        self._require_positive("quantity", quantity)
        self._require_variant(variant_id)

        now = self._clock.now()
        lot = InventoryLot(
            variant_id=variant_id,
            original_quantity=quantity,
            remaining_quantity=quantity,
            cost_usd=to_decimal(unit_cost_usd),
            restocked_from_order_id=restocked_from_order_id,
            arrival_date=now,
            created_at=now,
        )
        self.session.add(lot)
        self.session.flush()

        logger.info(
            "inventory_lot_restocked",
            extra={
                "lot_id": str(lot.id),
                "variant_id": str(variant_id),
                "quantity": quantity,
                "cost_usd": lot.cost_usd,
                "restocked_from_order_id": str(restocked_from_order_id),
            },
        )
        return lot

    def add_manual_lot(
        self,
        variant_id: UUID,
        quantity: int,
        cost_usd: Decimal | None = None,
        cost_source: Decimal | None = None,
        actor: str | None = None,
    ) -> InventoryLot:
        """
        Add a lot outside any purchase order and log a Manual stock change.

        Raises:
            ValidationError: quantity <= 0, or neither cost supplied.
        """
        self._require_positive("quantity", quantity)
        if cost_usd is None and cost_source is None:
            raise ValidationError("cost", "cost_usd or cost_source is required")
        self._require_variant(variant_id)

        now = self._clock.now()
        lot = InventoryLot(
            variant_id=variant_id,
            original_quantity=quantity,
            remaining_quantity=quantity,
            cost_usd=to_decimal(cost_usd),
            cost_source=to_decimal(cost_source),
            arrival_date=now,
            created_at=now,
        )
        self.session.add(lot)
        self.session.flush()

        self._audit.record_manual(
            variant_id=variant_id,
            change=quantity,
            actor=actor,
            note=f"manual lot {lot.id}",
        )

        logger.info(
            "inventory_lot_added_manually",
            extra={
                "lot_id": str(lot.id),
                "variant_id": str(variant_id),
                "quantity": quantity,
            },
        )
        return lot

    def resize_lot(self, lot: InventoryLot, new_quantity: int) -> int:
        """
        Change a received lot's size, keeping the units already sold.

        Returns:
            The change in original_quantity (new - old); may be zero.

        Raises:
            ValidationError: new_quantity <= 0.
            QuantityBelowConsumedError: new_quantity < units already sold.
        """
        self._require_positive("new_quantity", new_quantity)

        consumed = lot.consumed_quantity
        if new_quantity < consumed:
            logger.warning(
                "inventory_lot_resize_below_consumed",
                extra={
                    "lot_id": str(lot.id),
                    "requested_quantity": new_quantity,
                    "consumed_quantity": consumed,
                },
            )
            raise QuantityBelowConsumedError(
                purchase_order_item_id=str(lot.purchase_order_item_id),
                requested_quantity=new_quantity,
                consumed_quantity=consumed,
            )

        delta = new_quantity - lot.original_quantity
        lot.original_quantity = new_quantity
        lot.remaining_quantity = new_quantity - consumed
        self.session.flush()

        logger.info(
            "inventory_lot_resized",
            extra={
                "lot_id": str(lot.id),
                "original_quantity": new_quantity,
                "remaining_quantity": lot.remaining_quantity,
                "delta": delta,
            },
        )
        return delta
