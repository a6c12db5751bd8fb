"""
FifoFulfillmentEngine -- consume inventory lots oldest-first and cost the sale.

Responsibility:
    Lock a variant and its open lots, plan the FIFO walk with the pure
    planner in stock_engines.fifo, apply the draws to the lots, and persist
    the rounded cost-of-goods-sold on the customer order line.

Architecture position:
    Services -- stateful, flush-only.  Runs inside the caller's transaction
    (OrderLifecycleController.create_customer_order).

Invariants enforced:
    - No oversell: the variant row and every open lot are locked
      (SELECT ... FOR UPDATE) before stock is summed, so concurrent
      fulfillments of one variant serialize.  Lots are locked in id order.
    - A multi-line order locks all of its variants up front, in id order
      (lock_variants), before any line is fulfilled.
    - All-or-nothing: the availability check happens before any lot is
      decremented.
    - COGS is rounded once, half-up, at persistence.

Failure modes:
    - ValidationError on a non-positive quantity.
    - VariantNotFoundError / CustomerOrderItemNotFoundError on missing rows.
    - InsufficientStockError when the variant's lots cannot cover the sale.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config import LedgerConfig
from stock_engines.fifo import (
    CostingGap,
    FifoOrdering,
    LotDraw,
    LotSnapshot,
    plan_fifo_consumption,
)
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    CustomerOrderItemNotFoundError,
    ValidationError,
    VariantNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.customer_order import CustomerOrderItem
from stock_kernel.models.inventory_lot import InventoryLot
from stock_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from stock_kernel.models.variant import ProductVariant
from stock_kernel.services.base import BaseService

logger = get_logger("services.fulfillment")


@dataclass(frozen=True)
class FulfillmentResult:
    """Outcome of fulfilling one customer order line."""

    customer_order_item_id: UUID
    variant_id: UUID
    quantity: int
    cogs_usd: Decimal
    total_cost_usd: Decimal
    draws: tuple[LotDraw, ...]
    costing_gaps: tuple[CostingGap, ...] = ()

    @property
    def has_costing_gaps(self) -> bool:
        return bool(self.costing_gaps)


class FifoFulfillmentEngine(BaseService[InventoryLot]):
    """
    FIFO consumption of a variant's lots for a sale.

    Non-goals:
        - Does NOT write the stock change log; the controller records the
          Sale entry.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or LedgerConfig.with_defaults()
        self._ordering = FifoOrdering.of(
            self._config.missing_arrival_policy,
            self._config.use_lot_arrival_fallback,
        )

    def _lock_variant(self, variant_id: UUID) -> ProductVariant:
        variant = self.session.execute(
            select(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .with_for_update()
        ).scalar_one_or_none()
        if variant is None:
            raise VariantNotFoundError(str(variant_id))
        return variant

    def lock_variants(self, variant_ids: Iterable[UUID]) -> list[ProductVariant]:
        """
        Lock several variant rows in ascending id order.

        Called before any line of an order is fulfilled, so every
        transaction acquires variant locks in the same global order.
        fulfill() re-locking a row this transaction holds is a no-op.
        """
        wanted = sorted({str(v) for v in variant_ids})
        if not wanted:
            return []
        variants = list(
            self.session.scalars(
                select(ProductVariant)
                .where(ProductVariant.id.in_(wanted))
                .order_by(ProductVariant.id)
                .with_for_update()
            )
        )
        found = {str(v.id) for v in variants}
        for variant_id in wanted:
            if variant_id not in found:
                raise VariantNotFoundError(variant_id)
        return variants

    def _lock_open_lots(self, variant_id: UUID) -> list[InventoryLot]:
        return list(
            self.session.scalars(
                select(InventoryLot)
                .where(
                    InventoryLot.variant_id == variant_id,
                    InventoryLot.remaining_quantity > 0,
                )
                .order_by(InventoryLot.id)
                .with_for_update()
            )
        )

    def _order_facts(self, lots: list[InventoryLot]) -> dict[UUID, tuple]:
        """(arrival_date, usd_to_source_rate) of each lot's purchase order."""
        item_ids = [lot.purchase_order_item_id for lot in lots if lot.purchase_order_item_id]
        if not item_ids:
            return {}
        rows = self.session.execute(
            select(
                PurchaseOrderItem.id,
                PurchaseOrder.arrival_date,
                PurchaseOrder.usd_to_source_rate,
            )
            .join(PurchaseOrder, PurchaseOrderItem.purchase_order_id == PurchaseOrder.id)
            .where(PurchaseOrderItem.id.in_(item_ids))
        ).all()
        return {item_id: (arrival, rate) for item_id, arrival, rate in rows}

    def load_snapshots(self, lots: list[InventoryLot]) -> list[LotSnapshot]:
        facts = self._order_facts(lots)
        snapshots = []
        for lot in lots:
            order_arrival, rate = facts.get(lot.purchase_order_item_id, (None, None))
            snapshots.append(
                LotSnapshot(
                    lot_id=lot.id,
                    remaining_quantity=lot.remaining_quantity,
                    created_at=lot.created_at,
                    cost_usd=lot.cost_usd,
                    cost_source=lot.cost_source,
                    usd_to_source_rate=rate,
                    order_arrival_date=order_arrival,
                    arrival_date=lot.arrival_date,
                    purchase_order_item_id=lot.purchase_order_item_id,
                )
            )
        return snapshots

    def fulfill(
        self,
        variant_id: UUID,
        quantity_to_sell: int,
        customer_order_item_id: UUID,
    ) -> FulfillmentResult:
        """
        Consume ``quantity_to_sell`` units of a variant, oldest lot first.

        Postconditions:
            - The consumed lots' remaining quantities dropped by exactly
              quantity_to_sell in total.
            - The order line's cogs is round_half_up(sum of units x unit
              cost, 2).

        Raises:
            ValidationError: quantity_to_sell <= 0.
            VariantNotFoundError: variant does not exist.
            CustomerOrderItemNotFoundError: order line does not exist.
            InsufficientStockError: not enough stock; nothing was changed.
        """
        t0 = time.monotonic()

        if (
            isinstance(quantity_to_sell, bool)
            or not isinstance(quantity_to_sell, int)
            or quantity_to_sell <= 0
        ):
            raise ValidationError(
                "quantity_to_sell",
                f"must be a positive integer, got {quantity_to_sell!r}",
            )

        order_item = self.session.get(CustomerOrderItem, customer_order_item_id)
        if order_item is None:
            raise CustomerOrderItemNotFoundError(str(customer_order_item_id))

        logger.info(
            "fifo_fulfillment_started",
            extra={
                "variant_id": str(variant_id),
                "quantity": quantity_to_sell,
                "customer_order_item_id": str(customer_order_item_id),
            },
        )

        # Lock order: variant row, then lots by id
        variant = self._lock_variant(variant_id)
        lots = self._lock_open_lots(variant_id)

        plan = plan_fifo_consumption(
            self.load_snapshots(lots),
            quantity_to_sell,
            self._ordering,
            variant_id=variant_id,
            variant_label=variant.display_label,
        )

        lots_by_id = {lot.id: lot for lot in lots}
        for draw in plan.draws:
            lot = lots_by_id[draw.lot_id]
            lot.remaining_quantity = draw.remaining_after
            logger.debug(
                "lot_consumed",
                extra={
                    "lot_id": str(draw.lot_id),
                    "quantity": draw.quantity,
                    "unit_cost_usd": draw.unit_cost_usd,
                    "cost_basis": draw.cost_basis.value,
                    "remaining_after": draw.remaining_after,
                },
            )

        for gap in plan.costing_gaps:
            logger.warning(
                "costing_gap_detected",
                extra={
                    "lot_id": str(gap.lot_id),
                    "variant_id": str(variant_id),
                    "quantity": gap.quantity,
                    "gap_reason": gap.reason,
                },
            )

        cogs = plan.rounded_cogs(self._config.cogs_decimal_places)
        order_item.cogs = cogs
        self.session.flush()

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "fifo_fulfillment_completed",
            extra={
                "variant_id": str(variant_id),
                "quantity": quantity_to_sell,
                "lots_consumed": len(plan.draws),
                "cogs_usd": cogs,
                "costing_gap_count": len(plan.costing_gaps),
                "duration_ms": duration_ms,
            },
        )

        return FulfillmentResult(
            customer_order_item_id=customer_order_item_id,
            variant_id=variant_id,
            quantity=quantity_to_sell,
            cogs_usd=cogs,
            total_cost_usd=plan.total_cost_usd,
            draws=plan.draws,
            costing_gaps=plan.costing_gaps,
        )
