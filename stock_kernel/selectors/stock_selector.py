"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only stock queries.  Available stock is a derived
    view: the sum of remaining_quantity over a variant's lots.  There is
    no stored counter anywhere.  Also lists customer orders, purchase
    orders and lots for reporting screens.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - No stored balances; every figure is computed at query time.
    - Returns frozen DTOs, never ORM instances.
    - No caching: two calls in the same transaction may differ if the
      transaction wrote in between.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from stock_kernel.exceptions import VariantNotFoundError
from stock_kernel.models.customer_order import CustomerOrder
from stock_kernel.models.inventory_lot import InventoryLot
from stock_kernel.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from stock_kernel.models.stock_change import StockChangeEntry
from stock_kernel.models.variant import ProductVariant
from stock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LotView:
    """One inventory lot as seen by readers."""

    lot_id: UUID
    variant_id: UUID
    original_quantity: int
    remaining_quantity: int
    cost_source: Decimal | None
    cost_usd: Decimal | None
    purchase_order_item_id: UUID | None
    restocked_from_order_id: UUID | None
    arrival_date: datetime | None
    created_at: datetime

    @property
    def consumed_quantity(self) -> int:
        return self.original_quantity - self.remaining_quantity


@dataclass(frozen=True)
class VariantStock:
    """Derived stock position of one variant."""

    variant_id: UUID
    sku: str
    label: str
    available_quantity: int
    lot_count: int
    open_lot_count: int


@dataclass(frozen=True)
class StockChangeView:
    """One stock change log entry."""

    entry_id: UUID
    variant_id: UUID
    change: int
    change_time: datetime
    reason: str
    actor: str | None
    order_id: UUID | None
    order_type: str | None
    note: str | None


@dataclass(frozen=True)
class LotListing:
    """A lot with the purchase order it was received from (None for
    restock and manual lots)."""

    lot: LotView
    purchase_order_id: UUID | None
    batch_number: str | None


@dataclass(frozen=True)
class CustomerOrderLineView:
    item_id: UUID
    variant_id: UUID
    quantity: int
    sale_price: Decimal | None
    cogs: Decimal | None


@dataclass(frozen=True)
class CustomerOrderView:
    """A customer order with its lines."""

    order_id: UUID
    order_date: datetime
    customer_name: str | None
    status: str
    fulfillment_status: str | None
    payment_status: str | None
    money_holder: str | None
    payment_method: str | None
    cancelled_at: datetime | None
    lines: tuple[CustomerOrderLineView, ...]

    @property
    def total_cogs(self) -> Decimal:
        return sum((line.cogs or Decimal("0") for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class PurchaseOrderLineView:
    item_id: UUID
    variant_id: UUID
    quantity_ordered: int
    cost_per_item_source: Decimal | None
    cost_per_item_usd: Decimal | None


@dataclass(frozen=True)
class PurchaseOrderView:
    """A purchase order (supplier batch) with its lines."""

    order_id: UUID
    batch_number: str
    has_arrived: bool
    arrival_date: datetime | None
    usd_to_source_rate: Decimal | None
    total_cost_usd: Decimal | None
    created_at: datetime
    lines: tuple[PurchaseOrderLineView, ...]


def _lot_view(lot: InventoryLot) -> LotView:
    return LotView(
        lot_id=lot.id,
        variant_id=lot.variant_id,
        original_quantity=lot.original_quantity,
        remaining_quantity=lot.remaining_quantity,
        cost_source=lot.cost_source,
        cost_usd=lot.cost_usd,
        purchase_order_item_id=lot.purchase_order_item_id,
        restocked_from_order_id=lot.restocked_from_order_id,
        arrival_date=lot.arrival_date,
        created_at=lot.created_at,
    )


class StockSelector(BaseSelector[InventoryLot]):
    """Read-only queries over lots and the stock change log."""

    def available_quantity(self, variant_id: UUID) -> int:
        """Sum of remaining_quantity over the variant's lots (0 if none)."""
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryLot.remaining_quantity), 0)).where(
                InventoryLot.variant_id == variant_id
            )
        ).scalar_one()
        return int(total)

    def variant_stock(self, variant_id: UUID) -> VariantStock:
        """
        Stock position of a variant.

        Raises:
            VariantNotFoundError: variant does not exist.
        """
        variant = self.session.get(ProductVariant, variant_id)
        if variant is None:
            raise VariantNotFoundError(str(variant_id))

        available, lot_count, open_lot_count = self.session.execute(
            select(
                func.coalesce(func.sum(InventoryLot.remaining_quantity), 0),
                func.count(InventoryLot.id),
                func.count(InventoryLot.id).filter(InventoryLot.remaining_quantity > 0),
            ).where(InventoryLot.variant_id == variant_id)
        ).one()

        return VariantStock(
            variant_id=variant.id,
            sku=variant.sku,
            label=variant.display_label,
            available_quantity=int(available),
            lot_count=int(lot_count),
            open_lot_count=int(open_lot_count),
        )

    def lots_for_variant(
        self,
        variant_id: UUID,
        include_depleted: bool = False,
    ) -> list[LotView]:
        """Lots of a variant in storage order (created_at, id)."""
        stmt = select(InventoryLot).where(InventoryLot.variant_id == variant_id)
        if not include_depleted:
            stmt = stmt.where(InventoryLot.remaining_quantity > 0)
        stmt = stmt.order_by(InventoryLot.created_at, InventoryLot.id)
        return [_lot_view(lot) for lot in self.session.scalars(stmt)]

    def lot_for_purchase_order_item(self, purchase_order_item_id: UUID) -> LotView | None:
        """The lot created by receiving a purchase order item, if any."""
        lot = self.session.scalars(
            select(InventoryLot).where(
                InventoryLot.purchase_order_item_id == purchase_order_item_id
            )
        ).one_or_none()
        return _lot_view(lot) if lot is not None else None

    def stock_changes(
        self,
        variant_id: UUID | None = None,
        limit: int | None = None,
    ) -> list[StockChangeView]:
        """Stock change log, newest first."""
        stmt = select(StockChangeEntry)
        if variant_id is not None:
            stmt = stmt.where(StockChangeEntry.variant_id == variant_id)
        stmt = stmt.order_by(StockChangeEntry.change_time.desc(), StockChangeEntry.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        return [
            StockChangeView(
                entry_id=entry.id,
                variant_id=entry.variant_id,
                change=entry.change,
                change_time=entry.change_time,
                reason=str(getattr(entry.reason, "value", entry.reason)),
                actor=entry.actor,
                order_id=entry.order_id,
                order_type=(
                    str(getattr(entry.order_type, "value", entry.order_type))
                    if entry.order_type is not None
                    else None
                ),
                note=entry.note,
            )
            for entry in self.session.scalars(stmt)
        ]

    def all_lots(self) -> list[LotListing]:
        """Every lot with its purchase order link, oldest created first."""
        rows = self.session.execute(
            select(InventoryLot, PurchaseOrder.id, PurchaseOrder.batch_number)
            .outerjoin(
                PurchaseOrderItem,
                InventoryLot.purchase_order_item_id == PurchaseOrderItem.id,
            )
            .outerjoin(PurchaseOrder, PurchaseOrderItem.purchase_order_id == PurchaseOrder.id)
            .order_by(InventoryLot.created_at, InventoryLot.id)
        ).all()
        return [
            LotListing(lot=_lot_view(lot), purchase_order_id=order_id, batch_number=batch)
            for lot, order_id, batch in rows
        ]

    def customer_orders(self, limit: int | None = None) -> list[CustomerOrderView]:
        """Customer orders with their lines, newest order_date first."""
        stmt = (
            select(CustomerOrder)
            .options(selectinload(CustomerOrder.items))
            .order_by(CustomerOrder.order_date.desc(), CustomerOrder.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [
            CustomerOrderView(
                order_id=order.id,
                order_date=order.order_date,
                customer_name=order.customer_name,
                status=str(getattr(order.status, "value", order.status)),
                fulfillment_status=order.fulfillment_status,
                payment_status=order.payment_status,
                money_holder=order.money_holder,
                payment_method=order.payment_method,
                cancelled_at=order.cancelled_at,
                lines=tuple(
                    CustomerOrderLineView(
                        item_id=item.id,
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                        sale_price=item.sale_price,
                        cogs=item.cogs,
                    )
                    for item in order.items
                ),
            )
            for order in self.session.scalars(stmt)
        ]

    def purchase_orders(self) -> list[PurchaseOrderView]:
        """Purchase orders with their lines, oldest created first."""
        stmt = (
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .order_by(PurchaseOrder.created_at, PurchaseOrder.id)
        )
        return [
            PurchaseOrderView(
                order_id=order.id,
                batch_number=order.batch_number,
                has_arrived=order.has_arrived,
                arrival_date=order.arrival_date,
                usd_to_source_rate=order.usd_to_source_rate,
                total_cost_usd=order.total_cost_usd,
                created_at=order.created_at,
                lines=tuple(
                    PurchaseOrderLineView(
                        item_id=item.id,
                        variant_id=item.variant_id,
                        quantity_ordered=item.quantity_ordered,
                        cost_per_item_source=item.cost_per_item_source,
                        cost_per_item_usd=item.cost_per_item_usd,
                    )
                    for item in order.items
                ),
            )
            for order in self.session.scalars(stmt)
        ]
