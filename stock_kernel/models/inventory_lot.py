"""
Module: stock_kernel.models.inventory_lot
Responsibility: ORM persistence for inventory lots.  A lot is a discrete
    batch of units received at a known (or unknown) cost; FIFO fulfillment
    consumes lots and derives cost-of-goods-sold from them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= remaining_quantity <= original_quantity (CHECK constraint, plus the
      before_insert/before_update listener in db/immutability.py).
    - At most one lot per purchase order item (UNIQUE purchase_order_item_id).
    - Lots are never deleted (before_delete listener).
    - Ownership runs lot -> purchase order item -> purchase order.  Orders and
      items hold no back-reference to lots.

Failure modes:
    - IntegrityError on a second lot for the same purchase order item.
    - ImmutabilityViolationError on DELETE or on an out-of-range remaining
      quantity.

Audit relevance:
    cost_usd is frozen at receipt.  A lot created by voiding a sale records
    the voided order in restocked_from_order_id.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from stock_kernel.models.purchase_order import PurchaseOrderItem
    from stock_kernel.models.variant import ProductVariant


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryLot(Base):
    """
    One batch of inventory for a single variant.

    Contract:
        remaining_quantity only decreases through FIFO fulfillment and only
        changes otherwise through a purchase order item resize.
        cost_source and cost_usd may both be NULL (cost unknown).

    Non-goals:
        - No sort key column.  FIFO order is computed at read time from the
          originating purchase order's arrival date.
    """

    __tablename__ = "inventory_lots"

    __table_args__ = (
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= original_quantity",
            name="ck_inventory_lot_remaining_bounds",
        ),
        CheckConstraint(
            "original_quantity > 0",
            name="ck_inventory_lot_original_positive",
        ),
        UniqueConstraint(
            "purchase_order_item_id", name="uq_inventory_lot_purchase_order_item"
        ),
        Index("idx_inventory_lot_variant_remaining", "variant_id", "remaining_quantity"),
    )

    variant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("product_variants.id"),
        nullable=False,
    )

    original_quantity: Mapped[int] = mapped_column(nullable=False)

    remaining_quantity: Mapped[int] = mapped_column(nullable=False)

    # Per-unit cost in the supplier's currency
    cost_source: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Per-unit cost in USD, frozen at creation
    cost_usd: Mapped[Decimal | None] = mapped_column(nullable=True)

    purchase_order_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_order_items.id"),
        nullable=True,
    )

    restocked_from_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("customer_orders.id"),
        nullable=True,
    )

    arrival_date: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)

    variant: Mapped["ProductVariant"] = relationship()

    purchase_order_item: Mapped["PurchaseOrderItem | None"] = relationship()

    @property
    def consumed_quantity(self) -> int:
        """Units already sold from this lot."""
        return self.original_quantity - self.remaining_quantity

    @property
    def is_depleted(self) -> bool:
        return self.remaining_quantity == 0

    def __repr__(self) -> str:
        return (
            f"<InventoryLot {self.id} variant={self.variant_id} "
            f"{self.remaining_quantity}/{self.original_quantity}>"
        )
