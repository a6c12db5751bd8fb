"""
Module: stock_kernel.models.purchase_order
Responsibility: ORM persistence for supplier purchase orders and their lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - batch_number is unique.
    - has_arrived goes false -> true exactly once, through receipt
      (before_update listener in db/immutability.py).
    - usd_to_source_rate is "source currency units per 1 USD";
      cost_usd = cost_source / usd_to_source_rate.
    - Purchase orders are never deleted.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from stock_kernel.models.variant import ProductVariant


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseOrder(Base):
    """A supplier batch.  Receiving it creates one inventory lot per line."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_purchase_order_batch_number"),
        Index("idx_purchase_order_arrival", "arrival_date"),
    )

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)

    arrival_date: Mapped[datetime | None] = mapped_column(nullable=True)

    has_arrived: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Sum over items of quantity_ordered * cost_per_item_usd
    total_cost_usd: Mapped[Decimal | None] = mapped_column(nullable=True)

    usd_to_source_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 18),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)

    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="order",
        order_by="PurchaseOrderItem.created_at",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.batch_number} arrived={self.has_arrived}>"


class PurchaseOrderItem(Base):
    """One line of a purchase order: a variant, a quantity and a unit cost."""

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        Index("idx_purchase_order_item_order", "purchase_order_id"),
        Index("idx_purchase_order_item_variant", "variant_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_orders.id"),
        nullable=False,
    )

    variant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("product_variants.id"),
        nullable=False,
    )

    quantity_ordered: Mapped[int] = mapped_column(nullable=False)

    cost_per_item_source: Mapped[Decimal | None] = mapped_column(nullable=True)

    cost_per_item_usd: Mapped[Decimal | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)

    order: Mapped["PurchaseOrder"] = relationship(back_populates="items")

    variant: Mapped["ProductVariant"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderItem {self.id} variant={self.variant_id} "
            f"qty={self.quantity_ordered}>"
        )
