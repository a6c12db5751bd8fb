"""
Module: stock_kernel.models.stock_change
Responsibility: ORM persistence for the stock change log, the append-only
    history of every stock movement.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only.  UPDATE and DELETE are rejected by the listeners in
      db/immutability.py.
    - change is signed and non-zero: negative for sales, positive for
      receipts and voids.
    - order_id carries no foreign key; it references a customer order or a
      purchase order depending on order_type.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class StockChangeReason(str, Enum):
    """Why stock moved."""

    SALE = "Sale"
    PURCHASE_ORDER_RECEIVED = "Purchase Order Received"
    VOID_SALE = "Void Sale"
    MANUAL = "Manual"
    PURCHASE_ORDER_ADJUSTED = "Purchase Order Adjusted"


class StockChangeOrderType(str, Enum):
    """Which kind of order an entry's order_id points at."""

    CUSTOMER = "CUSTOMER"
    PURCHASE = "PURCHASE"
    MANUAL = "MANUAL"


class StockChangeEntry(Base):
    """One immutable stock movement for a variant."""

    __tablename__ = "stock_change_entries"

    __table_args__ = (
        Index("idx_stock_change_variant_time", "variant_id", "change_time"),
        Index("idx_stock_change_order", "order_id"),
    )

    variant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("product_variants.id"),
        nullable=False,
    )

    change: Mapped[int] = mapped_column(nullable=False)

    change_time: Mapped[datetime] = mapped_column(nullable=False)

    reason: Mapped[StockChangeReason] = mapped_column(String(50), nullable=False)

    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)

    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    order_type: Mapped[StockChangeOrderType | None] = mapped_column(
        String(20),
        nullable=True,
    )

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<StockChangeEntry {self.variant_id} {self.change:+d} {self.reason}>"
