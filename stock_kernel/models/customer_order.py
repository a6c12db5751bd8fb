"""
Module: stock_kernel.models.customer_order
Responsibility: ORM persistence for customer orders and their lines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - status transitions ACTIVE -> CANCELLED only; CANCELLED is terminal
      (before_update listener in db/immutability.py).
    - CustomerOrderItem.cogs is NULL until fulfillment, then fixed and
      rounded to two decimal places.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from stock_kernel.models.variant import ProductVariant


class CustomerOrderStatus(str, Enum):
    """Lifecycle of a customer order.  ACTIVE -> CANCELLED, never back."""

    ACTIVE = "active"
    CANCELLED = "cancelled"


class CustomerOrder(Base):
    """
    A customer sale.

    fulfillment_status, payment_status, money_holder and payment_method are
    free-form display metadata and do not affect stock.
    """

    __tablename__ = "customer_orders"

    __table_args__ = (
        Index("idx_customer_order_date", "order_date"),
        Index("idx_customer_order_status", "status"),
    )

    order_date: Mapped[datetime] = mapped_column(nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    fulfillment_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    payment_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    money_holder: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[CustomerOrderStatus] = mapped_column(
        String(10),
        default=CustomerOrderStatus.ACTIVE,
        nullable=False,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list["CustomerOrderItem"]] = relationship(
        back_populates="order",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == CustomerOrderStatus.CANCELLED

    @property
    def total_cogs(self) -> Decimal:
        return sum((item.cogs or Decimal("0") for item in self.items), Decimal("0"))

    def __repr__(self) -> str:
        return f"<CustomerOrder {self.id} status={self.status}>"


class CustomerOrderItem(Base):
    """One line of a customer order."""

    __tablename__ = "customer_order_items"

    __table_args__ = (
        Index("idx_customer_order_item_order", "customer_order_id"),
        Index("idx_customer_order_item_variant", "variant_id"),
    )

    customer_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customer_orders.id"),
        nullable=False,
    )

    variant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("product_variants.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    sale_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Cost of goods sold, set once by FIFO fulfillment
    cogs: Mapped[Decimal | None] = mapped_column(nullable=True)

    order: Mapped["CustomerOrder"] = relationship(back_populates="items")

    variant: Mapped["ProductVariant"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<CustomerOrderItem {self.id} variant={self.variant_id} "
            f"qty={self.quantity} cogs={self.cogs}>"
        )
