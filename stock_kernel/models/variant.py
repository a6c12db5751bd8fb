"""
Module: stock_kernel.models.variant
Responsibility: ORM persistence for product variants, the unit of stock.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - No stock counter column.  Available stock is always the sum of
      remaining_quantity over the variant's inventory lots; see
      StockSelector.available_quantity().
    - sku is unique.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductVariant(Base):
    """
    A sellable variant (one color/size combination) of a product.

    The FIFO engine locks this row (SELECT ... FOR UPDATE) to serialize
    fulfillments of the same variant.
    """

    __tablename__ = "product_variants"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_variant_sku"),
        Index("idx_product_variant_legacy_sku", "legacy_sku"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    color: Mapped[str | None] = mapped_column(String(100), nullable=True)

    size: Mapped[str | None] = mapped_column(String(50), nullable=True)

    sale_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Identifier from the system the catalog was imported from
    legacy_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)

    @property
    def display_label(self) -> str:
        """Human-readable label used in stock error messages."""
        attributes = ", ".join(part for part in (self.color, self.size) if part)
        name = f"{self.product_name} ({attributes})" if attributes else self.product_name
        return f"{name} - SKU: {self.sku}"

    def __repr__(self) -> str:
        return f"<ProductVariant {self.sku}>"
