"""
stock_engines.fifo.consumption -- FIFO consumption planning.

Responsibility:
    Given a snapshot of a variant's lots and a quantity to sell, decide which
    lots are drawn down, by how much, and at what USD unit cost.  The
    stateful FifoFulfillmentEngine (stock_services) loads and locks the lots,
    calls plan_fifo_consumption(), and applies the plan.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - All-or-nothing: if the summed remaining quantity is short, the kernel
      InsufficientStockError is raised before any draw is produced.
    - Exact draw: the draws sum to the requested quantity.
    - No intermediate rounding: total_cost_usd is the exact sum of
      quantity * unit cost; rounding happens once, at persistence.
    - A lot with no resolvable USD cost is drawn at zero and reported as a
      CostingGap.

Failure modes:
    - ValueError if quantity <= 0 or a snapshot has a negative remaining
      quantity.
    - InsufficientStockError if available < requested.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from stock_engines.costing import CostBasis, resolve_unit_cost
from stock_engines.fifo.ordering import FifoOrdering, sort_lots_fifo
from stock_engines.tracer import traced_engine
from stock_kernel.domain.money import CURRENCY_DECIMAL_PLACES, ZERO, round_currency
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.fifo.consumption")


@dataclass(frozen=True, slots=True)
class LotSnapshot:
    """
    Read-only view of one inventory lot, with the purchase order facts the
    FIFO walk needs (order arrival date, exchange rate) already joined in.
    """

    lot_id: UUID
    remaining_quantity: int
    created_at: datetime
    cost_usd: Decimal | None = None
    cost_source: Decimal | None = None
    usd_to_source_rate: Decimal | None = None
    order_arrival_date: datetime | None = None
    arrival_date: datetime | None = None
    purchase_order_item_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.remaining_quantity < 0:
            raise ValueError(
                f"Lot {self.lot_id} has negative remaining quantity "
                f"{self.remaining_quantity}"
            )


@dataclass(frozen=True, slots=True)
class LotDraw:
    """Units taken from a single lot."""

    lot_id: UUID
    quantity: int
    unit_cost_usd: Decimal
    cost_basis: CostBasis
    remaining_after: int

    @property
    def extended_cost_usd(self) -> Decimal:
        return self.unit_cost_usd * self.quantity


@dataclass(frozen=True, slots=True)
class CostingGap:
    """A lot drawn at zero cost because no USD cost could be resolved."""

    lot_id: UUID
    quantity: int
    has_source_cost: bool

    @property
    def reason(self) -> str:
        if self.has_source_cost:
            return "source cost without an exchange rate"
        return "no cost recorded"


@dataclass(frozen=True, slots=True)
class FulfillmentPlan:
    """The complete outcome of a FIFO walk."""

    requested_quantity: int
    available_quantity: int
    draws: tuple[LotDraw, ...]
    total_cost_usd: Decimal
    costing_gaps: tuple[CostingGap, ...] = ()

    @property
    def drawn_quantity(self) -> int:
        return sum(draw.quantity for draw in self.draws)

    @property
    def has_costing_gaps(self) -> bool:
        return bool(self.costing_gaps)

    def rounded_cogs(self, decimal_places: int = CURRENCY_DECIMAL_PLACES) -> Decimal:
        """COGS as persisted on the order line."""
        return round_currency(self.total_cost_usd, decimal_places)


@traced_engine("fifo_planner", "1.0")
def plan_fifo_consumption(
    lots: Iterable[LotSnapshot],
    quantity: int,
    ordering: FifoOrdering | None = None,
    *,
    variant_id: UUID | str | None = None,
    variant_label: str | None = None,
) -> FulfillmentPlan:
    """
    Plan the consumption of ``quantity`` units from ``lots``, oldest first.

    Args:
        lots: Snapshots of the variant's lots.  Depleted lots are ignored;
            input order does not matter.
        quantity: Units to sell.  Must be positive.
        ordering: FIFO ordering options.  Defaults to FifoOrdering().
        variant_id: Used only for the InsufficientStockError.
        variant_label: Display label for the InsufficientStockError.

    Returns:
        FulfillmentPlan whose draws sum to ``quantity``.

    Raises:
        ValueError: quantity <= 0.
        InsufficientStockError: summed remaining quantity < quantity.
    """
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")

    ordering = ordering or FifoOrdering()
    available_lots = [lot for lot in lots if lot.remaining_quantity > 0]
    available = sum(lot.remaining_quantity for lot in available_lots)

    if available < quantity:
        logger.warning(
            "fifo_insufficient_stock",
            extra={
                "variant_id": str(variant_id) if variant_id is not None else None,
                "available": available,
                "requested": quantity,
                "lot_count": len(available_lots),
            },
        )
        raise InsufficientStockError(
            variant_id=str(variant_id) if variant_id is not None else "",
            variant_label=variant_label or f"variant ID {variant_id}",
            available=available,
            requested=quantity,
        )

    needed = quantity
    total_cost = ZERO
    draws: list[LotDraw] = []
    gaps: list[CostingGap] = []

    for lot in sort_lots_fifo(available_lots, ordering):
        if needed == 0:
            break

        take = min(needed, lot.remaining_quantity)
        unit_cost, basis = resolve_unit_cost(
            lot.cost_usd, lot.cost_source, lot.usd_to_source_rate
        )

        if basis == CostBasis.MISSING:
            gaps.append(
                CostingGap(
                    lot_id=lot.lot_id,
                    quantity=take,
                    has_source_cost=lot.cost_source is not None,
                )
            )

        draws.append(
            LotDraw(
                lot_id=lot.lot_id,
                quantity=take,
                unit_cost_usd=unit_cost,
                cost_basis=basis,
                remaining_after=lot.remaining_quantity - take,
            )
        )
        total_cost += unit_cost * take
        needed -= take

    # INVARIANT: the walk covers the request exactly
    assert needed == 0, f"FIFO walk left {needed} unit(s) unfulfilled"

    return FulfillmentPlan(
        requested_quantity=quantity,
        available_quantity=available,
        draws=tuple(draws),
        total_cost_usd=total_cost,
        costing_gaps=tuple(gaps),
    )
