"""
stock_engines.costing -- USD unit cost derivation.

Responsibility:
    Turn a lot's stored costs into the USD unit cost used for COGS, and
    derive the USD cost frozen onto a lot at receipt.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic.
    - usd_to_source_rate is "source currency units per 1 USD", so
      cost_usd = cost_source / rate.  A zero or absent rate converts nothing.
    - derive_usd_cost() rounds half-up (it produces a stored value);
      resolve_unit_cost() never rounds (it feeds an accumulation).
    - Unknown cost is never silently free: resolve_unit_cost() reports
      CostBasis.MISSING so the caller can record a costing gap.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from stock_kernel.domain.money import CURRENCY_DECIMAL_PLACES, ZERO, round_currency


class CostBasis(str, Enum):
    """Where a lot's unit cost came from."""

    STORED_USD = "stored_usd"
    CONVERTED_SOURCE = "converted_source"
    MISSING = "missing"


def convert_source_to_usd(
    cost_source: Decimal | None,
    usd_to_source_rate: Decimal | None,
) -> Decimal | None:
    """cost_source / rate, unrounded; None when either side is unusable."""
    if cost_source is None or usd_to_source_rate is None:
        return None
    if usd_to_source_rate == 0:
        return None
    return Decimal(cost_source) / Decimal(usd_to_source_rate)


def derive_usd_cost(
    cost_source: Decimal | None,
    usd_to_source_rate: Decimal | None,
    decimal_places: int = CURRENCY_DECIMAL_PLACES,
) -> Decimal | None:
    """
    USD cost to store on a newly received lot.

        >>> derive_usd_cost(Decimal("10"), Decimal("3"))
        Decimal('3.33')
        >>> derive_usd_cost(Decimal("10"), None) is None
        True
    """
    converted = convert_source_to_usd(cost_source, usd_to_source_rate)
    if converted is None:
        return None
    return round_currency(converted, decimal_places)


def resolve_unit_cost(
    cost_usd: Decimal | None,
    cost_source: Decimal | None,
    usd_to_source_rate: Decimal | None,
) -> tuple[Decimal, CostBasis]:
    """
    Unit cost for consumption, by priority:

    1. the stored USD cost;
    2. the source cost converted at the order's rate (read time);
    3. zero, flagged MISSING.
    """
    if cost_usd is not None:
        return Decimal(cost_usd), CostBasis.STORED_USD

    converted = convert_source_to_usd(cost_source, usd_to_source_rate)
    if converted is not None:
        return converted, CostBasis.CONVERTED_SOURCE

    return ZERO, CostBasis.MISSING


def unit_cost_from_total(total: Decimal, quantity: int) -> Decimal:
    """Per-unit cost of a total spread over ``quantity`` units (unrounded)."""
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    return Decimal(total) / Decimal(quantity)
