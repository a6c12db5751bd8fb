"""
Module: stock_engines
Responsibility:
    Pure calculation engines for the stock ledger: FIFO lot ordering,
    FIFO consumption planning, and USD cost derivation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import stock_kernel.domain, stock_kernel.exceptions and
    stock_kernel.logging_config only.  MUST NOT import stock_services.

Invariants enforced:
    - Purity: engines never call ``datetime.now()``; times arrive as inputs.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from stock_engines.fifo import LotSnapshot, plan_fifo_consumption
    from stock_engines.costing import derive_usd_cost
"""

from stock_engines.costing import (
    CostBasis,
    convert_source_to_usd,
    derive_usd_cost,
    resolve_unit_cost,
    unit_cost_from_total,
)
from stock_engines.fifo import (
    CostingGap,
    FifoOrdering,
    FulfillmentPlan,
    LotDraw,
    LotSnapshot,
    MissingArrivalPolicy,
    plan_fifo_consumption,
    sort_lots_fifo,
)

__all__ = [
    "CostBasis",
    "convert_source_to_usd",
    "derive_usd_cost",
    "resolve_unit_cost",
    "unit_cost_from_total",
    "CostingGap",
    "FifoOrdering",
    "FulfillmentPlan",
    "LotDraw",
    "LotSnapshot",
    "MissingArrivalPolicy",
    "plan_fifo_consumption",
    "sort_lots_fifo",
]
