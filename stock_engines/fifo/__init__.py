"""FIFO lot ordering and consumption planning (pure)."""

from stock_engines.fifo.consumption import (
    CostingGap,
    FulfillmentPlan,
    LotDraw,
    LotSnapshot,
    plan_fifo_consumption,
)
from stock_engines.fifo.ordering import (
    EPOCH,
    FifoOrdering,
    MissingArrivalPolicy,
    fifo_sort_key,
    resolve_arrival,
    sort_lots_fifo,
)

__all__ = [
    "LotSnapshot",
    "LotDraw",
    "CostingGap",
    "FulfillmentPlan",
    "plan_fifo_consumption",
    "EPOCH",
    "FifoOrdering",
    "MissingArrivalPolicy",
    "fifo_sort_key",
    "resolve_arrival",
    "sort_lots_fifo",
]
