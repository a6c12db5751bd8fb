"""
stock_engines.fifo.ordering -- FIFO sort key for inventory lots.

A lot's position in the FIFO queue is decided by, in order:

    1. the arrival date of its originating purchase order;
    2. for a lot with no purchase order link (void restock, manual lot),
       its own arrival date, when ``use_lot_arrival_fallback`` is on;
    3. otherwise the MissingArrivalPolicy:

           EPOCH       as if it arrived at 1970-01-01 (sorts first)
           CREATED_AT  its own creation time
           LAST        after every lot that has a date

Ties break on the lot's created_at, then on its id, so the order is total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stock_engines.fifo.consumption import LotSnapshot

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MissingArrivalPolicy(str, Enum):
    """Where a lot with no resolvable arrival date sorts."""

    EPOCH = "epoch"
    CREATED_AT = "created_at"
    LAST = "last"


@dataclass(frozen=True, slots=True)
class FifoOrdering:
    """Ordering options for one FIFO walk."""

    missing_arrival_policy: MissingArrivalPolicy = MissingArrivalPolicy.EPOCH
    use_lot_arrival_fallback: bool = True

    @classmethod
    def of(cls, missing_arrival_policy: str, use_lot_arrival_fallback: bool = True) -> FifoOrdering:
        return cls(
            missing_arrival_policy=MissingArrivalPolicy(missing_arrival_policy),
            use_lot_arrival_fallback=use_lot_arrival_fallback,
        )


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resolve_arrival(lot: LotSnapshot, ordering: FifoOrdering) -> datetime | None:
    """The arrival date that places ``lot`` in the queue, or None."""
    if lot.order_arrival_date is not None:
        return _aware(lot.order_arrival_date)
    # Unlinked lots have no order date; with the fallback off they fall to
    # missing_arrival_policy like any undated lot.
    if (
        ordering.use_lot_arrival_fallback
        and lot.purchase_order_item_id is None
        and lot.arrival_date is not None
    ):
        return _aware(lot.arrival_date)
    return None


def fifo_sort_key(lot: LotSnapshot, ordering: FifoOrdering) -> tuple:
    created_at = _aware(lot.created_at)
    arrival = resolve_arrival(lot, ordering)

    if arrival is not None:
        return (0, arrival, created_at, str(lot.lot_id))

    policy = ordering.missing_arrival_policy
    if policy == MissingArrivalPolicy.EPOCH:
        return (0, EPOCH, created_at, str(lot.lot_id))
    if policy == MissingArrivalPolicy.CREATED_AT:
        return (0, created_at, created_at, str(lot.lot_id))
    return (1, created_at, created_at, str(lot.lot_id))


def sort_lots_fifo(
    lots: list[LotSnapshot],
    ordering: FifoOrdering | None = None,
) -> list[LotSnapshot]:
    """Return ``lots`` oldest-first.  Input order does not matter."""
    ordering = ordering or FifoOrdering()
    return sorted(lots, key=lambda lot: fifo_sort_key(lot, ordering))
