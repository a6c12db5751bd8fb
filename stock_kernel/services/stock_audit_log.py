"""
StockAuditLog -- append-only record of every stock movement.

Responsibility:
    Writes StockChangeEntry rows: one per sale line (negative), one per
    received purchase order line (positive), one per voided sale line
    (positive), plus manual corrections and purchase order adjustments.

Architecture position:
    Kernel > Services -- called by the stock services inside the caller's
    transaction.  Flushes, never commits.

Invariants enforced:
    - change is non-zero.
    - Entries are insert-only; the ORM listeners in db/immutability.py reject
      UPDATE and DELETE.
    - change_time comes from the injected Clock unless the caller supplies
      one (purchase order receipts use the order's arrival date).

Failure modes:
    - ValidationError on a zero change.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_change import (
    StockChangeEntry,
    StockChangeOrderType,
    StockChangeReason,
)

logger = get_logger("services.stock_audit_log")

DEFAULT_ACTOR = "system"


class StockAuditLog:
    """
    Append-only writer for the stock change log.

    Non-goals:
        - Does NOT touch inventory lots.  The log records movements; lots
          hold the quantities.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_actor: str = DEFAULT_ACTOR,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._default_actor = default_actor

    def record(
        self,
        variant_id: UUID,
        change: int,
        reason: StockChangeReason,
        actor: str | None = None,
        order_id: UUID | None = None,
        order_type: StockChangeOrderType | None = None,
        change_time: datetime | None = None,
        note: str | None = None,
    ) -> StockChangeEntry:
        """
        Append one stock change entry.

        Raises:
            ValidationError: change == 0.
        """
        if change == 0:
            raise ValidationError("change", "stock change must be non-zero")

        entry = StockChangeEntry(
            variant_id=variant_id,
            change=change,
            change_time=change_time or self._clock.now(),
            reason=reason,
            actor=actor or self._default_actor,
            order_id=order_id,
            order_type=order_type,
            note=note,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "stock_change_recorded",
            extra={
                "variant_id": str(variant_id),
                "change": change,
                "reason": StockChangeReason(reason).value,
                "order_id": str(order_id) if order_id else None,
            },
        )
        return entry

    # Typed helpers

    def record_sale(
        self,
        variant_id: UUID,
        quantity: int,
        customer_order_id: UUID,
        actor: str | None = None,
    ) -> StockChangeEntry:
        """A sale of ``quantity`` units (recorded as -quantity)."""
        return self.record(
            variant_id=variant_id,
            change=-quantity,
            reason=StockChangeReason.SALE,
            actor=actor,
            order_id=customer_order_id,
            order_type=StockChangeOrderType.CUSTOMER,
        )

    def record_purchase_receipt(
        self,
        variant_id: UUID,
        quantity: int,
        purchase_order_id: UUID,
        change_time: datetime | None = None,
        actor: str | None = None,
    ) -> StockChangeEntry:
        return self.record(
            variant_id=variant_id,
            change=quantity,
            reason=StockChangeReason.PURCHASE_ORDER_RECEIVED,
            actor=actor,
            order_id=purchase_order_id,
            order_type=StockChangeOrderType.PURCHASE,
            change_time=change_time,
        )

    def record_void(
        self,
        variant_id: UUID,
        quantity: int,
        customer_order_id: UUID,
        actor: str | None = None,
    ) -> StockChangeEntry:
        return self.record(
            variant_id=variant_id,
            change=quantity,
            reason=StockChangeReason.VOID_SALE,
            actor=actor,
            order_id=customer_order_id,
            order_type=StockChangeOrderType.CUSTOMER,
        )

    def record_manual(
        self,
        variant_id: UUID,
        change: int,
        actor: str | None = None,
        note: str | None = None,
    ) -> StockChangeEntry:
        return self.record(
            variant_id=variant_id,
            change=change,
            reason=StockChangeReason.MANUAL,
            actor=actor,
            order_type=StockChangeOrderType.MANUAL,
            note=note,
        )

    def record_adjustment(
        self,
        variant_id: UUID,
        delta: int,
        purchase_order_id: UUID,
        actor: str | None = None,
    ) -> StockChangeEntry:
        """A resize of a received purchase order line."""
        return self.record(
            variant_id=variant_id,
            change=delta,
            reason=StockChangeReason.PURCHASE_ORDER_ADJUSTED,
            actor=actor,
            order_id=purchase_order_id,
            order_type=StockChangeOrderType.PURCHASE,
        )
