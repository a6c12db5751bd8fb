"""
Append-only and state-guard tests for the ORM immutability listeners.

Verifies:
- Stock change entries can never be updated or deleted
- Inventory lots are never deleted and stay within 0 <= remaining <= original
- A received purchase order cannot be un-received
- A cancelled customer order cannot be reactivated
"""

import pytest
from sqlalchemy import select

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.models.customer_order import CustomerOrderStatus
from stock_kernel.models.inventory_lot import InventoryLot
from stock_kernel.models.stock_change import StockChangeEntry
from stock_services.order_lifecycle_service import CustomerInfo, OrderLine


@pytest.fixture
def entry(controller, variant) -> StockChangeEntry:
    return controller.record_manual_stock_change(variant.id, 3, actor="auditor", note="count")


@pytest.fixture
def received(variant, receive_stock):
    order = receive_stock(variant, 5, cost_usd="1")
    return order, order.items[0]


def _lot_for(session, item) -> InventoryLot:
    return session.scalars(
        select(InventoryLot).where(InventoryLot.purchase_order_item_id == item.id)
    ).one()


class TestStockChangeEntryImmutability:
    def test_update_blocked(self, session, entry):
        entry.change = 30

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockChangeEntry"

    def test_note_update_blocked(self, session, entry):
        entry.note = "edited"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, entry):
        session.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, captured_logs, entry):
        session.delete(entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "DELETE"
        assert blocked[0]["entity_type"] == "StockChangeEntry"


class TestInventoryLotGuards:
    def test_delete_blocked(self, session, received):
        _, item = received
        session.delete(_lot_for(session, item))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_negative_remaining_blocked(self, session, received):
        _, item = received
        _lot_for(session, item).remaining_quantity = -1

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_remaining_above_original_blocked(self, session, received):
        _, item = received
        _lot_for(session, item).remaining_quantity = 6

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestOrderStateGuards:
    def test_received_order_cannot_be_unreceived(self, session, received):
        order, _ = received
        order.has_arrived = False

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_cancelled_order_cannot_be_reactivated(self, session, controller, variant, receive_stock):
        receive_stock(variant, 2, cost_usd="1")
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
        )
        controller.void_customer_order(order.id)

        order.status = CustomerOrderStatus.ACTIVE

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
