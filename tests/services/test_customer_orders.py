"""
Tests for customer order creation and voiding (OrderLifecycleController).

Verifies:
- Orders are fulfilled FIFO and priced at round_half_up(sum of draws)
- A short line rejects the whole order and changes nothing
- Voiding restocks costed lines as new lots and is terminal
- Every movement is written to the stock change log
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_config import LedgerConfig
from stock_kernel.exceptions import (
    CustomerOrderNotFoundError,
    InsufficientStockError,
    OrderAlreadyVoidedError,
    ValidationError,
    VariantNotFoundError,
)
from stock_kernel.models.customer_order import CustomerOrder, CustomerOrderStatus
from stock_kernel.models.inventory_lot import InventoryLot
from stock_services.order_lifecycle_service import (
    CustomerInfo,
    OrderLifecycleController,
    OrderLine,
    PaymentMeta,
)
from tests.support import utc


@pytest.fixture
def two_lot_variant(variant, receive_stock):
    """5 units @ $10 (arrived Jan) then 10 units @ $12 (arrived Feb)."""
    first = receive_stock(variant, 5, cost_usd="10", arrival_date=utc(2023, 1, 1))
    second = receive_stock(variant, 10, cost_usd="12", arrival_date=utc(2023, 2, 1))
    return variant, first, second


def _sale_entries(stock_selector, variant_id, reason):
    return [e for e in stock_selector.stock_changes(variant_id) if e.reason == reason]


class TestCreateCustomerOrder:
    def test_fifo_across_lots_and_cogs(self, controller, stock_selector, two_lot_variant):
        variant, first, second = two_lot_variant

        order = controller.create_customer_order(
            CustomerInfo(name="Ada"),
            [OrderLine(variant_id=variant.id, quantity=7, sale_price=Decimal("25"))],
            PaymentMeta(payment_method="cash", money_holder="till"),
        )

        assert order.status == CustomerOrderStatus.ACTIVE
        assert order.customer_name == "Ada"
        assert order.payment_method == "cash"
        assert order.items[0].cogs == Decimal("74.00")

        assert stock_selector.available_quantity(variant.id) == 8
        assert stock_selector.lot_for_purchase_order_item(first.items[0].id).remaining_quantity == 0
        assert stock_selector.lot_for_purchase_order_item(second.items[0].id).remaining_quantity == 8

    def test_sale_entry_logged(self, controller, stock_selector, two_lot_variant):
        variant, _, _ = two_lot_variant

        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=3)]
        )

        sales = _sale_entries(stock_selector, variant.id, "Sale")
        assert len(sales) == 1
        assert sales[0].change == -3
        assert sales[0].order_id == order.id
        assert sales[0].order_type == "CUSTOMER"
        assert sales[0].actor == "Ada"

    def test_explicit_actor_overrides_customer(self, controller, stock_selector, two_lot_variant):
        variant, _, _ = two_lot_variant

        controller.create_customer_order(
            {"name": "Ada"}, [{"variant_id": variant.id, "quantity": 1}], actor="clerk-7"
        )

        assert _sale_entries(stock_selector, variant.id, "Sale")[0].actor == "clerk-7"

    def test_guest_customer_by_default(self, controller, two_lot_variant):
        variant, _, _ = two_lot_variant

        order = controller.create_customer_order(None, [OrderLine(variant_id=variant.id, quantity=1)])

        assert order.customer_name == "Guest"

    def test_two_lines_same_variant_fulfilled_in_order(self, controller, two_lot_variant):
        variant, _, _ = two_lot_variant

        order = controller.create_customer_order(
            CustomerInfo(name="Ada"),
            [
                OrderLine(variant_id=variant.id, quantity=4),
                OrderLine(variant_id=variant.id, quantity=2),
            ],
        )

        cogs = sorted(item.cogs for item in order.items)
        # First line takes 4 @ 10; second takes the last 1 @ 10 and 1 @ 12
        assert cogs == [Decimal("22.00"), Decimal("40.00")]
        assert order.total_cogs == Decimal("62.00")

    def test_logs_completion(self, controller, captured_logs, two_lot_variant):
        variant, _, _ = two_lot_variant

        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
        )

        records = captured_logs()
        created = [r for r in records if r["message"] == "customer_order_created"]
        assert created and created[0]["order_id"] == str(order.id)
        assert created[0]["actor"] == "Ada"
        assert any(r["message"] == "fifo_fulfillment_completed" for r in records)


class TestOrderRejection:
    def test_insufficient_stock_changes_nothing(
        self, session, controller, stock_selector, variant, receive_stock
    ):
        receive_stock(variant, 3, cost_usd="5", arrival_date=utc(2023, 1, 1))

        with pytest.raises(InsufficientStockError) as exc_info:
            controller.create_customer_order(
                CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=5)]
            )

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 5
        assert variant.sku in str(exc_info.value)
        assert stock_selector.available_quantity(variant.id) == 3
        assert session.scalar(select(func.count(CustomerOrder.id))) == 0
        assert _sale_entries(stock_selector, variant.id, "Sale") == []

    def test_later_short_line_rolls_back_earlier_lines(
        self, controller, stock_selector, create_variant, receive_stock
    ):
        plenty = create_variant()
        scarce = create_variant()
        receive_stock(plenty, 5, cost_usd="1", arrival_date=utc(2023, 1, 1))
        receive_stock(scarce, 1, cost_usd="1", arrival_date=utc(2023, 1, 1))

        with pytest.raises(InsufficientStockError):
            controller.create_customer_order(
                CustomerInfo(name="Ada"),
                [
                    OrderLine(variant_id=plenty.id, quantity=2),
                    OrderLine(variant_id=scarce.id, quantity=3),
                ],
            )

        assert stock_selector.available_quantity(plenty.id) == 5
        assert stock_selector.available_quantity(scarce.id) == 1

    def test_rejected_order_logged(self, controller, captured_logs, variant):
        with pytest.raises(InsufficientStockError):
            controller.create_customer_order(
                CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
            )

        assert any(r["message"] == "customer_order_rejected" for r in captured_logs())

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity_rejected(self, controller, variant, quantity):
        with pytest.raises(ValidationError):
            controller.create_customer_order(
                CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=quantity)]
            )

    def test_line_mapping_with_unknown_key_rejected(self, controller, variant):
        with pytest.raises(ValidationError):
            controller.create_customer_order(
                CustomerInfo(name="Ada"), [{"productVariantId": variant.id, "quantity": 1}]
            )

    def test_empty_order_rejected(self, controller):
        with pytest.raises(ValidationError):
            controller.create_customer_order(CustomerInfo(name="Ada"), [])

    def test_unknown_variant_rejected(self, controller):
        with pytest.raises(VariantNotFoundError):
            controller.create_customer_order(
                CustomerInfo(name="Ada"), [OrderLine(variant_id=uuid4(), quantity=1)]
            )


class TestVoidCustomerOrder:
    def test_void_restocks_at_sold_cost(
        self, session, controller, stock_selector, deterministic_clock, two_lot_variant
    ):
        variant, _, _ = two_lot_variant
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=7)]
        )
        deterministic_clock.advance(60)

        voided = controller.void_customer_order(order.id)

        assert voided.status == CustomerOrderStatus.CANCELLED
        assert voided.cancelled_at == deterministic_clock.now()
        assert stock_selector.available_quantity(variant.id) == 15

        restock = session.scalars(
            select(InventoryLot).where(InventoryLot.restocked_from_order_id == order.id)
        ).one()
        assert restock.original_quantity == 7
        assert restock.remaining_quantity == 7
        assert restock.purchase_order_item_id is None
        assert restock.arrival_date == deterministic_clock.now()
        assert restock.cost_usd * 7 == pytest.approx(Decimal("74.00"))

        voids = _sale_entries(stock_selector, variant.id, "Void Sale")
        assert len(voids) == 1
        assert voids[0].change == 7
        assert voids[0].order_id == order.id
        assert voids[0].actor == "Ada"

    def test_restocked_units_sell_after_older_purchase_stock(
        self, controller, deterministic_clock, two_lot_variant
    ):
        variant, _, _ = two_lot_variant
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=7)]
        )
        deterministic_clock.advance(60)
        controller.void_customer_order(order.id)

        deterministic_clock.advance(60)
        resale = controller.create_customer_order(
            CustomerInfo(name="Bo"), [OrderLine(variant_id=variant.id, quantity=9)]
        )

        # 8 remaining @ 12, then 1 restocked @ 74/7
        assert resale.items[0].cogs == Decimal("106.57")

    def test_strict_ordering_sells_restocked_units_first(
        self, session, deterministic_clock, two_lot_variant
    ):
        variant, _, _ = two_lot_variant
        controller = OrderLifecycleController(
            session, deterministic_clock, LedgerConfig(use_lot_arrival_fallback=False)
        )
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=7)]
        )
        deterministic_clock.advance(60)
        controller.void_customer_order(order.id)

        resale = controller.create_customer_order(
            CustomerInfo(name="Bo"), [OrderLine(variant_id=variant.id, quantity=9)]
        )

        # restock has no arrival date: 7 @ 74/7 first, then 2 @ 12
        assert resale.items[0].cogs == Decimal("98.00")

    def test_void_twice_rejected(self, controller, two_lot_variant):
        variant, _, _ = two_lot_variant
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
        )
        controller.void_customer_order(order.id)

        with pytest.raises(OrderAlreadyVoidedError) as exc_info:
            controller.void_customer_order(order.id)
        assert exc_info.value.code == "ALREADY_VOIDED"

    def test_uncosted_line_not_restocked(self, controller, stock_selector, variant, receive_stock):
        receive_stock(variant, 4, arrival_date=utc(2023, 1, 1))
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=2)]
        )
        assert order.items[0].cogs == Decimal("0.00")

        voided = controller.void_customer_order(order.id)

        assert voided.is_cancelled
        assert stock_selector.available_quantity(variant.id) == 2
        assert _sale_entries(stock_selector, variant.id, "Void Sale") == []

    def test_void_unknown_order(self, controller):
        with pytest.raises(CustomerOrderNotFoundError):
            controller.void_customer_order(uuid4())


class TestUpdateCustomerOrder:
    def test_updates_metadata_only(self, controller, stock_selector, two_lot_variant):
        variant, _, _ = two_lot_variant
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=2)]
        )

        updated = controller.update_customer_order(
            order.id, customer_name="Ada L.", payment_status="paid", fulfillment_status="shipped"
        )

        assert updated.customer_name == "Ada L."
        assert updated.payment_status == "paid"
        assert updated.fulfillment_status == "shipped"
        assert stock_selector.available_quantity(variant.id) == 13

    def test_nothing_to_update(self, controller, two_lot_variant):
        variant, _, _ = two_lot_variant
        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
        )

        with pytest.raises(ValidationError):
            controller.update_customer_order(order.id)

    def test_unknown_order(self, controller):
        with pytest.raises(CustomerOrderNotFoundError):
            controller.update_customer_order(uuid4(), customer_name="x")
