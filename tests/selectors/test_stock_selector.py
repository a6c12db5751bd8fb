"""
Tests for StockSelector.

Available stock is always derived from the lots; these tests check that
every movement is reflected without any stored counter.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.exceptions import VariantNotFoundError
from stock_services.order_lifecycle_service import CustomerInfo, OrderLine, PurchaseLine
from tests.support import utc


class TestAvailableQuantity:
    def test_zero_without_lots(self, stock_selector, variant):
        assert stock_selector.available_quantity(variant.id) == 0

    def test_tracks_every_movement(self, controller, stock_selector, variant, receive_stock):
        receive_stock(variant, 6, cost_usd="1", arrival_date=utc(2023, 1, 1))
        assert stock_selector.available_quantity(variant.id) == 6

        order = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=4)]
        )
        assert stock_selector.available_quantity(variant.id) == 2

        controller.add_inventory_lot(variant.id, 3, cost_usd=Decimal("2"))
        assert stock_selector.available_quantity(variant.id) == 5

        controller.void_customer_order(order.id)
        assert stock_selector.available_quantity(variant.id) == 9

    def test_scoped_to_variant(self, stock_selector, create_variant, receive_stock):
        a = create_variant()
        b = create_variant()
        receive_stock(a, 2, cost_usd="1")

        assert stock_selector.available_quantity(b.id) == 0


class TestVariantStock:
    def test_counts_lots(self, controller, stock_selector, variant, receive_stock):
        receive_stock(variant, 2, cost_usd="1", arrival_date=utc(2023, 1, 1))
        receive_stock(variant, 3, cost_usd="1", arrival_date=utc(2023, 2, 1))
        controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=2)]
        )

        stock = stock_selector.variant_stock(variant.id)

        assert stock.available_quantity == 3
        assert stock.lot_count == 2
        assert stock.open_lot_count == 1
        assert stock.sku == variant.sku
        assert stock.label == f"Linen Shirt (Blue, M) - SKU: {variant.sku}"

    def test_unknown_variant(self, stock_selector):
        with pytest.raises(VariantNotFoundError):
            stock_selector.variant_stock(uuid4())


class TestLotsAndHistory:
    def test_depleted_lots_hidden_by_default(self, controller, stock_selector, variant, receive_stock):
        receive_stock(variant, 1, cost_usd="1", arrival_date=utc(2023, 1, 1))
        receive_stock(variant, 1, cost_usd="1", arrival_date=utc(2023, 2, 1))
        controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
        )

        assert len(stock_selector.lots_for_variant(variant.id)) == 1
        all_lots = stock_selector.lots_for_variant(variant.id, include_depleted=True)
        assert sorted(l.consumed_quantity for l in all_lots) == [0, 1]

    def test_stock_changes_newest_first_with_limit(
        self, controller, stock_selector, deterministic_clock, variant
    ):
        controller.record_manual_stock_change(variant.id, 1, actor="a")
        deterministic_clock.advance(10)
        controller.record_manual_stock_change(variant.id, 2, actor="b")

        history = stock_selector.stock_changes(variant.id)
        assert [e.change for e in history] == [2, 1]
        assert [e.change for e in stock_selector.stock_changes(variant.id, limit=1)] == [2]


class TestListings:
    def test_customer_orders_newest_first_with_lines(
        self, controller, stock_selector, deterministic_clock, variant, receive_stock
    ):
        receive_stock(variant, 5, cost_usd="2")
        first = controller.create_customer_order(
            CustomerInfo(name="Ada"), [OrderLine(variant_id=variant.id, quantity=1)]
        )
        deterministic_clock.advance(60)
        second = controller.create_customer_order(
            CustomerInfo(name="Bo"),
            [OrderLine(variant_id=variant.id, quantity=2, sale_price=Decimal("9"))],
        )
        controller.void_customer_order(first.id)

        orders = stock_selector.customer_orders()

        assert [o.order_id for o in orders] == [second.id, first.id]
        assert orders[0].lines[0].quantity == 2
        assert orders[0].lines[0].sale_price == Decimal("9")
        assert orders[0].total_cogs == Decimal("4.00")
        assert orders[1].status == "cancelled"
        assert orders[1].cancelled_at is not None
        assert len(stock_selector.customer_orders(limit=1)) == 1

    def test_purchase_orders_oldest_first_with_lines(
        self, controller, stock_selector, deterministic_clock, variant, receive_stock
    ):
        older = receive_stock(variant, 3, cost_usd="1", batch_number="B-OLD")
        deterministic_clock.advance(60)
        newer = controller.create_purchase_order(
            "B-NEW",
            [PurchaseLine(variant_id=variant.id, quantity_ordered=4, cost_per_item_usd=Decimal("2"))],
        )

        orders = stock_selector.purchase_orders()

        assert [o.order_id for o in orders] == [older.id, newer.id]
        assert orders[0].has_arrived is True
        assert orders[1].has_arrived is False
        assert orders[1].lines[0].quantity_ordered == 4
        assert orders[1].total_cost_usd == Decimal("8.00")

    def test_all_lots_carry_purchase_order_link(
        self, controller, stock_selector, deterministic_clock, create_variant, receive_stock
    ):
        shirt, hat = create_variant(), create_variant()
        order = receive_stock(shirt, 2, cost_usd="1", batch_number="B-LINK")
        deterministic_clock.advance(60)
        manual = controller.add_inventory_lot(hat.id, 5, cost_usd=Decimal("3"))

        listings = stock_selector.all_lots()

        assert [entry.lot.variant_id for entry in listings] == [shirt.id, hat.id]
        assert listings[0].purchase_order_id == order.id
        assert listings[0].batch_number == "B-LINK"
        assert listings[1].lot.lot_id == manual.id
        assert listings[1].purchase_order_id is None
        assert listings[1].batch_number is None
