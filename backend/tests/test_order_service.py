from datetime import timedelta
from decimal import Decimal

import pytest

from backoffice.errors import (
    EmptyCartError,
    InactiveProductError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from backoffice.models import Order, OrderLine, Product, StockMovement
from backoffice.models.orders import (
    ORDER_APPROVED,
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_PENDING,
    ORDER_REFUNDED,
)
from backoffice.services import cart_service, order_service, products_service
from backoffice.services.order_service import OrderItemRequest
from backoffice.time_utils import utcnow

CASHIER = 7
CUSTOMER = 42


def _stock(db_session, product_id):
    return db_session.get(Product, product_id, populate_existing=True).stock_level


class TestPricing:
    def test_two_six_packs_priced_at_pack_price(self, db_session, castle_lager):
        order = order_service.create_order(
            [OrderItemRequest(castle_lager.id, 2, "PACK")], CASHIER,
        )

        assert order.subtotal == Decimal("50.00")
        assert order.vat_amount == Decimal("7.50")
        assert order.total_amount == Decimal("57.50")
        assert order.total_cost == Decimal("30.00")
        assert order.gross_profit == Decimal("20.00")
        assert _stock(db_session, castle_lager.id) == 88

        line = order_service.get_order_lines(order.id)[0]
        assert line.stock_units == 12
        assert line.unit_price == Decimal("25.00")
        assert line.single_unit_price == Decimal("4.17")

    def test_twelve_singles_priced_at_derived_unit_price(self, db_session, castle_lager):
        order = order_service.create_order(
            [{"product_id": castle_lager.id, "quantity": 12, "sale_unit": "SINGLE"}], CASHIER,
        )

        assert order.subtotal == Decimal("50.04")
        assert _stock(db_session, castle_lager.id) == 88
        assert order_service.get_order_lines(order.id)[0].stock_units == 12

    def test_summary_matches_vat_formula(self, db_session, t_bone, castle_lager):
        summary = order_service.calculate_order_summary([
            OrderItemRequest(t_bone.id, 3),
            OrderItemRequest(castle_lager.id, 1),
        ])

        assert summary.subtotal == Decimal("385.00")
        assert summary.vat_amount == Decimal("57.75")
        assert summary.total_amount == summary.subtotal + summary.vat_amount
        assert summary.gross_profit == Decimal("160.00")

    def test_unknown_sale_unit_rejected(self, db_session, castle_lager):
        with pytest.raises(ValidationError):
            order_service.create_order([OrderItemRequest(castle_lager.id, 1, "CRATE")], CASHIER)


class TestCreateOrder:
    def test_direct_order_defaults_to_completed(self, db_session, t_bone):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 2)], CASHIER, customer_id=CUSTOMER)

        assert order.status == ORDER_COMPLETED
        assert order.processed_by_user_id == CASHIER
        assert order.customer_id == CUSTOMER

    def test_initial_status_must_be_pending_or_completed(self, db_session, t_bone):
        with pytest.raises(ValidationError):
            order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, status=ORDER_REFUNDED)

    def test_empty_items_rejected(self, db_session):
        with pytest.raises(ValidationError):
            order_service.create_order([], CASHIER)

    def test_payment_method_validated(self, db_session, t_bone):
        with pytest.raises(ValidationError):
            order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, payment_method="BITCOIN")

    def test_insufficient_stock_on_any_line_rolls_back_everything(self, db_session, t_bone, make_product):
        scarce = make_product(name="Lamb Chops", unit_price="95.00", cost_price="55.00", stock_level=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            order_service.create_order(
                [OrderItemRequest(t_bone.id, 5), OrderItemRequest(scarce.id, 3)], CASHIER,
            )

        assert exc_info.value.details["product_id"] == scarce.id
        assert _stock(db_session, t_bone.id) == 50
        assert _stock(db_session, scarce.id) == 2
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderLine).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_retired_product_cannot_be_ordered(self, db_session, t_bone):
        products_service.retire_product(t_bone.id)
        with pytest.raises(InactiveProductError):
            order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)

    def test_lines_keep_price_snapshot(self, db_session, t_bone):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
        products_service.update_product_prices(t_bone.id, {"unit_price": "999.00"})

        line = order_service.get_order_lines(order.id)[0]
        assert line.unit_price == Decimal("120.00")
        assert line.product_name == "T-Bone Steak"


class TestCheckout:
    def test_cart_checkout_creates_pending_order_and_clears_cart(self, db_session, t_bone):
        cart_service.add_item(CUSTOMER, t_bone.id, 3)

        order = order_service.create_order_from_cart(CUSTOMER, CASHIER)

        assert order.status == ORDER_PENDING
        assert order.subtotal == Decimal("360.00")
        assert order.vat_amount == Decimal("54.00")
        assert order.total_amount == Decimal("414.00")
        assert _stock(db_session, t_bone.id) == 47
        assert cart_service.get_cart_lines(CUSTOMER) == []

    def test_checkout_reprices_from_product(self, db_session, t_bone):
        cart_service.add_item(CUSTOMER, t_bone.id, 1)
        products_service.update_product_prices(t_bone.id, {"unit_price": "150.00"})

        order = order_service.create_order_from_cart(CUSTOMER, CASHIER)
        assert order.subtotal == Decimal("150.00")

    def test_empty_cart_checkout_writes_nothing(self, db_session):
        with pytest.raises(EmptyCartError) as exc_info:
            order_service.create_order_from_cart(CUSTOMER, CASHIER)

        assert isinstance(exc_info.value, ValidationError)
        assert db_session.query(Order).count() == 0
        assert db_session.query(StockMovement).count() == 0

    def test_stock_shortfall_at_checkout_keeps_cart(self, db_session, t_bone):
        cart_service.add_item(CUSTOMER, t_bone.id, 10)
        order_service.create_order([OrderItemRequest(t_bone.id, 45)], CASHIER)

        with pytest.raises(InsufficientStockError):
            order_service.create_order_from_cart(CUSTOMER, CASHIER)

        assert len(cart_service.get_cart_lines(CUSTOMER)) == 1
        assert _stock(db_session, t_bone.id) == 5
        assert db_session.query(Order).count() == 1


class TestLifecycle:
    def test_cancel_completed_order_restores_stock_once(self, db_session, castle_lager):
        order = order_service.create_order([OrderItemRequest(castle_lager.id, 2)], CASHIER)
        assert _stock(db_session, castle_lager.id) == 88

        cancelled = order_service.cancel_order(order.id, reason="customer changed mind")
        assert cancelled.status == ORDER_CANCELLED
        assert cancelled.cancellation_reason == "customer changed mind"
        assert cancelled.cancelled_at is not None
        assert _stock(db_session, castle_lager.id) == 100

        again = order_service.cancel_order(order.id)
        assert again.status == ORDER_CANCELLED
        assert _stock(db_session, castle_lager.id) == 100

    def test_cancel_pending_and_approved(self, db_session, t_bone):
        pending = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, status=ORDER_PENDING)
        approved = order_service.create_order([OrderItemRequest(t_bone.id, 2)], CASHIER, status=ORDER_PENDING)
        order_service.approve_order(approved.id, CASHIER)
        assert _stock(db_session, t_bone.id) == 47

        order_service.cancel_order(pending.id)
        order_service.cancel_order(approved.id)
        assert _stock(db_session, t_bone.id) == 50

    def test_full_happy_path(self, db_session, t_bone):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, status=ORDER_PENDING)

        order = order_service.update_order_status(order.id, ORDER_APPROVED, actor_user_id=99)
        assert order.status == ORDER_APPROVED
        assert order.approved_by_user_id == 99

        order = order_service.update_order_status(order.id, ORDER_COMPLETED)
        assert order.status == ORDER_COMPLETED

        order = order_service.update_order_status(order.id, ORDER_REFUNDED, reason="overcooked")
        assert order.status == ORDER_REFUNDED
        assert order.refund_amount == Decimal("138.00")
        assert order.refund_reason == "overcooked"
        assert order.cancellation_reason is None
        assert _stock(db_session, t_bone.id) == 50

    def test_refunded_order_cannot_be_cancelled(self, db_session, t_bone):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
        order_service.refund_order(order.id)

        with pytest.raises(InvalidStateError):
            order_service.cancel_order(order.id)
        assert _stock(db_session, t_bone.id) == 50

    @pytest.mark.parametrize("target", [ORDER_COMPLETED, ORDER_REFUNDED])
    def test_pending_cannot_skip_approval(self, db_session, t_bone, target):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, status=ORDER_PENDING)

        with pytest.raises(InvalidStateError):
            order_service.update_order_status(order.id, target)
        assert order_service.get_order(order.id).status == ORDER_PENDING

    def test_unknown_status_rejected(self, db_session, t_bone):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
        with pytest.raises(ValidationError):
            order_service.update_order_status(order.id, "SHIPPED")

    def test_version_moves_with_status(self, db_session, t_bone):
        order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, status=ORDER_PENDING)
        before = order.version_id

        approved = order_service.approve_order(order.id, CASHIER)
        assert approved.version_id == before + 1


class TestQueries:
    def test_customer_only_sees_own_orders(self, db_session, t_bone):
        mine = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, customer_id=CUSTOMER)
        order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, customer_id=CUSTOMER + 1)

        assert [o.id for o in order_service.list_orders(customer_id=CUSTOMER)] == [mine.id]
        assert order_service.get_order(mine.id, customer_id=CUSTOMER).id == mine.id
        with pytest.raises(NotFoundError):
            order_service.get_order(mine.id, customer_id=CUSTOMER + 1)

    def test_daily_sales_total_counts_completed_only(self, db_session, t_bone):
        order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
        order_service.create_order([OrderItemRequest(t_bone.id, 2)], CASHIER, status=ORDER_PENDING)
        cancelled = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
        order_service.cancel_order(cancelled.id)

        today = utcnow().date()
        assert order_service.daily_sales_total(today) == Decimal("138.00")
        assert order_service.daily_sales_total(today - timedelta(days=1)) == Decimal("0.00")
