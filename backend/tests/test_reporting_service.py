from datetime import datetime, timedelta, timezone

import pytest

from backoffice.errors import ValidationError
from backoffice.models import Order
from backoffice.models.orders import ORDER_PENDING
from backoffice.services import event_service, order_service, reporting_service
from backoffice.services.order_service import OrderItemRequest
from backoffice.time_utils import utcnow

CASHIER = 7


@pytest.fixture
def today():
    return utcnow().date()


def _backdate(db_session, order_id, when: datetime):
    order = db_session.get(Order, order_id)
    order.order_date = when
    db_session.commit()


def test_sales_report_counts_completed_orders_only(db_session, today, t_bone, castle_lager):
    order_service.create_order([OrderItemRequest(t_bone.id, 3)], CASHIER)
    order_service.create_order([OrderItemRequest(castle_lager.id, 2)], CASHIER)
    order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER, status=ORDER_PENDING)
    cancelled = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
    order_service.cancel_order(cancelled.id)

    report = reporting_service.generate_sales_report(today, today)

    assert report["total_orders"] == 2
    # (360 + 54) + (50 + 7.50)
    assert report["total_sales"] == "471.50"
    assert report["total_vat"] == "61.50"
    # (360 - 210) + (50 - 30)
    assert report["total_gross_profit"] == "170.00"
    assert report["average_profit_margin"] == "36.06"


def test_top_products_ranked_by_revenue_with_units(db_session, today, t_bone, castle_lager):
    order_service.create_order([OrderItemRequest(castle_lager.id, 2)], CASHIER)
    order_service.create_order([OrderItemRequest(castle_lager.id, 6, "SINGLE")], CASHIER)
    order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)

    report = reporting_service.generate_sales_report(today, today, top_n=5)
    top = report["top_selling_products"]

    assert [row["product_id"] for row in top] == [t_bone.id, castle_lager.id]
    lager = top[1]
    assert lager["total_quantity"] == 8
    assert lager["actual_units_sold"] == 18
    assert lager["total_revenue"] == "75.02"


def test_top_n_limits_rows(db_session, today, t_bone, castle_lager):
    order_service.create_order([OrderItemRequest(t_bone.id, 1), OrderItemRequest(castle_lager.id, 1)], CASHIER)

    report = reporting_service.generate_sales_report(today, today, top_n=1)
    assert len(report["top_selling_products"]) == 1


def test_top_n_defaults_to_config(app, db_session, today, make_product):
    for i in range(12):
        product = make_product(name=f"Item {i}", unit_price=f"{10 + i}.00", cost_price="5.00")
        order_service.create_order([OrderItemRequest(product.id, 1)], CASHIER)

    report = reporting_service.generate_sales_report(today, today)
    assert len(report["top_selling_products"]) == app.config["REPORT_TOP_PRODUCTS"]


def test_date_window_is_inclusive_of_whole_end_day(db_session, t_bone):
    order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
    _backdate(db_session, order.id, datetime(2026, 3, 31, 23, 30))

    march = reporting_service.generate_sales_report("2026-03-01", "2026-03-31")
    april = reporting_service.generate_sales_report("2026-04-01", "2026-04-30")

    assert march["total_orders"] == 1
    assert april["total_orders"] == 0


def test_timezone_aware_edges_are_converted_to_utc(db_session, t_bone):
    order = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
    _backdate(db_session, order.id, datetime(2025, 12, 31, 23, 30))

    # 01:00 at +02:00 is 23:00 UTC the previous day
    plus_two = timezone(timedelta(hours=2))
    report = reporting_service.generate_sales_report(datetime(2026, 1, 1, 1, 0, tzinfo=plus_two), "2026-01-31")
    assert report["total_orders"] == 1

    report = reporting_service.generate_sales_report(datetime(2026, 1, 1, tzinfo=timezone.utc), "2026-01-31")
    assert report["total_orders"] == 0


def test_empty_window_has_zero_margin(db_session, today):
    report = reporting_service.generate_sales_report(today, today)
    assert report["total_sales"] == "0.00"
    assert report["average_profit_margin"] == "0.00"
    assert report["top_selling_products"] == []


def test_start_after_end_rejected(db_session, today):
    with pytest.raises(ValidationError):
        reporting_service.generate_sales_report(today, today - timedelta(days=1))


def test_bad_dates_rejected(db_session):
    with pytest.raises(ValidationError):
        reporting_service.generate_sales_report("yesterday", "2026-01-01")


def test_financial_report_categories_and_months(db_session, t_bone, castle_lager):
    jan = order_service.create_order([OrderItemRequest(t_bone.id, 1)], CASHIER)
    feb = order_service.create_order([OrderItemRequest(castle_lager.id, 2)], CASHIER)
    _backdate(db_session, jan.id, datetime(2026, 1, 15, 12, 0))
    _backdate(db_session, feb.id, datetime(2026, 2, 3, 18, 0))

    report = reporting_service.generate_financial_report("2026-01-01", "2026-02-28")

    assert report["total_revenue"] == "195.50"
    assert report["total_costs"] == "100.00"
    assert report["gross_profit"] == "70.00"
    categories = {row["category"]: row["amount"] for row in report["revenue_by_category"]}
    assert categories == {"Beverages": "50.00", "Food": "120.00"}
    assert [m["month"] for m in report["monthly_summaries"]] == ["2026-01", "2026-02"]
    assert report["monthly_summaries"][0]["revenue"] == "138.00"


def test_attendance_report(db_session, make_event):
    event = make_event(max_attendees=10, ticket_price="100.00", days_ahead=2)
    booking = event_service.book_event(event.id, 1, 4)
    event_service.book_event(event.id, 2, 1)
    event_service.cancel_booking(booking.id)
    start = utcnow().date()

    report = reporting_service.generate_attendance_report(start, start + timedelta(days=7))

    assert report["total_events"] == 1
    row = report["events"][0]
    assert row["tickets_sold"] == 1
    assert row["occupancy_pct"] == "10.00"
    assert row["ticket_revenue"] == "100.00"


def test_inventory_report(db_session, make_product):
    make_product(name="Boerewors", unit_price="80.00", cost_price="40.00", stock_level=2)

    report = reporting_service.inventory_report()
    assert report["total_inventory_value"] == "80.00"
    assert [row["name"] for row in report["low_stock"]] == ["Boerewors"]
