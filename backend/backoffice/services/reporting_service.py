# Overview: Service-layer operations for reporting; read-only rollups over committed data.

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, time
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from backoffice.extensions import db
from backoffice.errors import ValidationError
from backoffice.models import Event, EventBooking, Order, OrderLine
from backoffice.models.events import BOOKING_ATTENDED, BOOKING_CONFIRMED, EVENT_CANCELLED
from backoffice.models.orders import ORDER_COMPLETED
from backoffice.services.inventory_service import inventory_value, low_stock_products
from backoffice.services.pack_service import money
from backoffice.time_utils import normalize_datetime, parse_iso_datetime, to_utc_z

CATEGORY_BEVERAGES = "Beverages"
CATEGORY_FOOD = "Food"


def _fmt(value) -> str:
    return f"{money(value):.2f}"


def _window_edge(value, *, end: bool) -> datetime:
    """
    Accept datetime, date, or ISO string. A bare date covers the whole day,
    so an end of "2026-01-31" includes orders placed late that day.
    """
    if isinstance(value, str):
        stripped = value.strip()
        if len(stripped) == 10:
            value = date.fromisoformat(stripped)
        else:
            value = parse_iso_datetime(stripped)
    if isinstance(value, datetime):
        return normalize_datetime(value)
    if isinstance(value, date):
        return datetime.combine(value, time.max if end else time.min)
    raise ValidationError("start and end are required dates")


def _resolve_window(start, end) -> tuple[datetime, datetime]:
    try:
        start_dt = _window_edge(start, end=False)
        end_dt = _window_edge(end, end=True)
    except ValueError as exc:
        raise ValidationError("start/end must be ISO-8601 dates") from exc
    if start_dt > end_dt:
        raise ValidationError("start must not be after end")
    return start_dt, end_dt


def _completed_orders(start_dt: datetime, end_dt: datetime) -> list[Order]:
    return db.session.query(Order).filter(
        Order.status == ORDER_COMPLETED,
        Order.order_date >= start_dt,
        Order.order_date <= end_dt,
    ).order_by(Order.order_date.asc(), Order.id.asc()).all()


def _lines_for(order_ids: list[int]) -> list[OrderLine]:
    if not order_ids:
        return []
    return db.session.query(OrderLine).filter(OrderLine.order_id.in_(order_ids)).all()


def generate_sales_report(start, end, *, top_n: int | None = None) -> dict:
    """
    Sales rollup over COMPLETED orders with order_date in [start, end].

    average_profit_margin = total_gross_profit / total_sales * 100 (0 when no sales).
    Top products are ranked by line revenue; actual_units_sold counts single
    items (packs multiplied out).
    """
    start_dt, end_dt = _resolve_window(start, end)
    if top_n is None:
        top_n = int(current_app.config.get("REPORT_TOP_PRODUCTS", 10))

    orders = _completed_orders(start_dt, end_dt)
    total_sales = sum((o.total_amount for o in orders), Decimal("0"))
    total_vat = sum((o.vat_amount for o in orders), Decimal("0"))
    total_profit = sum((o.gross_profit for o in orders), Decimal("0"))
    margin = money(total_profit / total_sales * 100) if total_sales > 0 else Decimal("0.00")

    products: dict[int, dict] = {}
    for line in _lines_for([o.id for o in orders]):
        row = products.setdefault(line.product_id, {
            "product_id": line.product_id,
            "product_name": line.product_name,
            "is_six_pack": line.is_six_pack,
            "total_quantity": 0,
            "actual_units_sold": 0,
            "total_revenue": Decimal("0"),
        })
        row["total_quantity"] += line.quantity
        row["actual_units_sold"] += line.stock_units
        row["total_revenue"] += line.total_price

    ranked = sorted(products.values(), key=lambda r: (-r["total_revenue"], r["product_id"]))[:top_n]

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_orders": len(orders),
        "total_sales": _fmt(total_sales),
        "total_vat": _fmt(total_vat),
        "total_gross_profit": _fmt(total_profit),
        "average_profit_margin": _fmt(margin),
        "top_selling_products": [
            {**row, "total_revenue": _fmt(row["total_revenue"])}
            for row in ranked
        ],
    }


def generate_financial_report(start, end) -> dict:
    """Revenue, cost and profit for COMPLETED orders, split by category and month."""
    start_dt, end_dt = _resolve_window(start, end)
    orders = _completed_orders(start_dt, end_dt)
    lines = _lines_for([o.id for o in orders])

    total_revenue = sum((o.total_amount for o in orders), Decimal("0"))
    total_costs = sum((o.total_cost for o in orders), Decimal("0"))
    gross_profit = sum((o.gross_profit for o in orders), Decimal("0"))

    by_category: dict[str, Decimal] = {}
    for line in lines:
        category = CATEGORY_BEVERAGES if line.is_six_pack else CATEGORY_FOOD
        by_category[category] = by_category.get(category, Decimal("0")) + line.total_price

    monthly: "OrderedDict[str, dict]" = OrderedDict()
    for order in orders:
        key = order.order_date.strftime("%Y-%m")
        bucket = monthly.setdefault(key, {"month": key, "revenue": Decimal("0"), "profit": Decimal("0")})
        bucket["revenue"] += order.total_amount
        bucket["profit"] += order.gross_profit

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_revenue": _fmt(total_revenue),
        "total_costs": _fmt(total_costs),
        "gross_profit": _fmt(gross_profit),
        "net_profit": _fmt(gross_profit),
        "revenue_by_category": [
            {
                "category": category,
                "amount": _fmt(amount),
                "percentage": _fmt(amount / total_revenue * 100) if total_revenue > 0 else "0.00",
            }
            for category, amount in sorted(by_category.items())
        ],
        "monthly_summaries": [
            {"month": b["month"], "revenue": _fmt(b["revenue"]), "profit": _fmt(b["profit"])}
            for b in monthly.values()
        ],
    }


def generate_attendance_report(start, end) -> dict:
    """Seats sold versus capacity for non-cancelled events dated within [start, end]."""
    start_dt, end_dt = _resolve_window(start, end)

    events = db.session.query(Event).filter(
        Event.event_date >= start_dt,
        Event.event_date <= end_dt,
        Event.status != EVENT_CANCELLED,
    ).order_by(Event.event_date.asc()).all()

    booked = dict(
        db.session.query(
            EventBooking.event_id,
            func.coalesce(func.sum(EventBooking.number_of_tickets), 0),
        ).filter(
            EventBooking.event_id.in_([e.id for e in events] or [0]),
            EventBooking.status.in_([BOOKING_CONFIRMED, BOOKING_ATTENDED]),
        ).group_by(EventBooking.event_id).all()
    )

    rows = []
    total_capacity = 0
    total_tickets = 0
    total_revenue = Decimal("0")
    for event in events:
        tickets = int(booked.get(event.id, 0))
        revenue = money(event.ticket_price * tickets)
        occupancy = money(Decimal(tickets) / event.max_attendees * 100) if event.max_attendees else Decimal("0")
        total_capacity += event.max_attendees
        total_tickets += tickets
        total_revenue += revenue
        rows.append({
            "event_id": event.id,
            "name": event.name,
            "event_date": to_utc_z(event.event_date),
            "status": event.status,
            "max_attendees": event.max_attendees,
            "current_attendees": event.current_attendees,
            "tickets_sold": tickets,
            "occupancy_pct": _fmt(occupancy),
            "ticket_revenue": _fmt(revenue),
        })

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_events": len(rows),
        "total_capacity": total_capacity,
        "total_tickets_sold": total_tickets,
        "total_ticket_revenue": _fmt(total_revenue),
        "events": rows,
    }


def inventory_report() -> dict:
    low = low_stock_products()
    return {
        "total_inventory_value": _fmt(inventory_value()),
        "low_stock": [
            {
                "product_id": p.id,
                "name": p.name,
                "stock_level": p.stock_level,
                "minimum_stock_level": p.minimum_stock_level,
                "stock_status": p.stock_status,
            }
            for p in low
        ],
    }
