"""
Order transactions - cart/line items to committed orders

WHY: An order is the only place where money and stock move together. Header,
lines and every stock deduction are one all-or-nothing unit; if any product
runs out at commit time, nothing about the order survives.

Lifecycle:
    PENDING   -> APPROVED | CANCELLED
    APPROVED  -> COMPLETED | CANCELLED
    COMPLETED -> REFUNDED | CANCELLED

Cancelling or refunding returns each line's recorded stock_units exactly
once: the status flip is a conditional UPDATE, so a second caller (or a
retry) finds nothing to flip and does not credit stock again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..errors import EmptyCartError, EngineError, InvalidStateError, NotFoundError, ValidationError
from ..models import Order, OrderLine
from ..models.orders import (
    ORDER_APPROVED,
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_PENDING,
    ORDER_REFUNDED,
    ORDER_STATUSES,
    PAYMENT_CASH,
    PAYMENT_METHODS,
    SALE_UNIT_PACK,
    SALE_UNITS,
)
from backoffice.time_utils import day_bounds, normalize_datetime, utcnow
from . import cart_service
from .concurrency import run_with_retry
from .inventory_service import (
    REASON_ORDER,
    REASON_ORDER_CANCEL,
    REASON_ORDER_REFUND,
    adjust,
    get_product,
    return_stock,
)
from .pack_service import PackConversionEngine, default_engine, money, vat_for

ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_APPROVED, ORDER_CANCELLED},
    ORDER_APPROVED: {ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_COMPLETED: {ORDER_REFUNDED, ORDER_CANCELLED},
    ORDER_CANCELLED: set(),
    ORDER_REFUNDED: set(),
}

CANCELLABLE_STATUSES = (ORDER_PENDING, ORDER_APPROVED, ORDER_COMPLETED)

# Statuses an order may be created in directly
INITIAL_STATUSES = (ORDER_PENDING, ORDER_COMPLETED)


@dataclass(frozen=True)
class OrderItemRequest:
    product_id: int
    quantity: int
    sale_unit: str = SALE_UNIT_PACK


@dataclass
class OrderLineSummary:
    product_id: int
    product_name: str
    sale_unit: str
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    single_unit_price: Decimal
    total_price: Decimal
    total_cost: Decimal
    is_six_pack: bool
    pack_quantity: int
    actual_units: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sale_unit": self.sale_unit,
            "quantity": self.quantity,
            "unit_price": f"{self.unit_price:.2f}",
            "single_unit_price": f"{self.single_unit_price:.2f}",
            "total_price": f"{self.total_price:.2f}",
            "is_six_pack": self.is_six_pack,
            "pack_quantity": self.pack_quantity,
            "actual_units": self.actual_units,
        }


@dataclass
class OrderSummary:
    subtotal: Decimal = Decimal("0.00")
    vat_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    total_cost: Decimal = Decimal("0.00")
    gross_profit: Decimal = Decimal("0.00")
    items: list[OrderLineSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "subtotal": f"{self.subtotal:.2f}",
            "vat_amount": f"{self.vat_amount:.2f}",
            "total_amount": f"{self.total_amount:.2f}",
            "total_cost": f"{self.total_cost:.2f}",
            "gross_profit": f"{self.gross_profit:.2f}",
            "items": [item.to_dict() for item in self.items],
        }


def _coerce_item(item) -> OrderItemRequest:
    if isinstance(item, dict):
        try:
            item = OrderItemRequest(
                product_id=item["product_id"],
                quantity=item["quantity"],
                sale_unit=item.get("sale_unit") or SALE_UNIT_PACK,
            )
        except KeyError as exc:
            raise ValidationError(f"Order line missing {exc.args[0]}") from exc
    if not isinstance(item, OrderItemRequest):
        raise ValidationError("Order lines must be product/quantity pairs")

    quantity = item.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be greater than 0.", details={"product_id": item.product_id})
    if item.sale_unit not in SALE_UNITS:
        raise ValidationError(f"Unknown sale unit {item.sale_unit!r}")
    return item


def calculate_order_summary(items, engine: PackConversionEngine = default_engine) -> OrderSummary:
    """
    Price line items from the CURRENT product records.

    subtotal     = sum(quantity * unit_price)
    vat_amount   = round(subtotal * 0.15, 2)
    total_amount = subtotal + vat_amount
    gross_profit = round(subtotal - sum(quantity * unit_cost), 2)
    """
    summary = OrderSummary()
    subtotal = Decimal("0.00")
    total_cost = Decimal("0.00")

    for raw in items:
        item = _coerce_item(raw)
        product = get_product(item.product_id, require_active=True)
        pricing = engine.line_pricing(product, item.sale_unit)

        line_total = money(pricing.unit_price * item.quantity)
        line_cost = money(pricing.unit_cost * item.quantity)
        subtotal += line_total
        total_cost += line_cost

        summary.items.append(OrderLineSummary(
            product_id=product.id,
            product_name=product.name,
            sale_unit=pricing.sale_unit,
            quantity=item.quantity,
            unit_price=pricing.unit_price,
            unit_cost=pricing.unit_cost,
            single_unit_price=pricing.single_unit_price,
            total_price=line_total,
            total_cost=line_cost,
            is_six_pack=product.is_six_pack,
            pack_quantity=product.units_per_pack,
            actual_units=item.quantity * pricing.stock_units_per_quantity,
        ))

    summary.subtotal = money(subtotal)
    summary.vat_amount = vat_for(summary.subtotal)
    summary.total_amount = money(summary.subtotal + summary.vat_amount)
    summary.total_cost = money(total_cost)
    summary.gross_profit = money(summary.subtotal - summary.total_cost)
    return summary


def _commit_order_locked(
    items,
    *,
    processed_by_user_id: int,
    customer_id: int | None,
    status: str,
    payment_method: str,
    payment_reference: str | None,
    engine: PackConversionEngine,
) -> Order:
    summary = calculate_order_summary(items, engine)

    order = Order(
        customer_id=customer_id,
        processed_by_user_id=processed_by_user_id,
        status=status,
        order_date=utcnow(),
        subtotal=summary.subtotal,
        vat_amount=summary.vat_amount,
        total_amount=summary.total_amount,
        total_cost=summary.total_cost,
        gross_profit=summary.gross_profit,
        payment_method=payment_method,
        payment_reference=payment_reference,
    )
    db.session.add(order)
    db.session.flush()

    for line in summary.items:
        db.session.add(OrderLine(
            order_id=order.id,
            product_id=line.product_id,
            product_name=line.product_name,
            sale_unit=line.sale_unit,
            quantity=line.quantity,
            unit_price=line.unit_price,
            unit_cost=line.unit_cost,
            single_unit_price=line.single_unit_price,
            total_price=line.total_price,
            total_cost=line.total_cost,
            is_six_pack=line.is_six_pack,
            pack_quantity=line.pack_quantity,
            stock_units=line.actual_units,
        ))
        # Authoritative, race-free stock check
        adjust(
            line.product_id,
            -line.actual_units,
            reason=REASON_ORDER,
            reference=f"order:{order.id}",
            commit=False,
        )

    return order


def _validate_payment_method(payment_method: str) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method {payment_method!r}")


def create_order(
    items,
    processed_by_user_id: int,
    *,
    customer_id: int | None = None,
    status: str = ORDER_COMPLETED,
    payment_method: str = PAYMENT_CASH,
    payment_reference: str | None = None,
    engine: PackConversionEngine = default_engine,
) -> Order:
    """
    Direct order entry (manager/cashier) from an explicit line list.

    Same pricing and atomic stock contract as create_order_from_cart.
    """
    items = [_coerce_item(item) for item in (items or [])]
    if not items:
        raise ValidationError("Order must contain at least one line")
    if status not in INITIAL_STATUSES:
        raise ValidationError(f"Orders cannot be created with status {status}")
    _validate_payment_method(payment_method)

    def _op():
        order = _commit_order_locked(
            items,
            processed_by_user_id=processed_by_user_id,
            customer_id=customer_id,
            status=status,
            payment_method=payment_method,
            payment_reference=payment_reference,
            engine=engine,
        )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s committed (%s, total %s)", order.id, order.status, order.total_amount)
    return order


def create_order_from_cart(
    customer_id: int,
    processed_by_user_id: int,
    *,
    payment_method: str = PAYMENT_CASH,
    payment_reference: str | None = None,
    engine: PackConversionEngine = default_engine,
) -> Order:
    """
    Checkout: convert the customer's cart into a PENDING order.

    Cart snapshot prices are ignored; every line is repriced from the product.
    The cart is cleared only after the order has committed, and a failure to
    clear it does not undo the order.
    """
    _validate_payment_method(payment_method)

    def _op():
        cart_lines = cart_service.get_cart_lines(customer_id)
        if not cart_lines:
            raise EmptyCartError("Cart is empty", details={"customer_id": customer_id})

        items = [
            OrderItemRequest(product_id=line.product_id, quantity=line.quantity, sale_unit=SALE_UNIT_PACK)
            for line in cart_lines
        ]
        order = _commit_order_locked(
            items,
            processed_by_user_id=processed_by_user_id,
            customer_id=customer_id,
            status=ORDER_PENDING,
            payment_method=payment_method,
            payment_reference=payment_reference,
            engine=engine,
        )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s committed from cart of customer %s", order.id, customer_id)

    try:
        cart_service.clear_cart(customer_id)
    except EngineError:
        current_app.logger.warning(
            "Order %s committed but cart of customer %s was not cleared", order.id, customer_id,
            exc_info=True,
        )
    return order


def get_order(order_id: int, *, customer_id: int | None = None) -> Order:
    """Fetch an order; with customer_id, only that customer's order is visible."""
    order = db.session.get(Order, order_id)
    if order is None or (customer_id is not None and order.customer_id != customer_id):
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order_lines(order_id: int) -> list[OrderLine]:
    return db.session.query(OrderLine).filter_by(order_id=order_id).order_by(OrderLine.id.asc()).all()


def list_orders(
    *,
    start=None,
    end=None,
    customer_id: int | None = None,
    status: str | None = None,
) -> list[Order]:
    query = db.session.query(Order)
    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt is not None:
        query = query.filter(Order.order_date >= start_dt)
    if end_dt is not None:
        query = query.filter(Order.order_date <= end_dt)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if status is not None:
        query = query.filter(Order.status == status)
    return query.order_by(Order.order_date.desc(), Order.id.desc()).all()


def daily_sales_total(day: date | datetime) -> Decimal:
    """Sum of total_amount over COMPLETED orders placed on the given day."""
    if isinstance(day, datetime):
        day = day.date()
    start_dt, end_dt = day_bounds(day)
    total = db.session.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(
        Order.status == ORDER_COMPLETED,
        Order.order_date >= start_dt,
        Order.order_date <= end_dt,
    ).scalar()
    return money(total or 0)


def _flip_status(order_id: int, from_statuses, to_status: str, **values) -> bool:
    """Conditional status change. False if the order was no longer in from_statuses."""
    result = db.session.execute(
        update(Order)
        .where(Order.id == order_id, Order.status.in_(list(from_statuses)))
        .values(status=to_status, version_id=Order.version_id + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _refreshed(order_id: int) -> Order:
    return db.session.get(Order, order_id, populate_existing=True)


def _restore_stock(order: Order, reason: str) -> None:
    for line in get_order_lines(order.id):
        return_stock(
            line.product_id,
            line.stock_units,
            reason=reason,
            reference=f"order:{order.id}",
            commit=False,
        )


def _invalid_transition(order: Order, to_status: str) -> InvalidStateError:
    return InvalidStateError(
        f"Cannot change order from {order.status} to {to_status}",
        details={"order_id": order.id, "status": order.status, "requested": to_status},
    )


def cancel_order(order_id: int, *, reason: str | None = None) -> Order:
    """
    Cancel and return every line's stock in one transaction.

    Cancelling an already cancelled order is a no-op (no second credit).
    Refunded orders cannot be cancelled.
    """
    def _op():
        order = get_order(order_id)
        if order.status == ORDER_CANCELLED:
            return order
        if order.status not in CANCELLABLE_STATUSES:
            raise _invalid_transition(order, ORDER_CANCELLED)

        flipped = _flip_status(
            order_id,
            CANCELLABLE_STATUSES,
            ORDER_CANCELLED,
            cancelled_at=utcnow(),
            cancellation_reason=reason,
        )
        order = _refreshed(order_id)
        if not flipped:
            # Lost a race with another status change
            if order.status == ORDER_CANCELLED:
                return order
            raise _invalid_transition(order, ORDER_CANCELLED)

        _restore_stock(order, REASON_ORDER_CANCEL)
        db.session.commit()
        current_app.logger.info("Order %s cancelled; stock returned", order_id)
        return order

    return run_with_retry(_op)


def refund_order(order_id: int, *, reason: str | None = None) -> Order:
    """COMPLETED -> REFUNDED; refunds the full total and returns stock."""
    def _op():
        order = get_order(order_id)
        if order.status != ORDER_COMPLETED:
            raise _invalid_transition(order, ORDER_REFUNDED)

        flipped = _flip_status(
            order_id,
            (ORDER_COMPLETED,),
            ORDER_REFUNDED,
            refund_amount=order.total_amount,
            refund_date=utcnow(),
            refund_reason=reason,
        )
        order = _refreshed(order_id)
        if not flipped:
            raise _invalid_transition(order, ORDER_REFUNDED)

        _restore_stock(order, REASON_ORDER_REFUND)
        db.session.commit()
        current_app.logger.info("Order %s refunded; stock returned", order_id)
        return order

    return run_with_retry(_op)


def _simple_transition(order_id: int, from_status: str, to_status: str, **values) -> Order:
    def _op():
        order = get_order(order_id)
        if order.status != from_status:
            raise _invalid_transition(order, to_status)
        flipped = _flip_status(order_id, (from_status,), to_status, **values)
        order = _refreshed(order_id)
        if not flipped:
            raise _invalid_transition(order, to_status)
        db.session.commit()
        return order

    return run_with_retry(_op)


def approve_order(order_id: int, approved_by_user_id: int | None = None) -> Order:
    return _simple_transition(order_id, ORDER_PENDING, ORDER_APPROVED, approved_by_user_id=approved_by_user_id)


def complete_order(order_id: int) -> Order:
    return _simple_transition(order_id, ORDER_APPROVED, ORDER_COMPLETED)


def update_order_status(
    order_id: int,
    new_status: str,
    *,
    actor_user_id: int | None = None,
    reason: str | None = None,
) -> Order:
    """Validated status change; dispatches to the operation that owns the transition."""
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status {new_status!r}")

    order = get_order(order_id)
    if new_status == ORDER_CANCELLED:
        return cancel_order(order_id, reason=reason)
    if new_status not in ALLOWED_TRANSITIONS[order.status]:
        raise _invalid_transition(order, new_status)

    if new_status == ORDER_APPROVED:
        return approve_order(order_id, actor_user_id)
    if new_status == ORDER_COMPLETED:
        return complete_order(order_id)
    return refund_order(order_id, reason=reason)
