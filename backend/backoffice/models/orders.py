from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z

ORDER_PENDING = "PENDING"
ORDER_APPROVED = "APPROVED"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"
ORDER_REFUNDED = "REFUNDED"
ORDER_STATUSES = (ORDER_PENDING, ORDER_APPROVED, ORDER_COMPLETED, ORDER_CANCELLED, ORDER_REFUNDED)

PAYMENT_CASH = "CASH"
PAYMENT_CREDIT_CARD = "CREDIT_CARD"
PAYMENT_DEBIT_CARD = "DEBIT_CARD"
PAYMENT_EFT = "EFT"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CREDIT_CARD, PAYMENT_DEBIT_CARD, PAYMENT_EFT)

SALE_UNIT_PACK = "PACK"
SALE_UNIT_SINGLE = "SINGLE"
SALE_UNITS = (SALE_UNIT_PACK, SALE_UNIT_SINGLE)


def _money(value) -> str | None:
    return None if value is None else f"{value:.2f}"


class Order(db.Model):
    """
    Committed order header.

    Totals are frozen at commit time. After that only status and the
    approval/cancellation/refund columns change, always through
    order_service (conditional status UPDATEs).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    processed_by_user_id = db.Column(db.Integer, nullable=False)
    approved_by_user_id = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)
    order_date = db.Column(db.DateTime, nullable=False, default=utcnow)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False)
    gross_profit = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)
    payment_reference = db.Column(db.String(64), nullable=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=True)
    refund_date = db.Column(db.DateTime, nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship("OrderLine", lazy=True, order_by="OrderLine.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def profit_margin(self) -> Decimal:
        if not self.total_amount:
            return Decimal("0.00")
        return (self.gross_profit / self.total_amount * 100).quantize(Decimal("0.01"))

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "processed_by_user_id": self.processed_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "subtotal": _money(self.subtotal),
            "vat_amount": _money(self.vat_amount),
            "total_amount": _money(self.total_amount),
            "total_cost": _money(self.total_cost),
            "gross_profit": _money(self.gross_profit),
            "profit_margin": _money(self.profit_margin),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "refund_amount": _money(self.refund_amount),
            "refund_date": to_utc_z(self.refund_date),
            "refund_reason": self.refund_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    Immutable snapshot of one sold product.

    stock_units records exactly how many items were deducted, so a later
    cancel/refund returns the same amount even if the product's pack size
    has since changed.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(100), nullable=False)

    sale_unit = db.Column(db.String(8), nullable=False, default=SALE_UNIT_PACK)
    quantity = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False)
    single_unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False)

    is_six_pack = db.Column(db.Boolean, nullable=False, default=False)
    pack_quantity = db.Column(db.Integer, nullable=False, default=1)
    stock_units = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sale_unit": self.sale_unit,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "unit_cost": _money(self.unit_cost),
            "single_unit_price": _money(self.single_unit_price),
            "total_price": _money(self.total_price),
            "total_cost": _money(self.total_cost),
            "is_six_pack": self.is_six_pack,
            "pack_quantity": self.pack_quantity,
            "stock_units": self.stock_units,
        }
