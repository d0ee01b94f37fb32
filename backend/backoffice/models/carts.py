from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z


class Cart(db.Model):
    """One mutable cart per customer. Owns its lines; deleting it deletes them."""
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    lines = db.relationship(
        "CartLine",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy=True,
        order_by="CartLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class CartLine(db.Model):
    """
    Cart line item.

    quantity is in the product's unit of sale (packs for six-pack products).
    unit_price_snapshot is re-priced on every mutation and is display-only;
    checkout always reprices from the current product record.
    """
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_lines_cart_product"),
        db.CheckConstraint("quantity >= 1", name="ck_cart_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_snapshot = db.Column(db.Numeric(12, 2), nullable=False)

    added_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_snapshot": f"{self.unit_price_snapshot:.2f}",
            "added_at": to_utc_z(self.added_at),
        }
