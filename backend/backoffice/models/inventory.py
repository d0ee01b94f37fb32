from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import utcnow, to_utc_z

PRODUCT_ACTIVE = "ACTIVE"
PRODUCT_RETIRED = "RETIRED"
PRODUCT_LIFECYCLE_STATES = (PRODUCT_ACTIVE, PRODUCT_RETIRED)

DEFAULT_PACK_QUANTITY = 6


def _money(value) -> str | None:
    return None if value is None else f"{value:.2f}"


class Product(db.Model):
    """
    Product master data.

    PRICING:
    unit_price / cost_price are quoted per unit of sale. For six-pack products
    (is_six_pack=True) that unit of sale is the whole pack; single-item figures
    are derived by the pack service and never stored.

    STOCK:
    stock_level always counts individual items, never packs. It is only ever
    changed through inventory_service.adjust() (single conditional UPDATE),
    and the CHECK constraint keeps it non-negative even if that is bypassed.

    LIFECYCLE:
    Retired products stay in the table so historical order lines keep their
    product_id. Every catalog query filters on lifecycle_status explicitly.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_level >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("pack_quantity >= 1", name="ck_products_pack_quantity_positive"),
        db.Index("ix_products_lifecycle_name", "lifecycle_status", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    stock_level = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock_level = db.Column(db.Integer, nullable=False, default=10)

    # Fixed-point money, 2 dp (pack figures when is_six_pack)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False)

    is_six_pack = db.Column(db.Boolean, nullable=False, default=False)
    pack_quantity = db.Column(db.Integer, nullable=False, default=DEFAULT_PACK_QUANTITY)

    lifecycle_status = db.Column(db.String(16), nullable=False, default=PRODUCT_ACTIVE, index=True)

    # Supplier records live in the external catalog; id only
    supplier_id = db.Column(db.Integer, nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.lifecycle_status == PRODUCT_ACTIVE

    @property
    def units_per_pack(self) -> int:
        if not self.is_six_pack:
            return 1
        return self.pack_quantity if self.pack_quantity and self.pack_quantity > 0 else DEFAULT_PACK_QUANTITY

    @property
    def available_packs(self) -> int:
        return self.stock_level // self.units_per_pack

    @property
    def stock_status(self) -> str:
        if self.stock_level == 0:
            return "OUT_OF_STOCK"
        if self.stock_level <= self.minimum_stock_level:
            return "LOW_STOCK"
        return "IN_STOCK"

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_level} six_pack={self.is_six_pack}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "stock_level": self.stock_level,
            "minimum_stock_level": self.minimum_stock_level,
            "stock_status": self.stock_status,
            "unit_price": _money(self.unit_price),
            "cost_price": _money(self.cost_price),
            "is_six_pack": self.is_six_pack,
            "pack_quantity": self.pack_quantity,
            "available_packs": self.available_packs,
            "lifecycle_status": self.lifecycle_status,
            "supplier_id": self.supplier_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of stock changes.

    One row per successful inventory_service.adjust(), written in the same
    transaction as the stock UPDATE. Never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # ORDER, ORDER_CANCEL, ORDER_REFUND, PACK_SALE, SINGLE_UNIT_SALE,
    # EVENT_ALLOCATION, EVENT_RELEASE, ADJUSTMENT, RECEIVE
    reason = db.Column(db.String(32), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "reason": self.reason,
            "quantity_delta": self.quantity_delta,
            "stock_after": self.stock_after,
            "reference": self.reference,
            "occurred_at": to_utc_z(self.occurred_at),
        }
