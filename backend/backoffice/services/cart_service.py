# Overview: Service-layer operations for customer carts.

"""
Cart rules:
- One cart per customer, created on first add.
- Quantities are in the product's unit of sale (packs for six-pack products).
- Stock checks here are a courtesy to the shopper; they reserve nothing.
  The binding check happens when the order is committed.
- The price snapshot on a line is refreshed on every mutation and is only
  used for display; checkout reprices from the product record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import Cart, CartLine, Product
from ..models.orders import SALE_UNIT_PACK
from backoffice.time_utils import utcnow
from .concurrency import run_with_retry
from .inventory_service import get_product
from .pack_service import PackConversionEngine, default_engine, money, vat_for


@dataclass
class CartLineSummary:
    cart_line_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    is_six_pack: bool
    pack_quantity: int
    actual_units: int
    available: bool = True

    def to_dict(self) -> dict:
        return {
            "cart_line_id": self.cart_line_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": f"{self.unit_price:.2f}",
            "total_price": f"{self.total_price:.2f}",
            "is_six_pack": self.is_six_pack,
            "pack_quantity": self.pack_quantity,
            "actual_units": self.actual_units,
            "available": self.available,
        }


@dataclass
class CartSummary:
    customer_id: int
    subtotal: Decimal = Decimal("0.00")
    vat: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    total_items: int = 0
    lines: list[CartLineSummary] = field(default_factory=list)
    # Lines for retired products; shown to the shopper but never priced into totals
    unavailable_lines: list[CartLineSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "subtotal": f"{self.subtotal:.2f}",
            "vat": f"{self.vat:.2f}",
            "total": f"{self.total:.2f}",
            "total_items": self.total_items,
            "lines": [line.to_dict() for line in self.lines],
            "unavailable_lines": [line.to_dict() for line in self.unavailable_lines],
        }


def _require_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", details={"quantity": quantity})
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than 0.", details={"quantity": quantity})


def _check_stock(product: Product, quantity: int, engine: PackConversionEngine) -> None:
    units_needed = engine.units_to_deduct(quantity, product.is_six_pack, product.pack_quantity)
    if units_needed > product.stock_level:
        raise InsufficientStockError(
            f"Insufficient stock. Only {product.stock_level} units available.",
            details={
                "product_id": product.id,
                "available": product.stock_level,
                "requested": units_needed,
            },
        )


def get_cart(customer_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(customer_id=customer_id).first()


def _get_or_create_cart(customer_id: int) -> Cart:
    cart = get_cart(customer_id)
    if cart is None:
        cart = Cart(customer_id=customer_id)
        db.session.add(cart)
        db.session.flush()
    return cart


def add_item(customer_id: int, product_id: int, quantity: int,
             engine: PackConversionEngine = default_engine) -> CartLine:
    """Add quantity of a product, merging into the existing line for that product."""
    _require_quantity(quantity)

    def _op():
        product = get_product(product_id, require_active=True)
        _check_stock(product, quantity, engine)

        cart = _get_or_create_cart(customer_id)
        pricing = engine.line_pricing(product, SALE_UNIT_PACK)

        line = db.session.query(CartLine).filter_by(cart_id=cart.id, product_id=product_id).first()
        if line is not None:
            _check_stock(product, line.quantity + quantity, engine)
            line.quantity += quantity
            line.unit_price_snapshot = pricing.unit_price
        else:
            line = CartLine(
                cart_id=cart.id,
                product_id=product_id,
                quantity=quantity,
                unit_price_snapshot=pricing.unit_price,
            )
            db.session.add(line)

        cart.updated_at = utcnow()
        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_item(line_id: int) -> bool:
    """Delete a cart line. Returns False when it was already gone."""
    def _op():
        line = db.session.get(CartLine, line_id)
        if line is None:
            return False
        cart = db.session.get(Cart, line.cart_id)
        db.session.delete(line)
        if cart is not None:
            cart.updated_at = utcnow()
        db.session.commit()
        return True

    return run_with_retry(_op)


def update_quantity(line_id: int, quantity: int,
                    engine: PackConversionEngine = default_engine) -> CartLine | None:
    """
    Set a line's quantity. quantity <= 0 removes the line and returns None.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", details={"quantity": quantity})
    if quantity <= 0:
        remove_item(line_id)
        return None

    def _op():
        line = db.session.get(CartLine, line_id)
        if line is None:
            raise NotFoundError("Cart line not found", details={"cart_line_id": line_id})
        product = get_product(line.product_id, require_active=True)
        _check_stock(product, quantity, engine)

        line.quantity = quantity
        line.unit_price_snapshot = engine.line_pricing(product, SALE_UNIT_PACK).unit_price
        cart = db.session.get(Cart, line.cart_id)
        cart.updated_at = utcnow()
        db.session.commit()
        return line

    return run_with_retry(_op)


def clear_cart(customer_id: int) -> bool:
    """Remove every line from the customer's cart. Returns False if there was nothing to clear."""
    def _op():
        cart = get_cart(customer_id)
        if cart is None:
            return False
        deleted = db.session.query(CartLine).filter_by(cart_id=cart.id).delete(synchronize_session=False)
        cart.updated_at = utcnow()
        db.session.commit()
        return deleted > 0

    return run_with_retry(_op)


def get_cart_lines(customer_id: int) -> list[CartLine]:
    cart = get_cart(customer_id)
    if cart is None:
        return []
    return db.session.query(CartLine).filter_by(cart_id=cart.id).order_by(CartLine.id.asc()).all()


def summarize(customer_id: int, engine: PackConversionEngine = default_engine) -> CartSummary:
    """
    Priced view of the cart at current product prices. Reads only.

    Lines whose product has been retired are listed under unavailable_lines
    and left out of the totals.
    """
    summary = CartSummary(customer_id=customer_id)
    subtotal = Decimal("0.00")

    for line in get_cart_lines(customer_id):
        product = db.session.get(Product, line.product_id)
        if product is None:
            continue
        pricing = engine.line_pricing(product, SALE_UNIT_PACK)
        line_total = money(pricing.unit_price * line.quantity)
        available = product.is_active
        if available:
            subtotal += line_total
            summary.total_items += line.quantity
        target = summary.lines if available else summary.unavailable_lines
        target.append(CartLineSummary(
            cart_line_id=line.id,
            product_id=product.id,
            product_name=product.name,
            quantity=line.quantity,
            unit_price=pricing.unit_price,
            total_price=line_total,
            is_six_pack=product.is_six_pack,
            pack_quantity=product.units_per_pack,
            actual_units=engine.units_to_deduct(line.quantity, product.is_six_pack, product.pack_quantity),
            available=available,
        ))

    summary.subtotal = money(subtotal)
    summary.vat = vat_for(summary.subtotal)
    summary.total = money(summary.subtotal + summary.vat)
    return summary
