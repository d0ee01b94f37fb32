# Overview: Service-layer operations for inventory; owns every change to Product.stock_level.

# backend/backoffice/services/inventory_service.py

"""
Stock Ledger Invariants (authoritative)

Stock model:
- Product.stock_level is the stored on-hand count of single items.
- It may never go negative, at any point, under any interleaving.

Check-and-apply:
- Every change goes through adjust(), which issues ONE statement:
      UPDATE products
         SET stock_level = stock_level + :delta
       WHERE id = :id AND stock_level + :delta >= 0
  The database evaluates the guard and the write together, so two
  concurrent consumers can never both pass a stale in-memory check.
- Zero rows updated means either the product is missing (NotFoundError)
  or the guard failed (InsufficientStockError). Nothing is written.
- Checks done elsewhere (cart pre-checks) are advisory only.

Transactions:
- commit=False folds the adjustment into the caller's transaction; the
  caller commits or rolls back the whole unit (order creation, cancellation,
  event allocation).

Audit:
- Each successful adjustment appends a StockMovement in the same transaction.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError, InactiveProductError
from ..models import Product, StockMovement
from ..models.inventory import PRODUCT_ACTIVE
from .concurrency import run_with_retry
from .pack_service import PackConversionEngine, default_engine, money

REASON_ORDER = "ORDER"
REASON_ORDER_CANCEL = "ORDER_CANCEL"
REASON_ORDER_REFUND = "ORDER_REFUND"
REASON_PACK_SALE = "PACK_SALE"
REASON_SINGLE_UNIT_SALE = "SINGLE_UNIT_SALE"
REASON_EVENT_ALLOCATION = "EVENT_ALLOCATION"
REASON_EVENT_RELEASE = "EVENT_RELEASE"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_RECEIVE = "RECEIVE"


def get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if require_active and not product.is_active:
        raise InactiveProductError("Product is no longer available", details={"product_id": product_id})
    return product


def get_stock_level(product_id: int) -> int:
    level = db.session.query(Product.stock_level).filter(Product.id == product_id).scalar()
    if level is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return int(level)


def _apply_delta(product_id: int, delta: int, reason: str, reference: str | None) -> int:
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_level + delta >= 0)
        .values(stock_level=Product.stock_level + delta, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Guard failed or row missing; nothing was written.
        available = db.session.query(Product.stock_level).filter(Product.id == product_id).scalar()
        if available is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        raise InsufficientStockError(
            f"Insufficient stock. Only {available} units available.",
            details={
                "product_id": product_id,
                "available": int(available),
                "requested": -delta,
            },
        )

    # Refresh any copy already loaded in this session
    product = db.session.get(Product, product_id, populate_existing=True)
    db.session.add(StockMovement(
        product_id=product_id,
        reason=reason,
        quantity_delta=delta,
        stock_after=product.stock_level,
        reference=reference,
    ))
    db.session.flush()
    return product.stock_level


def adjust(
    product_id: int,
    delta: int,
    *,
    reason: str = REASON_ADJUSTMENT,
    reference: str | None = None,
    commit: bool = True,
) -> int:
    """
    Apply delta to stock (positive = return, negative = consume).

    Returns the new stock level. Raises InsufficientStockError if the result
    would be negative, leaving the stored level unchanged.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("Stock delta must be an integer")

    if not commit:
        return _apply_delta(product_id, delta, reason, reference)

    def _op():
        level = _apply_delta(product_id, delta, reason, reference)
        db.session.commit()
        return level

    return run_with_retry(_op)


def _require_positive_units(units: int) -> None:
    if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
        raise ValidationError("Quantity must be greater than 0.", details={"quantity": units})


def reserve(product_id: int, units: int, *, reason: str = REASON_ADJUSTMENT,
            reference: str | None = None, commit: bool = True) -> int:
    """Take units out of stock."""
    _require_positive_units(units)
    return adjust(product_id, -units, reason=reason, reference=reference, commit=commit)


def return_stock(product_id: int, units: int, *, reason: str = REASON_ADJUSTMENT,
                 reference: str | None = None, commit: bool = True) -> int:
    """Put units back into stock."""
    _require_positive_units(units)
    return adjust(product_id, units, reason=reason, reference=reference, commit=commit)


def receive_stock(product_id: int, units: int, note: str | None = None) -> int:
    return return_stock(product_id, units, reason=REASON_RECEIVE, reference=note)


def process_pack_sale(product_id: int, packs: int, engine: PackConversionEngine = default_engine) -> int:
    """
    Counter sale of whole packs. Returns the number of single items deducted.
    """
    _require_positive_units(packs)
    product = get_product(product_id, require_active=True)
    if not product.is_six_pack:
        raise ValidationError("Product is not configured as six-pack.", details={"product_id": product_id})

    units = engine.units_to_deduct(packs, True, product.pack_quantity)
    reserve(product_id, units, reason=REASON_PACK_SALE, reference=f"packs={packs}")
    return units


def process_single_unit_sale(product_id: int, units: int, engine: PackConversionEngine = default_engine) -> Decimal:
    """
    Counter sale of single items, priced at the derived single-item price.

    For a R25.00 six-pack, 12 single items come to 12 x R4.17 = R50.04
    (packs sold through process_pack_sale / PACK order lines stay at R25.00).
    """
    _require_positive_units(units)
    product = get_product(product_id, require_active=True)
    unit_price, _, _ = engine.unit_metrics(product)
    total = money(unit_price * units)

    reserve(product_id, units, reason=REASON_SINGLE_UNIT_SALE, reference=f"units={units}")
    return total


def list_active_products() -> list[Product]:
    return db.session.query(Product).filter(
        Product.lifecycle_status == PRODUCT_ACTIVE,
    ).order_by(Product.name.asc()).all()


def low_stock_products() -> list[Product]:
    return db.session.query(Product).filter(
        Product.lifecycle_status == PRODUCT_ACTIVE,
        Product.stock_level <= Product.minimum_stock_level,
    ).order_by(Product.stock_level.asc(), Product.name.asc()).all()


def inventory_value(engine: PackConversionEngine = default_engine) -> Decimal:
    """Total cost value of stock on hand (active products, single-item cost)."""
    total = Decimal("0.00")
    for product in list_active_products():
        _, unit_cost, _ = engine.unit_metrics(product)
        total += unit_cost * product.stock_level
    return money(total)


def recent_movements(product_id: int, limit: int = 50) -> list[StockMovement]:
    return db.session.query(StockMovement).filter(
        StockMovement.product_id == product_id,
    ).order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()
