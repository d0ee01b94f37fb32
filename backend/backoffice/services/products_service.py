# backend/backoffice/services/products_service.py
"""
Catalog helpers used by the engine and the CLI.

Full product CRUD belongs to the external catalog; this module only covers
what the engine needs to create well-formed Product rows (pack detection,
price normalization) and to retire them.
"""
from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product
from ..models.inventory import PRODUCT_ACTIVE, PRODUCT_RETIRED, DEFAULT_PACK_QUANTITY
from .concurrency import run_with_retry
from .pack_service import PackConversionEngine, money

# Alcohol entered below this price is assumed to be a single-item price
SINGLE_UNIT_PRICE_THRESHOLD = Decimal("50")

PRODUCT_PRICE_FIELDS = {"unit_price", "cost_price"}


def build_product(
    engine: PackConversionEngine,
    *,
    name: str,
    unit_price,
    cost_price,
    description: str = "",
    stock_level: int = 0,
    minimum_stock_level: int = 10,
    is_six_pack: bool | None = None,
    pack_quantity: int | None = None,
    supplier_id: int | None = None,
) -> Product:
    """
    Build (but do not persist) a Product.

    - is_six_pack given explicitly wins; when None, alcohol detection decides.
    - Auto-detected alcohol priced under R50 is taken to be a single-item
      price and converted to pack figures.
    - Negative stock / minimum stock are clamped to 0.
    """
    if not name or not name.strip():
        raise ValidationError("Product name is required")

    unit_price = money(unit_price)
    cost_price = money(cost_price)
    if unit_price < 0 or cost_price < 0:
        raise ValidationError("Prices cannot be negative")

    pack_quantity = engine.units_in_pack(pack_quantity)

    if is_six_pack is None:
        is_six_pack = engine.is_alcohol_product(name, description)
        if is_six_pack and unit_price < SINGLE_UNIT_PRICE_THRESHOLD:
            unit_price = engine.pack_price_from_unit(unit_price, pack_quantity)
            cost_price = engine.pack_cost_from_unit(cost_price, pack_quantity)

    return Product(
        name=name.strip(),
        description=description or "",
        stock_level=max(int(stock_level), 0),
        minimum_stock_level=max(int(minimum_stock_level), 0),
        unit_price=unit_price,
        cost_price=cost_price,
        is_six_pack=bool(is_six_pack),
        pack_quantity=pack_quantity if is_six_pack else DEFAULT_PACK_QUANTITY,
        lifecycle_status=PRODUCT_ACTIVE,
        supplier_id=supplier_id,
    )


def create_product(engine: PackConversionEngine, **fields) -> Product:
    product = build_product(engine, **fields)

    def _op():
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product_prices(product_id: int, patch: dict) -> Product:
    """Change unit_price / cost_price. Committed orders keep their snapshots."""
    unknown = set(patch) - PRODUCT_PRICE_FIELDS
    if unknown:
        raise ValidationError("Only prices can be changed here", details={"fields": sorted(unknown)})

    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        for key, value in patch.items():
            value = money(value)
            if value < 0:
                raise ValidationError(f"{key} cannot be negative")
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def retire_product(product_id: int) -> Product:
    """Soft delete: the row stays for order history, but is hidden from sale."""
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        product.lifecycle_status = PRODUCT_RETIRED
        db.session.commit()
        return product

    return run_with_retry(_op)
