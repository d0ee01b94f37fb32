# Overview: Pack ("six-pack") price arithmetic and alcohol classification.

"""
Pack conversion rules (authoritative)

Pricing model:
- A six-pack product quotes unit_price / cost_price per PACK.
- Single-item figures are derived: round(pack_figure / pack_quantity, 2).
- The inverse is round(unit_figure * pack_quantity, 2).
- Pack quantity <= 0 (or missing) falls back to 6.

Rounding:
- Money is always Decimal, quantized to 0.01 with ROUND_HALF_UP
  (ties go away from zero, for negative amounts too).
- Nothing leaves this module unrounded.

Stock:
- stock_level counts single items. Selling N packs deducts N * pack_quantity.
- Selling N single items deducts N, whether or not the product is a pack.

Classification:
- is_alcohol_product() is a substring heuristic over name/description.
  An explicit is_six_pack flag always wins over it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import ValidationError
from ..models.inventory import DEFAULT_PACK_QUANTITY
from ..models.orders import SALE_UNIT_PACK, SALE_UNIT_SINGLE

CENT = Decimal("0.01")

# South African VAT; fixed, not configurable
VAT_RATE = Decimal("0.15")

ALCOHOL_KEYWORDS = (
    "beer", "lager", "ale", "stout", "wine", "whisky", "whiskey", "vodka",
    "gin", "rum", "tequila", "brandy", "cider", "champagne", "cocktail",
    "brew", "draught", "bottle", "can", "alcohol", "alcoholic",
)


def money(value) -> Decimal:
    """Quantize to 2 dp, half away from zero."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def vat_for(subtotal) -> Decimal:
    return money(money(subtotal) * VAT_RATE)


@dataclass(frozen=True)
class PackBreakdown:
    unit_price: Decimal
    unit_cost: Decimal
    unit_profit: Decimal
    pack_price: Decimal
    pack_cost: Decimal
    pack_profit: Decimal
    units_per_pack: int

    def to_dict(self) -> dict:
        return {
            "unit_price": f"{self.unit_price:.2f}",
            "unit_cost": f"{self.unit_cost:.2f}",
            "unit_profit": f"{self.unit_profit:.2f}",
            "pack_price": f"{self.pack_price:.2f}",
            "pack_cost": f"{self.pack_cost:.2f}",
            "pack_profit": f"{self.pack_profit:.2f}",
            "units_per_pack": self.units_per_pack,
        }


@dataclass(frozen=True)
class LinePricing:
    """Price/cost per sold quantity unit, plus how many items each one removes from stock."""
    sale_unit: str
    unit_price: Decimal
    unit_cost: Decimal
    single_unit_price: Decimal
    stock_units_per_quantity: int


class PackConversionEngine:
    """Stateless pack/unit conversions. Pass an instance wherever conversions are needed."""

    def __init__(self, default_pack_quantity: int = DEFAULT_PACK_QUANTITY, keywords=ALCOHOL_KEYWORDS):
        self.default_pack_quantity = default_pack_quantity
        self.keywords = tuple(k.lower() for k in keywords)

    def units_in_pack(self, pack_quantity: int | None = None) -> int:
        if pack_quantity is None or pack_quantity <= 0:
            return self.default_pack_quantity
        return pack_quantity

    def unit_price_from_pack(self, pack_price, pack_quantity: int | None = None) -> Decimal:
        return money(money(pack_price) / self.units_in_pack(pack_quantity))

    def unit_cost_from_pack(self, pack_cost, pack_quantity: int | None = None) -> Decimal:
        return money(money(pack_cost) / self.units_in_pack(pack_quantity))

    def pack_price_from_unit(self, unit_price, pack_quantity: int | None = None) -> Decimal:
        return money(money(unit_price) * self.units_in_pack(pack_quantity))

    def pack_cost_from_unit(self, unit_cost, pack_quantity: int | None = None) -> Decimal:
        return money(money(unit_cost) * self.units_in_pack(pack_quantity))

    def unit_profit(self, pack_price, pack_cost, pack_quantity: int | None = None) -> Decimal:
        unit_price = self.unit_price_from_pack(pack_price, pack_quantity)
        unit_cost = self.unit_cost_from_pack(pack_cost, pack_quantity)
        return money(unit_price - unit_cost)

    def units_to_deduct(self, quantity: int, is_pack: bool, pack_quantity: int | None = None) -> int:
        if not is_pack:
            return quantity
        return quantity * self.units_in_pack(pack_quantity)

    def unit_metrics(self, product) -> tuple[Decimal, Decimal, Decimal]:
        """(unit_price, unit_cost, unit_profit) for one single item of the product."""
        if product.is_six_pack:
            unit_price = self.unit_price_from_pack(product.unit_price, product.pack_quantity)
            unit_cost = self.unit_cost_from_pack(product.cost_price, product.pack_quantity)
        else:
            unit_price = money(product.unit_price)
            unit_cost = money(product.cost_price)
        return unit_price, unit_cost, money(unit_price - unit_cost)

    def pack_breakdown(self, product) -> PackBreakdown:
        unit_price, unit_cost, unit_profit = self.unit_metrics(product)
        if product.is_six_pack:
            pack_price = money(product.unit_price)
            pack_cost = money(product.cost_price)
            units = self.units_in_pack(product.pack_quantity)
        else:
            # what a notional pack of single items would come to
            units = self.default_pack_quantity
            pack_price = self.pack_price_from_unit(unit_price, units)
            pack_cost = self.pack_cost_from_unit(unit_cost, units)
        return PackBreakdown(
            unit_price=unit_price,
            unit_cost=unit_cost,
            unit_profit=unit_profit,
            pack_price=pack_price,
            pack_cost=pack_cost,
            pack_profit=money(pack_price - pack_cost),
            units_per_pack=units,
        )

    def line_pricing(self, product, sale_unit: str = SALE_UNIT_PACK) -> LinePricing:
        """
        Authoritative pricing for one order/cart line.

        PACK:   quantity counts the product's unit of sale (whole packs for
                six-pack products), priced at the stored pack figures.
        SINGLE: quantity counts single items, priced at the derived unit figures.
        Both are identical for products that are not six-packs.
        """
        if sale_unit not in (SALE_UNIT_PACK, SALE_UNIT_SINGLE):
            raise ValidationError(f"Unknown sale unit {sale_unit!r}")
        unit_price, unit_cost, _ = self.unit_metrics(product)
        if sale_unit == SALE_UNIT_PACK and product.is_six_pack:
            return LinePricing(
                sale_unit=SALE_UNIT_PACK,
                unit_price=money(product.unit_price),
                unit_cost=money(product.cost_price),
                single_unit_price=unit_price,
                stock_units_per_quantity=self.units_in_pack(product.pack_quantity),
            )
        return LinePricing(
            sale_unit=sale_unit,
            unit_price=unit_price,
            unit_cost=unit_cost,
            single_unit_price=unit_price,
            stock_units_per_quantity=1,
        )

    def is_alcohol_product(self, name: str | None, description: str | None = None) -> bool:
        haystack_name = (name or "").lower()
        haystack_desc = (description or "").lower()
        return any(k in haystack_name or k in haystack_desc for k in self.keywords)


default_engine = PackConversionEngine()
