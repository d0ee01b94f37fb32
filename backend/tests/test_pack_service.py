from decimal import Decimal
from types import SimpleNamespace

import pytest

from backoffice.errors import ValidationError
from backoffice.services.pack_service import (
    PackConversionEngine,
    money,
    vat_for,
)


@pytest.fixture
def engine():
    return PackConversionEngine()


def _product(unit_price, cost_price, is_six_pack=True, pack_quantity=6):
    return SimpleNamespace(
        unit_price=Decimal(unit_price),
        cost_price=Decimal(cost_price),
        is_six_pack=is_six_pack,
        pack_quantity=pack_quantity,
    )


def test_money_rounds_half_away_from_zero():
    assert money("2.345") == Decimal("2.35")
    assert money("-2.345") == Decimal("-2.35")
    assert money(4) == Decimal("4.00")


def test_vat_is_fifteen_percent_rounded():
    assert vat_for(Decimal("360.00")) == Decimal("54.00")
    assert vat_for(Decimal("50.04")) == Decimal("7.51")


def test_castle_lager_unit_metrics(engine):
    lager = _product("25.00", "15.00")
    unit_price, unit_cost, unit_profit = engine.unit_metrics(lager)

    assert unit_price == Decimal("4.17")
    assert unit_cost == Decimal("2.50")
    assert unit_profit == Decimal("1.67")
    assert engine.unit_profit("25.00", "15.00", 6) == Decimal("1.67")


def test_unit_price_times_pack_is_within_rounding_of_pack_price(engine):
    for pack_price in ("25.00", "99.99", "13.37", "0.05"):
        for n in (1, 4, 6, 12, 24):
            unit = engine.unit_price_from_pack(pack_price, n)
            assert abs(unit * n - Decimal(pack_price)) <= Decimal("0.01") * n


def test_invalid_pack_quantity_falls_back_to_six(engine):
    assert engine.units_in_pack(0) == 6
    assert engine.units_in_pack(-3) == 6
    assert engine.units_in_pack(None) == 6
    assert engine.unit_price_from_pack("12.00", 0) == Decimal("2.00")


def test_pack_price_from_unit(engine):
    assert engine.pack_price_from_unit("4.17", 6) == Decimal("25.02")
    assert engine.pack_cost_from_unit("2.50") == Decimal("15.00")


def test_units_to_deduct(engine):
    assert engine.units_to_deduct(2, True, 6) == 12
    assert engine.units_to_deduct(2, True, 24) == 48
    assert engine.units_to_deduct(2, True, 0) == 12
    assert engine.units_to_deduct(7, False, 6) == 7


def test_line_pricing_pack_uses_stored_pack_price(engine):
    pricing = engine.line_pricing(_product("25.00", "15.00"), "PACK")

    assert pricing.unit_price == Decimal("25.00")
    assert pricing.unit_cost == Decimal("15.00")
    assert pricing.single_unit_price == Decimal("4.17")
    assert pricing.stock_units_per_quantity == 6


def test_line_pricing_single_uses_derived_unit_price(engine):
    pricing = engine.line_pricing(_product("25.00", "15.00"), "SINGLE")

    assert pricing.unit_price == Decimal("4.17")
    assert pricing.stock_units_per_quantity == 1
    assert money(pricing.unit_price * 12) == Decimal("50.04")


def test_line_pricing_for_non_pack_is_the_same_either_way(engine):
    steak = _product("120.00", "70.00", is_six_pack=False)
    pack = engine.line_pricing(steak, "PACK")
    single = engine.line_pricing(steak, "SINGLE")

    assert pack.unit_price == single.unit_price == Decimal("120.00")
    assert pack.stock_units_per_quantity == single.stock_units_per_quantity == 1


def test_line_pricing_rejects_unknown_sale_unit(engine):
    with pytest.raises(ValidationError):
        engine.line_pricing(_product("25.00", "15.00"), "CRATE")


def test_pack_breakdown_for_single_item_product(engine):
    breakdown = engine.pack_breakdown(_product("10.00", "6.00", is_six_pack=False))

    assert breakdown.units_per_pack == 6
    assert breakdown.pack_price == Decimal("60.00")
    assert breakdown.pack_profit == Decimal("24.00")
    assert breakdown.to_dict()["unit_profit"] == "4.00"


@pytest.mark.parametrize("name,description,expected", [
    ("Castle Lager Beer", "", True),
    ("House Red", "Dry red wine", True),
    ("Savanna Dry", "Crisp apple CIDER", True),
    ("T-Bone Steak", "Grilled 500g", False),
    ("", None, False),
])
def test_is_alcohol_product(engine, name, description, expected):
    assert engine.is_alcohol_product(name, description) is expected
