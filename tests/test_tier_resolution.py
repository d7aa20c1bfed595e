"""
Tier resolution: which price break applies at a quantity.
"""
import math

import pytest

from dispensary_pricing.engine.models import PricingTier, Product
from dispensary_pricing.engine.tier_resolver import (
    find_tier,
    normalise_quantity,
    parse_tiers,
    resolve_base_price,
)


def test_quantity_between_breaks_uses_lower_break(tiered_product):
    """7 units: 7 >= 5 but < 10, so the qty:5 tier applies."""
    price, label, warnings = resolve_base_price(tiered_product, 7)
    assert price == 10
    assert label == "5+"
    assert warnings == []


def test_quantity_above_last_break(tiered_product):
    price, _, _ = resolve_base_price(tiered_product, 12)
    assert price == 8


def test_threshold_is_inclusive(tiered_product):
    assert resolve_base_price(tiered_product, 5)[0] == 10
    assert resolve_base_price(tiered_product, 10)[0] == 8


def test_fractional_quantities(tiered_product):
    assert resolve_base_price(tiered_product, 4.99)[0] == 12
    assert resolve_base_price(tiered_product, 5.5)[0] == 10


def test_below_first_break_pays_regular_price():
    product = Product(
        id="X", pricing_mode="tiered", regular_price=15.0,
        pricing_tiers=[{"qty": 3, "price": 11}, {"qty": 6, "price": 9}],
    )
    price, label, _ = resolve_base_price(product, 2)
    assert price == 15.0
    assert label is None


def test_price_never_increases_with_quantity(tiered_product):
    """Buying more never costs more per unit."""
    previous = math.inf
    for qty in [q / 2 for q in range(1, 61)]:
        price = resolve_base_price(tiered_product, qty)[0]
        assert price <= previous, f"Price went up at qty {qty}: {price} > {previous}"
        previous = price


def test_unsorted_tiers_are_sorted():
    product = Product(
        id="X", pricing_mode="tiered", regular_price=12.0,
        pricing_tiers=[{"qty": 10, "price": 8}, {"qty": 1, "price": 12}, {"qty": 5, "price": 10}],
    )
    assert resolve_base_price(product, 6)[0] == 10


def test_duplicate_threshold_later_record_wins():
    product = Product(
        id="X", pricing_mode="tiered", regular_price=12.0,
        pricing_tiers=[{"qty": 5, "price": 10}, {"qty": 5, "price": 9}],
    )
    assert resolve_base_price(product, 6)[0] == 9


def test_alias_fields_min_quantity_and_default_price():
    product = Product(
        id="X", pricing_mode="tiered", regular_price=12.0,
        pricing_tiers=[{"min_quantity": 1, "default_price": 12}, {"min_quantity": 4, "default_price": "$9.50"}],
    )
    assert resolve_base_price(product, 4)[0] == 9.5


def test_malformed_tiers_are_skipped_with_warning():
    product = Product(
        id="X", pricing_mode="tiered", regular_price=12.0,
        pricing_tiers=[{"qty": 1, "price": 12}, {"qty": "lots"}, "garbage", {"qty": 5, "price": -3}, {"qty": 5, "price": 10}],
    )
    price, _, warnings = resolve_base_price(product, 6)
    assert price == 10
    assert any("Skipped 3 malformed" in w for w in warnings)


@pytest.mark.parametrize("tiers", [[], None, [{"qty": "x", "price": "y"}]])
def test_tiered_without_usable_tiers_falls_back_to_regular(tiers):
    product = Product(id="X", pricing_mode="tiered", regular_price=14.0, pricing_tiers=tiers)
    price, label, warnings = resolve_base_price(product, 3)
    assert price == 14.0
    assert label is None
    assert any("no usable tiers" in w for w in warnings)


def test_missing_regular_price_resolves_to_zero():
    price, _, warnings = resolve_base_price(Product(id="X"), 1)
    assert price == 0.0
    assert any("No regular price" in w for w in warnings)


def test_unknown_mode_prices_as_single():
    product = Product(id="X", pricing_mode="bundle", regular_price=9.0)
    price, _, warnings = resolve_base_price(product, 2)
    assert price == 9.0
    assert any("Unknown pricing mode" in w for w in warnings)


def test_mode_is_case_insensitive(tiered_product):
    tiered_product.pricing_mode = " Tiered "
    assert resolve_base_price(tiered_product, 12)[0] == 8


@pytest.mark.parametrize("raw", [0, -2, None, "abc", float("nan"), float("inf")])
def test_unusable_quantity_prices_as_one(raw):
    assert normalise_quantity(raw) == 1.0


def test_quantity_strings_are_parsed():
    assert normalise_quantity("2.5") == 2.5


def test_find_tier_below_first_break_is_none():
    tiers, skipped = parse_tiers(Product(id="X", pricing_tiers=[{"qty": 2, "price": 5}]))
    assert skipped == 0
    assert find_tier(tiers, 1) is None
    assert find_tier(tiers, 2) == PricingTier(label="2+", min_quantity=2.0, price=5.0)
