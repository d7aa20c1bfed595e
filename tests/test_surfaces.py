"""
POS register, storefront cart and TV menu must show the same price and
badge for the same product, promotions and quantity.
"""
import pytest

from dispensary_pricing.engine.models import Product
from dispensary_pricing.engine.pricing_engine import calculate_price, calculate_tier_prices
from dispensary_pricing.surfaces.pos import PosRegister
from dispensary_pricing.surfaces.storefront import StorefrontCart
from dispensary_pricing.surfaces.tv_menu import build_menu

from conftest import NOW


@pytest.fixture
def promotions(make_promo):
    return [
        make_promo("FLOWER", promotion_type="category", target_categories=["flower"], discount_value=20, priority=2),
        make_promo("GUMMY", promotion_type="product", target_product_ids=["G1"],
                   discount_type="fixed_amount", discount_value=2.5, badge_text="DEAL", badge_color="green"),
        make_promo("BULK", promotion_type="tier", target_tier_rules={"min_quantity": 10}, discount_value=30, priority=5),
    ]


@pytest.fixture
def products(single_product, tiered_product):
    return [
        single_product,
        tiered_product,
        Product(id="G1", name="Mango Gummies", category="edibles", regular_price=20.0, vendor_id="v1"),
        Product(id="A1", name="Glass Pipe", category="accessories", regular_price=15.0, vendor_id="v1"),
    ]


@pytest.mark.parametrize("product_index", [0, 1, 2, 3])
def test_all_surfaces_agree_at_quantity_one(clock, products, promotions, product_index):
    product = products[product_index]
    expected = calculate_price(product, promotions, 1, now=NOW)

    register = PosRegister("v1", promotions=promotions, clock=clock)
    pos_line = register.add_to_cart(product, 1)

    storefront = StorefrontCart("v1", promotions=promotions, clock=clock)
    shop_line = storefront.add(product, 1)

    entry = build_menu([product], promotions, now=NOW)[0]

    assert pos_line.unit_price == shop_line.unit_price == entry.price == expected.final_price
    expected_badge = expected.badge.text if expected.badge else None
    assert pos_line.badge_text == shop_line.badge_text == expected_badge
    if expected.badge:
        assert entry.promotion_data["badgeText"] == expected_badge
        assert entry.promotion_data["badgeColor"] == expected.badge.color
    else:
        assert entry.promotion_data is None


@pytest.mark.parametrize("quantity", [1, 5, 10, 12])
def test_tiered_quantities_agree_between_carts(clock, tiered_product, promotions, quantity):
    register = PosRegister("v1", promotions=promotions, clock=clock)
    storefront = StorefrontCart("v1", promotions=promotions, clock=clock)
    expected = calculate_price(tiered_product, promotions, quantity, now=NOW)

    assert register.add_to_cart(tiered_product, quantity).unit_price == expected.final_price
    assert storefront.add(tiered_product, quantity).unit_price == expected.final_price


def test_menu_tier_list_matches_cart_price_at_threshold(clock, tiered_product, promotions):
    entry = build_menu([tiered_product], promotions, now=NOW)[0]
    by_threshold = {row.min_quantity: row.final_price for row in entry.tier_prices}

    storefront = StorefrontCart("v1", promotions=promotions, clock=clock)
    for threshold, price in by_threshold.items():
        if "T1" in storefront.session.cart:
            storefront.set_quantity("T1", threshold)
        else:
            storefront.add(tiered_product, threshold)
        assert storefront.session.cart.get_line("T1").unit_price == price


def test_menu_category_filter_and_order(products, promotions):
    entries = build_menu(products, promotions, now=NOW, categories=["Flower", "EDIBLES"])
    assert [e.product_id for e in entries] == ["G1", "P1", "T1"]


def test_menu_entry_payload(products, promotions):
    entries = {e.product_id: e.to_dict() for e in build_menu(products, promotions, now=NOW)}

    assert entries["A1"]["promotion_data"] is None
    assert entries["G1"]["promotion_data"] == {
        "originalPrice": 20.0,
        "finalPrice": 17.5,
        "savings": 2.5,
        "badgeText": "DEAL",
        "badgeColor": "green",
    }
    assert [t["label"] for t in entries["T1"]["tier_prices"]] == ["1+", "5+", "10+"]


def test_register_cart_view_and_staff_discount(clock, single_product, promotions):
    register = PosRegister("v1", promotions=promotions, tax_rate=0.1, clock=clock, session_id="reg-1")
    register.add_to_cart(single_product, 2)
    register.apply_manual_discount("P1", "amount", 2)

    view = register.cart_view()
    assert view["sessionId"] == "reg-1"
    item = view["items"][0]
    assert item["unitPrice"] == 16.0
    assert item["originalPrice"] == 20.0
    assert item["lineTotal"] == 30.0
    assert item["manualDiscountType"] == "amount"
    assert view["totals"]["tax"] == 3.0
    assert view["totals"]["total"] == 33.0


def test_storefront_summary(clock, products, promotions):
    storefront = StorefrontCart("v1", promotions=promotions, clock=clock)
    storefront.add(products[2], 2)
    storefront.add(products[3], 1)

    summary = storefront.summary()
    assert summary["totals"]["subtotal"] == 50.0
    gummies = summary["items"][0]
    assert gummies["badge"] == {"text": "DEAL", "color": "green"}
    assert summary["items"][1]["badge"] is None

    storefront.remove("A1")
    assert storefront.checkout().totals.subtotal == 35.0


def test_menu_skips_unreadable_records(products, promotions):
    records = list(products) + ["P-999", 42, {"id": "RAW", "name": "Raw Record", "category": "flower", "regular_price": 9}]
    entries = build_menu(records, promotions, now=NOW)

    ids = [e.product_id for e in entries]
    assert "RAW" in ids
    assert len(entries) == len(products) + 1


def test_tier_prices_for_unreadable_record_is_empty(promotions):
    assert calculate_tier_prices("P-999", promotions, now=NOW) == []
