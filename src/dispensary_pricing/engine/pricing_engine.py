"""
Pricing Engine - Core price resolution shared by the POS register, the
storefront cart and the TV menus.

Every surface prices a line through ``calculate_price`` so the same
product, promotion list and quantity always give the same unit price and
badge. The engine is pure: it never mutates its inputs, keeps no state
and never raises; malformed data degrades to the regular price with no
discount, recorded in ``warnings``.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from .models import (
    LineItem,
    PriceCalculation,
    Product,
    Promotion,
    TierPrice,
)
from .promotion_matcher import PromotionMatcher, derive_badge, snapshot
from .tier_resolver import normalise_quantity, parse_tiers, resolve_base_price

logger = logging.getLogger(__name__)

ProductInput = Union[Product, dict]
PromotionInput = Union[Promotion, dict]

_matcher = PromotionMatcher()


def coerce_product(product: ProductInput) -> Product:
    """Accept a Product or a raw record; anything else is a TypeError."""
    if isinstance(product, Product):
        return product
    if product is None:
        product = {}
    if not isinstance(product, dict):
        raise TypeError(f"Expected a Product or a dict, got {type(product).__name__}")
    return Product.from_dict(product)


def coerce_promotions(promotions: Optional[Iterable[PromotionInput]]) -> list[Promotion]:
    """Accept Promotion objects or raw records; unusable entries are dropped."""
    result = []
    for promo in promotions or []:
        if isinstance(promo, Promotion):
            result.append(promo)
        elif isinstance(promo, dict):
            result.append(Promotion.from_dict(promo))
    return result


def _fallback(product, quantity, error: Exception) -> PriceCalculation:
    """Last-resort result: regular price, no discount."""
    price = 0.0
    regular = getattr(product, 'regular_price', None)
    if regular is None and isinstance(product, dict):
        regular = product.get('regular_price')
    try:
        price = max(0.0, round(float(regular), 2)) if regular is not None else 0.0
    except (TypeError, ValueError):
        price = 0.0
    if price != price:  # NaN
        price = 0.0

    calc = PriceCalculation(
        final_price=price,
        base_price=price,
        quantity=normalise_quantity(quantity),
    )
    calc.add_warning(f"Pricing fell back to regular price: {error}")
    calc.add_trace("Fallback", "Unexpected pricing error, using regular price", f"${price:.2f}")
    return calc


def _calculate(
    product: Product,
    promotions: list[Promotion],
    quantity: float,
    now: datetime
) -> PriceCalculation:
    base_price, tier_label, warnings = resolve_base_price(product, quantity)
    base_price = round(base_price, 2)

    calc = PriceCalculation(
        final_price=base_price,
        base_price=base_price,
        quantity=quantity,
        tier_label=tier_label,
    )
    for warning in warnings:
        calc.add_warning(warning)

    if tier_label:
        calc.add_trace("Price Resolution", f"Tier '{tier_label}' at quantity {quantity:g}", f"${base_price:.2f}")
    else:
        calc.add_trace("Price Resolution", "Regular price", f"${base_price:.2f}")

    winner = _matcher.select_promotion(promotions, product, quantity, base_price, now, tier_label)
    if winner is None:
        calc.add_trace("Promotion", "No promotion applies")
        return calc

    promo = winner.promotion
    calc.final_price = winner.final_price
    calc.original_price = base_price
    calc.savings = round(base_price - winner.final_price, 2)
    calc.applied_promotion = snapshot(promo)
    calc.badge = derive_badge(promo)
    calc.add_trace(
        "Promotion Applied",
        f"{calc.applied_promotion.name} ({promo.id}) [{winner.match_reason}]",
        f"${base_price:.2f} → ${calc.final_price:.2f}"
    )
    return calc


def calculate_price(
    product: ProductInput,
    active_promotions: Optional[Iterable[PromotionInput]],
    quantity,
    now: Optional[datetime] = None
) -> PriceCalculation:
    """
    Price one product at one quantity.

    Args:
        product: Product or raw product record
        active_promotions: The vendor's currently active promotions
        quantity: Requested quantity; <= 0 or unusable values price as 1
        now: Moment used to re-check promotion windows (defaults to now)

    Returns:
        PriceCalculation with final price, savings, promotion and badge
    """
    try:
        prod = coerce_product(product)
        promos = coerce_promotions(active_promotions)
        qty = normalise_quantity(quantity)
        return _calculate(prod, promos, qty, now or datetime.now())
    except Exception as e:
        # Pricing must never block a sale
        logger.warning("Pricing fallback for product %r: %s", getattr(product, 'id', product), e)
        return _fallback(product, quantity, e)


def calculate_tier_prices(
    product: ProductInput,
    active_promotions: Optional[Iterable[PromotionInput]],
    now: Optional[datetime] = None
) -> list[TierPrice]:
    """
    Price every tier of a product at its own threshold, for menu display.

    Single-mode products (and tiered ones without usable tiers) yield a
    single 'each' row at quantity 1.
    """
    try:
        prod = coerce_product(product)
    except TypeError as e:
        logger.warning("No tier prices for unreadable product record: %s", e)
        return []
    promos = coerce_promotions(active_promotions)
    moment = now or datetime.now()

    tiers = []
    if str(prod.pricing_mode or '').strip().lower() == 'tiered':
        try:
            tiers, _ = parse_tiers(prod)
        except Exception as e:
            logger.warning("Could not read tiers for product %s: %s", prod.id, e)
            tiers = []

    if not tiers:
        calc = calculate_price(prod, promos, 1, now=moment)
        return [TierPrice(
            label="each",
            min_quantity=1.0,
            final_price=calc.final_price,
            original_price=calc.original_price,
            savings=calc.savings,
            badge=calc.badge,
        )]

    rows = []
    for tier in tiers:
        # A zero threshold still prices as a single unit
        calc = calculate_price(prod, promos, tier.min_quantity, now=moment)
        rows.append(TierPrice(
            label=tier.label,
            min_quantity=tier.min_quantity,
            final_price=calc.final_price,
            original_price=calc.original_price,
            savings=calc.savings,
            badge=calc.badge,
        ))
    return rows


def line_item_from_calculation(product: Product, calc: PriceCalculation, quantity: float) -> LineItem:
    """Turn one calculation into a cart line (line total before staff discounts)."""
    return LineItem(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price=calc.final_price,
        line_total=round(calc.final_price * quantity, 2),
        original_price=calc.original_price,
        discount=round(calc.savings * quantity, 2),
        promotion_id=calc.applied_promotion.id if calc.applied_promotion else None,
        promotion_name=calc.applied_promotion.name if calc.applied_promotion else None,
        badge_text=calc.badge.text if calc.badge else None,
        badge_color=calc.badge.color if calc.badge else None,
        tier_label=calc.tier_label,
        inventory_id=product.inventory_id,
    )


def derive_line_item(
    product: ProductInput,
    active_promotions: Optional[Iterable[PromotionInput]],
    quantity,
    now: Optional[datetime] = None
) -> LineItem:
    """Price a product and build its cart line in one step."""
    prod = coerce_product(product)
    calc = calculate_price(prod, active_promotions, quantity, now=now)
    return line_item_from_calculation(prod, calc, calc.quantity)


class PricingEngine:
    """
    Stateless pricing facade with an injectable clock.

    Surfaces share one instance so they price identically; tests pin the
    clock to make promotion windows deterministic.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or datetime.now

    def now(self) -> datetime:
        return self.clock()

    def calculate_price(self, product, active_promotions, quantity, now: Optional[datetime] = None) -> PriceCalculation:
        return calculate_price(product, active_promotions, quantity, now=now or self.clock())

    def calculate_tier_prices(self, product, active_promotions, now: Optional[datetime] = None) -> list[TierPrice]:
        return calculate_tier_prices(product, active_promotions, now=now or self.clock())

    def derive_line_item(self, product, active_promotions, quantity, now: Optional[datetime] = None) -> LineItem:
        return derive_line_item(product, active_promotions, quantity, now=now or self.clock())
