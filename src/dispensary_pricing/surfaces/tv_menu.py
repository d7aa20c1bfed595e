"""
TV menu surface - read-only price boards.

Each entry shows the single-unit price, promotion data only when a
promotion actually applied, and the product's tier price list.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from ..engine.models import Product, TierPrice
from ..engine.pricing_engine import (
    calculate_price,
    calculate_tier_prices,
    coerce_product,
    coerce_promotions,
)

logger = logging.getLogger(__name__)


@dataclass
class MenuEntry:
    """One product on a menu board."""
    product_id: str
    name: str
    category: Optional[str]
    price: float
    promotion_data: Optional[dict] = None
    tier_prices: list[TierPrice] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "promotion_data": self.promotion_data,
            "tier_prices": [
                {
                    "label": t.label,
                    "min_quantity": t.min_quantity,
                    "price": t.final_price,
                    "original_price": t.original_price,
                    "badge_text": t.badge.text if t.badge else None,
                }
                for t in self.tier_prices
            ],
        }


def menu_entry(product, promotions, now: datetime) -> MenuEntry:
    prod = coerce_product(product)
    calc = calculate_price(prod, promotions, 1, now=now)

    promotion_data = None
    if calc.applied_promotion:
        promotion_data = {
            "originalPrice": calc.original_price,
            "finalPrice": calc.final_price,
            "savings": calc.savings,
            "badgeText": calc.badge.text if calc.badge else None,
            "badgeColor": calc.badge.color if calc.badge else None,
        }

    return MenuEntry(
        product_id=prod.id,
        name=prod.name,
        category=prod.category,
        price=calc.final_price,
        promotion_data=promotion_data,
        tier_prices=calculate_tier_prices(prod, promotions, now=now),
    )


def build_menu(
    products: Iterable,
    promotions: Optional[Iterable] = None,
    now: Optional[datetime] = None,
    categories: Optional[list[str]] = None
) -> list[MenuEntry]:
    """
    Build the entries of a menu board.

    Args:
        products: Products (or raw records) to show
        promotions: The vendor's active promotions
        now: Moment the board is rendered for
        categories: Optional category filter configured on the menu
    """
    moment = now or datetime.now()
    promos = coerce_promotions(promotions)
    wanted = {c.strip().lower() for c in categories or [] if c and c.strip()}

    entries = []
    for product in products:
        try:
            prod: Product = coerce_product(product)
        except TypeError as e:
            logger.warning("Skipping menu record: %s", e)
            continue
        if wanted and not wanted.intersection(prod.all_categories()):
            continue
        entries.append(menu_entry(prod, promos, moment))

    entries.sort(key=lambda e: ((e.category or '').lower(), e.name.lower()))
    return entries
