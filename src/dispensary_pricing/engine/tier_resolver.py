"""
Tier Resolver - Resolves the pre-discount unit price of a product.

Single-mode products use the regular price. Tiered products use quantity
breaks: each tier's threshold is an inclusive lower bound and the highest
threshold not exceeding the requested quantity wins. Quantities below the
smallest break pay the regular price.
"""
import logging
from typing import Optional

from .models import (
    PRICING_MODE_SINGLE,
    PRICING_MODE_TIERED,
    PricingTier,
    Product,
    to_float,
)

logger = logging.getLogger(__name__)


def normalise_quantity(quantity) -> float:
    """Quantity used for pricing: anything unusable or <= 0 prices as 1."""
    qty = to_float(quantity)
    if qty is None or qty <= 0:
        return 1.0
    return qty


def parse_tiers(product: Product) -> tuple[list[PricingTier], int]:
    """
    Parse a product's tier records, sorted ascending by threshold.

    Returns (tiers, skipped_count). Sorting is stable, so for duplicate
    thresholds the later record in the vendor's list wins the scan.
    """
    tiers = []
    skipped = 0
    for raw in product.pricing_tiers or []:
        tier = PricingTier.parse(raw)
        if tier is None:
            skipped += 1
            continue
        tiers.append(tier)
    tiers.sort(key=lambda t: t.min_quantity)
    return tiers, skipped


def find_tier(tiers: list[PricingTier], quantity: float) -> Optional[PricingTier]:
    """Last tier whose threshold is <= quantity, or None below the first break."""
    matched = None
    for tier in tiers:
        if tier.min_quantity <= quantity:
            matched = tier
        else:
            break
    return matched


def _regular_price(product: Product, warnings: list[str]) -> float:
    if product.regular_price is None or product.regular_price < 0:
        warnings.append(f"No regular price for product {product.id}, using 0.00")
        return 0.0
    return product.regular_price


def resolve_base_price(product: Product, quantity: float) -> tuple[float, Optional[str], list[str]]:
    """
    Resolve the base unit price for a product at a quantity.

    Returns (price, tier_label, warnings). Never raises for malformed
    pricing; falls back to the regular price, then to zero.
    """
    warnings = []
    mode = str(product.pricing_mode or PRICING_MODE_SINGLE).strip().lower()

    if mode not in (PRICING_MODE_SINGLE, PRICING_MODE_TIERED):
        warnings.append(f"Unknown pricing mode '{product.pricing_mode}' for product {product.id}, priced as single")
        mode = PRICING_MODE_SINGLE

    if mode == PRICING_MODE_SINGLE:
        return _regular_price(product, warnings), None, warnings

    tiers, skipped = parse_tiers(product)
    if skipped:
        warnings.append(f"Skipped {skipped} malformed pricing tier(s) for product {product.id}")

    if not tiers:
        warnings.append(f"Tiered product {product.id} has no usable tiers, using regular price")
        logger.debug("Tier fallback for %s: no usable tiers", product.id)
        return _regular_price(product, warnings), None, warnings

    tier = find_tier(tiers, quantity)
    if tier is None:
        # Below the smallest break: the regular price applies
        return _regular_price(product, warnings), None, warnings

    return tier.price, tier.label, warnings
