#!/usr/bin/env python
"""
Print the pricing trace for one product.

Usage:
    python scripts/debug_pricing.py <product_id> [quantity] [ISO datetime]
"""
import sys
from datetime import datetime
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from dispensary_pricing.services.pricing_service import PricingService


def debug(product_id: str, quantity: float = 1, now: datetime = None):
    service = PricingService()
    moment = now or datetime.now()

    product = service.get_product(product_id)
    print(f"Product: {product.id} | {product.name} | mode={product.pricing_mode} | vendor={product.vendor_id}")
    print(f"Regular price: {product.regular_price}")
    print(f"Tiers: {product.pricing_tiers}")

    promos = service.active_promotions(moment, product.vendor_id)
    print(f"\nActive promotions at {moment.isoformat()}:")
    for promo in promos:
        print(f"  {promo.id} [{promo.promotion_type}] {promo.discount_type}={promo.discount_value} priority={promo.priority}")

    calc = service.price(product_id, quantity, now=moment)
    print("\nTrace:")
    print(calc.get_trace_text())
    print(f"\nFinal: ${calc.final_price:.2f}")
    if calc.badge:
        print(f"Badge: {calc.badge.text} ({calc.badge.color})")
    for warning in calc.warnings:
        print(f"WARNING: {warning}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    qty = float(sys.argv[2]) if len(sys.argv) > 2 else 1
    when = datetime.fromisoformat(sys.argv[3]) if len(sys.argv) > 3 else None
    debug(sys.argv[1], qty, when)
