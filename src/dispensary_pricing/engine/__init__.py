"""Engine subpackage - core pricing logic and resolution."""
from .pricing_engine import (
    PricingEngine,
    calculate_price,
    calculate_tier_prices,
    derive_line_item,
)
from .models import Product, Promotion, PriceCalculation, LineItem, Badge

__all__ = [
    'PricingEngine', 'calculate_price', 'calculate_tier_prices', 'derive_line_item',
    'Product', 'Promotion', 'PriceCalculation', 'LineItem', 'Badge',
]
