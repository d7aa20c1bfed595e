"""Cart subpackage - line aggregation and promotion-driven re-pricing."""
from .cart import Cart, CartTotals, compute_totals
from .session import CartSession, CheckoutSummary, PromotionChannel, active_promotions

__all__ = [
    'Cart', 'CartTotals', 'compute_totals',
    'CartSession', 'CheckoutSummary', 'PromotionChannel', 'active_promotions',
]
