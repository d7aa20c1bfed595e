"""
Storefront cart surface.

Same pricing and aggregation as the register, without staff discounts.
"""
from datetime import datetime
from typing import Callable, Optional

from ..cart.session import CartSession, CheckoutSummary, PromotionChannel


class StorefrontCart:
    """A shopper's cart on the vendor storefront."""

    def __init__(
        self,
        vendor_id: str,
        channel: Optional[PromotionChannel] = None,
        promotions: Optional[list] = None,
        tax_rate: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.session = CartSession(
            vendor_id=vendor_id,
            channel=channel,
            promotions=promotions,
            tax_rate=tax_rate,
            clock=clock,
        )

    def add(self, product, quantity: float = 1):
        return self.session.add_item(product, quantity)

    def set_quantity(self, product_id: str, quantity: float):
        return self.session.update_quantity(product_id, quantity)

    def remove(self, product_id: str):
        self.session.remove_item(product_id)

    def summary(self) -> dict:
        lines = self.session.cart.lines
        return {
            "items": [
                {
                    "product_id": line.product_id,
                    "name": line.product_name,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "original_price": line.original_price,
                    "line_total": line.line_total,
                    "badge": {"text": line.badge_text, "color": line.badge_color} if line.badge_text else None,
                }
                for line in lines
            ],
            "totals": self.session.totals().to_dict(),
        }

    def checkout(self) -> CheckoutSummary:
        return self.session.checkout()

    def close(self):
        self.session.close()
