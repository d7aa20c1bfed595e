"""
POS register surface.

Thin layer over a CartSession: the register adds scanned products, lets
staff adjust quantities and apply line discounts, and redeems loyalty
points at checkout. All arithmetic comes from the shared cart module.
"""
from datetime import datetime
from typing import Callable, Optional

from ..cart.cart import CartTotals
from ..cart.session import CartSession, CheckoutSummary, PromotionChannel
from ..engine.models import LineItem


class PosRegister:
    """A register's open cart, kept in sync with the vendor's promotions."""

    def __init__(
        self,
        vendor_id: str,
        channel: Optional[PromotionChannel] = None,
        promotions: Optional[list] = None,
        tax_rate: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None,
        session_id: Optional[str] = None
    ):
        self.session = CartSession(
            vendor_id=vendor_id,
            channel=channel,
            promotions=promotions,
            tax_rate=tax_rate,
            clock=clock,
            session_id=session_id,
        )

    @property
    def session_id(self) -> str:
        return self.session.session_id

    def add_to_cart(self, product, quantity: float = 1) -> LineItem:
        return self.session.add_item(product, quantity)

    def update_quantity(self, product_id: str, quantity: float) -> Optional[LineItem]:
        return self.session.update_quantity(product_id, quantity)

    def remove_item(self, product_id: str):
        self.session.remove_item(product_id)

    def apply_manual_discount(self, product_id: str, discount_type: str, value: float) -> LineItem:
        return self.session.apply_manual_discount(product_id, discount_type, value)

    def remove_manual_discount(self, product_id: str) -> LineItem:
        return self.session.remove_manual_discount(product_id)

    def totals(self, loyalty_points: float = 0, point_value: float = 0.0) -> CartTotals:
        return self.session.totals(loyalty_points, point_value)

    def cart_view(self, loyalty_points: float = 0, point_value: float = 0.0) -> dict:
        """Cart as the register screen renders it."""
        return {
            "sessionId": self.session_id,
            "items": [line.to_pos_dict() for line in self.session.cart.lines],
            "totals": self.totals(loyalty_points, point_value).to_dict(),
        }

    def checkout(self, loyalty_points: float = 0, point_value: float = 0.0) -> CheckoutSummary:
        return self.session.checkout(loyalty_points, point_value)

    def close(self):
        self.session.close()
