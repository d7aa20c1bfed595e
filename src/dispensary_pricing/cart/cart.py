"""
Cart - line-item aggregation shared by every surface.

Lines are always priced through the engine, so a POS cart, a storefront
cart and a menu showing the same product/promotions/quantity agree on the
unit price. The cart keeps the product records it has seen so lines can be
re-priced when quantities change or the vendor's promotions are updated.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from ..engine.models import LineItem, Product, Promotion, to_float
from ..engine.pricing_engine import (
    PricingEngine,
    coerce_product,
    coerce_promotions,
    line_item_from_calculation,
)

logger = logging.getLogger(__name__)

MANUAL_DISCOUNT_TYPES = ('percentage', 'amount')


@dataclass
class CartTotals:
    """Aggregated money for a cart."""
    subtotal: float
    promotion_discount: float
    manual_discount: float
    loyalty_discount: float
    taxable_amount: float
    tax: float
    total: float
    item_count: float

    def to_dict(self) -> dict:
        return asdict(self)


def compute_totals(
    lines: list[LineItem],
    tax_rate: float = 0.0,
    loyalty_points: float = 0,
    point_value: float = 0.0
) -> CartTotals:
    """
    Aggregate line totals into cart totals.

    subtotal = sum(line_total); loyalty redemption is capped at the subtotal
    and taken before tax; tax = taxable * tax_rate; total = taxable + tax.
    """
    if tax_rate is None or tax_rate < 0:
        raise ValueError(f"Tax rate must be >= 0, got {tax_rate}")
    if loyalty_points < 0 or point_value < 0:
        raise ValueError("Loyalty points and point value must be >= 0")

    subtotal = round(sum(line.line_total for line in lines), 2)
    promotion_discount = round(sum(line.discount for line in lines), 2)
    manual_discount = round(sum(line.manual_discount_amount for line in lines), 2)

    loyalty_discount = round(min(loyalty_points * point_value, subtotal), 2)
    taxable = round(subtotal - loyalty_discount, 2)
    tax = round(taxable * tax_rate, 2)

    return CartTotals(
        subtotal=subtotal,
        promotion_discount=promotion_discount,
        manual_discount=manual_discount,
        loyalty_discount=loyalty_discount,
        taxable_amount=taxable,
        tax=tax,
        total=round(taxable + tax, 2),
        item_count=sum(line.quantity for line in lines),
    )


def apply_manual_discount_to_line(line: LineItem) -> LineItem:
    """Re-apply a line's staff discount on top of its promotion price."""
    gross = round(line.unit_price * line.quantity, 2)
    amount = 0.0
    if line.manual_discount_type == 'percentage':
        amount = round(gross * line.manual_discount_value / 100.0, 2)
    elif line.manual_discount_type == 'amount':
        amount = round(line.manual_discount_value, 2)

    line.manual_discount_amount = min(amount, gross)
    line.line_total = round(gross - line.manual_discount_amount, 2)
    return line


class Cart:
    """
    Mutable cart keyed by product id.

    Uses the promotion list last handed to ``recalculate`` (or the
    constructor) for every re-price.
    """

    def __init__(
        self,
        engine: Optional[PricingEngine] = None,
        promotions: Optional[list] = None
    ):
        self.engine = engine or PricingEngine()
        self.promotions: list[Promotion] = coerce_promotions(promotions)
        self.products: dict[str, Product] = {}
        self._lines: dict[str, LineItem] = {}

    @property
    def lines(self) -> list[LineItem]:
        return list(self._lines.values())

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id) -> bool:
        return str(product_id) in self._lines

    def get_line(self, product_id: str) -> LineItem:
        try:
            return self._lines[str(product_id)]
        except KeyError:
            raise KeyError(f"Product '{product_id}' is not in the cart") from None

    def _price_line(self, product: Product, quantity: float, now: Optional[datetime] = None) -> LineItem:
        previous = self._lines.get(product.id)
        calc = self.engine.calculate_price(product, self.promotions, quantity, now=now)
        line = line_item_from_calculation(product, calc, quantity)

        if previous is not None and previous.manual_discount_type:
            line.manual_discount_type = previous.manual_discount_type
            line.manual_discount_value = previous.manual_discount_value
            apply_manual_discount_to_line(line)
        return line

    def add_item(self, product, quantity: float = 1, now: Optional[datetime] = None) -> LineItem:
        """Add a product, merging with an existing line and re-pricing at the new quantity."""
        qty = to_float(quantity)
        if qty is None or qty <= 0:
            raise ValueError(f"Quantity must be a finite number > 0, got {quantity}")

        prod = coerce_product(product)
        if not prod.id:
            raise ValueError("Product has no id")

        self.products[prod.id] = prod
        existing = self._lines.get(prod.id)
        new_quantity = qty + (existing.quantity if existing else 0)

        line = self._price_line(prod, new_quantity, now=now)
        self._lines[prod.id] = line
        return line

    def update_quantity(self, product_id: str, quantity: float, now: Optional[datetime] = None) -> Optional[LineItem]:
        """Set a line's quantity; zero or less removes the line."""
        product_id = str(product_id)
        self.get_line(product_id)

        qty = to_float(quantity)
        if qty is None:
            raise ValueError(f"Quantity must be a finite number, got {quantity}")
        if qty <= 0:
            self.remove_item(product_id)
            return None

        line = self._price_line(self.products[product_id], qty, now=now)
        self._lines[product_id] = line
        return line

    def remove_item(self, product_id: str):
        self.get_line(product_id)
        del self._lines[str(product_id)]

    def apply_manual_discount(self, product_id: str, discount_type: str, value: float) -> LineItem:
        """Apply a staff discount to one line (after its promotion price)."""
        line = self.get_line(product_id)

        if discount_type not in MANUAL_DISCOUNT_TYPES:
            raise ValueError(f"Discount type must be one of {MANUAL_DISCOUNT_TYPES}")
        if value is None or value <= 0:
            raise ValueError(f"Discount value must be > 0, got {value}")
        if discount_type == 'percentage' and value > 100:
            raise ValueError("Percentage discount cannot exceed 100")

        line.manual_discount_type = discount_type
        line.manual_discount_value = float(value)
        apply_manual_discount_to_line(line)
        logger.info("Staff discount on %s: %s %s", product_id, discount_type, value)
        return line

    def remove_manual_discount(self, product_id: str) -> LineItem:
        line = self.get_line(product_id)
        line.manual_discount_type = None
        line.manual_discount_value = 0.0
        apply_manual_discount_to_line(line)
        return line

    def recalculate(self, promotions: Optional[list] = None, now: Optional[datetime] = None) -> list[LineItem]:
        """Re-price every line, optionally against a new promotion list."""
        if promotions is not None:
            self.promotions = coerce_promotions(promotions)

        for product_id, line in list(self._lines.items()):
            product = self.products.get(product_id)
            if product is None:
                continue
            repriced = self._price_line(product, line.quantity, now=now)
            # Lines removed or re-quantified meanwhile are left as they are
            if self._lines.get(product_id) is line:
                self._lines[product_id] = repriced
        return self.lines

    def totals(self, tax_rate: float = 0.0, loyalty_points: float = 0, point_value: float = 0.0) -> CartTotals:
        return compute_totals(self.lines, tax_rate, loyalty_points, point_value)

    def clear(self):
        self._lines.clear()
