"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation. Products and
promotions arrive as loose records (database rows, CSV rows, API bodies), so
every model has a tolerant ``from_dict`` that never raises on pricing fields.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

PRICING_MODE_SINGLE = "single"
PRICING_MODE_TIERED = "tiered"

PROMOTION_TYPES = ('product', 'category', 'tier', 'global')
DISCOUNT_TYPES = ('percentage', 'fixed_amount')

DEFAULT_BADGE_COLOR = "red"


def to_float(value: Any) -> Optional[float]:
    """Parse a finite float, or None for blanks, garbage, NaN and infinities."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace('$', '').replace(',', '')
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_str_list(value: Any) -> list[str]:
    """Normalize a list-ish field ("a|b", "a,b", [..], None) to a list of strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = value
    else:
        text = str(value).strip()
        if not text or text.lower() == 'nan':
            return []
        sep = '|' if '|' in text else ','
        items = text.split(sep)
    return [str(v).strip() for v in items if v is not None and str(v).strip()]


def _to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text or text == 'nan':
        return default
    return text in ('true', '1', 'yes', 'on')


def _to_int(value: Any, default: int = 0) -> int:
    number = to_float(value)
    return int(number) if number is not None else default


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ('nan', 'none', 'null'):
        return None
    return text


@dataclass
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass(frozen=True)
class PricingTier:
    """A quantity break: at or above ``min_quantity`` each unit costs ``price``."""
    label: str
    min_quantity: float
    price: float

    @classmethod
    def parse(cls, raw: Any) -> Optional['PricingTier']:
        """Parse a tier record; returns None when the record is unusable."""
        if isinstance(raw, PricingTier):
            return raw
        if not isinstance(raw, dict):
            return None

        threshold = raw.get('qty')
        if to_float(threshold) is None:
            threshold = raw.get('min_quantity')
        threshold = to_float(threshold)

        price = raw.get('price')
        if to_float(price) is None:
            price = raw.get('default_price')
        price = to_float(price)

        if threshold is None or price is None or threshold < 0 or price < 0:
            return None

        label = _opt_str(raw.get('label')) or f"{threshold:g}+"
        return cls(label=label, min_quantity=threshold, price=price)


@dataclass
class Product:
    """The pricing-relevant slice of a product record."""
    id: str
    name: str = ""
    category: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    pricing_mode: str = PRICING_MODE_SINGLE
    regular_price: Optional[float] = None
    pricing_tiers: list[Union[dict, PricingTier]] = field(default_factory=list)
    inventory_id: Optional[str] = None
    vendor_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict) -> 'Product':
        """Build a product from a loose record without raising on pricing fields."""
        tiers = raw.get('pricing_tiers')
        if not isinstance(tiers, (list, tuple)):
            tiers = []

        regular = to_float(raw.get('regular_price'))
        if regular is None:
            regular = to_float(raw.get('price'))

        return cls(
            id=str(raw.get('id', '')).strip(),
            name=_opt_str(raw.get('name')) or "",
            category=_opt_str(raw.get('category')),
            categories=to_str_list(raw.get('categories')),
            pricing_mode=_opt_str(raw.get('pricing_mode')) or PRICING_MODE_SINGLE,
            regular_price=regular,
            pricing_tiers=list(tiers),
            inventory_id=_opt_str(raw.get('inventory_id')),
            vendor_id=_opt_str(raw.get('vendor_id')),
        )

    def all_categories(self) -> list[str]:
        """Category slugs of this product, lower-cased and de-duplicated."""
        seen = []
        for cat in ([self.category] if self.category else []) + list(self.categories):
            key = str(cat).strip().lower()
            if key and key not in seen:
                seen.append(key)
        return seen


@dataclass
class Promotion:
    """A vendor-authored, time-bounded discount."""
    id: str
    name: str = ""
    vendor_id: Optional[str] = None
    description: Optional[str] = None
    promotion_type: str = "product"
    discount_type: str = "percentage"
    discount_value: float = 0.0
    target_product_ids: list[str] = field(default_factory=list)
    target_categories: list[str] = field(default_factory=list)
    target_tier_rules: dict = field(default_factory=dict)
    start_time: Optional[Union[str, datetime]] = None
    end_time: Optional[Union[str, datetime]] = None
    days_of_week: list[int] = field(default_factory=list)
    time_of_day_start: Optional[str] = None
    time_of_day_end: Optional[str] = None
    badge_text: Optional[str] = None
    badge_color: Optional[str] = None
    show_original_price: bool = True
    priority: int = 0
    is_active: bool = True

    @classmethod
    def from_dict(cls, raw: dict) -> 'Promotion':
        """Build a promotion from a loose record (API row or compiled JSON)."""
        days = []
        for day in to_str_list(raw.get('days_of_week')):
            number = to_float(day)
            if number is not None:
                days.append(int(number))

        tier_rules = raw.get('target_tier_rules')
        if not isinstance(tier_rules, dict):
            tier_rules = {}

        value = to_float(raw.get('discount_value'))

        return cls(
            id=str(raw.get('id', '')).strip(),
            name=_opt_str(raw.get('name')) or "",
            vendor_id=_opt_str(raw.get('vendor_id')),
            description=_opt_str(raw.get('description')),
            promotion_type=(_opt_str(raw.get('promotion_type')) or 'product').lower(),
            discount_type=(_opt_str(raw.get('discount_type')) or 'percentage').lower(),
            discount_value=value if value is not None else float('nan'),
            target_product_ids=to_str_list(raw.get('target_product_ids')),
            target_categories=to_str_list(raw.get('target_categories')),
            target_tier_rules=dict(tier_rules),
            start_time=raw.get('start_time') if isinstance(raw.get('start_time'), datetime) else _opt_str(raw.get('start_time')),
            end_time=raw.get('end_time') if isinstance(raw.get('end_time'), datetime) else _opt_str(raw.get('end_time')),
            days_of_week=days,
            time_of_day_start=_opt_str(raw.get('time_of_day_start')),
            time_of_day_end=_opt_str(raw.get('time_of_day_end')),
            badge_text=_opt_str(raw.get('badge_text')),
            badge_color=_opt_str(raw.get('badge_color')),
            show_original_price=_to_bool(raw.get('show_original_price'), True),
            priority=_to_int(raw.get('priority'), 0),
            is_active=_to_bool(raw.get('is_active'), True),
        )


@dataclass(frozen=True)
class Badge:
    """Short UI label shown next to a discounted price."""
    text: str
    color: str = DEFAULT_BADGE_COLOR


@dataclass(frozen=True)
class AppliedPromotion:
    """Snapshot of the single promotion that produced a discount."""
    id: str
    name: str
    promotion_type: str
    discount_type: str
    discount_value: float


@dataclass
class PriceCalculation:
    """Result of pricing one product at one quantity."""
    final_price: float
    base_price: float
    quantity: float
    original_price: Optional[float] = None
    savings: float = 0.0
    applied_promotion: Optional[AppliedPromotion] = None
    badge: Optional[Badge] = None
    tier_label: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this calculation."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a warning for this calculation."""
        if warning not in self.warnings:
            self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Payload in the field names the register and menu screens read."""
        return {
            "originalPrice": self.original_price,
            "finalPrice": self.final_price,
            "savings": self.savings,
            "appliedPromotion": (
                {"id": self.applied_promotion.id, "name": self.applied_promotion.name}
                if self.applied_promotion else None
            ),
            "badge": (
                {"text": self.badge.text, "color": self.badge.color}
                if self.badge else None
            ),
            "tierLabel": self.tier_label,
        }


@dataclass(frozen=True)
class TierPrice:
    """One row of a tiered price list as shown on a TV menu."""
    label: str
    min_quantity: float
    final_price: float
    original_price: Optional[float] = None
    savings: float = 0.0
    badge: Optional[Badge] = None


@dataclass
class LineItem:
    """One product/quantity pairing in a cart, priced by the engine."""
    product_id: str
    product_name: str
    quantity: float
    unit_price: float
    line_total: float
    original_price: Optional[float] = None
    discount: float = 0.0
    promotion_id: Optional[str] = None
    promotion_name: Optional[str] = None
    badge_text: Optional[str] = None
    badge_color: Optional[str] = None
    tier_label: Optional[str] = None
    inventory_id: Optional[str] = None

    # Staff discount, POS only
    manual_discount_type: Optional[str] = None  # "percentage" or "amount"
    manual_discount_value: float = 0.0
    manual_discount_amount: float = 0.0

    def to_pos_dict(self) -> dict:
        """Line in the field names used by the register cart."""
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "lineTotal": self.line_total,
            "originalPrice": self.original_price,
            "discount": self.discount,
            "promotionName": self.promotion_name,
            "badgeText": self.badge_text,
            "badgeColor": self.badge_color,
            "tierLabel": self.tier_label,
            "inventoryId": self.inventory_id,
            "manualDiscountType": self.manual_discount_type,
            "manualDiscountValue": self.manual_discount_value or None,
        }
