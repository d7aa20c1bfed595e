"""
Promotion Matcher - Matches and applies vendor promotions to a product price.

Used by the pricing engine to apply at most one promotion on top of the
resolved base price. Promotions never stack: candidates are filtered by
scope and active window, then a single winner is picked by priority
(higher first), then by the larger per-unit discount, then by id.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Union

from .models import (
    DEFAULT_BADGE_COLOR,
    AppliedPromotion,
    Badge,
    Product,
    Promotion,
    to_float,
    to_str_list,
)

logger = logging.getLogger(__name__)


@dataclass
class MatchedPromotion:
    """A promotion that matched with context."""
    promotion: Promotion
    discount: float
    final_price: float
    match_reason: str


# ---------------------------------------------------------------------------
# Active window
# ---------------------------------------------------------------------------

def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO timestamp; raises ValueError for garbage."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.fromisoformat(text)


def parse_time_of_day(value: Optional[str]) -> Optional[time]:
    """Parse HH:MM or HH:MM:SS; raises ValueError for garbage."""
    if value is None:
        return None
    return time.fromisoformat(str(value).strip())


def _is_date_only(value) -> bool:
    return isinstance(value, str) and len(value.strip()) == 10


def _comparable(moment: datetime, bound: datetime) -> tuple[datetime, datetime]:
    """Align naive/aware datetimes; aware values are taken in UTC and made naive."""
    if (moment.tzinfo is None) == (bound.tzinfo is None):
        return moment, bound
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    else:
        bound = bound.astimezone(timezone.utc).replace(tzinfo=None)
    return moment, bound


def is_promotion_active(promotion: Promotion, now: datetime) -> bool:
    """
    Check the promotion's switch, date range, weekdays and daily hours at ``now``.

    A window that cannot be parsed makes the promotion inactive.
    """
    if not promotion.is_active:
        return False

    try:
        start = parse_datetime(promotion.start_time)
        end = parse_datetime(promotion.end_time)
        day_start = parse_time_of_day(promotion.time_of_day_start)
        day_end = parse_time_of_day(promotion.time_of_day_end)
    except (TypeError, ValueError):
        logger.warning("Promotion %s has an unreadable active window, ignoring it", promotion.id)
        return False

    if start is not None:
        current, start = _comparable(now, start)
        if current < start:
            return False

    if end is not None:
        if _is_date_only(promotion.end_time):
            # A bare end date runs through the whole day
            end = end + timedelta(days=1) - timedelta(microseconds=1)
        current, end = _comparable(now, end)
        if current > end:
            return False

    if promotion.days_of_week:
        # Sunday = 0, matching the promotion editor
        current_day = (now.weekday() + 1) % 7
        if current_day not in promotion.days_of_week:
            return False

    if day_start is not None and day_end is not None:
        current_time = now.time().replace(microsecond=0, tzinfo=None)
        day_start = day_start.replace(tzinfo=None)
        day_end = day_end.replace(tzinfo=None)
        if day_start <= day_end:
            if current_time < day_start or current_time > day_end:
                return False
        elif day_end < current_time < day_start:
            # Overnight window, e.g. 22:00 - 02:00
            return False

    return True


# ---------------------------------------------------------------------------
# Discounts and badges
# ---------------------------------------------------------------------------

def apply_promotion(promotion: Promotion, base_price: float) -> float:
    """Discounted unit price, clamped to zero. Unusable values leave the price unchanged."""
    value = promotion.discount_value
    if value is None or math.isnan(value) or math.isinf(value) or value < 0:
        return round(base_price, 2)

    if promotion.discount_type == 'percentage':
        new_price = base_price * (1 - min(value, 100.0) / 100.0)
    elif promotion.discount_type == 'fixed_amount':
        new_price = base_price - value
    else:
        return round(base_price, 2)

    return round(max(0.0, new_price), 2)


def _format_number(value: float) -> str:
    return f"{value:g}" if float(value).is_integer() else f"{value:.2f}".rstrip('0').rstrip('.')


def format_discount(promotion: Promotion) -> str:
    """Default badge text: '25% OFF' or '$10 OFF'."""
    value = promotion.discount_value
    if promotion.discount_type == 'percentage':
        return f"{_format_number(value)}% OFF"
    if float(value).is_integer():
        return f"${value:g} OFF"
    return f"${value:.2f} OFF"


def derive_badge(promotion: Promotion) -> Badge:
    """Badge for a promotion that applied."""
    return Badge(
        text=promotion.badge_text or format_discount(promotion),
        color=promotion.badge_color or DEFAULT_BADGE_COLOR,
    )


def snapshot(promotion: Promotion) -> AppliedPromotion:
    """Reference to the winning promotion carried on the calculation."""
    return AppliedPromotion(
        id=promotion.id,
        name=promotion.name or promotion.id,
        promotion_type=promotion.promotion_type,
        discount_type=promotion.discount_type,
        discount_value=promotion.discount_value,
    )


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------

class PromotionMatcher:
    """
    Matches promotions against a product at a quantity.

    Stateless: promotions are handed in on every call, since the list
    changes whenever the vendor publishes an update.
    """

    def scope_reason(
        self,
        promotion: Promotion,
        product: Product,
        quantity: float,
        tier_label: Optional[str] = None
    ) -> Optional[str]:
        """Return why the promotion's scope covers this product, or None."""
        ptype = promotion.promotion_type

        if ptype == 'global':
            return "global"

        if ptype == 'product':
            if str(product.id) in {str(pid) for pid in promotion.target_product_ids}:
                return f"product={product.id}"
            return None

        if ptype == 'category':
            targets = {c.lower() for c in promotion.target_categories}
            for cat in product.all_categories():
                if cat in targets:
                    return f"category={cat}"
            return None

        if ptype == 'tier':
            return self._tier_reason(promotion, product, quantity, tier_label)

        return None

    def _tier_reason(
        self,
        promotion: Promotion,
        product: Product,
        quantity: float,
        tier_label: Optional[str]
    ) -> Optional[str]:
        rules = promotion.target_tier_rules or {}
        min_qty = to_float(rules.get('min_quantity'))
        max_qty = to_float(rules.get('max_quantity'))
        labels = [l.lower() for l in to_str_list(rules.get('tier_labels'))]

        if min_qty is None and max_qty is None and not labels:
            return None

        reasons = []
        if min_qty is not None:
            if quantity < min_qty:
                return None
            reasons.append(f"qty>={min_qty:g}")

        if max_qty is not None:
            if quantity > max_qty:
                return None
            reasons.append(f"qty<={max_qty:g}")

        if labels:
            if not tier_label or tier_label.lower() not in labels:
                return None
            reasons.append(f"tier={tier_label}")

        product_ids = to_str_list(rules.get('product_ids'))
        if product_ids and str(product.id) not in product_ids:
            return None

        categories = {c.lower() for c in to_str_list(rules.get('categories'))}
        if categories and not categories.intersection(product.all_categories()):
            return None

        return ", ".join(reasons)

    def find_matching_promotions(
        self,
        promotions: list[Promotion],
        product: Product,
        quantity: float,
        base_price: float,
        now: datetime,
        tier_label: Optional[str] = None
    ) -> list[MatchedPromotion]:
        """
        Find all promotions that would discount this line.

        Returns candidates ordered best first; only the first one is applied.
        """
        matched = []

        for promotion in promotions:
            reason = self.scope_reason(promotion, product, quantity, tier_label)
            if reason is None:
                continue

            if not is_promotion_active(promotion, now):
                continue

            final_price = apply_promotion(promotion, base_price)
            discount = round(base_price - final_price, 2)
            if discount <= 0:
                # Zero-effect promotions never claim the line
                continue

            matched.append(MatchedPromotion(
                promotion=promotion,
                discount=discount,
                final_price=final_price,
                match_reason=reason,
            ))

        matched.sort(key=lambda m: (-m.promotion.priority, -m.discount, str(m.promotion.id)))
        return matched

    def select_promotion(
        self,
        promotions: list[Promotion],
        product: Product,
        quantity: float,
        base_price: float,
        now: datetime,
        tier_label: Optional[str] = None
    ) -> Optional[MatchedPromotion]:
        """The single winning promotion, or None."""
        matched = self.find_matching_promotions(
            promotions, product, quantity, base_price, now, tier_label
        )
        return matched[0] if matched else None
