"""
Cart sessions and the promotion broadcast channel.

When a vendor publishes a promotion change, every open cart session of
that vendor receives the refreshed list, re-prices all of its lines and
re-aggregates. Checkout re-prices once more against the list current at
that moment, so an expired promotion is never honoured.
"""
import logging
import threading
import uuid
import weakref
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from ..engine.models import LineItem, Promotion
from ..engine.pricing_engine import PricingEngine, coerce_promotions
from ..engine.promotion_matcher import is_promotion_active
from .cart import Cart, CartTotals

logger = logging.getLogger(__name__)

Subscriber = Callable[[list[Promotion]], None]


def active_promotions(
    promotions: Optional[Iterable],
    vendor_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> list[Promotion]:
    """Caller-side filter: the vendor's promotions whose window covers ``now``."""
    moment = now or datetime.now()
    result = []
    for promo in coerce_promotions(promotions):
        if vendor_id and promo.vendor_id and promo.vendor_id != vendor_id:
            continue
        if is_promotion_active(promo, moment):
            result.append(promo)
    return result


class PromotionChannel:
    """
    In-process publish/subscribe channel for promotion updates, per vendor.

    Delivery is synchronous and fire-and-forget: a failing subscriber is
    logged and the remaining subscribers still receive the update. Weak
    subscriptions disappear once their owner is garbage collected.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, dict[str, Callable[[], Optional[Subscriber]]]] = defaultdict(dict)

    def subscribe(self, vendor_id: str, callback: Subscriber, weak: bool = False) -> Callable[[], None]:
        """
        Register a callback; returns a function that unsubscribes it.

        With ``weak=True`` a bound method is held through ``weakref.WeakMethod``
        so an abandoned session does not stay subscribed forever.
        """
        token = uuid.uuid4().hex
        if weak and hasattr(callback, '__self__'):
            ref = weakref.WeakMethod(callback)
        else:
            def ref():
                return callback
        with self._lock:
            self._subscribers[str(vendor_id)][token] = ref

        def unsubscribe():
            with self._lock:
                self._subscribers.get(str(vendor_id), {}).pop(token, None)

        return unsubscribe

    def _prune(self):
        for subs in self._subscribers.values():
            for token in [t for t, ref in subs.items() if ref() is None]:
                del subs[token]

    def subscriber_count(self, vendor_id: Optional[str] = None) -> int:
        with self._lock:
            self._prune()
            if vendor_id is not None:
                return len(self._subscribers.get(str(vendor_id), {}))
            return sum(len(subs) for subs in self._subscribers.values())

    def publish(self, vendor_id: str, promotions: Iterable) -> int:
        """Deliver a refreshed promotion list; returns the number of subscribers reached."""
        promos = coerce_promotions(promotions)
        with self._lock:
            self._prune()
            callbacks = [ref() for ref in self._subscribers.get(str(vendor_id), {}).values()]

        delivered = 0
        for callback in callbacks:
            if callback is None:
                continue
            try:
                callback(list(promos))
                delivered += 1
            except Exception:
                logger.exception("Promotion update delivery failed for vendor %s", vendor_id)
        logger.info("Published %d promotion(s) for vendor %s to %d session(s)", len(promos), vendor_id, delivered)
        return delivered


@dataclass
class CheckoutSummary:
    """Priced snapshot of a cart at checkout."""
    session_id: str
    vendor_id: str
    lines: list[LineItem]
    totals: CartTotals
    promotion_ids: list[str]
    checked_out_at: datetime = field(default_factory=datetime.now)


class CartSession:
    """
    An open cart subscribed to its vendor's promotion updates.

    Holds the vendor's full promotion list and filters it to active ones at
    every re-price, using the session clock. Broadcasts arrive on the
    publisher's thread, so every cart mutation holds the session lock.
    """

    def __init__(
        self,
        vendor_id: str,
        channel: Optional[PromotionChannel] = None,
        promotions: Optional[Iterable] = None,
        tax_rate: float = 0.0,
        clock: Optional[Callable[[], datetime]] = None,
        session_id: Optional[str] = None
    ):
        if tax_rate is None or tax_rate < 0:
            raise ValueError(f"Tax rate must be >= 0, got {tax_rate}")

        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.vendor_id = str(vendor_id)
        self.tax_rate = tax_rate
        self.clock = clock or datetime.now
        self.engine = PricingEngine(clock=self.clock)
        self.promotions: list[Promotion] = self._own(promotions)
        self.cart = Cart(engine=self.engine, promotions=self.current_promotions())
        self.closed = False
        self._lock = threading.RLock()

        self._unsubscribe = None
        if channel is not None:
            self._unsubscribe = channel.subscribe(self.vendor_id, self.on_promotions_changed, weak=True)

    def _own(self, promotions: Optional[Iterable]) -> list[Promotion]:
        return [
            p for p in coerce_promotions(promotions)
            if not p.vendor_id or p.vendor_id == self.vendor_id
        ]

    def current_promotions(self, now: Optional[datetime] = None) -> list[Promotion]:
        return active_promotions(self.promotions, self.vendor_id, now or self.clock())

    def on_promotions_changed(self, promotions: list[Promotion]):
        """Broadcast handler: swap in the new list and re-price every line."""
        with self._lock:
            self.promotions = self._own(promotions)
            now = self.clock()
            self.cart.recalculate(self.current_promotions(now), now=now)
        logger.debug("Session %s re-priced %d line(s) after promotion update", self.session_id, len(self.cart))

    def _check_open(self):
        if self.closed:
            raise ValueError(f"Session {self.session_id} is closed")

    def add_item(self, product, quantity: float = 1) -> LineItem:
        with self._lock:
            self._check_open()
            now = self.clock()
            self.cart.promotions = self.current_promotions(now)
            return self.cart.add_item(product, quantity, now=now)

    def update_quantity(self, product_id: str, quantity: float) -> Optional[LineItem]:
        with self._lock:
            self._check_open()
            now = self.clock()
            self.cart.promotions = self.current_promotions(now)
            return self.cart.update_quantity(product_id, quantity, now=now)

    def remove_item(self, product_id: str):
        with self._lock:
            self._check_open()
            self.cart.remove_item(product_id)

    def apply_manual_discount(self, product_id: str, discount_type: str, value: float) -> LineItem:
        with self._lock:
            self._check_open()
            return self.cart.apply_manual_discount(product_id, discount_type, value)

    def remove_manual_discount(self, product_id: str) -> LineItem:
        with self._lock:
            self._check_open()
            return self.cart.remove_manual_discount(product_id)

    def clear(self):
        with self._lock:
            self.cart.clear()

    def totals(self, loyalty_points: float = 0, point_value: float = 0.0) -> CartTotals:
        return self.cart.totals(self.tax_rate, loyalty_points, point_value)

    def checkout(self, loyalty_points: float = 0, point_value: float = 0.0) -> CheckoutSummary:
        """Re-price against the promotions active right now and total the cart."""
        with self._lock:
            self._check_open()
            if not len(self.cart):
                raise ValueError("Cannot check out an empty cart")

            now = self.clock()
            self.cart.recalculate(self.current_promotions(now), now=now)
            totals = self.totals(loyalty_points, point_value)
            lines = self.cart.lines

        promotion_ids = sorted({line.promotion_id for line in lines if line.promotion_id})
        logger.info("Checkout %s: %d line(s), total $%.2f", self.session_id, len(lines), totals.total)
        return CheckoutSummary(
            session_id=self.session_id,
            vendor_id=self.vendor_id,
            lines=lines,
            totals=totals,
            promotion_ids=promotion_ids,
            checked_out_at=now,
        )

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        with self._lock:
            self.closed = True
