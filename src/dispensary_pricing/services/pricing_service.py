"""
Pricing Service - holds the loaded catalog and promotions for the API and UI.

The engine itself is pure; this service owns the data it is fed: products
from the vendor export, promotions from the compiled promotion file (or
the raw CSV when nothing is compiled yet), and the channel that pushes
promotion reloads to open cart sessions.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from ..cart.cart import CartTotals, compute_totals
from ..cart.session import PromotionChannel, active_promotions
from ..config.settings import Settings, get_settings
from ..data.catalog import load_products
from ..engine.models import LineItem, PriceCalculation, Product, Promotion, to_float
from ..engine.pricing_engine import PricingEngine
from ..promotions.compile_promotions import load_promotions
from ..surfaces.tv_menu import MenuEntry, build_menu

logger = logging.getLogger(__name__)


class PricingService:
    """
    Catalog + promotions + engine, loaded from the configured files.

    Missing files leave the service empty rather than failing start-up.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        channel: Optional[PromotionChannel] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.settings = settings or get_settings()
        self.channel = channel or PromotionChannel()
        self.clock = clock or datetime.now
        self.engine = PricingEngine(clock=self.clock)

        self.products: dict[str, Product] = {}
        self.promotions: list[Promotion] = []
        self.loaded_at: Optional[datetime] = None
        self.load_errors: list[str] = []
        self._load()

    def _load(self):
        self.load_errors = []

        try:
            self.products = load_products(self.settings.products_file)
        except FileNotFoundError as e:
            logger.warning(str(e))
            self.load_errors.append(str(e))
            self.products = {}

        promotions_path = self.settings.compiled_promotions
        if not promotions_path.exists():
            promotions_path = self.settings.promotions_csv
        try:
            self.promotions = load_promotions(promotions_path)
        except FileNotFoundError as e:
            logger.warning(str(e))
            self.load_errors.append(str(e))
            self.promotions = []

        self.loaded_at = datetime.now()
        logger.info("Pricing data loaded: %d products, %d promotions", len(self.products), len(self.promotions))

    def reload_data(self) -> int:
        """Reload products and promotions from disk and push promotions to open sessions."""
        self._load()
        return self.publish_promotions()

    def set_promotions(self, promotions: list) -> int:
        """Replace the promotion list (e.g. after a vendor edit) and broadcast it."""
        self.promotions = [p if isinstance(p, Promotion) else Promotion.from_dict(p) for p in promotions]
        return self.publish_promotions()

    def publish_promotions(self) -> int:
        """Broadcast the current promotion list to every subscribed vendor session."""
        delivered = 0
        for vendor_id in self.vendor_ids():
            delivered += self.channel.publish(vendor_id, self.promotions_for_vendor(vendor_id))
        return delivered

    def vendor_ids(self) -> list[str]:
        ids = {p.vendor_id for p in self.products.values() if p.vendor_id}
        ids.update(p.vendor_id for p in self.promotions if p.vendor_id)
        if self.settings.default_vendor_id:
            ids.add(self.settings.default_vendor_id)
        return sorted(ids)

    def promotions_for_vendor(self, vendor_id: Optional[str]) -> list[Promotion]:
        if not vendor_id:
            return list(self.promotions)
        return [p for p in self.promotions if not p.vendor_id or p.vendor_id == vendor_id]

    def active_promotions(self, now: Optional[datetime] = None, vendor_id: Optional[str] = None) -> list[Promotion]:
        return active_promotions(self.promotions, vendor_id, now or self.clock())

    def get_product(self, product_id: str) -> Product:
        try:
            return self.products[str(product_id)]
        except KeyError:
            raise KeyError(f"Product '{product_id}' not found") from None

    def price(self, product_id: str, quantity: float = 1, now: Optional[datetime] = None) -> PriceCalculation:
        product = self.get_product(product_id)
        moment = now or self.clock()
        promos = self.active_promotions(moment, product.vendor_id)
        return self.engine.calculate_price(product, promos, quantity, now=moment)

    def quote(
        self,
        items: dict[str, float],
        tax_rate: Optional[float] = None,
        loyalty_points: float = 0,
        point_value: float = 0.0,
        now: Optional[datetime] = None
    ) -> tuple[list[LineItem], CartTotals]:
        """Price a one-off cart ({product_id: quantity}) without opening a session."""
        moment = now or self.clock()
        lines = []
        for product_id, quantity in items.items():
            qty = to_float(quantity)
            if qty is None or qty <= 0:
                raise ValueError(f"Quantity for {product_id} must be a finite number > 0, got {quantity}")
            product = self.get_product(product_id)
            promos = self.active_promotions(moment, product.vendor_id)
            lines.append(self.engine.derive_line_item(product, promos, qty, now=moment))

        rate = self.settings.tax_rate if tax_rate is None else tax_rate
        return lines, compute_totals(lines, rate, loyalty_points, point_value)

    def menu(
        self,
        categories: Optional[list[str]] = None,
        vendor_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> list[MenuEntry]:
        """Menu board entries; each product only sees its own vendor's promotions."""
        moment = now or self.clock()

        by_vendor: dict[Optional[str], list[Product]] = {}
        for product in self.products.values():
            if vendor_id and product.vendor_id != vendor_id:
                continue
            by_vendor.setdefault(product.vendor_id, []).append(product)

        entries = []
        for owner, products in by_vendor.items():
            promos = self.active_promotions(moment, owner)
            entries.extend(build_menu(products, promos, now=moment, categories=categories))

        entries.sort(key=lambda e: ((e.category or '').lower(), e.name.lower()))
        return entries

    def status(self) -> dict:
        return {
            "products": len(self.products),
            "promotions": len(self.promotions),
            "active_promotions": len(self.active_promotions()),
            "sessions": self.channel.subscriber_count(),
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
            "load_errors": list(self.load_errors),
        }
