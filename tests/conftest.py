"""
Shared fixtures for the pricing tests.

Promotion windows depend on the clock, so every test prices at a pinned
moment: Friday 2026-03-13 12:00 (local, naive).
"""
from datetime import datetime
from pathlib import Path

import pytest

from dispensary_pricing.config.settings import Settings
from dispensary_pricing.engine.models import Product, Promotion

NOW = datetime(2026, 3, 13, 12, 0)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SAMPLE_DATA = PROJECT_ROOT / 'data'


class FakeClock:
    """Settable clock for sessions that must see time pass."""

    def __init__(self, moment: datetime = NOW):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def single_product():
    return Product(id="P1", name="Blue Dream 3.5g", category="flower", regular_price=20.0, vendor_id="v1")


@pytest.fixture
def tiered_product():
    return Product(
        id="T1",
        name="Sour Diesel 1g",
        category="flower",
        pricing_mode="tiered",
        regular_price=12.0,
        pricing_tiers=[
            {"qty": 1, "price": 12},
            {"qty": 5, "price": 10},
            {"qty": 10, "price": 8},
        ],
        vendor_id="v1",
    )


@pytest.fixture
def make_promo():
    """Factory for promotions with sensible defaults."""
    def _make(promo_id="PR1", **overrides):
        fields = {
            "name": promo_id,
            "vendor_id": "v1",
            "promotion_type": "global",
            "discount_type": "percentage",
            "discount_value": 25.0,
        }
        fields.update(overrides)
        return Promotion(id=promo_id, **fields)
    return _make


@pytest.fixture
def sample_settings(tmp_path):
    """Settings over the sample vendor export in data/, never a compiled file."""
    return Settings(
        project_root=PROJECT_ROOT,
        products_file=SAMPLE_DATA / 'products.csv',
        promotions_csv=SAMPLE_DATA / 'promotions.csv',
        compiled_promotions=tmp_path / 'outputs' / 'compiled_promotions.json',
        catalog_report=tmp_path / 'outputs' / 'catalog_report.json',
    )
