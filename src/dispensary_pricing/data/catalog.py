"""
Catalog Loader - Reads vendor product exports into pricing records.

Accepts CSV, Excel or JSON exports. ``pricing_tiers`` is stored as a JSON
encoded column in flat files. Loading is lenient about pricing: a product
with broken tiers is still loaded (the engine falls back to its regular
price), but rows without an id are dropped.
"""
import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from ..engine.models import PRICING_MODE_TIERED, Product
from ..engine.tier_resolver import parse_tiers

logger = logging.getLogger(__name__)


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


def read_product_frame(path: Path) -> pd.DataFrame:
    """Read a product export into a DataFrame of plain Python values."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Product export not found at {path}. "
            "Set DISPENSARY_PRODUCTS_FILE or place products.csv in data/."
        )

    suffix = path.suffix.lower()
    if suffix in ('.xlsx', '.xls'):
        df = pd.read_excel(path, dtype={'id': str})
    elif suffix == '.json':
        df = pd.read_json(path, orient='records', dtype=False)
    else:
        df = pd.read_csv(path, dtype={'id': str})

    df.columns = [str(c).strip() for c in df.columns]
    # NaN -> None so the model parsers see blanks
    return df.astype(object).where(pd.notna(df), None)


def _parse_tiers_cell(value, product_id: str, warnings: list[str]) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    text = str(value).strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        warnings.append(f"Product {product_id}: pricing_tiers is not valid JSON")
        return []
    if not isinstance(parsed, list):
        warnings.append(f"Product {product_id}: pricing_tiers must be a list")
        return []
    return parsed


def frame_to_products(df: pd.DataFrame) -> tuple[dict[str, Product], list[str]]:
    """Convert export rows to products keyed by id. Returns (products, warnings)."""
    products: dict[str, Product] = {}
    warnings: list[str] = []

    if 'id' not in df.columns:
        warnings.append("Product export has no 'id' column")
        return products, warnings

    for index, row in df.iterrows():
        record = row.to_dict()
        product_id = str(record.get('id') or '').strip()
        if not product_id:
            warnings.append(f"Row {index + 2}: missing product id, skipped")
            continue
        if product_id in products:
            warnings.append(f"Duplicate product id {product_id}, kept first row")
            continue

        record['id'] = product_id
        record['pricing_tiers'] = _parse_tiers_cell(record.get('pricing_tiers'), product_id, warnings)
        products[product_id] = Product.from_dict(record)

    return products, warnings


def load_products(path: Path) -> dict[str, Product]:
    """Load a product export; problems are logged, not raised."""
    products, warnings = frame_to_products(read_product_frame(path))
    for warning in warnings:
        logger.warning(warning)
    logger.info("Loaded %d products from %s", len(products), path)
    return products


def has_usable_price(product: Product) -> bool:
    """True if the engine can price the product above the zero fallback."""
    if product.regular_price is not None and product.regular_price >= 0:
        return True
    if str(product.pricing_mode).lower() == PRICING_MODE_TIERED:
        tiers, _ = parse_tiers(product)
        return bool(tiers)
    return False


def build_catalog_report(path: Path, output: Optional[Path] = None, verbose: bool = False) -> dict:
    """
    Summarise a product export: counts, tier coverage and pricing gaps.

    Args:
        path: Product export to inspect
        output: Optional JSON file to write the report to
        verbose: Print progress messages

    Returns:
        Report dictionary
    """
    path = Path(path)
    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "input_files": {"products": {"path": str(path), "hash": get_file_hash(path)}},
        "metrics": {},
        "warnings": [],
        "errors": [],
    }

    try:
        df = read_product_frame(path)
        products, warnings = frame_to_products(df)
    except Exception as e:
        msg = f"ERROR: Failed to process {path}. {e}"
        report["errors"].append(msg)
        report["status"] = "failed"
        if verbose:
            print(msg)
        return report

    report["warnings"].extend(warnings)

    tiered = [p for p in products.values() if str(p.pricing_mode).lower() == PRICING_MODE_TIERED]
    tiered_ok = [p for p in tiered if parse_tiers(p)[0]]
    unpriced = sorted(p.id for p in products.values() if not has_usable_price(p))

    report["metrics"] = {
        "row_count": int(len(df)),
        "product_count": len(products),
        "tiered_count": len(tiered),
        "tiered_with_usable_tiers": len(tiered_ok),
        "tier_coverage_pct": round(len(tiered_ok) / len(tiered) * 100, 1) if tiered else 0.0,
        "unpriced_count": len(unpriced),
    }
    if unpriced:
        report["warnings"].append(f"{len(unpriced)} products have no usable price: {', '.join(unpriced[:10])}")

    report["status"] = "success"

    if verbose:
        print(f"Catalog: {len(products)} products, {len(tiered)} tiered, {len(unpriced)} unpriced")

    if output is not None:
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)
        if verbose:
            print(f"Catalog report saved to: {output}")

    return report
