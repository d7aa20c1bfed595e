"""
Promotion Compiler - Validates a vendor promotion export and compiles it to JSON.

Reads promotions.csv, validates every row, and outputs compiled_promotions.json
sorted by priority (higher first). The pricing service loads the compiled file.
"""
import csv
import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..engine.models import DISCOUNT_TYPES, PROMOTION_TYPES, Promotion, to_str_list
from ..engine.promotion_matcher import parse_datetime, parse_time_of_day

logger = logging.getLogger(__name__)


def parse_bool(value: str) -> bool:
    """Parse a boolean from CSV string."""
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_str(value) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() == '':
        return None
    return str(value).strip()


def parse_tier_rules(value: Optional[str]) -> dict:
    """target_tier_rules column: JSON object, or empty."""
    if not value:
        return {}
    parsed = json.loads(value)
    if not isinstance(parsed, dict):
        raise ValueError("target_tier_rules must be a JSON object")
    return parsed


def validate_promotion(row: dict, line_num: int) -> tuple[Optional[Promotion], list[str]]:
    """
    Validate and parse a promotion from a CSV row.

    Returns (promotion, errors) - promotion is None if validation failed.
    """
    errors = []

    promo_id = parse_optional_str(row.get('id'))
    if not promo_id:
        errors.append(f"Line {line_num}: id is required")
        return None, errors

    promotion_type = (parse_optional_str(row.get('promotion_type')) or '').lower()
    if promotion_type not in PROMOTION_TYPES:
        errors.append(f"Line {line_num}: invalid promotion_type '{promotion_type}', must be one of: {PROMOTION_TYPES}")

    discount_type = (parse_optional_str(row.get('discount_type')) or '').lower()
    if discount_type not in DISCOUNT_TYPES:
        errors.append(f"Line {line_num}: invalid discount_type '{discount_type}', must be one of: {DISCOUNT_TYPES}")

    value_str = parse_optional_str(row.get('discount_value'))
    discount_value = None
    if value_str is None:
        errors.append(f"Line {line_num}: discount_value is required")
    else:
        try:
            discount_value = float(value_str)
        except ValueError:
            errors.append(f"Line {line_num}: discount_value must be numeric")
        else:
            if discount_value < 0:
                errors.append(f"Line {line_num}: discount_value must be >= 0")
            elif discount_type == 'percentage' and discount_value > 100:
                errors.append(f"Line {line_num}: percentage discount_value cannot exceed 100")

    try:
        priority = int(row.get('priority') or 0)
    except ValueError:
        errors.append(f"Line {line_num}: priority must be an integer")
        priority = 0

    # Active window
    start_time = parse_optional_str(row.get('start_time'))
    end_time = parse_optional_str(row.get('end_time'))
    parsed = {}
    for name, value in (('start_time', start_time), ('end_time', end_time)):
        if value:
            try:
                parsed[name] = parse_datetime(value)
            except ValueError:
                errors.append(f"Line {line_num}: {name} must be an ISO date or datetime")
    if 'start_time' in parsed and 'end_time' in parsed:
        start, end = parsed['start_time'], parsed['end_time']
        if (start.tzinfo is None) == (end.tzinfo is None) and start > end:
            errors.append(f"Line {line_num}: start_time must be before end_time")

    days = []
    for day in to_str_list(row.get('days_of_week')):
        try:
            number = int(day)
        except ValueError:
            errors.append(f"Line {line_num}: days_of_week must be integers 0-6")
            continue
        if not 0 <= number <= 6:
            errors.append(f"Line {line_num}: days_of_week must be integers 0-6")
            continue
        days.append(number)

    day_start = parse_optional_str(row.get('time_of_day_start'))
    day_end = parse_optional_str(row.get('time_of_day_end'))
    for name, value in (('time_of_day_start', day_start), ('time_of_day_end', day_end)):
        if value:
            try:
                parse_time_of_day(value)
            except ValueError:
                errors.append(f"Line {line_num}: {name} must be HH:MM or HH:MM:SS")
    if bool(day_start) != bool(day_end):
        errors.append(f"Line {line_num}: time_of_day_start and time_of_day_end must be set together")

    try:
        tier_rules = parse_tier_rules(parse_optional_str(row.get('target_tier_rules')))
    except ValueError as e:
        errors.append(f"Line {line_num}: target_tier_rules is invalid ({e})")
        tier_rules = {}

    target_products = to_str_list(row.get('target_product_ids'))
    target_categories = to_str_list(row.get('target_categories'))

    if promotion_type == 'product' and not target_products:
        errors.append(f"Line {line_num}: product promotions need target_product_ids")
    if promotion_type == 'category' and not target_categories:
        errors.append(f"Line {line_num}: category promotions need target_categories")
    if promotion_type == 'tier' and not any(k in tier_rules for k in ('min_quantity', 'max_quantity', 'tier_labels')):
        errors.append(f"Line {line_num}: tier promotions need min_quantity, max_quantity or tier_labels in target_tier_rules")

    if errors:
        return None, errors

    return Promotion(
        id=promo_id,
        name=parse_optional_str(row.get('name')) or promo_id,
        vendor_id=parse_optional_str(row.get('vendor_id')),
        description=parse_optional_str(row.get('description')),
        promotion_type=promotion_type,
        discount_type=discount_type,
        discount_value=discount_value,
        target_product_ids=target_products,
        target_categories=target_categories,
        target_tier_rules=tier_rules,
        start_time=start_time,
        end_time=end_time,
        days_of_week=days,
        time_of_day_start=day_start,
        time_of_day_end=day_end,
        badge_text=parse_optional_str(row.get('badge_text')),
        badge_color=parse_optional_str(row.get('badge_color')),
        show_original_price=parse_bool(row.get('show_original_price') or 'true'),
        priority=priority,
        is_active=parse_bool(row.get('is_active') or 'true'),
    ), []


def compile_promotions(
    promotions_csv: Path,
    output_json: Optional[Path] = None,
    verbose: bool = True
) -> tuple[bool, list[Promotion], list[str]]:
    """
    Compile promotions from CSV to JSON.

    Returns (success, promotions, errors). Nothing is written when any row fails.
    """
    all_errors = []
    promotions = []

    if not promotions_csv.exists():
        all_errors.append(f"Promotions file not found: {promotions_csv}")
        return False, [], all_errors

    seen_ids = set()
    with open(promotions_csv, 'r', newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)

        for line_num, row in enumerate(reader, start=2):  # +2 for 1-indexed header row
            promotion, errors = validate_promotion(row, line_num)

            if errors:
                all_errors.extend(errors)
            elif promotion:
                if promotion.id in seen_ids:
                    all_errors.append(f"Line {line_num}: duplicate id '{promotion.id}'")
                    continue
                seen_ids.add(promotion.id)
                promotions.append(promotion)

    if all_errors:
        if verbose:
            print("Validation errors:")
            for err in all_errors:
                print(f"  ❌ {err}")
        for err in all_errors:
            logger.warning(err)
        return False, promotions, all_errors

    # Highest priority first
    promotions.sort(key=lambda p: -p.priority)

    if output_json is not None:
        output_data = {
            "compiled_at": datetime.now().isoformat(),
            "source_file": str(promotions_csv),
            "total_promotions": len(promotions),
            "active_promotions": sum(1 for p in promotions if p.is_active),
            "promotions": [asdict(p) for p in promotions],
        }

        output_json.parent.mkdir(parents=True, exist_ok=True)
        with open(output_json, 'w', encoding='utf-8') as f:
            json.dump(output_data, f, indent=2)

        if verbose:
            print(f"✅ Compiled {len(promotions)} promotions ({output_data['active_promotions']} active)")
            print(f"   Output: {output_json}")

    return True, promotions, []


def load_promotions(path: Path) -> list[Promotion]:
    """
    Load promotions from compiled JSON, a JSON list, or a raw CSV export.

    Invalid CSV rows are logged and skipped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Promotions file not found: {path}")

    if path.suffix.lower() == '.json':
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        records = data.get('promotions', []) if isinstance(data, dict) else data
        return [Promotion.from_dict(r) for r in records if isinstance(r, dict)]

    promotions = []
    with open(path, 'r', newline='', encoding='utf-8') as f:
        for line_num, row in enumerate(csv.DictReader(f), start=2):
            promotion, errors = validate_promotion(row, line_num)
            for err in errors:
                logger.warning("Skipping promotion: %s", err)
            if promotion:
                promotions.append(promotion)
    return promotions


def main():
    """CLI entry point."""
    import sys

    from ..config.settings import get_settings

    settings = get_settings()

    print("Compiling promotions...")
    success, promotions, errors = compile_promotions(settings.promotions_csv, settings.compiled_promotions)

    if not success:
        print(f"\n❌ Compilation failed with {len(errors)} errors")
        sys.exit(1)


if __name__ == "__main__":
    main()
