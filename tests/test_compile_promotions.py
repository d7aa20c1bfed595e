"""
Promotion compiler: row validation, CSV -> JSON compilation and loading.
"""
import csv
import json

import pytest

from dispensary_pricing.promotions.compile_promotions import (
    compile_promotions,
    load_promotions,
    validate_promotion,
)

from conftest import SAMPLE_DATA

FIELDS = [
    "id", "name", "vendor_id", "description", "promotion_type", "discount_type", "discount_value",
    "target_product_ids", "target_categories", "target_tier_rules", "start_time", "end_time",
    "days_of_week", "time_of_day_start", "time_of_day_end", "badge_text", "badge_color",
    "show_original_price", "priority", "is_active",
]


def _row(**overrides):
    row = {f: "" for f in FIELDS}
    row.update({
        "id": "PR1",
        "name": "Test Promo",
        "vendor_id": "v1",
        "promotion_type": "global",
        "discount_type": "percentage",
        "discount_value": "10",
    })
    row.update(overrides)
    return row


def _write_csv(path, rows):
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDS)
        writer.writeheader()
        writer.writerows(rows)
    return path


def test_valid_row_parses():
    promo, errors = validate_promotion(_row(
        promotion_type="category", target_categories="flower|edibles",
        days_of_week="5|6", priority="3", is_active="TRUE",
    ), 2)
    assert errors == []
    assert promo.target_categories == ["flower", "edibles"]
    assert promo.days_of_week == [5, 6]
    assert promo.priority == 3
    assert promo.is_active is True


@pytest.mark.parametrize("overrides, message", [
    ({"id": ""}, "id is required"),
    ({"promotion_type": "bundle"}, "invalid promotion_type"),
    ({"discount_type": "bogo"}, "invalid discount_type"),
    ({"discount_value": ""}, "discount_value is required"),
    ({"discount_value": "ten"}, "must be numeric"),
    ({"discount_value": "-1"}, "must be >= 0"),
    ({"discount_value": "150"}, "cannot exceed 100"),
    ({"priority": "high"}, "priority must be an integer"),
    ({"start_time": "soon"}, "start_time must be an ISO"),
    ({"start_time": "2026-05-01", "end_time": "2026-04-01"}, "start_time must be before end_time"),
    ({"days_of_week": "7"}, "days_of_week must be integers 0-6"),
    ({"time_of_day_start": "16:00"}, "must be set together"),
    ({"time_of_day_start": "4pm", "time_of_day_end": "6pm"}, "must be HH:MM"),
    ({"target_tier_rules": "[1, 2]"}, "target_tier_rules is invalid"),
    ({"promotion_type": "product"}, "need target_product_ids"),
    ({"promotion_type": "category"}, "need target_categories"),
    ({"promotion_type": "tier", "target_tier_rules": '{"product_ids": ["P1"]}'}, "tier promotions need"),
])
def test_invalid_rows(overrides, message):
    promo, errors = validate_promotion(_row(**overrides), 7)
    assert promo is None
    assert any(message in e for e in errors), errors
    assert all(e.startswith("Line 7:") for e in errors)


def test_fixed_amount_may_exceed_100():
    promo, errors = validate_promotion(_row(discount_type="fixed_amount", discount_value="150"), 2)
    assert errors == []
    assert promo.discount_value == 150.0


def test_compile_sorts_by_priority_and_writes_json(tmp_path):
    source = _write_csv(tmp_path / "promotions.csv", [
        _row(id="LOW", priority="1"),
        _row(id="HIGH", priority="9", promotion_type="tier", target_tier_rules='{"min_quantity": 28}'),
        _row(id="OFF", priority="5", is_active="false"),
    ])
    output = tmp_path / "outputs" / "compiled_promotions.json"

    success, promos, errors = compile_promotions(source, output, verbose=False)

    assert success, errors
    assert [p.id for p in promos] == ["HIGH", "OFF", "LOW"]
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["total_promotions"] == 3
    assert data["active_promotions"] == 2
    assert data["promotions"][0]["target_tier_rules"] == {"min_quantity": 28}


def test_compile_rejects_duplicates(tmp_path):
    source = _write_csv(tmp_path / "promotions.csv", [_row(id="DUP"), _row(id="DUP")])
    success, _, errors = compile_promotions(source, tmp_path / "out.json", verbose=False)
    assert not success
    assert any("duplicate id 'DUP'" in e for e in errors)
    assert not (tmp_path / "out.json").exists()


def test_compile_missing_file(tmp_path):
    success, promos, errors = compile_promotions(tmp_path / "none.csv", verbose=False)
    assert not success
    assert promos == []
    assert "not found" in errors[0]


def test_sample_promotions_compile(tmp_path):
    success, promos, errors = compile_promotions(SAMPLE_DATA / 'promotions.csv', tmp_path / "c.json", verbose=False)
    assert success, errors
    assert len(promos) == 6


def test_compiled_file_loads_back(tmp_path):
    output = tmp_path / "compiled.json"
    compile_promotions(SAMPLE_DATA / 'promotions.csv', output, verbose=False)

    loaded = {p.id: p for p in load_promotions(output)}
    assert loaded["PR-OZ-10"].target_tier_rules == {"min_quantity": 28}
    assert loaded["PR-FLOWER-20"].days_of_week == [5]
    assert loaded["PR-RETIRED"].is_active is False


def test_load_csv_skips_invalid_rows(tmp_path):
    source = _write_csv(tmp_path / "promotions.csv", [_row(id="GOOD"), _row(id="BAD", discount_type="bogo")])
    assert [p.id for p in load_promotions(source)] == ["GOOD"]


def test_load_plain_json_list(tmp_path):
    path = tmp_path / "promos.json"
    path.write_text(json.dumps([{"id": "L1", "discount_value": 5, "promotion_type": "global"}]), encoding="utf-8")
    assert load_promotions(path)[0].discount_value == 5.0


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_promotions(tmp_path / "missing.json")
