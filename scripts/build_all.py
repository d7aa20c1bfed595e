#!/usr/bin/env python
"""
Build pipeline - compiles promotions, checks the product export and runs tests.

Usage:
    python scripts/build_all.py
"""
import subprocess
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from dispensary_pricing.config.settings import get_settings
from dispensary_pricing.data.catalog import build_catalog_report
from dispensary_pricing.promotions.compile_promotions import compile_promotions


def main():
    settings = get_settings()

    print("=" * 60)
    print("DISPENSARY PRICING BUILD PIPELINE")
    print("=" * 60)
    print()

    print("[1/3] Compiling promotions...")
    success, promotions, errors = compile_promotions(settings.promotions_csv, settings.compiled_promotions)
    if not success:
        print(f"\n❌ BUILD FAILED ({len(errors)} promotion errors)")
        sys.exit(1)

    print()
    print("[2/3] Checking product export...")
    report = build_catalog_report(settings.products_file, settings.catalog_report, verbose=True)

    if report["status"] != "success":
        print("\n❌ BUILD FAILED")
        for error in report["errors"]:
            print(f"  ERROR: {error}")
        sys.exit(1)

    print()
    print("[3/3] Running tests...")
    test_result = subprocess.run(
        [sys.executable, '-m', 'pytest', 'tests', '-q', '--tb=short'],
        cwd=Path(__file__).parent.parent
    )

    if test_result.returncode != 0:
        print("\n❌ TESTS FAILED")
        sys.exit(1)

    metrics = report['metrics']
    print()
    print("=" * 60)
    print("✅ BUILD COMPLETE")
    print("=" * 60)
    print()
    print("Summary:")
    print(f"  Products: {metrics['product_count']}")
    print(f"  Tiered: {metrics['tiered_count']} ({metrics['tier_coverage_pct']}% with usable tiers)")
    print(f"  Unpriced: {metrics['unpriced_count']}")
    print(f"  Promotions: {len(promotions)} ({sum(1 for p in promotions if p.is_active)} switched on)")
    for warning in report['warnings']:
        print(f"  WARNING: {warning}")


if __name__ == "__main__":
    main()
