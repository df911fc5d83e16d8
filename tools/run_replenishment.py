"""
Run the replenishment calculation from the command line.

Usage:
  python tools/run_replenishment.py --sales data/ventas.xlsx --rules data/reglas.csv --weeks 8 --divisor 4

File paths default to the SALES_FILE_PATH and RULES_FILE_PATH environment
variables. Logs, warnings and a summary are printed; the results workbook is
written to --out (default: Replenishment_Results_<date>.xlsx).
"""

import argparse
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from business_rules import PLANNING_RULES  # noqa: E402
from replenishment_planning import get_replenishment_summary, process_and_calculate  # noqa: E402
from utils import export_results_to_excel, get_export_file_name  # noqa: E402


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Calculate units to order per product from a sales export")
    p.add_argument('--sales', default=os.environ.get("SALES_FILE_PATH"), help='Sales file (CSV or Excel)')
    p.add_argument('--rules', default=os.environ.get("RULES_FILE_PATH"), help='Optional rules file (CSV or Excel)')
    p.add_argument('--weeks', type=int, default=PLANNING_RULES["weeks_to_analyze"]["default"],
                   help='Complete weeks of sales history to analyze')
    p.add_argument('--divisor', type=int, default=PLANNING_RULES["averaging_divisor"]["default"],
                   help='Most recent weeks used for the weekly average')
    p.add_argument('--out', default=None, help='Output workbook path')
    p.add_argument('--quiet', action='store_true', help='Do not print processing logs')
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if not args.sales:
        print("ERROR: No sales file given (use --sales or set SALES_FILE_PATH).")
        return 2

    result = process_and_calculate(args.sales, args.rules or None, args.weeks, args.divisor)

    if not args.quiet:
        for line in result.logs:
            print(line)

    if result.error:
        print(f"ERROR: {result.error}")
        return 1

    for warning in result.warnings:
        print(f"WARNING: {warning}")

    summary = get_replenishment_summary(result.results)
    print(f"Products: {summary['products']} | To order: {summary['products_to_order']} "
          f"| Units: {summary['total_units_to_order']:,} | Errors: {summary['products_with_errors']}")

    out_path = args.out or get_export_file_name()
    workbook = export_results_to_excel(
        result.results,
        result.week_labels,
        os.path.basename(args.sales),
        args.weeks,
        args.divisor,
        result.processing_info,
    )
    with open(out_path, 'wb') as f:
        f.write(workbook)
    print(f"Results written to {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
