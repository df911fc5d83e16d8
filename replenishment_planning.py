"""
Replenishment Planning Module
=============================
Calculates the suggested order per product from its weekly sales history,
coverage target and current stock.

Key Features:
- Average weekly sales over the most recent complete weeks (capped by product age)
- Ideal stock = average weekly sales * coverage weeks
- Per-product overrides from an optional rules file (fixed stock, coverage weeks)
- Units to order = max(0, ideal stock - current stock)
- A product that cannot be calculated is kept with its error; siblings are unaffected

Main entry point: process_and_calculate()
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from business_rules import (
    CALCULATION_NUMERIC_FIELDS,
    DIAGNOSTIC_RULES,
    PLANNING_RULES,
    get_planning_parameters,
)
from data_loader import load_replenishment_rules, load_sales_transactions, normalize_product_id
from demand_history import PRODUCT_COLUMNS, aggregate_transactions_to_products
from exceptions import CalculationError, DataProcessingError, UploadValidationError
from file_loader import read_tabular

# ===== CONSTANTS =====

STATUS_OK = PLANNING_RULES["status_labels"]["dynamic"]
STATUS_FIXED = PLANNING_RULES["status_labels"]["fixed"]

RESULT_COLUMNS = PRODUCT_COLUMNS + [
    'fixed_stock_override',
    'average_weekly_sales',
    'ideal_stock',
    'units_to_order',
    'status',
    'error',
]


def build_results_frame(plan_list: List[dict]) -> pd.DataFrame:
    """
    Frame calculated products in RESULT_COLUMNS order.
    `error` stays an object column so successful products keep error=None.
    """
    results_df = pd.DataFrame(plan_list, columns=RESULT_COLUMNS)
    results_df['error'] = pd.Series(
        [record.get('error') for record in plan_list], index=results_df.index, dtype=object
    )
    return results_df


def is_finite_number(value) -> bool:
    """True for real, finite numbers (booleans and None excluded)."""
    if value is None or isinstance(value, (bool, np.bool_)):
        return False
    try:
        return bool(np.isfinite(value))
    except TypeError:
        return False


def round_units(value: float) -> int:
    """Round half up to a whole number of units (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def describe_product(product: dict) -> str:
    """Identify a product in messages by ID, or by source row when the ID is empty."""
    product_id = str(product.get('id') or '').strip()
    if product_id:
        return f"Product '{product_id}'"
    return f"Row {product.get('row_index')}"


# ===== RULE OVERLAY =====

def apply_replenishment_rules(
    products_df: pd.DataFrame,
    rules: Dict[str, dict]
) -> Tuple[List[str], pd.DataFrame]:
    """
    Merge per-product rules onto aggregated products.

    A numeric coverage override replaces the product's coverage weeks. A
    numeric fixed stock is attached as fixed_stock_override; zero is a valid
    override. Products without a rule are returned unchanged.

    Args:
        products_df: aggregated products
        rules: {normalized_id: rule_dict} from load_replenishment_rules

    Returns:
        tuple: (logs, products_df) where products_df is a new DataFrame
    """
    logs = []
    logs.append("--- Replenishment Rules Overlay ---")

    df = products_df.copy()
    if 'fixed_stock_override' not in df.columns:
        df['fixed_stock_override'] = pd.Series([None] * len(df), index=df.index, dtype=object)

    if not rules or df.empty:
        logs.append("INFO: No product rules to apply.")
        return logs, df

    keys = df['product_key'] if 'product_key' in df.columns else df['id'].map(normalize_product_id)

    coverage_weeks = []
    fixed_stock = []
    matched = 0
    for key, coverage, fixed in zip(keys, df['coverage_weeks'], df['fixed_stock_override']):
        rule = rules.get(key)
        if rule is None:
            coverage_weeks.append(coverage)
            fixed_stock.append(fixed)
            continue

        matched += 1
        override_coverage = rule.get('coverage_weeks')
        coverage_weeks.append(override_coverage if is_finite_number(override_coverage) else coverage)
        override_fixed = rule.get('fixed_stock')
        fixed_stock.append(override_fixed if is_finite_number(override_fixed) else fixed)

    df['coverage_weeks'] = coverage_weeks
    df['fixed_stock_override'] = pd.Series(fixed_stock, index=df.index, dtype=object)

    logs.append(f"INFO: Applied rules to {matched} of {len(df)} products ({len(rules)} rules loaded).")
    unmatched_rules = len(rules) - matched
    if unmatched_rules > 0:
        logs.append(f"INFO: {unmatched_rules} rules did not match any product in the sales file.")
    return logs, df


# ===== CALCULATIONS =====

def calculate_average_weekly_sales(sales_periods, averaging_divisor) -> int:
    """
    Average weekly sales over the most recent `averaging_divisor` weeks.

    Formula: round(sum(sales_periods[:divisor]) / divisor), or 0 when the
    divisor is not positive. Older weeks stay in the history but are ignored here.

    Args:
        sales_periods: weekly units, newest first
        averaging_divisor: number of recent weeks to average

    Returns:
        Rounded average weekly units
    """
    if not is_finite_number(averaging_divisor) or averaging_divisor <= 0:
        return 0
    window = sales_periods[:int(averaging_divisor)]
    return round_units(sum(window) / averaging_divisor)


def calculate_ideal_stock(average_weekly_sales: float, coverage_weeks: float) -> int:
    """
    Calculate the dynamic ideal stock.

    Formula: round(Average Weekly Sales * Coverage Weeks)
    """
    return round_units(average_weekly_sales * coverage_weeks)


def calculate_units_to_order(ideal_stock: float, current_stock: float) -> int:
    """
    Calculate the suggested order quantity.

    Formula: round(max(0, Ideal Stock - Current Stock)); never negative.
    """
    return round_units(max(0, ideal_stock - current_stock))


def resolve_status(product: dict) -> str:
    """Fixed when the product carries a finite fixed stock override, OK otherwise."""
    return STATUS_FIXED if is_finite_number(product.get('fixed_stock_override')) else STATUS_OK


def calculate_product_metrics(product: dict) -> dict:
    """
    Calculate average, ideal stock and units to order for one product.

    Args:
        product: aggregated product record (after the rule overlay)

    Returns:
        New record with average_weekly_sales, ideal_stock, units_to_order,
        status and error=None

    Raises:
        CalculationError: a required input is not a finite number
    """
    result = dict(product)
    status = resolve_status(product)
    average = calculate_average_weekly_sales(product['sales_periods'], product.get('averaging_divisor'))

    if status == STATUS_FIXED:
        ideal_stock = round_units(product['fixed_stock_override'])
    else:
        for field_name, label in CALCULATION_NUMERIC_FIELDS.items():
            if not is_finite_number(product.get(field_name)):
                raise CalculationError(
                    f"{describe_product(product)}: {label} is not a finite number "
                    f"({product.get(field_name)!r}), the order could not be calculated."
                )
        ideal_stock = calculate_ideal_stock(average, product['coverage_weeks'])

    if not is_finite_number(product.get('current_stock')):
        raise CalculationError(
            f"{describe_product(product)}: current stock is not a finite number "
            f"({product.get('current_stock')!r}), the order could not be calculated."
        )

    result.update({
        'average_weekly_sales': average,
        'ideal_stock': ideal_stock,
        'units_to_order': calculate_units_to_order(ideal_stock, product['current_stock']),
        'status': status,
        'error': None,
    })
    return result


def build_failed_product(product: dict, message: str) -> dict:
    """Failure variant of a calculated product: zeroed stock fields plus the error message."""
    result = dict(product)
    try:
        average = calculate_average_weekly_sales(product['sales_periods'], product.get('averaging_divisor'))
    except (KeyError, TypeError, ValueError):
        average = 0
    result.update({
        'average_weekly_sales': average,
        'ideal_stock': 0,
        'units_to_order': 0,
        'status': resolve_status(product),
        'error': message,
    })
    return result


def calculate_replenishment_plan(products_df: pd.DataFrame) -> Tuple[List[str], pd.DataFrame]:
    """
    Calculate every product independently.

    A product that fails keeps its place in the results with `error` set and
    ideal stock / units to order at 0; the other products are not affected.

    Args:
        products_df: aggregated products after the rule overlay

    Returns:
        tuple: (logs, results_df)
    """
    logs = []
    logs.append("--- Replenishment Calculation ---")

    if 'fixed_stock_override' not in products_df.columns:
        products_df = products_df.assign(fixed_stock_override=None)

    plan_list = []
    for product in products_df.to_dict('records'):
        try:
            plan_list.append(calculate_product_metrics(product))
        except CalculationError as e:
            plan_list.append(build_failed_product(product, e.message))
        except (TypeError, ValueError) as e:
            plan_list.append(build_failed_product(product, f"{describe_product(product)}: {e}"))

    results_df = build_results_frame(plan_list)

    summary = get_replenishment_summary(results_df)
    logs.append(f"INFO: Calculated {summary['products']} products; "
                f"{summary['products_to_order']} need an order "
                f"({summary['total_units_to_order']:,} units in total).")
    if summary['fixed_stock_products']:
        logs.append(f"INFO: {summary['fixed_stock_products']} products use a fixed stock.")
    if summary['products_with_errors']:
        logs.append(f"WARNING: {summary['products_with_errors']} products could not be calculated.")
    return logs, results_df


def get_replenishment_summary(results_df: pd.DataFrame) -> dict:
    """
    Summarize a calculated plan.

    Returns:
        dict with products, products_to_order, total_units_to_order,
        fixed_stock_products and products_with_errors
    """
    if results_df.empty:
        return {
            'products': 0,
            'products_to_order': 0,
            'total_units_to_order': 0,
            'fixed_stock_products': 0,
            'products_with_errors': 0,
        }

    return {
        'products': len(results_df),
        'products_to_order': int((results_df['units_to_order'] > 0).sum()),
        'total_units_to_order': int(results_df['units_to_order'].sum()),
        'fixed_stock_products': int((results_df['status'] == STATUS_FIXED).sum()),
        'products_with_errors': int(results_df['error'].notna().sum()),
    }


# ===== PIPELINE =====

@dataclass
class ReplenishmentResult:
    """Outcome of a full pipeline run. `error` set means there are no usable results."""
    results: pd.DataFrame = field(default_factory=lambda: build_results_frame([]))
    week_labels: List[str] = field(default_factory=list)
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    processing_info: Optional[dict] = None
    logs: List[str] = field(default_factory=list)


def cap_row_diagnostics(errors: List[str], limit: Optional[int] = None) -> List[str]:
    """Keep the first `limit` row diagnostics and summarize the rest by count."""
    if limit is None:
        limit = DIAGNOSTIC_RULES["max_row_diagnostics"]
    if len(errors) <= limit:
        return list(errors)
    overflow = DIAGNOSTIC_RULES["overflow_template"].format(count=len(errors) - limit)
    return list(errors[:limit]) + [overflow]


def build_processing_info(
    total_rows: int,
    transactions_df: pd.DataFrame,
    results_df: pd.DataFrame,
    rules: Dict[str, dict]
) -> dict:
    """Run statistics shown next to the results and in the export summary."""
    products_without_sales = int(sum(1 for periods in results_df['sales_periods'] if not any(periods)))
    products_with_rules = int(results_df['product_key'].isin(list(rules)).sum()) if rules else 0
    return {
        'total_rows': total_rows,
        'valid_transactions': len(transactions_df),
        'skipped_rows': total_rows - len(transactions_df),
        'products_with_sales': len(results_df) - products_without_sales,
        'products_without_sales': products_without_sales,
        'rules_loaded': len(rules),
        'products_with_rules': products_with_rules,
        'date_range': {
            'start': transactions_df['sale_date'].min(),
            'end': transactions_df['sale_date'].max(),
        },
    }


def process_and_calculate(
    sales_file,
    rules_file=None,
    num_periods: Optional[int] = None,
    divisor_periods: Optional[int] = None,
    reader=read_tabular
) -> ReplenishmentResult:
    """
    Run the full pipeline: read, validate, aggregate, apply rules, calculate.

    The sales file is read and validated before the rules file is read.
    Fatal problems (unreadable file, missing sales columns, no valid
    transactions, invalid parameters) return a result with `error` set and no
    products. Row problems and rules-file problems are returned as warnings
    next to the results.

    Args:
        sales_file: sales export (path, bytes or file-like)
        rules_file: optional rules file (path, bytes or file-like)
        num_periods: history weeks (default from business rules)
        divisor_periods: averaging window in weeks (default from business rules)
        reader: callable returning a raw grid for a file

    Returns:
        ReplenishmentResult
    """
    logs = []
    warnings = []
    logs.append("--- Replenishment Pipeline ---")

    try:
        num_periods, divisor_periods = get_planning_parameters(num_periods, divisor_periods)
    except ValueError as e:
        logs.append(f"ERROR: {e}")
        return ReplenishmentResult(error=str(e), logs=logs)
    logs.append(f"INFO: Weeks to analyze: {num_periods}; averaging divisor: {divisor_periods}.")

    try:
        # ===== STEP 1: Sales transactions =====
        sales_grid = reader(sales_file)
        total_rows = max(len(sales_grid) - 1, 0)
        sales_logs, transactions_df, row_errors = load_sales_transactions(sales_grid)
        logs.extend(sales_logs)
        warnings.extend(cap_row_diagnostics(row_errors))

        # ===== STEP 2: Optional rules (read only after the sales file is valid) =====
        rules = {}
        if rules_file is not None:
            rules_grid = reader(rules_file)
            try:
                rules_logs, rules, rule_warnings = load_replenishment_rules(rules_grid)
                logs.extend(rules_logs)
                warnings.extend(rule_warnings)
            except UploadValidationError as e:
                message = f"Rules file: {e.message.rstrip('.')}. Processing continues without rules."
                logs.append(f"WARNING: {message}")
                warnings.append(message)
    except DataProcessingError as e:
        logs.append(f"ERROR: {e.message}")
        return ReplenishmentResult(error=e.message, warnings=warnings, logs=logs)

    # ===== STEP 3: Weekly history =====
    history_logs, products_df, week_labels = aggregate_transactions_to_products(
        transactions_df, num_periods, divisor_periods
    )
    logs.extend(history_logs)

    # ===== STEP 4: Rules overlay =====
    overlay_logs, products_df = apply_replenishment_rules(products_df, rules)
    logs.extend(overlay_logs)

    # ===== STEP 5: Calculation =====
    calc_logs, results_df = calculate_replenishment_plan(products_df)
    logs.extend(calc_logs)

    processing_info = build_processing_info(total_rows, transactions_df, results_df, rules)
    return ReplenishmentResult(
        results=results_df,
        week_labels=week_labels,
        warnings=warnings,
        processing_info=processing_info,
        logs=logs,
    )
