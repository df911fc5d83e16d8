"""
Weekly Demand History
=====================
Groups validated sales transactions by product and buckets their units into
the most recent complete ISO weeks.

Key rules:
- The latest sale date in the file anchors everything: its month is the
  "current month" and the week before its ISO week is the newest history week
  (the partial current week is never bucketed)
- Each transaction lands in the first history week whose Monday..Sunday span
  contains its date; older or newer sales are left out of the history
- Product age caps the averaging divisor so new products are not diluted
"""

import math
from datetime import timedelta
from typing import List, Tuple

import pandas as pd

from iso_calendar import build_week_spans, iso_week_of, previous_week

PRODUCT_COLUMNS = [
    'id', 'product_key', 'name', 'current_month_total', 'sales_periods',
    'coverage_weeks', 'current_stock', 'row_index', 'averaging_divisor',
    'product_age_weeks', 'first_sale_date', 'last_sale_date'
]


def as_quantity(value):
    """Return whole quantities as int, fractional ones as float."""
    value = float(value)
    return int(value) if value.is_integer() else value


def calculate_product_age_weeks(first_sale_date, latest_date) -> int:
    """
    Weeks from a product's first sale to the latest sale in the file, inclusive.

    Formula: ceil((latest - first + 1 ms) / 7 days), so a product first sold
    on the latest date is 1 week old and one sold exactly 7 days earlier is 2.
    """
    elapsed = latest_date - first_sale_date + timedelta(milliseconds=1)
    return math.ceil(elapsed / timedelta(weeks=1))


def calculate_averaging_divisor(product_age_weeks: int, divisor_periods: int) -> int:
    """Clamp the requested averaging window to the product's age (minimum 1 week)."""
    return max(1, min(product_age_weeks, divisor_periods))


def get_history_spans(latest_date, num_periods: int) -> List[dict]:
    """
    Build the history week spans ending at the last complete week before latest_date.

    Returns:
        List of week span dicts, newest first
    """
    current_week, current_year = iso_week_of(latest_date)
    last_week, last_year = previous_week(current_year, current_week)
    return build_week_spans(last_year, last_week, num_periods)


def assign_week_periods(sale_dates: pd.Series, spans: List[dict]) -> pd.Series:
    """
    Index of the first span containing each sale date, or -1 when outside all spans.
    """
    period_index = pd.Series(-1, index=sale_dates.index)
    for i, span in enumerate(spans):
        in_span = (period_index < 0) & (sale_dates >= span['start']) & (sale_dates <= span['end'])
        period_index.loc[in_span] = i
    return period_index


def aggregate_transactions_to_products(
    transactions_df: pd.DataFrame,
    num_periods: int,
    divisor_periods: int
) -> Tuple[List[str], pd.DataFrame, List[str]]:
    """
    Aggregate transactions into one record per normalized product.

    Args:
        transactions_df: validated transactions (see data_loader.TRANSACTION_COLUMNS)
        num_periods: number of history weeks to build
        divisor_periods: requested averaging window in weeks

    Returns:
        tuple: (logs, products_df, week_labels) where week_labels line up with
        each product's sales_periods (newest first)
    """
    logs = []
    logs.append("--- Weekly Demand History ---")

    if transactions_df.empty:
        logs.append("WARNING: No transactions to aggregate.")
        return logs, pd.DataFrame(columns=PRODUCT_COLUMNS), []

    df = transactions_df.copy()
    latest_date = df['sale_date'].max()
    month_start = latest_date.replace(day=1)

    spans = get_history_spans(latest_date, num_periods)
    week_labels = [span['label'] for span in spans]
    if spans:
        logs.append(
            f"INFO: History covers {num_periods} complete weeks, from week "
            f"{spans[-1]['iso_week']}/{spans[-1]['iso_year']} ({spans[-1]['start']:%d/%m/%Y}) to week "
            f"{spans[0]['iso_week']}/{spans[0]['iso_year']} ({spans[0]['end']:%d/%m/%Y})."
        )
    logs.append(f"INFO: Latest sale date is {latest_date:%d/%m/%Y}; current month starts {month_start:%d/%m/%Y}.")

    df['period_index'] = assign_week_periods(df['sale_date'], spans)
    df['in_current_month'] = df['sale_date'] >= month_start

    outside_history = int((df['period_index'] < 0).sum())
    if outside_history:
        logs.append(f"INFO: {outside_history} transactions fall outside the history weeks "
                    f"and only count toward the current month total when applicable.")

    product_list = []
    for _, group in df.groupby('product_key', sort=False):
        first = group.iloc[0]

        sales_periods = [0.0] * num_periods
        for period_index, units in zip(group['period_index'], group['units_sold']):
            if period_index >= 0:
                sales_periods[period_index] += units

        first_sale_date = min(group['sale_date'])
        product_age_weeks = calculate_product_age_weeks(first_sale_date, latest_date)

        product_list.append({
            'id': first['id'],
            'product_key': first['product_key'],
            'name': first['name'],
            'current_month_total': as_quantity(group.loc[group['in_current_month'], 'units_sold'].sum()),
            'sales_periods': [as_quantity(units) for units in sales_periods],
            'coverage_weeks': first['coverage_weeks'],
            'current_stock': first['current_stock'],
            'row_index': int(first['row_index']),
            'averaging_divisor': calculate_averaging_divisor(product_age_weeks, divisor_periods),
            'product_age_weeks': product_age_weeks,
            'first_sale_date': first_sale_date,
            'last_sale_date': max(group['sale_date']),
        })

    products_df = pd.DataFrame(product_list, columns=PRODUCT_COLUMNS)
    logs.append(f"INFO: Aggregated {len(df)} transactions into {len(products_df)} products.")
    return logs, products_df, week_labels
