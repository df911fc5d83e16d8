"""
Pytest configuration and shared fixtures for all tests
Centralized mock data and utilities
"""

import pytest
import pandas as pd
import io
import os
import sys
from datetime import datetime

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

SALES_HEADER = ["ID", "Nombre", "Fecha", "Unidades_Vendidas", "Semanas_Cobertura_Stock", "Stock_Actual"]
RULES_HEADER = ["ID", "Nombre", "Stock_Fijo", "Semanas_Cobertura_Stock"]

# Latest sale is Wednesday 13/03/2024 (ISO week 11), so the newest complete
# history week is week 10 (04/03 - 10/03).
SALES_ROWS = [
    # SKU-1: one sale per week from week 7 to week 10, plus one in the current week
    ["SKU-1", "Widget", "13/02/2024", "40", "4", "15"],
    ["SKU-1", "Widget", "20/02/2024", "30", "4", "15"],
    # "123" written three different ways: one product
    ["123", "Gadget", "28/02/2024", "4", "2", "100"],
    ["SKU-1", "Widget", "27/02/2024", "20", "4", "15"],
    ["123.0", "Gadget", "01/03/2024", "2", "2", "100"],
    ["SKU-1", "Widget", "05/03/2024", "10", "4", "15"],
    [" 123 ", "Gadget", "06/03/2024", "8", "2", "100"],
    ["SKU-1", "Widget", "13/03/2024", "5", "4", "15"],
]


def make_grid(rows, header=None):
    """Grid with a header row, the way read_tabular returns it."""
    return [list(header or SALES_HEADER)] + [list(row) for row in rows]


def grid_to_csv_bytes(grid):
    """Serialize a grid to CSV bytes."""
    df = pd.DataFrame(grid[1:], columns=grid[0])
    return df.to_csv(index=False).encode('utf-8')


def grid_to_xlsx_bytes(grid):
    """Serialize a grid to an in-memory xlsx workbook."""
    df = pd.DataFrame(grid[1:], columns=grid[0])
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df.to_excel(writer, index=False)
    return output.getvalue()


# ===== SHARED MOCK DATA FIXTURES =====

@pytest.fixture
def sales_grid():
    """
    Sales grid as read from a CSV export (every cell is text):
    - SKU-1 with 10/20/30/40 units in weeks 10/9/8/7 and 5 units in the current week
    - product 123 written as "123", "123.0" and " 123 "
    """
    return make_grid(SALES_ROWS)


@pytest.fixture
def sales_grid_with_bad_date():
    """Sales grid where row 4 (third data row) has an impossible date."""
    rows = [list(row) for row in SALES_ROWS]
    rows.insert(2, ["SKU-9", "Broken", "31/02/2024", "3", "4", "10"])
    return make_grid(rows)


@pytest.fixture
def excel_sales_grid():
    """Sales grid with native spreadsheet types (numbers and datetimes)."""
    return make_grid([
        ["SKU-1", "Widget", datetime(2024, 2, 13), 40, 4, 15],
        ["SKU-1", "Widget", datetime(2024, 2, 20), 30, 4, 15],
        [123, "Gadget", datetime(2024, 2, 28), 4, 2, 100],
        ["SKU-1", "Widget", datetime(2024, 2, 27), 20, 4, 15],
        [123.0, "Gadget", datetime(2024, 3, 1), 2, 2, 100],
        ["SKU-1", "Widget", datetime(2024, 3, 5), 10, 4, 15],
        [" 123 ", "Gadget", datetime(2024, 3, 6), 8, 2, 100],
        ["SKU-1", "Widget", datetime(2024, 3, 13), 5, 4, 15],
    ])


@pytest.fixture
def rules_grid():
    """Rules grid: fixed stock for SKU-1, coverage override for product 123."""
    return make_grid([
        ["sku-1", "Widget", "50", ""],
        ["123.0", "Gadget", "", "6"],
        ["UNKNOWN-9", "Not sold", "12", ""],
    ], header=RULES_HEADER)


@pytest.fixture
def sales_csv_bytes(sales_grid):
    return grid_to_csv_bytes(sales_grid)


@pytest.fixture
def sales_xlsx_bytes(excel_sales_grid):
    return grid_to_xlsx_bytes(excel_sales_grid)


@pytest.fixture
def rules_csv_bytes(rules_grid):
    return grid_to_csv_bytes(rules_grid)


@pytest.fixture
def aggregated_product():
    """Aggregated product used by the calculation tests."""
    return {
        'id': 'SKU-1',
        'product_key': 'sku-1',
        'name': 'Widget',
        'current_month_total': 15,
        'sales_periods': [10, 20, 30, 40],
        'coverage_weeks': 4.0,
        'current_stock': 15.0,
        'row_index': 2,
        'averaging_divisor': 4,
        'product_age_weeks': 5,
        'first_sale_date': None,
        'last_sale_date': None,
        'fixed_stock_override': None,
    }


# ===== UTILITY FUNCTIONS FOR TESTS =====

def assert_log_contains(logs, expected_message):
    """
    Helper to assert that a log message contains expected text

    Args:
        logs: List of log messages
        expected_message: Text expected to be in one of the logs
    """
    log_text = " ".join(logs)
    assert expected_message in log_text, f"Expected '{expected_message}' not found in logs: {log_text}"


def assert_columns_exist(df, columns):
    """
    Helper to assert that DataFrame contains required columns

    Args:
        df: Pandas DataFrame
        columns: List of column names that should exist
    """
    missing = set(columns) - set(df.columns)
    assert not missing, f"Missing required columns: {missing}"
