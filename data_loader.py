import math
import re
from datetime import date, datetime

import numpy as np
import pandas as pd

from business_rules import (
    DATA_FIELD_DEFINITIONS,
    DATE_PARSING_RULES,
    RULES_FILE_RULES,
    SALES_FILE_RULES,
)
from exceptions import UploadValidationError
from iso_calendar import excel_serial_to_date, iso_week_of, to_utc_date

# === Helper Functions ===

DATE_PATTERN = re.compile(DATE_PARSING_RULES["text_pattern"])
TRAILING_ZERO_FRACTION = re.compile(r'\.0+$')

TRANSACTION_COLUMNS = [
    'row_index', 'id', 'product_key', 'name', 'sale_date',
    'units_sold', 'coverage_weeks', 'current_stock', 'iso_week', 'iso_year'
]


def is_blank(value) -> bool:
    """True for None, NaN/NaT and empty or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def format_raw_id(value) -> str:
    """
    Display form of a product identifier as it appeared in the file.
    Whole-number float cells (Excel reads 123 as 123.0) are shown without the fraction.
    """
    if is_blank(value):
        return ''
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def normalize_product_id(value) -> str:
    """
    Normalize a product identifier for grouping and rule matching by:
    1. Stripping leading/trailing whitespace
    2. Removing thousands separators (commas)
    3. Dropping a trailing zero fraction ("123.0" -> "123")
    4. Case-folding

    Args:
        value: raw identifier cell

    Returns:
        Normalized identifier ('' when blank)
    """
    text = format_raw_id(value).strip().replace(',', '')
    return TRAILING_ZERO_FRACTION.sub('', text).casefold()


def clean_string_column(series: pd.Series) -> pd.Series:
    """
    Clean string columns by stripping whitespace and normalizing spaces.
    Blank cells become empty strings.
    """
    series = series.map(lambda value: '' if is_blank(value) else value)
    return series.astype(str).str.strip().str.replace(r'\s+', ' ', regex=True)


def parse_number(value):
    """
    Parse a numeric cell.

    Accepts ints/floats and numeric text; commas are treated as thousands
    separators. Booleans, blanks, text and non-finite values are rejected.

    Returns:
        float, or None when the value is not a finite number
    """
    if is_blank(value) or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(',', ''))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_sale_date(value):
    """
    Parse a sale date cell.

    Accepted forms:
    - a native date, datetime or Timestamp (spreadsheet date cells)
    - a spreadsheet serial day-count (day 0 = 1899-12-30)
    - text in day/month/year order: D/M/YYYY, DD-MM-YY, DD.MM.YYYY (two-digit years are 20xx)

    Any other form, an impossible date, or a year outside the plausible window
    is a parse failure.

    Returns:
        datetime.date, or None on failure
    """
    if is_blank(value) or isinstance(value, (bool, np.bool_)):
        return None

    try:
        if isinstance(value, (datetime, date, np.datetime64)):
            parsed = to_utc_date(value)
        elif isinstance(value, (int, float, np.integer, np.floating)):
            if not math.isfinite(float(value)):
                return None
            parsed = excel_serial_to_date(value)
        elif isinstance(value, str):
            match = DATE_PATTERN.fullmatch(value.strip())
            if not match:
                return None
            day, month, year = (int(part) for part in match.groups())
            if year < 100:
                year += DATE_PARSING_RULES["two_digit_year_base"]
            parsed = date(year, month, day)
        else:
            return None
    except (ValueError, OverflowError):
        return None

    if not DATE_PARSING_RULES["min_year"] <= parsed.year <= DATE_PARSING_RULES["max_year"]:
        return None
    return parsed


def describe_cell(value) -> str:
    """Short description of a raw cell for diagnostics."""
    if is_blank(value):
        return 'empty'
    return f"'{value}'"


def grid_to_dataframe(grid, filename) -> pd.DataFrame:
    """
    Build a DataFrame from a raw grid whose first row holds the headers.

    Adds a `row_index` column with the 1-based source row (the header is row 1).

    Raises:
        UploadValidationError: the grid has no header or no data rows
    """
    if not grid or len(grid) < 2 or all(is_blank(cell) for cell in grid[0]):
        raise UploadValidationError(f"The {filename} is empty or has no data.")

    headers = ['' if is_blank(cell) else str(cell).strip() for cell in grid[0]]
    width = len(headers)
    rows = [list(row[:width]) + [None] * (width - len(row)) for row in grid[1:]]

    df = pd.DataFrame(rows, columns=headers, dtype=object)
    df['row_index'] = range(2, len(rows) + 2)
    return df


def canonicalize_headers(df: pd.DataFrame, known_headers, filename) -> pd.DataFrame:
    """
    Rename columns matching a known header case-insensitively (after trimming) to that header.

    Raises:
        UploadValidationError: two columns resolve to the same known header (e.g. "ID" and "id")
    """
    lookup = {header.strip().casefold(): header for header in known_headers}
    mapping = {}
    duplicates = []
    for col in df.columns:
        canonical = lookup.get(str(col).strip().casefold())
        if canonical is None:
            continue
        if canonical in mapping.values():
            if canonical not in duplicates:
                duplicates.append(canonical)
            continue
        mapping[col] = canonical

    if duplicates:
        raise UploadValidationError(
            f"The {filename} has more than one column for: {', '.join(duplicates)}"
        )
    return df.rename(columns=mapping)


def check_columns(df, required_cols, filename, logs):
    """Helper function to check for missing columns. Returns the missing column names."""
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        logs.append(f"ERROR: '{filename}' is missing required columns: {', '.join(missing_cols)}")
    return missing_cols


def drop_blank_rows(df: pd.DataFrame, source_cols) -> pd.DataFrame:
    """Drop rows where every source cell is blank."""
    blank_mask = df[list(source_cols)].apply(lambda col: col.map(is_blank)).all(axis=1)
    return df[~blank_mask]


# === Main Data Loaders ===

def load_sales_transactions(grid, filename=SALES_FILE_RULES["label"]):
    """
    Parse the sales export grid into validated transactions.

    Each row is validated on its own: an empty ID, an unparseable date or a
    required numeric column that is blank or not a finite number excludes the
    row and produces one diagnostic naming the row, the column and the raw
    value. A bad row never stops the rest of the file from loading.

    Args:
        grid: raw grid (first row = headers)
        filename: name used in messages

    Returns:
        tuple: (logs, transactions_df, errors)

    Raises:
        UploadValidationError: empty file, missing or duplicated required columns, or no valid transactions
    """
    logs = []
    errors = []
    logs.append("--- Sales Transactions Loader ---")

    df = grid_to_dataframe(grid, filename)
    logs.append(f"INFO: Found {len(df)} data rows in the {filename}.")

    required = SALES_FILE_RULES["required_columns"]
    df = canonicalize_headers(df, required.keys(), filename)
    missing_cols = check_columns(df, required.keys(), filename, logs)
    if missing_cols:
        raise UploadValidationError(
            f"The {filename} is missing the following required columns: {', '.join(missing_cols)}"
        )

    total_rows = len(df)
    df = drop_blank_rows(df, required.keys())
    if len(df) < total_rows:
        logs.append(f"INFO: Ignored {total_rows - len(df)} completely empty rows.")

    id_col = SALES_FILE_RULES["id_column"]
    date_col = SALES_FILE_RULES["date_column"]
    numeric_cols = SALES_FILE_RULES["numeric_columns"]

    # --- Parse every column once, then validate row by row ---
    parsed = pd.DataFrame(index=df.index)
    parsed['row_index'] = df['row_index']
    parsed['id'] = df[id_col].map(format_raw_id)
    parsed['product_key'] = df[id_col].map(normalize_product_id)
    parsed['name'] = clean_string_column(df['Nombre'])
    parsed['sale_date'] = df[date_col].map(parse_sale_date)
    for col in numeric_cols:
        parsed[required[col]] = df[col].map(parse_number)

    valid_mask = []
    for raw, row in zip(df.to_dict('records'), parsed.to_dict('records')):
        problems = []
        if not row['product_key']:
            problems.append(f"column '{id_col}' is empty")
        if is_blank(row['sale_date']):
            problems.append(f"invalid or empty date in column '{date_col}' ({describe_cell(raw[date_col])})")
        for col in numeric_cols:
            if pd.isna(row[required[col]]):
                problems.append(f"column '{col}' is not a valid number ({describe_cell(raw[col])})")

        if problems:
            errors.append(f"Row {row['row_index']}: {'; '.join(problems)}. The row was ignored.")
        valid_mask.append(not problems)

    transactions = parsed[np.array(valid_mask, dtype=bool)].copy()
    if errors:
        logs.append(f"WARNING: Skipped {len(errors)} rows with invalid data.")

    if transactions.empty:
        message = f"No valid transactions were found in the {filename}."
        if errors:
            message += f" All {len(errors)} data rows were rejected (first problem: {errors[0]})"
        logs.append(f"ERROR: {message}")
        raise UploadValidationError(message)

    for col in numeric_cols:
        transactions[required[col]] = transactions[required[col]].astype(float)

    week_years = transactions['sale_date'].map(iso_week_of)
    transactions['iso_week'] = week_years.map(lambda pair: pair[0])
    transactions['iso_year'] = week_years.map(lambda pair: pair[1])
    transactions = transactions[TRANSACTION_COLUMNS].reset_index(drop=True)

    logs.append(f"INFO: Loaded {len(transactions)} valid transactions for "
                f"{transactions['product_key'].nunique()} products.")
    return logs, transactions, errors


def load_replenishment_rules(grid, filename=RULES_FILE_RULES["label"]):
    """
    Parse the optional per-product rules grid.

    Rules are keyed by normalized ID. Problems never stop the file:
    - an empty ID skips the row with a warning
    - a duplicate ID replaces the earlier rule with a warning
    - a non-numeric or out-of-range Stock_Fijo / Semanas_Cobertura_Stock value
      is ignored for that field only, with a warning

    Args:
        grid: raw grid (first row = headers)
        filename: name used in messages

    Returns:
        tuple: (logs, rules, warnings) where rules is {normalized_id: rule_dict}

    Raises:
        UploadValidationError: empty file, missing ID column or duplicated headers
    """
    logs = []
    warnings = []
    rules = {}
    logs.append("--- Replenishment Rules Loader ---")

    df = grid_to_dataframe(grid, filename)
    required = RULES_FILE_RULES["required_columns"]
    optional = RULES_FILE_RULES["optional_columns"]
    df = canonicalize_headers(df, list(required) + list(optional), filename)

    missing_cols = check_columns(df, required.keys(), filename, logs)
    if missing_cols:
        raise UploadValidationError(
            f"The {filename} is missing the following required columns: {', '.join(missing_cols)}"
        )

    present_optional = [col for col in optional if col in df.columns]
    logs.append(f"INFO: Found {len(df)} data rows in the {filename} "
                f"(optional columns: {', '.join(present_optional) or 'none'}).")

    field_defs = DATA_FIELD_DEFINITIONS["RULES"]["fields"]
    source_cols = list(required) + present_optional
    df = drop_blank_rows(df, source_cols)

    for record in df.to_dict('records'):
        row_index = record['row_index']
        key = normalize_product_id(record['ID'])
        if not key:
            warnings.append(f"Rules file row {row_index}: column 'ID' is empty, the rule was skipped.")
            continue

        rule = {
            'id': key,
            'name': '' if is_blank(record.get('Nombre')) else str(record['Nombre']).strip(),
            'fixed_stock': None,
            'coverage_weeks': None,
            'row_index': row_index,
        }

        for col in ('Stock_Fijo', 'Semanas_Cobertura_Stock'):
            if col not in df.columns or is_blank(record[col]):
                continue
            value = parse_number(record[col])
            field_def = field_defs[col]
            if value is None:
                warnings.append(f"Rules file row {row_index} (ID '{key}'): column '{col}' is not a "
                                f"valid number ({describe_cell(record[col])}), the value was ignored.")
                continue
            if value < field_def.get('min_value', -math.inf) or value <= field_def.get('exclusive_min_value', -math.inf):
                warnings.append(f"Rules file row {row_index} (ID '{key}'): column '{col}' is out of "
                                f"range ({describe_cell(record[col])}), the value was ignored.")
                continue
            rule[optional[col]] = value

        if key in rules:
            warnings.append(f"Rules file row {row_index}: duplicate ID '{key}' replaces the rule "
                            f"from row {rules[key]['row_index']}.")
        rules[key] = rule

    logs.append(f"INFO: Loaded {len(rules)} product rules.")
    if warnings:
        logs.append(f"WARNING: {len(warnings)} problems found in the {filename}.")
    return logs, rules, warnings
