import pandas as pd
import io # Required for Excel export
from datetime import date, datetime

from business_rules import EXPORT_RULES
from replenishment_planning import get_replenishment_summary

# --- Data Export Functions ---

def get_filtered_data_as_excel(dfs_to_export_dict, table_sheets=()):
    """
    Processes a dictionary of dataframes
    and returns an Excel file as a bytes object for download.
    The dictionary format is { "sheet_name": (dataframe, include_index_bool) }

    Sheets listed in `table_sheets` are formatted as Excel tables
    (header filters and banded rows).
    """
    output = io.BytesIO()

    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        # Loop through each key (sheet name) and dataframe in the dictionary
        for sheet_name, (df, include_index) in dfs_to_export_dict.items():

            # Ensure dataframe is not just a placeholder
            if not isinstance(df, pd.DataFrame):
                print(f"Skipping {sheet_name}: Not a DataFrame.")
                continue
            if df.empty and len(df.columns) == 0:
                print(f"Skipping {sheet_name}: DataFrame is empty.")
                continue

            # Only copy if datetime conversion is needed
            df_to_export = df
            if any(pd.api.types.is_datetime64_any_dtype(df[col]) for col in df.columns):
                df_to_export = df.copy()
                for col in df_to_export.columns:
                    if pd.api.types.is_datetime64_any_dtype(df_to_export[col]):
                        # Convert to timezone-naive datetime
                        try:
                            df_to_export[col] = df_to_export[col].dt.tz_localize(None)
                        except TypeError:
                            # Already naive, do nothing
                            pass
                        # Format as simple date
                        df_to_export[col] = df_to_export[col].dt.strftime('%Y-%m-%d')

            # Write to Excel
            df_to_export.to_excel(writer, sheet_name=sheet_name, index=include_index)
            worksheet = writer.sheets[sheet_name]

            if sheet_name in table_sheets and not include_index and len(df_to_export) > 0:
                worksheet.add_table(0, 0, len(df_to_export), max(len(df_to_export.columns) - 1, 0), {
                    'name': ''.join(ch for ch in sheet_name.title() if ch.isalnum()) + 'Table',
                    'columns': [{'header': str(col)} for col in df_to_export.columns],
                    'style': 'Table Style Medium 2',
                })

            # Auto-adjust column widths
            for idx, col in enumerate(df_to_export.columns):  # Iterate over columns
                series = df_to_export[col]
                # Missing cells (None/NaN) count as empty
                cell_text = series.astype(object).where(series.notna(), '').astype(str)
                data_len = cell_text.map(len).max() if len(series) else 0
                max_len = max(
                    data_len,  # Data max len
                    len(str(series.name))  # Header len
                ) + 2  # Add a little extra space
                worksheet.set_column(idx, idx, max_len)

    processed_data = output.getvalue()
    return processed_data


def format_export_date(value) -> str:
    """Format a date for the export summary (DD/MM/YYYY)."""
    if isinstance(value, (date, datetime)):
        return value.strftime('%d/%m/%Y')
    return '' if value is None else str(value)


def build_export_table(results_df: pd.DataFrame, week_labels) -> pd.DataFrame:
    """
    Lay out calculated products in the fixed export column order:
    ID, Name, Current Month Sales, week history (newest first), Avg Weekly Sales,
    Coverage Weeks, Current Stock, Ideal Stock, Units to Order, Status, Error.

    Args:
        results_df: calculated products
        week_labels: labels aligned with each product's sales_periods

    Returns:
        DataFrame ready for export
    """
    leading = EXPORT_RULES["leading_columns"]
    trailing = EXPORT_RULES["trailing_columns"]
    header = list(leading) + list(week_labels) + list(trailing)

    rows = []
    for record in results_df.to_dict('records'):
        row = {label: record.get(field) for label, field in leading.items()}
        for label, units in zip(week_labels, record.get('sales_periods') or []):
            row[label] = units
        row.update({label: record.get(field) for label, field in trailing.items()})
        rows.append(row)

    return pd.DataFrame(rows, columns=header)


def build_export_summary(source_file_name, num_periods, divisor_periods, processing_info, results_df) -> pd.DataFrame:
    """Parameter/value table describing the run, written to the summary sheet."""
    processing_info = processing_info or {}
    date_range = processing_info.get('date_range') or {}
    summary = get_replenishment_summary(results_df)

    rows = [
        ("Sales File", source_file_name),
        ("Weeks Analyzed", num_periods),
        ("Averaging Divisor", divisor_periods),
        ("Date Range", f"{format_export_date(date_range.get('start'))} - {format_export_date(date_range.get('end'))}"),
        ("Products Analyzed", summary['products']),
        ("Products With Rules Applied", processing_info.get('products_with_rules', 0)),
        ("Products To Order", summary['products_to_order']),
        ("Total Units To Order", summary['total_units_to_order']),
        ("Products With Errors", summary['products_with_errors']),
    ]
    return pd.DataFrame(rows, columns=["Parameter", "Value"])


def export_results_to_excel(results_df, week_labels, source_file_name, num_periods, divisor_periods, processing_info):
    """
    Export calculated results to an Excel workbook.

    The workbook holds a summary sheet with the run parameters and a results
    sheet formatted as an Excel table.

    Returns:
        Workbook content as bytes
    """
    summary_df = build_export_summary(source_file_name, num_periods, divisor_periods, processing_info, results_df)
    table_df = build_export_table(results_df, week_labels)

    return get_filtered_data_as_excel(
        {
            EXPORT_RULES["summary_sheet"]: (summary_df, False),
            EXPORT_RULES["results_sheet"]: (table_df, False),
        },
        table_sheets=(EXPORT_RULES["results_sheet"],),
    )


def get_export_file_name(run_date=None) -> str:
    """Default download name for the results workbook."""
    run_date = run_date or date.today()
    return EXPORT_RULES["file_name_template"].format(run_date=run_date.isoformat())
