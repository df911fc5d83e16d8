"""
Tests for utils module
Tests the results export and Excel writing
"""

import pytest
import pandas as pd
from datetime import date
from io import BytesIO

import openpyxl

from replenishment_planning import process_and_calculate
from utils import (
    build_export_summary,
    build_export_table,
    export_results_to_excel,
    get_export_file_name,
    get_filtered_data_as_excel,
)


@pytest.fixture
def calculated(sales_grid, rules_grid):
    grids = {"sales": sales_grid, "rules": rules_grid}
    return process_and_calculate("sales", "rules", 4, 4, reader=grids.get)


class TestExcelExport:
    """Test Excel export functionality"""

    def test_get_filtered_data_as_excel_returns_bytes(self):
        """Test that Excel export returns bytes"""
        df = pd.DataFrame({
            'col1': [1, 2, 3],
            'col2': ['a', 'b', 'c']
        })

        result = get_filtered_data_as_excel({"Test Sheet": (df, False)})
        assert isinstance(result, bytes)
        assert len(result) > 0

    def test_get_filtered_data_as_excel_empty_dataframe(self):
        """Test Excel export with empty DataFrame"""
        df = pd.DataFrame()
        result = get_filtered_data_as_excel({"Empty Sheet": (df, False)})
        assert isinstance(result, bytes)

    def test_table_sheet_gets_an_excel_table(self):
        df = pd.DataFrame({'col1': [1, 2], 'col2': ['a', 'b']})
        result = get_filtered_data_as_excel({"Results": (df, False)}, table_sheets=("Results",))

        workbook = openpyxl.load_workbook(BytesIO(result))
        assert "ResultsTable" in workbook["Results"].tables

    def test_table_sheet_with_headers_only(self):
        df = pd.DataFrame(columns=['col1', 'col2'])
        result = get_filtered_data_as_excel({"Results": (df, False)}, table_sheets=("Results",))

        sheet = pd.read_excel(BytesIO(result), sheet_name="Results")
        assert list(sheet.columns) == ['col1', 'col2']
        assert sheet.empty

    def test_missing_cells_do_not_break_column_widths(self):
        """All-missing columns (None, NaN or string NA) are exported as blanks"""
        df = pd.DataFrame({
            'ID': ['A', 'B'],
            'Error': [None, None],
            'Note': pd.Series([None, None], dtype="string"),
            'Value': [1.5, float('nan')],
        })
        result = get_filtered_data_as_excel({"Results": (df, False)}, table_sheets=("Results",))

        sheet = pd.read_excel(BytesIO(result), sheet_name="Results")
        assert list(sheet.columns) == ['ID', 'Error', 'Note', 'Value']
        assert sheet['Error'].isna().all()
        assert sheet['Note'].isna().all()


class TestResultsExport:
    """Export layout of calculated results"""

    def test_export_table_column_order(self, calculated):
        table = build_export_table(calculated.results, calculated.week_labels)

        assert list(table.columns) == [
            "ID", "Name", "Current Month Sales",
            "Week 10", "Week 9", "Week 8", "Week 7",
            "Avg Weekly Sales", "Coverage Weeks", "Current Stock",
            "Ideal Stock", "Units to Order", "Status", "Error",
        ]

    def test_export_table_values(self, calculated):
        table = build_export_table(calculated.results, calculated.week_labels)
        widget = table.iloc[0]

        assert widget["ID"] == "SKU-1"
        assert widget["Current Month Sales"] == 15
        assert [widget[label] for label in calculated.week_labels] == [10, 20, 30, 40]
        assert widget["Ideal Stock"] == 50
        assert widget["Units to Order"] == 35
        assert widget["Status"] == "Fixed"

    def test_export_summary(self, calculated):
        summary = build_export_summary("ventas.csv", 4, 4, calculated.processing_info, calculated.results)
        values = dict(zip(summary["Parameter"], summary["Value"]))

        assert values["Sales File"] == "ventas.csv"
        assert values["Weeks Analyzed"] == 4
        assert values["Date Range"] == "13/02/2024 - 13/03/2024"
        assert values["Products Analyzed"] == 2
        assert values["Products With Rules Applied"] == 2
        assert values["Total Units To Order"] == 35

    def test_export_results_workbook(self, calculated):
        content = export_results_to_excel(
            calculated.results, calculated.week_labels, "ventas.csv", 4, 4, calculated.processing_info
        )
        sheets = pd.read_excel(BytesIO(content), sheet_name=None)

        assert list(sheets) == ["Summary", "Results"]
        results = sheets["Results"]
        assert len(results) == 2
        assert list(results["ID"].astype(str)) == ["SKU-1", "123"]
        assert list(results["Units to Order"]) == [35, 0]

    def test_export_run_without_errors(self, sales_grid):
        """A fully successful run has an empty Error column and still exports"""
        grids = {"sales": sales_grid}
        result = process_and_calculate("sales", None, 4, 4, reader=grids.get)
        content = export_results_to_excel(
            result.results, result.week_labels, "ventas.csv", 4, 4, result.processing_info
        )

        results = pd.read_excel(BytesIO(content), sheet_name="Results")
        assert list(results["Status"]) == ["OK", "OK"]
        assert list(results["Units to Order"]) == [85, 0]
        assert results["Error"].isna().all()

    def test_export_file_name(self):
        assert get_export_file_name(date(2024, 3, 15)) == "Replenishment_Results_2024-03-15.xlsx"
