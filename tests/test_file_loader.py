"""
Tests for file_loader module
Tests CSV/Excel reading and error handling
"""

import io
import pytest
from datetime import datetime

from conftest import SALES_HEADER
from data_loader import load_sales_transactions
from exceptions import TabularReadError
from file_loader import detect_file_format, get_file_source, read_tabular


class TestReadCSV:
    """Test reading CSV sources"""

    def test_read_csv_from_path(self, tmp_path, sales_csv_bytes):
        path = tmp_path / "ventas.csv"
        path.write_bytes(sales_csv_bytes)

        grid = read_tabular(str(path))
        assert grid[0] == SALES_HEADER
        assert len(grid) == 9
        assert grid[1] == ["SKU-1", "Widget", "13/02/2024", "40", "4", "15"]

    def test_csv_cells_stay_text(self, sales_csv_bytes):
        """IDs like 123.0 must not be converted to numbers"""
        grid = read_tabular(sales_csv_bytes, file_name="ventas.csv")
        assert grid[5][0] == "123.0"
        assert grid[7][0] == " 123 "

    def test_blank_cells_become_none(self):
        content = "ID,Nombre\nA,\n,\n".encode('utf-8')
        grid = read_tabular(content, file_name="rules.csv")
        assert grid == [["ID", "Nombre"], ["A", None], [None, None]]

    def test_byte_order_mark_is_removed(self):
        content = b"\xef\xbb\xbf" + "ID,Nombre\nA,B\n".encode('utf-8')
        grid = read_tabular(content, file_name="rules.csv")
        assert grid[0] == ["ID", "Nombre"]

    def test_uploaded_buffer_uses_its_name(self, sales_csv_bytes):
        buffer = io.BytesIO(sales_csv_bytes)
        buffer.name = "ventas.csv"
        grid = read_tabular(buffer)
        assert len(grid) == 9

    def test_empty_file(self):
        assert read_tabular(b"", file_name="empty.csv") == []


class TestReadExcel:
    """Test reading xlsx sources"""

    def test_read_xlsx_keeps_native_types(self, sales_xlsx_bytes):
        grid = read_tabular(sales_xlsx_bytes, file_name="ventas.xlsx")

        assert grid[0] == SALES_HEADER
        assert len(grid) == 9
        assert grid[1][2] == datetime(2024, 2, 13)
        assert grid[1][3] == 40

    def test_format_detected_from_content(self, sales_xlsx_bytes):
        """Bytes without a name are sniffed: xlsx files are zip archives"""
        grid = read_tabular(sales_xlsx_bytes)
        assert grid[0] == SALES_HEADER

    def test_xlsx_grid_loads_like_csv(self, sales_xlsx_bytes, sales_csv_bytes):
        _, from_xlsx, _ = load_sales_transactions(read_tabular(sales_xlsx_bytes, file_name="ventas.xlsx"))
        _, from_csv, _ = load_sales_transactions(read_tabular(sales_csv_bytes, file_name="ventas.csv"))

        assert list(from_xlsx['product_key']) == list(from_csv['product_key'])
        assert list(from_xlsx['sale_date']) == list(from_csv['sale_date'])
        assert list(from_xlsx['units_sold']) == list(from_csv['units_sold'])


class TestReadErrors:
    """Unreadable sources raise TabularReadError"""

    def test_missing_file(self, tmp_path):
        with pytest.raises(TabularReadError, match="File not found"):
            read_tabular(str(tmp_path / "missing.csv"))

    def test_unsupported_extension(self):
        with pytest.raises(TabularReadError, match="Unsupported file format '.pdf'"):
            read_tabular(b"%PDF-1.4", file_name="report.pdf")

    def test_corrupt_workbook(self):
        with pytest.raises(TabularReadError, match="Could not read ventas.xlsx"):
            read_tabular(b"this is not a workbook", file_name="ventas.xlsx")

    def test_unsupported_input_type(self):
        with pytest.raises(TabularReadError, match="Unsupported input"):
            get_file_source(12345)

    def test_detect_format_from_extension(self):
        assert detect_file_format(None, "data.CSV") == 'csv'
        assert detect_file_format(None, "data.xlsx") == 'excel'
