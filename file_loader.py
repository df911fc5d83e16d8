"""
Helper module to read tabular files (CSV or Excel) from disk paths, raw bytes or uploaded buffers.
"""
import io
import os
import math

import numpy as np
import pandas as pd

from exceptions import TabularReadError

SUPPORTED_FORMATS = {
    '.csv': 'csv',
    '.txt': 'csv',
    '.xlsx': 'excel',
    '.xlsm': 'excel',
}

ZIP_SIGNATURE = b'PK\x03\x04'


def get_file_source(source, file_name=None):
    """
    Returns a file-like object or path for reading a table.

    Args:
        source: path (str or PathLike), raw bytes, or a file-like object
            (e.g. an uploaded buffer with a `name` attribute)
        file_name: display name, used to detect the format when the source has none

    Returns:
        tuple: (readable, name) where readable is a path or file-like object
    """
    if isinstance(source, (str, os.PathLike)):
        path = os.fspath(source)
        if not os.path.isfile(os.path.abspath(path)):
            raise TabularReadError(f"File not found: {path}")
        return path, file_name or os.path.basename(path)

    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(bytes(source)), file_name or ''

    if hasattr(source, 'read'):
        return source, file_name or os.path.basename(str(getattr(source, 'name', '') or ''))

    raise TabularReadError(f"Unsupported input of type {type(source).__name__}; expected a path, bytes or a file.")


def detect_file_format(readable, name):
    """
    Detect 'csv' or 'excel' from the file extension, or from the content when
    there is no extension (xlsx files are zip archives).
    """
    extension = os.path.splitext(name)[1].lower()
    if extension:
        if extension not in SUPPORTED_FORMATS:
            raise TabularReadError(
                f"Unsupported file format '{extension}'. Use CSV (.csv) or Excel (.xlsx) files."
            )
        return SUPPORTED_FORMATS[extension]

    if isinstance(readable, str):
        with open(readable, 'rb') as f:
            head = f.read(len(ZIP_SIGNATURE))
    elif hasattr(readable, 'seek'):
        head = readable.read(len(ZIP_SIGNATURE))
        readable.seek(0)
    else:
        return 'csv'

    return 'excel' if isinstance(head, bytes) and head.startswith(ZIP_SIGNATURE) else 'csv'


def _clean_cell(value):
    """Convert pandas/numpy cell values to plain Python values; blanks become None."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def dataframe_to_grid(df: pd.DataFrame) -> list:
    """Turn a header-less DataFrame into a list of rows of plain cell values."""
    return [
        [_clean_cell(value) for value in row]
        for row in df.itertuples(index=False, name=None)
    ]


def read_tabular(source, file_name=None) -> list:
    """
    Read the first sheet of a CSV or Excel file into a grid of raw cells.

    The first row of the grid holds the headers. CSV cells are kept as text;
    Excel cells keep their native types (numbers, dates, text).

    Args:
        source: path, bytes or file-like object
        file_name: optional display name (used for format detection and messages)

    Returns:
        list of rows (lists of cell values); empty list for an empty file

    Raises:
        TabularReadError: file missing, unsupported format or unreadable content
    """
    readable, name = get_file_source(source, file_name)
    file_format = detect_file_format(readable, name)
    display_name = name or 'the uploaded file'

    try:
        if file_format == 'excel':
            df = pd.read_excel(readable, sheet_name=0, header=None, dtype=object, engine='openpyxl')
        else:
            df = pd.read_csv(
                readable,
                header=None,
                dtype=str,
                skip_blank_lines=False,
                encoding='utf-8-sig',
            )
    except pd.errors.EmptyDataError:
        return []
    except Exception as e:
        raise TabularReadError(
            f"Could not read {display_name}. Make sure it is a valid CSV or Excel file. ({e})"
        ) from e

    return dataframe_to_grid(df)
