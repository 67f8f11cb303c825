"""XLSX spreadsheet extractor (openpyxl).

Cells are emitted sheet by sheet in row-major order. Cells in a row are
separated by tabs and rows by newlines, so a pattern can never match across
two adjacent cells.
"""

import io
import logging
import zipfile
from typing import List

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ...core.exceptions import CorruptFileError
from ..constants import MAX_SPREADSHEET_ROWS

logger = logging.getLogger(__name__)

CELL_SEPARATOR = "\t"
ROW_SEPARATOR = "\n"
SHEET_SEPARATOR = "\n\n"

_WORKBOOK_ERRORS = (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, TypeError, EOFError)


def _cell_text(value) -> str:
    if value is None:
        return ""
    return str(value)


def extract_spreadsheet_text(content: bytes, name: str, max_rows: int = MAX_SPREADSHEET_ROWS) -> str:
    """
    Extract cell text from every worksheet.

    Raises:
        CorruptFileError: The workbook cannot be opened or read
    """
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except _WORKBOOK_ERRORS as e:
        raise CorruptFileError(f"Invalid workbook {name}: {e}", path=name) from e

    sheets: List[str] = []
    try:
        for worksheet in workbook.worksheets:
            lines = [f"## Sheet: {worksheet.title}"]
            for row_index, row in enumerate(worksheet.iter_rows(values_only=True)):
                if row_index >= max_rows:
                    logger.warning(
                        f"Sheet {worksheet.title!r} in {name} exceeds {max_rows} rows, truncating"
                    )
                    break
                cells = [_cell_text(value) for value in row]
                if any(cells):
                    lines.append(CELL_SEPARATOR.join(cells))
            sheets.append(ROW_SEPARATOR.join(lines))
    except _WORKBOOK_ERRORS as e:
        raise CorruptFileError(f"Error reading workbook {name}: {e}", path=name) from e
    finally:
        workbook.close()

    return SHEET_SEPARATOR.join(sheets)
