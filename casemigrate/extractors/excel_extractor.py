"""Spreadsheet workbook extractor."""

import io
import zipfile
import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Any, Iterator, List, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .base import BaseExtractor, Row, unique_headers
from ..exceptions import InvalidFileError

logger = logging.getLogger(__name__)


def cell_to_text(value: Any) -> str:
    """Render a cell value the way it would appear in a CSV export."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class ExcelExtractor(BaseExtractor):
    """
    Extractor for .xlsx workbooks.

    Only the first sheet is read. The first non-blank row is the header
    row, empty cells become "" and blank rows are skipped.
    """

    extension = "xlsx"

    def __init__(self, content: bytes):
        super().__init__(content)
        self._headers: Optional[List[str]] = None

    @property
    def headers(self) -> List[str]:
        if self._headers is None:
            with self._sheet_rows() as rows:
                header = next(rows, None)
            self._headers = unique_headers(self._header_names(header)) if header else []
        return self._headers

    def iter_rows(self) -> Iterator[Row]:
        headers = self.headers
        if not headers:
            return

        with self._sheet_rows() as rows:
            next(rows, None)
            for values in rows:
                cells = [cell_to_text(v) for v in values]
                yield {
                    name: (cells[i] if i < len(cells) else "")
                    for i, name in enumerate(headers)
                }

    @staticmethod
    def _header_names(header: List[Any]) -> List[str]:
        names = []
        for i, value in enumerate(header):
            name = cell_to_text(value)
            names.append(name or f"column_{i + 1}")
        # Trailing unnamed columns are formatting noise
        while names and names[-1].startswith("column_") and not cell_to_text(header[len(names) - 1]):
            names.pop()
        return names

    @contextmanager
    def _sheet_rows(self):
        try:
            wb = load_workbook(io.BytesIO(self.content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
            raise InvalidFileError(f"Could not read workbook: {e}")
        try:
            if not wb.worksheets:
                yield iter(())
                return
            ws = wb.worksheets[0]
            yield (
                values for values in ws.iter_rows(values_only=True)
                if any(cell_to_text(v) for v in values)
            )
        finally:
            wb.close()
