"""Delimited text extractor."""

import csv
import io
import logging
from typing import Iterator, List, Optional

from .base import BaseExtractor, Row, unique_headers
from ..exceptions import InvalidFileError

logger = logging.getLogger(__name__)

# Candidate delimiters in tie-break order
DELIMITER_CANDIDATES = (",", ";", "\t", "|")


def first_line(content: bytes) -> str:
    """Decode the first line of a UTF-8 file."""
    head = content.split(b"\n", 1)[0]
    return head.decode("utf-8-sig", errors="replace").rstrip("\r")


def detect_delimiter(line: str) -> str:
    """
    Pick the delimiter that occurs most often in a header line.

    Ties keep the earlier candidate, so comma wins over the others.
    """
    best = DELIMITER_CANDIDATES[0]
    best_count = 0
    for candidate in DELIMITER_CANDIDATES:
        count = line.count(candidate)
        if count > best_count:
            best = candidate
            best_count = count
    return best


class CSVExtractor(BaseExtractor):
    """
    Extractor for delimited text exports.

    Supports:
    - Delimiter detection (comma, semicolon, tab, pipe)
    - Streaming row-by-row parsing
    - Ragged rows (missing cells become "", extra cells are dropped)
    - Trimmed headers and values, blank lines skipped
    """

    extension = "csv"

    def __init__(self, content: bytes, delimiter: Optional[str] = None, encoding: str = "utf-8-sig"):
        """
        Initialize the CSV extractor.

        Args:
            content: Raw file bytes
            delimiter: Field delimiter (detected from the first line when omitted)
            encoding: Text encoding
        """
        super().__init__(content)
        self.encoding = encoding
        self._delimiter = delimiter or detect_delimiter(first_line(content))
        self._headers: Optional[List[str]] = None

    @property
    def delimiter(self) -> str:
        return self._delimiter

    @property
    def headers(self) -> List[str]:
        if self._headers is None:
            reader = csv.reader(self._open(), delimiter=self._delimiter)
            try:
                header = next(reader, None)
            except (csv.Error, UnicodeDecodeError) as e:
                raise InvalidFileError(f"Could not parse CSV file: {e}")
            self._headers = unique_headers([h.strip() for h in header]) if header else []
        return self._headers

    def iter_rows(self) -> Iterator[Row]:
        headers = self.headers
        if not headers:
            return

        reader = csv.reader(self._open(), delimiter=self._delimiter)
        try:
            next(reader, None)
            for record in reader:
                if not record:
                    continue
                yield {
                    name: (record[i].strip() if i < len(record) else "")
                    for i, name in enumerate(headers)
                }
        except (csv.Error, UnicodeDecodeError) as e:
            raise InvalidFileError(f"Could not parse CSV file at line {reader.line_num}: {e}")

    def _open(self) -> io.TextIOWrapper:
        return io.TextIOWrapper(io.BytesIO(self.content), encoding=self.encoding, newline="")
