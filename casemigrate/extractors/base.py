"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
import logging

from ..exceptions import InvalidFileError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass
class ExtractionResult:
    """Headers plus a bounded sample of rows read from one file."""
    headers: List[str] = field(default_factory=list)
    sample_rows: List[Row] = field(default_factory=list)
    total_rows: int = 0
    delimiter: Optional[str] = None
    encoding: str = "utf-8"
    has_headers: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "headers": list(self.headers),
            "sample_rows": [dict(r) for r in self.sample_rows],
            "total_rows": self.total_rows,
            "delimiter": self.delimiter,
            "encoding": self.encoding,
            "has_headers": self.has_headers,
        }


class BaseExtractor(ABC):
    """
    Base class for tabular file extractors.

    Extractors turn raw uploaded bytes into an ordered sequence of
    string-keyed rows. Row order is file order; the first data row is
    row number 1.
    """

    extension: str = ""

    def __init__(self, content: bytes):
        """
        Initialize the extractor.

        Args:
            content: Raw file bytes
        """
        self.content = content

    @property
    @abstractmethod
    def headers(self) -> List[str]:
        """Column headers from the header row."""
        pass

    @abstractmethod
    def iter_rows(self) -> Iterator[Row]:
        """
        Iterate over data rows in file order.

        Yields:
            One dict per row keyed by header
        """
        pass

    @property
    def delimiter(self) -> Optional[str]:
        """Field delimiter, for delimited text formats."""
        return None

    def stream(self, batch_size: int = 100) -> Iterator[List[Row]]:
        """
        Stream rows in batches.

        Args:
            batch_size: Size of each batch

        Yields:
            Batches of rows
        """
        batch: List[Row] = []
        for row in self.iter_rows():
            batch.append(row)
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def read_rows(self, limit: Optional[int] = None) -> List[Row]:
        """Read rows into memory, optionally only the first ``limit``."""
        rows = []
        for row in self.iter_rows():
            if limit is not None and len(rows) >= limit:
                break
            rows.append(row)
        return rows

    def count_rows(self) -> int:
        """Count data rows without keeping them."""
        return sum(1 for _ in self.iter_rows())

    def extract(self, sample_size: int = 10) -> ExtractionResult:
        """
        Read headers, a row sample and the total row count.

        Args:
            sample_size: Number of leading rows to keep

        Returns:
            ExtractionResult for the file
        """
        sample: List[Row] = []
        total = 0
        for row in self.iter_rows():
            if total < sample_size:
                sample.append(row)
            total += 1

        logger.debug(f"Extracted {total} rows, {len(self.headers)} columns")
        return ExtractionResult(
            headers=list(self.headers),
            sample_rows=sample,
            total_rows=total,
            delimiter=self.delimiter,
        )


def unique_headers(names: List[str]) -> List[str]:
    """
    Make repeated header names distinct so no column is lost in a row dict.

    The first occurrence keeps its name; later ones get ``_2``, ``_3``...
    Repeated blank names become ``column_<position>``.
    """
    seen = set(names)
    used = set()
    result = []
    for i, name in enumerate(names):
        if name not in used:
            used.add(name)
            result.append(name)
            continue

        if not name:
            candidate = f"column_{i + 1}"
        else:
            n = 2
            candidate = f"{name}_{n}"
            while candidate in seen or candidate in used:
                n += 1
                candidate = f"{name}_{n}"
        while candidate in seen or candidate in used:
            candidate = f"{candidate}_"
        logger.warning(f"Duplicate column '{name}' renamed to '{candidate}'")
        used.add(candidate)
        result.append(candidate)
    return result


def file_extension(file_name: str) -> str:
    """Lowercased extension without the dot ('' when there is none)."""
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].lower()


def get_extractor(content: bytes, extension: str) -> BaseExtractor:
    """
    Pick the extractor for a file extension.

    Raises:
        InvalidFileError: For unsupported extensions
    """
    from .csv_extractor import CSVExtractor
    from .excel_extractor import ExcelExtractor

    ext = extension.lower().lstrip(".")
    if ext == CSVExtractor.extension:
        return CSVExtractor(content)
    if ext == ExcelExtractor.extension:
        return ExcelExtractor(content)
    raise InvalidFileError(f"Invalid file type '{extension}'. Supported: CSV, XLSX")
