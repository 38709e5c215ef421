"""Data extractors for uploaded migration files."""

from .base import BaseExtractor, ExtractionResult, file_extension, get_extractor, unique_headers
from .csv_extractor import CSVExtractor, detect_delimiter
from .excel_extractor import ExcelExtractor

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "file_extension",
    "get_extractor",
    "unique_headers",
    "CSVExtractor",
    "detect_delimiter",
    "ExcelExtractor",
]
