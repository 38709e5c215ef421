"""Source format detection from column headers."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models.schema import SourceType
from ..models.migration import MigrationConfig
from ..extractors import get_extractor, detect_delimiter
from .schema_registry import SchemaRegistry, get_registry, normalize_field_name, percentage

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_WARNING = "Low confidence in format detection. Please verify field mappings carefully."


@dataclass
class FormatDetection:
    """Outcome of detecting the format of one uploaded file."""
    source_type: SourceType
    confidence: int
    headers: List[str] = field(default_factory=list)
    sample_rows: List[Dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0
    warnings: List[str] = field(default_factory=list)
    delimiter: Optional[str] = None
    has_headers: bool = True
    encoding: str = "utf-8"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_type": self.source_type.value,
            "confidence": self.confidence,
            "detected_fields": list(self.headers),
            "sample_rows": [dict(r) for r in self.sample_rows],
            "total_rows": self.total_rows,
            "warnings": list(self.warnings),
            "delimiter": self.delimiter,
            "has_headers": self.has_headers,
            "encoding": self.encoding,
        }


class SourceFormatDetector:
    """
    Scores header sets against the known source-system header patterns.

    A pattern matches when some normalized header contains it or is
    contained by it. The score for a source type is the share of its
    patterns that match, as a whole percentage.
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry] = None,
        config: Optional[MigrationConfig] = None,
    ):
        self.registry = registry or get_registry()
        self.config = config or MigrationConfig()

    def score(self, headers: Sequence[str], source_type: SourceType) -> int:
        """
        Pattern match score of a header set for one source type.

        Returns:
            0-100, always 0 for a type without patterns
        """
        patterns = self.registry.get_patterns(source_type)
        if not patterns:
            return 0

        normalized_headers = [normalize_field_name(h) for h in headers]
        matched = 0
        for pattern in patterns:
            p = normalize_field_name(pattern)
            if any(p in h or h in p for h in normalized_headers):
                matched += 1

        return percentage(matched, len(patterns))

    def detect_source_type(
        self,
        headers: Sequence[str],
        hint: Optional[SourceType] = None,
    ) -> Tuple[SourceType, int]:
        """
        Pick the most likely source type for a header set.

        Args:
            headers: Column headers
            hint: Operator-supplied source type, accepted when it scores above the hint threshold

        Returns:
            (source type, confidence)
        """
        if hint is not None and hint != SourceType.GENERIC_CSV:
            hint_score = self.score(headers, hint)
            if hint_score > self.config.hint_threshold:
                return hint, hint_score
            logger.info(f"Ignoring source type hint {hint.value} (score {hint_score})")

        best_type = None
        best_score = -1
        for source_type in SourceType:
            if source_type == SourceType.GENERIC_CSV:
                continue
            type_score = self.score(headers, source_type)
            if type_score > best_score:
                best_type, best_score = source_type, type_score

        if best_type is not None and best_score >= self.config.detection_threshold:
            return best_type, best_score

        # Generic accepts any header set
        return SourceType.GENERIC_CSV, 100

    @staticmethod
    def detect_delimiter(line: str) -> str:
        """Most frequent of comma, semicolon, tab and pipe in a header line."""
        return detect_delimiter(line)

    def build_warnings(self, confidence: int, total_rows: int) -> List[str]:
        """Operator warnings for a detection result."""
        warnings = []
        if confidence < self.config.low_confidence_threshold:
            warnings.append(LOW_CONFIDENCE_WARNING)
        if total_rows > self.config.large_file_rows:
            warnings.append(
                f"Large file detected ({total_rows:,} rows). Import may take several minutes."
            )
        return warnings

    def detect_file(
        self,
        content: bytes,
        extension: str,
        hint: Optional[SourceType] = None,
    ) -> FormatDetection:
        """
        Detect the source type of raw file bytes.

        Args:
            content: Raw file bytes
            extension: File extension (csv or xlsx)
            hint: Optional operator-supplied source type

        Returns:
            FormatDetection with headers, row sample, row count and warnings
        """
        extractor = get_extractor(content, extension)
        extracted = extractor.extract(sample_size=self.config.sample_rows)

        source_type, confidence = self.detect_source_type(extracted.headers, hint)
        warnings = self.build_warnings(confidence, extracted.total_rows)
        for warning in warnings:
            logger.warning(warning)

        logger.info(
            f"Detected {source_type.value} ({confidence}%) from "
            f"{len(extracted.headers)} columns, {extracted.total_rows} rows"
        )

        return FormatDetection(
            source_type=source_type,
            confidence=confidence,
            headers=extracted.headers,
            sample_rows=extracted.sample_rows,
            total_rows=extracted.total_rows,
            warnings=warnings,
            delimiter=extracted.delimiter,
        )
