"""Row validation against a confirmed mapping set."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..models.schema import FieldMapping
from ..models.record import Severity, ValidationError
from .schema_registry import percentage
from .transformer import TransformEngine, get_transform_engine

logger = logging.getLogger(__name__)

REQUIRED_FIELD_MESSAGE = "Required field is empty"

ProgressCallback = Callable[[int, str], None]


def is_empty(value: Any) -> bool:
    """Missing, None, or a string that is blank after trimming."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


@dataclass
class ValidationSummary:
    """Counts and (capped) issue detail for one validation run."""
    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    warning_count: int = 0
    errors: List[ValidationError] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "error_rows": self.error_rows,
            "warning_count": self.warning_count,
            "errors": [e.to_dict() for e in self.errors],
            "truncated": self.truncated,
        }


class RowValidator:
    """
    Validator for raw source rows.

    Supports:
    - Required field checks
    - Transform validate-mode checks (dates, numbers, emails)
    - A bounded issue list with unbounded counts
    - Progress checkpoints at a fixed row interval
    """

    def __init__(
        self,
        transform_engine: Optional[TransformEngine] = None,
        max_errors: int = 1000,
        progress_interval: int = 100,
    ):
        """
        Initialize the validator.

        Args:
            transform_engine: Engine used for validate-mode checks
            max_errors: Maximum number of issues kept in detail
            progress_interval: Rows between progress checkpoints
        """
        self.transform_engine = transform_engine or get_transform_engine()
        self.max_errors = max_errors
        self.progress_interval = progress_interval

    def validate_row(
        self,
        row: Dict[str, Any],
        mappings: Sequence[FieldMapping],
        row_number: int,
    ) -> List[ValidationError]:
        """
        Validate one row.

        Args:
            row: Source row keyed by column
            mappings: Confirmed mapping set
            row_number: 1-based row number in file order

        Returns:
            Issues for the row, errors and warnings, in mapping order
        """
        issues = []

        for mapping in mappings:
            value = row.get(mapping.source_field)

            if is_empty(value):
                if mapping.required:
                    issues.append(ValidationError(
                        row_number=row_number,
                        field=mapping.source_field,
                        message=REQUIRED_FIELD_MESSAGE,
                        value=value,
                        severity=Severity.ERROR,
                    ))
                continue

            if mapping.transform is None:
                continue

            issue = self.transform_engine.validate(value, mapping.transform)
            if issue:
                message, severity = issue
                issues.append(ValidationError(
                    row_number=row_number,
                    field=mapping.source_field,
                    message=message,
                    value=value,
                    severity=severity,
                ))

        return issues

    def validate_rows(
        self,
        rows: Iterable[Dict[str, Any]],
        mappings: Sequence[FieldMapping],
        total_rows: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ValidationSummary:
        """
        Validate rows in file order.

        Args:
            rows: Source rows (any iterable; streamed, not materialized)
            mappings: Confirmed mapping set
            total_rows: Row count used for progress labels
            on_progress: Called with (percent, label) every ``progress_interval`` rows

        Returns:
            ValidationSummary with counts and at most ``max_errors`` issues
        """
        if total_rows is None and hasattr(rows, "__len__"):
            total_rows = len(rows)

        summary = ValidationSummary()

        for i, row in enumerate(rows):
            if on_progress and total_rows and i % self.progress_interval == 0:
                on_progress(percentage(i, total_rows), f"Validating row {i + 1} of {total_rows}")

            issues = self.validate_row(row, mappings, i + 1)
            summary.total_rows += 1

            if any(issue.is_error for issue in issues):
                summary.error_rows += 1
            else:
                summary.valid_rows += 1
            summary.warning_count += sum(1 for issue in issues if not issue.is_error)

            remaining = self.max_errors - len(summary.errors)
            if len(issues) > remaining:
                summary.truncated = True
            if remaining > 0:
                summary.errors.extend(issues[:remaining])

        if summary.truncated:
            logger.warning(
                f"Validation issue detail capped at {self.max_errors} entries "
                f"({summary.error_rows} error rows)"
            )
        logger.info(
            f"Validated {summary.total_rows} rows: "
            f"{summary.valid_rows} valid, {summary.error_rows} with errors"
        )
        return summary
