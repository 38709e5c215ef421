"""Row-level models produced while validating and previewing migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


class Severity(str, Enum):
    """Severity of a row-level validation issue."""
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationError:
    """A validation issue for one source field on one row."""
    row_number: int
    field: str
    message: str
    value: Optional[Any] = None
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "row_number": self.row_number,
            "field": self.field,
            "value": self.value,
            "message": self.message,
            "severity": self.severity.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationError":
        """Create from dictionary representation."""
        return cls(
            row_number=data["row_number"],
            field=data["field"],
            message=data["message"],
            value=data.get("value"),
            severity=Severity(data.get("severity", "error")),
        )


def empty_buckets() -> Dict[str, Dict[str, Any]]:
    """Transformed output with one empty bucket per target entity."""
    return {"case": {}, "riu": {}, "person": {}, "investigation": {}}


@dataclass
class PreviewRow:
    """A source row next to its transformed, entity-bucketed output."""
    row_number: int
    source_data: Dict[str, Any]
    transformed_data: Dict[str, Dict[str, Any]] = field(default_factory=empty_buckets)
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "row_number": self.row_number,
            "source_data": dict(self.source_data),
            "transformed_data": {
                bucket: {k: _jsonable(v) for k, v in values.items()}
                for bucket, values in self.transformed_data.items()
            },
            "issues": list(self.issues),
        }


@dataclass(frozen=True)
class MigrationRecord:
    """Provenance for one entity created by an import (written by the executor)."""
    id: str
    job_id: str
    entity_type: str
    entity_id: str
    tenant_id: Optional[str] = None
    source_row_number: Optional[int] = None
    source_data: Dict[str, Any] = field(default_factory=dict)
    modified_after_import: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "job_id": self.job_id,
            "tenant_id": self.tenant_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "source_row_number": self.source_row_number,
            "modified_after_import": self.modified_after_import,
            "created_at": self.created_at.isoformat(),
        }


def _jsonable(value: Any) -> Any:
    """Dates become ISO strings; everything else passes through."""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
