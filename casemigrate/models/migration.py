"""Migration job and pipeline configuration models."""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
from datetime import datetime
import os
import uuid

from .schema import FieldMapping, SourceType, mappings_to_list
from .record import PreviewRow, ValidationError


class MigrationJobStatus(str, Enum):
    """Lifecycle status of a migration job."""
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    MAPPING = "MAPPING"
    PREVIEW = "PREVIEW"
    IMPORTING = "IMPORTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class MigrationJob:
    """
    One uploaded migration file and everything the pipeline learned about it.

    Jobs are immutable values. Every change goes through
    ``services.state_machine.transition`` which returns a new job.
    """
    tenant_id: str
    source_type: SourceType
    file_name: str
    file_key: str
    file_size_bytes: int
    created_by_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: MigrationJobStatus = MigrationJobStatus.PENDING

    # Progress
    progress: int = 0
    current_step: Optional[str] = None

    # Statistics
    total_rows: Optional[int] = None
    valid_rows: Optional[int] = None
    error_rows: Optional[int] = None
    imported_rows: int = 0

    # Snapshots
    field_mappings: Tuple[FieldMapping, ...] = ()
    validation_errors: Tuple[ValidationError, ...] = ()
    preview_data: Tuple[PreviewRow, ...] = ()

    # Failure and rollback
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    rollback_available_until: Optional[datetime] = None
    rolled_back_at: Optional[datetime] = None
    rolled_back_by_id: Optional[str] = None

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def has_mappings(self) -> bool:
        return len(self.field_mappings) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "source_type": self.source_type.value,
            "file_name": self.file_name,
            "file_key": self.file_key,
            "file_size_bytes": self.file_size_bytes,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "error_rows": self.error_rows,
            "imported_rows": self.imported_rows,
            "field_mappings": mappings_to_list(list(self.field_mappings)),
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "preview_data": [r.to_dict() for r in self.preview_data],
            "error_message": self.error_message,
            "error_details": self.error_details,
            "rollback_available_until": _iso(self.rollback_available_until),
            "rolled_back_at": _iso(self.rolled_back_at),
            "rolled_back_by_id": self.rolled_back_by_id,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": _iso(self.completed_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class MigrationConfig:
    """Configuration for the migration import pipeline."""

    # Upload limits
    max_file_size_bytes: int = 100 * 1024 * 1024
    allowed_extensions: List[str] = field(default_factory=lambda: ["csv", "xlsx"])
    storage_dir: str = "./data/uploads"
    upload_subdirectory: str = "migrations"

    # Detection
    sample_rows: int = 10
    hint_threshold: int = 30  # Hint must score strictly above this
    detection_threshold: int = 30  # Best match must score at least this
    low_confidence_threshold: int = 50
    large_file_rows: int = 10_000

    # Validation and preview
    max_validation_errors: int = 1000
    progress_interval: int = 100
    preview_limit: int = 10

    # Rollback
    rollback_window_days: int = 7
    rollback_confirmation: str = "ROLLBACK"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, prefix: str = "CASEMIGRATE_") -> "MigrationConfig":
        """Build a config from ``CASEMIGRATE_*`` environment variables."""
        config = cls()
        for f in fields(cls):
            raw = os.environ.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            current = getattr(config, f.name)
            if isinstance(current, list):
                value = [part.strip().lower() for part in raw.split(",") if part.strip()]
            elif isinstance(current, int):
                value = int(raw)
            else:
                value = raw
            setattr(config, f.name, value)
        return config
