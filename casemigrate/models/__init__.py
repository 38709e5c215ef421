"""Data models for the migration import pipeline."""

from .schema import (
    SourceType,
    TargetEntity,
    TransformFunction,
    FieldMapping,
    MappingTemplate,
)
from .migration import (
    MigrationConfig,
    MigrationJob,
    MigrationJobStatus,
)
from .record import (
    Severity,
    ValidationError,
    PreviewRow,
    MigrationRecord,
)

__all__ = [
    "SourceType",
    "TargetEntity",
    "TransformFunction",
    "FieldMapping",
    "MappingTemplate",
    "MigrationConfig",
    "MigrationJob",
    "MigrationJobStatus",
    "Severity",
    "ValidationError",
    "PreviewRow",
    "MigrationRecord",
]
