"""Core services for the migration import pipeline."""

from .schema_registry import SchemaRegistry, get_registry
from .transformer import TransformEngine, get_transform_engine
from .detector import FormatDetection, SourceFormatDetector
from .mapping import FieldMappingEngine, MappingSuggestion
from .validator import RowValidator, ValidationSummary
from .preview import PreviewGenerator
from .state_machine import JobEvent, JobEventType, transition
from .rollback import RollbackCheck, RollbackManager, RollbackResult

__all__ = [
    "SchemaRegistry",
    "get_registry",
    "TransformEngine",
    "get_transform_engine",
    "FormatDetection",
    "SourceFormatDetector",
    "FieldMappingEngine",
    "MappingSuggestion",
    "RowValidator",
    "ValidationSummary",
    "PreviewGenerator",
    "JobEvent",
    "JobEventType",
    "transition",
    "RollbackCheck",
    "RollbackManager",
    "RollbackResult",
]
