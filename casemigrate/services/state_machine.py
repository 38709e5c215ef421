"""Import job lifecycle: the single entry point for changing a job."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Sequence, Tuple

from ..exceptions import InvalidTransitionError
from ..models.migration import MigrationJob, MigrationJobStatus
from ..models.record import PreviewRow, ValidationError
from ..models.schema import FieldMapping

logger = logging.getLogger(__name__)

S = MigrationJobStatus


class JobEventType(str, Enum):
    """Things that can happen to a migration job."""
    DETECTION_STARTED = "DETECTION_STARTED"
    FORMAT_DETECTED = "FORMAT_DETECTED"
    MAPPINGS_SAVED = "MAPPINGS_SAVED"
    VALIDATION_STARTED = "VALIDATION_STARTED"
    VALIDATION_PROGRESS = "VALIDATION_PROGRESS"
    VALIDATION_COMPLETED = "VALIDATION_COMPLETED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PREVIEW_GENERATED = "PREVIEW_GENERATED"
    IMPORT_STARTED = "IMPORT_STARTED"
    IMPORT_COMPLETED = "IMPORT_COMPLETED"
    IMPORT_FAILED = "IMPORT_FAILED"
    IMPORT_CANCELLED = "IMPORT_CANCELLED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class JobEvent:
    """An event plus the data it carries. Use the classmethod constructors."""
    type: JobEventType
    at: datetime = field(default_factory=datetime.utcnow)
    total_rows: Optional[int] = None
    field_mappings: Tuple[FieldMapping, ...] = ()
    progress: int = 0
    current_step: Optional[str] = None
    valid_rows: int = 0
    error_rows: int = 0
    validation_errors: Tuple[ValidationError, ...] = ()
    preview_data: Tuple[PreviewRow, ...] = ()
    imported_rows: int = 0
    rollback_window_days: int = 7
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    actor_id: Optional[str] = None

    @classmethod
    def detection_started(cls) -> "JobEvent":
        return cls(JobEventType.DETECTION_STARTED)

    @classmethod
    def format_detected(cls, total_rows: int) -> "JobEvent":
        return cls(JobEventType.FORMAT_DETECTED, total_rows=total_rows)

    @classmethod
    def mappings_saved(cls, mappings: Sequence[FieldMapping]) -> "JobEvent":
        return cls(JobEventType.MAPPINGS_SAVED, field_mappings=tuple(mappings))

    @classmethod
    def validation_started(cls) -> "JobEvent":
        return cls(JobEventType.VALIDATION_STARTED)

    @classmethod
    def validation_progress(cls, progress: int, current_step: str) -> "JobEvent":
        return cls(JobEventType.VALIDATION_PROGRESS, progress=progress, current_step=current_step)

    @classmethod
    def validation_completed(
        cls,
        valid_rows: int,
        error_rows: int,
        errors: Sequence[ValidationError],
        total_rows: Optional[int] = None,
    ) -> "JobEvent":
        return cls(
            JobEventType.VALIDATION_COMPLETED,
            valid_rows=valid_rows,
            error_rows=error_rows,
            validation_errors=tuple(errors),
            total_rows=total_rows,
        )

    @classmethod
    def validation_failed(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "JobEvent":
        return cls(JobEventType.VALIDATION_FAILED, error_message=message, error_details=details)

    @classmethod
    def preview_generated(cls, rows: Sequence[PreviewRow]) -> "JobEvent":
        return cls(JobEventType.PREVIEW_GENERATED, preview_data=tuple(rows))

    @classmethod
    def import_started(cls, actor_id: Optional[str] = None) -> "JobEvent":
        return cls(JobEventType.IMPORT_STARTED, actor_id=actor_id)

    @classmethod
    def import_completed(cls, imported_rows: int, rollback_window_days: int = 7) -> "JobEvent":
        return cls(
            JobEventType.IMPORT_COMPLETED,
            imported_rows=imported_rows,
            rollback_window_days=rollback_window_days,
        )

    @classmethod
    def import_failed(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "JobEvent":
        return cls(JobEventType.IMPORT_FAILED, error_message=message, error_details=details)

    @classmethod
    def import_cancelled(cls) -> "JobEvent":
        return cls(JobEventType.IMPORT_CANCELLED, error_message=CANCELLED_MESSAGE)

    @classmethod
    def rolled_back(cls, actor_id: str) -> "JobEvent":
        return cls(JobEventType.ROLLED_BACK, actor_id=actor_id)


CANCELLED_MESSAGE = "Import cancelled by user"

# Statuses each event may be applied from
ALLOWED_FROM: Dict[JobEventType, FrozenSet[MigrationJobStatus]] = {
    JobEventType.DETECTION_STARTED: frozenset({S.PENDING, S.MAPPING}),
    JobEventType.FORMAT_DETECTED: frozenset({S.VALIDATING}),
    JobEventType.MAPPINGS_SAVED: frozenset({S.PENDING, S.MAPPING, S.PREVIEW}),
    JobEventType.VALIDATION_STARTED: frozenset({S.MAPPING, S.PREVIEW}),
    JobEventType.VALIDATION_PROGRESS: frozenset({S.VALIDATING}),
    JobEventType.VALIDATION_COMPLETED: frozenset({S.VALIDATING}),
    JobEventType.VALIDATION_FAILED: frozenset({S.VALIDATING}),
    JobEventType.PREVIEW_GENERATED: frozenset({S.MAPPING, S.PREVIEW}),
    JobEventType.IMPORT_STARTED: frozenset({S.PREVIEW}),
    JobEventType.IMPORT_COMPLETED: frozenset({S.IMPORTING}),
    JobEventType.IMPORT_FAILED: frozenset({S.IMPORTING}),
    JobEventType.IMPORT_CANCELLED: frozenset({S.IMPORTING}),
    JobEventType.ROLLED_BACK: frozenset({S.COMPLETED}),
}

# Events that need a confirmed mapping set, with the phase name for messages
REQUIRES_MAPPINGS: Dict[JobEventType, str] = {
    JobEventType.VALIDATION_STARTED: "validation",
    JobEventType.PREVIEW_GENERATED: "preview",
    JobEventType.IMPORT_STARTED: "import",
}

_ACTIONS: Dict[JobEventType, str] = {
    JobEventType.DETECTION_STARTED: "detect format",
    JobEventType.FORMAT_DETECTED: "record detected format",
    JobEventType.MAPPINGS_SAVED: "save mappings",
    JobEventType.VALIDATION_STARTED: "validate",
    JobEventType.VALIDATION_PROGRESS: "record validation progress",
    JobEventType.VALIDATION_COMPLETED: "complete validation",
    JobEventType.VALIDATION_FAILED: "fail validation",
    JobEventType.PREVIEW_GENERATED: "generate preview",
    JobEventType.IMPORT_STARTED: "start import",
    JobEventType.IMPORT_COMPLETED: "complete import",
    JobEventType.IMPORT_FAILED: "fail import",
    JobEventType.IMPORT_CANCELLED: "cancel import",
    JobEventType.ROLLED_BACK: "roll back",
}


def can_apply(job: MigrationJob, event_type: JobEventType) -> bool:
    """Check whether an event is legal for the job's current state."""
    if job.status not in ALLOWED_FROM[event_type]:
        return False
    if event_type in REQUIRES_MAPPINGS and not job.has_mappings:
        return False
    return True


def transition(job: MigrationJob, event: JobEvent) -> MigrationJob:
    """
    Apply an event to a job.

    Args:
        job: Current job (unchanged by this call)
        event: What happened

    Returns:
        The new job value

    Raises:
        InvalidTransitionError: When the event is not legal in the job's state
    """
    if job.status not in ALLOWED_FROM[event.type]:
        raise InvalidTransitionError(
            f"Cannot {_ACTIONS[event.type]} with status {job.status.value}"
        )
    phase = REQUIRES_MAPPINGS.get(event.type)
    if phase and not job.has_mappings:
        raise InvalidTransitionError(f"Field mappings must be configured before {phase}")

    changes = _HANDLERS[event.type](job, event)
    changes["updated_at"] = event.at
    new_job = replace(job, **changes)

    if new_job.status != job.status:
        logger.info(f"Job {job.id}: {job.status.value} -> {new_job.status.value} ({event.type.value})")
    return new_job


def _detection_started(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {"status": S.VALIDATING, "current_step": "Detecting file format"}


def _format_detected(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.MAPPING,
        "total_rows": event.total_rows,
        "current_step": "Awaiting field mapping",
    }


def _mappings_saved(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.MAPPING,
        "field_mappings": tuple(event.field_mappings),
        "current_step": "Field mappings saved",
    }


def _validation_started(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.VALIDATING,
        "progress": 0,
        "current_step": "Validating data",
        "error_message": None,
        "error_details": None,
    }


def _validation_progress(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {"progress": max(0, min(100, event.progress)), "current_step": event.current_step}


def _validation_completed(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    changes = {
        "status": S.PREVIEW,
        "valid_rows": event.valid_rows,
        "error_rows": event.error_rows,
        "validation_errors": tuple(event.validation_errors),
        "progress": 100,
        "current_step": "Validation complete",
    }
    if event.total_rows is not None:
        changes["total_rows"] = event.total_rows
    return changes


def _validation_failed(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.MAPPING,
        "progress": 0,
        "current_step": "Validation failed",
        "error_message": event.error_message,
        "error_details": event.error_details,
    }


def _preview_generated(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {"preview_data": tuple(event.preview_data)}


def _import_started(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.IMPORTING,
        "progress": 0,
        "current_step": "Starting import",
        "error_message": None,
        "error_details": None,
    }


def _import_completed(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.COMPLETED,
        "progress": 100,
        "current_step": "Import complete",
        "imported_rows": event.imported_rows,
        "completed_at": event.at,
        "rollback_available_until": event.at + timedelta(days=event.rollback_window_days),
    }


def _import_failed(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.FAILED,
        "current_step": "Import failed",
        "error_message": event.error_message,
        "error_details": event.error_details,
    }


def _import_cancelled(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.FAILED,
        "current_step": CANCELLED_MESSAGE,
        "error_message": CANCELLED_MESSAGE,
    }


def _rolled_back(job: MigrationJob, event: JobEvent) -> Dict[str, Any]:
    return {
        "status": S.ROLLED_BACK,
        "current_step": "Rollback complete",
        "rolled_back_at": event.at,
        "rolled_back_by_id": event.actor_id,
    }


_HANDLERS: Dict[JobEventType, Callable[[MigrationJob, JobEvent], Dict[str, Any]]] = {
    JobEventType.DETECTION_STARTED: _detection_started,
    JobEventType.FORMAT_DETECTED: _format_detected,
    JobEventType.MAPPINGS_SAVED: _mappings_saved,
    JobEventType.VALIDATION_STARTED: _validation_started,
    JobEventType.VALIDATION_PROGRESS: _validation_progress,
    JobEventType.VALIDATION_COMPLETED: _validation_completed,
    JobEventType.VALIDATION_FAILED: _validation_failed,
    JobEventType.PREVIEW_GENERATED: _preview_generated,
    JobEventType.IMPORT_STARTED: _import_started,
    JobEventType.IMPORT_COMPLETED: _import_completed,
    JobEventType.IMPORT_FAILED: _import_failed,
    JobEventType.IMPORT_CANCELLED: _import_cancelled,
    JobEventType.ROLLED_BACK: _rolled_back,
}
