"""Tests for job lifecycle transitions."""

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from casemigrate.exceptions import InvalidTransitionError
from casemigrate.models.migration import MigrationJob, MigrationJobStatus as S
from casemigrate.models.record import ValidationError
from casemigrate.models.schema import FieldMapping, SourceType
from casemigrate.services.state_machine import (
    CANCELLED_MESSAGE,
    JobEvent,
    JobEventType,
    can_apply,
    transition,
)

MAPPINGS = [FieldMapping("case_number", "referenceNumber")]


def make_job(**changes):
    job = MigrationJob(
        tenant_id="t1",
        source_type=SourceType.NAVEX,
        file_name="export.csv",
        file_key="t1/migrations/x.csv",
        file_size_bytes=10,
        created_by_id="u1",
    )
    return replace(job, **changes)


class TestHappyPath:
    def test_full_lifecycle(self):
        job = make_job()
        job = transition(job, JobEvent.detection_started())
        assert job.status == S.VALIDATING
        assert job.current_step == "Detecting file format"

        job = transition(job, JobEvent.format_detected(3))
        assert job.status == S.MAPPING
        assert job.total_rows == 3

        job = transition(job, JobEvent.mappings_saved(MAPPINGS))
        assert job.field_mappings == tuple(MAPPINGS)

        job = transition(job, JobEvent.validation_started())
        assert job.status == S.VALIDATING
        assert job.progress == 0

        job = transition(job, JobEvent.validation_progress(40, "Validating row 3 of 5"))
        assert job.progress == 40

        issue = ValidationError(2, "case_number", "Required field is empty")
        job = transition(job, JobEvent.validation_completed(2, 1, [issue]))
        assert job.status == S.PREVIEW
        assert (job.valid_rows, job.error_rows, job.progress) == (2, 1, 100)
        assert job.validation_errors == (issue,)

        job = transition(job, JobEvent.preview_generated([]))
        assert job.status == S.PREVIEW

        job = transition(job, JobEvent.import_started("u1"))
        assert job.status == S.IMPORTING

        done_at = datetime(2024, 1, 1, 12, 0)
        job = transition(job, JobEvent(JobEventType.IMPORT_COMPLETED, at=done_at, imported_rows=3))
        assert job.status == S.COMPLETED
        assert job.imported_rows == 3
        assert job.completed_at == done_at
        assert job.rollback_available_until == done_at + timedelta(days=7)

        job = transition(job, JobEvent.rolled_back("admin"))
        assert job.status == S.ROLLED_BACK
        assert job.rolled_back_by_id == "admin"
        assert job.rolled_back_at is not None

    def test_original_job_is_unchanged(self):
        job = make_job()
        transition(job, JobEvent.detection_started())
        assert job.status == S.PENDING

    def test_mappings_can_be_saved_from_pending(self):
        job = transition(make_job(), JobEvent.mappings_saved(MAPPINGS))
        assert job.status == S.MAPPING

    def test_remapping_after_preview_returns_to_mapping(self):
        job = make_job(status=S.PREVIEW, field_mappings=tuple(MAPPINGS))
        job = transition(job, JobEvent.mappings_saved(MAPPINGS))
        assert job.status == S.MAPPING

    def test_progress_is_clamped(self):
        job = make_job(status=S.VALIDATING)
        assert transition(job, JobEvent.validation_progress(150, "x")).progress == 100


class TestRejectedTransitions:
    def test_validation_needs_mappings(self):
        job = make_job(status=S.MAPPING)
        with pytest.raises(InvalidTransitionError, match="Field mappings must be configured before validation"):
            transition(job, JobEvent.validation_started())

    def test_preview_and_import_need_mappings(self):
        with pytest.raises(InvalidTransitionError, match="before preview"):
            transition(make_job(status=S.MAPPING), JobEvent.preview_generated([]))
        with pytest.raises(InvalidTransitionError, match="before import"):
            transition(make_job(status=S.PREVIEW), JobEvent.import_started())

    def test_import_only_from_preview(self):
        job = make_job(status=S.MAPPING, field_mappings=tuple(MAPPINGS))
        with pytest.raises(InvalidTransitionError, match="Cannot start import with status MAPPING"):
            transition(job, JobEvent.import_started())

    def test_rollback_only_from_completed(self):
        with pytest.raises(InvalidTransitionError, match="with status FAILED"):
            transition(make_job(status=S.FAILED), JobEvent.rolled_back("admin"))

    def test_terminal_states(self):
        for status in (S.FAILED, S.ROLLED_BACK):
            job = make_job(status=status, field_mappings=tuple(MAPPINGS))
            for event_type in JobEventType:
                assert not can_apply(job, event_type)

    def test_mappings_locked_once_importing(self):
        job = make_job(status=S.IMPORTING, field_mappings=tuple(MAPPINGS))
        with pytest.raises(InvalidTransitionError):
            transition(job, JobEvent.mappings_saved([]))


class TestImportOutcomes:
    def test_failure(self):
        job = make_job(status=S.IMPORTING)
        job = transition(job, JobEvent.import_failed("boom", {"row": 7}))

        assert job.status == S.FAILED
        assert job.error_message == "boom"
        assert job.error_details == {"row": 7}

    def test_cancel(self):
        job = transition(make_job(status=S.IMPORTING), JobEvent.import_cancelled())
        assert job.status == S.FAILED
        assert job.error_message == CANCELLED_MESSAGE

    def test_cancel_requires_importing(self):
        with pytest.raises(InvalidTransitionError, match="Cannot cancel import"):
            transition(make_job(status=S.COMPLETED), JobEvent.import_cancelled())

    def test_can_apply(self):
        job = make_job(status=S.PREVIEW, field_mappings=tuple(MAPPINGS))
        assert can_apply(job, JobEventType.IMPORT_STARTED)
        assert not can_apply(job, JobEventType.IMPORT_COMPLETED)


class TestValidationFailure:
    def test_returns_job_to_mapping_with_error(self):
        job = make_job(status=S.VALIDATING, field_mappings=tuple(MAPPINGS), progress=40)
        job = transition(job, JobEvent.validation_failed("file is missing", {"error_type": "InvalidFileError"}))

        assert job.status == S.MAPPING
        assert job.progress == 0
        assert job.error_message == "file is missing"
        assert job.error_details == {"error_type": "InvalidFileError"}
        assert can_apply(job, JobEventType.VALIDATION_STARTED)
        assert can_apply(job, JobEventType.MAPPINGS_SAVED)

    def test_only_while_validating(self):
        with pytest.raises(InvalidTransitionError, match="Cannot fail validation with status PREVIEW"):
            transition(make_job(status=S.PREVIEW), JobEvent.validation_failed("x"))

    def test_next_validation_clears_previous_error(self):
        job = make_job(status=S.MAPPING, field_mappings=tuple(MAPPINGS), error_message="old")
        job = transition(job, JobEvent.validation_started())
        assert job.error_message is None
        assert job.error_details is None
