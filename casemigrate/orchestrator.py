"""Migration service - coordinates the import pipeline for uploaded files."""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .exceptions import InvalidFileError, JobNotFoundError
from .extractors.base import BaseExtractor, file_extension, get_extractor
from .loaders.base import ImportExecutor
from .models.migration import MigrationConfig, MigrationJob, MigrationJobStatus
from .models.record import PreviewRow
from .models.schema import FieldMapping, MappingTemplate, SourceType
from .services.detector import FormatDetection, SourceFormatDetector
from .services.mapping import FieldMappingEngine, MappingSuggestion, SuggestedMapping
from .services.preview import PreviewGenerator
from .services.rollback import RollbackCheck, RollbackManager, RollbackResult
from .services.schema_registry import SchemaRegistry, get_registry
from .services.state_machine import JobEvent, transition
from .services.transformer import TransformEngine
from .services.validator import RowValidator, ValidationSummary
from .storage import (
    BlobStorage,
    LocalBlobStorage,
    MigrationStorage,
    ProvenanceStorage,
    TemplateStorage,
)

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """A newly created job plus what detection found in its file."""
    job: MigrationJob
    detection: FormatDetection
    file_url: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "job_id": self.job.id,
            "file_name": self.job.file_name,
            "file_url": self.file_url,
            "file_size_bytes": self.job.file_size_bytes,
            "detected_source_type": self.detection.source_type.value,
            "detected_fields": list(self.detection.headers),
            "sample_rows": [dict(r) for r in self.detection.sample_rows],
            "confidence": self.detection.confidence,
            "warnings": list(self.detection.warnings),
        }


class MigrationService:
    """
    Runs migration jobs through the import pipeline.

    Handles:
    - File upload checks, storage and format detection
    - Mapping suggestion, validation and templates
    - Row validation with progress checkpoints
    - Preview generation
    - Import start/cancel and executor completion callbacks
    - Rollback checks and rollback

    Every job change goes through the state machine; the stored job is
    the single source of truth for which phase may run next.
    """

    def __init__(
        self,
        config: Optional[MigrationConfig] = None,
        job_storage: Optional[MigrationStorage] = None,
        template_storage: Optional[TemplateStorage] = None,
        provenance_storage: Optional[ProvenanceStorage] = None,
        blob_storage: Optional[BlobStorage] = None,
        executor: Optional[ImportExecutor] = None,
        registry: Optional[SchemaRegistry] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Pipeline configuration
            job_storage: Job store (in-memory by default)
            template_storage: Mapping template store (in-memory by default)
            provenance_storage: Import provenance store (in-memory by default)
            blob_storage: Uploaded file store (local filesystem by default)
            executor: Import executor used for rollback deletions
            registry: Schema registry with the static lookup tables
        """
        self.config = config or MigrationConfig()
        self.jobs = job_storage or MigrationStorage()
        self.templates = template_storage or TemplateStorage()
        self.provenance = provenance_storage or ProvenanceStorage()
        self.blobs = blob_storage or LocalBlobStorage(self.config.storage_dir)
        self.executor = executor
        self.registry = registry or get_registry()

        self.transformer = TransformEngine()
        self.detector = SourceFormatDetector(self.registry, self.config)
        self.mapping_engine = FieldMappingEngine(self.registry, self.templates)
        self.validator = RowValidator(
            self.transformer,
            max_errors=self.config.max_validation_errors,
            progress_interval=self.config.progress_interval,
        )
        self.preview_generator = PreviewGenerator(
            self.transformer,
            self.validator,
            limit=self.config.preview_limit,
        )
        self.rollback_manager = RollbackManager(self.provenance, executor, self.config)

        self._job_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # Jobs

    def get_job(self, tenant_id: str, job_id: str) -> MigrationJob:
        """
        Get a tenant's job.

        Raises:
            JobNotFoundError: Unknown job or job of another tenant
        """
        job = self.jobs.get(tenant_id, job_id)
        if job is None:
            raise JobNotFoundError(f"Migration job {job_id} not found")
        return job

    def list_jobs(
        self,
        tenant_id: str,
        status: Optional[MigrationJobStatus] = None,
        source_type: Optional[SourceType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[MigrationJob], int]:
        """List a tenant's jobs, newest first. Returns (page of jobs, total)."""
        return self.jobs.list(tenant_id, status=status, source_type=source_type, page=page, limit=limit)

    # Upload and detection

    def upload_file(
        self,
        tenant_id: str,
        user_id: str,
        file_name: str,
        content: bytes,
        hint: Optional[SourceType] = None,
    ) -> UploadResult:
        """
        Check, store and detect an uploaded file, then create its job.

        Raises:
            InvalidFileError: Missing, oversized, unsupported or unreadable file
        """
        if not file_name or not content:
            raise InvalidFileError("No file provided")

        if len(content) > self.config.max_file_size_bytes:
            max_mb = self.config.max_file_size_bytes // (1024 * 1024)
            raise InvalidFileError(f"File too large. Maximum size is {max_mb}MB")

        extension = file_extension(file_name)
        if extension not in self.config.allowed_extensions:
            supported = ", ".join(e.upper() for e in self.config.allowed_extensions)
            raise InvalidFileError(f"Invalid file type. Supported: {supported}")

        detection = self.detector.detect_file(content, extension, hint)

        stored = self.blobs.upload(
            content,
            tenant_id,
            file_name=file_name,
            subdirectory=self.config.upload_subdirectory,
        )

        job = MigrationJob(
            tenant_id=tenant_id,
            source_type=detection.source_type,
            file_name=file_name,
            file_key=stored.key,
            file_size_bytes=len(content),
            created_by_id=user_id,
            total_rows=detection.total_rows,
        )
        self.jobs.save(job)

        logger.info(f"Migration file uploaded: {file_name} ({detection.source_type.value}) - Job {job.id}")
        return UploadResult(job=job, detection=detection, file_url=stored.url)

    def detect_format(
        self,
        tenant_id: str,
        job_id: str,
    ) -> Tuple[MigrationJob, FormatDetection, MappingSuggestion]:
        """
        Re-read a job's file, record its row count and suggest mappings.

        The job's source type is used as the detection hint. The job moves
        through VALIDATING to MAPPING.

        Returns:
            (updated job, detection, suggested mappings)
        """
        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            detecting = transition(job, JobEvent.detection_started())

            detection = self.detector.detect_file(
                self._read_file(job),
                file_extension(job.file_name),
                job.source_type,
            )
            suggestion = self.mapping_engine.suggest(detection.headers, job.source_type)

            job = self.jobs.save(transition(detecting, JobEvent.format_detected(detection.total_rows)))
            return job, detection, suggestion

    # Mappings

    def get_suggested_mappings(self, tenant_id: str, job_id: str) -> List[FieldMapping]:
        """
        Mappings to offer the operator for a job.

        The job's own mappings win, then the tenant's most recently updated
        template for the source type, then suggestions from the file headers.
        """
        job = self.get_job(tenant_id, job_id)
        if job.has_mappings:
            return list(job.field_mappings)

        template = self.mapping_engine.load_template(tenant_id, job.source_type)
        if template is not None and template.mappings:
            logger.info(f"Using mapping template '{template.name}' for job {job_id}")
            return list(template.mappings)

        headers = self._extractor(job).headers
        return self.mapping_engine.suggest(headers, job.source_type).mappings

    def suggest_mappings_by_synonyms(
        self,
        tenant_id: str,
        job_id: str,
        template_name: Optional[str] = None,
    ) -> List[SuggestedMapping]:
        """
        Per-column suggestions with confidence scores, for files without a hint table.

        A named template, when found, is returned as is with confidence 100.
        Otherwise columns are matched against the synonym table and the
        first ``sample_rows`` rows.
        """
        job = self.get_job(tenant_id, job_id)

        if template_name:
            template = self.mapping_engine.load_template(tenant_id, job.source_type, template_name)
            if template is not None and template.mappings:
                logger.info(f"Using saved template: {template_name}")
                return [
                    SuggestedMapping(m, 100, f"From saved template: {template_name}")
                    for m in template.mappings
                ]
            logger.warning(f"Template not found: {template_name}")

        extractor = self._extractor(job)
        sample = extractor.read_rows(self.config.sample_rows)
        return self.mapping_engine.suggest_by_synonyms(extractor.headers, sample)

    def save_mappings(
        self,
        tenant_id: str,
        job_id: str,
        user_id: str,
        mappings: Sequence[FieldMapping],
        template_name: Optional[str] = None,
    ) -> MigrationJob:
        """
        Validate and attach a mapping set, optionally saving it as a template.

        Raises:
            MappingValidationError: Structural problems in the mapping set
            InvalidTransitionError: Job is past the mapping phase
        """
        self.mapping_engine.validate_mappings(mappings)

        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            job = self.jobs.save(transition(job, JobEvent.mappings_saved(mappings)))

        if template_name:
            self.mapping_engine.save_template(tenant_id, job.source_type, template_name, mappings, user_id)
        return job

    def list_templates(self, tenant_id: str, source_type: Optional[SourceType] = None) -> List[MappingTemplate]:
        return self.templates.list(tenant_id, source_type)

    def load_template(
        self,
        tenant_id: str,
        source_type: SourceType,
        name: Optional[str] = None,
    ) -> Optional[MappingTemplate]:
        return self.mapping_engine.load_template(tenant_id, source_type, name)

    def delete_template(self, tenant_id: str, source_type: SourceType, name: str) -> bool:
        deleted = self.templates.delete(tenant_id, source_type, name)
        if deleted:
            logger.info(f"Deleted mapping template '{name}' for {source_type.value}")
        return deleted

    def get_target_fields(self) -> Dict[str, List[str]]:
        """Allowed target fields per entity."""
        return self.registry.get_target_catalogue()

    # Validation and preview

    def validate(self, tenant_id: str, job_id: str) -> Tuple[MigrationJob, ValidationSummary]:
        """
        Validate every row of a job's file against its mappings.

        Progress is saved on the job every ``progress_interval`` rows. The
        job ends in PREVIEW whatever the error count. If the file cannot be
        read or validation itself fails, the job goes back to MAPPING with
        the error recorded on it and the exception is re-raised.

        Returns:
            (updated job, validation summary)
        """
        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            job = self.jobs.save(transition(job, JobEvent.validation_started()))

            def on_progress(progress: int, step: str) -> None:
                nonlocal job
                job = self.jobs.save(transition(job, JobEvent.validation_progress(progress, step)))

            try:
                summary = self.validator.validate_rows(
                    self._iter_rows(job),
                    job.field_mappings,
                    total_rows=job.total_rows,
                    on_progress=on_progress,
                )
            except Exception as e:
                logger.error(f"Validation failed for job {job_id}: {e}")
                self.jobs.save(transition(job, JobEvent.validation_failed(
                    str(e), {"error_type": type(e).__name__}
                )))
                raise

            job = self.jobs.save(transition(job, JobEvent.validation_completed(
                summary.valid_rows,
                summary.error_rows,
                summary.errors,
                total_rows=summary.total_rows,
            )))
            return job, summary

    def generate_preview(
        self,
        tenant_id: str,
        job_id: str,
        limit: Optional[int] = None,
    ) -> Tuple[MigrationJob, List[PreviewRow]]:
        """
        Preview the first rows of a mapped job and store the preview on it.

        Returns:
            (updated job, preview rows)
        """
        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            # Fail fast before reading the file
            transition(job, JobEvent.preview_generated(()))

            rows = self.preview_generator.generate(self._iter_rows(job), job.field_mappings, limit)
            job = self.jobs.save(transition(job, JobEvent.preview_generated(rows)))
            return job, rows

    def get_sample_data(self, tenant_id: str, job_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """First ``limit`` raw rows of a job's file."""
        job = self.get_job(tenant_id, job_id)
        return self._extractor(job).read_rows(limit)

    # Import

    def start_import(self, tenant_id: str, job_id: str, user_id: str) -> MigrationJob:
        """Move a previewed job to IMPORTING for the executor to pick up."""
        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            job = self.jobs.save(transition(job, JobEvent.import_started(user_id)))
        logger.info(f"Starting import for job {job_id}")
        return job

    def cancel_import(self, tenant_id: str, job_id: str) -> MigrationJob:
        """Mark an importing job as failed. The executor stops on its next status check."""
        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            job = self.jobs.save(transition(job, JobEvent.import_cancelled()))
        logger.info(f"Import cancelled for job {job_id}")
        return job

    def complete_import(self, job_id: str, imported_rows: int) -> MigrationJob:
        """Executor callback: the import finished. Opens the rollback window."""
        with self._job_lock(job_id):
            job = self._get_job_by_id(job_id)
            job = self.jobs.save(transition(
                job, JobEvent.import_completed(imported_rows, self.config.rollback_window_days)
            ))
        logger.info(f"Import completed for job {job_id}: {imported_rows} rows")
        return job

    def fail_import(self, job_id: str, message: str, details: Optional[Dict[str, Any]] = None) -> MigrationJob:
        """Executor callback: the import failed."""
        with self._job_lock(job_id):
            job = self._get_job_by_id(job_id)
            job = self.jobs.save(transition(job, JobEvent.import_failed(message, details)))
        logger.error(f"Import failed for job {job_id}: {message}")
        return job

    def execute_import(self, tenant_id: str, job_id: str, user_id: str) -> MigrationJob:
        """
        Start an import and run it synchronously with the configured executor.

        The executor must provide ``import_rows(job, rows, preview_generator)``.
        Executor errors are recorded on the job through ``fail_import``.
        """
        if self.executor is None or not hasattr(self.executor, "import_rows"):
            raise RuntimeError("Configured executor cannot run imports")

        job = self.start_import(tenant_id, job_id, user_id)
        try:
            imported = self.executor.import_rows(job, self._iter_rows(job), self.preview_generator)
        except Exception as e:
            return self.fail_import(job_id, str(e), {"error_type": type(e).__name__})

        current = self._get_job_by_id(job_id)
        if current.status != MigrationJobStatus.IMPORTING:
            # Cancelled while running
            return current
        return self.complete_import(job_id, imported)

    # Rollback

    def can_rollback(self, tenant_id: str, job_id: str) -> RollbackCheck:
        return self.rollback_manager.can_rollback(self.get_job(tenant_id, job_id))

    def rollback(
        self,
        tenant_id: str,
        user_id: str,
        job_id: str,
        confirmation: str,
    ) -> Tuple[MigrationJob, RollbackResult]:
        """
        Roll back a completed import.

        Raises:
            RollbackError: Wrong confirmation phrase or rollback not allowed
        """
        with self._job_lock(job_id):
            job = self.get_job(tenant_id, job_id)
            job, result = self.rollback_manager.rollback(job, user_id, confirmation)
            self.jobs.save(job)
        return job, result

    # Helpers

    @contextmanager
    def _job_lock(self, job_id: str):
        """Hold the lock of an existing job. Unknown ids never get a lock."""
        self._get_job_by_id(job_id)
        with self._locks_guard:
            lock = self._job_locks.get(job_id)
            if lock is None:
                lock = self._job_locks[job_id] = threading.RLock()
        with lock:
            yield

    def _get_job_by_id(self, job_id: str) -> MigrationJob:
        job = self.jobs.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Migration job {job_id} not found")
        return job

    def _read_file(self, job: MigrationJob) -> bytes:
        try:
            return self.blobs.read(job.file_key)
        except FileNotFoundError as e:
            raise InvalidFileError(f"Uploaded file for job {job.id} is missing") from e

    def _extractor(self, job: MigrationJob) -> BaseExtractor:
        return get_extractor(self._read_file(job), file_extension(job.file_name))

    def _iter_rows(self, job: MigrationJob) -> Iterator[Dict[str, Any]]:
        return self._extractor(job).iter_rows()
