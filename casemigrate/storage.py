"""Persistence for jobs, templates, provenance and uploaded files."""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Tuple

from .models.migration import MigrationJob, MigrationJobStatus
from .models.record import MigrationRecord
from .models.schema import MappingTemplate, SourceType

logger = logging.getLogger(__name__)


class MigrationStorage:
    """In-memory, thread-safe job store."""

    def __init__(self):
        self._jobs: Dict[str, MigrationJob] = {}
        self._lock = threading.RLock()

    def save(self, job: MigrationJob) -> MigrationJob:
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, tenant_id: str, job_id: str) -> Optional[MigrationJob]:
        """Get a job, or None when it does not exist for this tenant."""
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id:
            return None
        return job

    def get_by_id(self, job_id: str) -> Optional[MigrationJob]:
        """Get a job without tenant scoping (for executor callbacks)."""
        with self._lock:
            return self._jobs.get(job_id)

    def list(
        self,
        tenant_id: str,
        status: Optional[MigrationJobStatus] = None,
        source_type: Optional[SourceType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[MigrationJob], int]:
        """
        List a tenant's jobs, newest first.

        Returns:
            (jobs on the requested page, total matching jobs)
        """
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.tenant_id == tenant_id
                and (status is None or j.status == status)
                and (source_type is None or j.source_type == source_type)
            ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)

        page = max(page, 1)
        start = (page - 1) * limit
        return jobs[start:start + limit], len(jobs)


class TemplateStorage:
    """In-memory, thread-safe mapping template store keyed by (tenant, source type, name)."""

    def __init__(self):
        self._templates: Dict[Tuple[str, SourceType, str], MappingTemplate] = {}
        self._lock = threading.RLock()

    def save(self, template: MappingTemplate) -> MappingTemplate:
        with self._lock:
            self._templates[template.key] = template
        return template

    def get(self, tenant_id: str, source_type: SourceType, name: str) -> Optional[MappingTemplate]:
        with self._lock:
            return self._templates.get((tenant_id, source_type, name))

    def latest(self, tenant_id: str, source_type: SourceType) -> Optional[MappingTemplate]:
        """Most recently updated template for a tenant and source type."""
        candidates = self.list(tenant_id, source_type)
        return candidates[0] if candidates else None

    def list(self, tenant_id: str, source_type: Optional[SourceType] = None) -> List[MappingTemplate]:
        """Templates for a tenant, most recently updated first."""
        with self._lock:
            templates = [
                t for t in self._templates.values()
                if t.tenant_id == tenant_id
                and (source_type is None or t.source_type == source_type)
            ]
        templates.sort(key=lambda t: t.updated_at, reverse=True)
        return templates

    def delete(self, tenant_id: str, source_type: SourceType, name: str) -> bool:
        with self._lock:
            return self._templates.pop((tenant_id, source_type, name), None) is not None


class ProvenanceStorage:
    """In-memory, thread-safe store of per-entity import provenance."""

    def __init__(self):
        self._records: Dict[str, MigrationRecord] = {}
        self._lock = threading.RLock()

    def add(self, record: MigrationRecord) -> MigrationRecord:
        with self._lock:
            self._records[record.id] = record
        return record

    def list_for_job(self, job_id: str, modified: Optional[bool] = None) -> List[MigrationRecord]:
        """Provenance records of a job, optionally filtered on the modified flag."""
        with self._lock:
            records = [
                r for r in self._records.values()
                if r.job_id == job_id
                and (modified is None or r.modified_after_import == modified)
            ]
        records.sort(key=lambda r: (r.source_row_number or 0, r.created_at))
        return records

    def count(self, job_id: str, modified: Optional[bool] = None) -> int:
        return len(self.list_for_job(job_id, modified))

    def mark_modified(self, entity_type: str, entity_id: str) -> int:
        """Flag every record of an entity as modified after import."""
        updated = 0
        with self._lock:
            for record_id, record in list(self._records.items()):
                if record.entity_type == entity_type and record.entity_id == entity_id:
                    self._records[record_id] = replace(record, modified_after_import=True)
                    updated += 1
        return updated


@dataclass
class StoredFile:
    """Location of an uploaded file."""
    key: str
    url: str
    size: int
    original_name: str = ""


class BlobStorage(ABC):
    """Binary file storage."""

    @abstractmethod
    def upload(
        self,
        content: bytes,
        tenant_id: str,
        file_name: str = "",
        subdirectory: str = "",
    ) -> StoredFile:
        """Store bytes and return their key and URL."""
        pass

    @abstractmethod
    def download(self, key: str) -> BinaryIO:
        """Open a stored file for reading."""
        pass

    def read(self, key: str) -> bytes:
        with self.download(key) as stream:
            return stream.read()


class LocalBlobStorage(BlobStorage):
    """Blob storage on the local filesystem, one directory per tenant."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def upload(
        self,
        content: bytes,
        tenant_id: str,
        file_name: str = "",
        subdirectory: str = "",
    ) -> StoredFile:
        suffix = Path(file_name).suffix.lower()
        parts = [tenant_id] + ([subdirectory] if subdirectory else []) + [f"{uuid.uuid4()}{suffix}"]
        key = "/".join(parts)

        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

        logger.info(f"Stored {len(content)} bytes at {key}")
        return StoredFile(key=key, url=path.as_uri(), size=len(content), original_name=file_name)

    def download(self, key: str) -> BinaryIO:
        path = self._path(key)
        if not path.is_file():
            raise FileNotFoundError(f"No stored file for key: {key}")
        return path.open("rb")

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir not in path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return path
