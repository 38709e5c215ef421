"""In-memory import executor for local runs and tests."""

import logging
import threading
import uuid
from typing import Any, Dict, Iterable, Optional

from ..models.migration import MigrationJob
from ..models.record import MigrationRecord
from ..models.schema import TargetEntity
from .base import ImportExecutor

logger = logging.getLogger(__name__)


class InMemoryImportExecutor(ImportExecutor):
    """
    Keeps imported entities in dictionaries, one per target entity.

    ``import_rows`` writes one entity per non-empty bucket of each
    transformed row and records provenance for every entity it creates.
    """

    def __init__(self, provenance_storage):
        self.provenance_storage = provenance_storage
        self.entities: Dict[str, Dict[str, Dict[str, Any]]] = {e.value: {} for e in TargetEntity}
        self._lock = threading.RLock()

    def import_rows(
        self,
        job: MigrationJob,
        rows: Iterable[Dict[str, Any]],
        preview_generator,
    ) -> int:
        """
        Write the transformed rows of a job.

        Args:
            job: Job in IMPORTING status with confirmed mappings
            rows: Source rows in file order
            preview_generator: PreviewGenerator used to transform each row

        Returns:
            Number of rows that produced at least one entity
        """
        imported = 0
        for i, row in enumerate(rows):
            buckets = preview_generator.transform_row(row, job.field_mappings)
            created = 0
            for entity in TargetEntity:
                data = buckets.get(entity.bucket)
                if not data:
                    continue
                entity_id = self.create_entity(entity.value, data)
                self.provenance_storage.add(MigrationRecord(
                    id=str(uuid.uuid4()),
                    job_id=job.id,
                    tenant_id=job.tenant_id,
                    entity_type=entity.value,
                    entity_id=entity_id,
                    source_row_number=i + 1,
                    source_data=dict(row),
                ))
                created += 1
            if created:
                imported += 1

        logger.info(f"Imported {imported} rows for job {job.id}")
        return imported

    def create_entity(self, entity_type: str, data: Dict[str, Any]) -> str:
        entity_id = str(uuid.uuid4())
        with self._lock:
            self.entities[entity_type][entity_id] = dict(data)
        return entity_id

    def get_entity(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.entities.get(entity_type, {}).get(entity_id)

    def update_entity(self, entity_type: str, entity_id: str, changes: Dict[str, Any]) -> bool:
        """Edit an imported entity and flag its provenance as modified."""
        with self._lock:
            current = self.entities.get(entity_type, {}).get(entity_id)
            if current is None:
                return False
            current.update(changes)
        self.provenance_storage.mark_modified(entity_type, entity_id)
        return True

    def delete_entity(self, entity_type: str, entity_id: str) -> bool:
        with self._lock:
            return self.entities.get(entity_type, {}).pop(entity_id, None) is not None
