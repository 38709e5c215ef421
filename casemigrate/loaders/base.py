"""Import executor interface.

The executor writes domain entities during an import and records one
provenance record per created entity. This package only relies on it for
deleting entities during a rollback.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime
import logging

from ..models.record import MigrationRecord

logger = logging.getLogger(__name__)


@dataclass
class DeletionResult:
    """Result of deleting imported entities."""
    total_attempted: int = 0
    total_deleted: int = 0
    total_failed: int = 0
    deleted_ids: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_attempted": self.total_attempted,
            "total_deleted": self.total_deleted,
            "total_failed": self.total_failed,
            "deleted_ids": list(self.deleted_ids),
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ImportExecutor(ABC):
    """
    Base class for import executors.

    Subclasses own the destination record store.
    """

    @abstractmethod
    def delete_entity(self, entity_type: str, entity_id: str) -> bool:
        """
        Delete one imported entity.

        Args:
            entity_type: Entity type from the provenance record
            entity_id: ID of the entity to delete

        Returns:
            True if the entity was deleted
        """
        pass

    def delete_entities(self, records: Sequence[MigrationRecord]) -> DeletionResult:
        """
        Delete the entities behind a set of provenance records.

        Failures are collected on the result; the remaining records are
        still processed.

        Args:
            records: Provenance records of entities to delete

        Returns:
            DeletionResult with counts and per-record errors
        """
        result = DeletionResult(started_at=datetime.utcnow())

        for record in records:
            result.total_attempted += 1
            try:
                deleted = self.delete_entity(record.entity_type, record.entity_id)
            except Exception as e:
                result.total_failed += 1
                result.errors.append({
                    "entity_type": record.entity_type,
                    "entity_id": record.entity_id,
                    "error": str(e),
                })
                logger.error(f"Failed to delete {record.entity_type} {record.entity_id}: {e}")
                continue

            if deleted:
                result.total_deleted += 1
                result.deleted_ids.append(record.entity_id)
            else:
                result.total_failed += 1
                result.errors.append({
                    "entity_type": record.entity_type,
                    "entity_id": record.entity_id,
                    "error": "Entity not found",
                })

        result.completed_at = datetime.utcnow()
        logger.info(f"Deleted {result.total_deleted}/{result.total_attempted} imported entities")
        return result
