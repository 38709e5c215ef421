"""Time-boxed, provenance-aware rollback of completed imports."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import RollbackError
from ..models.migration import MigrationConfig, MigrationJob, MigrationJobStatus
from ..loaders.base import ImportExecutor
from .state_machine import JobEvent, JobEventType, transition

logger = logging.getLogger(__name__)


@dataclass
class RollbackCheck:
    """Whether a job can be rolled back, and why not."""
    can_rollback: bool
    reason: Optional[str] = None
    modified_count: Optional[int] = None
    total_records: Optional[int] = None
    expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "can_rollback": self.can_rollback,
            "reason": self.reason,
            "modified_count": self.modified_count,
            "total_records": self.total_records,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class RollbackResult:
    """Outcome of a rollback."""
    rolled_back_count: int = 0
    skipped_count: int = 0
    skipped_reasons: List[str] = field(default_factory=list)
    failed_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "rolled_back_count": self.rolled_back_count,
            "skipped_count": self.skipped_count,
            "skipped_reasons": list(self.skipped_reasons),
            "failed_count": self.failed_count,
        }


class RollbackManager:
    """
    Undoes completed imports within the rollback window.

    Entities flagged as modified after import are never deleted; they are
    reported as skipped instead.
    """

    def __init__(
        self,
        provenance_storage,
        executor: Optional[ImportExecutor] = None,
        config: Optional[MigrationConfig] = None,
    ):
        """
        Initialize the rollback manager.

        Args:
            provenance_storage: ProvenanceStorage holding the job's records
            executor: Deletes imported entities (rollback only marks the job without one)
            config: Pipeline configuration
        """
        self.provenance_storage = provenance_storage
        self.executor = executor
        self.config = config or MigrationConfig()

    def can_rollback(self, job: MigrationJob, now: Optional[datetime] = None) -> RollbackCheck:
        """
        Check whether a job can be rolled back.

        Requires status COMPLETED, an open rollback window, and at least
        one provenance record not modified after import.
        """
        now = now or datetime.utcnow()

        if job.status != MigrationJobStatus.COMPLETED:
            return RollbackCheck(
                can_rollback=False,
                reason=f"Job status is {job.status.value}, not COMPLETED",
            )

        expires_at = job.rollback_available_until
        if expires_at is None or now > expires_at:
            return RollbackCheck(
                can_rollback=False,
                reason=f"Rollback window has expired ({self.config.rollback_window_days} days)",
                expires_at=expires_at,
            )

        total_records = self.provenance_storage.count(job.id)
        modified_count = self.provenance_storage.count(job.id, modified=True)

        # Zero records counts as "all modified": there is nothing to undo
        if modified_count == total_records:
            return RollbackCheck(
                can_rollback=False,
                reason="All imported records have been modified and cannot be rolled back",
                modified_count=modified_count,
                total_records=total_records,
            )

        return RollbackCheck(
            can_rollback=True,
            modified_count=modified_count,
            total_records=total_records,
            expires_at=expires_at,
        )

    def rollback(
        self,
        job: MigrationJob,
        actor_id: str,
        confirmation: str,
        now: Optional[datetime] = None,
    ) -> Tuple[MigrationJob, RollbackResult]:
        """
        Roll back a completed import.

        Args:
            job: Job to roll back
            actor_id: User performing the rollback
            confirmation: Must be exactly the configured phrase
            now: Current time (for the window check)

        Returns:
            (rolled-back job, RollbackResult)

        Raises:
            RollbackError: Wrong confirmation phrase or rollback not allowed
        """
        now = now or datetime.utcnow()
        phrase = self.config.rollback_confirmation
        if confirmation != phrase:
            raise RollbackError(f'Confirmation text must be "{phrase}"')

        check = self.can_rollback(job, now)
        if not check.can_rollback:
            raise RollbackError(check.reason)

        logger.info(f"Starting rollback for job {job.id}")

        to_delete = self.provenance_storage.list_for_job(job.id, modified=False)
        skipped = self.provenance_storage.list_for_job(job.id, modified=True)

        result = RollbackResult(
            rolled_back_count=len(to_delete),
            skipped_count=len(skipped),
            skipped_reasons=[
                f"{r.entity_type} {r.entity_id} was modified after import" for r in skipped
            ],
        )

        if self.executor is not None:
            deletion = self.executor.delete_entities(to_delete)
            result.rolled_back_count = deletion.total_deleted
            result.failed_count = deletion.total_failed
        else:
            logger.warning(f"No import executor configured; job {job.id} marked rolled back only")

        rolled_back = transition(job, JobEvent(JobEventType.ROLLED_BACK, at=now, actor_id=actor_id))

        logger.info(
            f"Rolled back job {job.id}: {result.rolled_back_count} deleted, "
            f"{result.skipped_count} skipped"
        )
        return rolled_back, result
