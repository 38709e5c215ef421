"""Shared service instance for the API routes."""

from functools import lru_cache

from ..models.migration import MigrationConfig
from ..orchestrator import MigrationService


@lru_cache()
def get_service() -> MigrationService:
    """Process-wide migration service, configured from the environment."""
    return MigrationService(MigrationConfig.from_env())
