"""Import executors that write and delete destination entities."""

from .base import ImportExecutor, DeletionResult
from .memory_loader import InMemoryImportExecutor

__all__ = [
    "ImportExecutor",
    "DeletionResult",
    "InMemoryImportExecutor",
]
