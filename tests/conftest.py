"""Shared fixtures."""

import io

import pytest
from openpyxl import Workbook

from casemigrate.loaders.memory_loader import InMemoryImportExecutor
from casemigrate.models.migration import MigrationConfig
from casemigrate.models.schema import FieldMapping, TargetEntity, TransformFunction
from casemigrate.orchestrator import MigrationService
from casemigrate.storage import LocalBlobStorage, ProvenanceStorage

TENANT = "tenant-1"
USER = "user-1"

NAVEX_CSV = (
    "case_number,incident_type,status\n"
    "C-1,Fraud,Open\n"
    "C-2,Theft,closed\n"
    "C-3,Harassment,weird\n"
).encode("utf-8")


def make_xlsx(rows):
    """Build workbook bytes with one sheet holding ``rows``."""
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(list(row))
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def navex_csv():
    return NAVEX_CSV


@pytest.fixture
def navex_mappings():
    return [
        FieldMapping("case_number", "referenceNumber", TargetEntity.CASE, required=True),
        FieldMapping("incident_type", "categoryName", TargetEntity.CASE,
                     transform=TransformFunction.MAP_CATEGORY),
        FieldMapping("status", "status", TargetEntity.CASE, transform=TransformFunction.MAP_STATUS),
    ]


@pytest.fixture
def config(tmp_path):
    return MigrationConfig(storage_dir=str(tmp_path / "uploads"))


@pytest.fixture
def provenance():
    return ProvenanceStorage()


@pytest.fixture
def executor(provenance):
    return InMemoryImportExecutor(provenance)


@pytest.fixture
def service(config, provenance, executor):
    return MigrationService(
        config=config,
        provenance_storage=provenance,
        blob_storage=LocalBlobStorage(config.storage_dir),
        executor=executor,
    )
