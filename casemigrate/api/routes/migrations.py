"""Migration job endpoints."""

from typing import Optional
from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile

from ...exceptions import JobNotFoundError, UserInputError
from ...models.migration import MigrationJobStatus
from ...models.schema import SourceType
from ...orchestrator import MigrationService
from ..dependencies import get_service
from ..models import (
    CompleteImportRequest,
    DetectionResponse,
    FailImportRequest,
    JobListResponse,
    JobStatusEnum,
    PreviewResponse,
    RollbackRequest,
    RollbackResponse,
    SaveMappingsRequest,
    SourceTypeEnum,
    SuggestionsResponse,
    ValidationResponse,
)

# Service calls block on file reads and job locks, so routes are plain
# functions and run in the threadpool.
router = APIRouter()


def _raise_http(e: Exception):
    if isinstance(e, JobNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


@router.post("/upload")
def upload_file(
    file: UploadFile = File(...),
    source_type: Optional[SourceTypeEnum] = Query(None, description="Source type hint"),
    x_tenant_id: str = Header(...),
    x_user_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Upload a migration file, detect its format and create a job."""
    content = file.file.read()
    hint = SourceType(source_type.value) if source_type else None
    try:
        result = service.upload_file(x_tenant_id, x_user_id, file.filename or "", content, hint)
    except UserInputError as e:
        _raise_http(e)
    return result.to_dict()


@router.get("", response_model=JobListResponse)
def list_jobs(
    status: Optional[JobStatusEnum] = None,
    source_type: Optional[SourceTypeEnum] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """List migration jobs, newest first."""
    jobs, total = service.list_jobs(
        x_tenant_id,
        status=MigrationJobStatus(status.value) if status else None,
        source_type=SourceType(source_type.value) if source_type else None,
        page=page,
        limit=limit,
    )
    return JobListResponse(jobs=[j.to_dict() for j in jobs], total=total, page=page, limit=limit)


@router.get("/templates")
def list_templates(
    source_type: Optional[SourceTypeEnum] = None,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """List saved mapping templates."""
    templates = service.list_templates(
        x_tenant_id, SourceType(source_type.value) if source_type else None
    )
    return {"templates": [t.to_dict() for t in templates]}


@router.delete("/templates/{source_type}/{name}")
def delete_template(
    source_type: SourceTypeEnum,
    name: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Delete a saved mapping template."""
    if not service.delete_template(x_tenant_id, SourceType(source_type.value), name):
        raise HTTPException(status_code=404, detail="Template not found")
    return {"status": "deleted"}


@router.get("/{job_id}")
def get_job(
    job_id: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Get a migration job."""
    try:
        return service.get_job(x_tenant_id, job_id).to_dict()
    except JobNotFoundError as e:
        _raise_http(e)


@router.post("/{job_id}/detect", response_model=DetectionResponse)
def detect_format(
    job_id: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Detect the file format and suggest mappings."""
    try:
        job, detection, suggestion = service.detect_format(x_tenant_id, job_id)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return DetectionResponse(job=job.to_dict(), detection=detection.to_dict(), suggestion=suggestion.to_dict())


@router.get("/{job_id}/mappings", response_model=SuggestionsResponse)
def get_suggested_mappings(
    job_id: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Get mappings to offer for a job, with the target field catalogue."""
    try:
        mappings = service.get_suggested_mappings(x_tenant_id, job_id)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return SuggestionsResponse(
        mappings=[m.to_dict() for m in mappings],
        target_fields=service.get_target_fields(),
        transforms=service.registry.get_transform_catalogue(),
    )


@router.get("/{job_id}/suggestions")
def get_synonym_suggestions(
    job_id: str,
    template_name: Optional[str] = None,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Per-column mapping suggestions with confidence scores and reasons."""
    try:
        suggestions = service.suggest_mappings_by_synonyms(x_tenant_id, job_id, template_name)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return {"suggestions": [s.to_dict() for s in suggestions]}


@router.put("/{job_id}/mappings")
def save_mappings(
    job_id: str,
    data: SaveMappingsRequest,
    x_tenant_id: str = Header(...),
    x_user_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Save field mappings, optionally as a named template."""
    if data.save_as_template and not data.template_name:
        raise HTTPException(status_code=400, detail="template_name is required to save a template")

    try:
        job = service.save_mappings(
            x_tenant_id,
            job_id,
            x_user_id,
            [m.to_domain() for m in data.mappings],
            template_name=data.template_name if data.save_as_template else None,
        )
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return job.to_dict()


@router.post("/{job_id}/validate", response_model=ValidationResponse)
def validate_job(
    job_id: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Validate all rows against the saved mappings."""
    try:
        job, summary = service.validate(x_tenant_id, job_id)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return ValidationResponse(job=job.to_dict(), summary=summary.to_dict())


@router.post("/{job_id}/preview", response_model=PreviewResponse)
def generate_preview(
    job_id: str,
    limit: Optional[int] = Query(None, ge=1, le=100),
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Preview transformed rows."""
    try:
        job, rows = service.generate_preview(x_tenant_id, job_id, limit)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return PreviewResponse(job_id=job.id, rows=[r.to_dict() for r in rows])


@router.get("/{job_id}/sample")
def get_sample_data(
    job_id: str,
    limit: int = Query(100, ge=1, le=1000),
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Get raw rows from the uploaded file."""
    try:
        rows = service.get_sample_data(x_tenant_id, job_id, limit)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return {"rows": rows}


@router.post("/{job_id}/import")
def start_import(
    job_id: str,
    x_tenant_id: str = Header(...),
    x_user_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Start the import."""
    try:
        return service.start_import(x_tenant_id, job_id, x_user_id).to_dict()
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)


@router.post("/{job_id}/cancel")
def cancel_import(
    job_id: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Cancel a running import."""
    try:
        return service.cancel_import(x_tenant_id, job_id).to_dict()
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)


@router.post("/{job_id}/complete")
def complete_import(
    job_id: str,
    data: CompleteImportRequest,
    service: MigrationService = Depends(get_service),
):
    """Executor callback: the import finished."""
    try:
        return service.complete_import(job_id, data.imported_rows).to_dict()
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)


@router.post("/{job_id}/fail")
def fail_import(
    job_id: str,
    data: FailImportRequest,
    service: MigrationService = Depends(get_service),
):
    """Executor callback: the import failed."""
    try:
        return service.fail_import(job_id, data.message, data.details).to_dict()
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)


@router.get("/{job_id}/rollback")
def check_rollback(
    job_id: str,
    x_tenant_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Check whether the job can be rolled back."""
    try:
        return service.can_rollback(x_tenant_id, job_id).to_dict()
    except JobNotFoundError as e:
        _raise_http(e)


@router.post("/{job_id}/rollback", response_model=RollbackResponse)
def rollback(
    job_id: str,
    data: RollbackRequest,
    x_tenant_id: str = Header(...),
    x_user_id: str = Header(...),
    service: MigrationService = Depends(get_service),
):
    """Roll back a completed import."""
    try:
        job, result = service.rollback(x_tenant_id, x_user_id, job_id, data.confirmation)
    except (UserInputError, JobNotFoundError) as e:
        _raise_http(e)
    return RollbackResponse(job=job.to_dict(), result=result.to_dict())
