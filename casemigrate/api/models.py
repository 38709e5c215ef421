"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from ..models.schema import FieldMapping, TargetEntity, TransformFunction


class SourceTypeEnum(str, Enum):
    NAVEX = "NAVEX"
    EQS = "EQS"
    LEGACY_ETHICO = "LEGACY_ETHICO"
    GENERIC_CSV = "GENERIC_CSV"
    ONETRUST = "ONETRUST"
    STAR = "STAR"


class JobStatusEnum(str, Enum):
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    MAPPING = "MAPPING"
    PREVIEW = "PREVIEW"
    IMPORTING = "IMPORTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


class TargetEntityEnum(str, Enum):
    CASE = "CASE"
    RIU = "RIU"
    PERSON = "PERSON"
    INVESTIGATION = "INVESTIGATION"


# Request Models
class FieldMappingModel(BaseModel):
    source_field: str
    target_field: str = ""
    target_entity: TargetEntityEnum = TargetEntityEnum.CASE
    required: bool = False
    transform: Optional[str] = None
    transform_params: Dict[str, Any] = Field(default_factory=dict)
    default_value: Optional[Any] = None
    description: str = ""

    def to_domain(self) -> FieldMapping:
        return FieldMapping(
            source_field=self.source_field,
            target_field=self.target_field,
            target_entity=TargetEntity(self.target_entity.value),
            required=self.required,
            transform=TransformFunction.coerce(self.transform),
            transform_params=dict(self.transform_params),
            default_value=self.default_value,
            description=self.description,
        )


class SaveMappingsRequest(BaseModel):
    mappings: List[FieldMappingModel]
    save_as_template: bool = False
    template_name: Optional[str] = None


class RollbackRequest(BaseModel):
    confirmation: str = Field(..., description='Must be exactly "ROLLBACK"')


class CompleteImportRequest(BaseModel):
    imported_rows: int = Field(..., ge=0)


class FailImportRequest(BaseModel):
    message: str
    details: Optional[Dict[str, Any]] = None


# Response Models
class JobListResponse(BaseModel):
    jobs: List[Dict[str, Any]]
    total: int
    page: int
    limit: int


class SuggestionsResponse(BaseModel):
    mappings: List[Dict[str, Any]]
    target_fields: Dict[str, List[str]]
    transforms: List[Dict[str, str]]


class DetectionResponse(BaseModel):
    job: Dict[str, Any]
    detection: Dict[str, Any]
    suggestion: Dict[str, Any]


class ValidationResponse(BaseModel):
    job: Dict[str, Any]
    summary: Dict[str, Any]


class PreviewResponse(BaseModel):
    job_id: str
    rows: List[Dict[str, Any]]


class RollbackResponse(BaseModel):
    job: Dict[str, Any]
    result: Dict[str, Any]
