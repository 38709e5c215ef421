"""Schema models for source types, target entities and field mappings."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import json


class SourceType(str, Enum):
    """Source system a migration file is believed to come from."""
    NAVEX = "NAVEX"
    EQS = "EQS"
    LEGACY_ETHICO = "LEGACY_ETHICO"
    GENERIC_CSV = "GENERIC_CSV"
    ONETRUST = "ONETRUST"
    STAR = "STAR"


class TargetEntity(str, Enum):
    """Destination record kinds a mapped field can be routed to."""
    CASE = "CASE"
    RIU = "RIU"  # Narrative / detail unit
    PERSON = "PERSON"
    INVESTIGATION = "INVESTIGATION"

    @property
    def bucket(self) -> str:
        """Key used for this entity in transformed preview output."""
        return self.value.lower()


class TransformFunction(str, Enum):
    """Supported value transformation rules."""
    UPPERCASE = "UPPERCASE"
    LOWERCASE = "LOWERCASE"
    TRIM = "TRIM"
    PARSE_DATE = "PARSE_DATE"
    PARSE_DATE_US = "PARSE_DATE_US"
    PARSE_DATE_EU = "PARSE_DATE_EU"
    PARSE_DATE_ISO = "PARSE_DATE_ISO"
    MAP_CATEGORY = "MAP_CATEGORY"
    MAP_SEVERITY = "MAP_SEVERITY"
    MAP_STATUS = "MAP_STATUS"
    PARSE_BOOLEAN = "PARSE_BOOLEAN"
    PARSE_NUMBER = "PARSE_NUMBER"
    SPLIT_COMMA = "SPLIT_COMMA"
    EXTRACT_EMAIL = "EXTRACT_EMAIL"
    EXTRACT_PHONE = "EXTRACT_PHONE"

    @classmethod
    def coerce(cls, value: Any) -> Any:
        """Return the enum member for a known identifier, else the raw value."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return value


@dataclass(frozen=True)
class FieldMapping:
    """Mapping between a source column and a target entity field."""
    source_field: str
    target_field: str = ""  # Empty means unmapped
    target_entity: TargetEntity = TargetEntity.CASE
    required: bool = False
    transform: Optional[Any] = None  # TransformFunction, or an unknown identifier
    transform_params: Dict[str, Any] = field(default_factory=dict)
    default_value: Optional[Any] = None
    description: str = ""

    @property
    def is_mapped(self) -> bool:
        return bool(self.target_field)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result = {
            "source_field": self.source_field,
            "target_field": self.target_field,
            "target_entity": self.target_entity.value,
            "required": self.required,
        }
        if self.transform is not None:
            result["transform"] = (
                self.transform.value
                if isinstance(self.transform, TransformFunction)
                else self.transform
            )
        if self.transform_params:
            result["transform_params"] = dict(self.transform_params)
        if self.default_value is not None:
            result["default_value"] = self.default_value
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        """Create from dictionary representation."""
        entity = data.get("target_entity") or TargetEntity.CASE
        if not isinstance(entity, TargetEntity):
            entity = TargetEntity(str(entity).upper())

        return cls(
            source_field=data.get("source_field", ""),
            target_field=data.get("target_field") or "",
            target_entity=entity,
            required=bool(data.get("required", False)),
            transform=TransformFunction.coerce(data.get("transform")),
            transform_params=dict(data.get("transform_params") or {}),
            default_value=data.get("default_value"),
            description=data.get("description", ""),
        )


def mappings_to_list(mappings: List[FieldMapping]) -> List[Dict[str, Any]]:
    """Serialize a mapping set."""
    return [m.to_dict() for m in mappings]


def mappings_from_list(data: List[Dict[str, Any]]) -> List[FieldMapping]:
    """Deserialize a mapping set."""
    return [m if isinstance(m, FieldMapping) else FieldMapping.from_dict(m) for m in data]


@dataclass
class MappingTemplate:
    """Reusable, named mapping set for one tenant and source type."""
    tenant_id: str
    source_type: SourceType
    name: str
    mappings: List[FieldMapping] = field(default_factory=list)
    created_by_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def key(self):
        return (self.tenant_id, self.source_type, self.name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "tenant_id": self.tenant_id,
            "source_type": self.source_type.value,
            "name": self.name,
            "mappings": mappings_to_list(self.mappings),
            "field_count": len(self.mappings),
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_json_file(cls, file_path: str, tenant_id: str = "local") -> "MappingTemplate":
        """Load a template from a JSON file (a list of mappings or a template object)."""
        with open(file_path, 'r') as f:
            data = json.load(f)

        if isinstance(data, list):
            return cls(
                tenant_id=tenant_id,
                source_type=SourceType.GENERIC_CSV,
                name=file_path,
                mappings=mappings_from_list(data),
            )

        return cls(
            tenant_id=data.get("tenant_id", tenant_id),
            source_type=SourceType(data.get("source_type", SourceType.GENERIC_CSV.value)),
            name=data.get("name", file_path),
            mappings=mappings_from_list(data.get("mappings", [])),
        )
