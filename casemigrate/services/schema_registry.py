"""Static lookup tables for source detection, mapping hints and target fields."""

import re
import math
import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from ..models.schema import SourceType, TargetEntity, TransformFunction

logger = logging.getLogger(__name__)

Hint = Tuple[str, TargetEntity]

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_field_name(name: str) -> str:
    """Lowercase and replace every non-alphanumeric character with ``_``."""
    return _NON_ALNUM.sub("_", str(name).lower())


def percentage(part: int, total: int) -> int:
    """``part / total`` as a whole percentage, halves rounded up. 0 when total is 0."""
    if total <= 0:
        return 0
    return int(math.floor(part / total * 100 + 0.5))


# Header fragments that identify each source system's export format.
SOURCE_FIELD_PATTERNS: Mapping[SourceType, Tuple[str, ...]] = MappingProxyType({
    SourceType.NAVEX: (
        "case_number",
        "incident_type",
        "issue_type",
        "case_status",
        "date_reported",
        "reporter_type",
        "facility",
        "assigned_to",
    ),
    SourceType.EQS: (
        "report_id",
        "ref_number",
        "report_date",
        "category_name",
        "issue_category",
        "report_text",
        "status_name",
        "assigned_user",
        "site_name",
    ),
    SourceType.LEGACY_ETHICO: (
        "case_num",
        "riu_num",
        "case_type",
        "call_details",
        "intake_date",
        "case_status",
        "site_code",
    ),
    SourceType.GENERIC_CSV: (),
    SourceType.ONETRUST: (
        "request_id",
        "intake_source",
        "case_category",
        "risk_rating",
        "submitted_on",
        "workflow_stage",
        "assigned_reviewer",
    ),
    SourceType.STAR: (
        "star_case_id",
        "allegation_type",
        "date_opened",
        "date_closed",
        "case_manager",
        "disposition",
        "business_unit",
    ),
})


_C = TargetEntity.CASE
_R = TargetEntity.RIU
_P = TargetEntity.PERSON
_I = TargetEntity.INVESTIGATION

# Exact (normalized) source column name -> (target field, target entity).
FIELD_MAPPING_HINTS: Mapping[SourceType, Mapping[str, Hint]] = MappingProxyType({
    SourceType.NAVEX: MappingProxyType({
        # Identifiers
        "case_number": ("referenceNumber", _C),
        "case_id": ("referenceNumber", _C),
        "report_id": ("referenceNumber", _R),
        # Classification
        "incident_type": ("categoryName", _C),
        "issue_type": ("categoryName", _C),
        "category": ("categoryName", _C),
        "subcategory": ("secondaryCategoryName", _C),
        "severity": ("severity", _C),
        "priority": ("severity", _C),
        # Dates
        "created_date": ("createdAt", _C),
        "date_reported": ("intakeTimestamp", _C),
        "incident_date": ("incidentDate", _C),
        "closed_date": ("closedAt", _C),
        "due_date": ("dueDate", _I),
        # Status
        "status": ("status", _C),
        "case_status": ("status", _C),
        "outcome": ("outcome", _C),
        # Content
        "description": ("details", _R),
        "details": ("details", _R),
        "narrative": ("details", _R),
        "summary": ("summary", _R),
        "notes": ("notes", _I),
        # Location
        "location": ("locationName", _C),
        "facility": ("locationName", _C),
        "site": ("locationName", _C),
        "city": ("locationCity", _C),
        "state": ("locationState", _C),
        "country": ("locationCountry", _C),
        # Reporter
        "reporter_type": ("reporterType", _R),
        "anonymous": ("reporterAnonymous", _C),
        "reporter_name": ("reporterName", _C),
        "reporter_email": ("reporterEmail", _C),
        # Subject
        "subject_name": ("name", _P),
        "accused_name": ("name", _P),
        "employee_name": ("name", _P),
        "employee_id": ("employeeId", _P),
        # Assignment
        "assigned_to": ("primaryInvestigatorName", _I),
        "investigator": ("primaryInvestigatorName", _I),
    }),
    SourceType.EQS: MappingProxyType({
        "report_id": ("referenceNumber", _R),
        "ref_number": ("referenceNumber", _C),
        "created_date": ("createdAt", _C),
        "report_date": ("intakeTimestamp", _C),
        "category_name": ("categoryName", _C),
        "issue_category": ("categoryName", _C),
        "report_text": ("details", _R),
        "description": ("details", _R),
        "status_name": ("status", _C),
        "assigned_user": ("primaryInvestigatorName", _I),
        "site_name": ("locationName", _C),
        "region": ("locationState", _C),
    }),
    SourceType.LEGACY_ETHICO: MappingProxyType({
        "case_num": ("referenceNumber", _C),
        "riu_num": ("referenceNumber", _R),
        "case_type": ("categoryName", _C),
        "narrative": ("details", _R),
        "call_details": ("details", _R),
        "intake_date": ("intakeTimestamp", _C),
        "case_status": ("status", _C),
        "investigator": ("primaryInvestigatorName", _I),
        "site_code": ("locationName", _C),
    }),
    SourceType.ONETRUST: MappingProxyType({
        "request_id": ("referenceNumber", _C),
        "case_category": ("categoryName", _C),
        "risk_rating": ("severity", _C),
        "submitted_on": ("intakeTimestamp", _C),
        "workflow_stage": ("status", _C),
        "intake_source": ("reporterType", _R),
        "description": ("details", _R),
        "assigned_reviewer": ("primaryInvestigatorName", _I),
    }),
    SourceType.STAR: MappingProxyType({
        "star_case_id": ("referenceNumber", _C),
        "allegation_type": ("categoryName", _C),
        "date_opened": ("intakeTimestamp", _C),
        "date_closed": ("closedAt", _C),
        "disposition": ("outcome", _C),
        "business_unit": ("locationName", _C),
        "case_manager": ("primaryInvestigatorName", _I),
        "allegation_details": ("details", _R),
    }),
    SourceType.GENERIC_CSV: MappingProxyType({}),
})


# Substring patterns used for GENERIC_CSV only. Order matters: first match wins.
GENERIC_FIELD_PATTERNS: Tuple[Tuple[str, Hint], ...] = (
    ("case", ("referenceNumber", _C)),
    ("ref", ("referenceNumber", _C)),
    ("number", ("referenceNumber", _C)),
    ("status", ("status", _C)),
    ("severity", ("severity", _C)),
    ("priority", ("severity", _C)),
    ("category", ("categoryName", _C)),
    ("type", ("categoryName", _C)),
    ("description", ("details", _R)),
    ("details", ("details", _R)),
    ("narrative", ("details", _R)),
    ("summary", ("summary", _R)),
    ("location", ("locationName", _C)),
    ("site", ("locationName", _C)),
    ("facility", ("locationName", _C)),
    ("city", ("locationCity", _C)),
    ("state", ("locationState", _C)),
    ("country", ("locationCountry", _C)),
    ("date", ("createdAt", _C)),
    ("created", ("createdAt", _C)),
    ("reported", ("intakeTimestamp", _C)),
    ("name", ("name", _P)),
    ("employee", ("employeeId", _P)),
    ("email", ("email", _P)),
)


# Known column names per target field, for files without a hint table.
# Order matters: earlier targets win exact and partial matches.
FIELD_SYNONYMS: Tuple[Tuple[str, TargetEntity, Tuple[str, ...]], ...] = (
    # Identifiers
    ("referenceNumber", _C, (
        "id", "case_id", "case_number", "report_id", "incident_id", "reference",
        "ref", "ticket", "record_id", "external_id", "case_ref", "ref_number",
        "ticket_number", "report_number", "incident_number",
    )),
    # Dates
    ("incidentDate", _C, (
        "incident_date", "date_of_incident", "occurrence_date", "event_date",
        "when", "happened_date", "occurred_date",
    )),
    ("createdAt", _C, (
        "created_date", "report_date", "submitted_date", "submission_date",
        "opened_date", "intake_date", "received_date", "date_created", "created",
    )),
    ("closedAt", _C, (
        "closed_date", "close_date", "resolution_date", "completed_date",
        "end_date", "resolved_date", "finished_date",
    )),
    # Content
    ("details", _R, (
        "description", "allegation", "narrative", "summary", "incident_description",
        "details", "report_text", "content", "concern", "issue", "body", "message",
        "notes",
    )),
    ("categoryName", _C, (
        "category", "incident_type", "issue_type", "type", "classification",
        "topic", "concern_type", "report_type", "case_type",
    )),
    ("severity", _C, (
        "severity", "priority", "risk_level", "urgency", "criticality",
        "importance", "risk", "level",
    )),
    ("status", _C, (
        "status", "state", "case_status", "current_status", "workflow_status",
        "stage", "phase",
    )),
    # Reporter
    ("reporterType", _R, (
        "reporter_type", "anonymous", "is_anonymous", "reporter_relationship",
        "contact_type", "source_type", "confidential",
    )),
    ("reporterName", _C, (
        "reporter_name", "reporter", "complainant", "complainant_name",
        "submitted_by", "filed_by", "source_name",
    )),
    ("reporterEmail", _C, ("reporter_email", "email", "contact_email", "complainant_email")),
    ("reporterPhone", _C, (
        "reporter_phone", "phone", "telephone", "contact_phone", "contact_number",
    )),
    # Location
    ("locationName", _C, (
        "location", "location_name", "site", "office", "country", "region",
        "facility", "branch", "building", "workplace",
    )),
    ("locationCity", _C, ("city", "town", "municipality")),
    ("locationState", _C, ("state", "province", "region", "state_province")),
    ("locationCountry", _C, ("country", "nation", "country_code")),
    ("department", _P, (
        "business_unit", "department", "division", "team", "group", "unit",
        "area", "org_unit",
    )),
    # Assignment
    ("primaryInvestigatorName", _I, (
        "assigned_to", "assignee", "handler", "investigator", "owner",
        "case_manager", "case_owner", "responsible",
    )),
    # People
    ("firstName", _P, ("first_name", "given_name", "forename", "fname")),
    ("lastName", _P, ("last_name", "surname", "family_name", "lname")),
    ("email", _P, ("email", "email_address", "e_mail", "mail")),
    ("phone", _P, ("phone", "phone_number", "telephone", "mobile", "cell")),
    ("employeeId", _P, ("employee_id", "emp_id", "staff_id", "worker_id", "badge", "badge_number")),
    ("jobTitle", _P, ("job_title", "title", "position", "role")),
    ("name", _P, (
        "subject_name", "subject", "accused", "accused_name", "respondent",
        "respondent_name", "person_involved",
    )),
    # Outcome
    ("outcome", _C, (
        "resolution", "outcome", "findings", "result", "final_outcome",
        "determination", "conclusion", "disposition", "action_taken",
    )),
    ("findingsDetail", _I, (
        "investigation_notes", "inv_notes", "findings_detail", "investigation_summary",
    )),
    ("dueDate", _I, ("due_date", "deadline", "target_date", "expected_close")),
)

# Targets marked required when a column matches one of their synonyms exactly.
REQUIRED_SYNONYM_TARGETS = frozenset({"referenceNumber", "details"})


# Fields each target entity accepts.
TARGET_FIELDS: Mapping[TargetEntity, Tuple[str, ...]] = MappingProxyType({
    TargetEntity.CASE: (
        "referenceNumber",
        "status",
        "details",
        "summary",
        "severity",
        "intakeTimestamp",
        "createdAt",
        "incidentDate",
        "closedAt",
        "categoryName",
        "secondaryCategoryName",
        "locationName",
        "locationCity",
        "locationState",
        "locationCountry",
        "locationZip",
        "reporterType",
        "reporterName",
        "reporterEmail",
        "reporterPhone",
        "reporterAnonymous",
        "outcome",
        "outcomeNotes",
        "tags",
        "customFields",
    ),
    TargetEntity.RIU: (
        "referenceNumber",
        "type",
        "details",
        "summary",
        "severity",
        "categoryName",
        "reporterType",
        "reporterName",
        "reporterEmail",
        "reporterPhone",
        "locationName",
        "locationCity",
        "locationState",
        "locationCountry",
        "customFields",
        "formResponses",
    ),
    TargetEntity.PERSON: (
        "firstName",
        "lastName",
        "name",
        "email",
        "phone",
        "employeeId",
        "jobTitle",
        "department",
        "location",
        "company",
        "relationship",
        "notes",
    ),
    TargetEntity.INVESTIGATION: (
        "investigationNumber",
        "status",
        "dueDate",
        "primaryInvestigatorName",
        "findingsSummary",
        "findingsDetail",
        "outcome",
        "notes",
        "rootCause",
        "lessonsLearned",
    ),
})


TRANSFORM_DESCRIPTIONS: Mapping[TransformFunction, str] = MappingProxyType({
    TransformFunction.UPPERCASE: "Convert text to uppercase",
    TransformFunction.LOWERCASE: "Convert text to lowercase",
    TransformFunction.TRIM: "Remove leading/trailing whitespace",
    TransformFunction.PARSE_DATE: "Parse date (auto-detect format)",
    TransformFunction.PARSE_DATE_US: "Parse date in MM/DD/YYYY format",
    TransformFunction.PARSE_DATE_EU: "Parse date in DD/MM/YYYY format",
    TransformFunction.PARSE_DATE_ISO: "Parse date in YYYY-MM-DD format",
    TransformFunction.MAP_CATEGORY: "Map to category using lookup table",
    TransformFunction.MAP_SEVERITY: "Map to severity level (HIGH/MEDIUM/LOW)",
    TransformFunction.MAP_STATUS: "Map to case status",
    TransformFunction.PARSE_BOOLEAN: "Parse as boolean (yes/true/1/y)",
    TransformFunction.PARSE_NUMBER: "Parse as number",
    TransformFunction.SPLIT_COMMA: "Split comma-separated values into array",
    TransformFunction.EXTRACT_EMAIL: "Extract email address from text",
    TransformFunction.EXTRACT_PHONE: "Extract phone number from text",
})


class SchemaRegistry:
    """
    Read-only access to the static source and target schema tables.

    Supports:
    - Header patterns per source type (format detection)
    - Exact and fuzzy mapping hints (mapping suggestion)
    - Column name synonyms per target field (synonym suggestion)
    - Allowed target fields per entity (mapping validation)
    """

    def __init__(
        self,
        source_patterns: Optional[Mapping[SourceType, Tuple[str, ...]]] = None,
        hints: Optional[Mapping[SourceType, Mapping[str, Hint]]] = None,
        generic_patterns: Optional[Tuple[Tuple[str, Hint], ...]] = None,
        target_fields: Optional[Mapping[TargetEntity, Tuple[str, ...]]] = None,
        synonyms: Optional[Tuple[Tuple[str, TargetEntity, Tuple[str, ...]], ...]] = None,
    ):
        self.source_patterns = source_patterns if source_patterns is not None else SOURCE_FIELD_PATTERNS
        self.hints = hints if hints is not None else FIELD_MAPPING_HINTS
        self.generic_patterns = generic_patterns if generic_patterns is not None else GENERIC_FIELD_PATTERNS
        self.target_fields = target_fields if target_fields is not None else TARGET_FIELDS
        self.synonyms = synonyms if synonyms is not None else FIELD_SYNONYMS

    def get_patterns(self, source_type: SourceType) -> Tuple[str, ...]:
        """Get the header patterns registered for a source type."""
        return tuple(self.source_patterns.get(source_type, ()))

    def get_hints(self, source_type: SourceType) -> Mapping[str, Hint]:
        """Get the exact-name hint table for a source type (empty for generic)."""
        return self.hints.get(source_type, MappingProxyType({}))

    def lookup_hint(self, source_type: SourceType, field_name: str) -> Optional[Hint]:
        """Exact hint lookup, first on the normalized name then on the lowercased name."""
        hints = self.get_hints(source_type)
        hint = hints.get(normalize_field_name(field_name))
        if hint is None:
            hint = hints.get(str(field_name).lower())
        return hint

    def match_generic(self, field_name: str) -> Optional[Hint]:
        """First generic substring pattern contained in the lowercased name."""
        lowered = str(field_name).lower()
        for pattern, hint in self.generic_patterns:
            if pattern in lowered:
                return hint
        return None

    def get_synonyms(self) -> Tuple[Tuple[str, TargetEntity, Tuple[str, ...]], ...]:
        """(target field, entity, known column names) in match order."""
        return tuple(self.synonyms)

    def get_target_fields(self, entity: TargetEntity) -> Tuple[str, ...]:
        """Allowed target fields for an entity."""
        return tuple(self.target_fields.get(entity, ()))

    def is_valid_target(self, entity: TargetEntity, field_name: str) -> bool:
        """Check whether an entity accepts a target field."""
        return field_name in self.target_fields.get(entity, ())

    def get_target_catalogue(self) -> Dict[str, List[str]]:
        """Target fields per entity, keyed by entity value."""
        return {entity.value: list(fields) for entity, fields in self.target_fields.items()}

    def get_transform_catalogue(self) -> List[Dict[str, str]]:
        """Transform identifiers with their descriptions."""
        return [
            {"id": transform.value, "description": description}
            for transform, description in TRANSFORM_DESCRIPTIONS.items()
        ]


_default_registry: Optional[SchemaRegistry] = None


def get_registry() -> SchemaRegistry:
    """Get the shared registry instance."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SchemaRegistry()
    return _default_registry
