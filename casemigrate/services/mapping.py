"""Field mapping suggestion, validation and template persistence."""

import re
import difflib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

from ..exceptions import MappingValidationError
from ..models.schema import (
    FieldMapping,
    MappingTemplate,
    SourceType,
    TargetEntity,
    TransformFunction,
)
from .schema_registry import (
    REQUIRED_SYNONYM_TARGETS,
    SchemaRegistry,
    get_registry,
    normalize_field_name,
    percentage,
)

logger = logging.getLogger(__name__)

DATE_TARGET_FIELDS = frozenset({
    "createdAt",
    "intakeTimestamp",
    "incidentDate",
    "closedAt",
    "dueDate",
})

# Columns whose names look like identifiers are matched first
PRIORITY_FIELD_PATTERNS = ("id", "number", "ref", "key")

FUZZY_THRESHOLD = 0.7

DATE_VALUE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{2,4}|\d{1,2}-\d{1,2}-\d{2,4})")
EMAIL_VALUE_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NON_DIGIT_PATTERN = re.compile(r"\D")
_SEPARATORS = re.compile(r"[^a-z0-9]+")


@dataclass
class MappingSuggestion:
    """Suggested mappings for a set of source columns."""
    source_type: SourceType
    mappings: List[FieldMapping] = field(default_factory=list)
    confidence: int = 0

    @property
    def matched_count(self) -> int:
        return sum(1 for m in self.mappings if m.is_mapped)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_type": self.source_type.value,
            "confidence": self.confidence,
            "matched_count": self.matched_count,
            "mappings": [m.to_dict() for m in self.mappings],
        }


@dataclass
class SuggestedMapping:
    """One suggested mapping with its own confidence (0-100) and the reason for it."""
    mapping: FieldMapping
    confidence: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        data = self.mapping.to_dict()
        data["confidence"] = self.confidence
        data["reason"] = self.reason
        return data


def synonym_key(name: str) -> str:
    """Lowercase, collapse separator runs to ``_`` and strip them from the ends."""
    return _SEPARATORS.sub("_", str(name).lower()).strip("_")


def name_similarity(a: str, b: str) -> float:
    """
    Similarity of two normalized names, 0-1.

    Containment scores at least 0.7, scaled by the length ratio. Other
    pairs use difflib's matching-blocks ratio.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        shorter, longer = sorted((len(a), len(b)))
        return FUZZY_THRESHOLD + shorter / longer * (1 - FUZZY_THRESHOLD)
    return difflib.SequenceMatcher(None, a, b).ratio()


def prioritize_fields(fields: Sequence[str]) -> List[str]:
    """Identifier-like columns first, otherwise file order."""
    return sorted(
        fields,
        key=lambda f: not any(p in str(f).lower() for p in PRIORITY_FIELD_PATTERNS),
    )


def looks_like_date(value: str) -> bool:
    return bool(DATE_VALUE_PATTERN.match(value))


def looks_like_email(value: str) -> bool:
    return bool(EMAIL_VALUE_PATTERN.match(value))


def looks_like_phone(value: str) -> bool:
    return 7 <= len(NON_DIGIT_PATTERN.sub("", value)) <= 15


class FieldMappingEngine:
    """
    Builds and checks source-to-target field mappings.

    Suggestions use the exact-name hint table of the source type. Generic
    files fall back to ordered substring patterns.
    """

    def __init__(self, registry: Optional[SchemaRegistry] = None, template_storage=None):
        """
        Initialize the mapping engine.

        Args:
            registry: Schema registry (defaults to the shared one)
            template_storage: Optional TemplateStorage for saved mapping sets
        """
        self.registry = registry or get_registry()
        self.template_storage = template_storage

    # Suggestion

    def suggest_field(self, source_field: str, source_type: SourceType) -> FieldMapping:
        """Suggest a mapping for one source column (unmapped when nothing matches)."""
        hint = self.registry.lookup_hint(source_type, source_field)
        if hint is None and source_type == SourceType.GENERIC_CSV:
            hint = self.registry.match_generic(normalize_field_name(source_field))

        if hint is None:
            return FieldMapping(source_field=source_field)

        target_field, target_entity = hint
        return FieldMapping(
            source_field=source_field,
            target_field=target_field,
            target_entity=target_entity,
            transform=self.infer_transform(target_field),
        )

    def suggest(self, source_fields: Sequence[str], source_type: SourceType) -> MappingSuggestion:
        """
        Suggest one mapping per source column.

        Args:
            source_fields: Column headers in file order
            source_type: Detected or confirmed source type

        Returns:
            MappingSuggestion with a confidence of matched / total columns
        """
        mappings = [self.suggest_field(f, source_type) for f in source_fields]
        suggestion = MappingSuggestion(source_type=source_type, mappings=mappings)
        suggestion.confidence = percentage(suggestion.matched_count, len(mappings))

        logger.info(
            f"Suggested {suggestion.matched_count}/{len(mappings)} mappings "
            f"for {source_type.value} ({suggestion.confidence}%)"
        )
        return suggestion

    @staticmethod
    def infer_transform(target_field: str) -> Optional[TransformFunction]:
        """Transform implied by a target field name, if any."""
        if not target_field:
            return None
        if target_field in DATE_TARGET_FIELDS:
            return TransformFunction.PARSE_DATE

        lowered = target_field.lower()
        if lowered == "status":
            return TransformFunction.MAP_STATUS
        if lowered == "severity":
            return TransformFunction.MAP_SEVERITY
        if lowered.endswith("categoryname"):
            return TransformFunction.MAP_CATEGORY
        if lowered.endswith("email"):
            return TransformFunction.EXTRACT_EMAIL
        if lowered.endswith("phone"):
            return TransformFunction.EXTRACT_PHONE
        if lowered == "reporteranonymous":
            return TransformFunction.PARSE_BOOLEAN
        if lowered == "tags":
            return TransformFunction.SPLIT_COMMA
        return None

    # Synonym suggestion

    def suggest_by_synonyms(
        self,
        source_fields: Sequence[str],
        sample_rows: Sequence[Dict[str, Any]] = (),
    ) -> List[SuggestedMapping]:
        """
        Suggest mappings from the synonym table and sample values.

        Each target field is used at most once. Identifier-like columns are
        matched first. Columns nothing matches are left out.

        Match order per column:
        1. Exact synonym (confidence 95)
        2. Partial synonym, either name containing the other (75)
        3. Closest synonym with similarity above 0.7 (similarity x 100)
        4. Shape of the first sample value: date, email, phone, long text

        Args:
            source_fields: Column headers
            sample_rows: Leading rows used for value inference

        Returns:
            SuggestedMappings in match order
        """
        suggestions = []
        used: Set[str] = set()

        for source_field in prioritize_fields(source_fields):
            suggestion = self.suggest_by_synonym(source_field, sample_rows, used)
            if suggestion is not None:
                suggestions.append(suggestion)
                used.add(suggestion.mapping.target_field)

        logger.info(f"Synonym matching suggested {len(suggestions)}/{len(source_fields)} mappings")
        return suggestions

    def suggest_by_synonym(
        self,
        source_field: str,
        sample_rows: Sequence[Dict[str, Any]] = (),
        used_targets: Optional[Set[str]] = None,
    ) -> Optional[SuggestedMapping]:
        """Suggest a mapping for one column, skipping targets already taken."""
        used_targets = used_targets or set()
        key = synonym_key(source_field)
        table = [entry for entry in self.registry.get_synonyms() if entry[0] not in used_targets]

        for target_field, entity, synonyms in table:
            if key in (synonym_key(s) for s in synonyms):
                return self._suggested(
                    source_field, target_field, entity, 95,
                    f'Exact match: "{source_field}" matches known synonym',
                    required=target_field in REQUIRED_SYNONYM_TARGETS,
                )

        for target_field, entity, synonyms in table:
            for synonym in synonyms:
                s = synonym_key(synonym)
                if (s in key or key in s) and min(len(s), len(key)) >= 3:
                    return self._suggested(
                        source_field, target_field, entity, 75,
                        f'Partial match: "{source_field}" contains "{s}"',
                    )

        best = None
        for target_field, entity, synonyms in table:
            for synonym in synonyms:
                similarity = name_similarity(key, synonym_key(synonym))
                if similarity > FUZZY_THRESHOLD and (best is None or similarity > best[0]):
                    best = (similarity, target_field, entity, synonym)
        if best is not None:
            similarity, target_field, entity, synonym = best
            return self._suggested(
                source_field, target_field, entity, int(similarity * 100 + 0.5),
                f'Fuzzy match: "{source_field}" similar to "{synonym}"',
            )

        return self.infer_from_values(source_field, sample_rows, used_targets)

    def infer_from_values(
        self,
        source_field: str,
        sample_rows: Sequence[Dict[str, Any]],
        used_targets: Set[str],
    ) -> Optional[SuggestedMapping]:
        """Guess a target from what the column's sample values look like."""
        values = [
            str(row.get(source_field)) for row in sample_rows
            if row.get(source_field) not in (None, "")
        ]
        if not values:
            return None

        first = values[0]
        if looks_like_date(first) and "incidentDate" not in used_targets:
            return SuggestedMapping(
                FieldMapping(source_field, "incidentDate", TargetEntity.CASE),
                50, "Detected date format in values",
            )
        if looks_like_email(first) and "email" not in used_targets:
            return SuggestedMapping(
                FieldMapping(source_field, "email", TargetEntity.PERSON),
                60, "Detected email format in values",
            )
        if looks_like_phone(first) and "phone" not in used_targets:
            return SuggestedMapping(
                FieldMapping(source_field, "phone", TargetEntity.PERSON),
                55, "Detected phone number format in values",
            )

        average = sum(len(v) for v in values) / len(values)
        if average > 100 and "details" not in used_targets:
            return SuggestedMapping(
                FieldMapping(source_field, "details", TargetEntity.RIU),
                40, f"Detected long text values (avg {int(average + 0.5)} chars)",
            )
        return None

    def _suggested(self, source_field, target_field, entity, confidence, reason, required=False):
        return SuggestedMapping(
            FieldMapping(
                source_field=source_field,
                target_field=target_field,
                target_entity=entity,
                required=required,
                transform=self.infer_transform(target_field),
            ),
            confidence,
            reason,
        )

    # Validation

    def find_problems(self, mappings: Sequence[FieldMapping]) -> List[str]:
        """
        Structural problems in a submitted mapping set.

        Returns:
            One message for all required-but-unmapped columns, then one per
            target field the entity does not accept
        """
        problems = []

        unmapped_required = [m.source_field for m in mappings if m.required and not m.target_field]
        if unmapped_required:
            problems.append(f"Required fields not mapped: {', '.join(unmapped_required)}")

        for mapping in mappings:
            if mapping.target_field and not self.registry.is_valid_target(
                mapping.target_entity, mapping.target_field
            ):
                problems.append(
                    f"Invalid target field '{mapping.target_field}' "
                    f"for entity {mapping.target_entity.value}"
                )

        return problems

    def validate_mappings(self, mappings: Sequence[FieldMapping]) -> None:
        """
        Reject a mapping set with any structural problem.

        Raises:
            MappingValidationError: With every problem joined into one message
        """
        problems = self.find_problems(mappings)
        if problems:
            raise MappingValidationError(problems)

    # Templates

    def save_template(
        self,
        tenant_id: str,
        source_type: SourceType,
        name: str,
        mappings: Sequence[FieldMapping],
        user_id: Optional[str] = None,
    ) -> MappingTemplate:
        """Create or update the template keyed by (tenant, source type, name)."""
        self._require_templates()
        existing = self.template_storage.get(tenant_id, source_type, name)
        now = datetime.utcnow()

        if existing is None:
            template = MappingTemplate(
                tenant_id=tenant_id,
                source_type=source_type,
                name=name,
                mappings=list(mappings),
                created_by_id=user_id,
                created_at=now,
                updated_at=now,
            )
        else:
            template = MappingTemplate(
                tenant_id=tenant_id,
                source_type=source_type,
                name=name,
                mappings=list(mappings),
                created_by_id=existing.created_by_id,
                created_at=existing.created_at,
                updated_at=now,
            )

        self.template_storage.save(template)
        logger.info(f"Saved mapping template '{name}' for {source_type.value}")
        return template

    def load_template(
        self,
        tenant_id: str,
        source_type: SourceType,
        name: Optional[str] = None,
    ) -> Optional[MappingTemplate]:
        """Load a named template, or the most recently updated one for the source type."""
        if self.template_storage is None:
            return None
        if name is not None:
            return self.template_storage.get(tenant_id, source_type, name)
        return self.template_storage.latest(tenant_id, source_type)

    def _require_templates(self) -> None:
        if self.template_storage is None:
            raise RuntimeError("No template storage configured")
