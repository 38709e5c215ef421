"""Tests for mapping suggestion, validation and templates."""

import pytest

from casemigrate.exceptions import MappingValidationError
from casemigrate.models.schema import FieldMapping, SourceType, TargetEntity, TransformFunction
from casemigrate.services.mapping import (
    FieldMappingEngine,
    name_similarity,
    prioritize_fields,
    synonym_key,
)
from casemigrate.services.schema_registry import FIELD_SYNONYMS, TARGET_FIELDS
from casemigrate.storage import TemplateStorage


@pytest.fixture
def engine():
    return FieldMappingEngine(template_storage=TemplateStorage())


class TestSuggest:
    def test_navex_hints(self, engine):
        suggestion = engine.suggest(["case_number", "incident_type", "status"], SourceType.NAVEX)
        by_source = {m.source_field: m for m in suggestion.mappings}

        assert by_source["case_number"].target_field == "referenceNumber"
        assert by_source["case_number"].target_entity == TargetEntity.CASE
        assert by_source["case_number"].transform is None
        assert by_source["incident_type"].transform == TransformFunction.MAP_CATEGORY
        assert by_source["status"].transform == TransformFunction.MAP_STATUS
        assert suggestion.confidence == 100

    def test_one_mapping_per_column_in_order(self, engine):
        headers = ["Case Number", "mystery", "Date Reported"]
        suggestion = engine.suggest(headers, SourceType.NAVEX)

        assert [m.source_field for m in suggestion.mappings] == headers
        assert suggestion.mappings[1].is_mapped is False
        assert suggestion.mappings[2].target_field == "intakeTimestamp"
        assert suggestion.mappings[2].transform == TransformFunction.PARSE_DATE
        assert suggestion.matched_count == 2
        assert suggestion.confidence == 67

    def test_generic_patterns(self, engine):
        suggestion = engine.suggest(["Incident Description", "Reported On", "Case Ref"], SourceType.GENERIC_CSV)
        targets = [(m.target_field, m.target_entity) for m in suggestion.mappings]

        assert targets == [
            ("details", TargetEntity.RIU),
            ("intakeTimestamp", TargetEntity.CASE),
            ("referenceNumber", TargetEntity.CASE),
        ]

    def test_generic_patterns_only_for_generic_files(self, engine):
        mapping = engine.suggest_field("Incident Description", SourceType.EQS)
        assert mapping.is_mapped is False

    def test_empty_header_set(self, engine):
        suggestion = engine.suggest([], SourceType.NAVEX)
        assert suggestion.mappings == []
        assert suggestion.confidence == 0

    @pytest.mark.parametrize("target,expected", [
        ("createdAt", TransformFunction.PARSE_DATE),
        ("dueDate", TransformFunction.PARSE_DATE),
        ("severity", TransformFunction.MAP_SEVERITY),
        ("secondaryCategoryName", TransformFunction.MAP_CATEGORY),
        ("reporterEmail", TransformFunction.EXTRACT_EMAIL),
        ("reporterPhone", TransformFunction.EXTRACT_PHONE),
        ("reporterAnonymous", TransformFunction.PARSE_BOOLEAN),
        ("tags", TransformFunction.SPLIT_COMMA),
        ("details", None),
        ("", None),
    ])
    def test_infer_transform(self, target, expected):
        assert FieldMappingEngine.infer_transform(target) == expected


class TestSuggestBySynonyms:
    def test_exact_synonyms(self, engine):
        suggested = engine.suggest_by_synonyms(["case_number", "incident_type", "status"])
        by_source = {s.mapping.source_field: s for s in suggested}

        assert by_source["case_number"].mapping.target_field == "referenceNumber"
        assert by_source["case_number"].mapping.required is True
        assert by_source["case_number"].confidence == 95
        assert by_source["incident_type"].mapping.target_field == "categoryName"
        assert by_source["incident_type"].mapping.transform == TransformFunction.MAP_CATEGORY
        assert by_source["status"].mapping.transform == TransformFunction.MAP_STATUS
        assert by_source["status"].mapping.required is False
        assert by_source["status"].reason == 'Exact match: "status" matches known synonym'

    def test_partial_match(self, engine):
        suggested = engine.suggest_by_synonym("Case Status Code")
        assert suggested.mapping.target_field == "status"
        assert suggested.confidence == 75
        assert suggested.mapping.required is False
        assert suggested.reason == 'Partial match: "Case Status Code" contains "status"'

    def test_fuzzy_match(self, engine):
        suggested = engine.suggest_by_synonym("severty")
        assert suggested.mapping.target_field == "severity"
        assert suggested.mapping.transform == TransformFunction.MAP_SEVERITY
        assert suggested.confidence == 93
        assert suggested.reason == 'Fuzzy match: "severty" similar to "severity"'

    def test_inferred_from_values(self, engine):
        headers = ["col_a", "col_b", "col_c", "col_d", "zzz"]
        rows = [{
            "col_a": "2024-01-15",
            "col_b": "a@b.com",
            "col_c": "(555) 123-4567",
            "col_d": "x" * 120,
            "zzz": "hello",
        }]
        suggested = engine.suggest_by_synonyms(headers, rows)

        assert [(s.mapping.source_field, s.mapping.target_field, s.confidence) for s in suggested] == [
            ("col_a", "incidentDate", 50),
            ("col_b", "email", 60),
            ("col_c", "phone", 55),
            ("col_d", "details", 40),
        ]
        assert suggested[3].reason == "Detected long text values (avg 120 chars)"

    def test_each_target_used_once(self, engine):
        suggested = engine.suggest_by_synonyms(["status", "case_status", "priority", "severity"])
        targets = [s.mapping.target_field for s in suggested]

        assert len(targets) == len(set(targets))
        assert suggested[0].mapping.source_field == "status"
        assert suggested[0].mapping.target_field == "status"
        assert {"priority": "severity"}.items() <= {
            s.mapping.source_field: s.mapping.target_field for s in suggested
        }.items()

    def test_identifier_columns_first(self):
        assert prioritize_fields(["notes", "Report ID", "status", "ref_no"]) == [
            "Report ID", "ref_no", "notes", "status",
        ]

    def test_to_dict(self, engine):
        data = engine.suggest_by_synonym("status").to_dict()
        assert data["target_field"] == "status"
        assert data["confidence"] == 95
        assert data["reason"].startswith("Exact match")

    def test_synonym_targets_are_valid(self):
        for target_field, entity, _ in FIELD_SYNONYMS:
            assert target_field in TARGET_FIELDS[entity], target_field

    def test_helpers(self):
        assert synonym_key("  Reporter E-mail ") == "reporter_e_mail"
        assert name_similarity("status", "status") == 1.0
        assert name_similarity("", "status") == 0.0
        assert name_similarity("stat", "status") == pytest.approx(0.9)


class TestValidateMappings:
    def test_valid_set(self, engine):
        engine.validate_mappings([
            FieldMapping("id", "referenceNumber", TargetEntity.CASE, required=True),
            FieldMapping("ignored"),
        ])

    def test_problems(self, engine):
        problems = engine.find_problems([
            FieldMapping("a", required=True),
            FieldMapping("b", required=True),
            FieldMapping("c", "bogus", TargetEntity.CASE),
            FieldMapping("d", "dueDate", TargetEntity.CASE),
        ])

        assert problems == [
            "Required fields not mapped: a, b",
            "Invalid target field 'bogus' for entity CASE",
            "Invalid target field 'dueDate' for entity CASE",
        ]

    def test_raises_with_all_problems(self, engine):
        with pytest.raises(MappingValidationError) as exc_info:
            engine.validate_mappings([
                FieldMapping("a", required=True),
                FieldMapping("c", "bogus", TargetEntity.PERSON),
            ])

        assert len(exc_info.value.problems) == 2
        assert str(exc_info.value) == (
            "Required fields not mapped: a; Invalid target field 'bogus' for entity PERSON"
        )


class TestTemplates:
    def test_save_and_load_latest(self, engine):
        mappings = [FieldMapping("case_number", "referenceNumber")]
        engine.save_template("t1", SourceType.NAVEX, "default", mappings, "u1")

        template = engine.load_template("t1", SourceType.NAVEX)
        assert template.name == "default"
        assert template.mappings == mappings
        assert engine.load_template("t2", SourceType.NAVEX) is None
        assert engine.load_template("t1", SourceType.EQS) is None

    def test_update_keeps_creator(self, engine):
        engine.save_template("t1", SourceType.NAVEX, "default", [], "u1")
        first = engine.load_template("t1", SourceType.NAVEX, "default")

        engine.save_template("t1", SourceType.NAVEX, "default", [FieldMapping("x", "status")], "u2")
        updated = engine.load_template("t1", SourceType.NAVEX, "default")

        assert updated.created_by_id == "u1"
        assert updated.created_at == first.created_at
        assert updated.updated_at >= first.updated_at
        assert len(updated.mappings) == 1

    def test_without_storage(self):
        engine = FieldMappingEngine()
        assert engine.load_template("t1", SourceType.NAVEX) is None
        with pytest.raises(RuntimeError):
            engine.save_template("t1", SourceType.NAVEX, "x", [])
