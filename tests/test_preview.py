"""Tests for preview generation."""

from datetime import date

from casemigrate.models.schema import FieldMapping, TargetEntity, TransformFunction
from casemigrate.services.preview import PreviewGenerator
from casemigrate.services.transformer import TransformEngine


def generator(limit=10):
    return PreviewGenerator(TransformEngine(), limit=limit)


class TestTransformRow:
    def test_routes_values_to_entity_buckets(self):
        mappings = [
            FieldMapping("id", "referenceNumber", TargetEntity.CASE),
            FieldMapping("text", "details", TargetEntity.RIU),
            FieldMapping("who", "name", TargetEntity.PERSON),
            FieldMapping("due", "dueDate", TargetEntity.INVESTIGATION,
                         transform=TransformFunction.PARSE_DATE_ISO),
            FieldMapping("skip"),
        ]
        row = {"id": "C-1", "text": "Story", "who": "Pat", "due": "2024-03-01", "skip": "x"}

        assert generator().transform_row(row, mappings) == {
            "case": {"referenceNumber": "C-1"},
            "riu": {"details": "Story"},
            "person": {"name": "Pat"},
            "investigation": {"dueDate": date(2024, 3, 1)},
        }

    def test_default_value_fills_empty_results(self):
        mappings = [
            FieldMapping("sev", "severity", TargetEntity.CASE, default_value="LOW"),
            FieldMapping("email", "reporterEmail", TargetEntity.CASE,
                         transform=TransformFunction.EXTRACT_EMAIL, default_value="unknown@example.com"),
        ]
        result = generator().transform_row({"sev": "", "email": "none"}, mappings)
        assert result["case"] == {"severity": "LOW", "reporterEmail": "unknown@example.com"}

    def test_empty_results_are_omitted(self):
        mappings = [
            FieldMapping("opened", "intakeTimestamp", transform=TransformFunction.PARSE_DATE_US),
            FieldMapping("missing", "summary", TargetEntity.RIU),
        ]
        result = generator().transform_row({"opened": "not a date"}, mappings)
        assert result["case"] == {}
        assert result["riu"] == {}

    def test_false_is_kept(self):
        mappings = [FieldMapping("anon", "reporterAnonymous", transform=TransformFunction.PARSE_BOOLEAN)]
        result = generator().transform_row({"anon": ""}, mappings)
        assert result["case"] == {"reporterAnonymous": False}


class TestGenerate:
    def test_limit_and_issue_text(self):
        mappings = [FieldMapping("id", "referenceNumber", required=True)]
        rows = iter([{"id": "1"}, {"id": ""}, {"id": "3"}])

        preview = generator(limit=2).generate(rows, mappings)

        assert [p.row_number for p in preview] == [1, 2]
        assert preview[0].issues == []
        assert preview[1].issues == ["id: Required field is empty"]
        assert preview[1].source_data == {"id": ""}

    def test_explicit_limit(self):
        mappings = [FieldMapping("id", "referenceNumber")]
        preview = generator().generate([{"id": str(i)} for i in range(20)], mappings, limit=5)
        assert len(preview) == 5

    def test_to_dict_serializes_dates(self):
        mappings = [FieldMapping("opened", "intakeTimestamp", transform=TransformFunction.PARSE_DATE_US)]
        row = generator().generate([{"opened": "01/31/2024"}], mappings)[0]
        assert row.to_dict()["transformed_data"]["case"] == {"intakeTimestamp": "2024-01-31"}
