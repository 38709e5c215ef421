"""Tests for row validation."""

import pytest

from casemigrate.models.record import Severity
from casemigrate.models.schema import FieldMapping, TargetEntity, TransformFunction
from casemigrate.services.transformer import TransformEngine
from casemigrate.services.validator import REQUIRED_FIELD_MESSAGE, RowValidator, is_empty

MAPPINGS = [
    FieldMapping("id", "referenceNumber", TargetEntity.CASE, required=True),
    FieldMapping("opened", "intakeTimestamp", TargetEntity.CASE, transform=TransformFunction.PARSE_DATE_US),
    FieldMapping("email", "reporterEmail", TargetEntity.CASE, transform=TransformFunction.EXTRACT_EMAIL),
]


@pytest.fixture
def validator():
    return RowValidator(TransformEngine())


class TestIsEmpty:
    def test_values(self):
        assert is_empty(None)
        assert is_empty("")
        assert is_empty("   ")
        assert not is_empty("x")
        assert not is_empty(0)
        assert not is_empty(False)


class TestValidateRow:
    def test_clean_row(self, validator):
        row = {"id": "1", "opened": "01/02/2024", "email": "a@example.com"}
        assert validator.validate_row(row, MAPPINGS, 1) == []

    def test_required_field_missing(self, validator):
        issues = validator.validate_row({"id": "  ", "opened": "", "email": ""}, MAPPINGS, 4)

        assert len(issues) == 1
        assert issues[0].row_number == 4
        assert issues[0].field == "id"
        assert issues[0].message == REQUIRED_FIELD_MESSAGE
        assert issues[0].severity == Severity.ERROR

    def test_absent_column_counts_as_empty(self, validator):
        issues = validator.validate_row({}, MAPPINGS, 1)
        assert [i.field for i in issues] == ["id"]

    def test_transform_issues_in_mapping_order(self, validator):
        row = {"id": "1", "opened": "2024-01-02", "email": "nobody"}
        issues = validator.validate_row(row, MAPPINGS, 2)

        assert [(i.field, i.severity) for i in issues] == [
            ("opened", Severity.ERROR),
            ("email", Severity.WARNING),
        ]
        assert issues[0].message == "Invalid date format: 2024-01-02"
        assert issues[0].value == "2024-01-02"

    def test_unmapped_columns_are_still_checked(self, validator):
        mappings = [FieldMapping("count", transform=TransformFunction.PARSE_NUMBER, required=True)]
        issues = validator.validate_row({"count": "many"}, mappings, 1)
        assert issues[0].message == "Invalid number: many"


class TestValidateRows:
    def test_counts(self, validator):
        rows = [
            {"id": "1", "opened": "01/02/2024", "email": "a@example.com"},
            {"id": "", "opened": "01/02/2024", "email": ""},
            {"id": "3", "opened": "", "email": "nobody"},
        ]
        summary = validator.validate_rows(rows, MAPPINGS)

        assert summary.total_rows == 3
        assert summary.valid_rows == 2
        assert summary.error_rows == 1
        assert summary.warning_count == 1
        assert [e.row_number for e in summary.errors] == [2, 3]
        assert summary.truncated is False

    def test_issue_list_is_capped(self):
        validator = RowValidator(TransformEngine(), max_errors=3)
        rows = [{"id": ""} for _ in range(5)]
        summary = validator.validate_rows(rows, MAPPINGS)

        assert summary.error_rows == 5
        assert len(summary.errors) == 3
        assert summary.truncated is True

    def test_exact_cap_is_not_truncated(self):
        validator = RowValidator(TransformEngine(), max_errors=2)
        summary = validator.validate_rows([{"id": ""}, {"id": ""}], MAPPINGS)
        assert len(summary.errors) == 2
        assert summary.truncated is False

    def test_progress_checkpoints(self):
        validator = RowValidator(TransformEngine(), progress_interval=2)
        calls = []
        rows = iter([{"id": str(i)} for i in range(5)])

        validator.validate_rows(rows, MAPPINGS, total_rows=5, on_progress=lambda p, s: calls.append((p, s)))

        assert calls == [
            (0, "Validating row 1 of 5"),
            (40, "Validating row 3 of 5"),
            (80, "Validating row 5 of 5"),
        ]

    def test_empty_input(self, validator):
        summary = validator.validate_rows([], MAPPINGS)
        assert summary.total_rows == 0
        assert summary.errors == []

    def test_to_dict(self, validator):
        data = validator.validate_rows([{"id": ""}], MAPPINGS).to_dict()
        assert data["error_rows"] == 1
        assert data["errors"][0]["severity"] == "error"
