"""Tests for the transform engine."""

from datetime import date

import pytest

from casemigrate.models.record import Severity
from casemigrate.models.schema import TransformFunction as T
from casemigrate.services.transformer import TransformEngine


@pytest.fixture
def engine():
    return TransformEngine()


class TestApply:
    def test_text_transforms(self, engine):
        assert engine.apply("abc", T.UPPERCASE) == "ABC"
        assert engine.apply("ABC", T.LOWERCASE) == "abc"
        assert engine.apply("  padded ", T.TRIM) == "padded"

    def test_strict_date_variants(self, engine):
        assert engine.apply("02/03/2024", T.PARSE_DATE_US) == date(2024, 2, 3)
        assert engine.apply("02/03/2024", T.PARSE_DATE_EU) == date(2024, 3, 2)
        assert engine.apply("2024-01-15", T.PARSE_DATE_ISO) == date(2024, 1, 15)

    def test_strict_dates_reject_other_shapes(self, engine):
        assert engine.apply("2024-01-15", T.PARSE_DATE_US) is None
        assert engine.apply("2024-1-15", T.PARSE_DATE_ISO) is None
        assert engine.apply("15.01.2024", T.PARSE_DATE_EU) is None

    def test_impossible_calendar_date(self, engine):
        assert engine.apply("02/30/2024", T.PARSE_DATE_US) is None
        assert engine.apply("31/04/2024", T.PARSE_DATE_EU) is None

    def test_auto_date(self, engine):
        parsed = engine.apply("2024-01-15", T.PARSE_DATE)
        assert parsed.date() == date(2024, 1, 15)
        assert engine.apply("garbage", T.PARSE_DATE) is None

    def test_boolean(self, engine):
        assert engine.apply("Yes", T.PARSE_BOOLEAN) is True
        assert engine.apply(" y ", T.PARSE_BOOLEAN) is True
        assert engine.apply("1", T.PARSE_BOOLEAN) is True
        assert engine.apply("no", T.PARSE_BOOLEAN) is False
        assert engine.apply("", T.PARSE_BOOLEAN) is False

    def test_number(self, engine):
        assert engine.apply("$1,234.50", T.PARSE_NUMBER) == 1234.5
        assert engine.apply("42", T.PARSE_NUMBER) == 42
        assert isinstance(engine.apply("42", T.PARSE_NUMBER), int)
        assert engine.apply("-3.25", T.PARSE_NUMBER) == -3.25
        assert engine.apply("1.2.3", T.PARSE_NUMBER) is None

    def test_number_with_no_digits_is_zero(self, engine):
        assert engine.apply("N/A", T.PARSE_NUMBER) == 0
        assert engine.apply("abc", T.PARSE_NUMBER) == 0
        assert engine.validate("N/A", T.PARSE_NUMBER) == ("Invalid number: N/A", Severity.ERROR)

    def test_split_comma(self, engine):
        assert engine.apply("a, b,,c ", T.SPLIT_COMMA) == ["a", "b", "c"]
        assert engine.apply("", T.SPLIT_COMMA) == []

    def test_extract_email(self, engine):
        assert engine.apply("Contact: a.b@example.com please", T.EXTRACT_EMAIL) == "a.b@example.com"
        assert engine.apply("no address here", T.EXTRACT_EMAIL) is None

    def test_extract_phone(self, engine):
        assert engine.apply("Call (555) 123-4567", T.EXTRACT_PHONE) == "5551234567"
        assert engine.apply("none", T.EXTRACT_PHONE) is None

    def test_map_severity(self, engine):
        assert engine.apply("Critical", T.MAP_SEVERITY) == "HIGH"
        assert engine.apply("moderate", T.MAP_SEVERITY) == "MEDIUM"
        assert engine.apply("minor", T.MAP_SEVERITY) == "LOW"
        assert engine.apply("unheard of", T.MAP_SEVERITY) == "MEDIUM"

    def test_map_status(self, engine):
        assert engine.apply("In Progress", T.MAP_STATUS) == "OPEN"
        assert engine.apply("Resolved", T.MAP_STATUS) == "CLOSED"
        assert engine.apply("received", T.MAP_STATUS) == "NEW"
        assert engine.apply("weird", T.MAP_STATUS) == "NEW"

    def test_map_category_keeps_text(self, engine):
        assert engine.apply("Fraud", T.MAP_CATEGORY) == "Fraud"

    def test_string_identifiers(self, engine):
        assert engine.apply("abc", "UPPERCASE") == "ABC"

    def test_unknown_and_missing_rules_pass_through(self, engine):
        assert engine.apply("value", "NOT_A_RULE") == "value"
        assert engine.apply("value", None) == "value"

    def test_custom_rule(self, engine):
        engine.register_transform("REVERSE", lambda value, params: str(value)[::-1])
        assert engine.apply("abc", "REVERSE") == "cba"


class TestValidate:
    def test_invalid_date_is_error(self, engine):
        assert engine.validate("13/45/2024", T.PARSE_DATE_US) == (
            "Invalid date format: 13/45/2024",
            Severity.ERROR,
        )

    def test_valid_date(self, engine):
        assert engine.validate("12/31/2024", T.PARSE_DATE_US) is None
        assert engine.validate("2024-12-31", T.PARSE_DATE) is None

    def test_number_checks_raw_value(self, engine):
        assert engine.validate("12.5", T.PARSE_NUMBER) is None
        assert engine.validate("$1,234", T.PARSE_NUMBER) == ("Invalid number: $1,234", Severity.ERROR)
        assert engine.validate("1_000", T.PARSE_NUMBER) is not None
        assert engine.validate("nan", T.PARSE_NUMBER) is not None

    def test_missing_email_is_warning(self, engine):
        assert engine.validate("none", T.EXTRACT_EMAIL) == (
            "No valid email found in: none",
            Severity.WARNING,
        )
        assert engine.validate("x@example.org", T.EXTRACT_EMAIL) is None

    def test_rules_without_validate_mode_always_pass(self, engine):
        assert engine.validate("anything", T.MAP_STATUS) is None
        assert engine.validate("anything", "NOT_A_RULE") is None
        assert engine.validate("anything", None) is None

    def test_custom_validator(self, engine):
        engine.register_transform(
            "EVEN",
            lambda value, params: int(value),
            validator=lambda value, name: None if int(value) % 2 == 0 else ("Odd", Severity.WARNING),
        )
        assert engine.validate("4", "EVEN") is None
        assert engine.validate("3", "EVEN") == ("Odd", Severity.WARNING)
