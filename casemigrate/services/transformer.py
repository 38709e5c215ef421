"""Transformation engine for converting raw cell values into typed target values."""

import re
import math
import logging
from typing import Any, Callable, Dict, Optional, Tuple
from datetime import date
from dateutil import parser as date_parser

from ..models.schema import TransformFunction
from ..models.record import Severity

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_PATTERN = re.compile(r"[\d\-\(\)\s\.]+")
SLASH_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
NON_NUMERIC_PATTERN = re.compile(r"[^0-9.\-]")

TRUE_VALUES = frozenset({"yes", "true", "1", "y"})

SEVERITY_BUCKETS = (
    ("HIGH", frozenset({"high", "critical", "3", "urgent"})),
    ("MEDIUM", frozenset({"medium", "moderate", "2", "normal"})),
    ("LOW", frozenset({"low", "1", "minor"})),
)
DEFAULT_SEVERITY = "MEDIUM"

STATUS_BUCKETS = (
    ("NEW", frozenset({"new", "pending", "received"})),
    ("OPEN", frozenset({"open", "in progress", "active", "investigating"})),
    ("CLOSED", frozenset({"closed", "resolved", "complete", "completed"})),
)
DEFAULT_STATUS = "NEW"

# A validation issue: (message, severity)
Issue = Tuple[str, Severity]


class TransformEngine:
    """
    Engine for validating and applying value transformation rules.

    Every rule has two modes:
    - apply: produce the typed output, or None meaning "drop this value"
    - validate: return an (message, severity) issue, or None when the value is acceptable

    Unknown or missing rule identifiers pass values through unchanged and
    never produce validation issues.
    """

    def __init__(self):
        """Initialize the transform engine."""
        self._custom_transforms: Dict[str, Callable] = {}
        self._custom_validators: Dict[str, Callable] = {}
        self._builtin_transforms = self._register_builtin_transforms()
        self._builtin_validators = self._register_builtin_validators()

    def _register_builtin_transforms(self) -> Dict[str, Callable]:
        """Register all built-in apply-mode functions."""
        return {
            TransformFunction.UPPERCASE.value: self._transform_uppercase,
            TransformFunction.LOWERCASE.value: self._transform_lowercase,
            TransformFunction.TRIM.value: self._transform_trim,
            TransformFunction.PARSE_DATE.value: self._transform_parse_date,
            TransformFunction.PARSE_DATE_US.value: self._transform_parse_date_us,
            TransformFunction.PARSE_DATE_EU.value: self._transform_parse_date_eu,
            TransformFunction.PARSE_DATE_ISO.value: self._transform_parse_date_iso,
            TransformFunction.PARSE_BOOLEAN.value: self._transform_parse_boolean,
            TransformFunction.PARSE_NUMBER.value: self._transform_parse_number,
            TransformFunction.SPLIT_COMMA.value: self._transform_split_comma,
            TransformFunction.EXTRACT_EMAIL.value: self._transform_extract_email,
            TransformFunction.EXTRACT_PHONE.value: self._transform_extract_phone,
            TransformFunction.MAP_SEVERITY.value: self._transform_map_severity,
            TransformFunction.MAP_STATUS.value: self._transform_map_status,
            TransformFunction.MAP_CATEGORY.value: self._transform_map_category,
        }

    def _register_builtin_validators(self) -> Dict[str, Callable]:
        """Register the rules that have a validate mode. Others always pass."""
        return {
            TransformFunction.PARSE_DATE.value: self._validate_date,
            TransformFunction.PARSE_DATE_US.value: self._validate_date,
            TransformFunction.PARSE_DATE_EU.value: self._validate_date,
            TransformFunction.PARSE_DATE_ISO.value: self._validate_date,
            TransformFunction.PARSE_NUMBER.value: self._validate_number,
            TransformFunction.EXTRACT_EMAIL.value: self._validate_email,
        }

    def register_transform(
        self,
        name: str,
        func: Callable,
        validator: Optional[Callable] = None,
    ) -> None:
        """Register a custom rule. ``func(value, params)``, ``validator(value, name)``."""
        self._custom_transforms[name] = func
        if validator is not None:
            self._custom_validators[name] = validator

    def apply(self, value: Any, transform: Any, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Apply a rule to a raw value.

        Args:
            value: Raw cell value
            transform: TransformFunction or rule identifier (None = passthrough)
            params: Optional rule parameters

        Returns:
            Transformed value, or None when the value should be dropped
        """
        name = _transform_name(transform)
        if name is None:
            return value

        func = self._custom_transforms.get(name) or self._builtin_transforms.get(name)
        if func is None:
            logger.debug(f"Unknown transform: {name}, passing value through")
            return value

        return func(value, params or {})

    def validate(self, value: Any, transform: Any) -> Optional[Issue]:
        """
        Check a raw value against a rule.

        Returns:
            (message, severity) when the value fails the rule, else None
        """
        name = _transform_name(transform)
        if name is None:
            return None

        validator = self._custom_validators.get(name) or self._builtin_validators.get(name)
        if validator is None:
            return None

        return validator(value, name)

    def parse_date(self, value: Any, transform: Any = TransformFunction.PARSE_DATE) -> Optional[date]:
        """Parse a date using the variant named by ``transform``."""
        variant = TransformFunction.coerce(transform)
        text = str(value).strip()

        if variant == TransformFunction.PARSE_DATE_US:
            match = SLASH_DATE_PATTERN.match(text)
            if match:
                return _calendar_date(match.group(3), match.group(1), match.group(2))
            return None

        if variant == TransformFunction.PARSE_DATE_EU:
            match = SLASH_DATE_PATTERN.match(text)
            if match:
                return _calendar_date(match.group(3), match.group(2), match.group(1))
            return None

        if variant == TransformFunction.PARSE_DATE_ISO:
            match = ISO_DATE_PATTERN.match(text)
            if match:
                return _calendar_date(match.group(1), match.group(2), match.group(3))
            return None

        if not text:
            return None
        try:
            return date_parser.parse(text)
        except (ValueError, OverflowError):
            return None

    # Apply-mode rules

    def _transform_uppercase(self, value: Any, params: Dict) -> Any:
        return str(value).upper()

    def _transform_lowercase(self, value: Any, params: Dict) -> Any:
        return str(value).lower()

    def _transform_trim(self, value: Any, params: Dict) -> Any:
        return str(value).strip()

    def _transform_parse_date(self, value: Any, params: Dict) -> Any:
        return self.parse_date(value, TransformFunction.PARSE_DATE)

    def _transform_parse_date_us(self, value: Any, params: Dict) -> Any:
        return self.parse_date(value, TransformFunction.PARSE_DATE_US)

    def _transform_parse_date_eu(self, value: Any, params: Dict) -> Any:
        return self.parse_date(value, TransformFunction.PARSE_DATE_EU)

    def _transform_parse_date_iso(self, value: Any, params: Dict) -> Any:
        return self.parse_date(value, TransformFunction.PARSE_DATE_ISO)

    def _transform_parse_boolean(self, value: Any, params: Dict) -> Any:
        """Only yes/true/1/y are true. Everything else is false."""
        return str(value).strip().lower() in TRUE_VALUES

    def _transform_parse_number(self, value: Any, params: Dict) -> Any:
        """Strip all but digits, '.' and '-', then parse. Nothing left parses as 0."""
        cleaned = NON_NUMERIC_PATTERN.sub("", str(value))
        if not cleaned:
            return 0
        try:
            number = float(cleaned)
        except ValueError:
            return None
        if number.is_integer():
            return int(number)
        return number

    def _transform_split_comma(self, value: Any, params: Dict) -> Any:
        return [part.strip() for part in str(value).split(",") if part.strip()]

    def _transform_extract_email(self, value: Any, params: Dict) -> Any:
        match = EMAIL_PATTERN.search(str(value))
        return match.group(0) if match else None

    def _transform_extract_phone(self, value: Any, params: Dict) -> Any:
        match = PHONE_PATTERN.search(str(value))
        if not match:
            return None
        digits = re.sub(r"\D", "", match.group(0))
        return digits or None

    def _transform_map_severity(self, value: Any, params: Dict) -> Any:
        lowered = str(value).strip().lower()
        for level, tokens in SEVERITY_BUCKETS:
            if lowered in tokens:
                return level
        return DEFAULT_SEVERITY

    def _transform_map_status(self, value: Any, params: Dict) -> Any:
        lowered = str(value).strip().lower()
        for status, tokens in STATUS_BUCKETS:
            if lowered in tokens:
                return status
        return DEFAULT_STATUS

    def _transform_map_category(self, value: Any, params: Dict) -> Any:
        # No category lookup table yet
        return str(value)

    # Validate-mode rules

    def _validate_date(self, value: Any, name: str) -> Optional[Issue]:
        if self.parse_date(value, name) is None:
            return f"Invalid date format: {value}", Severity.ERROR
        return None

    def _validate_number(self, value: Any, name: str) -> Optional[Issue]:
        """Checks the raw value, not the stripped one apply-mode parses."""
        if not _is_number(value):
            return f"Invalid number: {value}", Severity.ERROR
        return None

    def _validate_email(self, value: Any, name: str) -> Optional[Issue]:
        if not EMAIL_PATTERN.search(str(value)):
            return f"No valid email found in: {value}", Severity.WARNING
        return None


def _transform_name(transform: Any) -> Optional[str]:
    if transform is None or transform == "":
        return None
    if isinstance(transform, TransformFunction):
        return transform.value
    return str(transform)


def _calendar_date(year: str, month: str, day: str) -> Optional[date]:
    """Build a date, or None for impossible dates such as 02/30."""
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return not math.isnan(value)
    text = str(value).strip()
    if not text or "_" in text:
        return False
    try:
        number = float(text)
    except ValueError:
        return False
    return not math.isnan(number)


_default_engine: Optional[TransformEngine] = None


def get_transform_engine() -> TransformEngine:
    """Get the shared transform engine."""
    global _default_engine
    if _default_engine is None:
        _default_engine = TransformEngine()
    return _default_engine
