"""Command line tool for checking migration files before upload."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from .exceptions import MigrationError
from .extractors import file_extension, get_extractor
from .models.migration import MigrationConfig
from .models.schema import MappingTemplate, SourceType
from .services.detector import SourceFormatDetector
from .services.mapping import FieldMappingEngine
from .services.preview import PreviewGenerator
from .services.schema_registry import get_registry
from .services.transformer import TransformEngine
from .services.validator import RowValidator

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Case Migration Tool - Check exported case files before import"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Detect source format
    detect_parser = subparsers.add_parser("detect", help="Detect the source system of a file")
    detect_parser.add_argument("--input", required=True, help="Path to CSV or XLSX file")
    detect_parser.add_argument("--source-type", help="Source type hint")

    # Suggest mappings
    suggest_parser = subparsers.add_parser("suggest", help="Suggest field mappings for a file")
    suggest_parser.add_argument("--input", required=True, help="Path to CSV or XLSX file")
    suggest_parser.add_argument("--source-type", help="Source type (detected when omitted)")
    suggest_parser.add_argument("--output", help="Write the mapping file here")
    suggest_parser.add_argument(
        "--by-synonyms", action="store_true",
        help="Match column names against known synonyms and sample values",
    )

    # Validate rows
    validate_parser = subparsers.add_parser("validate", help="Validate every row against a mapping")
    validate_parser.add_argument("--input", required=True, help="Path to CSV or XLSX file")
    validate_parser.add_argument("--mapping", required=True, help="Path to mapping file")
    validate_parser.add_argument("--max-errors", type=int, default=1000, help="Issues kept in detail")

    # Preview transformation
    preview_parser = subparsers.add_parser("preview", help="Preview transformed rows")
    preview_parser.add_argument("--input", required=True, help="Path to CSV or XLSX file")
    preview_parser.add_argument("--mapping", required=True, help="Path to mapping file")
    preview_parser.add_argument("--limit", type=int, default=10, help="Rows to preview")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    commands = {
        "detect": run_detect,
        "suggest": run_suggest,
        "validate": run_validation,
        "preview": run_preview,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args)
    except (MigrationError, OSError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run_detect(args) -> int:
    """Detect the source type of a file."""
    detector = SourceFormatDetector(config=MigrationConfig())
    detection = detector.detect_file(
        Path(args.input).read_bytes(),
        file_extension(args.input),
        _source_type(args.source_type),
    )
    _print_json(detection.to_dict())
    return 0


def run_suggest(args) -> int:
    """Suggest mappings for a file, optionally saving them as a mapping file."""
    content = Path(args.input).read_bytes()
    extension = file_extension(args.input)

    source_type = _source_type(args.source_type)
    if source_type is None:
        source_type = SourceFormatDetector().detect_file(content, extension).source_type

    extractor = get_extractor(content, extension)
    engine = FieldMappingEngine(get_registry())

    if args.by_synonyms:
        sample = extractor.read_rows(MigrationConfig().sample_rows)
        suggested = engine.suggest_by_synonyms(extractor.headers, sample)
        if args.output:
            _write_template(args, source_type, [s.mapping for s in suggested])
        else:
            _print_json([s.to_dict() for s in suggested])
        return 0

    suggestion = engine.suggest(extractor.headers, source_type)

    if args.output:
        _write_template(args, source_type, suggestion.mappings)
    else:
        _print_json(suggestion.to_dict())
    return 0


def run_validation(args) -> int:
    """Validate a file against a mapping file. Exits non-zero on error rows."""
    template = MappingTemplate.from_json_file(args.mapping)
    FieldMappingEngine(get_registry()).validate_mappings(template.mappings)

    extractor = get_extractor(Path(args.input).read_bytes(), file_extension(args.input))
    validator = RowValidator(TransformEngine(), max_errors=args.max_errors)
    summary = validator.validate_rows(extractor.iter_rows(), template.mappings)

    print("\n=== Validation Summary ===")
    print(f"Rows: {summary.total_rows}")
    print(f"Valid: {summary.valid_rows}")
    print(f"With errors: {summary.error_rows}")
    print(f"Warnings: {summary.warning_count}")

    for issue in summary.errors:
        print(f"  row {issue.row_number} [{issue.severity.value}] {issue.field}: {issue.message}")
    if summary.truncated:
        print(f"  ... issue list capped at {args.max_errors}")

    return 1 if summary.error_rows else 0


def run_preview(args) -> int:
    """Preview the transformation of the first rows of a file."""
    template = MappingTemplate.from_json_file(args.mapping)

    extractor = get_extractor(Path(args.input).read_bytes(), file_extension(args.input))
    generator = PreviewGenerator(TransformEngine(), limit=args.limit)

    for row in generator.generate(extractor.iter_rows(), template.mappings):
        _print_json(row.to_dict())
        print("-" * 40)
    return 0


def _write_template(args, source_type: SourceType, mappings) -> None:
    template = MappingTemplate(
        tenant_id="local",
        source_type=source_type,
        name=Path(args.input).stem,
        mappings=list(mappings),
    )
    with open(args.output, 'w') as f:
        json.dump(template.to_dict(), f, indent=2)
    print(f"Mapping saved to {args.output}")


def _source_type(value: Optional[str]) -> Optional[SourceType]:
    if not value:
        return None
    return SourceType(value.upper())


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


if __name__ == "__main__":
    sys.exit(main())
