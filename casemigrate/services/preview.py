"""Preview generation: apply a mapping set to a bounded row sample."""

import logging
from itertools import islice
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.schema import FieldMapping
from ..models.record import PreviewRow, empty_buckets
from .transformer import TransformEngine, get_transform_engine
from .validator import RowValidator, is_empty

logger = logging.getLogger(__name__)


class PreviewGenerator:
    """Builds entity-bucketed previews of transformed rows."""

    def __init__(
        self,
        transform_engine: Optional[TransformEngine] = None,
        validator: Optional[RowValidator] = None,
        limit: int = 10,
    ):
        self.transform_engine = transform_engine or get_transform_engine()
        self.validator = validator or RowValidator(self.transform_engine)
        self.limit = limit

    def transform_row(
        self,
        row: Dict[str, Any],
        mappings: Sequence[FieldMapping],
    ) -> Dict[str, Dict[str, Any]]:
        """
        Apply mappings to one row.

        Unmapped columns are ignored. Empty results fall back to the
        mapping's default value and are omitted when still empty.
        """
        result = empty_buckets()

        for mapping in mappings:
            if not mapping.target_field:
                continue

            value = row.get(mapping.source_field)
            if value is not None and mapping.transform is not None:
                value = self.transform_engine.apply(value, mapping.transform, mapping.transform_params)

            if is_empty(value) and mapping.default_value is not None:
                value = mapping.default_value
            if is_empty(value):
                continue

            result[mapping.target_entity.bucket][mapping.target_field] = value

        return result

    def generate(
        self,
        rows: Iterable[Dict[str, Any]],
        mappings: Sequence[FieldMapping],
        limit: Optional[int] = None,
    ) -> List[PreviewRow]:
        """
        Preview the first ``limit`` rows.

        Args:
            rows: Source rows in file order
            mappings: Confirmed mapping set
            limit: Number of rows (defaults to the generator's limit)

        Returns:
            One PreviewRow per sampled row, with validation issues as text
        """
        limit = self.limit if limit is None else limit
        preview = []

        for i, row in enumerate(islice(rows, limit)):
            row_number = i + 1
            issues = self.validator.validate_row(row, mappings, row_number)
            preview.append(PreviewRow(
                row_number=row_number,
                source_data=dict(row),
                transformed_data=self.transform_row(row, mappings),
                issues=[f"{issue.field}: {issue.message}" for issue in issues],
            ))

        logger.debug(f"Generated preview of {len(preview)} rows")
        return preview
