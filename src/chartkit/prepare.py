from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from chartkit.records import RawRecord, has_field

LOGGER = logging.getLogger(__name__)

MAX_RECORDS = 2000


@dataclass(frozen=True)
class PreparedBatch:
    data: tuple[RawRecord, ...]
    truncated: bool
    original_count: int
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: str) -> PreparedBatch:
        return cls(data=(), truncated=False, original_count=0, error=error)


def _is_record_sequence(records: Any) -> bool:
    if isinstance(records, (str, bytes, Mapping)):
        return False
    return isinstance(records, Sequence)


def validate_data(records: Any) -> str | None:
    """Return an error message for unusable input, or ``None`` when it is a non-empty sequence."""
    if records is None:
        return "Data is required"
    if not _is_record_sequence(records):
        return "Data must be an array"
    if len(records) == 0:
        return "Data array is empty"
    return None


def validate_fields(
    records: Sequence[RawRecord],
    required_fields: Iterable[str] | None,
) -> list[str]:
    """Return each required field missing from at least one record, once, in request order."""
    if not required_fields:
        return []
    requested = list(dict.fromkeys(field for field in required_fields if field))
    missing = {
        field
        for record in records
        for field in requested
        if not has_field(record, field)
    }
    return [field for field in requested if field in missing]


def truncate_data(records: Sequence[RawRecord], limit: int = MAX_RECORDS) -> PreparedBatch:
    limit = max(int(limit), 0)
    original_count = len(records)
    truncated = original_count > limit
    kept = records[:limit] if truncated else records
    return PreparedBatch(data=tuple(kept), truncated=truncated, original_count=original_count)


def prepare_data(
    records: Any,
    required_fields: Iterable[str] | None = None,
    limit: int = MAX_RECORDS,
) -> PreparedBatch:
    """Validate shape, truncate to ``limit``, then check required fields on the kept rows.

    Fields are validated after truncation, so malformed rows beyond the limit never
    count toward the missing-field error.
    """
    shape_error = validate_data(records)
    if shape_error is not None:
        return PreparedBatch.failed(shape_error)

    batch = truncate_data(records, limit=limit)
    missing = validate_fields(batch.data, required_fields)
    if missing:
        return PreparedBatch.failed(f"Missing required fields: {', '.join(missing)}")

    if batch.truncated:
        LOGGER.info("Truncated %s records to %s", batch.original_count, len(batch.data))
    return batch
