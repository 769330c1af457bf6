from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

RawRecord = Mapping[str, Any]

NULL_LABEL = "Null"

# Numeric string grammar of spreadsheet and JSON sources: ASCII digits only, no
# digit separators, "Infinity" spelled out, prefixed integers unsigned.
_DECIMAL_RE = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)", re.ASCII)
_PREFIXED_RE = re.compile(r"0(?:[xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)")


def is_missing(value: Any) -> bool:
    """True for ``None`` and float NaN (pandas also reads blank cells as NaN)."""
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)


def has_field(record: RawRecord, field: str) -> bool:
    return isinstance(record, Mapping) and field in record


def get_field(record: RawRecord, field: str) -> Any | None:
    if not isinstance(record, Mapping):
        return None
    value = record.get(field)
    return None if is_missing(value) else value


def to_number(value: Any) -> float:
    """Coerce a scalar to float the way spreadsheet-style sources do.

    Booleans become 0/1 and blank strings become 0. Strings must be plain decimals,
    ``Infinity`` or ``0x``/``0o``/``0b`` integers; anything else is NaN.
    Dates are converted to epoch milliseconds.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp() * 1000.0
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).timestamp() * 1000.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if _PREFIXED_RE.fullmatch(text):
            return float(int(text, 0))
        if _DECIMAL_RE.fullmatch(text):
            return float(text)
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def to_number_or_zero(value: Any) -> float:
    number = to_number(value)
    return 0.0 if math.isnan(number) else number


def to_label(value: Any) -> str:
    """Stringify a group key; missing keys collapse to ``"Null"``.

    Falsy but present keys such as ``0`` or ``""`` keep their own string form.
    """
    if is_missing(value):
        return NULL_LABEL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
