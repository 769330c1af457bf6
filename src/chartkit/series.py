from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Literal

import numpy as np
import pandas as pd

from chartkit.aggregate import AggregatedPoint
from chartkit.records import RawRecord, get_field, is_missing, to_number
from chartkit.stats import clean_values
from chartkit.theme import get_colors

DateFormat = Literal["ISO", "US", "EU"]

DEFAULT_SERIES = "Default"
DEFAULT_GROUP = "default"
OTHER_GROUP = "Other"


@dataclass(frozen=True)
class ScatterPoint:
    x: float
    y: float
    id: Any
    group: str
    record: RawRecord


@dataclass(frozen=True)
class SeriesPoint:
    date: pd.Timestamp
    value: float
    series: str
    record: RawRecord


@dataclass(frozen=True)
class Series:
    name: str
    points: tuple[SeriesPoint, ...]


def extract_values(records: Iterable[RawRecord], field: str) -> np.ndarray:
    """Finite numeric values of ``field``; missing and unparseable cells are dropped."""
    return clean_values(get_field(record, field) for record in records)


def scatter_points(
    records: Iterable[RawRecord],
    x_field: str,
    y_field: str,
    id_field: str = "Id",
    group_field: str | None = None,
) -> tuple[list[ScatterPoint], list[str]]:
    """Return plottable points and the sorted group names present among them."""
    points: list[ScatterPoint] = []
    groups: set[str] = set()
    for record in records:
        raw_x = get_field(record, x_field)
        raw_y = get_field(record, y_field)
        if is_missing(raw_x) or is_missing(raw_y):
            continue
        x = to_number(raw_x)
        y = to_number(raw_y)
        if not (np.isfinite(x) and np.isfinite(y)):
            continue
        if group_field:
            group = str(get_field(record, group_field) or OTHER_GROUP)
        else:
            group = DEFAULT_GROUP
        groups.add(group)
        points.append(
            ScatterPoint(x=x, y=y, id=get_field(record, id_field), group=group, record=record)
        )
    return points, sorted(groups)


def parse_date(value: Any, date_format: DateFormat | str = "ISO") -> pd.Timestamp | None:
    if value is None or value == "" or is_missing(value):
        return None
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return pd.Timestamp(value)

    text = str(value).strip()
    if date_format in ("US", "EU"):
        parts = text.split("/")
        if len(parts) == 3:
            first, second, year = parts
            month, day = (first, second) if date_format == "US" else (second, first)
            try:
                return pd.Timestamp(year=int(year), month=int(month), day=int(day))
            except ValueError:
                return None

    parsed = pd.to_datetime(text, errors="coerce")
    return None if pd.isna(parsed) else pd.Timestamp(parsed)


def time_series(
    records: Iterable[RawRecord],
    date_field: str,
    value_field: str,
    series_field: str | None = None,
    date_format: DateFormat | str = "ISO",
) -> list[Series]:
    """Split records into date-sorted series, in first-seen series order."""
    grouped: dict[str, list[SeriesPoint]] = {}
    for record in records:
        when = parse_date(get_field(record, date_field), date_format)
        raw_value = get_field(record, value_field)
        value = to_number(raw_value)
        if when is None or is_missing(raw_value) or not np.isfinite(value):
            continue
        if series_field:
            name = str(get_field(record, series_field) or DEFAULT_SERIES)
        else:
            name = DEFAULT_SERIES
        grouped.setdefault(name, []).append(
            SeriesPoint(date=when, value=value, series=name, record=record)
        )

    return [
        Series(name=name, points=tuple(sorted(points, key=lambda point: point.date)))
        for name, points in grouped.items()
    ]


def colorize(
    points: Sequence[AggregatedPoint],
    theme: str | None,
    custom_colors: Sequence[str] | None = None,
) -> list[dict[str, Any]]:
    colors = get_colors(theme, len(points), custom_colors)
    return [
        {"label": point.label, "value": point.value, "color": color}
        for point, color in zip(points, colors)
    ]
