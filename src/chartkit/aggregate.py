from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import pandas as pd

from chartkit.records import RawRecord, get_field, to_label, to_number_or_zero


class Operation(str, Enum):
    SUM = "Sum"
    COUNT = "Count"
    AVERAGE = "Average"

    @classmethod
    def parse(cls, value: Any) -> Operation:
        """Unknown operations reduce as ``Count``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.COUNT


@dataclass(frozen=True)
class AggregatedPoint:
    label: str
    value: float


AGGREGATE_COLUMNS = ["label", "value", "count"]


def reduce_groups(grouped: pd.DataFrame, operation: Operation | str) -> pd.Series:
    """Per-group value from the ``total`` and ``count`` columns of a grouped frame."""
    op = Operation.parse(operation)
    if op is Operation.SUM:
        return grouped["total"].astype(float)
    if op is Operation.AVERAGE:
        return grouped["total"] / grouped["count"]
    return grouped["count"].astype(float)


def aggregate_frame(
    records: Sequence[RawRecord] | None,
    group_by_field: str | None,
    value_field: str | None,
    operation: Operation | str,
) -> pd.DataFrame:
    """Group records by ``group_by_field`` and reduce each group.

    Groups keep first-seen order and the final descending sort by value is stable,
    so ties stay in first-seen order.
    """
    if not records or not group_by_field:
        return pd.DataFrame(columns=AGGREGATE_COLUMNS)

    frame = pd.DataFrame(
        {
            "label": [to_label(get_field(record, group_by_field)) for record in records],
            "amount": [
                to_number_or_zero(get_field(record, value_field)) if value_field else 0.0
                for record in records
            ],
        }
    )
    grouped = (
        frame.groupby("label", sort=False)
        .agg(total=("amount", "sum"), count=("amount", "size"))
        .reset_index()
    )
    grouped["value"] = reduce_groups(grouped, operation)

    ordered = grouped.sort_values("value", ascending=False, kind="mergesort")
    return ordered[AGGREGATE_COLUMNS].reset_index(drop=True)


def aggregate(
    records: Sequence[RawRecord] | None,
    group_by_field: str | None,
    value_field: str | None,
    operation: Operation | str,
) -> list[AggregatedPoint]:
    frame = aggregate_frame(records, group_by_field, value_field, operation)
    return [
        AggregatedPoint(label=str(label), value=float(value))
        for label, value in zip(frame["label"], frame["value"])
    ]


def total(points: Sequence[AggregatedPoint]) -> float:
    return float(sum(point.value for point in points))


def with_shares(points: Sequence[AggregatedPoint]) -> list[dict[str, Any]]:
    """Attach each point's share of the total, as used by part-to-whole charts."""
    grand_total = total(points)
    return [
        {
            "label": point.label,
            "value": point.value,
            "share": point.value / grand_total if grand_total > 0 else 0.0,
        }
        for point in points
    ]
