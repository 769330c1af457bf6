from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import pandas as pd

from chartkit.aggregate import Operation, aggregate, reduce_groups
from chartkit.errors import InputShapeError
from chartkit.records import RawRecord, get_field, to_label, to_number_or_zero

ROOT_NAME = "Root"
UNNAMED = "Unnamed"


@dataclass(frozen=True)
class HierarchyNode:
    name: str
    value: float | None = None
    children: tuple[HierarchyNode, ...] = ()
    data: Mapping[str, Any] | None = None

    @property
    def total(self) -> float:
        """Leaf value, or the sum of the subtree for branches."""
        if self.children:
            return float(sum(child.total for child in self.children))
        return float(self.value or 0.0)

    @property
    def is_leaf(self) -> bool:
        return not self.children


def build_hierarchy(
    records: Sequence[RawRecord] | None,
    group_by_field: str,
    value_field: str | None,
    operation: Operation | str = Operation.SUM,
    secondary_group_field: str | None = None,
) -> HierarchyNode:
    """Group flat records into a one- or two-level tree under ``Root``.

    With a secondary field, children are ordered by value within each primary
    group and primary groups by their subtree total; both sorts are stable.
    """
    if not secondary_group_field:
        points = aggregate(records, group_by_field, value_field, operation)
        return HierarchyNode(
            name=ROOT_NAME,
            children=tuple(HierarchyNode(name=p.label, value=p.value) for p in points),
        )
    if not records:
        return HierarchyNode(name=ROOT_NAME)

    frame = pd.DataFrame(
        {
            "label": [to_label(get_field(record, group_by_field)) for record in records],
            "sublabel": [
                to_label(get_field(record, secondary_group_field)) for record in records
            ],
            "amount": [
                to_number_or_zero(get_field(record, value_field)) if value_field else 0.0
                for record in records
            ],
        }
    )
    grouped = (
        frame.groupby(["label", "sublabel"], sort=False)
        .agg(total=("amount", "sum"), count=("amount", "size"))
        .reset_index()
    )
    grouped["value"] = reduce_groups(grouped, operation)

    primary_totals = (
        grouped.groupby("label", sort=False)["value"]
        .sum()
        .sort_values(ascending=False, kind="mergesort")
    )
    children = []
    for label in primary_totals.index:
        members = grouped[grouped["label"] == label].sort_values(
            "value", ascending=False, kind="mergesort"
        )
        children.append(
            HierarchyNode(
                name=str(label),
                children=tuple(
                    HierarchyNode(name=str(sublabel), value=float(value))
                    for sublabel, value in zip(members["sublabel"], members["value"])
                ),
            )
        )
    return HierarchyNode(name=ROOT_NAME, children=tuple(children))


def _normalise(node: Any) -> HierarchyNode:
    raw = node if isinstance(node, Mapping) else {}
    children = raw.get("children")
    if isinstance(children, list):
        return HierarchyNode(
            name=str(raw.get("name") or UNNAMED),
            children=tuple(_normalise(child) for child in children),
            data=raw,
        )
    return HierarchyNode(
        name=str(raw.get("name") or UNNAMED),
        value=to_number_or_zero(raw.get("value")) if "value" in raw else None,
        data=raw,
    )


def validate_hierarchy(data: Any) -> HierarchyNode:
    """Normalise a pre-built ``{"name", "children" | "value"}`` tree."""
    if not isinstance(data, Mapping):
        raise InputShapeError("Hierarchy data must be an object")
    return _normalise(data)


def leaves(node: HierarchyNode) -> list[HierarchyNode]:
    if node.is_leaf:
        return [node]
    return [leaf for child in node.children for leaf in leaves(child)]
