from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from chartkit.errors import InputShapeError
from chartkit.records import RawRecord, get_field, is_missing, to_label, to_number_or_zero

LOGGER = logging.getLogger(__name__)

MAX_NODES = 500
UNKNOWN_NODE = "Unknown"


@dataclass(frozen=True)
class FlowNode:
    name: str


@dataclass(frozen=True)
class FlowLink:
    source: int
    target: int
    value: float


@dataclass(frozen=True)
class SankeyData:
    nodes: tuple[FlowNode, ...]
    links: tuple[FlowLink, ...]

    @property
    def total(self) -> float:
        return float(sum(link.value for link in self.links))


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    size: float = 1.0
    type: Any = None
    record_id: Any = None
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GraphLink:
    source: str
    target: str
    weight: float = 1.0


@dataclass(frozen=True)
class GraphData:
    nodes: tuple[GraphNode, ...]
    links: tuple[GraphLink, ...]

    @property
    def groups(self) -> list[Any]:
        """Distinct truthy node types in first-seen order, used for colouring."""
        return list(dict.fromkeys(node.type for node in self.nodes if node.type))


def _weight_or_one(value: Any) -> float:
    return to_number_or_zero(value) or 1.0


def _node_label(value: Any, default: str) -> str:
    return default if is_missing(value) else to_label(value)


def build_sankey_data(
    records: Iterable[RawRecord],
    source_field: str,
    target_field: str,
    value_field: str | None = None,
) -> SankeyData:
    """Merge flat source/target rows into indexed nodes and summed links.

    Nodes and links keep first-seen order. Zero or unparseable values weigh 1.
    """
    rows = list(records)
    if not rows:
        return SankeyData(nodes=(), links=())

    frame = pd.DataFrame(
        {
            "source": [_node_label(get_field(row, source_field), UNKNOWN_NODE) for row in rows],
            "target": [_node_label(get_field(row, target_field), UNKNOWN_NODE) for row in rows],
            "value": [
                _weight_or_one(get_field(row, value_field)) if value_field else 1.0
                for row in rows
            ],
        }
    )
    names = pd.unique(frame[["source", "target"]].to_numpy().ravel())
    index = {name: position for position, name in enumerate(names)}
    summed = frame.groupby(["source", "target"], sort=False)["value"].sum().reset_index()

    return SankeyData(
        nodes=tuple(FlowNode(name=str(name)) for name in names),
        links=tuple(
            FlowLink(source=index[source], target=index[target], value=float(value))
            for source, target, value in summed.itertuples(index=False)
        ),
    )


def _link_end(end: Any, node_index: Mapping[Any, int], node_count: int) -> int | None:
    if isinstance(end, bool):
        return None
    if isinstance(end, int):
        return end if 0 <= end < node_count else None
    if isinstance(end, str):
        return node_index.get(end)
    if isinstance(end, Mapping) and end.get("name"):
        return node_index.get(end["name"])
    return None


def validate_sankey_data(data: Any) -> SankeyData:
    """Normalise a pre-built ``{"nodes": [...], "links": [...]}`` document.

    Links may reference nodes by index, by name or by a node object; links whose
    ends cannot be resolved are dropped with a warning.
    """
    if not isinstance(data, Mapping):
        raise InputShapeError("Sankey data must be an object")
    raw_nodes = data.get("nodes")
    raw_links = data.get("links")
    if not isinstance(raw_nodes, list):
        raise InputShapeError("Sankey data must have a nodes array")
    if not isinstance(raw_links, list):
        raise InputShapeError("Sankey data must have a links array")

    nodes = tuple(
        FlowNode(name=str((isinstance(node, Mapping) and node.get("name")) or f"Node {i}"))
        for i, node in enumerate(raw_nodes)
    )
    node_index = {node.name: position for position, node in enumerate(nodes)}

    links: list[FlowLink] = []
    for link in raw_links:
        if not isinstance(link, Mapping):
            LOGGER.warning("Invalid link reference: %r", link)
            continue
        source = _link_end(link.get("source"), node_index, len(nodes))
        target = _link_end(link.get("target"), node_index, len(nodes))
        if source is None or target is None:
            LOGGER.warning("Invalid link reference: %r", link)
            continue
        links.append(
            FlowLink(source=source, target=target, value=_weight_or_one(link.get("value")))
        )
    return SankeyData(nodes=nodes, links=tuple(links))


def build_graph_data(
    records: Iterable[RawRecord],
    source_field: str,
    target_field: str,
    *,
    node_label_field: str | None = None,
    node_size_field: str | None = None,
    node_type_field: str | None = None,
    node_id_field: str | None = None,
    link_weight_field: str | None = None,
    max_nodes: int = MAX_NODES,
) -> GraphData:
    """Build a node/link graph from relationship rows.

    Source nodes take their label, size, type and record id from the first row
    that introduces them; target-only nodes get defaults. Rows with a blank end
    are skipped, nodes beyond ``max_nodes`` are dropped with their links.
    """
    nodes: dict[str, GraphNode] = {}
    links: list[GraphLink] = []
    for row in records:
        source_value = get_field(row, source_field)
        target_value = get_field(row, target_field)
        source_id = "" if source_value is None else to_label(source_value)
        target_id = "" if target_value is None else to_label(target_value)
        if not source_id or not target_id:
            continue

        if source_id not in nodes:
            label = get_field(row, node_label_field) if node_label_field else None
            nodes[source_id] = GraphNode(
                id=source_id,
                label=str(label) if label else source_id,
                size=_weight_or_one(get_field(row, node_size_field)) if node_size_field else 1.0,
                type=get_field(row, node_type_field) if node_type_field else None,
                record_id=(get_field(row, node_id_field) if node_id_field else None)
                or get_field(row, "Id"),
                data=row,
            )
        if target_id not in nodes:
            nodes[target_id] = GraphNode(id=target_id, label=target_id)

        links.append(
            GraphLink(
                source=source_id,
                target=target_id,
                weight=(
                    _weight_or_one(get_field(row, link_weight_field)) if link_weight_field else 1.0
                ),
            )
        )

    kept = tuple(nodes.values())[: max(max_nodes, 0)]
    kept_ids = {node.id for node in kept}
    return GraphData(
        nodes=kept,
        links=tuple(
            link for link in links if link.source in kept_ids and link.target in kept_ids
        ),
    )


def _first(node: Mapping[str, Any], keys: Sequence[str | None]) -> Any:
    for key in keys:
        if key and node.get(key):
            return node[key]
    return None


def validate_graph_data(
    data: Any,
    *,
    node_id_field: str | None = None,
    node_label_field: str | None = None,
    node_size_field: str | None = None,
    node_type_field: str | None = None,
    link_weight_field: str | None = None,
    max_nodes: int = MAX_NODES,
) -> GraphData:
    """Normalise a pre-built graph document; links are optional."""
    if not isinstance(data, Mapping):
        raise InputShapeError("Graph data must be an object")
    raw_nodes = data.get("nodes")
    if not isinstance(raw_nodes, list):
        raise InputShapeError("Graph data must have a nodes array")
    raw_links = data.get("links") if isinstance(data.get("links"), list) else []

    nodes: list[GraphNode] = []
    for position, raw in enumerate(raw_nodes[: max(max_nodes, 0)]):
        node = raw if isinstance(raw, Mapping) else {}
        nodes.append(
            GraphNode(
                id=str(_first(node, ["id", node_id_field]) or f"node-{position}"),
                label=str(
                    _first(node, ["label", node_label_field, "name"]) or f"Node {position}"
                ),
                size=_weight_or_one(_first(node, ["size", node_size_field])),
                type=_first(node, ["type", node_type_field]),
                record_id=_first(node, ["recordId", "Id", "id"]),
                data=node,
            )
        )
    node_ids = {node.id for node in nodes}

    links: list[GraphLink] = []
    for raw in raw_links:
        if not isinstance(raw, Mapping):
            continue
        ends = []
        for end in (raw.get("source"), raw.get("target")):
            if isinstance(end, Mapping):
                end = end.get("id")
            ends.append(None if end is None else str(end))
        source, target = ends
        if source not in node_ids or target not in node_ids:
            continue
        weight = _first(raw, ["weight", link_weight_field])
        links.append(GraphLink(source=source, target=target, weight=_weight_or_one(weight)))
    return GraphData(nodes=tuple(nodes), links=tuple(links))
