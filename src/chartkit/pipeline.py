from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np

from chartkit.aggregate import AggregatedPoint, Operation, aggregate
from chartkit.config import AppConfig
from chartkit.errors import DataSourceError, InputShapeError
from chartkit.flows import MAX_NODES, GraphData, SankeyData, build_graph_data, build_sankey_data
from chartkit.gauge import GaugeReading, read_gauge
from chartkit.hierarchy import HierarchyNode, build_hierarchy
from chartkit.prepare import MAX_RECORDS, PreparedBatch, prepare_data
from chartkit.records import RawRecord, to_number_or_zero
from chartkit.series import ScatterPoint, extract_values, scatter_points
from chartkit.stats import CorrelationResult, Statistics, correlate, describe, regress

LOGGER = logging.getLogger(__name__)

QUERY_ERROR_LABEL = "Query Error"
NO_SOURCE_MESSAGE = "No data source provided. Set records or a query."


class DataSource(Protocol):
    async def fetch(self, query: str) -> list[RawRecord]: ...


class StatisticsService(Protocol):
    async def statistics(self, query: str, value_field: str) -> Mapping[str, Any]: ...

    async def correlation(
        self, query: str, x_field: str, y_field: str
    ) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    variant: str = "warning"


@dataclass(frozen=True)
class SelectionEvent:
    label: str
    value: Any
    record: RawRecord | None = None


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class SelectionSink(Protocol):
    def select(self, event: SelectionEvent) -> None: ...


@dataclass(frozen=True)
class LoadResult:
    batch: PreparedBatch
    from_query: bool


@dataclass(frozen=True)
class HistogramData:
    values: np.ndarray
    statistics: Statistics
    batch: PreparedBatch


@dataclass(frozen=True)
class ScatterData:
    points: list[ScatterPoint]
    groups: list[str]
    correlation: CorrelationResult | None
    batch: PreparedBatch


@dataclass(frozen=True)
class AggregatedData:
    points: list[AggregatedPoint]
    batch: PreparedBatch
    operation: Operation = field(default=Operation.SUM)


def _error_message(exc: BaseException) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return str(exc)


def truncation_notice(batch: PreparedBatch) -> Notification:
    return Notification(
        title="Data Truncated",
        message=f"Displaying first {len(batch.data):,} of {batch.original_count:,} records",
        variant="warning",
    )


async def load_records(
    records: Sequence[RawRecord] | None,
    query: str | None,
    source: DataSource | None,
) -> tuple[list[RawRecord], bool]:
    """Prefer in-memory records, else run ``query``; returns the rows and whether a query ran."""
    if records:
        return list(records), False
    if query and source is not None:
        try:
            rows = await source.fetch(query)
        except Exception as exc:
            raise DataSourceError(f"{QUERY_ERROR_LABEL}: {_error_message(exc)}") from exc
        return list(rows or []), True
    raise DataSourceError(NO_SOURCE_MESSAGE)


async def load_prepared(
    records: Sequence[RawRecord] | None,
    query: str | None,
    source: DataSource | None,
    required_fields: Sequence[str] = (),
    limit: int = MAX_RECORDS,
    notifications: NotificationSink | None = None,
) -> LoadResult:
    """Load and prepare one batch; an invalid batch aborts the cycle with ``InputShapeError``."""
    rows, from_query = await load_records(records, query, source)
    batch = prepare_data(rows, required_fields=required_fields, limit=limit)
    if not batch.valid:
        raise InputShapeError(batch.error)
    if batch.truncated and notifications is not None:
        notifications.notify(truncation_notice(batch))
    return LoadResult(batch=batch, from_query=from_query)


def statistics_from_payload(payload: Mapping[str, Any]) -> Statistics:
    return Statistics(
        mean=to_number_or_zero(payload.get("mean")),
        median=to_number_or_zero(payload.get("median")),
        std_dev=to_number_or_zero(payload.get("stdDev", payload.get("std_dev"))),
        count=int(to_number_or_zero(payload.get("count"))),
        min=to_number_or_zero(payload.get("min")),
        max=to_number_or_zero(payload.get("max")),
    )


async def resolve_statistics(
    values: np.ndarray,
    query: str | None,
    service: StatisticsService | None,
    value_field: str,
) -> Statistics:
    """Server-side statistics when available; any failure falls back to local computation."""
    if query and service is not None:
        try:
            payload = await service.statistics(query, value_field)
            return statistics_from_payload(payload)
        except Exception as exc:
            LOGGER.warning("Server statistics failed, falling back to local computation: %s", exc)
    return describe(values)


async def resolve_correlation(
    points: Sequence[ScatterPoint],
    query: str | None,
    service: StatisticsService | None,
    x_field: str,
    y_field: str,
) -> CorrelationResult:
    pairs = [(point.x, point.y) for point in points]
    if query and service is not None:
        try:
            payload = await service.correlation(query, x_field, y_field)
            raw_r = payload.get("r")
            if payload.get("slope") is not None and payload.get("intercept") is not None:
                slope = to_number_or_zero(payload.get("slope"))
                intercept = to_number_or_zero(payload.get("intercept"))
            else:
                slope, intercept = regress(pairs)
            return CorrelationResult(
                r=None if raw_r is None else float(raw_r),
                slope=slope,
                intercept=intercept,
                count=int(to_number_or_zero(payload.get("count"))) or len(pairs),
            )
        except Exception as exc:
            LOGGER.warning("Server correlation failed, falling back to local computation: %s", exc)
    return correlate(pairs)


class ChartDataLoader:
    """One load cycle for a chart: fetch, prepare, reduce.

    Input-shape problems and source failures abort the cycle with an exception;
    truncation only raises a non-blocking notification.
    """

    def __init__(
        self,
        source: DataSource | None = None,
        statistics_service: StatisticsService | None = None,
        notifications: NotificationSink | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.source = source
        self.statistics_service = statistics_service
        self.notifications = notifications
        self.config = config or AppConfig()

    async def load(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        required_fields: Sequence[str] = (),
        limit: int | None = None,
    ) -> LoadResult:
        return await load_prepared(
            records,
            query,
            self.source,
            required_fields=[*self.config.data.required_fields, *required_fields],
            limit=limit or self.config.data.max_records,
            notifications=self.notifications,
        )

    async def load_values(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        value_field: str,
    ) -> HistogramData:
        result = await self.load(records, query, required_fields=[value_field])
        values = extract_values(result.batch.data, value_field)
        if values.size == 0:
            raise InputShapeError("No valid numeric values found in data")
        statistics = await resolve_statistics(
            values,
            query if result.from_query else None,
            self.statistics_service,
            value_field,
        )
        return HistogramData(values=values, statistics=statistics, batch=result.batch)

    async def load_points(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        x_field: str,
        y_field: str,
        group_field: str | None = None,
        id_field: str = "Id",
        with_correlation: bool = True,
    ) -> ScatterData:
        result = await self.load(records, query, required_fields=[x_field, y_field])
        points, groups = scatter_points(
            result.batch.data, x_field, y_field, id_field=id_field, group_field=group_field
        )
        if not points:
            raise InputShapeError("No valid data points after processing")
        correlation = None
        if with_correlation:
            correlation = await resolve_correlation(
                points,
                query if result.from_query else None,
                self.statistics_service,
                x_field,
                y_field,
            )
        return ScatterData(
            points=points, groups=groups, correlation=correlation, batch=result.batch
        )

    async def load_aggregated(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        group_field: str,
        value_field: str | None,
        operation: Operation | str = Operation.SUM,
        limit: int | None = None,
    ) -> AggregatedData:
        if not group_field:
            raise InputShapeError("group_field is required")
        op = Operation.parse(operation)
        required = [group_field]
        if op is not Operation.COUNT and value_field:
            required.append(value_field)
        result = await self.load(records, query, required_fields=required, limit=limit)
        points = aggregate(result.batch.data, group_field, value_field, op)
        return AggregatedData(points=points, batch=result.batch, operation=op)

    async def load_sankey(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        source_field: str,
        target_field: str,
        value_field: str | None = None,
    ) -> SankeyData:
        required = [source_field, target_field] + ([value_field] if value_field else [])
        result = await self.load(records, query, required_fields=required)
        data = build_sankey_data(result.batch.data, source_field, target_field, value_field)
        if not data.nodes:
            raise InputShapeError("No nodes generated from data")
        if not data.links:
            raise InputShapeError("No links generated from data")
        return data

    async def load_hierarchy(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        group_field: str,
        value_field: str | None,
        operation: Operation | str = Operation.SUM,
        secondary_group_field: str | None = None,
    ) -> HierarchyNode:
        result = await self.load(records, query, required_fields=[group_field])
        root = build_hierarchy(
            result.batch.data,
            group_field,
            value_field,
            operation,
            secondary_group_field=secondary_group_field,
        )
        if not root.children:
            raise InputShapeError("No data after building hierarchy")
        return root

    async def load_graph(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        source_field: str,
        target_field: str,
        **node_fields: str | None,
    ) -> GraphData:
        result = await self.load(
            records,
            query,
            required_fields=[source_field, target_field],
            limit=MAX_NODES * 2,
        )
        graph = build_graph_data(result.batch.data, source_field, target_field, **node_fields)
        if not graph.nodes:
            raise InputShapeError("No nodes generated from data")
        return graph

    async def load_gauge(
        self,
        records: Sequence[RawRecord] | None,
        query: str | None,
        value_field: str,
        advanced: Mapping[str, Any] | None = None,
        min_value: float | None = None,
        max_value: float | None = None,
    ) -> GaugeReading:
        if not value_field:
            raise InputShapeError("valueField is required")
        result = await self.load(records, query)
        theme_colors = self.config.theme.custom_colors
        return read_gauge(
            result.batch.data,
            value_field,
            advanced={"customColors": theme_colors, **(advanced or {})},
            theme=self.config.theme.name,
            min_value=min_value,
            max_value=max_value,
        )


def emit_selection(
    sink: SelectionSink | None,
    label: str,
    value: Any,
    record: RawRecord | None = None,
) -> SelectionEvent:
    event = SelectionEvent(label=label, value=value, record=record)
    if sink is not None:
        sink.select(event)
    return event
