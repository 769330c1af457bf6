from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import numpy as np
import pytest

from chartkit.aggregate import AggregatedPoint, Operation
from chartkit.config import AppConfig
from chartkit.errors import DataSourceError, InputShapeError
from chartkit.pipeline import (
    ChartDataLoader,
    Notification,
    SelectionEvent,
    emit_selection,
    load_prepared,
    load_records,
    resolve_correlation,
    resolve_statistics,
    statistics_from_payload,
)
from chartkit.series import ScatterPoint
from chartkit.stats import describe


class FakeSource:
    def __init__(
        self, rows: list[dict[str, Any]] | None = None, error: Exception | None = None
    ) -> None:
        self.rows = rows or []
        self.error = error
        self.queries: list[str] = []

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.rows


class FakeStatisticsService:
    def __init__(self, payload: Mapping[str, Any] | None = None, fail: bool = False) -> None:
        self.payload = payload or {}
        self.fail = fail
        self.calls: list[tuple[str, ...]] = []

    async def statistics(self, query: str, value_field: str) -> Mapping[str, Any]:
        self.calls.append(("statistics", query, value_field))
        if self.fail:
            raise RuntimeError("service unavailable")
        return self.payload

    async def correlation(self, query: str, x_field: str, y_field: str) -> Mapping[str, Any]:
        self.calls.append(("correlation", query, x_field, y_field))
        if self.fail:
            raise RuntimeError("service unavailable")
        return self.payload


class RecordingSink:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self.events: list[SelectionEvent] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def select(self, event: SelectionEvent) -> None:
        self.events.append(event)


class BodyError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__("opaque")
        self.body = {"message": message}


def test_load_records_prefers_in_memory_rows() -> None:
    source = FakeSource([{"a": 2}])

    rows, from_query = asyncio.run(load_records([{"a": 1}], "SELECT a", source))

    assert rows == [{"a": 1}]
    assert not from_query
    assert source.queries == []


def test_load_records_runs_query_when_records_are_empty() -> None:
    source = FakeSource([{"a": 2}])

    rows, from_query = asyncio.run(load_records([], "SELECT a", source))

    assert rows == [{"a": 2}]
    assert from_query
    assert source.queries == ["SELECT a"]


def test_load_records_wraps_source_failures() -> None:
    with pytest.raises(DataSourceError, match="^Query Error: bad field$"):
        asyncio.run(load_records(None, "SELECT x", FakeSource(error=BodyError("bad field"))))
    with pytest.raises(DataSourceError, match="^Query Error: boom$"):
        asyncio.run(load_records(None, "SELECT x", FakeSource(error=RuntimeError("boom"))))


def test_load_records_without_any_source() -> None:
    with pytest.raises(DataSourceError, match="No data source provided"):
        asyncio.run(load_records(None, None, None))


def test_load_prepared_notifies_on_truncation() -> None:
    sink = RecordingSink()
    rows = [{"v": index} for index in range(2500)]

    result = asyncio.run(load_prepared(rows, None, None, ["v"], notifications=sink))

    assert len(result.batch.data) == 2000
    assert sink.notifications == [
        Notification("Data Truncated", "Displaying first 2,000 of 2,500 records", "warning")
    ]


def test_load_prepared_raises_for_invalid_batches() -> None:
    with pytest.raises(InputShapeError, match="Missing required fields: v"):
        asyncio.run(load_prepared([{"a": 1}], None, None, ["v"]))
    with pytest.raises(InputShapeError, match="Data array is empty"):
        asyncio.run(load_prepared(None, "SELECT", FakeSource([]), ["v"]))


def test_resolve_statistics_uses_service_only_for_query_loads() -> None:
    values = np.array([1.0, 2.0, 3.0])
    service = FakeStatisticsService(
        {"mean": 10, "median": 9, "stdDev": 2, "count": 40, "min": 1, "max": 20}
    )

    remote = asyncio.run(resolve_statistics(values, "SELECT v", service, "v"))
    local = asyncio.run(resolve_statistics(values, None, service, "v"))

    assert remote.mean == 10.0
    assert remote.count == 40
    assert local == describe(values)
    assert service.calls == [("statistics", "SELECT v", "v")]


def test_resolve_statistics_falls_back_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    values = np.array([4.0, 6.0])

    with caplog.at_level(logging.WARNING, logger="chartkit.pipeline"):
        stats = asyncio.run(
            resolve_statistics(values, "SELECT v", FakeStatisticsService(fail=True), "v")
        )

    assert stats == describe(values)
    assert "falling back to local computation" in caplog.text


def test_resolve_correlation_remote_and_fallback() -> None:
    points = [
        ScatterPoint(x=float(x), y=float(2 * x), id=None, group="default", record={})
        for x in range(5)
    ]

    remote = asyncio.run(
        resolve_correlation(
            points, "SELECT", FakeStatisticsService({"r": 0.5, "count": 100}), "x", "y"
        )
    )
    fallback = asyncio.run(
        resolve_correlation(points, "SELECT", FakeStatisticsService(fail=True), "x", "y")
    )

    assert remote.r == 0.5
    assert remote.slope == pytest.approx(2.0)
    assert remote.count == 100
    assert fallback.r == pytest.approx(1.0)


def test_loader_aggregates_records() -> None:
    loader = ChartDataLoader()
    records = [{"k": "a", "v": 1}, {"k": "b", "v": 5}, {"k": "a", "v": 2}]

    result = asyncio.run(loader.load_aggregated(records, None, "k", "v", "Sum"))

    assert result.operation is Operation.SUM
    assert result.points == [AggregatedPoint("b", 5.0), AggregatedPoint("a", 3.0)]


def test_loader_count_does_not_require_value_field() -> None:
    result = asyncio.run(
        ChartDataLoader().load_aggregated([{"k": "a"}], None, "k", "v", Operation.COUNT)
    )
    assert result.points == [AggregatedPoint("a", 1.0)]


def test_loader_applies_configured_limit_and_required_fields() -> None:
    config = AppConfig.model_validate({"data": {"max_records": 2, "required_fields": ["Id"]}})
    sink = RecordingSink()
    loader = ChartDataLoader(notifications=sink, config=config)
    records = [{"Id": index, "v": index} for index in range(3)]

    result = asyncio.run(loader.load_values(records, None, "v"))

    assert result.values.tolist() == [0.0, 1.0]
    assert sink.notifications[0].message == "Displaying first 2 of 3 records"
    with pytest.raises(InputShapeError, match="Missing required fields: Id"):
        asyncio.run(loader.load(records=[{"v": 1}], query=None))


def test_loader_rejects_value_sets_without_numbers() -> None:
    with pytest.raises(InputShapeError, match="No valid numeric values"):
        asyncio.run(ChartDataLoader().load_values([{"v": "n/a"}], None, "v"))


def test_loader_points_use_remote_correlation_for_query_loads() -> None:
    source = FakeSource([{"x": 1, "y": 2}, {"x": 2, "y": 4}])
    service = FakeStatisticsService({"r": 0.9, "slope": 3, "intercept": 1})
    loader = ChartDataLoader(source=source, statistics_service=service)

    result = asyncio.run(loader.load_points(None, "SELECT x, y", "x", "y"))

    assert result.correlation is not None
    assert result.correlation.r == 0.9
    assert result.correlation.slope == 3.0
    assert result.groups == ["default"]


def test_emit_selection_forwards_to_sink() -> None:
    sink = RecordingSink()

    event = emit_selection(sink, "West", 12.0, {"Region": "West"})

    assert sink.events == [event]
    assert emit_selection(None, "East", 1.0).label == "East"


def test_statistics_payload_uses_record_number_coercion() -> None:
    stats = statistics_from_payload(
        {"mean": "0x10", "median": None, "stdDev": "2.5", "count": "12", "min": "1_000"}
    )

    assert stats.mean == 16.0
    assert stats.median == 0.0
    assert stats.std_dev == 2.5
    assert stats.count == 12
    assert stats.min == 0.0
    assert stats.max == 0.0


def test_loader_builds_sankey_flows() -> None:
    records = [{"From": "A", "To": "B", "Amount": 3}, {"From": "A", "To": "B", "Amount": 4}]

    data = asyncio.run(ChartDataLoader().load_sankey(records, None, "From", "To", "Amount"))

    assert [node.name for node in data.nodes] == ["A", "B"]
    assert data.total == 7.0
    with pytest.raises(InputShapeError, match="Missing required fields: To"):
        asyncio.run(ChartDataLoader().load_sankey([{"From": "A"}], None, "From", "To"))


def test_loader_hierarchy_requires_children() -> None:
    loader = ChartDataLoader()
    records = [{"Region": "East", "Rep": "Ann", "Amount": 2}]

    root = asyncio.run(
        loader.load_hierarchy(records, None, "Region", "Amount", secondary_group_field="Rep")
    )

    assert root.children[0].children[0].name == "Ann"
    with pytest.raises(InputShapeError, match="Missing required fields: Region"):
        asyncio.run(loader.load_hierarchy([{"Amount": 1}], None, "Region", "Amount"))


def test_loader_graph_rejects_rows_without_usable_ends() -> None:
    loader = ChartDataLoader()

    records = [{"s": "a", "t": "b", "Kind": "x"}]

    graph = asyncio.run(loader.load_graph(records, None, "s", "t", node_type_field="Kind"))

    assert graph.groups == ["x"]
    with pytest.raises(InputShapeError, match="No nodes generated from data"):
        asyncio.run(loader.load_graph([{"s": "", "t": "b"}], None, "s", "t"))


def test_loader_gauge_uses_configured_custom_colors() -> None:
    config = AppConfig.model_validate({"theme": {"custom_colors": ["#abcdef"]}})
    loader = ChartDataLoader(config=config)

    reading = asyncio.run(loader.load_gauge([{"Score": 40}], None, "Score"))

    assert (reading.value, reading.min, reading.max) == (40.0, 0.0, 100.0)
    assert reading.color == "#abcdef"
    with pytest.raises(InputShapeError, match="valueField is required"):
        asyncio.run(loader.load_gauge([{"Score": 40}], None, ""))
