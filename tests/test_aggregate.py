from __future__ import annotations

import pytest

from chartkit.aggregate import (
    AggregatedPoint,
    Operation,
    aggregate,
    aggregate_frame,
    total,
    with_shares,
)


def test_aggregate_sum_orders_descending_and_keeps_ties_in_first_seen_order() -> None:
    records = [
        {"Region": "A", "Amount": 5},
        {"Region": "B", "Amount": 5},
        {"Region": "C", "Amount": 7},
    ]

    points = aggregate(records, "Region", "Amount", Operation.SUM)

    assert points == [
        AggregatedPoint("C", 7.0),
        AggregatedPoint("A", 5.0),
        AggregatedPoint("B", 5.0),
    ]


def test_aggregate_tie_order_follows_first_appearance() -> None:
    records = [{"k": "B", "v": 1}, {"k": "A", "v": 1}]

    points = aggregate(records, "k", "v", "Sum")

    assert [point.label for point in points] == ["B", "A"]


def test_aggregate_count_and_average() -> None:
    records = [
        {"k": "x", "v": 2},
        {"k": "x", "v": 4},
        {"k": "y", "v": 10},
    ]

    counts = aggregate(records, "k", "v", Operation.COUNT)
    averages = aggregate(records, "k", "v", Operation.AVERAGE)

    assert counts == [AggregatedPoint("x", 2.0), AggregatedPoint("y", 1.0)]
    assert averages == [AggregatedPoint("y", 10.0), AggregatedPoint("x", 3.0)]


def test_aggregate_groups_missing_keys_under_null_and_treats_bad_values_as_zero() -> None:
    records = [
        {"k": None, "v": "abc"},
        {"v": 3},
        {"k": "z", "v": None},
    ]

    points = aggregate(records, "k", "v", Operation.SUM)

    assert points == [AggregatedPoint("Null", 3.0), AggregatedPoint("z", 0.0)]


def test_unknown_operation_counts_records() -> None:
    records = [{"k": "a", "v": 100}, {"k": "a", "v": 100}]
    assert Operation.parse("Median") is Operation.COUNT
    assert aggregate(records, "k", "v", "Median") == [AggregatedPoint("a", 2.0)]


def test_aggregate_handles_empty_input() -> None:
    assert aggregate([], "k", "v", Operation.SUM) == []
    assert aggregate(None, "k", "v", Operation.SUM) == []
    assert list(aggregate_frame([], "k", "v", Operation.SUM).columns) == ["label", "value", "count"]


def test_sum_matches_input_total() -> None:
    records = [{"k": str(index % 4), "v": index} for index in range(40)]

    points = aggregate(records, "k", "v", Operation.SUM)

    assert total(points) == pytest.approx(sum(range(40)))
    assert len({point.label for point in points}) == len(points)


def test_with_shares_handles_zero_total() -> None:
    shares = with_shares([AggregatedPoint("a", 3.0), AggregatedPoint("b", 1.0)])
    assert shares[0]["share"] == pytest.approx(0.75)
    assert with_shares([AggregatedPoint("a", 0.0)])[0]["share"] == 0.0


def test_sum_treats_unparseable_numeric_strings_as_zero() -> None:
    records = [
        {"g": "a", "v": "1_000"},
        {"g": "b", "v": "12"},
        {"g": "c", "v": "0x10"},
    ]

    points = aggregate(records, "g", "v", Operation.SUM)

    assert points == [
        AggregatedPoint("c", 16.0),
        AggregatedPoint("b", 12.0),
        AggregatedPoint("a", 0.0),
    ]


def test_nan_group_keys_from_blank_cells_share_the_null_label() -> None:
    records = [{"k": float("nan"), "v": 1}, {"k": None, "v": 2}, {"v": 4}]

    points = aggregate(records, "k", "v", Operation.SUM)

    assert points == [AggregatedPoint("Null", 7.0)]
