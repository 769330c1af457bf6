from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from chartkit.io.read import load_records, load_table
from chartkit.io.write import write_summary


def test_load_records_from_csv_maps_blank_cells_to_none(tmp_path: Path) -> None:
    csv_path = tmp_path / "records.csv"
    csv_path.write_text("\ufeffRegion,Amount\nWest,10\nEast,\n", encoding="utf-8")

    records = load_records(csv_path)

    assert records == [{"Region": "West", "Amount": 10.0}, {"Region": "East", "Amount": None}]
    assert type(records[0]["Amount"]) is float


def test_load_records_from_json_keeps_absent_keys_absent(tmp_path: Path) -> None:
    json_path = tmp_path / "records.json"
    json_path.write_text(json.dumps([{"a": 1, "b": 2}, {"a": 3}]), encoding="utf-8")

    assert load_records(json_path) == [{"a": 1, "b": 2}, {"a": 3}]
    assert list(load_table(json_path).columns) == ["a", "b"]


def test_load_records_rejects_non_array_json(tmp_path: Path) -> None:
    json_path = tmp_path / "records.json"
    json_path.write_text('{"a": 1}', encoding="utf-8")

    with pytest.raises(ValueError, match="array of objects"):
        load_records(json_path)


def test_load_records_from_parquet(tmp_path: Path) -> None:
    parquet_path = tmp_path / "records.parquet"
    pd.DataFrame({"k": ["a", None], "v": [1, 2]}).to_parquet(parquet_path, index=False)

    records = load_records(parquet_path)

    assert records == [{"k": "a", "v": 1}, {"k": None, "v": 2}]


def test_load_table_rejects_unknown_suffix(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unsupported table file type"):
        load_table(tmp_path / "records.xlsx")


def test_write_summary_creates_parent_dirs(tmp_path: Path) -> None:
    path = write_summary({"b": 1, "a": [1, 2]}, tmp_path / "nested" / "summary.json")

    assert json.loads(path.read_text(encoding="utf-8")) == {"a": [1, 2], "b": 1}
