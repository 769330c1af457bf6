from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd


def _read_json_records(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
        raise ValueError("JSON input must be an array of objects")
    return payload


def load_table(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix == ".csv":
        # utf-8-sig strips BOM-prefixed headers commonly found in exported CSV files.
        return pd.read_csv(path, encoding="utf-8-sig")
    if path.suffix == ".json":
        return pd.DataFrame.from_records(_read_json_records(path))
    raise ValueError(f"Unsupported table file type: {path.suffix}")


def frame_to_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """Plain record dicts with empty cells as ``None``."""
    cleaned = frame.astype(object).where(pd.notna(frame), None)
    return [
        {
            key: value.item() if isinstance(value, np.generic) else value
            for key, value in row.items()
        }
        for row in cleaned.to_dict(orient="records")
    ]


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read records from CSV, JSON or Parquet.

    JSON rows are returned as written, so keys absent from a row stay absent.
    """
    if path.suffix == ".json":
        return _read_json_records(path)
    return frame_to_records(load_table(path))
