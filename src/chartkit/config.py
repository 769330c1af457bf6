from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

from chartkit.prepare import MAX_RECORDS
from chartkit.theme import DEFAULT_THEME

LOGGER = logging.getLogger(__name__)


class DataConfig(BaseModel):
    max_records: int = Field(default=MAX_RECORDS, ge=1)
    required_fields: list[str] = Field(default_factory=list)


class ThemeConfig(BaseModel):
    name: str = DEFAULT_THEME
    custom_colors: list[str] = Field(default_factory=list)


class HistogramConfig(BaseModel):
    bin_count: int = Field(default=0, ge=0)
    min_bin_width_px: int = Field(default=20, ge=1)
    domain_pad_ratio: float = Field(default=0.02, ge=0.0, lt=1.0)
    curve_points: int = Field(default=100, ge=2)


class ChoroplethConfig(BaseModel):
    map_type: Literal["us-states", "world", "custom"] = "us-states"
    id_property: str = "id"
    name_property: str = "name"
    color_scale_type: Literal["sequential", "diverging"] = "sequential"
    low_color: str = "#f7fbff"
    high_color: str = "#08519c"
    mid_color: str = "#f7f7f7"
    negative_color: str = "#b2182b"
    positive_color: str = "#2166ac"
    no_data_color: str = "#E5E5E5"
    max_regions: int = Field(default=500, ge=1)


class RenderConfig(BaseModel):
    debounce_ms: int = Field(default=100, ge=0)
    max_layout_attempts: int = Field(default=60, ge=0)
    frame_interval_ms: float = Field(default=1000.0 / 60.0, gt=0.0)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data: DataConfig = Field(default_factory=DataConfig)
    theme: ThemeConfig = Field(default_factory=ThemeConfig)
    histogram: HistogramConfig = Field(default_factory=HistogramConfig)
    choropleth: ChoroplethConfig = Field(default_factory=ChoroplethConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def load_config(path: Path | None = None) -> AppConfig:
    """Load YAML configuration; a missing default file yields built-in defaults."""
    data: dict[str, Any] = {}
    if path is not None:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}

    config = AppConfig.model_validate(data)
    config.theme.name = os.getenv("CHARTKIT_THEME") or config.theme.name
    return config


def parse_advanced_config(raw: str | None) -> dict[str, Any]:
    """Parse a widget's advanced-config JSON blob.

    Malformed or non-object JSON is replaced by an empty mapping and never raised.
    """
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring malformed advanced config")
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed
