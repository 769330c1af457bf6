from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from chartkit.records import RawRecord, get_field, to_number, to_number_or_zero
from chartkit.theme import get_color

DEFAULT_MIN = 0.0
DEFAULT_MAX = 100.0


@dataclass(frozen=True)
class GaugeZone:
    min: float
    max: float
    color: str

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class GaugeReading:
    value: float
    min: float
    max: float
    color: str

    @property
    def fraction(self) -> float:
        """Position of the value along the arc, clamped to ``[0, 1]``."""
        span = self.max - self.min
        if span == 0:
            return 0.0
        return min(max((self.value - self.min) / span, 0.0), 1.0)


def gauge_value(records: Sequence[RawRecord] | None, value_field: str | None) -> float:
    """The gauge shows the first record's value; anything unusable reads as 0."""
    if not records or not value_field:
        return 0.0
    return to_number_or_zero(get_field(records[0], value_field))


def gauge_range(
    advanced: Mapping[str, Any] | None,
    min_value: float | None = DEFAULT_MIN,
    max_value: float | None = DEFAULT_MAX,
) -> tuple[float, float]:
    """Advanced-config ``minValue``/``maxValue`` win over the component properties."""
    advanced = advanced or {}
    low = advanced.get("minValue")
    high = advanced.get("maxValue")
    if low is None:
        low = DEFAULT_MIN if min_value is None else min_value
    if high is None:
        high = DEFAULT_MAX if max_value is None else max_value
    return float(to_number(low)), float(to_number(high))


def parse_zones(raw: Any) -> list[GaugeZone]:
    if not isinstance(raw, list):
        return []
    zones = []
    for item in raw:
        if not isinstance(item, Mapping) or not item.get("color"):
            continue
        zones.append(
            GaugeZone(
                min=to_number(item.get("min")),
                max=to_number(item.get("max")),
                color=str(item["color"]),
            )
        )
    return zones


def value_color(
    value: float,
    zones: Sequence[GaugeZone] = (),
    theme: str | None = None,
    custom_colors: object = None,
) -> str:
    """First matching zone, then the first custom colour, then the theme's first colour."""
    for zone in zones:
        if zone.contains(value):
            return zone.color
    return get_color(theme, 0, custom_colors)


def read_gauge(
    records: Sequence[RawRecord] | None,
    value_field: str | None,
    advanced: Mapping[str, Any] | None = None,
    theme: str | None = None,
    min_value: float | None = DEFAULT_MIN,
    max_value: float | None = DEFAULT_MAX,
) -> GaugeReading:
    advanced = advanced or {}
    value = gauge_value(records, value_field)
    low, high = gauge_range(advanced, min_value, max_value)
    color = value_color(
        value,
        parse_zones(advanced.get("zones")),
        theme=theme,
        custom_colors=advanced.get("customColors"),
    )
    return GaugeReading(value=value, min=low, max=high, color=color)
