from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

_TRAILING_ZEROS_RE = re.compile(r"\.0+$")

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}


def _is_blank_number(value: Any) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        return True


def _fixed(value: float, decimals: int) -> str:
    return _TRAILING_ZEROS_RE.sub("", f"{value:.{decimals}f}")


def format_number(value: Any, decimals: int = 1) -> str:
    """Compact number with K/M/B suffixes, e.g. ``1500 -> "1.5K"``."""
    if _is_blank_number(value):
        return "0"
    number = float(value)
    magnitude = abs(number)
    sign = "-" if number < 0 else ""
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if magnitude >= threshold:
            return f"{sign}{_fixed(magnitude / threshold, decimals)}{suffix}"
    return f"{sign}{_fixed(magnitude, decimals)}"


def format_currency(value: Any, currency: str = "USD") -> str:
    if _is_blank_number(value):
        return "$0"
    number = float(value)
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if number < 0 else ""
    return f"{sign}{symbol}{abs(number):,.0f}"


def format_percent(value: Any, decimals: int = 1) -> str:
    if _is_blank_number(value):
        return "0%"
    return f"{float(value) * 100:.{decimals}f}%"


def truncate_label(label: Any, max_length: int = 20) -> str:
    if label is None or label == "":
        return ""
    text = str(label)
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


@dataclass(frozen=True)
class Margins:
    top: float = 20
    right: float = 20
    bottom: float = 30
    left: float = 40


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float
    margins: Margins


def calculate_dimensions(
    container_width: float,
    container_height: float,
    margins: Margins | None = None,
) -> Dimensions:
    """Inner drawing area after margins, never negative."""
    m = margins or Margins()
    return Dimensions(
        width=max(0.0, container_width - m.left - m.right),
        height=max(0.0, container_height - m.top - m.bottom),
        margins=m,
    )


def responsive_margins(container_width: float) -> Margins:
    padding = max(10, round(container_width * 0.04))
    return Margins(
        top=padding,
        right=padding + 10,
        bottom=max(40, round(container_width * 0.1)),
        left=max(40, round(container_width * 0.12)),
    )


def should_use_compact_mode(width: float, min_width: float = 300) -> bool:
    return width < min_width


def tick_count(dimension: float) -> int:
    if dimension < 200:
        return 3
    if dimension < 400:
        return 5
    return 7
