from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy.stats import norm

from chartkit.records import to_number

DEFAULT_DOMAIN_PAD_RATIO = 0.02
DEFAULT_MIN_BIN_WIDTH_PX = 20
DEFAULT_CURVE_POINTS = 100

Point = tuple[float, float] | Mapping[str, Any]


@dataclass(frozen=True)
class Statistics:
    mean: float
    median: float
    std_dev: float
    count: int
    min: float
    max: float

    @classmethod
    def empty(cls) -> Statistics:
        return cls(mean=0.0, median=0.0, std_dev=0.0, count=0, min=0.0, max=0.0)


@dataclass(frozen=True)
class HistogramBin:
    lower_bound: float
    upper_bound: float
    members: tuple[float, ...]

    @property
    def count(self) -> int:
        return len(self.members)

    @property
    def width(self) -> float:
        return self.upper_bound - self.lower_bound


@dataclass(frozen=True)
class CorrelationResult:
    r: float | None
    slope: float
    intercept: float
    count: int = 0


def clean_values(values: Iterable[Any]) -> np.ndarray:
    """Coerce raw field values to floats, dropping missing and non-finite entries."""
    numbers = [to_number(value) for value in values if value is not None]
    array = np.asarray(numbers, dtype=float)
    return array[np.isfinite(array)]


def describe(values: Sequence[float] | np.ndarray) -> Statistics:
    """Descriptive statistics with the population standard deviation."""
    array = np.asarray(values, dtype=float)
    if array.size == 0:
        return Statistics.empty()

    low = float(array.min())
    high = float(array.max())
    # Summation rounding can push the mean a hair outside [min, max].
    mean = float(np.clip(array.mean(), low, high))
    return Statistics(
        mean=mean,
        median=float(np.median(array)),
        std_dev=float(array.std(ddof=0)),
        count=int(array.size),
        min=low,
        max=high,
    )


def padded_domain(
    values: Sequence[float] | np.ndarray,
    pad_ratio: float = DEFAULT_DOMAIN_PAD_RATIO,
) -> tuple[float, float]:
    array = np.asarray(values, dtype=float)
    if array.size == 0:
        return (0.0, 1.0)
    low = float(array.min())
    high = float(array.max())
    pad = (high - low) * pad_ratio or 1.0
    return (low - pad, high + pad)


def bin_count(
    n: int,
    width_px: float,
    requested: int = 0,
    min_bin_width_px: int = DEFAULT_MIN_BIN_WIDTH_PX,
) -> int:
    """Requested count when positive, else Sturges' rule capped by the drawable width."""
    if requested and requested > 0:
        return int(requested)
    sturges = math.ceil(math.log2(max(n, 1))) + 1
    max_bins = math.floor(width_px / min_bin_width_px)
    return max(1, min(sturges, max_bins))


def histogram(
    values: Sequence[float] | np.ndarray,
    bin_count_or_zero: int = 0,
    width_hint_px: float = 400.0,
    *,
    pad_ratio: float = DEFAULT_DOMAIN_PAD_RATIO,
    min_bin_width_px: int = DEFAULT_MIN_BIN_WIDTH_PX,
) -> list[HistogramBin]:
    """Equal-width bins over the padded domain; intervals are half-open except the last."""
    array = np.asarray(values, dtype=float)
    if array.size == 0:
        return []

    low, high = padded_domain(array, pad_ratio=pad_ratio)
    n_bins = bin_count(
        int(array.size),
        width_hint_px,
        requested=bin_count_or_zero,
        min_bin_width_px=min_bin_width_px,
    )
    edges = np.linspace(low, high, n_bins + 1)
    index = np.clip(np.searchsorted(edges, array, side="right") - 1, 0, n_bins - 1)

    return [
        HistogramBin(
            lower_bound=float(edges[position]),
            upper_bound=float(edges[position + 1]),
            members=tuple(float(value) for value in array[index == position]),
        )
        for position in range(n_bins)
    ]


def bin_share(histogram_bin: HistogramBin, total: int) -> float:
    """Percentage of ``total`` values that fall in the bin."""
    if total <= 0:
        return 0.0
    return histogram_bin.count / total * 100.0


def _split_points(points: Iterable[Point]) -> tuple[np.ndarray, np.ndarray]:
    xs: list[float] = []
    ys: list[float] = []
    for point in points:
        if isinstance(point, Mapping):
            x, y = point["x"], point["y"]
        else:
            x, y = point
        xs.append(float(x))
        ys.append(float(y))
    return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)


def regress(points: Iterable[Point]) -> tuple[float, float]:
    """Ordinary least squares ``(slope, intercept)``.

    A constant x axis yields a flat line through ``mean(y)``.
    """
    xs, ys = _split_points(points)
    n = xs.size
    if n < 2:
        return (0.0, 0.0)

    mean_x = float(xs.mean())
    mean_y = float(ys.mean())
    if np.ptp(xs) == 0:
        return (0.0, mean_y)

    denominator = float(np.sum((xs - mean_x) ** 2))
    if denominator == 0:
        return (0.0, mean_y)
    slope = float(np.sum((xs - mean_x) * (ys - mean_y))) / denominator
    return (slope, mean_y - slope * mean_x)


def correlate(points: Iterable[Point]) -> CorrelationResult:
    """Pearson's r plus the least-squares line; ``r`` is ``None`` when undefined."""
    xs, ys = _split_points(points)
    n = int(xs.size)
    slope, intercept = regress(zip(xs, ys))
    if n < 2 or np.ptp(xs) == 0 or np.ptp(ys) == 0:
        return CorrelationResult(r=None, slope=slope, intercept=intercept, count=n)

    sum_x = float(xs.sum())
    sum_y = float(ys.sum())
    numerator = n * float(np.dot(xs, ys)) - sum_x * sum_y
    spread = (n * float(np.dot(xs, xs)) - sum_x**2) * (n * float(np.dot(ys, ys)) - sum_y**2)
    denominator = math.sqrt(spread) if spread > 0 else 0.0
    if denominator == 0:
        return CorrelationResult(r=None, slope=slope, intercept=intercept, count=n)

    r = max(-1.0, min(1.0, numerator / denominator))
    return CorrelationResult(r=r, slope=slope, intercept=intercept, count=n)


def correlation_strength(r: float | None) -> str:
    if r is None:
        return ""
    magnitude = abs(r)
    if magnitude >= 0.8:
        return "Strong"
    if magnitude >= 0.5:
        return "Moderate"
    if magnitude >= 0.3:
        return "Weak"
    return "Very Weak"


def trend_line(
    slope: float,
    intercept: float,
    domain: tuple[float, float],
) -> tuple[tuple[float, float], tuple[float, float]]:
    low, high = domain
    return ((low, slope * low + intercept), (high, slope * high + intercept))


def normal_pdf(x: float | np.ndarray, mean: float, std_dev: float) -> float | np.ndarray:
    if std_dev <= 0:
        return np.zeros_like(x, dtype=float) if isinstance(x, np.ndarray) else 0.0
    density = norm.pdf(x, loc=mean, scale=std_dev)
    return density if isinstance(x, np.ndarray) else float(density)


def curve_height(
    x: float | np.ndarray,
    mean: float,
    std_dev: float,
    count: int,
    bin_width: float,
) -> float | np.ndarray:
    """Expected bin count at ``x``: density scaled by sample size and bin width."""
    return normal_pdf(x, mean, std_dev) * count * bin_width


def normal_curve(
    domain: tuple[float, float],
    statistics: Statistics,
    bin_width: float,
    points: int = DEFAULT_CURVE_POINTS,
) -> list[tuple[float, float]]:
    """Sample ``points + 1`` positions of the fitted normal curve across ``domain``."""
    if statistics.std_dev <= 0 or points <= 0:
        return []
    low, high = domain
    step = (high - low) / points
    xs = low + np.arange(points + 1, dtype=float) * step
    heights = curve_height(xs, statistics.mean, statistics.std_dev, statistics.count, bin_width)
    return [(float(x), float(y)) for x, y in zip(xs, heights)]
