from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from matplotlib.colors import LinearSegmentedColormap, Normalize, TwoSlopeNorm, to_hex

ScaleType = Literal["sequential", "diverging"]

NO_DATA_COLOR = "#E5E5E5"


@dataclass(frozen=True)
class ScaleColors:
    low: str = "#f7fbff"
    high: str = "#08519c"
    negative: str = "#b2182b"
    mid: str = "#f7f7f7"
    positive: str = "#2166ac"
    no_data: str = NO_DATA_COLOR


def value_extent(values: Sequence[float]) -> tuple[float, float]:
    """Colour domain; zero is always inside it."""
    if not values:
        return (0.0, 0.0)
    return (min(0.0, float(min(values))), float(max(values)))


class ColorScale:
    """Maps region values to hex colours; ``None`` means no data."""

    def __init__(
        self,
        kind: ScaleType,
        norm: Normalize,
        colormap: LinearSegmentedColormap,
        no_data_color: str = NO_DATA_COLOR,
    ) -> None:
        self.kind = kind
        self.norm = norm
        self.colormap = colormap
        self.no_data_color = no_data_color

    @property
    def domain(self) -> tuple[float, ...]:
        if isinstance(self.norm, TwoSlopeNorm):
            return (float(self.norm.vmin), float(self.norm.vcenter), float(self.norm.vmax))
        return (float(self.norm.vmin), float(self.norm.vmax))

    def __call__(self, value: float | None) -> str:
        if value is None:
            return self.no_data_color
        position = float(self.norm(float(value)))
        return to_hex(self.colormap(min(1.0, max(0.0, position))))


def build_color_scale(
    extent: tuple[float, float],
    scale_type: ScaleType = "sequential",
    colors: ScaleColors | None = None,
) -> ColorScale:
    """Diverging around zero when requested and the extent goes negative, else sequential."""
    palette = colors or ScaleColors()
    low, high = extent
    if scale_type == "diverging" and low < 0:
        vmax = high if high > 0 else abs(low)
        colormap = LinearSegmentedColormap.from_list(
            "chartkit_diverging",
            [palette.negative, palette.mid, palette.positive],
        )
        norm: Normalize = TwoSlopeNorm(vmin=low, vcenter=0.0, vmax=vmax)
        return ColorScale("diverging", norm, colormap, palette.no_data)

    if high <= low:
        high = low + 1.0
    colormap = LinearSegmentedColormap.from_list(
        "chartkit_sequential",
        [palette.low, palette.high],
    )
    return ColorScale("sequential", Normalize(vmin=low, vmax=high), colormap, palette.no_data)
