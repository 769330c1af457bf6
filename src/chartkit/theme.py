from __future__ import annotations

from collections.abc import Callable, Sequence

PALETTES: dict[str, tuple[str, ...]] = {
    "Salesforce Standard": (
        "#1589EE",
        "#FF9E2C",
        "#4BCA81",
        "#FF5D5D",
        "#AD7BFF",
        "#FF84C6",
        "#00C6CD",
        "#B8E986",
        "#FFD86E",
        "#A4C7F1",
    ),
    "Warm": (
        "#FF6B6B",
        "#FF8E72",
        "#FFB677",
        "#FFD93D",
        "#F9844A",
        "#F3722C",
        "#F94144",
        "#E63946",
        "#D62839",
        "#BA1B1D",
    ),
    "Cool": (
        "#4361EE",
        "#3A0CA3",
        "#7209B7",
        "#560BAD",
        "#480CA8",
        "#3F37C9",
        "#4895EF",
        "#4CC9F0",
        "#00B4D8",
        "#0077B6",
    ),
    "Vibrant": (
        "#FF595E",
        "#FFCA3A",
        "#8AC926",
        "#1982C4",
        "#6A4C93",
        "#FF85A1",
        "#FFD166",
        "#06D6A0",
        "#118AB2",
        "#9B5DE5",
    ),
}

THEMES: list[str] = list(PALETTES)
DEFAULT_THEME = "Salesforce Standard"


def _source_colors(theme: str | None, custom_colors: object = None) -> Sequence[str]:
    if isinstance(custom_colors, (list, tuple)) and len(custom_colors) > 0:
        return custom_colors
    return PALETTES.get(theme or "", PALETTES[DEFAULT_THEME])


def _cycle(colors: Sequence[str], count: int) -> list[str]:
    if count <= 0:
        return []
    return [colors[index % len(colors)] for index in range(count)]


def get_colors(theme: str | None, count: int, custom_colors: object = None) -> list[str]:
    """Return ``count`` colours, cycling through the palette when it is too short.

    Non-empty ``custom_colors`` replace the theme entirely; unknown themes fall back
    to :data:`DEFAULT_THEME`.
    """
    return _cycle(_source_colors(theme, custom_colors), int(count))


def get_color(theme: str | None, index: int = 0, custom_colors: object = None) -> str:
    colors = get_colors(theme, index + 1, custom_colors)
    if index < 0 or index >= len(colors):
        return colors[0] if colors else _source_colors(theme, custom_colors)[0]
    return colors[index]


def create_color_scale(
    theme: str | None,
    domain: Sequence[str],
    custom_colors: object = None,
) -> Callable[[str], str]:
    """Map each domain label to a colour; labels outside the domain get the first colour."""
    labels = list(domain)
    colors = get_colors(theme, len(labels), custom_colors)
    color_map = dict(zip(labels, colors))
    fallback = colors[0] if colors else _source_colors(theme, custom_colors)[0]

    def scale(label: str) -> str:
        return color_map.get(label, fallback)

    return scale
