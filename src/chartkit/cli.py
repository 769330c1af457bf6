from __future__ import annotations

import asyncio
from dataclasses import asdict
from pathlib import Path
from typing import Any, Literal

import typer

from chartkit.aggregate import Operation, with_shares
from chartkit.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from chartkit.errors import ChartkitError
from chartkit.geo.color_scale import ScaleColors, build_color_scale
from chartkit.geo.matcher import GeoMatcher, feature_id, feature_name, load_geography
from chartkit.io.read import load_records
from chartkit.io.write import to_json, write_summary
from chartkit.logging import configure_logging
from chartkit.pipeline import ChartDataLoader, Notification
from chartkit.stats import (
    bin_share,
    correlation_strength,
    histogram as build_histogram,
    normal_curve,
    padded_domain,
)
from chartkit.theme import THEMES, get_colors

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _input_argument() -> Any:
    return typer.Argument(..., exists=True, readable=True, resolve_path=True)


def _config_option() -> Any:
    return typer.Option(None, exists=True, readable=True, resolve_path=True)


def _out_option() -> Any:
    return typer.Option(None, resolve_path=True, help="Also write the JSON summary here.")


class EchoNotifications:
    def notify(self, notification: Notification) -> None:
        typer.echo(f"{notification.title}: {notification.message}", err=True)


def _load_app_config(config_path: Path | None) -> AppConfig:
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH
    return load_config(config_path)


def _loader(cfg: AppConfig) -> ChartDataLoader:
    return ChartDataLoader(notifications=EchoNotifications(), config=cfg)


def _run(coroutine: Any) -> Any:
    try:
        return asyncio.run(coroutine)
    except ChartkitError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _emit(payload: dict[str, Any], out: Path | None) -> None:
    if out is not None:
        write_summary(payload, out)
    typer.echo(to_json(payload))


@app.command()
def aggregate(
    input_path: Path = _input_argument(),
    group_field: str = typer.Option(..., help="Field whose values become labels."),
    value_field: str | None = typer.Option(None, help="Numeric field for Sum/Average."),
    operation: Operation = typer.Option(Operation.SUM, case_sensitive=False),
    theme: str | None = typer.Option(None, help="Palette name; defaults to config theme."),
    config: Path | None = _config_option(),
    out: Path | None = _out_option(),
) -> None:
    """Group records and reduce each group, largest first."""
    configure_logging()
    cfg = _load_app_config(config)
    records = load_records(input_path)
    result = _run(
        _loader(cfg).load_aggregated(records, None, group_field, value_field, operation)
    )
    colors = get_colors(theme or cfg.theme.name, len(result.points), cfg.theme.custom_colors)
    rows = [
        {**row, "color": color} for row, color in zip(with_shares(result.points), colors)
    ]
    _emit(
        {
            "operation": result.operation.value,
            "points": rows,
            "truncated": result.batch.truncated,
            "original_count": result.batch.original_count,
        },
        out,
    )


@app.command()
def describe(
    input_path: Path = _input_argument(),
    field: str = typer.Option(..., help="Numeric field to summarise."),
    config: Path | None = _config_option(),
    out: Path | None = _out_option(),
) -> None:
    """Mean, median, population standard deviation and range of one field."""
    configure_logging()
    cfg = _load_app_config(config)
    records = load_records(input_path)
    result = _run(_loader(cfg).load_values(records, None, field))
    _emit({"field": field, "statistics": asdict(result.statistics)}, out)


@app.command()
def histogram(
    input_path: Path = _input_argument(),
    field: str = typer.Option(..., help="Numeric field to bin."),
    width: float = typer.Option(400.0, min=1.0, help="Drawable width in pixels."),
    bins: int | None = typer.Option(None, min=0, help="Bin count; 0 picks one automatically."),
    curve: bool = typer.Option(True, help="Include the fitted normal curve."),
    config: Path | None = _config_option(),
    out: Path | None = _out_option(),
) -> None:
    """Bin a numeric field and fit a normal curve over the bins."""
    configure_logging()
    cfg = _load_app_config(config)
    records = load_records(input_path)
    result = _run(_loader(cfg).load_values(records, None, field))

    hist_cfg = cfg.histogram
    histogram_bins = build_histogram(
        result.values,
        hist_cfg.bin_count if bins is None else bins,
        width,
        pad_ratio=hist_cfg.domain_pad_ratio,
        min_bin_width_px=hist_cfg.min_bin_width_px,
    )
    payload: dict[str, Any] = {
        "field": field,
        "statistics": asdict(result.statistics),
        "bins": [
            {
                "lower_bound": item.lower_bound,
                "upper_bound": item.upper_bound,
                "count": item.count,
                "share": bin_share(item, result.statistics.count),
            }
            for item in histogram_bins
        ],
    }
    if curve and histogram_bins:
        domain = padded_domain(result.values, pad_ratio=hist_cfg.domain_pad_ratio)
        payload["curve"] = normal_curve(
            domain,
            result.statistics,
            histogram_bins[0].width,
            points=hist_cfg.curve_points,
        )
    _emit(payload, out)


@app.command()
def correlate(
    input_path: Path = _input_argument(),
    x_field: str = typer.Option(..., help="Field plotted on the x axis."),
    y_field: str = typer.Option(..., help="Field plotted on the y axis."),
    group_field: str | None = typer.Option(None),
    config: Path | None = _config_option(),
    out: Path | None = _out_option(),
) -> None:
    """Pearson correlation and least-squares trend line for two fields."""
    configure_logging()
    cfg = _load_app_config(config)
    records = load_records(input_path)
    result = _run(
        _loader(cfg).load_points(records, None, x_field, y_field, group_field=group_field)
    )
    correlation = result.correlation
    _emit(
        {
            "x_field": x_field,
            "y_field": y_field,
            "count": len(result.points),
            "groups": result.groups,
            "r": correlation.r,
            "slope": correlation.slope,
            "intercept": correlation.intercept,
            "strength": correlation_strength(correlation.r),
        },
        out,
    )


@app.command()
def palette(
    theme: str | None = typer.Option(None, help="Palette name; defaults to config theme."),
    count: int = typer.Option(10, min=0),
    config: Path | None = _config_option(),
) -> None:
    """Print the colours a theme assigns to the first COUNT series."""
    configure_logging()
    cfg = _load_app_config(config)
    name = theme or cfg.theme.name
    typer.echo(
        to_json(
            {
                "theme": name if name in THEMES else None,
                "themes": THEMES,
                "colors": get_colors(name, count, cfg.theme.custom_colors),
            }
        )
    )


@app.command()
def choropleth(
    input_path: Path = _input_argument(),
    geojson: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    region_field: str = typer.Option(..., help="Field holding the region key."),
    value_field: str | None = typer.Option(None),
    operation: Operation = typer.Option(Operation.SUM, case_sensitive=False),
    map_type: Literal["us-states", "world", "custom"] | None = typer.Option(None),
    scale_type: Literal["sequential", "diverging"] | None = typer.Option(None),
    config: Path | None = _config_option(),
    out: Path | None = _out_option(),
) -> None:
    """Aggregate values per region and colour every feature of a GeoJSON map."""
    configure_logging()
    cfg = _load_app_config(config)
    geo_cfg = cfg.choropleth
    records = load_records(input_path)
    try:
        geography = load_geography(geojson, map_type or geo_cfg.map_type)
    except ChartkitError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    result = _run(
        _loader(cfg).load_aggregated(
            records,
            None,
            region_field,
            value_field,
            operation,
            limit=geo_cfg.max_regions * 10,
        )
    )
    matcher = GeoMatcher(id_property=geo_cfg.id_property, name_property=geo_cfg.name_property)
    matcher.load(geography)
    matcher.set_data(result.points[: geo_cfg.max_regions], result.batch.data, region_field)
    scale = build_color_scale(
        matcher.value_extent,
        scale_type or geo_cfg.color_scale_type,
        ScaleColors(
            low=geo_cfg.low_color,
            high=geo_cfg.high_color,
            negative=geo_cfg.negative_color,
            mid=geo_cfg.mid_color,
            positive=geo_cfg.positive_color,
            no_data=geo_cfg.no_data_color,
        ),
    )
    regions = []
    for feature in matcher.features:
        value = matcher.get_region_value(feature)
        regions.append(
            {
                "id": feature_id(feature, geo_cfg.id_property),
                "name": feature_name(feature, geo_cfg.name_property),
                "value": value,
                "color": scale(value),
            }
        )
    _emit(
        {
            "scale": {"type": scale.kind, "domain": list(scale.domain)},
            "regions": regions,
            "unmatched": matcher.unmatched_keys(),
        },
        out,
    )


if __name__ == "__main__":
    app()
