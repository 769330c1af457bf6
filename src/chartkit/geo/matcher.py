from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from chartkit.aggregate import AggregatedPoint
from chartkit.errors import GeographyError
from chartkit.geo.color_scale import ColorScale, value_extent
from chartkit.geo.regions import FIPS_TO_ABBREV, US_STATE_CODES, US_STATE_NAMES
from chartkit.records import RawRecord, get_field

LOGGER = logging.getLogger(__name__)

MAX_REGIONS = 500

MapType = Literal["us-states", "world", "custom"]
GeoFeature = Mapping[str, Any]
RegionLookup = dict[str, GeoFeature]


@dataclass(frozen=True)
class RegionDatum:
    label: str
    value: float
    records: tuple[RawRecord, ...] = ()


def normalize_key(raw_key: Any) -> str:
    """Trim and lowercase a region key, turning full state names into their codes."""
    if raw_key is None or raw_key == "":
        return ""
    normalized = str(raw_key).strip().lower()
    code = US_STATE_CODES.get(normalized)
    if code:
        return code.lower()
    return normalized


def _properties(feature: GeoFeature) -> Mapping[str, Any]:
    properties = feature.get("properties")
    return properties if isinstance(properties, Mapping) else {}


def feature_id(feature: GeoFeature, id_property: str = "id") -> Any:
    return feature.get("id") or _properties(feature).get(id_property)


def feature_name(feature: GeoFeature, name_property: str = "name") -> Any:
    properties = _properties(feature)
    return properties.get(name_property) or properties.get("name")


def parse_geojson(data: Any) -> Mapping[str, Any]:
    if isinstance(data, (str, bytes)):
        try:
            parsed = json.loads(data)
        except ValueError as exc:
            raise GeographyError("Invalid GeoJSON: Could not parse JSON string") from exc
        if not isinstance(parsed, Mapping):
            raise GeographyError("Invalid GeoJSON: expected an object")
        return parsed
    if not isinstance(data, Mapping):
        raise GeographyError("Invalid GeoJSON: expected an object")
    return data


def normalize_us_states(geojson: Mapping[str, Any]) -> dict[str, Any]:
    """Re-key state features by postal code; ids missing from the FIPS table are kept."""
    features = geojson.get("features") if isinstance(geojson, Mapping) else None
    if not features:
        raise GeographyError("Invalid GeoJSON structure")

    normalized_features = []
    for feature in features:
        properties = _properties(feature)
        fips_id = feature.get("id") or properties.get("id")
        abbrev = FIPS_TO_ABBREV.get(str(fips_id), fips_id) if fips_id is not None else None
        name = properties.get("name") or US_STATE_NAMES.get(str(abbrev)) or abbrev
        normalized_features.append(
            {
                **feature,
                "id": abbrev,
                "properties": {
                    **properties,
                    "id": abbrev,
                    "name": name,
                    "abbrev": abbrev,
                    "fips": fips_id,
                },
            }
        )
    return {"type": "FeatureCollection", "features": normalized_features}


def _read_source(source: Any) -> Mapping[str, Any]:
    if isinstance(source, Path) or (
        isinstance(source, str) and not source.lstrip().startswith(("{", "["))
    ):
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise GeographyError(f"Failed to load map data from {path}: {exc}") from exc
        return parse_geojson(text)
    return parse_geojson(source)


def load_geography(source: Any, map_type: MapType = "custom") -> dict[str, Any]:
    """Load a GeoJSON document from a mapping, JSON text, or file path."""
    if map_type == "world" and source is None:
        raise GeographyError(
            'World map requires custom GeoJSON data. Set map_type to "custom" and provide it.'
        )
    if map_type not in ("us-states", "world", "custom"):
        raise GeographyError(f"Unknown map type: {map_type}")
    if source is None:
        raise GeographyError("Invalid or empty GeoJSON data")

    geojson = dict(_read_source(source))
    if map_type == "us-states":
        geojson = normalize_us_states(geojson)

    features = geojson.get("features")
    if not isinstance(features, list) or not features:
        raise GeographyError("Invalid or empty GeoJSON data")
    return geojson


def build_lookup(
    features: Iterable[GeoFeature],
    id_property: str = "id",
    name_property: str = "name",
) -> RegionLookup:
    """Index features by lowercase identifier and, when present, lowercase display name."""
    lookup: RegionLookup = {}
    for feature in features:
        identifier = feature_id(feature, id_property)
        if not identifier:
            continue
        lookup[str(identifier).lower()] = feature
        name = feature_name(feature, name_property)
        if name:
            lookup[str(name).lower()] = feature
    return lookup


def get_region_value(
    lookup: RegionLookup,
    aggregated: Mapping[str, RegionDatum],
    feature: GeoFeature,
    id_property: str = "id",
) -> float | None:
    """Value for ``feature``; ``None`` means no data and must not be extrapolated."""
    key = normalize_key(feature_id(feature, id_property))
    datum = aggregated.get(key)
    if datum is not None:
        return datum.value
    for data_key, candidate in aggregated.items():
        if lookup.get(data_key) is feature:
            return candidate.value
    return None


class GeoMatcher:
    """Region lookup and aggregated values for one choropleth instance."""

    def __init__(self, id_property: str = "id", name_property: str = "name") -> None:
        self.id_property = id_property
        self.name_property = name_property
        self.features: list[GeoFeature] = []
        self.lookup: RegionLookup = {}
        self.data: dict[str, RegionDatum] = {}
        self.value_extent: tuple[float, float] = (0.0, 0.0)

    def load(self, geography: Mapping[str, Any]) -> RegionLookup:
        """(Re)build the lookup for a new geography document."""
        self.features = list(geography.get("features") or [])
        self.lookup = build_lookup(self.features, self.id_property, self.name_property)
        return self.lookup

    def set_data(
        self,
        aggregated: Sequence[AggregatedPoint],
        records: Sequence[RawRecord] = (),
        region_field: str | None = None,
    ) -> dict[str, RegionDatum]:
        records_by_key: dict[str, list[RawRecord]] = {}
        if region_field:
            for record in records:
                key = normalize_key(get_field(record, region_field))
                records_by_key.setdefault(key, []).append(record)

        self.data = {}
        for point in aggregated:
            key = normalize_key(point.label)
            self.data[key] = RegionDatum(
                label=point.label,
                value=point.value,
                records=tuple(records_by_key.get(key, ())),
            )
        self.value_extent = value_extent([point.value for point in aggregated])

        unmatched = self.unmatched_keys()
        if unmatched:
            LOGGER.debug("No geography feature for region keys: %s", ", ".join(unmatched))
        return self.data

    def find_feature(self, key: Any) -> GeoFeature | None:
        if key is None:
            return None
        raw = str(key).strip().lower()
        return self.lookup.get(raw) or self.lookup.get(normalize_key(key))

    def get_region_data(self, feature: GeoFeature) -> RegionDatum | None:
        key = normalize_key(feature_id(feature, self.id_property))
        datum = self.data.get(key)
        if datum is not None:
            return datum
        for data_key, candidate in self.data.items():
            if self.lookup.get(data_key) is feature:
                return candidate
        return None

    def get_region_value(self, feature: GeoFeature) -> float | None:
        datum = self.get_region_data(feature)
        return None if datum is None else datum.value

    def region_color(self, feature: GeoFeature, scale: ColorScale) -> str:
        return scale(self.get_region_value(feature))

    def unmatched_keys(self) -> list[str]:
        return [key for key in self.data if key and self.find_feature(key) is None]
