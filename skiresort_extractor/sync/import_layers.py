"""Import pre-generated contour and terrain band GeoJSON into a workspace.

Input features are normalized to one geometry per feature:
- contours: LineString {id, ele}; MultiLineString parts become separate features
- terrain bands: Polygon {id, eleMin, eleMax}; MultiPolygon parts likewise

Features without usable geometry are skipped. Ids keep the input's string id
when present, else contour-<n> / terrain-band-<n> numbered in input order.
The layer's queryHash is the sha256 of the imported text.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from skiresort_extractor.core.artifacts import sha256_text
from skiresort_extractor.errors import InvalidInputError
from skiresort_extractor.model.workspace import LayerKind
from skiresort_extractor.sync.common import Feature, LayerSyncResult, line_feature, polygon_feature, run_layer_sync
from skiresort_extractor.sync.overpass import parse_elevation, to_finite
from skiresort_extractor.workspace.store import WorkspaceStore, require_boundary_complete

logger = logging.getLogger(__name__)

CONTOUR_ELEVATION_KEYS = ("ele", "elevationMeters", "elevation", "contour")
BAND_MIN_KEYS = ("eleMin", "elevationMinMeters", "min_elev", "amin")
BAND_MAX_KEYS = ("eleMax", "elevationMaxMeters", "max_elev", "amax")


def _first_present(properties: dict[str, Any], keys: tuple[str, ...]) -> Any:
    return next((properties[key] for key in keys if properties.get(key) is not None), None)


def _string_id(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _normalize_line(value: Any) -> list[list[float]] | None:
    if not isinstance(value, list):
        return None
    points = []
    for point in value:
        if not isinstance(point, list) or len(point) < 2:
            continue
        lon, lat = to_finite(point[0]), to_finite(point[1])
        if lon is not None and lat is not None:
            points.append([lon, lat])
    return points if len(points) >= 2 else None


def _normalize_polygon(value: Any) -> list[list[list[float]]] | None:
    if not isinstance(value, list):
        return None
    rings = []
    for ring_value in value:
        ring = _normalize_line(ring_value)
        if ring is not None and len(ring) >= 4:
            rings.append(ring)
    return rings or None


def _features_of(collection: Any, label: str) -> list[Any]:
    if not isinstance(collection, dict) or collection.get("type") != "FeatureCollection":
        raise InvalidInputError(f"{label} input must be a GeoJSON FeatureCollection.")
    features = collection.get("features")
    if not isinstance(features, list):
        raise InvalidInputError(f"{label} input must be a GeoJSON FeatureCollection.")
    return features


def normalize_contour_features(collection: Any) -> list[Feature]:
    """Contour LineString features with numeric ele (or None).

    Raises:
        InvalidInputError: If the input is not a FeatureCollection.
    """
    output: list[Feature] = []
    next_id = 1
    for feature in _features_of(collection, "Contours"):
        if not isinstance(feature, dict) or not isinstance(feature.get("geometry"), dict):
            continue
        geometry = feature["geometry"]
        properties = feature.get("properties") if isinstance(feature.get("properties"), dict) else {}
        ele = parse_elevation(_first_present(properties, CONTOUR_ELEVATION_KEYS))

        if geometry.get("type") == "LineString":
            line = _normalize_line(geometry.get("coordinates"))
            if line is None:
                continue
            feature_id = _string_id(properties.get("id"))
            if feature_id is None:
                feature_id = f"contour-{next_id}"
                next_id += 1
            output.append(line_feature(line, {"id": feature_id, "ele": ele}))
        elif geometry.get("type") == "MultiLineString" and isinstance(geometry.get("coordinates"), list):
            for part in geometry["coordinates"]:
                line = _normalize_line(part)
                if line is None:
                    continue
                output.append(line_feature(line, {"id": f"contour-{next_id}", "ele": ele}))
                next_id += 1
    return output


def normalize_terrain_band_features(collection: Any) -> list[Feature]:
    """Terrain band Polygon features with numeric eleMin/eleMax (or None).

    Raises:
        InvalidInputError: If the input is not a FeatureCollection.
    """
    output: list[Feature] = []
    next_id = 1
    for feature in _features_of(collection, "Terrain bands"):
        if not isinstance(feature, dict) or not isinstance(feature.get("geometry"), dict):
            continue
        geometry = feature["geometry"]
        properties = feature.get("properties") if isinstance(feature.get("properties"), dict) else {}
        band = {
            "eleMin": parse_elevation(_first_present(properties, BAND_MIN_KEYS)),
            "eleMax": parse_elevation(_first_present(properties, BAND_MAX_KEYS)),
        }

        if geometry.get("type") == "Polygon":
            rings = _normalize_polygon(geometry.get("coordinates"))
            if rings is None:
                continue
            feature_id = _string_id(properties.get("id"))
            if feature_id is None:
                feature_id = f"terrain-band-{next_id}"
                next_id += 1
            output.append(polygon_feature(rings, {"id": feature_id, **band}))
        elif geometry.get("type") == "MultiPolygon" and isinstance(geometry.get("coordinates"), list):
            for part in geometry["coordinates"]:
                rings = _normalize_polygon(part)
                if rings is None:
                    continue
                output.append(polygon_feature(rings, {"id": f"terrain-band-{next_id}", **band}))
                next_id += 1
    return output


def _import_layer(
    kind: LayerKind,
    normalize: Callable[[Any], list[Feature]],
    workspace_path: Path,
    input_path: Path,
    output_path: Path | None,
    updated_at: str | None,
) -> LayerSyncResult:
    store = WorkspaceStore(path=workspace_path)
    require_boundary_complete(store.read())
    input_path = Path(input_path)
    try:
        raw = input_path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidInputError(f"Cannot read {kind.value} input {input_path}: {e}") from e

    def produce() -> list[Feature]:
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            raise InvalidInputError(f"{kind.value} input {input_path} is not valid JSON: {e}") from e
        return normalize(parsed)

    return run_layer_sync(
        store=store,
        kind=kind,
        query_hash=sha256_text(raw),
        produce=produce,
        output_path=output_path,
        updated_at=updated_at,
    )


def import_resort_contours(
    workspace_path: Path,
    input_path: Path,
    output_path: Path | None = None,
    updated_at: str | None = None,
) -> LayerSyncResult:
    """Import contour lines from a GeoJSON file into the contours layer."""
    return _import_layer(
        LayerKind.CONTOURS, normalize_contour_features, workspace_path, input_path, output_path, updated_at
    )


def import_resort_terrain_bands(
    workspace_path: Path,
    input_path: Path,
    output_path: Path | None = None,
    updated_at: str | None = None,
) -> LayerSyncResult:
    """Import terrain band polygons from a GeoJSON file into the terrainBands layer."""
    return _import_layer(
        LayerKind.TERRAIN_BANDS, normalize_terrain_band_features, workspace_path, input_path, output_path, updated_at
    )
