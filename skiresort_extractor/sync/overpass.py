"""Overpass QL query builders and element helpers for layer sync."""

import math
import re
from collections.abc import Sequence
from typing import Any

from skiresort_extractor.core.geo_calculator import BBox

_ELEVATION_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


def bbox_filter(bbox: BBox) -> str:
    """Overpass (south,west,north,east) filter for a (min_lon, min_lat, max_lon, max_lat) bbox."""
    min_lon, min_lat, max_lon, max_lat = bbox
    return f"({min_lat},{min_lon},{max_lat},{max_lon})"


def build_bbox_query(selectors: Sequence[str], bbox: BBox, timeout_s: int, output: str) -> str:
    """Union of selector statements inside a bbox.

    Example:
        build_bbox_query(['way["aerialway"]'], bbox, 30, "out geom tags;")
    """
    area = bbox_filter(bbox)
    statements = "\n".join(f"  {selector}{area};" for selector in selectors)
    return f"[out:json][timeout:{timeout_s}];\n(\n{statements}\n);\n{output}"


def build_lifts_query(bbox: BBox, timeout_s: int) -> str:
    return build_bbox_query(['way["aerialway"]', 'relation["aerialway"]'], bbox, timeout_s, "out geom tags;")


def build_runs_query(bbox: BBox, timeout_s: int) -> str:
    return build_bbox_query(
        ['way["piste:type"="downhill"]', 'relation["piste:type"="downhill"]'],
        bbox,
        timeout_s,
        "out geom tags;",
    )


def build_peaks_query(bbox: BBox, timeout_s: int) -> str:
    # "out body" keeps node coordinates alongside tags
    return build_bbox_query(['node["natural"="peak"]'], bbox, timeout_s, "out body;")


def elements_of(payload: Any) -> list[dict[str, Any]]:
    """The element list of an Overpass response, tolerating a missing key."""
    if not isinstance(payload, dict):
        return []
    elements = payload.get("elements") or []
    return [element for element in elements if isinstance(element, dict)]


def element_tag(element: dict[str, Any], key: str) -> str | None:
    """Stripped tag value, None when missing or blank."""
    tags = element.get("tags")
    value = tags.get(key) if isinstance(tags, dict) else None
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def element_line(element: dict[str, Any]) -> list[list[float]]:
    """[lon, lat] points of an `out geom` way, skipping non-finite points."""
    line = []
    for point in element.get("geometry") or []:
        if not isinstance(point, dict):
            continue
        lon, lat = to_finite(point.get("lon")), to_finite(point.get("lat"))
        if lon is not None and lat is not None:
            line.append([lon, lat])
    return line


def element_point(element: dict[str, Any]) -> list[float] | None:
    lon, lat = to_finite(element.get("lon")), to_finite(element.get("lat"))
    if lon is None or lat is None:
        return None
    return [lon, lat]


def parse_elevation(value: Any) -> float | None:
    """Elevation in meters from a number or a tag like "3480 m"."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _ELEVATION_PATTERN.search(value)
    return float(match.group(0)) if match else None


def to_finite(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
