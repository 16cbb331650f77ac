"""Boundary geometry extraction from Nominatim GeoJSON and Overpass elements.

Uses shapely to parse lookup geometries, assemble relation rings from their
outer member ways and pick the largest polygon. Returned rings keep the
source coordinates as given, so an unclosed source ring stays unclosed and
is flagged by the scorer.
"""

import logging
import math
from typing import Any

from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiPolygon, Polygon, shape
from shapely.ops import linemerge, polygonize

logger = logging.getLogger(__name__)

Ring = list[list[float]]


def finite_points(value: Any) -> Ring:
    """[lon, lat] pairs from a coordinate list, skipping malformed points."""
    points = []
    if not isinstance(value, list):
        return points
    for point in value:
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            continue
        try:
            lon, lat = float(point[0]), float(point[1])
        except (TypeError, ValueError):
            continue
        if math.isfinite(lon) and math.isfinite(lat):
            points.append([lon, lat])
    return points


def _encloses_area(ring: Ring) -> bool:
    # A polygon needs at least 3 distinct vertices
    return len({(p[0], p[1]) for p in ring}) >= 3


def _planar_area(ring: Ring) -> float:
    if not _encloses_area(ring):
        return 0.0
    return Polygon(ring).area


def ring_from_geojson(geojson: Any) -> tuple[str | None, Ring | None]:
    """Exterior ring of a Polygon, or of the largest MultiPolygon part.

    Returns:
        (geometry_type, ring); (None, None) when the value is not a polygon.
    """
    if not isinstance(geojson, dict) or geojson.get("type") not in ("Polygon", "MultiPolygon"):
        return None, None
    geometry_type = geojson["type"]
    try:
        geometry = shape(geojson)
    except (ShapelyError, ValueError, TypeError, IndexError, AttributeError) as e:
        logger.warning(f"Unparseable {geometry_type} geometry: {e}")
        return geometry_type, None

    coordinates = geojson.get("coordinates") or []
    if isinstance(geometry, Polygon):
        ring = finite_points(coordinates[0]) if coordinates else []
        return geometry_type, ring or None

    if isinstance(geometry, MultiPolygon):
        exteriors = [finite_points(part[0]) for part in coordinates if isinstance(part, list) and part]
        exteriors = [ring for ring in exteriors if ring]
        if not exteriors:
            return geometry_type, None
        return geometry_type, max(exteriors, key=_planar_area)

    return geometry_type, None


def overpass_geometry_line(geometry: Any) -> Ring:
    """[lon, lat] points of an Overpass `out geom` geometry list."""
    if not isinstance(geometry, list):
        return []
    return finite_points([[p.get("lon"), p.get("lat")] for p in geometry if isinstance(p, dict)])


def ring_from_relation_members(members: Any) -> Ring | None:
    """Largest closed ring assembled from a relation's outer member ways."""
    if not isinstance(members, list):
        return None
    lines = []
    for member in members:
        if not isinstance(member, dict) or member.get("type") != "way":
            continue
        if member.get("role") not in ("outer", ""):
            continue
        points = overpass_geometry_line(member.get("geometry"))
        if len(points) >= 2:
            lines.append(LineString(points))
    if not lines:
        return None

    polygons = list(polygonize(linemerge(lines)))
    if not polygons:
        return None
    largest = max(polygons, key=lambda polygon: polygon.area)
    return [[x, y] for x, y in largest.exterior.coords]


def ring_center(ring: Ring) -> list[float]:
    """Area centroid of a ring; mean of its points when it encloses no area."""
    if _encloses_area(ring):
        polygon = Polygon(ring)
        if polygon.area > 0:
            return [polygon.centroid.x, polygon.centroid.y]
    return [sum(p[0] for p in ring) / len(ring), sum(p[1] for p in ring) / len(ring)]
