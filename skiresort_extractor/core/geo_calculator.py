"""Planar and geodesic geometry for resort boundaries, runs and contours.

Provides the geometry kernel used across extraction:
- Point-in-polygon (boundary inclusive) and ring closure checks
- Planar shoelace area and geodesic area (pyproj.Geod)
- Run corridor polygons from centerlines
- Chaikin corner-cutting line smoothing
- Great-circle distance and buffered bounding boxes

Coordinates are [lon, lat] pairs in decimal degrees (WGS84), matching GeoJSON.
All methods are pure; none perform I/O.
"""

from collections.abc import Sequence
from math import atan2, cos, radians, sin, sqrt

from pyproj import Geod

from skiresort_extractor.errors import GeometryError

# Earth's radius in meters (WGS84 spherical approximation)
EARTH_RADIUS_M = 6_371_000

# Equatorial meters per degree, used for corridor offsets
METERS_PER_DEGREE_LATITUDE = 111_320

# Latitude meters per degree used when buffering bounding boxes
METERS_PER_DEGREE_LATITUDE_BBOX = 110_574

# Tolerance for the point-on-segment test
ON_SEGMENT_EPSILON = 1e-12

# Smoothed coordinates are rounded to bound floating drift across iterations
SMOOTHING_DECIMALS = 10

LonLat = tuple[float, float]
BBox = tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)

_WGS84 = Geod(ellps="WGS84")


class GeoCalculator:
    """Static methods for ring, line and distance calculations.

    Rings are lists of [lon, lat] points. A ring is closed when it has at
    least 4 points and its first point equals its last.
    """

    EARTH_RADIUS_M = EARTH_RADIUS_M

    # =========================================================================
    # Rings
    # =========================================================================

    @staticmethod
    def is_closed_ring(ring: Sequence[Sequence[float]]) -> bool:
        """True if ring has >= 4 points and first point equals last point."""
        if len(ring) < 4:
            return False
        first, last = ring[0], ring[-1]
        return first[0] == last[0] and first[1] == last[1]

    @staticmethod
    def ring_area(ring: Sequence[Sequence[float]]) -> float:
        """Unsigned shoelace area of a ring in squared coordinate units."""
        total = 0.0
        for i in range(len(ring) - 1):
            x1, y1 = ring[i][0], ring[i][1]
            x2, y2 = ring[i + 1][0], ring[i + 1][1]
            total += x1 * y2 - x2 * y1
        return abs(total / 2)

    @staticmethod
    def ring_area_km2(ring: Sequence[Sequence[float]]) -> float:
        """Unsigned geodesic area of a ring on the WGS84 ellipsoid in km²."""
        if len(ring) < 3:
            return 0.0
        lons = [point[0] for point in ring]
        lats = [point[1] for point in ring]
        area_m2, _ = _WGS84.polygon_area_perimeter(lons, lats)
        return abs(area_m2) / 1_000_000

    @staticmethod
    def point_in_polygon(point: Sequence[float], ring: Sequence[Sequence[float]]) -> bool:
        """Test whether a point lies inside or on the edge of a ring.

        Points on an edge (within a 1e-12 tolerance) count as inside.
        Otherwise standard even-odd ray casting decides.

        Args:
            point: [lon, lat] to test
            ring: Closed ring of [lon, lat] points

        Returns:
            True if inside or on the boundary. Rings with < 4 points contain nothing.
        """
        if len(ring) < 4:
            return False
        px, py = point[0], point[1]

        for i in range(len(ring) - 1):
            if GeoCalculator._point_on_segment(px, py, ring[i], ring[i + 1]):
                return True

        inside = False
        j = len(ring) - 1
        for i in range(len(ring)):
            xi, yi = ring[i][0], ring[i][1]
            xj, yj = ring[j][0], ring[j][1]
            if (yi > py) != (yj > py):
                x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
                if px < x_cross:
                    inside = not inside
            j = i
        return inside

    @staticmethod
    def _point_on_segment(px: float, py: float, a: Sequence[float], b: Sequence[float]) -> bool:
        ax, ay = a[0], a[1]
        bx, by = b[0], b[1]
        cross = (px - ax) * (by - ay) - (py - ay) * (bx - ax)
        if abs(cross) > ON_SEGMENT_EPSILON:
            return False
        dot = (px - ax) * (bx - ax) + (py - ay) * (by - ay)
        if dot < -ON_SEGMENT_EPSILON:
            return False
        squared_length = (bx - ax) ** 2 + (by - ay) ** 2
        return dot <= squared_length + ON_SEGMENT_EPSILON

    @staticmethod
    def ring_bbox(ring: Sequence[Sequence[float]]) -> BBox:
        """Bounding box of a ring as (min_lon, min_lat, max_lon, max_lat)."""
        lons = [point[0] for point in ring]
        lats = [point[1] for point in ring]
        return min(lons), min(lats), max(lons), max(lats)

    @staticmethod
    def buffered_bbox(ring: Sequence[Sequence[float]], buffer_m: float) -> BBox:
        """Bounding box of a ring grown by buffer_m meters on every side.

        Latitude buffer uses 110,574 m/degree, longitude buffer uses
        111,320·cos(center latitude) m/degree (clamped to >= 1).
        """
        min_lon, min_lat, max_lon, max_lat = GeoCalculator.ring_bbox(ring)
        if buffer_m <= 0:
            return min_lon, min_lat, max_lon, max_lat
        center_lat = (min_lat + max_lat) / 2
        lat_buffer = buffer_m / METERS_PER_DEGREE_LATITUDE_BBOX
        lon_buffer = buffer_m / GeoCalculator.meters_per_degree_longitude(lat=center_lat)
        return (
            min_lon - lon_buffer,
            min_lat - lat_buffer,
            max_lon + lon_buffer,
            max_lat + lat_buffer,
        )

    # =========================================================================
    # Distances
    # =========================================================================

    @staticmethod
    def meters_per_degree_longitude(lat: float) -> float:
        """Meters per degree of longitude at a latitude, never below 1."""
        return max(METERS_PER_DEGREE_LATITUDE * cos(radians(lat)), 1.0)

    @staticmethod
    def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle distance between two points using Haversine formula.

        Args:
            lat1: Latitude of first point (decimal degrees)
            lon1: Longitude of first point (decimal degrees)
            lat2: Latitude of second point (decimal degrees)
            lon2: Longitude of second point (decimal degrees)

        Returns:
            Distance in meters.
        """
        dlat = radians(lat2 - lat1)
        dlon = radians(lon2 - lon1)
        a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
        return EARTH_RADIUS_M * 2 * atan2(sqrt(a), sqrt(1 - a))

    # =========================================================================
    # Lines
    # =========================================================================

    @staticmethod
    def build_corridor_polygon(centerline: Sequence[Sequence[float]], width_m: float) -> list[list[float]]:
        """Buffer a run centerline into a closed corridor ring.

        For each vertex the tangent comes from its neighbours (previous to next,
        one-sided at the ends). Points are offset by half the width along the
        unit normal on both sides.

        Args:
            centerline: Ordered [lon, lat] points
            width_m: Full corridor width in meters

        Returns:
            Closed ring: left side + reversed right side + first left point.

        Raises:
            GeometryError: If fewer than 2 centerline points are given.
        """
        if len(centerline) < 2:
            raise GeometryError("Cannot build corridor polygon: corridor polygon invalid (need at least 2 centerline points).")

        half_width = width_m / 2
        left: list[list[float]] = []
        right: list[list[float]] = []

        for i, point in enumerate(centerline):
            prev_point = centerline[max(i - 1, 0)]
            next_point = centerline[min(i + 1, len(centerline) - 1)]
            dx = next_point[0] - prev_point[0]
            dy = next_point[1] - prev_point[1]
            length = sqrt(dx * dx + dy * dy)
            if length == 0:
                nx, ny = 0.0, 0.0
            else:
                nx, ny = -dy / length, dx / length

            lon_offset = nx * half_width / GeoCalculator.meters_per_degree_longitude(lat=point[1])
            lat_offset = ny * half_width / METERS_PER_DEGREE_LATITUDE
            left.append([point[0] + lon_offset, point[1] + lat_offset])
            right.append([point[0] - lon_offset, point[1] - lat_offset])

        ring = left + list(reversed(right))
        ring.append(list(left[0]))
        if len(ring) < 4:
            raise GeometryError("Cannot build corridor polygon: corridor polygon invalid.")
        return ring

    @staticmethod
    def smooth_line(points: Sequence[Sequence[float]], iterations: int) -> list[list[float]]:
        """Chaikin corner cutting.

        Each segment (a, b) is replaced by the points at 1/4 and 3/4 along it.
        Closed rings are smoothed cyclically and re-closed; open lines keep
        their original endpoints. Adjacent duplicates are dropped.

        Args:
            points: [lon, lat] points
            iterations: Number of Chaikin passes (0 returns a copy)

        Returns:
            Smoothed points rounded to 10 decimals.
        """
        result = [[p[0], p[1]] for p in points]
        if iterations <= 0 or len(result) < 3:
            return result

        closed = result[0] == result[-1]
        for _ in range(iterations):
            if closed:
                result = GeoCalculator._chaikin_closed(result)
            else:
                result = GeoCalculator._chaikin_open(result)
        return result

    @staticmethod
    def _chaikin_open(points: list[list[float]]) -> list[list[float]]:
        out = [points[0]]
        for a, b in zip(points, points[1:]):
            out.append(_lerp(a, b, 0.25))
            out.append(_lerp(a, b, 0.75))
        out.append(points[-1])
        return _dedupe_adjacent(out)

    @staticmethod
    def _chaikin_closed(points: list[list[float]]) -> list[list[float]]:
        ring = points[:-1]
        out: list[list[float]] = []
        for i, a in enumerate(ring):
            b = ring[(i + 1) % len(ring)]
            out.append(_lerp(a, b, 0.25))
            out.append(_lerp(a, b, 0.75))
        out = _dedupe_adjacent(out)
        out.append(list(out[0]))
        return out


def _lerp(a: Sequence[float], b: Sequence[float], t: float) -> list[float]:
    return [
        round(a[0] + (b[0] - a[0]) * t, SMOOTHING_DECIMALS),
        round(a[1] + (b[1] - a[1]) * t, SMOOTHING_DECIMALS),
    ]


def _dedupe_adjacent(points: list[list[float]]) -> list[list[float]]:
    out: list[list[float]] = []
    for point in points:
        if not out or out[-1] != point:
            out.append(point)
    return out
