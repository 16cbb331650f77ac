"""Tests for core modules: GeoCalculator, artifacts, timestamps and audit."""

import json
from datetime import datetime, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from skiresort_extractor.core.artifacts import (
    dump_json,
    read_json,
    sha256_file,
    sha256_text,
    write_json_atomic,
)
from skiresort_extractor.core.audit import JsonlAuditLogger, NoopAuditLogger
from skiresort_extractor.core.geo_calculator import GeoCalculator
from skiresort_extractor.core.timestamps import age_seconds, format_iso, normalize_timestamp, parse_iso
from skiresort_extractor.errors import GeometryError, InvalidInputError

from tests.conftest import BOUNDARY_RING

UNIT_SQUARE = [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]


# =============================================================================
# RINGS
# =============================================================================


class TestRings:
    """Ring closure, area and containment."""

    def test_is_closed_ring(self) -> None:
        assert GeoCalculator.is_closed_ring(UNIT_SQUARE)
        assert not GeoCalculator.is_closed_ring(UNIT_SQUARE[:-1])
        assert not GeoCalculator.is_closed_ring([[0, 0], [1, 0], [0, 0]])

    def test_ring_area_unit_square(self) -> None:
        assert GeoCalculator.ring_area(UNIT_SQUARE) == pytest.approx(1.0)

    def test_ring_area_ignores_winding(self) -> None:
        assert GeoCalculator.ring_area(list(reversed(UNIT_SQUARE))) == pytest.approx(1.0)

    def test_ring_area_km2_resort_square(self) -> None:
        """0.1° x 0.06° at 46°N is roughly 7.7 km x 6.7 km."""
        area = GeoCalculator.ring_area_km2(BOUNDARY_RING)
        assert 45 < area < 58

    def test_point_inside_and_outside(self) -> None:
        assert GeoCalculator.point_in_polygon([0.5, 0.5], UNIT_SQUARE)
        assert not GeoCalculator.point_in_polygon([1.5, 0.5], UNIT_SQUARE)
        assert not GeoCalculator.point_in_polygon([-0.1, 0.5], UNIT_SQUARE)

    def test_points_on_edge_and_vertex_count_as_inside(self) -> None:
        assert GeoCalculator.point_in_polygon([1.0, 0.5], UNIT_SQUARE)
        assert GeoCalculator.point_in_polygon([0.5, 0.0], UNIT_SQUARE)
        assert GeoCalculator.point_in_polygon([1.0, 1.0], UNIT_SQUARE)

    def test_degenerate_ring_contains_nothing(self) -> None:
        assert not GeoCalculator.point_in_polygon([0.0, 0.0], [[0, 0], [1, 0], [0, 0]])

    def test_concave_ring(self) -> None:
        """U shape: the notch between the arms is outside."""
        ring = [[0, 0], [3, 0], [3, 3], [2, 3], [2, 1], [1, 1], [1, 3], [0, 3], [0, 0]]
        assert GeoCalculator.point_in_polygon([0.5, 2.0], ring)
        assert not GeoCalculator.point_in_polygon([1.5, 2.0], ring)

    @given(
        x=st.floats(min_value=0.001, max_value=0.999),
        y=st.floats(min_value=0.001, max_value=0.999),
    )
    def test_interior_points_always_inside(self, x: float, y: float) -> None:
        assert GeoCalculator.point_in_polygon([x, y], UNIT_SQUARE)

    @given(
        x=st.floats(min_value=1.001, max_value=100),
        y=st.floats(min_value=-100, max_value=100),
    )
    def test_points_right_of_square_always_outside(self, x: float, y: float) -> None:
        assert not GeoCalculator.point_in_polygon([x, y], UNIT_SQUARE)

    @given(
        points=st.lists(
            st.tuples(st.floats(min_value=-180, max_value=180), st.floats(min_value=-85, max_value=85)),
            min_size=3,
            max_size=12,
        )
    )
    def test_every_vertex_of_a_closed_ring_is_inside(self, points: list[tuple[float, float]]) -> None:
        ring = [list(p) for p in points] + [list(points[0])]
        for vertex in ring:
            assert GeoCalculator.point_in_polygon(vertex, ring)

    def test_buffered_bbox_grows_every_side(self) -> None:
        min_lon, min_lat, max_lon, max_lat = GeoCalculator.buffered_bbox(BOUNDARY_RING, buffer_m=1000)
        assert min_lat == pytest.approx(45.90 - 1000 / 110_574)
        assert max_lat == pytest.approx(45.96 + 1000 / 110_574)
        assert min_lon < 7.60 - 1000 / 111_320
        assert max_lon > 7.70 + 1000 / 111_320

    def test_buffered_bbox_zero_buffer_is_plain_bbox(self) -> None:
        assert GeoCalculator.buffered_bbox(BOUNDARY_RING, buffer_m=0) == (7.60, 45.90, 7.70, 45.96)


# =============================================================================
# DISTANCES
# =============================================================================


class TestDistances:
    """Haversine distance and degree scaling."""

    def test_haversine_same_point_is_zero(self) -> None:
        assert GeoCalculator.haversine_distance_m(45.93, 7.63, 45.93, 7.63) == 0.0

    def test_haversine_one_degree_latitude(self) -> None:
        distance = GeoCalculator.haversine_distance_m(45.0, 7.0, 46.0, 7.0)
        assert distance == pytest.approx(111_195, rel=1e-3)

    @settings(max_examples=50)
    @given(
        lat1=st.floats(min_value=-80, max_value=80),
        lon1=st.floats(min_value=-179, max_value=179),
        lat2=st.floats(min_value=-80, max_value=80),
        lon2=st.floats(min_value=-179, max_value=179),
    )
    def test_haversine_is_symmetric(self, lat1: float, lon1: float, lat2: float, lon2: float) -> None:
        forward = GeoCalculator.haversine_distance_m(lat1, lon1, lat2, lon2)
        backward = GeoCalculator.haversine_distance_m(lat2, lon2, lat1, lon1)
        assert forward == pytest.approx(backward, abs=1e-6)

    def test_meters_per_degree_longitude_never_below_one(self) -> None:
        assert GeoCalculator.meters_per_degree_longitude(lat=90.0) == 1.0
        assert GeoCalculator.meters_per_degree_longitude(lat=0.0) == pytest.approx(111_320)


# =============================================================================
# LINES
# =============================================================================


class TestCorridor:
    """Run corridor polygons."""

    def test_corridor_is_closed_and_contains_centerline(self) -> None:
        centerline = [[7.62, 45.92], [7.63, 45.93], [7.64, 45.94]]
        ring = GeoCalculator.build_corridor_polygon(centerline, width_m=22)
        assert GeoCalculator.is_closed_ring(ring)
        assert len(ring) == 2 * len(centerline) + 1
        for point in centerline:
            assert GeoCalculator.point_in_polygon(point, ring)

    def test_corridor_half_width_offset(self) -> None:
        """A north-running line is offset east/west by half the width."""
        ring = GeoCalculator.build_corridor_polygon([[0.0, 0.0], [0.0, 0.01]], width_m=20)
        assert ring[0][0] == pytest.approx(-10 / 111_320)
        assert ring[-2][0] == pytest.approx(10 / 111_320)

    def test_corridor_needs_two_points(self) -> None:
        with pytest.raises(GeometryError, match="corridor polygon invalid"):
            GeoCalculator.build_corridor_polygon([[7.62, 45.92]], width_m=22)


class TestSmoothLine:
    """Chaikin corner cutting."""

    def test_zero_iterations_returns_copy(self) -> None:
        line = [[0.0, 0.0], [1.0, 1.0], [2.0, 0.0]]
        smoothed = GeoCalculator.smooth_line(line, iterations=0)
        assert smoothed == line
        assert smoothed is not line

    def test_short_lines_unchanged(self) -> None:
        line = [[0.0, 0.0], [1.0, 1.0]]
        assert GeoCalculator.smooth_line(line, iterations=3) == line

    def test_open_line_keeps_endpoints(self) -> None:
        line = [[0.0, 0.0], [1.0, 1.0], [2.0, 0.0]]
        smoothed = GeoCalculator.smooth_line(line, iterations=1)
        assert smoothed == [[0.0, 0.0], [0.25, 0.25], [0.75, 0.75], [1.25, 0.75], [1.75, 0.25], [2.0, 0.0]]

    def test_closed_ring_stays_closed(self) -> None:
        smoothed = GeoCalculator.smooth_line(UNIT_SQUARE, iterations=2)
        assert smoothed[0] == smoothed[-1]
        # 4 edges -> 8 points -> 16 points, plus the closing point
        assert len(smoothed) == 17

    @given(iterations=st.integers(min_value=1, max_value=4))
    def test_smoothed_closed_ring_stays_inside_hull(self, iterations: int) -> None:
        smoothed = GeoCalculator.smooth_line(UNIT_SQUARE, iterations=iterations)
        for x, y in smoothed:
            assert 0.0 <= x <= 1.0
            assert 0.0 <= y <= 1.0

    @given(heights=st.lists(st.integers(min_value=-50, max_value=50), min_size=3, max_size=10))
    def test_smoothing_an_open_line_twice_adds_points(self, heights: list[int]) -> None:
        line = [[float(i), float(h)] for i, h in enumerate(heights)]
        once = GeoCalculator.smooth_line(line, iterations=1)
        twice = GeoCalculator.smooth_line(once, iterations=1)
        assert len(once) > len(line)
        assert len(twice) > len(once)


# =============================================================================
# ARTIFACTS
# =============================================================================


class TestArtifacts:
    """Atomic JSON writing and reading."""

    def test_dump_json_format(self) -> None:
        assert dump_json({"a": 1}) == '{\n  "a": 1\n}\n'

    def test_write_json_atomic_returns_text_checksum(self, tmp_path) -> None:
        path = tmp_path / "nested" / "doc.json"
        checksum = write_json_atomic(path=path, data={"name": "Cervinia"})
        assert path.read_text(encoding="utf-8") == dump_json({"name": "Cervinia"})
        assert checksum == sha256_text(dump_json({"name": "Cervinia"}))
        assert checksum == sha256_file(path)

    def test_write_leaves_no_temp_files(self, tmp_path) -> None:
        write_json_atomic(path=tmp_path / "doc.json", data=[1, 2, 3])
        assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]

    def test_read_json_missing(self, tmp_path) -> None:
        with pytest.raises(InvalidInputError, match="Pack not found"):
            read_json(tmp_path / "missing.json", label="Pack")

    def test_read_json_invalid(self, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidInputError, match="is not valid JSON"):
            read_json(path)


# =============================================================================
# TIMESTAMPS
# =============================================================================


class TestTimestamps:
    """ISO-8601 formatting and normalization."""

    def test_format_iso_milliseconds(self) -> None:
        moment = datetime(2025, 1, 15, 8, 30, 0, 123456, tzinfo=timezone.utc)
        assert format_iso(moment) == "2025-01-15T08:30:00.123Z"

    def test_parse_naive_is_utc(self) -> None:
        assert parse_iso("2025-01-15T08:30:00").tzinfo is not None

    def test_normalize_offset_to_utc(self) -> None:
        assert normalize_timestamp("2025-01-15T09:30:00+01:00") == "2025-01-15T08:30:00.000Z"

    def test_normalize_rejects_garbage(self) -> None:
        with pytest.raises(InvalidInputError, match="Invalid generatedAt timestamp 'yesterday'"):
            normalize_timestamp("yesterday")

    def test_age_seconds(self) -> None:
        now = datetime(2025, 1, 15, 9, 0, 0, tzinfo=timezone.utc)
        assert age_seconds("2025-01-15T08:30:00.000Z", now=now) == 1800
        assert age_seconds("not-a-time", now=now) is None


# =============================================================================
# AUDIT
# =============================================================================


class TestAudit:
    """JSONL audit records."""

    def test_jsonl_records(self, tmp_path) -> None:
        path = tmp_path / "logs" / "audit.jsonl"
        audit = JsonlAuditLogger(path)
        audit.info("extract_resort.start", {"configPath": "config.json"})
        audit.error("extract_resort.failure")

        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        assert [r["level"] for r in records] == ["info", "error"]
        assert records[0]["event"] == "extract_resort.start"
        assert records[0]["context"] == {"configPath": "config.json"}
        assert records[1]["context"] == {}
        assert records[0]["timestamp"].endswith("Z")

    def test_noop_logger_accepts_events(self) -> None:
        audit = NoopAuditLogger()
        audit.info("anything", {"a": 1})
        audit.error("anything")
