"""Tests for resort search, boundary candidate detection and boundary commit."""

import json
from collections.abc import Callable

import pytest

from skiresort_extractor.boundary.geometry import ring_center, ring_from_geojson, ring_from_relation_members
from skiresort_extractor.boundary.resolver import (
    NO_SELECTION,
    CandidateSource,
    DetectionResult,
    build_query_variants,
    build_region_query,
    detect_resort_boundary_candidates,
    is_relevant,
    region_candidate,
    score_candidate,
    significant_tokens,
)
from skiresort_extractor.boundary.search import (
    ResortSearchCandidate,
    ResortSearchResult,
    lookup_osm_object,
    search_resort_candidates,
)
from skiresort_extractor.boundary.selection import (
    select_candidate_by_index,
    select_resort_to_workspace,
    set_resort_boundary,
)
from skiresort_extractor.constants import NominatimConfig, OverpassConfig
from skiresort_extractor.core.artifacts import sha256_text
from skiresort_extractor.errors import InvalidInputError, UpstreamError
from skiresort_extractor.model.boundary_candidate import BoundaryCandidate
from skiresort_extractor.model.workspace import LayerKind
from skiresort_extractor.workspace.store import WorkspaceStore

from tests.conftest import (
    BOUNDARY_RING,
    FIXED_TIME,
    SELECTION_CENTER,
    FakeResponse,
    FakeSession,
    default_selection,
    make_client,
)

INNER_RING = [[7.62, 45.91], [7.66, 45.91], [7.66, 45.95], [7.62, 45.95], [7.62, 45.91]]


def search_record(osm_type: str, osm_id: int, display_name: str, lon: float, lat: float, **extra) -> dict:
    record = {"osm_type": osm_type, "osm_id": osm_id, "display_name": display_name, "lon": str(lon), "lat": str(lat)}
    record.update(extra)
    return record


def candidate(ring=None, display_name="Cervinia, Valtournenche, Aosta Valley, Italy", **overrides) -> BoundaryCandidate:
    values = {
        "osm_type": "relation",
        "osm_id": 4242,
        "display_name": display_name,
        "center": list(SELECTION_CENTER),
        "source": "selection",
        "ring": ring,
        "geometry_type": "Polygon" if ring else None,
    }
    values.update(overrides)
    return BoundaryCandidate(**values)


# =============================================================================
# SEARCH
# =============================================================================


class TestSearch:
    """Nominatim name search and object lookup."""

    def test_request_parameters(self) -> None:
        session = FakeSession([FakeResponse(200, [])])
        search_resort_candidates("Cervinia", "IT", limit=3, client=make_client(session))

        call = session.calls[0]
        assert call["url"] == NominatimConfig.SEARCH_URL
        assert call["params"] == {
            "q": "Cervinia, IT",
            "format": "jsonv2",
            "addressdetails": "1",
            "limit": "3",
            "countrycodes": "it",
        }

    def test_country_name_has_no_country_filter(self) -> None:
        session = FakeSession([FakeResponse(200, [])])
        search_resort_candidates("Cervinia", "Italy", client=make_client(session))
        assert "countrycodes" not in session.calls[0]["params"]

    def test_sorted_by_importance_then_name(self) -> None:
        records = [
            search_record("node", 1, "Zeta", 7.6, 45.9),
            search_record("way", 2, "Beta", 7.6, 45.9, importance=0.4),
            search_record("relation", 3, "Alpha", 7.6, 45.9, importance=0.9),
            search_record("node", 4, "Alpha", 7.6, 45.9),
        ]
        result = search_resort_candidates("x", "IT", client=make_client(FakeSession([FakeResponse(200, records)])))
        assert [(c.osm_id, c.display_name) for c in result.candidates] == [
            (3, "Alpha"),
            (2, "Beta"),
            (4, "Alpha"),
            (1, "Zeta"),
        ]

    def test_unusable_records_are_dropped(self) -> None:
        records = [
            search_record("area", 1, "Bad type", 7.6, 45.9),
            search_record("way", "2", "String id", 7.6, 45.9),
            search_record("way", 3, "  ", 7.6, 45.9),
            {"osm_type": "way", "osm_id": 4, "display_name": "No center"},
            search_record("way", 5, "Bad center", "east", 45.9),
            search_record(
                "relation",
                6,
                "Cervinia",
                7.63,
                45.93,
                address={"country_code": "it", "country": "Italia", "state": "Valle d'Aosta"},
            ),
        ]
        result = search_resort_candidates("x", "IT", client=make_client(FakeSession([FakeResponse(200, records)])))
        assert len(result.candidates) == 1
        assert result.candidates[0].to_dict() == {
            "osmType": "relation",
            "osmId": 6,
            "displayName": "Cervinia",
            "countryCode": "it",
            "country": "Italia",
            "region": "Valle d'Aosta",
            "center": [7.63, 45.93],
            "importance": None,
            "source": "nominatim",
        }

    def test_non_array_response(self) -> None:
        session = FakeSession([FakeResponse(200, {"error": "bad request"})])
        with pytest.raises(UpstreamError, match="not a JSON array"):
            search_resort_candidates("Cervinia", "IT", client=make_client(session))

    def test_lookup_returns_first_record_and_caches(self, tmp_path) -> None:
        record = {"display_name": "Cervinia", "geojson": {"type": "Polygon", "coordinates": [BOUNDARY_RING]}}
        session = FakeSession([FakeResponse(200, [record])])
        client = make_client(session)

        assert lookup_osm_object(client, "relation", 4242, cache_dir=tmp_path) == record
        assert lookup_osm_object(client, "relation", 4242, cache_dir=tmp_path) == record
        assert len(session.calls) == 1
        assert session.calls[0]["params"]["osm_ids"] == "R4242"
        assert session.calls[0]["params"]["polygon_geojson"] == "1"

    def test_lookup_without_records(self, tmp_path) -> None:
        client = make_client(FakeSession([FakeResponse(200, [])]))
        assert lookup_osm_object(client, "way", 7, cache_dir=tmp_path) is None


# =============================================================================
# GEOMETRY
# =============================================================================


class TestGeometry:
    """Ring extraction from lookup and Overpass geometries."""

    def test_polygon_ring(self) -> None:
        assert ring_from_geojson({"type": "Polygon", "coordinates": [BOUNDARY_RING]}) == ("Polygon", BOUNDARY_RING)

    def test_multipolygon_uses_largest_part(self) -> None:
        small = [[0, 0], [0.01, 0], [0.01, 0.01], [0, 0]]
        geojson = {"type": "MultiPolygon", "coordinates": [[small], [BOUNDARY_RING]]}
        assert ring_from_geojson(geojson) == ("MultiPolygon", BOUNDARY_RING)

    @pytest.mark.parametrize("value", [None, "Polygon", {"type": "Point", "coordinates": [7.6, 45.9]}])
    def test_non_polygon(self, value) -> None:
        assert ring_from_geojson(value) == (None, None)

    def test_relation_members_are_assembled(self) -> None:
        members = [
            {"type": "way", "role": "outer", "geometry": [{"lon": 0, "lat": 0}, {"lon": 1, "lat": 0}, {"lon": 1, "lat": 1}]},
            {"type": "way", "role": "outer", "geometry": [{"lon": 1, "lat": 1}, {"lon": 0, "lat": 1}, {"lon": 0, "lat": 0}]},
            {"type": "node", "ref": 5},
        ]
        ring = ring_from_relation_members(members)
        assert len(ring) == 5
        assert ring[0] == ring[-1]
        assert {(x, y) for x, y in ring} == {(0, 0), (1, 0), (1, 1), (0, 1)}

    def test_open_relation_members(self) -> None:
        members = [{"type": "way", "role": "outer", "geometry": [{"lon": 0, "lat": 0}, {"lon": 1, "lat": 0}]}]
        assert ring_from_relation_members(members) is None

    def test_ring_center(self) -> None:
        assert ring_center(INNER_RING) == pytest.approx([7.64, 45.93])
        assert ring_center([[0, 0], [2, 2]]) == [1, 1]


# =============================================================================
# CANDIDATE SOURCES
# =============================================================================


class TestNameMatching:
    def test_significant_tokens(self) -> None:
        assert significant_tokens("The Cervinia Ski Area, Valle") == {"cervinia", "valle"}

    def test_query_variants(self) -> None:
        variants = build_query_variants("Cervinia", "Cervinia, Valtournenche, 11021, Aosta Valley, Italy", "Italy")
        assert variants == ["Cervinia", "Cervinia Valtournenche", "Cervinia Aosta Valley"]

    @pytest.mark.parametrize(
        "display_name, distance_km, expected",
        [
            ("Anything", 50, True),
            ("Valtournenche Cervinia", 200, True),
            ("Cervinia Valley", 200, True),
            ("Zermatt", 200, False),
            ("Breuil-Cervinia", 500, True),
            ("Cervinia Valley", 1200, False),
        ],
    )
    def test_relevance_by_distance(self, display_name, distance_km, expected) -> None:
        assert is_relevant("Cervinia", display_name, distance_km) is expected

    def test_region_query(self) -> None:
        query = build_region_query([7.63, 45.93], 15_000, {"cervinia"}, timeout_s=30)
        assert query.startswith("[out:json][timeout:30];")
        assert 'way["landuse"="winter_sports"]["name"~"cervinia",i](around:15000,45.93,7.63);' in query
        assert 'relation["site"="piste"]' in query
        assert query.endswith("out geom tags;")

    def test_region_way_candidate(self) -> None:
        element = {
            "type": "way",
            "id": 9,
            "tags": {"leisure": "ski_resort"},
            "geometry": [{"lon": lon, "lat": lat} for lon, lat in INNER_RING],
        }
        found = region_candidate(element)
        assert found.display_name == "Ski resort way/9"
        assert found.ring == INNER_RING
        assert found.source == "region"

    def test_region_ignores_nodes(self) -> None:
        assert region_candidate({"type": "node", "id": 1, "lat": 45.9, "lon": 7.6}) is None


# =============================================================================
# SCORING
# =============================================================================


class TestScoreCandidate:
    """Additive plausibility scoring."""

    def test_committed_selection_with_full_ring(self) -> None:
        validation = score_candidate(candidate(ring=BOUNDARY_RING), default_selection(), "Cervinia")
        assert validation.issues == []
        assert validation.ring_closed
        assert validation.contains_selection_center
        assert 40 < validation.area_km2 < 60
        assert validation.distance_km == 0
        assert "current selection" in validation.signals
        # ring 40, closed 20, center 30, area 20, name 16, selection 6, relation 6, distance 15
        assert validation.score == 153

    def test_ringless_candidate(self) -> None:
        validation = score_candidate(candidate(), default_selection(), "Cervinia")
        assert validation.issues == [
            "No polygon geometry available from lookup.",
            "Selection center is outside candidate boundary.",
        ]
        assert validation.area_km2 is None
        assert validation.score == 16 + 6 + 15

    def test_unclosed_ring(self) -> None:
        validation = score_candidate(candidate(ring=BOUNDARY_RING[:-1]), default_selection(), "Cervinia")
        assert "Boundary ring is not closed." in validation.issues
        assert not validation.ring_closed

    def test_implausible_area(self) -> None:
        tiny = [[7.6295, 45.9295], [7.6305, 45.9295], [7.6305, 45.9305], [7.6295, 45.9305], [7.6295, 45.9295]]
        validation = score_candidate(candidate(ring=tiny), default_selection(), "Cervinia")
        assert validation.issues == ["Boundary area is outside expected ski resort range (0.1-1000 km2)."]

    def test_unrelated_far_candidate_scores_negative(self) -> None:
        far = candidate(osm_type="way", osm_id=1, display_name="Zermatt", center=[10.0, 50.0], source="search")
        validation = score_candidate(far, default_selection(), "Cervinia")
        assert "Display name does not match the resort query." in validation.issues
        assert validation.issues[-1].startswith("Candidate center is ")
        assert validation.score == -18

    def test_winter_sports_label(self) -> None:
        labelled = candidate(osm_type="way", osm_id=2, display_name="Winter sports area way/2")
        assert "winter sports label" in score_candidate(labelled, default_selection(), "Cervinia").signals


# =============================================================================
# DETECTION
# =============================================================================


def detection_handler(region_status: int = 200):
    lookup = {
        "display_name": "Cervinia, Valtournenche, Aosta Valley, Italy",
        "lon": "7.63",
        "lat": "45.93",
        "geojson": {"type": "Polygon", "coordinates": [BOUNDARY_RING]},
    }
    search = [
        search_record("relation", 4242, "Cervinia, Valtournenche, Aosta Valley, Italy", 7.63, 45.93),
        search_record("node", 77, "Zermatt, Switzerland", 10.0, 50.0),
    ]
    region = {
        "elements": [
            {
                "type": "way",
                "id": 777,
                "tags": {"landuse": "winter_sports", "name": "Cervinia Winter Sports"},
                "geometry": [{"lon": lon, "lat": lat} for lon, lat in INNER_RING],
            }
        ]
    }

    def handler(method, url, kwargs):
        if url == NominatimConfig.SEARCH_URL:
            return FakeResponse(200, search)
        if url == NominatimConfig.LOOKUP_URL:
            return FakeResponse(200, [lookup])
        if url == OverpassConfig.INTERPRETER_URL:
            return FakeResponse(region_status, region)
        raise AssertionError(f"Unexpected request {method} {url}")

    return handler


class TestDetectCandidates:
    """End-to-end candidate gathering against scripted upstreams."""

    def test_candidates_are_merged_scored_and_sorted(self, make_workspace) -> None:
        session = FakeSession(handler=detection_handler())
        result = detect_resort_boundary_candidates(make_workspace(), client=make_client(session))

        assert [c.key for c in result.candidates] == [("way", 777), ("relation", 4242)]
        assert result.source_errors == []
        relation = result.candidates[1]
        assert relation.source == "selection"
        assert relation.ring == BOUNDARY_RING
        assert relation.score == 153

        lookups = [call for call in session.calls if call["url"] == NominatimConfig.LOOKUP_URL]
        assert [call["params"]["osm_ids"] for call in lookups] == ["R4242"]
        searches = [call for call in session.calls if call["url"] == NominatimConfig.SEARCH_URL]
        assert len(searches) == 3

    def test_failed_source_is_recorded(self, make_workspace) -> None:
        session = FakeSession(handler=detection_handler(region_status=400))
        result = detect_resort_boundary_candidates(make_workspace(), client=make_client(session))

        assert [c.key for c in result.candidates] == [("relation", 4242)]
        assert result.to_dict()["sourceErrors"] == [{"source": "region", "error": "Upstream returned HTTP 400."}]

    def test_unexpected_errors_propagate(self, make_workspace) -> None:
        def explode(context):
            raise RuntimeError("bug")

        sources = (CandidateSource(name="broken", collect=explode),)
        with pytest.raises(RuntimeError, match="bug"):
            detect_resort_boundary_candidates(make_workspace(), client=make_client(FakeSession()), sources=sources)

    def test_requires_selection(self, make_workspace) -> None:
        with pytest.raises(InvalidInputError, match=NO_SELECTION):
            detect_resort_boundary_candidates(make_workspace(with_selection=False), client=make_client(FakeSession()))


# =============================================================================
# SELECTION
# =============================================================================


class TestSelectCandidateByIndex:
    @pytest.mark.parametrize("index", [0, -1, True, "1", 1.0])
    def test_invalid_index(self, index) -> None:
        with pytest.raises(InvalidInputError, match="Selection index must be an integer >= 1."):
            select_candidate_by_index(["a", "b"], index)

    def test_out_of_range(self) -> None:
        with pytest.raises(InvalidInputError, match="index 3 is out of range for 2 candidate"):
            select_candidate_by_index(["a", "b"], 3)

    def test_one_based(self) -> None:
        assert select_candidate_by_index(["a", "b"], 2) == "b"


class TestSelectResort:
    """resort-select writes a fresh workspace."""

    def test_writes_workspace(self, tmp_path) -> None:
        calls = []

        def fake_search(**kwargs):
            calls.append(kwargs)
            hits = [
                ResortSearchCandidate("relation", 4242, "Cervinia, Italy", [7.63, 45.93]),
                ResortSearchCandidate("way", 9, "Cervinia village", [7.62, 45.92]),
            ]
            return ResortSearchResult(name=kwargs["name"], country=kwargs["country"], limit=kwargs["limit"], candidates=hits)

        path = tmp_path / "cervinia" / "workspace.json"
        result = select_resort_to_workspace(path, "Cervinia", "IT", index=2, limit=4, selected_at=FIXED_TIME, search_fn=fake_search)

        assert calls == [{"name": "Cervinia", "country": "IT", "limit": 4, "client": None}]
        assert result.candidate_count == 2
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["resort"]["selection"] == {
            "osmType": "way",
            "osmId": 9,
            "displayName": "Cervinia village",
            "center": [7.62, 45.92],
            "selectedAt": FIXED_TIME,
        }
        assert all(layer["status"] == "pending" for layer in data["layers"].values())

    def test_index_past_results(self, tmp_path) -> None:
        def no_hits(**kwargs):
            return ResortSearchResult(name="x", country="IT", limit=5, candidates=[])

        path = tmp_path / "workspace.json"
        with pytest.raises(InvalidInputError, match="out of range for 0 candidate"):
            select_resort_to_workspace(path, "x", "IT", index=1, search_fn=no_hits)
        assert not path.exists()


class TestSetResortBoundary:
    """resort-boundary-set commits the picked candidate."""

    def detection(self, workspace_path, *candidates) -> Callable[..., DetectionResult]:
        def fake_detect(**kwargs):
            return DetectionResult(workspace_path=str(kwargs["workspace_path"]), candidates=list(candidates))

        return fake_detect

    def test_commits_boundary(self, make_workspace) -> None:
        path = make_workspace()
        picked = candidate(ring=BOUNDARY_RING)
        picked.validation = score_candidate(picked, default_selection(), "Cervinia")
        detect = self.detection(path, candidate(osm_type="way", osm_id=1, ring=INNER_RING), picked)

        result = set_resort_boundary(path, index=2, selected_at=FIXED_TIME, detect_fn=detect)

        feature = json.loads((path.parent / "boundary.geojson").read_text(encoding="utf-8"))
        assert feature["geometry"] == {"type": "Polygon", "coordinates": [BOUNDARY_RING]}
        assert feature["properties"]["osmId"] == 4242
        assert feature["properties"]["score"] == 153
        assert feature["properties"]["selectedAt"] == FIXED_TIME

        layer = WorkspaceStore(path=path).read().layer(LayerKind.BOUNDARY)
        assert layer.status == "complete"
        assert layer.artifact_path == "boundary.geojson"
        assert layer.feature_count == 1
        assert layer.checksum_sha256 == result.checksum_sha256
        assert layer.query_hash == sha256_text("relation/4242")
        assert result.to_dict()["selectedOsm"] == {
            "osmType": "relation",
            "osmId": 4242,
            "displayName": "Cervinia, Valtournenche, Aosta Valley, Italy",
        }

    def test_ringless_candidate_is_rejected(self, make_workspace) -> None:
        path = make_workspace()
        with pytest.raises(InvalidInputError, match="no polygon geometry"):
            set_resort_boundary(path, index=1, detect_fn=self.detection(path, candidate()))
        assert WorkspaceStore(path=path).read().layer(LayerKind.BOUNDARY).status == "pending"

    def test_bad_index_skips_detection(self, make_workspace) -> None:
        def never(**kwargs):
            raise AssertionError("detection should not run")

        with pytest.raises(InvalidInputError, match="Boundary selection index must be an integer >= 1."):
            set_resort_boundary(make_workspace(), index=0, detect_fn=never)
