"""Shared pytest fixtures for skiresort_extractor tests.

Provides a scripted HTTP session, a FetchClient that never sleeps, a small
Overpass document and a workspace factory.

COORDINATE SYSTEM:
    Tests use a resort square around Cervinia (lon 7.60-7.70, lat 45.90-45.96),
    about 7.7 km x 6.7 km (~52 km²), well inside the plausible resort range.
    The selection center (7.63, 45.93) lies inside the square.
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from skiresort_extractor.core.artifacts import write_json_atomic
from skiresort_extractor.core.fetch_client import FetchClient, RateLimiter
from skiresort_extractor.model.workspace import LayerKind, ResortQuery, ResortSelection
from skiresort_extractor.workspace.store import WorkspaceStore, create_workspace

FIXED_TIME = "2025-01-15T08:30:00.000Z"

BOUNDARY_RING = [[7.60, 45.90], [7.70, 45.90], [7.70, 45.96], [7.60, 45.96], [7.60, 45.90]]
SELECTION_CENTER = [7.63, 45.93]


# =============================================================================
# FAKE HTTP
# =============================================================================


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = content if content is not None else json.dumps(payload).encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON payload")
        return self._payload


class FakeSession:
    """Scripted session: serves queued responses or routes through a handler.

    Every call is recorded in .calls as a dict of method, url and kwargs.
    Queued items that are exceptions are raised instead of returned.
    """

    def __init__(
        self,
        responses: list[Any] | None = None,
        handler: Callable[[str, str, dict[str, Any]], FakeResponse] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.handler is not None:
            return self.handler(method, url, kwargs)
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_client(session: FakeSession, sleeps: list[float] | None = None) -> FetchClient:
    """FetchClient over a fake session with no throttle and recorded sleeps."""
    recorded = sleeps if sleeps is not None else []
    return FetchClient(
        session=session,
        rate_limiter=RateLimiter(min_interval_s=0, sleep=recorded.append),
        sleep=recorded.append,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


# =============================================================================
# OSM DOCUMENT
# =============================================================================


def osm_node(node_id: int, lon: float, lat: float) -> dict[str, Any]:
    return {"type": "node", "id": node_id, "lon": lon, "lat": lat}


@pytest.fixture
def sample_osm_document() -> dict[str, Any]:
    """Boundary way, two runs (one inside, one too short), one lift inside."""
    return {
        "version": 0.6,
        "generator": "Overpass API",
        "osm3s": {"timestamp_osm_base": "2025-01-10T12:00:00Z"},
        "elements": [
            osm_node(1, 7.60, 45.90),
            osm_node(2, 7.70, 45.90),
            osm_node(3, 7.70, 45.96),
            osm_node(4, 7.60, 45.96),
            osm_node(10, 7.62, 45.92),
            osm_node(11, 7.63, 45.93),
            osm_node(12, 7.64, 45.94),
            osm_node(20, 7.65, 45.91),
            osm_node(21, 7.66, 45.95),
            {
                "type": "way",
                "id": 100,
                "nodes": [1, 2, 3, 4, 1],
                "tags": {"landuse": "winter_sports", "name": "Cervinia Ski Area"},
            },
            {
                "type": "way",
                "id": 200,
                "nodes": [10, 11, 12],
                "tags": {"piste:type": "downhill", "piste:difficulty": "intermediate", "name": "Ventina"},
            },
            {"type": "way", "id": 201, "nodes": [10, 999], "tags": {"piste:type": "downhill"}},
            {"type": "way", "id": 300, "nodes": [20, 21], "tags": {"aerialway": "chair_lift", "name": "Bardoney"}},
        ],
    }


@pytest.fixture
def osm_input_file(tmp_path: Path, sample_osm_document: dict[str, Any]) -> Path:
    path = tmp_path / "input" / "cervinia.osm.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(sample_osm_document), encoding="utf-8")
    return path


# =============================================================================
# WORKSPACE
# =============================================================================


def default_selection() -> ResortSelection:
    return ResortSelection(
        osm_type="relation",
        osm_id=4242,
        display_name="Cervinia, Valtournenche, Aosta Valley, Italy",
        center=list(SELECTION_CENTER),
        selected_at=FIXED_TIME,
    )


def complete_boundary(workspace_path: Path, ring: list[list[float]] | None = None) -> Path:
    """Write boundary.geojson beside the workspace and mark the layer complete."""
    store = WorkspaceStore(path=workspace_path)
    boundary_path = store.default_artifact_path(LayerKind.BOUNDARY)
    feature = {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring or BOUNDARY_RING]},
        "properties": {"osmType": "relation", "osmId": 4242},
    }
    checksum = write_json_atomic(path=boundary_path, data=feature)
    store.transition(LayerKind.BOUNDARY, "begin", query_hash="a" * 64, updated_at=FIXED_TIME)
    store.transition(
        LayerKind.BOUNDARY,
        "succeed",
        artifact_path=boundary_path.name,
        feature_count=1,
        checksum_sha256=checksum,
        updated_at=FIXED_TIME,
    )
    return boundary_path


@pytest.fixture
def make_workspace(tmp_path: Path) -> Callable[..., Path]:
    """Factory: make_workspace(with_selection=True, with_boundary=False) -> workspace path."""

    def factory(with_selection: bool = True, with_boundary: bool = False, name: str = "workspace") -> Path:
        path = tmp_path / name / "workspace.json"
        create_workspace(
            path,
            ResortQuery(name="Cervinia", country="IT"),
            default_selection() if with_selection else None,
        )
        if with_boundary:
            complete_boundary(path)
        return path

    return factory
