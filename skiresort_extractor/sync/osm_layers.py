"""Lifts, runs and peaks layers fetched from Overpass.

Each sync reads the completed boundary, builds a bbox query around its ring,
fetches through the workspace cache and writes a GeoJSON layer:

- lifts: aerialway ways as LineStrings {id: "way/<id>", name, aerialway}
- runs: downhill piste ways as LineStrings {id, name, difficulty, grooming}
- peaks: natural=peak nodes as Points {id: "node/<id>", name, ele}

Relations are queried but only ways (or nodes, for peaks) become features.
"""

import logging
from pathlib import Path
from typing import Any

from skiresort_extractor.constants import OverpassConfig
from skiresort_extractor.core.artifacts import sha256_text
from skiresort_extractor.core.fetch_client import FetchClient
from skiresort_extractor.core.geo_calculator import GeoCalculator
from skiresort_extractor.model.workspace import LayerKind
from skiresort_extractor.sync.common import (
    Feature,
    LayerSyncResult,
    fetch_overpass,
    line_feature,
    point_feature,
    run_layer_sync,
)
from skiresort_extractor.sync.overpass import (
    build_lifts_query,
    build_peaks_query,
    build_runs_query,
    element_line,
    element_point,
    element_tag,
    elements_of,
    parse_elevation,
)
from skiresort_extractor.workspace.store import WorkspaceStore, boundary_ring_for

logger = logging.getLogger(__name__)


# =============================================================================
# Feature conversion
# =============================================================================


def to_lift_features(elements: list[dict[str, Any]]) -> list[Feature]:
    features = []
    for element in elements:
        if element.get("type") != "way":
            continue
        aerialway = element_tag(element, "aerialway")
        line = element_line(element)
        if aerialway is None or len(line) < 2:
            continue
        element_id = element.get("id", "unknown")
        features.append(
            line_feature(
                line,
                {
                    "id": f"way/{element_id}",
                    "name": element_tag(element, "name") or f"Lift {element_id}",
                    "aerialway": aerialway,
                },
            )
        )
    return features


def to_run_features(elements: list[dict[str, Any]]) -> list[Feature]:
    features = []
    for element in elements:
        if element.get("type") != "way" or element_tag(element, "piste:type") != "downhill":
            continue
        line = element_line(element)
        if len(line) < 2:
            continue
        element_id = element.get("id", "unknown")
        features.append(
            line_feature(
                line,
                {
                    "id": f"way/{element_id}",
                    "name": element_tag(element, "name") or f"Run {element_id}",
                    "difficulty": element_tag(element, "piste:difficulty"),
                    "grooming": element_tag(element, "piste:grooming"),
                },
            )
        )
    return features


def to_peak_features(elements: list[dict[str, Any]]) -> list[Feature]:
    features = []
    for element in elements:
        if element.get("type") != "node" or element_tag(element, "natural") != "peak":
            continue
        point = element_point(element)
        if point is None:
            continue
        element_id = element.get("id", "unknown")
        features.append(
            point_feature(
                point,
                {
                    "id": f"node/{element_id}",
                    "name": element_tag(element, "name") or f"Peak {element_id}",
                    "ele": parse_elevation(element_tag(element, "ele")),
                },
            )
        )
    return features


# =============================================================================
# Sync operations
# =============================================================================

_LAYERS = {
    LayerKind.LIFTS: (build_lifts_query, to_lift_features, OverpassConfig.LIFTS_BUFFER_M),
    LayerKind.RUNS: (build_runs_query, to_run_features, OverpassConfig.RUNS_BUFFER_M),
    LayerKind.PEAKS: (build_peaks_query, to_peak_features, OverpassConfig.PEAKS_BUFFER_M),
}


def _sync_overpass_layer(
    kind: LayerKind,
    workspace_path: Path,
    output_path: Path | None,
    buffer_m: float | None,
    timeout_s: int | None,
    updated_at: str | None,
    client: FetchClient | None,
) -> LayerSyncResult:
    build_query, to_features, default_buffer_m = _LAYERS[kind]
    store = WorkspaceStore(path=workspace_path)
    ring = boundary_ring_for(store, store.read())

    bbox = GeoCalculator.buffered_bbox(ring, buffer_m=default_buffer_m if buffer_m is None else buffer_m)
    query = build_query(bbox, timeout_s or OverpassConfig.TIMEOUT_S)
    query_hash = sha256_text(query)
    client = client or FetchClient()

    def produce() -> list[Feature]:
        payload = fetch_overpass(client=client, store=store, layer=kind.value, query=query, query_hash=query_hash)
        return to_features(elements_of(payload))

    return run_layer_sync(
        store=store,
        kind=kind,
        query_hash=query_hash,
        produce=produce,
        output_path=output_path,
        updated_at=updated_at,
    )


def sync_resort_lifts(
    workspace_path: Path,
    output_path: Path | None = None,
    buffer_m: float | None = None,
    timeout_s: int | None = None,
    updated_at: str | None = None,
    client: FetchClient | None = None,
) -> LayerSyncResult:
    """Fetch aerialways inside the boundary bbox into the lifts layer.

    Raises:
        LayerPreconditionError: Boundary layer not complete.
        InvalidInputError: Boundary artifact unreadable.
        UpstreamError: Overpass failed (layer marked failed).
    """
    return _sync_overpass_layer(LayerKind.LIFTS, workspace_path, output_path, buffer_m, timeout_s, updated_at, client)


def sync_resort_runs(
    workspace_path: Path,
    output_path: Path | None = None,
    buffer_m: float | None = None,
    timeout_s: int | None = None,
    updated_at: str | None = None,
    client: FetchClient | None = None,
) -> LayerSyncResult:
    """Fetch downhill pistes inside the boundary bbox into the runs layer."""
    return _sync_overpass_layer(LayerKind.RUNS, workspace_path, output_path, buffer_m, timeout_s, updated_at, client)


def sync_resort_peaks(
    workspace_path: Path,
    output_path: Path | None = None,
    buffer_m: float | None = None,
    timeout_s: int | None = None,
    updated_at: str | None = None,
    client: FetchClient | None = None,
) -> LayerSyncResult:
    """Fetch named peaks around the boundary (500 m buffer) into the peaks layer."""
    return _sync_overpass_layer(LayerKind.PEAKS, workspace_path, output_path, buffer_m, timeout_s, updated_at, client)
