"""Shared template for layer sync operations.

Every layer sync follows the same lifecycle against the workspace document:

1. Mark the layer running with the query hash (whole-document write)
2. Produce GeoJSON features (network fetch, subprocess or file import)
3. Write the FeatureCollection atomically and checksum it
4. Mark the layer complete with path, count and checksum

Any exception raised in steps 2-4 marks the layer failed with the error
message and is re-raised unchanged. Previous artifact fields are kept.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skiresort_extractor.constants import FetchConfig, OverpassConfig
from skiresort_extractor.core.artifacts import write_json_atomic
from skiresort_extractor.core.fetch_client import CachePolicy, FetchClient
from skiresort_extractor.core.timestamps import utc_now_iso
from skiresort_extractor.errors import PackSchemaError
from skiresort_extractor.model.workspace import LayerKind
from skiresort_extractor.validators import validate_feature_collection
from skiresort_extractor.workspace.store import WorkspaceStore

logger = logging.getLogger(__name__)

Feature = dict[str, Any]


@dataclass
class LayerSyncResult:
    """Outcome of one successful layer sync."""

    workspace_path: str
    layer: LayerKind
    output_path: str
    query_hash: str
    feature_count: int
    checksum_sha256: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspacePath": self.workspace_path,
            "layer": self.layer.value,
            "outputPath": self.output_path,
            "queryHash": self.query_hash,
            "featureCount": self.feature_count,
            "checksumSha256": self.checksum_sha256,
        }


def feature_collection(features: list[Feature]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}


def line_feature(coordinates: list[list[float]], properties: dict[str, Any]) -> Feature:
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": coordinates},
        "properties": properties,
    }


def point_feature(coordinates: list[float], properties: dict[str, Any]) -> Feature:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": coordinates},
        "properties": properties,
    }


def polygon_feature(rings: list[list[list[float]]], properties: dict[str, Any]) -> Feature:
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": rings},
        "properties": properties,
    }


def run_layer_sync(
    store: WorkspaceStore,
    kind: LayerKind,
    query_hash: str,
    produce: Callable[[], list[Feature]],
    output_path: Path | None = None,
    updated_at: str | None = None,
) -> LayerSyncResult:
    """Run one layer through running -> complete, or -> failed on error.

    Args:
        store: Workspace document store
        kind: Layer being synced
        query_hash: sha256 of the exact upstream query (or imported text)
        produce: Returns the layer's features; may raise
        output_path: Artifact path (default: <workspace dir>/<layer file>)
        updated_at: Timestamp stamped on every transition (default: now)

    Returns:
        LayerSyncResult for the written artifact.
    """
    updated_at = updated_at or utc_now_iso()
    output_path = Path(output_path) if output_path else store.default_artifact_path(kind)

    store.transition(kind, "begin", query_hash=query_hash, updated_at=updated_at)
    try:
        features = produce()
        collection = feature_collection(features)
        validate_feature_collection(collection).raise_for_issues(
            f"Generated {kind.value} layer is not a valid FeatureCollection:", PackSchemaError
        )
        checksum = write_json_atomic(path=output_path, data=collection)
        store.transition(
            kind,
            "succeed",
            artifact_path=store.relative(output_path),
            feature_count=len(features),
            checksum_sha256=checksum,
            updated_at=updated_at,
        )
    except Exception as e:
        logger.error(f"{kind.value} sync failed: {e}")
        store.transition(kind, "fail", error=str(e) or type(e).__name__, updated_at=updated_at)
        raise

    logger.info(f"Synced {kind.value}: {len(features)} features -> {output_path}")
    return LayerSyncResult(
        workspace_path=str(store.path),
        layer=kind,
        output_path=str(output_path),
        query_hash=query_hash,
        feature_count=len(features),
        checksum_sha256=checksum,
    )


def fetch_overpass(client: FetchClient, store: WorkspaceStore, layer: str, query: str, query_hash: str) -> Any:
    """POST an Overpass query, cached in the workspace for one hour."""
    return client.fetch_json(
        OverpassConfig.INTERPRETER_URL,
        method="POST",
        headers={"Content-Type": "text/plain"},
        body=query,
        cache=CachePolicy(dir=store.cache_dir, ttl_s=FetchConfig.CACHE_TTL_S, key=f"{layer}:{query_hash}"),
    )
