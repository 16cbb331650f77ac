"""Layer dispatch table and the single-layer update operation.

LAYER_SYNC_OPERATIONS maps each syncable layer to one callable taking the
workspace path and a LayerUpdateOptions. The terrainBands layer has no entry
of its own: it is produced by the contours sync.

update_resort_layer() snapshots the layer, runs its operation (or nothing,
for a dry run), snapshots again and reports which fields changed.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skiresort_extractor.boundary.selection import set_resort_boundary
from skiresort_extractor.constants import ContourConfig, NominatimConfig
from skiresort_extractor.core.fetch_client import FetchClient
from skiresort_extractor.errors import InvalidInputError
from skiresort_extractor.model.workspace import LayerKind, LayerState
from skiresort_extractor.sync.contours import sync_resort_contours
from skiresort_extractor.sync.osm_layers import sync_resort_lifts, sync_resort_peaks, sync_resort_runs
from skiresort_extractor.workspace.store import WorkspaceStore

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = ("status", "artifactPath", "featureCount", "checksumSha256", "updatedAt", "error")


@dataclass
class LayerUpdateOptions:
    """Per-call knobs; None means the operation's own default."""

    index: int | None = None
    output_path: Path | None = None
    search_limit: int = NominatimConfig.DEFAULT_SEARCH_LIMIT
    buffer_m: float | None = None
    timeout_s: int | None = None
    interval_m: float | None = None
    updated_at: str | None = None
    client: FetchClient | None = None


SyncFn = Callable[[Path, LayerUpdateOptions], Any]


def _overpass_operation(sync_fn: Callable[..., Any]) -> SyncFn:
    def run(workspace_path: Path, options: LayerUpdateOptions) -> Any:
        return sync_fn(
            workspace_path=workspace_path,
            output_path=options.output_path,
            buffer_m=options.buffer_m,
            timeout_s=options.timeout_s,
            updated_at=options.updated_at,
            client=options.client,
        )

    return run


def _contours_operation(workspace_path: Path, options: LayerUpdateOptions) -> Any:
    return sync_resort_contours(
        workspace_path=workspace_path,
        output_path=options.output_path,
        buffer_m=ContourConfig.BUFFER_M if options.buffer_m is None else options.buffer_m,
        interval_m=ContourConfig.INTERVAL_M if options.interval_m is None else options.interval_m,
        updated_at=options.updated_at,
        client=options.client,
    )


def _boundary_operation(workspace_path: Path, options: LayerUpdateOptions) -> Any:
    index = options.index
    if not isinstance(index, int) or isinstance(index, bool) or index < 1:
        raise InvalidInputError("Boundary layer update requires --index with an integer >= 1.")
    return set_resort_boundary(
        workspace_path=workspace_path,
        index=index,
        output_path=options.output_path,
        selected_at=options.updated_at,
        search_limit=options.search_limit,
        client=options.client,
    )


LAYER_SYNC_OPERATIONS: dict[LayerKind, SyncFn] = {
    LayerKind.LIFTS: _overpass_operation(sync_resort_lifts),
    LayerKind.RUNS: _overpass_operation(sync_resort_runs),
    LayerKind.PEAKS: _overpass_operation(sync_resort_peaks),
    LayerKind.CONTOURS: _contours_operation,
}

UPDATE_OPERATIONS: dict[LayerKind, SyncFn] = {LayerKind.BOUNDARY: _boundary_operation, **LAYER_SYNC_OPERATIONS}


def layer_snapshot(layer: LayerState) -> dict[str, Any]:
    """The comparable fields of a layer, None when unset."""
    data = layer.to_dict()
    return {key: data.get(key) for key in SNAPSHOT_FIELDS}


@dataclass
class LayerUpdateResult:
    workspace_path: str
    layer: LayerKind
    dry_run: bool
    before: dict[str, Any]
    after: dict[str, Any]
    operation: Any = None

    @property
    def changed_fields(self) -> list[str]:
        return [key for key in SNAPSHOT_FIELDS if self.before[key] != self.after[key]]

    def to_dict(self) -> dict[str, Any]:
        if self.dry_run:
            operation = {"kind": "dry-run"}
        else:
            result = self.operation.to_dict() if hasattr(self.operation, "to_dict") else self.operation
            operation = {"kind": self.layer.value, "result": result}
        return {
            "workspacePath": self.workspace_path,
            "layer": self.layer.value,
            "dryRun": self.dry_run,
            "before": self.before,
            "after": self.after,
            "changed": bool(self.changed_fields),
            "changedFields": self.changed_fields,
            "operation": operation,
        }


def update_resort_layer(
    workspace_path: Path,
    layer: LayerKind,
    options: LayerUpdateOptions | None = None,
    dry_run: bool = False,
    operations: dict[LayerKind, SyncFn] | None = None,
) -> LayerUpdateResult:
    """Run one layer's operation and report the before/after layer state.

    Raises:
        InvalidInputError: Layer has no update operation, or bad options.
    """
    options = options or LayerUpdateOptions()
    operations = operations if operations is not None else UPDATE_OPERATIONS
    operation = operations.get(layer)
    if operation is None:
        supported = ", ".join(kind.value for kind in operations)
        raise InvalidInputError(f"Layer '{layer.value}' cannot be updated directly. Supported: {supported}.")

    store = WorkspaceStore(path=workspace_path)
    before = layer_snapshot(store.read().layer(layer))
    if dry_run:
        return LayerUpdateResult(
            workspace_path=str(workspace_path), layer=layer, dry_run=True, before=before, after=dict(before)
        )

    logger.info(f"Updating layer {layer.value}")
    result = operation(Path(workspace_path), options)
    after = layer_snapshot(store.read().layer(layer))
    return LayerUpdateResult(
        workspace_path=str(workspace_path),
        layer=layer,
        dry_run=False,
        before=before,
        after=after,
        operation=result,
    )
