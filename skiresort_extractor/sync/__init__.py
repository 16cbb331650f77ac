"""Layer sync operations: lifts, runs, peaks, contours and terrain bands."""

from skiresort_extractor.sync.common import LayerSyncResult, run_layer_sync
from skiresort_extractor.sync.contours import ContourSyncResult, sync_resort_contours
from skiresort_extractor.sync.dispatch import (
    LAYER_SYNC_OPERATIONS,
    LayerUpdateOptions,
    LayerUpdateResult,
    update_resort_layer,
)
from skiresort_extractor.sync.import_layers import import_resort_contours, import_resort_terrain_bands
from skiresort_extractor.sync.osm_layers import sync_resort_lifts, sync_resort_peaks, sync_resort_runs

__all__ = [
    "LAYER_SYNC_OPERATIONS",
    "ContourSyncResult",
    "LayerSyncResult",
    "LayerUpdateOptions",
    "LayerUpdateResult",
    "import_resort_contours",
    "import_resort_terrain_bands",
    "run_layer_sync",
    "sync_resort_contours",
    "sync_resort_lifts",
    "sync_resort_peaks",
    "sync_resort_runs",
    "update_resort_layer",
]
