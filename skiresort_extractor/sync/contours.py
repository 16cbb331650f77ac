"""Contour and terrain band generation from a global DEM.

Pipeline:
1. Buffer the boundary bbox (default 2000 m) and request a GeoTIFF from the
   OpenTopography global DEM endpoint
2. Check the raster with DemRaster (readable, has valid cells)
3. Run gdal_contour twice: contour lines (-a ele) and terrain band
   polygons (-p -amin eleMin -amax eleMax)
4. Smooth contour lines with Chaikin iterations per PTK_CONTOUR_SMOOTHING
5. Commit contours, then terrain bands, through the layer sync template

The contours layer's queryHash covers the DEM URL and the interval, so a
change of dataset, bbox or interval is visible in the workspace. A failure
anywhere in steps 1-4 marks contours failed; terrain bands are untouched.
"""

import json
import logging
import shutil
import subprocess
import sys
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from skiresort_extractor.constants import ContourConfig
from skiresort_extractor.core.artifacts import read_json, sha256_text, write_bytes_atomic
from skiresort_extractor.core.dem_raster import DemRaster
from skiresort_extractor.core.fetch_client import FetchClient
from skiresort_extractor.core.geo_calculator import BBox, GeoCalculator
from skiresort_extractor.errors import InvalidInputError, LayerPreconditionError, UpstreamError
from skiresort_extractor.model.workspace import LayerKind
from skiresort_extractor.settings import ContourProviderSettings
from skiresort_extractor.sync.common import Feature, LayerSyncResult, run_layer_sync
from skiresort_extractor.sync.import_layers import normalize_contour_features, normalize_terrain_band_features
from skiresort_extractor.workspace.store import WorkspaceStore, boundary_ring_for

logger = logging.getLogger(__name__)

CommandRunner = Callable[[list[str]], None]

GDAL_NOT_FOUND = (
    "gdal_contour not found. Install GDAL (ensure `gdal_contour` is on PATH) or install QGIS "
    "and set PTK_GDAL_CONTOUR_BIN to the bundled binary, "
    "e.g. /Applications/QGIS*.app/Contents/MacOS/gdal_contour."
)


@dataclass
class ContourSyncResult:
    contours: LayerSyncResult
    terrain_bands: LayerSyncResult
    provider: str
    contour_interval_m: float
    buffer_m: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspacePath": self.contours.workspace_path,
            "outputPath": self.contours.output_path,
            "importedFeatureCount": self.contours.feature_count,
            "importedTerrainBandCount": self.terrain_bands.feature_count,
            "checksumSha256": self.contours.checksum_sha256,
            "queryHash": self.contours.query_hash,
            "provider": self.provider,
            "contourIntervalMeters": self.contour_interval_m,
            "bufferMeters": self.buffer_m,
        }


# =============================================================================
# Request and tool resolution
# =============================================================================


def build_globaldem_params(settings: ContourProviderSettings, bbox: BBox) -> dict[str, str]:
    """Query parameters for an OpenTopography global DEM GeoTIFF request."""
    min_lon, min_lat, max_lon, max_lat = bbox
    return {
        "demtype": settings.dataset,
        "south": str(min_lat),
        "north": str(max_lat),
        "west": str(min_lon),
        "east": str(max_lon),
        "outputFormat": "GTiff",
        "API_Key": settings.api_key,
    }


def build_globaldem_url(settings: ContourProviderSettings, bbox: BBox) -> str:
    """Full request URL, used to hash the contour query."""
    prepared = requests.Request("GET", settings.base_url, params=build_globaldem_params(settings, bbox)).prepare()
    return prepared.url


def find_qgis_gdal_contour(applications_dir: Path = ContourConfig.MACOS_APPLICATIONS_DIR) -> Path | None:
    """gdal_contour bundled with a QGIS*.app (macOS), if any."""
    if not applications_dir.is_dir():
        return None
    for app in sorted(applications_dir.glob("QGIS*.app")):
        candidate = app / ContourConfig.MACOS_QGIS_BIN_RELPATH
        if candidate.is_file():
            return candidate
    return None


def resolve_gdal_contour_bin(
    settings: ContourProviderSettings,
    which: Callable[[str], str | None] = shutil.which,
    platform: str = sys.platform,
    applications_dir: Path = ContourConfig.MACOS_APPLICATIONS_DIR,
) -> str:
    """Binary to run: env override, else PATH, else QGIS bundle on macOS.

    Raises:
        LayerPreconditionError: If no gdal_contour can be found.
    """
    if settings.gdal_contour_bin_overridden:
        return settings.gdal_contour_bin
    on_path = which(settings.gdal_contour_bin)
    if on_path:
        return on_path
    if platform == "darwin":
        bundled = find_qgis_gdal_contour(applications_dir=applications_dir)
        if bundled is not None:
            logger.info(f"Using QGIS-bundled gdal_contour at {bundled}")
            return str(bundled)
    raise LayerPreconditionError(GDAL_NOT_FOUND)


def run_command(args: list[str]) -> None:
    """Run a tool, raising UpstreamError with its stderr on failure."""
    logger.debug(f"Running {' '.join(args)}")
    try:
        subprocess.run(args, check=True, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise LayerPreconditionError(GDAL_NOT_FOUND) from e
    except subprocess.CalledProcessError as e:
        raise UpstreamError(f"{Path(args[0]).name} failed with exit code {e.returncode}: {e.stderr.strip()}") from e


def contour_lines_args(binary: str, interval_m: float, dem_path: Path, output_path: Path) -> list[str]:
    return [binary, "-a", "ele", "-i", f"{interval_m:g}", "-f", "GeoJSON", str(dem_path), str(output_path)]


def terrain_band_args(binary: str, interval_m: float, dem_path: Path, output_path: Path) -> list[str]:
    return [
        binary,
        "-p",
        "-amin",
        "eleMin",
        "-amax",
        "eleMax",
        "-i",
        f"{interval_m:g}",
        "-f",
        "GeoJSON",
        str(dem_path),
        str(output_path),
    ]


# =============================================================================
# Smoothing
# =============================================================================


def smooth_contour_collection(collection: Any, iterations: int) -> Any:
    """Chaikin-smooth every LineString / MultiLineString in a FeatureCollection.

    Raises:
        InvalidInputError: If the input is not a FeatureCollection.
    """
    if iterations <= 0:
        return collection
    if (
        not isinstance(collection, dict)
        or collection.get("type") != "FeatureCollection"
        or not isinstance(collection.get("features"), list)
    ):
        raise InvalidInputError("Contours smoothing input must be a GeoJSON FeatureCollection.")

    features = []
    for feature in collection["features"]:
        geometry = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geometry, dict):
            features.append(feature)
            continue
        coordinates = geometry.get("coordinates")
        if geometry.get("type") == "LineString" and _is_line(coordinates):
            coordinates = GeoCalculator.smooth_line(coordinates, iterations=iterations)
        elif geometry.get("type") == "MultiLineString" and isinstance(coordinates, list):
            coordinates = [
                GeoCalculator.smooth_line(line, iterations=iterations) if _is_line(line) else line
                for line in coordinates
            ]
        features.append({**feature, "geometry": {**geometry, "coordinates": coordinates}})
    return {**collection, "features": features}


def _is_line(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(point, list) and len(point) >= 2 and all(isinstance(v, (int, float)) for v in point[:2])
        for point in value
    )


# =============================================================================
# Sync
# =============================================================================


def sync_resort_contours(
    workspace_path: Path,
    output_path: Path | None = None,
    buffer_m: float = ContourConfig.BUFFER_M,
    interval_m: float = ContourConfig.INTERVAL_M,
    updated_at: str | None = None,
    client: FetchClient | None = None,
    settings: ContourProviderSettings | None = None,
    runner: CommandRunner = run_command,
    which: Callable[[str], str | None] = shutil.which,
    tmp_root: Path | None = None,
) -> ContourSyncResult:
    """Generate contours and terrain bands for the boundary area.

    Raises:
        InvalidInputError: Bad buffer/interval or missing provider settings.
        LayerPreconditionError: Boundary not complete or gdal_contour missing.
        UpstreamError: DEM download, raster check or gdal_contour failed.
    """
    if buffer_m < 0:
        raise InvalidInputError("Contour bufferMeters must be a number >= 0.")
    if interval_m <= 0:
        raise InvalidInputError("Contour interval must be a number > 0.")

    settings = settings or ContourProviderSettings.from_env()
    store = WorkspaceStore(path=workspace_path)
    ring = boundary_ring_for(store, store.read())
    bbox = GeoCalculator.buffered_bbox(ring, buffer_m=buffer_m)
    dem_url = build_globaldem_url(settings, bbox)
    query_hash = sha256_text(json.dumps({"demUrl": dem_url, "contourIntervalMeters": interval_m}, separators=(",", ":")))
    client = client or FetchClient(user_agent=settings.user_agent)

    with tempfile.TemporaryDirectory(prefix="ptk-contours-", dir=tmp_root) as work_dir:
        dem_path = Path(work_dir) / "dem.tif"
        contours_path = Path(work_dir) / "contours.generated.geojson"
        bands_path = Path(work_dir) / "terrain-bands.generated.geojson"

        def produce_contours() -> list[Feature]:
            payload = client.fetch_bytes(
                settings.base_url,
                params=build_globaldem_params(settings, bbox),
                headers={"Accept": "application/octet-stream,*/*"},
            )
            if not payload:
                raise UpstreamError("DEM download returned an empty response.")
            write_bytes_atomic(path=dem_path, payload=payload)
            DemRaster(path=dem_path).summarize()

            binary = resolve_gdal_contour_bin(settings, which=which)
            runner(contour_lines_args(binary, interval_m, dem_path, contours_path))
            runner(terrain_band_args(binary, interval_m, dem_path, bands_path))

            generated = read_json(contours_path, label="Generated contours")
            generated = smooth_contour_collection(generated, iterations=settings.smoothing_iterations)
            return normalize_contour_features(generated)

        contours = run_layer_sync(
            store=store,
            kind=LayerKind.CONTOURS,
            query_hash=query_hash,
            produce=produce_contours,
            output_path=output_path,
            updated_at=updated_at,
        )

        bands_text = bands_path.read_text(encoding="utf-8")
        terrain_bands = run_layer_sync(
            store=store,
            kind=LayerKind.TERRAIN_BANDS,
            query_hash=sha256_text(bands_text),
            produce=lambda: normalize_terrain_band_features(json.loads(bands_text)),
            updated_at=updated_at,
        )

    return ContourSyncResult(
        contours=contours,
        terrain_bands=terrain_bands,
        provider=settings.provider,
        contour_interval_m=interval_m,
        buffer_m=buffer_m,
    )
