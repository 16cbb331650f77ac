"""Elevation raster (DEM GeoTIFF) inspection for contour generation.

The contour sync downloads a GeoTIFF for the buffered resort bbox and hands
it to gdal_contour. Before that, DemRaster confirms the file is a readable
raster with at least one valid elevation cell, so an upstream error page or
an all-nodata tile fails with a clear message instead of an empty contour set.

No-data cells (the raster's nodata value or NaN) are masked before
computing the elevation range.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError

from skiresort_extractor.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemSummary:
    """Shape and elevation range of a DEM raster.

    Attributes:
        width: Raster columns
        height: Raster rows
        crs: CRS string ("EPSG:4326" when the file carries none)
        bounds: (west, south, east, north) in the raster CRS
        valid_cells: Number of cells holding an elevation
        min_elevation_m: Lowest valid elevation
        max_elevation_m: Highest valid elevation
    """

    width: int
    height: int
    crs: str
    bounds: tuple[float, float, float, float]
    valid_cells: int
    min_elevation_m: float
    max_elevation_m: float


class DemRaster:
    """Read-only view of a single-band DEM GeoTIFF.

    Example:
        summary = DemRaster(path=Path("dem.tif")).summarize()
        print(summary.min_elevation_m, summary.max_elevation_m)
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read_elevations(self) -> np.ndarray:
        """Band 1 as float64 with no-data cells set to NaN.

        Raises:
            UpstreamError: If the file is not a readable raster.
        """
        try:
            with rasterio.open(self.path) as dem:
                array = dem.read(1).astype(np.float64)
                nodata = dem.nodata
        except RasterioIOError as e:
            raise UpstreamError(f"Elevation raster at {self.path} is not a readable GeoTIFF: {e}") from e

        if nodata is not None:
            array[array == nodata] = np.nan
        return array

    def summarize(self) -> DemSummary:
        """Inspect the raster and its valid elevation range.

        Raises:
            UpstreamError: If unreadable or if no cell holds a valid elevation.
        """
        array = self.read_elevations()
        valid = ~np.isnan(array)
        valid_cells = int(valid.sum())
        if valid_cells == 0:
            raise UpstreamError(f"Elevation raster at {self.path} has no valid elevation cells.")

        with rasterio.open(self.path) as dem:
            crs = dem.crs.to_string() if dem.crs else "EPSG:4326"
            b = dem.bounds
            bounds = (b.left, b.bottom, b.right, b.top)

        summary = DemSummary(
            width=int(array.shape[1]),
            height=int(array.shape[0]),
            crs=crs,
            bounds=bounds,
            valid_cells=valid_cells,
            min_elevation_m=float(np.nanmin(array)),
            max_elevation_m=float(np.nanmax(array)),
        )
        logger.info(
            f"DEM {self.path.name}: {summary.width}x{summary.height} ({summary.crs}), "
            f"elevation {summary.min_elevation_m:.0f}-{summary.max_elevation_m:.0f}m"
        )
        return summary
