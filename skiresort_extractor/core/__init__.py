"""Core foundation: geometry, HTTP access, artifact I/O and audit trail.

- GeoCalculator: Ring, line and distance calculations
- FetchClient: HTTP with retry, throttling and disk cache
- DemRaster: Elevation raster inspection (rasterio)
- Artifact helpers: Atomic JSON writes and sha256 checksums
- Audit loggers: Structured JSONL audit events
"""

from skiresort_extractor.core.audit import AuditLogger, JsonlAuditLogger, NoopAuditLogger
from skiresort_extractor.core.dem_raster import DemRaster, DemSummary
from skiresort_extractor.core.fetch_client import CachePolicy, FetchClient, RateLimiter, RetryPolicy
from skiresort_extractor.core.geo_calculator import GeoCalculator

__all__ = [
    # Geometry
    "GeoCalculator",
    # HTTP
    "FetchClient",
    "RateLimiter",
    "RetryPolicy",
    "CachePolicy",
    # Elevation
    "DemRaster",
    "DemSummary",
    # Audit
    "AuditLogger",
    "NoopAuditLogger",
    "JsonlAuditLogger",
]
