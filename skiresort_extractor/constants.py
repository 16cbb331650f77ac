"""Configuration constants for the Ski Resort Pack Extractor.

All tunable parameters are centralized here for easy tuning.

Classes:
    SchemaVersions: Document schema version strings
    FetchConfig: Retry, throttle and cache defaults for upstream HTTP calls
    NominatimConfig: Resort name search and boundary lookup endpoints
    OverpassConfig: Region feature query endpoint and layer buffers
    BoundaryScoringConfig: Boundary candidate relevance filters and score weights
    PackConfig: Difficulty synonyms, corridor widths and pack defaults
    WorkspaceConfig: Workspace layer names and artifact file names
    ContourConfig: Elevation raster provider and contour generation defaults
    EnvVars: Environment variable names for runtime knobs
"""

from pathlib import Path

# Written into every User-Agent header sent upstream
USER_AGENT = "patrol-toolkit-osm-extractor/0.1"

# Deterministic fallback used when neither an override nor a source timestamp exists
EPOCH_FALLBACK_TIMESTAMP = "1970-01-01T00:00:00.000Z"


class SchemaVersions:
    """Schema version strings written into (and accepted from) documents."""

    NORMALIZED_SOURCE = "0.2.0"
    PACK = "1.0.0"
    BUILD_REPORT = "0.3.0"
    WORKSPACE = "2.1.0"
    WORKSPACE_ACCEPTED = ("2.0.0", "2.1.0")
    EXTRACT_CONFIG = "0.4.0"
    FLEET_CONFIG = "1.0.0"
    FLEET_MANIFEST = "1.0.0"
    PROVENANCE = "1.0.0"

    assert WORKSPACE in WORKSPACE_ACCEPTED


class FetchConfig:
    """Retry, throttle and cache defaults for upstream HTTP calls."""

    MAX_ATTEMPTS = 4
    BASE_DELAY_S = 0.5  # Backoff: BASE_DELAY_S * 2^(attempt-1)
    RETRY_ON_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

    # Public OSM services ask for at most ~1 request per second
    THROTTLE_S = 1.1

    REQUEST_TIMEOUT_S = 60
    CACHE_TTL_S = 60 * 60  # 1 hour
    CACHE_DIR_NAME = ".cache"


class NominatimConfig:
    """Resort name search and boundary lookup endpoints."""

    SEARCH_URL = "https://nominatim.openstreetmap.org/search"
    LOOKUP_URL = "https://nominatim.openstreetmap.org/lookup"
    RESULT_FORMAT = "jsonv2"
    DEFAULT_SEARCH_LIMIT = 5

    # Nominatim lookup ids are "{prefix}{id}"
    OSM_TYPE_PREFIXES = {
        "relation": "R",
        "way": "W",
        "node": "N",
    }
    OSM_TYPES = tuple(OSM_TYPE_PREFIXES.keys())


class OverpassConfig:
    """Region feature query endpoint and per-layer bbox buffers."""

    INTERPRETER_URL = "https://overpass-api.de/api/interpreter"
    TIMEOUT_S = 30

    # Buffer around the boundary bbox (meters) per layer
    LIFTS_BUFFER_M = 0
    RUNS_BUFFER_M = 0
    PEAKS_BUFFER_M = 500


class BoundaryScoringConfig:
    """Boundary candidate relevance filters and additive score weights."""

    # Region query radius around the selection center
    REGION_RADIUS_M = 15_000

    # Relevance filter for search results (distance from selection center)
    MAX_DISTANCE_KM = 1000
    FAR_DISTANCE_KM = 300  # 300-1000km: exact name substring required
    MID_DISTANCE_KM = 120  # 120-300km: substring or shared significant token required

    STOPWORDS = frozenset({"ski", "area", "resort", "mountain", "the", "and", "of", "at"})
    MIN_TOKEN_LENGTH = 4

    # Plausible ski resort area range (km²)
    MIN_AREA_KM2 = 0.1
    MAX_AREA_KM2 = 1000

    SCORE_HAS_RING = 40
    SCORE_RING_CLOSED = 20
    SCORE_CONTAINS_CENTER = 30
    SCORE_AREA_PLAUSIBLE = 20
    SCORE_NAME_SUBSTRING = 16
    SCORE_NAME_TOKENS_MULTI = 10
    SCORE_NAME_TOKENS_SINGLE = 4
    SCORE_NAME_NO_MATCH = -18
    SCORE_WINTER_SPORTS_LABEL = 20
    SCORE_CURRENT_SELECTION = 6
    SCORE_RELATION_GEOMETRY = 6
    SCORE_WAY_GEOMETRY = 3

    # (max distance km, score) tiers, checked in order
    DISTANCE_TIERS = (
        (2, 15),
        (10, 8),
        (25, 2),
    )

    # Tags marking a winter sports area in the region query
    REGION_AREA_TAGS = (
        ("landuse", "winter_sports"),
        ("leisure", "ski_resort"),
        ("site", "piste"),
    )

    assert FAR_DISTANCE_KM < MAX_DISTANCE_KM
    assert MID_DISTANCE_KM < FAR_DISTANCE_KM


class PackConfig:
    """Difficulty synonyms, corridor widths and pack defaults."""

    DIFFICULTIES = ["green", "blue", "black", "double-black"]
    FALLBACK_DIFFICULTY = "blue"

    # Raw piste:difficulty values (lowercased) mapped to pack difficulty
    DIFFICULTY_SYNONYMS = {
        "novice": "green",
        "easy": "green",
        "beginner": "green",
        "green": "green",
        "intermediate": "blue",
        "moderate": "blue",
        "blue": "blue",
        "advanced": "black",
        "expert": "black",
        "black": "black",
        "extreme": "double-black",
        "freeride": "double-black",
        "double_black": "double-black",
        "double-black": "double-black",
    }
    assert set(DIFFICULTY_SYNONYMS.values()) == set(DIFFICULTIES)

    # Corridor polygon width per difficulty (meters)
    CORRIDOR_WIDTHS_M = {
        "green": 28,
        "blue": 22,
        "black": 16,
        "double-black": 12,
    }
    assert set(CORRIDOR_WIDTHS_M.keys()) == set(DIFFICULTIES)

    DEFAULT_LIFT_PROXIMITY_M = 90

    # Way tags that classify OSM elements
    SUPPORTED_AERIALWAYS = frozenset(
        {
            "chair_lift",
            "drag_lift",
            "gondola",
            "mixed_lift",
            "t-bar",
            "j-bar",
            "platter",
            "rope_tow",
            "magic_carpet",
            "cable_car",
            "funicular",
        }
    )
    BOUNDARY_TAG_VALUES = frozenset({"winter_sports", "ski_resort"})
    BOUNDARY_RELATION_TYPES = frozenset({"multipolygon", "boundary"})
    UNKNOWN_RESORT_NAME = "Unknown Resort"


class WorkspaceConfig:
    """Workspace layer names and default artifact file names."""

    LAYER_STATUSES = ("pending", "running", "complete", "failed")

    # Default artifact file names, written beside the workspace document
    ARTIFACT_FILES = {
        "boundary": "boundary.geojson",
        "lifts": "lifts.geojson",
        "runs": "runs.geojson",
        "peaks": "peaks.geojson",
        "contours": "contours.geojson",
        "terrainBands": "terrain-bands.geojson",
    }


class ContourConfig:
    """Elevation raster provider and contour generation defaults."""

    PROVIDERS = ("opentopography",)
    DEFAULT_PROVIDER = "opentopography"
    DEFAULT_DATASET = "COP30"
    GLOBALDEM_URL = "https://portal.opentopography.org/API/globaldem"
    GDAL_CONTOUR_BIN = "gdal_contour"

    # QGIS bundles GDAL tools inside its app bundle on macOS
    MACOS_APPLICATIONS_DIR = Path("/Applications")
    MACOS_QGIS_BIN_RELPATH = Path("Contents") / "MacOS" / "gdal_contour"

    BUFFER_M = 2000
    INTERVAL_M = 20

    # Chaikin iterations per smoothing mode
    SMOOTHING_ITERATIONS = {
        "off": 0,
        "low": 1,
        "medium": 2,
        "hard": 3,
        "super-hard": 4,
    }
    DEFAULT_SMOOTHING = "super-hard"
    assert DEFAULT_SMOOTHING in SMOOTHING_ITERATIONS


class EnvVars:
    """Environment variable names for runtime knobs."""

    CONTOUR_SMOOTHING = "PTK_CONTOUR_SMOOTHING"
    CONTOUR_DEM_PROVIDER = "PTK_CONTOUR_DEM_PROVIDER"
    OPENTOPO_API_KEY = "PTK_OPENTOPO_API_KEY"
    OPENTOPO_DATASET = "PTK_OPENTOPO_DATASET"
    OPENTOPO_GLOBALDEM_URL = "PTK_OPENTOPO_GLOBALDEM_URL"
    CONTOUR_USER_AGENT = "PTK_CONTOUR_USER_AGENT"
    GDAL_CONTOUR_BIN = "PTK_GDAL_CONTOUR_BIN"
