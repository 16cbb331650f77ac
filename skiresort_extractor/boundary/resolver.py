"""Boundary candidate detection and scoring.

Given a workspace with a selected resort, candidates are gathered from an
ordered list of candidate sources:

1. selection: the committed selection itself
2. search: Nominatim name/country search re-run with query variants,
   filtered by distance-dependent name relevance
3. region: Overpass query for winter sports areas around the selection
   center, with geometry taken from the response

Each source may fail independently. Failures matching the SwallowPolicy are
logged and recorded in DetectionResult.source_errors; anything else
propagates. Candidates are deduplicated by (osm type, osm id), candidates
still lacking a ring get a Nominatim polygon lookup, and every candidate is
scored. Output is sorted by score (descending), then display name.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skiresort_extractor.constants import BoundaryScoringConfig, FetchConfig, NominatimConfig, OverpassConfig
from skiresort_extractor.core.artifacts import sha256_text
from skiresort_extractor.core.fetch_client import CachePolicy, FetchClient
from skiresort_extractor.core.geo_calculator import GeoCalculator
from skiresort_extractor.errors import ExtractorError, InvalidInputError
from skiresort_extractor.model.boundary_candidate import BoundaryCandidate, CandidateValidation
from skiresort_extractor.model.workspace import ResortSelection, ResortWorkspace
from skiresort_extractor.boundary.geometry import (
    overpass_geometry_line,
    ring_center,
    ring_from_geojson,
    ring_from_relation_members,
)
from skiresort_extractor.boundary.search import (
    ResortSearchResult,
    lookup_osm_object,
    record_center,
    search_resort_candidates,
)
from skiresort_extractor.workspace.store import WorkspaceStore

logger = logging.getLogger(__name__)

SearchFn = Callable[..., ResortSearchResult]

NO_SELECTION = "Workspace has no selected resort. Run resort-select first."

_TOKEN_PATTERN = re.compile(r"[^\W_]+", re.UNICODE)

_REGION_LABELS = {
    ("landuse", "winter_sports"): "Winter sports area",
    ("leisure", "ski_resort"): "Ski resort",
    ("site", "piste"): "Piste site",
}


# =============================================================================
# Detection types
# =============================================================================


@dataclass
class DetectionContext:
    """Everything a candidate source needs."""

    selection: ResortSelection
    query_name: str
    country: str
    search_limit: int
    client: FetchClient
    search_fn: SearchFn
    cache_dir: Path


@dataclass(frozen=True)
class CandidateSource:
    name: str
    collect: Callable[[DetectionContext], list[BoundaryCandidate]]


@dataclass(frozen=True)
class SwallowPolicy:
    """Which candidate source failures are recorded instead of raised."""

    swallow: tuple[type[Exception], ...] = (ExtractorError,)

    def should_swallow(self, error: Exception) -> bool:
        return isinstance(error, self.swallow)


@dataclass
class SourceError:
    source: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"source": self.source, "error": self.message}


@dataclass
class DetectionResult:
    workspace_path: str
    candidates: list[BoundaryCandidate]
    source_errors: list[SourceError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspacePath": self.workspace_path,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "sourceErrors": [error.to_dict() for error in self.source_errors],
        }


# =============================================================================
# Name matching
# =============================================================================


def significant_tokens(text: str) -> set[str]:
    """Lowercase word tokens of >= 4 characters that are not stopwords."""
    return {
        token
        for token in _TOKEN_PATTERN.findall(text.lower())
        if len(token) >= BoundaryScoringConfig.MIN_TOKEN_LENGTH and token not in BoundaryScoringConfig.STOPWORDS
    }


def build_query_variants(name: str, display_name: str, country: str) -> list[str]:
    """Raw name, then name + each locality hint from the selection display name.

    Hints are display name parts other than the resort name itself, the
    country and purely numeric parts (postcodes). At most two are used.
    """
    skip = {name.strip().lower(), country.strip().lower()}
    hints = []
    for part in display_name.split(","):
        hint = part.strip()
        if not hint or hint.lower() in skip or hint.replace(" ", "").isdigit():
            continue
        if hint not in hints:
            hints.append(hint)
    variants = [name.strip()] + [f"{name.strip()} {hint}" for hint in hints[:2]]
    return list(dict.fromkeys(variants))


def is_relevant(query_name: str, display_name: str, distance_km: float) -> bool:
    """Distance-dependent relevance filter for search results."""
    if distance_km > BoundaryScoringConfig.MAX_DISTANCE_KM:
        return False
    substring = query_name.strip().lower() in display_name.lower()
    if distance_km > BoundaryScoringConfig.FAR_DISTANCE_KM:
        return substring
    if distance_km > BoundaryScoringConfig.MID_DISTANCE_KM:
        return substring or bool(significant_tokens(query_name) & significant_tokens(display_name))
    return True


def _distance_km(a: list[float], b: list[float]) -> float:
    return GeoCalculator.haversine_distance_m(lat1=a[1], lon1=a[0], lat2=b[1], lon2=b[0]) / 1000


# =============================================================================
# Candidate sources
# =============================================================================


def collect_selection(context: DetectionContext) -> list[BoundaryCandidate]:
    selection = context.selection
    return [
        BoundaryCandidate(
            osm_type=selection.osm_type,
            osm_id=selection.osm_id,
            display_name=selection.display_name,
            center=list(selection.center),
            source="selection",
        )
    ]


def collect_search(context: DetectionContext) -> list[BoundaryCandidate]:
    selection = context.selection
    variants = build_query_variants(context.query_name, selection.display_name, context.country)
    candidates = []
    for variant in variants:
        result = context.search_fn(name=variant, country=context.country, limit=context.search_limit, client=context.client)
        for hit in result.candidates:
            distance_km = _distance_km(hit.center, selection.center)
            if not is_relevant(context.query_name, hit.display_name, distance_km):
                logger.debug(f"Dropped {hit.osm_type}/{hit.osm_id} ({distance_km:.0f} km): not relevant")
                continue
            candidates.append(
                BoundaryCandidate(
                    osm_type=hit.osm_type,
                    osm_id=hit.osm_id,
                    display_name=hit.display_name,
                    center=list(hit.center),
                    source="search",
                )
            )
    return candidates


def build_region_query(center: list[float], radius_m: float, name_tokens: set[str], timeout_s: int) -> str:
    """Overpass query for tagged winter sports areas around a point."""
    lon, lat = center
    name_filter = ""
    if name_tokens:
        name_filter = '["name"~"' + "|".join(sorted(re.escape(token) for token in name_tokens)) + '",i]'
    statements = []
    for key, value in BoundaryScoringConfig.REGION_AREA_TAGS:
        for element_type in ("way", "relation"):
            statements.append(f'  {element_type}["{key}"="{value}"]{name_filter}(around:{radius_m:g},{lat},{lon});')
    body = "\n".join(statements)
    return f"[out:json][timeout:{timeout_s}];\n(\n{body}\n);\nout geom tags;"


def _region_label(tags: dict[str, Any]) -> str:
    for (key, value), label in _REGION_LABELS.items():
        if tags.get(key) == value:
            return label
    return "Winter sports area"


def region_candidate(element: dict[str, Any]) -> BoundaryCandidate | None:
    """Candidate from one Overpass `out geom` way or relation."""
    element_type, element_id = element.get("type"), element.get("id")
    if element_type not in ("way", "relation") or not isinstance(element_id, int):
        return None
    if element_type == "way":
        ring = overpass_geometry_line(element.get("geometry"))
    else:
        ring = ring_from_relation_members(element.get("members"))
    if not ring or len(ring) < 2:
        return None

    tags = element.get("tags") if isinstance(element.get("tags"), dict) else {}
    name = tags.get("name")
    display_name = name.strip() if isinstance(name, str) and name.strip() else f"{_region_label(tags)} {element_type}/{element_id}"
    return BoundaryCandidate(
        osm_type=element_type,
        osm_id=element_id,
        display_name=display_name,
        center=ring_center(ring),
        source="region",
        geometry_type="Polygon",
        ring=ring,
    )


def collect_region(context: DetectionContext, use_name_filter: bool = True) -> list[BoundaryCandidate]:
    tokens = significant_tokens(context.query_name) if use_name_filter else set()
    query = build_region_query(
        center=context.selection.center,
        radius_m=BoundaryScoringConfig.REGION_RADIUS_M,
        name_tokens=tokens,
        timeout_s=OverpassConfig.TIMEOUT_S,
    )
    payload = context.client.fetch_json(
        OverpassConfig.INTERPRETER_URL,
        method="POST",
        headers={"Content-Type": "text/plain"},
        body=query,
        cache=CachePolicy(dir=context.cache_dir, ttl_s=FetchConfig.CACHE_TTL_S, key=f"boundary-region:{sha256_text(query)}"),
    )
    elements = payload.get("elements") if isinstance(payload, dict) else None
    candidates = [region_candidate(element) for element in elements or [] if isinstance(element, dict)]
    return [candidate for candidate in candidates if candidate is not None]


DEFAULT_SOURCES = (
    CandidateSource(name="selection", collect=collect_selection),
    CandidateSource(name="search", collect=collect_search),
    CandidateSource(name="region", collect=collect_region),
)


# =============================================================================
# Scoring
# =============================================================================


def score_candidate(candidate: BoundaryCandidate, selection: ResortSelection, query_name: str) -> CandidateValidation:
    """Additive plausibility score for one candidate (may be negative)."""
    cfg = BoundaryScoringConfig
    ring = candidate.ring
    validation = CandidateValidation()
    score = 0

    if ring:
        score += cfg.SCORE_HAS_RING
        validation.signals.append("has polygon geometry")
        validation.ring_closed = GeoCalculator.is_closed_ring(ring)
        validation.area_km2 = round(GeoCalculator.ring_area_km2(ring), 6)
        validation.contains_selection_center = GeoCalculator.point_in_polygon(point=selection.center, ring=ring)
    else:
        validation.issues.append("No polygon geometry available from lookup.")

    if validation.ring_closed:
        score += cfg.SCORE_RING_CLOSED
    elif ring:
        validation.issues.append("Boundary ring is not closed.")

    if validation.contains_selection_center:
        score += cfg.SCORE_CONTAINS_CENTER
        validation.signals.append("contains selection center")
    else:
        validation.issues.append("Selection center is outside candidate boundary.")

    if validation.area_km2 is not None:
        if cfg.MIN_AREA_KM2 <= validation.area_km2 <= cfg.MAX_AREA_KM2:
            score += cfg.SCORE_AREA_PLAUSIBLE
        else:
            validation.issues.append(
                f"Boundary area is outside expected ski resort range ({cfg.MIN_AREA_KM2:g}-{cfg.MAX_AREA_KM2:g} km2)."
            )

    display = candidate.display_name.lower()
    shared = significant_tokens(query_name) & significant_tokens(candidate.display_name)
    if query_name.strip().lower() in display:
        score += cfg.SCORE_NAME_SUBSTRING
        validation.signals.append("name match")
    elif len(shared) >= 2:
        score += cfg.SCORE_NAME_TOKENS_MULTI
        validation.signals.append(f"shared name tokens: {', '.join(sorted(shared))}")
    elif len(shared) == 1:
        score += cfg.SCORE_NAME_TOKENS_SINGLE
        validation.signals.append(f"shared name token: {next(iter(shared))}")
    else:
        score += cfg.SCORE_NAME_NO_MATCH
        validation.issues.append("Display name does not match the resort query.")

    if "winter sports" in display:
        score += cfg.SCORE_WINTER_SPORTS_LABEL
        validation.signals.append("winter sports label")

    if candidate.key == (selection.osm_type, selection.osm_id):
        score += cfg.SCORE_CURRENT_SELECTION
        validation.signals.append("current selection")

    if ring and candidate.osm_type == "relation":
        score += cfg.SCORE_RELATION_GEOMETRY
    elif ring and candidate.osm_type == "way":
        score += cfg.SCORE_WAY_GEOMETRY

    distance_km = _distance_km(candidate.center, selection.center)
    validation.distance_km = round(distance_km, 3)
    tier = next((points for limit_km, points in cfg.DISTANCE_TIERS if distance_km <= limit_km), None)
    if tier is not None:
        score += tier
    else:
        validation.issues.append(f"Candidate center is {distance_km:.1f} km from the selection center.")

    validation.score = score
    return validation


# =============================================================================
# Detection
# =============================================================================


def _merge(existing: BoundaryCandidate, incoming: BoundaryCandidate) -> None:
    if existing.ring is None and incoming.ring is not None:
        existing.ring = incoming.ring
        existing.geometry_type = incoming.geometry_type


def _apply_lookup(candidate: BoundaryCandidate, record: dict[str, Any] | None) -> None:
    if record is None:
        return
    display_name = record.get("display_name")
    if isinstance(display_name, str) and display_name.strip():
        candidate.display_name = display_name.strip()
    center = record_center(record)
    if center is not None:
        candidate.center = center
    geometry_type, ring = ring_from_geojson(record.get("geojson"))
    candidate.geometry_type = geometry_type
    candidate.ring = ring


def _attempt(
    name: str,
    action: Callable[[], Any],
    policy: SwallowPolicy,
    errors: list[SourceError],
) -> Any:
    try:
        return action()
    except Exception as e:
        if not policy.should_swallow(e):
            raise
        logger.warning(f"Boundary candidate source '{name}' failed: {e}")
        errors.append(SourceError(source=name, message=str(e)))
        return None


def detect_resort_boundary_candidates(
    workspace_path: Path,
    search_limit: int = NominatimConfig.DEFAULT_SEARCH_LIMIT,
    client: FetchClient | None = None,
    search_fn: SearchFn = search_resort_candidates,
    sources: tuple[CandidateSource, ...] = DEFAULT_SOURCES,
    policy: SwallowPolicy = SwallowPolicy(),
) -> DetectionResult:
    """Gather, deduplicate and score boundary candidates for a workspace.

    Raises:
        InvalidInputError: Workspace invalid or without a selection.
    """
    store = WorkspaceStore(path=workspace_path)
    workspace: ResortWorkspace = store.read()
    if workspace.selection is None:
        raise InvalidInputError(NO_SELECTION)

    context = DetectionContext(
        selection=workspace.selection,
        query_name=workspace.query.name,
        country=workspace.query.country,
        search_limit=search_limit,
        client=client or FetchClient(),
        search_fn=search_fn,
        cache_dir=store.cache_dir,
    )

    errors: list[SourceError] = []
    by_key: dict[tuple[str, int], BoundaryCandidate] = {}
    for source in sources:
        found = _attempt(source.name, lambda: source.collect(context), policy, errors) or []
        for candidate in found:
            if candidate.key in by_key:
                _merge(by_key[candidate.key], candidate)
            else:
                by_key[candidate.key] = candidate
        logger.info(f"Source '{source.name}': {len(found)} candidate(s)")

    for candidate in by_key.values():
        if candidate.ring is not None:
            continue
        record = _attempt(
            f"lookup:{candidate.osm_type}/{candidate.osm_id}",
            lambda: lookup_osm_object(context.client, candidate.osm_type, candidate.osm_id, cache_dir=context.cache_dir),
            policy,
            errors,
        )
        _apply_lookup(candidate, record)

    candidates = list(by_key.values())
    for candidate in candidates:
        candidate.validation = score_candidate(candidate, context.selection, context.query_name)
    candidates.sort(key=lambda c: (-c.score, c.display_name))

    return DetectionResult(workspace_path=str(workspace_path), candidates=candidates, source_errors=errors)
