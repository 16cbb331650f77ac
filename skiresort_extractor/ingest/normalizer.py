"""Source normalizer: Overpass JSON to NormalizedResortSource.

Classification:
- Run: way tagged piste:type=downhill
- Lift: way whose aerialway tag is in PackConfig.SUPPORTED_AERIALWAYS
- Boundary: the caller's relation id if given, else relations of type
  multipolygon/boundary and then ways tagged leisure/landuse in
  {winter_sports, ski_resort} or boundary=ski_resort

Way coordinates come from joining node ids against the node table. Ways that
resolve to fewer than 2 points are skipped with a warning. Among valid closed
boundary rings the largest planar area wins.
"""

import json
import logging
import re
from pathlib import Path

from skiresort_extractor.constants import PackConfig
from skiresort_extractor.core.artifacts import sha256_text, write_json_atomic
from skiresort_extractor.core.geo_calculator import GeoCalculator
from skiresort_extractor.errors import InvalidInputError
from skiresort_extractor.ingest.osm_document import OsmDocument, OsmNode, OsmRelation, OsmWay, parse_osm_document
from skiresort_extractor.model.normalized_source import (
    Coordinate,
    NormalizedBoundary,
    NormalizedLift,
    NormalizedResortSource,
    NormalizedRun,
    SourceInfo,
    Tower,
)
from skiresort_extractor.validators import validate_normalized_source

logger = logging.getLogger(__name__)

NO_BOUNDARY_WARNING = "No resort boundary found in OSM source."


def slugify(name: str) -> str:
    """Lowercase, runs of non-alphanumerics to '-', no leading/trailing dashes."""
    return re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")


def normalize_osm_document(
    document: OsmDocument,
    source_hash: str,
    input_path: str | None = None,
    resort_id: str | None = None,
    resort_name: str | None = None,
    boundary_relation_id: int | None = None,
) -> NormalizedResortSource:
    """Convert a parsed OSM document into a normalized resort source.

    Args:
        document: Parsed Overpass document
        source_hash: sha256 of the raw input text
        input_path: Input file name recorded in the source block
        resort_id: Override for the resort id (default: slug of the name)
        resort_name: Override for the resort name (default: boundary name tag)
        boundary_relation_id: Use only this relation as boundary candidate

    Returns:
        NormalizedResortSource with lifts and runs sorted by source way id.
    """
    warnings: list[str] = []
    nodes_by_id: dict[int, OsmNode] = {}
    ways_by_id: dict[int, OsmWay] = {}
    relations: list[OsmRelation] = []

    for element in document.elements:
        if isinstance(element, OsmNode):
            nodes_by_id[element.id] = element
        elif isinstance(element, OsmWay):
            ways_by_id[element.id] = element
        else:
            relations.append(element)

    ways = sorted(ways_by_id.values(), key=lambda way: way.id)

    runs = []
    for way in ways:
        if way.tags.get("piste:type") != "downhill":
            continue
        run = _to_run(way=way, nodes_by_id=nodes_by_id, warnings=warnings)
        if run is not None:
            runs.append(run)

    lifts = []
    for way in ways:
        if way.tags.get("aerialway") not in PackConfig.SUPPORTED_AERIALWAYS:
            continue
        lift = _to_lift(way=way, nodes_by_id=nodes_by_id, warnings=warnings)
        if lift is not None:
            lifts.append(lift)

    boundary = _find_boundary(
        ways=ways,
        relations=relations,
        nodes_by_id=nodes_by_id,
        preferred_relation_id=boundary_relation_id,
    )
    if boundary is None:
        warnings.append(NO_BOUNDARY_WARNING)

    name = resort_name or _infer_resort_name(boundary, ways_by_id, relations) or PackConfig.UNKNOWN_RESORT_NAME
    logger.info(f"Normalized '{name}': {len(lifts)} lifts, {len(runs)} runs, {len(warnings)} warnings")

    return NormalizedResortSource(
        resort_id=resort_id or slugify(name),
        resort_name=name,
        source=SourceInfo(
            sha256=source_hash,
            input_path=input_path,
            osm_base_timestamp=document.osm_base_timestamp,
        ),
        boundary=boundary,
        lifts=lifts,
        runs=runs,
        warnings=warnings,
    )


def ingest_osm_to_file(
    input_path: Path,
    output_path: Path,
    resort_id: str | None = None,
    resort_name: str | None = None,
    boundary_relation_id: int | None = None,
) -> NormalizedResortSource:
    """Read an Overpass JSON file, normalize it and write the result atomically.

    Raises:
        InvalidInputError: If the input is missing, not JSON, malformed, or
            the normalized output fails validation.
    """
    input_path = Path(input_path)
    try:
        raw = input_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise InvalidInputError(f"OSM input not found at {input_path}.") from e
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid OSM input: {input_path} is not valid JSON ({e.msg}).") from e

    normalized = normalize_osm_document(
        document=parse_osm_document(parsed),
        source_hash=sha256_text(raw),
        input_path=input_path.name,
        resort_id=resort_id,
        resort_name=resort_name,
        boundary_relation_id=boundary_relation_id,
    )
    data = normalized.to_dict()
    validate_normalized_source(data).raise_for_issues("Normalized source failed schema validation:")
    write_json_atomic(path=output_path, data=data)
    return normalized


# =============================================================================
# Runs and lifts
# =============================================================================


def _to_coordinates(node_ids: tuple[int, ...], nodes_by_id: dict[int, OsmNode]) -> list[Coordinate]:
    return [[nodes_by_id[n].lon, nodes_by_id[n].lat] for n in node_ids if n in nodes_by_id]


def _to_run(way: OsmWay, nodes_by_id: dict[int, OsmNode], warnings: list[str]) -> NormalizedRun | None:
    coordinates = _to_coordinates(way.nodes, nodes_by_id)
    if len(coordinates) < 2:
        warnings.append(f"Skipped run way {way.id}: requires at least 2 mapped nodes.")
        return None
    return NormalizedRun(
        id=f"run-way-{way.id}",
        name=way.tags.get("name", "").strip() or f"Run {way.id}",
        difficulty=way.tags.get("piste:difficulty"),
        source_way_id=way.id,
        centerline=coordinates,
    )


def _to_lift(way: OsmWay, nodes_by_id: dict[int, OsmNode], warnings: list[str]) -> NormalizedLift | None:
    coordinates = _to_coordinates(way.nodes, nodes_by_id)
    if len(coordinates) < 2:
        warnings.append(f"Skipped lift way {way.id}: requires at least 2 mapped nodes.")
        return None
    return NormalizedLift(
        id=f"lift-way-{way.id}",
        name=way.tags.get("name", "").strip() or f"Lift {way.id}",
        kind=way.tags["aerialway"],
        source_way_id=way.id,
        line=coordinates,
        towers=[Tower(number=i + 1, coordinates=list(point)) for i, point in enumerate(coordinates)],
    )


# =============================================================================
# Boundary
# =============================================================================


def _has_boundary_tag(tags: dict[str, str]) -> bool:
    leisure = tags.get("leisure", "").lower()
    landuse = tags.get("landuse", "").lower()
    return (
        leisure in PackConfig.BOUNDARY_TAG_VALUES
        or landuse in PackConfig.BOUNDARY_TAG_VALUES
        or tags.get("boundary", "").lower() == "ski_resort"
    )


def _find_boundary(
    ways: list[OsmWay],
    relations: list[OsmRelation],
    nodes_by_id: dict[int, OsmNode],
    preferred_relation_id: int | None,
) -> NormalizedBoundary | None:
    if preferred_relation_id is not None:
        candidates = [r for r in relations if r.id == preferred_relation_id]
    else:
        candidates = [
            r
            for r in relations
            if r.tags.get("type") in PackConfig.BOUNDARY_RELATION_TYPES and _has_boundary_tag(r.tags)
        ]
    ways_by_id = {way.id: way for way in ways}

    best: NormalizedBoundary | None = None
    best_area = -1.0
    for relation in sorted(candidates, key=lambda r: r.id):
        outer_ways = [
            ways_by_id[m.ref] for m in relation.members if m.type == "way" and m.role == "outer" and m.ref in ways_by_id
        ]
        boundary = _largest_way_ring(outer_ways, nodes_by_id, source="relation", source_id=relation.id)
        if boundary is None:
            continue
        area = GeoCalculator.ring_area(boundary.ring)
        if area > best_area:
            best, best_area = boundary, area
    if best is not None:
        return best

    tagged_ways = [way for way in ways if _has_boundary_tag(way.tags)]
    return _largest_way_ring(tagged_ways, nodes_by_id, source="way", source_id=None)


def _largest_way_ring(
    ways: list[OsmWay],
    nodes_by_id: dict[int, OsmNode],
    source: str,
    source_id: int | None,
) -> NormalizedBoundary | None:
    best: NormalizedBoundary | None = None
    best_area = -1.0
    for way in ways:
        ring = _to_coordinates(way.nodes, nodes_by_id)
        if not GeoCalculator.is_closed_ring(ring):
            continue
        area = GeoCalculator.ring_area(ring)
        if area <= best_area:
            continue
        best = NormalizedBoundary(source=source, source_id=source_id if source_id is not None else way.id, ring=ring)
        best_area = area
    return best


def _infer_resort_name(
    boundary: NormalizedBoundary | None,
    ways_by_id: dict[int, OsmWay],
    relations: list[OsmRelation],
) -> str | None:
    if boundary is None:
        return None
    if boundary.source == "way":
        way = ways_by_id.get(boundary.source_id)
        return way.tags.get("name") if way else None
    for relation in relations:
        if relation.id == boundary.source_id:
            return relation.tags.get("name")
    return None
