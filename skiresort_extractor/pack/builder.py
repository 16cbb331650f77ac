"""Pack builder: NormalizedResortSource to ResortPack + BuildPackReport.

Steps:
1. Sort lifts and runs by id; map raw run difficulty to green/blue/black/double-black
2. Buffer each run centerline into a corridor polygon (width by difficulty)
3. Boundary gate: every run point and lift tower must lie inside the boundary ring
4. Validate the assembled pack against the pack schema

A failed gate raises BoundaryGateError unless allow_outside_boundary is set.
A schema-invalid pack always raises PackSchemaError.

The report's generatedAt never uses the wall clock: explicit override, else
the source's OSM base timestamp, else 1970-01-01T00:00:00.000Z.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path

from skiresort_extractor.constants import EPOCH_FALLBACK_TIMESTAMP, PackConfig
from skiresort_extractor.core.artifacts import read_json, write_json_atomic
from skiresort_extractor.core.geo_calculator import GeoCalculator
from skiresort_extractor.core.timestamps import normalize_timestamp
from skiresort_extractor.errors import BoundaryGateError, PackSchemaError
from skiresort_extractor.model.normalized_source import NormalizedBoundary, NormalizedResortSource, NormalizedRun
from skiresort_extractor.model.pack import (
    BoundaryGate,
    BoundaryGateIssue,
    BuildPackReport,
    PackLift,
    PackRun,
    ResortPack,
)
from skiresort_extractor.validators import validate_normalized_source, validate_pack

logger = logging.getLogger(__name__)

GATE_SKIPPED_WARNING = "Boundary gate skipped because normalized source has no boundary polygon."


@dataclass
class BuildPackOptions:
    """Options for building a pack.

    Attributes:
        timezone: IANA timezone of the resort (e.g. "Europe/Rome")
        pmtiles_path: Basemap tile archive path referenced by the pack
        style_path: Basemap style path referenced by the pack
        source_input: Normalized input file name recorded in the report
        lift_proximity_m: Lift proximity threshold (default 90)
        allow_outside_boundary: Produce the pack even if the gate fails
        generated_at: Explicit report timestamp
    """

    timezone: str
    pmtiles_path: str
    style_path: str
    source_input: str | None = None
    lift_proximity_m: float = PackConfig.DEFAULT_LIFT_PROXIMITY_M
    allow_outside_boundary: bool = False
    generated_at: str | None = None


@dataclass
class BuildPackResult:
    pack: ResortPack
    report: BuildPackReport


def map_difficulty(raw: str | None) -> tuple[str, bool]:
    """Map a raw piste:difficulty value to a pack difficulty.

    Returns:
        (difficulty, inferred) where inferred is True when the value was
        unmappable and fell back to blue.
    """
    key = (raw or "").strip().lower()
    if key in PackConfig.DIFFICULTY_SYNONYMS:
        return PackConfig.DIFFICULTY_SYNONYMS[key], False
    return PackConfig.FALLBACK_DIFFICULTY, True


def resolve_generated_at(override: str | None, source_timestamp: str | None) -> str:
    """Pick and normalize the report timestamp (override > source > epoch)."""
    return normalize_timestamp(override or source_timestamp or EPOCH_FALLBACK_TIMESTAMP)


def build_pack_from_normalized(source: NormalizedResortSource, options: BuildPackOptions) -> BuildPackResult:
    """Build a pack and its report from a normalized source.

    Raises:
        BoundaryGateError: If the gate fails and allow_outside_boundary is False.
        PackSchemaError: If the generated pack violates the pack schema.
        InvalidInputError: If generated_at is not ISO-8601 compatible.
    """
    warnings = list(source.warnings)
    generated_at = resolve_generated_at(override=options.generated_at, source_timestamp=source.source.osm_base_timestamp)

    lifts = [
        PackLift(id=lift.id, name=lift.name, towers=sorted(lift.towers, key=lambda tower: tower.number))
        for lift in sorted(source.lifts, key=lambda lift: lift.id)
    ]
    runs = [_to_pack_run(run, warnings) for run in sorted(source.runs, key=lambda run: run.id)]

    pack = ResortPack(
        resort_id=source.resort_id,
        resort_name=source.resort_name,
        timezone=options.timezone,
        pmtiles_path=options.pmtiles_path,
        style_path=options.style_path,
        lift_proximity_m=options.lift_proximity_m,
        lifts=lifts,
        runs=runs,
    )

    gate = check_boundary_gate(source=source)
    if gate.status == "skipped":
        warnings.append(GATE_SKIPPED_WARNING)

    report = BuildPackReport(
        generated_at=generated_at,
        source_input=options.source_input,
        resort_id=source.resort_id,
        run_count=len(runs),
        lift_count=len(lifts),
        tower_count=sum(len(lift.towers) for lift in lifts),
        boundary_gate=gate,
        warnings=warnings,
    )

    if gate.status == "failed":
        if not options.allow_outside_boundary:
            raise BoundaryGateError(
                f"Boundary gate failed with {len(gate.issues)} issue(s). "
                "Re-run with --allow-outside-boundary to override.",
                issues=gate.issues,
            )
        logger.warning(f"Boundary gate failed with {len(gate.issues)} issue(s); continuing (override set)")

    validate_pack(pack.to_dict()).raise_for_issues("Generated pack failed schema validation:", PackSchemaError)
    logger.info(f"Built pack {pack.resort_id}: {len(runs)} runs, {len(lifts)} lifts, gate {gate.status}")
    return BuildPackResult(pack=pack, report=report)


def build_pack_to_file(
    input_path: Path,
    output_path: Path,
    report_path: Path,
    options: BuildPackOptions,
) -> BuildPackResult:
    """Read a normalized source file, build the pack and write pack + report.

    Raises:
        InvalidInputError: If the normalized source is missing or invalid.
        BoundaryGateError / PackSchemaError: As build_pack_from_normalized.
    """
    input_path = Path(input_path)
    data = read_json(input_path, label="Normalized source")
    validate_normalized_source(data).raise_for_issues(f"Invalid normalized source {input_path}:")

    if options.source_input is None:
        options = replace(options, source_input=input_path.name)
    result = build_pack_from_normalized(source=NormalizedResortSource.from_dict(data), options=options)
    write_json_atomic(path=output_path, data=result.pack.to_dict())
    write_json_atomic(path=report_path, data=result.report.to_dict())
    return result


def check_boundary_gate(source: NormalizedResortSource) -> BoundaryGate:
    """Check every run point and lift tower against the boundary.

    Returns:
        BoundaryGate with status skipped (no boundary), passed or failed.
        Issues hold the first violating point per entity, sorted by entity id.
    """
    if source.boundary is None:
        return BoundaryGate(status="skipped")

    issues = _collect_boundary_issues(boundary=source.boundary, source=source)
    return BoundaryGate(status="failed" if issues else "passed", issues=issues)


def _collect_boundary_issues(boundary: NormalizedBoundary, source: NormalizedResortSource) -> list[BoundaryGateIssue]:
    ring = boundary.ring
    issues: list[BoundaryGateIssue] = []

    for run in source.runs:
        outside = next((p for p in run.centerline if not GeoCalculator.point_in_polygon(point=p, ring=ring)), None)
        if outside is not None:
            issues.append(
                BoundaryGateIssue(
                    entity_type="run",
                    entity_id=run.id,
                    message=f"Run point outside boundary at {_fmt(outside[0])},{_fmt(outside[1])}.",
                )
            )

    for lift in source.lifts:
        outside = next(
            (t.coordinates for t in lift.towers if not GeoCalculator.point_in_polygon(point=t.coordinates, ring=ring)),
            None,
        )
        if outside is not None:
            issues.append(
                BoundaryGateIssue(
                    entity_type="lift",
                    entity_id=lift.id,
                    message=f"Lift tower outside boundary at {_fmt(outside[0])},{_fmt(outside[1])}.",
                )
            )

    return sorted(issues, key=lambda issue: issue.entity_id)


def _fmt(value: float) -> str:
    # Integral floats print without ".0"
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _to_pack_run(run: NormalizedRun, warnings: list[str]) -> PackRun:
    difficulty, inferred = map_difficulty(run.difficulty)
    if inferred:
        warnings.append(f"Run {run.id} difficulty '{run.difficulty or 'unknown'}' mapped to '{difficulty}'.")
    return PackRun(
        id=run.id,
        name=run.name,
        difficulty=difficulty,
        polygon=GeoCalculator.build_corridor_polygon(
            centerline=run.centerline,
            width_m=PackConfig.CORRIDOR_WIDTHS_M[difficulty],
        ),
        centerline=[list(p) for p in run.centerline],
    )


def summarize_pack(pack: dict) -> str:
    """One-line summary of a pack document (assumed valid)."""
    resort = pack["resort"]
    towers = sum(len(lift["towers"]) for lift in pack["lifts"])
    return (
        f"{resort['id']} ({resort['name']}, {resort['timezone']}): "
        f"{len(pack['runs'])} runs, {len(pack['lifts'])} lifts, {towers} towers"
    )
