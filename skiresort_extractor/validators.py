"""Validators - Document shape checks for every extractor document.

One validator per document type. Validators return a ValidationResult:
- ok=True with no issues if valid
- ok=False with a list of (path, message) issues if invalid

Design Principles:
- No exceptions for expected validation failures
- Issues name the offending field as a JSON path (e.g. "runs[0].polygon")
- Caller converts a failed result into an error at its API boundary
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from skiresort_extractor.constants import PackConfig, SchemaVersions, WorkspaceConfig
from skiresort_extractor.errors import InvalidInputError
from skiresort_extractor.model.workspace import LayerKind

ISO_TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$")


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation problem.

    Attributes:
        path: JSON path of the offending field ("" for the document root)
        message: What is wrong with it
    """

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '/'}: {self.message}"


@dataclass
class ValidationResult:
    """Outcome of validating one document."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def raise_for_issues(
        self,
        prefix: str,
        error_factory: Callable[[str, list[ValidationIssue]], Exception] = InvalidInputError,
    ) -> None:
        """Raise error_factory(message, issues) if the result has issues.

        Args:
            prefix: Leading line of the error message
            error_factory: Exception class (or callable) receiving message and issues

        Raises:
            Whatever error_factory builds, when the result is not ok.
        """
        if self.ok:
            return
        details = "\n".join(str(issue) for issue in self.issues)
        raise error_factory(f"{prefix}\n{details}", self.issues)


class _Checker:
    """Accumulates issues while walking a document."""

    def __init__(self) -> None:
        self.issues: list[ValidationIssue] = []

    def fail(self, path: str, message: str) -> None:
        self.issues.append(ValidationIssue(path=path, message=message))

    def obj(self, value: Any, path: str, required: tuple[str, ...] = (), allowed: tuple[str, ...] | None = None) -> bool:
        if not isinstance(value, dict):
            self.fail(path, "must be an object")
            return False
        for key in required:
            if key not in value:
                self.fail(_join(path, key), "is required")
        if allowed is not None:
            for key in value:
                if key not in allowed:
                    self.fail(_join(path, key), "is not allowed")
        return True

    def string(self, value: Any, path: str, min_length: int = 0) -> bool:
        if not isinstance(value, str):
            self.fail(path, "must be a string")
            return False
        if len(value) < min_length:
            self.fail(path, f"must have at least {min_length} character(s)")
            return False
        return True

    def optional_string(self, value: Any, path: str) -> None:
        if value is not None:
            self.string(value, path)

    def integer(self, value: Any, path: str, minimum: int | None = None) -> bool:
        if isinstance(value, bool) or not isinstance(value, int):
            self.fail(path, "must be an integer")
            return False
        if minimum is not None and value < minimum:
            self.fail(path, f"must be >= {minimum}")
            return False
        return True

    def number(self, value: Any, path: str, exclusive_minimum: float | None = None) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            self.fail(path, "must be a finite number")
            return False
        if exclusive_minimum is not None and value <= exclusive_minimum:
            self.fail(path, f"must be > {exclusive_minimum}")
            return False
        return True

    def boolean(self, value: Any, path: str) -> None:
        if not isinstance(value, bool):
            self.fail(path, "must be a boolean")

    def const(self, value: Any, path: str, expected: Any) -> None:
        if value != expected:
            self.fail(path, f"must be {expected!r}")

    def one_of(self, value: Any, path: str, options: tuple | list | frozenset) -> None:
        if value not in options:
            self.fail(path, f"must be one of {sorted(options)}")

    def array(self, value: Any, path: str, min_items: int = 0) -> bool:
        if not isinstance(value, list):
            self.fail(path, "must be an array")
            return False
        if len(value) < min_items:
            self.fail(path, f"must have at least {min_items} item(s)")
            return False
        return True

    def timestamp(self, value: Any, path: str) -> None:
        if self.string(value, path) and not ISO_TIMESTAMP_PATTERN.match(value):
            self.fail(path, "must be an ISO-8601 timestamp")

    def sha256(self, value: Any, path: str) -> None:
        if self.string(value, path) and not re.fullmatch(r"[0-9a-f]{64}", value):
            self.fail(path, "must be a lowercase hex sha256 digest")

    def coordinate(self, value: Any, path: str) -> None:
        if not isinstance(value, list) or len(value) != 2:
            self.fail(path, "must be a [lon, lat] pair")
            return
        lon, lat = value
        if self.number(lon, f"{path}[0]") and not -180 <= lon <= 180:
            self.fail(f"{path}[0]", "longitude must be within [-180, 180]")
        if self.number(lat, f"{path}[1]") and not -90 <= lat <= 90:
            self.fail(f"{path}[1]", "latitude must be within [-90, 90]")

    def line_string(self, value: Any, path: str) -> None:
        if not self.obj(value, path, required=("type", "coordinates"), allowed=("type", "coordinates")):
            return
        self.const(value.get("type"), f"{path}.type", "LineString")
        coordinates = value.get("coordinates")
        if self.array(coordinates, f"{path}.coordinates", min_items=2):
            for i, point in enumerate(coordinates):
                self.coordinate(point, f"{path}.coordinates[{i}]")

    def polygon(self, value: Any, path: str, exactly_one_ring: bool = False) -> None:
        if not self.obj(value, path, required=("type", "coordinates"), allowed=("type", "coordinates")):
            return
        self.const(value.get("type"), f"{path}.type", "Polygon")
        rings = value.get("coordinates")
        if not self.array(rings, f"{path}.coordinates", min_items=1):
            return
        if exactly_one_ring and len(rings) != 1:
            self.fail(f"{path}.coordinates", "must contain exactly 1 ring")
        for r, ring in enumerate(rings):
            ring_path = f"{path}.coordinates[{r}]"
            if self.array(ring, ring_path, min_items=4):
                for i, point in enumerate(ring):
                    self.coordinate(point, f"{ring_path}[{i}]")

    def result(self) -> ValidationResult:
        return ValidationResult(issues=self.issues)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


# =============================================================================
# NORMALIZED SOURCE
# =============================================================================


def validate_normalized_source(document: Any) -> ValidationResult:
    """Validate a normalized resort source document.

    Returns:
        ValidationResult listing every shape problem found.
    """
    c = _Checker()
    root_keys = ("schemaVersion", "resort", "source", "boundary", "lifts", "runs", "warnings")
    if not c.obj(document, "", required=root_keys, allowed=root_keys):
        return c.result()

    c.const(document.get("schemaVersion"), "schemaVersion", SchemaVersions.NORMALIZED_SOURCE)

    resort = document.get("resort")
    if c.obj(resort, "resort", required=("id", "name"), allowed=("id", "name")):
        c.string(resort.get("id"), "resort.id", min_length=1)
        c.string(resort.get("name"), "resort.name", min_length=1)

    source_keys = ("format", "sha256", "inputPath", "osmBaseTimestamp")
    source = document.get("source")
    if c.obj(source, "source", required=source_keys, allowed=source_keys):
        c.const(source.get("format"), "source.format", "osm-overpass-json")
        c.sha256(source.get("sha256"), "source.sha256")
        c.optional_string(source.get("inputPath"), "source.inputPath")
        c.optional_string(source.get("osmBaseTimestamp"), "source.osmBaseTimestamp")

    boundary = document.get("boundary")
    if boundary is not None:
        boundary_keys = ("source", "sourceId", "polygon")
        if c.obj(boundary, "boundary", required=boundary_keys, allowed=boundary_keys):
            c.one_of(boundary.get("source"), "boundary.source", ("relation", "way"))
            c.integer(boundary.get("sourceId"), "boundary.sourceId")
            c.polygon(boundary.get("polygon"), "boundary.polygon", exactly_one_ring=True)

    lifts = document.get("lifts")
    if c.array(lifts, "lifts"):
        lift_keys = ("id", "name", "kind", "sourceWayId", "line", "towers")
        for i, lift in enumerate(lifts):
            path = f"lifts[{i}]"
            if not c.obj(lift, path, required=lift_keys, allowed=lift_keys):
                continue
            c.string(lift.get("id"), f"{path}.id", min_length=1)
            c.string(lift.get("name"), f"{path}.name", min_length=1)
            c.string(lift.get("kind"), f"{path}.kind", min_length=1)
            c.integer(lift.get("sourceWayId"), f"{path}.sourceWayId")
            c.line_string(lift.get("line"), f"{path}.line")
            _check_towers(c, lift.get("towers"), f"{path}.towers", min_items=2)

    runs = document.get("runs")
    if c.array(runs, "runs"):
        run_keys = ("id", "name", "difficulty", "sourceWayId", "centerline")
        for i, run in enumerate(runs):
            path = f"runs[{i}]"
            if not c.obj(run, path, required=run_keys, allowed=run_keys):
                continue
            c.string(run.get("id"), f"{path}.id", min_length=1)
            c.string(run.get("name"), f"{path}.name", min_length=1)
            c.optional_string(run.get("difficulty"), f"{path}.difficulty")
            c.integer(run.get("sourceWayId"), f"{path}.sourceWayId")
            c.line_string(run.get("centerline"), f"{path}.centerline")

    warnings = document.get("warnings")
    if c.array(warnings, "warnings"):
        for i, warning in enumerate(warnings):
            c.string(warning, f"warnings[{i}]")

    return c.result()


def _check_towers(c: _Checker, towers: Any, path: str, min_items: int) -> None:
    if not c.array(towers, path, min_items=min_items):
        return
    for i, tower in enumerate(towers):
        tower_path = f"{path}[{i}]"
        if c.obj(tower, tower_path, required=("number", "coordinates"), allowed=("number", "coordinates")):
            c.integer(tower.get("number"), f"{tower_path}.number", minimum=1)
            c.coordinate(tower.get("coordinates"), f"{tower_path}.coordinates")


# =============================================================================
# RESORT PACK
# =============================================================================


def validate_pack(document: Any) -> ValidationResult:
    """Validate a resort pack against the published pack schema."""
    c = _Checker()
    root_keys = ("schemaVersion", "resort", "basemap", "thresholds", "lifts", "runs")
    if not c.obj(document, "", required=root_keys, allowed=root_keys):
        return c.result()

    c.const(document.get("schemaVersion"), "schemaVersion", SchemaVersions.PACK)

    resort = document.get("resort")
    if c.obj(resort, "resort", required=("id", "name", "timezone"), allowed=("id", "name", "timezone")):
        for key in ("id", "name", "timezone"):
            c.string(resort.get(key), f"resort.{key}", min_length=1)

    basemap = document.get("basemap")
    if c.obj(basemap, "basemap", required=("pmtilesPath", "stylePath"), allowed=("pmtilesPath", "stylePath")):
        c.string(basemap.get("pmtilesPath"), "basemap.pmtilesPath", min_length=1)
        c.string(basemap.get("stylePath"), "basemap.stylePath", min_length=1)

    thresholds = document.get("thresholds")
    if c.obj(thresholds, "thresholds", required=("liftProximityMeters",), allowed=("liftProximityMeters",)):
        c.number(thresholds.get("liftProximityMeters"), "thresholds.liftProximityMeters", exclusive_minimum=0)

    lifts = document.get("lifts")
    if c.array(lifts, "lifts", min_items=1):
        for i, lift in enumerate(lifts):
            path = f"lifts[{i}]"
            if not c.obj(lift, path, required=("id", "name", "towers"), allowed=("id", "name", "towers")):
                continue
            c.string(lift.get("id"), f"{path}.id", min_length=1)
            c.string(lift.get("name"), f"{path}.name", min_length=1)
            _check_towers(c, lift.get("towers"), f"{path}.towers", min_items=1)

    runs = document.get("runs")
    if c.array(runs, "runs", min_items=1):
        run_keys = ("id", "name", "difficulty", "polygon", "centerline")
        for i, run in enumerate(runs):
            path = f"runs[{i}]"
            if not c.obj(run, path, required=run_keys, allowed=run_keys):
                continue
            c.string(run.get("id"), f"{path}.id", min_length=1)
            c.string(run.get("name"), f"{path}.name", min_length=1)
            c.one_of(run.get("difficulty"), f"{path}.difficulty", PackConfig.DIFFICULTIES)
            c.polygon(run.get("polygon"), f"{path}.polygon")
            c.line_string(run.get("centerline"), f"{path}.centerline")

    return c.result()


# =============================================================================
# WORKSPACE
# =============================================================================

LAYER_STATE_KEYS = ("status", "artifactPath", "queryHash", "featureCount", "checksumSha256", "updatedAt", "error")


def validate_workspace(document: Any) -> ValidationResult:
    """Validate a resort workspace document (current or previous schema)."""
    c = _Checker()
    if not c.obj(document, "", required=("schemaVersion", "resort", "layers"), allowed=("schemaVersion", "resort", "layers")):
        return c.result()

    version = document.get("schemaVersion")
    c.one_of(version, "schemaVersion", SchemaVersions.WORKSPACE_ACCEPTED)

    resort = document.get("resort")
    if c.obj(resort, "resort", required=("query",), allowed=("query", "selection")):
        query = resort.get("query")
        if c.obj(query, "resort.query", required=("name", "country"), allowed=("name", "country")):
            c.string(query.get("name"), "resort.query.name", min_length=1)
            c.string(query.get("country"), "resort.query.country", min_length=1)
        selection = resort.get("selection")
        if selection is not None:
            _check_selection(c, selection, "resort.selection")

    layers = document.get("layers")
    if not c.obj(layers, "layers"):
        return c.result()

    # 2.0.0 documents only carried the original three layers
    required_layers = (
        [kind.value for kind in LayerKind]
        if version == SchemaVersions.WORKSPACE
        else [LayerKind.BOUNDARY.value, LayerKind.LIFTS.value, LayerKind.RUNS.value]
    )
    for name in required_layers:
        if name not in layers:
            c.fail(f"layers.{name}", "is required")
    for name, state in layers.items():
        path = f"layers.{name}"
        if name not in LayerKind.values():
            c.fail(path, "is not a known layer")
            continue
        _check_layer_state(c, state, path)

    return c.result()


def _check_selection(c: _Checker, selection: Any, path: str) -> None:
    keys = ("osmType", "osmId", "displayName", "center", "selectedAt")
    if not c.obj(selection, path, required=keys, allowed=keys):
        return
    c.one_of(selection.get("osmType"), f"{path}.osmType", ("relation", "way", "node"))
    c.integer(selection.get("osmId"), f"{path}.osmId")
    c.string(selection.get("displayName"), f"{path}.displayName", min_length=1)
    c.coordinate(selection.get("center"), f"{path}.center")
    c.timestamp(selection.get("selectedAt"), f"{path}.selectedAt")


def _check_layer_state(c: _Checker, state: Any, path: str) -> None:
    if not c.obj(state, path, required=("status",), allowed=LAYER_STATE_KEYS):
        return
    c.one_of(state.get("status"), f"{path}.status", WorkspaceConfig.LAYER_STATUSES)
    if "artifactPath" in state:
        c.string(state["artifactPath"], f"{path}.artifactPath", min_length=1)
    if "queryHash" in state:
        c.sha256(state["queryHash"], f"{path}.queryHash")
    if "featureCount" in state:
        c.integer(state["featureCount"], f"{path}.featureCount", minimum=0)
    if "checksumSha256" in state:
        c.sha256(state["checksumSha256"], f"{path}.checksumSha256")
    if "updatedAt" in state:
        c.timestamp(state["updatedAt"], f"{path}.updatedAt")
    if "error" in state:
        c.string(state["error"], f"{path}.error")


# =============================================================================
# PIPELINE CONFIGS
# =============================================================================


def validate_extract_config(document: Any) -> ValidationResult:
    """Validate a single-resort extraction config."""
    c = _Checker()
    root_keys = ("schemaVersion", "resort", "source", "output", "basemap", "thresholds", "qa", "determinism")
    if not c.obj(document, "", required=("schemaVersion", "resort", "source", "output", "basemap"), allowed=root_keys):
        return c.result()

    c.const(document.get("schemaVersion"), "schemaVersion", SchemaVersions.EXTRACT_CONFIG)

    resort = document.get("resort")
    if c.obj(resort, "resort", required=("timezone",), allowed=("id", "name", "timezone", "boundaryRelationId")):
        c.string(resort.get("timezone"), "resort.timezone", min_length=1)
        if "id" in resort:
            c.string(resort["id"], "resort.id", min_length=1)
        if "name" in resort:
            c.string(resort["name"], "resort.name", min_length=1)
        if "boundaryRelationId" in resort:
            c.integer(resort["boundaryRelationId"], "resort.boundaryRelationId", minimum=1)

    source = document.get("source")
    if c.obj(source, "source", required=("osmInputPath",), allowed=("osmInputPath", "area")):
        c.string(source.get("osmInputPath"), "source.osmInputPath", min_length=1)
        area = source.get("area")
        if area is not None and c.obj(area, "source.area", required=("bbox",), allowed=("bbox",)):
            bbox = area.get("bbox")
            if c.array(bbox, "source.area.bbox", min_items=4):
                if len(bbox) != 4:
                    c.fail("source.area.bbox", "must contain exactly 4 numbers")
                for i, value in enumerate(bbox):
                    c.number(value, f"source.area.bbox[{i}]")

    output_keys = ("directory", "normalizedFile", "packFile", "reportFile", "provenanceFile")
    output = document.get("output")
    if c.obj(output, "output", required=("directory",), allowed=output_keys):
        for key in output_keys:
            if key in output or key == "directory":
                c.string(output.get(key), f"output.{key}", min_length=1)

    basemap = document.get("basemap")
    if c.obj(basemap, "basemap", required=("pmtilesPath", "stylePath"), allowed=("pmtilesPath", "stylePath")):
        c.string(basemap.get("pmtilesPath"), "basemap.pmtilesPath", min_length=1)
        c.string(basemap.get("stylePath"), "basemap.stylePath", min_length=1)

    thresholds = document.get("thresholds")
    if thresholds is not None and c.obj(thresholds, "thresholds", allowed=("liftProximityMeters",)):
        if "liftProximityMeters" in thresholds:
            c.number(thresholds["liftProximityMeters"], "thresholds.liftProximityMeters", exclusive_minimum=0)

    qa = document.get("qa")
    if qa is not None and c.obj(qa, "qa", allowed=("allowOutsideBoundary",)):
        if "allowOutsideBoundary" in qa:
            c.boolean(qa["allowOutsideBoundary"], "qa.allowOutsideBoundary")

    determinism = document.get("determinism")
    if determinism is not None and c.obj(determinism, "determinism", allowed=("generatedAt",)):
        if "generatedAt" in determinism:
            c.timestamp(determinism["generatedAt"], "determinism.generatedAt")

    return c.result()


def validate_fleet_config(document: Any) -> ValidationResult:
    """Validate a fleet config, including resort id uniqueness."""
    c = _Checker()
    root_keys = ("schemaVersion", "output", "options", "resorts")
    if not c.obj(document, "", required=("schemaVersion", "output", "resorts"), allowed=root_keys):
        return c.result()

    c.const(document.get("schemaVersion"), "schemaVersion", SchemaVersions.FLEET_CONFIG)

    output = document.get("output")
    if c.obj(output, "output", required=("manifestPath",), allowed=("manifestPath", "provenancePath")):
        c.string(output.get("manifestPath"), "output.manifestPath", min_length=1)
        if "provenancePath" in output:
            c.string(output["provenancePath"], "output.provenancePath", min_length=1)

    options = document.get("options")
    if options is not None and c.obj(options, "options", allowed=("continueOnError", "generatedAt")):
        if "continueOnError" in options:
            c.boolean(options["continueOnError"], "options.continueOnError")
        if "generatedAt" in options:
            c.timestamp(options["generatedAt"], "options.generatedAt")

    resorts = document.get("resorts")
    if c.array(resorts, "resorts", min_items=1):
        seen: set[str] = set()
        for i, resort in enumerate(resorts):
            path = f"resorts[{i}]"
            if not c.obj(resort, path, required=("id", "configPath"), allowed=("id", "configPath")):
                continue
            if c.string(resort.get("id"), f"{path}.id", min_length=1):
                if resort["id"] in seen:
                    c.fail(f"{path}.id", f"Duplicate resort id '{resort['id']}'.")
                seen.add(resort["id"])
            c.string(resort.get("configPath"), f"{path}.configPath", min_length=1)

    return c.result()


# =============================================================================
# GEOJSON LAYER ARTIFACTS
# =============================================================================


def validate_feature_collection(document: Any) -> ValidationResult:
    """Validate the outer shape of a GeoJSON FeatureCollection layer artifact."""
    c = _Checker()
    if not c.obj(document, "", required=("type", "features")):
        return c.result()
    c.const(document.get("type"), "type", "FeatureCollection")
    features = document.get("features")
    if c.array(features, "features"):
        for i, feature in enumerate(features):
            path = f"features[{i}]"
            if c.obj(feature, path, required=("type", "geometry", "properties")):
                c.const(feature.get("type"), f"{path}.type", "Feature")
                c.obj(feature.get("properties"), f"{path}.properties", required=("id",))
    return c.result()
