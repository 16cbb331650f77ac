"""ResortPack and BuildPackReport - The publishable artifact and its report.

A pack carries the field app's view of a resort: lifts as numbered towers,
runs as centerline + corridor polygon with one of four difficulties.
The report records counts, the boundary gate outcome and build warnings.
"""

from dataclasses import dataclass, field
from typing import Any

from skiresort_extractor.constants import SchemaVersions
from skiresort_extractor.model.normalized_source import Coordinate, Tower


@dataclass
class PackLift:
    """Lift as published: id, name and ordered towers."""

    id: str
    name: str
    towers: list[Tower]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "towers": [tower.to_dict() for tower in self.towers]}


@dataclass
class PackRun:
    """Run as published with its corridor polygon."""

    id: str
    name: str
    difficulty: str
    polygon: list[Coordinate]
    centerline: list[Coordinate]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "difficulty": self.difficulty,
            "polygon": {"type": "Polygon", "coordinates": [[list(p) for p in self.polygon]]},
            "centerline": {"type": "LineString", "coordinates": [list(p) for p in self.centerline]},
        }


@dataclass
class ResortPack:
    """Publishable resort pack."""

    resort_id: str
    resort_name: str
    timezone: str
    pmtiles_path: str
    style_path: str
    lift_proximity_m: float
    lifts: list[PackLift] = field(default_factory=list)
    runs: list[PackRun] = field(default_factory=list)
    schema_version: str = SchemaVersions.PACK

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "resort": {"id": self.resort_id, "name": self.resort_name, "timezone": self.timezone},
            "basemap": {"pmtilesPath": self.pmtiles_path, "stylePath": self.style_path},
            "thresholds": {"liftProximityMeters": self.lift_proximity_m},
            "lifts": [lift.to_dict() for lift in self.lifts],
            "runs": [run.to_dict() for run in self.runs],
        }

    def __repr__(self) -> str:
        return f"ResortPack({self.resort_id}, lifts={len(self.lifts)}, runs={len(self.runs)})"


@dataclass(frozen=True)
class BoundaryGateIssue:
    """First boundary violation of one run or lift."""

    entity_type: str  # "run" or "lift"
    entity_id: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"entityType": self.entity_type, "entityId": self.entity_id, "message": self.message}


@dataclass
class BoundaryGate:
    """Outcome of the boundary containment check.

    Attributes:
        status: "passed", "failed" or "skipped"
        issues: Violations sorted by entity id
    """

    status: str
    issues: list[BoundaryGateIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "issues": [issue.to_dict() for issue in self.issues]}


@dataclass
class BuildPackReport:
    """Report written alongside a pack."""

    generated_at: str
    source_input: str | None
    resort_id: str
    run_count: int
    lift_count: int
    tower_count: int
    boundary_gate: BoundaryGate
    warnings: list[str] = field(default_factory=list)
    schema_version: str = SchemaVersions.BUILD_REPORT

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "generatedAt": self.generated_at,
            "sourceInput": self.source_input,
            "resortId": self.resort_id,
            "counts": {"runs": self.run_count, "lifts": self.lift_count, "towers": self.tower_count},
            "boundaryGate": self.boundary_gate.to_dict(),
            "warnings": list(self.warnings),
        }
