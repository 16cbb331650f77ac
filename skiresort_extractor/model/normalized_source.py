"""NormalizedResortSource - Canonical extraction result from raw OSM data.

Produced by the source normalizer and consumed by the pack builder:
- NormalizedBoundary: Resort boundary polygon and where it came from
- NormalizedLift: Aerialway line with numbered towers
- NormalizedRun: Downhill piste centerline with raw difficulty
- SourceInfo: Hash, file name and OSM base timestamp of the input

Lifts and runs are kept sorted by source way id so that normalizing the same
document twice produces byte-identical output.
"""

from dataclasses import dataclass, field
from typing import Any

from skiresort_extractor.constants import SchemaVersions

Coordinate = list[float]  # [lon, lat]


@dataclass
class Tower:
    """A lift tower, numbered 1..N in line order."""

    number: int
    coordinates: Coordinate

    def to_dict(self) -> dict[str, Any]:
        return {"number": self.number, "coordinates": list(self.coordinates)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tower":
        return cls(number=data["number"], coordinates=list(data["coordinates"]))


@dataclass
class NormalizedBoundary:
    """Resort boundary: a single closed exterior ring.

    Attributes:
        source: "relation" or "way"
        source_id: OSM id of the relation or way
        ring: Closed ring of [lon, lat] points (>= 4, first == last)
    """

    source: str
    source_id: int
    ring: list[Coordinate]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "sourceId": self.source_id,
            "polygon": {"type": "Polygon", "coordinates": [[list(p) for p in self.ring]]},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedBoundary":
        return cls(
            source=data["source"],
            source_id=data["sourceId"],
            ring=[list(p) for p in data["polygon"]["coordinates"][0]],
        )


@dataclass
class NormalizedLift:
    """Aerialway way with resolved line and towers."""

    id: str
    name: str
    kind: str
    source_way_id: int
    line: list[Coordinate]
    towers: list[Tower]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "sourceWayId": self.source_way_id,
            "line": {"type": "LineString", "coordinates": [list(p) for p in self.line]},
            "towers": [tower.to_dict() for tower in self.towers],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedLift":
        return cls(
            id=data["id"],
            name=data["name"],
            kind=data["kind"],
            source_way_id=data["sourceWayId"],
            line=[list(p) for p in data["line"]["coordinates"]],
            towers=[Tower.from_dict(t) for t in data["towers"]],
        )

    def __repr__(self) -> str:
        return f"NormalizedLift({self.id}, {self.kind}, towers={len(self.towers)})"


@dataclass
class NormalizedRun:
    """Downhill piste way with resolved centerline.

    Attributes:
        difficulty: Raw piste:difficulty tag, None when untagged
    """

    id: str
    name: str
    difficulty: str | None
    source_way_id: int
    centerline: list[Coordinate]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "difficulty": self.difficulty,
            "sourceWayId": self.source_way_id,
            "centerline": {"type": "LineString", "coordinates": [list(p) for p in self.centerline]},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedRun":
        return cls(
            id=data["id"],
            name=data["name"],
            difficulty=data["difficulty"],
            source_way_id=data["sourceWayId"],
            centerline=[list(p) for p in data["centerline"]["coordinates"]],
        )

    def __repr__(self) -> str:
        return f"NormalizedRun({self.id}, difficulty={self.difficulty})"


@dataclass
class SourceInfo:
    """Where the normalized data came from."""

    sha256: str
    input_path: str | None = None
    osm_base_timestamp: str | None = None
    format: str = "osm-overpass-json"

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "sha256": self.sha256,
            "inputPath": self.input_path,
            "osmBaseTimestamp": self.osm_base_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceInfo":
        return cls(
            format=data["format"],
            sha256=data["sha256"],
            input_path=data.get("inputPath"),
            osm_base_timestamp=data.get("osmBaseTimestamp"),
        )


@dataclass
class NormalizedResortSource:
    """Canonical extraction result for one resort."""

    resort_id: str
    resort_name: str
    source: SourceInfo
    boundary: NormalizedBoundary | None
    lifts: list[NormalizedLift] = field(default_factory=list)
    runs: list[NormalizedRun] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    schema_version: str = SchemaVersions.NORMALIZED_SOURCE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the normalized source JSON document."""
        return {
            "schemaVersion": self.schema_version,
            "resort": {"id": self.resort_id, "name": self.resort_name},
            "source": self.source.to_dict(),
            "boundary": self.boundary.to_dict() if self.boundary else None,
            "lifts": [lift.to_dict() for lift in self.lifts],
            "runs": [run.to_dict() for run in self.runs],
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NormalizedResortSource":
        """Deserialize a document that already passed validate_normalized_source."""
        return cls(
            schema_version=data["schemaVersion"],
            resort_id=data["resort"]["id"],
            resort_name=data["resort"]["name"],
            source=SourceInfo.from_dict(data["source"]),
            boundary=NormalizedBoundary.from_dict(data["boundary"]) if data["boundary"] else None,
            lifts=[NormalizedLift.from_dict(lift) for lift in data["lifts"]],
            runs=[NormalizedRun.from_dict(run) for run in data["runs"]],
            warnings=list(data["warnings"]),
        )

    def __repr__(self) -> str:
        return (
            f"NormalizedResortSource({self.resort_id}, lifts={len(self.lifts)}, "
            f"runs={len(self.runs)}, boundary={'yes' if self.boundary else 'no'})"
        )
