"""Provenance records: which inputs produced which artifacts.

Resort provenance pins the OSM input and the three artifacts by sha256.
Fleet provenance pins the manifest and points at each resort's record.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skiresort_extractor.constants import SchemaVersions
from skiresort_extractor.core.artifacts import sha256_file


@dataclass
class ArtifactRef:
    path: str
    sha256: str

    @classmethod
    def of(cls, path: Path) -> "ArtifactRef":
        return cls(path=str(path), sha256=sha256_file(path))

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "sha256": self.sha256}


@dataclass
class ResortProvenance:
    generated_at: str
    resort_id: str
    config_path: str
    osm_input: ArtifactRef
    normalized: ArtifactRef
    pack: ArtifactRef
    report: ArtifactRef
    boundary_gate: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": SchemaVersions.PROVENANCE,
            "generatedAt": self.generated_at,
            "resortId": self.resort_id,
            "configPath": self.config_path,
            "inputs": {"osmInputPath": self.osm_input.path, "osmInputSha256": self.osm_input.sha256},
            "artifacts": {
                "normalized": self.normalized.to_dict(),
                "pack": self.pack.to_dict(),
                "report": self.report.to_dict(),
            },
            "boundaryGate": self.boundary_gate,
        }


@dataclass
class FleetProvenanceEntry:
    id: str
    status: str
    provenance_path: str | None = None
    artifacts: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "status": self.status}
        if self.provenance_path is not None:
            data["provenancePath"] = self.provenance_path
        if self.artifacts is not None:
            data["artifacts"] = dict(self.artifacts)
        return data


@dataclass
class FleetProvenance:
    generated_at: str
    manifest: ArtifactRef
    resorts: list[FleetProvenanceEntry]

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": SchemaVersions.PROVENANCE,
            "generatedAt": self.generated_at,
            "manifest": self.manifest.to_dict(),
            "resorts": [entry.to_dict() for entry in self.resorts],
        }
