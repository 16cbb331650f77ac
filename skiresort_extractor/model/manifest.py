"""FleetManifest - Write-once record of one fleet run.

Entries appear in config order whatever their outcome. A rerun writes a new
manifest; existing manifests are never modified.
"""

from dataclasses import dataclass, field
from typing import Any

from skiresort_extractor.constants import SchemaVersions


@dataclass
class ArtifactChecksums:
    """sha256 of the three per-resort artifacts."""

    normalized: str
    pack: str
    report: str

    def to_dict(self) -> dict[str, str]:
        return {"normalized": self.normalized, "pack": self.pack, "report": self.report}


@dataclass
class FleetEntry:
    """Outcome for one resort of the fleet.

    Success entries carry artifact paths, counts and checksums; failed
    entries carry only the error message.
    """

    id: str
    config_path: str
    status: str  # "success" or "failed"
    pack_path: str | None = None
    report_path: str | None = None
    normalized_path: str | None = None
    provenance_path: str | None = None
    run_count: int | None = None
    lift_count: int | None = None
    boundary_gate: str | None = None
    checksums: ArtifactChecksums | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        if not self.succeeded:
            return {"id": self.id, "status": self.status, "configPath": self.config_path, "error": self.error}
        return {
            "id": self.id,
            "status": self.status,
            "configPath": self.config_path,
            "packPath": self.pack_path,
            "reportPath": self.report_path,
            "normalizedPath": self.normalized_path,
            "provenancePath": self.provenance_path,
            "runCount": self.run_count,
            "liftCount": self.lift_count,
            "boundaryGate": self.boundary_gate,
            "checksums": self.checksums.to_dict() if self.checksums else None,
        }


@dataclass
class FleetManifest:
    """Summary of a fleet run."""

    generated_at: str
    entries: list[FleetEntry] = field(default_factory=list)
    fleet_size: int = 0
    schema_version: str = SchemaVersions.FLEET_MANIFEST

    @property
    def success_count(self) -> int:
        return sum(1 for entry in self.entries if entry.succeeded)

    @property
    def failure_count(self) -> int:
        return sum(1 for entry in self.entries if not entry.succeeded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "generatedAt": self.generated_at,
            "fleetSize": self.fleet_size,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "entries": [entry.to_dict() for entry in self.entries],
        }
