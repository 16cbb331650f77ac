"""Multi-resort extraction with a write-once manifest.

Resorts run sequentially in config order. A failed resort becomes a failed
manifest entry; the run stops there unless continueOnError is set. The
manifest and fleet provenance are written in every case, and only then is
FleetRunError raised for a stopped run.

Audit events: extract_fleet.start, extract_fleet.resort.success,
extract_fleet.resort.failure, extract_fleet.success, extract_fleet.failure.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skiresort_extractor.core.artifacts import write_json_atomic
from skiresort_extractor.core.audit import AuditLogger, NoopAuditLogger
from skiresort_extractor.core.timestamps import normalize_timestamp, utc_now_iso
from skiresort_extractor.errors import FleetRunError
from skiresort_extractor.model.manifest import FleetEntry, FleetManifest
from skiresort_extractor.pipeline.config import ExtractFleetConfig, read_extract_fleet_config
from skiresort_extractor.pipeline.provenance import ArtifactRef, FleetProvenance, FleetProvenanceEntry
from skiresort_extractor.pipeline.resort_pipeline import run_extract_resort_pipeline

logger = logging.getLogger(__name__)

DEFAULT_FLEET_PROVENANCE_FILE = "fleet-provenance.json"


@dataclass
class FleetPipelineResult:
    manifest_path: Path
    provenance_path: Path
    manifest: FleetManifest

    def to_dict(self) -> dict[str, Any]:
        return {
            "manifestPath": str(self.manifest_path),
            "provenancePath": str(self.provenance_path),
            "manifest": self.manifest.to_dict(),
        }


def run_extract_fleet_pipeline(
    config_path: Path,
    audit: AuditLogger | None = None,
    generated_at: str | None = None,
) -> FleetPipelineResult:
    """Run every resort of a fleet config and write the manifest.

    Args:
        config_path: Fleet config (schema 1.0.0)
        audit: Receives fleet and per-resort events (default: discard)
        generated_at: Manifest timestamp; beats options.generatedAt, then wall clock

    Raises:
        InvalidInputError: Fleet config invalid (nothing is written).
        FleetRunError: A resort failed and continueOnError is not set.
    """
    audit = audit or NoopAuditLogger()
    audit.info("extract_fleet.start", {"configPath": str(config_path)})
    try:
        config = read_extract_fleet_config(config_path)
        requested_at = generated_at or config.generated_at
        manifest_at = normalize_timestamp(requested_at) if requested_at else utc_now_iso()
        manifest = FleetManifest(generated_at=manifest_at, fleet_size=len(config.resorts))
        _run_resorts(config, manifest, audit, generated_at)
        provenance_path = _write_outputs(config, manifest)
    except Exception as e:
        audit.error("extract_fleet.failure", {"configPath": str(config_path), "error": str(e)})
        raise

    summary = {
        "configPath": str(config_path),
        "manifestPath": str(config.manifest_path),
        "successCount": manifest.success_count,
        "failureCount": manifest.failure_count,
    }
    first_failure = next((entry for entry in manifest.entries if not entry.succeeded), None)
    if first_failure is not None and not config.continue_on_error:
        audit.error("extract_fleet.failure", {**summary, "resortId": first_failure.id})
        raise FleetRunError(resort_id=first_failure.id, manifest_path=str(config.manifest_path))

    audit.info("extract_fleet.success", summary)
    logger.info(f"Fleet done: {manifest.success_count}/{manifest.fleet_size} succeeded")
    return FleetPipelineResult(manifest_path=config.manifest_path, provenance_path=provenance_path, manifest=manifest)


def _run_resorts(
    config: ExtractFleetConfig,
    manifest: FleetManifest,
    audit: AuditLogger,
    generated_at: str | None,
) -> None:
    for resort in config.resorts:
        try:
            result = run_extract_resort_pipeline(config.resolve(resort.config_path), audit=audit, generated_at=generated_at)
        except Exception as e:
            logger.error(f"Resort {resort.id} failed: {e}")
            manifest.entries.append(FleetEntry(id=resort.id, config_path=resort.config_path, status="failed", error=str(e)))
            audit.error("extract_fleet.resort.failure", {"resortId": resort.id, "error": str(e)})
            if not config.continue_on_error:
                break
            continue

        manifest.entries.append(
            FleetEntry(
                id=resort.id,
                config_path=resort.config_path,
                status="success",
                pack_path=str(result.pack_path),
                report_path=str(result.report_path),
                normalized_path=str(result.normalized_path),
                provenance_path=str(result.provenance_path),
                run_count=result.run_count,
                lift_count=result.lift_count,
                boundary_gate=result.boundary_gate,
                checksums=result.checksums,
            )
        )
        audit.info("extract_fleet.resort.success", {"resortId": resort.id, "packPath": str(result.pack_path)})


def _write_outputs(config: ExtractFleetConfig, manifest: FleetManifest) -> Path:
    write_json_atomic(path=config.manifest_path, data=manifest.to_dict())
    provenance_path = config.provenance_path or config.manifest_path.parent / DEFAULT_FLEET_PROVENANCE_FILE
    provenance = FleetProvenance(
        generated_at=manifest.generated_at,
        manifest=ArtifactRef.of(config.manifest_path),
        resorts=[
            FleetProvenanceEntry(
                id=entry.id,
                status=entry.status,
                provenance_path=entry.provenance_path,
                artifacts=entry.checksums.to_dict() if entry.checksums else None,
            )
            for entry in manifest.entries
        ],
    )
    write_json_atomic(path=provenance_path, data=provenance.to_dict())
    return provenance_path
