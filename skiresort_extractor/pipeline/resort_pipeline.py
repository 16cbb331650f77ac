"""Single-resort extraction: ingest -> build -> verify -> provenance.

Stages:
1. Load and validate the extract config
2. Normalize the OSM input (normalized-source.json)
3. Build the pack and report (pack.json, extraction-report.json)
4. Re-read the pack from disk and re-validate it
5. Checksum the artifacts and write provenance.json

Audit events: extract_resort.start, extract_resort.success, extract_resort.failure.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skiresort_extractor.core.artifacts import read_json, write_json_atomic
from skiresort_extractor.core.audit import AuditLogger, NoopAuditLogger
from skiresort_extractor.errors import PackSchemaError
from skiresort_extractor.ingest.normalizer import ingest_osm_to_file
from skiresort_extractor.model.manifest import ArtifactChecksums
from skiresort_extractor.pack.builder import BuildPackOptions, build_pack_to_file
from skiresort_extractor.pipeline.config import ExtractResortConfig, read_extract_resort_config
from skiresort_extractor.pipeline.provenance import ArtifactRef, ResortProvenance
from skiresort_extractor.validators import validate_pack

logger = logging.getLogger(__name__)


@dataclass
class ResortPipelineResult:
    resort_id: str
    normalized_path: Path
    pack_path: Path
    report_path: Path
    provenance_path: Path
    run_count: int
    lift_count: int
    boundary_gate: str
    checksums: ArtifactChecksums

    def to_dict(self) -> dict[str, Any]:
        return {
            "resortId": self.resort_id,
            "normalizedPath": str(self.normalized_path),
            "packPath": str(self.pack_path),
            "reportPath": str(self.report_path),
            "provenancePath": str(self.provenance_path),
            "runCount": self.run_count,
            "liftCount": self.lift_count,
            "boundaryGate": self.boundary_gate,
            "checksums": self.checksums.to_dict(),
        }


def run_extract_resort_pipeline(
    config_path: Path,
    audit: AuditLogger | None = None,
    generated_at: str | None = None,
) -> ResortPipelineResult:
    """Run the full single-resort pipeline from a config file.

    Args:
        config_path: Extract config (schema 0.4.0)
        audit: Receives start/success/failure events (default: discard)
        generated_at: Report timestamp override; beats the config's determinism.generatedAt

    Raises:
        InvalidInputError: Config or inputs invalid.
        BoundaryGateError: Gate failed and the config does not allow it.
        PackSchemaError: The written pack does not validate.
    """
    audit = audit or NoopAuditLogger()
    audit.info("extract_resort.start", {"configPath": str(config_path)})
    try:
        result = _run(read_extract_resort_config(config_path), generated_at)
    except Exception as e:
        audit.error("extract_resort.failure", {"configPath": str(config_path), "error": str(e)})
        raise
    audit.info(
        "extract_resort.success",
        {
            "configPath": str(config_path),
            "resortId": result.resort_id,
            "runCount": result.run_count,
            "liftCount": result.lift_count,
            "boundaryGate": result.boundary_gate,
        },
    )
    return result


def _run(config: ExtractResortConfig, generated_at: str | None) -> ResortPipelineResult:
    config.output_directory.mkdir(parents=True, exist_ok=True)

    logger.info(f"Ingesting {config.osm_input_path}")
    normalized = ingest_osm_to_file(
        input_path=config.osm_input_path,
        output_path=config.normalized_path,
        resort_id=config.resort_id,
        resort_name=config.resort_name,
        boundary_relation_id=config.boundary_relation_id,
    )

    logger.info(f"Building pack {config.pack_path}")
    build = build_pack_to_file(
        input_path=config.normalized_path,
        output_path=config.pack_path,
        report_path=config.report_path,
        options=BuildPackOptions(
            timezone=config.timezone,
            pmtiles_path=config.pmtiles_path,
            style_path=config.style_path,
            lift_proximity_m=config.lift_proximity_m,
            allow_outside_boundary=config.allow_outside_boundary,
            generated_at=generated_at or config.generated_at,
        ),
    )

    reloaded = read_json(config.pack_path, label="Generated pack")
    validate_pack(reloaded).raise_for_issues("Pipeline generated invalid pack:", PackSchemaError)

    normalized_ref = ArtifactRef.of(config.normalized_path)
    pack_ref = ArtifactRef.of(config.pack_path)
    report_ref = ArtifactRef.of(config.report_path)
    provenance = ResortProvenance(
        generated_at=build.report.generated_at,
        resort_id=normalized.resort_id,
        config_path=str(config.config_path),
        osm_input=ArtifactRef.of(config.osm_input_path),
        normalized=normalized_ref,
        pack=pack_ref,
        report=report_ref,
        boundary_gate=build.report.boundary_gate.status,
    )
    write_json_atomic(path=config.provenance_path, data=provenance.to_dict())

    return ResortPipelineResult(
        resort_id=normalized.resort_id,
        normalized_path=config.normalized_path,
        pack_path=config.pack_path,
        report_path=config.report_path,
        provenance_path=config.provenance_path,
        run_count=len(build.pack.runs),
        lift_count=len(build.pack.lifts),
        boundary_gate=build.report.boundary_gate.status,
        checksums=ArtifactChecksums(normalized=normalized_ref.sha256, pack=pack_ref.sha256, report=report_ref.sha256),
    )
