"""Pipeline and fleet JSON configs.

Relative paths inside a config resolve against the config file's directory,
so a config and its inputs can move together.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skiresort_extractor.constants import PackConfig
from skiresort_extractor.core.artifacts import read_json
from skiresort_extractor.validators import validate_extract_config, validate_fleet_config

DEFAULT_NORMALIZED_FILE = "normalized-source.json"
DEFAULT_PACK_FILE = "pack.json"
DEFAULT_REPORT_FILE = "extraction-report.json"
DEFAULT_PROVENANCE_FILE = "provenance.json"


@dataclass
class ExtractResortConfig:
    """One resort extraction run (schema 0.4.0).

    Attributes:
        config_path: Where the config was read from
        osm_input_path: Overpass JSON input, resolved against the config dir
        output_directory: Artifact directory, resolved against the config dir
        bbox: Optional area hint (min_lon, min_lat, max_lon, max_lat); recorded only
    """

    config_path: Path
    timezone: str
    osm_input_path: Path
    output_directory: Path
    pmtiles_path: str
    style_path: str
    resort_id: str | None = None
    resort_name: str | None = None
    boundary_relation_id: int | None = None
    bbox: tuple[float, float, float, float] | None = None
    normalized_file: str = DEFAULT_NORMALIZED_FILE
    pack_file: str = DEFAULT_PACK_FILE
    report_file: str = DEFAULT_REPORT_FILE
    provenance_file: str = DEFAULT_PROVENANCE_FILE
    lift_proximity_m: float = PackConfig.DEFAULT_LIFT_PROXIMITY_M
    allow_outside_boundary: bool = False
    generated_at: str | None = None

    @property
    def normalized_path(self) -> Path:
        return self.output_directory / self.normalized_file

    @property
    def pack_path(self) -> Path:
        return self.output_directory / self.pack_file

    @property
    def report_path(self) -> Path:
        return self.output_directory / self.report_file

    @property
    def provenance_path(self) -> Path:
        return self.output_directory / self.provenance_file

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path) -> "ExtractResortConfig":
        """Build from a validated document."""
        config_dir = Path(config_path).parent
        resort = data["resort"]
        output = data["output"]
        area = data["source"].get("area")
        return cls(
            config_path=Path(config_path),
            timezone=resort["timezone"],
            osm_input_path=config_dir / data["source"]["osmInputPath"],
            output_directory=config_dir / output["directory"],
            pmtiles_path=data["basemap"]["pmtilesPath"],
            style_path=data["basemap"]["stylePath"],
            resort_id=resort.get("id"),
            resort_name=resort.get("name"),
            boundary_relation_id=resort.get("boundaryRelationId"),
            bbox=tuple(area["bbox"]) if area else None,
            normalized_file=output.get("normalizedFile", DEFAULT_NORMALIZED_FILE),
            pack_file=output.get("packFile", DEFAULT_PACK_FILE),
            report_file=output.get("reportFile", DEFAULT_REPORT_FILE),
            provenance_file=output.get("provenanceFile", DEFAULT_PROVENANCE_FILE),
            lift_proximity_m=data.get("thresholds", {}).get("liftProximityMeters", PackConfig.DEFAULT_LIFT_PROXIMITY_M),
            allow_outside_boundary=data.get("qa", {}).get("allowOutsideBoundary", False),
            generated_at=data.get("determinism", {}).get("generatedAt"),
        )


@dataclass
class FleetResort:
    id: str
    config_path: str  # as written in the fleet config


@dataclass
class ExtractFleetConfig:
    """Multi-resort run (schema 1.0.0); resort ids are unique."""

    config_path: Path
    manifest_path: Path
    resorts: list[FleetResort] = field(default_factory=list)
    provenance_path: Path | None = None
    continue_on_error: bool = False
    generated_at: str | None = None

    def resolve(self, relative: str) -> Path:
        return self.config_path.parent / relative

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path) -> "ExtractFleetConfig":
        config_dir = Path(config_path).parent
        output = data["output"]
        options = data.get("options", {})
        return cls(
            config_path=Path(config_path),
            manifest_path=config_dir / output["manifestPath"],
            provenance_path=config_dir / output["provenancePath"] if "provenancePath" in output else None,
            resorts=[FleetResort(id=r["id"], config_path=r["configPath"]) for r in data["resorts"]],
            continue_on_error=options.get("continueOnError", False),
            generated_at=options.get("generatedAt"),
        )


def read_extract_resort_config(path: Path) -> ExtractResortConfig:
    """Load and validate a resort extraction config.

    Raises:
        InvalidInputError: Missing, not JSON or schema-invalid.
    """
    data = read_json(path, label="Extract config")
    validate_extract_config(data).raise_for_issues("Invalid extract config:")
    return ExtractResortConfig.from_dict(data, config_path=Path(path))


def read_extract_fleet_config(path: Path) -> ExtractFleetConfig:
    """Load and validate a fleet config (including unique resort ids).

    Raises:
        InvalidInputError: Missing, not JSON, schema-invalid or duplicate ids.
    """
    data = read_json(path, label="Fleet config")
    validate_fleet_config(data).raise_for_issues("Invalid fleet config:")
    return ExtractFleetConfig.from_dict(data, config_path=Path(path))
