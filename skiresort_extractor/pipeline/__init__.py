"""Config-driven extraction pipelines for one resort or a fleet."""

from skiresort_extractor.pipeline.config import (
    ExtractFleetConfig,
    ExtractResortConfig,
    read_extract_fleet_config,
    read_extract_resort_config,
)
from skiresort_extractor.pipeline.fleet import FleetPipelineResult, run_extract_fleet_pipeline
from skiresort_extractor.pipeline.resort_pipeline import ResortPipelineResult, run_extract_resort_pipeline

__all__ = [
    "ExtractFleetConfig",
    "ExtractResortConfig",
    "FleetPipelineResult",
    "ResortPipelineResult",
    "read_extract_fleet_config",
    "read_extract_resort_config",
    "run_extract_fleet_pipeline",
    "run_extract_resort_pipeline",
]
