"""Data model classes for extraction documents.

- NormalizedResortSource: Canonical OSM extraction (boundary, lifts, runs)
- ResortPack / BuildPackReport: Publishable pack and its build report
- ResortWorkspace / LayerState / LayerKind: Per-resort layer lifecycle document
- BoundaryCandidate: Ephemeral boundary detection result
- FleetManifest: Write-once fleet run record
"""

from skiresort_extractor.model.boundary_candidate import BoundaryCandidate, CandidateValidation
from skiresort_extractor.model.manifest import ArtifactChecksums, FleetEntry, FleetManifest
from skiresort_extractor.model.normalized_source import (
    NormalizedBoundary,
    NormalizedLift,
    NormalizedResortSource,
    NormalizedRun,
    SourceInfo,
    Tower,
)
from skiresort_extractor.model.pack import (
    BoundaryGate,
    BoundaryGateIssue,
    BuildPackReport,
    PackLift,
    PackRun,
    ResortPack,
)
from skiresort_extractor.model.workspace import (
    LayerKind,
    LayerState,
    ResortQuery,
    ResortSelection,
    ResortWorkspace,
)

__all__ = [
    "Tower",
    "NormalizedBoundary",
    "NormalizedLift",
    "NormalizedRun",
    "SourceInfo",
    "NormalizedResortSource",
    "PackLift",
    "PackRun",
    "ResortPack",
    "BoundaryGate",
    "BoundaryGateIssue",
    "BuildPackReport",
    "LayerKind",
    "LayerState",
    "ResortQuery",
    "ResortSelection",
    "ResortWorkspace",
    "BoundaryCandidate",
    "CandidateValidation",
    "ArtifactChecksums",
    "FleetEntry",
    "FleetManifest",
]
