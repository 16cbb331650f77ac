"""Workspace readiness summary.

A workspace is ready when boundary, lifts and runs are all complete with a
checksummed, non-empty artifact and no error. Peaks, contours and terrain
bands are reported but only block readiness when their last sync failed.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skiresort_extractor.model.workspace import LayerKind, LayerState
from skiresort_extractor.workspace.store import WorkspaceStore

REQUIRED_LAYERS = (LayerKind.BOUNDARY, LayerKind.LIFTS, LayerKind.RUNS)


@dataclass
class LayerStatusSummary:
    state: LayerState
    required: bool
    issues: list[str] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.state.status,
            "artifactPath": self.state.artifact_path,
            "featureCount": self.state.feature_count,
            "checksumSha256": self.state.checksum_sha256,
            "updatedAt": self.state.updated_at,
            "error": self.state.error,
            "required": self.required,
            "ready": self.ready,
            "issues": list(self.issues),
        }


@dataclass
class ResortSyncStatus:
    workspace_path: str
    layers: dict[LayerKind, LayerStatusSummary]

    @property
    def issues(self) -> list[str]:
        return [f"{kind.value}: {issue}" for kind, summary in self.layers.items() for issue in summary.issues]

    @property
    def overall(self) -> str:
        return "ready" if not self.issues else "incomplete"

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspacePath": self.workspace_path,
            "overall": self.overall,
            "issues": self.issues,
            "layers": {kind.value: summary.to_dict() for kind, summary in self.layers.items()},
        }


def read_resort_sync_status(workspace_path: Path) -> ResortSyncStatus:
    """Summarize per-layer readiness of a workspace.

    Raises:
        InvalidInputError: If the workspace document is missing or invalid.
    """
    workspace = WorkspaceStore(path=workspace_path).read()
    layers = {}
    for kind in LayerKind:
        state = workspace.layer(kind)
        if kind in REQUIRED_LAYERS:
            issues = summarize_layer_issues(kind=kind, layer=state)
        else:
            issues = [f"error is set: {state.error}"] if state.status == "failed" and state.error else []
        layers[kind] = LayerStatusSummary(state=state, required=kind in REQUIRED_LAYERS, issues=issues)
    return ResortSyncStatus(workspace_path=str(workspace_path), layers=layers)


def summarize_layer_issues(kind: LayerKind, layer: LayerState) -> list[str]:
    """Readiness issues for a required layer, in a stable order."""
    issues = []
    if layer.status != "complete":
        issues.append(f"status is '{layer.status}', expected 'complete'")
    if not layer.artifact_path:
        issues.append("artifactPath is missing")
    if not layer.checksum_sha256:
        issues.append("checksumSha256 is missing")
    if layer.feature_count is None:
        issues.append("featureCount is missing")
    elif layer.feature_count < 1:
        issues.append("featureCount must be >= 1")
    if not layer.updated_at:
        issues.append("updatedAt is missing")
    if layer.error:
        issues.append(f"error is set: {layer.error}")

    if kind is LayerKind.BOUNDARY and layer.feature_count is not None and layer.feature_count != 1:
        issues.append("boundary featureCount must be exactly 1")
    return issues
