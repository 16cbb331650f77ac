"""Resort workspace: layer lifecycle, whole-document store, readiness."""

from skiresort_extractor.workspace.state_machine import LayerStateMachine
from skiresort_extractor.workspace.status import ResortSyncStatus, read_resort_sync_status
from skiresort_extractor.workspace.store import (
    WorkspaceStore,
    create_workspace,
    read_boundary_ring,
    require_boundary_complete,
)

__all__ = [
    "LayerStateMachine",
    "WorkspaceStore",
    "create_workspace",
    "read_boundary_ring",
    "require_boundary_complete",
    "ResortSyncStatus",
    "read_resort_sync_status",
]
