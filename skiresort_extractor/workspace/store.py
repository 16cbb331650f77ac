"""Whole-document persistence for resort workspaces.

Every mutation reads the full JSON document, validates it, applies the change
in memory, validates again and writes the full document atomically. There is
no partial-field persistence and no file locking.

Artifact paths are stored relative to the workspace directory when the
artifact lives inside it, absolute otherwise.
"""

import logging
from pathlib import Path
from typing import Any, Sequence

from skiresort_extractor.constants import FetchConfig, WorkspaceConfig
from skiresort_extractor.core.artifacts import read_json, write_json_atomic
from skiresort_extractor.core.geo_calculator import GeoCalculator
from skiresort_extractor.errors import InvalidInputError, LayerPreconditionError
from skiresort_extractor.model.workspace import LayerKind, LayerState, ResortQuery, ResortSelection, ResortWorkspace
from skiresort_extractor.validators import validate_workspace
from skiresort_extractor.workspace.state_machine import LayerStateMachine

logger = logging.getLogger(__name__)

BOUNDARY_NOT_COMPLETE = "Boundary layer is not complete. Run resort-boundary-set first."


class WorkspaceStore:
    """Reads and writes one workspace document.

    Example:
        store = WorkspaceStore(path=Path("resorts/cervinia/workspace.json"))
        workspace = store.read()
        store.transition(LayerKind.LIFTS, "begin", query_hash=digest, updated_at=now)
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def cache_dir(self) -> Path:
        """Per-workspace response cache for layer queries."""
        return self.directory / FetchConfig.CACHE_DIR_NAME

    # =========================================================================
    # Whole-document I/O
    # =========================================================================

    def read(self) -> ResortWorkspace:
        """Read and validate the workspace document.

        Raises:
            InvalidInputError: If missing, not JSON, or schema-invalid.
        """
        data = read_json(self.path, label="Resort workspace")
        validate_workspace(data).raise_for_issues(f"Invalid resort workspace {self.path}:")
        return ResortWorkspace.from_dict(data)

    def write(self, workspace: ResortWorkspace) -> None:
        """Validate and atomically write the whole document."""
        data = workspace.to_dict()
        validate_workspace(data).raise_for_issues("Refusing to write invalid resort workspace:")
        write_json_atomic(path=self.path, data=data)

    def transition(self, kind: LayerKind, event: str, **kwargs: Any) -> LayerState:
        """Apply one lifecycle event to a layer and persist the document.

        Args:
            kind: Layer to transition
            event: "begin", "succeed" or "fail"
            **kwargs: Event arguments (see LayerStateMachine)

        Returns:
            The updated layer state.

        Raises:
            TransitionNotAllowed: If the event is illegal from the current status.
        """
        workspace = self.read()
        layer = workspace.layer(kind)
        LayerStateMachine(layer=layer).send(event, **kwargs)
        self.write(workspace)
        logger.info(f"Layer {kind.value} -> {layer.status}")
        return layer

    # =========================================================================
    # Paths
    # =========================================================================

    def resolve(self, artifact_path: str) -> Path:
        """Absolute location of an artifact path stored in the document."""
        path = Path(artifact_path)
        return path if path.is_absolute() else self.directory / path

    def relative(self, path: Path) -> str:
        """Artifact path to store: relative to the workspace dir when inside it."""
        path = Path(path)
        try:
            return path.resolve().relative_to(self.directory.resolve()).as_posix()
        except ValueError:
            return str(path.resolve())

    def default_artifact_path(self, kind: LayerKind) -> Path:
        return self.directory / WorkspaceConfig.ARTIFACT_FILES[kind.value]


def require_boundary_complete(workspace: ResortWorkspace) -> LayerState:
    """Fail fast unless the boundary layer is complete with an artifact.

    Raises:
        LayerPreconditionError: If the boundary is not complete.
    """
    boundary = workspace.layer(LayerKind.BOUNDARY)
    if boundary.status != "complete" or not boundary.artifact_path:
        raise LayerPreconditionError(BOUNDARY_NOT_COMPLETE)
    return boundary


def read_boundary_ring(path: Path) -> list[list[float]]:
    """Exterior ring of a boundary.geojson Polygon Feature.

    Raises:
        InvalidInputError: If the artifact is not a usable Polygon feature.
    """
    feature = read_json(path, label="Boundary artifact")
    geometry = feature.get("geometry") if isinstance(feature, dict) else None
    if not isinstance(feature, dict) or feature.get("type") != "Feature" or not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
        raise InvalidInputError("Boundary artifact is not a Polygon feature.")
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates:
        raise InvalidInputError("Boundary polygon coordinates are missing.")
    ring = coordinates[0]
    if not isinstance(ring, list) or len(ring) < 4:
        raise InvalidInputError("Boundary polygon ring is missing or invalid.")

    points = [[float(p[0]), float(p[1])] for p in ring if _is_lon_lat(p)]
    if len(points) < 4:
        raise InvalidInputError("Boundary polygon ring has insufficient valid coordinates.")
    return points


def _is_lon_lat(point: Sequence[Any]) -> bool:
    if not isinstance(point, list) or len(point) < 2:
        return False
    return all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in point[:2])


def boundary_ring_for(store: WorkspaceStore, workspace: ResortWorkspace) -> list[list[float]]:
    """Check the boundary precondition and load its ring."""
    boundary = require_boundary_complete(workspace)
    ring = read_boundary_ring(store.resolve(boundary.artifact_path))
    logger.debug(f"Boundary bbox {GeoCalculator.ring_bbox(ring)}")
    return ring


def create_workspace(path: Path, query: ResortQuery, selection: ResortSelection | None = None) -> ResortWorkspace:
    """Write a fresh workspace with every layer pending (overwrites)."""
    workspace = ResortWorkspace(query=query, selection=selection)
    WorkspaceStore(path=path).write(workspace)
    logger.info(f"Created workspace {path} for '{query.name}'")
    return workspace
