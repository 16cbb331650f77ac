"""Resort selection and boundary commit.

select_resort_to_workspace() runs a name search and starts a fresh workspace
around the chosen hit. set_resort_boundary() re-runs candidate detection,
takes the operator's 1-based pick and commits it as the boundary layer: a
single Polygon Feature carrying the candidate's provenance and validation.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from skiresort_extractor.constants import NominatimConfig
from skiresort_extractor.core.artifacts import sha256_text, write_json_atomic
from skiresort_extractor.core.fetch_client import FetchClient
from skiresort_extractor.core.timestamps import utc_now_iso
from skiresort_extractor.errors import InvalidInputError
from skiresort_extractor.model.boundary_candidate import BoundaryCandidate
from skiresort_extractor.model.workspace import LayerKind, ResortQuery, ResortSelection, ResortWorkspace
from skiresort_extractor.boundary.resolver import DetectionResult, detect_resort_boundary_candidates
from skiresort_extractor.boundary.search import ResortSearchCandidate, ResortSearchResult, search_resort_candidates
from skiresort_extractor.workspace.store import WorkspaceStore, create_workspace

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ResortSelectionResult:
    workspace_path: str
    workspace: ResortWorkspace
    selected: ResortSearchCandidate
    candidate_count: int
    selected_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspacePath": self.workspace_path,
            "workspace": self.workspace.to_dict(),
            "selected": self.selected.to_dict(),
            "candidateCount": self.candidate_count,
            "selectedIndex": self.selected_index,
        }


@dataclass
class ResortBoundarySetResult:
    workspace_path: str
    boundary_path: str
    selected_index: int
    candidate_count: int
    selected: BoundaryCandidate
    checksum_sha256: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspacePath": self.workspace_path,
            "boundaryPath": self.boundary_path,
            "selectedIndex": self.selected_index,
            "candidateCount": self.candidate_count,
            "selectedOsm": {
                "osmType": self.selected.osm_type,
                "osmId": self.selected.osm_id,
                "displayName": self.selected.display_name,
            },
            "checksumSha256": self.checksum_sha256,
        }


def select_candidate_by_index(candidates: list[T], index: Any, label: str = "Selection") -> T:
    """Pick a candidate by 1-based index.

    Raises:
        InvalidInputError: If the index is not an integer >= 1 or out of range.
    """
    if not isinstance(index, int) or isinstance(index, bool) or index < 1:
        raise InvalidInputError(f"{label} index must be an integer >= 1.")
    if index > len(candidates):
        raise InvalidInputError(f"{label} index {index} is out of range for {len(candidates)} candidate(s).")
    return candidates[index - 1]


def select_resort_to_workspace(
    workspace_path: Path,
    name: str,
    country: str,
    index: int,
    limit: int = NominatimConfig.DEFAULT_SEARCH_LIMIT,
    selected_at: str | None = None,
    client: FetchClient | None = None,
    search_fn: Callable[..., ResortSearchResult] = search_resort_candidates,
) -> ResortSelectionResult:
    """Search, pick the index-th hit and write a fresh workspace (all layers pending)."""
    result = search_fn(name=name, country=country, limit=limit, client=client)
    selected = select_candidate_by_index(result.candidates, index)
    selection = ResortSelection(
        osm_type=selected.osm_type,
        osm_id=selected.osm_id,
        display_name=selected.display_name,
        center=list(selected.center),
        selected_at=selected_at or utc_now_iso(),
    )
    workspace = create_workspace(workspace_path, ResortQuery(name=name, country=country), selection)
    logger.info(f"Selected {selected.osm_type}/{selected.osm_id} '{selected.display_name}'")
    return ResortSelectionResult(
        workspace_path=str(workspace_path),
        workspace=workspace,
        selected=selected,
        candidate_count=len(result.candidates),
        selected_index=index,
    )


def boundary_feature(candidate: BoundaryCandidate, selected_at: str) -> dict[str, Any]:
    """Boundary artifact: one Polygon Feature with candidate provenance."""
    validation = candidate.validation
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [[list(p) for p in candidate.ring]]},
        "properties": {
            "osmType": candidate.osm_type,
            "osmId": candidate.osm_id,
            "displayName": candidate.display_name,
            "selectedAt": selected_at,
            "score": validation.score,
            "source": candidate.source,
            "areaKm2": validation.area_km2,
            "containsSelectionCenter": validation.contains_selection_center,
            "ringClosed": validation.ring_closed,
            "issues": list(validation.issues),
        },
    }


def set_resort_boundary(
    workspace_path: Path,
    index: int,
    output_path: Path | None = None,
    selected_at: str | None = None,
    search_limit: int = NominatimConfig.DEFAULT_SEARCH_LIMIT,
    client: FetchClient | None = None,
    detect_fn: Callable[..., DetectionResult] = detect_resort_boundary_candidates,
) -> ResortBoundarySetResult:
    """Commit the index-th detected candidate as the workspace boundary.

    Raises:
        InvalidInputError: Bad index or the candidate has no polygon geometry.
    """
    if not isinstance(index, int) or isinstance(index, bool) or index < 1:
        raise InvalidInputError("Boundary selection index must be an integer >= 1.")

    detection = detect_fn(workspace_path=workspace_path, search_limit=search_limit, client=client)
    selected = select_candidate_by_index(detection.candidates, index, label="Boundary selection")
    if not selected.ring:
        raise InvalidInputError("Selected boundary candidate has no polygon geometry.")

    store = WorkspaceStore(path=workspace_path)
    boundary_path = Path(output_path) if output_path else store.default_artifact_path(LayerKind.BOUNDARY)
    selected_at = selected_at or utc_now_iso()
    query_hash = sha256_text(f"{selected.osm_type}/{selected.osm_id}")

    store.transition(LayerKind.BOUNDARY, "begin", query_hash=query_hash, updated_at=selected_at)
    try:
        checksum = write_json_atomic(path=boundary_path, data=boundary_feature(selected, selected_at))
        store.transition(
            LayerKind.BOUNDARY,
            "succeed",
            artifact_path=store.relative(boundary_path),
            feature_count=1,
            checksum_sha256=checksum,
            updated_at=selected_at,
        )
    except Exception as e:
        logger.error(f"boundary commit failed: {e}")
        store.transition(LayerKind.BOUNDARY, "fail", error=str(e) or type(e).__name__, updated_at=selected_at)
        raise

    logger.info(f"Boundary set to {selected.osm_type}/{selected.osm_id} (score {selected.score})")
    return ResortBoundarySetResult(
        workspace_path=str(workspace_path),
        boundary_path=str(boundary_path),
        selected_index=index,
        candidate_count=len(detection.candidates),
        selected=selected,
        checksum_sha256=checksum,
    )
