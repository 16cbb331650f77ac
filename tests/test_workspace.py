"""Tests for the layer state machine, workspace store and readiness status."""

import json

import pytest
from statemachine.exceptions import TransitionNotAllowed

from skiresort_extractor.errors import InvalidInputError, LayerPreconditionError
from skiresort_extractor.model.workspace import LayerKind, LayerState, ResortQuery, ResortWorkspace
from skiresort_extractor.workspace import (
    LayerStateMachine,
    WorkspaceStore,
    read_boundary_ring,
    read_resort_sync_status,
    require_boundary_complete,
)

from tests.conftest import BOUNDARY_RING, FIXED_TIME

DIGEST = "b" * 64


def complete_layer(store: WorkspaceStore, kind: LayerKind, feature_count: int = 3) -> None:
    store.transition(kind, "begin", query_hash=DIGEST, updated_at=FIXED_TIME)
    store.transition(
        kind,
        "succeed",
        artifact_path=f"{kind.value}.geojson",
        feature_count=feature_count,
        checksum_sha256=DIGEST,
        updated_at=FIXED_TIME,
    )


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestLayerStateMachine:
    """Layer lifecycle transitions."""

    def test_initial_state_follows_layer(self) -> None:
        assert LayerStateMachine(layer=LayerState()).current_state.id == "pending"
        assert LayerStateMachine(layer=LayerState(status="failed")).current_state.id == "failed"

    def test_begin_succeed(self) -> None:
        layer = LayerState(error="old failure")
        machine = LayerStateMachine(layer=layer)

        machine.begin(query_hash=DIGEST, updated_at=FIXED_TIME)
        assert layer.status == "running"
        assert layer.error is None
        assert layer.query_hash == DIGEST

        machine.succeed(artifact_path="lifts.geojson", feature_count=4, checksum_sha256=DIGEST, updated_at=FIXED_TIME)
        assert layer.status == "complete"
        assert layer.artifact_path == "lifts.geojson"
        assert layer.feature_count == 4

    def test_fail_keeps_previous_artifact(self) -> None:
        layer = LayerState(status="complete", artifact_path="runs.geojson", feature_count=9, checksum_sha256=DIGEST)
        machine = LayerStateMachine(layer=layer)
        machine.begin(query_hash=DIGEST, updated_at=FIXED_TIME)
        machine.fail(error="Upstream returned HTTP 504.", updated_at=FIXED_TIME)

        assert layer.status == "failed"
        assert layer.error == "Upstream returned HTTP 504."
        assert layer.artifact_path == "runs.geojson"
        assert layer.feature_count == 9

    @pytest.mark.parametrize(
        "status, event",
        [("pending", "succeed"), ("pending", "fail"), ("complete", "succeed"), ("running", "begin")],
    )
    def test_illegal_transitions(self, status, event) -> None:
        machine = LayerStateMachine(layer=LayerState(status=status))
        with pytest.raises(TransitionNotAllowed):
            machine.send(event, query_hash=DIGEST, updated_at=FIXED_TIME, error="x")


# =============================================================================
# STORE
# =============================================================================


class TestWorkspaceStore:
    """Whole-document persistence."""

    def test_created_workspace_has_every_layer_pending(self, make_workspace) -> None:
        path = make_workspace()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["schemaVersion"] == "2.1.0"
        assert set(data["layers"]) == set(LayerKind.values())
        assert all(state == {"status": "pending"} for state in data["layers"].values())
        assert data["resort"]["selection"]["osmId"] == 4242

    def test_transition_persists(self, make_workspace) -> None:
        path = make_workspace()
        store = WorkspaceStore(path=path)
        complete_layer(store, LayerKind.LIFTS)

        reread = store.read().layer(LayerKind.LIFTS)
        assert reread.status == "complete"
        assert reread.checksum_sha256 == DIGEST

    def test_illegal_transition_leaves_document_untouched(self, make_workspace) -> None:
        path = make_workspace()
        before = path.read_bytes()
        with pytest.raises(TransitionNotAllowed):
            WorkspaceStore(path=path).transition(
                LayerKind.RUNS,
                "succeed",
                artifact_path="runs.geojson",
                feature_count=1,
                checksum_sha256=DIGEST,
                updated_at=FIXED_TIME,
            )
        assert path.read_bytes() == before

    def test_read_rejects_invalid_document(self, tmp_path) -> None:
        path = tmp_path / "workspace.json"
        path.write_text(json.dumps({"schemaVersion": "3.0.0", "resort": {}, "layers": {}}), encoding="utf-8")
        with pytest.raises(InvalidInputError, match="Invalid resort workspace"):
            WorkspaceStore(path=path).read()

    def test_previous_schema_is_upgraded(self, tmp_path) -> None:
        path = tmp_path / "workspace.json"
        path.write_text(
            json.dumps(
                {
                    "schemaVersion": "2.0.0",
                    "resort": {"query": {"name": "Cervinia", "country": "IT"}},
                    "layers": {
                        "boundary": {"status": "pending"},
                        "lifts": {"status": "pending"},
                        "runs": {"status": "pending"},
                    },
                }
            ),
            encoding="utf-8",
        )
        workspace = WorkspaceStore(path=path).read()
        assert workspace.schema_version == "2.1.0"
        assert workspace.layer(LayerKind.CONTOURS).status == "pending"
        assert workspace.layer(LayerKind.TERRAIN_BANDS).status == "pending"

    def test_relative_and_resolve(self, make_workspace, tmp_path) -> None:
        store = WorkspaceStore(path=make_workspace())
        inside = store.directory / "lifts.geojson"
        assert store.relative(inside) == "lifts.geojson"
        assert store.resolve("lifts.geojson") == store.directory / "lifts.geojson"

        outside = tmp_path / "elsewhere" / "lifts.geojson"
        assert store.relative(outside) == str(outside.resolve())
        assert store.resolve(str(outside.resolve())) == outside.resolve()

    def test_workspace_repr_lists_statuses(self) -> None:
        workspace = ResortWorkspace(query=ResortQuery(name="Cervinia", country="IT"))
        assert "boundary=pending" in repr(workspace)


class TestBoundaryPrecondition:
    """Boundary completeness and ring loading."""

    def test_incomplete_boundary_fails_fast(self, make_workspace) -> None:
        workspace = WorkspaceStore(path=make_workspace()).read()
        with pytest.raises(LayerPreconditionError, match="Boundary layer is not complete"):
            require_boundary_complete(workspace)

    def test_complete_boundary_ring(self, make_workspace) -> None:
        path = make_workspace(with_boundary=True)
        store = WorkspaceStore(path=path)
        boundary = require_boundary_complete(store.read())
        assert read_boundary_ring(store.resolve(boundary.artifact_path)) == BOUNDARY_RING

    def test_non_polygon_artifact(self, tmp_path) -> None:
        path = tmp_path / "boundary.geojson"
        path.write_text(json.dumps({"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}}), encoding="utf-8")
        with pytest.raises(InvalidInputError, match="not a Polygon feature"):
            read_boundary_ring(path)

    def test_ring_with_too_few_valid_points(self, tmp_path) -> None:
        path = tmp_path / "boundary.geojson"
        ring = [[0, 0], ["a", 1], [1, 1], [0, 0]]
        path.write_text(
            json.dumps({"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}}), encoding="utf-8"
        )
        with pytest.raises(InvalidInputError, match="insufficient valid coordinates"):
            read_boundary_ring(path)


# =============================================================================
# STATUS
# =============================================================================


class TestSyncStatus:
    """Readiness summary."""

    def test_fresh_workspace_is_incomplete(self, make_workspace) -> None:
        status = read_resort_sync_status(make_workspace())
        assert status.overall == "incomplete"
        assert "boundary: status is 'pending', expected 'complete'" in status.issues
        assert not any(issue.startswith("peaks:") for issue in status.issues)

    def test_required_layers_complete_is_ready(self, make_workspace) -> None:
        path = make_workspace(with_boundary=True)
        store = WorkspaceStore(path=path)
        complete_layer(store, LayerKind.LIFTS)
        complete_layer(store, LayerKind.RUNS)

        status = read_resort_sync_status(path)
        assert status.overall == "ready"
        data = status.to_dict()
        assert data["layers"]["peaks"]["required"] is False
        assert data["layers"]["lifts"]["ready"] is True

    def test_failed_optional_layer_blocks_readiness(self, make_workspace) -> None:
        path = make_workspace(with_boundary=True)
        store = WorkspaceStore(path=path)
        complete_layer(store, LayerKind.LIFTS)
        complete_layer(store, LayerKind.RUNS)
        store.transition(LayerKind.PEAKS, "begin", query_hash=DIGEST, updated_at=FIXED_TIME)
        store.transition(LayerKind.PEAKS, "fail", error="Upstream returned HTTP 429.", updated_at=FIXED_TIME)

        status = read_resort_sync_status(path)
        assert status.overall == "incomplete"
        assert status.issues == ["peaks: error is set: Upstream returned HTTP 429."]

    def test_empty_required_layer_is_not_ready(self, make_workspace) -> None:
        path = make_workspace(with_boundary=True)
        store = WorkspaceStore(path=path)
        complete_layer(store, LayerKind.LIFTS, feature_count=0)
        complete_layer(store, LayerKind.RUNS)
        assert read_resort_sync_status(path).issues == ["lifts: featureCount must be >= 1"]
