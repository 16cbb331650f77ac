"""Layer lifecycle state machine.

Uses python-statemachine with the LayerState dataclass as the model: the
machine reads and writes LayerState.status directly, so a machine can be
bound to any layer loaded from a workspace document and the document is
updated in place by each transition.

States:
    pending: Never synced (initial)
    running: Sync in progress
    complete: Artifact written and checksummed
    failed: Last sync raised; previous artifact fields are kept

Transitions:
    pending/complete/failed -> running: begin (query_hash, updated_at)
    running -> complete: succeed (artifact_path, feature_count, checksum_sha256, updated_at)
    running -> failed: fail (error, updated_at)

Any other transition raises TransitionNotAllowed.
"""

from statemachine import State, StateMachine

from skiresort_extractor.model.workspace import LayerState


class LayerStateMachine(StateMachine):
    """State machine for one workspace layer.

    Example:
        machine = LayerStateMachine(layer=workspace.layer(LayerKind.LIFTS))
        machine.begin(query_hash=digest, updated_at=now)
        machine.succeed(artifact_path="lifts.geojson", feature_count=12,
                        checksum_sha256=checksum, updated_at=now)
    """

    # ==========================================================================
    # State Definitions
    # ==========================================================================

    pending = State("Pending", initial=True)
    running = State("Running")
    complete = State("Complete")
    failed = State("Failed")

    # ==========================================================================
    # Transitions
    # ==========================================================================

    # Start (or retry) a sync from any resting state
    begin = pending.to(running) | complete.to(running) | failed.to(running)
    # Sync wrote its artifact
    succeed = running.to(complete)
    # Sync raised
    fail = running.to(failed)

    # ==========================================================================
    # Initialization
    # ==========================================================================

    def __init__(self, layer: LayerState) -> None:
        """Bind the machine to a layer; its current status is the start state.

        Args:
            layer: LayerState updated in place by every transition
        """
        super().__init__(model=layer, state_field="status", start_value=layer.status)

    @property
    def layer(self) -> LayerState:
        return self.model

    # ==========================================================================
    # Transition Actions
    # ==========================================================================

    def before_begin(self, query_hash: str, updated_at: str) -> None:
        """Entering running: clear the previous error, stamp the query."""
        self.layer.error = None
        self.layer.query_hash = query_hash
        self.layer.updated_at = updated_at

    def before_succeed(
        self,
        artifact_path: str,
        feature_count: int,
        checksum_sha256: str,
        updated_at: str,
    ) -> None:
        """Entering complete: record the new artifact."""
        self.layer.artifact_path = artifact_path
        self.layer.feature_count = feature_count
        self.layer.checksum_sha256 = checksum_sha256
        self.layer.updated_at = updated_at
        self.layer.error = None

    def before_fail(self, error: str, updated_at: str) -> None:
        """Entering failed: record the error, keep artifact fields."""
        self.layer.error = error
        self.layer.updated_at = updated_at

    def __repr__(self) -> str:
        return f"LayerStateMachine(state={self.current_state.id}, model={self.layer!r})"
