"""ResortWorkspace - Long-lived per-resort extraction state.

The workspace document records the resort query, the chosen OSM selection
and one LayerState per spatial layer. It is created at selection time with
every layer pending and then updated whole-document by each sync operation.

Documents at the previous schema version (boundary, lifts and runs only) are
upgraded on read: missing layers are filled in as pending.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from skiresort_extractor.constants import SchemaVersions


class LayerKind(str, Enum):
    """The fixed set of workspace layers (values are JSON keys)."""

    BOUNDARY = "boundary"
    LIFTS = "lifts"
    RUNS = "runs"
    PEAKS = "peaks"
    CONTOURS = "contours"
    TERRAIN_BANDS = "terrainBands"

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]

    @classmethod
    def parse(cls, value: str) -> "LayerKind":
        """Layer kind from its JSON key or a dashed CLI spelling."""
        aliases = {"terrain-bands": cls.TERRAIN_BANDS}
        if value in aliases:
            return aliases[value]
        return cls(value)


@dataclass
class LayerState:
    """Lifecycle state of one layer.

    Attributes:
        status: pending, running, complete or failed
        artifact_path: Artifact path relative to the workspace directory
        query_hash: sha256 of the exact upstream query last used
        feature_count: Features in the artifact
        checksum_sha256: sha256 of the artifact file
        updated_at: ISO-8601 time of the last transition
        error: Message of the last failure, cleared on start and success
    """

    status: str = "pending"
    artifact_path: str | None = None
    query_hash: str | None = None
    feature_count: int | None = None
    checksum_sha256: str | None = None
    updated_at: str | None = None
    error: str | None = None

    _FIELDS = (
        ("status", "status"),
        ("artifact_path", "artifactPath"),
        ("query_hash", "queryHash"),
        ("feature_count", "featureCount"),
        ("checksum_sha256", "checksumSha256"),
        ("updated_at", "updatedAt"),
        ("error", "error"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting unset optional fields."""
        data: dict[str, Any] = {}
        for attr, key in self._FIELDS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LayerState":
        return cls(**{attr: data.get(key) for attr, key in cls._FIELDS if key in data})


@dataclass
class ResortQuery:
    """What the operator searched for."""

    name: str
    country: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "country": self.country}


@dataclass
class ResortSelection:
    """The OSM object the operator chose as the resort."""

    osm_type: str
    osm_id: int
    display_name: str
    center: list[float]  # [lon, lat]
    selected_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "osmType": self.osm_type,
            "osmId": self.osm_id,
            "displayName": self.display_name,
            "center": list(self.center),
            "selectedAt": self.selected_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResortSelection":
        return cls(
            osm_type=data["osmType"],
            osm_id=data["osmId"],
            display_name=data["displayName"],
            center=list(data["center"]),
            selected_at=data["selectedAt"],
        )


@dataclass
class ResortWorkspace:
    """Per-resort workspace document."""

    query: ResortQuery
    selection: ResortSelection | None = None
    layers: dict[LayerKind, LayerState] = field(default_factory=dict)
    schema_version: str = SchemaVersions.WORKSPACE

    def __post_init__(self) -> None:
        for kind in LayerKind:
            self.layers.setdefault(kind, LayerState())

    def layer(self, kind: LayerKind) -> LayerState:
        return self.layers[kind]

    def to_dict(self) -> dict[str, Any]:
        resort: dict[str, Any] = {"query": self.query.to_dict()}
        if self.selection is not None:
            resort["selection"] = self.selection.to_dict()
        return {
            "schemaVersion": self.schema_version,
            "resort": resort,
            "layers": {kind.value: self.layers[kind].to_dict() for kind in LayerKind},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResortWorkspace":
        """Deserialize a validated document, upgrading older versions."""
        resort = data["resort"]
        selection = resort.get("selection")
        return cls(
            query=ResortQuery(name=resort["query"]["name"], country=resort["query"]["country"]),
            selection=ResortSelection.from_dict(selection) if selection else None,
            layers={LayerKind(name): LayerState.from_dict(state) for name, state in data["layers"].items()},
            schema_version=SchemaVersions.WORKSPACE,
        )

    def __repr__(self) -> str:
        statuses = ", ".join(f"{kind.value}={state.status}" for kind, state in self.layers.items())
        return f"ResortWorkspace({self.query.name}, {statuses})"
