"""BoundaryCandidate - A possible resort boundary found during detection.

Candidates are ephemeral: they exist only for the duration of a detection
call. The operator picks one and commits it to the workspace boundary layer.
"""

from dataclasses import dataclass, field
from typing import Any

from skiresort_extractor.model.normalized_source import Coordinate


@dataclass
class CandidateValidation:
    """Plausibility checks and score for one candidate.

    Attributes:
        contains_selection_center: Selection center lies inside the ring
        ring_closed: Ring has >= 4 points and first == last
        area_km2: Geodesic ring area, None without a ring
        distance_km: Distance from candidate center to selection center
        score: Additive plausibility score (may be negative)
        signals: Positive evidence that contributed to the score
        issues: Problems that lowered confidence
    """

    contains_selection_center: bool = False
    ring_closed: bool = False
    area_km2: float | None = None
    distance_km: float | None = None
    score: int = 0
    signals: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "containsSelectionCenter": self.contains_selection_center,
            "ringClosed": self.ring_closed,
            "areaKm2": self.area_km2,
            "distanceKm": self.distance_km,
            "score": self.score,
            "signals": list(self.signals),
            "issues": list(self.issues),
        }


@dataclass
class BoundaryCandidate:
    """One candidate boundary with its provenance and validation.

    Attributes:
        source: "selection", "search" or "region"
        geometry_type: "Polygon", "MultiPolygon" or None
        ring: Exterior ring (largest polygon for MultiPolygon), None if unknown
    """

    osm_type: str
    osm_id: int
    display_name: str
    center: Coordinate
    source: str
    geometry_type: str | None = None
    ring: list[Coordinate] | None = None
    validation: CandidateValidation = field(default_factory=CandidateValidation)

    @property
    def key(self) -> tuple[str, int]:
        """Dedupe key: (osm type, osm id)."""
        return self.osm_type, self.osm_id

    @property
    def score(self) -> int:
        return self.validation.score

    def to_dict(self) -> dict[str, Any]:
        return {
            "osmType": self.osm_type,
            "osmId": self.osm_id,
            "displayName": self.display_name,
            "center": list(self.center),
            "source": self.source,
            "geometryType": self.geometry_type,
            "ring": [list(p) for p in self.ring] if self.ring is not None else None,
            "validation": self.validation.to_dict(),
        }

    def __repr__(self) -> str:
        return f"BoundaryCandidate({self.osm_type}/{self.osm_id}, {self.source}, score={self.score})"
