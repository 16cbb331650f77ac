"""Resort search, boundary candidate detection and boundary commit."""

from skiresort_extractor.boundary.resolver import (
    CandidateSource,
    DetectionResult,
    SwallowPolicy,
    detect_resort_boundary_candidates,
    score_candidate,
)
from skiresort_extractor.boundary.search import ResortSearchResult, search_resort_candidates
from skiresort_extractor.boundary.selection import (
    select_candidate_by_index,
    select_resort_to_workspace,
    set_resort_boundary,
)

__all__ = [
    "CandidateSource",
    "DetectionResult",
    "ResortSearchResult",
    "SwallowPolicy",
    "detect_resort_boundary_candidates",
    "score_candidate",
    "search_resort_candidates",
    "select_candidate_by_index",
    "select_resort_to_workspace",
    "set_resort_boundary",
]
