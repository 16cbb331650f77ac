"""Pack building: difficulty mapping, corridors, boundary gate, schema check."""

from skiresort_extractor.pack.builder import (
    BuildPackOptions,
    BuildPackResult,
    build_pack_from_normalized,
    build_pack_to_file,
    check_boundary_gate,
    map_difficulty,
    summarize_pack,
)

__all__ = [
    "BuildPackOptions",
    "BuildPackResult",
    "build_pack_from_normalized",
    "build_pack_to_file",
    "check_boundary_gate",
    "map_difficulty",
    "summarize_pack",
]
