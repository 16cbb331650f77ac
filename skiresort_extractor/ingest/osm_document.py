"""Typed view of an Overpass JSON document.

parse_osm_document checks the raw element graph and converts it to frozen
dataclasses. Tags keep only string values and are sorted by key, so element
order and tag order in the input never affect the normalized output.
"""

from dataclasses import dataclass, field
from typing import Any

from skiresort_extractor.errors import InvalidInputError

OSM_MEMBER_TYPES = ("node", "way", "relation")


@dataclass(frozen=True)
class OsmNode:
    id: int
    lat: float
    lon: float
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OsmWay:
    id: int
    nodes: tuple[int, ...]
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OsmMember:
    type: str
    ref: int
    role: str


@dataclass(frozen=True)
class OsmRelation:
    id: int
    members: tuple[OsmMember, ...]
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class OsmDocument:
    """Parsed Overpass document.

    Attributes:
        elements: Nodes, ways and relations in input order
        osm_base_timestamp: osm3s.timestamp_osm_base, None if absent
    """

    elements: list[OsmNode | OsmWay | OsmRelation]
    osm_base_timestamp: str | None = None
    version: float | None = None
    generator: str | None = None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def read_tags(tags: Any) -> dict[str, str]:
    """String-valued tags sorted by key; anything else yields {}."""
    if not isinstance(tags, dict):
        return {}
    return {key: tags[key] for key in sorted(tags) if isinstance(tags[key], str)}


def parse_osm_document(value: Any) -> OsmDocument:
    """Validate and convert a decoded Overpass JSON value.

    Args:
        value: Decoded JSON (expected object with an "elements" array)

    Returns:
        OsmDocument with typed elements.

    Raises:
        InvalidInputError: Naming the first malformed element by index.
    """
    if not isinstance(value, dict):
        raise InvalidInputError("Invalid OSM input: expected object root.")
    raw_elements = value.get("elements")
    if not isinstance(raw_elements, list):
        raise InvalidInputError("Invalid OSM input: missing elements array.")

    elements: list[OsmNode | OsmWay | OsmRelation] = []
    for index, e in enumerate(raw_elements):
        if not isinstance(e, dict):
            raise InvalidInputError(f"Invalid OSM element at index {index}.")

        element_type = e.get("type")
        if element_type == "node":
            if not (_is_int(e.get("id")) and _is_number(e.get("lat")) and _is_number(e.get("lon"))):
                raise InvalidInputError(f"Invalid OSM node at index {index}.")
            elements.append(OsmNode(id=e["id"], lat=e["lat"], lon=e["lon"], tags=read_tags(e.get("tags"))))

        elif element_type == "way":
            nodes = e.get("nodes")
            if not (_is_int(e.get("id")) and isinstance(nodes, list) and all(_is_int(n) for n in nodes)):
                raise InvalidInputError(f"Invalid OSM way at index {index}.")
            elements.append(OsmWay(id=e["id"], nodes=tuple(nodes), tags=read_tags(e.get("tags"))))

        elif element_type == "relation":
            members = e.get("members")
            if not (_is_int(e.get("id")) and isinstance(members, list)):
                raise InvalidInputError(f"Invalid OSM relation at index {index}.")
            elements.append(
                OsmRelation(
                    id=e["id"],
                    members=tuple(_parse_member(m, index, i) for i, m in enumerate(members)),
                    tags=read_tags(e.get("tags")),
                )
            )

        else:
            raise InvalidInputError(f"Unsupported OSM element type at index {index}.")

    osm3s = value.get("osm3s")
    timestamp = osm3s.get("timestamp_osm_base") if isinstance(osm3s, dict) else None
    return OsmDocument(
        elements=elements,
        osm_base_timestamp=timestamp if isinstance(timestamp, str) else None,
        version=value["version"] if _is_number(value.get("version")) else None,
        generator=value["generator"] if isinstance(value.get("generator"), str) else None,
    )


def _parse_member(member: Any, index: int, member_index: int) -> OsmMember:
    if (
        not isinstance(member, dict)
        or not _is_int(member.get("ref"))
        or not isinstance(member.get("role"), str)
        or member.get("type") not in OSM_MEMBER_TYPES
    ):
        raise InvalidInputError(f"Invalid OSM relation member at {index}/{member_index}.")
    return OsmMember(type=member["type"], ref=member["ref"], role=member["role"])
