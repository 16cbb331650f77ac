"""Nominatim resort name search and OSM object lookup.

Search results are sorted by importance (descending, missing last) and then
by display name. Records without a usable osm type, integer id, display
name or finite center are dropped.
"""

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skiresort_extractor.constants import FetchConfig, NominatimConfig
from skiresort_extractor.core.fetch_client import CachePolicy, FetchClient, default_cache_dir
from skiresort_extractor.errors import UpstreamError

logger = logging.getLogger(__name__)

_COUNTRY_CODE_PATTERN = re.compile(r"^[a-z]{2}$", re.IGNORECASE)


@dataclass
class ResortSearchCandidate:
    """One Nominatim search hit."""

    osm_type: str
    osm_id: int
    display_name: str
    center: list[float]  # [lon, lat]
    country_code: str | None = None
    country: str | None = None
    region: str | None = None
    importance: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "osmType": self.osm_type,
            "osmId": self.osm_id,
            "displayName": self.display_name,
            "countryCode": self.country_code,
            "country": self.country,
            "region": self.region,
            "center": list(self.center),
            "importance": self.importance,
            "source": "nominatim",
        }


@dataclass
class ResortSearchResult:
    name: str
    country: str
    limit: int
    candidates: list[ResortSearchCandidate]

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": {"name": self.name, "country": self.country, "limit": self.limit},
            "candidates": [candidate.to_dict() for candidate in self.candidates],
        }


def build_search_params(name: str, country: str, limit: int) -> dict[str, str]:
    """Nominatim /search parameters; an ISO alpha-2 country adds a countrycodes filter."""
    params = {
        "q": f"{name}, {country}",
        "format": NominatimConfig.RESULT_FORMAT,
        "addressdetails": "1",
        "limit": str(limit),
    }
    code = country.strip()
    if _COUNTRY_CODE_PATTERN.match(code):
        params["countrycodes"] = code.lower()
    return params


def build_lookup_params(osm_type: str, osm_id: int) -> dict[str, str]:
    """Nominatim /lookup parameters requesting polygon GeoJSON."""
    return {
        "osm_ids": f"{NominatimConfig.OSM_TYPE_PREFIXES[osm_type]}{osm_id}",
        "format": NominatimConfig.RESULT_FORMAT,
        "polygon_geojson": "1",
        "addressdetails": "1",
    }


def parse_search_record(record: Any) -> ResortSearchCandidate | None:
    """Candidate from one Nominatim record, or None when unusable."""
    if not isinstance(record, dict):
        return None
    osm_type = record.get("osm_type")
    osm_id = record.get("osm_id")
    display_name = record.get("display_name")
    if osm_type not in NominatimConfig.OSM_TYPES or not isinstance(osm_id, int) or isinstance(osm_id, bool):
        return None
    if not isinstance(display_name, str) or not display_name.strip():
        return None
    center = record_center(record)
    if center is None:
        return None

    address = record.get("address") if isinstance(record.get("address"), dict) else {}
    importance = record.get("importance")
    return ResortSearchCandidate(
        osm_type=osm_type,
        osm_id=osm_id,
        display_name=display_name.strip(),
        center=center,
        country_code=address.get("country_code"),
        country=address.get("country"),
        region=address.get("state") or address.get("region"),
        importance=float(importance) if isinstance(importance, (int, float)) and math.isfinite(importance) else None,
    )


def record_center(record: dict[str, Any]) -> list[float] | None:
    """[lon, lat] from Nominatim's string lat/lon fields."""
    try:
        lon, lat = float(record.get("lon")), float(record.get("lat"))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return [lon, lat]


def search_resort_candidates(
    name: str,
    country: str,
    limit: int = NominatimConfig.DEFAULT_SEARCH_LIMIT,
    client: FetchClient | None = None,
) -> ResortSearchResult:
    """Search Nominatim for resorts matching a name and country.

    Raises:
        UpstreamError: Search failed or returned something other than a JSON array.
    """
    client = client or FetchClient()
    raw = client.fetch_json(NominatimConfig.SEARCH_URL, params=build_search_params(name, country, limit))
    if not isinstance(raw, list):
        raise UpstreamError("Resort search failed: upstream response is not a JSON array.")

    candidates = [c for c in (parse_search_record(record) for record in raw) if c is not None]
    candidates.sort(key=lambda c: (-(c.importance if c.importance is not None else -1), c.display_name))
    logger.info(f"Search '{name}, {country}': {len(candidates)} candidate(s)")
    return ResortSearchResult(name=name, country=country, limit=limit, candidates=candidates)


def lookup_osm_object(
    client: FetchClient,
    osm_type: str,
    osm_id: int,
    cache_dir: Path | None = None,
) -> dict[str, Any] | None:
    """First Nominatim lookup record for an OSM object (cached 1 h), or None.

    Raises:
        UpstreamError: If the lookup request fails.
    """
    params = build_lookup_params(osm_type, osm_id)
    cache_key = f"boundary-lookup:{osm_type}:{osm_id}:{NominatimConfig.LOOKUP_URL}?osm_ids={params['osm_ids']}"
    raw = client.fetch_json(
        NominatimConfig.LOOKUP_URL,
        params=params,
        cache=CachePolicy(dir=cache_dir or default_cache_dir(), ttl_s=FetchConfig.CACHE_TTL_S, key=cache_key),
    )
    if not isinstance(raw, list) or not raw or not isinstance(raw[0], dict):
        return None
    return raw[0]
