"""Raw OSM ingestion: Overpass JSON parsing and normalization."""

from skiresort_extractor.ingest.normalizer import ingest_osm_to_file, normalize_osm_document, slugify
from skiresort_extractor.ingest.osm_document import OsmDocument, parse_osm_document

__all__ = [
    "OsmDocument",
    "parse_osm_document",
    "normalize_osm_document",
    "ingest_osm_to_file",
    "slugify",
]
