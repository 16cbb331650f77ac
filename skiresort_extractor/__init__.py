"""Ski Resort Pack Extractor - Verified offline resort packs from OpenStreetMap.

Prepares resort packs for a ski-patrol field app: ingests Overpass exports,
resolves a resort boundary, syncs spatial layers into a per-resort workspace
and gates every run and lift against the boundary before publication.

Modules:
    core: Foundation (geometry, resilient HTTP fetch, artifacts, DEM access, audit)
    model: Documents (normalized source, pack, workspace, candidates, manifest)
    ingest: Overpass JSON parsing and normalization
    pack: Pack building with the boundary gate
    boundary: Resort search, boundary candidate detection and commit
    workspace: Layer state machine, document store and readiness status
    sync: Lifts, runs, peaks, contours and terrain band layers
    pipeline: Config-driven single-resort and fleet extraction

Example:
    from skiresort_extractor.pipeline import run_extract_resort_pipeline
    result = run_extract_resort_pipeline(Path("resorts/cervinia/config.json"))
"""
