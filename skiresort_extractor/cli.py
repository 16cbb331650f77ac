"""Command line entry point: ptk-extractor <command> [options].

Thin layer over the library. Every command prints one JSON document to
stdout. Failures print {"ok": false, "error": {...}} to stderr and exit 1.
"""

import argparse
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from statemachine.exceptions import TransitionNotAllowed

from skiresort_extractor.boundary import (
    detect_resort_boundary_candidates,
    search_resort_candidates,
    select_resort_to_workspace,
    set_resort_boundary,
)
from skiresort_extractor.core.artifacts import read_json
from skiresort_extractor.core.audit import AuditLogger, JsonlAuditLogger, NoopAuditLogger
from skiresort_extractor.errors import (
    BoundaryGateError,
    ExtractorError,
    FleetRunError,
    InvalidInputError,
    LayerPreconditionError,
    PackSchemaError,
    UpstreamError,
)
from skiresort_extractor.ingest import ingest_osm_to_file
from skiresort_extractor.model.workspace import LayerKind
from skiresort_extractor.pack import BuildPackOptions, build_pack_to_file, summarize_pack
from skiresort_extractor.pipeline import run_extract_fleet_pipeline, run_extract_resort_pipeline
from skiresort_extractor.sync import (
    LayerUpdateOptions,
    import_resort_contours,
    import_resort_terrain_bands,
    sync_resort_contours,
    sync_resort_lifts,
    sync_resort_peaks,
    sync_resort_runs,
    update_resort_layer,
)
from skiresort_extractor.validators import validate_pack
from skiresort_extractor.workspace import read_resort_sync_status

logger = logging.getLogger(__name__)

# Most specific first
ERROR_CODES: list[tuple[type[Exception], str]] = [
    (BoundaryGateError, "BOUNDARY_GATE_FAILED"),
    (PackSchemaError, "PACK_SCHEMA_INVALID"),
    (FleetRunError, "FLEET_RUN_FAILED"),
    (LayerPreconditionError, "LAYER_PRECONDITION"),
    (UpstreamError, "UPSTREAM_FAILED"),
    (InvalidInputError, "INVALID_INPUT"),
    (TransitionNotAllowed, "ILLEGAL_TRANSITION"),
    (ExtractorError, "EXTRACTOR_ERROR"),
]


# =============================================================================
# Command handlers
# =============================================================================


def _validate_pack(args: argparse.Namespace) -> dict[str, Any]:
    pack = read_json(args.input, label="Pack")
    result = validate_pack(pack)
    output: dict[str, Any] = {"ok": result.ok, "errors": [str(issue) for issue in result.issues]}
    if result.ok:
        output["summary"] = summarize_pack(pack)
    return output


def _ingest_osm(args: argparse.Namespace) -> dict[str, Any]:
    normalized = ingest_osm_to_file(
        input_path=args.input,
        output_path=args.output,
        resort_id=args.resort_id,
        resort_name=args.resort_name,
        boundary_relation_id=args.boundary_relation_id,
    )
    return {
        "outputPath": str(args.output),
        "resortId": normalized.resort_id,
        "runCount": len(normalized.runs),
        "liftCount": len(normalized.lifts),
        "boundary": normalized.boundary is not None,
        "warnings": list(normalized.warnings),
    }


def _build_pack(args: argparse.Namespace) -> dict[str, Any]:
    result = build_pack_to_file(
        input_path=args.input,
        output_path=args.output,
        report_path=args.report,
        options=BuildPackOptions(
            timezone=args.timezone,
            pmtiles_path=args.pmtiles_path,
            style_path=args.style_path,
            lift_proximity_m=args.lift_proximity_meters,
            allow_outside_boundary=args.allow_outside_boundary,
            generated_at=args.generated_at,
        ),
    )
    return {"packPath": str(args.output), "reportPath": str(args.report), "report": result.report.to_dict()}


def _resort_search(args: argparse.Namespace) -> dict[str, Any]:
    return search_resort_candidates(name=args.name, country=args.country, limit=args.limit).to_dict()


def _resort_select(args: argparse.Namespace) -> dict[str, Any]:
    return select_resort_to_workspace(
        workspace_path=args.workspace,
        name=args.name,
        country=args.country,
        index=args.index,
        limit=args.limit,
        selected_at=args.selected_at,
    ).to_dict()


def _boundary_detect(args: argparse.Namespace) -> dict[str, Any]:
    return detect_resort_boundary_candidates(workspace_path=args.workspace, search_limit=args.search_limit).to_dict()


def _boundary_set(args: argparse.Namespace) -> dict[str, Any]:
    return set_resort_boundary(
        workspace_path=args.workspace,
        index=args.index,
        output_path=args.output,
        selected_at=args.selected_at,
        search_limit=args.search_limit,
    ).to_dict()


def _overpass_sync(sync_fn: Callable[..., Any]) -> Callable[[argparse.Namespace], dict[str, Any]]:
    def handler(args: argparse.Namespace) -> dict[str, Any]:
        return sync_fn(
            workspace_path=args.workspace,
            output_path=args.output,
            buffer_m=args.buffer_meters,
            timeout_s=args.timeout_seconds,
            updated_at=args.updated_at,
        ).to_dict()

    return handler


def _sync_contours(args: argparse.Namespace) -> dict[str, Any]:
    return sync_resort_contours(
        workspace_path=args.workspace,
        output_path=args.output,
        buffer_m=args.buffer_meters,
        interval_m=args.interval_meters,
        updated_at=args.updated_at,
    ).to_dict()


def _import_layer(import_fn: Callable[..., Any]) -> Callable[[argparse.Namespace], dict[str, Any]]:
    def handler(args: argparse.Namespace) -> dict[str, Any]:
        return import_fn(
            workspace_path=args.workspace,
            input_path=args.input,
            output_path=args.output,
            updated_at=args.updated_at,
        ).to_dict()

    return handler


def _sync_status(args: argparse.Namespace) -> dict[str, Any]:
    return read_resort_sync_status(args.workspace).to_dict()


def _resort_update(args: argparse.Namespace) -> dict[str, Any]:
    options = LayerUpdateOptions(
        index=args.index,
        output_path=args.output,
        search_limit=args.search_limit,
        buffer_m=args.buffer_meters,
        timeout_s=args.timeout_seconds,
        interval_m=args.interval_meters,
        updated_at=args.updated_at,
    )
    return update_resort_layer(
        workspace_path=args.workspace, layer=LayerKind.parse(args.layer), options=options, dry_run=args.dry_run
    ).to_dict()


def _audit_logger(log_file: Path | None) -> AuditLogger:
    return JsonlAuditLogger(log_file) if log_file else NoopAuditLogger()


def _extract_resort(args: argparse.Namespace) -> dict[str, Any]:
    return run_extract_resort_pipeline(
        args.config, audit=_audit_logger(args.log_file), generated_at=args.generated_at
    ).to_dict()


def _extract_fleet(args: argparse.Namespace) -> dict[str, Any]:
    return run_extract_fleet_pipeline(
        args.config, audit=_audit_logger(args.log_file), generated_at=args.generated_at
    ).to_dict()


# =============================================================================
# Parser
# =============================================================================


def _add_sync_flags(parser: argparse.ArgumentParser, timeout: bool = True) -> None:
    parser.add_argument("--workspace", type=Path, required=True, help="Workspace JSON path")
    parser.add_argument("--output", type=Path, help="Artifact path (default: beside the workspace)")
    parser.add_argument("--updated-at", help="ISO-8601 timestamp stamped on the layer")
    if timeout:
        parser.add_argument("--buffer-meters", type=float, help="Buffer around the boundary bbox")
        parser.add_argument("--timeout-seconds", type=int, help="Overpass query timeout")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(prog="ptk-extractor", description="Ski resort pack extractor")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for stderr diagnostics",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("validate-pack", help="Validate a pack document")
    p.add_argument("--input", type=Path, required=True)
    p.set_defaults(handler=_validate_pack)

    p = commands.add_parser("ingest-osm", help="Normalize an Overpass JSON export")
    p.add_argument("--input", type=Path, required=True)
    p.add_argument("--output", type=Path, required=True)
    p.add_argument("--resort-id")
    p.add_argument("--resort-name")
    p.add_argument("--boundary-relation-id", type=int)
    p.set_defaults(handler=_ingest_osm)

    p = commands.add_parser("build-pack", help="Build a pack from a normalized source")
    p.add_argument("--input", type=Path, required=True)
    p.add_argument("--output", type=Path, required=True)
    p.add_argument("--report", type=Path, required=True)
    p.add_argument("--timezone", required=True)
    p.add_argument("--pmtiles-path", required=True)
    p.add_argument("--style-path", required=True)
    p.add_argument("--lift-proximity-meters", type=float, default=90)
    p.add_argument("--allow-outside-boundary", action="store_true")
    p.add_argument("--generated-at")
    p.set_defaults(handler=_build_pack)

    p = commands.add_parser("resort-search", help="Search resorts by name and country")
    p.add_argument("--name", required=True)
    p.add_argument("--country", required=True)
    p.add_argument("--limit", type=int, default=5)
    p.set_defaults(handler=_resort_search)

    p = commands.add_parser("resort-select", help="Start a workspace from a search hit")
    p.add_argument("--workspace", type=Path, required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--country", required=True)
    p.add_argument("--index", type=int, required=True)
    p.add_argument("--limit", type=int, default=5)
    p.add_argument("--selected-at")
    p.set_defaults(handler=_resort_select)

    p = commands.add_parser("resort-boundary-detect", help="List scored boundary candidates")
    p.add_argument("--workspace", type=Path, required=True)
    p.add_argument("--search-limit", type=int, default=5)
    p.set_defaults(handler=_boundary_detect)

    p = commands.add_parser("resort-boundary-set", help="Commit a boundary candidate")
    p.add_argument("--workspace", type=Path, required=True)
    p.add_argument("--index", type=int, required=True)
    p.add_argument("--output", type=Path)
    p.add_argument("--search-limit", type=int, default=5)
    p.add_argument("--selected-at")
    p.set_defaults(handler=_boundary_set)

    for name, sync_fn in (
        ("resort-sync-lifts", sync_resort_lifts),
        ("resort-sync-runs", sync_resort_runs),
        ("resort-sync-peaks", sync_resort_peaks),
    ):
        p = commands.add_parser(name, help=f"Fetch the {name.rsplit('-', 1)[-1]} layer")
        _add_sync_flags(p)
        p.set_defaults(handler=_overpass_sync(sync_fn))

    p = commands.add_parser("resort-sync-contours", help="Generate contours and terrain bands")
    _add_sync_flags(p, timeout=False)
    p.add_argument("--buffer-meters", type=float, default=2000)
    p.add_argument("--interval-meters", type=float, default=20)
    p.set_defaults(handler=_sync_contours)

    for name, import_fn in (
        ("resort-import-contours", import_resort_contours),
        ("resort-import-terrain-bands", import_resort_terrain_bands),
    ):
        p = commands.add_parser(name, help="Import a pre-generated GeoJSON layer")
        _add_sync_flags(p, timeout=False)
        p.add_argument("--input", type=Path, required=True)
        p.set_defaults(handler=_import_layer(import_fn))

    p = commands.add_parser("resort-sync-status", help="Report workspace readiness")
    p.add_argument("--workspace", type=Path, required=True)
    p.set_defaults(handler=_sync_status)

    p = commands.add_parser("resort-update", help="Refresh one workspace layer")
    _add_sync_flags(p)
    p.add_argument("--layer", required=True, choices=[k.value for k in LayerKind if k != LayerKind.TERRAIN_BANDS])
    p.add_argument("--index", type=int)
    p.add_argument("--search-limit", type=int, default=5)
    p.add_argument("--interval-meters", type=float)
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(handler=_resort_update)

    for name, handler in (("extract-resort", _extract_resort), ("extract-fleet", _extract_fleet)):
        p = commands.add_parser(name, help="Run a config-driven extraction")
        p.add_argument("--config", type=Path, required=True)
        p.add_argument("--log-file", type=Path, help="Append JSONL audit events here")
        p.add_argument("--generated-at")
        p.set_defaults(handler=handler)

    return parser


def error_code(error: Exception) -> str:
    return next((code for kind, code in ERROR_CODES if isinstance(error, kind)), "INTERNAL_ERROR")


def main(argv: list[str] | None = None) -> int:
    """Run one command.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = create_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    try:
        output = args.handler(args)
    except (ExtractorError, TransitionNotAllowed) as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        error = {"code": error_code(e), "command": args.command, "message": str(e)}
        print(json.dumps({"ok": False, "error": error}), file=sys.stderr)
        return 1

    print(json.dumps(output, ensure_ascii=False))
    if args.command == "validate-pack" and not output["ok"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
