"""Tests for the ptk-extractor command line interface."""

import json

import pytest

from skiresort_extractor.cli import create_parser, error_code, main
from skiresort_extractor.errors import BoundaryGateError, ExtractorError, InvalidInputError, UpstreamError

from tests.conftest import osm_node


def run(capsys, *argv: str) -> tuple[int, dict | None, dict | None]:
    """Run main() and decode stdout/stderr JSON (None when empty)."""
    code = main([str(arg) for arg in argv])
    captured = capsys.readouterr()
    stdout = json.loads(captured.out) if captured.out.strip() else None
    stderr_lines = [line for line in captured.err.splitlines() if line.startswith("{")]
    stderr = json.loads(stderr_lines[-1]) if stderr_lines else None
    return code, stdout, stderr


def ingest(capsys, osm_input_file, tmp_path) -> tuple:
    output = tmp_path / "normalized-source.json"
    return run(capsys, "ingest-osm", "--input", osm_input_file, "--output", output), output


BUILD_FLAGS = ("--timezone", "Europe/Rome", "--pmtiles-path", "tiles/c.pmtiles", "--style-path", "styles/c.json")


# =============================================================================
# PARSER
# =============================================================================


class TestParser:
    def test_subcommands(self) -> None:
        parser = create_parser()
        args = parser.parse_args(["resort-update", "--workspace", "w.json", "--layer", "runs", "--dry-run"])
        assert args.command == "resort-update"
        assert args.dry_run

    def test_terrain_bands_is_not_updatable(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args(["resort-update", "--workspace", "w.json", "--layer", "terrainBands"])

    @pytest.mark.parametrize(
        "error, code",
        [
            (BoundaryGateError("gate", issues=[]), "BOUNDARY_GATE_FAILED"),
            (UpstreamError("down"), "UPSTREAM_FAILED"),
            (InvalidInputError("bad"), "INVALID_INPUT"),
            (ExtractorError("other"), "EXTRACTOR_ERROR"),
            (RuntimeError("bug"), "INTERNAL_ERROR"),
        ],
    )
    def test_error_codes(self, error, code) -> None:
        assert error_code(error) == code


# =============================================================================
# OFFLINE COMMANDS
# =============================================================================


class TestPackCommands:
    """ingest-osm, build-pack and validate-pack."""

    def test_ingest_osm(self, capsys, osm_input_file, tmp_path) -> None:
        (code, out, _), output = ingest(capsys, osm_input_file, tmp_path)
        assert code == 0
        assert out["resortId"] == "cervinia-ski-area"
        assert (out["runCount"], out["liftCount"], out["boundary"]) == (1, 1, True)
        assert output.exists()

    def test_build_and_validate(self, capsys, osm_input_file, tmp_path) -> None:
        _, normalized = ingest(capsys, osm_input_file, tmp_path)
        pack = tmp_path / "pack.json"
        code, out, _ = run(
            capsys, "build-pack", "--input", normalized, "--output", pack, "--report", tmp_path / "report.json", *BUILD_FLAGS
        )
        assert code == 0
        assert out["report"]["boundaryGate"]["status"] == "passed"

        code, out, _ = run(capsys, "validate-pack", "--input", pack)
        assert code == 0
        assert out == {
            "ok": True,
            "errors": [],
            "summary": "cervinia-ski-area (Cervinia Ski Area, Europe/Rome): 1 runs, 1 lifts, 2 towers",
        }

    def test_invalid_pack_exits_nonzero(self, capsys, tmp_path) -> None:
        path = tmp_path / "pack.json"
        path.write_text(json.dumps({"schemaVersion": "1.0.0"}), encoding="utf-8")
        code, out, _ = run(capsys, "validate-pack", "--input", path)
        assert code == 1
        assert out["ok"] is False
        assert out["errors"]

    def test_gate_failure_error_document(self, capsys, sample_osm_document, tmp_path) -> None:
        sample_osm_document["elements"].extend(
            [
                osm_node(40, 7.65, 45.93),
                osm_node(41, 7.80, 45.93),
                {"type": "way", "id": 210, "nodes": [40, 41], "tags": {"piste:type": "downhill"}},
            ]
        )
        osm_path = tmp_path / "outside.osm.json"
        osm_path.write_text(json.dumps(sample_osm_document), encoding="utf-8")
        _, normalized = ingest(capsys, osm_path, tmp_path)

        code, out, err = run(
            capsys,
            "build-pack",
            "--input",
            normalized,
            "--output",
            tmp_path / "pack.json",
            "--report",
            tmp_path / "report.json",
            *BUILD_FLAGS,
        )
        assert code == 1
        assert out is None
        assert err["ok"] is False
        assert err["error"]["code"] == "BOUNDARY_GATE_FAILED"
        assert err["error"]["command"] == "build-pack"

    def test_missing_input(self, capsys, tmp_path) -> None:
        code, _, err = run(capsys, "validate-pack", "--input", tmp_path / "missing.json")
        assert code == 1
        assert err["error"]["code"] == "INVALID_INPUT"


class TestWorkspaceCommands:
    """Workspace commands that need no network."""

    def test_sync_status(self, capsys, make_workspace) -> None:
        code, out, _ = run(capsys, "resort-sync-status", "--workspace", make_workspace(with_boundary=True))
        assert code == 0
        assert out["overall"] == "incomplete"
        assert out["layers"]["boundary"]["ready"] is True

    def test_boundary_detect_without_selection(self, capsys, make_workspace) -> None:
        path = make_workspace(with_selection=False)
        code, _, err = run(capsys, "resort-boundary-detect", "--workspace", path)
        assert code == 1
        assert err["error"]["code"] == "INVALID_INPUT"
        assert "resort-select" in err["error"]["message"]

    def test_sync_without_boundary(self, capsys, make_workspace) -> None:
        code, _, err = run(capsys, "resort-sync-lifts", "--workspace", make_workspace())
        assert code == 1
        assert err["error"]["code"] == "LAYER_PRECONDITION"

    def test_update_dry_run(self, capsys, make_workspace) -> None:
        path = make_workspace(with_boundary=True)
        before = path.read_bytes()
        code, out, _ = run(capsys, "resort-update", "--workspace", path, "--layer", "lifts", "--dry-run")
        assert code == 0
        assert out["dryRun"] is True
        assert out["changed"] is False
        assert out["operation"] == {"kind": "dry-run"}
        assert path.read_bytes() == before


class TestExtractCommands:
    def test_extract_resort(self, capsys, osm_input_file, tmp_path) -> None:
        config = {
            "schemaVersion": "0.4.0",
            "resort": {"id": "cervinia", "timezone": "Europe/Rome"},
            "source": {"osmInputPath": "input/cervinia.osm.json"},
            "output": {"directory": "out"},
            "basemap": {"pmtilesPath": "tiles/c.pmtiles", "stylePath": "styles/c.json"},
        }
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps(config), encoding="utf-8")
        log_file = tmp_path / "audit.jsonl"

        code, out, _ = run(capsys, "extract-resort", "--config", config_path, "--log-file", log_file)
        assert code == 0
        assert out["resortId"] == "cervinia"
        assert out["boundaryGate"] == "passed"
        assert len(log_file.read_text(encoding="utf-8").splitlines()) == 2

    def test_extract_fleet_invalid_config(self, capsys, tmp_path) -> None:
        config_path = tmp_path / "fleet.json"
        config_path.write_text(json.dumps({"schemaVersion": "1.0.0", "resorts": []}), encoding="utf-8")
        code, _, err = run(capsys, "extract-fleet", "--config", config_path)
        assert code == 1
        assert err["error"]["code"] == "INVALID_INPUT"
