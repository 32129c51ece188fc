"""Unit tests for the debug command."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from streamwarden.cli import CLIContext
from streamwarden.cli._commands._debug import coordination_files
from streamwarden.utils import get_system_log_file


class TestDebug:
    def test_snapshot_keys(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_cli("debug") == 0

        data = json.loads(capsys.readouterr().out)
        assert set(data) == {
            "run_dir",
            "state_dir",
            "coordination_files",
            "system_lock_holder",
            "restart_marker_age",
            "cleanup_in_progress",
            "relay",
            "records",
            "claims",
            "encoder_processes",
            "recovery",
            "log_tail",
        }
        assert data["run_dir"] == str(cli_context.config.paths.run_dir)
        assert data["relay"]["pid"] is None
        assert data["records"] == []
        assert data["recovery"]["level"] is None

    def test_includes_claims_and_log_tail(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        runtime = cli_context.runtime("test")
        claim = runtime.claims.claim("usb_blue_yeti_00", "usb-Blue_Yeti-00")
        log_file = get_system_log_file(cli_context.config)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _ = log_file.write_text("first\nsecond\nthird\n")
        try:
            assert run_cli("debug", "--log-lines", "50") == 0
        finally:
            runtime.claims.release(claim)

        data = json.loads(capsys.readouterr().out)
        (status,) = data["claims"]
        assert status["identity"] == "usb_blue_yeti_00"
        assert status["device_ref"] == "usb-Blue_Yeti-00"
        assert "third" in data["log_tail"]
        assert any(path.startswith("claims/") for path in data["coordination_files"])


class TestCoordinationFiles:
    def test_missing_root(self, tmp_path: Path) -> None:
        assert coordination_files(tmp_path / "absent") == []
