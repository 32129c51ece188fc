"""Unit tests for the config, validate and mapping commands."""

import json
from collections.abc import Callable

import pytest
from pytest_mock import MockerFixture

from streamwarden.cli import CLIContext
from streamwarden.cli._commands._config import validate_setup
from tests.conftest import SandboxPaths, add_usb_device, sandbox_config

_MODULE = "streamwarden.cli._commands._config"


@pytest.fixture
def all_installed(mocker: MockerFixture) -> None:
    _ = mocker.patch(f"{_MODULE}.command_exists", return_value=True)
    _ = mocker.patch(f"{_MODULE}.port_owners", return_value={})


class TestShowConfig:
    def test_json(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_cli("config", "--json") == 0

        data = json.loads(capsys.readouterr().out)
        assert data["config"]["relay"]["rtsp_port"] == (
            cli_context.config.relay.rtsp_port
        )
        assert data["config"]["paths"]["run_dir"] == str(
            cli_context.config.paths.run_dir
        )
        assert isinstance(data["sources"], list)

    def test_toml(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_cli("config") == 0

        out = capsys.readouterr().out
        assert "[relay]" in out
        assert "[watchdog]" in out

    def test_mentions_config_error(
        self,
        sandbox: SandboxPaths,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        CLIContext.set_current(
            CLIContext(
                config=sandbox_config(sandbox),
                config_error="relay.rtsp_port: must be at most 65535",
            )
        )
        try:
            assert run_cli("config") == 0
        finally:
            CLIContext.reset()

        assert "Using defaults:" in capsys.readouterr().out


@pytest.mark.usefixtures("all_installed")
class TestValidate:
    def test_valid_setup(
        self,
        cli_context: CLIContext,
        sandbox: SandboxPaths,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        add_usb_device(sandbox, 1, "usb-Blue_Yeti-00")

        assert run_cli("validate") == 0

        out = capsys.readouterr().out
        assert "1 capture devices detected" in out
        assert "Configuration valid" in out

    def test_no_devices_exits_6(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_cli("validate") == 6

        assert "Validation failed" in capsys.readouterr().err

    def test_missing_encoder_exits_3(
        self,
        cli_context: CLIContext,
        sandbox: SandboxPaths,
        run_cli: Callable[..., int],
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        add_usb_device(sandbox, 1, "usb-Blue_Yeti-00")
        encoder = cli_context.config.encoder.binary
        _ = mocker.patch(
            f"{_MODULE}.command_exists", side_effect=lambda name: name != encoder
        )

        assert run_cli("validate") == 3

        assert f"required program '{encoder}'" in capsys.readouterr().out

    def test_config_error_wins(
        self, sandbox: SandboxPaths, run_cli: Callable[..., int]
    ) -> None:
        CLIContext.set_current(
            CLIContext(
                config=sandbox_config(sandbox),
                config_error="invalid TOML",
                proc_root=sandbox.proc_root,
                dev_root=sandbox.dev_root,
            )
        )
        try:
            assert run_cli("validate") == 4
        finally:
            CLIContext.reset()


class TestValidateSetup:
    def test_port_conflicts_and_optional_tools_are_warnings(
        self,
        cli_context: CLIContext,
        sandbox: SandboxPaths,
        mocker: MockerFixture,
    ) -> None:
        add_usb_device(sandbox, 1, "usb-Blue_Yeti-00")
        relay = cli_context.config.relay
        _ = mocker.patch(
            f"{_MODULE}.command_exists",
            side_effect=lambda name: name != "arecord",
        )
        _ = mocker.patch(
            f"{_MODULE}.port_owners",
            return_value={relay.rtsp_port: 812, relay.api_port: None},
        )

        report = validate_setup(cli_context)

        assert report.missing == []
        assert report.devices == 1
        assert f"Port {relay.rtsp_port} is in use by PID 812" in report.warnings
        assert f"Port {relay.api_port} is in use by another process" in (
            report.warnings
        )
        assert any("'arecord' not found" in w for w in report.warnings)
        assert report.exit_code == 0


class TestMapping:
    def test_table_shows_alias_identity(
        self,
        sandbox: SandboxPaths,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        add_usb_device(sandbox, 1, "usb-Blue_Yeti-00")
        add_usb_device(sandbox, 2, "usb-Lab_Mic-00", usb_id="046d:0a44")
        config = sandbox_config(
            sandbox, devices={"aliases": {"usb-Lab_Mic-00": "lab-mic"}}
        )
        CLIContext.set_current(
            CLIContext(
                config=config,
                proc_root=sandbox.proc_root,
                dev_root=sandbox.dev_root,
            )
        )
        try:
            assert run_cli("mapping") == 0
        finally:
            CLIContext.reset()

        out = capsys.readouterr().out
        assert "usb_blue_yeti_00" in out
        assert "lab-mic" in out
        assert "usb-Lab_Mic-00" in out

    def test_no_devices_exits_6(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_cli("mapping") == 6

        assert "No USB capture devices detected" in capsys.readouterr().err
