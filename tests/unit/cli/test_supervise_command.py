"""Unit tests for the hidden supervise command."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from pytest_mock import MockerFixture

from streamwarden.cli import CLIContext
from streamwarden.supervisor import StopReason, StreamSupervisor
from tests.conftest import SandboxPaths, add_usb_device


class TestSupervise:
    def test_unknown_device_exits_6(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_cli("supervise", "--device", "usb-Missing-00") == 6

        assert "Device 'usb-Missing-00' not found" in capsys.readouterr().err

    def test_runs_supervisor_for_device(
        self,
        cli_context: CLIContext,
        sandbox: SandboxPaths,
        run_cli: Callable[..., int],
        mocker: MockerFixture,
    ) -> None:
        add_usb_device(sandbox, 1, "usb-Blue_Yeti-00")
        run = mocker.patch.object(
            StreamSupervisor,
            "run",
            new=AsyncMock(return_value=StopReason.SIGNAL),
        )

        assert run_cli("supervise", "--device", "usb-Blue_Yeti-00") == 0

        run.assert_awaited_once_with()

    def test_hidden_from_help(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _ = run_cli("--help")

        output = capsys.readouterr().out
        assert "monitor" in output
        assert "supervise" not in output
