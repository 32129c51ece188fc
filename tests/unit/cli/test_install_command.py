"""Unit tests for the install command."""

from collections.abc import Callable
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from streamwarden.cli import CLIContext
from streamwarden.cli._commands._install import (
    LOGROTATE_NAME,
    SERVICE_NAME,
    WATCHDOG_SERVICE_NAME,
    base_command,
    render_logrotate,
    render_units,
)
from streamwarden.utils import get_log_dir


class TestRendering:
    def test_units_use_command(self) -> None:
        units = render_units("/usr/bin/streamwarden --config /etc/sw.toml")

        service = units[SERVICE_NAME]
        assert "ExecStart=/usr/bin/streamwarden --config /etc/sw.toml start" in service
        assert "ExecStop=/usr/bin/streamwarden --config /etc/sw.toml stop" in service
        assert "Type=oneshot" in service
        watchdog = units[WATCHDOG_SERVICE_NAME]
        assert "ExecStart=/usr/bin/streamwarden --config /etc/sw.toml monitor" in (
            watchdog
        )
        assert f"Requires={SERVICE_NAME}" in watchdog

    def test_logrotate_covers_stream_logs(self) -> None:
        policy = render_logrotate(Path("/var/log/streamwarden"))

        assert policy.startswith(
            "/var/log/streamwarden/*.log /var/log/streamwarden/streams/*.log {"
        )
        assert "copytruncate" in policy

    def test_logrotate_limits_shared_logs(self) -> None:
        policy = render_logrotate(
            Path("/var/log/streamwarden"), max_bytes=4096, backup_count=2
        )

        assert "    maxsize 4096\n" in policy
        assert "    rotate 2\n" in policy

    def test_base_command_falls_back_to_module(self, mocker: MockerFixture) -> None:
        _ = mocker.patch("shutil.which", return_value=None)
        _ = mocker.patch("sys.executable", "/opt/python/bin/python3")

        assert base_command(None) == "/opt/python/bin/python3 -m streamwarden.cli"

    def test_base_command_with_config(
        self, mocker: MockerFixture, tmp_path: Path
    ) -> None:
        _ = mocker.patch("shutil.which", return_value="/usr/local/bin/streamwarden")

        config_file = tmp_path / "streamwarden.toml"

        command = base_command(config_file)

        assert command == (
            f"/usr/local/bin/streamwarden --config {config_file.resolve()}"
        )


class TestInstall:
    def test_writes_files(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        unit_dir = tmp_path / "systemd"
        logrotate_dir = tmp_path / "logrotate.d"

        code = run_cli(
            "install",
            "--unit-dir",
            str(unit_dir),
            "--logrotate-dir",
            str(logrotate_dir),
        )

        assert code == 0
        assert (unit_dir / SERVICE_NAME).is_file()
        assert (unit_dir / WATCHDOG_SERVICE_NAME).is_file()
        policy = (logrotate_dir / LOGROTATE_NAME).read_text()
        assert str(get_log_dir(cli_context.config.paths)) in policy
        assert "systemctl enable --now" in capsys.readouterr().out

    def test_unwritable_directory_exits_2(
        self,
        cli_context: CLIContext,
        run_cli: Callable[..., int],
        tmp_path: Path,
        mocker: MockerFixture,
    ) -> None:
        _ = mocker.patch.object(
            Path, "write_text", side_effect=PermissionError("read-only")
        )

        code = run_cli(
            "install",
            "--unit-dir",
            str(tmp_path / "systemd"),
            "--logrotate-dir",
            str(tmp_path / "logrotate.d"),
        )

        assert code == 2
