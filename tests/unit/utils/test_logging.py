"""Unit tests for logging utilities."""

import json
import logging
from logging.handlers import RotatingFileHandler, WatchedFileHandler
from pathlib import Path

import pytest
from pyfakefs.fake_filesystem import FakeFilesystem

from streamwarden.utils import (
    create_cli_logger,
    create_recovery_logger,
    create_stream_logger,
    create_system_logger,
    get_recovery_log_file,
    get_stream_log_file,
    get_system_log_file,
    rotate_log_file,
    tail_file,
)
from streamwarden.utils._logging import _create_logger, _log_level_from_string
from tests.conftest import SandboxPaths, sandbox_config


def _entries(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text().splitlines()]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STREAMWARDEN_DEBUG", raising=False)
    monkeypatch.delenv("STREAMWARDEN_LOG_LEVEL", raising=False)


class TestCreateLogger:
    def test_creates_log_directory_if_missing(self, fs: FakeFilesystem) -> None:
        log_path = Path("/var/log/streamwarden/test.log")

        _ = _create_logger(str(log_path))

        assert log_path.parent.exists()

    def test_default_format_is_json(self, fs: FakeFilesystem) -> None:
        logger = _create_logger("/logs/test.log")

        logger.info("relay_started", pid=4000)

        (entry,) = _entries(Path("/logs/test.log"))
        assert entry["event"] == "relay_started"
        assert entry["pid"] == 4000
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_text_format(self, fs: FakeFilesystem) -> None:
        logger = _create_logger("/logs/test.log", log_format="text")

        logger.info("relay_started", pid=4000)

        content = Path("/logs/test.log").read_text()
        assert "relay_started" in content
        assert "pid=4000" in content

    def test_level_filters(self, fs: FakeFilesystem) -> None:
        logger = _create_logger("/logs/test.log", log_level=logging.ERROR)

        logger.warning("ignored")
        logger.error("kept")

        assert [e["event"] for e in _entries(Path("/logs/test.log"))] == ["kept"]


class TestRotation:
    def test_rotating_handler_configured(self, tmp_path: Path) -> None:
        log_path = tmp_path / "system.log"

        logger = _create_logger(str(log_path), max_bytes=1000, backup_count=3)
        logger.info("first")

        stdlib_logger = logging.getLogger(f"streamwarden.file.{log_path}")
        (handler,) = stdlib_logger.handlers
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1000
        assert handler.backupCount == 3
        assert _entries(log_path)[0]["event"] == "first"

    def test_recreating_replaces_handler(self, tmp_path: Path) -> None:
        log_path = tmp_path / "system.log"

        _ = _create_logger(str(log_path), max_bytes=1000, backup_count=3)
        _ = _create_logger(str(log_path), max_bytes=2000, backup_count=1)

        stdlib_logger = logging.getLogger(f"streamwarden.file.{log_path}")
        (handler,) = stdlib_logger.handlers
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 2000

    def test_rolls_over(self, tmp_path: Path) -> None:
        log_path = tmp_path / "system.log"
        logger = _create_logger(str(log_path), max_bytes=200, backup_count=1)

        for index in range(10):
            logger.info("filler", index=index, padding="x" * 40)

        assert (tmp_path / "system.log.1").exists()
        assert log_path.stat().st_size <= 200


class TestSharedLogs:
    def test_system_log_is_never_rotated_in_process(
        self, sandbox: SandboxPaths
    ) -> None:
        config = sandbox_config(sandbox, logging={"max_bytes": 200, "backup_count": 1})
        path = get_system_log_file(config)

        orchestrator = create_system_logger(config, component="orchestrator")
        supervisor = create_system_logger(config, component="supervisor")
        for index in range(10):
            orchestrator.info("filler", index=index, padding="x" * 40)
            supervisor.info("filler", index=index, padding="x" * 40)

        handlers = logging.getLogger(f"streamwarden.file.{path}").handlers
        assert [type(handler) for handler in handlers] == [WatchedFileHandler]
        assert not path.with_name(f"{path.name}.1").exists()
        assert len(_entries(path)) == 20

    def test_reopens_after_external_rotation(self, sandbox: SandboxPaths) -> None:
        config = sandbox_config(sandbox)
        path = get_system_log_file(config)
        logger = create_system_logger(config, component="watchdog")
        logger.info("before_rotation")

        _ = path.rename(path.with_name(f"{path.name}.1"))
        logger.info("after_rotation")

        assert [e["event"] for e in _entries(path)] == ["after_rotation"]
        rotated = path.with_name(f"{path.name}.1")
        assert [e["event"] for e in _entries(rotated)] == ["before_rotation"]

    def test_recovery_log_is_shared(self, sandbox: SandboxPaths) -> None:
        config = sandbox_config(sandbox)

        _ = create_recovery_logger(config)

        path = get_recovery_log_file(config)
        (handler,) = logging.getLogger(f"streamwarden.file.{path}").handlers
        assert isinstance(handler, WatchedFileHandler)


class TestLogLevelFromString:
    def test_known_level(self) -> None:
        assert _log_level_from_string("warning") == logging.WARNING

    def test_unknown_level_defaults_to_info(self) -> None:
        assert _log_level_from_string("verbose") == logging.INFO

    def test_env_wins_when_respected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STREAMWARDEN_DEBUG", "1")

        assert _log_level_from_string("error", respect_env=True) == logging.DEBUG
        assert _log_level_from_string("error") == logging.ERROR


class TestFactories:
    def test_system_logger_binds_component_and_pid(
        self, sandbox: SandboxPaths
    ) -> None:
        config = sandbox_config(sandbox)

        create_system_logger(config, component="orchestrator").info("start_begin")

        (entry,) = _entries(get_system_log_file(config))
        assert entry["component"] == "orchestrator"
        assert isinstance(entry["pid"], int)

    def test_recovery_logger(self, sandbox: SandboxPaths) -> None:
        config = sandbox_config(sandbox, logging={"level": "error"})

        create_recovery_logger(config).info("recovery_attempt", level=1)

        (entry,) = _entries(get_recovery_log_file(config))
        assert entry["component"] == "recovery"
        assert entry["level"] == "info"

    def test_stream_logger_uses_own_file(self, sandbox: SandboxPaths) -> None:
        config = sandbox_config(sandbox)

        create_stream_logger(config, "usb_blue_yeti_00").info("encoder_started")

        path = get_stream_log_file(config, "usb_blue_yeti_00")
        (entry,) = _entries(path)
        assert entry["identity"] == "usb_blue_yeti_00"
        assert not get_system_log_file(config).exists()

    def test_cli_logger_binds_command(self, tmp_path: Path) -> None:
        log_file = tmp_path / "cli.log"

        create_cli_logger(log_file=str(log_file), command="start").info("x")

        (entry,) = _entries(log_file)
        assert entry["component"] == "cli"
        assert entry["command"] == "start"


class TestRotateLogFile:
    def test_rotates_when_over_limit(self, tmp_path: Path) -> None:
        path = tmp_path / "relay.log"
        _ = path.write_text("x" * 100)

        assert rotate_log_file(path, 50) is True

        assert not path.exists()
        assert (tmp_path / "relay.log.1").read_text() == "x" * 100

    def test_keeps_small_file(self, tmp_path: Path) -> None:
        path = tmp_path / "relay.log"
        _ = path.write_text("x" * 10)

        assert rotate_log_file(path, 50) is False
        assert path.exists()

    def test_missing_file(self, tmp_path: Path) -> None:
        assert rotate_log_file(tmp_path / "absent.log", 50) is False


class TestTailFile:
    def test_last_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "system.log"
        _ = path.write_text("".join(f"line {n}\n" for n in range(30)))

        assert tail_file(path, 3) == "line 27\nline 28\nline 29"

    def test_unreadable_returns_empty(self, tmp_path: Path) -> None:
        assert tail_file(tmp_path / "absent.log") == ""
