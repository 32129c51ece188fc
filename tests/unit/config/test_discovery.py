# pyright: reportAny=false, reportUnknownArgumentType=false
from pathlib import Path

import pytest
from pyfakefs.fake_filesystem import FakeFilesystem
from pytest_mock import MockerFixture

from streamwarden.config import DEFAULT_CONFIG, ConfigSourceName
from streamwarden.config._discovery import (
    _file_exists,
    discover_sources,
    get_system_config_path,
    get_user_config_path,
)


USER_PATH = Path("/home/radio/.config/streamwarden/config.toml")


@pytest.fixture
def user_path(mocker: MockerFixture) -> Path:
    _ = mocker.patch(
        "streamwarden.config._discovery.get_user_config_path",
        return_value=USER_PATH,
    )
    return USER_PATH


class TestConfigPaths:
    def test_user_path_is_per_application(self) -> None:
        result = get_user_config_path()

        assert result.name == "config.toml"
        assert result.parent.name == "streamwarden"

    def test_system_path(self) -> None:
        assert get_system_config_path() == Path("/etc/streamwarden/config.toml")


class TestFileExists:
    def test_returns_true_for_existing_file(self, fs: FakeFilesystem) -> None:
        fs.create_file("/etc/streamwarden/config.toml")

        assert _file_exists(Path("/etc/streamwarden/config.toml")) is True

    def test_returns_false_for_missing_file(self, fs: FakeFilesystem) -> None:
        assert _file_exists(Path("/etc/streamwarden/missing.toml")) is False

    def test_returns_false_for_directory(self, fs: FakeFilesystem) -> None:
        fs.create_dir("/etc/streamwarden")

        assert _file_exists(Path("/etc/streamwarden")) is False


class TestDiscoverSources:
    def test_precedence_order(self, fs: FakeFilesystem, user_path: Path) -> None:
        sources = discover_sources(cli_overrides={"logging": {"level": "debug"}})

        assert [s.name for s in sources] == [
            ConfigSourceName.CLI,
            ConfigSourceName.ENV,
            ConfigSourceName.USER,
            ConfigSourceName.SYSTEM,
            ConfigSourceName.DEFAULT,
        ]

    def test_marks_existing_files(self, fs: FakeFilesystem, user_path: Path) -> None:
        fs.create_file(user_path)

        sources = {s.name: s for s in discover_sources(include_env=False)}

        assert sources[ConfigSourceName.USER].exists is True
        assert sources[ConfigSourceName.SYSTEM].exists is False
        assert ConfigSourceName.ENV not in sources

    def test_explicit_file_replaces_user_and_system(
        self, fs: FakeFilesystem, user_path: Path
    ) -> None:
        explicit = Path("/srv/radio/streamwarden.toml")

        sources = discover_sources(config_path=explicit, include_env=False)

        assert [s.name for s in sources] == [
            ConfigSourceName.FILE,
            ConfigSourceName.DEFAULT,
        ]
        assert sources[0].path == explicit
        assert sources[0].exists is False

    def test_empty_cli_overrides_do_not_exist(
        self, fs: FakeFilesystem, user_path: Path
    ) -> None:
        sources = discover_sources(include_env=False, cli_overrides={})

        assert sources[0].name == ConfigSourceName.CLI
        assert sources[0].exists is False

    def test_default_source_carries_defaults(
        self, fs: FakeFilesystem, user_path: Path
    ) -> None:
        default = discover_sources()[-1]

        assert default.values is DEFAULT_CONFIG
        assert default.exists is True
