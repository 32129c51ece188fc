from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from streamwarden.utils import dump_json, load_json, load_json_file


class _Role(StrEnum):
    ENCODER = "encoder"


@dataclass(frozen=True, slots=True)
class _Record:
    pid: int
    role: _Role
    log: Path


class TestDumpJson:
    def test_dataclass_enum_and_path(self) -> None:
        record = _Record(pid=4101, role=_Role.ENCODER, log=Path("/srv/log/a.log"))

        assert dump_json(record) == (
            '{"pid":4101,"role":"encoder","log":"/srv/log/a.log"}'
        )

    def test_indent(self) -> None:
        assert dump_json({"a": 1}, indent=True) == '{\n  "a": 1\n}'


class TestLoadJson:
    def test_parses(self) -> None:
        assert load_json(b'{"level": 2}') == {"level": 2}

    def test_invalid_returns_none(self) -> None:
        assert load_json("{not json") is None

    def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        assert load_json_file(tmp_path / "absent.json") is None

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "snapshot.json"
        _ = path.write_text('[1, 2]')

        assert load_json_file(path) == [1, 2]
