# pyright: reportAny=false, reportUnknownArgumentType=false
"""Unit tests for config validation."""

import pytest

from streamwarden.config import ValidationIssue, validate_config
from streamwarden.config._validation import parse_config, raise_if_validation_errors
from streamwarden.exceptions import ConfigValidationError


class TestValidateConfig:
    def test_valid_config_returns_empty_list(self) -> None:
        config = {
            "relay": {"rtsp_port": 8555, "log_level": "warning"},
            "encoder": {"codec": "aac", "bitrate": "96k"},
            "devices": {"overrides": [{"pattern": "*Yeti*", "channels": 1}]},
        }

        assert validate_config(config) == []

    def test_minimal_config_returns_empty_list(self) -> None:
        assert validate_config({}) == []

    def test_invalid_codec_returns_issue(self) -> None:
        (issue,) = validate_config({"encoder": {"codec": "flac"}}, source="user")

        assert issue.key == "encoder.codec"
        assert issue.actual == "flac"
        assert issue.source == "user"
        assert issue.severity == "error"
        assert issue.expected is not None
        assert "opus" in issue.expected

    def test_nested_override_error_has_full_path(self) -> None:
        config = {"devices": {"overrides": [{"pattern": "*", "channels": 0}]}}

        (issue,) = validate_config(config)

        assert issue.key == "devices.overrides.0.channels"
        assert issue.actual == 0

    def test_multiple_errors_returns_multiple_issues(self) -> None:
        config = {
            "relay": {"rtsp_port": 0},
            "watchdog": {"check_interval": -1},
        }

        keys = {issue.key for issue in validate_config(config)}

        assert keys == {"relay.rtsp_port", "watchdog.check_interval"}

    def test_unknown_section_ignored_in_lenient_mode(self) -> None:
        assert validate_config({"project": {"name": "radio"}}) == []

    def test_unknown_section_errors_in_strict_mode(self) -> None:
        (issue,) = validate_config({"project": {"name": "radio"}}, strict=True)

        assert issue.key == "project"

    def test_pattern_error_reports_pattern(self) -> None:
        (issue,) = validate_config({"encoder": {"bitrate": "fast"}})

        assert issue.expected is not None
        assert issue.expected.startswith("pattern: ")


class TestParseConfig:
    def test_returns_typed_sections(self) -> None:
        schema = parse_config({"startup": {"parallel": True}})

        assert schema.startup.parallel is True
        assert schema.relay.rtsp_port == 8554

    def test_raises_first_error(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            _ = parse_config({"locks": {"acquisition_timeout": "soon"}})

        assert exc_info.value.key == "locks.acquisition_timeout"
        assert exc_info.value.value == "soon"


class TestRaiseIfValidationErrors:
    def test_warnings_do_not_raise(self) -> None:
        warning = ValidationIssue(
            key="relay.host",
            message="Unusual host",
            expected=None,
            actual="0.0.0.0",
            source="file",
            severity="warning",
        )

        raise_if_validation_errors([warning])

    def test_source_argument_wins(self) -> None:
        error = ValidationIssue(
            key="relay.rtsp_port",
            message="Input should be less than 65536",
            expected=None,
            actual=70000,
            source=None,
            severity="error",
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            raise_if_validation_errors([error], source="env")

        assert exc_info.value.source == "env"
        assert exc_info.value.expected == "Input should be less than 65536"
