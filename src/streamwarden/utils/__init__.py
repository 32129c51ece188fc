"""Shared utilities: filesystem layout, logging, JSON and helper commands."""

from ._exec import (
    CommandConfig,
    CommandResult,
    command_exists,
    run_command,
    spawn_detached,
    truncate_output,
)
from ._json import dump_json, load_json, load_json_file
from ._logging import (
    create_cli_logger,
    create_recovery_logger,
    create_stream_logger,
    create_system_logger,
    rotate_log_file,
    tail_file,
)
from ._paths import (
    get_fallback_dir,
    get_log_dir,
    get_recovery_log_file,
    get_relay_config_file,
    get_relay_log_file,
    get_run_dir,
    get_state_dir,
    get_stream_log_file,
    get_system_log_file,
)
from ._procs import (
    ProcessMatch,
    ProcessUsage,
    combined_cpu_percent,
    find_processes,
    is_encoder_cmdline,
    process_usage,
    runs_program,
    terminate_processes,
)

__all__ = [
    "CommandConfig",
    "CommandResult",
    "ProcessMatch",
    "ProcessUsage",
    "combined_cpu_percent",
    "command_exists",
    "create_cli_logger",
    "create_recovery_logger",
    "create_stream_logger",
    "create_system_logger",
    "dump_json",
    "find_processes",
    "get_fallback_dir",
    "get_log_dir",
    "get_recovery_log_file",
    "get_relay_config_file",
    "get_relay_log_file",
    "get_run_dir",
    "get_state_dir",
    "get_stream_log_file",
    "get_system_log_file",
    "is_encoder_cmdline",
    "load_json",
    "load_json_file",
    "process_usage",
    "rotate_log_file",
    "run_command",
    "runs_program",
    "spawn_detached",
    "tail_file",
    "terminate_processes",
    "truncate_output",
]
