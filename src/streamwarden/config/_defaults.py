"""Default configuration values.

This module defines the built-in default configuration values that are used
when no other configuration sources provide values.

Note: DEFAULT_CONFIG is intentionally a plain dict for type compatibility
with functions like deep_merge. The merge functions create copies, so mutation
of the original is not a concern in practice.

Empty path strings mean "derive from the platform" (see ``streamwarden.utils``).
"""

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
    "logging": {
        "level": "info",
        "format": "json",
        "file": "",
        "max_bytes": 100 * 1024 * 1024,
        "backup_count": 3,
        "stream_log_max_bytes": 10 * 1024 * 1024,
        "relay_log_max_bytes": 50 * 1024 * 1024,
    },
    "paths": {
        "run_dir": "",
        "state_dir": "",
        "log_dir": "",
        "fallback_dir": "",
        "restart_marker": "restart.marker",
        "cleanup_marker": "cleanup.marker",
        "system_lock": "orchestrator",
        "config_lock": "relay-config",
    },
    "relay": {
        "binary": "mediamtx",
        "host": "localhost",
        "rtsp_port": 8554,
        "api_port": 9997,
        "metrics_port": 9998,
        "config_file": "",
        "api_timeout": 60.0,
        "stop_timeout": 30.0,
        "log_level": "info",
    },
    "encoder": {
        "binary": "ffmpeg",
        "sample_rate": 48000,
        "channels": 2,
        "codec": "opus",
        "bitrate": "128k",
        "thread_queue_size": 8192,
        "analyze_duration": 5000000,
        "probe_size": 5000000,
    },
    "devices": {
        "overrides": [],
        "aliases": {},
    },
    "startup": {
        "usb_stabilization_delay": 5.0,
        "restart_stabilization_delay": 15.0,
        "stabilization_poll_interval": 2.0,
        "stream_startup_delay": 10.0,
        "validation_attempts": 3,
        "validation_delay": 5.0,
        "parallel": False,
        "supervisor_join_timeout": 10.0,
        "device_test": False,
        "device_test_timeout": 3.0,
        "restart_marker_validity": 60.0,
        "cleanup_wait_timeout": 30.0,
        "restart_pause": 2.0,
    },
    "locks": {
        "acquisition_timeout": 30.0,
        "stop_timeout": 5.0,
        "stale_threshold": 300.0,
        "claim_timeout": 1.0,
        "poll_interval": 0.1,
    },
    "supervisor": {
        "max_restarts": 50,
        "short_run_threshold": 60.0,
        "short_run_limit": 3,
        "cooldown_delay": 300.0,
        "restart_delay": 10.0,
        "spawn_check_delay": 0.1,
        "termination_timeout": 10.0,
        "max_claim_attempts": 20,
    },
    "watchdog": {
        "check_interval": 60.0,
        "cpu_threshold": 80,
        "cpu_warning": 70,
        "cpu_sustained_periods": 3,
        "memory_threshold": 15,
        "memory_warning": 12,
        "memory_sustained_periods": 2,
        "combined_cpu_threshold": 200,
        "combined_cpu_warning": 150,
        "emergency_cpu": 95,
        "emergency_memory": 20,
        "fd_threshold": 1000,
        "fd_warning": 500,
        "history_size": 10,
        "trend_steep_rate": 5,
        "trend_notice_rate": 2,
        "trend_cooldown": 600.0,
        "warning_interval": 300.0,
        "max_uptime": 86400.0,
        "max_restart_attempts": 5,
        "restart_cooldown": 300.0,
        "reboot_threshold": 3,
        "enable_auto_reboot": False,
        "reboot_cooldown": 1800.0,
        "reboot_command": ["systemctl", "reboot"],
        "health_timeout": 30.0,
        "aggressive_health_timeout": 60.0,
        "grace_period": 5.0,
        "settle_delay": 5.0,
        "emergency_pause": 15.0,
        "recovery_pause": 10.0,
    },
    "errors": {
        "mode": "fail-safe",
    },
}
