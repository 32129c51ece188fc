"""Resource watchdog configuration model."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class WatchdogConfig(BaseModel):
    """Resource watchdog thresholds and recovery policy.

    Percentages are integer percent of one CPU core (combined CPU may exceed
    100) and of total memory.

    Attributes:
        check_interval: Seconds between samples.
        cpu_threshold: Relay CPU that counts toward a sustained trigger.
        cpu_warning: Relay CPU that is logged as a warning.
        cpu_sustained_periods: Consecutive samples at threshold to trigger.
        memory_threshold: Memory that counts toward a sustained trigger.
        memory_warning: Memory that is logged as a warning.
        memory_sustained_periods: Consecutive samples at threshold to trigger.
        combined_cpu_threshold: Relay plus encoder CPU emergency threshold.
        combined_cpu_warning: Relay plus encoder CPU warning threshold.
        emergency_cpu: Relay CPU that triggers immediate recovery.
        emergency_memory: Memory that triggers immediate recovery.
        fd_threshold: Descriptor count that triggers immediate recovery.
        fd_warning: Descriptor count that is logged as a warning.
        history_size: Samples kept per metric for trend detection.
        trend_steep_rate: Per-sample increase that triggers preventive recovery.
        trend_notice_rate: Per-sample increase that is logged.
        trend_cooldown: Minimum seconds between trend-triggered recoveries.
        warning_interval: Minimum seconds between repeated warning logs.
        max_uptime: Relay uptime that triggers a scheduled restart.
        max_restart_attempts: Attempts within the cooldown window before L4.
        restart_cooldown: Window that groups attempts into one episode.
        reboot_threshold: Consecutive failed recoveries before L4.
        enable_auto_reboot: Allow L4 to reboot the host.
        reboot_cooldown: Minimum seconds between reboots.
        reboot_command: Command issued for a reboot.
        health_timeout: Health verification budget for L2.
        aggressive_health_timeout: Health verification budget for L3.
        grace_period: Pause between graceful and forced kills in L3.
        settle_delay: Pause after a successful recovery before resampling.
        emergency_pause: Pause after an emergency recovery.
        recovery_pause: Pause after any other recovery.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    check_interval: float = Field(default=60.0, gt=0)
    cpu_threshold: int = Field(default=80, gt=0)
    cpu_warning: int = Field(default=70, gt=0)
    cpu_sustained_periods: int = Field(default=3, ge=1)
    memory_threshold: int = Field(default=15, gt=0)
    memory_warning: int = Field(default=12, gt=0)
    memory_sustained_periods: int = Field(default=2, ge=1)
    combined_cpu_threshold: int = Field(default=200, gt=0)
    combined_cpu_warning: int = Field(default=150, gt=0)
    emergency_cpu: int = Field(default=95, gt=0)
    emergency_memory: int = Field(default=20, gt=0)
    fd_threshold: int = Field(default=1000, gt=0)
    fd_warning: int = Field(default=500, gt=0)
    history_size: int = Field(default=10, ge=3)
    trend_steep_rate: int = Field(default=5, ge=0)
    trend_notice_rate: int = Field(default=2, ge=0)
    trend_cooldown: float = Field(default=600.0, ge=0)
    warning_interval: float = Field(default=300.0, ge=0)
    max_uptime: float = Field(default=86400.0, gt=0)
    max_restart_attempts: int = Field(default=5, ge=1)
    restart_cooldown: float = Field(default=300.0, ge=0)
    reboot_threshold: int = Field(default=3, ge=1)
    enable_auto_reboot: bool = False
    reboot_cooldown: float = Field(default=1800.0, ge=0)
    reboot_command: tuple[str, ...] = ("systemctl", "reboot")
    health_timeout: float = Field(default=30.0, gt=0)
    aggressive_health_timeout: float = Field(default=60.0, gt=0)
    grace_period: float = Field(default=5.0, ge=0)
    settle_delay: float = Field(default=5.0, ge=0)
    emergency_pause: float = Field(default=15.0, ge=0)
    recovery_pause: float = Field(default=10.0, ge=0)
