"""Startup, locking, supervisor and error-handling configuration models."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from streamwarden.config._models._common import ErrorMode


class StartupConfig(BaseModel):
    """Orchestrator start sequencing section.

    Attributes:
        usb_stabilization_delay: Stabilization window for a cold start.
        restart_stabilization_delay: Stabilization window for a restart scenario.
        stabilization_poll_interval: Seconds between device count readings.
        stream_startup_delay: Seconds to wait after launching supervisors
            before validating streams.
        validation_attempts: Readiness polls per stream.
        validation_delay: Seconds between readiness polls.
        parallel: Launch all supervisors at once instead of one by one.
        supervisor_join_timeout: Bounded wait for each launched supervisor
            to record its claim.
        device_test: Run a short capture test before launching a supervisor.
        device_test_timeout: Seconds the capture test may take.
        restart_marker_validity: Age below which a restart marker counts.
        cleanup_wait_timeout: Bounded wait for the cleanup marker to clear
            during restart.
        restart_pause: Pause between stop and start during restart.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    usb_stabilization_delay: float = Field(default=5.0, ge=0)
    restart_stabilization_delay: float = Field(default=15.0, ge=0)
    stabilization_poll_interval: float = Field(default=2.0, gt=0)
    stream_startup_delay: float = Field(default=10.0, ge=0)
    validation_attempts: int = Field(default=3, ge=1)
    validation_delay: float = Field(default=5.0, ge=0)
    parallel: bool = False
    supervisor_join_timeout: float = Field(default=10.0, gt=0)
    device_test: bool = False
    device_test_timeout: float = Field(default=3.0, gt=0)
    restart_marker_validity: float = Field(default=60.0, gt=0)
    cleanup_wait_timeout: float = Field(default=30.0, ge=0)
    restart_pause: float = Field(default=2.0, ge=0)


class LocksConfig(BaseModel):
    """Lock manager section.

    Attributes:
        acquisition_timeout: Wait for the system lock during start.
        stop_timeout: Wait for the system lock during stop (stop proceeds anyway).
        stale_threshold: Age after which a lock without a holder record is stale.
        claim_timeout: Wait for each candidate stream identity.
        poll_interval: Sleep between acquisition attempts.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    acquisition_timeout: float = Field(default=30.0, gt=0)
    stop_timeout: float = Field(default=5.0, gt=0)
    stale_threshold: float = Field(default=300.0, gt=0)
    claim_timeout: float = Field(default=1.0, gt=0)
    poll_interval: float = Field(default=0.1, gt=0)


class SupervisorConfig(BaseModel):
    """Stream supervisor restart policy section.

    Attributes:
        max_restarts: Restarts after which the supervisor stops for good.
        short_run_threshold: Runs shorter than this count as short.
        short_run_limit: Consecutive short runs that trigger the cooldown.
        cooldown_delay: Sleep after too many short runs.
        restart_delay: Sleep between ordinary restarts.
        spawn_check_delay: Delay before verifying a freshly spawned encoder.
        termination_timeout: Grace period between SIGTERM and SIGKILL.
        max_claim_attempts: Suffixed identities tried per device.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    max_restarts: int = Field(default=50, ge=0)
    short_run_threshold: float = Field(default=60.0, gt=0)
    short_run_limit: int = Field(default=3, ge=1)
    cooldown_delay: float = Field(default=300.0, ge=0)
    restart_delay: float = Field(default=10.0, ge=0)
    spawn_check_delay: float = Field(default=0.1, ge=0)
    termination_timeout: float = Field(default=10.0, gt=0)
    max_claim_attempts: int = Field(default=20, ge=1)


class ErrorsConfig(BaseModel):
    """Error handling section.

    Attributes:
        mode: ``fail-safe`` continues past per-device failures and config
            problems, ``fail-fast`` aborts on the first one.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    mode: ErrorMode = ErrorMode.FAIL_SAFE

    @property
    def fail_fast(self) -> bool:
        """Return whether the first failure aborts the operation."""
        return self.mode == ErrorMode.FAIL_FAST
