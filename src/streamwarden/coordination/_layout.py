"""Key layout of the run-time coordination store."""

PIDS_DIR = "pids"
ENCODER_PIDS_DIR = f"{PIDS_DIR}/encoders"
SUPERVISOR_PIDS_DIR = f"{PIDS_DIR}/supervisors"
CLAIMS_DIR = "claims"

RELAY_PID_KEY = f"{PIDS_DIR}/relay.pid"

PID_SUFFIX = ".pid"
START_SUFFIX = ".start"
LOCK_SUFFIX = ".lock"
HOLDER_SUFFIX = ".holder"
DEVICE_SUFFIX = ".device"


def encoder_pid_key(identity: str) -> str:
    return f"{ENCODER_PIDS_DIR}/{identity}{PID_SUFFIX}"


def supervisor_pid_key(identity: str) -> str:
    return f"{SUPERVISOR_PIDS_DIR}/{identity}{PID_SUFFIX}"


def claim_lock_name(identity: str) -> str:
    return f"{CLAIMS_DIR}/{identity}"


def claim_device_key(identity: str) -> str:
    return f"{CLAIMS_DIR}/{identity}{DEVICE_SUFFIX}"


def lock_key(name: str) -> str:
    return f"{name}{LOCK_SUFFIX}"


def holder_key(name: str) -> str:
    return f"{name}{HOLDER_SUFFIX}"


def start_key(pid_key: str) -> str:
    return f"{pid_key}{START_SUFFIX}"


def identity_from_key(key: str) -> str:
    """Return the stream identity encoded in a PID or claim key.

    >>> identity_from_key("pids/encoders/lab_mic.pid")
    'lab_mic'
    """
    name = key.rsplit("/", 1)[-1]
    for suffix in (PID_SUFFIX, LOCK_SUFFIX):
        if name.endswith(suffix):
            return name.removesuffix(suffix)
    return name
