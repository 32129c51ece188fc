"""Cross-process coordination through the filesystem.

The state store, lock manager, identity tracker and claim allocator are the
only means by which independent streamwarden processes share state.
"""

from ._claims import (
    ClaimAllocator,
    ClaimOutcome,
    ClaimResult,
    ClaimStatus,
    candidate_identities,
)
from ._identity import IdentityTracker, ProcessRecord, ProcessRole
from ._layout import (
    CLAIMS_DIR,
    DEVICE_SUFFIX,
    ENCODER_PIDS_DIR,
    LOCK_SUFFIX,
    PID_SUFFIX,
    RELAY_PID_KEY,
    START_SUFFIX,
    SUPERVISOR_PIDS_DIR,
    claim_device_key,
    claim_lock_name,
    encoder_pid_key,
    holder_key,
    identity_from_key,
    lock_key,
    start_key,
    supervisor_pid_key,
)
from ._locks import LockHandle, LockManager
from ._markers import Markers
from ._store import FileStateStore, StateKey, StateStore, read_pid_max

__all__ = [
    "CLAIMS_DIR",
    "DEVICE_SUFFIX",
    "ENCODER_PIDS_DIR",
    "LOCK_SUFFIX",
    "PID_SUFFIX",
    "RELAY_PID_KEY",
    "START_SUFFIX",
    "SUPERVISOR_PIDS_DIR",
    "ClaimAllocator",
    "ClaimOutcome",
    "ClaimResult",
    "ClaimStatus",
    "FileStateStore",
    "IdentityTracker",
    "LockHandle",
    "LockManager",
    "Markers",
    "ProcessRecord",
    "ProcessRole",
    "StateKey",
    "StateStore",
    "candidate_identities",
    "claim_device_key",
    "claim_lock_name",
    "encoder_pid_key",
    "holder_key",
    "identity_from_key",
    "lock_key",
    "read_pid_max",
    "start_key",
    "supervisor_pid_key",
]
