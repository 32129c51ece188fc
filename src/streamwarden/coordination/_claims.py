"""Exclusive stream identity claims.

A claim is the lock ``claims/<identity>`` held for the whole lifetime of the
supervisor that owns the identity. Acquiring it is the single point at which
two supervisors are prevented from believing they own the same stream.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, final

from streamwarden.exceptions import ClaimExhaustedError, LockTimeoutError

from ._identity import ProcessRole
from ._layout import (
    CLAIMS_DIR,
    LOCK_SUFFIX,
    claim_device_key,
    claim_lock_name,
    encoder_pid_key,
    identity_from_key,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from ._identity import IdentityTracker
    from ._locks import LockHandle, LockManager
    from ._store import FileStateStore

DEFAULT_MAX_ATTEMPTS: int = 20
DEFAULT_CLAIM_TIMEOUT: float = 1.0


class ClaimOutcome(StrEnum):
    """Result of a claim attempt."""

    CLAIMED = "claimed"
    ALREADY_RUNNING = "already_running"


@dataclass(frozen=True, slots=True)
class ClaimResult:
    """Outcome of :meth:`ClaimAllocator.claim`.

    Attributes:
        outcome: Whether a new claim was made.
        identity: The awarded identity, or the identity already serving the
            device.
        handle: Lock handle of a new claim; None for ``ALREADY_RUNNING``.
    """

    outcome: ClaimOutcome
    identity: str
    handle: LockHandle | None = None

    @property
    def claimed(self) -> bool:
        return self.outcome is ClaimOutcome.CLAIMED


@dataclass(frozen=True, slots=True)
class ClaimStatus:
    """Observed state of one claim, for status reporting."""

    identity: str
    holder_pid: int | None
    device_ref: str | None

    @property
    def held(self) -> bool:
        return self.holder_pid is not None


def candidate_identities(base: str, max_attempts: int) -> list[str]:
    """Return the identities tried for ``base``, in order.

    >>> candidate_identities("usb_audio", 3)
    ['usb_audio', 'usb_audio_1', 'usb_audio_2']
    """
    return [base if i == 0 else f"{base}_{i}" for i in range(max(max_attempts, 1))]


@final
class ClaimAllocator:
    """Awards each stream identity to exactly one supervisor."""

    __slots__ = (
        "_identities",
        "_lock_timeout",
        "_locks",
        "_logger",
        "_max_attempts",
        "_store",
    )

    def __init__(
        self,
        store: FileStateStore,
        locks: LockManager,
        identities: IdentityTracker,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lock_timeout: float = DEFAULT_CLAIM_TIMEOUT,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._store = store
        self._locks = locks
        self._identities = identities
        self._max_attempts = max_attempts
        self._lock_timeout = lock_timeout
        self._logger = logger

    def claim(self, base: str, device_ref: str) -> ClaimResult:
        """Claim the first free identity derived from ``base``.

        Args:
            base: Base stream identity for the device.
            device_ref: Stable reference to the physical device, used to
                recognize an identity that already serves it.

        Returns:
            ``CLAIMED`` with the lock handle, or ``ALREADY_RUNNING`` when a
            live owner already streams this device.

        Raises:
            ClaimExhaustedError: If every candidate belongs to another device.
        """
        candidates = candidate_identities(base, self._max_attempts)
        for candidate in candidates:
            lock_name = claim_lock_name(candidate)
            try:
                handle = self._locks.acquire(lock_name, self._lock_timeout)
            except LockTimeoutError:
                if self._serves_device(candidate, device_ref):
                    self._log("claim_already_running", identity=candidate)
                    return ClaimResult(ClaimOutcome.ALREADY_RUNNING, candidate)
                self._log("claim_busy", identity=candidate)
                continue

            result = self._settle(candidate, device_ref, handle)
            if result is not None:
                return result

        raise ClaimExhaustedError(
            f"No free stream identity for '{base}' after {len(candidates)} attempts",
            base=base,
            attempts=len(candidates),
        )

    def _settle(
        self, candidate: str, device_ref: str, handle: LockHandle
    ) -> ClaimResult | None:
        key = encoder_pid_key(candidate)
        record = self._identities.load(
            key, role=ProcessRole.ENCODER, identity=candidate
        )
        if self._identities.is_alive_record(record):
            recorded_device = self._store.read(claim_device_key(candidate))
            self._locks.release(handle)
            if recorded_device in (None, "", device_ref):
                self._log("claim_already_running", identity=candidate)
                return ClaimResult(ClaimOutcome.ALREADY_RUNNING, candidate)
            # Live unsupervised encoder for another device
            return None

        if record is not None:
            self._log("claim_stale_record_removed", identity=candidate, pid=record.pid)
            self._identities.forget(key)
        self._store.write(claim_device_key(candidate), device_ref)
        self._log("claim_acquired", identity=candidate, device=device_ref)
        return ClaimResult(ClaimOutcome.CLAIMED, candidate, handle)

    def _serves_device(self, candidate: str, device_ref: str) -> bool:
        if self._store.read(claim_device_key(candidate)) != device_ref:
            return False
        return self._locks.probe(claim_lock_name(candidate)) is not None

    def release(self, result: ClaimResult) -> None:
        """Release a claim made by this process."""
        if result.handle is None:
            return
        self._store.delete(claim_device_key(result.identity))
        self._locks.release(result.handle)

    def statuses(self) -> list[ClaimStatus]:
        """Return the observed state of every claim file."""
        statuses: list[ClaimStatus] = []
        for key in self._store.list_keys(CLAIMS_DIR, suffix=LOCK_SUFFIX):
            identity = identity_from_key(key)
            statuses.append(
                ClaimStatus(
                    identity=identity,
                    holder_pid=self._locks.probe(claim_lock_name(identity)),
                    device_ref=self._store.read(claim_device_key(identity)),
                )
            )
        return statuses

    def _log(self, event: str, **kwargs: object) -> None:
        if self._logger is not None:
            self._logger.info(event, **kwargs)
