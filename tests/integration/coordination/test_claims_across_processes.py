import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

CLAIM_SCRIPT = textwrap.dedent(
    """
    import sys
    import time
    from pathlib import Path

    from streamwarden.coordination import (
        ClaimAllocator,
        FileStateStore,
        IdentityTracker,
        LockManager,
    )

    root, base, device, hold = sys.argv[1:5]
    store = FileStateStore(Path(root))
    identities = IdentityTracker(store)
    locks = LockManager(store, identities, poll_interval=0.01)
    claims = ClaimAllocator(store, locks, identities, lock_timeout=0.3)
    result = claims.claim(base, device)
    print(result.outcome.value, result.identity, flush=True)
    time.sleep(float(hold))
    claims.release(result)
    """
)


def _spawn(root: Path, base: str, device: str, hold: float) -> subprocess.Popen[str]:
    return subprocess.Popen(
        [sys.executable, "-c", CLAIM_SCRIPT, str(root), base, device, str(hold)],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


def _collect(processes: list[subprocess.Popen[str]]) -> list[tuple[str, str]]:
    results: list[tuple[str, str]] = []
    for process in processes:
        stdout, stderr = process.communicate(timeout=60)
        assert process.returncode == 0, stderr
        outcome, identity = stdout.split()
        results.append((outcome, identity))
    return results


class TestMutualExclusion:
    @pytest.mark.parametrize("claimants", [2, 4])
    def test_distinct_devices_get_distinct_identities(
        self, tmp_path: Path, claimants: int
    ) -> None:
        processes = [
            _spawn(tmp_path, "usb_audio", f"dev-{i}", hold=3.0)
            for i in range(claimants)
        ]

        results = _collect(processes)

        identities = [identity for _, identity in results]
        assert all(outcome == "claimed" for outcome, _ in results)
        assert len(set(identities)) == claimants
        assert "usb_audio" in identities

    def test_same_device_is_claimed_once(self, tmp_path: Path) -> None:
        processes = [_spawn(tmp_path, "lab-mic", "dev-a", hold=3.0) for _ in range(3)]

        results = _collect(processes)

        outcomes = sorted(outcome for outcome, _ in results)
        assert outcomes == ["already_running", "already_running", "claimed"]
        assert {identity for _, identity in results} == {"lab-mic"}

    def test_claim_of_dead_holder_is_reusable(self, tmp_path: Path) -> None:
        first = _collect([_spawn(tmp_path, "mic", "dev-a", hold=0.0)])
        second = _collect([_spawn(tmp_path, "mic", "dev-b", hold=0.0)])

        assert first == [("claimed", "mic")]
        assert second == [("claimed", "mic")]
