import pytest

from streamwarden.config import Config
from streamwarden.supervisor import BackoffAction, RestartPolicy


@pytest.fixture
def policy() -> RestartPolicy:
    return RestartPolicy(
        max_restarts=50,
        short_run_threshold=60.0,
        short_run_limit=3,
        cooldown_delay=300.0,
        restart_delay=10.0,
    )


class TestRestartPolicy:
    def test_first_short_run_sleeps_flat(self, policy: RestartPolicy) -> None:
        decision = policy.decide(0, 0, 5.0)

        assert decision.action is BackoffAction.FLAT
        assert decision.delay == 10.0
        assert decision.restart_count == 1
        assert decision.short_runs == 1

    def test_third_short_run_cools_down(self, policy: RestartPolicy) -> None:
        decision = policy.decide(2, 2, 5.0)

        assert decision.action is BackoffAction.COOLDOWN
        assert decision.delay == 300.0
        assert decision.short_runs == 0

    def test_failed_start_counts_as_short(self, policy: RestartPolicy) -> None:
        assert policy.decide(0, 2, None).action is BackoffAction.COOLDOWN

    def test_long_run_resets_short_runs(self, policy: RestartPolicy) -> None:
        decision = policy.decide(7, 2, 60.0)

        assert decision.action is BackoffAction.FLAT
        assert decision.delay == 10.0
        assert decision.short_runs == 0

    def test_cap_stops(self, policy: RestartPolicy) -> None:
        assert not policy.decide(49, 0, 5.0).stop
        decision = policy.decide(50, 0, 5.0)

        assert decision.stop
        assert decision.restart_count == 51

    def test_from_config(self) -> None:
        config = Config.from_dict(
            {"supervisor": {"max_restarts": 7, "cooldown_delay": 30.0}}
        )

        policy = RestartPolicy.from_config(config.supervisor)

        assert policy.max_restarts == 7
        assert policy.cooldown_delay == 30.0
        assert policy.restart_delay == 10.0
