"""Tests for RetryPolicy and ReadinessProber."""

import pytest

from audiomuse_aio.application.bootstrap.policy import RetryPolicy
from audiomuse_aio.application.bootstrap.prober import ReadinessProber, dependency_levels
from audiomuse_aio.domain.entities import ReadinessCheckSpec, ServiceDescriptor
from audiomuse_aio.domain.exceptions import ConfigurationError, ProbeTimeoutError
from audiomuse_aio.infrastructure.observability.readiness import ReadinessCheck


class ScriptedCheck(ReadinessCheck):
    """Fails ``failures`` times, then passes."""

    def __init__(self, name: str, failures: int) -> None:
        self.name = name
        self.failures = failures
        self.calls = 0

    async def check(self) -> bool:
        self.calls += 1
        return self.calls > self.failures


def _descriptor(name: str, *deps: str) -> ServiceDescriptor:
    return ServiceDescriptor(
        name=name, check=ReadinessCheckSpec.tcp(name, 1), depends_on=tuple(deps)
    )


class TestRetryPolicy:
    def test_unbounded_probe_requires_opt_in(self) -> None:
        with pytest.raises(ConfigurationError):
            RetryPolicy.for_probes(2.0, 0)

    def test_unbounded_probe_with_opt_in(self) -> None:
        policy = RetryPolicy.for_probes(2.0, 0, allow_unbounded=True)
        assert policy.is_unbounded
        assert policy.allows(10_000)

    def test_bounded_policy_limits_attempts(self) -> None:
        policy = RetryPolicy(interval=1.0, max_attempts=3)
        assert policy.allows(3)
        assert not policy.allows(4)

    def test_negative_interval_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            RetryPolicy(interval=-1)


class TestReadinessProber:
    @pytest.mark.asyncio
    async def test_k_failures_then_success_sleeps_k_times(self, sleep_recorder) -> None:
        check = ScriptedCheck("redis", failures=3)
        prober = ReadinessProber(lambda spec: check)
        policy = RetryPolicy(interval=2.0, max_attempts=10, sleep=sleep_recorder)

        outcome = await prober.wait_ready(check, policy)

        assert outcome.ready
        assert outcome.attempts == 4
        assert sleep_recorder.calls == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_attempts_report_not_ready(self, sleep_recorder) -> None:
        check = ScriptedCheck("redis", failures=100)
        prober = ReadinessProber(lambda spec: check)
        policy = RetryPolicy(interval=1.0, max_attempts=5, sleep=sleep_recorder)

        outcome = await prober.wait_ready(check, policy)

        assert not outcome.ready
        assert outcome.attempts == 5
        assert check.calls == 5
        # no sleep after the final attempt
        assert len(sleep_recorder.calls) == 4

    @pytest.mark.asyncio
    async def test_wait_service_raises_probe_timeout(self, sleep_recorder) -> None:
        prober = ReadinessProber(lambda spec: ScriptedCheck("postgres", failures=100))
        policy = RetryPolicy(interval=0, max_attempts=2, sleep=sleep_recorder)

        with pytest.raises(ProbeTimeoutError) as exc_info:
            await prober.wait_service(_descriptor("postgres"), policy)

        assert exc_info.value.dependency == "postgres"
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_wait_all_probes_dependencies_first(self, sleep_recorder) -> None:
        order: list[str] = []

        class Recording(ReadinessCheck):
            def __init__(self, name: str) -> None:
                self.name = name

            async def check(self) -> bool:
                order.append(self.name)
                return True

        prober = ReadinessProber(lambda spec: Recording(spec.host))
        services = [
            _descriptor("music-server", "postgres"),
            _descriptor("postgres"),
            _descriptor("redis"),
        ]
        policy = RetryPolicy(max_attempts=1, sleep=sleep_recorder)

        outcomes = await prober.wait_all(services, policy, concurrent=True)

        assert order.index("postgres") < order.index("music-server")
        assert {o.name for o in outcomes} == {"postgres", "redis", "music-server"}


class TestDependencyLevels:
    def test_levels_keep_declared_order(self) -> None:
        levels = dependency_levels(
            [_descriptor("postgres"), _descriptor("redis"), _descriptor("app", "postgres")]
        )
        assert [[d.name for d in level] for level in levels] == [
            ["postgres", "redis"],
            ["app"],
        ]

    def test_cycle_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            dependency_levels([_descriptor("a", "b"), _descriptor("b", "a")])

    def test_unknown_dependency_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            dependency_levels([_descriptor("a", "missing")])
