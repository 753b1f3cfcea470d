"""
Tests for the throttle controller.
"""

from __future__ import annotations

import random

import pytest

from divscan.net.throttle import BASE_HEADERS, USER_AGENTS, ThrottleController
from divscan.types import Blocked, RateLimited, RequestStats, Success, TerminalFailure, TransientFailure

from conftest import FakeClock


class TestDelays:
    """Tests for pre-request and retry delays."""

    def test_pre_delay_within_jitter_bounds(self) -> None:
        throttle = ThrottleController(min_delay=0.5, max_delay=1.5, rng=random.Random(1))

        for _ in range(50):
            assert 0.5 <= throttle.pre_delay() <= 1.5

    def test_pre_delay_compounds_with_pending_cooldown(self, fake_clock: FakeClock) -> None:
        throttle = ThrottleController(
            min_delay=1.0, max_delay=1.0, rate_limit_cooldown=30.0, clock=fake_clock
        )
        throttle.on_outcome(RateLimited())

        assert throttle.pre_delay() == pytest.approx(31.0)

        fake_clock.now += 10
        assert throttle.pre_delay() == pytest.approx(21.0)

    def test_retry_delay_is_remaining_cooldown(
        self, throttle: ThrottleController, fake_clock: FakeClock
    ) -> None:
        assert throttle.retry_delay() == 0.0

        throttle.on_outcome(Blocked())
        assert throttle.retry_delay() == pytest.approx(45.0)

        fake_clock.now += 50
        assert throttle.retry_delay() == 0.0

    def test_invalid_bounds_rejected(self) -> None:
        with pytest.raises(ValueError):
            ThrottleController(min_delay=2.0, max_delay=1.0)


class TestCooldowns:
    """Tests for cooldown arming and the circuit breaker."""

    def test_repeated_rate_limits_arm_one_cooldown(self, throttle: ThrottleController) -> None:
        throttle.on_outcome(RateLimited())
        throttle.on_outcome(RateLimited())
        throttle.on_outcome(RateLimited())

        assert throttle.stats.cooldowns_scheduled == 1
        assert throttle.stats.rate_limited == 3

    def test_success_ends_the_episode(self, throttle: ThrottleController) -> None:
        throttle.on_outcome(RateLimited())
        throttle.on_outcome(Success(payload={}))
        throttle.on_outcome(RateLimited())

        assert throttle.stats.cooldowns_scheduled == 2

    def test_block_and_rate_limit_are_separate(self, throttle: ThrottleController) -> None:
        throttle.on_outcome(RateLimited())
        throttle.on_outcome(Blocked())
        throttle.on_outcome(Blocked())

        assert throttle.stats.cooldowns_scheduled == 2

    def test_transient_failures_schedule_nothing(self, throttle: ThrottleController) -> None:
        throttle.on_outcome(TransientFailure(reason="timeout"))
        throttle.on_outcome(TerminalFailure(reason="http_error", status_code=404))

        assert throttle.stats.cooldowns_scheduled == 0
        assert throttle.consecutive_failures == 1
        assert throttle.retry_delay() == 0.0

    def test_terminal_failures_never_trip_breaker(self, fake_clock: FakeClock) -> None:
        throttle = ThrottleController(failure_ceiling=3, clock=fake_clock)
        throttle.on_outcome(TransientFailure(reason="timeout"))
        for _ in range(5):
            throttle.on_outcome(TerminalFailure(reason="http_error", status_code=404))

        assert throttle.consecutive_failures == 1
        assert throttle.stats.circuit_breaks == 0
        assert throttle.stats.terminal == 5
        assert throttle.retry_delay() == 0.0

    def test_success_resets_consecutive_failures(self, throttle: ThrottleController) -> None:
        throttle.on_outcome(TransientFailure(reason="timeout"))
        throttle.on_outcome(TransientFailure(reason="timeout"))
        throttle.on_outcome(Success(payload={}))

        assert throttle.consecutive_failures == 0

    def test_circuit_breaker_trips_at_ceiling(self, fake_clock: FakeClock) -> None:
        throttle = ThrottleController(
            min_delay=0.0,
            max_delay=0.0,
            failure_ceiling=3,
            circuit_breaker_cooldown=120.0,
            clock=fake_clock,
        )
        for _ in range(3):
            throttle.on_outcome(TransientFailure(reason="server_error", status_code=503))

        assert throttle.stats.circuit_breaks == 1
        assert throttle.consecutive_failures == 0
        assert throttle.retry_delay() == pytest.approx(120.0)

    def test_longer_cooldown_wins(self, fake_clock: FakeClock) -> None:
        throttle = ThrottleController(
            rate_limit_cooldown=30.0, failure_ceiling=1, circuit_breaker_cooldown=120.0, clock=fake_clock
        )
        throttle.on_outcome(RateLimited())

        assert throttle.retry_delay() == pytest.approx(120.0)
        assert throttle.stats.cooldowns_scheduled == 2

    def test_stats_can_be_continued(self) -> None:
        stats = RequestStats(total=10, succeeded=9, failed=1)
        throttle = ThrottleController(stats=stats)
        throttle.on_outcome(Success(payload={}))

        assert throttle.stats is stats
        assert stats.total == 11


class TestIdentityRotation:
    """Tests for header rotation."""

    def test_rotation_is_round_robin(self) -> None:
        throttle = ThrottleController()
        agents = [throttle.next_identity()["User-Agent"] for _ in range(len(USER_AGENTS) * 2)]

        assert agents == list(USER_AGENTS) * 2

    def test_identity_carries_base_headers(self) -> None:
        identity = ThrottleController().next_identity()

        for key, value in BASE_HEADERS.items():
            assert identity[key] == value

    def test_identity_is_a_copy(self) -> None:
        throttle = ThrottleController(identities=[{"User-Agent": "only"}])
        first = throttle.next_identity()
        first["User-Agent"] = "mutated"

        assert throttle.next_identity()["User-Agent"] == "only"

    def test_empty_pool_rejected(self) -> None:
        with pytest.raises(ValueError):
            ThrottleController(identities=[])
