"""
Adaptive pacing for a remote API with undisclosed rate limits.

The ThrottleController owns three things the request executor consults:

- pre_delay(): jittered steady-state pause before each logical request,
  extended by any cooldown still pending
- on_outcome(): failure bookkeeping that arms cooldowns (429, 403) and a
  circuit breaker tripped by consecutive retryable failures
- next_identity(): round-robin request headers so every variant gets
  exercised evenly over a long run

Cooldowns are a shared time gate: while one is pending, every caller
waits it out, so a concurrent group backs off together.
"""

from __future__ import annotations

import itertools
import random
import time
from typing import Callable, Sequence

from divscan.config import Settings
from divscan.logging import get_logger
from divscan.types import Outcome, OutcomeKind, RequestStats

logger = get_logger(__name__)

# Headers the Nasdaq API expects from a browser session.
BASE_HEADERS: dict[str, str] = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://www.nasdaq.com",
    "Referer": "https://www.nasdaq.com/",
}

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
)


def default_identities() -> list[dict[str, str]]:
    """One header set per user agent."""
    return [{**BASE_HEADERS, "User-Agent": ua} for ua in USER_AGENTS]


class ThrottleController:
    """Decides inter-request delays and cooldowns from observed outcomes."""

    def __init__(
        self,
        min_delay: float = 0.5,
        max_delay: float = 1.5,
        rate_limit_cooldown: float = 30.0,
        block_cooldown: float = 45.0,
        failure_ceiling: int = 10,
        circuit_breaker_cooldown: float = 120.0,
        identities: Sequence[dict[str, str]] | None = None,
        stats: RequestStats | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            min_delay: Lower bound of the jittered pre-request delay.
            max_delay: Upper bound of the jittered pre-request delay.
            rate_limit_cooldown: Seconds to pause after a rate-limit signal.
            block_cooldown: Seconds to pause after a block signal.
            failure_ceiling: Consecutive retryable failures that trip the breaker.
            circuit_breaker_cooldown: Seconds to pause when the breaker trips.
            identities: Header sets to rotate through.
            stats: Counters to continue from (e.g. restored from a checkpoint).
            clock: Monotonic time source.
            rng: Random source for jitter.
        """
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rate_limit_cooldown = rate_limit_cooldown
        self.block_cooldown = block_cooldown
        self.failure_ceiling = failure_ceiling
        self.circuit_breaker_cooldown = circuit_breaker_cooldown

        pool = list(identities) if identities is not None else default_identities()
        if not pool:
            raise ValueError("identities must not be empty")
        self._identities = itertools.cycle(pool)

        self.stats = stats if stats is not None else RequestStats()
        self._clock = clock
        self._rng = rng or random.Random()

        self.consecutive_failures = 0
        self._resume_at = 0.0
        # Each cooldown kind fires once per degradation episode; a success ends it.
        self._rate_limit_armed = False
        self._block_armed = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: object) -> ThrottleController:
        return cls(
            min_delay=settings.MIN_DELAY_SECONDS,
            max_delay=settings.MAX_DELAY_SECONDS,
            rate_limit_cooldown=settings.RATE_LIMIT_COOLDOWN_SECONDS,
            block_cooldown=settings.BLOCK_COOLDOWN_SECONDS,
            failure_ceiling=settings.FAILURE_CEILING,
            circuit_breaker_cooldown=settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
            **kwargs,  # type: ignore[arg-type]
        )

    # ==================== Delays ====================

    def cooldown_remaining(self) -> float:
        """Seconds until the pending cooldown (if any) clears."""
        return max(0.0, self._resume_at - self._clock())

    def pre_delay(self) -> float:
        """Delay before a new logical request: jitter plus pending cooldown."""
        jitter = self._rng.uniform(self.min_delay, self.max_delay)
        return jitter + self.cooldown_remaining()

    def retry_delay(self) -> float:
        """Minimum wait before retrying a failed attempt."""
        return self.cooldown_remaining()

    def _schedule_cooldown(self, seconds: float, reason: str) -> None:
        self._resume_at = max(self._resume_at, self._clock() + seconds)
        self.stats.cooldowns_scheduled += 1
        logger.warning("Cooldown scheduled", reason=reason, seconds=seconds)

    # ==================== Feedback ====================

    def on_outcome(self, outcome: Outcome) -> None:
        """Record one attempt's classification and adapt."""
        self.stats.record(outcome)

        if outcome.ok:
            self.consecutive_failures = 0
            self._rate_limit_armed = False
            self._block_armed = False
            return
        # A 404 or other terminal answer is the API working normally.
        if not outcome.retryable:
            return

        self.consecutive_failures += 1

        if outcome.kind is OutcomeKind.RATE_LIMITED and not self._rate_limit_armed:
            self._rate_limit_armed = True
            self._schedule_cooldown(self.rate_limit_cooldown, "rate_limited")
        elif outcome.kind is OutcomeKind.BLOCKED and not self._block_armed:
            self._block_armed = True
            self._schedule_cooldown(self.block_cooldown, "blocked")

        if self.consecutive_failures >= self.failure_ceiling:
            self.stats.circuit_breaks += 1
            self._schedule_cooldown(self.circuit_breaker_cooldown, "circuit_breaker")
            self.consecutive_failures = 0

    # ==================== Identity ====================

    def next_identity(self) -> dict[str, str]:
        """Next header set in the rotation (a copy, safe to mutate)."""
        return dict(next(self._identities))
