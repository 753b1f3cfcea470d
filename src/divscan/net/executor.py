"""
Request executor: one logical request in, one classified outcome out.

Each execution is a small state machine driven by tenacity:

    attempt -> classify -> (retryable? backoff and attempt again : stop)

The executor never raises for anything the remote side does. Timeouts,
transport errors and unreadable bodies become TransientFailure; running out
of attempts becomes Exhausted. Only cancellation propagates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import httpx
import orjson
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

from divscan.config import Settings
from divscan.logging import get_logger
from divscan.net.throttle import ThrottleController
from divscan.types import (
    Blocked,
    Exhausted,
    Outcome,
    RateLimited,
    Success,
    TerminalFailure,
    TransientFailure,
)

logger = get_logger(__name__)

RATE_LIMIT_STATUSES = frozenset({429})
BLOCK_STATUSES = frozenset({403, 451})
TRANSIENT_STATUSES = frozenset({408, 500, 502, 503, 504})

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RequestSpec:
    """Descriptor of one logical GET request."""

    url: str
    params: Mapping[str, Any] = field(default_factory=dict)
    label: str = ""

    @property
    def name(self) -> str:
        return self.label or self.url


def classify_status(status_code: int) -> Outcome | None:
    """Classify a non-success HTTP status. Returns None for 2xx."""
    if 200 <= status_code < 300:
        return None
    if status_code in RATE_LIMIT_STATUSES:
        return RateLimited(status_code=status_code)
    if status_code in BLOCK_STATUSES:
        return Blocked(status_code=status_code)
    if status_code in TRANSIENT_STATUSES:
        return TransientFailure(reason="server_error", status_code=status_code)
    return TerminalFailure(reason="http_error", status_code=status_code)


def classify_response(response: httpx.Response) -> Outcome:
    """Turn an HTTP response into an outcome."""
    failure = classify_status(response.status_code)
    if failure is not None:
        return failure
    try:
        payload = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return TransientFailure(reason="invalid_json", status_code=response.status_code)
    return Success(payload=payload, status_code=response.status_code)


class RequestExecutor:
    """Issues requests with per-attempt timeout, classification and retry."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        throttle: ThrottleController,
        max_attempts: int = 4,
        timeout: float = 20.0,
        backoff_base: float = 1.0,
        backoff_factor: float = 2.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            client: HTTP client (base URL already configured).
            throttle: Controller consulted before and after every attempt.
            max_attempts: Retry budget per logical request.
            timeout: Seconds allowed for each attempt.
            backoff_base: Wait floor after the first failed attempt.
            backoff_factor: Multiplier applied to the floor per extra attempt.
            sleep: Async sleep used for all waits.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if backoff_factor <= 1.0:
            raise ValueError("backoff_factor must be > 1")
        self.client = client
        self.throttle = throttle
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        throttle: ThrottleController,
        sleep: SleepFn = asyncio.sleep,
    ) -> RequestExecutor:
        return cls(
            client=client,
            throttle=throttle,
            max_attempts=settings.MAX_RETRIES,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            backoff_base=settings.BACKOFF_BASE_SECONDS,
            backoff_factor=settings.BACKOFF_FACTOR,
            sleep=sleep,
        )

    def backoff_floor(self, attempt_number: int) -> float:
        """Minimum wait after the given (1-based) failed attempt."""
        return self.backoff_base * self.backoff_factor ** (attempt_number - 1)

    def _wait(self, retry_state: RetryCallState) -> float:
        return max(self.throttle.retry_delay(), self.backoff_floor(retry_state.attempt_number))

    async def execute(self, spec: RequestSpec) -> Outcome:
        """Run one logical request to a final outcome.

        Returns:
            Success, TerminalFailure, or Exhausted carrying the last
            retryable outcome.
        """
        await self._sleep(self.throttle.pre_delay())

        def _before_sleep(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome.result() if retry_state.outcome else None
            logger.debug(
                "Retrying request",
                request=spec.name,
                attempt=retry_state.attempt_number,
                outcome=outcome.describe() if outcome else None,
                wait=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
            )

        def _exhausted(retry_state: RetryCallState) -> Exhausted:
            last = retry_state.outcome.result()
            logger.warning(
                "Retry budget exhausted",
                request=spec.name,
                attempts=retry_state.attempt_number,
                outcome=last.describe(),
            )
            return Exhausted(last=last, attempts=retry_state.attempt_number)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_result(lambda outcome: outcome.retryable),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=_before_sleep,
            retry_error_callback=_exhausted,
        )
        return await retrying(self._attempt, spec)

    async def _attempt(self, spec: RequestSpec) -> Outcome:
        """One attempt. Never raises except on cancellation."""
        headers = self.throttle.next_identity()
        try:
            response = await asyncio.wait_for(
                self.client.get(spec.url, params=dict(spec.params), headers=headers),
                timeout=self.timeout,
            )
            outcome = classify_response(response)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            outcome = TransientFailure(reason="timeout")
        except httpx.TransportError as e:
            outcome = TransientFailure(reason=f"transport: {type(e).__name__}")
        except Exception as e:
            logger.warning("Unexpected request error", request=spec.name, error=str(e))
            outcome = TransientFailure(reason=f"unexpected: {type(e).__name__}")

        self.throttle.on_outcome(outcome)
        return outcome
