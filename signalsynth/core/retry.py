"""
Retry policy for provider calls.

Every adapter call goes through RetryPolicy.run(). Failures are sorted into
three kinds:
- RATE_LIMITED: wait the provider's Retry-After hint, else a fixed cooldown
- TRANSIENT: exponential backoff, bounded by max_delay
- FATAL: re-raised immediately, never retried

Built on tenacity's AsyncRetrying so waits are real asyncio sleeps.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from signalsynth.core.errors import ProviderError, RateLimitError
from signalsynth.core.logging import get_logger

logger = get_logger("retry")

T = TypeVar("T")


class FailureKind(str, Enum):
    """How a failure should be treated by the retry loop."""
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


@dataclass(frozen=True)
class RetryConfig:
    """Retry tuning. All delays are in seconds."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    rate_limit_cooldown: float = 5.0
    max_rate_limit_wait: float = 60.0


def classify_failure(error: BaseException) -> FailureKind:
    """Map an exception onto a FailureKind."""
    if isinstance(error, RateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(error, ProviderError):
        return FailureKind.TRANSIENT if error.recoverable else FailureKind.FATAL
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return FailureKind.TRANSIENT
    return FailureKind.FATAL


class RetryPolicy:
    """
    Backoff/retry wrapper shared by all adapter calls.

    Stateless between calls, so a single instance can serve many
    concurrent per-symbol fetches.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def compute_delay(self, error: BaseException, attempt_number: int) -> float:
        """
        Delay before the next attempt.

        Args:
            error: The failure that ended the previous attempt
            attempt_number: 1-based number of the attempt that just failed
        """
        if isinstance(error, RateLimitError):
            if error.retry_after is not None:
                wait = float(error.retry_after)
                if wait > self.config.max_rate_limit_wait:
                    logger.warning(
                        f"Retry-After {wait:.0f}s from {error.provider} exceeds "
                        f"{self.config.max_rate_limit_wait:.0f}s, clamping"
                    )
                    return self.config.max_rate_limit_wait
                return wait
            return self.config.rate_limit_cooldown

        delay = self.config.initial_delay * (self.config.multiplier ** (attempt_number - 1))
        return min(delay, self.config.max_delay)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        return self.compute_delay(error, retry_state.attempt_number)

    async def run(self, tag: str, op: Callable[[], Awaitable[T]]) -> T:
        """
        Run `op` with retries.

        Args:
            tag: Label for log lines (e.g. "finnhub.quotes")
            op: Zero-arg coroutine function performing one attempt

        Returns:
            The first successful result

        Raises:
            The fatal error immediately, or the last error once attempts run out
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning(
                f"[{tag}] attempt {retry_state.attempt_number} failed "
                f"({classify_failure(error).value}): {error}; "
                f"retrying in {retry_state.next_action.sleep:.1f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            retry=retry_if_exception(
                lambda e: classify_failure(e) is not FailureKind.FATAL
            ),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=before_sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                result = await op()
        return result
