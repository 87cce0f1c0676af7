"""Retry with exponential backoff.

Only callers that own a retry policy use this; the SSH layer and the
playbook runner never retry by themselves. The provisioning saga retries
transient failures (Unreachable, TimedOut) while a fresh server boots.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from .exceptions import ErrorTypes, is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Retries after the first attempt (0 = no retries)
        initial_delay: Delay before the first retry, in seconds
        max_delay: Cap on the delay between retries
        backoff_factor: Multiplier applied per attempt
        jitter: Fraction of the delay randomly added or removed
    """

    max_attempts: int = 0
    initial_delay: float = 5.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: float = 0.1

    def get_delay(self, attempt: int) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: Attempt number that just failed (1-based)

        Returns:
            Delay in seconds before the next attempt
        """
        delay = self.initial_delay * (self.backoff_factor ** max(0, attempt - 1))
        delay = min(delay, self.max_delay)
        delay += delay * self.jitter * (random.random() * 2 - 1)
        return max(0.0, delay)


@dataclass
class RetryState:
    """Attempts made against one server and the error type of each failure."""

    host_name: str
    attempts: int = 0
    failures: list[str] = field(default_factory=list)
    succeeded: bool = False

    @property
    def last_error_type(self) -> str | None:
        return self.failures[-1] if self.failures else None

    def summary(self) -> str:
        if self.succeeded:
            return f"{self.host_name} succeeded after {self.attempts} attempt(s)"
        return f"{self.host_name} failed {len(self.failures)} attempt(s): {', '.join(self.failures)}"


async def retry_with_backoff(
    coro_factory: Callable[[], Awaitable[T]],
    config: RetryConfig,
    host_name: str = "",
    retry_on: Callable[[BaseException], bool] = is_transient,
    state: RetryState | None = None,
) -> tuple[T, RetryState]:
    """Run a coroutine, retrying failures that retry_on accepts.

    Args:
        coro_factory: Callable returning a fresh coroutine per attempt
        config: Retry configuration
        host_name: Server name for logging and tracking
        retry_on: Predicate deciding whether an exception is worth retrying
        state: Optional state object to update, so callers can inspect
            attempts even when the final attempt raises

    Returns:
        Tuple of (result, retry_state)

    Raises:
        Exception: The last exception, once retries are exhausted or the
            failure is not retryable

    Example:
        >>> result, state = await retry_with_backoff(
        ...     lambda: runner.run_or_raise(target, request),
        ...     RetryConfig(max_attempts=3, initial_delay=5),
        ...     host_name=target.name,
        ... )
    """
    state = state or RetryState(host_name=host_name)
    total_attempts = config.max_attempts + 1

    for attempt in range(1, total_attempts + 1):
        state.attempts = attempt
        try:
            result = await coro_factory()
        except Exception as e:
            state.failures.append(getattr(e, "error_type", ErrorTypes.UNKNOWN))

            if attempt < total_attempts and retry_on(e):
                delay = config.get_delay(attempt)
                logger.info(
                    f"{host_name}: attempt {attempt} of {total_attempts} failed "
                    f"({state.last_error_type}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            raise

        state.succeeded = True
        return result, state

    raise ValueError(f"max_attempts must be >= 0, got {config.max_attempts}")
