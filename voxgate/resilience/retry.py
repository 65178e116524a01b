"""Retry with exponential backoff.

Provides automatic retry for transient failures with:
- Configurable retry count
- Exponential backoff with one-sided jitter
- Pluggable retryability predicate
- Cooperative cancellation of pending delays and in-flight attempts

Jitter only ever adds to the computed delay (0-30% of it), so the average
wait is about 15% above the nominal backoff rather than centered on it.
"""

import asyncio
import functools
import inspect
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from ..errors import (
    ExhaustedRetriesError,
    PermanentError,
    RequestCancelledError,
    TransientError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_FRACTION = 0.3
TRANSIENT_STATUS_MARKERS = ("429", "503", "504")


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0  # seconds
    use_jitter: bool = True

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays cannot be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        """Create a policy from application settings."""
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.retry_initial_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_delay=settings.retry_max_delay,
            use_jitter=settings.retry_use_jitter,
        )


def calculate_backoff(
    attempt: int,
    policy: RetryPolicy,
    rng: Optional[random.Random] = None,
) -> float:
    """Calculate the delay before a retry.

    Args:
        attempt: Retry number (1-based)
        policy: Retry policy
        rng: Random source for jitter

    Returns:
        Delay in seconds
    """
    delay = policy.initial_delay * (policy.backoff_multiplier ** (attempt - 1))

    if policy.use_jitter:
        delay += (rng or random).uniform(0, JITTER_FRACTION * delay)

    # Cap after jitter: no delay ever exceeds max_delay
    return min(policy.max_delay, delay)


def is_transient_error(error: BaseException) -> bool:
    """Default retryability predicate.

    Network failures, timeouts and HTTP 429/503/504 are transient.
    Everything else is permanent.

    Args:
        error: The exception that occurred

    Returns:
        True if should retry
    """
    if isinstance(error, TransientError):
        return True
    if isinstance(error, (PermanentError, RequestCancelledError, asyncio.CancelledError)):
        return False
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_STATUS_MARKERS)


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event] = None,
) -> T:
    """Await a coroutine, aborting it if cancel_event is set first.

    Args:
        awaitable: Work to run
        cancel_event: Cancellation signal

    Returns:
        Result of the awaitable

    Raises:
        RequestCancelledError: If the event was set before completion
    """
    if cancel_event is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestCancelledError("Request cancelled")

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise RequestCancelledError("Request cancelled")


class RetryExecutor:
    """Runs an async operation with retry and backoff.

    Usage:
        executor = RetryExecutor(RetryPolicy(max_retries=3))
        audio = await executor.execute(lambda: transport.send(request))
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize executor.

        Args:
            policy: Retry policy
            sleep: Delay function used when no cancel event is given
            rng: Random source for jitter
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    async def _wait(self, delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await self._sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise RequestCancelledError("Request cancelled during backoff")

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[BaseException], bool]] = None,
        max_retries: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
        operation_name: str = "operation",
    ) -> T:
        """Run operation, retrying transient failures.

        Args:
            operation: Zero-argument factory returning a fresh awaitable per attempt
            is_retryable: Retryability predicate (default: is_transient_error)
            max_retries: Retries after the first attempt (default: policy value)
            cancel_event: Setting this aborts the attempt or pending delay
            on_retry: Callback (error, retry_number, delay) before each retry
            operation_name: Name used in log messages

        Returns:
            Result of the first successful attempt

        Raises:
            ExhaustedRetriesError: If every attempt failed with a retryable error
            RequestCancelledError: If cancel_event was set
            Exception: The original error if it is not retryable
        """
        should_retry = is_retryable or is_transient_error
        retries = self.policy.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelledError(f"{operation_name} cancelled")

            try:
                return await run_cancellable(operation(), cancel_event)
            except (asyncio.CancelledError, RequestCancelledError):
                raise
            except Exception as e:
                if not should_retry(e):
                    logger.warning(f"Non-retryable error in {operation_name}: {e}")
                    raise

                if attempt >= retries:
                    logger.error(f"All {attempt + 1} attempts failed for {operation_name}: {e}")
                    raise ExhaustedRetriesError(
                        f"{operation_name} failed after {attempt + 1} attempts: {e}",
                        attempts=attempt + 1,
                        last_error=e,
                    ) from e

                attempt += 1
                delay = calculate_backoff(attempt, self.policy, self._rng)
                logger.warning(
                    f"Attempt {attempt}/{retries + 1} failed for {operation_name}: {e}. "
                    f"Retrying in {delay:.2f}s"
                )

                if on_retry:
                    on_retry(e, attempt, delay)

                await self._wait(delay, cancel_event)


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
):
    """Decorator for retry with exponential backoff.

    Args:
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry
        max_delay: Maximum delay between retries
        is_retryable: Retryability predicate (default: is_transient_error)
        on_retry: Optional callback (error, retry_number, delay)

    Returns:
        Decorated coroutine function

    Usage:
        @retry_with_backoff(max_retries=3)
        async def fetch_voices():
            ...
    """
    executor = RetryExecutor(
        RetryPolicy(max_retries=max_retries, initial_delay=initial_delay, max_delay=max_delay)
    )

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"retry_with_backoff requires a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await executor.execute(
                lambda: func(*args, **kwargs),
                is_retryable=is_retryable,
                on_retry=on_retry,
                operation_name=func.__name__,
            )

        return wrapper

    return decorator
