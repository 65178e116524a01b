"""Timeout wrappers for outbound calls.

httpx timeouts apply per phase (connect, read, write). These wrappers cap
the total time of one attempt so a slow-drip response still fails fast
and becomes a retryable RequestTimeoutError.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from ..errors import RequestTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default budget for a single synthesis attempt
SYNTHESIS_TIMEOUT = 30.0
# Key validation is a cheap listing call
VALIDATION_TIMEOUT = 10.0


async def with_async_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    error_message: str = "Operation timed out",
) -> T:
    """Execute an awaitable with a timeout.

    Args:
        awaitable: Awaitable to execute
        timeout_seconds: Timeout in seconds
        error_message: Error message for timeout

    Returns:
        Awaitable result

    Raises:
        RequestTimeoutError: If timeout is exceeded
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"{error_message} after {timeout_seconds}s")
        raise RequestTimeoutError(
            f"{error_message} after {timeout_seconds}s",
            timeout_seconds,
        ) from None
