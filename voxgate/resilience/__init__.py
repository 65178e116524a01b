"""Resilience layer for voxgate.

This module provides:
- Retry with exponential backoff and cooperative cancellation
- Timeout wrappers
"""

from .retry import RetryExecutor, RetryPolicy, calculate_backoff, is_transient_error, retry_with_backoff
from .timeout import with_async_timeout

__all__ = [
    "RetryExecutor",
    "RetryPolicy",
    "calculate_backoff",
    "is_transient_error",
    "retry_with_backoff",
    "with_async_timeout",
]
