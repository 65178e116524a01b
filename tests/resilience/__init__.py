"""Tests for resilience module."""

import pytest


def test_resilience_imports():
    """Test that resilience module can be imported."""
    from voxgate.resilience import (
        RetryExecutor,
        RetryPolicy,
        calculate_backoff,
        is_transient_error,
        retry_with_backoff,
        with_async_timeout,
    )

    assert RetryExecutor is not None
    assert with_async_timeout is not None
