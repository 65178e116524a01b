"""Tests for monitoring module."""

import pytest


def test_monitoring_imports():
    """Test that all monitoring module components can be imported."""
    from voxgate.monitoring import (
        Counter,
        Histogram,
        requests_total,
        request_latency_seconds,
        characters_total,
        errors_total,
        retries_total,
        rate_limit_rejections_total,
        generate_metrics,
    )

    assert requests_total is not None
    assert generate_metrics is not None
