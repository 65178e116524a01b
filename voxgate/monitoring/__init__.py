"""Monitoring module for voxgate.

This module provides:
- Prometheus-text metrics for synthesis requests, failures and retries
"""

from .metrics import (
    Counter,
    Histogram,
    characters_total,
    errors_total,
    generate_metrics,
    rate_limit_rejections_total,
    request_latency_seconds,
    requests_total,
    reset_metrics,
    retries_total,
)

__all__ = [
    "Counter",
    "Histogram",
    "requests_total",
    "request_latency_seconds",
    "characters_total",
    "errors_total",
    "retries_total",
    "rate_limit_rejections_total",
    "generate_metrics",
    "reset_metrics",
]
