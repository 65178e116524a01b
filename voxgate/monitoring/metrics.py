"""In-process metrics for the request layer.

Rendered in Prometheus text format on demand; there is no scrape endpoint
because the client has no backend. Callers can ship generate_metrics()
output wherever they like.

- Request metrics: requests_total, request_latency_seconds, characters_total
- Failure metrics: errors_total, retries_total, rate_limit_rejections_total
"""

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class _Metric:
    """Shared label handling for all metric types."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        self.name = name
        self.description = description
        self._label_names = labels or []
        self._lock = threading.Lock()

    def _label_key(self, kwargs: dict) -> tuple:
        unknown = set(kwargs) - set(self._label_names)
        if unknown:
            raise ValueError(f"Unknown labels for {self.name}: {sorted(unknown)}")
        return tuple(str(kwargs.get(l, "")) for l in self._label_names)

    def _format_labels(self, label_values: tuple, extra: str = "") -> str:
        parts = [f'{l}="{v}"' for l, v in zip(self._label_names, label_values)]
        if extra:
            parts.append(extra)
        return "{" + ",".join(parts) + "}" if parts else ""

    def _header(self) -> list[str]:
        return [
            f"# HELP {self.name} {self.description}",
            f"# TYPE {self.name} {self.metric_type}",
        ]


class Counter(_Metric):
    """A counter metric that can only increase."""

    metric_type = "counter"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        super().__init__(name, description, labels)
        self._values: dict[tuple, float] = {}

    def labels(self, **kwargs) -> "CounterWithLabels":
        """Return a counter with specific labels."""
        return CounterWithLabels(self, self._label_key(kwargs))

    def inc(self, value: float = 1.0) -> None:
        """Increment the unlabelled series."""
        self._inc_labels((), value)

    def _inc_labels(self, label_values: tuple, value: float = 1.0) -> None:
        if value < 0:
            raise ValueError("Counters can only increase")
        with self._lock:
            self._values[label_values] = self._values.get(label_values, 0) + value

    def get(self, **kwargs) -> float:
        """Current value for one label combination (0 if never incremented)."""
        key = self._label_key(kwargs)
        with self._lock:
            return self._values.get(key, 0)

    def get_all(self) -> dict[tuple, float]:
        with self._lock:
            return self._values.copy()

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def to_prometheus(self) -> str:
        """Format as Prometheus text."""
        lines = self._header()
        with self._lock:
            for label_values, value in self._values.items():
                lines.append(f"{self.name}{self._format_labels(label_values)} {value}")
        return "\n".join(lines)


class CounterWithLabels:
    """Counter with specific label values."""

    def __init__(self, parent: Counter, label_values: tuple):
        self._parent = parent
        self._label_values = label_values

    def inc(self, value: float = 1.0) -> None:
        self._parent._inc_labels(self._label_values, value)


class Histogram(_Metric):
    """A histogram metric for tracking distributions."""

    metric_type = "histogram"
    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[list[str]] = None,
        buckets: Optional[tuple] = None,
    ):
        super().__init__(name, description, labels)
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self._observations: dict[tuple, list[float]] = {}

    def labels(self, **kwargs) -> "HistogramWithLabels":
        """Return a histogram with specific labels."""
        return HistogramWithLabels(self, self._label_key(kwargs))

    def observe(self, value: float) -> None:
        """Record an observation in the unlabelled series."""
        self._observe_labels((), value)

    def _observe_labels(self, label_values: tuple, value: float) -> None:
        with self._lock:
            self._observations.setdefault(label_values, []).append(value)

    def get_all(self) -> dict[tuple, list[float]]:
        with self._lock:
            return {k: v.copy() for k, v in self._observations.items()}

    def clear(self) -> None:
        with self._lock:
            self._observations.clear()

    def to_prometheus(self) -> str:
        """Format as Prometheus text (cumulative buckets, sum, count)."""
        lines = self._header()
        with self._lock:
            for label_values, observations in self._observations.items():
                for bucket in self.buckets:
                    bucket_count = sum(1 for o in observations if o <= bucket)
                    labels = self._format_labels(label_values, f'le="{bucket}"')
                    lines.append(f"{self.name}_bucket{labels} {bucket_count}")

                count = len(observations)
                inf_labels = self._format_labels(label_values, 'le="+Inf"')
                lines.append(f"{self.name}_bucket{inf_labels} {count}")
                lines.append(f"{self.name}_sum{self._format_labels(label_values)} {sum(observations)}")
                lines.append(f"{self.name}_count{self._format_labels(label_values)} {count}")
        return "\n".join(lines)


class HistogramWithLabels:
    """Histogram with specific label values."""

    def __init__(self, parent: Histogram, label_values: tuple):
        self._parent = parent
        self._label_values = label_values

    def observe(self, value: float) -> None:
        self._parent._observe_labels(self._label_values, value)


# =============================================================================
# Request Metrics
# =============================================================================

requests_total = Counter(
    name="voxgate_requests_total",
    description="Total number of synthesis requests by outcome",
    labels=["provider", "outcome"],
)

request_latency_seconds = Histogram(
    name="voxgate_request_latency_seconds",
    description="End-to-end synthesis latency in seconds, including retries",
    labels=["provider"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

characters_total = Counter(
    name="voxgate_characters_total",
    description="Characters successfully synthesized",
    labels=["provider"],
)


# =============================================================================
# Failure Metrics
# =============================================================================

errors_total = Counter(
    name="voxgate_errors_total",
    description="Failed synthesis requests by error kind",
    labels=["provider", "error_kind"],
)

retries_total = Counter(
    name="voxgate_retries_total",
    description="Retry attempts after transient failures",
    labels=["provider"],
)

rate_limit_rejections_total = Counter(
    name="voxgate_rate_limit_rejections_total",
    description="Requests rejected by the local rate limiter",
    labels=["provider"],
)


# =============================================================================
# Metrics Registry
# =============================================================================

_ALL_METRICS = [
    requests_total,
    request_latency_seconds,
    characters_total,
    errors_total,
    retries_total,
    rate_limit_rejections_total,
]


def generate_metrics() -> str:
    """Generate all metrics in Prometheus text format."""
    return "\n\n".join(metric.to_prometheus() for metric in _ALL_METRICS) + "\n"


def reset_metrics() -> None:
    """Clear every recorded value."""
    for metric in _ALL_METRICS:
        metric.clear()
    logger.debug("Metrics cleared")
