"""Per-provider rate limiting for outbound API calls.

Provides:
- Fixed-window token bucket (whole-window refills, window-aligned)
- Per-provider buckets created lazily on first use
- Status reporting without consuming tokens

Unlike a continuously leaking bucket, capacity returns in whole-window
jumps: a provider with 30 requests per minute gets a full burst of 30 at
each window boundary and nothing in between.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_CAPACITY = 60

# Requests per minute for each cloud provider
DEFAULT_PROVIDER_LIMITS: Dict[str, int] = {
    "google": 60,
    "elevenlabs": 30,
    "deepgram": 120,
    "azure": 60,
    "polly": 100,
}


@dataclass
class RateLimitConfig:
    """Configuration for a single bucket."""

    capacity: int = DEFAULT_CAPACITY
    window_seconds: float = DEFAULT_WINDOW_SECONDS

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


@dataclass(frozen=True)
class RateLimitInfo:
    """Snapshot of a provider's bucket."""

    provider_id: str
    remaining: int
    capacity: int
    window_seconds: float
    reset_at: datetime
    is_limited: bool


class TokenBucket:
    """Fixed-window token bucket.

    Usage:
        bucket = TokenBucket(RateLimitConfig(capacity=2, window_seconds=60))
        if bucket.try_consume():
            # Make request
            pass
    """

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.time):
        """Initialize bucket.

        Args:
            config: Bucket configuration
            clock: Returns the current time in seconds (injectable for tests)
        """
        self.config = config
        self._clock = clock
        self._tokens = config.capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        """Add capacity for every whole window elapsed since the last refill."""
        elapsed = self._clock() - self._last_refill
        windows = int(elapsed // self.config.window_seconds)
        if windows >= 1:
            self._tokens = min(self.config.capacity, self._tokens + windows * self.config.capacity)
            # Advance by whole windows only, keeping boundaries aligned
            self._last_refill += windows * self.config.window_seconds

    def try_consume(self) -> bool:
        """Take one token if available.

        Returns:
            True if the request is admitted
        """
        with self._lock:
            self._refill()
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False

    @property
    def available_tokens(self) -> int:
        """Tokens left in the current window."""
        with self._lock:
            self._refill()
            return self._tokens

    @property
    def reset_at(self) -> float:
        """Time (clock seconds) when the current window ends."""
        with self._lock:
            self._refill()
            return self._last_refill + self.config.window_seconds

    def snapshot(self) -> tuple[int, float]:
        """Remaining tokens and window end, read atomically."""
        with self._lock:
            self._refill()
            return self._tokens, self._last_refill + self.config.window_seconds

    def reset(self) -> None:
        """Refill the bucket and start a new window now."""
        with self._lock:
            self._tokens = self.config.capacity
            self._last_refill = self._clock()


class RateLimiter:
    """Multi-provider rate limiter.

    Usage:
        limiter = RateLimiter()
        if limiter.try_consume("elevenlabs"):
            # Call ElevenLabs
            pass
    """

    def __init__(
        self,
        limits: Optional[Dict[str, int]] = None,
        default_capacity: int = DEFAULT_CAPACITY,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize rate limiter.

        Args:
            limits: Requests per window by provider id
            default_capacity: Capacity for providers not in limits
            window_seconds: Window length for every bucket
            clock: Time source shared by all buckets
        """
        self._limits = dict(DEFAULT_PROVIDER_LIMITS if limits is None else limits)
        self._default_capacity = default_capacity
        self._window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def configure(
        self,
        provider_id: str,
        capacity: int,
        window_seconds: Optional[float] = None,
    ) -> None:
        """Set the limit for a provider, replacing any existing bucket.

        Args:
            provider_id: Provider identifier
            capacity: Requests per window
            window_seconds: Window length (defaults to the limiter's window)
        """
        config = RateLimitConfig(
            capacity=capacity,
            window_seconds=self._window_seconds if window_seconds is None else window_seconds,
        )
        with self._lock:
            self._limits[provider_id] = capacity
            self._buckets[provider_id] = TokenBucket(config, self._clock)
        logger.info(f"Configured rate limit for {provider_id}: {capacity}/{config.window_seconds:g}s")

    def _bucket(self, provider_id: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(provider_id)
            if bucket is None:
                capacity = self._limits.get(provider_id, self._default_capacity)
                bucket = TokenBucket(
                    RateLimitConfig(capacity=capacity, window_seconds=self._window_seconds),
                    self._clock,
                )
                self._buckets[provider_id] = bucket
            return bucket

    def try_consume(self, provider_id: str) -> bool:
        """Admit one request for a provider.

        Args:
            provider_id: Provider identifier

        Returns:
            True if admitted, False if the window is exhausted
        """
        allowed = self._bucket(provider_id).try_consume()
        if not allowed:
            logger.debug(f"Rate limited: {provider_id}")
        return allowed

    def peek(self, provider_id: str) -> RateLimitInfo:
        """Report a provider's bucket without consuming a token.

        Args:
            provider_id: Provider identifier

        Returns:
            Remaining tokens and the next reset time
        """
        bucket = self._bucket(provider_id)
        remaining, reset_at = bucket.snapshot()
        return RateLimitInfo(
            provider_id=provider_id,
            remaining=remaining,
            capacity=bucket.config.capacity,
            window_seconds=bucket.config.window_seconds,
            reset_at=datetime.fromtimestamp(reset_at, tz=timezone.utc),
            is_limited=remaining <= 0,
        )

    def reset(self, provider_id: str) -> None:
        """Drop a provider's bucket; the next call starts a fresh window."""
        with self._lock:
            self._buckets.pop(provider_id, None)

    def get_all_status(self) -> Dict[str, RateLimitInfo]:
        """Status for every provider with a live bucket."""
        with self._lock:
            provider_ids = list(self._buckets)
        return {provider_id: self.peek(provider_id) for provider_id in provider_ids}
