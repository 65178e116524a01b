"""Pytest configuration and fixtures for voxgate tests."""

import httpx
import pytest
from unittest.mock import AsyncMock

from voxgate.gateway import ProviderGateway
from voxgate.monitoring import reset_metrics
from voxgate.providers.registry import ProviderRegistry
from voxgate.resilience.retry import RetryExecutor, RetryPolicy
from voxgate.security.rate_limiter import RateLimiter
from voxgate.security.storage import MemoryStore
from voxgate.security.vault import CredentialVault
from voxgate.transport import HttpTransport
from voxgate.usage import UsageHistory

# Low iteration count keeps key derivation fast in tests
TEST_KDF_ITERATIONS = 1000
TEST_PASSWORD = "correct-password1"


class FakeClock:
    """Manually advanced clock for rate limiter tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_metrics():
    """Start every test with empty metrics."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def vault(memory_store):
    """Vault over the shared memory store."""
    return CredentialVault(memory_store, iterations=TEST_KDF_ITERATIONS)


@pytest.fixture
def session(vault):
    """Active session for TEST_PASSWORD."""
    return vault.initialize(TEST_PASSWORD)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records delays without waiting."""
    return AsyncMock()


@pytest.fixture
def make_gateway(memory_store, vault, no_sleep):
    """Factory for a gateway whose HTTP traffic goes to a handler function.

    Usage:
        gateway = make_gateway(lambda request: httpx.Response(200, content=b"audio"))
    """

    def factory(handler, max_retries: int = 3, rate_limits=None, clock=None, **kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        limiter_kwargs = {"limits": rate_limits} if rate_limits is not None else {}
        if clock is not None:
            limiter_kwargs["clock"] = clock
        gateway = ProviderGateway(
            vault=vault,
            rate_limiter=RateLimiter(**limiter_kwargs),
            retry_executor=RetryExecutor(
                RetryPolicy(max_retries=max_retries, use_jitter=False),
                sleep=no_sleep,
            ),
            transport=HttpTransport(client=client),
            registry=ProviderRegistry.default(),
            usage=UsageHistory(memory_store),
            **kwargs,
        )
        return gateway

    return factory
