"""HTTP transport for vendor requests.

Provides:
- HttpTransport wrapping a shared httpx.AsyncClient
- Status classification: 2xx returns the body, 429/503/504 raise
  TransientError, every other status raises PermanentError
- Mapping of httpx timeouts and connection failures to voxgate errors
"""

import logging
from typing import Optional

import httpx

from .errors import NetworkError, PermanentError, RequestTimeoutError, TransientError
from .providers.base import TransportRequest

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 503, 504})

# Error bodies are echoed into messages; keep them short
MAX_ERROR_BODY_CHARS = 300


def raise_for_status(response: httpx.Response, provider_id: str = "") -> None:
    """Raise the voxgate error matching a non-2xx response.

    Raises:
        TransientError: For 429, 503 and 504
        PermanentError: For any other non-2xx status
    """
    if 200 <= response.status_code < 300:
        return

    detail = response.text[:MAX_ERROR_BODY_CHARS] if response.content else response.reason_phrase
    message = f"{provider_id or 'provider'} API error: {response.status_code} - {detail}"
    if response.status_code in TRANSIENT_STATUS_CODES:
        raise TransientError(message, status_code=response.status_code)
    raise PermanentError(message, status_code=response.status_code)


class HttpTransport:
    """Sends TransportRequests over a pooled httpx.AsyncClient.

    Usage:
        async with HttpTransport(timeout=30.0) as transport:
            audio = await transport.send(request)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize transport.

        Args:
            timeout: Per-phase httpx timeout in seconds
            client: Preconfigured client (tests pass one built on httpx.MockTransport)
        """
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, request: TransportRequest, provider_id: str = "") -> bytes:
        """Execute a request and return the response body.

        Args:
            request: Request to send
            provider_id: Provider name for error messages

        Returns:
            Raw response body

        Raises:
            RequestTimeoutError: If httpx timed out
            NetworkError: If the connection failed
            TransientError: For retryable HTTP statuses
            PermanentError: For other non-2xx statuses
        """
        client = self._get_client()
        try:
            response = await client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{provider_id} request timed out: {type(e).__name__}")
            raise RequestTimeoutError(f"{provider_id} request timed out", self.timeout) from e
        except httpx.TransportError as e:
            # Never log e itself: the URL may carry an API key
            logger.warning(f"{provider_id} transport error: {type(e).__name__}")
            raise NetworkError(f"{provider_id} network error: {type(e).__name__}") from e

        logger.debug(f"{provider_id} responded {response.status_code} ({len(response.content)} bytes)")
        raise_for_status(response, provider_id)
        return response.content

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
