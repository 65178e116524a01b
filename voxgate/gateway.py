"""Provider gateway: the single entry point for synthesis requests.

Provides:
- Credential lookup through the vault session the gateway owns
- Local admission control before any network traffic
- API-key or signature authentication per vendor
- Retry-wrapped, per-attempt-timed transport calls
- Normalized SynthesisResult for every outcome (synthesize never raises
  for a failed request)
- Usage history and metrics for every call

Processing order for synthesize():
    input check -> cancel check -> vault secret -> admission -> build and sign -> retry
    -> normalized result
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from . import config, monitoring
from .config import Settings
from .errors import (
    CredentialMissingError,
    ErrorKind,
    RateLimitedError,
    RequestCancelledError,
    UninitializedError,
    VoxgateError,
    classify_error,
    user_message,
)
from .models import SynthesisResult, VoiceConfig
from .providers.base import ProviderInfo, RequestBuilder, TransportRequest
from .providers.registry import ProviderRegistry
from .resilience.retry import RetryExecutor, RetryPolicy
from .resilience.timeout import SYNTHESIS_TIMEOUT, VALIDATION_TIMEOUT, with_async_timeout
from .security.rate_limiter import RateLimiter, RateLimitInfo
from .security.signing import RequestSigner
from .security.storage import open_store
from .security.vault import CredentialVault, VaultSession
from .transport import HttpTransport
from .usage import UsageHistory, UsageRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderGateway:
    """Composes vault, limiter, signer and retry into one request path.

    Usage:
        gateway = ProviderGateway.from_settings()
        await gateway.initialize_vault("correct-password1")
        await gateway.set_secret("elevenlabs", "sk-abc123")
        result = await gateway.synthesize("Hello", VoiceConfig("voice-id", "elevenlabs"))
        if result.success:
            play(result.audio)
    """

    def __init__(
        self,
        vault: CredentialVault,
        rate_limiter: Optional[RateLimiter] = None,
        retry_executor: Optional[RetryExecutor] = None,
        transport: Optional[HttpTransport] = None,
        registry: Optional[ProviderRegistry] = None,
        signer: Optional[RequestSigner] = None,
        usage: Optional[UsageHistory] = None,
        attempt_timeout: float = SYNTHESIS_TIMEOUT,
        now: Callable[[], datetime] = _utcnow,
    ):
        """Initialize gateway.

        Args:
            vault: Credential vault holding provider secrets
            rate_limiter: Per-provider admission control
            retry_executor: Retry policy runner
            transport: HTTP transport
            registry: Request builders by provider id
            signer: Request signer for signature-auth vendors
            usage: Usage history (None disables recording)
            attempt_timeout: Time budget for one transport attempt
            now: Clock for signing timestamps
        """
        self.vault = vault
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retry_executor = retry_executor or RetryExecutor()
        self.transport = transport or HttpTransport()
        self.registry = registry or ProviderRegistry.default()
        self.signer = signer or RequestSigner()
        self.usage = usage
        self.attempt_timeout = attempt_timeout
        self._now = now
        self._session: Optional[VaultSession] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProviderGateway":
        """Build a gateway wired from application settings."""
        settings = settings or config.settings

        store = open_store(settings.store_path)
        return cls(
            vault=CredentialVault(store, iterations=settings.kdf_iterations),
            rate_limiter=RateLimiter(
                limits=settings.rate_limits,
                default_capacity=settings.default_rate_limit,
                window_seconds=settings.rate_limit_window_seconds,
            ),
            retry_executor=RetryExecutor(RetryPolicy.from_settings(settings)),
            transport=HttpTransport(timeout=settings.http_timeout_seconds),
            registry=ProviderRegistry.default(
                polly_region=settings.polly_region,
                azure_region=settings.azure_region,
            ),
            usage=UsageHistory(store, limit=settings.usage_history_limit),
            attempt_timeout=settings.http_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Vault session
    # ------------------------------------------------------------------

    @property
    def is_unlocked(self) -> bool:
        return self._session is not None and self._session.is_active

    async def initialize_vault(self, password: str) -> None:
        """Unlock the vault (first call sets the master password).

        Key derivation runs in a worker thread.

        Raises:
            AuthenticationError: If the password is wrong
            ValueError: If the password is empty
        """
        session = await asyncio.to_thread(self.vault.initialize, password)
        if self._session is not None:
            self._session.close()
        self._session = session

    def lock(self) -> None:
        """End the vault session. Synthesis fails until the next unlock."""
        if self._session is not None:
            self._session.close()
            self._session = None
            logger.info("Vault locked")

    async def change_password(self, old_password: str, new_password: str) -> None:
        """Change the master password, re-encrypting stored secrets.

        Raises:
            UninitializedError: If the vault is locked
            AuthenticationError: If old_password is wrong
            DecryptionError: If a stored secret cannot be re-encrypted
        """
        self._session = await asyncio.to_thread(
            self.vault.change_password, self._session, old_password, new_password
        )

    async def set_secret(self, provider_id: str, secret: str) -> None:
        """Encrypt and store a provider credential.

        Raises:
            ConfigurationError: If the provider is unknown
            UninitializedError: If the vault is locked
        """
        builder = self.registry.get(provider_id)
        if builder.signing_scope is not None:
            # Reject malformed signing credentials now rather than at first use
            builder.split_credentials(secret)
        await asyncio.to_thread(self.vault.set_secret, self._session, builder.provider_id, secret)

    def remove_secret(self, provider_id: str) -> None:
        self.vault.remove_secret(provider_id)

    def has_secret(self, provider_id: str) -> bool:
        return self.vault.has_secret(provider_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_rate_limit_status(self, provider_id: str) -> RateLimitInfo:
        """Remaining requests and reset time, without consuming a token."""
        return self.rate_limiter.peek(provider_id.strip().lower())

    def list_providers(self) -> list[ProviderInfo]:
        return self.registry.list_info()

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    async def _read_secret(self, provider_id: str) -> str:
        if not self.is_unlocked:
            raise UninitializedError("Vault is locked. Call initialize_vault first.")
        secret = await asyncio.to_thread(self.vault.get_secret, self._session, provider_id)
        if secret is None:
            raise CredentialMissingError(f"No credential stored for provider {provider_id}")
        return secret

    def _admit(self, provider_id: str) -> None:
        if self.rate_limiter.try_consume(provider_id):
            return
        info = self.rate_limiter.peek(provider_id)
        monitoring.rate_limit_rejections_total.labels(provider=provider_id).inc()
        raise RateLimitedError(
            f"Rate limit exceeded for {provider_id}, resets at {info.reset_at.isoformat()}",
            reset_at=info.reset_at,
        )

    def _authenticate(self, builder: RequestBuilder, request: TransportRequest, secret: str) -> TransportRequest:
        scope = builder.signing_scope
        if scope is None:
            return builder.authorize(request, secret)

        access_key, secret_key = builder.split_credentials(secret)
        headers = self.signer.sign(
            request.method,
            request.url,
            request.headers,
            request.body,
            access_key,
            secret_key,
            scope.region,
            scope.service,
            self._now(),
        )
        return TransportRequest(method=request.method, url=request.url, headers=headers, body=request.body)

    async def synthesize(
        self,
        text: str,
        voice_config: VoiceConfig,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SynthesisResult:
        """Synthesize text with the configured provider.

        Args:
            text: Text to speak
            voice_config: Provider, voice and prosody
            cancel_event: Setting this aborts the request promptly

        Returns:
            SynthesisResult; on failure success is False and error_kind
            says why
        """
        provider_id = voice_config.provider_id
        started = time.monotonic()
        attempts = 0

        def on_retry(error: BaseException, retry_number: int, delay: float) -> None:
            monitoring.retries_total.labels(provider=provider_id).inc()

        try:
            builder = self.registry.get(provider_id)
            builder.validate_text(text)
            options = builder.resolve_options(voice_config)

            # Already cancelled: skip key derivation and keep the rate-limit token
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelledError(f"{provider_id} synthesis cancelled")

            secret = await self._read_secret(provider_id)
            self._admit(provider_id)
            request = self._authenticate(
                builder, builder.build_synthesis(text, voice_config, options), secret
            )

            async def attempt() -> bytes:
                nonlocal attempts
                attempts += 1
                body = await with_async_timeout(
                    self.transport.send(request, provider_id),
                    self.attempt_timeout,
                    f"{provider_id} synthesis",
                )
                return builder.extract_audio(body)

            audio = await self.retry_executor.execute(
                attempt,
                cancel_event=cancel_event,
                on_retry=on_retry,
                operation_name=f"{provider_id} synthesis",
            )
        except Exception as e:
            return self._failure(e, provider_id, time.monotonic() - started, attempts)

        result = SynthesisResult(
            success=True,
            audio=audio,
            characters_processed=len(text),
            cost=builder.calculate_cost(len(text), voice_config, options),
            duration=time.monotonic() - started,
            provider_id=provider_id,
            attempts=attempts,
        )
        logger.info(
            f"Synthesized {result.characters_processed} chars with {provider_id} "
            f"in {result.duration:.2f}s ({attempts} attempt(s), ${result.cost:.6f})"
        )
        monitoring.requests_total.labels(provider=provider_id, outcome="success").inc()
        monitoring.characters_total.labels(provider=provider_id).inc(result.characters_processed)
        monitoring.request_latency_seconds.labels(provider=provider_id).observe(result.duration)
        self._record(result)
        return result

    def _failure(self, error: Exception, provider_id: str, duration: float, attempts: int) -> SynthesisResult:
        kind = classify_error(error)
        if kind == ErrorKind.UNKNOWN:
            logger.exception(f"Unexpected error during {provider_id} synthesis")
        else:
            logger.warning(f"{provider_id} synthesis failed ({kind.value}): {error}")

        result = SynthesisResult.failure(
            kind,
            str(error) or user_message(kind),
            provider_id=provider_id,
            duration=duration,
            attempts=attempts,
        )
        if isinstance(error, RateLimitedError) and error.reset_at is not None:
            result.metadata["reset_at"] = error.reset_at

        monitoring.requests_total.labels(provider=provider_id, outcome="failure").inc()
        monitoring.errors_total.labels(provider=provider_id, error_kind=kind.value).inc()
        if kind != ErrorKind.INVALID_INPUT:
            monitoring.request_latency_seconds.labels(provider=provider_id).observe(duration)
            self._record(result)
        return result

    def _record(self, result: SynthesisResult) -> None:
        if self.usage is None:
            return
        self.usage.add(
            UsageRecord(
                provider_id=result.provider_id or "",
                characters=result.characters_processed,
                cost=result.cost,
                duration=result.duration,
                success=result.success,
                error_kind=result.error_kind.value if result.error_kind else None,
            )
        )

    async def validate_secret(self, provider_id: str, secret: str) -> bool:
        """Check a credential with one cheap authenticated request.

        No retry and no rate-limit token; the secret is not stored.

        Returns:
            True if the vendor accepted the credential
        """
        try:
            builder = self.registry.get(provider_id)
            request = self._authenticate(builder, builder.build_validation(), secret)
            await with_async_timeout(
                self.transport.send(request, builder.provider_id),
                VALIDATION_TIMEOUT,
                f"{provider_id} key validation",
            )
        except (VoxgateError, ValueError) as e:
            logger.info(f"Credential validation failed for {provider_id}: {type(e).__name__}")
            return False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Lock the vault and close the transport."""
        self.lock()
        await self.transport.aclose()

    async def __aenter__(self) -> "ProviderGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
