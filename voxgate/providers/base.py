"""Provider abstractions.

Provides:
- ProviderInfo describing a vendor's limits and pricing
- TransportRequest, the vendor-neutral HTTP request the gateway executes
- SigningScope for vendors authenticated by request signatures
- RequestBuilder base class implemented once per vendor
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Optional

from ..errors import ConfigurationError
from ..models import VendorOptions, VoiceConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderInfo:
    """Static description of a TTS vendor."""

    id: str
    display_name: str
    max_characters: int
    supports_ssml: bool = False
    requires_signing: bool = False
    setup_guide_url: Optional[str] = None


@dataclass(frozen=True)
class SigningScope:
    """Region and service name that scope a request signature."""

    region: str
    service: str


@dataclass
class TransportRequest:
    """An HTTP request ready to hand to the transport."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def with_headers(self, headers: dict[str, str]) -> "TransportRequest":
        """Copy with headers merged over the current ones."""
        return replace(self, headers={**self.headers, **headers})

    def __repr__(self) -> str:
        # Header values may carry credentials
        return f"TransportRequest({self.method} {self.url.split('?')[0]}, headers={sorted(self.headers)})"


class RequestBuilder(ABC):
    """Turns a synthesis call into a TransportRequest for one vendor.

    Subclasses supply the vendor's URLs, payload shape and pricing. API-key
    vendors attach their key in authorize(); signing vendors return a
    SigningScope and leave authentication to the gateway's RequestSigner.
    """

    info: ProviderInfo
    options_type: type

    @property
    def provider_id(self) -> str:
        return self.info.id

    @property
    def signing_scope(self) -> Optional[SigningScope]:
        """Scope for signature auth, None for API-key vendors."""
        return None

    def resolve_options(self, config: VoiceConfig) -> VendorOptions:
        """Return the config's options, or this vendor's defaults.

        Raises:
            ConfigurationError: If the options belong to another vendor
        """
        if config.options is None:
            return self.options_type()
        if not isinstance(config.options, self.options_type):
            raise ConfigurationError(
                f"{type(config.options).__name__} cannot be used with provider {self.provider_id}"
            )
        return config.options

    @abstractmethod
    def build_synthesis(
        self,
        text: str,
        config: VoiceConfig,
        options: VendorOptions,
    ) -> TransportRequest:
        """Build the unauthenticated synthesis request."""

    @abstractmethod
    def build_validation(self) -> TransportRequest:
        """Build the cheapest authenticated request (usually a voice listing)."""

    @abstractmethod
    def calculate_cost(self, characters: int, config: VoiceConfig, options: VendorOptions) -> float:
        """Estimated cost in USD for the given character count."""

    def authorize(self, request: TransportRequest, secret: str) -> TransportRequest:
        """Attach API-key credentials. Signing vendors never reach this."""
        raise NotImplementedError(f"{self.provider_id} does not use API-key auth")

    def split_credentials(self, secret: str) -> tuple[str, str]:
        """Split a stored secret into (access_key, secret_key) for signing."""
        raise NotImplementedError(f"{self.provider_id} does not use signed requests")

    def extract_audio(self, body: bytes) -> bytes:
        """Audio bytes from a successful response body."""
        return body

    def validate_text(self, text: str) -> None:
        """Reject empty or over-long text before any other work.

        Raises:
            ValueError: If the text cannot be sent to this vendor
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        if len(text) > self.info.max_characters:
            raise ValueError(
                f"Text exceeds maximum length of {self.info.max_characters} characters "
                f"for {self.info.display_name} ({len(text)} given)"
            )


def require_secret(secret: Optional[str], provider_id: str) -> str:
    """Strip a secret, rejecting blanks."""
    if not secret or not secret.strip():
        raise ConfigurationError(f"Empty credential for provider {provider_id}")
    return secret.strip()
