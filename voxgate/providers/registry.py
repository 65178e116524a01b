"""Registry of available request builders."""

import logging
from typing import Optional

from ..errors import ConfigurationError
from .base import ProviderInfo, RequestBuilder
from .vendors import AzureBuilder, DeepgramBuilder, ElevenLabsBuilder, GoogleBuilder, PollyBuilder

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Looks up request builders by provider id.

    Usage:
        registry = ProviderRegistry.default(polly_region="eu-west-1")
        builder = registry.get("polly")
    """

    def __init__(self, builders: Optional[list[RequestBuilder]] = None):
        self._builders: dict[str, RequestBuilder] = {}
        for builder in builders or []:
            self.register(builder)

    @classmethod
    def default(cls, polly_region: str = "us-east-1", azure_region: str = "eastus") -> "ProviderRegistry":
        """Registry with all five cloud vendors."""
        return cls(
            [
                ElevenLabsBuilder(),
                GoogleBuilder(),
                AzureBuilder(region=azure_region),
                DeepgramBuilder(),
                PollyBuilder(region=polly_region),
            ]
        )

    def register(self, builder: RequestBuilder) -> None:
        """Add or replace a builder."""
        if builder.provider_id in self._builders:
            logger.info(f"Replacing request builder for {builder.provider_id}")
        self._builders[builder.provider_id] = builder

    def get(self, provider_id: str) -> RequestBuilder:
        """Get the builder for a provider.

        Raises:
            ConfigurationError: If the provider is unknown
        """
        builder = self._builders.get(provider_id.strip().lower())
        if builder is None:
            raise ConfigurationError(f"Unknown provider: {provider_id}")
        return builder

    def __contains__(self, provider_id: str) -> bool:
        return provider_id.strip().lower() in self._builders

    def provider_ids(self) -> list[str]:
        return list(self._builders)

    def list_info(self) -> list[ProviderInfo]:
        return [builder.info for builder in self._builders.values()]
