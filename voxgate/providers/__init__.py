"""Provider module for voxgate.

This module provides:
- Request builders for ElevenLabs, Google, Azure, Deepgram and Amazon Polly
- Provider registry and static provider info
"""

from .base import ProviderInfo, RequestBuilder, SigningScope, TransportRequest
from .registry import ProviderRegistry
from .vendors import AzureBuilder, DeepgramBuilder, ElevenLabsBuilder, GoogleBuilder, PollyBuilder

__all__ = [
    "ProviderInfo",
    "RequestBuilder",
    "SigningScope",
    "TransportRequest",
    "ProviderRegistry",
    "ElevenLabsBuilder",
    "GoogleBuilder",
    "AzureBuilder",
    "DeepgramBuilder",
    "PollyBuilder",
]
