"""voxgate: secure, resilient request layer for cloud text-to-speech APIs."""

__version__ = "0.1.0"

from .errors import ErrorKind, VoxgateError
from .gateway import ProviderGateway
from .models import (
    AzureOptions,
    DeepgramOptions,
    ElevenLabsOptions,
    GoogleOptions,
    PollyOptions,
    SynthesisResult,
    VoiceConfig,
)
from .security import CredentialVault, RateLimiter, RequestSigner
from .usage import UsageHistory

__all__ = [
    "ProviderGateway",
    "CredentialVault",
    "RequestSigner",
    "RateLimiter",
    "UsageHistory",
    "VoiceConfig",
    "SynthesisResult",
    "ElevenLabsOptions",
    "GoogleOptions",
    "AzureOptions",
    "DeepgramOptions",
    "PollyOptions",
    "ErrorKind",
    "VoxgateError",
]
