"""Request and result models shared by the gateway and the providers.

Provides:
- VoiceConfig describing one synthesis request's voice
- Typed per-vendor options (one frozen dataclass per provider)
- SynthesisResult, the normalized outcome returned to callers
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from .errors import ErrorKind


@dataclass(frozen=True)
class ElevenLabsOptions:
    """ElevenLabs voice settings."""

    provider_id: ClassVar[str] = "elevenlabs"

    model_id: str = "eleven_multilingual_v2"
    stability: float = 0.5
    similarity_boost: float = 0.75
    use_speaker_boost: bool = True

    def __post_init__(self):
        for name in ("stability", "similarity_boost"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")


@dataclass(frozen=True)
class GoogleOptions:
    """Google Cloud TTS options.

    Voice ids take the form "en-US/en-US-Neural2-A"; language_code
    overrides the prefix when set.
    """

    provider_id: ClassVar[str] = "google"

    language_code: Optional[str] = None
    api_version: str = "v1beta1"


@dataclass(frozen=True)
class AzureOptions:
    """Azure Speech options."""

    provider_id: ClassVar[str] = "azure"

    language: str = "en-US"
    output_format: str = "audio-16khz-128kbitrate-mono-mp3"


@dataclass(frozen=True)
class DeepgramOptions:
    """Deepgram Aura options."""

    provider_id: ClassVar[str] = "deepgram"

    encoding: str = "mp3"


@dataclass(frozen=True)
class PollyOptions:
    """Amazon Polly options."""

    provider_id: ClassVar[str] = "polly"

    engine: str = "neural"  # neural, standard, long-form, generative
    language_code: Optional[str] = None
    text_type: str = "text"

    def __post_init__(self):
        if self.text_type not in ("text", "ssml"):
            raise ValueError(f"text_type must be 'text' or 'ssml', got {self.text_type!r}")


VendorOptions = Union[ElevenLabsOptions, GoogleOptions, AzureOptions, DeepgramOptions, PollyOptions]


@dataclass
class VoiceConfig:
    """Voice selection and prosody for one request.

    speed and volume are multipliers (1.0 is the vendor default); pitch is
    an offset (0.0 is the vendor default).
    """

    voice_id: str
    provider_id: str
    speed: float = 1.0
    pitch: float = 0.0
    volume: float = 1.0
    output_format: str = "mp3"
    options: Optional[VendorOptions] = None

    def __post_init__(self):
        self.provider_id = self.provider_id.strip().lower()
        if not self.provider_id:
            raise ValueError("provider_id cannot be empty")
        if not self.voice_id or not self.voice_id.strip():
            raise ValueError("voice_id cannot be empty")
        if self.speed <= 0:
            raise ValueError("speed must be positive")
        if self.volume < 0:
            raise ValueError("volume cannot be negative")


@dataclass
class SynthesisResult:
    """Normalized outcome of a synthesis request.

    On success audio holds the vendor's payload; on failure error_kind and
    error_message describe what went wrong and audio is None.
    """

    success: bool
    audio: Optional[bytes] = None
    characters_processed: int = 0
    cost: float = 0.0
    duration: float = 0.0  # seconds
    provider_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = 0
    metadata: dict = field(default_factory=dict)

    @classmethod
    def failure(
        cls,
        error_kind: ErrorKind,
        error_message: str,
        provider_id: Optional[str] = None,
        duration: float = 0.0,
        attempts: int = 0,
    ) -> "SynthesisResult":
        return cls(
            success=False,
            provider_id=provider_id,
            error_kind=error_kind,
            error_message=error_message,
            duration=duration,
            attempts=attempts,
        )
