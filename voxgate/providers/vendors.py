"""Request builders for the supported cloud TTS vendors.

Provides:
- ElevenLabsBuilder (xi-api-key header)
- GoogleBuilder (key query parameter, base64 JSON response)
- AzureBuilder (subscription key header, SSML body)
- DeepgramBuilder (Token authorization header)
- PollyBuilder (AWS Signature Version 4)
"""

import base64
import binascii
import json
import logging
from typing import Any
from urllib.parse import quote, urlencode
from xml.sax.saxutils import escape, quoteattr

from ..errors import ConfigurationError, PermanentError
from ..models import (
    AzureOptions,
    DeepgramOptions,
    ElevenLabsOptions,
    GoogleOptions,
    PollyOptions,
    VoiceConfig,
)
from .base import ProviderInfo, RequestBuilder, SigningScope, TransportRequest, require_secret

logger = logging.getLogger(__name__)


def _json_body(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


# =============================================================================
# ElevenLabs
# =============================================================================


class ElevenLabsBuilder(RequestBuilder):
    """ElevenLabs text-to-speech."""

    BASE_URL = "https://api.elevenlabs.io/v1"
    COST_PER_CHAR = 0.00003

    info = ProviderInfo(
        id="elevenlabs",
        display_name="ElevenLabs",
        max_characters=100_000,
        setup_guide_url="https://elevenlabs.io/docs/api-reference/authentication",
    )
    options_type = ElevenLabsOptions

    def build_synthesis(self, text: str, config: VoiceConfig, options: ElevenLabsOptions) -> TransportRequest:
        payload = {
            "text": text,
            "model_id": options.model_id,
            "voice_settings": {
                "stability": options.stability,
                "similarity_boost": options.similarity_boost,
                "use_speaker_boost": options.use_speaker_boost,
            },
        }
        return TransportRequest(
            method="POST",
            url=f"{self.BASE_URL}/text-to-speech/{quote(config.voice_id, safe='')}",
            headers={"Content-Type": "application/json", "Accept": "audio/mpeg"},
            body=_json_body(payload),
        )

    def build_validation(self) -> TransportRequest:
        return TransportRequest(method="GET", url=f"{self.BASE_URL}/voices")

    def authorize(self, request: TransportRequest, secret: str) -> TransportRequest:
        return request.with_headers({"xi-api-key": require_secret(secret, self.provider_id)})

    def calculate_cost(self, characters: int, config: VoiceConfig, options: ElevenLabsOptions) -> float:
        return characters * self.COST_PER_CHAR


# =============================================================================
# Google Cloud Text-to-Speech
# =============================================================================


class GoogleBuilder(RequestBuilder):
    """Google Cloud Text-to-Speech.

    Voice ids are "languageCode/voiceName", e.g. "en-US/en-US-Neural2-A".
    A bare voice name is accepted; its language is taken from the name.
    """

    API_ROOT = "https://texttospeech.googleapis.com"
    COST_PER_CHAR_NEURAL = 0.000016
    COST_PER_CHAR_STANDARD = 0.000004
    NEURAL_MARKERS = ("Neural2", "Studio", "Chirp")

    info = ProviderInfo(
        id="google",
        display_name="Google Cloud TTS",
        max_characters=5000,
        supports_ssml=True,
        setup_guide_url="https://cloud.google.com/text-to-speech/docs/before-you-begin",
    )
    options_type = GoogleOptions

    @staticmethod
    def split_voice_id(voice_id: str) -> tuple[str, str]:
        """Return (language_code, voice_name) for a voice id."""
        if "/" in voice_id:
            language_code, _, voice_name = voice_id.partition("/")
            return language_code, voice_name
        parts = voice_id.split("-")
        language_code = "-".join(parts[:2]) if len(parts) >= 2 else "en-US"
        return language_code, voice_id

    def build_synthesis(self, text: str, config: VoiceConfig, options: GoogleOptions) -> TransportRequest:
        language_code, voice_name = self.split_voice_id(config.voice_id)
        payload = {
            "input": {"text": text},
            "voice": {
                "languageCode": options.language_code or language_code,
                "name": voice_name,
            },
            "audioConfig": {
                "audioEncoding": "LINEAR16" if config.output_format.lower() == "wav" else "MP3",
                "speakingRate": config.speed,
                "pitch": config.pitch,
                # volume is a 0-2 multiplier, Google wants a dB gain
                "volumeGainDb": (config.volume - 1.0) * 10,
            },
        }
        return TransportRequest(
            method="POST",
            url=f"{self.API_ROOT}/{options.api_version}/text:synthesize",
            headers={"Content-Type": "application/json"},
            body=_json_body(payload),
        )

    def build_validation(self) -> TransportRequest:
        return TransportRequest(method="GET", url=f"{self.API_ROOT}/v1/voices")

    def authorize(self, request: TransportRequest, secret: str) -> TransportRequest:
        key = urlencode({"key": require_secret(secret, self.provider_id)})
        separator = "&" if "?" in request.url else "?"
        return TransportRequest(
            method=request.method,
            url=f"{request.url}{separator}{key}",
            headers=dict(request.headers),
            body=request.body,
        )

    def calculate_cost(self, characters: int, config: VoiceConfig, options: GoogleOptions) -> float:
        is_neural = any(marker in config.voice_id for marker in self.NEURAL_MARKERS)
        rate = self.COST_PER_CHAR_NEURAL if is_neural else self.COST_PER_CHAR_STANDARD
        return characters * rate

    def extract_audio(self, body: bytes) -> bytes:
        """Decode the base64 audioContent field.

        Raises:
            PermanentError: If the response carries no audio
        """
        try:
            content = json.loads(body).get("audioContent")
            if not content:
                raise PermanentError("No audio data received from Google Cloud TTS")
            return base64.b64decode(content, validate=True)
        except (ValueError, AttributeError, binascii.Error) as e:
            raise PermanentError(f"Malformed Google Cloud TTS response: {e}") from e


# =============================================================================
# Azure Speech
# =============================================================================


class AzureBuilder(RequestBuilder):
    """Azure Cognitive Services Speech."""

    COST_PER_CHAR = 0.000016

    info = ProviderInfo(
        id="azure",
        display_name="Azure Speech",
        max_characters=3000,
        supports_ssml=True,
        setup_guide_url="https://learn.microsoft.com/azure/ai-services/speech-service/get-started-text-to-speech",
    )
    options_type = AzureOptions

    def __init__(self, region: str = "eastus"):
        if not region or not region.strip():
            raise ConfigurationError("Azure region cannot be empty")
        self.region = region.strip()

    @property
    def base_url(self) -> str:
        return f"https://{self.region}.tts.speech.microsoft.com/cognitiveservices"

    @staticmethod
    def build_ssml(text: str, config: VoiceConfig, options: AzureOptions) -> str:
        rate = f"{config.speed:.2f}"
        pitch = f"+{config.pitch:g}Hz" if config.pitch >= 0 else f"{config.pitch:g}Hz"
        return (
            f"<speak version='1.0' xml:lang={quoteattr(options.language)}>"
            f"<voice name={quoteattr(config.voice_id)}>"
            f"<prosody rate='{rate}' pitch='{pitch}'>{escape(text)}</prosody>"
            "</voice></speak>"
        )

    def build_synthesis(self, text: str, config: VoiceConfig, options: AzureOptions) -> TransportRequest:
        return TransportRequest(
            method="POST",
            url=f"{self.base_url}/v1",
            headers={
                "Content-Type": "application/ssml+xml",
                "X-Microsoft-OutputFormat": options.output_format,
            },
            body=self.build_ssml(text, config, options).encode("utf-8"),
        )

    def build_validation(self) -> TransportRequest:
        return TransportRequest(method="GET", url=f"{self.base_url}/voices/list")

    def authorize(self, request: TransportRequest, secret: str) -> TransportRequest:
        return request.with_headers(
            {"Ocp-Apim-Subscription-Key": require_secret(secret, self.provider_id)}
        )

    def calculate_cost(self, characters: int, config: VoiceConfig, options: AzureOptions) -> float:
        return characters * self.COST_PER_CHAR


# =============================================================================
# Deepgram
# =============================================================================


class DeepgramBuilder(RequestBuilder):
    """Deepgram Aura. The voice id is the model name, e.g. "aura-asteria-en"."""

    BASE_URL = "https://api.deepgram.com/v1"
    COST_PER_CHAR = 0.000015

    info = ProviderInfo(
        id="deepgram",
        display_name="Deepgram",
        max_characters=2000,
        setup_guide_url="https://developers.deepgram.com/docs/create-additional-api-keys",
    )
    options_type = DeepgramOptions

    def build_synthesis(self, text: str, config: VoiceConfig, options: DeepgramOptions) -> TransportRequest:
        query = urlencode({"model": config.voice_id, "encoding": options.encoding})
        return TransportRequest(
            method="POST",
            url=f"{self.BASE_URL}/speak?{query}",
            headers={"Content-Type": "application/json"},
            body=_json_body({"text": text}),
        )

    def build_validation(self) -> TransportRequest:
        # Listing projects needs a valid key and costs nothing
        return TransportRequest(method="GET", url=f"{self.BASE_URL}/projects")

    def authorize(self, request: TransportRequest, secret: str) -> TransportRequest:
        return request.with_headers(
            {"Authorization": f"Token {require_secret(secret, self.provider_id)}"}
        )

    def calculate_cost(self, characters: int, config: VoiceConfig, options: DeepgramOptions) -> float:
        return characters * self.COST_PER_CHAR


# =============================================================================
# Amazon Polly
# =============================================================================


class PollyBuilder(RequestBuilder):
    """Amazon Polly, authenticated with Signature Version 4.

    The stored secret has the form "AccessKeyId:SecretAccessKey".
    """

    SERVICE = "polly"
    COST_PER_CHAR_NEURAL = 0.000016
    COST_PER_CHAR_STANDARD = 0.000004

    info = ProviderInfo(
        id="polly",
        display_name="Amazon Polly",
        max_characters=3000,
        supports_ssml=True,
        requires_signing=True,
        setup_guide_url="https://docs.aws.amazon.com/polly/latest/dg/setting-up.html",
    )
    options_type = PollyOptions

    def __init__(self, region: str = "us-east-1"):
        if not region or not region.strip():
            raise ConfigurationError("AWS region cannot be empty")
        self.region = region.strip()

    @property
    def base_url(self) -> str:
        return f"https://polly.{self.region}.amazonaws.com/v1"

    @property
    def signing_scope(self) -> SigningScope:
        return SigningScope(region=self.region, service=self.SERVICE)

    def split_credentials(self, secret: str) -> tuple[str, str]:
        """Split "AccessKeyId:SecretAccessKey".

        Raises:
            ConfigurationError: If either half is missing
        """
        access_key, sep, secret_key = require_secret(secret, self.provider_id).partition(":")
        if not sep or not access_key.strip() or not secret_key.strip():
            raise ConfigurationError(
                "AWS credentials must be stored as AccessKeyId:SecretAccessKey"
            )
        return access_key.strip(), secret_key.strip()

    def build_synthesis(self, text: str, config: VoiceConfig, options: PollyOptions) -> TransportRequest:
        payload = {
            "Engine": options.engine,
            "OutputFormat": "mp3",
            "Text": text,
            "TextType": options.text_type,
            "VoiceId": config.voice_id,
        }
        if options.language_code:
            payload["LanguageCode"] = options.language_code
        return TransportRequest(
            method="POST",
            url=f"{self.base_url}/speech",
            headers={"Content-Type": "application/json"},
            body=_json_body(payload),
        )

    def build_validation(self) -> TransportRequest:
        return TransportRequest(method="GET", url=f"{self.base_url}/voices")

    def calculate_cost(self, characters: int, config: VoiceConfig, options: PollyOptions) -> float:
        rate = self.COST_PER_CHAR_STANDARD if options.engine == "standard" else self.COST_PER_CHAR_NEURAL
        return characters * rate
