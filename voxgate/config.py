"""Configuration for voxgate."""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="VOXGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    store_path: Optional[str] = None  # None keeps everything in memory

    # Vault
    kdf_iterations: int = 100_000

    # Transport
    http_timeout_seconds: float = 30.0

    # Retry policy
    max_retries: int = 3
    retry_initial_delay: float = 1.0  # seconds
    retry_backoff_multiplier: float = 2.0
    retry_max_delay: float = 30.0  # seconds
    retry_use_jitter: bool = True

    # Rate limiting (requests per window)
    rate_limit_window_seconds: float = 60.0
    default_rate_limit: int = 60
    rate_limits: Dict[str, int] = Field(
        default_factory=lambda: {
            "google": 60,
            "elevenlabs": 30,
            "deepgram": 120,
            "azure": 60,
            "polly": 100,
        }
    )

    # Provider regions
    polly_region: str = "us-east-1"
    azure_region: str = "eastus"

    # Usage history
    usage_history_limit: int = 1000


settings = Settings()
