"""Security module for voxgate.

This module provides:
- Password-protected credential vault
- AES-256-GCM data encryption
- AWS Signature Version 4 request signing
- Per-provider rate limiting
- Key/value storage backends
"""

from .encryption import decrypt_data, derive_key_from_password, encrypt_data
from .rate_limiter import RateLimitConfig, RateLimiter, RateLimitInfo, TokenBucket
from .signing import RequestSigner
from .storage import JsonFileStore, KeyValueStore, MemoryStore, open_store
from .vault import CredentialVault, VaultSession

__all__ = [
    "CredentialVault",
    "VaultSession",
    "RequestSigner",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitInfo",
    "TokenBucket",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "open_store",
    "encrypt_data",
    "decrypt_data",
    "derive_key_from_password",
]
