"""Tests for security module."""

import pytest


def test_security_imports():
    """Test that security module can be imported."""
    from voxgate.security import (
        CredentialVault,
        VaultSession,
        RequestSigner,
        RateLimiter,
        RateLimitConfig,
        RateLimitInfo,
        TokenBucket,
        MemoryStore,
        JsonFileStore,
        open_store,
        encrypt_data,
        decrypt_data,
        derive_key_from_password,
    )

    assert CredentialVault is not None
    assert RequestSigner is not None
    assert RateLimiter is not None
    assert MemoryStore is not None
