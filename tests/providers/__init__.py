"""Tests for providers module."""

import pytest


def test_providers_imports():
    """Test that provider builders can be imported."""
    from voxgate.providers import (
        ProviderRegistry,
        ElevenLabsBuilder,
        GoogleBuilder,
        AzureBuilder,
        DeepgramBuilder,
        PollyBuilder,
        TransportRequest,
    )

    assert ProviderRegistry is not None
    assert PollyBuilder is not None
