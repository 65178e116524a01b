"""Tests for error classification."""

import pytest

from voxgate.errors import (
    AuthenticationError,
    ConfigurationError,
    CredentialMissingError,
    DecryptionError,
    ErrorKind,
    ExhaustedRetriesError,
    NetworkError,
    PermanentError,
    RateLimitedError,
    RequestCancelledError,
    RequestTimeoutError,
    SignatureError,
    TransientError,
    UninitializedError,
    classify_error,
    user_message,
)


class TestClassifyError:
    """Test mapping exceptions to error kinds."""

    @pytest.mark.parametrize(
        "error, kind",
        [
            (UninitializedError("locked"), ErrorKind.UNINITIALIZED),
            (AuthenticationError("bad password"), ErrorKind.AUTHENTICATION),
            (DecryptionError("tampered", "google"), ErrorKind.CREDENTIAL_UNUSABLE),
            (CredentialMissingError("none"), ErrorKind.CREDENTIAL_MISSING),
            (ConfigurationError("region"), ErrorKind.CONFIGURATION),
            (RateLimitedError("slow down"), ErrorKind.RATE_LIMITED),
            (SignatureError("bad url"), ErrorKind.SIGNATURE),
            (NetworkError("reset"), ErrorKind.TRANSIENT),
            (RequestTimeoutError("slow", 30.0), ErrorKind.TRANSIENT),
            (ExhaustedRetriesError("gave up", 4, TransientError("503")), ErrorKind.EXHAUSTED_RETRIES),
            (PermanentError("401", 401), ErrorKind.PERMANENT),
            (RequestCancelledError("stop"), ErrorKind.CANCELLED),
            (ValueError("empty text"), ErrorKind.INVALID_INPUT),
            (RuntimeError("surprise"), ErrorKind.UNKNOWN),
        ],
    )
    def test_classification(self, error, kind):
        """Test each exception type maps to its kind."""
        assert classify_error(error) == kind

    def test_missing_credential_is_configuration_error(self):
        """Test that the more specific kind wins for subclasses."""
        error = CredentialMissingError("none")
        assert isinstance(error, ConfigurationError)
        assert classify_error(error) == ErrorKind.CREDENTIAL_MISSING


class TestErrorAttributes:
    """Test data carried by exceptions."""

    def test_status_codes(self):
        """Test HTTP status on transient and permanent errors."""
        assert TransientError("busy", 503).status_code == 503
        assert PermanentError("bad", 400).status_code == 400

    def test_decryption_error_provider(self):
        """Test that the affected provider is recorded."""
        assert DecryptionError("bad", "azure").provider_id == "azure"

    def test_error_kind_is_string(self):
        """Test that error kinds serialize as plain strings."""
        assert ErrorKind.RATE_LIMITED == "RATE_LIMITED"


class TestUserMessage:
    """Test user-facing messages."""

    def test_every_kind_has_message(self):
        """Test that no kind falls through to an empty message."""
        for kind in ErrorKind:
            assert user_message(kind)

    def test_rate_limit_message(self):
        """Test a specific message."""
        assert "Rate limit" in user_message(ErrorKind.RATE_LIMITED)
