"""Error taxonomy for the request layer.

Provides:
- Exception hierarchy rooted at VoxgateError
- ErrorKind codes surfaced in synthesis results
- Classification of arbitrary exceptions into an ErrorKind
"""

from datetime import datetime
from enum import Enum
from typing import Optional


class VoxgateError(Exception):
    """Base class for all voxgate errors."""

    pass


class UninitializedError(VoxgateError):
    """Raised when the vault is used before a session exists."""

    pass


class AuthenticationError(VoxgateError):
    """Raised when the master password does not match the stored verifier."""

    pass


class DecryptionError(VoxgateError):
    """Raised when a stored secret fails authentication or is malformed.

    Recoverable: the secret is unusable, the session is still valid.
    """

    def __init__(self, message: str = "", provider_id: Optional[str] = None):
        super().__init__(message)
        self.provider_id = provider_id


class ConfigurationError(VoxgateError):
    """Raised when a provider cannot be called with the current setup."""

    pass


class CredentialMissingError(ConfigurationError):
    """Raised when no secret is stored for a provider."""

    pass


class RateLimitedError(VoxgateError):
    """Local admission denied. No network attempt was made."""

    def __init__(self, message: str = "", reset_at: Optional[datetime] = None):
        super().__init__(message)
        self.reset_at = reset_at


class SignatureError(VoxgateError):
    """Raised for malformed request-signing inputs."""

    pass


class TransientError(VoxgateError):
    """Failure expected to succeed on retry."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(TransientError):
    """Transport-level failure (connection refused, reset, DNS)."""

    pass


class RequestTimeoutError(TransientError):
    """An attempt exceeded its time budget."""

    def __init__(self, message: str = "", timeout: float = 0.0):
        super().__init__(message)
        self.timeout = timeout


class PermanentError(VoxgateError):
    """Non-retryable failure, typically a 4xx other than 429."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExhaustedRetriesError(VoxgateError):
    """Wraps the last transient error once retries are used up."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RequestCancelledError(VoxgateError):
    """The caller cancelled the request."""

    pass


class ErrorKind(str, Enum):
    """Stable error codes returned to the caller."""

    INVALID_INPUT = "INVALID_INPUT"
    UNINITIALIZED = "UNINITIALIZED"
    AUTHENTICATION = "AUTHENTICATION"
    CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
    CREDENTIAL_UNUSABLE = "CREDENTIAL_UNUSABLE"
    CONFIGURATION = "CONFIGURATION"
    RATE_LIMITED = "RATE_LIMITED"
    SIGNATURE = "SIGNATURE"
    TRANSIENT = "TRANSIENT"
    EXHAUSTED_RETRIES = "EXHAUSTED_RETRIES"
    PERMANENT = "PERMANENT"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


_KIND_BY_TYPE: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (UninitializedError, ErrorKind.UNINITIALIZED),
    (AuthenticationError, ErrorKind.AUTHENTICATION),
    (DecryptionError, ErrorKind.CREDENTIAL_UNUSABLE),
    (CredentialMissingError, ErrorKind.CREDENTIAL_MISSING),
    (ConfigurationError, ErrorKind.CONFIGURATION),
    (RateLimitedError, ErrorKind.RATE_LIMITED),
    (SignatureError, ErrorKind.SIGNATURE),
    (TransientError, ErrorKind.TRANSIENT),
    (ExhaustedRetriesError, ErrorKind.EXHAUSTED_RETRIES),
    (PermanentError, ErrorKind.PERMANENT),
    (RequestCancelledError, ErrorKind.CANCELLED),
    (ValueError, ErrorKind.INVALID_INPUT),
)


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to its ErrorKind.

    Args:
        error: Exception raised while handling a request

    Returns:
        Matching ErrorKind, UNKNOWN if nothing matches
    """
    for error_type, kind in _KIND_BY_TYPE:
        if isinstance(error, error_type):
            return kind
    return ErrorKind.UNKNOWN


_USER_MESSAGES = {
    ErrorKind.INVALID_INPUT: "The request is invalid. Check the text and voice settings.",
    ErrorKind.UNINITIALIZED: "Unlock the vault with your master password first.",
    ErrorKind.AUTHENTICATION: "Incorrect master password.",
    ErrorKind.CREDENTIAL_MISSING: "No API key configured for this provider. Add one in Settings.",
    ErrorKind.CREDENTIAL_UNUSABLE: "The stored API key could not be read. Please re-enter it.",
    ErrorKind.CONFIGURATION: "This provider is not configured correctly.",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded. Please wait a moment before trying again.",
    ErrorKind.SIGNATURE: "The request could not be signed. Check the provider credentials.",
    ErrorKind.TRANSIENT: "The service is temporarily unavailable. Please try again.",
    ErrorKind.EXHAUSTED_RETRIES: "The service did not respond after several attempts. Please try again later.",
    ErrorKind.PERMANENT: "The provider rejected the request. Check your API key and settings.",
    ErrorKind.CANCELLED: "The request was cancelled.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}


def user_message(kind: ErrorKind) -> str:
    """Get a short user-facing message for an error kind."""
    return _USER_MESSAGES.get(kind, _USER_MESSAGES[ErrorKind.UNKNOWN])
