"""HMAC-chained request signing (AWS Signature Version 4).

Provides:
- Canonical request construction (URI, query, headers, payload hash)
- String-to-sign and credential scope
- Derived signing key and Authorization header

Signing is a pure function of its inputs: the same timestamp is written to
the X-Amz-Date header and used in the signature, and identical inputs give
byte-identical output.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Union
from urllib.parse import parse_qsl, quote, urlsplit

from ..errors import SignatureError

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"

DATE_HEADER = "X-Amz-Date"
CONTENT_SHA256_HEADER = "X-Amz-Content-Sha256"

# Headers a transport may add or rewrite after signing
UNSIGNED_HEADERS = frozenset({"connection", "user-agent", "accept-encoding"})

HeadersInput = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac_sha256(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def _header_items(headers: Optional[HeadersInput]) -> list[tuple[str, str]]:
    if headers is None:
        return []
    if isinstance(headers, Mapping):
        return [(str(k), str(v)) for k, v in headers.items()]
    return [(str(k), str(v)) for k, v in headers]


def format_timestamp(timestamp: Union[datetime, str]) -> str:
    """Normalize a signing timestamp to YYYYMMDDTHHMMSSZ.

    Args:
        timestamp: Timezone-aware datetime, or an already formatted string

    Returns:
        Timestamp string used verbatim in the header and the signature

    Raises:
        SignatureError: If the timestamp is naive or not in the expected format
    """
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            raise SignatureError("Signing timestamp must be timezone-aware")
        return timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)

    try:
        datetime.strptime(timestamp, TIMESTAMP_FORMAT)
    except (TypeError, ValueError):
        raise SignatureError(
            f"Signing timestamp {timestamp!r} is not in YYYYMMDDTHHMMSSZ format"
        ) from None
    return timestamp


class RequestSigner:
    """Builds AWS Signature Version 4 headers for a request.

    Usage:
        signer = RequestSigner()
        headers = signer.sign(
            "POST", "https://polly.us-east-1.amazonaws.com/v1/speech",
            {"Content-Type": "application/json"}, body,
            access_key, secret_key, "us-east-1", "polly",
            datetime.now(timezone.utc),
        )
    """

    def __init__(self, unsigned_headers: Iterable[str] = UNSIGNED_HEADERS):
        self.unsigned_headers = frozenset(h.lower() for h in unsigned_headers)

    @staticmethod
    def canonical_uri(path: str) -> str:
        """Request path, unmodified ("/" when empty)."""
        return path or "/"

    @staticmethod
    def canonical_query_string(query: str) -> str:
        """Encode query parameters and sort them by key, then value."""
        if not query:
            return ""
        params = [
            (quote(key, safe="-_.~"), quote(value, safe="-_.~"))
            for key, value in parse_qsl(query, keep_blank_values=True)
        ]
        params.sort()
        return "&".join(f"{key}={value}" for key, value in params)

    def canonical_headers(self, headers: Optional[HeadersInput]) -> tuple[str, str]:
        """Build the canonical header block and the signed-header list.

        Args:
            headers: Request headers (mapping or name/value pairs)

        Returns:
            Tuple of (canonical headers ending in a newline, signed headers)
        """
        merged: dict[str, list[str]] = {}
        for name, value in _header_items(headers):
            lname = name.strip().lower()
            if lname in self.unsigned_headers:
                continue
            value = value.strip()
            if value:
                merged.setdefault(lname, []).append(value)

        names = sorted(merged)
        canonical = "".join(f"{name}:{','.join(merged[name])}\n" for name in names)
        return canonical, ";".join(names)

    @staticmethod
    def payload_hash(body: Optional[Union[bytes, str]]) -> str:
        """Hex SHA-256 of the body (hash of zero bytes when empty)."""
        if body is None:
            body = b""
        elif isinstance(body, str):
            body = body.encode("utf-8")
        return _sha256_hex(body)

    @staticmethod
    def credential_scope(date_stamp: str, region: str, service: str) -> str:
        return f"{date_stamp}/{region}/{service}/{SCOPE_TERMINATOR}"

    @staticmethod
    def string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
        return "\n".join(
            [ALGORITHM, amz_date, scope, _sha256_hex(canonical_request.encode("utf-8"))]
        )

    @staticmethod
    def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
        """Derive the scoped signing key through the HMAC chain."""
        k_date = _hmac_sha256(f"{KEY_PREFIX}{secret_key}".encode("utf-8"), date_stamp)
        k_region = _hmac_sha256(k_date, region)
        k_service = _hmac_sha256(k_region, service)
        return _hmac_sha256(k_service, SCOPE_TERMINATOR)

    def canonical_request(
        self,
        method: str,
        url: str,
        headers: Optional[HeadersInput],
        payload_hash: str,
    ) -> tuple[str, str]:
        """Build the canonical request.

        Args:
            method: HTTP method
            url: Absolute request URL
            headers: Headers to sign (already including date and payload hash)
            payload_hash: Hex SHA-256 of the body

        Returns:
            Tuple of (canonical request, signed headers)
        """
        parts = _split_url(url)
        canonical_headers, signed_headers = self.canonical_headers(headers)
        canonical = "\n".join(
            [
                method.upper(),
                self.canonical_uri(parts.path),
                self.canonical_query_string(parts.query),
                canonical_headers,
                signed_headers,
                payload_hash,
            ]
        )
        return canonical, signed_headers

    def sign(
        self,
        method: str,
        url: str,
        headers: Optional[HeadersInput],
        body: Optional[Union[bytes, str]],
        access_key: str,
        secret_key: str,
        region: str,
        service: str,
        timestamp: Union[datetime, str],
    ) -> dict[str, str]:
        """Sign a request.

        Args:
            method: HTTP method
            url: Absolute request URL
            headers: Request headers to include in the signature
            body: Request body
            access_key: Access key id
            secret_key: Secret access key
            region: Service region (e.g., "us-east-1")
            service: Service name (e.g., "polly")
            timestamp: Request time, written verbatim to X-Amz-Date

        Returns:
            The input headers plus Host, X-Amz-Date, X-Amz-Content-Sha256
            and Authorization

        Raises:
            SignatureError: If any signing input is malformed
        """
        if not method or not method.strip():
            raise SignatureError("HTTP method is required")
        for name, value in (
            ("access_key", access_key),
            ("secret_key", secret_key),
            ("region", region),
            ("service", service),
        ):
            if not value or not value.strip():
                raise SignatureError(f"{name} is required for request signing")

        parts = _split_url(url)
        amz_date = format_timestamp(timestamp)
        date_stamp = amz_date[:8]
        content_hash = self.payload_hash(body)

        reserved = {"host", DATE_HEADER.lower(), CONTENT_SHA256_HEADER.lower(), "authorization"}
        items = _header_items(headers)
        host = next((v for k, v in items if k.lower() == "host"), parts.netloc)
        signed: dict[str, str] = {k: v for k, v in items if k.lower() not in reserved}
        signed["Host"] = host
        signed[DATE_HEADER] = amz_date
        signed[CONTENT_SHA256_HEADER] = content_hash

        canonical, signed_headers = self.canonical_request(method, url, signed, content_hash)
        scope = self.credential_scope(date_stamp, region, service)
        to_sign = self.string_to_sign(amz_date, scope, canonical)
        signing_key = self.derive_signing_key(secret_key, date_stamp, region, service)
        signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        logger.debug(f"Canonical request for {service}/{region}:\n{canonical}")

        signed["Authorization"] = (
            f"{ALGORITHM} Credential={access_key}/{scope}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
        return signed


def _split_url(url: str):
    try:
        parts = urlsplit(url)
    except (TypeError, ValueError) as e:
        raise SignatureError(f"Cannot parse request URL: {e}") from None
    if not parts.scheme or not parts.netloc:
        raise SignatureError(f"Request URL must be absolute: {url!r}")
    return parts
