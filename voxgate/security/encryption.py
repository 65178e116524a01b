"""Password-based encryption primitives for the credential vault.

Provides:
- PBKDF2-HMAC-SHA256 key derivation (100,000 iterations)
- AES-256-GCM encryption/decryption with a fresh 96-bit nonce per call
- Salt generation and password verifier hashing

Stored format of an encrypted value: base64(nonce || ciphertext || tag).
"""

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import DecryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # AES-256
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16
SALT_SIZE = 16
KDF_ITERATIONS = 100_000


def generate_salt() -> str:
    """Generate a new random salt.

    Returns:
        Base64-encoded 16-byte salt
    """
    return base64.b64encode(secrets.token_bytes(SALT_SIZE)).decode("ascii")


def hash_password(password: str, salt_b64: str) -> str:
    """Compute the password verifier.

    The verifier is SHA-256 over the UTF-8 password followed by the
    base64 salt text. It allows offline password checks without storing
    the password or anything the encryption key can be derived from.

    Args:
        password: Master password
        salt_b64: Base64-encoded salt as persisted

    Returns:
        Base64-encoded SHA-256 digest
    """
    digest = hashlib.sha256((password + salt_b64).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_password(password: str, salt_b64: str, expected_hash: str) -> bool:
    """Check a password against a stored verifier in constant time."""
    computed = hash_password(password, salt_b64)
    return hmac.compare_digest(computed.encode("ascii"), expected_hash.encode("ascii"))


def derive_key_from_password(
    password: str,
    salt: bytes,
    iterations: int = KDF_ITERATIONS,
) -> bytes:
    """Derive an AES-256 key from a password.

    Args:
        password: Password string
        salt: Raw salt bytes
        iterations: PBKDF2 iteration count

    Returns:
        32-byte key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt_data(data: Union[str, bytes], key: bytes) -> str:
    """Encrypt data using AES-256-GCM.

    Args:
        data: Data to encrypt (string or bytes)
        key: 256-bit encryption key

    Returns:
        Base64-encoded nonce || ciphertext || tag

    Raises:
        ValueError: If the key is not 32 bytes
    """
    if len(key) != KEY_LENGTH:
        raise ValueError("Key must be 32 bytes (256 bits)")

    if isinstance(data, str):
        data = data.encode("utf-8")

    nonce = secrets.token_bytes(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, data, None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_data(encrypted_data: str, key: bytes) -> str:
    """Decrypt data produced by encrypt_data.

    Args:
        encrypted_data: Base64-encoded nonce || ciphertext || tag
        key: 256-bit encryption key

    Returns:
        Decrypted string

    Raises:
        ValueError: If the key is not 32 bytes
        DecryptionError: If the payload is malformed or the tag does not verify
    """
    if len(key) != KEY_LENGTH:
        raise ValueError("Key must be 32 bytes (256 bits)")

    try:
        encrypted = base64.b64decode(encrypted_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Encrypted value is not valid base64: {e}") from None

    if len(encrypted) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError(
            f"Encrypted value too short: {len(encrypted)} bytes "
            f"(minimum {NONCE_SIZE + TAG_SIZE})"
        )

    nonce = encrypted[:NONCE_SIZE]
    ciphertext = encrypted[NONCE_SIZE:]

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise DecryptionError(
            "Authentication tag mismatch: wrong password or corrupted data"
        ) from None

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError(f"Decrypted value is not valid UTF-8: {e}") from None
