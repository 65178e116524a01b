"""Credential vault for provider API keys.

Provides:
- Master-password setup and verification (salt + verifier, never the password)
- Explicit VaultSession objects holding the password for a caller's lifetime
- AES-256-GCM encryption of secrets with a key re-derived on every call
- Secret storage under apikey_<provider_id> with re-encryption on password change

Security Note:
    Never log passwords, plaintext or ciphertext. Only provider ids.
"""

import base64
import binascii
import logging
import secrets
import threading
from typing import Optional

from ..errors import AuthenticationError, DecryptionError, UninitializedError
from .encryption import (
    KDF_ITERATIONS,
    decrypt_data,
    derive_key_from_password,
    encrypt_data,
    generate_salt,
    hash_password,
    verify_password,
)
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SALT_KEY = "encryption_salt"
PASSWORD_HASH_KEY = "password_hash"
SECRET_PREFIX = "apikey_"


class VaultSession:
    """An unlocked vault session.

    Holds the master password in memory only. Closing the session drops
    the reference; a closed session can no longer encrypt or decrypt.
    """

    def __init__(self, password: str):
        self._password: Optional[str] = password
        self.session_id = secrets.token_hex(8)

    @property
    def is_active(self) -> bool:
        """Check if the session can still be used."""
        return self._password is not None

    @property
    def password(self) -> str:
        """Master password for key derivation.

        Raises:
            UninitializedError: If the session was closed
        """
        if self._password is None:
            raise UninitializedError("Vault session is closed")
        return self._password

    def close(self) -> None:
        """End the session."""
        self._password = None

    def __repr__(self) -> str:
        state = "active" if self.is_active else "closed"
        return f"VaultSession(id={self.session_id}, {state})"


class CredentialVault:
    """Password-protected storage for provider secrets.

    Usage:
        vault = CredentialVault(MemoryStore())
        session = vault.initialize("correct-password1")
        vault.set_secret(session, "elevenlabs", "sk-abc123")
        api_key = vault.get_secret(session, "elevenlabs")
    """

    def __init__(self, store: KeyValueStore, iterations: int = KDF_ITERATIONS):
        """Initialize vault.

        Args:
            store: Persistent key/value store
            iterations: PBKDF2 iteration count
        """
        self.store = store
        self.iterations = iterations
        # Guards store reads and writes. initialize and change_password hold it
        # throughout; encrypt and decrypt only hold it to snapshot the salt.
        self._lock = threading.RLock()

    @property
    def is_setup(self) -> bool:
        """Check if a master password has been configured."""
        return bool(self.store.get(SALT_KEY)) and bool(self.store.get(PASSWORD_HASH_KEY))

    def initialize(self, master_password: str) -> VaultSession:
        """Unlock the vault, running first-time setup if needed.

        Args:
            master_password: Master password

        Returns:
            Active session

        Raises:
            ValueError: If the password is empty
            AuthenticationError: If the password does not match the stored verifier
        """
        if not master_password or not master_password.strip():
            raise ValueError("Master password cannot be empty")

        with self._lock:
            salt = self.store.get(SALT_KEY)
            if not salt:
                salt = generate_salt()
                self.store.set_many(
                    {SALT_KEY: salt, PASSWORD_HASH_KEY: hash_password(master_password, salt)}
                )
                logger.info("Vault initialized with new master password")
            elif not self._check_password(master_password, salt):
                logger.warning("Vault unlock rejected: invalid master password")
                raise AuthenticationError("Invalid master password")
            else:
                logger.info("Vault unlocked")

            return VaultSession(master_password)

    def validate_password(self, password: str) -> bool:
        """Check a password against the stored verifier.

        Works whether or not a session is active.

        Args:
            password: Candidate password

        Returns:
            True only for the configured master password
        """
        with self._lock:
            salt = self.store.get(SALT_KEY)
            if not salt:
                return False
            return self._check_password(password, salt)

    def _check_password(self, password: str, salt: str) -> bool:
        stored_hash = self.store.get(PASSWORD_HASH_KEY)
        if not stored_hash:
            return False
        return verify_password(password, salt, stored_hash)

    def _derive_key(self, password: str, salt_b64: str) -> bytes:
        try:
            salt = base64.b64decode(salt_b64, validate=True)
        except (binascii.Error, ValueError):
            raise UninitializedError("Stored salt is corrupted; reset the vault") from None
        return derive_key_from_password(password, salt, self.iterations)

    def _key_material(self, session: Optional[VaultSession]) -> tuple[str, str]:
        """Snapshot (password, salt) for key derivation. Caller holds the lock."""
        if session is None:
            raise UninitializedError("Vault is not initialized. Call initialize first.")
        password = session.password
        salt = self.store.get(SALT_KEY)
        if not salt:
            raise UninitializedError("Vault has no salt. Call initialize first.")
        return password, salt

    def encrypt(self, session: Optional[VaultSession], plaintext: str) -> str:
        """Encrypt a value under the session's master password.

        Args:
            session: Active vault session
            plaintext: Value to encrypt

        Returns:
            Base64-encoded IV || ciphertext || tag

        Raises:
            UninitializedError: If there is no active session
        """
        with self._lock:
            password, salt = self._key_material(session)
        # PBKDF2 runs outside the lock so concurrent requests derive in parallel
        return encrypt_data(plaintext, self._derive_key(password, salt))

    def decrypt(self, session: Optional[VaultSession], ciphertext: str) -> str:
        """Decrypt a value produced by encrypt.

        Args:
            session: Active vault session
            ciphertext: Base64-encoded IV || ciphertext || tag

        Returns:
            Decrypted value

        Raises:
            UninitializedError: If there is no active session
            DecryptionError: If the tag does not verify
        """
        with self._lock:
            password, salt = self._key_material(session)
        return decrypt_data(ciphertext, self._derive_key(password, salt))

    def change_password(
        self,
        session: Optional[VaultSession],
        old_password: str,
        new_password: str,
    ) -> VaultSession:
        """Change the master password and re-encrypt every stored secret.

        All secrets are decrypted with the old key before anything is
        written. If any of them cannot be decrypted, nothing changes.

        Args:
            session: Active vault session
            old_password: Current master password
            new_password: Replacement master password

        Returns:
            New session for the new password. The old session is closed.

        Raises:
            UninitializedError: If there is no active session
            AuthenticationError: If old_password is wrong
            ValueError: If new_password is empty
            DecryptionError: If a stored secret is unreadable with the old key
        """
        if session is None or not session.is_active:
            raise UninitializedError("Vault is not initialized. Call initialize first.")

        with self._lock:
            old_salt = self.store.get(SALT_KEY)
            if not old_salt or not self._check_password(old_password, old_salt):
                raise AuthenticationError("Invalid old password")

            if not new_password or not new_password.strip():
                raise ValueError("New password cannot be empty")

            old_key = self._derive_key(old_password, old_salt)
            plaintexts = {}
            for store_key in self._secret_keys():
                try:
                    plaintexts[store_key] = decrypt_data(self.store.get(store_key) or "", old_key)
                except DecryptionError as e:
                    provider_id = store_key[len(SECRET_PREFIX):]
                    raise DecryptionError(
                        f"Cannot re-encrypt secret for {provider_id}: {e}",
                        provider_id=provider_id,
                    ) from e

            new_salt = generate_salt()
            new_key = self._derive_key(new_password, new_salt)
            reencrypted = {k: encrypt_data(v, new_key) for k, v in plaintexts.items()}

            # One write: secrets, salt and verifier change together or not at all
            self.store.set_many(
                {
                    **reencrypted,
                    SALT_KEY: new_salt,
                    PASSWORD_HASH_KEY: hash_password(new_password, new_salt),
                }
            )

            session.close()
            logger.info(f"Master password changed, {len(reencrypted)} secret(s) re-encrypted")
            return VaultSession(new_password)

    def _secret_keys(self) -> list[str]:
        return sorted(k for k in self.store.keys() if k.startswith(SECRET_PREFIX))

    # ------------------------------------------------------------------
    # Provider secrets
    # ------------------------------------------------------------------

    def set_secret(self, session: Optional[VaultSession], provider_id: str, secret: str) -> None:
        """Encrypt and store a provider secret.

        Args:
            session: Active vault session
            provider_id: Provider identifier (e.g., "elevenlabs")
            secret: API key or credential string

        Raises:
            ValueError: If provider_id or secret is empty
            UninitializedError: If there is no active session
        """
        provider_id = _normalize_provider_id(provider_id)
        if not secret or not secret.strip():
            raise ValueError("Secret cannot be empty")

        with self._lock:
            password, salt = self._key_material(session)
        encrypted = encrypt_data(secret.strip(), self._derive_key(password, salt))

        with self._lock:
            if self.store.get(SALT_KEY) != salt:
                raise UninitializedError("Master password changed while storing the secret; unlock again")
            self.store.set(f"{SECRET_PREFIX}{provider_id}", encrypted)
        logger.info(f"Secret stored for provider: {provider_id}")

    def get_secret(self, session: Optional[VaultSession], provider_id: str) -> Optional[str]:
        """Read and decrypt a provider secret.

        Args:
            session: Active vault session
            provider_id: Provider identifier

        Returns:
            The secret, or None if nothing is stored for the provider

        Raises:
            UninitializedError: If there is no active session
            DecryptionError: If a secret is stored but cannot be decrypted
        """
        provider_id = _normalize_provider_id(provider_id)
        # Ciphertext and salt are read together so a concurrent password
        # change cannot pair one with the other
        with self._lock:
            encrypted = self.store.get(f"{SECRET_PREFIX}{provider_id}")
            if not encrypted:
                return None
            password, salt = self._key_material(session)
        try:
            return decrypt_data(encrypted, self._derive_key(password, salt))
        except DecryptionError as e:
            logger.warning(f"Stored secret for {provider_id} is unreadable")
            raise DecryptionError(str(e), provider_id=provider_id) from e

    def remove_secret(self, provider_id: str) -> None:
        """Delete a provider secret. Missing secrets are ignored."""
        provider_id = _normalize_provider_id(provider_id)
        with self._lock:
            self.store.delete(f"{SECRET_PREFIX}{provider_id}")
        logger.info(f"Secret removed for provider: {provider_id}")

    def has_secret(self, provider_id: str) -> bool:
        """Check if a secret is stored for a provider (without decrypting)."""
        provider_id = _normalize_provider_id(provider_id)
        return bool(self.store.get(f"{SECRET_PREFIX}{provider_id}"))

    def list_providers(self) -> list[str]:
        """List provider ids that have a stored secret."""
        with self._lock:
            return [k[len(SECRET_PREFIX):] for k in self._secret_keys()]

    def reset(self) -> None:
        """Erase the salt, verifier and every stored secret.

        The only way forward after a forgotten master password.
        """
        with self._lock:
            for store_key in self._secret_keys():
                self.store.delete(store_key)
            self.store.delete(SALT_KEY)
            self.store.delete(PASSWORD_HASH_KEY)
        logger.warning("Vault reset: all stored secrets erased")


def _normalize_provider_id(provider_id: str) -> str:
    if not provider_id or not provider_id.strip():
        raise ValueError("Provider ID cannot be empty")
    return provider_id.strip().lower()
