"""
Token Encryption
================

Authenticated symmetric encryption for credentials stored at rest,
such as WhatsApp access tokens.

Security Features:
    - AES-256-GCM with a random 16-byte IV per call
    - 128-bit authentication tag, verified on every decrypt
    - Key derived once from a secret with scrypt and a fixed salt

Stored format (each part hex encoded):

    <iv>:<auth tag>:<ciphertext>

Usage:
    encryptor = TokenEncryptor(os.environ["ENCRYPTION_KEY"])
    stored = encryptor.encrypt(access_token)
    access_token = encryptor.decrypt(stored)
"""

import hashlib
import os
import secrets
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

logger = structlog.get_logger(__name__)


KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16

# scrypt parameters and salt must never change, or stored tokens become unreadable
KDF_SALT = b"salt"
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


class EncryptionError(Exception):
    """Base exception for encryption failures."""
    pass


class EncryptionConfigError(EncryptionError):
    """The encryption secret is missing or unusable."""
    pass


class DecryptionError(EncryptionError):
    """Ciphertext is malformed or failed authentication."""
    pass


def derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from a secret string."""
    kdf = Scrypt(
        salt=KDF_SALT,
        length=KEY_LENGTH,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )
    return kdf.derive(secret.encode("utf-8"))


class TokenEncryptor:
    """AES-256-GCM encryptor holding a key derived at construction.

    Build one per process and pass it to whatever needs it.

    Args:
        secret: Secret the key is derived from. Must be non-empty.

    Raises:
        EncryptionConfigError: If the secret is missing.
    """

    def __init__(self, secret: Optional[str]):
        if not secret:
            raise EncryptionConfigError(
                "ENCRYPTION_KEY must be set to store access tokens"
            )
        self._aesgcm = AESGCM(derive_key(secret))

    @classmethod
    def from_env(cls, var: str = "ENCRYPTION_KEY") -> "TokenEncryptor":
        return cls(os.getenv(var))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string into ``iv:tag:ciphertext`` hex form."""
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the tag to the ciphertext
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises:
            DecryptionError: On a malformed value or a failed tag check.
        """
        parts = encrypted.split(":") if isinstance(encrypted, str) else []
        if len(parts) != 3:
            raise DecryptionError("Invalid encrypted text format")

        try:
            iv = bytes.fromhex(parts[0])
            tag = bytes.fromhex(parts[1])
            ciphertext = bytes.fromhex(parts[2])
        except ValueError as e:
            raise DecryptionError("Invalid encrypted text encoding") from e

        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise DecryptionError("Invalid IV or authentication tag length")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.warning("token_decryption_failed", reason="authentication tag mismatch")
            raise DecryptionError("Authentication tag verification failed") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not valid UTF-8") from e

    @staticmethod
    def generate_random_string(length: int = 32) -> str:
        """Random hex string of ``length`` bytes."""
        return secrets.token_hex(length)

    @staticmethod
    def hash(value: str) -> str:
        """SHA-256 hex digest of a string."""
        return hashlib.sha256(value.encode("utf-8")).hexdigest()


__all__ = [
    "EncryptionError",
    "EncryptionConfigError",
    "DecryptionError",
    "derive_key",
    "TokenEncryptor",
]
