"""
Cryptographic primitives for AES-256-GCM field encryption.

This module provides:
- SecureKey: Secure key wrapper with best-effort zeroization
- KeyMaterial: A SecureKey labelled with the key version it belongs to
- SealedData: Nonce, ciphertext and detached authentication tag
- AesGcmCipher: AES-256-GCM encryption/decryption operations
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailureError, InvalidKeyMaterialError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)


class SecureKey:
    """
    Secure key wrapper with automatic memory cleanup on deletion.

    Uses bytearray internally for mutable zeroing in __del__.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise InvalidKeyMaterialError("Key must be bytes or bytearray")
        if len(key_bytes) != AES_256_KEY_SIZE:
            raise InvalidKeyMaterialError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key_bytes)}"
            )
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    @classmethod
    def from_base64(cls, encoded: str | bytes) -> SecureKey:
        """
        Decode a base64-encoded key.

        Raises:
            InvalidKeyMaterialError: If the value is not base64 or not 32 bytes
        """
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidKeyMaterialError("Key material is not valid base64") from None
        return cls(decoded)

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def wipe(self) -> None:
        """Zero the key buffer."""
        for i in range(len(self._bytes)):
            self._bytes[i] = 0

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            self.wipe()


@dataclass(frozen=True)
class KeyMaterial:
    """
    Key bytes for one key version.

    Borrowed for a single encrypt/decrypt call; never cached.
    """

    version_id: str
    key: SecureKey

    def __repr__(self) -> str:
        return f"KeyMaterial(version_id={self.version_id!r}, key=[REDACTED])"


@dataclass(frozen=True)
class SealedData:
    """AES-GCM output with the authentication tag detached from the ciphertext."""

    nonce: bytes  # 12 bytes
    tag: bytes  # 16 bytes
    ciphertext: bytes


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    No additional authenticated data is bound; envelopes carry everything
    needed to decrypt except the key itself.
    """

    @staticmethod
    def encrypt(key: SecureKey, plaintext: bytes) -> SealedData:
        """
        Encrypt plaintext under a fresh random nonce.

        Args:
            key: 32-byte encryption key
            plaintext: Data to encrypt

        Returns:
            SealedData with nonce, tag and ciphertext
        """
        if len(key) != AES_256_KEY_SIZE:
            raise InvalidKeyMaterialError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = AESGCM(key.as_bytes()).encrypt(nonce, plaintext, None)

        # AESGCM appends the tag to the ciphertext
        return SealedData(
            nonce=nonce,
            tag=sealed[-TAG_SIZE:],
            ciphertext=sealed[:-TAG_SIZE],
        )

    @staticmethod
    def decrypt(key: SecureKey, sealed: SealedData) -> bytes:
        """
        Decrypt and verify AES-256-GCM ciphertext.

        Args:
            key: 32-byte decryption key
            sealed: Nonce, tag and ciphertext

        Returns:
            Decrypted plaintext bytes

        Raises:
            InvalidKeyMaterialError: If key size is invalid
            AuthenticationFailureError: If the tag does not verify
        """
        if len(key) != AES_256_KEY_SIZE:
            raise InvalidKeyMaterialError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        if len(sealed.nonce) != NONCE_SIZE or len(sealed.tag) != TAG_SIZE:
            raise AuthenticationFailureError("Decryption failed")

        aesgcm = AESGCM(key.as_bytes())

        try:
            return aesgcm.decrypt(sealed.nonce, sealed.ciphertext + sealed.tag, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise AuthenticationFailureError("Decryption failed") from None


def generate_random_bytes(length: int) -> bytes:
    """Generate cryptographically secure random bytes."""
    return secrets.token_bytes(length)


def generate_key_base64() -> str:
    """Generate a random 32-byte key and return it base64-encoded for operators."""
    return base64.b64encode(generate_random_bytes(AES_256_KEY_SIZE)).decode("ascii")
