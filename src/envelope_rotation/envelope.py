"""
Field encryption and decryption with versioned envelopes.

This module provides:
- Encryptor: Seals plaintext under the currently active key version
- Decryptor: Opens an envelope with the key version named inside it
- EncryptionResult: Serialized envelope plus the key version used

Key material is fetched from the provider for every call and wiped as soon
as the call completes; nothing is cached here.

Security Note:
    Never log plaintext, ciphertext, nonces or tags.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from . import codec
from .codec import CipherEnvelope
from .crypto import AesGcmCipher, KeyMaterial
from .key_provider import KeyProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptionResult:
    """Result of an encrypt operation."""

    envelope: str
    key_version: str


def _to_bytes(plaintext: Union[bytes, str]) -> bytes:
    if isinstance(plaintext, str):
        return plaintext.encode("utf-8")
    return bytes(plaintext)


class Encryptor:
    """Encrypts under the key provider's active version."""

    def __init__(self, key_provider: KeyProvider) -> None:
        self._keys = key_provider

    async def encrypt(self, plaintext: Union[bytes, str]) -> EncryptionResult:
        """
        Encrypt plaintext under the current key.

        Args:
            plaintext: Data to encrypt (str is UTF-8 encoded)

        Returns:
            EncryptionResult with the envelope string and key version

        Raises:
            KeyProviderUnavailableError: If the key store cannot be reached
            KeyNotFoundError: If no active key is configured
            InvalidKeyMaterialError: If the active key is not 32 bytes
        """
        material = await self._keys.current()
        try:
            return self.encrypt_with(material, plaintext)
        finally:
            material.key.wipe()

    @staticmethod
    def encrypt_with(material: KeyMaterial, plaintext: Union[bytes, str]) -> EncryptionResult:
        """Encrypt under already-fetched key material. Does not wipe the key."""
        sealed = AesGcmCipher.encrypt(material.key, _to_bytes(plaintext))
        envelope = codec.encode(
            material.version_id, sealed.nonce, sealed.tag, sealed.ciphertext
        )
        return EncryptionResult(envelope=envelope, key_version=material.version_id)


class Decryptor:
    """Decrypts envelopes using the key version recorded in each envelope."""

    def __init__(self, key_provider: KeyProvider) -> None:
        self._keys = key_provider

    async def decrypt(self, envelope: str) -> bytes:
        """
        Decrypt a serialized envelope.

        Raises:
            MalformedEnvelopeError: If the envelope cannot be parsed
            UnsupportedFormatVersionError: If the format version is unknown
            KeyNotFoundError: If the envelope's key version has no material
            AuthenticationFailureError: If the tag does not verify
        """
        return await self.decrypt_envelope(codec.decode(envelope))

    async def decrypt_envelope(self, envelope: CipherEnvelope) -> bytes:
        """Decrypt an already-parsed envelope."""
        material = await self._keys.by_version(envelope.key_version)
        try:
            return AesGcmCipher.decrypt(material.key, envelope.sealed)
        finally:
            material.key.wipe()
