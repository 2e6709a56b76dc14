"""
Envelope codec.

Wire format, stable across implementations::

    1:<key_version>:<b64 nonce>:<b64 tag>:<b64 ciphertext>

Example: ``1:v3:Ab3x...==:Tg8k...==:Ph2Z...==``
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

from .crypto import NONCE_SIZE, TAG_SIZE, SealedData
from .errors import MalformedEnvelopeError, UnsupportedFormatVersionError

FORMAT_VERSION = "1"
FIELD_SEPARATOR = ":"
FIELD_COUNT = 5


@dataclass(frozen=True)
class CipherEnvelope:
    """Parsed envelope. Rotation produces a new envelope, never mutates one."""

    format_version: str
    key_version: str
    nonce: bytes
    tag: bytes
    ciphertext: bytes

    @property
    def sealed(self) -> SealedData:
        return SealedData(nonce=self.nonce, tag=self.tag, ciphertext=self.ciphertext)

    def encode(self) -> str:
        return encode(self.key_version, self.nonce, self.tag, self.ciphertext)


def _b64(data: bytes) -> str:
    return base64.standard_b64encode(data).decode("ascii")


def _unb64(segment: str, name: str) -> bytes:
    try:
        return base64.b64decode(segment, validate=True)
    except (binascii.Error, ValueError):
        raise MalformedEnvelopeError(f"Envelope {name} segment is not valid base64") from None


def encode(key_version: str, nonce: bytes, tag: bytes, ciphertext: bytes) -> str:
    """
    Serialize envelope fields into the five-field colon format.

    Raises:
        MalformedEnvelopeError: If the key version would break the format
    """
    if not key_version or FIELD_SEPARATOR in key_version:
        raise MalformedEnvelopeError("Key version must be non-empty and contain no ':'")
    return FIELD_SEPARATOR.join(
        (FORMAT_VERSION, key_version, _b64(nonce), _b64(tag), _b64(ciphertext))
    )


def decode(value: str) -> CipherEnvelope:
    """
    Parse a serialized envelope.

    Raises:
        MalformedEnvelopeError: Wrong field count, bad base64, or bad nonce/tag length
        UnsupportedFormatVersionError: First field is not the supported version
    """
    if not isinstance(value, str) or not value:
        raise MalformedEnvelopeError("Empty envelope")

    parts = value.split(FIELD_SEPARATOR)
    if len(parts) != FIELD_COUNT:
        raise MalformedEnvelopeError(
            f"Expected {FIELD_COUNT} envelope fields, got {len(parts)}"
        )

    format_version, key_version, nonce_b64, tag_b64, ct_b64 = parts
    if format_version != FORMAT_VERSION:
        raise UnsupportedFormatVersionError(
            f"Unsupported envelope format version {format_version!r}"
        )
    if not key_version:
        raise MalformedEnvelopeError("Envelope key version is empty")

    nonce = _unb64(nonce_b64, "nonce")
    tag = _unb64(tag_b64, "tag")
    ciphertext = _unb64(ct_b64, "ciphertext")

    if len(nonce) != NONCE_SIZE:
        raise MalformedEnvelopeError(
            f"Invalid nonce size: expected {NONCE_SIZE}, got {len(nonce)}"
        )
    if len(tag) != TAG_SIZE:
        raise MalformedEnvelopeError(
            f"Invalid tag size: expected {TAG_SIZE}, got {len(tag)}"
        )

    return CipherEnvelope(
        format_version=format_version,
        key_version=key_version,
        nonce=nonce,
        tag=tag,
        ciphertext=ciphertext,
    )
