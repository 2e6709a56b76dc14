"""
Exception classes for envelope encryption and key rotation.

Every exception carries an ``ErrorKind`` so callers (and bulk rotation
results) can discriminate failures without matching on message text.
Messages name identities, key versions and error kinds only, never key
material, nonces, tags or plaintext.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Closed set of failure kinds."""

    KEY_NOT_FOUND = "KeyNotFound"
    INVALID_KEY_MATERIAL = "InvalidKeyMaterial"
    KEY_PROVIDER_UNAVAILABLE = "KeyProviderUnavailable"
    MALFORMED_ENVELOPE = "MalformedEnvelope"
    UNSUPPORTED_FORMAT_VERSION = "UnsupportedFormatVersion"
    AUTHENTICATION_FAILURE = "AuthenticationFailure"
    STORE_UNAVAILABLE = "StoreUnavailable"
    RECORD_NOT_FOUND = "RecordNotFound"
    CONFIG = "Config"

    def __str__(self) -> str:
        return self.value


class EnvelopeError(Exception):
    """Base exception for all envelope encryption operations."""

    kind: ErrorKind


class KeyNotFoundError(EnvelopeError):
    """No key material for the requested version, or no active key configured."""

    kind = ErrorKind.KEY_NOT_FOUND


class InvalidKeyMaterialError(EnvelopeError):
    """Key material is not a valid 32-byte AES-256 key."""

    kind = ErrorKind.INVALID_KEY_MATERIAL


class KeyProviderUnavailableError(EnvelopeError):
    """The external key store could not be reached."""

    kind = ErrorKind.KEY_PROVIDER_UNAVAILABLE


class MalformedEnvelopeError(EnvelopeError):
    """Envelope has the wrong field count or an undecodable segment."""

    kind = ErrorKind.MALFORMED_ENVELOPE


class UnsupportedFormatVersionError(EnvelopeError):
    """Envelope format version is not recognized."""

    kind = ErrorKind.UNSUPPORTED_FORMAT_VERSION


class AuthenticationFailureError(EnvelopeError):
    """Authentication tag did not verify (tampered or wrong-key ciphertext)."""

    kind = ErrorKind.AUTHENTICATION_FAILURE


class StoreUnavailableError(EnvelopeError):
    """Record store I/O failed."""

    kind = ErrorKind.STORE_UNAVAILABLE


class RecordNotFoundError(EnvelopeError):
    """No stored envelope for the requested identity."""

    kind = ErrorKind.RECORD_NOT_FOUND


class ConfigError(EnvelopeError):
    """Configuration error."""

    kind = ErrorKind.CONFIG
