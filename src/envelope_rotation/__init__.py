"""
Envelope Rotation

Versioned AES-256-GCM encryption of sensitive fields with transparent key
rotation.

Overview
--------
A field is encrypted under the active version of a named key family and
stored as a self-describing envelope::

    1:<key_version>:<b64 nonce>:<b64 tag>:<b64 ciphertext>

When the active version changes, stale envelopes are re-encrypted either
lazily (on read) or in bulk (scan of every record).

Quick Start
-----------
```python
import asyncio
from envelope_rotation import (
    EnvelopeService,
    InMemoryKeyProvider,
    InMemoryRecordStore,
)

async def main():
    keys = InMemoryKeyProvider()
    keys.add_version("v1", bytes(32), activate=True)
    service = EnvelopeService(keys, InMemoryRecordStore())

    await service.store_encrypted("alice", b"hunter2")

    # Activate a new key version; reads rotate stale records transparently
    keys.add_version("v2", b"\\x01" * 32, activate=True)
    result = await service.read("alice")
    assert result.rotated and result.new_version == "v2"

    # Or rotate everything at once
    report = await service.rotate_all()

asyncio.run(main())
```

Modules
-------
- `crypto`: AES-256-GCM primitives and key wrappers
- `codec`: Envelope wire format
- `key_provider`: Key family read contract (in-memory, environment)
- `storage`: Record store interface and in-memory implementation
- `postgres_storage`: PostgreSQL record store and key provider
- `envelope`: Encryptor and Decryptor
- `rotation`: Lazy and bulk rotation
- `service`: Boundary API
- `config`: Environment configuration
- `errors`: Error types and exception classes
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    KeyMaterial,
    SealedData,
    SecureKey,
    generate_key_base64,
    generate_random_bytes,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    AuthenticationFailureError,
    ConfigError,
    EnvelopeError,
    ErrorKind,
    InvalidKeyMaterialError,
    KeyNotFoundError,
    KeyProviderUnavailableError,
    MalformedEnvelopeError,
    RecordNotFoundError,
    StoreUnavailableError,
    UnsupportedFormatVersionError,
)

# =============================================================================
# Codec, Keys and Storage Exports
# =============================================================================

from .codec import FORMAT_VERSION, CipherEnvelope, decode, encode

from .key_provider import (
    EnvKeyProvider,
    InMemoryKeyProvider,
    KeyProvider,
    SecretKeyProvider,
)

from .storage import InMemoryRecordStore, RecordStore

from .postgres_storage import PostgresKeyProvider, PostgresRecordStore

# =============================================================================
# Service Exports (Primary API)
# =============================================================================

from .envelope import Decryptor, EncryptionResult, Encryptor

from .rotation import (
    BulkRotationResult,
    LazyReadResult,
    RecordFailure,
    RewriteResult,
    RotationCoordinator,
)

from .config import ServiceConfig

from .service import EnvelopeService

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "KeyMaterial",
    "SealedData",
    "SecureKey",
    "generate_key_base64",
    "generate_random_bytes",
    # Errors
    "EnvelopeError",
    "ErrorKind",
    "KeyNotFoundError",
    "InvalidKeyMaterialError",
    "KeyProviderUnavailableError",
    "MalformedEnvelopeError",
    "UnsupportedFormatVersionError",
    "AuthenticationFailureError",
    "StoreUnavailableError",
    "RecordNotFoundError",
    "ConfigError",
    # Codec
    "FORMAT_VERSION",
    "CipherEnvelope",
    "encode",
    "decode",
    # Keys
    "KeyProvider",
    "SecretKeyProvider",
    "InMemoryKeyProvider",
    "EnvKeyProvider",
    "PostgresKeyProvider",
    # Storage
    "RecordStore",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    # Service (Primary API)
    "Encryptor",
    "Decryptor",
    "EncryptionResult",
    "RotationCoordinator",
    "RewriteResult",
    "LazyReadResult",
    "BulkRotationResult",
    "RecordFailure",
    "ServiceConfig",
    "EnvelopeService",
]
