"""
Envelope service: the boundary API wrapped by HTTP handlers or the CLI.

Operations:
- ``encrypt(plaintext)`` -> envelope and key version (no persistence)
- ``store_encrypted(identity, plaintext)`` -> encrypt and persist
- ``decrypt_with_lazy_rotation(identity, envelope)`` -> plaintext, rotating if stale
- ``read(identity)`` -> load from the store, then decrypt with lazy rotation
- ``rotate_all()`` -> bulk rotation report
- ``list_key_versions()`` -> version ids of the key family
"""

from __future__ import annotations

from typing import List, Union

import asyncpg

from .config import ServiceConfig
from .envelope import Decryptor, EncryptionResult, Encryptor
from .errors import RecordNotFoundError
from .key_provider import EnvKeyProvider, KeyProvider
from .postgres_storage import PostgresKeyProvider, PostgresRecordStore
from .rotation import (
    DEFAULT_ROTATION_CONCURRENCY,
    BulkRotationResult,
    LazyReadResult,
    RotationCoordinator,
)
from .storage import DEFAULT_SCAN_BATCH_SIZE, RecordStore


class EnvelopeService:
    """
    Field encryption with transparent key rotation.

    All collaborators are passed in explicitly; the service holds no
    process-wide state.
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        store: RecordStore,
        rotation_concurrency: int = DEFAULT_ROTATION_CONCURRENCY,
        rotation_batch_size: int = DEFAULT_SCAN_BATCH_SIZE,
    ) -> None:
        self._keys = key_provider
        self._store = store
        self._encryptor = Encryptor(key_provider)
        self._decryptor = Decryptor(key_provider)
        self._rotation = RotationCoordinator(
            key_provider,
            store,
            concurrency=rotation_concurrency,
            batch_size=rotation_batch_size,
            decryptor=self._decryptor,
        )

    @classmethod
    async def from_config(
        cls, config: ServiceConfig, pool: asyncpg.Pool
    ) -> EnvelopeService:
        """
        Build a PostgreSQL-backed service (async factory method).

        Args:
            config: Service configuration
            pool: asyncpg connection pool

        Returns:
            EnvelopeService instance
        """
        store = PostgresRecordStore(pool, table=config.record_table)
        await store.ensure_schema()

        key_provider: KeyProvider
        if config.key_backend == "postgres":
            pg_keys = PostgresKeyProvider(pool, family=config.key_family)
            await pg_keys.ensure_schema()
            key_provider = pg_keys
        else:
            key_provider = EnvKeyProvider(family=config.key_family)

        return cls(
            key_provider,
            store,
            rotation_concurrency=config.rotation_concurrency,
            rotation_batch_size=config.rotation_batch_size,
        )

    @property
    def key_provider(self) -> KeyProvider:
        return self._keys

    @property
    def store(self) -> RecordStore:
        return self._store

    async def encrypt(self, plaintext: Union[bytes, str]) -> EncryptionResult:
        """Encrypt under the active key. Persistence is the caller's concern."""
        return await self._encryptor.encrypt(plaintext)

    async def decrypt(self, envelope: str) -> bytes:
        """Decrypt without rotating."""
        return await self._decryptor.decrypt(envelope)

    async def store_encrypted(
        self, identity: str, plaintext: Union[bytes, str]
    ) -> EncryptionResult:
        """Encrypt and persist the envelope for an identity."""
        result = await self._encryptor.encrypt(plaintext)
        await self._store.put(identity, result.envelope)
        return result

    async def decrypt_with_lazy_rotation(
        self, identity: str, envelope: str
    ) -> LazyReadResult:
        """Decrypt a stored envelope, rotating and persisting it first if stale."""
        return await self._rotation.read_with_lazy_rotation(identity, envelope)

    async def read(self, identity: str) -> LazyReadResult:
        """
        Load and decrypt the record for an identity.

        Raises:
            RecordNotFoundError: If no envelope is stored for the identity
        """
        envelope = await self._store.get(identity)
        if not envelope:
            raise RecordNotFoundError(f"No record for identity {identity!r}")
        return await self._rotation.read_with_lazy_rotation(identity, envelope)

    async def rotate_all(self) -> BulkRotationResult:
        """Rotate every stored record to the active key version."""
        return await self._rotation.rotate_all()

    async def list_key_versions(self) -> List[str]:
        return await self._keys.list_versions()
