"""
Key rotation for stored envelopes.

This module provides:
- RotationCoordinator: Shared rewrite step plus lazy and bulk rotation
- RewriteResult: Outcome of re-encrypting one envelope
- LazyReadResult: Plaintext returned from a read that may have rotated
- BulkRotationResult / RecordFailure: Outcome of a scan over all records

Rotation strategy:
1. Decrypt the stored envelope with the key version it names
2. Fetch the active key; if the envelope already uses it, stop (no write)
3. Otherwise re-encrypt with that same fetched key and overwrite the record

Concurrent lazy rotations of the same identity may both write. Both writes
carry the same plaintext under the same key version, but an out-of-band
update racing a rotation is last-write-wins.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext or ciphertext values.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from . import codec
from .envelope import Decryptor, Encryptor
from .errors import EnvelopeError, ErrorKind, StoreUnavailableError
from .key_provider import KeyProvider
from .storage import DEFAULT_SCAN_BATCH_SIZE, RecordStore

logger = logging.getLogger(__name__)

DEFAULT_ROTATION_CONCURRENCY = 10


@dataclass(frozen=True)
class RewriteResult:
    """
    Result of the rewrite step.

    When ``rotated`` is False, ``envelope`` is the original envelope and
    ``old_version == new_version``.
    """

    rotated: bool
    envelope: str
    plaintext: bytes
    old_version: str
    new_version: str


@dataclass(frozen=True)
class LazyReadResult:
    """Result of a read with lazy rotation."""

    plaintext: bytes
    rotated: bool
    old_version: str
    new_version: str


@dataclass(frozen=True)
class RecordFailure:
    """Per-identity failure recorded during bulk rotation."""

    identity: str
    kind: ErrorKind
    message: str


@dataclass
class BulkRotationResult:
    """Result of rotating every stored record."""

    current_version: str
    attempted: int = 0
    updated_identities: List[str] = field(default_factory=list)
    failures: List[RecordFailure] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated_identities)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["updated_count"] = self.updated_count
        data["failures"] = [
            {"identity": f.identity, "kind": str(f.kind), "message": f.message}
            for f in self.failures
        ]
        return data

    def __str__(self) -> str:
        return (
            f"{self.updated_count}/{self.attempted} records rotated to "
            f"{self.current_version}, {self.failed_count} failed"
        )


class RotationCoordinator:
    """
    Re-encrypts envelopes whose key version is not the active one.

    Args:
        key_provider: Source of current and historical keys
        store: Record store holding identity -> envelope
        concurrency: Maximum records rewritten at once during bulk rotation
        batch_size: Page size used when scanning the store
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        store: RecordStore,
        concurrency: int = DEFAULT_ROTATION_CONCURRENCY,
        batch_size: int = DEFAULT_SCAN_BATCH_SIZE,
        decryptor: Optional[Decryptor] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._keys = key_provider
        self._store = store
        self._decryptor = decryptor or Decryptor(key_provider)
        self._concurrency = concurrency
        self._batch_size = batch_size

    async def rewrite(self, envelope: str) -> RewriteResult:
        """
        Re-encrypt one envelope under the active key if it is stale.

        Idempotent: an envelope already at the active version is returned
        unchanged with ``rotated=False``.
        """
        parsed = codec.decode(envelope)
        plaintext = await self._decryptor.decrypt_envelope(parsed)

        material = await self._keys.current()
        try:
            if parsed.key_version == material.version_id:
                return RewriteResult(
                    rotated=False,
                    envelope=envelope,
                    plaintext=plaintext,
                    old_version=parsed.key_version,
                    new_version=parsed.key_version,
                )
            # Same material as the version check, never a second current() call
            sealed = Encryptor.encrypt_with(material, plaintext)
        finally:
            material.key.wipe()

        return RewriteResult(
            rotated=True,
            envelope=sealed.envelope,
            plaintext=plaintext,
            old_version=parsed.key_version,
            new_version=sealed.key_version,
        )

    async def _write(self, identity: str, envelope: str) -> None:
        """Persist a rotated envelope, reporting any store failure as StoreUnavailableError."""
        try:
            await self._store.put(identity, envelope)
        except EnvelopeError:
            raise
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to write record {identity!r}: {type(e).__name__}"
            ) from e

    async def read_with_lazy_rotation(self, identity: str, envelope: str) -> LazyReadResult:
        """
        Decrypt a stored envelope, persisting a rotated copy first if it was stale.

        Raises:
            StoreUnavailableError: If the rotated envelope cannot be written
        """
        result = await self.rewrite(envelope)
        if result.rotated:
            await self._write(identity, result.envelope)
            logger.info(
                "Lazily rotated record %s from key version %s to %s",
                identity, result.old_version, result.new_version,
            )
        return LazyReadResult(
            plaintext=result.plaintext,
            rotated=result.rotated,
            old_version=result.old_version,
            new_version=result.new_version,
        )

    async def rotate_all(self) -> BulkRotationResult:
        """
        Rotate every stored record to the active key version.

        Per-record failures are collected in the result and never stop the
        scan. Failing to establish the active version, or to enumerate the
        store, aborts the whole batch.

        Raises:
            KeyProviderUnavailableError: If the active key cannot be fetched
            KeyNotFoundError: If no active key is configured
            StoreUnavailableError: If the store cannot be scanned
        """
        material = await self._keys.current()
        try:
            current_version = material.version_id
        finally:
            material.key.wipe()

        result = BulkRotationResult(current_version=current_version)
        semaphore = asyncio.Semaphore(self._concurrency)
        tasks: List[asyncio.Task] = []

        logger.info(
            "Starting bulk rotation to key version %s (concurrency=%d, batch_size=%d)",
            current_version, self._concurrency, self._batch_size,
        )

        async def process(identity: str, envelope: Optional[str]) -> None:
            try:
                rewritten = await self.rewrite(envelope)
                if rewritten.rotated:
                    await self._write(identity, rewritten.envelope)
                    result.updated_identities.append(identity)
                    logger.debug(
                        "Rotated record %s from key version %s to %s",
                        identity, rewritten.old_version, rewritten.new_version,
                    )
            except EnvelopeError as err:
                result.failures.append(RecordFailure(identity, err.kind, str(err)))
                logger.warning("Error rotating record %s: %s", identity, err.kind)
            finally:
                semaphore.release()

        try:
            async for identity, envelope in self._store.scan(self._batch_size):
                result.attempted += 1
                await semaphore.acquire()
                tasks.append(asyncio.create_task(process(identity, envelope)))
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        result.updated_identities.sort()
        logger.info("Bulk rotation complete: %s", result)
        return result
