"""
PostgreSQL backends for envelopes and key versions.

This module provides:
- PostgresRecordStore: identity -> envelope string table (one opaque column)
- PostgresKeyProvider: versioned key family stored in a key_versions table

Architecture:
- **Records**: ``username TEXT PRIMARY KEY, sensitive_data TEXT`` holding the
  serialized envelope; rotation overwrites the column wholesale
- **Keys**: one row per (family, version); at most one row per family is
  flagged current, enforced by a partial unique index

The active key is read with a single statement, so the version label and key
bytes always come from the same row.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import AsyncIterator, List, Optional, Tuple, Union

import asyncpg

from .crypto import KeyMaterial, SecureKey
from .errors import (
    InvalidKeyMaterialError,
    KeyNotFoundError,
    KeyProviderUnavailableError,
    StoreUnavailableError,
)
from .key_provider import DEFAULT_KEY_FAMILY, KeyProvider
from .storage import DEFAULT_SCAN_BATCH_SIZE, RecordStore

logger = logging.getLogger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def _quote_table(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return f'"{name}"'


# =============================================================================
# Record Store
# =============================================================================


class PostgresRecordStore(RecordStore):
    """
    PostgreSQL-backed record store.

    Args:
        pool: asyncpg connection pool
        table: Table holding (username, sensitive_data)
    """

    def __init__(self, pool: asyncpg.Pool, table: str = "owners") -> None:
        self._pool = pool
        self._table = _quote_table(table)

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def ensure_schema(self) -> None:
        """Create the records table if it does not exist."""
        query = f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                username TEXT PRIMARY KEY,
                sensitive_data TEXT,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """
        try:
            await self._pool.execute(query)
        except _DB_ERRORS as e:
            raise StoreUnavailableError(f"Failed to create records table: {e}") from e

    async def get(self, identity: str) -> Optional[str]:
        query = f"SELECT sensitive_data FROM {self._table} WHERE username = $1 LIMIT 1"
        try:
            row = await self._pool.fetchrow(query, identity)
        except _DB_ERRORS as e:
            raise StoreUnavailableError(f"Failed to read record {identity!r}: {e}") from e
        return row["sensitive_data"] if row else None

    async def put(self, identity: str, envelope: str) -> None:
        query = f"""
            INSERT INTO {self._table} (username, sensitive_data)
            VALUES ($1, $2)
            ON CONFLICT (username)
            DO UPDATE SET sensitive_data = EXCLUDED.sensitive_data,
                          updated_at = NOW()
        """
        try:
            await self._pool.execute(query, identity, envelope)
        except _DB_ERRORS as e:
            raise StoreUnavailableError(f"Failed to write record {identity!r}: {e}") from e

    async def delete(self, identity: str) -> bool:
        query = f"DELETE FROM {self._table} WHERE username = $1"
        try:
            status = await self._pool.execute(query, identity)
        except _DB_ERRORS as e:
            raise StoreUnavailableError(f"Failed to delete record {identity!r}: {e}") from e
        return status.endswith(" 1")

    async def scan(
        self, batch_size: int = DEFAULT_SCAN_BATCH_SIZE
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        """Keyset-paginated scan ordered by username."""
        first_page = f"""
            SELECT username, sensitive_data FROM {self._table}
            ORDER BY username LIMIT $1
        """
        next_page = f"""
            SELECT username, sensitive_data FROM {self._table}
            WHERE username > $1 ORDER BY username LIMIT $2
        """
        last: Optional[str] = None
        while True:
            try:
                if last is None:
                    rows = await self._pool.fetch(first_page, batch_size)
                else:
                    rows = await self._pool.fetch(next_page, last, batch_size)
            except _DB_ERRORS as e:
                raise StoreUnavailableError(f"Failed to scan records: {e}") from e

            for row in rows:
                yield row["username"], row["sensitive_data"]

            if len(rows) < batch_size:
                break
            last = rows[-1]["username"]


# =============================================================================
# Key Provider
# =============================================================================


class PostgresKeyProvider(KeyProvider):
    """
    Key family stored in PostgreSQL.

    Key bytes are stored as plaintext BYTEA (encrypted at rest by the database).
    """

    def __init__(self, pool: asyncpg.Pool, family: str = DEFAULT_KEY_FAMILY) -> None:
        self._pool = pool
        self.family = family

    async def ensure_schema(self) -> None:
        """Create the key_versions table if it does not exist."""
        statements = (
            """
            CREATE TABLE IF NOT EXISTS key_versions (
                family TEXT NOT NULL,
                version_id TEXT NOT NULL,
                key_material BYTEA NOT NULL,
                is_current BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                PRIMARY KEY (family, version_id)
            )
            """,
            """
            CREATE UNIQUE INDEX IF NOT EXISTS key_versions_one_current
            ON key_versions (family) WHERE is_current
            """,
        )
        try:
            async with self._pool.acquire() as conn:
                for statement in statements:
                    await conn.execute(statement)
        except _DB_ERRORS as e:
            raise KeyProviderUnavailableError(f"Failed to create key_versions table: {e}") from e

    async def current(self) -> KeyMaterial:
        query = """
            SELECT version_id, key_material FROM key_versions
            WHERE family = $1 AND is_current
        """
        try:
            row = await self._pool.fetchrow(query, self.family)
        except _DB_ERRORS as e:
            raise KeyProviderUnavailableError(
                f"Failed to read active key for family {self.family!r}: {e}"
            ) from e
        if row is None:
            raise KeyNotFoundError(f"No active key configured for family {self.family!r}")
        return self._row_to_material(row)

    async def by_version(self, version_id: str) -> KeyMaterial:
        query = """
            SELECT version_id, key_material FROM key_versions
            WHERE family = $1 AND version_id = $2
        """
        try:
            row = await self._pool.fetchrow(query, self.family, version_id)
        except _DB_ERRORS as e:
            raise KeyProviderUnavailableError(
                f"Failed to read key family {self.family!r} version {version_id!r}: {e}"
            ) from e
        if row is None:
            raise KeyNotFoundError(f"Key family {self.family!r} version {version_id!r}")
        return self._row_to_material(row)

    async def list_versions(self) -> List[str]:
        query = "SELECT version_id FROM key_versions WHERE family = $1 ORDER BY version_id"
        try:
            rows = await self._pool.fetch(query, self.family)
        except _DB_ERRORS as e:
            raise KeyProviderUnavailableError(
                f"Failed to list versions for family {self.family!r}: {e}"
            ) from e
        return [row["version_id"] for row in rows]

    async def add_version(
        self,
        version_id: str,
        key: Union[bytes, SecureKey],
        activate: bool = False,
    ) -> None:
        """
        Store key material for a new version.

        Args:
            version_id: Version id (must be unique within the family)
            key: Raw 32-byte key or SecureKey
            activate: Also make this the current version
        """
        secure = key if isinstance(key, SecureKey) else SecureKey(key)
        query = """
            INSERT INTO key_versions (family, version_id, key_material)
            VALUES ($1, $2, $3)
        """
        try:
            await self._pool.execute(query, self.family, version_id, secure.as_bytes())
        except _DB_ERRORS as e:
            raise KeyProviderUnavailableError(
                f"Failed to store key family {self.family!r} version {version_id!r}: {e}"
            ) from e
        logger.info("Stored key version %s for family %s", version_id, self.family)
        if activate:
            await self.activate(version_id)

    async def activate(self, version_id: str) -> None:
        """Make an existing version current (single transaction)."""
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "UPDATE key_versions SET is_current = FALSE "
                        "WHERE family = $1 AND is_current",
                        self.family,
                    )
                    status = await conn.execute(
                        "UPDATE key_versions SET is_current = TRUE "
                        "WHERE family = $1 AND version_id = $2",
                        self.family,
                        version_id,
                    )
                    if not status.endswith(" 1"):
                        raise KeyNotFoundError(
                            f"Key family {self.family!r} version {version_id!r}"
                        )
        except _DB_ERRORS as e:
            raise KeyProviderUnavailableError(
                f"Failed to activate key family {self.family!r} version {version_id!r}: {e}"
            ) from e
        logger.info("Activated key version %s for family %s", version_id, self.family)

    def _row_to_material(self, row: asyncpg.Record) -> KeyMaterial:
        """Convert database row to KeyMaterial."""
        version_id = row["version_id"]
        try:
            key = SecureKey(bytes(row["key_material"]))
        except InvalidKeyMaterialError as e:
            raise InvalidKeyMaterialError(
                f"Key family {self.family!r} version {version_id!r}: {e}"
            ) from None
        return KeyMaterial(version_id=version_id, key=key)
