"""
Pytest configuration and fixtures for envelope rotation tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, List, Mapping, Optional, Tuple

import asyncpg
import pytest
from dotenv import load_dotenv

from envelope_rotation import (
    EnvelopeService,
    InMemoryKeyProvider,
    InMemoryRecordStore,
    KeyProviderUnavailableError,
    PostgresKeyProvider,
    PostgresRecordStore,
    StoreUnavailableError,
)

KEY_V1 = bytes(32)
KEY_V2 = bytes(range(32))
KEY_V3 = b"\xa5" * 32


class RecordingStore(InMemoryRecordStore):
    """In-memory store that remembers every write and can fail chosen writes."""

    def __init__(self, records=None, failing_puts=()) -> None:
        super().__init__(records)
        self.puts: List[Tuple[str, str]] = []
        self.failing_puts = set(failing_puts)

    async def put(self, identity: str, envelope: str) -> None:
        if identity in self.failing_puts:
            raise StoreUnavailableError(f"Failed to write record {identity!r}")
        self.puts.append((identity, envelope))
        await super().put(identity, envelope)


class FlakyKeyProvider(InMemoryKeyProvider):
    """Key provider whose backing store can be switched off."""

    def __init__(self, family: str = "encryption-key", secret: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(family, secret)
        self.available = True
        self.reads = 0

    async def _read_secret(self) -> Mapping[str, str]:
        self.reads += 1
        if not self.available:
            raise KeyProviderUnavailableError(f"Secret store unreachable for family {self.family!r}")
        return await super()._read_secret()


@pytest.fixture
def key_provider() -> FlakyKeyProvider:
    """Key family with v1 (32 zero bytes) active."""
    provider = FlakyKeyProvider()
    provider.add_version("v1", KEY_V1, activate=True)
    return provider


@pytest.fixture
def memory_store() -> RecordingStore:
    """Create an in-memory record store instance for testing."""
    return RecordingStore()


@pytest.fixture
def service(key_provider: FlakyKeyProvider, memory_store: RecordingStore) -> EnvelopeService:
    return EnvelopeService(key_provider, memory_store, rotation_concurrency=4, rotation_batch_size=3)


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await pool.execute("DROP TABLE IF EXISTS test_owners")
    await pool.execute("DROP TABLE IF EXISTS key_versions")

    yield pool

    await pool.execute("DROP TABLE IF EXISTS test_owners")
    await pool.execute("DROP TABLE IF EXISTS key_versions")
    await pool.close()


@pytest.fixture
async def postgres_store(pg_pool: asyncpg.Pool) -> PostgresRecordStore:
    """Create a PostgreSQL record store instance for testing."""
    store = PostgresRecordStore(pg_pool, table="test_owners")
    await store.ensure_schema()
    return store


@pytest.fixture
async def postgres_keys(pg_pool: asyncpg.Pool) -> PostgresKeyProvider:
    """Create a PostgreSQL key provider instance for testing."""
    provider = PostgresKeyProvider(pg_pool, family="test-family")
    await provider.ensure_schema()
    return provider
