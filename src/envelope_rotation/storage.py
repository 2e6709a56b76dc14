"""
Record store abstractions.

This module provides:
- RecordStore: Abstract async interface for identity -> envelope storage
- InMemoryRecordStore: asyncio-safe in-memory implementation for testing
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, Optional, Tuple

from .errors import StoreUnavailableError

DEFAULT_SCAN_BATCH_SIZE = 100


class RecordStore(ABC):
    """
    Abstract storage interface mapping an opaque identity to one envelope string.

    All methods are async to support both in-memory and database backends.
    Implementations raise StoreUnavailableError on I/O failure.
    """

    @abstractmethod
    async def get(self, identity: str) -> Optional[str]:
        """Get the stored envelope for an identity, or None."""
        ...

    @abstractmethod
    async def put(self, identity: str, envelope: str) -> None:
        """Insert or overwrite the envelope for an identity."""
        ...

    @abstractmethod
    async def delete(self, identity: str) -> bool:
        """Delete the record for an identity. Returns True if it existed."""
        ...

    @abstractmethod
    def scan(
        self, batch_size: int = DEFAULT_SCAN_BATCH_SIZE
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        """Iterate over every (identity, envelope) pair."""
        ...


class InMemoryRecordStore(RecordStore):
    """
    In-memory record store for testing.

    Uses asyncio.Lock for safe concurrent access; the lock is never held
    across a suspension point.
    """

    def __init__(self, records: Optional[Dict[str, Optional[str]]] = None) -> None:
        self._records: Dict[str, Optional[str]] = dict(records or {})
        self._lock = asyncio.Lock()
        self._closed = False

    def close(self) -> None:
        """Make every later call fail with StoreUnavailableError."""
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailableError("Record store is closed")

    async def get(self, identity: str) -> Optional[str]:
        self._check_open()
        async with self._lock:
            return self._records.get(identity)

    async def put(self, identity: str, envelope: str) -> None:
        self._check_open()
        async with self._lock:
            self._records[identity] = envelope

    async def delete(self, identity: str) -> bool:
        self._check_open()
        async with self._lock:
            return self._records.pop(identity, None) is not None

    async def scan(
        self, batch_size: int = DEFAULT_SCAN_BATCH_SIZE
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        self._check_open()
        async with self._lock:
            snapshot = sorted(self._records.items())
        for item in snapshot:
            yield item

    def __len__(self) -> int:
        return len(self._records)
