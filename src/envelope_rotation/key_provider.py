"""
Key provider adapters.

This module provides:
- KeyProvider: Abstract read contract for versioned key material
- SecretKeyProvider: Base for providers backed by one named secret
- InMemoryKeyProvider: Dict-backed secret for tests and local development
- EnvKeyProvider: Secret assembled from environment variables

Secret layout (one secret per key family):

    current-version = <version id>
    current-value   = <base64 32-byte key>   (optional)
    <version id>    = <base64 32-byte key>   (one entry per version)

``current()`` resolves both the version label and the key bytes from a
single read of the secret so a concurrent activation can never pair a
version label with another version's key.

Security Note:
    Never log key material. Only log family names and version ids.
"""

from __future__ import annotations

import base64
import hmac
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Union

from .crypto import KeyMaterial, SecureKey
from .errors import InvalidKeyMaterialError, KeyNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_KEY_FAMILY = "encryption-key"
CURRENT_VERSION_ENTRY = "current-version"
CURRENT_VALUE_ENTRY = "current-value"
_RESERVED_ENTRIES = frozenset({CURRENT_VERSION_ENTRY, CURRENT_VALUE_ENTRY})


class KeyProvider(ABC):
    """
    Read contract for a single named key family.

    All methods are async to support remote secret stores.
    """

    family: str

    @abstractmethod
    async def current(self) -> KeyMaterial:
        """
        Return the active key and its version in one atomic read.

        Raises:
            KeyProviderUnavailableError: If the secret store cannot be reached
            KeyNotFoundError: If no active key is configured
            InvalidKeyMaterialError: If the stored key is not 32 bytes
        """
        ...

    @abstractmethod
    async def by_version(self, version_id: str) -> KeyMaterial:
        """
        Return key material for an explicit version.

        Raises:
            KeyNotFoundError: If the version has no material
            InvalidKeyMaterialError: If the stored key is not 32 bytes
        """
        ...

    @abstractmethod
    async def list_versions(self) -> List[str]:
        """List known version ids (sorted). Never returns key bytes."""
        ...


def _parse_key(value: Union[str, bytes], family: str, version_id: str) -> SecureKey:
    try:
        return SecureKey.from_base64(value)
    except InvalidKeyMaterialError as e:
        raise InvalidKeyMaterialError(
            f"Key family {family!r} version {version_id!r}: {e}"
        ) from None


class SecretKeyProvider(KeyProvider):
    """
    Provider backed by one secret holding every version of a key family.

    Subclasses implement ``_read_secret`` as a single read of the store.
    """

    def __init__(self, family: str = DEFAULT_KEY_FAMILY) -> None:
        self.family = family

    @abstractmethod
    async def _read_secret(self) -> Mapping[str, str]:
        """Return a consistent snapshot of the secret's entries."""
        ...

    async def current(self) -> KeyMaterial:
        snapshot = await self._read_secret()

        version_id = snapshot.get(CURRENT_VERSION_ENTRY)
        if not version_id:
            raise KeyNotFoundError(f"No active key configured for family {self.family!r}")

        value = snapshot.get(CURRENT_VALUE_ENTRY)
        versioned = snapshot.get(version_id)
        if value is None:
            value = versioned
        if value is None:
            raise KeyNotFoundError(
                f"Key family {self.family!r} has no material for active version {version_id!r}"
            )

        key = _parse_key(value, self.family, version_id)

        # current-value and the per-version entry must describe the same key
        if versioned is not None and versioned != value:
            other = _parse_key(versioned, self.family, version_id)
            if not hmac.compare_digest(key.as_bytes(), other.as_bytes()):
                raise InvalidKeyMaterialError(
                    f"Key family {self.family!r}: current value does not match "
                    f"version {version_id!r}"
                )

        logger.debug("Resolved active key version %s for family %s", version_id, self.family)
        return KeyMaterial(version_id=version_id, key=key)

    async def by_version(self, version_id: str) -> KeyMaterial:
        if not version_id or version_id in _RESERVED_ENTRIES:
            raise KeyNotFoundError(f"Key family {self.family!r} version {version_id!r}")

        snapshot = await self._read_secret()
        value = snapshot.get(version_id)
        if value is None:
            raise KeyNotFoundError(f"Key family {self.family!r} version {version_id!r}")

        return KeyMaterial(version_id=version_id, key=_parse_key(value, self.family, version_id))

    async def list_versions(self) -> List[str]:
        snapshot = await self._read_secret()
        return sorted(name for name in snapshot if name not in _RESERVED_ENTRIES)


class InMemoryKeyProvider(SecretKeyProvider):
    """In-memory key family for testing and local development."""

    def __init__(
        self,
        family: str = DEFAULT_KEY_FAMILY,
        secret: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(family)
        self._secret: Dict[str, str] = dict(secret or {})

    async def _read_secret(self) -> Mapping[str, str]:
        return dict(self._secret)

    def add_version(
        self,
        version_id: str,
        key: Union[bytes, SecureKey],
        activate: bool = False,
    ) -> None:
        """
        Register key material for a version.

        Args:
            version_id: Version id (must not collide with reserved entry names)
            key: Raw 32-byte key or SecureKey
            activate: Also make this the current version
        """
        if not version_id or version_id in _RESERVED_ENTRIES:
            raise ValueError(f"Invalid version id: {version_id!r}")
        secure = key if isinstance(key, SecureKey) else SecureKey(key)

        self._secret[version_id] = base64.b64encode(secure.as_bytes()).decode("ascii")
        if activate:
            self.activate(version_id)

    def activate(self, version_id: str) -> None:
        """Make an existing version current."""
        if version_id not in self._secret or version_id in _RESERVED_ENTRIES:
            raise KeyNotFoundError(f"Key family {self.family!r} version {version_id!r}")
        self._secret[CURRENT_VERSION_ENTRY] = version_id
        self._secret[CURRENT_VALUE_ENTRY] = self._secret[version_id]
        logger.info("Activated key version %s for family %s", version_id, self.family)


def _env_token(family: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", family).upper()


class EnvKeyProvider(SecretKeyProvider):
    """
    Key family read from environment variables.

    Format (family ``encryption-key``):
        ENVELOPE_KEY_ENCRYPTION_KEY_CURRENT = v2
        ENVELOPE_KEY_ENCRYPTION_KEY_VERSION_v1 = <base64-encoded 32-byte key>
        ENVELOPE_KEY_ENCRYPTION_KEY_VERSION_v2 = <base64-encoded 32-byte key>

    The environment is snapshotted once per call.
    """

    def __init__(
        self,
        family: str = DEFAULT_KEY_FAMILY,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(family)
        self._environ = environ
        prefix = f"ENVELOPE_KEY_{_env_token(family)}_"
        self._current_name = f"{prefix}CURRENT"
        self._version_pattern = re.compile(rf"^{re.escape(prefix)}VERSION_(.+)$")

    async def _read_secret(self) -> Mapping[str, str]:
        environ = dict(self._environ if self._environ is not None else os.environ)
        secret: Dict[str, str] = {}
        for name, value in environ.items():
            match = self._version_pattern.match(name)
            if match:
                secret[match.group(1)] = value
        current = environ.get(self._current_name)
        if current:
            secret[CURRENT_VERSION_ENTRY] = current
        return secret
