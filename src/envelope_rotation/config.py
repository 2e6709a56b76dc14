"""
Service configuration loaded from the environment (and an optional .env file).

Variables:
    DATABASE_URL                   PostgreSQL DSN (records, and keys for the postgres backend)
    ENVELOPE_KEY_FAMILY            Key family name (default: encryption-key)
    ENVELOPE_KEY_BACKEND           "env" or "postgres" (default: env)
    ENVELOPE_RECORD_TABLE          Records table (default: owners)
    ENVELOPE_ROTATION_CONCURRENCY  Records rewritten at once (default: 10)
    ENVELOPE_ROTATION_BATCH_SIZE   Scan page size (default: 100)

Security Note:
    Never log key material. Only log key family names and version ids.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .errors import ConfigError
from .key_provider import DEFAULT_KEY_FAMILY
from .rotation import DEFAULT_ROTATION_CONCURRENCY
from .storage import DEFAULT_SCAN_BATCH_SIZE

logger = logging.getLogger(__name__)

KEY_BACKENDS = ("env", "postgres")


def _positive_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {value}")
    return value


@dataclass(frozen=True)
class ServiceConfig:
    """Validated service configuration."""

    database_url: Optional[str] = None
    key_family: str = DEFAULT_KEY_FAMILY
    key_backend: str = "env"
    record_table: str = "owners"
    rotation_concurrency: int = DEFAULT_ROTATION_CONCURRENCY
    rotation_batch_size: int = DEFAULT_SCAN_BATCH_SIZE

    def __post_init__(self) -> None:
        if self.key_backend not in KEY_BACKENDS:
            raise ConfigError(
                f"Unsupported key backend {self.key_backend!r} (expected one of {KEY_BACKENDS})"
            )
        if not self.key_family:
            raise ConfigError("Key family must not be empty")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Union[str, Path]] = None,
    ) -> ServiceConfig:
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (skips .env loading)
            env_file: Explicit .env path; defaults to python-dotenv's search

        Raises:
            ConfigError: If a value is invalid
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        config = cls(
            database_url=environ.get("DATABASE_URL") or None,
            key_family=environ.get("ENVELOPE_KEY_FAMILY", DEFAULT_KEY_FAMILY),
            key_backend=environ.get("ENVELOPE_KEY_BACKEND", "env").lower(),
            record_table=environ.get("ENVELOPE_RECORD_TABLE", "owners"),
            rotation_concurrency=_positive_int(
                environ, "ENVELOPE_ROTATION_CONCURRENCY", DEFAULT_ROTATION_CONCURRENCY
            ),
            rotation_batch_size=_positive_int(
                environ, "ENVELOPE_ROTATION_BATCH_SIZE", DEFAULT_SCAN_BATCH_SIZE
            ),
        )
        logger.debug(
            "Loaded config: key_family=%s key_backend=%s record_table=%s",
            config.key_family, config.key_backend, config.record_table,
        )
        return config

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ConfigError("DATABASE_URL must be set in environment or .env file")
        return self.database_url
