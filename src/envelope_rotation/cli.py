"""
Envelope Rotation operator CLI.

Usage:
    envelope-rotate rotate-all
    envelope-rotate encrypt <identity> <data>
    envelope-rotate read <identity>
    envelope-rotate versions
    envelope-rotate generate-key

Or run directly:
    python -m envelope_rotation.cli rotate-all

PostgreSQL setup:
    Set DATABASE_URL environment variable or .env file. Tables are created
    automatically on first use.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import List, Optional

import asyncpg

from .config import ServiceConfig
from .crypto import generate_key_base64
from .errors import EnvelopeError, ErrorKind, StoreUnavailableError
from .postgres_storage import _DB_ERRORS
from .service import EnvelopeService

logger = logging.getLogger(__name__)


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


async def _run(args: argparse.Namespace, config: ServiceConfig) -> int:
    database_url = config.require_database_url()
    try:
        pool = await asyncpg.create_pool(database_url)
    except _DB_ERRORS as e:
        raise StoreUnavailableError(f"Failed to connect to database: {type(e).__name__}") from e
    if pool is None:
        print("ERROR: Failed to create connection pool", file=sys.stderr)
        return 1

    try:
        service = await EnvelopeService.from_config(config, pool)

        if args.command == "rotate-all":
            start = time.perf_counter()
            result = await service.rotate_all()
            duration = (time.perf_counter() - start) * 1000
            payload = result.to_dict()
            payload["duration_ms"] = round(duration, 3)
            _print_json(payload)
            return 1 if result.failures else 0

        if args.command == "encrypt":
            encrypted = await service.store_encrypted(args.identity, args.data)
            _print_json(
                {
                    "identity": args.identity,
                    "key_version": encrypted.key_version,
                    "ciphertext": encrypted.envelope,
                }
            )
            return 0

        if args.command == "read":
            read = await service.read(args.identity)
            _print_json(
                {
                    "identity": args.identity,
                    "plaintext": read.plaintext.decode("utf-8", errors="replace"),
                    "key_version_updated": read.rotated,
                    "old_version": read.old_version,
                    "new_version": read.new_version,
                }
            )
            return 0

        if args.command == "versions":
            _print_json({"family": config.key_family, "versions": await service.list_key_versions()})
            return 0
    finally:
        await pool.close()

    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="envelope-rotate",
        description="Versioned field encryption and key rotation",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("rotate-all", help="Re-encrypt every stale record under the active key")

    encrypt = sub.add_parser("encrypt", help="Encrypt and store a value for an identity")
    encrypt.add_argument("identity")
    encrypt.add_argument("data")

    read = sub.add_parser("read", help="Decrypt a stored value, rotating it if stale")
    read.add_argument("identity")

    sub.add_parser("versions", help="List key versions of the configured family")
    sub.add_parser("generate-key", help="Print a new base64-encoded 32-byte key")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "generate-key":
        print(generate_key_base64())
        sys.exit(0)

    try:
        config = ServiceConfig.from_env(env_file=args.env_file)
        code = asyncio.run(_run(args, config))
    except EnvelopeError as e:
        # Only the identity/version context and error kind, never key material
        print(f"ERROR [{e.kind}]: {e}", file=sys.stderr)
        code = 3 if e.kind is ErrorKind.RECORD_NOT_FOUND else 1
    sys.exit(code)


if __name__ == "__main__":
    main()
