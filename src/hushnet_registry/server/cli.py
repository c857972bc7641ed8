#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
HushNet Registry CLI.

Commands:
  hushnet-registry serve             Run the registry (HTTP server + health reconciler)
  hushnet-registry init-db           Create the PostgreSQL tables and indexes
  hushnet-registry prune-challenges  Delete expired registration challenges (PostgreSQL)
  hushnet-registry keygen            Print a fresh Ed25519 keypair for a node

Environment Variables:
  HUSHNET_LISTEN_HOST     Host to bind to (default: 0.0.0.0)
  HUSHNET_LISTEN_PORT     Port to listen on (default: 8080)
  DATABASE_URL            PostgreSQL DSN (in-memory store when unset)
  HEALTH_TIMEOUT_MS       Health probe timeout (default: 3000)
  GEOIP_URL               Geolocation URL template with {ip}

Example:
  # Apply the schema, then serve on a custom port
  DATABASE_URL=postgres://registry@localhost/registry hushnet-registry init-db
  hushnet-registry serve --port 9000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys

from pydantic import ValidationError

from ..core.config import STORE_POSTGRES, RegistrySettings, get_config
from ..core.exceptions import DatabaseException
from ..core.logging import configure_logging
from ..identity.signatures import generate_keypair, private_key_b64
from .app import RegistryServer

logger = logging.getLogger(__name__)


# =============================================================================
# COMMANDS
# =============================================================================


async def cmd_serve(args: argparse.Namespace, settings: RegistrySettings) -> int:
    """Run the registry until SIGINT/SIGTERM."""
    overrides = {}
    if args.host:
        overrides["listen_host"] = args.host
    if args.port:
        overrides["listen_port"] = args.port
    if overrides:
        settings = settings.model_copy(update=overrides)

    server = RegistryServer(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def handle_signal():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    await server.start()

    print(f"Registry listening on {settings.listen_host}:{settings.listen_port} (store={settings.store_backend})")
    print("\nEndpoints:")
    print("  POST /api/registry/challenge - Get a registration nonce")
    print("  POST /api/registry/register  - Register a node")
    print("  POST /api/registry/heartbeat - Node heartbeat")
    print("  GET  /api/nodes              - Node directory")
    print("  GET  /health                 - Health check")
    print("\nPress Ctrl+C to stop")

    await stop_event.wait()

    print("\nShutting down...")
    await server.stop()

    return 0


async def cmd_init_db(args: argparse.Namespace, settings: RegistrySettings) -> int:
    """Apply the PostgreSQL schema."""
    if settings.store_backend != STORE_POSTGRES:
        print("init-db requires the postgres store (set DATABASE_URL)", file=sys.stderr)
        return 1

    from ..storage.postgres import PostgresRegistryStore

    store = PostgresRegistryStore(settings)
    try:
        await store.ensure_schema()
    finally:
        await store.close()

    print("Schema applied")
    return 0


async def cmd_prune_challenges(args: argparse.Namespace, settings: RegistrySettings) -> int:
    """Delete expired challenges from the PostgreSQL store."""
    if settings.store_backend != STORE_POSTGRES:
        print("prune-challenges requires the postgres store (set DATABASE_URL)", file=sys.stderr)
        return 1

    from ..storage.postgres import PostgresRegistryStore

    store = PostgresRegistryStore(settings)
    try:
        removed = await store.purge_expired_challenges()
    finally:
        await store.close()

    print(f"Removed {removed} expired challenge(s)")
    return 0


async def cmd_keygen(args: argparse.Namespace, settings: RegistrySettings) -> int:
    """Print a new Ed25519 keypair."""
    private_key, pubkey_b64 = generate_keypair()
    keypair = {
        "private_key_b64": private_key_b64(private_key),
        "pubkey_b64": pubkey_b64,
    }

    if args.json:
        print(json.dumps(keypair, indent=2))
        return 0

    print(f"Public key:  {keypair['pubkey_b64']}")
    print(f"Private key: {keypair['private_key_b64']}")
    print("\nKeep the private key secret; the registry binds your host to the public key.")
    return 0


COMMANDS = {
    "serve": cmd_serve,
    "init-db": cmd_init_db,
    "prune-challenges": cmd_prune_challenges,
    "keygen": cmd_keygen,
}


# =============================================================================
# PARSER
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="hushnet-registry",
        description="HushNet node registry",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    serve_parser = subparsers.add_parser("serve", help="Run the registry")
    serve_parser.add_argument("--host", "-H", help="Host to bind to (overrides HUSHNET_LISTEN_HOST)")
    serve_parser.add_argument("--port", "-p", type=int, help="Port to listen on (overrides HUSHNET_LISTEN_PORT)")

    subparsers.add_parser("init-db", help="Create the PostgreSQL schema")

    subparsers.add_parser("prune-challenges", help="Delete expired registration challenges")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a node keypair")
    keygen_parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    return parser


async def async_main(args: argparse.Namespace, settings: RegistrySettings) -> int:
    try:
        return await COMMANDS[args.command](args, settings)
    except DatabaseException as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = get_config()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(settings)
    return asyncio.run(async_main(args, settings))


if __name__ == "__main__":
    sys.exit(main())
