# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""PostgreSQL registry store (asyncpg).

The pool is created lazily on first use. Every query carries the configured
command timeout, and driver errors surface as DatabaseException so the HTTP
layer can answer with an opaque 500.

Schema (apply with ``hushnet-registry init-db``):
    nodes       keyed by host (unique), one row per registered peer
    challenges  keyed by nonce, pending registration challenges
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

import asyncpg

from ..core.config import RegistrySettings
from ..core.exceptions import DatabaseException, HostConflictError
from .backend import RegistryStore
from .models import Challenge, Node, NodeRegistration, ProbeObservation, utcnow

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    (
        "create nodes",
        """
        CREATE TABLE IF NOT EXISTS nodes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL,
            host TEXT NOT NULL UNIQUE,
            ip INET,
            api_base_url TEXT NOT NULL,
            pubkey BYTEA NOT NULL,
            protocol_version TEXT NOT NULL,
            features JSONB NOT NULL DEFAULT '{}',
            contact_email TEXT,
            registered_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            country_code TEXT,
            country_name TEXT,
            last_seen_at TIMESTAMPTZ,
            last_latency_ms INTEGER,
            status TEXT NOT NULL DEFAULT 'unknown'
        )
        """,
    ),
    (
        "create challenges",
        """
        CREATE TABLE IF NOT EXISTS challenges (
            nonce TEXT PRIMARY KEY,
            pubkey_b64 TEXT NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL
        )
        """,
    ),
    (
        "index nodes by status",
        "CREATE INDEX IF NOT EXISTS idx_nodes_status ON nodes(status)",
    ),
    (
        "index challenges by expiry",
        "CREATE INDEX IF NOT EXISTS idx_challenges_expires_at ON challenges(expires_at)",
    ),
]

_NODE_COLUMNS = """
    host, name, host(ip) AS ip, api_base_url, pubkey, protocol_version,
    features, contact_email, status, last_seen_at, last_latency_ms,
    country_code, country_name, registered_at
"""

# The WHERE guard keeps a host bound to its first key; a conflicting write
# returns no row
_UPSERT_NODE = f"""
    INSERT INTO nodes (name, host, ip, api_base_url, pubkey, protocol_version,
                       features, contact_email, status)
    VALUES ($1, $2, $3::inet, $4, $5, $6, $7::jsonb, $8, 'unknown')
    ON CONFLICT (host) DO UPDATE
      SET name = EXCLUDED.name,
          ip = EXCLUDED.ip,
          api_base_url = EXCLUDED.api_base_url,
          protocol_version = EXCLUDED.protocol_version,
          features = EXCLUDED.features,
          contact_email = EXCLUDED.contact_email
      WHERE nodes.pubkey = EXCLUDED.pubkey
    RETURNING {_NODE_COLUMNS}
"""

_CONSUME_CHALLENGE = "DELETE FROM challenges WHERE nonce = $1 RETURNING nonce"

# last_seen_at only moves on an online observation; country fields are sticky
_RECORD_PROBE = """
    UPDATE nodes
    SET status = $1,
        last_latency_ms = $2,
        last_seen_at = CASE WHEN $1 = 'online' THEN $3 ELSE last_seen_at END,
        country_code = COALESCE($4, country_code),
        country_name = COALESCE($5, country_name)
    WHERE host = $6
"""

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg command status such as 'UPDATE 1'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresRegistryStore(RegistryStore):
    """asyncpg-backed registry store."""

    def __init__(self, settings: RegistrySettings) -> None:
        self._dsn = settings.database_url
        self._min_size = settings.db_pool_min
        self._max_size = settings.db_pool_max
        self._timeout = settings.db_command_timeout_seconds
        self._pool: Any | None = None
        self._pool_lock = asyncio.Lock()

    async def _ensure_pool(self) -> Any:
        """Ensure the pool is initialized, creating it if necessary."""
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    try:
                        self._pool = await asyncpg.create_pool(
                            dsn=self._dsn,
                            min_size=self._min_size,
                            max_size=self._max_size,
                            command_timeout=self._timeout,
                        )
                        logger.info(
                            "Async connection pool initialized: min=%d, max=%d",
                            self._min_size,
                            self._max_size,
                        )
                    except _DB_ERRORS as e:
                        logger.error("Failed to create async connection pool: %s", e)
                        raise DatabaseException(f"Failed to create connection pool: {e}") from e
        return self._pool

    async def _call(self, method: str, query: str, *args: Any) -> Any:
        pool = await self._ensure_pool()
        try:
            return await getattr(pool, method)(query, *args, timeout=self._timeout)
        except _DB_ERRORS as e:
            logger.error("Database error: %s", e)
            raise DatabaseException(f"Database error: {e}") from e

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[Any]:
        """Yield a pooled connection inside a transaction.

        The transaction rolls back on any exception raised in the block.
        """
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    yield conn
        except _DB_ERRORS as e:
            logger.error("Database error: %s", e)
            raise DatabaseException(f"Database error: {e}") from e

    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        for desc, statement in SCHEMA_STATEMENTS:
            logger.info("Schema: %s", desc)
            await self._call("execute", statement)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Async connection pool closed")

    # -------------------------------------------------------------------------
    # CHALLENGES
    # -------------------------------------------------------------------------

    async def insert_challenge(self, challenge: Challenge) -> None:
        await self._call(
            "execute",
            "INSERT INTO challenges (nonce, pubkey_b64, expires_at) VALUES ($1, $2, $3)",
            challenge.nonce,
            challenge.pubkey_b64,
            challenge.expires_at,
        )

    async def get_challenge(self, nonce: str) -> Challenge | None:
        row = await self._call(
            "fetchrow",
            "SELECT nonce, pubkey_b64, expires_at FROM challenges WHERE nonce = $1",
            nonce,
        )
        if row is None:
            return None
        return Challenge(nonce=row["nonce"], pubkey_b64=row["pubkey_b64"], expires_at=row["expires_at"])

    async def purge_expired_challenges(self, now: datetime | None = None) -> int:
        status = await self._call(
            "execute",
            "DELETE FROM challenges WHERE expires_at < $1",
            now or utcnow(),
        )
        return _affected_rows(status)

    # -------------------------------------------------------------------------
    # NODES
    # -------------------------------------------------------------------------

    async def get_node(self, host: str) -> Node | None:
        row = await self._call("fetchrow", f"SELECT {_NODE_COLUMNS} FROM nodes WHERE host = $1", host)
        return Node.from_row(row) if row is not None else None

    async def get_node_pubkey(self, host: str) -> bytes | None:
        value = await self._call("fetchval", "SELECT pubkey FROM nodes WHERE host = $1", host)
        return bytes(value) if value is not None else None

    @staticmethod
    def _upsert_args(registration: NodeRegistration) -> tuple[Any, ...]:
        return (
            registration.name,
            registration.host,
            registration.ip,
            registration.api_base_url,
            registration.pubkey,
            registration.protocol_version,
            json.dumps(registration.features),
            registration.contact_email,
        )

    async def upsert_node(self, registration: NodeRegistration) -> Node:
        row = await self._call("fetchrow", _UPSERT_NODE, *self._upsert_args(registration))
        if row is None:
            raise HostConflictError(registration.host)
        return Node.from_row(row)

    async def register_node(self, registration: NodeRegistration, nonce: str) -> Node | None:
        async with self._transaction() as conn:
            # Concurrent redeemers block on the row lock; only one gets it back
            consumed = await conn.fetchval(_CONSUME_CHALLENGE, nonce, timeout=self._timeout)
            if consumed is None:
                return None
            row = await conn.fetchrow(_UPSERT_NODE, *self._upsert_args(registration), timeout=self._timeout)
            if row is None:
                # Rolls back the consumed challenge
                raise HostConflictError(registration.host)
            return Node.from_row(row)

    async def list_nodes(self) -> list[Node]:
        rows = await self._call(
            "fetch",
            f"SELECT {_NODE_COLUMNS} FROM nodes ORDER BY (status = 'online') DESC, name ASC, host ASC",
        )
        return [Node.from_row(row) for row in rows]

    async def mark_online(self, host: str, seen_at: datetime) -> bool:
        status = await self._call(
            "execute",
            "UPDATE nodes SET status = 'online', last_seen_at = $1 WHERE host = $2",
            seen_at,
            host,
        )
        return _affected_rows(status) > 0

    async def record_probe(self, host: str, observation: ProbeObservation) -> bool:
        status = await self._call(
            "execute",
            _RECORD_PROBE,
            observation.status.value,
            observation.latency_ms if observation.online else None,
            observation.observed_at,
            observation.country_code,
            observation.country_name,
            host,
        )
        return _affected_rows(status) > 0
