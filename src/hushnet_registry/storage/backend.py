# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Registry store backends.

The store is the only shared mutable state in the registry. Protocol
components read and write through it on every operation and never cache
node or challenge rows.

Backends:
    memory   - MemoryRegistryStore, for development and tests
    postgres - PostgresRegistryStore (storage/postgres.py), for production

Configure via HUSHNET_STORE / DATABASE_URL (see core/config.py).
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime

from ..core.config import STORE_POSTGRES, RegistrySettings
from ..core.exceptions import DatabaseException, HostConflictError
from .models import (
    Challenge,
    Node,
    NodeRegistration,
    NodeStatus,
    ProbeObservation,
    directory_sort_key,
    utcnow,
)

logger = logging.getLogger(__name__)


class RegistryStore(ABC):
    """Abstract interface for challenge and node persistence.

    Every method is a single atomic operation on one row (or one scan).
    """

    # -------------------------------------------------------------------------
    # CHALLENGES
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_challenge(self, challenge: Challenge) -> None:
        """Persist a new challenge."""
        ...

    @abstractmethod
    async def get_challenge(self, nonce: str) -> Challenge | None:
        """Point lookup by nonce."""
        ...

    @abstractmethod
    async def purge_expired_challenges(self, now: datetime | None = None) -> int:
        """Delete challenges that expired before ``now``.

        Returns:
            Number of challenges removed.
        """
        ...

    # -------------------------------------------------------------------------
    # NODES
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_node(self, host: str) -> Node | None:
        """Point lookup by host."""
        ...

    @abstractmethod
    async def get_node_pubkey(self, host: str) -> bytes | None:
        """Public key bound to ``host``, or None if the host is unregistered."""
        ...

    @abstractmethod
    async def upsert_node(self, registration: NodeRegistration) -> Node:
        """Insert a node or overwrite its self-reported fields.

        A new row starts with status ``unknown``. An existing row keeps its
        status, liveness, geolocation and registered_at.

        Raises:
            HostConflictError: the host is bound to a different key; the
                row is left untouched
        """
        ...

    @abstractmethod
    async def register_node(self, registration: NodeRegistration, nonce: str) -> Node | None:
        """Consume challenge ``nonce`` and upsert the node in one atomic step.

        Returns:
            The stored node, or None if the challenge was already consumed
            (nothing is written).

        Raises:
            HostConflictError: the host is bound to a different key; the
                challenge is not consumed
        """
        ...

    @abstractmethod
    async def list_nodes(self) -> list[Node]:
        """All nodes, online first, then by name."""
        ...

    @abstractmethod
    async def mark_online(self, host: str, seen_at: datetime) -> bool:
        """Set status online and last_seen_at for a heartbeat.

        Returns:
            True if a row was updated.
        """
        ...

    @abstractmethod
    async def record_probe(self, host: str, observation: ProbeObservation) -> bool:
        """Apply a reconciler observation to one node.

        Returns:
            True if a row was updated.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class MemoryRegistryStore(RegistryStore):
    """In-memory registry store.

    Suitable for development and single-process deployments. State is lost
    on restart. Rows are copied in and out so callers never hold live
    references into the store.
    """

    def __init__(self) -> None:
        self._challenges: dict[str, Challenge] = {}
        self._nodes: dict[str, Node] = {}
        self._lock = asyncio.Lock()

    async def insert_challenge(self, challenge: Challenge) -> None:
        async with self._lock:
            if challenge.nonce in self._challenges:
                raise DatabaseException("duplicate challenge nonce")
            self._challenges[challenge.nonce] = challenge

    async def get_challenge(self, nonce: str) -> Challenge | None:
        return self._challenges.get(nonce)

    async def purge_expired_challenges(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        async with self._lock:
            expired = [nonce for nonce, c in self._challenges.items() if c.is_expired(now)]
            for nonce in expired:
                del self._challenges[nonce]
        if expired:
            logger.debug(f"Purged {len(expired)} expired challenges")
        return len(expired)

    async def get_node(self, host: str) -> Node | None:
        node = self._nodes.get(host)
        return copy.deepcopy(node) if node is not None else None

    async def get_node_pubkey(self, host: str) -> bytes | None:
        node = self._nodes.get(host)
        return node.pubkey if node is not None else None

    def _check_binding(self, registration: NodeRegistration) -> None:
        existing = self._nodes.get(registration.host)
        if existing is not None and existing.pubkey != registration.pubkey:
            raise HostConflictError(registration.host)

    def _write_node(self, registration: NodeRegistration) -> Node:
        existing = self._nodes.get(registration.host)
        if existing is None:
            node = Node.from_registration(registration)
            self._nodes[registration.host] = node
        else:
            existing.apply_registration(registration)
            node = existing
        return copy.deepcopy(node)

    async def upsert_node(self, registration: NodeRegistration) -> Node:
        async with self._lock:
            self._check_binding(registration)
            return self._write_node(registration)

    async def register_node(self, registration: NodeRegistration, nonce: str) -> Node | None:
        async with self._lock:
            if nonce not in self._challenges:
                return None
            self._check_binding(registration)
            del self._challenges[nonce]
            return self._write_node(registration)

    async def list_nodes(self) -> list[Node]:
        nodes = [copy.deepcopy(n) for n in self._nodes.values()]
        nodes.sort(key=directory_sort_key)
        return nodes

    async def mark_online(self, host: str, seen_at: datetime) -> bool:
        async with self._lock:
            node = self._nodes.get(host)
            if node is None:
                return False
            node.status = NodeStatus.ONLINE
            node.last_seen_at = seen_at
            return True

    async def record_probe(self, host: str, observation: ProbeObservation) -> bool:
        async with self._lock:
            node = self._nodes.get(host)
            if node is None:
                return False
            node.apply_probe(observation)
            return True

    def __contains__(self, host: str) -> bool:
        """Support 'host in store' syntax for convenience."""
        return host in self._nodes

    def clear(self) -> None:
        """Drop all rows (useful for testing)."""
        self._challenges.clear()
        self._nodes.clear()


# =============================================================================
# FACTORY
# =============================================================================


def create_store(settings: RegistrySettings) -> RegistryStore:
    """Build the store selected by ``settings.store_backend``."""
    if settings.store_backend == STORE_POSTGRES:
        from .postgres import PostgresRegistryStore

        logger.info("Using PostgreSQL registry store")
        return PostgresRegistryStore(settings)

    logger.info("Using in-memory registry store")
    return MemoryRegistryStore()
