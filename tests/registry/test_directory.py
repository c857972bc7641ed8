"""Tests for the public node directory."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from hushnet_registry.registry.directory import list_directory
from hushnet_registry.storage.models import Node, NodeRegistration, NodeStatus, ProbeObservation

PUBLIC_FIELDS = {
    "name",
    "host",
    "ip",
    "api_base_url",
    "protocol_version",
    "features",
    "country_code",
    "country_name",
    "last_seen_at",
    "last_latency_ms",
    "status",
    "registered_at",
}


def _registration(host: str, name: str) -> NodeRegistration:
    return NodeRegistration(
        host=host,
        name=name,
        api_base_url=f"https://{host}",
        protocol_version="1",
        pubkey=b"\x01" * 32,
        ip="203.0.113.10",
        features={"relay": True},
        contact_email=f"ops@{host}",
    )


@pytest.mark.asyncio
async def test_empty(store):
    assert await list_directory(store) == []


@pytest.mark.asyncio
async def test_public_fields_only(store):
    await store.upsert_node(_registration("h1", "n1"))

    (entry,) = await list_directory(store)

    assert set(entry) == PUBLIC_FIELDS
    assert entry["status"] == "unknown"
    assert entry["features"] == {"relay": True}


@pytest.mark.asyncio
async def test_online_first_then_by_name(store):
    await store.upsert_node(_registration("c.example", "charlie"))
    await store.upsert_node(_registration("a.example", "alpha"))
    await store.upsert_node(_registration("b.example", "bravo"))
    await store.upsert_node(_registration("z.example", "zulu"))
    await store.record_probe("z.example", ProbeObservation(online=True, latency_ms=10))
    await store.record_probe("c.example", ProbeObservation(online=True, latency_ms=10))
    await store.record_probe("a.example", ProbeObservation(online=False))

    names = [entry["name"] for entry in await list_directory(store)]

    assert names == ["charlie", "zulu", "alpha", "bravo"]


@pytest.mark.asyncio
async def test_host_breaks_name_ties(store):
    await store.upsert_node(_registration("b.example", "same"))
    await store.upsert_node(_registration("a.example", "same"))

    hosts = [entry["host"] for entry in await list_directory(store)]

    assert hosts == ["a.example", "b.example"]


@pytest.mark.asyncio
async def test_reorders_backend_results():
    seen = datetime(2026, 1, 1, tzinfo=UTC)
    offline = Node(host="a", name="a", api_base_url="https://a", protocol_version="1", pubkey=b"k")
    online = Node(
        host="b",
        name="b",
        api_base_url="https://b",
        protocol_version="1",
        pubkey=b"k",
        status=NodeStatus.ONLINE,
        last_seen_at=seen,
    )
    backend = MagicMock()
    backend.list_nodes = AsyncMock(return_value=[offline, online])

    entries = await list_directory(backend)

    assert [e["host"] for e in entries] == ["b", "a"]
    assert entries[0]["last_seen_at"] == "2026-01-01T00:00:00Z"
