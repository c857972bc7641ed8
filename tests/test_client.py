"""
Tests for the node-side registry client.

The client talks to a real registry application served by aiohttp's
TestServer, backed by the in-memory store.
"""

from __future__ import annotations

import pytest
from aiohttp.test_utils import TestServer

from hushnet_registry.client import RegistrationError, RegistryClient
from hushnet_registry.server.app import create_app
from hushnet_registry.storage.models import NodeStatus


@pytest.fixture
async def registry_url(settings, store, resolver):
    async with TestServer(create_app(settings, store=store, resolver=resolver)) as server:
        yield str(server.make_url("/"))


@pytest.fixture
def node_client(registry_url, keypair):
    private_key, _ = keypair
    return RegistryClient(registry_url, private_key, timeout=2.0)


class TestRegistryClient:
    @pytest.mark.asyncio
    async def test_request_challenge(self, node_client, store):
        challenge = await node_client.request_challenge()

        stored = await store.get_challenge(challenge["nonce"])
        assert stored.pubkey_b64 == node_client.pubkey_b64

    @pytest.mark.asyncio
    async def test_register_and_list(self, node_client, make_payload):
        assert await node_client.register(make_payload(features={"relay": True})) == {"ok": True}

        nodes = await node_client.list_nodes()
        assert [n["host"] for n in nodes] == ["h1"]
        assert nodes[0]["features"] == {"relay": True}

    @pytest.mark.asyncio
    async def test_heartbeat(self, node_client, store, make_payload):
        await node_client.register(make_payload())

        assert await node_client.heartbeat("h1") == {"ok": True}
        assert (await store.get_node("h1")).status == NodeStatus.ONLINE

    @pytest.mark.asyncio
    async def test_heartbeat_unknown_host(self, node_client):
        with pytest.raises(RegistrationError) as exc_info:
            await node_client.heartbeat("ghost")

        assert exc_info.value.status == 404
        assert exc_info.value.code == "NOT_FOUND_NODE"

    @pytest.mark.asyncio
    async def test_host_bound_to_other_key(self, registry_url, node_client, other_keypair, make_payload):
        await node_client.register(make_payload())
        intruder = RegistryClient(registry_url, other_keypair[0])

        with pytest.raises(RegistrationError) as exc_info:
            await intruder.register(make_payload())

        assert exc_info.value.status == 403
        assert exc_info.value.code == "FORBIDDEN_HOST_BOUND"

    @pytest.mark.asyncio
    async def test_unreachable_registry(self, keypair, unused_tcp_port):
        client = RegistryClient(f"http://127.0.0.1:{unused_tcp_port}", keypair[0], timeout=1.0)

        with pytest.raises(RegistrationError, match="connection error"):
            await client.list_nodes()

    def test_base_url_trailing_slash(self, keypair):
        client = RegistryClient("https://registry.example.org/", keypair[0])
        assert client.base_url == "https://registry.example.org"
