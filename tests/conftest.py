"""Global test fixtures for the registry test suite."""

from __future__ import annotations

import os
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from hushnet_registry.core.config import RegistrySettings, clear_config
from hushnet_registry.identity.canonical import heartbeat_message, registration_message
from hushnet_registry.identity.signatures import generate_keypair, sign_message
from hushnet_registry.registry.protocol import RegistrationProtocol
from hushnet_registry.storage.backend import MemoryRegistryStore

RESOLVED_IP = "203.0.113.10"

_ENV_NAMES = ("DATABASE_URL", "HEALTH_TIMEOUT_MS", "GEOIP_URL")


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove registry environment variables and the cached settings."""
    for key in list(os.environ.keys()):
        if key.startswith("HUSHNET_") or key in _ENV_NAMES:
            monkeypatch.delenv(key, raising=False)
    clear_config()
    yield
    clear_config()


@pytest.fixture
def settings() -> RegistrySettings:
    """Settings for an in-memory registry with fast timeouts and no background probing."""
    return RegistrySettings(
        _env_file=None,
        store_backend="memory",
        health_enabled=False,
        health_timeout_ms=500,
        geoip_url="http://geo.test/{ip}/json/",
        geoip_timeout_seconds=0.5,
        request_timeout_seconds=2,
    )


# ============================================================================
# Registry components
# ============================================================================


@pytest.fixture
def store() -> MemoryRegistryStore:
    return MemoryRegistryStore()


@pytest.fixture
def resolver() -> MagicMock:
    """Host resolver that resolves every host to RESOLVED_IP."""
    mock = MagicMock()
    mock.resolve = AsyncMock(return_value=RESOLVED_IP)
    return mock


@pytest.fixture
def protocol(store, resolver, settings) -> RegistrationProtocol:
    return RegistrationProtocol(store, resolver, settings)


# ============================================================================
# Keys and signed requests
# ============================================================================


@pytest.fixture
def keypair():
    """(private_key, pubkey_b64) for the node under test."""
    return generate_keypair()


@pytest.fixture
def other_keypair():
    """A second, unrelated identity."""
    return generate_keypair()


@pytest.fixture
def make_payload():
    """Build a registration payload with sensible defaults."""

    def _make(host: str = "h1", **overrides: Any) -> dict[str, Any]:
        payload = {
            "name": "n1",
            "host": host,
            "api_base_url": f"https://{host}",
            "protocol_version": "1",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def sign_registration():
    """Sign canonical_json(payload) + nonce with a private key."""

    def _sign(private_key, payload: Any, nonce: str) -> str:
        return sign_message(private_key, registration_message(payload, nonce))

    return _sign


@pytest.fixture
def sign_heartbeat():
    """Sign host + nonce with a private key."""

    def _sign(private_key, host: str, nonce: str) -> str:
        return sign_message(private_key, heartbeat_message(host, nonce))

    return _sign


@pytest.fixture
def register_node(protocol, sign_registration):
    """Run challenge + register for one identity and return the stored node."""

    async def _register(keypair, payload: dict[str, Any]):
        private_key, pubkey_b64 = keypair
        challenge = await protocol.challenge(pubkey_b64)
        signature = sign_registration(private_key, payload, challenge.nonce)
        return await protocol.register(payload, challenge.nonce, signature, pubkey_b64)

    return _register
