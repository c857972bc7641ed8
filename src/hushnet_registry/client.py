# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Node-side client for the registry API.

A node holds its Ed25519 private key and uses it to register its host and
to sign heartbeats:

    client = RegistryClient("https://registry.example.org", private_key)
    await client.register({
        "name": "relay-1",
        "host": "relay-1.example.org",
        "api_base_url": "https://relay-1.example.org",
        "protocol_version": "1",
    })
    await client.heartbeat("relay-1.example.org")
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiohttp
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .identity.canonical import heartbeat_message, registration_message
from .identity.signatures import public_key_b64, sign_message
from .registry.protocol import generate_nonce

logger = logging.getLogger(__name__)


class RegistrationError(Exception):
    """Raised when the registry rejects a request or cannot be reached."""

    def __init__(self, message: str, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class RegistryClient:
    """Talks to one registry on behalf of one node identity.

    Args:
        base_url: Registry root URL
        private_key: The node's Ed25519 key
        session: Optional shared aiohttp session; one per call if omitted
        timeout: Total timeout per request in seconds
    """

    def __init__(
        self,
        base_url: str,
        private_key: Ed25519PrivateKey,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.private_key = private_key
        self.pubkey_b64 = public_key_b64(private_key)
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @asynccontextmanager
    async def _open(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            yield session

    async def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with self._open() as session:
                async with session.request(method, url, json=body, timeout=self._timeout) as response:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = None

                    if not 200 <= response.status < 300:
                        error = data.get("error", {}) if isinstance(data, dict) else {}
                        message = error.get("message") or f"HTTP {response.status}"
                        logger.warning(f"Registry rejected {method} {path}: {response.status} {message}")
                        raise RegistrationError(message, status=response.status, code=error.get("code"))
                    return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Registry unreachable at {url}: {e}")
            raise RegistrationError(f"connection error: {e}") from e

    async def request_challenge(self) -> dict[str, Any]:
        """Ask for a registration nonce bound to this client's key.

        Returns:
            {"nonce": ..., "expires_at": ...}
        """
        return await self._request(
            "POST",
            "/api/registry/challenge",
            {"pubkey_b64": self.pubkey_b64},
        )

    async def register(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Register (or re-register) this node.

        Fetches a challenge, signs canonical_json(payload) + nonce and submits.

        Raises:
            RegistrationError: If the registry rejects the registration
        """
        challenge = await self.request_challenge()
        nonce = challenge["nonce"]
        signature_b64 = sign_message(self.private_key, registration_message(payload, nonce))

        result = await self._request(
            "POST",
            "/api/registry/register",
            {
                "payload": payload,
                "nonce": nonce,
                "signature_b64": signature_b64,
                "pubkey_b64": self.pubkey_b64,
            },
        )
        logger.info(f"Registered {payload.get('host')} with {self.base_url}")
        return result

    async def heartbeat(self, host: str) -> dict[str, Any]:
        """Send a signed heartbeat for ``host`` with a fresh random nonce."""
        nonce = generate_nonce()
        signature_b64 = sign_message(self.private_key, heartbeat_message(host, nonce))
        return await self._request(
            "POST",
            "/api/registry/heartbeat",
            {
                "host": host,
                "nonce": nonce,
                "signature_b64": signature_b64,
                "pubkey_b64": self.pubkey_b64,
            },
        )

    async def list_nodes(self) -> list[dict[str, Any]]:
        """Fetch the public node directory."""
        data = await self._request("GET", "/api/nodes")
        return data.get("nodes", []) if isinstance(data, dict) else []
