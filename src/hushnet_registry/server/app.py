# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
HushNet Registry HTTP server.

The registry is the directory of HushNet nodes. Nodes prove control of an
Ed25519 key to register their host, send signed heartbeats while they run,
and are probed in the background for health and location.

Protocol:
- POST /api/registry/challenge - Get a single-use nonce for a public key
- POST /api/registry/register  - Redeem the nonce with a signed payload
- POST /api/registry/heartbeat - Signed liveness proof from a registered node
- GET  /api/nodes              - Public directory of all nodes
- GET  /health                 - Liveness of the registry itself

Security:
- Registration signs canonical_json(payload) + nonce
- A host stays bound to the first key that registered it
- Heartbeats sign host + nonce with the bound key
- The directory never exposes keys or contact addresses
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from aiohttp import web

from ..core.config import RegistrySettings
from ..core.exceptions import MissingFieldError, RegistryException, ValidationException
from ..core.logging import correlation_context
from ..registry.directory import list_directory
from ..registry.health import HealthReconciler
from ..registry.protocol import RegistrationProtocol
from ..registry.resolver import DnsHostResolver, HostResolver
from ..storage.backend import RegistryStore, create_store
from .errors import (
    exception_response,
    internal_error,
    invalid_json_error,
    not_found_error,
    timeout_error,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _require_str(data: dict[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None:
        raise MissingFieldError(name)
    if not isinstance(value, str):
        raise ValidationException(f"{name} must be a string", field=name)
    return value


class RegistryServer:
    """HTTP front end plus background health reconciliation.

    Args:
        settings: Registry settings
        store: Registry store; built from settings if omitted
        resolver: Host resolver; dnspython resolver if omitted
    """

    def __init__(
        self,
        settings: RegistrySettings,
        store: RegistryStore | None = None,
        resolver: HostResolver | None = None,
    ) -> None:
        self.settings = settings
        self._owns_store = store is None
        self.store = store if store is not None else create_store(settings)
        self.resolver = resolver if resolver is not None else DnsHostResolver(timeout=settings.dns_timeout_seconds)
        self.protocol = RegistrationProtocol(self.store, self.resolver, settings)
        self.reconciler = HealthReconciler(self.store, settings)

        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # MIDDLEWARE
    # -------------------------------------------------------------------------

    @web.middleware
    async def _correlation_middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        """Scope each request to a correlation id, echoed in the response."""
        incoming = request.headers.get(REQUEST_ID_HEADER) or None
        with correlation_context(incoming) as cid:
            response = await handler(request)
            response.headers[REQUEST_ID_HEADER] = cid
            return response

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        """Turn exceptions into standardized error responses."""
        try:
            return await handler(request)
        except web.HTTPNotFound:
            return not_found_error(request.path)
        except web.HTTPException:
            raise
        except RegistryException as e:
            response = exception_response(e, debug=self.settings.debug)
            if response.status < 500:
                logger.info(f"Rejected {request.method} {request.path} ({response.status}): {e.to_dict()}")
            return response
        except Exception as e:  # Intentionally broad: last line before the client
            return internal_error(exc=e, debug=self.settings.debug)

    @web.middleware
    async def _timeout_middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        """Cancel handlers that exceed the request budget."""
        budget = self.settings.request_timeout_seconds
        deadline = asyncio.timeout(budget)
        try:
            async with deadline:
                return await handler(request)
        except TimeoutError:
            if not deadline.expired():
                raise
            logger.warning(f"Request timed out after {budget:g}s: {request.method} {request.path}")
            return timeout_error(budget)

    # -------------------------------------------------------------------------
    # HANDLERS
    # -------------------------------------------------------------------------

    async def _json_body(self, request: web.Request) -> dict[str, Any] | None:
        try:
            data = await request.json()
        except (ValueError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    async def handle_challenge(self, request: web.Request) -> web.Response:
        """
        Issue a registration challenge.

        POST /api/registry/challenge
        {"pubkey_b64": "<base64 Ed25519 public key>"}

        Returns {"nonce": "...", "expires_at": "<RFC 3339 UTC>"}
        """
        data = await self._json_body(request)
        if data is None:
            return invalid_json_error()

        challenge = await self.protocol.challenge(_require_str(data, "pubkey_b64"))
        return web.json_response(challenge.to_dict())

    async def handle_register(self, request: web.Request) -> web.Response:
        """
        Redeem a challenge and register a node.

        POST /api/registry/register
        {
            "payload": {
                "name": "...",
                "host": "node.example.org",
                "api_base_url": "https://node.example.org",
                "protocol_version": "1",
                "features": {...},
                "contact_email": "..."
            },
            "nonce": "<challenge nonce>",
            "signature_b64": "<signature over canonical_json(payload) + nonce>",
            "pubkey_b64": "<key the challenge was issued for>"
        }
        """
        data = await self._json_body(request)
        if data is None:
            return invalid_json_error()

        if data.get("payload") is None:
            raise MissingFieldError("payload")

        await self.protocol.register(
            payload=data["payload"],
            nonce=_require_str(data, "nonce"),
            signature_b64=_require_str(data, "signature_b64"),
            pubkey_b64=_require_str(data, "pubkey_b64"),
        )
        return web.json_response({"ok": True})

    async def handle_heartbeat(self, request: web.Request) -> web.Response:
        """
        Record a signed heartbeat.

        POST /api/registry/heartbeat
        {
            "host": "node.example.org",
            "nonce": "<any fresh random string>",
            "signature_b64": "<signature over host + nonce>",
            "pubkey_b64": "<key bound to host>"
        }
        """
        data = await self._json_body(request)
        if data is None:
            return invalid_json_error()

        await self.protocol.heartbeat(
            host=_require_str(data, "host"),
            nonce=_require_str(data, "nonce"),
            signature_b64=_require_str(data, "signature_b64"),
            pubkey_b64=_require_str(data, "pubkey_b64"),
        )
        return web.json_response({"ok": True})

    async def handle_list_nodes(self, request: web.Request) -> web.Response:
        """GET /api/nodes - online nodes first, then by name."""
        return web.json_response({"nodes": await list_directory(self.store)})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Simple health check endpoint."""
        return web.json_response({"status": "ok"})

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def _create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application(
            middlewares=[
                self._correlation_middleware,
                self._error_middleware,
                self._timeout_middleware,
            ]
        )

        # Registration protocol
        app.router.add_post("/api/registry/challenge", self.handle_challenge)
        app.router.add_post("/api/registry/register", self.handle_register)
        app.router.add_post("/api/registry/heartbeat", self.handle_heartbeat)

        # Directory
        app.router.add_get("/api/nodes", self.handle_list_nodes)

        # Status
        app.router.add_get("/health", self.handle_health)

        return app

    async def start(self) -> None:
        """Start the HTTP server and, if enabled, the health reconciler."""
        if self._running:
            logger.warning("Registry already running")
            return

        self._app = self._create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            self.settings.listen_host,
            self.settings.listen_port,
        )
        await self._site.start()

        if self.settings.health_enabled:
            await self.reconciler.start()

        self._running = True
        logger.info(
            f"Registry listening on {self.settings.listen_host}:{self.settings.listen_port} "
            f"(store={self.settings.store_backend})"
        )

    async def stop(self) -> None:
        """Stop the server, the reconciler and the store."""
        if not self._running:
            return

        await self.reconciler.stop()

        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        if self._owns_store:
            await self.store.close()

        self._running = False
        self._app = None
        self._runner = None
        self._site = None

        logger.info("Registry stopped")

    async def run_forever(self) -> None:
        """Start and run until cancelled."""
        await self.start()

        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def create_app(
    settings: RegistrySettings,
    store: RegistryStore | None = None,
    resolver: HostResolver | None = None,
) -> web.Application:
    """Build the registry application without binding a socket or starting probes."""
    return RegistryServer(settings, store=store, resolver=resolver)._create_app()
