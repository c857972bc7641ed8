# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Registration protocol: challenge, register, heartbeat.

Flow for one node identity:

    NoChallenge --challenge(pubkey)--> Challenged --register(...)--> Registered
                                                                      |
                                               heartbeat(host, ...) <-+

- challenge: the node claims a public key and receives a single-use nonce
  valid for a few minutes.
- register: the node signs canonical_json(payload) + nonce. On success the
  host is bound to the key (trust on first use) and the nonce is consumed.
- heartbeat: the node signs host + nonce with the key bound to its host.
  The heartbeat nonce is uniqueness salt only, not replay protection.

Every step reads and writes through the store; nothing is cached here.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

from ..core.config import RegistrySettings
from ..core.exceptions import (
    AuthenticationError,
    HostConflictError,
    NodeNotFoundError,
    ValidationException,
)
from ..core.logging import short_key
from ..identity.canonical import heartbeat_message, registration_message
from ..identity.signatures import decode_b64, verify
from ..storage.backend import RegistryStore
from ..storage.models import Challenge, Node, NodeRegistration, utcnow
from .resolver import HostResolver

logger = logging.getLogger(__name__)

# 192 bits of entropy, URL-safe base64 without padding
NONCE_BYTES = 24

REQUIRED_PAYLOAD_FIELDS = ("name", "host", "api_base_url", "protocol_version")


def generate_nonce() -> str:
    """Generate an unguessable challenge nonce."""
    return secrets.token_urlsafe(NONCE_BYTES)


def parse_registration_payload(payload: Any) -> dict[str, Any]:
    """Extract the node fields from a signed registration payload.

    Raises:
        ValidationException: naming the first missing or non-string field
    """
    if not isinstance(payload, dict):
        raise ValidationException("payload must be a JSON object", field="payload")

    fields: dict[str, Any] = {}
    for name in REQUIRED_PAYLOAD_FIELDS:
        value = payload.get(name)
        if not isinstance(value, str):
            raise ValidationException(f"missing/invalid {name}", field=name)
        fields[name] = value

    features = payload.get("features")
    if features is None:
        features = {}
    elif not isinstance(features, dict):
        raise ValidationException("missing/invalid features", field="features")
    fields["features"] = features

    contact_email = payload.get("contact_email")
    fields["contact_email"] = contact_email if isinstance(contact_email, str) else ""
    return fields


class RegistrationProtocol:
    """Challenge/response registration and signed heartbeats.

    Args:
        store: Registry store (sole owner of challenge and node state)
        resolver: Resolves the advertised host at registration
        settings: Registry settings (challenge TTL)
    """

    def __init__(
        self,
        store: RegistryStore,
        resolver: HostResolver,
        settings: RegistrySettings,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.challenge_ttl = timedelta(seconds=settings.challenge_ttl_seconds)

    async def challenge(self, pubkey_b64: str, now: datetime | None = None) -> Challenge:
        """Issue a registration challenge for a claimed public key.

        Any caller may request a challenge for any key; the key is only
        checked when the challenge is redeemed.

        Raises:
            ValidationException: if pubkey_b64 is empty
        """
        if not isinstance(pubkey_b64, str) or not pubkey_b64:
            raise ValidationException("pubkey_b64 required", field="pubkey_b64")

        issued_at = now or utcnow()
        challenge = Challenge(
            nonce=generate_nonce(),
            pubkey_b64=pubkey_b64,
            expires_at=issued_at + self.challenge_ttl,
        )
        await self.store.insert_challenge(challenge)
        logger.debug(f"Issued challenge for key {short_key(pubkey_b64)}")
        return challenge

    async def register(
        self,
        payload: Any,
        nonce: str,
        signature_b64: str,
        pubkey_b64: str,
        now: datetime | None = None,
    ) -> Node:
        """Redeem a challenge and register (or re-register) a node.

        Raises:
            ValidationException: unknown/expired nonce, pubkey mismatch,
                malformed key or signature, bad payload fields
            AuthenticationError: signature does not verify
            HostResolutionError: host does not resolve
            HostConflictError: host is bound to a different key
        """
        now = now or utcnow()

        challenge = await self.store.get_challenge(nonce)
        if challenge is None:
            raise ValidationException("invalid/expired nonce", field="nonce")
        if challenge.is_expired(now):
            raise ValidationException("expired nonce", field="nonce")
        if challenge.pubkey_b64 != pubkey_b64:
            raise ValidationException("pubkey mismatch", field="pubkey_b64")

        try:
            message = registration_message(payload, nonce)
        except (TypeError, ValueError) as e:
            raise ValidationException(f"payload is not canonical JSON: {e}", field="payload") from e

        if not verify(pubkey_b64, signature_b64, message):
            logger.warning(f"Registration signature rejected for key {short_key(pubkey_b64)}")
            raise AuthenticationError("bad signature")

        fields = parse_registration_payload(payload)
        host = fields["host"]

        ip = await self.resolver.resolve(host)

        pubkey = decode_b64(pubkey_b64, "pubkey_b64")
        existing = await self.store.get_node_pubkey(host)
        if existing is not None and existing != pubkey:
            logger.warning(
                f"Registration conflict for {host}: bound to {short_key(existing)}, "
                f"offered {short_key(pubkey)}"
            )
            raise HostConflictError(host)

        registration = NodeRegistration(
            host=host,
            name=fields["name"],
            api_base_url=fields["api_base_url"],
            protocol_version=fields["protocol_version"],
            pubkey=pubkey,
            ip=ip,
            features=fields["features"],
            contact_email=fields["contact_email"],
        )
        try:
            # Consumes the nonce together with the write
            node = await self.store.register_node(registration, nonce)
        except HostConflictError:
            logger.warning(f"Registration conflict for {host}: bound to another key while registering")
            raise
        if node is None:
            logger.warning(f"Nonce for {host} was redeemed by a concurrent registration")
            raise ValidationException("invalid/expired nonce", field="nonce")

        action = "registered" if existing is None else "updated"
        logger.info(f"Node {action}: host={host}, ip={ip}, name={node.name}, protocol={node.protocol_version}")
        return node

    async def heartbeat(
        self,
        host: str,
        nonce: str,
        signature_b64: str,
        pubkey_b64: str,
        now: datetime | None = None,
    ) -> None:
        """Record a signed liveness proof from a registered node.

        The signature must verify under the key bound to ``host``; the key
        supplied with the request has to match that binding.

        Raises:
            ValidationException: malformed key or signature
            NodeNotFoundError: host is not registered
            HostConflictError: supplied key is not the key bound to host
            AuthenticationError: signature does not verify
        """
        pubkey = decode_b64(pubkey_b64, "pubkey_b64")

        bound = await self.store.get_node_pubkey(host)
        if bound is None:
            raise NodeNotFoundError(host)
        if bound != pubkey:
            logger.warning(f"Heartbeat for {host} signed with unbound key {short_key(pubkey)}")
            raise HostConflictError(host, "pubkey does not match the key bound to host")

        if not verify(pubkey_b64, signature_b64, heartbeat_message(host, nonce)):
            logger.warning(f"Heartbeat signature rejected for {host}")
            raise AuthenticationError("bad signature")

        if not await self.store.mark_online(host, now or utcnow()):
            raise NodeNotFoundError(host)
        logger.debug(f"Heartbeat from {host}")
