# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Data models for registry storage.

Challenges are single-use registration nonces; nodes are registered peers
keyed by host.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Mapping


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def isoformat(value: datetime | None) -> str | None:
    """RFC 3339 text for a timestamp, or None."""
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class NodeStatus(str, Enum):
    """Observed liveness of a node."""

    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Challenge:
    """A pending registration challenge."""

    nonce: str
    pubkey_b64: str
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the challenge can no longer be redeemed."""
        return (now or utcnow()) > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "nonce": self.nonce,
            "expires_at": isoformat(self.expires_at),
        }


@dataclass
class NodeRegistration:
    """Self-reported node metadata accepted by a successful registration."""

    host: str
    name: str
    api_base_url: str
    protocol_version: str
    pubkey: bytes
    ip: str
    features: dict[str, Any] = field(default_factory=dict)
    contact_email: str = ""


@dataclass
class ProbeObservation:
    """Result of probing one node during a reconciler tick.

    ``country_code``/``country_name`` are None when the geolocation lookup
    failed or was skipped; the store keeps the previous values then.
    """

    online: bool
    latency_ms: int | None = None
    country_code: str | None = None
    country_name: str | None = None
    observed_at: datetime = field(default_factory=utcnow)

    @property
    def status(self) -> NodeStatus:
        return NodeStatus.ONLINE if self.online else NodeStatus.OFFLINE


@dataclass
class Node:
    """A registered node."""

    host: str
    name: str
    api_base_url: str
    protocol_version: str
    pubkey: bytes
    ip: str | None = None
    features: dict[str, Any] = field(default_factory=dict)
    contact_email: str = ""
    status: NodeStatus = NodeStatus.UNKNOWN
    last_seen_at: datetime | None = None
    last_latency_ms: int | None = None
    country_code: str | None = None
    country_name: str | None = None
    registered_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_registration(cls, registration: NodeRegistration, now: datetime | None = None) -> Node:
        """Create a fresh node row for a first registration."""
        return cls(
            host=registration.host,
            name=registration.name,
            api_base_url=registration.api_base_url,
            protocol_version=registration.protocol_version,
            pubkey=registration.pubkey,
            ip=registration.ip,
            features=dict(registration.features),
            contact_email=registration.contact_email,
            registered_at=now or utcnow(),
        )

    def apply_registration(self, registration: NodeRegistration) -> None:
        """Overwrite the self-reported fields from a re-registration.

        Status, liveness and geolocation are left alone.
        """
        self.name = registration.name
        self.api_base_url = registration.api_base_url
        self.protocol_version = registration.protocol_version
        self.pubkey = registration.pubkey
        self.ip = registration.ip
        self.features = dict(registration.features)
        self.contact_email = registration.contact_email

    def apply_probe(self, observation: ProbeObservation) -> None:
        """Merge a reconciler observation into the row.

        last_seen_at only moves forward on an online observation, and the
        country fields only change when the lookup produced a value.
        """
        self.status = observation.status
        self.last_latency_ms = observation.latency_ms if observation.online else None
        if observation.online:
            self.last_seen_at = observation.observed_at
        if observation.country_code is not None:
            self.country_code = observation.country_code
        if observation.country_name is not None:
            self.country_name = observation.country_name

    def to_public_dict(self) -> dict[str, Any]:
        """Directory representation (no key material, no contact address)."""
        return {
            "name": self.name,
            "host": self.host,
            "ip": self.ip,
            "api_base_url": self.api_base_url,
            "protocol_version": self.protocol_version,
            "features": self.features,
            "country_code": self.country_code,
            "country_name": self.country_name,
            "last_seen_at": isoformat(self.last_seen_at),
            "last_latency_ms": self.last_latency_ms,
            "status": self.status.value,
            "registered_at": isoformat(self.registered_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Node:
        """Build a node from a database row."""
        features = row.get("features")
        if isinstance(features, str):
            features = json.loads(features)
        return cls(
            host=row["host"],
            name=row["name"],
            api_base_url=row["api_base_url"],
            protocol_version=row["protocol_version"],
            pubkey=bytes(row["pubkey"]),
            ip=row.get("ip"),
            features=features or {},
            contact_email=row.get("contact_email") or "",
            status=NodeStatus(row.get("status") or NodeStatus.UNKNOWN.value),
            last_seen_at=row.get("last_seen_at"),
            last_latency_ms=row.get("last_latency_ms"),
            country_code=row.get("country_code"),
            country_name=row.get("country_name"),
            registered_at=row.get("registered_at") or utcnow(),
        )


def directory_sort_key(node: Node) -> tuple[int, str, str]:
    """Online nodes first, then by name, then by host."""
    return (0 if node.status == NodeStatus.ONLINE else 1, node.name, node.host)
