# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Host resolution for node registration.

A node must be reachable by its advertised hostname when it registers; the
resolved address is stored for geolocation lookups.
"""

from __future__ import annotations

import ipaddress
import logging
from abc import ABC, abstractmethod

import dns.asyncresolver
import dns.exception
import dns.resolver

from ..core.exceptions import HostResolutionError

logger = logging.getLogger(__name__)


class HostResolver(ABC):
    """Resolves a hostname to one IP address."""

    @abstractmethod
    async def resolve(self, host: str) -> str:
        """Return an IP address for ``host``.

        Raises:
            HostResolutionError: if the host cannot be resolved
        """
        ...


class DnsHostResolver(HostResolver):
    """dnspython resolver trying A records, then AAAA.

    IP literals are returned unchanged without a query.
    """

    RECORD_TYPES = ("A", "AAAA")

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    def _make_resolver(self) -> dns.asyncresolver.Resolver:
        resolver = dns.asyncresolver.Resolver()
        resolver.timeout = self.timeout
        resolver.lifetime = self.timeout
        return resolver

    async def resolve(self, host: str) -> str:
        host = host.strip().rstrip(".")
        if not host:
            raise HostResolutionError(host, "empty host")

        try:
            return str(ipaddress.ip_address(host.strip("[]")))
        except ValueError:
            pass

        resolver = self._make_resolver()
        for rdtype in self.RECORD_TYPES:
            try:
                answers = await resolver.resolve(host, rdtype)
            except dns.resolver.NXDOMAIN as e:
                logger.info(f"Host {host} does not exist")
                raise HostResolutionError(host, "no such domain") from e
            except dns.resolver.NoAnswer:
                continue
            except dns.exception.Timeout as e:
                logger.warning(f"DNS timeout resolving {host}")
                raise HostResolutionError(host, "dns timeout") from e
            except dns.exception.DNSException as e:  # Intentionally broad: NoNameservers, YXDOMAIN, ...
                logger.warning(f"DNS error resolving {host}: {e}")
                raise HostResolutionError(host, str(e)) from e

            for rdata in answers:
                address = rdata.to_text()
                logger.debug(f"Resolved {host} -> {address} ({rdtype})")
                return address

        raise HostResolutionError(host, "no address records")
