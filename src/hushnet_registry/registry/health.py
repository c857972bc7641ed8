# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Background health reconciliation for registered nodes.

Every tick the reconciler walks all nodes and, for each one:

1. GETs ``{api_base_url}/health``. A 2xx answer marks the node online with
   the observed round trip; anything else marks it offline and clears the
   latency. last_seen_at only advances on online.
2. Looks up the node's resolved IP with the geolocation service. The
   country is updated only when the lookup succeeds.

One node's failure never stops the tick, and a failed tick never stops the
loop; the next tick is the retry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..core.config import RegistrySettings
from ..storage.backend import RegistryStore
from ..storage.models import Node, ProbeObservation, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """Summary of one reconciler tick."""

    probed: int = 0
    online: int = 0
    offline: int = 0
    failed: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "probed": self.probed,
            "online": self.online,
            "offline": self.offline,
            "failed": self.failed,
            "duration_ms": round(self.duration_ms, 1),
        }


class HealthReconciler:
    """Periodically probes every registered node.

    Args:
        store: Registry store
        settings: Interval, timeouts, geolocation template and concurrency
        session: Optional shared aiohttp session; created on start() if omitted
    """

    def __init__(
        self,
        store: RegistryStore,
        settings: RegistrySettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.store = store
        self.interval = settings.health_interval_seconds
        self.health_timeout = settings.health_timeout_seconds
        self.geoip_url = settings.geoip_url
        self.geoip_timeout = settings.geoip_timeout_seconds
        self.concurrency = settings.health_concurrency
        self._session = session
        self._owns_session = session is None
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the reconciliation loop."""
        if self._running:
            return

        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Health reconciler started (interval={self.interval}s, concurrency={self.concurrency})")

    async def stop(self) -> None:
        """Stop the loop and release the HTTP session if we created it."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        logger.info("Health reconciler stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                report = await self.tick()
                logger.info(
                    f"Health tick: probed={report.probed} online={report.online} "
                    f"offline={report.offline} failed={report.failed} "
                    f"({report.duration_ms:.0f}ms)"
                )
            except Exception:
                logger.exception("Health tick failed, retrying next interval")

            await asyncio.sleep(self.interval)

    async def tick(self) -> TickReport:
        """Probe every node once.

        Raises:
            DatabaseException: if the node list cannot be read
        """
        started = time.monotonic()
        report = TickReport()
        nodes = await self.store.list_nodes()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _guarded(node: Node) -> None:
            async with semaphore:
                try:
                    observation = await self.reconcile_node(node)
                except Exception as e:  # Intentionally broad: one node must not abort the tick
                    report.failed += 1
                    logger.error(f"Health check failed for {node.host}: {e}")
                    return
            report.probed += 1
            if observation.online:
                report.online += 1
            else:
                report.offline += 1

        if self.concurrency == 1:
            for node in nodes:
                await _guarded(node)
        else:
            await asyncio.gather(*(_guarded(node) for node in nodes))

        report.duration_ms = (time.monotonic() - started) * 1000
        return report

    async def reconcile_node(self, node: Node) -> ProbeObservation:
        """Probe one node and write the observation to the store."""
        latency_ms = await self.probe_health(node)

        country_code: str | None = None
        country_name: str | None = None
        if node.ip:
            country_code, country_name = await self.lookup_country(node.ip)

        observation = ProbeObservation(
            online=latency_ms is not None,
            latency_ms=latency_ms,
            country_code=country_code,
            country_name=country_name,
            observed_at=utcnow(),
        )
        await self.store.record_probe(node.host, observation)
        return observation

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def probe_health(self, node: Node) -> int | None:
        """GET the node's health endpoint.

        Returns:
            Round trip in milliseconds for a 2xx answer, None otherwise
        """
        url = f"{node.api_base_url.rstrip('/')}/health"
        timeout = aiohttp.ClientTimeout(total=self.health_timeout)
        session = self._get_session()

        start = time.monotonic()
        try:
            async with session.get(url, timeout=timeout) as response:
                latency_ms = int((time.monotonic() - start) * 1000)
                if 200 <= response.status < 300:
                    logger.debug(f"Probe ok: {node.host} latency={latency_ms}ms")
                    return latency_ms
                logger.debug(f"Probe failed: {node.host} status={response.status}")
                return None
        except asyncio.TimeoutError:
            logger.debug(f"Probe timeout: {node.host}")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"Probe failed: {node.host} - {e}")
            return None

    async def lookup_country(self, ip: str) -> tuple[str | None, str | None]:
        """Query the geolocation service for ``ip``.

        Returns:
            (country_code, country_name), with None for anything the lookup
            did not produce
        """
        url = self.geoip_url.replace("{ip}", ip)
        timeout = aiohttp.ClientTimeout(total=self.geoip_timeout)
        session = self._get_session()

        try:
            async with session.get(url, timeout=timeout) as response:
                if not 200 <= response.status < 300:
                    logger.debug(f"Geolocation lookup for {ip} returned {response.status}")
                    return None, None
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.debug(f"Geolocation timeout for {ip}")
            return None, None
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"Geolocation lookup failed for {ip}: {e}")
            return None, None

        if not isinstance(data, dict):
            return None, None

        code = data.get("country")
        name = data.get("country_name")
        return (
            code if isinstance(code, str) and code else None,
            name if isinstance(name, str) and name else None,
        )
