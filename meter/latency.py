"""
HTTP round-trip latency measurement.

Probe flow, per URL and per repetition::

    1. Open a single-connection session (protocol-restricted by the run context)
    2. HEAD {url}   -- warm-up: DNS, TCP and TLS setup, timing discarded
    3. HEAD {url}   -- same connection reused, wall-clock time measured
    4. Timed request slower than the timeout, or any error -> failed probe

Failures never abort the batch; they are folded into the packet-loss rate.
The one exception is a ``ProtocolError`` from a forced family, which ends
the batch: no later probe could take a different route.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

import aiohttp

from .constants import (
    COMMON_HEADERS,
    DEFAULT_PING_COUNT,
    DEFAULT_PING_TIMEOUT_MS,
    WARMUP_CONNECT_TIMEOUT,
)
from .context import RunContext
from .errors import ConnectionTimeout, NoUrlsProvided
from .stats import NetworkStats

logger = logging.getLogger(__name__)

_PROBE_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class LatencyTester:
    """Measure application-layer RTT to a set of URLs."""

    def __init__(
        self,
        ping_count: int = DEFAULT_PING_COUNT,
        timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
        context: Optional[RunContext] = None,
    ) -> None:
        self.ping_count = ping_count
        self.timeout_ms = timeout_ms
        self.context = context or RunContext()

    # -- Public API ---------------------------------------------------------

    async def measure_latency_stats(self, urls: List[str]) -> NetworkStats:
        """Probe every URL ``ping_count`` times and accumulate the outcomes."""
        if not urls:
            raise NoUrlsProvided()

        stats = NetworkStats()
        for url in urls:
            for _ in range(self.ping_count):
                try:
                    latency_ms = await self.measure_single_url(url)
                except ConnectionTimeout as exc:
                    logger.debug("Probe to %s failed: %s", url, exc)
                    stats.add_measurement(False, 0.0)
                    continue
                stats.add_measurement(True, latency_ms)

        logger.info(
            "Latency: %d/%d probes ok, loss %.1f%%",
            stats.successful_packets,
            stats.packet_count,
            stats.packet_loss_rate(),
        )
        return stats

    async def measure_latency(self, urls: List[str]) -> Optional[float]:
        """Mean latency only; ``None`` when nothing answered."""
        stats = await self.measure_latency_stats(urls)
        return stats.mean_latency()

    async def measure_single_url(self, url: str) -> float:
        """One probe.  Returns RTT in ms or raises ``ConnectionTimeout``.

        A ``ProtocolError`` from a forced-family connector is not a lost
        probe and propagates unchanged.
        """
        timeout = aiohttp.ClientTimeout(total=None, connect=WARMUP_CONNECT_TIMEOUT)
        try:
            async with aiohttp.ClientSession(
                headers=COMMON_HEADERS,
                connector=self.context.connector(limit=1),
                timeout=timeout,
            ) as session:
                await asyncio.wait_for(
                    self._head(session, url), timeout=WARMUP_CONNECT_TIMEOUT
                )

                start = time.perf_counter()
                await asyncio.wait_for(
                    self._head(session, url), timeout=self.timeout_ms / 1000
                )
                latency_ms = (time.perf_counter() - start) * 1000
        except _PROBE_ERRORS as exc:
            raise ConnectionTimeout(f"{type(exc).__name__}: {exc}") from exc

        if latency_ms > self.timeout_ms:
            raise ConnectionTimeout(
                f"RTT {latency_ms:.0f} ms exceeded {self.timeout_ms} ms"
            )
        return latency_ms

    # -- Internals ----------------------------------------------------------

    @staticmethod
    async def _head(session: aiohttp.ClientSession, url: str) -> int:
        async with session.head(url) as resp:
            # Drain so the connection goes back to the pool for reuse.
            await resp.read()
            return resp.status
