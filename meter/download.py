"""
Download speed test module.

Each worker issues ranged ``GET`` requests and drains the body in
``CHUNK_SIZE`` reads; the shared ``BandwidthMeter`` does the sampling and
decides when to stop.
"""
from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from .bandwidth import BandwidthMeter, ProgressCallback, SpeedTestResult, StabilityCriteria
from .constants import CHUNK_SIZE, DEFAULT_CONNECTIONS, DOWNLOAD_RANGE_SIZE
from .context import RunContext
from .errors import DownloadTestFailed
from .stats import ConnectionStats


def range_url(url: str, size: int = DOWNLOAD_RANGE_SIZE) -> str:
    """fast.com ``/speedtest`` targets take a ``/range/0-N`` suffix.

    Any other URL is returned unchanged.
    """
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    if not path.endswith("/speedtest"):
        return url
    return urlunsplit(parts._replace(path=f"{path}/range/0-{size}"))


class DownloadTester(BandwidthMeter):
    """Parallel download meter."""

    direction = "download"
    failure = DownloadTestFailed

    async def _transfer(
        self, session: aiohttp.ClientSession, url: str, conn: ConnectionStats
    ) -> None:
        async with session.get(range_url(url)) as resp:
            resp.raise_for_status()
            while True:
                chunk = await resp.content.read(CHUNK_SIZE)
                if not chunk:
                    break
                conn.bytes_transferred += len(chunk)


async def measure_download_speed(
    urls: List[str],
    criteria: Optional[StabilityCriteria] = None,
    progress_callback: Optional[ProgressCallback] = None,
    *,
    connections: int = DEFAULT_CONNECTIONS,
    context: Optional[RunContext] = None,
) -> SpeedTestResult:
    tester = DownloadTester(criteria=criteria, connections=connections, context=context)
    return await tester.measure(urls, on_progress=progress_callback)
