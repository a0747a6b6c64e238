"""
Upload speed test module.

Mirror image of the download path: request bodies are generated from a
pre-generated random buffer and streamed with chunked ``POST`` requests.
Bytes are counted as aiohttp pulls each chunk, which tracks socket
back-pressure closely enough for interval sampling.
"""
from __future__ import annotations

import os
from typing import AsyncIterator, List, Optional

import aiohttp

from .bandwidth import BandwidthMeter, ProgressCallback, SpeedTestResult, StabilityCriteria
from .constants import (
    DEFAULT_CONNECTIONS,
    UPLOAD_BUFFER_SIZE,
    UPLOAD_CHUNK_SIZE,
    UPLOAD_REQUEST_SIZE,
)
from .context import RunContext
from .download import range_url
from .errors import UploadTestFailed
from .stats import ConnectionStats


class UploadTester(BandwidthMeter):
    """Parallel upload meter."""

    direction = "upload"
    failure = UploadTestFailed

    HEADERS = {"Content-Type": "application/octet-stream"}

    def __init__(
        self,
        criteria: Optional[StabilityCriteria] = None,
        connections: int = DEFAULT_CONNECTIONS,
        context: Optional[RunContext] = None,
        request_size: int = UPLOAD_REQUEST_SIZE,
    ) -> None:
        super().__init__(criteria=criteria, connections=connections, context=context)
        self.request_size = request_size
        self._data_buffer = os.urandom(UPLOAD_BUFFER_SIZE)
        self._chunk_size = UPLOAD_CHUNK_SIZE

    async def _body(self, conn: ConnectionStats) -> AsyncIterator[bytes]:
        buffer_size = len(self._data_buffer)
        pos = 0
        sent = 0
        while sent < self.request_size:
            n = min(self._chunk_size, self.request_size - sent)
            if pos + n > buffer_size:
                pos = 0
            chunk = self._data_buffer[pos:pos + n]
            pos += n
            sent += n
            conn.bytes_transferred += n
            yield chunk

    async def _transfer(
        self, session: aiohttp.ClientSession, url: str, conn: ConnectionStats
    ) -> None:
        async with session.post(
            range_url(url, self.request_size),
            data=self._body(conn),
            headers=self.HEADERS,
        ) as resp:
            resp.raise_for_status()
            await resp.read()


async def measure_upload_speed(
    urls: List[str],
    criteria: Optional[StabilityCriteria] = None,
    progress_callback: Optional[ProgressCallback] = None,
    *,
    connections: int = DEFAULT_CONNECTIONS,
    context: Optional[RunContext] = None,
) -> SpeedTestResult:
    tester = UploadTester(criteria=criteria, connections=connections, context=context)
    return await tester.measure(urls, on_progress=progress_callback)
