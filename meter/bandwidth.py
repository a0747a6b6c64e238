"""
Adaptive bandwidth measurement.

A ``BandwidthMeter`` runs N parallel transfers against the test URLs and a
single coordinator that samples their aggregate throughput on a fixed tick.
Each sample goes into a ``StabilityDetector``:

    RampUp     samples recorded, not scored (slow-start, TLS setup)
    Measuring  sliding window of the last ``sliding_window_size`` samples,
               CoV = pstdev / mean after every sample
    Converged  ``stable_checks_required`` consecutive windows with
               CoV <= ``stability_threshold_cov`` -> stop, report window mean
    TimedOut   ``max_duration_seconds`` reached -> stop, report best estimate

Download and upload only differ in ``_transfer``; see ``download.py`` and
``upload.py``.
"""
from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional, Type

import aiohttp

from .constants import (
    COMMON_HEADERS,
    CONNECT_TIMEOUT,
    DEFAULT_CONNECTIONS,
    DEFAULT_INTERVAL_MS,
    DEFAULT_MAX_DURATION,
    DEFAULT_RAMP_UP_SECONDS,
    DEFAULT_STABILITY_COV,
    DEFAULT_STABLE_CHECKS,
    DEFAULT_WINDOW_SIZE,
    MAX_CONNECTIONS,
    MAX_CONSECUTIVE_FAILURES,
    MIN_CONNECTIONS,
    MIN_SAMPLE_ELAPSED,
    MIN_STABILITY_DURATION,
    READ_TIMEOUT,
    RECONNECT_DELAY,
    SHUTDOWN_GRACE,
)
from .context import RunContext
from .errors import MeterError, NoUrlsProvided, ProtocolError, SpeedTestFailed
from .stats import ConnectionStats, coefficient_of_variation
from .units import SpeedMeasurement

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SpeedMeasurement], None]

_TRANSFER_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError, ProtocolError)


# ---------------------------------------------------------------------------
# Configuration and result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StabilityCriteria:
    """When to stop measuring.  All durations are wall-clock."""

    ramp_up_duration_seconds: float = DEFAULT_RAMP_UP_SECONDS
    max_duration_seconds: float = DEFAULT_MAX_DURATION
    measurement_interval_ms: int = DEFAULT_INTERVAL_MS
    sliding_window_size: int = DEFAULT_WINDOW_SIZE
    stability_threshold_cov: float = DEFAULT_STABILITY_COV
    stable_checks_required: int = DEFAULT_STABLE_CHECKS

    def __post_init__(self) -> None:
        if self.ramp_up_duration_seconds < 0:
            raise ValueError("Ramp-up duration must not be negative")
        if self.ramp_up_duration_seconds >= self.max_duration_seconds:
            raise ValueError("Ramp-up duration must be shorter than the max duration")
        if self.measurement_interval_ms <= 0:
            raise ValueError("Measurement interval must be positive")
        if self.stable_checks_required < 1:
            raise ValueError("At least one stable check is required")
        if self.sliding_window_size < self.stable_checks_required:
            raise ValueError("Sliding window must hold at least stable_checks_required samples")
        if self.stability_threshold_cov <= 0:
            raise ValueError("Stability threshold must be positive")

    @property
    def interval_seconds(self) -> float:
        return self.measurement_interval_ms / 1000

    @classmethod
    def with_max_duration(cls, seconds: float, **overrides) -> StabilityCriteria:
        """Criteria for a CLI ``--duration``; never below the stability floor."""
        return cls(max_duration_seconds=max(MIN_STABILITY_DURATION, seconds), **overrides)


@dataclass
class SpeedTestResult:
    """Outcome of one download or upload phase."""

    speed: SpeedMeasurement
    elapsed_seconds: float = 0.0
    converged: bool = False
    samples: List[float] = field(default_factory=list)   # bits/s, time-ordered
    bytes_total: int = 0
    connections: List[ConnectionStats] = field(default_factory=list)

    @property
    def speed_mbps(self) -> float:
        return self.speed.mbps

    def to_dict(self) -> dict:
        return {
            "speed": self.speed.to_dict(),
            "speed_mbps": round(self.speed_mbps, 2),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "converged": self.converged,
            "bytes_total": self.bytes_total,
            "connections": [c.to_dict() for c in self.connections],
            "samples_mbps": [round(s / 1_000_000, 2) for s in self.samples],
        }


# ---------------------------------------------------------------------------
# Stability detection
# ---------------------------------------------------------------------------

class StabilityDetector:
    """Coordinator-owned sliding-window stability test.

    Not thread-safe and not meant to be: only the sampling coroutine feeds it.
    """

    def __init__(self, criteria: StabilityCriteria) -> None:
        self.criteria = criteria
        self.window: Deque[float] = deque(maxlen=criteria.sliding_window_size)
        self.measured: List[float] = []
        self.consecutive_stable = 0
        self.converged = False
        self.last_cov: Optional[float] = None
        self._last_elapsed: Optional[float] = None

    @property
    def state(self) -> str:
        if self.converged:
            return "converged"
        if self._last_elapsed is None or self._last_elapsed < self.criteria.ramp_up_duration_seconds:
            return "ramp-up"
        return "measuring"

    def add_sample(self, elapsed_seconds: float, value: float) -> bool:
        """Feed one throughput sample; returns ``True`` once converged."""
        if self.converged:
            return True
        if self._last_elapsed is not None and elapsed_seconds <= self._last_elapsed:
            logger.debug("Dropping out-of-order sample at %.3fs", elapsed_seconds)
            return False
        self._last_elapsed = elapsed_seconds

        if elapsed_seconds < self.criteria.ramp_up_duration_seconds:
            return False

        self.window.append(value)
        self.measured.append(value)
        if len(self.window) < self.criteria.sliding_window_size:
            return False

        self.last_cov = coefficient_of_variation(self.window)
        if self.last_cov is not None and self.last_cov <= self.criteria.stability_threshold_cov:
            self.consecutive_stable += 1
        else:
            self.consecutive_stable = 0

        if self.consecutive_stable >= self.criteria.stable_checks_required:
            self.converged = True
        return self.converged

    def estimate(self) -> Optional[float]:
        """Mean of the current window, else of all scored samples."""
        if self.window:
            return statistics.fmean(self.window)
        if self.measured:
            return statistics.fmean(self.measured)
        return None


# ---------------------------------------------------------------------------
# Meter
# ---------------------------------------------------------------------------

class BandwidthMeter:
    """
    Parallel throughput meter with adaptive stopping.

    Each worker owns one ``ConnectionStats`` and is the only writer of its
    ``bytes_transferred``.  The coordinator reads all counters between awaits,
    which the event loop makes an atomic snapshot.  A worker whose request
    errors reconnects to the next URL; after ``MAX_CONSECUTIVE_FAILURES``
    attempts in a row that move no data it is dropped.
    """

    direction = "transfer"
    failure: Type[SpeedTestFailed] = SpeedTestFailed

    def __init__(
        self,
        criteria: Optional[StabilityCriteria] = None,
        connections: int = DEFAULT_CONNECTIONS,
        context: Optional[RunContext] = None,
    ) -> None:
        self.criteria = criteria or StabilityCriteria()
        self.connections = max(MIN_CONNECTIONS, min(connections, MAX_CONNECTIONS))
        self.context = context or RunContext()
        self.on_progress: Optional[ProgressCallback] = None

    # -- Hooks for subclasses ----------------------------------------------

    async def _transfer(
        self, session: aiohttp.ClientSession, url: str, conn: ConnectionStats
    ) -> None:
        """Move data over one request, bumping ``conn.bytes_transferred``."""
        raise NotImplementedError

    def _open_session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(
            total=None, connect=CONNECT_TIMEOUT, sock_read=READ_TIMEOUT
        )
        return aiohttp.ClientSession(
            headers={**COMMON_HEADERS, "Accept-Encoding": "identity"},
            connector=self.context.connector(
                limit=self.connections,
                limit_per_host=self.connections,
                force_close=False,
            ),
            timeout=timeout,
        )

    # -- Public API ---------------------------------------------------------

    async def measure(
        self,
        urls: List[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> SpeedTestResult:
        """Run until the throughput is stable or the time ceiling is hit."""
        if not urls:
            raise NoUrlsProvided()

        callback = on_progress or self.on_progress
        criteria = self.criteria
        detector = StabilityDetector(criteria)
        conn_stats = [ConnectionStats(id=i) for i in range(self.connections)]
        samples: List[float] = []

        logger.info(
            "Starting %s: %d connection(s), %d URL(s), max %.0fs",
            self.direction, self.connections, len(urls), criteria.max_duration_seconds,
        )

        async with self._open_session() as session:
            start = time.perf_counter()
            deadline = start + criteria.max_duration_seconds
            workers = [
                asyncio.create_task(self._worker(session, urls, conn, start))
                for conn in conn_stats
            ]

            prev_bytes = 0
            prev_time = start
            tick = 0
            try:
                while True:
                    tick += 1
                    next_tick = min(start + tick * criteria.interval_seconds, deadline)
                    delay = next_tick - time.perf_counter()
                    if delay > 0:
                        await asyncio.sleep(delay)

                    now = time.perf_counter()
                    elapsed = now - start
                    total = sum(c.bytes_transferred for c in conn_stats)
                    dt = now - prev_time

                    if dt >= MIN_SAMPLE_ELAPSED:
                        bps = (total - prev_bytes) * 8 / dt
                        prev_bytes, prev_time = total, now
                        samples.append(bps)
                        self._report(callback, SpeedMeasurement.from_bps(bps))
                        if detector.add_sample(elapsed, bps):
                            logger.info(
                                "%s converged after %.1fs (CoV %.3f)",
                                self.direction.capitalize(), elapsed, detector.last_cov,
                            )
                            break

                    if now >= deadline:
                        logger.info(
                            "%s hit the %.0fs ceiling without converging",
                            self.direction.capitalize(), criteria.max_duration_seconds,
                        )
                        break

                    if all(w.done() for w in workers):
                        raise self._all_failed(conn_stats)
            finally:
                await self._shutdown(workers)

            elapsed = time.perf_counter() - start

        bytes_total = sum(c.bytes_transferred for c in conn_stats)
        if bytes_total == 0 and all(c.dropped for c in conn_stats):
            raise self._all_failed(conn_stats)

        estimate = detector.estimate()
        if estimate is None:
            estimate = bytes_total * 8 / elapsed if elapsed > 0 else 0.0

        for conn in conn_stats:
            conn.calculate()

        return SpeedTestResult(
            speed=SpeedMeasurement.from_bps(estimate),
            elapsed_seconds=elapsed,
            converged=detector.converged,
            samples=samples,
            bytes_total=bytes_total,
            connections=conn_stats,
        )

    # -- Internals ----------------------------------------------------------

    async def _worker(
        self,
        session: aiohttp.ClientSession,
        urls: List[str],
        conn: ConnectionStats,
        start: float,
    ) -> None:
        failures = 0
        attempt = 0
        try:
            while True:
                url = urls[(conn.id + attempt) % len(urls)]
                attempt += 1
                conn.url = url
                conn.requests += 1
                before = conn.bytes_transferred
                try:
                    await self._transfer(session, url, conn)
                except _TRANSFER_ERRORS as exc:
                    conn.errors += 1
                    conn.last_error = exc
                    logger.debug("%s connection %d error on %s: %s",
                                 self.direction, conn.id, url, exc)
                if conn.bytes_transferred > before:
                    failures = 0
                    continue

                failures += 1
                if failures >= MAX_CONSECUTIVE_FAILURES:
                    conn.dropped = True
                    logger.warning(
                        "%s connection %d dropped after %d failed attempts",
                        self.direction.capitalize(), conn.id, failures,
                    )
                    return
                await asyncio.sleep(RECONNECT_DELAY)
        finally:
            conn.duration_ms = (time.perf_counter() - start) * 1000

    @staticmethod
    async def _shutdown(workers: List[asyncio.Task]) -> None:
        for task in workers:
            task.cancel()
        _, pending = await asyncio.wait(workers, timeout=SHUTDOWN_GRACE)
        if pending:
            logger.warning("%d transfer(s) did not stop within %.1fs", len(pending), SHUTDOWN_GRACE)

    def _report(self, callback: Optional[ProgressCallback], measurement: SpeedMeasurement) -> None:
        if callback is None:
            return
        try:
            callback(measurement)
        except Exception:  # noqa: BLE001
            logger.exception("Progress callback failed")

    def _all_failed(self, conn_stats: List[ConnectionStats]) -> MeterError:
        errors = [c.last_error for c in conn_stats if c.last_error is not None]
        # Every connection refused by a forced family: report the protocol itself.
        if len(errors) == len(conn_stats) and all(isinstance(e, ProtocolError) for e in errors):
            return errors[-1]
        return self.failure(
            f"{self.direction.capitalize()} test failed: all {len(conn_stats)} connections failed",
            cause=errors[-1] if errors else None,
        )
