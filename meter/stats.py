"""
Network measurement statistics.

Pure functions and lightweight accumulators -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

PERCENTILES = (5, 25, 50, 75, 95)


# ---------------------------------------------------------------------------
# Accumulators
# ---------------------------------------------------------------------------

@dataclass
class NetworkStats:
    """Outcomes of a latency run: successful RTTs plus probe counters.

    A failed probe only bumps ``packet_count``; loss, latency and jitter are
    always derived on read.
    """

    latencies: List[float] = field(default_factory=list)
    packet_count: int = 0
    successful_packets: int = 0

    def add_measurement(self, success: bool, latency_ms: float = 0.0) -> None:
        self.packet_count += 1
        if success:
            self.successful_packets += 1
            self.latencies.append(latency_ms)

    def packet_loss_rate(self) -> float:
        if self.packet_count == 0:
            return 0.0
        lost = self.packet_count - self.successful_packets
        return lost / self.packet_count * 100.0

    def mean_latency(self) -> Optional[float]:
        if not self.latencies:
            return None
        return statistics.fmean(self.latencies)

    def min_latency(self) -> Optional[float]:
        return min(self.latencies) if self.latencies else None

    def max_latency(self) -> Optional[float]:
        return max(self.latencies) if self.latencies else None

    def jitter(self) -> float:
        return calculate_jitter(self.latencies)

    def latency_distribution(self) -> List[float]:
        """5th, 25th, 50th, 75th and 95th percentiles (nearest rank)."""
        if not self.latencies:
            return []
        return [calculate_percentile(self.latencies, p) for p in PERCENTILES]

    def to_dict(self) -> dict:
        def _r(value: Optional[float]) -> Optional[float]:
            return None if value is None else round(value, 3)

        return {
            "latencies": [round(s, 3) for s in self.latencies],
            "packet_count": self.packet_count,
            "successful_packets": self.successful_packets,
            "packet_loss": round(self.packet_loss_rate(), 3),
            "mean": _r(self.mean_latency()),
            "min": _r(self.min_latency()),
            "max": _r(self.max_latency()),
            "jitter": round(self.jitter(), 3),
            "distribution": [round(p, 3) for p in self.latency_distribution()],
        }


@dataclass
class ConnectionStats:
    """Per-connection statistics collected by download / upload workers."""

    id: int = 0
    url: str = ""
    bytes_transferred: int = 0
    duration_ms: float = 0.0
    speed_mbps: float = 0.0
    requests: int = 0
    errors: int = 0
    last_error: Optional[BaseException] = field(default=None, repr=False)
    dropped: bool = False

    def calculate(self) -> None:
        if self.duration_ms > 0:
            self.speed_mbps = (
                (self.bytes_transferred * 8) / (self.duration_ms / 1000) / 1_000_000
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "bytes": self.bytes_transferred,
            "duration_ms": round(self.duration_ms, 2),
            "speed_mbps": round(self.speed_mbps, 2),
            "requests": self.requests,
            "errors": self.errors,
            "dropped": self.dropped,
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_jitter(samples: Sequence[float]) -> float:
    """Mean absolute deviation of *samples* from their mean.

    This is dispersion around the central tendency, not the RFC 3550
    inter-packet delta.
    """
    if len(samples) < 2:
        return 0.0
    mean = statistics.fmean(samples)
    return statistics.fmean(abs(s - mean) for s in samples)


def calculate_percentile(samples: Sequence[float], percentile: float) -> float:
    """Nearest-rank percentile: ``sorted[floor(p * (n - 1))]``."""
    if not samples:
        return 0.0

    ordered = sorted(samples)
    idx = math.floor(percentile / 100 * (len(ordered) - 1))
    return ordered[max(0, min(idx, len(ordered) - 1))]


def coefficient_of_variation(samples: Sequence[float]) -> Optional[float]:
    """Population stddev / mean, or ``None`` when the mean is not positive."""
    if not samples:
        return None
    mean = statistics.fmean(samples)
    if mean <= 0:
        return None
    return statistics.pstdev(samples) / mean


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: Optional[float]) -> str:
    """Human-readable latency string."""
    if latency_ms is None:
        return "N/A"
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
