"""
Machine-readable output -- the flat JSON record printed by ``--json``.

Every numeric field is rounded to one decimal; a value that was not measured
is ``null``, never a placeholder zero.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from meter.bandwidth import SpeedTestResult
from meter.stats import NetworkStats

RESULT_FIELDS = (
    "download_mbps",
    "ping_ms",
    "upload_mbps",
    "jitter_ms",
    "packet_loss",
    "error",
)


def _one_decimal(value: Optional[float]) -> Optional[float]:
    return None if value is None else round(value, 1)


def create_result_json(
    download_mbps: Optional[float] = None,
    ping_ms: Optional[float] = None,
    upload_mbps: Optional[float] = None,
    jitter_ms: Optional[float] = None,
    packet_loss: Optional[float] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the flat result record."""
    return {
        "download_mbps": _one_decimal(download_mbps),
        "ping_ms": _one_decimal(ping_ms),
        "upload_mbps": _one_decimal(upload_mbps),
        "jitter_ms": _one_decimal(jitter_ms),
        "packet_loss": _one_decimal(packet_loss),
        "error": error,
    }


def result_from_phases(
    latency: Optional[NetworkStats] = None,
    download: Optional[SpeedTestResult] = None,
    upload: Optional[SpeedTestResult] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """Flatten whatever phases completed into the result record."""
    ping_ms = jitter_ms = packet_loss = None
    if latency is not None:
        ping_ms = latency.mean_latency()
        jitter_ms = latency.jitter() if latency.latencies else None
        packet_loss = latency.packet_loss_rate()

    return create_result_json(
        download_mbps=download.speed_mbps if download is not None else None,
        ping_ms=ping_ms,
        upload_mbps=upload.speed_mbps if upload is not None else None,
        jitter_ms=jitter_ms,
        packet_loss=packet_loss,
        error=error,
    )


def format_json(result: Dict[str, Any]) -> str:
    return json.dumps(result, indent=2)
