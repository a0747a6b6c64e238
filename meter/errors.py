"""
Exception taxonomy for the measurement core.

Every failure the core can surface is one of these classes.  Per-probe and
per-connection failures (``ConnectionTimeout``, dropped transfers) are folded
into statistics and never reach the caller; everything else propagates with
enough context for the CLI to print a specific message.
"""
from __future__ import annotations

from typing import Optional


class MeterError(Exception):
    """Base class for every error raised by the ``meter`` package."""


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class NoUrlsProvided(MeterError, ValueError):
    """The caller supplied an empty target set."""

    def __init__(self, message: str = "No test URLs provided") -> None:
        super().__init__(message)


NoTargets = NoUrlsProvided


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class ProtocolError(MeterError):
    """A forced IP protocol is unusable.  Never retried with the other family."""

    def __init__(self, message: str, protocol: Optional[str] = None) -> None:
        super().__init__(message)
        self.protocol = protocol


class ProtocolResolutionFailed(ProtocolError):
    """DNS resolution of the probe host failed outright."""


class NoAddressForProtocol(ProtocolError):
    """The probe host resolved, but not to an address of the forced family."""


class ProtocolConnectivityFailed(ProtocolError):
    """The probe request over the forced family errored or timed out."""


class ProtocolTestFailed(ProtocolError):
    """The probe request completed with a non-2xx status."""


class NoAddressForForcedProtocol(ProtocolError):
    """A connection target has no address of the forced family."""


# ---------------------------------------------------------------------------
# Per-probe
# ---------------------------------------------------------------------------

class ConnectionTimeout(MeterError):
    """A latency probe failed or exceeded its deadline."""


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

class SpeedTestFailed(MeterError):
    """Every transfer in a bandwidth phase is unusable."""

    phase = "speed"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is not None:
            return f"{base}: {self.cause}"
        return base


class DownloadTestFailed(SpeedTestFailed):
    phase = "download"


class UploadTestFailed(SpeedTestFailed):
    phase = "upload"


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class UrlDiscoveryFailed(MeterError):
    """Could not obtain test URLs from fast.com."""
