"""fast-meter core library -- latency probing, adaptive bandwidth metering, statistics."""

from .api import ClientInfo, FastAPI, Target
from .bandwidth import (
    BandwidthMeter,
    SpeedTestResult,
    StabilityCriteria,
    StabilityDetector,
)
from .context import RunContext
from .download import DownloadTester, measure_download_speed
from .errors import (
    ConnectionTimeout,
    DownloadTestFailed,
    MeterError,
    NoAddressForForcedProtocol,
    NoAddressForProtocol,
    NoTargets,
    NoUrlsProvided,
    ProtocolConnectivityFailed,
    ProtocolError,
    ProtocolResolutionFailed,
    ProtocolTestFailed,
    SpeedTestFailed,
    UploadTestFailed,
    UrlDiscoveryFailed,
)
from .latency import LatencyTester
from .protocol import (
    ForcedFamilyResolver,
    ProtocolPreference,
    ProtocolResolver,
    verify_protocol,
)
from .stats import (
    ConnectionStats,
    NetworkStats,
    calculate_jitter,
    calculate_percentile,
    coefficient_of_variation,
    format_latency,
    format_speed,
)
from .units import SpeedMeasurement, SpeedUnit
from .upload import UploadTester, measure_upload_speed

__all__ = [
    "BandwidthMeter",
    "ClientInfo",
    "ConnectionStats",
    "ConnectionTimeout",
    "DownloadTestFailed",
    "DownloadTester",
    "FastAPI",
    "ForcedFamilyResolver",
    "LatencyTester",
    "MeterError",
    "NetworkStats",
    "NoAddressForForcedProtocol",
    "NoAddressForProtocol",
    "NoTargets",
    "NoUrlsProvided",
    "ProtocolConnectivityFailed",
    "ProtocolError",
    "ProtocolPreference",
    "ProtocolResolutionFailed",
    "ProtocolResolver",
    "ProtocolTestFailed",
    "RunContext",
    "SpeedMeasurement",
    "SpeedTestFailed",
    "SpeedTestResult",
    "SpeedUnit",
    "StabilityCriteria",
    "StabilityDetector",
    "Target",
    "UploadTestFailed",
    "UploadTester",
    "UrlDiscoveryFailed",
    "calculate_jitter",
    "calculate_percentile",
    "coefficient_of_variation",
    "format_latency",
    "format_speed",
    "measure_download_speed",
    "measure_upload_speed",
    "verify_protocol",
]
