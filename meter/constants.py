"""
Tunables and defaults for the meter core.

Every timeout, size and limit the measurement code uses is named here.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
)

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://fast.com",
    "Referer": "https://fast.com/",
}

# ---------------------------------------------------------------------------
# fast.com endpoints
# ---------------------------------------------------------------------------

FAST_URL = "fast.com"
FAST_API_URL = "api.fast.com/netflix/speedtest/v2"
DEFAULT_URL_COUNT = 5

# Dual-stack host used to prove a forced IP family works end to end.
PROTOCOL_PROBE_HOST = "www.google.com"
PROTOCOL_PROBE_TIMEOUT = 5.0     # seconds

# ---------------------------------------------------------------------------
# Connection limits
# ---------------------------------------------------------------------------

MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 32
DEFAULT_CONNECTIONS = 4

MAX_CONSECUTIVE_FAILURES = 3     # reconnect attempts before a worker is dropped
RECONNECT_DELAY = 0.2            # seconds between reconnect attempts
SHUTDOWN_GRACE = 2.0             # max wait for workers after cancellation

# ---------------------------------------------------------------------------
# Latency probing
# ---------------------------------------------------------------------------

DEFAULT_PING_COUNT = 10
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100
DEFAULT_PING_TIMEOUT_MS = 2000
WARMUP_CONNECT_TIMEOUT = 5.0     # seconds for the untimed warm-up request

# ---------------------------------------------------------------------------
# Stability detection (fast.com style)
# ---------------------------------------------------------------------------

DEFAULT_RAMP_UP_SECONDS = 4.0
DEFAULT_MAX_DURATION = 30.0
MIN_STABILITY_DURATION = 25.0    # floor applied to the CLI --duration flag
MAX_DURATION = 300.0
DEFAULT_INTERVAL_MS = 750
DEFAULT_WINDOW_SIZE = 6
DEFAULT_STABILITY_COV = 0.15
DEFAULT_STABLE_CHECKS = 2

MIN_SAMPLE_ELAPSED = 0.05        # seconds; shorter ticks are skipped

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 256 * 1024          # 256 KB read size per download chunk
DOWNLOAD_RANGE_SIZE = 26_214_400 # 25 MB per ranged download request
UPLOAD_CHUNK_SIZE = 256 * 1024
UPLOAD_BUFFER_SIZE = 1024 * 1024 # 1 MB pre-generated random buffer
UPLOAD_REQUEST_SIZE = 26_214_400 # 25 MB body per upload request
READ_TIMEOUT = 5.0               # seconds without data before a connection is dead
CONNECT_TIMEOUT = 5.0
