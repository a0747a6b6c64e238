"""
Persistent defaults for the ``fast-meter`` command.

The file lives at ``~/.fast-meter/config.json``.  Flags given on the command
line always win; the file only fills in the ones that were left out.

Recognised keys::

    ipv = 0                  # 0 auto, 4 or 6
    upload = false           # also measure upload
    duration = 30            # max test seconds (floored to 25)
    https = true             # use https for fast.com discovery
    url_count = 5            # number of fast.com URLs
    connections = 4          # concurrent transfers
    ping_count = 10          # latency probes per URL
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_CONNECTIONS,
    DEFAULT_MAX_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_URL_COUNT,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path.home() / ".fast-meter"


def _config_path() -> str:
    return str(_CONFIG_DIR / "config.json")


DEFAULTS: Dict[str, Any] = {
    "ipv": 0,
    "upload": False,
    "duration": DEFAULT_MAX_DURATION,
    "https": True,
    "url_count": DEFAULT_URL_COUNT,
    "connections": DEFAULT_CONNECTIONS,
    "ping_count": DEFAULT_PING_COUNT,
}


def _coerce(key: str, value: Any) -> Any:
    """Cast *value* to the type of ``DEFAULTS[key]``; ``ValueError`` if it can't be."""
    kind = type(DEFAULTS[key])
    if kind is bool:
        if isinstance(value, bool):
            return value
        raise ValueError(f"{key} must be true or false, not {value!r}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, not {value!r}")
    return kind(value)


def load_config() -> Dict[str, Any]:
    """Defaults overlaid with whatever valid keys the config file holds."""
    path = Path(_config_path())
    config = dict(DEFAULTS)
    if not path.is_file():
        return config

    try:
        stored = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return config

    if not isinstance(stored, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return config

    for key, value in stored.items():
        if key not in DEFAULTS:
            logger.warning("Unknown config key ignored: %s", key)
            continue
        try:
            config[key] = _coerce(key, value)
        except ValueError as exc:
            logger.warning("Bad config value ignored: %s", exc)
    return config


def save_config(config: Dict[str, Any]) -> str:
    """Persist *config* and return the path written."""
    path = Path(_config_path())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    return str(path)


def get_config_value(key: str) -> Any:
    return load_config()[key]


def set_config_value(key: str, value: Any) -> str:
    """Validate and store one key.  Returns the path written."""
    if key not in DEFAULTS:
        raise KeyError(f"Unknown config key: {key}")
    config = load_config()
    config[key] = _coerce(key, value)
    return save_config(config)


def config_path() -> str:
    return _config_path()
