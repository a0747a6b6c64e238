"""
fast.com API client.

Handles test-URL discovery only.  The measurement core never imports this
module; it accepts any list of URLs.  All HTTP work goes through a single
``aiohttp.ClientSession`` managed via async-context-manager protocol
(``async with FastAPI() as api: ...``), restricted by the run context.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from .constants import COMMON_HEADERS, DEFAULT_URL_COUNT, FAST_API_URL, FAST_URL
from .context import RunContext
from .errors import ProtocolError, UrlDiscoveryFailed

logger = logging.getLogger(__name__)

_SCRIPT_RE = re.compile(r'<script src="(/app-[^"]+\.js)"')
_TOKEN_RE = re.compile(r'token:"([^"]+)"')


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass
class Target:
    """One fast.com test server URL."""

    url: str
    name: str = ""
    city: str = ""
    country: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Target:
        location = data.get("location") or {}
        return cls(
            url=data.get("url", ""),
            name=data.get("name", ""),
            city=location.get("city", ""),
            country=location.get("country", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "name": self.name,
            "city": self.city,
            "country": self.country,
        }


@dataclass
class ClientInfo:
    """What fast.com reports about the client."""

    ip: str = ""
    asn: str = ""
    isp: str = ""
    city: str = ""
    country: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ClientInfo:
        location = data.get("location") or {}
        return cls(
            ip=data.get("ip", ""),
            asn=str(data.get("asn", "")),
            isp=data.get("isp", ""),
            city=location.get("city", ""),
            country=location.get("country", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "asn": self.asn,
            "isp": self.isp,
            "city": self.city,
            "country": self.country,
        }


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

class FastAPI:
    """Async context-manager wrapping the fast.com discovery endpoints."""

    def __init__(self, use_https: bool = True, context: Optional[RunContext] = None) -> None:
        self.use_https = use_https
        self.context = context or RunContext()
        self._session: Optional[aiohttp.ClientSession] = None
        self.targets: List[Target] = []
        self.client_info: Optional[ClientInfo] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> FastAPI:
        self._session = aiohttp.ClientSession(
            headers=COMMON_HEADERS,
            connector=self.context.connector(),
            timeout=aiohttp.ClientTimeout(total=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    # -- Internal helpers ---------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "FastAPI must be used as an async context manager "
                "(async with FastAPI() as api: ...)"
            )
        return self._session

    @property
    def _scheme(self) -> str:
        return "https" if self.use_https else "http"

    async def _get_text(self, url: str) -> str:
        session = self._ensure_session()
        async with session.get(url) as resp:
            resp.raise_for_status()
            return await resp.text()

    # -- Public methods -----------------------------------------------------

    async def get_token(self) -> str:
        """Scrape the API token out of the fast.com app bundle."""
        try:
            html = await self._get_text(f"{self._scheme}://{FAST_URL}/")
            script = _SCRIPT_RE.search(html)
            if not script:
                raise UrlDiscoveryFailed("fast.com page has no app script")
            js = await self._get_text(f"{self._scheme}://{FAST_URL}{script.group(1)}")
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            raise UrlDiscoveryFailed(f"Failed to contact fast.com: {exc}") from exc

        token = _TOKEN_RE.search(js)
        if not token:
            raise UrlDiscoveryFailed("No API token found in fast.com app script")
        return token.group(1)

    async def get_targets(self, count: int = DEFAULT_URL_COUNT) -> List[Target]:
        token = await self.get_token()
        session = self._ensure_session()
        params = {
            "https": "true" if self.use_https else "false",
            "token": token,
            "urlCount": str(count),
        }

        try:
            async with session.get(f"{self._scheme}://{FAST_API_URL}", params=params) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except ProtocolError:
            raise
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError, ValueError) as exc:
            raise UrlDiscoveryFailed(f"Failed to get URLs: {exc}") from exc

        if data.get("client"):
            self.client_info = ClientInfo.from_dict(data["client"])
        self.targets = [Target.from_dict(t) for t in data.get("targets", []) if t.get("url")]
        if not self.targets:
            raise UrlDiscoveryFailed("fast.com returned no test URLs")

        logger.info("Got %d URLs", len(self.targets))
        for target in self.targets:
            logger.debug("URL: %s (%s, %s)", target.url, target.city, target.country)
        return self.targets

    async def get_urls(self, count: int = DEFAULT_URL_COUNT) -> List[str]:
        """Return up to *count* test URLs."""
        return [t.url for t in await self.get_targets(count)]
