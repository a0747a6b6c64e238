"""
Forced IP-protocol verification and enforcement.

Two halves:

* ``ProtocolResolver`` proves, before any measurement, that a forced family
  works end to end: the probe host must resolve to an address of that family
  and a ``HEAD`` request pinned to that family must come back 2xx.
* ``ForcedFamilyResolver`` is installed on every ``aiohttp`` connector built
  while a family is forced, so each connection is restricted at the
  address-selection step.  It raises instead of falling back.
"""
from __future__ import annotations

import asyncio
import logging
import socket
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp.abc import AbstractResolver
from aiohttp.resolver import ThreadedResolver

from .constants import COMMON_HEADERS, PROTOCOL_PROBE_HOST, PROTOCOL_PROBE_TIMEOUT
from .errors import (
    NoAddressForForcedProtocol,
    NoAddressForProtocol,
    ProtocolConnectivityFailed,
    ProtocolError,
    ProtocolResolutionFailed,
    ProtocolTestFailed,
)

logger = logging.getLogger(__name__)


class ProtocolPreference(Enum):
    """Requested IP family for a run."""

    AUTO = 0
    IPV4 = 4
    IPV6 = 6

    @classmethod
    def from_flag(cls, value: int) -> ProtocolPreference:
        """Map the CLI ``--ipv`` value (0, 4 or 6) to a preference."""
        try:
            return cls(int(value))
        except ValueError:
            raise ValueError(f"IP version must be 0 (auto), 4 or 6, not {value!r}") from None

    @property
    def is_forced(self) -> bool:
        return self is not ProtocolPreference.AUTO

    @property
    def family(self) -> socket.AddressFamily:
        return _FAMILIES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_FAMILIES = {
    ProtocolPreference.AUTO: socket.AF_UNSPEC,
    ProtocolPreference.IPV4: socket.AF_INET,
    ProtocolPreference.IPV6: socket.AF_INET6,
}

_LABELS = {
    ProtocolPreference.AUTO: "auto",
    ProtocolPreference.IPV4: "IPv4",
    ProtocolPreference.IPV6: "IPv6",
}

_FAMILY_LABELS = {socket.AF_INET: "IPv4", socket.AF_INET6: "IPv6"}


# ---------------------------------------------------------------------------
# Enforcement
# ---------------------------------------------------------------------------

class ForcedFamilyResolver(AbstractResolver):
    """aiohttp resolver that only ever returns addresses of one family."""

    def __init__(
        self,
        family: socket.AddressFamily,
        resolver: Optional[AbstractResolver] = None,
    ) -> None:
        self._family = family
        self._resolver = resolver

    async def resolve(
        self, host: str, port: int = 0, family: socket.AddressFamily = socket.AF_INET
    ) -> List[Dict[str, Any]]:
        # The connector's own family argument is ignored on purpose; ours wins.
        if self._resolver is None:
            self._resolver = ThreadedResolver()

        label = _FAMILY_LABELS.get(self._family, str(self._family))
        try:
            hosts = await self._resolver.resolve(host, port, family=self._family)
        except OSError as exc:
            raise NoAddressForForcedProtocol(
                f"{host} has no {label} address", protocol=label
            ) from exc

        matching = [h for h in hosts if h.get("family") == self._family]
        if not matching:
            raise NoAddressForForcedProtocol(
                f"{host} has no {label} address", protocol=label
            )
        logger.debug("Resolved %s to %d %s address(es)", host, len(matching), label)
        return matching

    async def close(self) -> None:
        if self._resolver is not None:
            await self._resolver.close()


def forced_connector(
    preference: ProtocolPreference,
    limit: int = 0,
    **kwargs: Any,
) -> aiohttp.TCPConnector:
    """Build a connector honouring *preference*.  Must run inside a loop."""
    if preference.is_forced:
        return aiohttp.TCPConnector(
            limit=limit,
            family=preference.family,
            resolver=ForcedFamilyResolver(preference.family),
            **kwargs,
        )
    return aiohttp.TCPConnector(limit=limit, **kwargs)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class ProtocolResolver:
    """Decide up front whether a forced IP family is actually usable."""

    def __init__(
        self,
        probe_host: str = PROTOCOL_PROBE_HOST,
        timeout: float = PROTOCOL_PROBE_TIMEOUT,
        port: int = 443,
    ) -> None:
        self.probe_host = probe_host
        self.timeout = timeout
        self.port = port

    async def check(self, preference: ProtocolPreference) -> None:
        """Raise a ``ProtocolError`` subclass unless *preference* is usable."""
        if not preference.is_forced:
            return

        label = preference.label
        try:
            infos = await self._lookup(self.probe_host, self.port)
        except OSError as exc:
            raise ProtocolResolutionFailed(
                f"Could not resolve {self.probe_host}", protocol=label
            ) from exc

        if not any(info[0] == preference.family for info in infos):
            raise NoAddressForProtocol(
                f"{self.probe_host} has no {label} address on this network",
                protocol=label,
            )

        try:
            status = await self._probe(preference)
        except ProtocolError:
            raise
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            raise ProtocolConnectivityFailed(
                f"{label} connectivity to {self.probe_host} failed", protocol=label
            ) from exc

        if not 200 <= status < 300:
            raise ProtocolTestFailed(
                f"{label} probe to {self.probe_host} returned HTTP {status}",
                protocol=label,
            )

        logger.info("%s connectivity confirmed via %s", label, self.probe_host)

    async def verify(self, preference: ProtocolPreference) -> bool:
        """Non-raising variant of :meth:`check`."""
        try:
            await self.check(preference)
        except ProtocolError as exc:
            logger.debug("%s verification failed: %s", preference.label, exc)
            return False
        return True

    # -- Internals ----------------------------------------------------------

    async def _lookup(self, host: str, port: int) -> list:
        loop = asyncio.get_running_loop()
        return await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)

    async def _probe(self, preference: ProtocolPreference) -> int:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(
            headers=COMMON_HEADERS,
            connector=forced_connector(preference, limit=1),
            timeout=timeout,
        ) as session:
            async with session.head(f"https://{self.probe_host}/") as resp:
                return resp.status


async def verify_protocol(preference: ProtocolPreference) -> bool:
    """Return ``True`` if *preference* is auto or demonstrably usable."""
    return await ProtocolResolver().verify(preference)
