"""Per-run context shared by every component of one measurement run."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from .protocol import ProtocolPreference, ProtocolResolver, forced_connector


@dataclass
class RunContext:
    """Carries the protocol preference into every connection of a run.

    Constructed once per invocation and passed down explicitly; nothing in
    the core keeps process-wide client state.
    """

    protocol: ProtocolPreference = ProtocolPreference.AUTO
    verified: bool = False

    async def establish(self, resolver: Optional[ProtocolResolver] = None) -> None:
        """Prove the forced protocol works, raising ``ProtocolError`` if not."""
        resolver = resolver or ProtocolResolver()
        await resolver.check(self.protocol)
        self.verified = True

    async def verify_protocol(self, resolver: Optional[ProtocolResolver] = None) -> bool:
        resolver = resolver or ProtocolResolver()
        self.verified = await resolver.verify(self.protocol)
        return self.verified

    def connector(self, limit: int = 0, **kwargs: Any) -> aiohttp.TCPConnector:
        """A fresh connector restricted to this run's address family."""
        return forced_connector(self.protocol, limit=limit, **kwargs)
