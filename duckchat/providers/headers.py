"""
Anti-automation header sources.

The backend expects a small set of browser-derived values (``x-fe-signals``,
``x-fe-version``, ``x-vqd-hash-1``). They go stale, so they come from a
pluggable provider instead of being baked into the protocol code.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Optional, Protocol, Tuple

import aiohttp

from duckchat.exceptions.protocol import TransportError

from .token_store import AuxHeaders

logger = logging.getLogger(__name__)

FE_VERSION_PATTERNS: Tuple[str, ...] = (
    r'__DDG_BE_VERSION__="([^"]+)"',
    r'"fe_version":"([^"]+)"',
    r'fe_version["\s]*:["\s]*"([^"]+)"',
    r"(serp_\d{8}_\d{6}_[A-Z]{2}[^\"']*)",
)

FE_SIGNALS_PATTERNS: Tuple[str, ...] = (
    r'fe_signals["\s]*:["\s]*"([^"]+)"',
    r'"fe_signals":"([^"]+)"',
    r'feSignals["\s]*:["\s]*"([^"]+)"',
)

# Shorter matches are almost certainly not a real signals blob
MIN_SIGNALS_LENGTH = 50


class HeaderProvider(Protocol):
    async def fetch(self, http: aiohttp.ClientSession) -> AuxHeaders:
        """Produce a fresh header set. May raise TransportError."""
        ...

    def last_known_good(self) -> AuxHeaders:
        """Static header set used when ``fetch`` fails."""
        ...


class StaticHeaderProvider:
    """Serves a fixed header set (usually loaded from a JSON file)."""

    def __init__(self, values: Dict[str, Any]):
        self._headers = AuxHeaders.from_dict(values)

    async def fetch(self, http: aiohttp.ClientSession) -> AuxHeaders:
        return self.last_known_good()

    def last_known_good(self) -> AuxHeaders:
        return AuxHeaders(**vars(self._headers))


class PageHeaderProvider:
    """
    Scrapes ``fe_version`` and ``fe_signals`` from the chat landing page.

    Any value the page does not yield is taken from the static fallback.
    """

    def __init__(
        self,
        page_url: str,
        fallback: StaticHeaderProvider,
        timeout: float = 30.0,
    ):
        self.page_url = page_url
        self.fallback = fallback
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def last_known_good(self) -> AuxHeaders:
        return self.fallback.last_known_good()

    async def fetch(self, http: aiohttp.ClientSession) -> AuxHeaders:
        base = self.fallback.last_known_good()
        request_headers = {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Referer": "https://duckduckgo.com/",
        }
        if base.user_agent:
            request_headers["User-Agent"] = base.user_agent

        try:
            async with http.get(
                self.page_url, headers=request_headers, timeout=self.timeout
            ) as response:
                if response.status != 200:
                    raise TransportError(
                        f"Header page returned HTTP {response.status}",
                        status_code=response.status,
                    )
                html = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Failed to fetch header page: {e}", original_error=e
            ) from e

        fe_version = self.extract_fe_version(html)
        fe_signals = self.extract_fe_signals(html)
        if fe_version:
            base.fe_version = fe_version
        else:
            logger.debug("fe_version not found on page, keeping fallback value")
        if fe_signals:
            base.fe_signals = fe_signals
        else:
            logger.debug("fe_signals not found on page, keeping fallback value")
        return base

    @staticmethod
    def extract_fe_version(html: str) -> Optional[str]:
        for pattern in FE_VERSION_PATTERNS:
            match = re.search(pattern, html)
            if match:
                return match.group(1)
        return None

    @staticmethod
    def extract_fe_signals(html: str) -> Optional[str]:
        for pattern in FE_SIGNALS_PATTERNS:
            match = re.search(pattern, html)
            if match and len(match.group(1)) > MIN_SIGNALS_LENGTH:
                return match.group(1)
        return None
