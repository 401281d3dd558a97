"""HTTP transport: one GET per call, redirects surfaced rather than followed."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urljoin

import aiohttp
from yarl import URL

from .probe_config import HDR_USER_AGENT, MAX_CONCURRENCY

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Connection failure, timeout or TLS failure for a single request."""

    def __init__(self, url: str, cause: str) -> None:
        super().__init__(f"{url}: {cause}")
        self.url = url
        self.cause = cause


@dataclass(frozen=True)
class TransportResult:
    """Container for a single transport response."""

    url: str
    status: int
    final_url: str
    location: Optional[str] = None

    @property
    def redirected(self) -> bool:
        return self.location is not None


class Transport(Protocol):
    async def probe(self, url: str, user_agent: str, timeout: float) -> TransportResult:
        ...


class AiohttpTransport:
    """Transport backed by a shared ``aiohttp.ClientSession``.

    Use as an async context manager; the session is opened on enter and closed
    on exit. Redirects are never followed: a 3xx response reports its Location
    (resolved against the response URL) as ``final_url``; any other response
    reports ``resp.url``.
    """

    def __init__(self, *, pool_size: int = MAX_CONCURRENCY, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._pool_size = max(1, pool_size)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "AiohttpTransport":
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self._pool_size)
            self._session = aiohttp.ClientSession(connector=connector)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def probe(self, url: str, user_agent: str, timeout: float) -> TransportResult:
        if self._session is None:
            raise RuntimeError("AiohttpTransport used outside of its context manager")
        try:
            async with self._session.get(
                # encoded=True keeps the request line byte-identical to the candidate URL
                URL(url, encoded=True),
                headers={HDR_USER_AGENT: user_agent},
                timeout=aiohttp.ClientTimeout(total=timeout),
                allow_redirects=False,
            ) as resp:
                status = resp.status
                final_url = str(resp.url)
                location = resp.headers.get("Location")
        except asyncio.TimeoutError as exc:
            raise TransportError(url, f"timeout after {timeout:g}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(url, str(exc) or exc.__class__.__name__) from exc

        # Redirects are disabled: a 3xx reports its Location resolved against the response URL.
        if location and 300 <= status < 400:
            return TransportResult(url=url, status=status, final_url=urljoin(final_url, location), location=location)
        return TransportResult(url=url, status=status, final_url=final_url)
