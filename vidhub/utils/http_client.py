"""Shared aiohttp session for fetching upstream search pages."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Union

import aiohttp

logger = logging.getLogger(__name__)

# Upstream sites tend to block obvious non-browser clients
BROWSER_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
    "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
}

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class UpstreamPage:
    status: int
    reason: str
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


class SharedHTTPClient:
    """One pooled ``aiohttp`` session per event loop."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def get_session(self) -> aiohttp.ClientSession:
        """Return the session, recreating it if the loop changed or it was closed."""
        current_loop = asyncio.get_running_loop()
        if self._session is not None and not self._session.closed and self._loop is current_loop:
            return self._session

        if self._session is not None and not self._session.closed:
            try:
                await self._session.close()
            except Exception as exc:
                logger.debug("Error closing stale HTTP session: %s", exc)

        connector = aiohttp.TCPConnector(
            limit=100,
            limit_per_host=20,
            ttl_dns_cache=300,
            keepalive_timeout=30,
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self._timeout, connect=10),
            trust_env=True,
        )
        self._loop = current_loop
        logger.info("Created shared HTTP session")
        return self._session

    @asynccontextmanager
    async def request(self, method: str, url: str, **kwargs: Any) -> AsyncIterator[aiohttp.ClientResponse]:
        session = await self.get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                yield response
        except Exception as e:
            logger.error(f"HTTP request failed: {method} {url} - {e}")
            raise

    async def fetch_page(
        self,
        url: str,
        *,
        post: bool = False,
        data: Union[str, Dict[str, Any], None] = None,
    ) -> UpstreamPage:
        """GET ``url``, or POST ``data`` to it as a form."""
        headers = dict(BROWSER_HEADERS)
        body: Any = None
        if post and data:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            if isinstance(data, dict):
                body = {str(key): str(value) for key, value in data.items()}
            else:
                body = data

        async with self.request("POST" if post else "GET", url, headers=headers, data=body) as response:
            text = await response.text(errors="replace")
            return UpstreamPage(status=response.status, reason=response.reason or "", text=text)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("Closed shared HTTP session")
        self._session = None
        self._loop = None


_global_client: Optional[SharedHTTPClient] = None


def get_http_client(timeout: Optional[float] = None) -> SharedHTTPClient:
    """Get global HTTP client instance."""
    global _global_client
    if _global_client is None:
        _global_client = SharedHTTPClient(timeout or DEFAULT_TIMEOUT_SECONDS)
    return _global_client


async def cleanup_http_client() -> None:
    """Cleanup global HTTP client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None


__all__ = [
    "BROWSER_HEADERS",
    "SharedHTTPClient",
    "UpstreamPage",
    "cleanup_http_client",
    "get_http_client",
]
