"""
HTTP client for the catalog crawler.

Wraps a shared aiohttp session and maps every transport problem onto the
crawler's TransportError hierarchy. Concurrency limiting lives in the
request gate, not here.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout, TCPConnector

from ..config.settings import CrawlerSettings, get_cached_settings
from ..core.exceptions import FetchTimeoutError, HTTPStatusError, NetworkError, TransportError

logger = logging.getLogger(__name__)


class CatalogHTTPClient:
    """
    Fetcher for catalog pages.

    Sends browser-like headers, decodes the body as text and raises a
    TransportError subclass for network failures, timeouts and error statuses.
    The session is opened lazily by the first fetch.
    """

    def __init__(self, settings: Optional[CrawlerSettings] = None):
        self.settings = settings or get_cached_settings()
        self._session: Optional[aiohttp.ClientSession] = None

        self.stats: Dict[str, Any] = {
            "requests_made": 0,
            "requests_successful": 0,
            "requests_failed": 0,
            "bytes_downloaded": 0,
            "total_response_time": 0.0,
        }

        logger.info(f"Initialized HTTP client with timeout={self.settings.request_timeout}s")

    def _open_session(self) -> aiohttp.ClientSession:
        headers = {**self.settings.default_headers, "User-Agent": self.settings.user_agent}
        return aiohttp.ClientSession(
            # Unlimited here; the request gate bounds concurrent fetches
            connector=TCPConnector(limit=0, ttl_dns_cache=300, keepalive_timeout=30),
            timeout=ClientTimeout(total=self.settings.request_timeout),
            headers=headers,
            raise_for_status=False,
        )

    async def _fetch_text(self, url: str) -> str:
        if self._session is None or self._session.closed:
            self._session = self._open_session()
            logger.debug("Opened HTTP session")

        try:
            async with self._session.get(url) as response:
                if response.status >= 400:
                    raise HTTPStatusError(url, response.status)
                return await response.text(errors="replace")
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(url, self.settings.request_timeout, e) from e
        except ClientError as e:
            raise NetworkError(url, e) from e

    async def get(self, url: str) -> str:
        """
        Fetch a page and return its decoded body.

        Raises:
            NetworkError: If the connection fails
            FetchTimeoutError: If the request exceeds request_timeout
            HTTPStatusError: If the server answers with a status >= 400
        """
        self.stats["requests_made"] += 1
        started = time.time()

        try:
            body = await self._fetch_text(url)
        except TransportError as e:
            self.stats["requests_failed"] += 1
            logger.debug(f"Fetch of {url} failed: {e}", extra={"url": url, "error_type": e.error_type.value})
            raise

        elapsed = time.time() - started
        self.stats["requests_successful"] += 1
        self.stats["total_response_time"] += elapsed
        self.stats["bytes_downloaded"] += len(body)

        logger.debug(f"Fetched {url}", extra={"url": url, "response_time": elapsed, "content_length": len(body)})
        return body

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.info("HTTP client closed")

    def get_stats(self) -> Dict[str, Any]:
        successful = self.stats["requests_successful"]
        return {
            **self.stats,
            "average_response_time": self.stats["total_response_time"] / successful if successful else 0.0,
            "success_rate": successful / max(1, self.stats["requests_made"]),
            "session_active": self._session is not None and not self._session.closed,
        }
