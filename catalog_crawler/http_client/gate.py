"""
Request gate for the catalog crawler.

Every outbound fetch in the process goes through a single RequestGate, which
holds a fixed-size permit pool. Crawl tasks are unbounded; network
concurrency is not.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    async def get(self, url: str) -> str: ...


class RequestGate:
    """
    Semaphore-backed limit on in-flight fetches.

    The permit is taken before the network call and given back on every exit
    path before control returns to the caller. Failures are re-raised
    unchanged; the gate never retries.
    """

    def __init__(self, fetcher: Fetcher, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")

        self.fetcher = fetcher
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)

        self.in_flight = 0
        self.stats: Dict[str, Any] = {
            "fetches_started": 0,
            "fetches_succeeded": 0,
            "fetches_failed": 0,
            "peak_in_flight": 0,
            "semaphore_wait_times": [],
        }

        logger.info(f"Initialized request gate with max_concurrent={max_concurrent}")

    async def fetch(self, url: str) -> str:
        """Wait for a permit, fetch url, release the permit."""
        wait_start = time.time()

        async with self._semaphore:
            self._record_acquired(time.time() - wait_start)
            try:
                body = await self.fetcher.get(url)
            except Exception:
                self.stats["fetches_failed"] += 1
                raise
            finally:
                self.in_flight -= 1

        self.stats["fetches_succeeded"] += 1
        return body

    def _record_acquired(self, wait_time: float) -> None:
        self.in_flight += 1
        self.stats["fetches_started"] += 1
        if self.in_flight > self.stats["peak_in_flight"]:
            self.stats["peak_in_flight"] = self.in_flight

        wait_times: List[float] = self.stats["semaphore_wait_times"]
        wait_times.append(wait_time)
        # Keep only recent wait times for statistics
        if len(wait_times) > 100:
            self.stats["semaphore_wait_times"] = wait_times[-50:]

    def get_stats(self) -> Dict[str, Any]:
        wait_times = self.stats["semaphore_wait_times"]
        return {
            "fetches_started": self.stats["fetches_started"],
            "fetches_succeeded": self.stats["fetches_succeeded"],
            "fetches_failed": self.stats["fetches_failed"],
            "peak_in_flight": self.stats["peak_in_flight"],
            "in_flight": self.in_flight,
            "max_concurrent": self.max_concurrent,
            "average_wait_time": sum(wait_times) / len(wait_times) if wait_times else 0.0,
        }
