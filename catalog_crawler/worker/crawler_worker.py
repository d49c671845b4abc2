"""
Catalog crawler worker.

Wires the HTTP client, request gate, parser, record store and ledger
together, then runs the two phases of a crawl: the recursive crawl from the
catalog root and the reconciliation pass over the ledger.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from ..config.settings import CrawlerSettings, get_cached_settings
from ..http_client.client import CatalogHTTPClient
from ..http_client.gate import Fetcher, RequestGate
from ..http_client.parser import CatalogParser
from ..state import create_ledger
from ..state.ledger import FailureLedger
from ..storage import create_record_store
from ..storage.record_store import RecordStore
from .orchestrator import CrawlOrchestrator
from .reconciler import RetryReconciler

logger = logging.getLogger(__name__)


class CatalogCrawlerWorker:
    """
    Runs one crawl of the catalog followed by one reconciliation pass.

    Any collaborator can be injected; the rest are built from settings.
    """

    def __init__(
        self,
        settings: Optional[CrawlerSettings] = None,
        fetcher: Optional[Fetcher] = None,
        store: Optional[RecordStore] = None,
        ledger: Optional[FailureLedger] = None,
        parser: Optional[CatalogParser] = None,
        run_id: Optional[str] = None,
    ):
        self.settings = settings or get_cached_settings()
        self.run_id = run_id or uuid4().hex[:12]

        self._owns_fetcher = fetcher is None
        self.fetcher: Fetcher = fetcher or CatalogHTTPClient(self.settings)
        self.store = store or create_record_store(self.settings)
        self.ledger = ledger or create_ledger(self.settings)
        self.parser = parser or CatalogParser(self.settings.base_url)

        self.gate = RequestGate(self.fetcher, self.settings.max_concurrent_requests)
        self.orchestrator = CrawlOrchestrator(self.gate, self.parser, self.store, self.ledger, run_id=self.run_id)
        self.reconciler = RetryReconciler(self.orchestrator, self.ledger)

        logger.info(
            f"Initialized catalog crawler worker {self.run_id}",
            extra={
                "run_id": self.run_id,
                "ledger_backend": self.settings.ledger_backend,
                "record_store_backend": self.settings.record_store_backend,
            },
        )

    async def run(self) -> Dict[str, Any]:
        """
        Crawl the catalog from the configured root, then reconcile.

        Raises:
            LedgerError: If the ledger became unreachable in either phase
        """
        started_at = datetime.now(timezone.utc)
        logger.info(f"Starting crawl of {self.settings.base_url}", extra={"run_id": self.run_id})

        root_crawled = await self.orchestrator.crawl(self.settings.base_url)
        crawl_stats = self.orchestrator.get_stats()
        logger.info("Crawl phase finished", extra={"run_id": self.run_id, "nodes": crawl_stats["nodes"]})

        reconciliation = await self.reconciler.reconcile()
        logger.info("Reconciliation phase finished", extra={"run_id": self.run_id, **reconciliation["retries"]})

        result = {
            "run_id": self.run_id,
            "root_crawled": root_crawled,
            "started_at": started_at.isoformat(),
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "crawl": crawl_stats,
            "reconciliation": reconciliation,
        }
        if isinstance(self.fetcher, CatalogHTTPClient):
            result["http"] = self.fetcher.get_stats()
        return result

    async def retry_only(self) -> Dict[str, Any]:
        """Run only the reconciliation pass over what earlier runs left failed."""
        reconciliation = await self.reconciler.reconcile()
        return {"run_id": self.run_id, "reconciliation": reconciliation}

    async def shutdown(self) -> None:
        if self._owns_fetcher and isinstance(self.fetcher, CatalogHTTPClient):
            await self.fetcher.close()
        logger.info(f"Catalog crawler worker {self.run_id} shut down")
