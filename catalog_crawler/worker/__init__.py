"""
Crawler worker components for the catalog crawler.

This package provides the crawl engine and the worker that drives it:

- CrawlOrchestrator: Recursive fan-out/fan-in crawl across the catalog levels
- RetryReconciler: Post-crawl replay of retryable ledger entries
- CatalogCrawlerWorker: Builds the components from settings and runs both phases
"""

from .crawler_worker import CatalogCrawlerWorker
from .orchestrator import CrawlOrchestrator
from .reconciler import RetryReconciler

__all__ = [
    "CatalogCrawlerWorker",
    "CrawlOrchestrator",
    "RetryReconciler",
]
