"""
Hierarchical Catalog Crawler

Crawls a category -> sub-item -> leaf catalog spread over linked, paginated
HTML pages, persists one structured record per leaf, and keeps a ledger of
node outcomes so that a reconciliation pass can replay what failed.
"""

from .utils.logging import setup_crawler_logger

__version__ = "0.1.0"
__all__ = ["setup_crawler_logger"]
