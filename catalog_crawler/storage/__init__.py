"""
Storage components for the catalog crawler.

Provides the sinks that receive finished leaf records.
"""

from ..config.settings import CrawlerSettings
from .record_store import LocalRecordStore, RecordStore, S3RecordStore

__all__ = [
    "RecordStore",
    "LocalRecordStore",
    "S3RecordStore",
    "create_record_store",
]


def create_record_store(settings: CrawlerSettings) -> RecordStore:
    """Factory function to create the record store backend named in settings."""
    if settings.record_store_backend == "s3":
        return S3RecordStore(settings)
    return LocalRecordStore(settings.local_records_file)
