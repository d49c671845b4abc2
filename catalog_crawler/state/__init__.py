"""
Crawl ledger for the catalog crawler.

Records one outcome per attempted crawl node and serves the failed ones back
to the reconciliation pass.
"""

from ..config.settings import CrawlerSettings
from .dynamodb_ledger import DynamoDBLedger
from .ledger import FailureLedger
from .local_ledger import LocalLedger
from .models import LedgerEntryModel, configure_ledger_model, create_table_if_not_exists

__all__ = [
    "FailureLedger",
    "LocalLedger",
    "DynamoDBLedger",
    "LedgerEntryModel",
    "configure_ledger_model",
    "create_table_if_not_exists",
    "create_ledger",
]


def create_ledger(settings: CrawlerSettings) -> FailureLedger:
    """
    Factory function to create the ledger backend named in settings.

    Args:
        settings: CrawlerSettings instance

    Returns:
        DynamoDBLedger or LocalLedger
    """
    if settings.ledger_backend == "dynamodb":
        configure_ledger_model(settings)
        return DynamoDBLedger(max_retry_count=settings.max_retries)
    return LocalLedger(settings.local_ledger_file, max_retry_count=settings.max_retries)
