"""
DynamoDB model for the crawl ledger.

One item per attempted crawl node. Items are created during the crawl and
only their state, retry count and timestamp change afterwards.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pynamodb.attributes import JSONAttribute, NumberAttribute, UnicodeAttribute, UTCDateTimeAttribute
from pynamodb.indexes import AllProjection, GlobalSecondaryIndex
from pynamodb.models import Model

from ..config.settings import CrawlerSettings
from ..core.types import LedgerEntry


class LevelStateIndex(GlobalSecondaryIndex["LedgerEntryModel"]):
    """
    GSI for querying entries by level and state.

    Used by reconciliation to find failed entries of one level.
    """

    class Meta:
        index_name = "LevelStateIndex"
        projection = AllProjection()

    level = UnicodeAttribute(hash_key=True)
    state = UnicodeAttribute(range_key=True)


class LedgerEntryModel(Model):
    class Meta:  # type: ignore[reportIncompatibleVariableOverride]
        table_name = "catalog-crawl-ledger"
        region = "us-east-1"
        host = None  # Set to the LocalStack endpoint for devlocal
        billing_mode = "PAY_PER_REQUEST"

    entry_id = UnicodeAttribute(hash_key=True)

    level = UnicodeAttribute()
    state = UnicodeAttribute()  # completed/failed
    payload = JSONAttribute()
    error_message = UnicodeAttribute(null=True)
    retry_count = NumberAttribute(default=0)

    created_at = UTCDateTimeAttribute(default=lambda: datetime.now(timezone.utc))
    updated_at = UTCDateTimeAttribute(default=lambda: datetime.now(timezone.utc))

    level_state_index = LevelStateIndex()

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryModel":
        return cls(
            entry_id=entry.id,
            level=entry.level.value,
            state=entry.state.value,
            payload=entry.payload.model_dump(mode="json"),
            error_message=entry.error_message,
            retry_count=entry.retry_count,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )

    def to_entry(self) -> LedgerEntry:
        return LedgerEntry.model_validate(
            {
                "id": self.entry_id,
                "level": self.level,
                "state": self.state,
                "payload": self.payload,
                "error_message": self.error_message,
                "retry_count": int(self.retry_count),
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )


def configure_ledger_model(settings: CrawlerSettings) -> None:
    """Point the model at the configured table, region and endpoint."""
    if settings.ledger_table:
        LedgerEntryModel.Meta.table_name = settings.ledger_table
    LedgerEntryModel.Meta.region = settings.aws_region
    LedgerEntryModel.Meta.host = settings.localstack_endpoint
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        LedgerEntryModel.Meta.aws_access_key_id = settings.aws_access_key_id
        LedgerEntryModel.Meta.aws_secret_access_key = settings.aws_secret_access_key
        LedgerEntryModel.Meta.aws_session_token = settings.aws_session_token


def create_table_if_not_exists() -> bool:
    """
    Create the ledger table if it doesn't exist.

    Returns:
        True if the table was created, False if it already existed
    """
    if LedgerEntryModel.exists():
        return False
    LedgerEntryModel.create_table(wait=True)
    return True
