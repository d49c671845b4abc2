"""
DynamoDB-backed ledger.

Entries are single items keyed by id; failed entries of one level are found
through the LevelStateIndex. Mutations are conditional on the entry still
being failed, and the retry counter uses an atomic ADD.
"""

import logging
from datetime import datetime, timezone
from typing import List

from botocore.exceptions import BotoCoreError
from pynamodb.exceptions import PynamoDBException

from ..core.exceptions import LedgerError
from ..core.types import DEFAULT_MAX_RETRY_COUNT, EntityLevel, EntryState, LedgerEntry
from .ledger import FailureLedger
from .models import LedgerEntryModel

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class DynamoDBLedger(FailureLedger):
    def __init__(self, max_retry_count: int = DEFAULT_MAX_RETRY_COUNT):
        super().__init__(max_retry_count)
        logger.info(f"Initialized DynamoDB ledger on table {LedgerEntryModel.Meta.table_name}")

    def _insert(self, entry: LedgerEntry) -> None:
        try:
            LedgerEntryModel.from_entry(entry).save()
        except (PynamoDBException, BotoCoreError) as e:
            raise LedgerError(f"Failed to append ledger entry {entry.id}: {e}", e) from e

    def _query_failed(self, level: EntityLevel) -> List[LedgerEntry]:
        try:
            items = LedgerEntryModel.level_state_index.query(
                level.value,
                LedgerEntryModel.state == EntryState.FAILED.value,
                filter_condition=LedgerEntryModel.retry_count <= self.max_retry_count,
            )
            return [item.to_entry() for item in items]
        except (PynamoDBException, BotoCoreError) as e:
            raise LedgerError(f"Failed to query {level.value} ledger entries: {e}", e) from e

    def _update_failed(self, entry_id: str, actions: list) -> None:
        actions.append(LedgerEntryModel.updated_at.set(datetime.now(timezone.utc)))
        try:
            LedgerEntryModel(entry_id).update(
                actions=actions,
                condition=(LedgerEntryModel.entry_id.exists()) & (LedgerEntryModel.state == EntryState.FAILED.value),
            )
        except PynamoDBException as e:
            if getattr(e, "cause_response_code", None) == CONDITIONAL_CHECK_FAILED:
                logger.debug(f"Ledger entry {entry_id} is missing or no longer failed, leaving it unchanged")
                return
            raise LedgerError(f"Failed to update ledger entry {entry_id}: {e}", e) from e
        except BotoCoreError as e:
            raise LedgerError(f"Failed to update ledger entry {entry_id}: {e}", e) from e

    def _update_state(self, entry_id: str, state: EntryState) -> None:
        self._update_failed(entry_id, [LedgerEntryModel.state.set(state.value)])

    def _increment(self, entry_id: str) -> None:
        self._update_failed(entry_id, [LedgerEntryModel.retry_count.add(1)])

    def _all_entries(self) -> List[LedgerEntry]:
        try:
            return [item.to_entry() for item in LedgerEntryModel.scan()]
        except (PynamoDBException, BotoCoreError) as e:
            raise LedgerError(f"Failed to scan ledger entries: {e}", e) from e
