"""
Failure ledger contract.

Records exactly one outcome per attempted crawl node and answers which
failed nodes may still be replayed. Methods are synchronous: a ledger write
never yields to the event loop, so a node's outcome is recorded in the same
scheduling step that produced it.
"""

import logging
from typing import Dict, List, Optional, Tuple, Union

from ..core.types import DEFAULT_MAX_RETRY_COUNT, EntityLevel, EntryState, LedgerEntry, Payload

logger = logging.getLogger(__name__)


class FailureLedger:
    """
    Base class for ledger backends.

    Subclasses store LedgerEntry items and implement _insert, _query_failed,
    _update_state and _increment. State and retry-count mutations only apply
    to failed entries, so a completed entry is never changed again.
    """

    def __init__(self, max_retry_count: int = DEFAULT_MAX_RETRY_COUNT):
        self.max_retry_count = max_retry_count
        self.stats = {
            "entries_appended": 0,
            "entries_completed": 0,
            "retries_incremented": 0,
        }

    def append_success(self, level: EntityLevel, payload: Payload) -> str:
        """Record a completed node. Returns the new entry id."""
        entry = self._build_entry(level, payload, EntryState.COMPLETED)
        self._insert(entry)
        self.stats["entries_appended"] += 1
        return entry.id

    def append_failure(self, level: EntityLevel, payload: Payload, error: Union[str, Exception]) -> str:
        """Record a failed node with retry_count 0. Returns the new entry id."""
        entry = self._build_entry(level, payload, EntryState.FAILED, error_message=str(error))
        self._insert(entry)
        self.stats["entries_appended"] += 1
        return entry.id

    def list_retryable(self, level: EntityLevel) -> List[Tuple[Payload, str]]:
        """Failed entries of level whose retry count is within the ceiling."""
        entries = self._query_failed(level)
        return [
            (entry.payload, entry.id)
            for entry in entries
            if entry.is_retryable(self.max_retry_count) and entry.level == level
        ]

    def mark_completed(self, entry_id: str) -> None:
        logger.debug(f"Marking ledger entry {entry_id} completed")
        self._update_state(entry_id, EntryState.COMPLETED)
        self.stats["entries_completed"] += 1

    def increment_retry(self, entry_id: str) -> None:
        logger.debug(f"Incrementing retry count of ledger entry {entry_id}")
        self._increment(entry_id)
        self.stats["retries_incremented"] += 1

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Entry counts per level: completed, failed, retryable, exhausted."""
        counts: Dict[str, Dict[str, int]] = {
            level.value: {"completed": 0, "failed": 0, "retryable": 0, "exhausted": 0} for level in EntityLevel
        }
        for entry in self._all_entries():
            bucket = counts[entry.level.value]
            bucket[entry.state.value] += 1
            if entry.state == EntryState.FAILED:
                if entry.is_retryable(self.max_retry_count):
                    bucket["retryable"] += 1
                else:
                    bucket["exhausted"] += 1
        return counts

    def _build_entry(
        self, level: EntityLevel, payload: Payload, state: EntryState, error_message: Optional[str] = None
    ) -> LedgerEntry:
        if payload.level != level.value:
            raise ValueError(f"Payload of level {payload.level} cannot be recorded as {level.value}")
        return LedgerEntry(level=level, state=state, payload=payload, error_message=error_message)

    def _insert(self, entry: LedgerEntry) -> None:
        raise NotImplementedError

    def _query_failed(self, level: EntityLevel) -> List[LedgerEntry]:
        raise NotImplementedError

    def _update_state(self, entry_id: str, state: EntryState) -> None:
        raise NotImplementedError

    def _increment(self, entry_id: str) -> None:
        raise NotImplementedError

    def _all_entries(self) -> List[LedgerEntry]:
        raise NotImplementedError
