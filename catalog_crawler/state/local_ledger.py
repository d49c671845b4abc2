"""
Local file-based ledger.

Keeps every entry in memory and rewrites a JSON file after each mutation,
for local development and tests. Provides the same interface as the
DynamoDB ledger.
"""

import json
import logging
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..core.exceptions import EntryNotFoundError, LedgerError
from ..core.types import DEFAULT_MAX_RETRY_COUNT, EntityLevel, EntryState, LedgerEntry
from .ledger import FailureLedger

logger = logging.getLogger(__name__)


class LocalLedger(FailureLedger):
    """
    JSON file ledger guarded by a thread lock.

    Pass state_file=None to keep entries in memory only.
    """

    def __init__(self, state_file: Optional[Path] = None, max_retry_count: int = DEFAULT_MAX_RETRY_COUNT):
        super().__init__(max_retry_count)
        self.state_file = Path(state_file) if state_file is not None else None
        self.backup_file = self.state_file.with_suffix(".backup.json") if self.state_file else None

        # Thread lock for entry and file operations
        self._lock = threading.Lock()
        self._entries: Dict[str, LedgerEntry] = self._read_entries()

        logger.info(f"Initialized local ledger with {len(self._entries)} entries from {self.state_file}")

    def _read_entries(self) -> Dict[str, LedgerEntry]:
        if self.state_file is None or not self.state_file.exists():
            return {}

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            return {entry_id: LedgerEntry.model_validate(entry) for entry_id, entry in data.items()}
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise LedgerError(f"Error reading ledger file {self.state_file}: {e}", e) from e

    def _write_entries(self) -> None:
        if self.state_file is None:
            return

        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            # Create backup before writing
            if self.state_file.exists():
                shutil.copy2(self.state_file, self.backup_file)

            with open(self.state_file, "w", encoding="utf-8") as f:
                json.dump(
                    {entry_id: entry.model_dump(mode="json") for entry_id, entry in self._entries.items()},
                    f,
                    indent=2,
                )
        except OSError as e:
            raise LedgerError(f"Error writing ledger file {self.state_file}: {e}", e) from e

    def _insert(self, entry: LedgerEntry) -> None:
        with self._lock:
            self._entries[entry.id] = entry
            self._write_entries()

    def _query_failed(self, level: EntityLevel) -> List[LedgerEntry]:
        with self._lock:
            return [
                entry.model_copy()
                for entry in self._entries.values()
                if entry.level == level and entry.state == EntryState.FAILED
            ]

    def _get_failed(self, entry_id: str) -> Optional[LedgerEntry]:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        if entry.state != EntryState.FAILED:
            logger.debug(f"Ledger entry {entry_id} is already {entry.state.value}, leaving it unchanged")
            return None
        return entry

    def _update_state(self, entry_id: str, state: EntryState) -> None:
        with self._lock:
            entry = self._get_failed(entry_id)
            if entry is None:
                return
            entry.state = state
            entry.updated_at = datetime.now(timezone.utc)
            self._write_entries()

    def _increment(self, entry_id: str) -> None:
        with self._lock:
            entry = self._get_failed(entry_id)
            if entry is None:
                return
            entry.retry_count += 1
            entry.updated_at = datetime.now(timezone.utc)
            self._write_entries()

    def _all_entries(self) -> List[LedgerEntry]:
        with self._lock:
            return [entry.model_copy() for entry in self._entries.values()]

    def get_entry(self, entry_id: str) -> LedgerEntry:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise EntryNotFoundError(entry_id)
            return entry.model_copy()

    def entries(self) -> List[LedgerEntry]:
        """Snapshot of every entry, in insertion order."""
        return self._all_entries()
