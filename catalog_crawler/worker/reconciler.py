"""
Reconciliation pass over the crawl ledger.

Runs after the main crawl. The category pass re-walks every retryable failed
listing page with its whole subtree; once it has drained, the leaf pass
replays each retryable failed sub-item or leaf entry as a single
fetch-extract-persist step. A replayed entry is either marked completed or
has its retry count incremented.

Known limitation: the category pass has no knowledge of records already
persisted under that category by an earlier attempt, so re-walking a
category can store the same leaf record twice.
"""

import asyncio
import logging
from typing import Any, Dict, List, Union, cast

from ..core.types import CategoryPayload, EntityLevel, LeafPayload, SubItemPayload
from ..state.ledger import FailureLedger
from .orchestrator import CrawlOrchestrator

logger = logging.getLogger(__name__)

# Leaf pass replays both halves of the leaf task: the page fetch and the persist
LEAF_PASS_LEVELS = (EntityLevel.SUB_ITEM, EntityLevel.LEAF)


class RetryReconciler:
    def __init__(self, orchestrator: CrawlOrchestrator, ledger: FailureLedger):
        self.orchestrator = orchestrator
        self.ledger = ledger

        self.stats: Dict[str, Dict[str, int]] = {
            level.value: {"retried": 0, "recovered": 0, "still_failed": 0} for level in EntityLevel
        }

    async def reconcile(self) -> Dict[str, Any]:
        """Run the category pass, then the leaf pass."""
        await self.retry_categories()
        await self.retry_leaves()

        summary = self.ledger.summary()
        exhausted = sum(counts["exhausted"] for counts in summary.values())
        if exhausted:
            logger.warning(f"{exhausted} ledger entries exceeded the retry ceiling and need manual attention")

        return {"retries": self.get_stats(), "ledger": summary}

    async def retry_categories(self) -> List[bool]:
        retryable = self.ledger.list_retryable(EntityLevel.CATEGORY)
        logger.info(f"Retrying {len(retryable)} failed listing pages")

        tasks = []
        for payload, entry_id in retryable:
            category = cast(CategoryPayload, payload).to_category()
            tasks.append(asyncio.create_task(self.orchestrator.crawl_listing(category, entry_id=entry_id)))

        outcomes = await self.orchestrator.join(tasks)
        self._count(EntityLevel.CATEGORY, outcomes)
        return outcomes

    async def retry_leaves(self) -> List[bool]:
        tasks = []
        levels = []

        for level in LEAF_PASS_LEVELS:
            retryable = self.ledger.list_retryable(level)
            logger.info(f"Retrying {len(retryable)} failed {level.value} entries")
            for payload, entry_id in retryable:
                sub_item = cast(Union[SubItemPayload, LeafPayload], payload).to_sub_item()
                tasks.append(asyncio.create_task(self.orchestrator.replay_leaf(level, sub_item, entry_id)))
                levels.append(level)

        outcomes = await self.orchestrator.join(tasks)
        for level in LEAF_PASS_LEVELS:
            self._count(level, [ok for ok, lvl in zip(outcomes, levels) if lvl == level])
        return outcomes

    def _count(self, level: EntityLevel, outcomes: List[bool]) -> None:
        counts = self.stats[level.value]
        counts["retried"] += len(outcomes)
        counts["recovered"] += sum(1 for ok in outcomes if ok)
        counts["still_failed"] += sum(1 for ok in outcomes if not ok)

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        return {level: dict(counts) for level, counts in self.stats.items()}
