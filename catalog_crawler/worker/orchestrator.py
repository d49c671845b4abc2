"""
Recursive crawl orchestration.

Walks the catalog root -> category listing pages -> sub-item pages. Every
discovered child runs as its own asyncio task, pagination included: a
"Next" link spawns another listing task instead of looping. A node writes
its own ledger entry only after all of its children have been joined.

Failures of the fetch, the extraction or the record store are recorded in
the ledger by the task that hit them and go no further. So is any other
exception raised inside a node, under the unknown error type. A LedgerError
aborts its task and is re-raised by each ancestor once that ancestor's
children are joined, so it reaches the caller of crawl().
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from ..core.exceptions import CrawlError, LedgerError
from ..core.types import CategoryPayload, CrawlErrorType, EntityLevel, LeafPayload, Payload, SubItemPayload
from ..http_client.gate import RequestGate
from ..http_client.parser import CatalogParser
from ..schema.catalog import Category, SubItem
from ..state.ledger import FailureLedger
from ..storage.record_store import RecordStore
from ..utils.logging import CrawlerLoggerAdapter, get_crawler_logger

logger = logging.getLogger(__name__)


class CrawlOrchestrator:
    """
    Fan-out/fan-in engine over the three catalog levels.

    Ledger levels written per node:
      - listing page (a category's first page or any continuation): CATEGORY
      - sub-item page fetch and extraction: SUB_ITEM
      - persistence of the extracted record: LEAF (only once extraction succeeded)

    The leaf task is split in two entries so that a record which was fetched
    and parsed but rejected by the store is told apart from a page that could
    not be fetched: a failed fetch or extraction is a failed SUB_ITEM entry,
    a failed persist is a failed LEAF entry. Both carry the sub-item url and
    are replayed by the leaf pass of the reconciler.

    When a node is replayed from the ledger, its entry_id is passed in and the
    outcome updates that entry instead of appending a new one.
    """

    def __init__(
        self,
        gate: RequestGate,
        parser: CatalogParser,
        store: RecordStore,
        ledger: FailureLedger,
        run_id: Optional[str] = None,
    ):
        self.gate = gate
        self.parser = parser
        self.store = store
        self.ledger = ledger
        self.run_id = run_id or uuid4().hex[:12]
        self.events = CrawlerLoggerAdapter(get_crawler_logger("catalog_crawler.orchestrator"), self.run_id)

        self.stats: Dict[str, Dict[str, int]] = {
            level.value: {"attempted": 0, "completed": 0, "failed": 0} for level in EntityLevel
        }

    async def crawl(self, root_url: str) -> bool:
        """
        Crawl the whole catalog below root_url.

        Returns False if the root page itself could not be fetched or parsed.
        """
        try:
            root_html = await self.gate.fetch(root_url)
        except LedgerError:
            raise
        except Exception as e:
            logger.error(f"Could not fetch catalog root {root_url}: {e}", extra={"url": root_url})
            return False

        return await self.crawl_root(root_html)

    async def crawl_root(self, root_html: str) -> bool:
        try:
            categories = self.parser.extract_categories(root_html)
        except LedgerError:
            raise
        except Exception as e:
            logger.error(f"Could not extract categories from catalog root: {e}")
            return False

        logger.info(f"Crawling {len(categories)} categories", extra={"run_id": self.run_id})
        await self.join([asyncio.create_task(self.crawl_listing(category)) for category in categories])
        return True

    async def crawl_listing(self, page: Category, entry_id: Optional[str] = None) -> bool:
        """
        Crawl one listing page and everything reachable from it.

        Spawns a leaf task per sub-item and one listing task for the next page,
        joins them, then records this page. Returns whether this page itself
        was fetched and parsed.
        """
        payload = CategoryPayload.from_category(page)
        self.stats[EntityLevel.CATEGORY.value]["attempted"] += 1

        try:
            html = await self.gate.fetch(page.url)
            sub_items = self.parser.extract_sub_items(html, page.name, page.url)
            next_page = self.parser.extract_next_page(html, page.name, page.url)
        except LedgerError:
            raise
        except Exception as e:
            self._record_failure(EntityLevel.CATEGORY, payload, e, entry_id)
            return False

        tasks: List[asyncio.Task] = [asyncio.create_task(self.crawl_sub_item(sub_item)) for sub_item in sub_items]

        if next_page is not None:
            if next_page.url == page.url:
                logger.warning(f"Listing page {page.url} links to itself as next page, not following")
            else:
                tasks.append(asyncio.create_task(self.crawl_listing(next_page)))

        await self.join(tasks)

        self._record_success(EntityLevel.CATEGORY, payload, entry_id)
        return True

    async def crawl_sub_item(self, sub_item: SubItem) -> bool:
        """Fetch a sub-item page, extract its record and persist it."""
        sub_item_payload = SubItemPayload.from_sub_item(sub_item)
        self.stats[EntityLevel.SUB_ITEM.value]["attempted"] += 1

        try:
            html = await self.gate.fetch(sub_item.url)
            record = self.parser.extract_leaf_record(html, sub_item)
        except LedgerError:
            raise
        except Exception as e:
            self._record_failure(EntityLevel.SUB_ITEM, sub_item_payload, e)
            return False

        self._record_success(EntityLevel.SUB_ITEM, sub_item_payload)

        leaf_payload = LeafPayload.from_sub_item(sub_item)
        self.stats[EntityLevel.LEAF.value]["attempted"] += 1

        try:
            await self.store.insert(record)
        except LedgerError:
            raise
        except Exception as e:
            self._record_failure(EntityLevel.LEAF, leaf_payload, e)
            return False

        self._record_success(EntityLevel.LEAF, leaf_payload)
        return True

    async def replay_leaf(self, level: EntityLevel, sub_item: SubItem, entry_id: str) -> bool:
        """
        Re-run fetch, extraction and persistence for one failed entry.

        Only the entry identified by entry_id is updated; no new entry is
        written whatever the outcome.
        """
        payload: Payload
        if level == EntityLevel.LEAF:
            payload = LeafPayload.from_sub_item(sub_item)
        else:
            payload = SubItemPayload.from_sub_item(sub_item)
        self.stats[level.value]["attempted"] += 1

        try:
            html = await self.gate.fetch(sub_item.url)
            record = self.parser.extract_leaf_record(html, sub_item)
            await self.store.insert(record)
        except LedgerError:
            raise
        except Exception as e:
            self._record_failure(level, payload, e, entry_id)
            return False

        self._record_success(level, payload, entry_id)
        return True

    async def join(self, tasks: Sequence["asyncio.Task[bool]"]) -> List[bool]:
        """
        Wait for every task, then re-raise the first exception any of them raised.

        Siblings are never cancelled: a failing branch still lets the others
        finish before the error moves up.
        """
        if not tasks:
            return []

        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: List[bool] = []
        first_error: Optional[BaseException] = None
        for result in results:
            if isinstance(result, BaseException):
                if first_error is None:
                    first_error = result
                outcomes.append(False)
            else:
                outcomes.append(bool(result))

        if first_error is not None:
            raise first_error
        return outcomes

    def _record_success(self, level: EntityLevel, payload: Payload, entry_id: Optional[str] = None) -> None:
        self.stats[level.value]["completed"] += 1
        if entry_id is None:
            self.ledger.append_success(level, payload)
            self.events.log_node_completed(level.value, payload.url)
        else:
            self.ledger.mark_completed(entry_id)
            self.events.log_retry_outcome(level.value, payload.url, entry_id, recovered=True)

    def _record_failure(
        self, level: EntityLevel, payload: Payload, error: Exception, entry_id: Optional[str] = None
    ) -> None:
        self.stats[level.value]["failed"] += 1
        if isinstance(error, CrawlError):
            error_type, message = error.error_type.value, str(error)
        else:
            error_type, message = CrawlErrorType.UNKNOWN.value, f"Unknown error: {type(error).__name__}: {error}"
            logger.warning(f"Unclassified failure at {payload.url}", exc_info=error)

        if entry_id is None:
            self.ledger.append_failure(level, payload, message)
            self.events.log_node_failed(level.value, payload.url, error_type=error_type, error_message=message)
        else:
            self.ledger.increment_retry(entry_id)
            self.events.log_retry_outcome(
                level.value, payload.url, entry_id, recovered=False, error_type=error_type, error_message=message
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "nodes": {level: dict(counts) for level, counts in self.stats.items()},
            "gate": self.gate.get_stats(),
            "store": dict(self.store.stats),
        }
