"""
Core types for the catalog crawler.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from ..schema.catalog import Category, SubItem

# Entries with a retry count above this are never replayed automatically
DEFAULT_MAX_RETRY_COUNT = 3


class EntityLevel(str, Enum):
    """Catalog level a ledger entry belongs to"""

    CATEGORY = "category"
    SUB_ITEM = "sub_item"
    LEAF = "leaf"


class EntryState(str, Enum):
    """Terminal outcome recorded for a crawl node"""

    COMPLETED = "completed"
    FAILED = "failed"


class CrawlErrorType(str, Enum):
    """Types of crawl errors"""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    EXTRACTION = "extraction"
    PERSIST = "persist"
    LEDGER = "ledger"
    UNKNOWN = "unknown"


class CategoryPayload(BaseModel):
    """Listing-page node: a category or one of its pagination continuations"""

    level: Literal["category"] = "category"
    name: str
    url: str

    @classmethod
    def from_category(cls, category: Category) -> "CategoryPayload":
        return cls(name=category.name, url=category.url)

    def to_category(self) -> Category:
        return Category(name=self.name, url=self.url)


class SubItemPayload(BaseModel):
    """Sub-item page fetch and extraction"""

    level: Literal["sub_item"] = "sub_item"
    category: str
    name: str
    attribute: str
    url: str

    @classmethod
    def from_sub_item(cls, sub_item: SubItem) -> "SubItemPayload":
        return cls(category=sub_item.category, name=sub_item.name, attribute=sub_item.attribute, url=sub_item.url)

    def to_sub_item(self) -> SubItem:
        return SubItem(category=self.category, name=self.name, attribute=self.attribute, url=self.url)


class LeafPayload(BaseModel):
    """Persistence of the record extracted from a sub-item page"""

    level: Literal["leaf"] = "leaf"
    category: str
    sub_item: str
    attribute: str
    url: str

    @classmethod
    def from_sub_item(cls, sub_item: SubItem) -> "LeafPayload":
        return cls(category=sub_item.category, sub_item=sub_item.name, attribute=sub_item.attribute, url=sub_item.url)

    def to_sub_item(self) -> SubItem:
        return SubItem(category=self.category, name=self.sub_item, attribute=self.attribute, url=self.url)


Payload = Union[CategoryPayload, SubItemPayload, LeafPayload]
LedgerPayload = Annotated[Payload, Field(discriminator="level")]


class LedgerEntry(BaseModel):
    """One recorded outcome of a crawl node"""

    id: str = Field(default_factory=lambda: uuid4().hex)
    level: EntityLevel
    state: EntryState
    payload: LedgerPayload
    error_message: Optional[str] = None
    retry_count: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_retryable(self, max_retry_count: int = DEFAULT_MAX_RETRY_COUNT) -> bool:
        return self.state == EntryState.FAILED and self.retry_count <= max_retry_count
