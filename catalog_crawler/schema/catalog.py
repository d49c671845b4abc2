from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_ATTRIBUTE = "unknown"

# Identity keys injected into every leaf record before it is persisted
CATEGORY_FIELD = "Category"
SUB_ITEM_FIELD = "SubItem"


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str


class SubItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    name: str
    attribute: str = UNKNOWN_ATTRIBUTE
    url: str


class LeafRecord(BaseModel):
    category: str
    sub_item: str
    attribute: str
    fields: Dict[str, str] = Field(default_factory=dict)

    def add_field(self, key: str, value: str) -> None:
        self.fields[key] = value

    def with_identity(self) -> "LeafRecord":
        """Return a copy carrying the owning category and sub-item as fields."""
        record = self.model_copy(update={"fields": dict(self.fields)})
        record.add_field(CATEGORY_FIELD, self.category)
        record.add_field(SUB_ITEM_FIELD, self.sub_item)
        return record
