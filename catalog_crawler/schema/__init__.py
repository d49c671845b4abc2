from .catalog import Category, LeafRecord, SubItem

__all__ = [
    "Category",
    "SubItem",
    "LeafRecord",
]
