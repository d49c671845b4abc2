"""
Catalog page extraction for the crawler.

Turns one HTML document into the descriptors of the next catalog level:
categories from the root page, sub-items and an optional next-page link from
a listing page, and the field table of a sub-item page.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel

from ..core.exceptions import ExtractionError
from ..schema.catalog import UNKNOWN_ATTRIBUTE, Category, LeafRecord, SubItem

logger = logging.getLogger(__name__)


class CatalogSelectors(BaseModel):
    """CSS selectors locating each catalog level"""

    category_links: str = 'div[class="subMenu"] > a[href*="/bikes/"]'
    sub_item_links: str = 'td a[href*="/model/"]'
    next_page_text: str = "Next"


def _text(element: Tag) -> str:
    return element.get_text().replace("\n", " ").strip()


def _direct_cells(row: Tag) -> List[Tag]:
    return row.find_all("td", recursive=False)


class CatalogParser:
    """
    BeautifulSoup-based extraction collaborator.

    All methods are pure functions of their HTML input. A link matched by a
    selector but carrying no href raises ExtractionError.
    """

    def __init__(self, base_url: str, selectors: Optional[CatalogSelectors] = None):
        self.base_url = base_url
        self.selectors = selectors or CatalogSelectors()

        self.stats = {
            "documents_parsed": 0,
            "failed_parses": 0,
        }

    def _parse(self, html: str) -> BeautifulSoup:
        self.stats["documents_parsed"] += 1
        try:
            return BeautifulSoup(html, "html.parser")
        except Exception as e:
            self.stats["failed_parses"] += 1
            raise ExtractionError(f"Could not parse HTML document: {e}", e) from e

    def _href(self, link: Tag, context: str) -> str:
        href = link.get("href")
        if not href:
            self.stats["failed_parses"] += 1
            raise ExtractionError(f"{context} link '{_text(link)}' has no href")
        return str(href)

    def _resolve(self, base: str, href: str) -> str:
        try:
            return urljoin(base, href)
        except ValueError as e:
            self.stats["failed_parses"] += 1
            raise ExtractionError(f"Malformed link {href!r} on {base}: {e}", e) from e

    def extract_categories(self, html: str) -> List[Category]:
        """Extract the top-level categories listed on the root page."""
        soup = self._parse(html)
        categories: List[Category] = []

        for link in soup.select(self.selectors.category_links):
            href = self._href(link, "Category")
            categories.append(Category(name=link.get_text().strip(), url=self._resolve(self.base_url, href)))

        logger.debug(f"Extracted {len(categories)} categories from root page")
        return categories

    def extract_sub_items(self, html: str, category_name: str, page_url: Optional[str] = None) -> List[SubItem]:
        """
        Extract sub-item descriptors from a category listing page.

        The attribute is the text of the second cell in the row holding the
        link, or "unknown" when the row has no such cell.
        """
        soup = self._parse(html)
        resolve_against = page_url or self.base_url
        sub_items: List[SubItem] = []

        for link in soup.select(self.selectors.sub_item_links):
            href = self._href(link, "Sub-item")
            attribute = UNKNOWN_ATTRIBUTE

            row = link.find_parent("tr")
            if row is not None:
                cells = _direct_cells(row)
                if len(cells) > 1:
                    attribute = _text(cells[1])

            sub_items.append(
                SubItem(
                    category=category_name,
                    name=_text(link),
                    attribute=attribute,
                    url=self._resolve(resolve_against, href),
                )
            )

        return sub_items

    def extract_next_page(self, html: str, category_name: str, current_url: str) -> Optional[Category]:
        """Return the continuation of a paginated listing, if the page links one."""
        soup = self._parse(html)

        for link in soup.find_all("a"):
            if link.get_text().strip() != self.selectors.next_page_text:
                continue
            href = link.get("href")
            if not href:
                return None
            return Category(name=category_name, url=self._resolve(current_url, str(href)))

        return None

    def extract_leaf_fields(self, html: str, category: str, item: str, attribute: str) -> Dict[str, str]:
        """
        Extract the field table of a sub-item page.

        Every row with exactly two direct cells and no links contributes one
        field; rows whose key or value is blank are skipped.
        """
        soup = self._parse(html)
        fields: Dict[str, str] = {}

        for row in soup.find_all("tr"):
            cells = _direct_cells(row)
            if len(cells) != 2 or row.find("a") is not None:
                continue

            key = cells[0].get_text().strip()
            value = cells[1].get_text().strip()
            if key and value:
                fields[key] = value

        logger.debug(
            f"Extracted {len(fields)} fields",
            extra={"category": category, "item": item, "attribute": attribute},
        )
        return fields

    def extract_leaf_record(self, html: str, sub_item: SubItem) -> LeafRecord:
        """Build the leaf record for sub_item, identity fields included."""
        record = LeafRecord(category=sub_item.category, sub_item=sub_item.name, attribute=sub_item.attribute)
        for key, value in self.extract_leaf_fields(html, sub_item.category, sub_item.name, sub_item.attribute).items():
            record.add_field(key, value)
        return record.with_identity()
