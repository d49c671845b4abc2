"""Tests for catalog page extraction."""

import pytest
from catalog_crawler.core.exceptions import ExtractionError
from catalog_crawler.http_client.parser import CatalogParser, CatalogSelectors
from catalog_crawler.schema.catalog import Category, LeafRecord, SubItem

BASE_URL = "https://www.motorcyclespecs.co.za/index.htm"

ROOT_HTML = """
<html><body>
  <div class="subMenu">
    <a href="/bikes/Ducati.htm">Ducati</a>
    <a href="/bikes/Honda.htm"> Honda </a>
    <a href="/news/latest.htm">News</a>
  </div>
  <div class="footer"><a href="/bikes/Kawasaki.htm">Kawasaki</a></div>
</body></html>
"""

LISTING_HTML = """
<html><body>
  <table>
    <tr><td><a href="../model/ducati/monster_821.htm">Monster 821</a></td><td>2018</td></tr>
    <tr><td><a href="/model/ducati/panigale_v4.htm">Panigale V4</a></td></tr>
    <tr><td><a href="/bikes/elsewhere.htm">Not a model</a></td><td>2001</td></tr>
  </table>
  <p><a href="Ducati2.htm">Next</a></p>
</body></html>
"""

LEAF_HTML = """
<html><body>
  <table>
    <tr><td>Engine</td><td> Four stroke, 90° V-twin </td></tr>
    <tr><td>Power</td><td>109 hp</td></tr>
    <tr><td>Weight</td><td>  </td></tr>
    <tr><td><a href="/gallery.htm">Gallery</a></td><td>Photos</td></tr>
    <tr><td>Only one cell</td></tr>
    <tr><td>Three</td><td>cells</td><td>here</td></tr>
  </table>
</body></html>
"""


def test_extract_categories():
    """Category links in the sub menu are resolved against the base url."""
    parser = CatalogParser(BASE_URL)

    categories = parser.extract_categories(ROOT_HTML)

    assert categories == [
        Category(name="Ducati", url="https://www.motorcyclespecs.co.za/bikes/Ducati.htm"),
        Category(name="Honda", url="https://www.motorcyclespecs.co.za/bikes/Honda.htm"),
    ]


def test_extract_categories_requires_href():
    """A matched category link without an href is malformed."""
    parser = CatalogParser(BASE_URL, CatalogSelectors(category_links="div.subMenu > a"))

    with pytest.raises(ExtractionError):
        parser.extract_categories('<div class="subMenu"><a>Ducati</a></div>')


def test_extract_sub_items_with_attribute():
    """Model links become sub-items; the second cell of the row is the attribute."""
    parser = CatalogParser(BASE_URL)
    page_url = "https://www.motorcyclespecs.co.za/bikes/Ducati.htm"

    sub_items = parser.extract_sub_items(LISTING_HTML, "Ducati", page_url)

    assert sub_items == [
        SubItem(
            category="Ducati",
            name="Monster 821",
            attribute="2018",
            url="https://www.motorcyclespecs.co.za/model/ducati/monster_821.htm",
        ),
        SubItem(
            category="Ducati",
            name="Panigale V4",
            attribute="unknown",
            url="https://www.motorcyclespecs.co.za/model/ducati/panigale_v4.htm",
        ),
    ]


def test_extract_next_page():
    """The Next link is resolved against the page it was found on."""
    parser = CatalogParser(BASE_URL)
    page_url = "https://www.motorcyclespecs.co.za/bikes/Ducati.htm"

    next_page = parser.extract_next_page(LISTING_HTML, "Ducati", page_url)

    assert next_page == Category(name="Ducati", url="https://www.motorcyclespecs.co.za/bikes/Ducati2.htm")
    assert parser.extract_next_page(ROOT_HTML, "Ducati", page_url) is None


def test_malformed_links_raise_extraction_error():
    """A link whose href cannot be resolved into a URL is an extraction failure."""
    parser = CatalogParser(BASE_URL)
    page_url = "https://www.motorcyclespecs.co.za/bikes/Ducati.htm"
    broken_next = '<html><body><a href="http://[broken">Next</a></body></html>'
    broken_model = '<table><tr><td><a href="http://[broken/model/x.htm">X</a></td></tr></table>'

    with pytest.raises(ExtractionError, match="Malformed link"):
        parser.extract_next_page(broken_next, "Ducati", page_url)
    with pytest.raises(ExtractionError, match="Malformed link"):
        parser.extract_sub_items(broken_model, "Ducati", page_url)
    assert parser.stats["failed_parses"] == 2


def test_extract_leaf_fields_keeps_two_cell_rows():
    """Only link-free rows with exactly two non-blank cells become fields."""
    parser = CatalogParser(BASE_URL)

    fields = parser.extract_leaf_fields(LEAF_HTML, "Ducati", "Monster 821", "2018")

    assert fields == {"Engine": "Four stroke, 90° V-twin", "Power": "109 hp"}


def test_extract_leaf_record_injects_identity():
    """The persisted record carries its category and sub-item as fields."""
    parser = CatalogParser(BASE_URL)
    sub_item = SubItem(category="Ducati", name="Monster 821", attribute="2018", url="https://x.test/model/m.htm")

    record = parser.extract_leaf_record(LEAF_HTML, sub_item)

    assert record.attribute == "2018"
    assert list(record.fields) == ["Engine", "Power", "Category", "SubItem"]
    assert record.fields["Category"] == "Ducati"
    assert record.fields["SubItem"] == "Monster 821"
    assert record.fields["Power"] == "109 hp"


def test_with_identity_leaves_original_untouched():
    """with_identity returns a new record and does not modify the original field map."""
    record = LeafRecord(category="Ducati", sub_item="Monster", attribute="2018")
    record.add_field("Power", "109 hp")

    identified = record.with_identity()

    assert record.fields == {"Power": "109 hp"}
    assert identified.fields == {"Power": "109 hp", "Category": "Ducati", "SubItem": "Monster"}


def test_custom_selectors():
    """Selectors can be swapped for a differently structured catalog."""
    selectors = CatalogSelectors(category_links="nav a", next_page_text="More")
    parser = CatalogParser("https://shop.test/", selectors)

    categories = parser.extract_categories('<nav><a href="/c/boots">Boots</a></nav>')
    next_page = parser.extract_next_page('<a href="?page=2">More</a>', "Boots", "https://shop.test/c/boots")

    assert categories == [Category(name="Boots", url="https://shop.test/c/boots")]
    assert next_page == Category(name="Boots", url="https://shop.test/c/boots?page=2")
