"""
Tests for JSON-LD parsing of SAQ pages.
"""

import json
import math

import pytest

from catalog.exceptions import ExtractionError
from catalog.saq.linked_data import (
    extract_linked_data,
    parse_availability,
    parse_breadcrumbs,
    parse_item_condition,
    parse_offer,
)


def _page(*payloads):
    scripts = "".join(
        f'<script type="application/ld+json">{json.dumps(p)}</script>' for p in payloads
    )
    return f"<html><head>{scripts}</head><body></body></html>"


class TestVocabulary:
    """Test schema.org IRI mapping."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("http://schema.org/InStock", "in_stock"),
            ("https://schema.org/OutOfStock", "out_of_stock"),
            ("LimitedAvailability", "limited_availability"),
            ("https://schema.org/InStoreOnly", "in_store_only"),
            ("https://schema.org/PreOrder", "pre_order"),
        ],
    )
    def test_parse_availability(self, value, expected):
        assert parse_availability(value) == expected

    @pytest.mark.parametrize("value", ["https://schema.org/Teleported", "", None, 3])
    def test_unknown_availability_is_none(self, value):
        assert parse_availability(value) is None

    def test_parse_item_condition(self):
        assert parse_item_condition("https://schema.org/NewCondition") == "new"
        assert parse_item_condition("RefurbishedCondition") == "refurbished"
        assert parse_item_condition("https://schema.org/MintCondition") is None


class TestParseOffer:
    """Test Offer parsing."""

    def test_price_string_with_french_formatting(self):
        offer = parse_offer({"price": "1 234,50 $", "priceCurrency": "CAD"})

        assert offer.price == pytest.approx(1234.5)
        assert offer.price_currency == "CAD"

    @pytest.mark.parametrize(
        "price, expected",
        [
            ("1,299", 1299.0),
            ("1 299,99 $", 1299.99),
            ("1,299.99", 1299.99),
            ("12,5", 12.5),
            ("1,234,567", 1234567.0),
        ],
    )
    def test_price_separators(self, price, expected):
        assert parse_offer({"price": price}).price == pytest.approx(expected)

    def test_non_finite_price_is_left_to_extraction(self):
        assert math.isinf(parse_offer({"price": "Infinity"}).price)
        assert math.isnan(parse_offer({"price": "NaN"}).price)

    def test_numeric_price(self):
        assert parse_offer({"price": 19.95}).price == pytest.approx(19.95)

    def test_first_of_several_offers(self):
        offer = parse_offer([{"price": "10.00"}, {"price": "20.00"}])

        assert offer.price == pytest.approx(10.0)

    def test_not_an_offer(self):
        assert parse_offer("19.95") is None


class TestParseBreadcrumbs:
    """Test BreadcrumbList parsing."""

    def test_sorted_by_position(self):
        crumbs = parse_breadcrumbs(
            {
                "itemListElement": [
                    {"position": 2, "item": {"@id": "https://www.saq.com/en/products/wine", "name": "Wine"}},
                    {"position": 1, "item": {"@id": "https://www.saq.com/en/", "name": "Home"}},
                ]
            }
        )

        assert [crumb.name for crumb in crumbs] == ["Home", "Wine"]

    def test_bare_url_items(self):
        crumbs = parse_breadcrumbs(
            {"itemListElement": [{"position": 1, "name": "Wine", "item": "https://www.saq.com/en/products/wine"}]}
        )

        assert crumbs[0].url == "https://www.saq.com/en/products/wine"
        assert crumbs[0].name == "Wine"

    def test_items_without_url_are_skipped(self):
        crumbs = parse_breadcrumbs({"itemListElement": [{"position": 1, "name": "Wine"}]})

        assert crumbs == []


class TestExtractLinkedData:
    """Test page-level JSON-LD extraction."""

    def test_product_page(self, product_page):
        linked = extract_linked_data(product_page)

        assert linked.product.sku == "14099363"
        assert linked.product.name == "Faiveley Mercurey 1er cru 2021"
        assert linked.product.offers.price == pytest.approx(41.75)
        assert linked.product.offers.availability == "in_stock"
        assert linked.product.offers.item_condition == "new"
        assert [crumb.position for crumb in linked.breadcrumbs] == [1, 2, 3, 4, 5]
        assert linked.offer_catalog is None

    def test_graph_container(self, make_product_linked_data):
        product = make_product_linked_data(sku="555")
        html = _page({"@context": "https://schema.org", "@graph": [{"@type": "Organization"}, product]})

        linked = extract_linked_data(html)

        assert linked.product.sku == "555"

    def test_listing_page_offer_catalog(self, make_listing_page):
        urls = ["https://www.saq.com/en/111", "https://www.saq.com/en/222"]

        linked = extract_linked_data(make_listing_page(urls))

        assert linked.products == []
        assert linked.offer_catalog.number_of_items == 2
        assert [p.offers.url for p in linked.offer_catalog.products] == urls

    def test_unknown_types_are_ignored(self):
        linked = extract_linked_data(_page({"@type": "Organization", "name": "SAQ"}))

        assert linked.product is None
        assert linked.breadcrumbs == []

    def test_no_block_raises(self):
        with pytest.raises(ExtractionError, match="No JSON-LD"):
            extract_linked_data("<html><body><p>Hello</p></body></html>")

    def test_malformed_block_raises(self):
        html = '<html><head><script type="application/ld+json">{"@type": "Product",</script></head></html>'

        with pytest.raises(ExtractionError, match="Malformed"):
            extract_linked_data(html)
