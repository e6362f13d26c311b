"""
Just enough JSON-LD/schema.org support to read SAQ pages.

Product pages embed a Product (with an Offer) and a BreadcrumbList; catalog
listing pages embed a WebPage whose mainEntity is an OfferCatalog of
Products. Only the fields the crawler needs are kept; unknown keys and
unknown @types are ignored.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from bs4 import BeautifulSoup

from catalog.choices import Availability, ItemCondition
from catalog.exceptions import ExtractionError

logger = logging.getLogger(__name__)

LD_SCRIPT_SELECTOR = 'script[type="application/ld+json"]'


@dataclass
class Offer:
    """https://schema.org/Offer"""

    price: Optional[float] = None
    price_currency: Optional[str] = None
    availability: Optional[str] = None
    item_condition: Optional[str] = None
    url: Optional[str] = None


@dataclass
class LinkedProduct:
    """
    https://schema.org/Product

    For the SAQ, ``sku`` is identical to the "SAQ code" of the Detailed Info
    section and ``offers.url`` is the product page URL.
    """

    sku: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    offers: Optional[Offer] = None


@dataclass
class BreadcrumbItem:
    """One https://schema.org/ListItem of a BreadcrumbList."""

    name: str
    url: str
    position: int = 0


@dataclass
class OfferCatalog:
    """https://schema.org/OfferCatalog, as the mainEntity of a listing WebPage."""

    name: Optional[str] = None
    url: Optional[str] = None
    number_of_items: Optional[int] = None
    products: List[LinkedProduct] = field(default_factory=list)


@dataclass
class LinkedData:
    """All the JSON-LD entities of one page that the crawler understands."""

    products: List[LinkedProduct] = field(default_factory=list)
    breadcrumbs: List[BreadcrumbItem] = field(default_factory=list)
    offer_catalog: Optional[OfferCatalog] = None

    @property
    def product(self) -> Optional[LinkedProduct]:
        """The page's Product entity, if any."""
        return self.products[0] if self.products else None


# ============================================================
# Vocabulary mapping
# ============================================================

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _schema_term(value: Any) -> Optional[str]:
    """Reduce "http://schema.org/InStock", "https://schema.org/InStock" or "InStock" to "InStock"."""
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip().rstrip("/").rsplit("/", 1)[-1]


def _snake_case(term: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", term).lower()


def parse_availability(value: Any) -> Optional[str]:
    """
    Map a schema.org ItemAvailability IRI to an Availability value.

    Args:
        value: i.e. "http://schema.org/InStock"

    Returns:
        "in_stock", or None when the value is missing or not one of the
        ten known availabilities.
    """
    term = _schema_term(value)
    if term is None:
        return None

    candidate = _snake_case(term)
    if candidate in Availability.values:
        return candidate

    logger.warning(f"Unknown availability {value!r}")
    return None


def parse_item_condition(value: Any) -> Optional[str]:
    """Map "https://schema.org/NewCondition" (or "NewCondition") to "new"."""
    term = _schema_term(value)
    if term is None:
        return None

    if term.endswith("Condition"):
        term = term[: -len("Condition")]

    candidate = _snake_case(term)
    if candidate in ItemCondition.values:
        return candidate

    logger.warning(f"Unknown item condition {value!r}")
    return None


# ============================================================
# Entity parsing
# ============================================================


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _price(value: Any) -> Optional[float]:
    """
    Read a schema.org price. Strings may use French formatting ("1 234,50 $"):
    a comma is the decimal mark only when there is no "." and it is followed by
    one or two digits, otherwise commas are thousands separators.

    Non-finite values are returned as is and rejected by extract_product.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[\s$]", "", value)
        if "." not in cleaned and re.search(r",\d{1,2}$", cleaned):
            whole, _, cents = cleaned.rpartition(",")
            cleaned = f"{whole.replace(',', '')}.{cents}"
        else:
            cleaned = cleaned.replace(",", "")
        try:
            return float(cleaned)
        except ValueError:
            logger.warning(f"Could not parse price {value!r}")
    return None


def _image(value: Any) -> Optional[str]:
    """schema.org image may be a URL, a list of URLs or an ImageObject."""
    if isinstance(value, list):
        for item in value:
            image = _image(item)
            if image:
                return image
        return None
    if isinstance(value, dict):
        return _text(value.get("url") or value.get("contentUrl") or value.get("@id"))
    return _text(value)


def _types(entity: Dict[str, Any]) -> List[str]:
    value = entity.get("@type")
    if isinstance(value, list):
        return [str(v) for v in value]
    if value is None:
        return []
    return [str(value)]


def parse_offer(data: Any) -> Optional[Offer]:
    """Parse an Offer; when several offers are listed the first one is used."""
    if isinstance(data, list):
        data = next((item for item in data if isinstance(item, dict)), None)
    if not isinstance(data, dict):
        return None

    price = _price(data.get("price"))
    if price is None and isinstance(data.get("priceSpecification"), dict):
        price = _price(data["priceSpecification"].get("price"))

    return Offer(
        price=price,
        price_currency=_text(data.get("priceCurrency")),
        availability=parse_availability(data.get("availability")),
        item_condition=parse_item_condition(data.get("itemCondition")),
        url=_text(data.get("url")),
    )


def parse_product(data: Dict[str, Any]) -> LinkedProduct:
    return LinkedProduct(
        sku=_text(data.get("sku")),
        name=_text(data.get("name")),
        description=_text(data.get("description")),
        image=_image(data.get("image")),
        category=_text(data.get("category")),
        offers=parse_offer(data.get("offers")),
    )


def parse_breadcrumbs(data: Dict[str, Any]) -> List[BreadcrumbItem]:
    """
    Parse a BreadcrumbList into ordered items.

    The ListItem's ``item`` may be either a node ({"@id": ..., "name": ...})
    or a bare URL with the name on the ListItem itself.
    """
    elements = data.get("itemListElement") or []
    if isinstance(elements, dict):
        elements = [elements]

    items = []
    for index, element in enumerate(elements):
        if not isinstance(element, dict):
            continue

        item = element.get("item")
        if isinstance(item, dict):
            url = _text(item.get("@id") or item.get("url"))
            name = _text(item.get("name") or element.get("name"))
        else:
            url = _text(item)
            name = _text(element.get("name"))

        if not url or not name:
            continue

        try:
            position = int(element.get("position", index + 1))
        except (TypeError, ValueError):
            position = index + 1

        items.append(BreadcrumbItem(name=name, url=url, position=position))

    items.sort(key=lambda crumb: crumb.position)
    return items


def parse_offer_catalog(data: Dict[str, Any]) -> OfferCatalog:
    elements = data.get("itemListElement") or []
    if isinstance(elements, dict):
        elements = [elements]

    products = []
    for element in elements:
        if not isinstance(element, dict):
            continue
        # ListItem wrappers carry the Product in "item"
        if "ListItem" in _types(element) and isinstance(element.get("item"), dict):
            element = element["item"]
        if "Product" in _types(element):
            products.append(parse_product(element))

    number_of_items = data.get("numberOfItems")
    try:
        number_of_items = int(number_of_items) if number_of_items is not None else None
    except (TypeError, ValueError):
        number_of_items = None

    return OfferCatalog(
        name=_text(data.get("name")),
        url=_text(data.get("url")),
        number_of_items=number_of_items,
        products=products,
    )


# ============================================================
# Page-level extraction
# ============================================================


def _iter_entities(payload: Any) -> Iterator[Dict[str, Any]]:
    """Flatten top-level lists and @graph containers into individual entities."""
    if isinstance(payload, list):
        for item in payload:
            yield from _iter_entities(item)
    elif isinstance(payload, dict):
        if "@graph" in payload:
            yield from _iter_entities(payload["@graph"])
        else:
            yield payload


def load_linked_data_blocks(soup: BeautifulSoup) -> List[Any]:
    """
    Deserialize every JSON-LD <script> block of the page.

    Raises:
        ExtractionError: if a block is not valid JSON
    """
    payloads = []
    for script in soup.select(LD_SCRIPT_SELECTOR):
        raw = script.string if script.string is not None else script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            payloads.append(json.loads(raw))
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Malformed JSON-LD block: {e}") from e
    return payloads


def extract_linked_data(document: Union[str, BeautifulSoup]) -> LinkedData:
    """
    Locate and deserialize the page's JSON-LD into a LinkedData.

    Args:
        document: Raw HTML or an already parsed BeautifulSoup

    Returns:
        LinkedData with the Product, BreadcrumbList and OfferCatalog entities found

    Raises:
        ExtractionError: if no JSON-LD block is present or one is malformed
    """
    soup = document if isinstance(document, BeautifulSoup) else BeautifulSoup(document, "lxml")

    payloads = load_linked_data_blocks(soup)
    if not payloads:
        raise ExtractionError("No JSON-LD block found on page")

    linked = LinkedData()
    for payload in payloads:
        for entity in _iter_entities(payload):
            types = _types(entity)
            if "Product" in types:
                linked.products.append(parse_product(entity))
            elif "BreadcrumbList" in types and not linked.breadcrumbs:
                linked.breadcrumbs = parse_breadcrumbs(entity)
            elif "WebPage" in types:
                main_entity = entity.get("mainEntity")
                if isinstance(main_entity, dict) and "OfferCatalog" in _types(main_entity):
                    linked.offer_catalog = parse_offer_catalog(main_entity)
            elif "OfferCatalog" in types and linked.offer_catalog is None:
                linked.offer_catalog = parse_offer_catalog(entity)

    return linked
