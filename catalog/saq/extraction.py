"""
Product page extraction: raw HTML -> ExtractedProduct.

Combines the JSON-LD linked data, the Detailed Info section and page
metadata (breadcrumbs, og:image). JSON-LD is authoritative for identity and
commerce fields; Detailed Info supplies everything else.

Only the SAQ code and a positive price are required. Every other field is
optional and left unset when the page does not provide it.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from catalog.exceptions import ExtractionError
from catalog.saq.detailed_info import (
    DetailedInfo,
    extract_detailed_info_pairs,
    parse_detailed_info,
)
from catalog.saq.linked_data import LinkedData, extract_linked_data

logger = logging.getLogger(__name__)

HTML_BREADCRUMB_SELECTOR = ".breadcrumbs li a[href]"
CURRENT_PAGE_SELECTOR = ".pages .pages-items .current .page span:nth-child(2)"
LISTING_PRODUCT_LINK_SELECTOR = "a.product-item-link[href]"


@dataclass
class CategoryCrumb:
    """One step of a product's category path (i.e. "Wine" > "Red wine")."""

    name: str
    url: str


@dataclass
class ExtractedProduct:
    """
    Everything read from one product page, ready for the upsert engine.

    grape_varieties keeps page order and maps each name to its percentage
    (None when the page does not state one). categories goes from the
    broadest category to the most specific one.
    """

    saq_code: str
    price_cad: float

    upc_code: Optional[str] = None
    name: str = ""
    description: str = ""
    image_url: str = ""
    url: str = ""
    price_currency: Optional[str] = None
    availability: Optional[str] = None
    item_condition: Optional[str] = None

    producer: Optional[str] = None
    promoting_agent: Optional[str] = None
    color: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None

    abv_percentage: Optional[float] = None
    sugar_content_grams_per_liter: Optional[float] = None
    sugar_content_equality: Optional[str] = None
    container_count: Optional[int] = None
    container_milliliters: Optional[int] = None

    regulated_designation: Optional[str] = None
    designation_of_origin: Optional[str] = None
    classification: Optional[str] = None
    product_of_quebec: Optional[str] = None

    grape_varieties: Dict[str, Optional[int]] = field(default_factory=dict)
    special_features: List[str] = field(default_factory=list)
    categories: List[CategoryCrumb] = field(default_factory=list)

    unrecognized_info: Dict[str, str] = field(default_factory=dict)


@dataclass
class ListingPage:
    """A page of the catalog listing."""

    page_number: Optional[int]
    product_urls: List[str] = field(default_factory=list)


def _is_category_url(url: str) -> bool:
    """Category listings live under /<lang>/products/<slug>..."""
    path = urlparse(url).path
    return "/products/" in path and bool(path.split("/products/", 1)[1].strip("/"))


def extract_categories(soup: BeautifulSoup, linked: LinkedData, base_url: str = "") -> List[CategoryCrumb]:
    """
    Read the category path from the JSON-LD BreadcrumbList.

    Breadcrumbs include the home page, the "Products" root and the product
    itself; only category listings are kept. Falls back to the HTML
    breadcrumb trail when the page has no BreadcrumbList.
    """
    crumbs = [
        CategoryCrumb(name=item.name, url=item.url)
        for item in linked.breadcrumbs
        if _is_category_url(item.url)
    ]
    if crumbs or linked.breadcrumbs:
        return crumbs

    for link in soup.select(HTML_BREADCRUMB_SELECTOR):
        url = urljoin(base_url, link["href"])
        name = link.get_text(" ", strip=True)
        if name and _is_category_url(url):
            crumbs.append(CategoryCrumb(name=name, url=url))
    return crumbs


def extract_image_url(soup: BeautifulSoup, linked: LinkedData) -> str:
    product = linked.product
    if product and product.image:
        return product.image

    og_image = soup.find("meta", attrs={"property": "og:image"})
    if og_image and og_image.get("content"):
        return og_image["content"].strip()
    return ""


def _canonical_url(soup: BeautifulSoup) -> str:
    link = soup.find("link", attrs={"rel": "canonical"})
    if link and link.get("href"):
        return link["href"].strip()
    return ""


def merge_product(
    soup: BeautifulSoup,
    linked: LinkedData,
    info: DetailedInfo,
    url: Optional[str] = None,
) -> ExtractedProduct:
    """
    Merge linked data and Detailed Info into an ExtractedProduct.

    Raises:
        ExtractionError: if the SAQ code or a finite positive price is unobtainable
    """
    product = linked.product
    offer = product.offers if product else None

    saq_code = (product.sku if product else None) or info.get("saq_code")
    if not saq_code:
        raise ExtractionError("SAQ code not found", field="saq_code", url=url)

    price = offer.price if offer else None
    if price is None:
        raise ExtractionError(f"Price not found for {saq_code}", field="price", url=url)
    if not math.isfinite(price) or price <= 0:
        raise ExtractionError(f"Invalid price {price} for {saq_code}", field="price", url=url)

    page_url = url or (offer.url if offer and offer.url else "") or _canonical_url(soup)

    extracted = ExtractedProduct(
        saq_code=saq_code,
        price_cad=price,
        upc_code=info.get("upc_code"),
        name=(product.name if product else None) or "",
        description=(product.description if product else None) or "",
        image_url=extract_image_url(soup, linked),
        url=page_url,
        price_currency=offer.price_currency if offer else None,
        availability=offer.availability if offer else None,
        item_condition=offer.item_condition if offer else None,
        producer=info.get("producer"),
        promoting_agent=info.get("promoting_agent"),
        color=info.get("color"),
        region=info.get("region"),
        country=info.get("country"),
        abv_percentage=info.get("abv_percentage"),
        regulated_designation=info.get("regulated_designation"),
        designation_of_origin=info.get("designation_of_origin"),
        classification=info.get("classification"),
        product_of_quebec=info.get("product_of_quebec"),
        grape_varieties=dict(info.get("grape_varieties") or {}),
        special_features=list(info.get("special_features") or []),
        categories=extract_categories(soup, linked, base_url=page_url),
        unrecognized_info=dict(info.unrecognized),
    )

    size = info.get("size")
    if size is not None:
        extracted.container_count = size.container_count
        extracted.container_milliliters = size.container_milliliters

    sugar = info.get("sugar_content")
    if sugar is not None:
        extracted.sugar_content_grams_per_liter = sugar.grams_per_liter
        extracted.sugar_content_equality = str(sugar.equality)

    if extracted.price_currency and extracted.price_currency != "CAD":
        logger.warning(f"Product {saq_code} priced in {extracted.price_currency}, expected CAD")

    detailed_code = info.get("saq_code")
    if detailed_code and detailed_code != saq_code:
        logger.warning(f"SAQ code mismatch for {url}: JSON-LD {saq_code}, Detailed Info {detailed_code}")

    return extracted


def extract_product(html: Union[str, bytes], url: Optional[str] = None) -> ExtractedProduct:
    """
    Extract a product from a product page.

    Args:
        html: The product page HTML
        url: The page URL, stored on the product and used in error reports

    Returns:
        ExtractedProduct

    Raises:
        ExtractionError: if the JSON-LD is missing/malformed or a required field is missing
    """
    soup = BeautifulSoup(html, "lxml")

    try:
        linked = extract_linked_data(soup)
    except ExtractionError as e:
        e.url = url
        raise

    info = parse_detailed_info(extract_detailed_info_pairs(soup))
    return merge_product(soup, linked, info, url=url)


_DIGITS_RE = re.compile(r"\d+")


def parse_listing_page(html: Union[str, bytes], base_url: str = "") -> ListingPage:
    """
    Read the current page number and the product URLs of a catalog listing page.

    Product URLs come from the JSON-LD OfferCatalog, falling back to the
    product links of the listing grid.
    """
    soup = BeautifulSoup(html, "lxml")

    page_number = None
    current = soup.select_one(CURRENT_PAGE_SELECTOR)
    if current is not None:
        match = _DIGITS_RE.search(current.get_text())
        if match:
            page_number = int(match.group())

    product_urls: List[str] = []
    try:
        linked = extract_linked_data(soup)
    except ExtractionError as e:
        logger.debug(f"Listing page without usable JSON-LD ({e}), using product links")
        linked = None

    if linked is not None and linked.offer_catalog is not None:
        for product in linked.offer_catalog.products:
            if product.offers and product.offers.url:
                product_urls.append(product.offers.url)

    if not product_urls:
        for link in soup.select(LISTING_PRODUCT_LINK_SELECTOR):
            product_urls.append(urljoin(base_url, link["href"]))

    # De-duplicate, keep order
    product_urls = list(dict.fromkeys(product_urls))

    return ListingPage(page_number=page_number, product_urls=product_urls)
