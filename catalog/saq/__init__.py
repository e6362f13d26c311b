"""
SAQ website support: page fetching and product page extraction.
"""

from catalog.saq.extraction import (
    CategoryCrumb,
    ExtractedProduct,
    ListingPage,
    extract_product,
    parse_listing_page,
)

__all__ = [
    "CategoryCrumb",
    "ExtractedProduct",
    "ListingPage",
    "extract_product",
    "parse_listing_page",
]
