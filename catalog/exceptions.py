"""
Exceptions raised while crawling and persisting the SAQ catalog.

ExtractionError, ResolutionConflict, PersistenceError and FetchError are
per-page/per-product failures: the crawl records them and moves on.
StoreUnavailable means the database itself is gone and the crawl stops.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for all catalog crawler errors."""

    #: Value stored in CrawlError.error_type for this failure
    error_type = "unknown"


class ExtractionError(CatalogError):
    """
    A product page could not be turned into an ExtractedProduct.

    Raised when the JSON-LD block is missing or malformed, or when a
    required field (SAQ code, price) is unobtainable.
    """

    error_type = "extraction"

    def __init__(self, message: str, field: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.url = url


class ResolutionConflict(CatalogError):
    """A lookup or category write would break a uniqueness invariant."""

    error_type = "conflict"


class PersistenceError(CatalogError):
    """The product transaction failed and was rolled back."""

    error_type = "persistence"


class StoreUnavailable(PersistenceError):
    """The database cannot be reached; the crawl cannot continue."""


class FetchError(CatalogError):
    """A page could not be fetched from the SAQ website."""

    error_type = "fetch"

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
