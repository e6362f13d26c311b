"""
SAQ page source - async httpx client for listing and product pages.

Provides:
- fetch(url): one page's HTML, with exponential backoff on transient failures
- iter_listing_pages(url): the pages of a category listing, following ?p=N
- list_category(url): the product URLs of a category listing

saq.com's pagination wraps around rather than rendering an empty page, so
pagination stops as soon as the page number reported by the page differs
from the one requested (or a page lists no products).
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Dict, Optional

import httpx

from django.conf import settings

from catalog.exceptions import FetchError
from catalog.saq.extraction import ListingPage, parse_listing_page

logger = logging.getLogger(__name__)


class SAQClient:
    """
    Async client for saq.com.

    Use as an async context manager so the underlying connection pool is
    closed:

        async with SAQClient() as client:
            html = await client.fetch(url)
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-CA,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        rate_limit_delay: Optional[float] = None,
        user_agent: Optional[str] = None,
        max_pages: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            timeout: Request timeout in seconds (default from settings)
            max_retries: Maximum attempts per request (default from settings)
            rate_limit_delay: Seconds to wait before each request (default from settings)
            user_agent: Custom User-Agent string (default from settings)
            max_pages: Stop listing after this many pages, 0 for no limit (default from settings)
            transport: Optional httpx transport, used by tests
        """
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)
        self.max_retries = max(1, max_retries or getattr(settings, "CRAWLER_MAX_RETRIES", 3))
        self.rate_limit_delay = (
            rate_limit_delay
            if rate_limit_delay is not None
            else getattr(settings, "CRAWLER_RATE_LIMIT_DELAY", 0.25)
        )
        self.user_agent = user_agent or getattr(settings, "CRAWLER_USER_AGENT", None)
        self.max_pages = max_pages if max_pages is not None else getattr(settings, "CRAWLER_MAX_PAGES", 0)
        self.transport = transport

        self._http_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self._init_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _init_http_client(self):
        """Initialize HTTP client."""
        if self._http_client is None:
            headers: Dict[str, str] = dict(self.DEFAULT_HEADERS)
            if self.user_agent:
                headers["User-Agent"] = self.user_agent

            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
                follow_redirects=True,
                transport=self.transport,
            )

    async def close(self):
        """Close HTTP client connection."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, url: str, params: Optional[Dict[str, str]] = None) -> str:
        """
        Fetch a page's HTML.

        Args:
            url: URL to fetch
            params: Optional query parameters

        Returns:
            The response body

        Raises:
            FetchError: on a 4xx response, or once retries are exhausted
        """
        if self._http_client is None:
            await self._init_http_client()

        response = await self._fetch_with_retry(url, params)
        return response.text

    async def _fetch_with_retry(self, url: str, params: Optional[Dict[str, str]]) -> httpx.Response:
        """
        Fetch with exponential backoff retry logic.

        Timeouts, transport errors and 5xx responses are retried; 4xx
        responses fail immediately.
        """
        last_error: Optional[Exception] = None
        status_code: Optional[int] = None

        for attempt in range(self.max_retries):
            if self.rate_limit_delay:
                await asyncio.sleep(self.rate_limit_delay)

            start = time.monotonic()
            try:
                response = await self._http_client.get(url, params=params)
                logger.debug(
                    f"GET {response.url} -> {response.status_code} "
                    f"({time.monotonic() - start:.2f}s)"
                )

                if 400 <= response.status_code < 500:
                    raise FetchError(
                        f"HTTP {response.status_code} for {url}",
                        url=url,
                        status_code=response.status_code,
                    )

                response.raise_for_status()
                return response

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"Timeout fetching {url} (attempt {attempt + 1}/{self.max_retries})"
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                status_code = e.response.status_code
                logger.warning(
                    f"HTTP error {status_code} for {url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    f"Error fetching {url}: {e} (attempt {attempt + 1}/{self.max_retries})"
                )

            # Exponential backoff
            if attempt < self.max_retries - 1:
                delay = 2 ** attempt
                await asyncio.sleep(delay)

        raise FetchError(
            f"Failed to fetch {url} after {self.max_retries} attempts: {last_error}",
            url=url,
            status_code=status_code,
        ) from last_error

    async def fetch_listing_page(self, url: str, page_number: int) -> ListingPage:
        """Fetch and parse page ``page_number`` of a category listing."""
        html = await self.fetch(url, params={"p": str(page_number)})
        return parse_listing_page(html, base_url=url)

    async def iter_listing_pages(self, url: str) -> AsyncIterator[ListingPage]:
        """
        Yield the pages of a category listing in order.

        Stops when the site wraps around to another page, when a page lists
        no products or has no pagination, or after max_pages pages.
        """
        page_number = 1
        while True:
            if self.max_pages and page_number > self.max_pages:
                logger.info(f"Reached page limit ({self.max_pages}) for {url}")
                return

            page = await self.fetch_listing_page(url, page_number)

            if page.page_number is not None and page.page_number != page_number:
                logger.info(f"Listing {url} ended after page {page_number - 1}")
                return

            if not page.product_urls:
                logger.info(f"Listing {url} page {page_number} is empty, stopping")
                return

            logger.info(f"Listing {url} page {page_number}: {len(page.product_urls)} products")
            yield page

            # No pagination widget means a single-page listing
            if page.page_number is None:
                return
            page_number += 1

    async def list_category(self, url: str) -> AsyncIterator[str]:
        """Yield every product URL of a category listing, page by page."""
        async for page in self.iter_listing_pages(url):
            for product_url in page.product_urls:
                yield product_url
