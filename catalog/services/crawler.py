"""
Catalog crawl orchestration.

Listing pages are fetched serially, each yielding product page URLs. The
URLs go through a bounded asyncio.Queue to a pool of workers which fetch
each product page and persist it. Persistence is a synchronous ORM call run
through sync_to_async, one transaction per product, so a crawl interrupted
between products leaves no partial product behind.

A failed product (fetch, extraction, conflict, persistence) is recorded and
the crawl moves on. Only StoreUnavailable stops the crawl.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import DatabaseError

from catalog.exceptions import CatalogError, FetchError, StoreUnavailable
from catalog.saq.client import SAQClient
from catalog.services.product_upsert import ProductUpsertResult, persist_page

logger = logging.getLogger(__name__)

PersistCallable = Callable[[str, str, object], Awaitable[Optional[ProductUpsertResult]]]
FailureCallable = Callable[..., Awaitable[object]]

# Queue sentinel telling a worker to exit
_STOP = None


@dataclass
class CrawlReport:
    """
    Per-product outcomes of one crawl.

    Attributes:
        pages_listed: Listing pages that yielded products
        products_seen: Product URLs processed (success or failure)
        created/updated/unchanged: Persisted products by outcome
        failed: Products that could not be fetched, extracted or saved
        failures: (url, error message) for each failed product
        listing_error: Why listing stopped early, if it did
        halted: Whether the crawl stopped because the store became unreachable
    """

    pages_listed: int = 0
    products_seen: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    listing_error: Optional[str] = None
    halted: bool = False

    def record(self, result: Optional[ProductUpsertResult]) -> None:
        self.products_seen += 1
        if result is None:
            self.failed += 1
        elif result.created:
            self.created += 1
        elif result.updated:
            self.updated += 1
        else:
            self.unchanged += 1

    def to_dict(self) -> dict:
        return {
            "pages_listed": self.pages_listed,
            "products_seen": self.products_seen,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "listing_error": self.listing_error,
            "halted": self.halted,
        }


def _default_persist(html: str, url: str, run) -> Awaitable[Optional[ProductUpsertResult]]:
    return sync_to_async(persist_page, thread_sensitive=True)(html, url, run=run)


def _default_record_failure(error: Exception, url: str, run=None, count_product: bool = True):
    from catalog.monitoring import log_crawl_failure

    return sync_to_async(log_crawl_failure, thread_sensitive=True)(
        error, url=url, run=run, count_product=count_product
    )


class CatalogCrawler:
    """
    Crawls a category listing (by default the whole catalog) into the database.

    Usage:
        crawler = CatalogCrawler(run=run)
        report = asyncio.run(crawler.crawl())
    """

    def __init__(
        self,
        client: Optional[SAQClient] = None,
        run=None,
        concurrency: Optional[int] = None,
        queue_size: Optional[int] = None,
        persist: Optional[PersistCallable] = None,
        record_failure: Optional[FailureCallable] = None,
    ):
        """
        Initialize the crawler.

        Args:
            client: Page source; a new SAQClient by default
            run: CrawlRun to account outcomes on
            concurrency: Number of product workers (default CRAWLER_CONCURRENCY)
            queue_size: Bound of the URL queue (default CRAWLER_QUEUE_SIZE)
            persist: async (html, url, run) -> ProductUpsertResult | None
            record_failure: async (error, url, run=..., count_product=...) for fetch failures
        """
        self.client = client or SAQClient()
        self.run = run
        self.concurrency = max(1, concurrency or getattr(settings, "CRAWLER_CONCURRENCY", 8))
        self.queue_size = max(1, queue_size or getattr(settings, "CRAWLER_QUEUE_SIZE", 8))
        self.persist = persist or _default_persist
        self.record_failure = record_failure or _default_record_failure

        self.report = CrawlReport()
        self._halted = asyncio.Event()
        self._store_error: Optional[StoreUnavailable] = None

    async def crawl(self, start_url: Optional[str] = None) -> CrawlReport:
        """
        Crawl every product of a listing.

        Args:
            start_url: Category listing URL (default SAQ_CATALOG_URL)

        Returns:
            CrawlReport

        Raises:
            StoreUnavailable: the database became unreachable; report is still
                available on self.report
        """
        start_url = start_url or settings.SAQ_CATALOG_URL
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)

        logger.info(f"Starting crawl of {start_url} with {self.concurrency} workers")

        async with self.client:
            workers = [
                asyncio.create_task(self._worker(queue), name=f"catalog-worker-{i}")
                for i in range(self.concurrency)
            ]
            try:
                await self._produce(start_url, queue)
            finally:
                for _ in workers:
                    await queue.put(_STOP)
                results = await asyncio.gather(*workers, return_exceptions=True)

        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                logger.error(f"Crawl worker exited with {result!r}")

        logger.info(f"Crawl of {start_url} finished: {self.report.to_dict()}")

        if self._store_error is not None:
            raise self._store_error
        return self.report

    async def _produce(self, start_url: str, queue: asyncio.Queue) -> None:
        """Feed product URLs from the listing pages into the queue."""
        try:
            async for page in self.client.iter_listing_pages(start_url):
                self.report.pages_listed += 1
                for url in page.product_urls:
                    if self._halted.is_set():
                        return
                    await queue.put(url)
        except FetchError as e:
            logger.error(f"Listing {start_url} stopped: {e}")
            self.report.listing_error = str(e)
            await self.record_failure(e, e.url or start_url, run=self.run, count_product=False)

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            url = await queue.get()
            try:
                if url is _STOP:
                    return
                if not self._halted.is_set():
                    await self._process(url)
            except Exception as e:
                # Workers outlive any single product failure
                logger.exception(f"Unexpected error processing {url}: {e}")
                self.report.record(None)
                self.report.failures.append((url, f"{type(e).__name__}: {e}"))
                try:
                    await self.record_failure(e, url, run=self.run, count_product=True)
                except Exception as record_error:
                    logger.error(f"Could not record failure for {url}: {record_error}")
            finally:
                queue.task_done()

    async def _process(self, url: str) -> None:
        """Fetch and persist one product page, accounting its outcome."""
        try:
            html = await self.client.fetch(url)
        except FetchError as e:
            await self._fail(e, url)
            return

        try:
            result = await self.persist(html, url, self.run)
        except StoreUnavailable as e:
            logger.critical(f"Store unavailable, halting crawl: {e}")
            self._store_error = e
            self.report.halted = True
            self._halted.set()
            return
        except CatalogError as e:
            await self._fail(e, url)
            return

        self.report.record(result)
        if result is None:
            self.report.failures.append((url, "see crawl errors"))

    async def _fail(self, error: Exception, url: str) -> None:
        self.report.record(None)
        self.report.failures.append((url, str(error)))
        await self.record_failure(error, url, run=self.run, count_product=True)


def run_crawl(
    start_url: Optional[str] = None,
    max_pages: Optional[int] = None,
    concurrency: Optional[int] = None,
):
    """
    Run a full crawl synchronously, tracked by a new CrawlRun.

    Used by the crawl_saq management command and the crawl_catalog task.

    Returns:
        (CrawlRun, CrawlReport)

    Raises:
        StoreUnavailable: the database became unreachable (the run is marked failed)
    """
    from catalog.models import CrawlRun
    from catalog.monitoring import check_run_error_rate

    start_url = start_url or settings.SAQ_CATALOG_URL
    run = CrawlRun.objects.create(start_url=start_url)
    run.start()

    crawler = CatalogCrawler(
        client=SAQClient(max_pages=max_pages),
        run=run,
        concurrency=concurrency,
    )

    try:
        report = asyncio.run(crawler.crawl(start_url))
    except StoreUnavailable as e:
        try:
            run.pages_listed = crawler.report.pages_listed
            run.save(update_fields=["pages_listed"])
            run.complete(success=False, error_message=str(e))
        except DatabaseError as db_error:
            logger.error(f"Could not mark run {run.pk} as failed: {db_error}")
        raise
    except BaseException as e:
        run.complete(success=False, error_message=f"{type(e).__name__}: {e}")
        raise

    run.pages_listed = report.pages_listed
    run.save(update_fields=["pages_listed"])
    run.complete(success=True, error_message=report.listing_error)
    check_run_error_rate(run)

    return run, report
