"""
Tests for crawl orchestration.

The page source and persistence are replaced by in-memory fakes so the
queue/worker behavior is tested without HTTP; only the run bookkeeping
tests touch the database.
"""

from unittest.mock import patch

import pytest
from asgiref.sync import async_to_sync

from catalog.choices import CrawlRunStatus
from catalog.exceptions import ExtractionError, FetchError, StoreUnavailable
from catalog.saq.extraction import ListingPage
from catalog.services.crawler import CatalogCrawler, CrawlReport, run_crawl
from catalog.services.product_upsert import ProductUpsertResult

SAQ_URL = "https://www.saq.com/en"
LISTING_URL = f"{SAQ_URL}/products/wine"


class FakeClient:
    """Serves listing pages and product HTML from memory."""

    def __init__(self, pages, failing=(), listing_error=None):
        self.pages = pages
        self.failing = set(failing)
        self.listing_error = listing_error
        self.fetched = []
        self.entered = False
        self.closed = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    async def iter_listing_pages(self, url):
        for number, urls in enumerate(self.pages, start=1):
            yield ListingPage(page_number=number, product_urls=list(urls))
        if self.listing_error is not None:
            raise self.listing_error

    async def fetch(self, url, params=None):
        self.fetched.append(url)
        if url in self.failing:
            raise FetchError(f"HTTP 500 for {url}", url=url, status_code=500)
        return f"<html>{url}</html>"


class Recorder:
    """Async persist/record_failure doubles."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.persisted = []
        self.failures = []

    async def persist(self, html, url, run):
        self.persisted.append(url)
        outcome = self.outcomes.get(url, "created")
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return None
        return ProductUpsertResult(
            product_id=len(self.persisted),
            created=outcome == "created",
            updated=outcome == "updated",
        )

    async def record_failure(self, error, url, run=None, count_product=True):
        self.failures.append((url, type(error).__name__, count_product))


def _urls(*codes):
    return [f"{SAQ_URL}/{code}" for code in codes]


def _crawler(client, recorder, **kwargs):
    kwargs.setdefault("concurrency", 2)
    kwargs.setdefault("queue_size", 2)
    return CatalogCrawler(
        client=client,
        persist=recorder.persist,
        record_failure=recorder.record_failure,
        **kwargs,
    )


class TestCrawlReport:
    """Test outcome accounting."""

    def test_record(self):
        report = CrawlReport()

        report.record(ProductUpsertResult(product_id=1, created=True))
        report.record(ProductUpsertResult(product_id=2, updated=True))
        report.record(ProductUpsertResult(product_id=3))
        report.record(None)

        assert report.to_dict() == {
            "pages_listed": 0,
            "products_seen": 4,
            "created": 1,
            "updated": 1,
            "unchanged": 1,
            "failed": 1,
            "listing_error": None,
            "halted": False,
        }


class TestCatalogCrawler:
    """Test the listing -> queue -> workers pipeline."""

    @pytest.mark.asyncio
    async def test_every_listed_product_is_persisted(self):
        client = FakeClient([_urls(1, 2, 3), _urls(4, 5)])
        recorder = Recorder(outcomes={_urls(2)[0]: "updated", _urls(3)[0]: "unchanged"})

        report = await _crawler(client, recorder).crawl(LISTING_URL)

        assert sorted(recorder.persisted) == sorted(_urls(1, 2, 3, 4, 5))
        assert report.pages_listed == 2
        assert report.products_seen == 5
        assert (report.created, report.updated, report.unchanged, report.failed) == (3, 1, 1, 0)
        assert client.entered and client.closed

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_stop_the_crawl(self):
        client = FakeClient([_urls(1, 2, 3)], failing=_urls(2))
        recorder = Recorder()

        report = await _crawler(client, recorder).crawl(LISTING_URL)

        assert sorted(recorder.persisted) == _urls(1, 3)
        assert report.failed == 1
        assert report.created == 2
        assert recorder.failures == [(_urls(2)[0], "FetchError", True)]

    @pytest.mark.asyncio
    async def test_product_failure_reported_by_persist(self):
        client = FakeClient([_urls(1, 2)])
        recorder = Recorder(outcomes={_urls(1)[0]: None})

        report = await _crawler(client, recorder).crawl(LISTING_URL)

        assert report.failed == 1
        assert report.created == 1
        assert report.failures == [(_urls(1)[0], "see crawl errors")]

    @pytest.mark.asyncio
    async def test_catalog_error_from_persist_is_recorded(self):
        client = FakeClient([_urls(1, 2)])
        recorder = Recorder(outcomes={_urls(2)[0]: ExtractionError("No JSON-LD block found on page")})

        report = await _crawler(client, recorder).crawl(LISTING_URL)

        assert report.failed == 1
        assert recorder.failures == [(_urls(2)[0], "ExtractionError", True)]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_counted_and_crawl_continues(self):
        client = FakeClient([_urls(1, 2, 3)])
        recorder = Recorder(outcomes={_urls(1)[0]: RuntimeError("boom")})

        report = await _crawler(client, recorder, concurrency=1).crawl(LISTING_URL)

        assert report.products_seen == 3
        assert report.failed == 1
        assert report.created == 2
        assert report.failures[0] == (_urls(1)[0], "RuntimeError: boom")
        assert recorder.failures == [(_urls(1)[0], "RuntimeError", True)]

    @pytest.mark.asyncio
    async def test_failure_while_recording_does_not_kill_the_worker(self):
        client = FakeClient([_urls(1, 2)])
        recorder = Recorder(outcomes={_urls(1)[0]: RuntimeError("boom")})

        async def broken_record_failure(error, url, run=None, count_product=True):
            raise RuntimeError("error table locked")

        crawler = CatalogCrawler(
            client=client,
            persist=recorder.persist,
            record_failure=broken_record_failure,
            concurrency=1,
            queue_size=1,
        )
        report = await crawler.crawl(LISTING_URL)

        assert report.products_seen == 2
        assert report.failed == 1
        assert report.created == 1

    @pytest.mark.asyncio
    async def test_store_unavailable_halts_the_crawl(self):
        client = FakeClient([_urls(1, 2, 3, 4, 5)])
        recorder = Recorder(outcomes={_urls(2)[0]: StoreUnavailable("could not connect to server")})
        crawler = _crawler(client, recorder, concurrency=1, queue_size=1)

        with pytest.raises(StoreUnavailable):
            await crawler.crawl(LISTING_URL)

        assert recorder.persisted == _urls(1, 2)
        assert crawler.report.halted is True
        assert crawler.report.created == 1
        assert client.closed

    @pytest.mark.asyncio
    async def test_listing_failure_keeps_listed_products(self):
        error = FetchError("HTTP 503 for listing", url=f"{LISTING_URL}?p=2", status_code=503)
        client = FakeClient([_urls(1, 2)], listing_error=error)
        recorder = Recorder()

        report = await _crawler(client, recorder).crawl(LISTING_URL)

        assert sorted(recorder.persisted) == _urls(1, 2)
        assert report.listing_error == "HTTP 503 for listing"
        assert recorder.failures == [(f"{LISTING_URL}?p=2", "FetchError", False)]

    @pytest.mark.asyncio
    async def test_empty_listing(self):
        report = await _crawler(FakeClient([]), Recorder()).crawl(LISTING_URL)

        assert report.products_seen == 0
        assert report.pages_listed == 0


@pytest.mark.django_db
class TestRunCrawl:
    """Test run_crawl() bookkeeping on CrawlRun."""

    def _patched(self, client, recorder):
        return (
            patch("catalog.services.crawler.SAQClient", return_value=client),
            patch("catalog.services.crawler._default_persist", new=recorder.persist),
            patch("catalog.services.crawler._default_record_failure", new=recorder.record_failure),
        )

    def test_completed_run(self):
        client = FakeClient([_urls(1, 2), _urls(3)])
        recorder = Recorder()
        client_patch, persist_patch, failure_patch = self._patched(client, recorder)

        with client_patch, persist_patch, failure_patch:
            run, report = run_crawl(start_url=LISTING_URL, concurrency=2)

        run.refresh_from_db()
        assert run.status == CrawlRunStatus.COMPLETED
        assert run.start_url == LISTING_URL
        assert run.pages_listed == 2
        assert run.started_at is not None
        assert run.completed_at is not None
        assert report.created == 3

    def test_listing_error_is_kept_on_the_run(self):
        error = FetchError("HTTP 503 for listing", url=LISTING_URL, status_code=503)
        client = FakeClient([_urls(1)], listing_error=error)
        recorder = Recorder()
        client_patch, persist_patch, failure_patch = self._patched(client, recorder)

        with client_patch, persist_patch, failure_patch:
            run, _ = run_crawl(start_url=LISTING_URL)

        run.refresh_from_db()
        assert run.status == CrawlRunStatus.COMPLETED
        assert run.error_message == "HTTP 503 for listing"

    def test_store_unavailable_fails_the_run(self):
        client = FakeClient([_urls(1, 2)])
        recorder = Recorder(outcomes={_urls(1)[0]: StoreUnavailable("could not connect to server")})
        client_patch, persist_patch, failure_patch = self._patched(client, recorder)

        with client_patch, persist_patch, failure_patch:
            with pytest.raises(StoreUnavailable):
                run_crawl(start_url=LISTING_URL, concurrency=1)

        from catalog.models import CrawlRun

        run = CrawlRun.objects.get()
        assert run.status == CrawlRunStatus.FAILED
        assert "could not connect" in run.error_message

    @patch("catalog.monitoring.sentry_integration.sentry_sdk")
    def test_unexpected_error_is_counted_on_the_run(self, mock_sentry, crawl_run):
        from catalog.models import CrawlError

        client = FakeClient([_urls(1, 2)])
        recorder = Recorder(outcomes={_urls(1)[0]: TypeError("boom")})
        crawler = CatalogCrawler(client=client, run=crawl_run, persist=recorder.persist, concurrency=1)

        report = async_to_sync(crawler.crawl)(LISTING_URL)

        crawl_run.refresh_from_db()
        assert report.failed == 1
        assert crawl_run.products_seen == 1
        assert crawl_run.products_failed == 1
        error = CrawlError.objects.get(run=crawl_run)
        assert error.url == _urls(1)[0]
        assert error.error_type == "unknown"
