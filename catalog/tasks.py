"""
Celery tasks for the SAQ catalog.

- crawl_catalog: full crawl of a category listing (nightly via Celery Beat)
- crawl_product_page: fetch and persist a single product page
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from celery import shared_task

from catalog.exceptions import FetchError, StoreUnavailable

logger = logging.getLogger(__name__)


@shared_task(name="catalog.tasks.crawl_catalog", bind=True)
def crawl_catalog(
    self,
    start_url: Optional[str] = None,
    max_pages: Optional[int] = None,
    concurrency: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Crawl a category listing (default: the whole catalog).

    Args:
        start_url: Category listing URL (default SAQ_CATALOG_URL)
        max_pages: Stop after this many listing pages
        concurrency: Number of product workers

    Returns:
        Dict with the run id, status and per-product outcome counts
    """
    from catalog.services.crawler import run_crawl

    logger.info(f"Starting catalog crawl task for {start_url or 'the full catalog'}")

    try:
        run, report = run_crawl(
            start_url=start_url,
            max_pages=max_pages,
            concurrency=concurrency,
        )
    except StoreUnavailable as e:
        logger.error(f"Catalog crawl halted: {e}")
        return {"status": "failed", "error": str(e)}

    return {
        "status": run.status,
        "run_id": run.pk,
        **report.to_dict(),
    }


@shared_task(name="catalog.tasks.crawl_product_page", bind=True, max_retries=3)
def crawl_product_page(self, url: str, run_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Fetch a single product page and upsert it.

    Fetch failures are retried by Celery with exponential backoff; extraction
    and persistence failures are recorded as CrawlErrors.

    Args:
        url: Product page URL
        run_id: Optional CrawlRun to account the outcome on

    Returns:
        Dict with the outcome
    """
    from catalog.models import CrawlRun
    from catalog.saq.client import SAQClient
    from catalog.services.product_upsert import persist_page

    run = None
    if run_id is not None:
        run = CrawlRun.objects.filter(pk=run_id).first()
        if run is None:
            logger.warning(f"CrawlRun {run_id} not found, crawling {url} without a run")

    async def _fetch() -> str:
        async with SAQClient() as client:
            return await client.fetch(url)

    try:
        html = asyncio.run(_fetch())
    except FetchError as e:
        logger.warning(f"Fetch failed for {url}: {e}")
        if e.status_code is not None and 400 <= e.status_code < 500:
            return {"status": "failed", "url": url, "error": str(e)}
        raise self.retry(exc=e, countdown=2 ** self.request.retries * 30)

    result = persist_page(html, url, run=run)
    if result is None:
        return {"status": "failed", "url": url}

    return {
        "status": "created" if result.created else "updated" if result.updated else "unchanged",
        "url": url,
        "product_id": result.product_id,
        "changed_fields": result.changed_fields,
    }
