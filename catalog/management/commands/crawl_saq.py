"""
Management command to crawl the SAQ catalog.

Usage:
    python manage.py crawl_saq
    python manage.py crawl_saq --url https://www.saq.com/en/products/wine/red-wine --max-pages 2
    python manage.py crawl_saq --product https://www.saq.com/en/12345678
    python manage.py crawl_saq --product https://www.saq.com/en/12345678 --dry-run
    python manage.py crawl_saq --queue
"""

import asyncio
from dataclasses import asdict

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from catalog.exceptions import ExtractionError, FetchError, StoreUnavailable
from catalog.saq.client import SAQClient
from catalog.saq.extraction import extract_product


class Command(BaseCommand):
    help = "Crawl the SAQ product catalog into the database"

    def add_arguments(self, parser):
        parser.add_argument(
            "--url",
            type=str,
            default=None,
            help=f"Category listing URL to crawl (default: {settings.SAQ_CATALOG_URL})",
        )
        parser.add_argument(
            "--max-pages",
            type=int,
            default=None,
            help="Stop after this many listing pages (default: CRAWLER_MAX_PAGES)",
        )
        parser.add_argument(
            "--concurrency",
            type=int,
            default=None,
            help="Number of concurrent product workers (default: CRAWLER_CONCURRENCY)",
        )
        parser.add_argument(
            "--product",
            type=str,
            default=None,
            help="Crawl a single product page instead of a listing",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="With --product: print the extracted product without saving it",
        )
        parser.add_argument(
            "--queue",
            action="store_true",
            help="Dispatch the crawl to the Celery crawl queue instead of running it here",
        )

    def handle(self, *args, **options):
        if options["dry_run"] and not options["product"]:
            raise CommandError("--dry-run requires --product")

        if options["product"]:
            if options["dry_run"]:
                self._extract_only(options["product"])
            elif options["queue"]:
                self._dispatch_product(options["product"])
            else:
                self._crawl_product(options["product"])
            return

        if options["queue"]:
            self._dispatch_catalog(options)
            return

        self._crawl_catalog(options)

    def _fetch(self, url: str) -> str:
        async def _run():
            async with SAQClient() as client:
                return await client.fetch(url)

        try:
            return asyncio.run(_run())
        except FetchError as e:
            raise CommandError(str(e)) from e

    def _extract_only(self, url: str):
        html = self._fetch(url)
        try:
            extracted = extract_product(html, url=url)
        except ExtractionError as e:
            raise CommandError(f"Extraction failed ({e.field or 'page'}): {e}") from e

        for key, value in asdict(extracted).items():
            if value in (None, "", [], {}):
                continue
            self.stdout.write(f"{key}: {value}")

    def _crawl_product(self, url: str):
        from catalog.services.product_upsert import persist_page

        html = self._fetch(url)
        try:
            result = persist_page(html, url)
        except StoreUnavailable as e:
            raise CommandError(str(e)) from e

        if result is None:
            raise CommandError(f"Could not save {url}, see crawl errors")

        if result.created:
            self.stdout.write(self.style.SUCCESS(f"Created product {result.product_id}"))
        elif result.updated:
            self.stdout.write(self.style.SUCCESS(
                f"Updated product {result.product_id}: {', '.join(result.changed_fields)}"
            ))
        else:
            self.stdout.write(f"Product {result.product_id} unchanged")

    def _crawl_catalog(self, options):
        from catalog.services.crawler import run_crawl

        try:
            run, report = run_crawl(
                start_url=options["url"],
                max_pages=options["max_pages"],
                concurrency=options["concurrency"],
            )
        except StoreUnavailable as e:
            raise CommandError(f"Crawl halted: {e}") from e

        self.stdout.write(self.style.SUCCESS(f"Crawl run {run.pk} {run.status}"))
        self.stdout.write(f"  Listing pages:  {report.pages_listed}")
        self.stdout.write(f"  Products seen:  {report.products_seen}")
        self.stdout.write(f"  Created:        {report.created}")
        self.stdout.write(f"  Updated:        {report.updated}")
        self.stdout.write(f"  Unchanged:      {report.unchanged}")
        self.stdout.write(f"  Failed:         {report.failed}")
        if report.listing_error:
            self.stdout.write(self.style.WARNING(f"  Listing stopped early: {report.listing_error}"))

    def _dispatch_catalog(self, options):
        from catalog.tasks import crawl_catalog

        result = crawl_catalog.apply_async(
            kwargs={
                "start_url": options["url"],
                "max_pages": options["max_pages"],
                "concurrency": options["concurrency"],
            },
            queue="crawl",
        )
        self.stdout.write(self.style.SUCCESS(f"Dispatched catalog crawl task {result.id}"))

    def _dispatch_product(self, url: str):
        from catalog.tasks import crawl_product_page

        result = crawl_product_page.apply_async(args=[url], queue="crawl")
        self.stdout.write(self.style.SUCCESS(f"Dispatched product crawl task {result.id}"))
