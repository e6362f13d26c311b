"""
Detailed error context logging for crawl failures.

- Creates a CrawlError record for every failed page or product
- Counts the failure on the CrawlRun
- Forwards the exception to Sentry

Usage:
    from catalog.monitoring import log_crawl_failure

    try:
        persist(...)
    except CatalogError as e:
        log_crawl_failure(e, url=url, run=run)
"""

import logging
import traceback
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

from catalog.choices import ErrorType

logger = logging.getLogger(__name__)

# Default threshold for a run's error rate (10%)
DEFAULT_ERROR_RATE_THRESHOLD = 0.10


def classify_error(error: Exception) -> str:
    """
    Classify an exception into an ErrorType value.

    Catalog errors carry their own error_type; anything else is "unknown".
    """
    error_type = getattr(error, "error_type", ErrorType.UNKNOWN)
    if error_type not in ErrorType.values:
        return ErrorType.UNKNOWN
    return error_type


def create_crawl_error_record(
    url: str,
    error_type: str,
    message: str,
    run=None,
    saq_code: Optional[str] = None,
    stack_trace: Optional[str] = None,
):
    """
    Create a CrawlError record in the database.

    Args:
        url: URL that caused the error
        error_type: Category of error (from ErrorType choices)
        message: Error message
        run: CrawlRun the failure belongs to, if any
        saq_code: SAQ code of the product, when known
        stack_trace: Full stack trace if available

    Returns:
        CrawlError instance
    """
    from catalog.models import CrawlError

    if error_type not in ErrorType.values:
        error_type = ErrorType.UNKNOWN

    error_record = CrawlError.objects.create(
        run=run,
        url=url or "",
        saq_code=saq_code or "",
        error_type=error_type,
        message=message,
        stack_trace=stack_trace or "",
        timestamp=timezone.now(),
    )

    logger.debug(f"Created CrawlError record {error_record.pk} for {url}: {error_type}")
    return error_record


def log_crawl_failure(
    error: Exception,
    url: str,
    run=None,
    saq_code: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
    count_product: bool = True,
):
    """
    Log a failed page or product to the database, the run counters and Sentry.

    Args:
        error: The exception that occurred
        url: URL of the failed page
        run: CrawlRun the failure belongs to, if any
        saq_code: SAQ code of the product, when known
        extra_context: Additional context for Sentry
        count_product: Count the failure as a failed product on the run
            (False for listing pages)

    Returns:
        CrawlError instance
    """
    from .sentry_integration import capture_crawl_error

    error_type = classify_error(error)
    logger.warning(f"{error_type} failure for {url}: {error}")

    stack_trace = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )

    error_record = create_crawl_error_record(
        url=url,
        error_type=error_type,
        message=str(error),
        run=run,
        saq_code=saq_code,
        stack_trace=stack_trace,
    )

    if run is not None and count_product:
        run.increment(products_seen=1, products_failed=1)

    capture_crawl_error(
        error=error,
        url=url,
        run_id=run.pk if run is not None else None,
        saq_code=saq_code,
        extra_context={
            "error_type": error_type,
            **(extra_context or {}),
        },
    )

    return error_record


def check_run_error_rate(run, threshold: Optional[float] = None) -> Dict[str, Any]:
    """
    Check a finished run's product error rate and alert if the threshold is exceeded.

    Args:
        run: CrawlRun to check (counters are re-read from the database)
        threshold: Error rate threshold (default: CRAWLER_ERROR_RATE_THRESHOLD or 0.10)

    Returns:
        Dict with error_rate, failed, total and threshold_exceeded
    """
    from .sentry_integration import capture_alert

    if threshold is None:
        threshold = getattr(
            settings, "CRAWLER_ERROR_RATE_THRESHOLD", DEFAULT_ERROR_RATE_THRESHOLD
        )

    run.refresh_from_db(fields=["products_seen", "products_failed"])
    total = run.products_seen
    failed = run.products_failed
    error_rate = failed / total if total else 0.0

    result = {
        "error_rate": error_rate,
        "failed": failed,
        "total": total,
        "threshold": threshold,
        "threshold_exceeded": error_rate > threshold,
    }

    if result["threshold_exceeded"]:
        message = (
            f"Crawl run {run.pk} error rate {error_rate:.1%} exceeds "
            f"threshold {threshold:.1%} ({failed}/{total} products failed)"
        )
        logger.warning(message)
        capture_alert(message=message, level="warning", run_id=run.pk, extra_data=result)

    return result
