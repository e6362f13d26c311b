"""
Sentry error tracking for catalog crawls.

- Sentry SDK itself is initialized in config/settings/base.py when SENTRY_DSN is set
- Adds breadcrumbs with crawl context (run, URL, SAQ code)
- Filters sensitive data (cookies, API keys)
- Captures exceptions and threshold alerts with crawl tags

When no DSN is configured the sentry_sdk calls are no-ops.

Usage:
    from catalog.monitoring import capture_crawl_error

    try:
        html = await client.fetch(url)
    except FetchError as e:
        capture_crawl_error(error=e, url=url, run_id=run.pk)
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Filter sensitive data from a dictionary.

    Replaces values for keys that match sensitive field names, recursing
    into nested dictionaries.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Dictionary with sensitive values replaced
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()

        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def add_crawl_breadcrumb(
    url: str,
    message: str = "Crawl operation",
    level: str = "info",
    run_id: Optional[int] = None,
    saq_code: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to Sentry for crawl context.

    Args:
        url: URL being crawled
        message: Description of the operation
        level: Log level (info, warning, error)
        run_id: CrawlRun primary key
        saq_code: SAQ code of the product, when known
        extra_data: Additional context data
    """
    breadcrumb_data: Dict[str, Any] = {"url": url}
    if run_id is not None:
        breadcrumb_data["run_id"] = run_id
    if saq_code:
        breadcrumb_data["saq_code"] = saq_code
    if extra_data:
        breadcrumb_data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(
            category="crawl",
            message=message,
            level=level,
            data=breadcrumb_data,
        )
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_crawl_error(
    error: Exception,
    url: Optional[str] = None,
    run_id: Optional[int] = None,
    saq_code: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a crawl error to Sentry with full context.

    Args:
        error: The exception that occurred
        url: URL where the error occurred
        run_id: CrawlRun primary key
        saq_code: SAQ code of the product, when known
        extra_context: Additional context (filtered for sensitive data)
    """
    add_crawl_breadcrumb(
        url=url or "Unknown",
        message=f"Error: {type(error).__name__}",
        level="error",
        run_id=run_id,
        saq_code=saq_code,
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("crawler.error_type", getattr(error, "error_type", "unknown"))
            if run_id is not None:
                scope.set_tag("crawler.run_id", run_id)
            if saq_code:
                scope.set_tag("crawler.saq_code", saq_code)
            if url:
                scope.set_extra("crawl_url", url)
            if extra_context:
                scope.set_extra("crawl_context", _filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    run_id: Optional[int] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message to Sentry.

    Used for threshold breaches such as a crawl run's error rate.
    """
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", "threshold_breach")
            if run_id is not None:
                scope.set_tag("crawler.run_id", run_id)
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
