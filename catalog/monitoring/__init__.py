"""
Monitoring and alerting for catalog crawls.

- Sentry error tracking with crawl context
- Persistent CrawlError records and per-run failure counters
- Per-run error rate alerting

Thresholds (configurable):
- Run error rate: 10% (CRAWLER_ERROR_RATE_THRESHOLD)
"""

from .sentry_integration import add_crawl_breadcrumb, capture_alert, capture_crawl_error
from .error_logger import (
    check_run_error_rate,
    classify_error,
    create_crawl_error_record,
    log_crawl_failure,
)

__all__ = [
    "add_crawl_breadcrumb",
    "capture_alert",
    "capture_crawl_error",
    "check_run_error_rate",
    "classify_error",
    "create_crawl_error_record",
    "log_crawl_failure",
]
