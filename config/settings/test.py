"""
Test settings for the SAQ catalog crawler.

Uses a temporary SQLite file and eager Celery for fast test execution.
"""

import os
import tempfile

from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - a throwaway SQLite file, so that worker threads share it
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv(
            "SQLITE_TEST_PATH", os.path.join(tempfile.gettempdir(), "saq_crawler_test.sqlite3")
        ),
        "OPTIONS": {
            "timeout": SQLITE_BUSY_TIMEOUT,
        },
    }
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["catalog"]["level"] = "WARNING"

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Test crawler settings - fail fast
CRAWLER_REQUEST_TIMEOUT = 5
CRAWLER_MAX_RETRIES = 1
CRAWLER_RATE_LIMIT_DELAY = 0
CRAWLER_CONCURRENCY = 2
CRAWLER_QUEUE_SIZE = 2
