"""
Development settings for the SAQ catalog crawler.

Uses a local SQLite file, Redis for Celery, and relaxed settings for development.
"""

import os
from .base import *

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = True

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# Development database - SQLite file next to the project
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("SQLITE_PATH", BASE_DIR / "saq.sqlite3"),
        "OPTIONS": {
            "timeout": SQLITE_BUSY_TIMEOUT,
        },
    }
}

# Development Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# Development logging - verbose output
LOGGING["loggers"]["django"]["level"] = "INFO"
LOGGING["loggers"]["catalog"]["level"] = "DEBUG"

# Relaxed crawler settings for development
CRAWLER_REQUEST_TIMEOUT = 60  # More time for debugging
CRAWLER_MAX_RETRIES = 1  # Fail fast in development
