"""
Celery configuration for the SAQ catalog crawler.

Catalog crawls run on a dedicated "crawl" queue; Beat triggers a full
crawl every night.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("saq_crawler")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_queues = {
    "crawl": {
        "exchange": "crawl",
        "routing_key": "crawl",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "catalog.tasks.crawl_catalog": {"queue": "crawl"},
    "catalog.tasks.crawl_product_page": {"queue": "crawl"},
}

app.conf.beat_schedule = {
    "crawl-catalog-nightly": {
        "task": "catalog.tasks.crawl_catalog",
        "schedule": crontab(hour=3, minute=0),
    },
}
