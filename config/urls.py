"""
URL configuration for the SAQ catalog crawler.

Only the Django admin is exposed; crawled data is browsed from there.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
