"""
Tests for the catalog schema: constraints and CrawlRun bookkeeping.
"""

from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction

from catalog.choices import CrawlRunStatus
from catalog.models import (
    LOOKUP_MODELS,
    Category,
    CrawlRun,
    GrapeVariety,
    Producer,
    Product,
    ProductGrapeVariety,
)


@pytest.mark.django_db
class TestProductConstraints:
    """Test the CHECK and UNIQUE constraints of the products table."""

    def _assert_rejected(self, **fields):
        values = {"saq_code": "14099363", "price_cad": 41.75}
        values.update(fields)
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Product.objects.create(**values)

    def test_valid_product(self):
        product = Product.objects.create(
            saq_code="14099363", name="Mercurey", price_cad=41.75, availability="in_stock"
        )

        assert str(product) == "Mercurey (14099363)"

    def test_price_must_be_positive(self):
        self._assert_rejected(price_cad=0)

    def test_availability_vocabulary(self):
        self._assert_rejected(availability="teleported")

    def test_item_condition_vocabulary(self):
        self._assert_rejected(item_condition="mint")

    def test_product_of_quebec_vocabulary(self):
        self._assert_rejected(product_of_quebec="quebec_ish")

    def test_sugar_content_equality_vocabulary(self):
        self._assert_rejected(sugar_content_equality="~")

    def test_saq_code_is_unique(self):
        Product.objects.create(saq_code="14099363", price_cad=41.75)

        self._assert_rejected()

    def test_upc_code_is_unique_but_optional(self):
        Product.objects.create(saq_code="1", price_cad=10, upc_code=None)
        Product.objects.create(saq_code="2", price_cad=10, upc_code=None)
        Product.objects.create(saq_code="3", price_cad=10, upc_code="0001")

        self._assert_rejected(saq_code="4", upc_code="0001")

    def test_grape_percentage_range(self):
        product = Product.objects.create(saq_code="14099363", price_cad=41.75)
        grape = GrapeVariety.objects.create(name="Merlot")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ProductGrapeVariety.objects.create(product=product, grape_variety=grape, percentage=140)

    def test_grape_variety_once_per_product(self):
        product = Product.objects.create(saq_code="14099363", price_cad=41.75)
        grape = GrapeVariety.objects.create(name="Merlot")
        ProductGrapeVariety.objects.create(product=product, grape_variety=grape, percentage=60)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ProductGrapeVariety.objects.create(product=product, grape_variety=grape, percentage=40)


@pytest.mark.django_db
class TestLookupAndCategoryTables:
    """Test lookup and category uniqueness."""

    def test_lookup_names_are_unique(self):
        Producer.objects.create(name="Tawse")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Producer.objects.create(name="Tawse")

    def test_lookup_models_by_table(self):
        assert LOOKUP_MODELS["producers"] is Producer
        assert LOOKUP_MODELS["grape_varieties"] is GrapeVariety
        assert len(LOOKUP_MODELS) == 10

    def test_category_names_are_unique_across_the_tree(self):
        wine = Category.objects.create(name="Wine", url="https://www.saq.com/en/products/wine")
        Category.objects.create(name="Red wine", url="", parent_category=wine)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Category.objects.create(name="Red wine", url="")


@pytest.mark.django_db
class TestCrawlRun:
    """Test CrawlRun lifecycle helpers."""

    def test_lifecycle(self):
        run = CrawlRun.objects.create()
        assert run.status == CrawlRunStatus.PENDING
        assert run.duration_seconds is None

        run.start()
        assert run.status == CrawlRunStatus.RUNNING

        run.complete(success=True)
        assert run.status == CrawlRunStatus.COMPLETED
        assert run.duration_seconds >= 0

    def test_failed_run_keeps_message(self):
        run = CrawlRun.objects.create()
        run.start()

        run.complete(success=False, error_message="Store unavailable")

        run.refresh_from_db()
        assert run.status == CrawlRunStatus.FAILED
        assert run.error_message == "Store unavailable"

    def test_increment(self):
        run = CrawlRun.objects.create()

        run.increment(products_seen=2, products_created=1)
        run.increment(products_seen=1, products_failed=1)

        run.refresh_from_db()
        assert (run.products_seen, run.products_created, run.products_failed) == (3, 1, 1)

    def test_duration(self):
        run = CrawlRun.objects.create()
        run.start()
        run.completed_at = run.started_at + timedelta(seconds=90)

        assert run.duration_seconds == 90
