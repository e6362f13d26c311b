"""
Tests for category path resolution.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from catalog.exceptions import ResolutionConflict
from catalog.models import Category
from catalog.saq.extraction import CategoryCrumb
from catalog.services import categories

SAQ_URL = "https://www.saq.com/en/products"

WINE = ("Wine", f"{SAQ_URL}/wine")
RED_WINE = ("Red wine", f"{SAQ_URL}/wine/red-wine")
SPIRITS = ("Spirits", f"{SAQ_URL}/spirit")


@pytest.mark.django_db
class TestResolvePath:
    """Test creating and re-resolving category paths."""

    def test_creates_chain(self):
        leaf_id = categories.resolve_path([WINE, RED_WINE])

        red_wine = Category.objects.get(pk=leaf_id)
        assert red_wine.name == "Red wine"
        assert red_wine.url == RED_WINE[1]
        assert red_wine.parent_category.name == "Wine"
        assert red_wine.parent_category.parent_category is None

    def test_resolve_path_ids_root_first(self):
        ids = categories.resolve_path_ids([WINE, RED_WINE])

        assert [Category.objects.get(pk=pk).name for pk in ids] == ["Wine", "Red wine"]

    def test_same_path_same_leaf(self):
        first = categories.resolve_path([WINE, RED_WINE])
        second = categories.resolve_path([WINE, RED_WINE])

        assert first == second
        assert Category.objects.count() == 2

    def test_accepts_category_crumbs(self):
        leaf_id = categories.resolve_path([CategoryCrumb(*WINE), CategoryCrumb(*RED_WINE)])

        assert leaf_id == categories.resolve_path([WINE, RED_WINE])

    def test_empty_path(self):
        assert categories.resolve_path([]) is None
        assert categories.resolve_path_ids([]) == []

    def test_unchanged_path_does_not_touch_rows(self):
        leaf_id = categories.resolve_path([WINE, RED_WINE])
        long_ago = timezone.now() - timedelta(days=30)
        Category.objects.update(updated_at=long_ago)

        categories.resolve_path([WINE, RED_WINE])

        assert Category.objects.get(pk=leaf_id).updated_at == long_ago

    def test_url_change_updates_in_place(self):
        leaf_id = categories.resolve_path([WINE, RED_WINE])
        long_ago = timezone.now() - timedelta(days=30)
        Category.objects.update(updated_at=long_ago)

        new_url = f"{SAQ_URL}/wine/red"
        assert categories.resolve_path([WINE, ("Red wine", new_url)]) == leaf_id

        red_wine = Category.objects.get(pk=leaf_id)
        assert red_wine.url == new_url
        assert red_wine.updated_at > long_ago
        assert Category.objects.count() == 2

    def test_blank_url_keeps_stored_url(self):
        leaf_id = categories.resolve_path([WINE, RED_WINE])

        categories.resolve_path([WINE, ("Red wine", "")])

        assert Category.objects.get(pk=leaf_id).url == RED_WINE[1]

    def test_partial_path_does_not_detach(self):
        leaf_id = categories.resolve_path([WINE, RED_WINE])

        assert categories.resolve_path([RED_WINE]) == leaf_id
        assert Category.objects.get(pk=leaf_id).parent_category.name == "Wine"

    def test_orphan_is_attached_to_parent(self):
        orphan_id = categories.resolve_path([RED_WINE])

        categories.resolve_path([WINE, RED_WINE])

        assert Category.objects.get(pk=orphan_id).parent_category.name == "Wine"


@pytest.mark.django_db
class TestResolvePathConflicts:
    """Test paths that contradict the stored tree."""

    def test_different_parent_is_a_conflict(self):
        categories.resolve_path([WINE, RED_WINE])

        with pytest.raises(ResolutionConflict):
            categories.resolve_path([SPIRITS, RED_WINE])

        assert Category.objects.get(name="Red wine").parent_category.name == "Wine"

    def test_conflicting_path_is_rolled_back(self):
        categories.resolve_path([WINE, RED_WINE])

        with pytest.raises(ResolutionConflict):
            categories.resolve_path([("Sparkling", f"{SAQ_URL}/sparkling"), RED_WINE])

        assert not Category.objects.filter(name="Sparkling").exists()

    def test_repeated_name_is_a_conflict(self):
        with pytest.raises(ResolutionConflict):
            categories.resolve_path([WINE, RED_WINE, WINE])

    def test_cycle_is_a_conflict(self):
        categories.resolve_path([WINE, RED_WINE])

        with pytest.raises(ResolutionConflict):
            categories.resolve_path([RED_WINE, WINE])

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValueError):
            categories.resolve_path([("  ", f"{SAQ_URL}/blank")])
