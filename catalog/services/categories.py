"""
Category path resolution.

A product page's breadcrumbs give a path from the broadest category to the
most specific one, i.e. [("Wine", ".../products/wine"), ("Red wine",
".../products/wine/red-wine")]. The path is resolved top-down so a parent
row always exists before its child references it.

Category names are unique across the whole tree, so a name has at most one
parent. A path that would move an existing category under another parent is
a ResolutionConflict; nothing is merged or guessed.
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

from django.db import IntegrityError, transaction
from django.utils import timezone

from catalog.exceptions import ResolutionConflict
from catalog.models import Category

logger = logging.getLogger(__name__)

# Deepest tree walked when checking for cycles
MAX_CATEGORY_DEPTH = 32


def _as_step(step) -> Tuple[str, str]:
    """Accept CategoryCrumb-like objects or (name, url) pairs."""
    if isinstance(step, (tuple, list)):
        name, url = step
    else:
        name, url = step.name, step.url

    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Category name must be a non-empty string, got {name!r}")
    return name.strip(), (url or "").strip()


def _ancestor_ids(category_id: int) -> List[int]:
    """Ids from category_id up to its root, category_id included."""
    ancestors = []
    current = category_id
    while current is not None and len(ancestors) < MAX_CATEGORY_DEPTH:
        ancestors.append(current)
        current = (
            Category.objects.filter(pk=current)
            .values_list("parent_category_id", flat=True)
            .first()
        )
    return ancestors


def _upsert_category(name: str, url: str, parent_id: Optional[int]) -> int:
    """
    Insert-or-refresh one category and return its id.

    URL and parent are written, and updated_at bumped, only when they differ
    from the stored row. A path starting at this node (parent_id None) does
    not detach it from an existing parent.
    """
    Category.objects.bulk_create(
        [Category(name=name, url=url, parent_category_id=parent_id)],
        ignore_conflicts=True,
    )
    row = Category.objects.values("id", "url", "parent_category_id").get(name=name)
    category_id = row["id"]

    changes = {}
    if url and row["url"] != url:
        changes["url"] = url

    stored_parent_id = row["parent_category_id"]
    if parent_id is not None and stored_parent_id != parent_id:
        if stored_parent_id is not None:
            raise ResolutionConflict(
                f"Category {name!r} already has parent {stored_parent_id}, "
                f"path claims parent {parent_id}"
            )
        if category_id in _ancestor_ids(parent_id):
            raise ResolutionConflict(
                f"Attaching category {name!r} under {parent_id} would create a cycle"
            )
        changes["parent_category_id"] = parent_id

    if changes:
        changes["updated_at"] = timezone.now()
        try:
            with transaction.atomic():
                Category.objects.filter(pk=category_id).update(**changes)
        except IntegrityError as e:
            raise ResolutionConflict(f"Could not update category {name!r}: {e}") from e
        logger.debug(f"Updated category {name!r} ({category_id}): {sorted(changes)}")

    return category_id


def resolve_path_ids(path: Sequence[Union[Tuple[str, str], object]]) -> List[int]:
    """
    Resolve every node of a category path, root first.

    Args:
        path: Ordered (name, url) pairs or CategoryCrumb objects, root to leaf

    Returns:
        The ids of the path's categories in the same order

    Raises:
        ResolutionConflict: if the path repeats a name, or a node already has
            a different parent
    """
    steps = [_as_step(step) for step in path]
    if not steps:
        return []

    names = [name for name, _ in steps]
    if len(set(names)) != len(names):
        raise ResolutionConflict(f"Category path repeats a name: {names}")

    ids = []
    parent_id = None
    with transaction.atomic():
        for name, url in steps:
            parent_id = _upsert_category(name, url, parent_id)
            ids.append(parent_id)
    return ids


def resolve_path(path: Sequence[Union[Tuple[str, str], object]]) -> Optional[int]:
    """
    Resolve a category path and return the id of its leaf.

    Resolving the same path twice returns the same id; changing only a
    node's URL updates that row in place.

    Returns:
        The leaf category id, or None for an empty path
    """
    ids = resolve_path_ids(path)
    return ids[-1] if ids else None
