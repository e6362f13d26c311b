"""
Product upsert and association reconciliation.

upsert_product() writes one ExtractedProduct inside a single transaction:

1. Resolve every optional lookup (producer, promoting agent, color, region,
   country, regulated designation, designation of origin, classification)
2. Resolve the category path; every node of the path is associated
3. Upsert the products row by SAQ code, writing only when a tracked column
   differs so updated_at means "last changed"
4. Reconcile grape varieties, special features and categories: upsert every
   observed pair (bumping its updated_at, "last seen"), then delete the
   product's pairs that were not observed

Steps run in this order because association rows reference the product id.
Any failure rolls the whole product back; there is no partial state.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from django.db import (
    DatabaseError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    transaction,
)
from django.utils import timezone

from catalog.exceptions import (
    CatalogError,
    PersistenceError,
    StoreUnavailable,
)
from catalog.models import (
    Classification,
    Color,
    Country,
    DesignationOfOrigin,
    GrapeVariety,
    Producer,
    Product,
    ProductCategory,
    ProductGrapeVariety,
    ProductSpecialFeature,
    PromotingAgent,
    Region,
    RegulatedDesignation,
    SpecialFeature,
)
from catalog.saq.extraction import ExtractedProduct, extract_product
from catalog.services import categories, lookups

logger = logging.getLogger(__name__)


# ExtractedProduct attribute -> lookup model; stored in the "<attr>_id" column
LOOKUP_FIELDS = {
    "producer": Producer,
    "promoting_agent": PromotingAgent,
    "color": Color,
    "region": Region,
    "country": Country,
    "regulated_designation": RegulatedDesignation,
    "designation_of_origin": DesignationOfOrigin,
    "classification": Classification,
}

# Columns copied as-is from ExtractedProduct
SCALAR_FIELDS = [
    "upc_code",
    "name",
    "description",
    "image_url",
    "url",
    "price_cad",
    "availability",
    "item_condition",
    "abv_percentage",
    "container_count",
    "container_milliliters",
    "sugar_content_equality",
    "sugar_content_grams_per_liter",
    "product_of_quebec",
]

# Every column compared against the stored row; saq_code is the key and never written
TRACKED_FIELDS = SCALAR_FIELDS + [f"{attr}_id" for attr in LOOKUP_FIELDS]

# Substrings of driver messages meaning the database itself is unreachable
CONNECTION_FAILURE_MARKERS = (
    "could not connect",
    "connection refused",
    "connection reset",
    "server closed the connection",
    "terminating connection",
    "connection is closed",
    "connection already closed",
    "unable to open database",
)


@dataclass
class ProductUpsertResult:
    """
    Result of upsert_product().

    Attributes:
        product_id: Id of the products row
        created: Whether the row was inserted
        updated: Whether an existing row had changed columns written
        changed_fields: The tracked columns that differed (empty when created)
        associations: Observed association count per kind
    """

    product_id: int
    created: bool = False
    updated: bool = False
    changed_fields: List[str] = field(default_factory=list)
    associations: Dict[str, int] = field(default_factory=dict)

    @property
    def unchanged(self) -> bool:
        return not self.created and not self.updated


def _same(stored: Any, new: Any) -> bool:
    if isinstance(stored, float) and isinstance(new, (int, float)):
        return math.isclose(stored, float(new), rel_tol=1e-9, abs_tol=1e-9)
    return stored == new


def _normalize(value: Any) -> Any:
    """Store TextChoices members as the plain strings they read back as."""
    if isinstance(value, str):
        return str(value)
    return value


def is_connection_failure(error: Exception) -> bool:
    """True when a database error means the store cannot be reached at all."""
    if isinstance(error, InterfaceError):
        return True
    if isinstance(error, OperationalError):
        message = str(error).lower()
        return any(marker in message for marker in CONNECTION_FAILURE_MARKERS)
    return False


def build_product_values(extracted: ExtractedProduct) -> Dict[str, Any]:
    """
    Map an ExtractedProduct onto products columns, resolving lookups.

    Must run inside the product transaction since lookups insert rows.
    """
    values = {name: _normalize(getattr(extracted, name)) for name in SCALAR_FIELDS}

    # Columns without NULL store "" for unknown text
    for name in ("name", "description", "image_url", "url"):
        if values[name] is None:
            values[name] = ""
    if values["upc_code"] is not None and not values["upc_code"].strip():
        values["upc_code"] = None

    for attr, model in LOOKUP_FIELDS.items():
        values[f"{attr}_id"] = lookups.resolve_optional(model, getattr(extracted, attr))

    return values


def _check_upc_available(saq_code: str, upc_code: Optional[str]) -> None:
    if not upc_code:
        return
    owner = (
        Product.objects.filter(upc_code=upc_code)
        .exclude(saq_code=saq_code)
        .values_list("saq_code", flat=True)
        .first()
    )
    if owner is not None:
        raise PersistenceError(
            f"UPC code {upc_code} of product {saq_code} already belongs to product {owner}"
        )


def _write_product_row(saq_code: str, values: Dict[str, Any]) -> ProductUpsertResult:
    """Insert the products row, or update it when a tracked column changed."""
    _check_upc_available(saq_code, values.get("upc_code"))

    stored = (
        Product.objects.select_for_update()
        .filter(saq_code=saq_code)
        .values("id", *TRACKED_FIELDS)
        .first()
    )

    if stored is None:
        try:
            with transaction.atomic():
                product = Product.objects.create(saq_code=saq_code, **values)
            logger.info(f"Created product {saq_code} ({product.pk})")
            return ProductUpsertResult(product_id=product.pk, created=True)
        except IntegrityError:
            # Another worker inserted the same SAQ code first; update its row instead
            stored = (
                Product.objects.select_for_update()
                .filter(saq_code=saq_code)
                .values("id", *TRACKED_FIELDS)
                .first()
            )
            if stored is None:
                raise

    changed_fields = [name for name in TRACKED_FIELDS if not _same(stored[name], values[name])]
    if not changed_fields:
        logger.debug(f"Product {saq_code} unchanged")
        return ProductUpsertResult(product_id=stored["id"])

    Product.objects.filter(pk=stored["id"]).update(**values, updated_at=timezone.now())
    logger.info(f"Updated product {saq_code} ({stored['id']}): {', '.join(changed_fields)}")
    return ProductUpsertResult(
        product_id=stored["id"],
        updated=True,
        changed_fields=changed_fields,
    )


def reconcile_grape_varieties(product_id: int, grape_varieties: Dict[str, Optional[int]]) -> int:
    """Make product_grape_varieties for product_id exactly match grape_varieties."""
    ids = lookups.resolve_many(GrapeVariety, grape_varieties.keys())

    rows = [
        ProductGrapeVariety(
            product_id=product_id,
            grape_variety_id=ids[name.strip()],
            percentage=percentage,
        )
        for name, percentage in grape_varieties.items()
    ]
    if rows:
        ProductGrapeVariety.objects.bulk_create(
            rows,
            update_conflicts=True,
            unique_fields=["product", "grape_variety"],
            update_fields=["percentage", "updated_at"],
        )

    stale, _ = (
        ProductGrapeVariety.objects.filter(product_id=product_id)
        .exclude(grape_variety_id__in=ids.values())
        .delete()
    )
    if stale:
        logger.debug(f"Removed {stale} stale grape varieties from product {product_id}")
    return len(rows)


def reconcile_special_features(product_id: int, special_features: Iterable[str]) -> int:
    """Make product_special_features for product_id exactly match special_features."""
    ids = lookups.resolve_many(SpecialFeature, special_features)

    rows = [
        ProductSpecialFeature(product_id=product_id, special_feature_id=feature_id)
        for feature_id in ids.values()
    ]
    if rows:
        ProductSpecialFeature.objects.bulk_create(
            rows,
            update_conflicts=True,
            unique_fields=["product", "special_feature"],
            update_fields=["updated_at"],
        )

    stale, _ = (
        ProductSpecialFeature.objects.filter(product_id=product_id)
        .exclude(special_feature_id__in=ids.values())
        .delete()
    )
    if stale:
        logger.debug(f"Removed {stale} stale special features from product {product_id}")
    return len(rows)


def reconcile_categories(product_id: int, category_ids: Iterable[int]) -> int:
    """Make product_categories for product_id exactly match category_ids."""
    category_ids = list(dict.fromkeys(category_ids))

    rows = [
        ProductCategory(product_id=product_id, category_id=category_id)
        for category_id in category_ids
    ]
    if rows:
        ProductCategory.objects.bulk_create(
            rows,
            update_conflicts=True,
            unique_fields=["product", "category"],
            update_fields=["updated_at"],
        )

    stale, _ = (
        ProductCategory.objects.filter(product_id=product_id)
        .exclude(category_id__in=category_ids)
        .delete()
    )
    if stale:
        logger.debug(f"Removed {stale} stale categories from product {product_id}")
    return len(rows)


def _upsert_product(extracted: ExtractedProduct) -> ProductUpsertResult:
    values = build_product_values(extracted)
    category_ids = categories.resolve_path_ids(extracted.categories)

    result = _write_product_row(extracted.saq_code, values)

    result.associations = {
        "grape_varieties": reconcile_grape_varieties(result.product_id, extracted.grape_varieties),
        "special_features": reconcile_special_features(result.product_id, extracted.special_features),
        "categories": reconcile_categories(result.product_id, category_ids),
    }
    return result


def upsert_product(extracted: ExtractedProduct) -> ProductUpsertResult:
    """
    Persist one ExtractedProduct atomically.

    Upserting the same product twice leaves every row identical and does not
    move the product's updated_at; association rows still get a fresh
    updated_at since they record the last crawl that observed them.

    Args:
        extracted: Output of extract_product()

    Returns:
        ProductUpsertResult

    Raises:
        ResolutionConflict: a lookup or category write would break a uniqueness invariant
        PersistenceError: the transaction failed (i.e. UPC collision) and was rolled back
        StoreUnavailable: the database cannot be reached
    """
    try:
        with transaction.atomic():
            return _upsert_product(extracted)
    except CatalogError:
        raise
    except ValueError as e:
        raise PersistenceError(f"Could not save product {extracted.saq_code}: {e}") from e
    except DatabaseError as e:
        if is_connection_failure(e):
            raise StoreUnavailable(f"Database unavailable while saving {extracted.saq_code}: {e}") from e
        raise PersistenceError(f"Could not save product {extracted.saq_code}: {e}") from e


def record_outcome(run, result: ProductUpsertResult) -> None:
    """Count a persisted product on its CrawlRun."""
    if run is None:
        return
    if result.created:
        run.increment(products_seen=1, products_created=1)
    elif result.updated:
        run.increment(products_seen=1, products_updated=1)
    else:
        run.increment(products_seen=1, products_unchanged=1)


def persist_page(html: str, url: str, run=None) -> Optional[ProductUpsertResult]:
    """
    Extract a product page and upsert it, recording the outcome.

    Failures other than StoreUnavailable are logged as a CrawlError, counted
    on the run, and reported by returning None.

    Args:
        html: Product page HTML
        url: Product page URL
        run: CrawlRun to account the outcome on

    Returns:
        ProductUpsertResult, or None if the product failed

    Raises:
        StoreUnavailable: the database cannot be reached
    """
    from catalog.monitoring import log_crawl_failure

    saq_code = None
    try:
        extracted = extract_product(html, url=url)
        saq_code = extracted.saq_code
        result = upsert_product(extracted)
    except StoreUnavailable:
        raise
    except CatalogError as e:
        log_crawl_failure(e, url=url, run=run, saq_code=saq_code)
        return None

    record_outcome(run, result)
    return result
