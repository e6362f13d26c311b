"""
Django models for the SAQ catalog.

Lookup tables: Producer, PromotingAgent, Color, Region, Country, GrapeVariety,
               RegulatedDesignation, DesignationOfOrigin, Classification,
               SpecialFeature
Catalog: Category, Product
Associations: ProductGrapeVariety, ProductSpecialFeature, ProductCategory
Crawl bookkeeping: CrawlRun, CrawlError

Uniqueness and CHECK constraints declared here are relied upon by the
services in catalog.services instead of being re-validated in Python.
"""

from django.db import models
from django.db.models import F
from django.utils import timezone

from catalog.choices import (
    Availability,
    CrawlRunStatus,
    ErrorType,
    ItemCondition,
    ProductOfQuebec,
    SugarContentEquality,
)


# ============================================================
# Lookup tables
# ============================================================


class LookupTable(models.Model):
    """
    A small reference table mapping a unique name to a surrogate id.

    Rows are created the first time a product references the name and are
    never renamed or deleted by the crawler.
    """

    name = models.TextField(unique=True)

    class Meta:
        abstract = True
        ordering = ["name"]

    def __str__(self):
        return self.name


class Producer(LookupTable):
    """The product's producer (i.e. "The Absolut Company")."""

    class Meta(LookupTable.Meta):
        db_table = "producers"


class PromotingAgent(LookupTable):
    """The product's promoting agent/importer (i.e. "La QV Inc. (GB)")."""

    class Meta(LookupTable.Meta):
        db_table = "promoting_agents"


class Color(LookupTable):
    class Meta(LookupTable.Meta):
        db_table = "colors"


class Region(LookupTable):
    class Meta(LookupTable.Meta):
        db_table = "regions"


class Country(LookupTable):
    class Meta(LookupTable.Meta):
        db_table = "countries"
        verbose_name_plural = "Countries"


class GrapeVariety(LookupTable):
    class Meta(LookupTable.Meta):
        db_table = "grape_varieties"
        verbose_name_plural = "Grape Varieties"


class RegulatedDesignation(LookupTable):
    """i.e. "Appellation origine controlée (AOC)"."""

    class Meta(LookupTable.Meta):
        db_table = "regulated_designations"


class DesignationOfOrigin(LookupTable):
    """i.e. "Arbois", "Bourgogne Hautes-Côtes de Beaune"."""

    class Meta(LookupTable.Meta):
        db_table = "designations_of_origin"
        verbose_name_plural = "Designations of Origin"


class Classification(LookupTable):
    """i.e. "1er cru classé", "Gran reserva"."""

    class Meta(LookupTable.Meta):
        db_table = "classifications"


class SpecialFeature(LookupTable):
    """i.e. "Organic product", "Natural Wine"."""

    class Meta(LookupTable.Meta):
        db_table = "special_features"


LOOKUP_MODELS = {
    model._meta.db_table: model
    for model in (
        Producer,
        PromotingAgent,
        Color,
        Region,
        Country,
        GrapeVariety,
        RegulatedDesignation,
        DesignationOfOrigin,
        Classification,
        SpecialFeature,
    )
}


# ============================================================
# Categories
# ============================================================


class Category(models.Model):
    """
    A node of the SAQ category tree (i.e. "Wine" > "Red wine").

    Names are unique across the whole tree, not per parent, so a name can
    only ever have one parent.
    """

    name = models.TextField(unique=True)
    url = models.URLField(max_length=2000, help_text="Category listing URL")
    parent_category = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="children",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "categories"
        ordering = ["name"]
        verbose_name_plural = "Categories"

    def __str__(self):
        return self.name


# ============================================================
# Products
# ============================================================


class Product(models.Model):
    """
    One row per SAQ code.

    updated_at only moves when a crawl observes a change in one of the
    tracked columns (see catalog.services.product_upsert).
    """

    saq_code = models.CharField(max_length=32, unique=True, help_text="SAQ catalog identifier")
    upc_code = models.CharField(max_length=32, unique=True, null=True, blank=True)

    # Descriptive
    name = models.CharField(max_length=500, blank=True, default="")
    description = models.TextField(blank=True, default="")
    image_url = models.URLField(max_length=2000, blank=True, default="")
    url = models.URLField(max_length=2000, blank=True, default="", help_text="Product page URL")

    # Commerce
    price_cad = models.FloatField(help_text="Price in Canadian dollars")
    availability = models.CharField(
        max_length=24, choices=Availability.choices, null=True, blank=True
    )
    item_condition = models.CharField(
        max_length=16, choices=ItemCondition.choices, null=True, blank=True
    )

    # Provenance
    producer = models.ForeignKey(
        Producer, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    promoting_agent = models.ForeignKey(
        PromotingAgent, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    color = models.ForeignKey(
        Color, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    region = models.ForeignKey(
        Region, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    country = models.ForeignKey(
        Country, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )

    # Chemistry
    abv_percentage = models.FloatField(null=True, blank=True)
    container_count = models.PositiveSmallIntegerField(null=True, blank=True)
    container_milliliters = models.PositiveIntegerField(null=True, blank=True)
    sugar_content_equality = models.CharField(
        max_length=1, choices=SugarContentEquality.choices, null=True, blank=True
    )
    sugar_content_grams_per_liter = models.FloatField(null=True, blank=True)

    # Regulatory
    regulated_designation = models.ForeignKey(
        RegulatedDesignation, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    designation_of_origin = models.ForeignKey(
        DesignationOfOrigin, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    classification = models.ForeignKey(
        Classification, on_delete=models.PROTECT, null=True, blank=True, related_name="products"
    )
    product_of_quebec = models.CharField(
        max_length=24, choices=ProductOfQuebec.choices, null=True, blank=True
    )

    # Associations
    grape_varieties = models.ManyToManyField(
        GrapeVariety, through="ProductGrapeVariety", related_name="products"
    )
    special_features = models.ManyToManyField(
        SpecialFeature, through="ProductSpecialFeature", related_name="products"
    )
    categories = models.ManyToManyField(
        Category, through="ProductCategory", related_name="products"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["saq_code"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_cad__gt=0),
                name="products__price_cad_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(availability__in=Availability.values)
                | models.Q(availability__isnull=True),
                name="products__availability_valid",
            ),
            models.CheckConstraint(
                condition=models.Q(item_condition__in=ItemCondition.values)
                | models.Q(item_condition__isnull=True),
                name="products__item_condition_valid",
            ),
            models.CheckConstraint(
                condition=models.Q(product_of_quebec__in=ProductOfQuebec.values)
                | models.Q(product_of_quebec__isnull=True),
                name="products__product_of_quebec_valid",
            ),
            models.CheckConstraint(
                condition=models.Q(sugar_content_equality__in=SugarContentEquality.values)
                | models.Q(sugar_content_equality__isnull=True),
                name="products__sugar_content_equality_valid",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.saq_code})"


# ============================================================
# Associations
# ============================================================


class ProductGrapeVariety(models.Model):
    """
    A grape variety present in a product, with its percentage when stated.

    updated_at records the last crawl that observed the association.
    """

    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="grape_variety_links"
    )
    grape_variety = models.ForeignKey(
        GrapeVariety, on_delete=models.PROTECT, related_name="product_links"
    )
    percentage = models.PositiveSmallIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "product_grape_varieties"
        constraints = [
            models.UniqueConstraint(
                fields=["product", "grape_variety"],
                name="product_grape_varieties__product__grape_variety",
            ),
            models.CheckConstraint(
                condition=models.Q(percentage__gte=0, percentage__lte=100)
                | models.Q(percentage__isnull=True),
                name="product_grape_varieties__percentage_range",
            ),
        ]

    def __str__(self):
        if self.percentage is None:
            return f"{self.product_id} <- {self.grape_variety_id}"
        return f"{self.product_id} <- {self.grape_variety_id} ({self.percentage} %)"


class ProductSpecialFeature(models.Model):
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="special_feature_links"
    )
    special_feature = models.ForeignKey(
        SpecialFeature, on_delete=models.PROTECT, related_name="product_links"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "product_special_features"
        constraints = [
            models.UniqueConstraint(
                fields=["product", "special_feature"],
                name="product_special_features__product__special_feature",
            ),
        ]

    def __str__(self):
        return f"{self.product_id} <- {self.special_feature_id}"


class ProductCategory(models.Model):
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="category_links"
    )
    category = models.ForeignKey(
        Category, on_delete=models.PROTECT, related_name="product_links"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "product_categories"
        verbose_name_plural = "Product Categories"
        constraints = [
            models.UniqueConstraint(
                fields=["product", "category"],
                name="product_categories__product__category",
            ),
        ]

    def __str__(self):
        return f"{self.product_id} <- {self.category_id}"


# ============================================================
# Crawl bookkeeping
# ============================================================


class CrawlRun(models.Model):
    """
    Tracks one execution of a catalog crawl and its per-product outcomes.

    Counters are incremented with F() expressions since several workers
    report into the same run.
    """

    status = models.CharField(
        max_length=20, choices=CrawlRunStatus.choices, default=CrawlRunStatus.PENDING
    )
    start_url = models.URLField(max_length=2000, blank=True, default="")

    # Timing
    created_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    # Metrics
    pages_listed = models.IntegerField(default=0)
    products_seen = models.IntegerField(default=0)
    products_created = models.IntegerField(default=0)
    products_updated = models.IntegerField(default=0)
    products_unchanged = models.IntegerField(default=0)
    products_failed = models.IntegerField(default=0)

    error_message = models.TextField(blank=True)

    class Meta:
        db_table = "crawl_runs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="crawl_runs_status_4b1f0e_idx"),
        ]

    def __str__(self):
        return f"Run {self.pk} ({self.status})"

    @property
    def duration_seconds(self):
        """Calculate run duration."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def start(self):
        """Mark run as started."""
        self.status = CrawlRunStatus.RUNNING
        self.started_at = timezone.now()
        self.save(update_fields=["status", "started_at"])

    def complete(self, success: bool = True, error_message: str = None):
        """Mark run as completed or failed."""
        self.status = CrawlRunStatus.COMPLETED if success else CrawlRunStatus.FAILED
        self.completed_at = timezone.now()
        if error_message:
            self.error_message = error_message
        self.save(update_fields=["status", "completed_at", "error_message"])

    def increment(self, **counters):
        """Atomically add to one or more counters, i.e. increment(products_seen=1)."""
        CrawlRun.objects.filter(pk=self.pk).update(
            **{name: F(name) + amount for name, amount in counters.items()}
        )


class CrawlError(models.Model):
    """Persistent record of a page or product that failed during a crawl."""

    run = models.ForeignKey(
        CrawlRun,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="errors",
    )
    url = models.URLField(max_length=2000, blank=True, default="")
    saq_code = models.CharField(max_length=32, blank=True, default="")

    error_type = models.CharField(max_length=20, choices=ErrorType.choices)
    message = models.TextField()
    stack_trace = models.TextField(blank=True)

    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "crawl_errors"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["error_type", "timestamp"], name="crawl_error_error_t_8c2d5a_idx"),
            models.Index(fields=["run", "timestamp"], name="crawl_error_run_id_3e7b91_idx"),
        ]

    def __str__(self):
        return f"{self.error_type}: {self.message[:50]}... ({self.timestamp})"
