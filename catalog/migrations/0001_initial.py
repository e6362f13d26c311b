"""
Migration: Initial SAQ catalog schema.

This migration:
1. Creates the lookup tables (producers, colors, regions, ...)
2. Creates the category tree, products and their association tables
3. Creates crawl_runs and crawl_errors for crawl bookkeeping
"""

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


def lookup_table(name, db_table, verbose_name_plural=None):
    options = {"db_table": db_table, "ordering": ["name"], "abstract": False}
    if verbose_name_plural:
        options["verbose_name_plural"] = verbose_name_plural
    return migrations.CreateModel(
        name=name,
        fields=[
            ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
            ("name", models.TextField(unique=True)),
        ],
        options=options,
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        # Lookup tables
        lookup_table("Producer", "producers"),
        lookup_table("PromotingAgent", "promoting_agents"),
        lookup_table("Color", "colors"),
        lookup_table("Region", "regions"),
        lookup_table("Country", "countries", "Countries"),
        lookup_table("GrapeVariety", "grape_varieties", "Grape Varieties"),
        lookup_table("RegulatedDesignation", "regulated_designations"),
        lookup_table("DesignationOfOrigin", "designations_of_origin", "Designations of Origin"),
        lookup_table("Classification", "classifications"),
        lookup_table("SpecialFeature", "special_features"),

        # Category tree
        migrations.CreateModel(
            name="Category",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.TextField(unique=True)),
                ("url", models.URLField(help_text="Category listing URL", max_length=2000)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "parent_category",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="children",
                        to="catalog.category",
                    ),
                ),
            ],
            options={
                "db_table": "categories",
                "ordering": ["name"],
                "verbose_name_plural": "Categories",
            },
        ),

        # Products
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("saq_code", models.CharField(help_text="SAQ catalog identifier", max_length=32, unique=True)),
                ("upc_code", models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ("name", models.CharField(blank=True, default="", max_length=500)),
                ("description", models.TextField(blank=True, default="")),
                ("image_url", models.URLField(blank=True, default="", max_length=2000)),
                ("url", models.URLField(blank=True, default="", help_text="Product page URL", max_length=2000)),
                ("price_cad", models.FloatField(help_text="Price in Canadian dollars")),
                (
                    "availability",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("back_order", "Back order"),
                            ("discontinued", "Discontinued"),
                            ("in_stock", "In stock"),
                            ("in_store_only", "In store only"),
                            ("limited_availability", "Limited availability"),
                            ("online_only", "Online only"),
                            ("out_of_stock", "Out of stock"),
                            ("pre_order", "Pre-order"),
                            ("pre_sale", "Pre-sale"),
                            ("sold_out", "Sold out"),
                        ],
                        max_length=24,
                        null=True,
                    ),
                ),
                (
                    "item_condition",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("damaged", "Damaged"),
                            ("new", "New"),
                            ("refurbished", "Refurbished"),
                            ("used", "Used"),
                        ],
                        max_length=16,
                        null=True,
                    ),
                ),
                ("abv_percentage", models.FloatField(blank=True, null=True)),
                ("container_count", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("container_milliliters", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "sugar_content_equality",
                    models.CharField(
                        blank=True,
                        choices=[(">", "Greater than"), ("<", "Less than"), ("=", "Equal")],
                        max_length=1,
                        null=True,
                    ),
                ),
                ("sugar_content_grams_per_liter", models.FloatField(blank=True, null=True)),
                (
                    "product_of_quebec",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("bottled_in_quebec", "Bottled in Québec"),
                            ("made_in_quebec", "Made in Québec"),
                            ("origine_quebec", "Origine Québec"),
                        ],
                        max_length=24,
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "producer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.producer",
                    ),
                ),
                (
                    "promoting_agent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.promotingagent",
                    ),
                ),
                (
                    "color",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.color",
                    ),
                ),
                (
                    "region",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.region",
                    ),
                ),
                (
                    "country",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.country",
                    ),
                ),
                (
                    "regulated_designation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.regulateddesignation",
                    ),
                ),
                (
                    "designation_of_origin",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.designationoforigin",
                    ),
                ),
                (
                    "classification",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="catalog.classification",
                    ),
                ),
            ],
            options={
                "db_table": "products",
                "ordering": ["saq_code"],
            },
        ),

        # Associations
        migrations.CreateModel(
            name="ProductGrapeVariety",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("percentage", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="grape_variety_links",
                        to="catalog.product",
                    ),
                ),
                (
                    "grape_variety",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="product_links",
                        to="catalog.grapevariety",
                    ),
                ),
            ],
            options={
                "db_table": "product_grape_varieties",
            },
        ),
        migrations.CreateModel(
            name="ProductSpecialFeature",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="special_feature_links",
                        to="catalog.product",
                    ),
                ),
                (
                    "special_feature",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="product_links",
                        to="catalog.specialfeature",
                    ),
                ),
            ],
            options={
                "db_table": "product_special_features",
            },
        ),
        migrations.CreateModel(
            name="ProductCategory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="category_links",
                        to="catalog.product",
                    ),
                ),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="product_links",
                        to="catalog.category",
                    ),
                ),
            ],
            options={
                "db_table": "product_categories",
                "verbose_name_plural": "Product Categories",
            },
        ),
        migrations.AddField(
            model_name="product",
            name="grape_varieties",
            field=models.ManyToManyField(
                related_name="products",
                through="catalog.ProductGrapeVariety",
                to="catalog.grapevariety",
            ),
        ),
        migrations.AddField(
            model_name="product",
            name="special_features",
            field=models.ManyToManyField(
                related_name="products",
                through="catalog.ProductSpecialFeature",
                to="catalog.specialfeature",
            ),
        ),
        migrations.AddField(
            model_name="product",
            name="categories",
            field=models.ManyToManyField(
                related_name="products",
                through="catalog.ProductCategory",
                to="catalog.category",
            ),
        ),

        # Constraints
        migrations.AddConstraint(
            model_name="product",
            constraint=models.CheckConstraint(
                condition=models.Q(price_cad__gt=0),
                name="products__price_cad_positive",
            ),
        ),
        migrations.AddConstraint(
            model_name="product",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    availability__in=[
                        "back_order",
                        "discontinued",
                        "in_stock",
                        "in_store_only",
                        "limited_availability",
                        "online_only",
                        "out_of_stock",
                        "pre_order",
                        "pre_sale",
                        "sold_out",
                    ]
                )
                | models.Q(availability__isnull=True),
                name="products__availability_valid",
            ),
        ),
        migrations.AddConstraint(
            model_name="product",
            constraint=models.CheckConstraint(
                condition=models.Q(item_condition__in=["damaged", "new", "refurbished", "used"])
                | models.Q(item_condition__isnull=True),
                name="products__item_condition_valid",
            ),
        ),
        migrations.AddConstraint(
            model_name="product",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    product_of_quebec__in=["bottled_in_quebec", "made_in_quebec", "origine_quebec"]
                )
                | models.Q(product_of_quebec__isnull=True),
                name="products__product_of_quebec_valid",
            ),
        ),
        migrations.AddConstraint(
            model_name="product",
            constraint=models.CheckConstraint(
                condition=models.Q(sugar_content_equality__in=[">", "<", "="])
                | models.Q(sugar_content_equality__isnull=True),
                name="products__sugar_content_equality_valid",
            ),
        ),
        migrations.AddConstraint(
            model_name="productgrapevariety",
            constraint=models.UniqueConstraint(
                fields=("product", "grape_variety"),
                name="product_grape_varieties__product__grape_variety",
            ),
        ),
        migrations.AddConstraint(
            model_name="productgrapevariety",
            constraint=models.CheckConstraint(
                condition=models.Q(percentage__gte=0, percentage__lte=100)
                | models.Q(percentage__isnull=True),
                name="product_grape_varieties__percentage_range",
            ),
        ),
        migrations.AddConstraint(
            model_name="productspecialfeature",
            constraint=models.UniqueConstraint(
                fields=("product", "special_feature"),
                name="product_special_features__product__special_feature",
            ),
        ),
        migrations.AddConstraint(
            model_name="productcategory",
            constraint=models.UniqueConstraint(
                fields=("product", "category"),
                name="product_categories__product__category",
            ),
        ),

        # Crawl bookkeeping
        migrations.CreateModel(
            name="CrawlRun",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("start_url", models.URLField(blank=True, default="", max_length=2000)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("pages_listed", models.IntegerField(default=0)),
                ("products_seen", models.IntegerField(default=0)),
                ("products_created", models.IntegerField(default=0)),
                ("products_updated", models.IntegerField(default=0)),
                ("products_unchanged", models.IntegerField(default=0)),
                ("products_failed", models.IntegerField(default=0)),
                ("error_message", models.TextField(blank=True)),
            ],
            options={
                "db_table": "crawl_runs",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="crawl_runs_status_4b1f0e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CrawlError",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("url", models.URLField(blank=True, default="", max_length=2000)),
                ("saq_code", models.CharField(blank=True, default="", max_length=32)),
                (
                    "error_type",
                    models.CharField(
                        choices=[
                            ("fetch", "Fetch Error"),
                            ("extraction", "Extraction Error"),
                            ("conflict", "Resolution Conflict"),
                            ("persistence", "Persistence Error"),
                            ("unknown", "Unknown Error"),
                        ],
                        max_length=20,
                    ),
                ),
                ("message", models.TextField()),
                ("stack_trace", models.TextField(blank=True)),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "run",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="errors",
                        to="catalog.crawlrun",
                    ),
                ),
            ],
            options={
                "db_table": "crawl_errors",
                "ordering": ["-timestamp"],
                "indexes": [
                    models.Index(fields=["error_type", "timestamp"], name="crawl_error_error_t_8c2d5a_idx"),
                    models.Index(fields=["run", "timestamp"], name="crawl_error_run_id_3e7b91_idx"),
                ],
            },
        ),
    ]
