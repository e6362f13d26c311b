"""
Django admin configuration for the SAQ catalog.

Crawled data is read-only from the admin: products, categories and lookup
rows are written exclusively by the crawler.
"""

from django.contrib import admin
from django.utils.html import format_html

from catalog.models import (
    Category,
    Classification,
    Color,
    Country,
    CrawlError,
    CrawlRun,
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


class ReadOnlyAdminMixin:
    """Disable add/change/delete for crawler-owned tables."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(
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
class LookupTableAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ["name", "id"]
    search_fields = ["name"]
    ordering = ["name"]


@admin.register(Category)
class CategoryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ["name", "parent_category", "url", "updated_at"]
    list_filter = ["parent_category"]
    search_fields = ["name", "url"]
    ordering = ["name"]


class ProductGrapeVarietyInline(admin.TabularInline):
    model = ProductGrapeVariety
    extra = 0
    fields = ["grape_variety", "percentage", "updated_at"]
    readonly_fields = fields
    can_delete = False


class ProductSpecialFeatureInline(admin.TabularInline):
    model = ProductSpecialFeature
    extra = 0
    fields = ["special_feature", "updated_at"]
    readonly_fields = fields
    can_delete = False


class ProductCategoryInline(admin.TabularInline):
    model = ProductCategory
    extra = 0
    fields = ["category", "updated_at"]
    readonly_fields = fields
    can_delete = False


@admin.register(Product)
class ProductAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin interface for crawled products.

    Associations are shown inline with the last crawl that observed them.
    """

    list_display = [
        "saq_code",
        "name",
        "price_cad",
        "availability",
        "country",
        "producer",
        "updated_at",
    ]
    list_filter = [
        "availability",
        "product_of_quebec",
        "color",
        "country",
    ]
    search_fields = ["saq_code", "upc_code", "name"]
    list_select_related = ["country", "producer"]
    ordering = ["saq_code"]
    inlines = [
        ProductCategoryInline,
        ProductGrapeVarietyInline,
        ProductSpecialFeatureInline,
    ]

    fieldsets = (
        ("Identity", {
            "fields": ("saq_code", "upc_code", "name", "description", "url", "image_url"),
        }),
        ("Commerce", {
            "fields": ("price_cad", "availability", "item_condition"),
        }),
        ("Provenance", {
            "fields": ("producer", "promoting_agent", "color", "region", "country"),
        }),
        ("Chemistry", {
            "fields": (
                "abv_percentage",
                "container_count",
                "container_milliliters",
                "sugar_content_equality",
                "sugar_content_grams_per_liter",
            ),
        }),
        ("Regulatory", {
            "fields": (
                "regulated_designation",
                "designation_of_origin",
                "classification",
                "product_of_quebec",
            ),
        }),
        ("Timestamps", {
            "fields": ("created_at", "updated_at"),
        }),
    )


@admin.register(CrawlRun)
class CrawlRunAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "status",
        "started_at",
        "completed_at",
        "products_seen",
        "products_created",
        "products_updated",
        "products_failed",
    ]
    list_filter = ["status"]
    ordering = ["-created_at"]


@admin.register(CrawlError)
class CrawlErrorAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Admin interface for crawl errors."""

    list_display = [
        "timestamp",
        "run",
        "saq_code",
        "url_truncated",
        "error_type_badge",
    ]
    list_filter = [
        "error_type",
        ("timestamp", admin.DateFieldListFilter),
    ]
    search_fields = ["url", "saq_code", "message"]
    ordering = ["-timestamp"]

    fieldsets = (
        ("Error Information", {
            "fields": ("run", "url", "saq_code", "error_type", "message", "timestamp"),
        }),
        ("Stack Trace", {
            "fields": ("stack_trace_formatted",),
            "classes": ("collapse",),
        }),
    )
    readonly_fields = ["stack_trace_formatted"]

    def url_truncated(self, obj):
        """Display truncated URL."""
        max_length = 50
        if len(obj.url) > max_length:
            return obj.url[:max_length] + "..."
        return obj.url
    url_truncated.short_description = "URL"

    def error_type_badge(self, obj):
        """Display error type as colored badge."""
        colors = {
            "fetch": "#ffc107",
            "extraction": "#17a2b8",
            "conflict": "#6f42c1",
            "persistence": "#dc3545",
            "unknown": "#6c757d",
        }
        color = colors.get(obj.error_type, "#6c757d")
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 2px 8px; border-radius: 4px;">{}</span>',
            color, obj.get_error_type_display()
        )
    error_type_badge.short_description = "Type"
    error_type_badge.admin_order_field = "error_type"

    def stack_trace_formatted(self, obj):
        """Display stack trace in a preformatted block."""
        if obj.stack_trace:
            return format_html(
                '<pre style="white-space: pre-wrap; word-wrap: break-word; '
                'background: #f5f5f5; padding: 10px; border-radius: 4px;">{}</pre>',
                obj.stack_trace
            )
        return "-"
    stack_trace_formatted.short_description = "Stack Trace"
