"""
Fixed vocabularies shared by the SAQ parsers and the database schema.

Every value here has a matching CHECK constraint on the products table.
"""

from django.db import models


class Availability(models.TextChoices):
    """https://schema.org/ItemAvailability"""

    BACK_ORDER = "back_order", "Back order"
    DISCONTINUED = "discontinued", "Discontinued"
    IN_STOCK = "in_stock", "In stock"
    IN_STORE_ONLY = "in_store_only", "In store only"
    LIMITED_AVAILABILITY = "limited_availability", "Limited availability"
    ONLINE_ONLY = "online_only", "Online only"
    OUT_OF_STOCK = "out_of_stock", "Out of stock"
    PRE_ORDER = "pre_order", "Pre-order"
    PRE_SALE = "pre_sale", "Pre-sale"
    SOLD_OUT = "sold_out", "Sold out"


class ItemCondition(models.TextChoices):
    """https://schema.org/OfferItemCondition"""

    DAMAGED = "damaged", "Damaged"
    NEW = "new", "New"
    REFURBISHED = "refurbished", "Refurbished"
    USED = "used", "Used"


class ProductOfQuebec(models.TextChoices):
    """
    The specific "Product of Québec" label.

    BOTTLED_IN: bottled in Québec.
    MADE_IN: made in Québec, partially or fully from ingredients sourced elsewhere.
    ORIGINE: made in Québec from Québec ingredients.
    """

    BOTTLED_IN = "bottled_in_quebec", "Bottled in Québec"
    MADE_IN = "made_in_quebec", "Made in Québec"
    ORIGINE = "origine_quebec", "Origine Québec"


class SugarContentEquality(models.TextChoices):
    """Whether the actual sugar content is above, below or equal to the stated value."""

    GREATER_THAN = ">", "Greater than"
    LESS_THAN = "<", "Less than"
    EQUAL = "=", "Equal"


class CrawlRunStatus(models.TextChoices):
    """Lifecycle of a catalog crawl."""

    PENDING = "pending", "Pending"
    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class ErrorType(models.TextChoices):
    """Kinds of per-page failures recorded during a crawl."""

    FETCH = "fetch", "Fetch Error"
    EXTRACTION = "extraction", "Extraction Error"
    CONFLICT = "conflict", "Resolution Conflict"
    PERSISTENCE = "persistence", "Persistence Error"
    UNKNOWN = "unknown", "Unknown Error"
