"""
Pytest configuration and fixtures for the SAQ catalog crawler test suite.

Product and listing pages are built from the same markup saq.com serves:
JSON-LD <script> blocks plus the "Detailed Info" attribute list.
"""

import json
import os

import pytest

SAQ_URL = "https://www.saq.com/en"

DEFAULT_DETAILED_INFO = [
    ("Country", "France"),
    ("Region", "Bourgogne"),
    ("Designation of origin", "Mercurey"),
    ("Regulated Designation", "Appellation d'origine contrôlée (AOC)"),
    ("Classification", "1er cru"),
    ("Producer", "Domaine Faiveley"),
    ("Promoting agent", "Maison Sélection Inc."),
    ("Grape variety", "Pinot noir 100 %"),
    ("Degree of alcohol", "13,5 %"),
    ("Sugar content", "<1.2 g/L"),
    ("Color", "Red"),
    ("Size", "750 ml"),
    ("SAQ code", "14099363"),
    ("UPC code", "03760185080047"),
    ("Special feature", "Organic wine, Natural wine"),
]

DEFAULT_BREADCRUMBS = [
    ("Home", f"{SAQ_URL}/"),
    ("Products", f"{SAQ_URL}/products"),
    ("Wine", f"{SAQ_URL}/products/wine"),
    ("Red wine", f"{SAQ_URL}/products/wine/red-wine"),
    ("Faiveley Mercurey 1er cru 2021", f"{SAQ_URL}/14099363"),
]


def product_linked_data(
    sku="14099363",
    price="41.75",
    currency="CAD",
    availability="http://schema.org/InStock",
    name="Faiveley Mercurey 1er cru 2021",
    image="https://www.saq.com/media/catalog/product/1/4/14099363-1_1.png",
):
    data = {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": name,
        "description": "A supple Pinot noir from the Côte Chalonnaise.",
        "image": image,
        "offers": {
            "@type": "Offer",
            "price": price,
            "priceCurrency": currency,
            "availability": availability,
            "itemCondition": "https://schema.org/NewCondition",
            "url": f"{SAQ_URL}/{sku}",
        },
    }
    if sku is not None:
        data["sku"] = sku
    return data


def breadcrumb_linked_data(crumbs=None):
    crumbs = DEFAULT_BREADCRUMBS if crumbs is None else crumbs
    return {
        "@context": "https://schema.org",
        "@type": "BreadcrumbList",
        "itemListElement": [
            {
                "@type": "ListItem",
                "position": position,
                "item": {"@id": url, "name": name},
            }
            for position, (name, url) in enumerate(crumbs, start=1)
        ],
    }


def _ld_script(payload):
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


def build_product_page(
    linked_data=None,
    detailed_info=None,
    breadcrumbs=None,
    include_breadcrumbs=True,
    head_extra="",
    body_extra="",
):
    """Render a product page the way saq.com lays one out."""
    if linked_data is None:
        linked_data = [product_linked_data()]
    if include_breadcrumbs:
        linked_data = list(linked_data) + [breadcrumb_linked_data(breadcrumbs)]
    detailed_info = DEFAULT_DETAILED_INFO if detailed_info is None else detailed_info

    scripts = "\n".join(_ld_script(payload) for payload in linked_data)
    items = "\n".join(
        f'<li><strong class="type">{label}</strong>'
        f'<span class="data" data-th="{label}">\n  {value}\n</span></li>'
        for label, value in detailed_info
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<title>Product | SAQ.COM</title>
{head_extra}
{scripts}
</head>
<body>
{body_extra}
<div class="product-info-main"><h1 class="page-title">Faiveley Mercurey</h1></div>
<div id="product-data-item-additional">
  <h2>Detailed info</h2>
  <ul class="list-attributs">
{items}
  </ul>
</div>
</body>
</html>"""


def build_listing_page(product_urls, page_number=1, with_pagination=True, with_linked_data=True):
    """Render a category listing page with an OfferCatalog and a pager."""
    catalog = {
        "@context": "https://schema.org",
        "@type": "WebPage",
        "mainEntity": {
            "@type": "OfferCatalog",
            "name": "Red wine",
            "url": f"{SAQ_URL}/products/wine/red-wine",
            "numberOfItems": len(product_urls),
            "itemListElement": [
                {
                    "@type": "Product",
                    "name": f"Product {index}",
                    "sku": url.rsplit("/", 1)[-1],
                    "offers": {"@type": "Offer", "price": "19.95", "url": url},
                }
                for index, url in enumerate(product_urls)
            ],
        },
    }

    pager = ""
    if with_pagination:
        pager = f"""<div class="pages"><ul class="items pages-items">
<li class="item"><a class="page" href="?p=1"><span>Page</span><span>1</span></a></li>
<li class="item current"><strong class="page">
<span class="label">You're currently reading page</span><span>{page_number}</span>
</strong></li>
</ul></div>"""

    links = "\n".join(
        f'<li class="product-item"><a class="product-item-link" href="{url}">Product</a></li>'
        for url in product_urls
    )
    script = _ld_script(catalog) if with_linked_data else ""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>{script}</head>
<body>
<ol class="products list items product-items">
{links}
</ol>
{pager}
</body>
</html>"""


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Start from an empty SQLite file and run migrations."""
    from django.conf import settings
    from django.core.management import call_command

    db_path = str(settings.DATABASES["default"]["NAME"])
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.remove(path)

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture
def product_page():
    """A complete product page for SAQ code 14099363."""
    return build_product_page()


@pytest.fixture
def product_url():
    return f"{SAQ_URL}/14099363"


@pytest.fixture
def crawl_run(db):
    """A started CrawlRun."""
    from catalog.models import CrawlRun

    run = CrawlRun.objects.create(start_url=f"{SAQ_URL}/products/wine")
    run.start()
    return run


@pytest.fixture
def make_product_page():
    """Factory for product pages; see build_product_page()."""
    return build_product_page


@pytest.fixture
def make_product_linked_data():
    """Factory for a product page's Product JSON-LD entity."""
    return product_linked_data


@pytest.fixture
def make_listing_page():
    """Factory for category listing pages; see build_listing_page()."""
    return build_listing_page
