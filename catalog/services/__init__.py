"""
Catalog persistence services.

- lookups: name -> id resolution for the lookup tables
- categories: category path resolution
- product_upsert: product upsert and association reconciliation
- crawler: async crawl orchestration
"""
