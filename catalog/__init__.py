"""
SAQ catalog Django application.

Crawls the SAQ product catalog, extracts product data from product pages,
and keeps a normalized copy of it in the database.
"""
