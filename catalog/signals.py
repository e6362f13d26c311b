"""
Django signals for the catalog application.

Active Signals:
- connection_created -> SQLite pragmas (WAL journal, synchronous=NORMAL, busy timeout)

Several crawl workers write to the same SQLite file; WAL lets readers proceed
while a product transaction is being committed and the busy timeout makes
writers wait for each other instead of failing with "database is locked".
"""

from django.conf import settings
from django.db.backends.signals import connection_created
from django.dispatch import receiver


@receiver(connection_created)
def configure_sqlite_connection(sender, connection, **kwargs):
    """Apply crawl-friendly pragmas to every new SQLite connection."""
    if connection.vendor != "sqlite":
        return

    busy_timeout_ms = int(getattr(settings, "SQLITE_BUSY_TIMEOUT", 5) * 1000)

    with connection.cursor() as cursor:
        # In-memory databases do not support WAL and report "memory"
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms};")
