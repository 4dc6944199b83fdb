"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the pooled PostgreSQL
implementation used by the dump, snapshot and restore engines.

Usage:
    from db_backup.adapters import DatabaseClient, PostgresAdapter
"""

from db_backup.adapters.base import DatabaseClient
from db_backup.adapters.postgres import PostgresAdapter

__all__ = [
    "DatabaseClient",
    "PostgresAdapter",
]
