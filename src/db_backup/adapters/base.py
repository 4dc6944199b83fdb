"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol the dump, snapshot and restore
engines talk to.  ``PostgresAdapter`` is the production implementation;
tests substitute an in-memory fake.

Usage:
    from db_backup.adapters.base import DatabaseClient

    def count_rows(client: DatabaseClient) -> int:
        return sum(len(client.select_all(t)) for t in client.list_tables())
"""

from typing import Any, Protocol

from db_backup.backup.models import ColumnDef, DatabaseSnapshot


class DatabaseClient(Protocol):
    """Datastore interface used by the backup engines.

    All query failures surface as ``db_backup.errors.QueryError``.
    """

    def list_tables(self) -> list[str]:
        """Return base table names of the backed-up schema, sorted by name."""
        ...

    def get_columns(self, table: str) -> list[ColumnDef]:
        """Return column descriptors for ``table`` in physical (ordinal) order.

        Example:
            cols = client.get_columns("appointments")
            [(c.name, c.storage_type) for c in cols]
            # [("id", "int4"), ("tags", "_text"), ("metadata", "jsonb")]
        """
        ...

    def select_all(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table`` as a column -> value dict."""
        ...

    def restore_snapshot(self, snapshot: DatabaseSnapshot) -> None:
        """Truncate and reload every snapshot table in one transaction.

        Either every table is truncated and reloaded, or none is: any
        failure rolls the whole transaction back and raises ``QueryError``.
        """
        ...

    def execute_script(self, sql: str) -> None:
        """Execute a complete SQL script as a single multi-statement call.

        The script manages its own transaction (``BEGIN``/``COMMIT``).
        """
        ...

    def close(self) -> None:
        """Dispose of pooled connections."""
        ...
